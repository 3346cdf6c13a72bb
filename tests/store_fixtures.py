from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError

from app.core.errors import AuthenticationRequiredError
from app.db.models.assets import ASSET_KIND_ALBUM, ASSET_KIND_SONG, Asset
from app.db.models.entitlements import (
    ENTITLEMENT_STATUS_COMPLETED,
    ENTITLEMENT_STATUS_FAILED,
    ENTITLEMENT_STATUS_PENDING,
    Entitlement,
)
from app.db.models.outbox_events import (
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_SENT,
    OutboxEvent,
)
from app.db.models.user_profiles import UserProfile
from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.user_profiles_repo import UserProfilesRepo
from app.services.identity import Identity
from app.services.mailer import MailDeliveryError, MailMessage
from app.services.payment_gateway import GatewayCheckout, GatewayVerification, PaymentGatewayError
from app.services.registry import ServiceRegistry
from app.services.storage import ObjectInfo, StorageError

UTC = timezone.utc
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

SESSION_LOCAL_MODULES = (
    "app.store.purchases.service.checkout",
    "app.store.purchases.service.verify",
    "app.store.purchases.service.webhook",
    "app.store.purchases.service.reconcile",
    "app.store.purchases.service.notifications",
    "app.catalog.upload.service",
    "app.catalog.deletion",
    "app.api.routes.purchases",
    "app.api.routes.delivery",
    "app.api.routes.admin_users",
    "app.workers.tasks.payments_reliability",
)


class _Scope:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    async def __aenter__(self) -> FakeSession:
        return self._session

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSession:
    def begin(self) -> _Scope:
        return _Scope(self)

    def begin_nested(self) -> _Scope:
        return _Scope(self)

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSessionLocal:
    def __call__(self) -> FakeSession:
        return FakeSession()

    def begin(self) -> _Scope:
        return _Scope(FakeSession())


@dataclass
class MemoryStore:
    assets: dict[UUID, Asset] = field(default_factory=dict)
    entitlements: dict[UUID, Entitlement] = field(default_factory=dict)
    profiles: dict[str, UserProfile] = field(default_factory=dict)
    outbox: dict[int, OutboxEvent] = field(default_factory=dict)

    def add_song(
        self,
        *,
        title: str = "Jah Guide",
        price: str = "500.00",
        album: Asset | None = None,
        track_number: int | None = None,
        audio_key: str | None = "audio/admin/1_jah_guide.mp3",
    ) -> Asset:
        song = Asset(
            id=uuid4(),
            kind=ASSET_KIND_SONG,
            title=title,
            artist="Rasman Peter Dudu",
            price=Decimal(price),
            featured=False,
            cover_key=None,
            audio_key=audio_key,
            duration_seconds=215,
            genre="Reggae",
            album_id=album.id if album is not None else None,
            track_number=track_number,
            created_at=NOW,
            updated_at=NOW,
        )
        self.assets[song.id] = song
        return song

    def add_album(self, *, title: str = "Roots Journey", price: str = "2500.00", tracks: int = 2) -> Asset:
        album = Asset(
            id=uuid4(),
            kind=ASSET_KIND_ALBUM,
            title=title,
            artist="Rasman Peter Dudu",
            price=Decimal(price),
            featured=True,
            cover_key="covers/admin/1_roots.jpg",
            release_date=date(2025, 12, 1),
            description=None,
            created_at=NOW,
            updated_at=NOW,
        )
        self.assets[album.id] = album
        for index in range(tracks):
            self.add_song(
                title=f"Track {index + 1}",
                album=album,
                track_number=index + 1,
                audio_key=f"audio/admin/{index}_track.mp3",
            )
        return album

    def add_entitlement(
        self,
        *,
        user_id: str,
        asset: Asset,
        status: str = ENTITLEMENT_STATUS_PENDING,
        reference: str | None = None,
        created_at: datetime = NOW,
        notification_sent: bool = False,
    ) -> Entitlement:
        entitlement = Entitlement(
            id=uuid4(),
            user_id=user_id,
            asset_id=asset.id,
            asset_kind=asset.kind,
            payment_reference=reference or f"RAS_{len(self.entitlements) + 1}_ABCDEF",
            amount=asset.price,
            currency="NGN",
            status=status,
            completed_via="webhook" if status == ENTITLEMENT_STATUS_COMPLETED else None,
            notification_sent=notification_sent,
            created_at=created_at,
            updated_at=created_at,
            purchased_at=created_at if status == ENTITLEMENT_STATUS_COMPLETED else None,
            last_reconciled_at=None,
        )
        self.entitlements[entitlement.id] = entitlement
        return entitlement

    def add_profile(self, *, clerk_id: str, email: str | None = "fan@example.com") -> UserProfile:
        profile = UserProfile(
            id=len(self.profiles) + 1,
            clerk_id=clerk_id,
            email=email,
            first_name="Ada",
            last_name="Obi",
            role="user",
            entitlement_ids=[],
            created_at=NOW,
            last_seen_at=NOW,
        )
        self.profiles[clerk_id] = profile
        return profile

    def add_outbox_event(self, *, event_type: str, payload: dict[str, object], created_at: datetime = NOW) -> OutboxEvent:
        event = OutboxEvent(
            id=len(self.outbox) + 1,
            event_type=event_type,
            payload=payload,
            status=OUTBOX_STATUS_PENDING,
            attempts=0,
            created_at=created_at,
        )
        self.outbox[event.id] = event
        return event

    def completed_for(self, user_id: str, asset_id: UUID) -> list[Entitlement]:
        return [
            item
            for item in self.entitlements.values()
            if item.user_id == user_id
            and item.asset_id == asset_id
            and item.status == ENTITLEMENT_STATUS_COMPLETED
        ]

    def install(self, monkeypatch) -> None:
        _install_repos(self, monkeypatch)
        session_local = FakeSessionLocal()
        for module_name in SESSION_LOCAL_MODULES:
            monkeypatch.setattr(f"{module_name}.SessionLocal", session_local)


def _install_repos(store: MemoryStore, monkeypatch) -> None:
    async def get_entitlement(session, entitlement_id):
        return store.entitlements.get(entitlement_id)

    async def get_by_reference(session, payment_reference):
        for item in store.entitlements.values():
            if item.payment_reference == payment_reference:
                return item
        return None

    async def has_completed_for_asset(session, *, user_id, asset_id):
        return bool(store.completed_for(user_id, asset_id))

    async def has_access(session, *, user_id, song_id, album_id):
        for item in store.entitlements.values():
            if item.user_id != user_id or item.status != ENTITLEMENT_STATUS_COMPLETED:
                continue
            if song_id is not None and item.asset_id == song_id and item.asset_kind == ASSET_KIND_SONG:
                return True
            if album_id is not None and item.asset_id == album_id and item.asset_kind == ASSET_KIND_ALBUM:
                return True
        return False

    async def list_for_user(session, *, user_id, status, asset_kind, limit, offset):
        rows = [
            item
            for item in store.entitlements.values()
            if item.user_id == user_id
            and (status is None or item.status == status)
            and (asset_kind is None or item.asset_kind == asset_kind)
        ]
        rows.sort(key=lambda item: item.created_at, reverse=True)
        return rows[offset : offset + limit], len(rows)

    async def list_pending_entitlements(session, *, older_than_utc, limit=100):
        rows = [
            item
            for item in store.entitlements.values()
            if item.status == ENTITLEMENT_STATUS_PENDING and item.created_at <= older_than_utc
        ]
        # Never-checked rows first, then oldest check, then oldest row.
        rows.sort(
            key=lambda item: (
                item.last_reconciled_at is not None,
                item.last_reconciled_at or item.created_at,
                item.created_at,
            )
        )
        return rows[:limit]

    async def create_entitlement(session, *, entitlement):
        store.entitlements[entitlement.id] = entitlement
        return entitlement

    async def delete_pending(session, entitlement_id):
        item = store.entitlements.get(entitlement_id)
        if item is None or item.status != ENTITLEMENT_STATUS_PENDING:
            return False
        del store.entitlements[entitlement_id]
        return True

    async def try_mark_completed(session, *, entitlement_id, completed_via, now_utc):
        item = store.entitlements.get(entitlement_id)
        if item is None or item.status != ENTITLEMENT_STATUS_PENDING:
            return None
        if store.completed_for(item.user_id, item.asset_id):
            raise IntegrityError("UPDATE entitlements", {}, Exception("uq_entitlements_completed_user_asset"))
        item.status = ENTITLEMENT_STATUS_COMPLETED
        item.completed_via = completed_via
        item.purchased_at = now_utc
        item.updated_at = now_utc
        return item

    async def try_mark_failed(session, *, entitlement_id, now_utc):
        item = store.entitlements.get(entitlement_id)
        if item is None or item.status != ENTITLEMENT_STATUS_PENDING:
            return False
        item.status = ENTITLEMENT_STATUS_FAILED
        item.updated_at = now_utc
        return True

    async def touch_reconciled(session, *, entitlement_id, now_utc):
        item = store.entitlements.get(entitlement_id)
        if item is not None and item.status == ENTITLEMENT_STATUS_PENDING:
            item.last_reconciled_at = now_utc

    async def revoke_completed(session, *, user_id, asset_id, revoked_by, reason, now_utc):
        rows = store.completed_for(user_id, asset_id)
        for item in rows:
            item.status = ENTITLEMENT_STATUS_FAILED
            item.revoked_at = now_utc
            item.revoked_by = revoked_by
            item.revocation_reason = reason
        return len(rows)

    async def try_claim_notification(session, *, entitlement_id):
        item = store.entitlements.get(entitlement_id)
        if item is None or item.status != ENTITLEMENT_STATUS_COMPLETED or item.notification_sent:
            return False
        item.notification_sent = True
        return True

    async def release_notification_claim(session, *, entitlement_id):
        item = store.entitlements.get(entitlement_id)
        if item is not None:
            item.notification_sent = False

    for name, fn in {
        "get_by_id": get_entitlement,
        "get_by_reference": get_by_reference,
        "has_completed_for_asset": has_completed_for_asset,
        "has_access": has_access,
        "list_for_user": list_for_user,
        "list_pending_older_than": list_pending_entitlements,
        "create": create_entitlement,
        "delete_pending": delete_pending,
        "try_mark_completed": try_mark_completed,
        "try_mark_failed": try_mark_failed,
        "touch_reconciled": touch_reconciled,
        "revoke_completed": revoke_completed,
        "try_claim_notification": try_claim_notification,
        "release_notification_claim": release_notification_claim,
    }.items():
        monkeypatch.setattr(EntitlementsRepo, name, staticmethod(fn))

    async def get_asset(session, asset_id):
        return store.assets.get(asset_id)

    async def list_album_members(session, album_id):
        members = [
            item
            for item in store.assets.values()
            if item.album_id == album_id and item.kind == ASSET_KIND_SONG
        ]
        return sorted(members, key=lambda item: item.track_number or 0)

    async def create_many(session, *, assets):
        for asset in assets:
            store.assets[asset.id] = asset
        return list(assets)

    async def delete_by_ids(session, asset_ids):
        deleted = 0
        for asset_id in asset_ids:
            if store.assets.pop(asset_id, None) is not None:
                deleted += 1
        return deleted

    async def list_by_ids(session, asset_ids):
        return [store.assets[asset_id] for asset_id in set(asset_ids) if asset_id in store.assets]

    for name, fn in {
        "get_by_id": get_asset,
        "list_album_members": list_album_members,
        "create_many": create_many,
        "delete_by_ids": delete_by_ids,
        "list_by_ids": list_by_ids,
    }.items():
        monkeypatch.setattr(AssetsRepo, name, staticmethod(fn))

    async def get_by_clerk_id(session, clerk_id):
        return store.profiles.get(clerk_id)

    async def ensure_exists(session, *, clerk_id, email, first_name, last_name, role, now_utc):
        profile = store.profiles.get(clerk_id)
        if profile is not None:
            profile.last_seen_at = now_utc
            return False
        store.profiles[clerk_id] = UserProfile(
            id=len(store.profiles) + 1,
            clerk_id=clerk_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            entitlement_ids=[],
            created_at=now_utc,
            last_seen_at=now_utc,
        )
        return True

    async def append_entitlement(session, *, clerk_id, entitlement_id):
        profile = store.profiles.get(clerk_id)
        if profile is None or entitlement_id in profile.entitlement_ids:
            return False
        profile.entitlement_ids = [*profile.entitlement_ids, entitlement_id]
        return True

    async def set_role(session, *, clerk_id, role):
        profile = store.profiles.get(clerk_id)
        if profile is None:
            return False
        profile.role = role
        return True

    for name, fn in {
        "get_by_clerk_id": get_by_clerk_id,
        "ensure_exists": ensure_exists,
        "append_entitlement": append_entitlement,
        "set_role": set_role,
    }.items():
        monkeypatch.setattr(UserProfilesRepo, name, staticmethod(fn))

    async def create_event(session, *, event_type, payload, status=OUTBOX_STATUS_PENDING):
        event = OutboxEvent(
            id=len(store.outbox) + 1,
            event_type=event_type,
            payload=payload,
            status=status,
            attempts=0,
            created_at=NOW,
        )
        store.outbox[event.id] = event
        return event

    async def get_event(session, event_id):
        return store.outbox.get(event_id)

    async def list_pending_events(session, *, event_type, older_than_utc, limit):
        rows = [
            item
            for item in store.outbox.values()
            if item.event_type == event_type
            and item.status == OUTBOX_STATUS_PENDING
            and item.created_at <= older_than_utc
        ]
        return rows[:limit]

    async def mark_sent(session, *, event_id, now_utc):
        event = store.outbox.get(event_id)
        if event is not None:
            event.status = OUTBOX_STATUS_SENT
            event.processed_at = now_utc

    async def record_attempt(session, *, event_id, max_attempts, now_utc):
        event = store.outbox[event_id]
        event.attempts += 1
        if event.attempts >= max_attempts:
            event.status = OUTBOX_STATUS_FAILED
            event.processed_at = now_utc
        return event.attempts

    for name, fn in {
        "create": create_event,
        "get_by_id": get_event,
        "list_pending_older_than": list_pending_events,
        "mark_sent": mark_sent,
        "record_attempt": record_attempt,
    }.items():
        monkeypatch.setattr(OutboxEventsRepo, name, staticmethod(fn))


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.fail_put_after: int | None = None
        self.fail_sign_keys: set[str] = set()
        self.sign_calls: list[dict[str, Any]] = []
        self._puts = 0

    async def put_object(self, *, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put_after is not None and self._puts >= self.fail_put_after:
            raise StorageError(f"upload failed for {key}")
        self._puts += 1
        self.objects[key] = (data, content_type)

    async def delete_object(self, *, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)

    async def head_object(self, *, key: str) -> ObjectInfo | None:
        stored = self.objects.get(key)
        if stored is None:
            return None
        return ObjectInfo(key=key, content_type=stored[1], content_length=len(stored[0]))

    async def sign_get(
        self,
        *,
        key: str,
        ttl_seconds: int,
        byte_range: str | None = None,
        download_filename: str | None = None,
    ) -> str:
        self.sign_calls.append(
            {"key": key, "ttl_seconds": ttl_seconds, "byte_range": byte_range, "filename": download_filename}
        )
        if key in self.fail_sign_keys:
            raise StorageError(f"signing failed for {key}")
        return f"https://storage.test/{key}?expires={ttl_seconds}"


class FakeGateway:
    def __init__(self) -> None:
        self.initialize_calls: list[dict[str, Any]] = []
        self.initialize_error: Exception | None = None
        self.verifications: dict[str, GatewayVerification] = {}
        self.verify_error: Exception | None = None

    async def initialize(self, **kwargs: Any) -> GatewayCheckout:
        self.initialize_calls.append(kwargs)
        if self.initialize_error is not None:
            raise self.initialize_error
        reference = kwargs["reference"]
        return GatewayCheckout(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            access_code=f"ac_{reference}",
            reference=reference,
        )

    def succeed(self, entitlement: Entitlement, *, amount_minor: int | None = None) -> None:
        self.verifications[entitlement.payment_reference] = GatewayVerification(
            reference=entitlement.payment_reference,
            status="success",
            amount_minor=amount_minor if amount_minor is not None else int(entitlement.amount * 100),
            currency="NGN",
            metadata={"entitlement_id": str(entitlement.id)},
        )

    def settle(self, entitlement: Entitlement, *, status: str) -> None:
        self.verifications[entitlement.payment_reference] = GatewayVerification(
            reference=entitlement.payment_reference,
            status=status,
            amount_minor=int(entitlement.amount * 100),
            currency="NGN",
            metadata={},
        )

    async def verify(self, reference: str) -> GatewayVerification:
        if self.verify_error is not None:
            raise self.verify_error
        verification = self.verifications.get(reference)
        if verification is None:
            raise PaymentGatewayError("payment verification unavailable")
        return verification

    async def aclose(self) -> None:
        return None


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[MailMessage] = []
        self.fail = False

    async def send(self, message: MailMessage) -> None:
        if self.fail:
            raise MailDeliveryError("mail delivery failed")
        self.sent.append(message)

    async def aclose(self) -> None:
        return None


class FakeTokenVerifier:
    def __init__(self, identities: dict[str, Identity] | None = None) -> None:
        self.identities = identities or {}

    async def verify(self, token: str) -> Identity:
        identity = self.identities.get(token)
        if identity is None:
            raise AuthenticationRequiredError("invalid session token")
        return identity


class FakeClerkAdmin:
    def __init__(self) -> None:
        self.users: dict[str, Identity] = {}
        self.role_updates: list[tuple[str, str]] = []

    async def get_user(self, user_id: str) -> Identity | None:
        return self.users.get(user_id)

    async def update_role(self, user_id: str, role: str) -> None:
        self.role_updates.append((user_id, role))

    async def aclose(self) -> None:
        return None


class StubTask:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    def delay(self, **kwargs: object) -> None:
        self.calls.append(kwargs)


FAN = Identity(subject="user_fan", role="user", email="fan@example.com", first_name="Ada", last_name="Obi")
ADMIN = Identity(subject="user_admin", role="admin", email="admin@example.com")


def build_registry(**overrides: Any) -> ServiceRegistry:
    values: dict[str, Any] = {
        "storage": FakeStorage(),
        "gateway": FakeGateway(),
        "token_verifier": FakeTokenVerifier({"fan-token": FAN, "admin-token": ADMIN}),
        "clerk_admin": FakeClerkAdmin(),
        "mailer": FakeMailer(),
    }
    values.update(overrides)
    return ServiceRegistry(**values)
