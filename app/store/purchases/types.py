from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from app.db.models.assets import Asset
from app.db.models.entitlements import Entitlement


@dataclass(slots=True)
class CheckoutResult:
    entitlement_id: UUID
    reference: str
    redirect_url: str
    access_code: str


@dataclass(slots=True)
class CompletionResult:
    entitlement_id: UUID
    user_id: str
    asset_id: UUID
    status: str
    idempotent_replay: bool
    outbox_event_id: int | None = None

    @property
    def notification_due(self) -> bool:
        return not self.idempotent_replay and self.outbox_event_id is not None


@dataclass(slots=True)
class VerifyResult:
    entitlement: Entitlement
    asset: Asset | None
    completion: CompletionResult


@dataclass(slots=True)
class WebhookResult:
    event: str
    outcome: str
    reference: str | None = None
    completion: CompletionResult | None = None


@dataclass(slots=True)
class ReconcileResult:
    entitlement_id: UUID
    outcome: str
    completion: CompletionResult | None = None
