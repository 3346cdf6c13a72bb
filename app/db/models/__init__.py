from app.db.models.assets import Asset
from app.db.models.entitlements import Entitlement
from app.db.models.outbox_events import OutboxEvent
from app.db.models.user_profiles import UserProfile

__all__ = [
    "Asset",
    "Entitlement",
    "OutboxEvent",
    "UserProfile",
]
