from app.db.repo.assets_repo import AssetsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.user_profiles_repo import UserProfilesRepo

__all__ = [
    "AssetsRepo",
    "EntitlementsRepo",
    "OutboxEventsRepo",
    "UserProfilesRepo",
]
