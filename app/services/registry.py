from __future__ import annotations

from dataclasses import dataclass

import structlog

from app.core.config import Settings
from app.services.identity import ClerkAdminClient, ClerkTokenVerifier
from app.services.mailer import SendGridMailer
from app.services.payment_gateway import PaystackClient
from app.services.storage import ObjectStorage

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ServiceRegistry:
    storage: ObjectStorage
    gateway: PaystackClient
    token_verifier: ClerkTokenVerifier | None = None
    clerk_admin: ClerkAdminClient | None = None
    mailer: SendGridMailer | None = None

    async def aclose(self) -> None:
        await self.gateway.aclose()
        if self.clerk_admin is not None:
            await self.clerk_admin.aclose()
        if self.mailer is not None:
            await self.mailer.aclose()


def build_service_registry(settings: Settings) -> ServiceRegistry:
    registry = ServiceRegistry(
        storage=ObjectStorage.from_settings(settings),
        gateway=PaystackClient.from_settings(settings),
        token_verifier=ClerkTokenVerifier.from_settings(settings),
        clerk_admin=ClerkAdminClient.from_settings(settings),
        mailer=SendGridMailer.from_settings(settings),
    )
    logger.info(
        "service_registry_built",
        storage_bucket=settings.storage_bucket,
        identity_configured=registry.token_verifier is not None,
        clerk_admin_configured=registry.clerk_admin is not None,
        mailer_configured=registry.mailer is not None,
    )
    return registry
