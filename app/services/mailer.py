from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import httpx
import structlog

from app.core.config import Settings
from app.core.errors import UpstreamFailureError

logger = structlog.get_logger(__name__)


class MailDeliveryError(UpstreamFailureError):
    code = "E_MAIL_DELIVERY"


@dataclass(frozen=True, slots=True)
class MailMessage:
    to: str
    subject: str
    text: str


class SendGridMailer:
    def __init__(self, *, client: httpx.AsyncClient, api_key: str, sender: str) -> None:
        self._client = client
        self._api_key = api_key
        self.sender = sender

    @classmethod
    def from_settings(cls, settings: Settings, *, client: httpx.AsyncClient | None = None) -> SendGridMailer | None:
        if not settings.sendgrid_api_key:
            return None
        http_client = client or httpx.AsyncClient(
            base_url=settings.sendgrid_base_url,
            timeout=settings.http_timeout_seconds,
        )
        return cls(client=http_client, api_key=settings.sendgrid_api_key, sender=settings.mail_from)

    async def send(self, message: MailMessage) -> None:
        body = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self.sender},
            "subject": message.subject,
            "content": [{"type": "text/plain", "value": message.text}],
        }
        try:
            response = await self._client.post(
                "/mail/send",
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("mail_delivery_failed", subject=message.subject, error_type=type(exc).__name__)
            raise MailDeliveryError("mail delivery failed") from exc

    async def send_many(self, messages: Sequence[MailMessage]) -> None:
        for message in messages:
            await self.send(message)

    async def aclose(self) -> None:
        await self._client.aclose()
