from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from app.core.config import Settings
from app.core.errors import UpstreamFailureError

logger = structlog.get_logger(__name__)
GATEWAY_SUCCESS_STATUS = "success"


class PaymentGatewayError(UpstreamFailureError):
    code = "E_PAYMENT_GATEWAY"


@dataclass(frozen=True, slots=True)
class GatewayCheckout:
    authorization_url: str
    access_code: str
    reference: str


@dataclass(frozen=True, slots=True)
class GatewayVerification:
    reference: str
    status: str
    amount_minor: int
    currency: str
    metadata: dict[str, Any]

    @property
    def is_success(self) -> bool:
        return self.status == GATEWAY_SUCCESS_STATUS


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / 100).quantize(Decimal("0.01"))


def _payload_data(response: httpx.Response) -> dict[str, Any]:
    body = response.json()
    if not isinstance(body, dict) or body.get("status") is not True:
        raise PaymentGatewayError("gateway rejected the request")
    data = body.get("data")
    if not isinstance(data, dict):
        raise PaymentGatewayError("gateway response has no data")
    return data


def _amount_minor(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"gateway amount is not an integer: {value!r}")
    return int(value)


class PaystackClient:
    def __init__(self, *, client: httpx.AsyncClient, secret_key: str, currency: str) -> None:
        self._client = client
        self._secret_key = secret_key
        self.currency = currency

    @classmethod
    def from_settings(cls, settings: Settings, *, client: httpx.AsyncClient | None = None) -> PaystackClient:
        http_client = client or httpx.AsyncClient(
            base_url=settings.paystack_base_url,
            timeout=settings.http_timeout_seconds,
        )
        return cls(
            client=http_client,
            secret_key=settings.paystack_secret_key,
            currency=settings.payment_currency,
        )

    @property
    def secret_key(self) -> str:
        return self._secret_key

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }

    async def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        reference: str,
        metadata: dict[str, Any],
        callback_url: str,
        cancel_url: str | None = None,
    ) -> GatewayCheckout:
        body: dict[str, Any] = {
            "email": email,
            "amount": amount_minor,
            "currency": self.currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": {**metadata, "cancel_action": cancel_url} if cancel_url else metadata,
        }
        try:
            response = await self._client.post("/transaction/initialize", json=body, headers=self._headers())
            response.raise_for_status()
            data = _payload_data(response)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("payment_gateway_initialize_failed", reference=reference, error_type=type(exc).__name__)
            raise PaymentGatewayError("payment initialization failed") from exc

        authorization_url = data.get("authorization_url")
        if not isinstance(authorization_url, str) or not authorization_url:
            raise PaymentGatewayError("gateway returned no authorization url")
        return GatewayCheckout(
            authorization_url=authorization_url,
            access_code=str(data.get("access_code") or ""),
            reference=str(data.get("reference") or reference),
        )

    async def verify(self, reference: str) -> GatewayVerification:
        try:
            response = await self._client.get(
                f"/transaction/verify/{quote(reference, safe='')}",
                headers=self._headers(),
            )
            response.raise_for_status()
            data = _payload_data(response)
            amount_minor = _amount_minor(data.get("amount"))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("payment_gateway_verify_failed", reference=reference, error_type=type(exc).__name__)
            raise PaymentGatewayError("payment verification unavailable") from exc

        metadata = data.get("metadata")
        return GatewayVerification(
            reference=str(data.get("reference") or reference),
            status=str(data.get("status") or ""),
            amount_minor=amount_minor,
            currency=str(data.get("currency") or self.currency),
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
