from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
import jwt
import structlog

from app.core.config import Settings
from app.core.errors import AuthenticationRequiredError, UpstreamFailureError

logger = structlog.get_logger(__name__)
ROLE_ADMIN = "admin"
ROLE_USER = "user"
VALID_ROLES = (ROLE_USER, ROLE_ADMIN)


class IdentityProviderError(UpstreamFailureError):
    code = "E_IDENTITY_PROVIDER"


@dataclass(frozen=True, slots=True)
class Identity:
    subject: str
    role: str = ROLE_USER
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else (self.email or self.subject)


def _role_from_claims(claims: dict[str, Any]) -> str:
    candidates: list[object] = [claims.get("role")]
    for container_key in ("metadata", "public_metadata", "publicMetadata"):
        container = claims.get(container_key)
        if isinstance(container, dict):
            candidates.append(container.get("role"))
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip().lower() in VALID_ROLES:
            return candidate.strip().lower()
    return ROLE_USER


def _optional_str(value: object) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None


def identity_from_claims(claims: dict[str, Any]) -> Identity:
    subject = _optional_str(claims.get("sub"))
    if subject is None:
        raise AuthenticationRequiredError("token has no subject")
    return Identity(
        subject=subject,
        role=_role_from_claims(claims),
        email=_optional_str(claims.get("email")),
        first_name=_optional_str(claims.get("first_name") or claims.get("given_name")),
        last_name=_optional_str(claims.get("last_name") or claims.get("family_name")),
    )


class ClerkTokenVerifier:
    """Verifies Clerk session tokens against the instance JWKS or a pinned PEM key."""

    def __init__(
        self,
        *,
        algorithms: list[str],
        static_key: str | None = None,
        jwks_client: jwt.PyJWKClient | None = None,
        issuer: str | None = None,
    ) -> None:
        if static_key is None and jwks_client is None:
            raise ValueError("either static_key or jwks_client is required")
        self._algorithms = algorithms
        self._static_key = static_key
        self._jwks_client = jwks_client
        self._issuer = issuer

    @classmethod
    def from_settings(cls, settings: Settings) -> ClerkTokenVerifier | None:
        algorithms = [item.strip() for item in settings.clerk_jwt_algorithms.split(",") if item.strip()]
        if settings.clerk_jwt_key:
            return cls(algorithms=algorithms, static_key=settings.clerk_jwt_key, issuer=settings.clerk_issuer)
        if settings.clerk_jwks_url:
            return cls(
                algorithms=algorithms,
                jwks_client=jwt.PyJWKClient(settings.clerk_jwks_url, cache_keys=True),
                issuer=settings.clerk_issuer,
            )
        logger.warning("identity_verifier_not_configured")
        return None

    async def _signing_key(self, token: str) -> Any:
        if self._static_key is not None:
            return self._static_key
        assert self._jwks_client is not None
        signing_key = await asyncio.to_thread(self._jwks_client.get_signing_key_from_jwt, token)
        return signing_key.key

    async def verify(self, token: str) -> Identity:
        try:
            key = await self._signing_key(token)
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                issuer=self._issuer,
                options={"require": ["sub", "exp"], "verify_aud": False},
            )
        except jwt.PyJWTError as exc:
            logger.info("identity_token_rejected", error_type=type(exc).__name__)
            raise AuthenticationRequiredError("invalid session token") from exc
        return identity_from_claims(claims)


class ClerkAdminClient:
    def __init__(self, *, client: httpx.AsyncClient, secret_key: str) -> None:
        self._client = client
        self._secret_key = secret_key

    @classmethod
    def from_settings(cls, settings: Settings, *, client: httpx.AsyncClient | None = None) -> ClerkAdminClient | None:
        if not settings.clerk_secret_key:
            return None
        http_client = client or httpx.AsyncClient(
            base_url=settings.clerk_api_base_url,
            timeout=settings.http_timeout_seconds,
        )
        return cls(client=http_client, secret_key=settings.clerk_secret_key)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._secret_key}"}

    async def get_user(self, user_id: str) -> Identity | None:
        try:
            response = await self._client.get(f"/users/{quote(user_id, safe='')}", headers=self._headers())
            if response.status_code == 404:
                return None
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityProviderError("identity provider lookup failed") from exc

        email: str | None = None
        primary_id = body.get("primary_email_address_id")
        for address in body.get("email_addresses") or []:
            if not isinstance(address, dict):
                continue
            if email is None or address.get("id") == primary_id:
                email = _optional_str(address.get("email_address"))
        return Identity(
            subject=user_id,
            role=_role_from_claims({"public_metadata": body.get("public_metadata") or {}}),
            email=email,
            first_name=_optional_str(body.get("first_name")),
            last_name=_optional_str(body.get("last_name")),
        )

    async def update_role(self, user_id: str, role: str) -> None:
        if role not in VALID_ROLES:
            raise ValueError(f"unsupported role {role!r}")
        try:
            response = await self._client.patch(
                f"/users/{quote(user_id, safe='')}/metadata",
                json={"public_metadata": {"role": role}},
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IdentityProviderError("identity provider role update failed") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
