"""HTTP client for the external authentication provider."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

import httpx

from ..config import AuthConfig

logger = logging.getLogger(__name__)

_FORWARDED_HEADERS = ("cookie", "authorization")


@dataclass(frozen=True)
class Session:
    user_id: str
    email: str = ""
    name: str = ""
    expires_at: str | None = None


@dataclass(frozen=True)
class SignUpOk:
    user: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SignUpErr:
    reason: str


SignUpResult = Union[SignUpOk, SignUpErr]


def parse_session(payload: Any) -> Session | None:
    """Build a Session from a ``get-session`` response body, or None."""
    if not isinstance(payload, dict):
        return None
    user = payload.get("user")
    if not isinstance(user, dict) or not user.get("id"):
        return None
    session = payload.get("session") if isinstance(payload.get("session"), dict) else {}
    return Session(
        user_id=str(user["id"]),
        email=str(user.get("email") or ""),
        name=str(user.get("name") or ""),
        expires_at=session.get("expiresAt"),
    )


class AuthClient:
    def __init__(self, config: AuthConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http_client or httpx.AsyncClient(base_url=config.base_url, timeout=config.timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_session(self, headers: Mapping[str, str]) -> Session | None:
        """Resolve the session attached to ``headers``. Fails closed."""
        forwarded = {k: headers[k] for k in _FORWARDED_HEADERS if headers.get(k)}
        if not forwarded:
            return None
        try:
            resp = await self._http.get("/api/auth/get-session", headers=forwarded)
        except httpx.HTTPError as e:
            logger.warning("Session lookup failed: %s", type(e).__name__)
            return None
        if resp.status_code != 200:
            return None
        try:
            return parse_session(resp.json())
        except ValueError:
            logger.warning("Session lookup returned a non-JSON body")
            return None

    async def sign_up_email(self, email: str, password: str, name: str) -> SignUpResult:
        try:
            resp = await self._http.post(
                "/api/auth/sign-up/email",
                json={"email": email, "password": password, "name": name},
            )
        except httpx.HTTPError as e:
            logger.warning("Sign up request failed: %s", type(e).__name__)
            return SignUpErr(reason="Authentication service unavailable")

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.is_success:
            return SignUpOk(user=body.get("user") or {})
        reason = body.get("message") or "Sign up failed"
        logger.info("Sign up rejected by auth provider (HTTP %d)", resp.status_code)
        return SignUpErr(reason=str(reason))
