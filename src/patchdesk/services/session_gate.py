"""Session checks for protected pages and API routes."""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, Mapping
from urllib.parse import quote

from ..errors import Unauthorized
from .auth_client import Session

logger = logging.getLogger(__name__)

SessionVerifier = Callable[[Mapping[str, str]], Awaitable[Session | None]]

LOGIN_PATH = "/auth/login"

_PUBLIC_PREFIXES = ("/auth/login", "/auth/signup", "/api/")
_STATIC_PREFIXES = ("/_next/static", "/_next/image", "/favicon.ico")
_STATIC_SUFFIX_RE = re.compile(r"\.(?:svg|png|jpg|jpeg|gif|webp)$")


class SessionGate:
    def __init__(self, verify_session: SessionVerifier) -> None:
        self._verify = verify_session

    async def authorize(self, headers: Mapping[str, str]) -> Session:
        session = await self._verify(headers)
        if session is None:
            raise Unauthorized("No valid session")
        return session


def requires_session(path: str) -> bool:
    """Whether a page path is protected by the login redirect."""
    if path.startswith(_PUBLIC_PREFIXES) or path.startswith(_STATIC_PREFIXES):
        return False
    return not _STATIC_SUFFIX_RE.search(path)


def login_redirect_url(path: str) -> str:
    return f"{LOGIN_PATH}?redirect={quote(path, safe='/')}"
