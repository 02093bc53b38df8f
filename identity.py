from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol
from uuid import uuid4

import httpx

from errors import AuthenticationError, DownstreamUnavailableError

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str = "user"
    token: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


@dataclass(frozen=True)
class RequestContext:
    """Per-request state handed explicitly to every service call."""

    identity: Identity
    request_id: str = field(default_factory=lambda: uuid4().hex)


class IdentityResolver(Protocol):
    def resolve(self, token: str) -> Identity: ...


class HttpIdentityResolver:
    """Resolves a bearer token through the auth service's /api/me endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    def resolve(self, token: str) -> Identity:
        try:
            response = self._client.get(
                f"{self.base_url}/api/me",
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Auth service request failed: %s", exc)
            raise DownstreamUnavailableError("Auth service is unreachable.") from exc

        if response.status_code in (401, 403):
            raise AuthenticationError()
        if response.status_code != 200:
            logger.warning("Auth service answered %s", response.status_code)
            raise DownstreamUnavailableError("Auth service returned an unexpected response.")

        try:
            user = response.json()
            user_id = user["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError() from exc

        roles = user.get("roles") or []
        names = {r.get("name") if isinstance(r, dict) else r for r in roles}
        role = ADMIN_ROLE if ADMIN_ROLE in names or user.get("role") == ADMIN_ROLE else "user"
        return Identity(user_id=str(user_id), role=role, token=token)

    def close(self) -> None:
        self._client.close()


class StaticIdentityResolver:
    """Fixed token table, for local runs and tests."""

    def __init__(self, tokens: Dict[str, Identity]) -> None:
        self._tokens = dict(tokens)

    def resolve(self, token: str) -> Identity:
        identity = self._tokens.get(token)
        if identity is None:
            raise AuthenticationError()
        return Identity(user_id=identity.user_id, role=identity.role, token=token)
