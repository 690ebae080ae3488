"""Bearer credential validation against the Supabase identity service.

The relay never issues or refreshes sessions. It takes whatever token the
client presents, asks GoTrue who it belongs to, and either gets back a
live user or rejects the request before anything else happens.
"""

import logging
from dataclasses import dataclass

import httpx

from . import config
from .errors import Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The user behind a validated bearer token. Scoped to one request."""

    id: str
    email: str | None


def bearer_token(header: str | None) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` value."""
    if not header:
        raise Unauthenticated("Missing authorization header")

    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Invalid auth credentials")
    return token.strip()


class IdentityClient:
    """Resolves bearer tokens to principals via `GET /auth/v1/user`."""

    def __init__(
        self,
        base_url: str = config.SUPABASE_URL,
        api_key: str = config.SUPABASE_ANON_KEY,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=config.IDENTITY_TIMEOUT,
        )

    async def validate(self, header: str | None) -> Principal:
        """Return the principal for an Authorization header, or raise Unauthenticated."""
        token = bearer_token(header)

        try:
            response = await self._client.get(
                "/auth/v1/user",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as e:
            logger.warning(f"Identity service unreachable: {e!r}")
            raise Unauthenticated("Not authenticated") from e

        if response.status_code != 200:
            logger.warning(f"Identity service rejected token: status={response.status_code}")
            raise Unauthenticated("Not authenticated")

        try:
            user = response.json()
        except ValueError as e:
            raise Unauthenticated("Not authenticated") from e

        if not isinstance(user, dict) or not user.get("id"):
            raise Unauthenticated("Not authenticated")

        principal = Principal(id=str(user["id"]), email=user.get("email"))
        logger.info(f"Authenticated user {principal.id[:8]}")
        return principal

    async def aclose(self):
        """Close the HTTP client."""
        await self._client.aclose()
