"""
Bearer-token validation for every protected surface.

A token is accepted only if its signature and ``exp`` verify, its row exists
and is not revoked, the stored ``expires_at`` is in the future, the client
still exists and the owner still exists at the host. Nothing is cached, so a
revocation is visible to the very next request.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.exceptions import OAuthException, invalid_token
from gateway.common.token import JWTService
from gateway.core.config import settings
from gateway.core.db import get_session
from gateway.host.memory import get_host
from gateway.host.ports import HostAdapter
from gateway.models.entities import AccessToken, Client, ResourceOwner
from gateway.repositories.access_token_repo import get_access_token
from gateway.repositories.client_repo import get_client_by_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenContext:
    owner: ResourceOwner
    client: Client
    token: AccessToken


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Extract the credential from ``Bearer <token>``; the scheme is case-insensitive."""
    if not authorization:
        return None
    scheme, _, credential = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    credential = credential.strip()
    return credential or None


def missing_token() -> OAuthException:
    return OAuthException(
        error="invalid_token",
        description="Missing bearer token",
        status_code=401,
        headers={
            "WWW-Authenticate": (
                f'Bearer realm="{settings.ABILITY_REALM}", '
                f'resource_metadata="{settings.BASE_URL}/.well-known/oauth-protected-resource"'
            )
        },
    )


async def validate(
    db: AsyncSession,
    host: HostAdapter,
    bearer: Optional[str],
) -> TokenContext:
    if not bearer:
        raise missing_token()

    claims = JWTService().verify_access_token(bearer)

    token = await get_access_token(db, claims["jti"])
    if token is None:
        raise invalid_token("Unknown access token")
    if token.revoked:
        raise invalid_token("Access token revoked")
    if token.is_expired:
        raise invalid_token("Access token expired")

    client = await get_client_by_id(db, token.client_id)
    if client is None:
        logger.info("Rejected token %s of deleted client %s", token.identifier[:8], token.client_id)
        raise invalid_token("Client no longer exists")

    owner = host.get_user(token.user_id)
    if owner is None:
        logger.info("Rejected token %s of removed user %s", token.identifier[:8], token.user_id)
        raise invalid_token("Resource owner no longer exists")

    return TokenContext(owner=owner, client=client, token=token)

# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

async def require_token(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_session),
    host: HostAdapter = Depends(get_host),
) -> TokenContext:
    return await validate(db, host, parse_bearer(authorization))
