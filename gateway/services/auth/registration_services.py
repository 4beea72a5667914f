import calendar
import logging
from typing import List, Optional
from urllib.parse import urlsplit

from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.exceptions import AppException, OAuthException
from gateway.core.config import settings
from gateway.models.dto.auth_models import (
    ClientProvisionRequest,
    ClientRegistrationRequest,
)
from gateway.repositories.access_token_repo import revoke_access_tokens_by_client
from gateway.repositories.client_repo import (
    create_client,
    delete_client,
    rotate_client_secret,
)
from gateway.repositories.refresh_token_repo import revoke_refresh_tokens_by_client

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


# ---------------------------------------------------------------------------
# Redirect URI rules
# ---------------------------------------------------------------------------

def validate_redirect_uri(uri: str) -> None:
    """https anywhere, plain http only on loopback; always a host, never a fragment."""
    try:
        parts = urlsplit(uri)
        hostname = parts.hostname
    except ValueError:
        hostname = None
        parts = None

    if parts is None or not hostname:
        raise OAuthException(
            error="invalid_redirect_uri",
            description=f"Redirect URI must include a host: {uri}",
        )

    if parts.fragment or uri.endswith("#"):
        raise OAuthException(
            error="invalid_redirect_uri",
            description=f"Redirect URI must not contain a fragment: {uri}",
        )

    if parts.scheme == "https":
        return
    if parts.scheme == "http" and hostname in LOOPBACK_HOSTS:
        return

    raise OAuthException(
        error="invalid_redirect_uri",
        description=f"Redirect URI must use https or a loopback host: {uri}",
    )


def _clean_redirect_uris(redirect_uris: Optional[List[str]]) -> List[str]:
    uris = [uri.strip() for uri in redirect_uris or [] if uri and uri.strip()]
    for uri in uris:
        validate_redirect_uri(uri)
    return uris


# ---------------------------------------------------------------------------
# Dynamic registration
# ---------------------------------------------------------------------------

async def register_client(
    payload: ClientRegistrationRequest,
    db: AsyncSession,
):
    redirect_uris = _clean_redirect_uris(payload.redirect_uris)
    client_name = (payload.client_name or "").strip() or settings.DEFAULT_CLIENT_NAME

    client, client_secret = await create_client(
        db,
        name=client_name,
        redirect_uris=redirect_uris,
        is_confidential=True,
    )

    logger.info(
        "Registered client %s (%s), %s",
        client.identifier,
        client.name,
        "wildcard redirect" if client.is_wildcard else f"{len(redirect_uris)} redirect URI(s)",
    )

    response = {
        "client_id": client.identifier,
        "client_secret": client_secret,
        "client_id_issued_at": calendar.timegm(client.created_at.utctimetuple()),
        "client_name": client.name,
        "token_endpoint_auth_method": settings.REGISTRATION_AUTH_METHOD,
    }
    if redirect_uris:
        response["redirect_uris"] = redirect_uris
    return response


# ---------------------------------------------------------------------------
# Manual provisioning
# ---------------------------------------------------------------------------

async def provision_client(
    payload: ClientProvisionRequest,
    owner_id: int,
    db: AsyncSession,
):
    redirect_uris = _clean_redirect_uris(payload.redirect_uris)
    client, client_secret = await create_client(
        db,
        name=(payload.client_name or "").strip() or settings.DEFAULT_CLIENT_NAME,
        redirect_uris=redirect_uris,
        is_confidential=payload.confidential,
        user_id=owner_id,
    )

    logger.info("Provisioned client %s for user %s", client.identifier, owner_id)

    return {
        "client_id": client.identifier,
        "client_secret": client_secret,
        "client_name": client.name,
        "redirect_uris": client.redirect_uris,
        "is_confidential": client.is_confidential,
    }


async def rotate_secret(client_id: str, db: AsyncSession):
    client_secret = await rotate_client_secret(db, client_id)
    if client_secret is None:
        raise AppException(
            message="Unknown or public client",
            status_code=404,
        )

    logger.info("Rotated secret of client %s", client_id)
    return {"client_id": client_id, "client_secret": client_secret}


async def remove_client(client_id: str, db: AsyncSession):
    revoked = await revoke_access_tokens_by_client(db, client_id, commit=False)
    await revoke_refresh_tokens_by_client(db, client_id, commit=False)

    if not await delete_client(db, client_id):
        raise AppException(message="Unknown client", status_code=404)

    logger.info("Deleted client %s and revoked %d token(s)", client_id, revoked)
    return {"status": True, "message": "Client deleted"}
