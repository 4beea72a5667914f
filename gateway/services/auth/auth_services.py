import base64
import binascii
import logging
from typing import Optional
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import jwt
from fastapi import Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.clock import expires_in
from gateway.common.exceptions import OAuthException
from gateway.common.security import generate_code, generate_token_id, verify_pkce
from gateway.common.token import JWTService
from gateway.core.config import settings
from gateway.host.ports import HostAdapter
from gateway.models.entities import Client, ResourceOwner, Scope
from gateway.repositories.access_token_repo import (
    cleanup_expired_tokens,
    get_access_token,
    get_access_tokens_by_user,
    persist_access_token,
    revoke_access_token,
    revoke_access_tokens_by_user,
)
from gateway.repositories.auth_code_repo import (
    cleanup_expired_codes,
    consume_auth_code,
    get_auth_code,
    persist_auth_code,
)
from gateway.repositories.client_repo import get_client_by_id, get_clients_by_user, validate_client
from gateway.repositories.refresh_token_repo import (
    cleanup_expired_refresh_tokens,
    consume_refresh_token,
    get_refresh_token,
    persist_refresh_token,
    revoke_refresh_tokens_by_access_tokens,
    revoke_refresh_tokens_by_user,
)
from gateway.repositories.scope_repo import finalize_scopes, get_scope, scope_identifiers
from gateway.services.abilities.settings_services import is_user_allowed
from gateway.services.auth import pages

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/authorize"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _with_query(uri: str, params: dict) -> str:
    """Append ``params`` to ``uri`` keeping any query it already carries."""
    parts = urlsplit(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _parse_scopes(scope: Optional[str]) -> list[Scope] | None:
    requested = (scope or "").split() or [settings.DEFAULT_SCOPE]
    scopes = [get_scope(identifier) for identifier in requested]
    if any(s is None for s in scopes):
        return None
    return finalize_scopes(scopes)


def _site_name(host: HostAdapter) -> str:
    return host.site_info().get("name") or settings.APP_NAME


# ---------------------------------------------------------------------------
# Authorization endpoint
# ---------------------------------------------------------------------------

async def begin_authorization(
    request: Request,
    db: AsyncSession,
    host: HostAdapter,
    owner: Optional[ResourceOwner],
    *,
    response_type: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    scope: str,
    code_challenge: str,
    code_challenge_method: str,
):
    site_name = _site_name(host)

    # Until redirect_uri is proven to belong to the client, errors stay on this page
    if not client_id or not redirect_uri or response_type != "code":
        return pages.error_page("Invalid Request", "Missing or invalid OAuth parameters.", site_name)

    client = await get_client_by_id(db, client_id)
    if client is None:
        logger.warning("Authorization request for unknown client %s", client_id)
        return pages.error_page(
            "Unknown Application",
            "The application requesting access is not registered.",
            site_name,
        )

    if not client.allows_redirect(redirect_uri):
        logger.warning("Redirect URI %s not registered for client %s", redirect_uri, client_id)
        return pages.error_page(
            "Invalid Redirect",
            "The redirect URI is not allowed for this application.",
            site_name,
        )

    if not code_challenge:
        return pages.error_page("Invalid Request", "A PKCE code_challenge is required.", site_name)

    if code_challenge_method not in settings.CODE_CHALLENGE_METHODS_SUPPORTED:
        return pages.error_page(
            "Invalid Request",
            "Unsupported code_challenge_method; use S256.",
            site_name,
        )

    scopes = _parse_scopes(scope)
    if scopes is None:
        return pages.error_page("Invalid Scope", "The requested scope is not supported.", site_name)

    if owner is None:
        return RedirectResponse(host.login_url(str(request.url)), status_code=302)

    if not await is_user_allowed(db, owner.id):
        logger.info("User %s is not allowed to authorize clients", owner.id)
        return pages.access_denied_page(owner.display_name or owner.login, site_name)

    handle = JWTService().encode(
        {
            "sub": str(owner.id),
            "client_id": client.identifier,
            "redirect_uri": redirect_uri,
            "state": state or "",
            "scope": " ".join(scope_identifiers(scopes)),
            "code_challenge": code_challenge,
            "code_challenge_method": code_challenge_method,
        },
        token_type=JWTService.CONSENT,
        ttl_seconds=settings.CONSENT_TTL,
    )

    return pages.consent_page(
        client_name=client.name,
        display_name=owner.display_name or owner.login,
        site_name=site_name,
        handle=handle,
        action=AUTHORIZE_PATH,
    )


async def decide(
    db: AsyncSession,
    host: HostAdapter,
    owner: Optional[ResourceOwner],
    *,
    handle: str,
    approve: str,
):
    site_name = _site_name(host)

    try:
        request_data = JWTService().decode(handle, expected_type=JWTService.CONSENT)
    except jwt.ExpiredSignatureError:
        return pages.error_page(
            "Request Expired",
            "This authorization request has expired. Start the connection again from your application.",
            site_name,
        )
    except jwt.InvalidTokenError:
        logger.warning("Rejected forged or malformed consent handle")
        return pages.error_page("Invalid Request", "The authorization request is not valid.", site_name)

    if owner is None:
        authorize_url = _with_query(
            f"{settings.BASE_URL}{AUTHORIZE_PATH}",
            {
                "response_type": "code",
                "client_id": request_data["client_id"],
                "redirect_uri": request_data["redirect_uri"],
                "state": request_data["state"],
                "scope": request_data["scope"],
                "code_challenge": request_data["code_challenge"],
                "code_challenge_method": request_data["code_challenge_method"],
            },
        )
        return RedirectResponse(host.login_url(authorize_url), status_code=302)

    if str(owner.id) != request_data.get("sub"):
        logger.warning("Consent decision by user %s on a request issued to %s", owner.id, request_data.get("sub"))
        return pages.error_page(
            "Invalid Request",
            "This authorization request belongs to another user.",
            site_name,
            status_code=403,
        )

    if not await is_user_allowed(db, owner.id):
        return pages.access_denied_page(owner.display_name or owner.login, site_name)

    client = await get_client_by_id(db, request_data["client_id"])
    redirect_uri = request_data["redirect_uri"]
    if client is None or not client.allows_redirect(redirect_uri):
        return pages.error_page(
            "Unknown Application",
            "The application requesting access is no longer registered.",
            site_name,
        )

    state = request_data.get("state", "")

    if approve != "yes":
        logger.info("User %s denied access to client %s", owner.id, client.identifier)
        return RedirectResponse(
            _with_query(
                redirect_uri,
                {
                    "error": "access_denied",
                    "error_description": "The user denied the authorization request.",
                    "state": state,
                },
            ),
            status_code=302,
        )

    code = await persist_auth_code(
        db,
        code_id=generate_code(),
        client_id=client.identifier,
        user_id=owner.id,
        scopes=[Scope(identifier=s) for s in request_data["scope"].split()],
        redirect_uri=redirect_uri,
        code_challenge=request_data["code_challenge"],
        code_challenge_method=request_data["code_challenge_method"],
        expires_at=expires_in(settings.AUTH_CODE_TTL),
    )

    logger.info("Issued authorization code to client %s for user %s", client.identifier, owner.id)

    return RedirectResponse(
        _with_query(redirect_uri, {"code": code.identifier, "state": state}),
        status_code=302,
    )

# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------

def parse_basic_auth(authorization: Optional[str]) -> tuple[str, str] | None:
    """Decode ``client_secret_basic`` credentials; ``None`` when absent or not Basic."""
    if not authorization:
        return None

    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "basic" or not value:
        return None

    try:
        decoded = base64.b64decode(value.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise OAuthException(
            error="invalid_client",
            description="Malformed HTTP Basic credentials",
            status_code=401,
            headers={"WWW-Authenticate": 'Basic realm="oauth"'},
        )

    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        raise OAuthException(
            error="invalid_client",
            description="Malformed HTTP Basic credentials",
            status_code=401,
            headers={"WWW-Authenticate": 'Basic realm="oauth"'},
        )
    return unquote(client_id), unquote(client_secret)


async def _authenticate_client(
    db: AsyncSession,
    client_id: Optional[str],
    client_secret: Optional[str],
    authorization: Optional[str],
) -> Client:
    basic = parse_basic_auth(authorization)
    challenge = {"WWW-Authenticate": 'Basic realm="oauth"'} if basic else {}

    if basic:
        if client_id and client_id != basic[0]:
            raise OAuthException(
                error="invalid_request",
                description="client_id does not match the Authorization header",
            )
        client_id, client_secret = basic

    if not client_id:
        raise OAuthException(
            error="invalid_request",
            description="Missing client_id",
        )

    client = await get_client_by_id(db, client_id)
    if client is None:
        logger.warning("Token request from unknown client %s", client_id)
        raise OAuthException(
            error="invalid_client",
            description="Client authentication failed",
            status_code=401,
            headers=challenge,
        )

    if client.is_confidential and await validate_client(db, client_id, client_secret) is None:
        logger.warning("Client %s failed secret authentication", client_id)
        raise OAuthException(
            error="invalid_client",
            description="Client authentication failed",
            status_code=401,
            headers=challenge,
        )

    return client


async def _issue_token_pair(
    db: AsyncSession,
    client_id: str,
    user_id: int,
    scopes: list[Scope],
) -> dict:
    """Persist a fresh access/refresh pair and commit the surrounding unit of work."""
    access_token_id = generate_token_id()
    refresh_token_id = generate_token_id()

    await persist_access_token(
        db,
        token_id=access_token_id,
        client_id=client_id,
        user_id=user_id,
        scopes=scopes,
        expires_at=expires_in(settings.ACCESS_TOKEN_TTL),
        commit=False,
    )
    await persist_refresh_token(
        db,
        token_id=refresh_token_id,
        access_token_id=access_token_id,
        client_id=client_id,
        user_id=user_id,
        scopes=scopes,
        expires_at=expires_in(settings.REFRESH_TOKEN_TTL),
        commit=False,
    )
    await db.commit()

    jwt_service = JWTService()
    scope_names = scope_identifiers(scopes)

    return {
        "access_token": jwt_service.generate_access_token(
            access_token_id,
            client_id,
            user_id,
            scope_names,
        ),
        "token_type": "Bearer",
        "expires_in": settings.ACCESS_TOKEN_TTL,
        "refresh_token": jwt_service.generate_refresh_token(refresh_token_id, client_id),
        "scope": " ".join(scope_names),
    }


async def exchange(
    db: AsyncSession,
    grant_type: Optional[str],
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    code: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    code_verifier: Optional[str] = None,
    refresh_token: Optional[str] = None,
    authorization: Optional[str] = None,
):
    if not grant_type:
        raise OAuthException(
            error="invalid_request",
            description="Missing grant_type",
        )

    if grant_type not in settings.GRANT_TYPES_SUPPORTED:
        raise OAuthException(
            error="unsupported_grant_type",
            description=f"Unsupported grant_type: {grant_type}",
        )

    client = await _authenticate_client(db, client_id, client_secret, authorization)

    if grant_type == "authorization_code":
        return await _code_grant(db, client, code, redirect_uri, code_verifier)
    return await _refresh_grant(db, client, refresh_token)

# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------

async def _code_grant(
    db: AsyncSession,
    client: Client,
    code: Optional[str],
    redirect_uri: Optional[str],
    code_verifier: Optional[str],
):
    if not code or not code_verifier or not redirect_uri:
        raise OAuthException(
            error="invalid_request",
            description="Missing required parameters: code, redirect_uri and code_verifier",
        )

    auth_code = await get_auth_code(db, code)
    if auth_code is None or auth_code.revoked or auth_code.is_expired:
        if auth_code is not None and auth_code.revoked:
            logger.warning("Replay of authorization code for client %s", client.identifier)
        raise OAuthException(
            error="invalid_grant",
            description="Invalid, expired or already used authorization code",
        )

    if auth_code.client_id != client.identifier:
        raise OAuthException(
            error="invalid_grant",
            description="Authorization code was issued to another client",
        )

    if auth_code.redirect_uri != redirect_uri:
        raise OAuthException(
            error="invalid_grant",
            description="redirect_uri mismatch",
        )

    if not verify_pkce(code_verifier, auth_code.code_challenge):
        logger.warning("PKCE verification failed for client %s", client.identifier)
        raise OAuthException(
            error="invalid_grant",
            description="Code verifier does not match the code challenge",
        )

    if not await consume_auth_code(db, auth_code.identifier, commit=False):
        await db.rollback()
        raise OAuthException(
            error="invalid_grant",
            description="Invalid, expired or already used authorization code",
        )

    tokens = await _issue_token_pair(db, client.identifier, auth_code.user_id, auth_code.scopes)
    logger.info("Issued tokens to client %s for user %s", client.identifier, auth_code.user_id)
    return tokens


async def _refresh_grant(
    db: AsyncSession,
    client: Client,
    refresh_token: Optional[str],
):
    if not refresh_token:
        raise OAuthException(
            error="invalid_request",
            description="Missing refresh_token",
        )

    invalid = OAuthException(
        error="invalid_grant",
        description="Invalid, expired or revoked refresh_token",
    )

    try:
        token_data = JWTService().verify_refresh_token(refresh_token)
    except jwt.InvalidTokenError:
        raise invalid

    if token_data.get("client_id") != client.identifier:
        raise OAuthException(
            error="invalid_grant",
            description="refresh_token was issued to another client",
        )

    stored = await get_refresh_token(db, token_data.get("jti", ""))
    if stored is None or stored.revoked or stored.is_expired:
        if stored is not None and stored.revoked:
            logger.warning("Replay of refresh token for client %s", client.identifier)
        raise invalid

    if stored.client_id != client.identifier:
        raise invalid

    if not await consume_refresh_token(db, stored.identifier, commit=False):
        await db.rollback()
        raise invalid

    # no-op when cleanup already removed the old access token
    await revoke_access_token(db, stored.access_token_id, commit=False)

    tokens = await _issue_token_pair(db, client.identifier, stored.user_id, stored.scopes)
    logger.info("Rotated tokens of client %s for user %s", client.identifier, stored.user_id)
    return tokens

# ---------------------------------------------------------------------------
# Revocation and housekeeping
# ---------------------------------------------------------------------------

async def revoke_user_tokens(db: AsyncSession, user_id: int) -> int:
    revoked = await revoke_access_tokens_by_user(db, user_id, commit=False)
    await revoke_refresh_tokens_by_user(db, user_id, commit=False)
    await db.commit()

    logger.info("Revoked %d token(s) of user %s", revoked, user_id)
    return revoked


async def revoke_connection(db: AsyncSession, token_id: str) -> bool:
    token = await get_access_token(db, token_id)
    if token is None:
        return False

    await revoke_access_token(db, token_id, commit=False)
    await revoke_refresh_tokens_by_access_tokens(db, [token_id], commit=False)
    await db.commit()

    logger.info("Revoked connection %s of user %s", token_id[:8], token.user_id)
    return True


async def list_connections(db: AsyncSession, user_id: Optional[int] = None) -> list[dict]:
    tokens = await get_access_tokens_by_user(db, user_id)
    names = {client.identifier: client.name for client in await get_clients_by_user(db)}

    return [
        {
            "token_id": token.identifier,
            "client_id": token.client_id,
            "client_name": names.get(token.client_id),
            "user_id": token.user_id,
            "scopes": scope_identifiers(token.scopes),
            "created_at": token.created_at.isoformat() if token.created_at else None,
            "expires_at": token.expires_at.isoformat(),
            "revoked": token.revoked,
            "expired": token.is_expired,
        }
        for token in tokens
    ]


async def cleanup_expired(db: AsyncSession) -> dict:
    removed = {
        "auth_codes": await cleanup_expired_codes(db),
        "access_tokens": await cleanup_expired_tokens(db),
        "refresh_tokens": await cleanup_expired_refresh_tokens(db),
    }
    logger.info("Removed expired rows: %s", removed)
    return removed
