from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.core.db import get_session
from gateway.host.memory import get_host
from gateway.host.ports import HostAdapter
from gateway.host.session import get_session_owner
from gateway.models.dto.auth_models import (
    AuthorizationServerMetadata,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
    HealthResponse,
    ProtectedResourceMetadata,
    TokenResponse,
)
from gateway.models.entities import ResourceOwner
from gateway.services.auth import auth_services, discovery_services, registration_services

router = APIRouter()

# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse, include_in_schema=False)
def health():
    return discovery_services.health()


@router.get(
    "/.well-known/oauth-authorization-server",
    response_model=AuthorizationServerMetadata,
)
def authorization_server_metadata():
    return discovery_services.authorization_server_metadata()


@router.get("/oauth/metadata", response_model=AuthorizationServerMetadata)
def authorization_server_metadata_alias():
    return discovery_services.authorization_server_metadata()


@router.get(
    "/.well-known/oauth-protected-resource",
    response_model=ProtectedResourceMetadata,
)
def protected_resource_metadata():
    return discovery_services.protected_resource_metadata()


@router.get("/oauth/resource", response_model=ProtectedResourceMetadata)
def protected_resource_metadata_alias():
    return discovery_services.protected_resource_metadata()

# ---------------------------------------------------------------------------
# Client registration
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=ClientRegistrationResponse,
    response_model_exclude_none=True,
    status_code=201,
)
async def register_client(
    payload: ClientRegistrationRequest,
    db: AsyncSession = Depends(get_session),
):
    return await registration_services.register_client(payload, db)

# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

@router.get("/authorize", include_in_schema=False)
async def authorize(
    request: Request,
    response_type: str = "",
    client_id: str = "",
    redirect_uri: str = "",
    state: str = "",
    scope: str = "",
    code_challenge: str = "",
    code_challenge_method: str = "",
    db: AsyncSession = Depends(get_session),
    host: HostAdapter = Depends(get_host),
    owner: Optional[ResourceOwner] = Depends(get_session_owner),
):
    return await auth_services.begin_authorization(
        request,
        db,
        host,
        owner,
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        state=state,
        scope=scope,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )


@router.post("/authorize", include_in_schema=False)
async def authorize_decision(
    handle: str = Form(""),
    approve: str = Form("no"),
    db: AsyncSession = Depends(get_session),
    host: HostAdapter = Depends(get_host),
    owner: Optional[ResourceOwner] = Depends(get_session_owner),
):
    return await auth_services.decide(db, host, owner, handle=handle, approve=approve)

# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------

@router.post("/token", response_model=TokenResponse)
async def token(
    response: Response,
    grant_type: str = Form(None),
    client_id: str = Form(None),
    client_secret: str = Form(None),
    code: str = Form(None),
    redirect_uri: str = Form(None),
    code_verifier: str = Form(None),
    refresh_token: str = Form(None),
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_session),
):
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    return await auth_services.exchange(
        db=db,
        grant_type=grant_type,
        client_id=client_id,
        client_secret=client_secret,
        code=code,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        refresh_token=refresh_token,
        authorization=authorization,
    )
