from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.abilities.catalog import get_registry
from gateway.common.exceptions import AppException
from gateway.core.db import get_session
from gateway.host.memory import get_host
from gateway.host.ports import HostAdapter
from gateway.host.session import get_session_owner
from gateway.models.dto.ability_models import (
    AbilityState,
    AbilityToggleRequest,
    AllowedUserRequest,
    GroupToggleRequest,
)
from gateway.models.dto.auth_models import (
    ClientProvisionRequest,
    ClientSecretResponse,
    ConnectionResponse,
)
from gateway.models.entities import ResourceOwner
from gateway.services.abilities import settings_services
from gateway.services.abilities.registry import AbilityRegistry
from gateway.services.auth import auth_services, registration_services

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin(
    owner: Optional[ResourceOwner] = Depends(get_session_owner),
    host: HostAdapter = Depends(get_host),
) -> ResourceOwner:
    if owner is None:
        raise AppException(message="Authentication required", status_code=401)
    if not host.can(owner.id, "manage_options"):
        raise AppException(message="You are not allowed to manage this site", status_code=403)
    return owner

# ---------------------------------------------------------------------------
# Abilities
# ---------------------------------------------------------------------------

@router.get("/abilities", response_model=List[AbilityState])
async def ability_states(
    admin: ResourceOwner = Depends(require_admin),
    registry: AbilityRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_session),
):
    return await settings_services.ability_states(db, registry)


@router.put("/abilities/groups")
async def toggle_group(
    payload: GroupToggleRequest,
    admin: ResourceOwner = Depends(require_admin),
    registry: AbilityRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_session),
):
    names = await settings_services.set_group_enabled(
        db, registry, payload.group, payload.classification, payload.enabled
    )
    return {"abilities": names, "enabled": payload.enabled}


@router.put("/abilities/{name:path}")
async def toggle_ability(
    name: str,
    payload: AbilityToggleRequest,
    admin: ResourceOwner = Depends(require_admin),
    registry: AbilityRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_session),
):
    return await settings_services.set_enabled(db, registry, name, payload.enabled)

# ---------------------------------------------------------------------------
# Allowed users
# ---------------------------------------------------------------------------

@router.get("/allowed-users")
async def allowed_users(
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return {"allowed_users": await settings_services.get_allowed_users(db)}


@router.post("/allowed-users")
async def add_allowed_user(
    payload: AllowedUserRequest,
    admin: ResourceOwner = Depends(require_admin),
    host: HostAdapter = Depends(get_host),
    db: AsyncSession = Depends(get_session),
):
    if host.get_user(payload.user_id) is None:
        raise AppException(message="Unknown user", status_code=404)
    return {"allowed_users": await settings_services.allow_user(db, payload.user_id)}


@router.delete("/allowed-users/{user_id}")
async def remove_allowed_user(
    user_id: int,
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    if not await settings_services.disallow_user(db, user_id):
        raise AppException(message="User is not on the allow-list", status_code=404)

    revoked = await auth_services.revoke_user_tokens(db, user_id)
    return {"status": True, "revoked_tokens": revoked}

# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

@router.get("/connections", response_model=List[ConnectionResponse])
async def connections(
    user_id: Optional[int] = None,
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await auth_services.list_connections(db, user_id)


@router.delete("/connections/{token_id}")
async def revoke_connection(
    token_id: str,
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    if not await auth_services.revoke_connection(db, token_id):
        raise AppException(message="Unknown connection", status_code=404)
    return {"status": True, "message": "Connection revoked"}


@router.post("/cleanup")
async def cleanup(
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return {"removed": await auth_services.cleanup_expired(db)}

# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

@router.post("/clients", status_code=201)
async def provision_client(
    payload: ClientProvisionRequest,
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await registration_services.provision_client(payload, admin.id, db)


@router.post("/clients/{client_id}/rotate-secret", response_model=ClientSecretResponse)
async def rotate_client_secret(
    client_id: str,
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await registration_services.rotate_secret(client_id, db)


@router.delete("/clients/{client_id}")
async def delete_client(
    client_id: str,
    admin: ResourceOwner = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await registration_services.remove_client(client_id, db)
