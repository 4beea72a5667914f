from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.abilities.catalog import get_registry
from gateway.core.db import get_session
from gateway.host.memory import get_host
from gateway.host.ports import ContentHost
from gateway.models.dto.ability_models import (
    AbilityInfo,
    AbilityListResponse,
    ExecuteAbilityRequest,
    ExecuteAbilityResponse,
)
from gateway.services.abilities.dispatcher import AbilityDispatcher
from gateway.services.abilities.registry import AbilityRegistry
from gateway.services.auth.token_validator import TokenContext, require_token

router = APIRouter(prefix="/abilities", tags=["abilities"])


def get_dispatcher(
    db: AsyncSession = Depends(get_session),
    host: ContentHost = Depends(get_host),
    registry: AbilityRegistry = Depends(get_registry),
) -> AbilityDispatcher:
    return AbilityDispatcher(registry, db, host)


@router.get("", response_model=AbilityListResponse)
async def list_abilities(
    caller: TokenContext = Depends(require_token),
    dispatcher: AbilityDispatcher = Depends(get_dispatcher),
):
    return {"abilities": await dispatcher.list_enabled()}


@router.post("/execute", response_model=ExecuteAbilityResponse)
async def execute_ability(
    payload: ExecuteAbilityRequest,
    caller: TokenContext = Depends(require_token),
    dispatcher: AbilityDispatcher = Depends(get_dispatcher),
):
    result = await dispatcher.invoke(payload.ability_name, payload.arguments, caller)
    return {"result": result}


# Ability names contain a slash, hence the path converter
@router.get("/{name:path}", response_model=AbilityInfo)
async def get_ability(
    name: str,
    caller: TokenContext = Depends(require_token),
    dispatcher: AbilityDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.describe(name)
