import logging
from typing import Any, Dict, List, Set

from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.exceptions import AbilityException
from gateway.repositories.option_repo import (
    ALLOWED_USERS,
    DISABLED_ABILITIES,
    add_option,
    get_option,
    has_option,
    update_option,
)
from gateway.services.abilities.registry import CLASSIFICATIONS, WRITE, AbilityRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enabled / disabled abilities
# ---------------------------------------------------------------------------

def default_disabled(registry: AbilityRegistry) -> List[str]:
    return [ability.name for ability in registry if ability.classification == WRITE]


async def get_disabled_abilities(db: AsyncSession, registry: AbilityRegistry) -> Set[str]:
    """
    Names the administrator has switched off.

    The first read on a fresh install persists the default: every write
    ability off, every read ability on. Concurrent first reads agree on
    whichever default was stored first. Names no longer in the catalog are
    returned as stored; they are harmless since nothing can dispatch them.
    """
    if not await has_option(db, DISABLED_ABILITIES):
        disabled = default_disabled(registry)
        if await add_option(db, DISABLED_ABILITIES, disabled):
            logger.info("Initialised ability settings with %d write abilities disabled", len(disabled))
            return set(disabled)

    return set(await get_option(db, DISABLED_ABILITIES, []) or [])


async def set_enabled(
    db: AsyncSession,
    registry: AbilityRegistry,
    name: str,
    enabled: bool,
) -> Dict[str, Any]:
    if name not in registry:
        raise AbilityException(
            error="not_found",
            message=f"Ability not found: {name}",
            status_code=404,
        )

    disabled = await get_disabled_abilities(db, registry)
    if enabled:
        disabled.discard(name)
    else:
        disabled.add(name)

    await update_option(db, DISABLED_ABILITIES, sorted(disabled))
    logger.info("Ability %s %s", name, "enabled" if enabled else "disabled")
    return {"name": name, "enabled": enabled}


async def set_group_enabled(
    db: AsyncSession,
    registry: AbilityRegistry,
    group: str,
    classification: str,
    enabled: bool,
) -> List[str]:
    """Toggle every ability of one group/classification cell, as the admin screen does."""
    if classification not in CLASSIFICATIONS:
        raise AbilityException(
            error="invalid_arguments",
            message=f"classification must be one of: {', '.join(CLASSIFICATIONS)}",
        )

    names = [
        ability.name
        for ability in registry.by_group().get(group, {}).get(classification, [])
    ]
    if not names:
        raise AbilityException(
            error="not_found",
            message=f"No {classification} abilities in group: {group}",
            status_code=404,
        )

    disabled = await get_disabled_abilities(db, registry)
    if enabled:
        disabled.difference_update(names)
    else:
        disabled.update(names)

    await update_option(db, DISABLED_ABILITIES, sorted(disabled))
    logger.info("Group %s/%s %s", group, classification, "enabled" if enabled else "disabled")
    return names


async def ability_states(db: AsyncSession, registry: AbilityRegistry) -> List[Dict[str, Any]]:
    disabled = await get_disabled_abilities(db, registry)
    return [
        {
            "name": ability.name,
            "label": ability.label,
            "group": ability.group,
            "classification": ability.classification,
            "enabled": ability.name not in disabled,
        }
        for ability in registry
    ]

# ---------------------------------------------------------------------------
# Users allowed to connect clients
# ---------------------------------------------------------------------------

async def get_allowed_users(db: AsyncSession) -> List[int]:
    return [int(user_id) for user_id in await get_option(db, ALLOWED_USERS, []) or []]


async def is_user_allowed(db: AsyncSession, user_id: int) -> bool:
    return user_id in await get_allowed_users(db)


async def allow_user(db: AsyncSession, user_id: int) -> List[int]:
    allowed = await get_allowed_users(db)
    if user_id not in allowed:
        allowed = allowed + [user_id]
        await update_option(db, ALLOWED_USERS, allowed)
        logger.info("User %s added to the allow-list", user_id)
    return allowed


async def disallow_user(db: AsyncSession, user_id: int) -> bool:
    allowed = await get_allowed_users(db)
    if user_id not in allowed:
        return False

    await update_option(db, ALLOWED_USERS, [uid for uid in allowed if uid != user_id])
    logger.info("User %s removed from the allow-list", user_id)
    return True
