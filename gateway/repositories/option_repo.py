from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.models.persistance.options import Option

DISABLED_ABILITIES = "disabled_abilities"
ALLOWED_USERS = "allowed_users"

_MISSING = object()


async def get_option(
    db: AsyncSession,
    name: str,
    default: Any = None,
) -> Any:
    result = await db.execute(select(Option).where(Option.name == name))
    row = result.scalar_one_or_none()
    if row is None:
        return default
    return row.value


async def has_option(db: AsyncSession, name: str) -> bool:
    return await get_option(db, name, _MISSING) is not _MISSING


async def add_option(
    db: AsyncSession,
    name: str,
    value: Any,
) -> bool:
    """Insert ``name`` unless it exists; ``False`` when another writer got there first."""
    db.add(Option(name=name, value=value))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False
    return True


async def update_option(
    db: AsyncSession,
    name: str,
    value: Any,
) -> None:
    row = await db.get(Option, name)
    if row is None:
        if await add_option(db, name, value):
            return
        row = await db.get(Option, name)
    row.value = value
    await db.commit()
