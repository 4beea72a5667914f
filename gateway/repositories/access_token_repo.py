from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.clock import utc_now
from gateway.models.entities import AccessToken, Scope
from gateway.models.persistance.auth import AccessToken as AccessTokenRow
from gateway.repositories.scope_repo import scope_identifiers


def hydrate_access_token(row: AccessTokenRow) -> AccessToken:
    return AccessToken(
        identifier=row.token_id,
        client_id=row.client_id,
        user_id=row.user_id,
        scopes=[Scope(identifier=s) for s in row.scopes or []],
        expires_at=row.expires_at,
        revoked=row.revoked,
        created_at=row.created_at,
    )


async def persist_access_token(
    db: AsyncSession,
    *,
    token_id: str,
    client_id: str,
    user_id: int,
    scopes: list[Scope],
    expires_at: datetime,
    commit: bool = True,
) -> AccessToken:
    row = AccessTokenRow(
        token_id=token_id,
        client_id=client_id,
        user_id=user_id,
        scopes=scope_identifiers(scopes),
        revoked=False,
        expires_at=expires_at,
        created_at=utc_now(),
    )
    db.add(row)
    if commit:
        await db.commit()
    else:
        await db.flush()
    return hydrate_access_token(row)


async def get_access_token(
    db: AsyncSession,
    token_id: str,
) -> AccessToken | None:
    result = await db.execute(select(AccessTokenRow).where(AccessTokenRow.token_id == token_id))
    row = result.scalar_one_or_none()
    return hydrate_access_token(row) if row else None


async def revoke_access_token(
    db: AsyncSession,
    token_id: str,
    *,
    commit: bool = True,
) -> bool:
    stmt = (
        update(AccessTokenRow)
        .where(AccessTokenRow.token_id == token_id, AccessTokenRow.revoked.is_(False))
        .values(revoked=True)
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount == 1


async def get_access_tokens_by_user(
    db: AsyncSession,
    user_id: int | None = None,
) -> list[AccessToken]:
    """Newest first, revoked and expired rows included."""
    stmt = select(AccessTokenRow).order_by(AccessTokenRow.created_at.desc())
    if user_id is not None:
        stmt = stmt.where(AccessTokenRow.user_id == user_id)
    result = await db.execute(stmt)
    return [hydrate_access_token(row) for row in result.scalars().all()]


async def revoke_access_tokens_by_user(
    db: AsyncSession,
    user_id: int,
    *,
    commit: bool = True,
) -> int:
    """Revoke every live token of ``user_id``; returns how many changed."""
    result = await db.execute(
        update(AccessTokenRow)
        .where(AccessTokenRow.user_id == user_id, AccessTokenRow.revoked.is_(False))
        .values(revoked=True)
    )
    if commit:
        await db.commit()
    return result.rowcount


async def revoke_access_tokens_by_client(
    db: AsyncSession,
    client_id: str,
    *,
    commit: bool = True,
) -> int:
    result = await db.execute(
        update(AccessTokenRow)
        .where(AccessTokenRow.client_id == client_id, AccessTokenRow.revoked.is_(False))
        .values(revoked=True)
    )
    if commit:
        await db.commit()
    return result.rowcount


async def cleanup_expired_tokens(db: AsyncSession) -> int:
    result = await db.execute(
        delete(AccessTokenRow).where(AccessTokenRow.expires_at < utc_now())
    )
    await db.commit()
    return result.rowcount
