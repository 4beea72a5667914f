from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.clock import utc_now
from gateway.models.entities import RefreshToken, Scope
from gateway.models.persistance.auth import RefreshToken as RefreshTokenRow
from gateway.repositories.scope_repo import scope_identifiers


def hydrate_refresh_token(row: RefreshTokenRow) -> RefreshToken:
    return RefreshToken(
        identifier=row.token_id,
        access_token_id=row.access_token_id,
        client_id=row.client_id,
        user_id=row.user_id,
        scopes=[Scope(identifier=s) for s in row.scopes or []],
        expires_at=row.expires_at,
        revoked=row.revoked,
    )


async def persist_refresh_token(
    db: AsyncSession,
    *,
    token_id: str,
    access_token_id: str,
    client_id: str,
    user_id: int,
    scopes: list[Scope],
    expires_at: datetime,
    commit: bool = True,
) -> RefreshToken:
    row = RefreshTokenRow(
        token_id=token_id,
        access_token_id=access_token_id,
        client_id=client_id,
        user_id=user_id,
        scopes=scope_identifiers(scopes),
        revoked=False,
        expires_at=expires_at,
    )
    db.add(row)
    if commit:
        await db.commit()
    else:
        await db.flush()
    return hydrate_refresh_token(row)


async def get_refresh_token(
    db: AsyncSession,
    token_id: str,
) -> RefreshToken | None:
    result = await db.execute(select(RefreshTokenRow).where(RefreshTokenRow.token_id == token_id))
    row = result.scalar_one_or_none()
    return hydrate_refresh_token(row) if row else None


async def consume_refresh_token(
    db: AsyncSession,
    token_id: str,
    *,
    commit: bool = True,
) -> bool:
    """Conditional revoke; ``True`` for exactly one concurrent caller."""
    stmt = (
        update(RefreshTokenRow)
        .where(RefreshTokenRow.token_id == token_id, RefreshTokenRow.revoked.is_(False))
        .values(revoked=True)
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount == 1


async def _revoke_where(db: AsyncSession, *criteria, commit: bool) -> int:
    result = await db.execute(
        update(RefreshTokenRow)
        .where(*criteria, RefreshTokenRow.revoked.is_(False))
        .values(revoked=True)
    )
    if commit:
        await db.commit()
    return result.rowcount


async def revoke_refresh_tokens_by_access_tokens(
    db: AsyncSession,
    access_token_ids: Sequence[str],
    *,
    commit: bool = True,
) -> int:
    if not access_token_ids:
        return 0
    return await _revoke_where(
        db, RefreshTokenRow.access_token_id.in_(list(access_token_ids)), commit=commit
    )


async def revoke_refresh_tokens_by_user(
    db: AsyncSession,
    user_id: int,
    *,
    commit: bool = True,
) -> int:
    return await _revoke_where(db, RefreshTokenRow.user_id == user_id, commit=commit)


async def revoke_refresh_tokens_by_client(
    db: AsyncSession,
    client_id: str,
    *,
    commit: bool = True,
) -> int:
    return await _revoke_where(db, RefreshTokenRow.client_id == client_id, commit=commit)


async def cleanup_expired_refresh_tokens(db: AsyncSession) -> int:
    result = await db.execute(
        delete(RefreshTokenRow).where(RefreshTokenRow.expires_at < utc_now())
    )
    await db.commit()
    return result.rowcount
