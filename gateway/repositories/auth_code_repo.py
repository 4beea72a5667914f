from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.clock import utc_now
from gateway.models.entities import AuthorizationCode, Scope
from gateway.models.persistance.auth import AuthCode as AuthCodeRow
from gateway.repositories.scope_repo import scope_identifiers


def hydrate_auth_code(row: AuthCodeRow) -> AuthorizationCode:
    return AuthorizationCode(
        identifier=row.code_id,
        client_id=row.client_id,
        user_id=row.user_id,
        scopes=[Scope(identifier=s) for s in row.scopes or []],
        redirect_uri=row.redirect_uri,
        code_challenge=row.code_challenge,
        code_challenge_method=row.code_challenge_method,
        expires_at=row.expires_at,
        revoked=row.revoked,
    )


async def persist_auth_code(
    db: AsyncSession,
    *,
    code_id: str,
    client_id: str,
    user_id: int,
    scopes: list[Scope],
    redirect_uri: str,
    code_challenge: str,
    code_challenge_method: str,
    expires_at: datetime,
) -> AuthorizationCode:
    row = AuthCodeRow(
        code_id=code_id,
        client_id=client_id,
        user_id=user_id,
        scopes=scope_identifiers(scopes),
        redirect_uri=redirect_uri,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        revoked=False,
        expires_at=expires_at,
    )
    db.add(row)
    await db.commit()
    await db.refresh(row)
    return hydrate_auth_code(row)


async def get_auth_code(
    db: AsyncSession,
    code_id: str,
) -> AuthorizationCode | None:
    result = await db.execute(select(AuthCodeRow).where(AuthCodeRow.code_id == code_id))
    row = result.scalar_one_or_none()
    return hydrate_auth_code(row) if row else None


async def consume_auth_code(
    db: AsyncSession,
    code_id: str,
    *,
    commit: bool = True,
) -> bool:
    """
    Mark the code revoked if and only if it is not already revoked.

    Exactly one of any number of concurrent callers gets ``True``.
    """
    stmt = (
        update(AuthCodeRow)
        .where(AuthCodeRow.code_id == code_id, AuthCodeRow.revoked.is_(False))
        .values(revoked=True)
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount == 1


async def cleanup_expired_codes(db: AsyncSession) -> int:
    result = await db.execute(delete(AuthCodeRow).where(AuthCodeRow.expires_at < utc_now()))
    await db.commit()
    return result.rowcount
