import json
from typing import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.clock import utc_now
from gateway.common.security import (
    generate_client_id,
    generate_client_secret,
    hash_secret,
    verify_secret,
)
from gateway.models.entities import Client, WILDCARD_REDIRECT
from gateway.models.persistance.auth import Client as ClientRow


def _encode_redirect_uris(redirect_uris: Sequence[str] | None) -> str:
    if not redirect_uris or WILDCARD_REDIRECT in redirect_uris:
        return WILDCARD_REDIRECT
    return json.dumps(list(redirect_uris))


def _decode_redirect_uris(raw: str) -> list[str]:
    if raw == WILDCARD_REDIRECT:
        return [WILDCARD_REDIRECT]
    try:
        decoded = json.loads(raw)
    except ValueError:
        # legacy single-URI rows
        return [raw]
    if isinstance(decoded, str):
        return [decoded]
    return [str(uri) for uri in decoded]


def hydrate_client(row: ClientRow) -> Client:
    return Client(
        identifier=row.client_id,
        name=row.name,
        redirect_uris=_decode_redirect_uris(row.redirect_uri),
        is_confidential=row.is_confidential,
        secret_hash=row.client_secret,
        user_id=row.user_id,
        created_at=row.created_at,
    )


async def create_client(
    db: AsyncSession,
    *,
    name: str,
    redirect_uris: Sequence[str] | None,
    is_confidential: bool = True,
    user_id: int | None = None,
    client_secret: str | None = None,
) -> tuple[Client, str | None]:
    """
    Persist a new client.

    Returns the hydrated client and the plaintext secret. The plaintext is
    handed back exactly once; only its hash is stored.
    """
    plain_secret: str | None = None
    hashed_secret: str | None = None
    if is_confidential:
        plain_secret = client_secret or generate_client_secret()
        hashed_secret = hash_secret(plain_secret)

    row = ClientRow(
        client_id=generate_client_id(),
        client_secret=hashed_secret,
        name=name,
        redirect_uri=_encode_redirect_uris(redirect_uris),
        user_id=user_id,
        is_confidential=is_confidential,
    )

    db.add(row)
    await db.commit()
    await db.refresh(row)
    return hydrate_client(row), plain_secret


async def get_client_by_id(
    db: AsyncSession,
    client_id: str,
) -> Client | None:
    stmt = select(ClientRow).where(ClientRow.client_id == client_id)
    result = await db.execute(stmt)
    row = result.scalar_one_or_none()
    return hydrate_client(row) if row else None


async def validate_client(
    db: AsyncSession,
    client_id: str,
    client_secret: str | None,
) -> Client | None:
    """Return the client when it exists and, if confidential, the secret matches."""
    client = await get_client_by_id(db, client_id)
    if client is None:
        return None

    if client.is_confidential and not verify_secret(client_secret or "", client.secret_hash):
        return None

    return client


async def get_clients_by_user(
    db: AsyncSession,
    user_id: int | None = None,
) -> list[Client]:
    stmt = select(ClientRow).order_by(ClientRow.created_at.desc())
    if user_id is not None:
        stmt = stmt.where(ClientRow.user_id == user_id)
    result = await db.execute(stmt)
    return [hydrate_client(row) for row in result.scalars().all()]


async def rotate_client_secret(
    db: AsyncSession,
    client_id: str,
) -> str | None:
    plain_secret = generate_client_secret()
    stmt = (
        update(ClientRow)
        .where(ClientRow.client_id == client_id, ClientRow.is_confidential.is_(True))
        .values(client_secret=hash_secret(plain_secret), updated_at=utc_now())
    )
    result = await db.execute(stmt)
    await db.commit()
    return plain_secret if result.rowcount == 1 else None


async def delete_client(
    db: AsyncSession,
    client_id: str,
) -> bool:
    result = await db.execute(delete(ClientRow).where(ClientRow.client_id == client_id))
    await db.commit()
    return result.rowcount > 0
