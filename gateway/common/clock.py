from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    Rows are stored naive (SQLite drops tzinfo), so every comparison against
    a persisted ``expires_at`` goes through this helper.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def expires_in(seconds: int) -> datetime:
    return utc_now() + timedelta(seconds=seconds)


def is_expired(expires_at: datetime) -> bool:
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return expires_at <= utc_now()
