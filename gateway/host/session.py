import logging
from typing import Optional

import jwt
from fastapi import Depends, Request

from gateway.common.token import JWTService
from gateway.core.config import settings
from gateway.host.memory import get_host
from gateway.host.ports import HostAdapter
from gateway.models.entities import ResourceOwner

logger = logging.getLogger(__name__)


def issue_session(owner: ResourceOwner, jwt_service: Optional[JWTService] = None) -> str:
    jwt_service = jwt_service or JWTService()
    return jwt_service.encode(
        {"sub": str(owner.id)},
        token_type=JWTService.SESSION,
        ttl_seconds=settings.SESSION_TTL,
    )


def current_owner(request: Request, host: HostAdapter) -> Optional[ResourceOwner]:
    """Resolve the logged-in host user from the session cookie, if any."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None

    try:
        claims = JWTService().decode(token, expected_type=JWTService.SESSION)
        user_id = int(claims["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        logger.info("Ignoring invalid host session cookie")
        return None

    return host.get_user(user_id)


def get_session_owner(
    request: Request,
    host: HostAdapter = Depends(get_host),
) -> Optional[ResourceOwner]:
    return current_owner(request, host)
