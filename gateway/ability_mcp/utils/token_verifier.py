import calendar
import logging

from mcp.server.auth.provider import AccessToken, TokenVerifier

from gateway.common.exceptions import OAuthException
from gateway.core.db import AsyncSessionLocal
from gateway.host.memory import get_host
from gateway.repositories.scope_repo import scope_identifiers
from gateway.services.auth.token_validator import validate

logger = logging.getLogger(__name__)


class GatewayTokenVerifier(TokenVerifier):
    async def verify_token(self, token: str) -> AccessToken | None:
        async with AsyncSessionLocal() as db:
            try:
                ctx = await validate(db, get_host(), token)
            except OAuthException as exc:
                logger.info("MCP bearer rejected: %s", exc.description)
                return None

        return AccessToken(
            token=token,
            client_id=ctx.client.identifier,
            scopes=scope_identifiers(ctx.token.scopes),
            expires_at=calendar.timegm(ctx.token.expires_at.utctimetuple()),
        )
