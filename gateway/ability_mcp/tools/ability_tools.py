from typing import Any, Awaitable, Callable, Dict, Optional

from mcp.server.auth.middleware.auth_context import get_access_token

from gateway.abilities.catalog import get_registry
from gateway.ability_mcp.server import mcp as ability_mcp
from gateway.common.exceptions import AbilityException, OAuthException
from gateway.core.db import AsyncSessionLocal
from gateway.host.memory import get_host
from gateway.services.abilities.dispatcher import AbilityDispatcher
from gateway.services.auth.token_validator import TokenContext, validate


async def _with_dispatcher(
    call: Callable[[AbilityDispatcher, TokenContext], Awaitable[Dict[str, Any]]],
) -> Dict[str, Any]:
    """
    Resolve the caller from the verified bearer and run ``call``.

    Typed failures come back as ``{"error", "message"}`` so the client can
    act on them; anything else propagates to the MCP transport.
    """
    access_token = get_access_token()
    host = get_host()

    async with AsyncSessionLocal() as db:
        try:
            caller = await validate(db, host, access_token.token if access_token else None)
        except OAuthException as exc:
            return {"error": exc.error, "message": exc.description or exc.error}

        dispatcher = AbilityDispatcher(get_registry(), db, host)
        try:
            return await call(dispatcher, caller)
        except AbilityException as exc:
            return {"error": exc.error, "message": exc.message}


# =========================
# DISCOVERY TOOLS
# =========================

@ability_mcp.tool()
async def discover_abilities() -> Dict[str, Any]:
    """
    List every ability currently enabled on this site.

    Use when:
    - Starting a session, to learn what can be done
    - Looking for the right ability name before calling execute_ability

    Returns:
        Dict[str, Any]:
            {"abilities": [{"name", "label", "description", "input_schema",
                            "output_schema", "annotations"}]}
    """
    async def call(dispatcher: AbilityDispatcher, caller: TokenContext) -> Dict[str, Any]:
        return {"abilities": await dispatcher.list_enabled()}

    return await _with_dispatcher(call)


@ability_mcp.tool()
async def get_ability_info(ability_name: str) -> Dict[str, Any]:
    """
    Describe one enabled ability, including its input and output JSON schema.

    Args:
        ability_name (str): Namespaced name such as "core/posts-find".
    """
    async def call(dispatcher: AbilityDispatcher, caller: TokenContext) -> Dict[str, Any]:
        return await dispatcher.describe(ability_name)

    return await _with_dispatcher(call)


# =========================
# EXECUTION TOOLS
# =========================

@ability_mcp.tool()
async def execute_ability(
    ability_name: str,
    arguments: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Run an ability on behalf of the connected user.

    The call succeeds only if the ability is enabled, the arguments match its
    input schema and the user holds the site permission it requires.

    Args:
        ability_name (str): Namespaced name such as "core/posts-view".
        arguments (dict): Arguments matching the ability's input_schema.

    Returns:
        Dict[str, Any]: {"result": {...}} or {"error": str, "message": str}
    """
    async def call(dispatcher: AbilityDispatcher, caller: TokenContext) -> Dict[str, Any]:
        return {"result": await dispatcher.invoke(ability_name, arguments or {}, caller)}

    return await _with_dispatcher(call)
