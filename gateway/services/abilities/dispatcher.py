import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.common.exceptions import AbilityException
from gateway.host.ports import ContentHost
from gateway.services.abilities.registry import Ability, AbilityContext, AbilityRegistry
from gateway.services.abilities.settings_services import get_disabled_abilities
from gateway.services.auth.token_validator import TokenContext

logger = logging.getLogger(__name__)


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
        if err.get("type") == "missing":
            problems.append(f"missing field '{field}'")
        else:
            problems.append(f"invalid field '{field}': {err.get('msg', 'invalid value')}")
    return "Invalid arguments: " + ", ".join(dict.fromkeys(problems))


class AbilityDispatcher:
    """
    Request-scoped entry point for listing and invoking abilities.

    Checks run in a fixed order: existence, enabled state, argument schema,
    host permission, then the handler and its output schema. A disabled
    ability is reported as such even to callers who would be forbidden.
    """

    def __init__(self, registry: AbilityRegistry, db: AsyncSession, host: ContentHost):
        self.registry = registry
        self.db = db
        self.host = host
        self._disabled: Optional[Set[str]] = None

    async def disabled(self) -> Set[str]:
        if self._disabled is None:
            self._disabled = await get_disabled_abilities(self.db, self.registry)
        return self._disabled

    async def _resolve(self, name: str) -> Ability:
        ability = self.registry.get(name)
        if ability is None:
            raise AbilityException(
                error="not_found",
                message=f"Ability not found: {name}",
                status_code=404,
            )
        return ability

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_enabled(self) -> List[Dict[str, Any]]:
        disabled = await self.disabled()
        return [ability.describe() for ability in self.registry if ability.name not in disabled]

    async def describe(self, name: str) -> Dict[str, Any]:
        ability = self.registry.get(name)
        if ability is None or ability.name in await self.disabled():
            raise AbilityException(
                error="not_found",
                message=f"Ability not found: {name}",
                status_code=404,
            )
        return ability.describe()

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        caller: TokenContext,
    ) -> Dict[str, Any]:
        ability = await self._resolve(name)

        if ability.name in await self.disabled():
            raise AbilityException(
                error="disabled",
                message=f"Ability is disabled: {name}",
                status_code=403,
            )

        try:
            args = ability.input_model.model_validate(arguments if arguments is not None else {})
        except ValidationError as exc:
            raise AbilityException(
                error="invalid_arguments",
                message=_describe_validation_error(exc),
            )

        ctx = AbilityContext(owner=caller.owner, host=self.host, client=caller.client)

        if not ability.permission(ctx, args):
            logger.info("User %s forbidden from %s", caller.owner.id, name)
            raise AbilityException(
                error="forbidden",
                message="You are not allowed to perform this action",
                status_code=403,
            )

        try:
            result = await ability.handler(ctx, args)
        except AbilityException:
            raise
        except Exception:
            logger.exception("Ability %s failed for user %s", name, caller.owner.id)
            raise AbilityException(
                error="execution_failed",
                message="The ability failed to execute",
                status_code=500,
            )

        try:
            if isinstance(result, BaseModel):
                result = result.model_dump()
            output = ability.output_model.model_validate(result)
        except ValidationError:
            logger.exception("Ability %s returned output that does not match its schema", name)
            raise AbilityException(
                error="invalid_output",
                message="The ability returned an invalid result",
                status_code=500,
            )

        logger.info("User %s via client %s executed %s", caller.owner.id, caller.client.identifier, name)
        return output.model_dump(mode="json")
