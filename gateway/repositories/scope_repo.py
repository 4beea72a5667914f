from gateway.core.config import settings
from gateway.models.entities import Scope


def get_scope(identifier: str) -> Scope | None:
    if identifier in settings.SUPPORTED_SCOPES:
        return Scope(identifier=identifier)
    return None


def finalize_scopes(requested: list[Scope] | None = None) -> list[Scope]:
    # Real authority comes from host capabilities, so every grant collapses to the default scope
    return [Scope(identifier=settings.DEFAULT_SCOPE)]


def scope_identifiers(scopes: list[Scope]) -> list[str]:
    return [scope.identifier for scope in scopes]
