"""Bundled ability catalog, built and frozen once per process."""

import logging
from typing import Optional

from gateway.abilities import posts, site
from gateway.services.abilities.registry import AbilityRegistry

logger = logging.getLogger(__name__)

_registry: Optional[AbilityRegistry] = None


def build_registry() -> AbilityRegistry:
    registry = AbilityRegistry()
    for ability in [*posts.ABILITIES, *site.ABILITIES]:
        registry.register(ability)
    return registry.freeze()


def get_registry() -> AbilityRegistry:
    """FastAPI dependency returning the shared, frozen catalog."""
    global _registry
    if _registry is None:
        _registry = build_registry()
        logger.info("Registered %d abilities", len(_registry))
    return _registry
