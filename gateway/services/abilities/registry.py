"""
The ability catalog.

An ability is a plain record: schema-typed input and output, a permission
predicate and an async handler. The catalog is assembled once at start-up,
frozen, and shared by reference; only the enable/disable overrides stored in
``options`` change at runtime.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Type

from pydantic import BaseModel

from gateway.host.ports import ContentHost
from gateway.models.entities import Client, ResourceOwner

READ = "read"
WRITE = "write"
CLASSIFICATIONS = (READ, WRITE)


@dataclass(frozen=True)
class AbilityContext:
    """Who is calling: the bearer-resolved owner and client, plus the host port."""

    owner: ResourceOwner
    host: ContentHost
    client: Optional[Client] = None

    def can(self, action: str, target: Any = None) -> bool:
        return self.host.can(self.owner.id, action, target)


PermissionCheck = Callable[[AbilityContext, Any], bool]
Handler = Callable[[AbilityContext, Any], Awaitable[Any]]


@dataclass(frozen=True)
class Ability:
    name: str
    label: str
    description: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]
    permission: PermissionCheck
    handler: Handler
    classification: str = READ
    group: str = ""
    annotations: Dict[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        if "/" not in self.name:
            raise ValueError(f"Ability name must be namespaced as domain/action: {self.name}")
        if self.classification not in CLASSIFICATIONS:
            raise ValueError(f"Unknown classification for {self.name}: {self.classification}")

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema()

    @property
    def output_schema(self) -> Dict[str, Any]:
        return self.output_model.model_json_schema()

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "input_schema": self.input_schema,
            "output_schema": self.output_schema,
            "annotations": dict(self.annotations),
        }


class AbilityRegistry:
    def __init__(self, abilities: Optional[List[Ability]] = None):
        self._abilities: Dict[str, Ability] = {}
        self._frozen = False
        for ability in abilities or []:
            self.register(ability)

    def register(self, ability: Ability) -> Ability:
        if self._frozen:
            raise RuntimeError("Ability registry is frozen")
        if ability.name in self._abilities:
            raise ValueError(f"Ability already registered: {ability.name}")
        self._abilities[ability.name] = ability
        return ability

    def freeze(self) -> "AbilityRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Optional[Ability]:
        return self._abilities.get(name)

    def names(self) -> List[str]:
        return list(self._abilities)

    def all(self) -> List[Ability]:
        return list(self._abilities.values())

    def by_group(self) -> Dict[str, Dict[str, List[Ability]]]:
        """``{group: {classification: [abilities]}}`` in registration order."""
        groups: Dict[str, Dict[str, List[Ability]]] = {}
        for ability in self._abilities.values():
            groups.setdefault(ability.group, {}).setdefault(ability.classification, []).append(ability)
        return groups

    def __contains__(self, name: str) -> bool:
        return name in self._abilities

    def __iter__(self) -> Iterator[Ability]:
        return iter(self._abilities.values())

    def __len__(self) -> int:
        return len(self._abilities)
