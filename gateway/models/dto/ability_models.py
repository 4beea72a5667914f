from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field


# ----- Ability surface -----
class ExecuteAbilityRequest(BaseModel):
    ability_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ExecuteAbilityResponse(BaseModel):
    result: Dict[str, Any]


class AbilityInfo(BaseModel):
    name: str
    label: str
    description: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    annotations: Dict[str, bool]


class AbilityListResponse(BaseModel):
    abilities: List[AbilityInfo]


# ----- Admin -----
class AbilityState(BaseModel):
    name: str
    label: str
    group: str
    classification: str
    enabled: bool


class AbilityToggleRequest(BaseModel):
    enabled: bool


class GroupToggleRequest(BaseModel):
    group: str
    classification: Literal["read", "write"]
    enabled: bool


class AllowedUserRequest(BaseModel):
    user_id: int
