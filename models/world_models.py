# models/world_models.py
"""World-model records owned by the consistency ledger."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _new_id() -> str:
    return uuid.uuid4().hex


class EntityType(str, Enum):
    CHARACTER = "CHARACTER"
    LOCATION = "LOCATION"
    OBJECT = "OBJECT"


TRAVEL_TIME_RELATION = "TRAVEL_TIME"
CONFLICT_RULE_CATEGORY = "CONTINUITY_CONFLICT"


class WorldEntity(BaseModel):
    """A character, location or object tracked across the manuscript."""

    id: str = Field(default_factory=_new_id)
    project_id: str
    name: str
    type: EntityType = EntityType.CHARACTER
    attributes: dict[str, str] = Field(default_factory=dict)
    immutable_keys: set[str] = Field(default_factory=set)
    status: str = "active"
    last_seen_unit: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value: object) -> object:
        if isinstance(value, str):
            upper = value.strip().upper()
            return upper if upper in EntityType.__members__ else EntityType.OBJECT
        return value

    def immutable_attributes(self) -> dict[str, str]:
        return {k: v for k, v in self.attributes.items() if k in self.immutable_keys}

    def mutable_attributes(self) -> dict[str, str]:
        return {
            k: v for k, v in self.attributes.items() if k not in self.immutable_keys
        }


class WorldRule(BaseModel):
    """An atomic fact that holds from ``source_unit`` onward."""

    id: str = Field(default_factory=_new_id)
    project_id: str
    description: str
    category: str = "general"
    is_active: bool = True
    source_unit: int = 0


class Relationship(BaseModel):
    id: str = Field(default_factory=_new_id)
    project_id: str
    subject: str
    target: str
    relation_type: str
    meta: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str, str]:
        return self.subject.lower(), self.target.lower(), self.relation_type.upper()


class WorldModel(BaseModel):
    """Read-only snapshot of a project's ledger."""

    project_id: str
    entities: list[WorldEntity] = Field(default_factory=list)
    rules: list[WorldRule] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)

    def entity(self, name: str) -> WorldEntity | None:
        lowered = name.strip().lower()
        for entity in self.entities:
            if entity.name.lower() == lowered:
                return entity
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.rules or self.relationships)


class NewFact(BaseModel):
    entity_name: str
    entity_type: EntityType = EntityType.CHARACTER
    update: dict[str, str] = Field(default_factory=dict)

    @field_validator("update", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value

    @field_validator("entity_type", mode="before")
    @classmethod
    def _upper_type(cls, value: object) -> object:
        if isinstance(value, str):
            upper = value.strip().upper()
            return upper if upper in EntityType.__members__ else EntityType.OBJECT
        return value


class NewRule(BaseModel):
    description: str
    category: str = "general"


class NewRelationship(BaseModel):
    subject: str
    target: str
    relation_type: str
    meta: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Outcome of checking one unit against the ledger.

    Validity and extraction are independent: ``new_facts`` and friends are
    filled whether or not the unit passed.
    """

    is_valid: bool = True
    critical_error: str | None = None
    error_class: str | None = None
    correction_instructions: str | None = None
    warnings: list[str] = Field(default_factory=list)
    new_facts: list[NewFact] = Field(default_factory=list)
    new_rules: list[NewRule] = Field(default_factory=list)
    new_relationships: list[NewRelationship] = Field(default_factory=list)


class CharacterSeed(BaseModel):
    name: str
    role: str = ""
    description: str = ""
    immutable: dict[str, str] = Field(default_factory=dict)
    attributes: dict[str, str] = Field(default_factory=dict)


class LocationSeed(BaseModel):
    name: str
    description: str = ""
    travel_times: dict[str, str] = Field(default_factory=dict)


class WorldBible(BaseModel):
    """Initial world description used to seed the ledger."""

    characters: list[CharacterSeed] = Field(default_factory=list)
    locations: list[LocationSeed] = Field(default_factory=list)
    objects: list[str] = Field(default_factory=list)
    rules: list[NewRule] = Field(default_factory=list)
    relationships: list[NewRelationship] = Field(default_factory=list)
