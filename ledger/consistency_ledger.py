# ledger/consistency_ledger.py
"""World-model ledger consulted before and updated after every unit.

The ledger is the only writer of entities, rules and relationships. The
record store promises no transactions, so immutable-attribute protection is
enforced here and every write for a project goes through that project's lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog

from agents.consistency_agent import ConsistencyAgent
from config import settings
from core.errors import ChronicleError, RecordNotFoundError
from core.usage import TokenUsage
from data_access.repositories import WorldRepository
from models.unit_models import unit_label, unit_sort_key
from models.world_models import (
    CONFLICT_RULE_CATEGORY,
    TRAVEL_TIME_RELATION,
    EntityType,
    Relationship,
    ValidationResult,
    WorldBible,
    WorldEntity,
    WorldModel,
    WorldRule,
)

logger = structlog.get_logger(__name__)

BLOCKING_ERROR_CLASSES = frozenset(
    {
        "DEAD_CHARACTER_ACTS",
        "BILOCATION",
        "IMMUTABLE_ATTRIBUTE_CHANGED",
        "SELF_CONTRADICTION",
    }
)


def _same_value(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


def normalize_attribute_key(key: str) -> str:
    """``" Eye Color"``, ``"eye_color"`` and ``"EYE_COLOR"`` name one attribute."""
    return "_".join(key.strip().lower().split())


def _find(entities: Iterable[WorldEntity], name: str) -> WorldEntity | None:
    lowered = name.strip().lower()
    for entity in entities:
        if entity.name.lower() == lowered:
            return entity
    return None


def apply_permissive_bias(result: ValidationResult) -> ValidationResult:
    """Downgrade every error outside the four blocking classes to a warning."""
    if result.is_valid:
        return result
    error_class = (result.error_class or "").strip().upper()
    if error_class in BLOCKING_ERROR_CLASSES:
        result.error_class = error_class
        if not result.correction_instructions:
            result.correction_instructions = (
                f"Fix this continuity error: {result.critical_error or error_class}"
            )
        return result
    detail = result.critical_error or "unspecified problem"
    result.warnings.append(
        f"Non-blocking ({error_class or 'unclassified'}): {detail}"
    )
    result.is_valid = True
    result.critical_error = None
    result.error_class = None
    result.correction_instructions = None
    return result


class ConsistencyLedger:
    def __init__(
        self,
        world: WorldRepository,
        agent: ConsistencyAgent | None = None,
        immutable_keys: Iterable[str] | None = None,
    ) -> None:
        self.world = world
        self.agent = agent or ConsistencyAgent()
        self.immutable_keys = {
            normalize_attribute_key(k)
            for k in (
                immutable_keys
                if immutable_keys is not None
                else settings.IMMUTABLE_ATTRIBUTE_KEYS
            )
        }
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    async def world_model(self, project_id: str) -> WorldModel:
        return WorldModel(
            project_id=project_id,
            entities=await self.world.entities(project_id),
            rules=await self.world.rules(project_id),
            relationships=await self.world.relationships(project_id),
        )

    # ------------------------------------------------------------------
    # Write side. ``_..._locked`` helpers assume the project lock is held.
    # ------------------------------------------------------------------

    async def _ensure_entity_locked(
        self, project_id: str, name: str, entity_type: EntityType
    ) -> WorldEntity:
        entity = _find(await self.world.entities(project_id), name)
        if entity is None:
            entity = await self.world.create_entity(
                WorldEntity(project_id=project_id, name=name.strip(), type=entity_type)
            )
            logger.debug(f"Ledger entity created: {entity.name} ({entity.type.value}).")
        return entity

    async def _add_rule_locked(
        self, project_id: str, description: str, category: str, source_unit: int
    ) -> WorldRule:
        rule = WorldRule(
            project_id=project_id,
            description=description,
            category=category or "general",
            source_unit=source_unit,
        )
        return await self.world.create_rule(rule)

    async def _set_attribute_locked(
        self,
        project_id: str,
        entity_name: str,
        key: str,
        value: str,
        *,
        entity_type: EntityType,
        immutable: bool | None,
        unit_number: int | None,
    ) -> bool:
        entity = await self._ensure_entity_locked(project_id, entity_name, entity_type)
        key = normalize_attribute_key(key)
        is_immutable = (
            immutable
            if immutable is not None
            else key in self.immutable_keys or key in entity.immutable_keys
        )
        current = entity.attributes.get(key)

        if key in entity.immutable_keys and current is not None:
            if _same_value(current, value):
                return False
            where = unit_label(unit_number) if unit_number is not None else "seed data"
            await self._add_rule_locked(
                project_id,
                f"{entity.name}.{key} is immutable ('{current}'); "
                f"a change to '{value}' in {where} was rejected.",
                CONFLICT_RULE_CATEGORY,
                unit_number if unit_number is not None else 0,
            )
            logger.warning(
                "Immutable attribute overwrite rejected.",
                project_id=project_id,
                entity=entity.name,
                key=key,
                kept=current,
                rejected=value,
            )
            return False

        if current is not None and current == value:
            return False
        entity.attributes[key] = value
        if is_immutable:
            entity.immutable_keys.add(key)
        if key == "status":
            entity.status = value
        if unit_number is not None:
            entity.last_seen_unit = unit_number
        await self.world.update_entity(entity)
        return True

    async def _upsert_relationship_locked(
        self,
        project_id: str,
        subject: str,
        target: str,
        relation_type: str,
        meta: dict[str, Any] | None,
    ) -> Relationship:
        rel = Relationship(
            project_id=project_id,
            subject=subject.strip(),
            target=target.strip(),
            relation_type=relation_type.strip().upper(),
            meta=dict(meta or {}),
        )
        for existing in await self.world.relationships(project_id):
            if existing.key == rel.key:
                existing.meta.update(rel.meta)
                return await self.world.update_relationship(existing)
        return await self.world.create_relationship(rel)

    async def set_attribute(
        self,
        project_id: str,
        entity_name: str,
        key: str,
        value: str,
        *,
        entity_type: EntityType = EntityType.CHARACTER,
        immutable: bool | None = None,
        unit_number: int | None = None,
    ) -> bool:
        """Write one attribute; returns ``False`` when nothing was stored.

        An immutable attribute that already holds a different value keeps
        its value and a single ``CONTINUITY_CONFLICT`` rule is appended.
        """
        async with self._lock(project_id):
            return await self._set_attribute_locked(
                project_id,
                entity_name,
                key,
                value,
                entity_type=entity_type,
                immutable=immutable,
                unit_number=unit_number,
            )

    async def add_rule(
        self,
        project_id: str,
        description: str,
        category: str = "general",
        source_unit: int = 0,
    ) -> WorldRule:
        async with self._lock(project_id):
            return await self._add_rule_locked(project_id, description, category, source_unit)

    async def deactivate_rule(self, project_id: str, rule_id: str) -> None:
        async with self._lock(project_id):
            try:
                await self.world.set_rule_active(rule_id, False)
            except RecordNotFoundError:
                logger.warning(f"Cannot deactivate unknown rule {rule_id}.", project_id=project_id)
                raise

    async def add_relationship(
        self,
        project_id: str,
        subject: str,
        target: str,
        relation_type: str,
        meta: dict[str, Any] | None = None,
    ) -> Relationship:
        async with self._lock(project_id):
            return await self._upsert_relationship_locked(
                project_id, subject, target, relation_type, meta
            )

    async def seed(self, project_id: str, bible: WorldBible) -> None:
        """Load the planning-time world bible into the ledger."""
        async with self._lock(project_id):
            for character in bible.characters:
                await self._ensure_entity_locked(project_id, character.name, EntityType.CHARACTER)
                for key, value in character.immutable.items():
                    await self._set_attribute_locked(
                        project_id, character.name, key, value,
                        entity_type=EntityType.CHARACTER, immutable=True, unit_number=None,
                    )
                extra = dict(character.attributes)
                if character.role:
                    extra.setdefault("role", character.role)
                if character.description:
                    extra.setdefault("description", character.description)
                for key, value in extra.items():
                    await self._set_attribute_locked(
                        project_id, character.name, key, value,
                        entity_type=EntityType.CHARACTER, immutable=None, unit_number=None,
                    )
            for location in bible.locations:
                await self._ensure_entity_locked(project_id, location.name, EntityType.LOCATION)
                if location.description:
                    await self._set_attribute_locked(
                        project_id, location.name, "description", location.description,
                        entity_type=EntityType.LOCATION, immutable=None, unit_number=None,
                    )
                for other, duration in location.travel_times.items():
                    await self._upsert_relationship_locked(
                        project_id, location.name, other, TRAVEL_TIME_RELATION,
                        {"duration": duration},
                    )
            for name in bible.objects:
                await self._ensure_entity_locked(project_id, name, EntityType.OBJECT)
            for rule in bible.rules:
                await self._add_rule_locked(project_id, rule.description, rule.category, 0)
            for rel in bible.relationships:
                await self._upsert_relationship_locked(
                    project_id, rel.subject, rel.target, rel.relation_type, rel.meta
                )
        logger.info(
            "Ledger seeded.",
            project_id=project_id,
            characters=len(bible.characters),
            locations=len(bible.locations),
            rules=len(bible.rules),
        )

    async def apply_validation(
        self, project_id: str, unit_number: int, result: ValidationResult
    ) -> None:
        """Fold the facts a validation pass extracted into the ledger."""
        async with self._lock(project_id):
            for fact in result.new_facts:
                if not fact.entity_name.strip():
                    continue
                await self._ensure_entity_locked(project_id, fact.entity_name, fact.entity_type)
                for key, value in fact.update.items():
                    await self._set_attribute_locked(
                        project_id, fact.entity_name, key, value,
                        entity_type=fact.entity_type, immutable=None, unit_number=unit_number,
                    )
            for rule in result.new_rules:
                if rule.description.strip():
                    await self._add_rule_locked(
                        project_id, rule.description, rule.category, unit_number
                    )
            for rel in result.new_relationships:
                if rel.subject.strip() and rel.target.strip() and rel.relation_type.strip():
                    await self._upsert_relationship_locked(
                        project_id, rel.subject, rel.target, rel.relation_type, rel.meta
                    )
        logger.debug(
            f"Ledger updated from {unit_label(unit_number)}.",
            facts=len(result.new_facts),
            rules=len(result.new_rules),
            relationships=len(result.new_relationships),
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @staticmethod
    def render_brief(model: WorldModel, unit_number: int) -> str:
        if model.is_empty:
            return ""
        limit = unit_sort_key(unit_number)
        sections: list[str] = []

        immutable = [
            f"- {e.name} [{e.type.value}]: "
            + "; ".join(f"{k}={v}" for k, v in sorted(e.immutable_attributes().items()))
            for e in model.entities
            if e.immutable_attributes()
        ]
        if immutable:
            sections.append("IMMUTABLE (never contradict):\n" + "\n".join(immutable))

        mutable = []
        for e in model.entities:
            attrs = e.mutable_attributes()
            attrs.pop("status", None)
            status = "" if e.status == "active" else f" (status: {e.status})"
            details = "; ".join(f"{k}={v}" for k, v in sorted(attrs.items()))
            mutable.append(f"- {e.name} [{e.type.value}]{status}" + (f": {details}" if details else ""))
        if mutable:
            sections.append("MUTABLE (may evolve):\n" + "\n".join(mutable))

        rels = [r for r in model.relationships if r.relation_type != TRAVEL_TIME_RELATION]
        if rels:
            sections.append(
                "RELATIONSHIPS:\n"
                + "\n".join(f"- {r.subject} -[{r.relation_type}]-> {r.target}" for r in rels)
            )

        rules = sorted(
            (
                r
                for r in model.rules
                if r.is_active and unit_sort_key(r.source_unit) <= limit
            ),
            key=lambda r: unit_sort_key(r.source_unit),
        )
        if rules:
            sections.append(
                "ACTIVE RULES:\n"
                + "\n".join(
                    f"- [{r.category}] {r.description} (since {unit_label(r.source_unit)})"
                    for r in rules
                )
            )

        travel = [r for r in model.relationships if r.relation_type == TRAVEL_TIME_RELATION]
        if travel:
            sections.append(
                "TIMELINE (travel times, respect them):\n"
                + "\n".join(
                    f"- {r.subject} -> {r.target}: {r.meta.get('duration', 'unknown')}"
                    for r in travel
                )
            )

        header = f"WORLD LEDGER for {unit_label(unit_number)}"
        return "\n\n".join([header, *sections])

    async def constraints(self, project_id: str, unit_number: int) -> str:
        return self.render_brief(await self.world_model(project_id), unit_number)

    async def validate(
        self, unit_text: str, project_id: str, unit_number: int
    ) -> tuple[ValidationResult, TokenUsage]:
        brief = await self.constraints(project_id, unit_number)
        try:
            result, usage = await self.agent.validate_chapter(brief, unit_number, unit_text)
        except ChronicleError as exc:
            logger.warning(
                f"Consistency check of {unit_label(unit_number)} failed; accepting unit.",
                project_id=project_id,
                error=str(exc),
            )
            return (
                ValidationResult(
                    is_valid=True, warnings=[f"Consistency check unavailable: {exc}"]
                ),
                TokenUsage(),
            )
        result = apply_permissive_bias(result)
        if not result.is_valid:
            logger.warning(
                f"{unit_label(unit_number)} failed consistency validation.",
                project_id=project_id,
                error_class=result.error_class,
                error=result.critical_error,
            )
        return result, usage
