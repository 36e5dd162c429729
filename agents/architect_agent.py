# agents/architect_agent.py
from collections.abc import Sequence

import structlog
from config import settings
from core.llm_interface import LLMService, SamplingConfig, llm_service
from core.usage import TokenUsage
from processing.structured_extractor import extract_structured
from prompt_renderer import render_prompt

from models import ArchitectPlan, Project, UnitSpec, unit_label, unit_sort_key

logger = structlog.get_logger(__name__)


class ArchitectAgent:
    """Designs the world bible and the per-unit outline of a project."""

    def __init__(self, model_name: str | None = None, llm: LLMService | None = None):
        self.model_name = model_name or settings.ARCHITECT_MODEL
        self.llm = llm or llm_service
        logger.info(f"ArchitectAgent initialized with model: {self.model_name}")

    @staticmethod
    def _complete_outline(
        plan: ArchitectPlan, project: Project, unit_numbers: Sequence[int]
    ) -> ArchitectPlan:
        """Keep one spec per requested unit, inventing bare specs for gaps."""
        by_number = {spec.number: spec for spec in plan.outline}
        outline: list[UnitSpec] = []
        for number in sorted(unit_numbers, key=unit_sort_key):
            spec = by_number.get(number)
            if spec is None:
                logger.warning(
                    f"Architect outline has no entry for {unit_label(number)}; using a bare spec."
                )
                spec = UnitSpec(number=number, summary=project.premise or "")
            outline.append(spec)
        plan.outline = outline
        return plan

    async def plan_project(
        self,
        project: Project,
        unit_numbers: Sequence[int],
        world_notes: str = "",
    ) -> tuple[ArchitectPlan, TokenUsage]:
        prompt = render_prompt(
            "architect_agent/plan_project.j2",
            {
                "project": project,
                "world_notes": world_notes,
                "units": [(n, unit_label(n)) for n in sorted(unit_numbers, key=unit_sort_key)],
            },
        )
        result = await self.llm.complete(
            render_prompt("architect_agent/system.j2", {}),
            [{"role": "user", "content": prompt}],
            SamplingConfig(
                model=self.model_name,
                temperature=settings.TEMPERATURE_PLANNING,
                json_mode=True,
            ),
        )
        result.raise_for_error()
        extracted = extract_structured(
            result.text, ArchitectPlan, ArchitectPlan(), context=f"plan:{project.id}"
        )
        plan = self._complete_outline(extracted.value, project, unit_numbers)
        logger.info(
            "Architect plan ready.",
            project_id=project.id,
            characters=len(plan.world_bible.characters),
            units=len(plan.outline),
        )
        return plan, result.usage
