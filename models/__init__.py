"""Central package for Chronicle data models."""

from .agent_models import (
    AgentBaseModel,
    ArchitectPlan,
    CheckpointReport,
    ContinuityState,
    EditorReport,
    SurgicalPlan,
    TranslationResult,
    WriterDraft,
)
from .job_models import (
    Job,
    JobEvent,
    JobEventType,
    JobProgress,
    JobSpec,
    JobStatus,
    JobStatusView,
    TranslatedUnit,
)
from .project_models import Project, ProjectDefinition, ProjectStatus, TokenTotals
from .review_models import Issue, PartialVerdict, ReviewVerdict, Severity, Verdict
from .unit_models import (
    Unit,
    UnitKind,
    UnitSpec,
    UnitStatus,
    normalize_unit_number,
    sort_units,
    unit_label,
    unit_sort_key,
)
from .world_models import (
    EntityType,
    NewFact,
    NewRelationship,
    NewRule,
    Relationship,
    ValidationResult,
    WorldBible,
    WorldEntity,
    WorldModel,
    WorldRule,
)

__all__ = [
    "AgentBaseModel",
    "ArchitectPlan",
    "CheckpointReport",
    "ContinuityState",
    "EditorReport",
    "SurgicalPlan",
    "TranslationResult",
    "WriterDraft",
    "Job",
    "JobEvent",
    "JobEventType",
    "JobProgress",
    "JobSpec",
    "JobStatus",
    "JobStatusView",
    "TranslatedUnit",
    "Project",
    "ProjectDefinition",
    "ProjectStatus",
    "TokenTotals",
    "Issue",
    "PartialVerdict",
    "ReviewVerdict",
    "Severity",
    "Verdict",
    "Unit",
    "UnitKind",
    "UnitSpec",
    "UnitStatus",
    "normalize_unit_number",
    "sort_units",
    "unit_label",
    "unit_sort_key",
    "EntityType",
    "NewFact",
    "NewRelationship",
    "NewRule",
    "Relationship",
    "ValidationResult",
    "WorldBible",
    "WorldEntity",
    "WorldModel",
    "WorldRule",
]
