"""Incident intake workflow engine: wizard steps, priority matrix and status lifecycle."""

from .catalog import (
    Classification,
    ImpactedUserCount,
    ImpactLevel,
    ImpactScheme,
    IncidentSource,
    PriorityCode,
    StatusCode,
    UrgencyLevel,
    catalog_snapshot,
    nearest_user_count,
)
from .collaborators import (
    AuditEntry,
    FixedClock,
    InMemoryAuditLog,
    InMemoryIncidentStore,
    RecordingNotifier,
    ZoneClock,
)
from .config import ConfigError, EngineConfig, load_engine_config
from .contracts import CONTRACT_VERSIONS, ContractValidationResult, validate_contract_freeze
from .loaders import ContractError, SheetContract, load_override_rules, load_priority_matrix
from .navigation import NavigationOutcome, WorkflowNavigator, is_last_step, total_steps
from .orchestrator import FinalizeResult, IntakeOrchestrator, RecordUpdateResult, TrackingNumberGenerator
from .priority import PriorityCalculator, PriorityMatrix, PriorityMatrixError, PriorityOverrideRule, PriorityResult
from .runtime import RuntimeAssets, build_orchestrator
from .session import IncidentRecord, IntakeSession
from .trace import build_session_trace
from .transitions import (
    TRANSITION_TABLE,
    StatusTransitionGuard,
    TransitionError,
    TransitionResult,
    allowed_targets,
    can_transition,
)
from .validation import FieldError, FieldId, StepValidation, StepValidator, required_fields

__all__ = [
    "Classification",
    "ImpactedUserCount",
    "ImpactLevel",
    "ImpactScheme",
    "IncidentSource",
    "PriorityCode",
    "StatusCode",
    "UrgencyLevel",
    "catalog_snapshot",
    "nearest_user_count",
    "AuditEntry",
    "FixedClock",
    "InMemoryAuditLog",
    "InMemoryIncidentStore",
    "RecordingNotifier",
    "ZoneClock",
    "ConfigError",
    "EngineConfig",
    "load_engine_config",
    "CONTRACT_VERSIONS",
    "ContractValidationResult",
    "validate_contract_freeze",
    "ContractError",
    "SheetContract",
    "load_override_rules",
    "load_priority_matrix",
    "NavigationOutcome",
    "WorkflowNavigator",
    "is_last_step",
    "total_steps",
    "FinalizeResult",
    "IntakeOrchestrator",
    "RecordUpdateResult",
    "TrackingNumberGenerator",
    "PriorityCalculator",
    "PriorityMatrix",
    "PriorityMatrixError",
    "PriorityOverrideRule",
    "PriorityResult",
    "RuntimeAssets",
    "build_orchestrator",
    "IncidentRecord",
    "IntakeSession",
    "build_session_trace",
    "TRANSITION_TABLE",
    "StatusTransitionGuard",
    "TransitionError",
    "TransitionResult",
    "allowed_targets",
    "can_transition",
    "FieldError",
    "FieldId",
    "StepValidation",
    "StepValidator",
    "required_fields",
]
