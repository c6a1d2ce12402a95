from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .catalog import ImpactScheme
from .collaborators import AuditSink, Clock, IncidentStore, InMemoryAuditLog, InMemoryIncidentStore, Notifier, ZoneClock
from .config import ConfigError, EngineConfig
from .loaders import load_override_rules, load_priority_matrix
from .orchestrator import IntakeOrchestrator, TrackingNumberGenerator
from .priority import PriorityCalculator, PriorityMatrix
from .validation import StepValidator


@dataclass(frozen=True, slots=True)
class RuntimeAssets:
    impact_scheme: ImpactScheme
    bucket_count: int
    override_rule_count: int
    matrix_source: str


def build_calculator(config: EngineConfig) -> tuple[PriorityCalculator, RuntimeAssets]:
    if config.priority_workbook is not None:
        matrix = load_priority_matrix(config.priority_workbook)
        if matrix.scheme is not config.impact_scheme:
            raise ConfigError(
                f"Priority workbook uses the {matrix.scheme.value} scheme "
                f"but OPPRIME_IMPACT_SCHEME is {config.impact_scheme.value}"
            )
        rules = load_override_rules(config.priority_workbook)
        source = str(config.priority_workbook)
    else:
        matrix = PriorityMatrix.default_for(config.impact_scheme)
        rules = []
        source = "builtin"

    calculator = PriorityCalculator(matrix=matrix, rules=tuple(rules))
    assets = RuntimeAssets(
        impact_scheme=matrix.scheme,
        bucket_count=matrix.bucket_count,
        override_rule_count=len(rules),
        matrix_source=source,
    )
    return calculator, assets


def build_orchestrator(
    config: EngineConfig | None = None,
    *,
    store: IncidentStore | None = None,
    audit: AuditSink | None = None,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> tuple[IntakeOrchestrator, RuntimeAssets]:
    config = config or EngineConfig()
    clock = clock or ZoneClock(config.time_zone)
    calculator, assets = build_calculator(config)
    validator = StepValidator(
        scheme=config.impact_scheme,
        clock=clock,
        future_tolerance=timedelta(minutes=config.future_start_tolerance_minutes),
    )
    orchestrator = IntakeOrchestrator(
        calculator=calculator,
        validator=validator,
        store=store if store is not None else InMemoryIncidentStore(),
        audit=audit if audit is not None else InMemoryAuditLog(),
        clock=clock,
        notifier=notifier,
        tracking_numbers=TrackingNumberGenerator(
            clock,
            prefix=config.tracking_prefix,
            date_format=config.tracking_date_format,
            modulo=config.tracking_sequence_modulo,
        ),
    )
    return orchestrator, assets
