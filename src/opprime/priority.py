from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .catalog import (
    ImpactedUserCount,
    ImpactLevel,
    ImpactScheme,
    LOWEST_PRIORITY,
    PriorityCode,
    UrgencyLevel,
    bucket_count,
    user_count_bucket,
)

logger = logging.getLogger(__name__)

P1, P2, P3, P4 = PriorityCode.P1, PriorityCode.P2, PriorityCode.P3, PriorityCode.P4


class PriorityMatrixError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class PriorityMatrix:
    """Urgency x impact-bucket lookup. Buckets are ordered from least to most impact."""

    scheme: ImpactScheme
    rows: dict[UrgencyLevel, tuple[PriorityCode, ...]]

    @classmethod
    def user_count_default(cls) -> "PriorityMatrix":
        return cls(
            scheme=ImpactScheme.USER_COUNT,
            rows={
                UrgencyLevel.HIGH: (P3, P2, P2, P1, P1),
                UrgencyLevel.MEDIUM: (P4, P3, P2, P2, P1),
                UrgencyLevel.LOW: (P4, P4, P3, P3, P2),
            },
        )

    @classmethod
    def impact_level_default(cls) -> "PriorityMatrix":
        return cls(
            scheme=ImpactScheme.IMPACT_LEVEL,
            rows={
                UrgencyLevel.HIGH: (P2, P1, P1),
                UrgencyLevel.MEDIUM: (P3, P2, P1),
                UrgencyLevel.LOW: (P4, P3, P2),
            },
        )

    @classmethod
    def default_for(cls, scheme: ImpactScheme) -> "PriorityMatrix":
        if scheme is ImpactScheme.IMPACT_LEVEL:
            return cls.impact_level_default()
        return cls.user_count_default()

    @property
    def bucket_count(self) -> int:
        return bucket_count(self.scheme)

    def validate_shape(self) -> None:
        missing = [u.value for u in UrgencyLevel if u not in self.rows]
        if missing:
            raise PriorityMatrixError(f"Priority matrix is missing urgency rows: {missing}")
        for urgency, row in self.rows.items():
            if len(row) != self.bucket_count:
                raise PriorityMatrixError(
                    f"Row '{urgency.value}' has {len(row)} columns, "
                    f"scheme '{self.scheme.value}' needs {self.bucket_count}"
                )

    def bucket_for(self, value: object) -> int | None:
        """Maps an impact value of this matrix's scheme to a bucket index.

        Returns None when the value does not belong to the scheme.
        """
        if value is None or isinstance(value, bool):
            return None
        if self.scheme is ImpactScheme.IMPACT_LEVEL:
            if isinstance(value, ImpactLevel):
                return value.bucket
            return None

        if isinstance(value, ImpactLevel):
            return None
        if isinstance(value, ImpactedUserCount):
            return user_count_bucket(value.value)
        if isinstance(value, int) and value > 0:
            return user_count_bucket(value)
        return None

    def lookup(self, urgency: UrgencyLevel, bucket: int) -> PriorityCode:
        return self.rows[urgency][bucket]


@dataclass(frozen=True, slots=True)
class PriorityOverrideRule:
    rule_id: str
    trigger_tags: frozenset[str]
    outcome: PriorityCode
    precedence: int = 1


@dataclass(frozen=True, slots=True)
class PriorityResult:
    code: PriorityCode
    matrix_code: PriorityCode
    source: str
    inputs_valid: bool = True
    fired_rule_ids: tuple[str, ...] = ()
    rejected_override: str | None = None

    @property
    def overridden(self) -> bool:
        return self.source != "matrix"


@dataclass(slots=True)
class PriorityCalculator:
    """Deterministic urgency x impact priority with override hooks.

    Invalid urgency or impact inputs resolve to the lowest priority instead of
    failing. An explicit override beats any rule, and a rule beats the matrix.
    """

    matrix: PriorityMatrix = field(default_factory=PriorityMatrix.user_count_default)
    rules: tuple[PriorityOverrideRule, ...] = ()

    def __post_init__(self) -> None:
        self.matrix.validate_shape()
        self.rules = tuple(self.rules)

    def calculate(
        self,
        urgency: object,
        impact: object,
        override: object = None,
        tags: Iterable[str] = (),
    ) -> PriorityResult:
        bucket = self.matrix.bucket_for(impact)
        if not isinstance(urgency, UrgencyLevel) or bucket is None:
            logger.warning("Invalid inputs for priority calculation: urgency=%r impact=%r", urgency, impact)
            return PriorityResult(code=LOWEST_PRIORITY, matrix_code=LOWEST_PRIORITY, source="fail_safe", inputs_valid=False)

        matrix_code = self.matrix.lookup(urgency, bucket)

        rejected = None
        if override is not None and str(getattr(override, "value", override)).strip():
            explicit = PriorityCode.parse(override)
            if explicit is not None:
                logger.debug("Priority override %s replaces matrix %s", explicit.value, matrix_code.value)
                return PriorityResult(code=explicit, matrix_code=matrix_code, source="override")
            rejected = str(override)
            logger.warning("Ignoring unrecognised priority override %r", override)

        fired = self.fired_rules(tags)
        if fired:
            return PriorityResult(
                code=fired[0].outcome,
                matrix_code=matrix_code,
                source=f"rule:{fired[0].rule_id}",
                fired_rule_ids=tuple(r.rule_id for r in fired),
                rejected_override=rejected,
            )

        logger.debug("Priority calculated as %s", matrix_code.value)
        return PriorityResult(code=matrix_code, matrix_code=matrix_code, source="matrix", rejected_override=rejected)

    def fired_rules(self, tags: Iterable[str]) -> list[PriorityOverrideRule]:
        tag_set = {str(t).strip().lower() for t in tags}
        fired = [r for r in self.rules if r.trigger_tags and r.trigger_tags.issubset(tag_set)]
        # higher precedence first, then more severe outcome, then rule_id
        return sorted(fired, key=lambda r: (-r.precedence, -r.outcome.severity_rank, r.rule_id))
