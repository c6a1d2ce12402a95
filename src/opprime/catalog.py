from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from enum import Enum


class Classification(str, Enum):
    MINOR = "minor"
    MAJOR = "major"

    @property
    def label(self) -> str:
        return "Pre-Incident" if self is Classification.MINOR else "Major Incident"


class UrgencyLevel(str, Enum):
    """Row axis of the priority matrix, most urgent first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _URGENCY_RANKS[self]

    @classmethod
    def from_rank(cls, rank: int) -> "UrgencyLevel | None":
        for level, value in _URGENCY_RANKS.items():
            if value == rank:
                return level
        return None


_URGENCY_RANKS = {
    UrgencyLevel.HIGH: 1,
    UrgencyLevel.MEDIUM: 2,
    UrgencyLevel.LOW: 3,
}


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def bucket(self) -> int:
        return list(ImpactLevel).index(self)


class ImpactedUserCount(int, Enum):
    FIVE = 5
    TEN = 10
    TWENTY = 20
    THIRTY = 30
    FORTY = 40
    FIFTY = 50
    SIXTY = 60
    SEVENTY = 70
    EIGHTY = 80
    NINETY = 90
    ONE_HUNDRED = 100
    TWO_HUNDRED = 200
    THREE_HUNDRED = 300
    FIVE_HUNDRED = 500
    SIX_HUNDRED = 600
    EIGHT_HUNDRED = 800
    ONE_THOUSAND = 1000
    TWO_THOUSAND = 2000
    FIVE_THOUSAND = 5000

    @property
    def label(self) -> str:
        return f"{self.value}~"


def nearest_user_count(count: int | None) -> ImpactedUserCount | None:
    """Snaps a raw head count up to the predefined picker value."""
    if count is None or count <= 0:
        return None
    for option in ImpactedUserCount:
        if count <= option.value:
            return option
    return ImpactedUserCount.FIVE_THOUSAND


# upper bounds (inclusive) of the first four user-count buckets
USER_COUNT_BUCKET_THRESHOLDS = (10, 50, 200, 1000)


def user_count_bucket(count: int) -> int:
    return bisect_left(USER_COUNT_BUCKET_THRESHOLDS, count)


class ImpactScheme(str, Enum):
    USER_COUNT = "user_count"
    IMPACT_LEVEL = "impact_level"


def bucket_count(scheme: ImpactScheme) -> int:
    if scheme is ImpactScheme.IMPACT_LEVEL:
        return len(ImpactLevel)
    return len(USER_COUNT_BUCKET_THRESHOLDS) + 1


class PriorityCode(str, Enum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"

    @property
    def severity_rank(self) -> int:
        # P1 is the most severe
        return 4 - int(self.value[1])

    @classmethod
    def parse(cls, value: object) -> "PriorityCode | None":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().upper()
        if text.isdigit():
            text = f"P{text}"
        try:
            return cls(text)
        except ValueError:
            return None


LOWEST_PRIORITY = PriorityCode.P4


class StatusCode(str, Enum):
    NEW = "new"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class IncidentSource(str, Enum):
    SERVICE_DESK = "service_desk"
    NOC = "noc"
    SME = "sme"
    BUSINESS_ESCALATION = "business_escalation"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class FieldLimits:
    title: int = 200
    description: int = 2000
    business_impact: int = 1000
    application: int = 200
    location: int = 300
    workaround: int = 500
    tracking_number: int = 50
    resolution: int = 2000

    def for_field(self, name: str) -> int | None:
        return getattr(self, name, None)


DEFAULT_LIMITS = FieldLimits()


def catalog_snapshot() -> dict[str, list]:
    return {
        "classification": [c.value for c in Classification],
        "urgency": [u.value for u in UrgencyLevel],
        "impact_level": [i.value for i in ImpactLevel],
        "impacted_user_count": [c.label for c in ImpactedUserCount],
        "priority": [p.value for p in PriorityCode],
        "status": [s.value for s in StatusCode],
        "incident_source": [s.value for s in IncidentSource],
    }
