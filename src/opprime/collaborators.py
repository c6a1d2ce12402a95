"""Narrow interfaces the engine calls out to, plus in-process reference implementations.

The engine never reads system time, writes to a database or sends mail
itself. Embedders pass objects satisfying these protocols; the in-memory
versions back the tests and single-process use.
"""

from __future__ import annotations

import copy
import itertools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterator, Protocol
from zoneinfo import ZoneInfo

from .catalog import StatusCode

if TYPE_CHECKING:
    from .session import IncidentRecord

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class IncidentStore(Protocol):
    def save(self, record: "IncidentRecord") -> str: ...

    def load(self, record_id: str) -> "IncidentRecord | None": ...

    def update_status(self, record_id: str, new_status: StatusCode) -> bool: ...

    def transaction(self): ...


class AuditSink(Protocol):
    def append(self, entry: "AuditEntry") -> None: ...


class Notifier(Protocol):
    def send(self, content: str, recipients: list[str]) -> bool: ...


@dataclass(frozen=True, slots=True)
class AuditEntry:
    record_id: str
    action: str
    actor: str
    timestamp: datetime
    from_status: StatusCode | None = None
    to_status: StatusCode | None = None
    reason: str | None = None

    def as_line(self) -> str:
        return "\t".join(
            [
                self.timestamp.isoformat(),
                self.actor,
                self.action,
                self.from_status.value if self.from_status else "",
                self.to_status.value if self.to_status else "",
                self.reason or "",
            ]
        )


class ZoneClock:
    """Current time in a fixed reference time zone."""

    def __init__(self, tz_name: str = "America/New_York"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self.tz)


class FixedClock:
    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs: float) -> datetime:
        self._at = self._at + timedelta(**kwargs)
        return self._at


class InMemoryIncidentStore:
    """Dict-backed store. transaction() restores the previous contents on error."""

    def __init__(self):
        self._records: dict[str, IncidentRecord] = {}
        self._ids = itertools.count(1)

    def save(self, record: "IncidentRecord") -> str:
        if record.record_id is None:
            record.record_id = f"INC{next(self._ids):06d}"
        self._records[record.record_id] = copy.deepcopy(record)
        return record.record_id

    def load(self, record_id: str) -> "IncidentRecord | None":
        stored = self._records.get(record_id)
        return copy.deepcopy(stored) if stored is not None else None

    def update_status(self, record_id: str, new_status: StatusCode) -> bool:
        stored = self._records.get(record_id)
        if stored is None:
            return False
        stored.status = new_status
        return True

    @contextmanager
    def transaction(self) -> Iterator[None]:
        before = copy.deepcopy(self._records)
        try:
            yield
        except BaseException:
            logger.debug("Rolling back in-memory store transaction")
            self._records = before
            raise

    def __len__(self) -> int:
        return len(self._records)


@dataclass(slots=True)
class InMemoryAuditLog:
    entries: list[AuditEntry] = field(default_factory=list)

    def append(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def entries_for(self, record_id: str) -> list[AuditEntry]:
        return sorted((e for e in self.entries if e.record_id == record_id), key=lambda e: e.timestamp)

    def export_lines(self, record_id: str) -> list[str]:
        return [e.as_line() for e in self.entries_for(record_id)]


@dataclass(slots=True)
class RecordingNotifier:
    accept: bool = True
    sent: list[tuple[str, list[str]]] = field(default_factory=list)

    def send(self, content: str, recipients: list[str]) -> bool:
        logger.info("Sending notice to %d recipients", len(recipients))
        self.sent.append((content, list(recipients)))
        return self.accept
