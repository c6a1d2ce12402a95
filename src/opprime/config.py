from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .catalog import ImpactScheme


class ConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class EngineConfig:
    impact_scheme: ImpactScheme = ImpactScheme.USER_COUNT
    time_zone: str = "America/New_York"
    tracking_prefix: str = "INC-"
    tracking_date_format: str = "%Y%m%d"
    tracking_sequence_modulo: int = 10000
    future_start_tolerance_minutes: int = 5
    priority_workbook: Path | None = None


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def load_engine_config(env_file: Path | str | None = None) -> EngineConfig:
    """Reads ``OPPRIME_*`` settings from the environment, after loading ``env_file`` if given."""
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    raw_scheme = os.environ.get("OPPRIME_IMPACT_SCHEME", ImpactScheme.USER_COUNT.value).strip().lower()
    try:
        scheme = ImpactScheme(raw_scheme)
    except ValueError as exc:
        choices = ", ".join(s.value for s in ImpactScheme)
        raise ConfigError(f"OPPRIME_IMPACT_SCHEME must be one of {choices}, got {raw_scheme!r}") from exc

    modulo = _int_env("OPPRIME_TRACKING_MODULO", 10000)
    if modulo == 0:
        raise ConfigError("OPPRIME_TRACKING_MODULO must be greater than zero")

    workbook = os.environ.get("OPPRIME_PRIORITY_WORKBOOK", "").strip()
    return EngineConfig(
        impact_scheme=scheme,
        time_zone=os.environ.get("OPPRIME_TIME_ZONE", "America/New_York").strip() or "America/New_York",
        tracking_prefix=os.environ.get("OPPRIME_TRACKING_PREFIX", "INC-"),
        tracking_date_format=os.environ.get("OPPRIME_TRACKING_DATE_FORMAT", "%Y%m%d"),
        tracking_sequence_modulo=modulo,
        future_start_tolerance_minutes=_int_env("OPPRIME_FUTURE_TOLERANCE_MINUTES", 5),
        priority_workbook=Path(workbook) if workbook else None,
    )
