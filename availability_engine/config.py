from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .booking import DEFAULT_INCLUDE_STATUSES, RESERVATION_STATUSES, STATUS_CONFIRMED, normalize_statuses

DEFAULT_CONFIG_FILE = "availability.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class EngineSettings:
    data_dir: Path = Path("data")
    include_statuses: frozenset[str] = DEFAULT_INCLUDE_STATUSES
    admitted_status: str = STATUS_CONFIRMED
    lock_timeout: float | None = 10.0
    log_level: str = "INFO"


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Build settings from an optional YAML file, then environment overrides.

    Recognised variables: AVAILABILITY_DATA_DIR, AVAILABILITY_INCLUDE_STATUSES
    (comma separated), AVAILABILITY_ADMITTED_STATUS, AVAILABILITY_LOCK_TIMEOUT
    (seconds, ``none`` waits forever) and AVAILABILITY_LOG_LEVEL.
    """
    env = os.environ if environ is None else environ
    settings = EngineSettings()

    config_path = Path(path) if path is not None else Path(env.get("AVAILABILITY_CONFIG", DEFAULT_CONFIG_FILE))
    if config_path.exists():
        settings = _apply(settings, _read_config_file(config_path))
    elif path is not None:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    overrides: dict[str, Any] = {}
    if "AVAILABILITY_DATA_DIR" in env:
        overrides["data_dir"] = env["AVAILABILITY_DATA_DIR"]
    if "AVAILABILITY_INCLUDE_STATUSES" in env:
        overrides["include_statuses"] = [part for part in env["AVAILABILITY_INCLUDE_STATUSES"].split(",") if part.strip()]
    if "AVAILABILITY_ADMITTED_STATUS" in env:
        overrides["admitted_status"] = env["AVAILABILITY_ADMITTED_STATUS"]
    if "AVAILABILITY_LOCK_TIMEOUT" in env:
        overrides["lock_timeout"] = env["AVAILABILITY_LOCK_TIMEOUT"]
    if "AVAILABILITY_LOG_LEVEL" in env:
        overrides["log_level"] = env["AVAILABILITY_LOG_LEVEL"]
    return _apply(settings, overrides)


def _read_config_file(path: Path) -> dict[str, Any]:
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return payload


def _apply(settings: EngineSettings, values: Mapping[str, Any]) -> EngineSettings:
    unknown = sorted(set(values) - {"data_dir", "include_statuses", "admitted_status", "lock_timeout", "log_level"})
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(unknown)}")

    changes: dict[str, Any] = {}
    if "data_dir" in values:
        changes["data_dir"] = Path(str(values["data_dir"]))
    if "include_statuses" in values:
        statuses = values["include_statuses"]
        if isinstance(statuses, str):
            statuses = [part for part in statuses.split(",") if part.strip()]
        changes["include_statuses"] = normalize_statuses(statuses)
    if "admitted_status" in values:
        status = str(values["admitted_status"]).strip().lower()
        if status not in RESERVATION_STATUSES:
            raise ValueError(f"Unknown reservation status: {status!r}")
        changes["admitted_status"] = status
    if "lock_timeout" in values:
        changes["lock_timeout"] = _parse_timeout(values["lock_timeout"])
    if "log_level" in values:
        changes["log_level"] = str(values["log_level"]).upper()
    return replace(settings, **changes)


def _parse_timeout(value: Any) -> float | None:
    if value is None or str(value).strip().lower() in {"", "none"}:
        return None
    timeout = float(value)
    if timeout < 0:
        raise ValueError("lock_timeout must not be negative")
    return timeout


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
