"""User settings loaded from YAML and merged with CLI overrides."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from nodesmith.errors import InvalidInputError
from nodesmith.report import ReportFormat

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "NODESMITH_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/nodesmith/config.yaml")
DEFAULT_BUILD_DIR = Path("~/Downloads/bitcoin_builds")
REPORT_FORMATS = ("json", "cbor")


def default_jobs() -> int:
    return max((os.cpu_count() or 1) - 1, 1)


@dataclass(frozen=True, slots=True)
class Settings:
    build_dir: Path = field(default_factory=lambda: DEFAULT_BUILD_DIR.expanduser())
    jobs: int = field(default_factory=default_jobs)
    max_versions: int = 10
    http_timeout: float = 10.0
    continue_on_failure: bool = False
    report_format: ReportFormat | None = None
    toolchain_prefix: str | None = None


def load_settings(
    path: str | Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Build :class:`Settings` from defaults, a YAML file, then ``overrides``.

    The file is taken from ``path``, else ``$NODESMITH_CONFIG``, else the
    per-user default location when it exists. An explicitly named file that
    does not exist is an error; the per-user default is optional.
    """
    values: dict[str, Any] = {}
    config_path = _resolve_config_path(path)
    if config_path is not None:
        values.update(_read_yaml(config_path))
    if overrides:
        values.update({key: value for key, value in overrides.items() if value is not None})
    return _validate(replace(Settings(), **_coerce(values)))


def _resolve_config_path(path: str | Path | None) -> Path | None:
    if path is not None:
        return Path(path).expanduser()
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidInputError(
            "Failed to read configuration file.",
            context={"path": str(path), "reason": str(exc)},
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidInputError(
            "Configuration file is not valid YAML.",
            context={"path": str(path), "reason": str(exc)},
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInputError(
            "Configuration file must contain a mapping.",
            context={"path": str(path)},
        )
    logger.debug("Loaded configuration from %s", path)
    return data


_TYPES: dict[str, tuple[type, ...]] = {
    "build_dir": (str, Path),
    "jobs": (int,),
    "max_versions": (int,),
    "http_timeout": (int, float),
    "continue_on_failure": (bool,),
    "report_format": (str, type(None)),
    "toolchain_prefix": (str, type(None)),
}


def _coerce(values: Mapping[str, Any]) -> dict[str, Any]:
    known = {item.name for item in fields(Settings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise InvalidInputError(
            f"Unknown configuration keys: {', '.join(unknown)}.",
            hint=f"Valid keys: {', '.join(sorted(known))}.",
        )
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        expected = _TYPES[key]
        # bool is an int subclass; reject it for numeric settings.
        if not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected):
            raise InvalidInputError(
                f"Configuration key `{key}` has the wrong type.",
                context={"key": key, "value": repr(value)},
            )
        if key == "build_dir":
            value = Path(value).expanduser()
        elif key == "http_timeout":
            value = float(value)
        coerced[key] = value
    return coerced


def _validate(settings: Settings) -> Settings:
    if settings.jobs < 1:
        raise InvalidInputError("`jobs` must be at least 1.", context={"jobs": str(settings.jobs)})
    if settings.max_versions < 1:
        raise InvalidInputError(
            "`max_versions` must be at least 1.",
            context={"max_versions": str(settings.max_versions)},
        )
    if settings.http_timeout <= 0:
        raise InvalidInputError(
            "`http_timeout` must be positive.",
            context={"http_timeout": str(settings.http_timeout)},
        )
    if settings.report_format is not None and settings.report_format not in REPORT_FORMATS:
        raise InvalidInputError(
            f"Unsupported report format `{settings.report_format}`.",
            hint=f"Choose one of: {', '.join(REPORT_FORMATS)}.",
        )
    return settings


__all__ = ["CONFIG_ENV_VAR", "Settings", "default_jobs", "load_settings"]
