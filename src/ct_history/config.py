"""
History configuration: defaults, `.ct-history.yaml` and `CT_HISTORY_*` variables.

Later sources win: defaults < YAML file < environment < CLI overrides.
"""

from __future__ import annotations

import codecs
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import (
    CLEARTOOL_EXECUTABLE,
    CONFIG_FILE_NAME,
    DEFAULT_DATE_FORMATS,
    DEFAULT_ENCODING,
    DEFAULT_MAX_TIME_DIFFERENCE_MS,
    ENV_PREFIX,
)
from .errors import ErrorCode, HistoryError
from .formats import BASE_FIELDS, FORMAT_NAMES
from .models import ChangeSetLevel, ErrorLinePolicy, FilterSettings

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class HistoryConfig(BaseModel):
    changeset: ChangeSetLevel = ChangeSetLevel.BRANCH
    use_recurse: bool = False
    dynamic_view: bool = False
    extended_view_path: str = ""
    error_line_policy: ErrorLinePolicy = ErrorLinePolicy.LOG
    format: str = "base"
    field_names: list[str] = Field(default_factory=lambda: list(BASE_FIELDS))
    separator: str = Field(default="|", min_length=1)
    date_formats: list[str] = Field(default_factory=lambda: list(DEFAULT_DATE_FORMATS), min_length=1)
    max_time_difference_ms: int = Field(default=DEFAULT_MAX_TIME_DIFFERENCE_MS, ge=0)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    cleartool: str = CLEARTOOL_EXECUTABLE
    encoding: str = DEFAULT_ENCODING
    log_level: str = "WARNING"

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in FORMAT_NAMES:
            allowed = ", ".join(sorted(FORMAT_NAMES))
            raise ValueError(f"format must be one of: {allowed}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(LOG_LEVELS))}")
        return normalized

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            return codecs.lookup(value.strip()).name
        except LookupError as exc:
            raise ValueError(f"unknown encoding: {value}") from exc


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> HistoryConfig:
    """Merge defaults, the YAML file, environment variables and overrides.

    Without an explicit `path`, `.ct-history.yaml` in the working directory
    is used when present.
    """
    source = os.environ if env is None else env
    if path is None:
        candidate = Path.cwd() / CONFIG_FILE_NAME
        data = read_yaml(candidate) if candidate.exists() else {}
    else:
        if not path.exists():
            raise HistoryError(
                ErrorCode.INVALID_CONFIG,
                f"Config file not found: {path}",
                "Check the --config path.",
            )
        data = read_yaml(path)

    data.update(env_overrides(source))
    if overrides:
        data.update({key: value for key, value in overrides.items() if value is not None})
    return HistoryConfig(**data)


def read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except PermissionError as exc:
        raise HistoryError(
            ErrorCode.INVALID_CONFIG,
            f"Permission denied while reading {path}",
            "Check file permissions and try again.",
        ) from exc
    except yaml.YAMLError as exc:
        raise HistoryError(
            ErrorCode.INVALID_CONFIG,
            f"Invalid YAML in {path}",
            "Fix the syntax of the configuration file.",
            {"error": str(exc)},
        ) from exc
    if isinstance(loaded, dict):
        return loaded
    return {}


def env_overrides(source: Mapping[str, str]) -> dict[str, Any]:
    """Collect `CT_HISTORY_*` settings present in `source`."""
    values: dict[str, Any] = {}
    for key in (
        "changeset",
        "extended_view_path",
        "error_line_policy",
        "format",
        "separator",
        "cleartool",
        "encoding",
        "log_level",
    ):
        raw = source.get(f"{ENV_PREFIX}{key.upper()}")
        if raw is not None and str(raw).strip():
            values[key] = str(raw).strip()
    for key in ("use_recurse", "dynamic_view"):
        parsed = _parse_bool_env(source, f"{ENV_PREFIX}{key.upper()}")
        if parsed is not None:
            values[key] = parsed
    max_time = _parse_int_env(source, f"{ENV_PREFIX}MAX_TIME_DIFFERENCE_MS", min_value=0)
    if max_time is not None:
        values["max_time_difference_ms"] = max_time
    date_formats = source.get(f"{ENV_PREFIX}DATE_FORMATS")
    if date_formats is not None and date_formats.strip():
        values["date_formats"] = [item.strip() for item in date_formats.split(",") if item.strip()]
    return values


def _parse_bool_env(source: Mapping[str, str], key: str) -> bool | None:
    raw = source.get(key)
    if raw is None or not str(raw).strip():
        return None
    normalized = str(raw).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean value (true/false).")


def _parse_int_env(source: Mapping[str, str], key: str, min_value: int | None = None) -> int | None:
    raw = source.get(key)
    if raw is None or not str(raw).strip():
        return None
    try:
        parsed = int(str(raw).strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer.") from exc
    if min_value is not None and parsed < min_value:
        raise ValueError(f"{key} must be >= {min_value}.")
    return parsed
