"""Pydantic models for history entries, change-log records and responses."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeSetLevel(str, Enum):
    """How much change-set information is collected for a build."""

    NONE = "none"
    BRANCH = "branch"
    UPDT = "updt"
    ALL = "all"


class ErrorLinePolicy(str, Enum):
    """Severity used when the tool reports an error inside its history output."""

    IGNORE = "ignore"
    LOG = "log"
    WARN = "warn"


class HistoryEntry(BaseModel):
    """One record of `lshistory` output.

    Created from an entry-start line; the comment grows while continuation
    lines are read and is left alone once parsing is done.
    """

    date: datetime | None = None
    date_text: str = ""
    user: str = ""
    event: str = ""
    element: str = ""
    version_id: str = ""
    operation: str = ""
    activity_name: str = ""
    comment: str = ""
    line: str = ""

    def append_comment(self, text: str) -> HistoryEntry:
        self.comment += text
        return self

    def normalize(self, extended_view_path: str | None) -> HistoryEntry:
        """Strip the extended view path from the element, ignoring case."""
        if extended_view_path and self.element.lower().startswith(extended_view_path.lower()):
            self.element = self.element[len(extended_view_path):]
        return self

    @property
    def branch(self) -> str:
        """Branch part of the version id, e.g. `\\main\\dev` for `\\main\\dev\\4`.

        Both separators are understood: `/main/dev/4` gives `/main/dev`.
        """
        split = self._version_split()
        return self.version_id[:split] if split >= 0 else ""

    @property
    def version_number(self) -> str:
        """Last component of the version id, `4` for `\\main\\dev\\4`."""
        return self.version_id[self._version_split() + 1 :]

    def _version_split(self) -> int:
        return max(self.version_id.rfind("\\"), self.version_id.rfind("/"))


class FilterSettings(BaseModel):
    """Declarative filter selection; list fields also take a single string."""

    model_config = ConfigDict(extra="forbid")

    default: bool = False
    include_paths: list[str] = Field(default_factory=list)
    exclude_paths: list[str] = Field(default_factory=list)
    users: list[str] = Field(default_factory=list)
    exclude_users: list[str] = Field(default_factory=list)
    minor_events: bool = False

    @field_validator("include_paths", "exclude_paths", "users", "exclude_users", mode="before")
    @classmethod
    def _wrap_scalar(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class ChangeLogElement(BaseModel):
    file: str
    version: str = ""
    branch: str = ""
    operation: str = ""
    action: str = ""


class ChangeLogRecord(BaseModel):
    date: datetime | None = None
    user: str = ""
    comment: str = ""
    activity_name: str = ""
    elements: list[ChangeLogElement] = Field(default_factory=list)


class BaseToolResponse(BaseModel):
    status: Literal["success", "error"]
    message: str = ""
    error_code: str = ""
    suggestion: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class HasChangesResponse(BaseToolResponse):
    view_tag: str = ""
    branches: list[str] = Field(default_factory=list)
    has_changes: bool = False
    tool_errors: list[str] = Field(default_factory=list)
    failed_branches: list[str] = Field(default_factory=list)


class ChangeLogResponse(BaseToolResponse):
    view_tag: str = ""
    branches: list[str] = Field(default_factory=list)
    count: int = 0
    records: list[ChangeLogRecord] = Field(default_factory=list)
    tool_errors: list[str] = Field(default_factory=list)
    failed_branches: list[str] = Field(default_factory=list)


class ParseResponse(BaseToolResponse):
    source: str = ""
    count: int = 0
    entries: list[HistoryEntry] = Field(default_factory=list)
    tool_errors: list[str] = Field(default_factory=list)
