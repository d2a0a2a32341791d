"""
History line formats.

A format knows three things about `lshistory` output: the `-fmt` template
to request, how to recognize the line that opens an entry, and how to turn
that line into a `HistoryEntry`.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from .constants import (
    DATE_NUMERIC,
    DEFAULT_DATE_FORMATS,
    EVENT,
    NAME_ELEMENTNAME,
    NAME_VERSIONID,
    OPERATION,
    UCM_VERSION_ACTIVITY,
    USER_ID,
)
from .errors import ErrorCode, HistoryError
from .models import HistoryEntry

FIELD_DIRECTIVES: dict[str, str] = {
    "date": DATE_NUMERIC,
    "user": USER_ID,
    "event": EVENT,
    "element": NAME_ELEMENTNAME,
    "version_id": NAME_VERSIONID,
    "operation": OPERATION,
    "activity_name": UCM_VERSION_ACTIVITY,
}
FIELD_ALIASES = {
    "path": "element",
    "ver": "version_id",
    "version": "version_id",
    "activity": "activity_name",
}
BASE_FIELDS = ("date", "user", "event", "element", "version_id", "operation")
UCM_FIELDS = (*BASE_FIELDS, "activity_name")
FORMAT_NAMES = {"base", "ucm", "delimited"}


class HistoryFormat(ABC):
    """Abstract line format for history output."""

    @property
    @abstractmethod
    def format(self) -> str:
        """Field part of the `-fmt` template (without comment and line end)."""

    @abstractmethod
    def check_line(self, line: str) -> re.Match[str] | None:
        """Return a match when `line` opens a new entry."""

    @abstractmethod
    def parse_entry_line(self, match: re.Match[str], line: str) -> HistoryEntry:
        """Build an entry from a line already accepted by `check_line`."""


class FieldFormat(HistoryFormat):
    """Format made of named fields, each bound to a cleartool directive."""

    def __init__(
        self,
        fields: Sequence[str],
        date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
    ) -> None:
        normalized = tuple(FIELD_ALIASES.get(name, name) for name in fields)
        unknown = [name for name in normalized if name not in FIELD_DIRECTIVES]
        if unknown:
            raise ValueError(f"Unknown history fields: {', '.join(unknown)}")
        if not normalized:
            raise ValueError("A history format needs at least one field.")
        if len(set(normalized)) != len(normalized):
            raise ValueError("History fields must be unique.")
        self.fields = normalized
        self.date_formats = tuple(date_formats)
        self._pattern = re.compile(self._build_pattern())

    @property
    def directives(self) -> tuple[str, ...]:
        return tuple(FIELD_DIRECTIVES[name] for name in self.fields)

    @property
    def pattern(self) -> re.Pattern[str]:
        return self._pattern

    def check_line(self, line: str) -> re.Match[str] | None:
        return self._pattern.match(line)

    def parse_entry_line(self, match: re.Match[str], line: str) -> HistoryEntry:
        values = {name: match.group(name) for name in self.fields}
        entry = HistoryEntry(line=line)
        for name, value in values.items():
            if name == "date":
                entry.date_text = value
                entry.date = self._parse_date(value, line)
            elif name == "user":
                entry.user = value.strip()
            else:
                setattr(entry, name, value)

        trailing = match.group("comment")
        if trailing:
            entry.append_comment(trailing).append_comment("\n")
        return entry

    def _parse_date(self, value: str, line: str) -> datetime:
        text = value.strip()
        for layout in self.date_formats:
            try:
                return datetime.strptime(text, layout)
            except ValueError:
                continue
        raise HistoryError(
            ErrorCode.MALFORMED_ENTRY,
            f"Unparseable date '{value}' in history line",
            "Check the configured date_formats against the tool output.",
            {"line": line, "date_formats": list(self.date_formats)},
        )

    @abstractmethod
    def _build_pattern(self) -> str:
        ...


class QuotedFieldFormat(FieldFormat):
    """cleartool style: every field wrapped in double quotes, space separated.

    `"20240101.100000" "alice" "create version" "/vobs/a.c" "\\main\\3" "checkin" first comment line`
    """

    @property
    def format(self) -> str:
        return "".join(f'\\"{directive}\\" ' for directive in self.directives)

    def _build_pattern(self) -> str:
        groups = " ".join(f'"(?P<{name}>[^"]*)"' for name in self.fields)
        return f"^{groups}(?: (?P<comment>.*))?$"


class DelimitedFieldFormat(FieldFormat):
    """Fields joined by a separator, e.g. `date|user|path|version|comment`."""

    def __init__(
        self,
        fields: Sequence[str],
        separator: str = "|",
        date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
    ) -> None:
        if not separator:
            raise ValueError("separator must be non-empty.")
        self.separator = separator
        super().__init__(fields, date_formats=date_formats)

    @property
    def format(self) -> str:
        return self.separator.join(self.directives) + self.separator

    def _build_pattern(self) -> str:
        sep = re.escape(self.separator)
        groups = sep.join(f"(?P<{name}>(?:(?!{sep}).)*)" for name in self.fields)
        return f"^{groups}(?:{sep}(?P<comment>.*))?$"


def base_format(date_formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> QuotedFieldFormat:
    return QuotedFieldFormat(BASE_FIELDS, date_formats=date_formats)


def ucm_format(date_formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> QuotedFieldFormat:
    return QuotedFieldFormat(UCM_FIELDS, date_formats=date_formats)


def make_format(
    name: str,
    fields: Sequence[str] = BASE_FIELDS,
    separator: str = "|",
    date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
) -> HistoryFormat:
    """Build a format from its configuration name."""
    if name == "base":
        return base_format(date_formats)
    if name == "ucm":
        return ucm_format(date_formats)
    if name == "delimited":
        return DelimitedFieldFormat(fields, separator=separator, date_formats=date_formats)
    allowed = ", ".join(sorted(FORMAT_NAMES))
    raise ValueError(f"Unknown history format '{name}'. Expected one of: {allowed}.")
