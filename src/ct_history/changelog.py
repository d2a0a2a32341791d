"""Change-log builders turning filtered history entries into records."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, TypeVar

from .constants import DEFAULT_MAX_TIME_DIFFERENCE_MS
from .models import ChangeLogElement, ChangeLogRecord, HistoryEntry

RecordT = TypeVar("RecordT", covariant=True)


class ChangelogBuilder(Protocol[RecordT]):
    """Converts normalized, filtered entries (in retrieval order) into records."""

    def __call__(self, view_path: str, entries: Sequence[HistoryEntry]) -> list[RecordT]:
        ...


class GroupingChangelogBuilder:
    """Folds consecutive entries of one check-in into a single record.

    Entries belong together when they share user and comment and their
    timestamps are at most `max_time_difference_ms` apart.
    """

    def __init__(self, max_time_difference_ms: int = DEFAULT_MAX_TIME_DIFFERENCE_MS) -> None:
        if max_time_difference_ms < 0:
            raise ValueError("max_time_difference_ms must be >= 0.")
        self.max_time_difference_ms = max_time_difference_ms

    def __call__(self, view_path: str, entries: Sequence[HistoryEntry]) -> list[ChangeLogRecord]:
        records: list[ChangeLogRecord] = []
        last_entry: HistoryEntry | None = None
        for entry in entries:
            if last_entry is not None and records and self._same_change(last_entry, entry):
                record = records[-1]
            else:
                record = ChangeLogRecord(
                    date=entry.date,
                    user=entry.user,
                    comment=entry.comment,
                    activity_name=entry.activity_name,
                )
                records.append(record)
            record.elements.append(
                ChangeLogElement(
                    file=entry.element,
                    version=entry.version_id,
                    branch=entry.branch,
                    operation=entry.operation,
                    action=entry.event,
                )
            )
            last_entry = entry
        return records

    def _same_change(self, previous: HistoryEntry, entry: HistoryEntry) -> bool:
        if previous.user != entry.user or previous.comment != entry.comment:
            return False
        if previous.date is None or entry.date is None:
            return previous.date is entry.date
        delta_ms = abs((entry.date - previous.date).total_seconds()) * 1000
        return delta_ms <= self.max_time_difference_ms


def entries_changelog(view_path: str, entries: Sequence[HistoryEntry]) -> list[HistoryEntry]:
    """Builder that hands the entries back unchanged."""
    return list(entries)
