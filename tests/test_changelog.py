from __future__ import annotations

from datetime import datetime

import pytest

from ct_history.changelog import GroupingChangelogBuilder, entries_changelog
from ct_history.models import HistoryEntry


def _entry(element: str, seconds: int, user: str = "alice", comment: str = "fix\n") -> HistoryEntry:
    return HistoryEntry(
        date=datetime(2024, 1, 1, 10, 0, seconds),
        user=user,
        element=element,
        version_id="\\main\\2",
        operation="checkin",
        event="create version",
        comment=comment,
    )


def test_groups_same_user_and_comment_within_window() -> None:
    builder = GroupingChangelogBuilder(max_time_difference_ms=1000)
    records = builder("/view", [_entry("/a", 0), _entry("/b", 1), _entry("/c", 5)])
    assert [[e.file for e in record.elements] for record in records] == [["/a", "/b"], ["/c"]]
    assert records[0].user == "alice"
    assert records[0].comment == "fix\n"
    assert records[0].elements[0].version == "\\main\\2"
    assert records[0].elements[0].operation == "checkin"
    assert records[0].elements[0].action == "create version"


def test_different_user_or_comment_starts_new_record() -> None:
    builder = GroupingChangelogBuilder()
    records = builder(
        "/view",
        [_entry("/a", 0), _entry("/b", 0, user="bob"), _entry("/c", 0, user="bob", comment="other\n")],
    )
    assert len(records) == 3


def test_entries_without_dates_group_together() -> None:
    builder = GroupingChangelogBuilder()
    first = HistoryEntry(user="u", element="/a")
    second = HistoryEntry(user="u", element="/b")
    assert len(builder("/view", [first, second])) == 1


def test_record_order_follows_entry_order() -> None:
    builder = GroupingChangelogBuilder(max_time_difference_ms=0)
    records = builder("/view", [_entry("/late", 30), _entry("/early", 0)])
    assert [record.elements[0].file for record in records] == ["/late", "/early"]


def test_negative_window_is_rejected() -> None:
    with pytest.raises(ValueError):
        GroupingChangelogBuilder(max_time_difference_ms=-1)


def test_entries_changelog_returns_copy() -> None:
    entries = [_entry("/a", 0)]
    result = entries_changelog("/view", entries)
    assert result == entries
    assert result is not entries
