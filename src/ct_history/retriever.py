"""Per-branch history retrieval."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .errors import ErrorCode, HistoryError
from .formats import HistoryFormat
from .models import ErrorLinePolicy, HistoryEntry
from .parser import HistoryParser
from .tool import RepositoryTool

logger = logging.getLogger(__name__)


@dataclass
class HistoryRun:
    """Outcome of one history query.

    `records` is only filled for change-log queries. `tool_errors` holds the
    tool error lines seen on every branch and `failed_branches` the branches
    whose output could not be parsed.
    """

    entries: list[HistoryEntry] = field(default_factory=list)
    records: list[Any] = field(default_factory=list)
    tool_errors: list[str] = field(default_factory=list)
    failed_branches: list[str] = field(default_factory=list)


def normalize_branches(branch_names: Sequence[str] | None) -> list[str]:
    """Return the branches to query; no branch means one unrestricted query."""
    if not branch_names:
        return [""]
    return list(branch_names)


class HistoryRetriever:
    """Query the tool once per branch and merge the parsed entries in branch order."""

    def __init__(
        self,
        tool: RepositoryTool,
        history_format: HistoryFormat,
        format_template: str,
        need_minor_events: bool = False,
        recursive: bool = False,
        extended_view_path: str | None = None,
        error_line_policy: ErrorLinePolicy = ErrorLinePolicy.LOG,
    ) -> None:
        self.tool = tool
        self.history_format = history_format
        self.format_template = format_template
        self.need_minor_events = need_minor_events
        self.recursive = recursive
        self.extended_view_path = extended_view_path
        self.error_line_policy = error_line_policy
        self.tool_errors: list[str] = []
        self.failed_branches: list[str] = []

    def retrieve(
        self,
        time: datetime,
        view_path: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str],
    ) -> list[HistoryEntry]:
        history: list[HistoryEntry] = []
        for branch in normalize_branches(branch_names):
            history.extend(self._retrieve_branch(time, view_path, branch, path_rules))
        return history

    def _retrieve_branch(
        self,
        time: datetime,
        view_path: str,
        branch: str,
        path_rules: Sequence[str],
    ) -> list[HistoryEntry]:
        parser = HistoryParser(
            self.history_format,
            extended_view_path=self.extended_view_path,
            error_line_policy=self.error_line_policy,
        )
        entries: list[HistoryEntry] = []
        stream = self.tool.open_history_stream(
            self.format_template,
            time,
            view_path,
            branch,
            path_rules,
            self.need_minor_events,
            self.recursive,
        )
        with closing(stream):
            try:
                parser.parse(stream, entries)
            except HistoryError as exc:
                if exc.code != ErrorCode.MALFORMED_ENTRY:
                    raise
                logger.warning(
                    "Dropping history of branch %r: %s (%s)",
                    branch,
                    exc.message,
                    exc.details.get("line", ""),
                )
                self.failed_branches.append(branch)
                entries = []
            finally:
                self.tool_errors.extend(parser.tool_errors)
        return entries
