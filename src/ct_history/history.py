"""History action: decides whether to query history, then retrieves, filters and builds."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from .changelog import ChangelogBuilder, GroupingChangelogBuilder
from .config import HistoryConfig
from .constants import COMMENT, LINEEND
from .errors import ErrorCode, HistoryError
from .filters import Filter, build_filter
from .formats import HistoryFormat, make_format
from .models import ChangeSetLevel, ErrorLinePolicy, HistoryEntry
from .retriever import HistoryRetriever, HistoryRun
from .tool import RepositoryTool

logger = logging.getLogger(__name__)


class HistoryAction:
    """Answers "are there changes" and "what changed" for a view.

    Configuration is fixed at construction; every call retrieves afresh.
    Calls on one instance should be serialized when the tool is not
    reentrant.
    """

    def __init__(
        self,
        tool: RepositoryTool,
        history_format: HistoryFormat,
        changelog_builder: ChangelogBuilder[Any] | None = None,
        history_filter: Filter | None = None,
        changeset: ChangeSetLevel = ChangeSetLevel.BRANCH,
        use_recurse: bool = False,
        dynamic_view: bool = False,
        extended_view_path: str | None = None,
        error_line_policy: ErrorLinePolicy = ErrorLinePolicy.LOG,
    ) -> None:
        """Create an action bound to a tool, a line format and a change-log builder."""
        self.tool = tool
        self.format = history_format
        self.changelog_builder = changelog_builder or GroupingChangelogBuilder()
        self.filter = history_filter
        self.changeset = ChangeSetLevel(changeset)
        self.use_recurse = use_recurse
        self.dynamic_view = dynamic_view
        self.extended_view_path = extended_view_path
        self.error_line_policy = ErrorLinePolicy(error_line_policy)

    @classmethod
    def from_config(
        cls,
        config: HistoryConfig,
        tool: RepositoryTool,
        changelog_builder: ChangelogBuilder[Any] | None = None,
    ) -> HistoryAction:
        return cls(
            tool=tool,
            history_format=make_format(
                config.format,
                fields=config.field_names,
                separator=config.separator,
                date_formats=config.date_formats,
            ),
            changelog_builder=changelog_builder
            or GroupingChangelogBuilder(config.max_time_difference_ms),
            history_filter=build_filter(config.filters),
            changeset=config.changeset,
            use_recurse=config.use_recurse,
            dynamic_view=config.dynamic_view,
            extended_view_path=config.extended_view_path or None,
            error_line_policy=config.error_line_policy,
        )

    @property
    def history_format(self) -> str:
        """Complete `-fmt` template: fields, then comment, then line end."""
        return f"{self.format.format}{COMMENT}{LINEEND}"

    @property
    def need_minor_events(self) -> bool:
        return self.filter is not None and self.filter.requires_minor_events

    def has_changes(
        self,
        time: datetime,
        view_path: str,
        view_tag: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str] | None,
    ) -> bool:
        return len(self.check_changes(time, view_path, view_tag, branch_names, path_rules).entries) > 0

    def get_changes(
        self,
        time: datetime,
        view_path: str,
        view_tag: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str] | None,
    ) -> list[Any]:
        return self.collect_changes(time, view_path, view_tag, branch_names, path_rules).records

    def check_changes(
        self,
        time: datetime,
        view_path: str,
        view_tag: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str] | None,
    ) -> HistoryRun:
        """Like `has_changes`, but keeps the filtered entries and tool diagnostics."""
        if not self.needs_history_for_has_changes(view_tag, path_rules):
            return HistoryRun()
        return self._run_and_filter(time, view_path, view_tag, branch_names, path_rules or [])

    def collect_changes(
        self,
        time: datetime,
        view_path: str,
        view_tag: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str] | None,
    ) -> HistoryRun:
        """Like `get_changes`, but keeps the filtered entries and tool diagnostics."""
        if not self.needs_history_for_get_changes(view_tag, path_rules):
            return HistoryRun()
        run = self._run_and_filter(time, view_path, view_tag, branch_names, path_rules or [])
        run.records = list(self.changelog_builder(view_path, run.entries))
        return run

    def needs_history_for_has_changes(self, view_tag: str, path_rules: Sequence[str] | None) -> bool:
        # no history for a missing view or an empty load scope
        return self.tool.does_view_exist(view_tag) and bool(path_rules)

    def needs_history_for_get_changes(self, view_tag: str, path_rules: Sequence[str] | None) -> bool:
        # every change-set level except NONE needs the history query
        return self.changeset != ChangeSetLevel.NONE and self.needs_history_for_has_changes(
            view_tag, path_rules
        )

    def filter_entries(self, entries: list[HistoryEntry]) -> list[HistoryEntry]:
        if self.filter is None:
            logger.debug("no filter")
            return entries
        filtered: list[HistoryEntry] = []
        for entry in entries:
            accepted = self.filter.accept(entry)
            logger.debug("filter=%r entry=%s@%s accepted=%s", self.filter, entry.element, entry.version_id, accepted)
            if accepted:
                filtered.append(entry)
        return filtered

    def run_history(
        self,
        time: datetime,
        view_path: str,
        view_tag: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str],
    ) -> HistoryRun:
        """Start the view if needed and return the unfiltered entries."""
        if view_path is None:
            raise HistoryError(
                ErrorCode.INVALID_INPUT,
                "view_path is required to query history",
                "Pass the view root directory.",
            )
        self._prepare_view(view_tag)
        retriever = HistoryRetriever(
            self.tool,
            self.format,
            self.history_format,
            need_minor_events=self.need_minor_events,
            recursive=self.use_recurse,
            extended_view_path=self.extended_view_path,
            error_line_policy=self.error_line_policy,
        )
        entries = retriever.retrieve(time, view_path, branch_names, path_rules)
        return HistoryRun(
            entries=entries,
            tool_errors=retriever.tool_errors,
            failed_branches=retriever.failed_branches,
        )

    def _prepare_view(self, view_tag: str) -> None:
        if self.dynamic_view:
            self.tool.start_view(view_tag)

    def _run_and_filter(
        self,
        time: datetime,
        view_path: str,
        view_tag: str,
        branch_names: Sequence[str] | None,
        path_rules: Sequence[str],
    ) -> HistoryRun:
        run = self.run_history(time, view_path, view_tag, branch_names, path_rules)
        filtered = self.filter_entries(run.entries)
        logger.debug("@%s history entries=%d -> %d", time, len(run.entries), len(filtered))
        run.entries = filtered
        return run
