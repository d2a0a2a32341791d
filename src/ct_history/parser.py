"""Line-oriented parser for `lshistory` output."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .constants import CLEARTOOL_ERROR_PREFIX
from .formats import HistoryFormat
from .models import ErrorLinePolicy, HistoryEntry

logger = logging.getLogger(__name__)

_ERROR_LOG_LEVELS = {
    ErrorLinePolicy.IGNORE: logging.DEBUG,
    ErrorLinePolicy.LOG: logging.INFO,
    ErrorLinePolicy.WARN: logging.WARNING,
}


class HistoryParser:
    """Split a history stream into entries.

    Lines accepted by the format open a new entry; any other line is comment
    text of the entry opened last. Tool error lines never reach the format
    and are kept in `tool_errors`.
    """

    def __init__(
        self,
        history_format: HistoryFormat,
        extended_view_path: str | None = None,
        error_line_policy: ErrorLinePolicy = ErrorLinePolicy.LOG,
    ) -> None:
        self.history_format = history_format
        self.extended_view_path = extended_view_path
        self.error_line_policy = error_line_policy
        self.tool_errors: list[str] = []
        self.dropped_lines = 0

    def parse(self, lines: Iterable[str], history: list[HistoryEntry]) -> list[HistoryEntry]:
        """Append the entries read from `lines` to `history` and return it.

        Raises `HistoryError(MALFORMED_ENTRY)` when a start line cannot be
        turned into an entry.
        """
        current: HistoryEntry | None = None
        for raw_line in lines:
            line = raw_line.rstrip("\r\n")
            if is_tool_error(line):
                self._process_error(line)
                continue

            match = self.history_format.check_line(line)
            if match is not None:
                current = self.history_format.parse_entry_line(match, line).normalize(
                    self.extended_view_path
                )
                history.append(current)
            elif current is not None:
                current.append_comment(line).append_comment("\n")
            else:
                self.dropped_lines += 1
                logger.warning("Got the comment %r but couldn't attach it to any entry", line)
        return history

    def _process_error(self, line: str) -> None:
        self.tool_errors.append(line)
        logger.log(_ERROR_LOG_LEVELS[self.error_line_policy], "History tool reported: %s", line)


def is_tool_error(line: str) -> bool:
    return line.startswith(CLEARTOOL_ERROR_PREFIX)
