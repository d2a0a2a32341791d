"""Repository tool adapters used to query history."""

from __future__ import annotations

import io
import logging
import subprocess
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol, TextIO

from .constants import CLEARTOOL_EXECUTABLE, DEFAULT_ENCODING, SINCE_DATE_FORMAT
from .errors import ErrorCode, HistoryError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class RepositoryTool(Protocol):
    """What history retrieval needs from the version-control tool."""

    def does_view_exist(self, view_tag: str) -> bool:
        ...

    def start_view(self, view_tag: str) -> None:
        ...

    def open_history_stream(
        self,
        history_format: str,
        since: datetime,
        view_path: str,
        branch: str,
        path_rules: Sequence[str],
        need_minor_events: bool,
        recursive: bool,
    ) -> TextIO:
        ...


def _run(cmd: list[str], cwd: str | None = None, encoding: str = DEFAULT_ENCODING) -> subprocess.CompletedProcess:
    # undecodable comment bytes become U+FFFD
    return subprocess.run(
        cmd,
        cwd=cwd,
        check=False,
        encoding=encoding,
        errors="replace",
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )


def format_since(since: datetime) -> str:
    """Render a lower time bound the way `lshistory -since` expects it.

    Naive times are taken as local time, like the entry dates `%Nd` yields.
    """
    since = since.astimezone(timezone.utc)
    return since.strftime(SINCE_DATE_FORMAT).lower()


class ClearTool:
    """Runs the `cleartool` executable."""

    def __init__(
        self,
        executable: str = CLEARTOOL_EXECUTABLE,
        runner: Runner | None = None,
        encoding: str = DEFAULT_ENCODING,
    ) -> None:
        self.executable = executable
        self.encoding = encoding
        self._runner = runner or _run

    def does_view_exist(self, view_tag: str) -> bool:
        result = self._invoke(["lsview", view_tag])
        return result.returncode == 0

    def start_view(self, view_tag: str) -> None:
        result = self._invoke(["startview", view_tag])
        if result.returncode != 0:
            raise HistoryError(
                ErrorCode.TOOL_FAILURE,
                f"Unable to start view '{view_tag}'",
                "Check that the view tag exists and the view server is reachable.",
                {"output": (result.stdout or "").strip(), "returncode": result.returncode},
            )

    def open_history_stream(
        self,
        history_format: str,
        since: datetime,
        view_path: str,
        branch: str,
        path_rules: Sequence[str],
        need_minor_events: bool,
        recursive: bool,
    ) -> TextIO:
        args = self.lshistory_args(history_format, since, branch, path_rules, need_minor_events, recursive)
        result = self._invoke(args, cwd=view_path)
        output = result.stdout or ""
        # lshistory keeps going past per-path errors; those show up as error lines
        if result.returncode != 0 and not output.strip():
            raise HistoryError(
                ErrorCode.TOOL_FAILURE,
                "lshistory failed without output",
                "Run the command manually inside the view to diagnose.",
                {"args": args, "returncode": result.returncode},
            )
        return io.StringIO(output)

    @staticmethod
    def lshistory_args(
        history_format: str,
        since: datetime,
        branch: str,
        path_rules: Sequence[str],
        need_minor_events: bool,
        recursive: bool,
    ) -> list[str]:
        args = ["lshistory", "-r" if recursive else "-all"]
        args += ["-since", format_since(since)]
        args += ["-fmt", history_format]
        if branch:
            args += ["-branch", f"brtype:{branch}"]
        if need_minor_events:
            args.append("-minor")
        args.append("-nco")
        args.extend(path_rules)
        return args

    def _invoke(self, args: list[str], cwd: str | None = None) -> subprocess.CompletedProcess:
        cmd = [self.executable, *args]
        logger.debug("Running %s (cwd=%s)", cmd, cwd)
        try:
            return self._runner(cmd, cwd=cwd, encoding=self.encoding)
        except OSError as exc:
            raise HistoryError(
                ErrorCode.TOOL_FAILURE,
                f"Unable to run {self.executable}",
                "Install ClearCase client tools or set the cleartool executable path.",
                {"command": cmd},
            ) from exc


class RecordedTool:
    """Replays captured `lshistory` output for every branch query."""

    def __init__(
        self,
        path: Path,
        views: Sequence[str] | None = None,
        encoding: str = DEFAULT_ENCODING,
    ) -> None:
        self.path = path
        self.encoding = encoding
        self.views = set(views) if views is not None else None
        self.calls: list[dict[str, Any]] = []

    def does_view_exist(self, view_tag: str) -> bool:
        return self.views is None or view_tag in self.views

    def start_view(self, view_tag: str) -> None:
        logger.debug("Recorded history needs no view start (%s)", view_tag)

    def open_history_stream(
        self,
        history_format: str,
        since: datetime,
        view_path: str,
        branch: str,
        path_rules: Sequence[str],
        need_minor_events: bool,
        recursive: bool,
    ) -> TextIO:
        self.calls.append(
            {
                "format": history_format,
                "since": since,
                "view_path": view_path,
                "branch": branch,
                "path_rules": list(path_rules),
                "need_minor_events": need_minor_events,
                "recursive": recursive,
            }
        )
        return self.path.open("r", encoding=self.encoding, errors="replace")
