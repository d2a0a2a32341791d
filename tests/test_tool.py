from __future__ import annotations

import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ct_history.errors import ErrorCode, HistoryError
from ct_history.tool import ClearTool, RecordedTool, _run, format_since


class _FakeRunner:
    def __init__(self, returncode: int = 0, stdout: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.calls: list[tuple[list[str], str | None]] = []
        self.encodings: list[str] = []

    def __call__(self, cmd, cwd=None, encoding="utf-8"):
        self.calls.append((cmd, cwd))
        self.encodings.append(encoding)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.stdout)


def test_format_since_is_lowercase_utc() -> None:
    assert format_since(datetime(2024, 3, 5, 7, 8, 9, tzinfo=timezone.utc)) == "05-mar-24.07:08:09utc+0000"
    eastern = timezone(timedelta(hours=2))
    assert format_since(datetime(2024, 3, 5, 9, 8, 9, tzinfo=eastern)) == "05-mar-24.07:08:09utc+0000"


def test_lshistory_arguments_with_branch_and_minor_events() -> None:
    runner = _FakeRunner(stdout="line\n")
    tool = ClearTool(runner=runner)
    stream = tool.open_history_stream("FMT", datetime(2024, 3, 5, tzinfo=timezone.utc), "/view", "dev", ["vobs/a", "vobs/b"], True, False)
    assert stream.read() == "line\n"

    cmd, cwd = runner.calls[0]
    assert cwd == "/view"
    assert cmd == [
        "cleartool",
        "lshistory",
        "-all",
        "-since",
        "05-mar-24.00:00:00utc+0000",
        "-fmt",
        "FMT",
        "-branch",
        "brtype:dev",
        "-minor",
        "-nco",
        "vobs/a",
        "vobs/b",
    ]


def test_lshistory_arguments_without_branch_use_recursion() -> None:
    args = ClearTool.lshistory_args("FMT", datetime(2024, 3, 5), "", ["vobs"], False, True)
    assert args[:2] == ["lshistory", "-r"]
    assert "-branch" not in args
    assert "-minor" not in args


def test_failing_lshistory_with_output_keeps_error_lines() -> None:
    tool = ClearTool(runner=_FakeRunner(returncode=1, stdout="cleartool: Error: Not a vob object\n"))
    stream = tool.open_history_stream("FMT", datetime(2024, 1, 1), "/view", "", ["x"], False, False)
    assert stream.read().startswith("cleartool: Error:")


def test_failing_lshistory_without_output_raises() -> None:
    tool = ClearTool(runner=_FakeRunner(returncode=1, stdout=""))
    with pytest.raises(HistoryError) as exc_info:
        tool.open_history_stream("FMT", datetime(2024, 1, 1), "/view", "", ["x"], False, False)
    assert exc_info.value.code == ErrorCode.TOOL_FAILURE


def test_view_existence_follows_exit_status() -> None:
    assert ClearTool(runner=_FakeRunner(returncode=0)).does_view_exist("tag") is True
    assert ClearTool(runner=_FakeRunner(returncode=1)).does_view_exist("tag") is False


def test_start_view_failure_raises() -> None:
    runner = _FakeRunner(returncode=0)
    ClearTool(runner=runner).start_view("tag")
    assert runner.calls[0][0] == ["cleartool", "startview", "tag"]

    with pytest.raises(HistoryError):
        ClearTool(runner=_FakeRunner(returncode=2, stdout="no such view")).start_view("tag")


def test_missing_executable_becomes_tool_failure() -> None:
    def _missing(cmd, cwd=None, encoding="utf-8"):
        raise FileNotFoundError(cmd[0])

    with pytest.raises(HistoryError) as exc_info:
        ClearTool(executable="/nope/cleartool", runner=_missing).does_view_exist("tag")
    assert exc_info.value.code == ErrorCode.TOOL_FAILURE


def test_recorded_tool_replays_file(tmp_path: Path) -> None:
    capture = tmp_path / "history.txt"
    capture.write_text("captured\n", encoding="utf-8")
    tool = RecordedTool(capture, views=["tag"])
    assert tool.does_view_exist("tag")
    assert not tool.does_view_exist("other")
    with tool.open_history_stream("FMT", datetime(2024, 1, 1), "/view", "dev", ["vobs"], False, True) as stream:
        assert stream.read() == "captured\n"
    assert tool.calls[0]["branch"] == "dev"
    assert tool.calls[0]["recursive"] is True


def test_format_since_takes_naive_times_as_local() -> None:
    naive = datetime(2024, 3, 5, 7, 8, 9)
    assert format_since(naive) == format_since(naive.astimezone())
    assert format_since(naive) == naive.astimezone(timezone.utc).strftime("%d-%b-%y.%H:%M:%SUTC+0000").lower()


def test_run_replaces_undecodable_output(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def _fake_run(cmd, **kwargs):
        seen.update(kwargs)
        return subprocess.CompletedProcess(cmd, 0, stdout="")

    monkeypatch.setattr(subprocess, "run", _fake_run)
    _run(["cleartool", "lsview", "tag"], encoding="latin-1")
    assert seen["encoding"] == "latin-1"
    assert seen["errors"] == "replace"


def test_cleartool_forwards_encoding_to_runner() -> None:
    runner = _FakeRunner(returncode=0)
    ClearTool(runner=runner, encoding="cp1252").does_view_exist("tag")
    assert runner.encodings == ["cp1252"]


def test_recorded_tool_replaces_undecodable_bytes(tmp_path: Path) -> None:
    capture = tmp_path / "history.txt"
    capture.write_bytes(b"caf\xe9 fix\n")
    with RecordedTool(capture).open_history_stream("FMT", datetime(2024, 1, 1), "/view", "", [], False, False) as stream:
        assert stream.read() == "caf\ufffd fix\n"
    with RecordedTool(capture, encoding="latin-1").open_history_stream(
        "FMT", datetime(2024, 1, 1), "/view", "", [], False, False
    ) as stream:
        assert stream.read() == "café fix\n"
