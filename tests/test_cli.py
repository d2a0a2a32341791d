from __future__ import annotations

import json
from pathlib import Path

import pytest

from ct_history.cli import main

DELIMITED_ARGS = ["--format", "delimited", "--fields", "date,user,path,ver", "--date-format", "%Y-%m-%d.%H:%M"]


@pytest.fixture()
def capture(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for key in ("CT_HISTORY_FORMAT", "CT_HISTORY_CHANGESET", "CT_HISTORY_LOG_LEVEL", "CT_HISTORY_ENCODING"):
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / "lshistory.txt"
    path.write_text(
        "2024-01-01.10:00|alice|/proj/file.c|v3\n"
        "fix off-by-one\n"
        "cleartool: Error: bad arg\n"
        "2024-01-01.11:00|bob|/proj/file.h|v2\n",
        encoding="utf-8",
    )
    return path


def _run_cli_json(args: list[str], capsys) -> dict:
    exit_code = main(args + ["--json"])
    assert exit_code in (0, 1)
    output = capsys.readouterr().out
    return {"exit_code": exit_code, "payload": json.loads(output)}


def test_cli_parse_reports_entries_and_tool_errors(capture: Path, capsys) -> None:
    result = _run_cli_json(["parse", str(capture), *DELIMITED_ARGS], capsys)
    assert result["exit_code"] == 0
    payload = result["payload"]
    assert payload["status"] == "success"
    assert payload["count"] == 2
    assert [entry["user"] for entry in payload["entries"]] == ["alice", "bob"]
    assert payload["entries"][0]["comment"] == "fix off-by-one\n"
    assert payload["tool_errors"] == ["cleartool: Error: bad arg"]


def test_cli_changes_with_replay(capture: Path, capsys) -> None:
    result = _run_cli_json(
        [
            "changes",
            "--view-tag",
            "tag",
            "--since",
            "2024-01-01T00:00:00",
            "--path",
            "vobs/proj",
            "--replay",
            str(capture),
            *DELIMITED_ARGS,
        ],
        capsys,
    )
    assert result["exit_code"] == 0
    assert result["payload"]["has_changes"] is True
    assert result["payload"]["tool_errors"] == ["cleartool: Error: bad arg"]
    assert result["payload"]["failed_branches"] == []


def test_cli_changes_without_path_rules_is_false(capture: Path, capsys) -> None:
    result = _run_cli_json(
        ["changes", "--view-tag", "tag", "--since", "2024-01-01", "--replay", str(capture), *DELIMITED_ARGS],
        capsys,
    )
    assert result["exit_code"] == 0
    assert result["payload"]["has_changes"] is False


def test_cli_log_groups_records(capture: Path, capsys) -> None:
    result = _run_cli_json(
        [
            "log",
            "--view-tag",
            "tag",
            "--since",
            "2024-01-01",
            "-p",
            "vobs/a,vobs/b",
            "-b",
            "dev",
            "--replay",
            str(capture),
            *DELIMITED_ARGS,
        ],
        capsys,
    )
    payload = result["payload"]
    assert result["exit_code"] == 0
    assert payload["count"] == 2
    assert payload["branches"] == ["dev"]
    assert payload["records"][0]["elements"][0]["file"] == "/proj/file.c"


def test_cli_log_with_changeset_none_is_empty(capture: Path, capsys) -> None:
    result = _run_cli_json(
        [
            "log",
            "--view-tag",
            "tag",
            "--since",
            "2024-01-01",
            "-p",
            "vobs",
            "--changeset",
            "none",
            "--replay",
            str(capture),
            *DELIMITED_ARGS,
        ],
        capsys,
    )
    assert result["payload"]["count"] == 0


def test_cli_invalid_since_is_input_error(capture: Path, capsys) -> None:
    result = _run_cli_json(
        ["changes", "--view-tag", "tag", "--since", "last tuesday", "-p", "vobs", "--replay", str(capture)],
        capsys,
    )
    assert result["exit_code"] == 1
    assert result["payload"]["error_code"] == "INVALID_INPUT"


def test_cli_malformed_capture_is_reported(tmp_path: Path, capture: Path, capsys) -> None:
    broken = tmp_path / "broken.txt"
    broken.write_text("someday|alice|/a|1\n", encoding="utf-8")
    result = _run_cli_json(["parse", str(broken), *DELIMITED_ARGS], capsys)
    assert result["exit_code"] == 1
    assert result["payload"]["error_code"] == "MALFORMED_ENTRY"


def test_cli_missing_capture_is_tool_failure(tmp_path: Path, capture: Path, capsys) -> None:
    result = _run_cli_json(["parse", str(tmp_path / "absent.txt")], capsys)
    assert result["exit_code"] == 1
    assert result["payload"]["error_code"] == "TOOL_FAILURE"


def test_cli_invalid_config_value(capture: Path, capsys, monkeypatch) -> None:
    monkeypatch.setenv("CT_HISTORY_CHANGESET", "sometimes")
    result = _run_cli_json(["parse", str(capture)], capsys)
    assert result["exit_code"] == 1
    assert result["payload"]["error_code"] == "INVALID_CONFIG"


def test_cli_text_output(capture: Path, capsys) -> None:
    assert main(["parse", str(capture), *DELIMITED_ARGS]) == 0
    output = capsys.readouterr().out
    assert "[SUCCESS] Parsed 2 history entries" in output
    assert "alice /proj/file.c@@v3: fix off-by-one" in output
    assert "! cleartool: Error: bad arg" in output


def test_cli_parse_tolerates_undecodable_bytes(tmp_path: Path, capture: Path, capsys) -> None:
    latin = tmp_path / "latin.txt"
    latin.write_bytes(b"2024-01-01.10:00|alice|/proj/file.c|v3|caf\xe9\n")

    result = _run_cli_json(["parse", str(latin), *DELIMITED_ARGS], capsys)
    assert result["exit_code"] == 0
    assert result["payload"]["entries"][0]["comment"] == "caf\ufffd\n"

    result = _run_cli_json(["parse", str(latin), "--encoding", "latin-1", *DELIMITED_ARGS], capsys)
    assert result["payload"]["entries"][0]["comment"] == "café\n"


def test_cli_log_reports_unparsed_branches(tmp_path: Path, capture: Path, capsys) -> None:
    broken = tmp_path / "broken.txt"
    broken.write_text("not-a-date|alice|/a|1\n", encoding="utf-8")
    result = _run_cli_json(
        [
            "log",
            "--view-tag",
            "tag",
            "--since",
            "2024-01-01",
            "-p",
            "vobs",
            "-b",
            "dev",
            "--replay",
            str(broken),
            *DELIMITED_ARGS,
        ],
        capsys,
    )
    assert result["exit_code"] == 0
    assert result["payload"]["count"] == 0
    assert result["payload"]["failed_branches"] == ["dev"]
