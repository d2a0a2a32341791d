"""Command line interface for ClearTool history queries."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import HistoryConfig, load_config
from .errors import ErrorCode, HistoryError
from .formats import make_format
from .history import HistoryAction
from .models import ChangeLogResponse, HasChangesResponse, ParseResponse
from .parser import HistoryParser
from .tool import ClearTool, RecordedTool, RepositoryTool


def _csv_list(values: list[str] | None) -> list[str]:
    items: list[str] = []
    for value in values or []:
        items.extend(item.strip() for item in value.split(",") if item.strip())
    return items


def _parse_since(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise HistoryError(
            ErrorCode.INVALID_INPUT,
            "Invalid --since timestamp",
            "Use ISO format, e.g. 2024-01-31T08:00:00 or 2024-01-31T08:00:00+00:00.",
        ) from exc


def _print_payload(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
        return

    status = payload.get("status", "unknown").upper()
    message = payload.get("message", "")
    print(f"[{status}] {message}")

    if payload.get("status") == "error":
        error_code = payload.get("error_code", "")
        suggestion = payload.get("suggestion", "")
        if error_code:
            print(f"error_code: {error_code}")
        if suggestion:
            print(f"suggestion: {suggestion}")
        return

    for key in ("view_tag", "has_changes", "count", "source"):
        if key in payload and payload[key] not in ("", None):
            print(f"{key}: {payload[key]}")

    for record in payload.get("records", []):
        print(f"- [{record.get('date') or ''}] {record.get('user', '')}: {record.get('comment', '').strip()}")
        for element in record.get("elements", []):
            print(f"    {element.get('file', '')}@@{element.get('version', '')} {element.get('operation', '')}")

    for entry in payload.get("entries", []):
        print(
            f"- [{entry.get('date_text', '')}] {entry.get('user', '')} "
            f"{entry.get('element', '')}@@{entry.get('version_id', '')}: {entry.get('comment', '').strip()}"
        )

    for line in payload.get("tool_errors", []):
        print(f"! {line}")

    for branch in payload.get("failed_branches", []):
        print(f"! unparsed history on branch {branch or '(all)'}")


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, HistoryError):
        return exc.to_payload()
    if isinstance(exc, ValidationError):
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_CONFIG.value,
            "message": "Configuration validation failed",
            "suggestion": "Check the config file, CT_HISTORY_* variables and flags.",
            "details": {"errors": exc.errors(include_context=False, include_input=False)},
        }
    if isinstance(exc, OSError):
        return {
            "status": "error",
            "error_code": ErrorCode.TOOL_FAILURE.value,
            "message": str(exc),
            "suggestion": "Check that the history source is readable.",
            "details": {},
        }
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "message": str(exc),
        "suggestion": "Retry with --log-level DEBUG for diagnostics.",
        "details": {},
    }


def _add_common_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument("--config", default="", help="Path to a .ct-history.yaml file")
    command.add_argument("--format", choices=["base", "ucm", "delimited"], default=None, help="History line format")
    command.add_argument("--separator", default=None, help="Separator for the delimited format")
    command.add_argument("--fields", default="", help="Comma-separated fields for the delimited format")
    command.add_argument("--date-format", action="append", default=None, help="strptime layout for entry dates")
    command.add_argument("--extended-view-path", default=None, help="Prefix removed from element paths")
    command.add_argument("--error-lines", choices=["ignore", "log", "warn"], default=None, help="Tool error line severity")
    command.add_argument("--encoding", default=None, help="Encoding of history output (undecodable bytes are replaced)")
    command.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def _add_query_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument("--view-tag", required=True, help="View tag to query")
    command.add_argument("--view-path", default=".", help="View root directory")
    command.add_argument(
        "--since",
        required=True,
        help="Lower time bound (ISO format; without a UTC offset it is local time)",
    )
    command.add_argument("-b", "--branch", action="append", default=None, help="Branch type (repeatable or comma-separated)")
    command.add_argument("-p", "--path", action="append", default=None, help="Load rule path (repeatable or comma-separated)")
    command.add_argument(
        "--changeset",
        choices=["none", "branch", "updt", "all"],
        default=None,
        help="Change-set level; none disables change-log retrieval",
    )
    command.add_argument("--recurse", action="store_true", default=None, help="Use lshistory -r")
    command.add_argument("--dynamic-view", action="store_true", default=None, help="Start the view before querying")
    command.add_argument("--replay", default="", help="Read captured lshistory output instead of running cleartool")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ct-history", description="ClearTool history reader")
    parser.add_argument("--log-level", default=None, help="Logging level (default from CT_HISTORY_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    changes = subparsers.add_parser("changes", help="Report whether the view has changes since a time")
    _add_query_arguments(changes)
    _add_common_arguments(changes)

    log = subparsers.add_parser("log", help="Print the change log since a time")
    _add_query_arguments(log)
    _add_common_arguments(log)

    parse = subparsers.add_parser("parse", help="Parse captured lshistory output")
    parse.add_argument("file", help="File holding lshistory output")
    _add_common_arguments(parse)

    return parser


def _load(args: argparse.Namespace) -> HistoryConfig:
    overrides: dict[str, Any] = {
        "format": args.format,
        "separator": args.separator,
        "field_names": _csv_list([args.fields]) or None,
        "date_formats": args.date_format,
        "extended_view_path": args.extended_view_path,
        "error_line_policy": args.error_lines,
        "encoding": args.encoding,
        "log_level": args.log_level,
        "changeset": getattr(args, "changeset", None),
        "use_recurse": getattr(args, "recurse", None),
        "dynamic_view": getattr(args, "dynamic_view", None),
    }
    config_path = Path(args.config).expanduser() if args.config else None
    return load_config(path=config_path, overrides=overrides)


def _tool(args: argparse.Namespace, config: HistoryConfig) -> RepositoryTool:
    if args.replay:
        return RecordedTool(Path(args.replay).expanduser(), encoding=config.encoding)
    return ClearTool(executable=config.cleartool, encoding=config.encoding)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    as_json = bool(getattr(args, "json", False))

    try:
        config = _load(args)
        logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")

        if args.command == "parse":
            history_parser = HistoryParser(
                make_format(
                    config.format,
                    fields=config.field_names,
                    separator=config.separator,
                    date_formats=config.date_formats,
                ),
                extended_view_path=config.extended_view_path or None,
                error_line_policy=config.error_line_policy,
            )
            source = Path(args.file).expanduser()
            with source.open("r", encoding=config.encoding, errors="replace") as handle:
                entries = history_parser.parse(handle, [])
            response = ParseResponse(
                status="success",
                message=f"Parsed {len(entries)} history entries",
                source=str(source),
                count=len(entries),
                entries=entries,
                tool_errors=history_parser.tool_errors,
            ).model_dump(mode="json")
        else:
            action = HistoryAction.from_config(config, _tool(args, config))
            since = _parse_since(args.since)
            branches = _csv_list(args.branch)
            path_rules = _csv_list(args.path)
            if args.command == "changes":
                run = action.check_changes(since, args.view_path, args.view_tag, branches, path_rules)
                has_changes = len(run.entries) > 0
                response = HasChangesResponse(
                    status="success",
                    message="Changes found" if has_changes else "No changes",
                    view_tag=args.view_tag,
                    branches=branches,
                    has_changes=has_changes,
                    tool_errors=run.tool_errors,
                    failed_branches=run.failed_branches,
                ).model_dump(mode="json")
            else:
                run = action.collect_changes(since, args.view_path, args.view_tag, branches, path_rules)
                response = ChangeLogResponse(
                    status="success",
                    message=f"{len(run.records)} change-log records",
                    view_tag=args.view_tag,
                    branches=branches,
                    count=len(run.records),
                    records=run.records,
                    tool_errors=run.tool_errors,
                    failed_branches=run.failed_branches,
                ).model_dump(mode="json")

        _print_payload(response, as_json=as_json)
        return 0
    except Exception as exc:  # noqa: BLE001
        payload = _error_payload(exc)
        _print_payload(payload, as_json=as_json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
