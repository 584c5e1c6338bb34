"""CLI entry point for extragrid.

Usage:
    python -m extragrid resolve --drive <name> [--folder <name>] [--file <name>] [--sheet <name>]
    python -m extragrid find --drive <name> --file <name> --scope <scope> [--term <text>] ...
    python -m extragrid replace --drive <name> --file <name> --term <text> --with <text> ...
    python -m extragrid related --drive <name> <old_term> <new_term>
    python -m extragrid rename --drive <name> --kind file|folder|sheet --name <old> --new-name <new>
    python -m extragrid read --drive <name> --file <name> --range <A1 range>
    python -m extragrid write --drive <name> --file <name> --range <A1 range> --values <json>

Pass ``--local fixture.json`` to work against a local drive fixture instead
of Microsoft Graph.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from pathlib import Path
from typing import Any

from extragrid.client import GridClient
from extragrid.config import get_settings
from extragrid.exceptions import AmbiguousError, ExtraGridError
from extragrid.logging import configure_logging
from extragrid.matchers import LabelMode
from extragrid.replace import ReplaceOptions, TextReplacement, ValueReplacement
from extragrid.search import (
    DIRECTIONS,
    LabelNeighborOptions,
    Scope,
    SearchOptions,
    build_preview,
    build_selectable_preview,
)
from extragrid.transport import LocalFileTransport
from extragrid.types import RENAME_KINDS, RenameOperation, ResolutionRequest

Command = Callable[[GridClient, argparse.Namespace], Awaitable[Any]]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _request(args: argparse.Namespace) -> ResolutionRequest:
    return ResolutionRequest(
        drive_name=args.drive,
        folder_name=args.folder,
        file_name=args.file,
        sheet_name=args.sheet,
        item_path=args.path,
    )


def _search_options(args: argparse.Namespace) -> SearchOptions:
    label = LabelNeighborOptions(
        labels=tuple(args.label or ()),
        mode=LabelMode(args.label_mode),
        case_sensitive=args.case_sensitive_label,
        fuzzy_threshold=args.fuzzy_threshold,
        directions=tuple(args.direction or DIRECTIONS),
        max_down=args.max_down,
        max_right=args.max_right,
        value_search_term=args.value_term,
    )
    return SearchOptions(
        search_term=args.term,
        range_spec=args.range,
        sheet_name=args.sheet,
        label=label,
    )


async def cmd_resolve(client: GridClient, args: argparse.Namespace) -> int:
    """Resolve names to identifiers."""
    resolution = await client.resolve(_request(args))
    _print_json(asdict(resolution))
    return 0


async def cmd_find(client: GridClient, args: argparse.Namespace) -> int:
    """Find matching cells in a workbook."""
    result = await client.find_by_name(_request(args), args.scope, _search_options(args))
    if args.selectable:
        _print_json(build_selectable_preview(result.matches))
    else:
        _print_json(build_preview(result.matches, args.term))
    print(f"\n# {len(result.matches)} match(es) in {result.resolution.file_path}", file=sys.stderr)
    return 0


async def cmd_replace(client: GridClient, args: argparse.Namespace) -> int:
    """Replace matching cells in a workbook."""
    settings = get_settings()
    scope = Scope(args.scope)
    if scope.is_label_scope:
        if args.value is None:
            print("Error: --value is required for label scopes", file=sys.stderr)
            return 1
        replacement: TextReplacement | ValueReplacement = ValueReplacement(args.value)
    else:
        if args.term is None or args.replace_with is None:
            print("Error: --term and --with are required", file=sys.stderr)
            return 1
        replacement = TextReplacement(
            search_term=args.term,
            replace_term=args.replace_with,
            case_sensitive=args.case_sensitive,
            whole_word=args.whole_word,
            replace_inside=not args.whole_cell,
            replace_mode="first" if args.first else "all",
        )

    options = ReplaceOptions(
        highlight_changes=args.highlight,
        highlight_color=args.highlight_color or settings.highlight_color,
        batch_size=settings.replace_batch_size,
    )
    result = await client.replace_by_name(
        _request(args),
        scope,
        _search_options(args),
        replacement,
        options,
        selection=args.select,
    )
    outcome = result.outcome
    _print_json(
        {
            "summary": asdict(outcome.summary),
            "changes": [asdict(c) for c in outcome.changes],
            "errors": [asdict(e) for e in outcome.errors],
        }
    )
    return 0 if not outcome.errors else 1


async def cmd_related(client: GridClient, args: argparse.Namespace) -> int:
    """Suggest renames for items whose name contains a term."""
    suggestions = await client.find_related_items(args.drive, args.old_term, args.new_term)
    _print_json([asdict(s) for s in suggestions])
    return 0


async def cmd_rename(client: GridClient, args: argparse.Namespace) -> int:
    """Rename a file, folder or worksheet."""
    op = RenameOperation(
        kind=args.kind, name=args.name, new_name=args.new_name, path=args.path, file_name=args.file
    )
    if op.kind == "sheet":
        result = await client.rename_sheet_by_name(
            args.drive, args.file, op.name, op.new_name, item_path=op.path
        )
    elif op.kind == "folder":
        result = await client.rename_folder_by_name(
            args.drive, op.name, op.new_name, folder_path=op.path
        )
    else:
        result = await client.rename_file_by_name(
            args.drive, op.name, op.new_name, item_path=op.path
        )
    _print_json(asdict(result))
    return 0


async def cmd_read(client: GridClient, args: argparse.Namespace) -> int:
    """Read a range from a workbook."""
    result = await client.read_range_by_name(_request(args), args.range)
    _print_json({"address": result.snapshot.address, "values": result.snapshot.values})
    return 0


async def cmd_write(client: GridClient, args: argparse.Namespace) -> int:
    """Write a 2D JSON array of values to a range."""
    try:
        values = json.loads(args.values)
    except json.JSONDecodeError as e:
        print(f"Error: --values is not valid JSON: {e}", file=sys.stderr)
        return 1
    if not isinstance(values, list) or not all(isinstance(row, list) for row in values):
        print("Error: --values must be a JSON array of arrays", file=sys.stderr)
        return 1
    result = await client.write_range_by_name(_request(args), args.range, values)
    _print_json(
        {
            "address": result.snapshot.address,
            "values": result.snapshot.values,
            "old_values": result.old_values,
        }
    )
    return 0


async def _run(command: Command, args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        transport = LocalFileTransport(Path(args.local)) if args.local else None
        client = GridClient.from_settings(settings, transport)
    except ExtraGridError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return await command(client, args)
    except AmbiguousError as e:
        print(f"Error: {e}", file=sys.stderr)
        _print_json({"ambiguous": e.name, "paths": e.paths})
        return 2
    except ExtraGridError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await client.close()


def _add_target_args(parser: argparse.ArgumentParser, *, file_required: bool) -> None:
    parser.add_argument("--drive", required=True, help="Drive (document library) name")
    parser.add_argument("--folder", help="Folder name to search under")
    parser.add_argument("--file", required=file_required, help="Workbook file name")
    parser.add_argument("--sheet", help="Worksheet name ('ALL' for every sheet in label scopes)")
    parser.add_argument(
        "--path",
        help="Full path of the workbook, to pick one of several files with the same name",
    )


def _add_search_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scope",
        choices=[s.value for s in Scope],
        default=Scope.ENTIRE_SHEET.value,
        help="Where to search (default: entire_sheet)",
    )
    parser.add_argument("--term", help="Text to search for")
    parser.add_argument("--range", help="Range for specific_range, e.g. 'Sheet1!A1:D20'")
    parser.add_argument(
        "--label",
        action="append",
        help="Label text for label scopes (repeatable)",
    )
    parser.add_argument(
        "--label-mode",
        choices=[m.value for m in LabelMode],
        default=LabelMode.EXACT.value,
        help="How labels are matched (default: exact)",
    )
    parser.add_argument(
        "--case-sensitive-label",
        action="store_true",
        help="Match labels case-sensitively",
    )
    parser.add_argument(
        "--fuzzy-threshold",
        type=float,
        default=None,
        help="Similarity threshold for fuzzy labels (default from settings)",
    )
    parser.add_argument(
        "--direction",
        action="append",
        choices=list(DIRECTIONS),
        help="Neighbor direction to scan (repeatable, default: down then right)",
    )
    parser.add_argument("--max-down", type=int, default=3, help="Cells to scan downwards")
    parser.add_argument("--max-right", type=int, default=3, help="Cells to scan to the right")
    parser.add_argument("--value-term", help="Keep only captured values containing this text")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="extragrid",
        description="Find and replace in Excel workbooks addressed by name",
    )
    parser.add_argument("--local", help="Serve drives from a local JSON fixture")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # resolve subcommand
    resolve_parser = subparsers.add_parser("resolve", help="Resolve names to identifiers")
    _add_target_args(resolve_parser, file_required=False)
    resolve_parser.set_defaults(func=cmd_resolve)

    # find subcommand
    find_parser = subparsers.add_parser("find", help="Find matching cells")
    _add_target_args(find_parser, file_required=True)
    _add_search_args(find_parser)
    find_parser.add_argument(
        "--selectable",
        action="store_true",
        help="List every match with its match id instead of a summary",
    )
    find_parser.set_defaults(func=cmd_find)

    # replace subcommand
    replace_parser = subparsers.add_parser("replace", help="Replace matching cells")
    _add_target_args(replace_parser, file_required=True)
    _add_search_args(replace_parser)
    replace_parser.add_argument("--with", dest="replace_with", help="Replacement text")
    replace_parser.add_argument("--value", help="Value written to label-neighbor cells")
    replace_parser.add_argument("--case-sensitive", action="store_true")
    replace_parser.add_argument("--whole-word", action="store_true")
    replace_parser.add_argument(
        "--whole-cell",
        action="store_true",
        help="Only replace cells whose entire text is the term",
    )
    replace_parser.add_argument(
        "--first", action="store_true", help="Replace only the first occurrence per cell"
    )
    replace_parser.add_argument("--highlight", action="store_true", help="Fill changed cells")
    replace_parser.add_argument("--highlight-color", help="Fill color, e.g. #FFFF00")
    replace_parser.add_argument(
        "--select",
        action="append",
        help="Only replace this match id, e.g. 'Sheet1!B2' (repeatable)",
    )
    replace_parser.set_defaults(func=cmd_replace)

    # related subcommand
    related_parser = subparsers.add_parser(
        "related", help="Suggest renames for items containing a term"
    )
    related_parser.add_argument("--drive", required=True, help="Drive (document library) name")
    related_parser.add_argument("old_term", help="Text to look for in names")
    related_parser.add_argument("new_term", help="Text that would replace it")
    related_parser.set_defaults(func=cmd_related)

    # rename subcommand
    rename_parser = subparsers.add_parser("rename", help="Rename a file, folder or worksheet")
    rename_parser.add_argument("--drive", required=True, help="Drive (document library) name")
    rename_parser.add_argument(
        "--kind", choices=list(RENAME_KINDS), default="file", help="What to rename"
    )
    rename_parser.add_argument(
        "--name", required=True, help="Current name (the sheet name for --kind sheet)"
    )
    rename_parser.add_argument("--new-name", required=True, help="New name")
    rename_parser.add_argument("--file", help="Workbook holding the sheet (--kind sheet)")
    rename_parser.add_argument(
        "--path", help="Full path of the file or folder, when its name is ambiguous"
    )
    rename_parser.set_defaults(func=cmd_rename)

    # read subcommand
    read_parser = subparsers.add_parser("read", help="Read a range")
    _add_target_args(read_parser, file_required=True)
    read_parser.add_argument("--range", required=True, help="A1 range, e.g. 'Sheet1!A1:C3'")
    read_parser.set_defaults(func=cmd_read)

    # write subcommand
    write_parser = subparsers.add_parser("write", help="Overwrite a range")
    _add_target_args(write_parser, file_required=True)
    write_parser.add_argument("--range", required=True, help="A1 range, e.g. 'Sheet1!A1:B2'")
    write_parser.add_argument(
        "--values", required=True, help="JSON array of rows, e.g. '[[1, 2], [3, 4]]'"
    )
    write_parser.set_defaults(func=cmd_write)

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        json_logs=args.json_logs or settings.json_logs,
        log_level=(args.log_level or settings.log_level).upper(),
    )

    result: int = asyncio.run(_run(args.func, args))
    return result


if __name__ == "__main__":
    sys.exit(main())
