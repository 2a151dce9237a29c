"""MyPA command line.

Usage:
    # Print today's section (or a given date)
    python -m mypa.cli show
    python -m mypa.cli show --date 2025-01-10

    # Roll unfinished tasks into today and write them back to the document
    python -m mypa.cli --document ~/ToDo.md rollover

    # Load a Markdown file into the indexed store (full overwrite)
    python -m mypa.cli import ~/ToDo.md

    # Write the indexed store out as Markdown
    python -m mypa.cli export --output ToDo.md

    # Parse a document and report what it contains
    python -m mypa.cli check ~/ToDo.md
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections import Counter
from pathlib import Path

from mypa.config import Settings, settings
from mypa.context import AppContext
from mypa.engines.rollover import daily_insight
from mypa.markdown.parser import parse_document
from mypa.markdown.serializer import serialize_document, serialize_section
from mypa.sync.coordinator import DocumentAccessError
from mypa.utils.dates import is_overdue, today_local

logger = logging.getLogger("mypa.cli")


def _settings_for(args: argparse.Namespace) -> Settings:
    overrides: dict = {"rollover_on_startup": False, "external_check_enabled": False}
    if args.document:
        overrides["todo_file_path"] = str(Path(args.document).expanduser())
    if args.database:
        overrides["database_url"] = args.database
    if args.mode:
        overrides["storage_mode"] = args.mode
    return settings.model_copy(update=overrides)


async def cmd_show(context: AppContext, args: argparse.Namespace) -> int:
    await context.start(watch=False)
    coordinator = context.coordinator
    date = args.date or coordinator.today()
    section = await coordinator.load_current_section(date)
    if section is None:
        print(f"No section for {date}")
        return 1
    print(serialize_section(section), end="")
    if context.store is not None:
        print(daily_insight(section, context.store.all_tasks(), date))
    return 0


async def cmd_rollover(context: AppContext, args: argparse.Namespace) -> int:
    await context.start(watch=False)
    result = await context.coordinator.perform_rollover(args.date)
    print(result.summary)
    return 0


async def cmd_import(context: AppContext, args: argparse.Namespace) -> int:
    if context.store is None:
        logger.error("import needs an indexed store (mode=%s)", context.settings.storage_mode)
        return 2
    await context.coordinator.init()
    path = Path(args.path).expanduser()
    document = parse_document(path.read_text(encoding="utf-8"))
    context.store.import_document(document)
    print(
        f"Imported {len(document.sections)} sections, {len(document.all_tasks())} tasks, "
        f"{len(document.projects)} projects from {path}"
    )
    return 0


async def cmd_export(context: AppContext, args: argparse.Namespace) -> int:
    if context.store is None:
        logger.error("export needs an indexed store (mode=%s)", context.settings.storage_mode)
        return 2
    await context.coordinator.init()
    document = context.store.export_document()
    content = serialize_document(document.sections, document.projects)
    if args.output:
        Path(args.output).expanduser().write_text(content, encoding="utf-8")
        print(f"Exported {len(document.sections)} sections to {args.output}")
    else:
        sys.stdout.write(content)
    return 0


async def cmd_check(context: AppContext, args: argparse.Namespace) -> int:
    path = Path(args.path or context.settings.todo_file_path).expanduser()
    if not path.is_file():
        logger.error("Document not found: %s", path)
        return 2
    document = parse_document(path.read_text(encoding="utf-8"))
    today = today_local(context.settings.local_timezone)

    tasks = document.all_tasks()
    open_tasks = [t for t in tasks if t.status != "completed"]
    overdue = [t for t in open_tasks if t.due_date and is_overdue(t.due_date, today)]
    duplicates = [d for d, n in Counter(s.date for s in document.sections).items() if n > 1]

    print(f"{path}: {len(document.sections)} sections, {len(tasks)} tasks "
          f"({len(open_tasks)} open, {len(overdue)} overdue), {len(document.projects)} projects")
    for date in duplicates:
        print(f"  duplicate section for {date} (merged on import)")
    if document.section_for(today) is None:
        print(f"  no section for today ({today})")
    return 1 if duplicates else 0


COMMANDS = {
    "show": cmd_show,
    "rollover": cmd_rollover,
    "import": cmd_import,
    "export": cmd_export,
    "check": cmd_check,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mypa", description="Markdown-backed daily task manager")
    parser.add_argument("--document", default=None, help="Path to ToDo.md (default: TODO_FILE_PATH)")
    parser.add_argument("--database", default=None, help="SQLAlchemy URL of the indexed store")
    parser.add_argument("--mode", choices=["hybrid", "db-only", "file-only"], default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print the section for a date")
    show.add_argument("--date", default=None, help="YYYY-MM-DD (default: today)")

    rollover = sub.add_parser("rollover", help="Carry unfinished tasks into a date")
    rollover.add_argument("--date", default=None, help="YYYY-MM-DD (default: today)")

    imp = sub.add_parser("import", help="Load a Markdown document into the indexed store")
    imp.add_argument("path")

    exp = sub.add_parser("export", help="Write the indexed store as Markdown")
    exp.add_argument("--output", "-o", default=None, help="File to write (default: stdout)")

    check = sub.add_parser("check", help="Parse a document and report its contents")
    check.add_argument("path", nargs="?", default=None)
    return parser


async def run(args: argparse.Namespace) -> int:
    context = AppContext.create(_settings_for(args))
    try:
        return await COMMANDS[args.command](context, args)
    except DocumentAccessError as e:
        logger.error("%s", e)
        return 2
    finally:
        await context.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
