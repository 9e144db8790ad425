"""CLI entrypoint for inspecting and editing the AI context selection."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .categories import Category, parse_category, spec_for
from .config import DEFAULT_SQLITE_PATH
from .engine import ContextEngine, EngineSnapshot
from .errors import ContextEngineError, ValidationFailure
from .logging import bind_database, configure_logging
from .models import SizeLevel
from .storage import SQLiteHealthStore

console = Console()

SIZE_STYLES = {
    SizeLevel.small: "green",
    SizeLevel.medium: "yellow",
    SizeLevel.large: "red",
}


def build_parser() -> argparse.ArgumentParser:
    """Build command line interface parser."""
    parser = argparse.ArgumentParser(
        description="Inspect and edit which health data is shared with the AI assistant.",
    )
    parser.add_argument(
        "--sqlite-path",
        type=Path,
        default=DEFAULT_SQLITE_PATH,
        help="SQLite file holding documents, lab panels and context settings.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Emit debug logs to stderr.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("summary", help="Show the current context selection and its estimated size.")
    for name, help_text in (
        ("enable", "Enable a category (documents are auto-selected where the category says so)."),
        ("disable", "Disable a category and exclude every item in it."),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("category", type=parse_category, help="One of: " + ", ".join(c.value for c in Category))
    for name, help_text in (
        ("include", "Include one document or lab panel in the AI context."),
        ("exclude", "Exclude one document or lab panel from the AI context."),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("item_id", help="Document or lab panel id.")
    return parser


def build_summary_table(snapshot: EngineSnapshot) -> Table:
    table = Table(title="AI Context")
    table.add_column("Category", style="cyan")
    table.add_column("Enabled")
    table.add_column("Tokens", justify="right")
    for category in Category:
        enabled = category in snapshot.enabled_categories
        table.add_row(
            spec_for(category).label,
            "yes" if enabled else "no",
            str(snapshot.breakdown.tokens_for(category)) if enabled else "-",
        )
    size_style = SIZE_STYLES[snapshot.size_level]
    table.add_row("Documents", str(snapshot.included_documents_count), "")
    table.add_row("Lab panels", str(snapshot.included_panels_count), "")
    table.add_row(
        "Estimated context",
        "",
        f"[{size_style}]{snapshot.estimated_context_size}[/{size_style}]",
    )
    return table


def show_item_table(engine: ContextEngine) -> None:
    table = Table(title="Items")
    table.add_column("Id", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("Name")
    table.add_column("Included")
    for category in Category:
        for document in engine.documents_in(category):
            table.add_row(
                document.id,
                spec_for(category).label,
                document.file_name,
                "yes" if engine.is_item_selected(document.id) else "no",
            )
    for panel in engine.panels:
        label = panel.laboratory_name or "Lab panel"
        table.add_row(
            panel.id,
            spec_for(Category.lab_panel).label,
            f"{label} {panel.test_date.date().isoformat()} ({panel.result_count} results)",
            "yes" if engine.is_item_selected(panel.id) else "no",
        )
    console.print(table)


def apply_command(engine: ContextEngine, args: argparse.Namespace) -> bool:
    """Apply a mutating subcommand. Returns True when a save is needed."""

    if args.command == "enable":
        engine.toggle_category(args.category, True)
    elif args.command == "disable":
        engine.toggle_category(args.category, False)
        engine.set_all_items_in_category(args.category, False)
    elif args.command in ("include", "exclude"):
        if args.item_id not in engine.catalog:
            raise ValueError(f"Unknown item id: {args.item_id}")
        engine.set_item_selected(args.item_id, args.command == "include")
    else:
        return False
    return True


async def run(args: argparse.Namespace) -> None:
    bind_database(args.sqlite_path)
    async with SQLiteHealthStore(args.sqlite_path) as store:
        engine = ContextEngine(store.documents, store.panels, store)
        await engine.load()
        if apply_command(engine, args):
            report = await engine.save()
            console.log(f"Saved {report.write_count} item change(s)")
        show_item_table(engine)
        console.print(build_summary_table(engine.current_snapshot()))
        engine.close()


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(debug=args.debug)
    try:
        asyncio.run(run(args))
    except ValidationFailure as exc:
        console.print(f"[red]Error:[/red] {exc}")
        for item_id in exc.orphaned_ids:
            console.print(f"  {item_id}: run [bold]exclude {item_id}[/bold] or enable its category")
        sys.exit(1)
    except (ContextEngineError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
