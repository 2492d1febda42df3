"""
CLI interface for gleaner.

Usage:
    gleaner init ~/journal --mode daily
    gleaner compile "work NOT meeting" --from 2025-01-01
    gleaner tags
    gleaner retag meeting sync --dry-run
"""

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import CompileOptions, CompileService, parse_date_param
from .config import EDITABLE_KEYS, save_config
from .errors import ConfigError, GleanerError, log_exception
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .mode import JournalMode
from .repository import JournalRepository
from .retag import RetagOptions, retag_notes
from .types import CompilationFormat

# Set GLEANER_VERBOSE=1 to enable debug mode via environment
if os.environ.get("GLEANER_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"gleaner {version('gleaner-notes')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_root_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _root_callback(value: Optional[Path]):
    global _root_override
    _root_override = value


app = typer.Typer(
    name="gleaner",
    help="Compile tagged fragments of markdown journals.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    root: Annotated[Optional[Path], typer.Option(
        "--root", "-r",
        help="Journal directory (default: GLEANER_ROOT or the enclosing journal)",
        callback=_root_callback,
        is_eager=True,
    )] = None,
):
    """Compile tagged fragments of markdown journals."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

FromOption = Annotated[
    Optional[str],
    typer.Option("--from", help="Only notes on or after this date (YYYY-MM-DD or DD-MM-YYYY)"),
]

ToOption = Annotated[
    Optional[str],
    typer.Option("--to", help="Only notes on or before this date (YYYY-MM-DD or DD-MM-YYYY)"),
]

RecursiveOption = Annotated[
    Optional[bool],
    typer.Option(
        "--recursive/--no-recursive",
        help="Include notes in subdirectories (default: from config)",
    ),
]


@contextmanager
def _reporting_errors():
    """Turn gleaner errors into a clean message and exit code."""
    try:
        yield
    except GleanerError as e:
        typer.echo(e.display_with_suggestions(), err=True)
        raise typer.Exit(e.exit_code)


def _get_repository() -> JournalRepository:
    if _root_override is not None:
        repo = JournalRepository.open(_root_override)
    else:
        repo = JournalRepository.discover()
    configure_ops_log(repo.root)
    return repo


def _date_option(value: Optional[str]):
    return parse_date_param(value) if value else None


@app.command()
def init(
    path: Annotated[Optional[Path], typer.Argument(help="Journal directory (default: current)")] = None,
    mode: Annotated[str, typer.Option(
        "--mode", "-m", help="Journal mode: daily, weekly, monthly or single",
    )] = "daily",
):
    """Create a new journal."""
    with _reporting_errors():
        try:
            journal_mode = JournalMode.parse(mode)
        except ValueError as e:
            raise ConfigError(str(e)) from None
        repo = JournalRepository.initialize(path or _root_override or Path.cwd(), journal_mode)
        typer.echo(f"Initialized {journal_mode.value} journal in {repo.root}")


@app.command("list")
def list_notes(
    date_from: FromOption = None,
    date_to: ToOption = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", help="Show only the N most recent notes")] = None,
    recursive: RecursiveOption = None,
):
    """List note files, oldest first."""
    with _reporting_errors():
        repo = _get_repository()
        entries = repo.list_notes(_date_option(date_from), _date_option(date_to), limit, recursive)
        if _json_output:
            typer.echo(json.dumps([
                {"file": e.source_id, "date": e.date.isoformat() if e.date else None}
                for e in entries
            ], indent=2))
            return
        if not entries:
            typer.echo("No notes found", err=True)
            return
        for entry in entries:
            typer.echo(entry.source_id)


@app.command()
def tags(
    date_from: FromOption = None,
    date_to: ToOption = None,
    recursive: RecursiveOption = None,
):
    """Show every tag used in the journal."""
    with _reporting_errors():
        service = CompileService(_get_repository())
        found = service.list_tags(_date_option(date_from), _date_option(date_to), recursive)
        if _json_output:
            typer.echo(json.dumps(found))
            return
        if not found:
            typer.echo("No tags found", err=True)
            return
        for tag in found:
            typer.echo(f"#{tag}")


@app.command()
def compile(
    query: Annotated[str, typer.Argument(help="Tag query, e.g. 'work NOT meeting'")],
    output: Annotated[Optional[Path], typer.Option(
        "--output", "-o", help="Output file (default: <compilations_dir>/<query>.md)",
    )] = None,
    date_from: FromOption = None,
    date_to: ToOption = None,
    format: Annotated[str, typer.Option(
        "--format", "-f", help="chronological (by date) or grouped (by file)",
    )] = "chronological",
    include_context: Annotated[bool, typer.Option(
        "--include-context", "-c", help="Show the section heading above each fragment",
    )] = False,
    recursive: RecursiveOption = None,
):
    """
    Compile content matching a tag query into one document.

    \b
    Examples:
        gleaner compile work
        gleaner compile "work AND urgent" --from 2025-01-01
        gleaner compile "(work OR personal) NOT meeting" --format grouped
    """
    with _reporting_errors():
        try:
            compilation_format = CompilationFormat.parse(format)
        except ValueError as e:
            raise ConfigError(str(e)) from None
        options = CompileOptions(
            query=query,
            output=output,
            date_from=_date_option(date_from),
            date_to=_date_option(date_to),
            format=compilation_format,
            include_context=include_context,
            recursive=recursive,
        )
        result = CompileService(_get_repository()).compile(options)
        for warning in result.warnings:
            typer.echo(f"Warning: {warning}", err=True)
        if _json_output:
            typer.echo(json.dumps({
                "output": str(result.output_path),
                "records": result.record_count,
                "warnings": result.warnings,
            }, indent=2))
        else:
            typer.echo(f"Compiled {result.record_count} fragments to {result.output_path}")


@app.command()
def retag(
    from_tag: Annotated[str, typer.Argument(help="Tag to replace (with or without #)")],
    to_tag: Annotated[str, typer.Argument(help="Replacement tag (with or without #)")],
    date_from: FromOption = None,
    date_to: ToOption = None,
    recursive: RecursiveOption = None,
    dry_run: Annotated[bool, typer.Option(
        "--dry-run", help="Show planned changes without writing files",
    )] = False,
):
    """
    Rename a tag across notes.

    Tags inside code blocks and inline code are not touched.

    \b
    Examples:
        gleaner retag work project
        gleaner retag "#meeting" sync --from 2025-01-01 --dry-run
    """
    with _reporting_errors():
        options = RetagOptions(
            from_tag=from_tag,
            to_tag=to_tag,
            date_from=_date_option(date_from),
            date_to=_date_option(date_to),
            recursive=recursive,
            dry_run=dry_run,
        )
        report = retag_notes(_get_repository(), options)
        if _json_output:
            typer.echo(json.dumps({
                "from": report.from_tag,
                "to": report.to_tag,
                "dry_run": report.dry_run,
                "scanned_files": report.scanned_files,
                "changed_files": report.changed_files,
                "replacements": report.total_replacements,
                "changes": [{"file": c.source_id, "replacements": c.replacements} for c in report.changes],
            }, indent=2))
            return
        for change in report.changes:
            typer.echo(f"  {change.source_id}: {change.replacements}")
        verb = "Would replace" if report.dry_run else "Replaced"
        typer.echo(
            f"{verb} #{report.from_tag} with #{report.to_tag}: "
            f"{report.total_replacements} occurrences in {report.changed_files} of "
            f"{report.scanned_files} notes"
        )


@app.command()
def config(
    key: Annotated[Optional[str], typer.Argument(help=f"Config key ({', '.join(EDITABLE_KEYS)})")] = None,
    value: Annotated[Optional[str], typer.Argument(help="New value")] = None,
):
    """
    Show or change journal configuration.

    \b
    Examples:
        gleaner config                  # Show all config
        gleaner config mode             # Show one value
        gleaner config mode weekly      # Change a value
    """
    with _reporting_errors():
        repo = _get_repository()
        cfg = repo.config
        if key is None:
            if _json_output:
                typer.echo(json.dumps({k: cfg.get(k) for k in EDITABLE_KEYS}, indent=2))
                return
            typer.echo(f"file: {cfg.config_path}")
            for k in EDITABLE_KEYS:
                typer.echo(f"{k}: {cfg.get(k)}")
            return
        if value is None:
            typer.echo(cfg.get(key))
            return
        cfg.set(key, value)
        save_config(cfg)
        typer.echo(f"{key} = {cfg.get(key)}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="gleaner CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
