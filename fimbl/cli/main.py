# fimbl/cli/main.py
"""
CLI for registering files, checking them for changes and managing their baselines.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from fimbl import __version__
from fimbl.config import LedgerConfig, resolve_db_path
from fimbl.core.canon import record_line
from fimbl.core.errors import StoreError
from fimbl.core.types import Outcome, OutcomeKind
from fimbl.crypto.hashing import short_hex
from fimbl.ledger.controller import Ledger
from fimbl.storage import SQLiteStore
from fimbl.verify.verifier import summarize

EXIT_FINDINGS = 1
EXIT_STORE_ERROR = 2

app = typer.Typer(
    name="fimbl",
    help="File integrity ledger: fingerprint files now, detect changes later",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

_KIND_STYLE = {
    OutcomeKind.ADDED: "green",
    OutcomeKind.UNCHANGED: "green",
    OutcomeKind.ACCEPTED: "green",
    OutcomeKind.REMOVED: "green",
    OutcomeKind.ALREADY_TRACKED: "yellow",
    OutcomeKind.NOT_TRACKED: "yellow",
    OutcomeKind.CHANGED: "bold red",
    OutcomeKind.IO_FAILURE: "red",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _version_callback(value: bool):
    if value:
        console.print(f"fimbl {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides FIMBL_DB_PATH env var)",
    ),
    tolerant: Optional[bool] = typer.Option(
        None,
        "--tolerant/--strict",
        "-t",
        help="Tolerate already-tracked files on add and untracked files on accept/remove",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Files hashed in parallel (overrides FIMBL_WORKERS)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every step to stderr"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """Manage the file integrity ledger."""
    setup_logging(verbose)
    ctx.obj = {"db": db, "tolerant": tolerant, "workers": workers}


def open_ledger(ctx: typer.Context) -> Ledger:
    opts = ctx.obj or {}
    try:
        db_path = resolve_db_path(opts.get("db"))
    except OSError as e:
        console.print(f"[red]Cannot prepare database location: {escape(str(e))}[/]")
        raise typer.Exit(EXIT_STORE_ERROR)

    try:
        config = LedgerConfig.from_env(tolerant=opts.get("tolerant"), workers=opts.get("workers"))
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/]")
        raise typer.Exit(EXIT_STORE_ERROR)

    try:
        store = SQLiteStore(db_path)
    except StoreError as e:
        console.print(f"[red]Failed to open database: {escape(str(e))}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(EXIT_STORE_ERROR)

    return Ledger(store, config)


def describe(outcome: Outcome) -> str:
    """One-line detail for an outcome: what changed, or why it failed."""
    if outcome.error is not None:
        return str(outcome.error)

    if outcome.kind is OutcomeKind.CHANGED:
        exp, obs = outcome.expected, outcome.observed
        parts = [f"digest {short_hex(exp.digest)} → {short_hex(obs.digest)}"]
        fields = outcome.changed_fields()
        if "size" in fields:
            parts.append(f"size {exp.attributes.size} → {obs.attributes.size}")
        if "modified_time" in fields:
            parts.append(
                f"modified {exp.attributes.modified_time:%Y-%m-%d %H:%M:%S} → "
                f"{obs.attributes.modified_time:%Y-%m-%d %H:%M:%S}"
            )
        if "permissions" in fields:
            parts.append(f"mode {exp.attributes.mode_string} → {obs.attributes.mode_string}")
        return "; ".join(parts)

    if outcome.kind is OutcomeKind.ACCEPTED:
        return f"baseline {short_hex(outcome.expected.digest)} → {short_hex(outcome.observed.digest)}"
    if outcome.kind is OutcomeKind.ALREADY_TRACKED and outcome.expected is not None:
        return f"baseline kept ({short_hex(outcome.expected.digest)})"
    if outcome.observed is not None:
        return f"digest {short_hex(outcome.observed.digest)}"
    return ""


def render_outcomes(outcomes: List[Outcome]) -> None:
    for outcome in outcomes:
        style = _KIND_STYLE[outcome.kind]
        console.print(
            f"[{style}]{outcome.kind.value:>15}[/] {escape(outcome.path)}",
            soft_wrap=True,
        )
        detail = describe(outcome)
        if detail:
            console.print(f"{'':>15} {escape(detail)}", soft_wrap=True)

    result = summarize(outcomes)
    if result.is_valid:
        console.print(f"[green]✓ {len(outcomes)} file(s) OK[/]")
    else:
        console.print(f"[red]✗ {len(result.failures)} of {len(outcomes)} file(s) need attention[/]")


def run_batch(ctx: typer.Context, action: Callable[[Ledger], List[Outcome]]) -> None:
    ledger = open_ledger(ctx)
    try:
        with ledger:
            outcomes = action(ledger)
    except StoreError as e:
        console.print(f"[red]Store failure, batch aborted: {escape(str(e))}[/]")
        raise typer.Exit(EXIT_STORE_ERROR)

    render_outcomes(outcomes)
    if not summarize(outcomes):
        raise typer.Exit(EXIT_FINDINGS)


@app.command()
def add(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(..., help="Files to fingerprint and start tracking"),
):
    """Add new files to the ledger."""
    run_batch(ctx, lambda ledger: ledger.add(files))


@app.command()
def verify(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(..., help="Tracked files to check"),
):
    """Verify the given files against their baselines."""
    run_batch(ctx, lambda ledger: ledger.verify(files))


@app.command("verify-all")
def verify_all(ctx: typer.Context):
    """Verify every tracked file."""
    run_batch(ctx, lambda ledger: ledger.verify_all())


@app.command()
def accept(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(..., help="Files whose current content becomes the baseline"),
):
    """Accept modifications: reset the baseline to the current content."""
    run_batch(ctx, lambda ledger: ledger.accept(files))


@app.command()
def remove(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(..., help="Files to stop tracking"),
):
    """Remove files from the ledger."""
    run_batch(ctx, lambda ledger: ledger.remove(files))


@app.command("list")
def list_files(ctx: typer.Context):
    """List all tracked files with their baselines."""
    ledger = open_ledger(ctx)
    table = Table(title="Tracked Files")
    table.add_column("Path", overflow="fold")
    table.add_column("Digest", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Mode")
    table.add_column("Recorded")

    count = 0
    try:
        with ledger:
            for record in ledger.tracked():
                table.add_row(
                    escape(record.path),
                    short_hex(record.digest),
                    str(record.attributes.size),
                    record.attributes.mode_string,
                    record.recorded_at or "—",
                )
                count += 1
    except StoreError as e:
        console.print(f"[red]Failed to read database: {escape(str(e))}[/]")
        raise typer.Exit(EXIT_STORE_ERROR)

    if not count:
        console.print("[yellow]No files tracked.[/]")
        console.print("  Start with: fimbl add <file>...")
        return

    console.print(table)
    console.print(f"{count} file(s) tracked")


@app.command()
def export(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: fimbl-records.jsonl)"),
):
    """Export all baselines as JSONL (one canonical JSON record per line)."""
    ledger = open_ledger(ctx)
    out_path = output or Path("fimbl-records.jsonl")

    count = 0
    try:
        with ledger, open(out_path, "w", encoding="utf-8") as f:
            for record in ledger.tracked():
                f.write(record_line(record))
                f.write("\n")
                count += 1
    except StoreError as e:
        console.print(f"[red]Failed to read database: {escape(str(e))}[/]")
        raise typer.Exit(EXIT_STORE_ERROR)
    except OSError as e:
        console.print(f"[red]Failed to write {escape(str(out_path))}: {escape(str(e))}[/]")
        raise typer.Exit(EXIT_STORE_ERROR)

    console.print(f"[green]Exported {count} records to {escape(str(out_path))}[/]")
    console.print("Format: JSONL, one canonical JSON record per line")


if __name__ == "__main__":
    app()
