"""Command line interface for Kepler."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import httpx
import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from kepler.config import AppConfig
from kepler.errors import DocumentNotFoundError, KeplerError
from kepler.models import DocumentRecord
from kepler.net.ratelimit import describe
from kepler.service import Kepler, Track
from kepler.view.filters import FilterState, Selection, SortState, apply_view, is_stale
from kepler.view.stats import (
    count_by_status,
    count_by_subgroup,
    count_by_year,
    join_changes,
    related_numbers,
    release_groups,
    release_versions,
)

T = TypeVar("T")

console = Console()
app = typer.Typer(help="Kepler - browse Kubernetes enhancement proposals")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _run(cache: Optional[Path], action: Callable[[Kepler], Awaitable[T]]) -> T:
    """Run ``action`` against a freshly wired :class:`Kepler`, reporting hard failures."""

    async def runner() -> T:
        async with Kepler(AppConfig.from_env(cache_path=cache)) as kepler:
            return await action(kepler)

    try:
        return asyncio.run(runner())
    except DocumentNotFoundError as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        raise typer.Exit(code=1) from exc
    except (KeplerError, httpx.HTTPError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


async def _load(track: Track) -> List[DocumentRecord]:
    with Progress(
        TextColumn(f"Loading {track.source.label}s"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as bar:
        task = bar.add_task("load", total=None)

        def on_progress(loaded: int, total: int) -> None:
            bar.update(task, completed=loaded, total=total)

        return await track.documents.fetch_all(on_progress)


def _label(track: Track, number: str) -> str:
    return f"{track.source.label}-{number}"


def _print_records(
    track: Track, records: List[DocumentRecord], bookmarks: frozenset, threshold: timedelta
) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("", width=1)
    table.add_column("Number")
    table.add_column("Title")
    if track.source.name == "kep":
        table.add_column("SIG")
        table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Updated")

    for record in records:
        status = record.status or ""
        if is_stale(record, threshold=threshold):
            status += " [yellow](stale)[/yellow]"
        row = ["★" if record.number in bookmarks else "", _label(track, record.number), record.title or record.slug]
        if track.source.name == "kep":
            row += [record.subgroup or "", record.stage or ""]
        row += [status, record.last_updated or record.creation_date or ""]
        table.add_row(*row)

    console.print(table)


def _selection(values: Optional[List[str]]) -> Selection:
    return Selection.of(values) if values else Selection.unset()


@app.command("list")
def list_documents(
    track: str = typer.Argument("kep", help="Proposal track: kep or gep"),
    query: str = typer.Option("", "--query", "-q", help="Search title, number, author, slug"),
    sig: Optional[List[str]] = typer.Option(None, "--sig", help="Only these SIGs (repeatable)"),
    status: Optional[List[str]] = typer.Option(None, "--status", help="Only these statuses (repeatable)"),
    stage: Optional[List[str]] = typer.Option(None, "--stage", help="Only these stages (repeatable)"),
    stale: bool = typer.Option(False, "--stale", help="Only stale proposals"),
    bookmarked: bool = typer.Option(False, "--bookmarked", help="Only bookmarked proposals"),
    sort: str = typer.Option("number", help="Sort key"),
    ascending: bool = typer.Option(False, "--asc", help="Sort ascending"),
    page: int = typer.Option(1, help="Page number"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """List proposals matching the given filters."""
    _setup_logging(verbose)

    async def action(kepler: Kepler) -> None:
        selected = kepler.track(track)
        records = await _load(selected)
        bookmarks = selected.bookmarks.all()
        filters = FilterState(
            query=query,
            subgroup=_selection(sig),
            status=_selection(status),
            stage=_selection(stage),
            stale_only=stale,
            bookmarked_only=bookmarked,
            bookmarks=bookmarks,
        )
        result = apply_view(
            records,
            filters,
            SortState(sort, descending=not ascending),
            page,
            page_size=kepler.config.page_size,
            threshold=kepler.config.stale_threshold,
        )
        if not result.items:
            console.print("[yellow]No matches found.[/yellow]")
            return
        _print_records(selected, result.items, bookmarks, kepler.config.stale_threshold)
        suffix = " matching filters" if filters.active else ""
        console.print(
            f"{result.total_count} {selected.source.label}s{suffix} "
            f"(page {result.page}/{result.total_pages})"
        )
        if verbose:
            console.print(f"GitHub API: {describe(kepler.rate_limit.snapshot())}")

    _run(cache, action)


@app.command()
def show(
    number: str = typer.Argument(..., help="Proposal number"),
    track: str = typer.Option("kep", "--track", "-t", help="Proposal track: kep or gep"),
    narrative: bool = typer.Option(False, "--narrative", help="Print the full narrative"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show a single proposal."""
    _setup_logging(verbose)

    async def action(kepler: Kepler) -> None:
        selected = kepler.track(track)
        record = await selected.documents.fetch_document(number)
        console.print(f"[bold]{_label(selected, record.number)}[/bold] {record.title}")
        details = [
            ("Status", record.status),
            ("Stage", record.stage),
            ("SIG", record.subgroup),
            ("Authors", ", ".join(record.authors)),
            ("Created", record.creation_date),
            ("Updated", record.last_updated),
            ("Milestones", ", ".join(f"{k}: {v}" for k, v in record.milestone.items())),
            ("GitHub", record.github_url),
        ]
        related = related_numbers(record)
        for name, numbers in (
            ("See also", related["see_also"]),
            ("Replaces", related["replaces"]),
            ("Superseded by", related["superseded_by"]),
        ):
            details.append((name, ", ".join(_label(selected, ref) for ref in numbers)))
        for name, value in details:
            if value:
                console.print(f"  {name}: {value}")
        if narrative:
            text = await selected.documents.fetch_narrative(record.path)
            console.print(text or "[yellow]No narrative available.[/yellow]")
        elif record.excerpt:
            console.print(f"\n{record.excerpt}")

    _run(cache, action)


@app.command()
def recent(
    track: str = typer.Argument("kep", help="Proposal track: kep or gep"),
    limit: int = typer.Option(10, help="Number of proposals to report"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show recently changed proposals."""
    _setup_logging(verbose)

    async def action(kepler: Kepler) -> None:
        selected = kepler.track(track)
        events = await selected.activity.find_recently_changed(limit)
        if not events:
            console.print("[yellow]No recent changes found.[/yellow]")
            return
        records = await _load(selected)
        for record, date in join_changes(events, records, limit):
            console.print(f"{date:%Y-%m-%d}  {_label(selected, record.number)}  {record.title}")

    _run(cache, action)


@app.command()
def stats(
    track: str = typer.Argument("kep", help="Proposal track: kep or gep"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
) -> None:
    """Print counts by status, SIG and creation year."""

    async def action(kepler: Kepler) -> None:
        records = await _load(kepler.track(track))
        total = len(records)
        table = Table(title="By status", show_header=True, header_style="bold magenta")
        table.add_column("Status")
        table.add_column("Count")
        table.add_column("Share")
        for name, count in count_by_status(records):
            share = f"{count / total * 100:.1f}%" if total else "0.0%"
            table.add_row(name, str(count), share)
        console.print(table)
        for title, rows in (("By SIG", count_by_subgroup(records)), ("By year", count_by_year(records))):
            if rows:
                console.print(f"[bold]{title}[/bold]: " + ", ".join(f"{k} {v}" for k, v in rows))

    _run(cache, action)


@app.command()
def release(
    version: str = typer.Argument("", help="Release such as 1.30; defaults to the latest"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
) -> None:
    """Show KEPs graduating in a release."""

    async def action(kepler: Kepler) -> None:
        selected = kepler.track("kep")
        records = await _load(selected)
        versions = release_versions(records)
        chosen = version.lstrip("v") or (versions[-1] if versions else "")
        groups = release_groups(records, chosen) if chosen else []
        if not groups:
            console.print(f"[yellow]No KEPs found for v{chosen}.[/yellow]")
            return
        for group in groups:
            console.print(f"[bold]{group.label}[/bold] ({len(group.records)})")
            for record in group.records:
                console.print(f"  {_label(selected, record.number)}  {record.title}")

    _run(cache, action)


@app.command()
def bookmark(
    number: str = typer.Argument(..., help="Proposal number"),
    track: str = typer.Option("kep", "--track", "-t", help="Proposal track: kep or gep"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
) -> None:
    """Toggle a bookmark."""

    async def action(kepler: Kepler) -> bool:
        return kepler.track(track).bookmarks.toggle(number)

    added = _run(cache, action)
    console.print(f"{'Bookmarked' if added else 'Removed bookmark for'} {track.upper()}-{number}")


@app.command()
def refresh(
    track: Optional[str] = typer.Argument(None, help="Track to refresh; all when omitted"),
    cache: Path = typer.Option(None, "--cache", help="Cache database path"),
) -> None:
    """Drop cached listings so the next command fetches fresh data."""

    async def action(kepler: Kepler) -> None:
        kepler.invalidate(track)

    _run(cache, action)
    console.print("Cache cleared.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the JSON API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from kepler.web.app import app as web_app

    console.print(f"Starting Kepler API on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
