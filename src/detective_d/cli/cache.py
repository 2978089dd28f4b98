import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from detective_d.cache.result_cache import ResultCache
from detective_d.config import get_settings

cache_app = typer.Typer(help="Inspect and flush the result cache.")
console = Console()


def _get_cache() -> ResultCache:
    return ResultCache.from_settings(get_settings())


@cache_app.command("stats")
def stats() -> None:
    """Show cache counters and the running versions."""
    cache = _get_cache()

    async def _run() -> None:
        try:
            counters = await cache.stats()
            table = Table(show_lines=False)
            table.add_column("metric")
            table.add_column("value")
            table.add_row("backend", cache.backend_name)
            table.add_row("hits", str(counters.hits))
            table.add_row("misses", str(counters.misses))
            table.add_row("invalidations", str(counters.invalidations))
            table.add_row("total_requests", str(counters.total_requests))
            table.add_row("hit_rate", f"{counters.hit_rate * 100:.2f}%")
            for kind, version in cache.versions().items():
                table.add_row(f"{kind}_version", version)
            console.print(table)
        finally:
            await cache.stop()

    asyncio.run(_run())


@cache_app.command("flush")
def flush(
    file_type: Annotated[str | None, typer.Option("--file-type", "-t", help="Only flush one file type.")] = None,
) -> None:
    """Delete cached analyses."""
    if file_type is not None and file_type not in ("json", "csv", "xml", "yaml"):
        console.print(f"[red]Unsupported file type:[/red] {file_type}")
        raise typer.Exit(code=2)
    cache = _get_cache()

    async def _run() -> int:
        try:
            if file_type is None:
                return await cache.invalidate_all()
            return await cache.invalidate_file_type(file_type)  # type: ignore[arg-type]
        finally:
            await cache.stop()

    removed = asyncio.run(_run())
    console.print(f"[green]Removed[/green] {removed} cache entr{'y' if removed == 1 else 'ies'} ({cache.backend_name})")
