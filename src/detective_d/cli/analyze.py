import asyncio
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from detective_d.cache.result_cache import ResultCache
from detective_d.config import get_settings
from detective_d.core.pipeline import AnalysisOutcome, Analyzer
from detective_d.llm.invoker import ChatCompletionsInvoker
from detective_d.models import AnalysisResponse, AnalyzeRequest

console = Console()


def _get_analyzer() -> Analyzer:
    settings = get_settings()
    return Analyzer(ChatCompletionsInvoker(settings), ResultCache.from_settings(settings))


def _render(response: AnalysisResponse, cache_hit: bool) -> None:
    table = Table(show_lines=False)
    for header in ("line", "col", "type", "severity", "category", "confidence", "message"):
        table.add_column(header)
    for finding in response.errors:
        table.add_row(
            "-" if finding.line is None else str(finding.line),
            "-" if finding.column is None else str(finding.column),
            finding.type,
            finding.severity,
            finding.category,
            f"{finding.confidence:.2f}",
            finding.message,
        )
    console.print(table)
    status_colour = "green" if response.llm_status == "success" else "yellow"
    console.print(
        f"[{status_colour}]{response.llm_status}[/{status_colour}] "
        f"{response.file_type} | {response.total_errors} error(s), {response.summary.total_warnings} warning(s) "
        f"| cache {'HIT' if cache_hit else 'MISS'}"
    )
    if response.llm_error:
        console.print(f"[yellow]Model:[/yellow] {response.llm_error}")


def analyze(
    path: Annotated[Path, typer.Argument(help="File to analyze.", exists=True, dir_okay=False, readable=True)],
    file_type: Annotated[str, typer.Option("--file-type", "-t", help="auto, json, csv, xml or yaml.")] = "auto",
    max_errors: Annotated[int, typer.Option(help="Maximum findings to report (1-1000).")] = 100,
    stream: Annotated[bool, typer.Option(help="Stream the model response.")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the full JSON document.")] = False,
) -> None:
    """Analyze a JSON, CSV, XML or YAML file."""
    try:
        request = AnalyzeRequest(
            content=path.read_text(encoding="utf-8"),
            file_type=file_type,  # type: ignore[arg-type]
            file_name=path.name,
            max_errors=max_errors,
            stream=stream,
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid request:[/red] {exc.errors()[0]['msg']}")
        raise typer.Exit(code=2) from None

    analyzer = _get_analyzer()

    async def _run() -> AnalysisOutcome:
        try:
            return await analyzer.analyze(request)
        finally:
            await analyzer.cache.stop()
            await analyzer.model.aclose()

    outcome = asyncio.run(_run())
    if as_json:
        typer.echo(outcome.response.model_dump_json(indent=2))
        return
    _render(outcome.response, outcome.cache_hit)
