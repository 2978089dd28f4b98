from typing import Annotated

import typer

from detective_d.cli.analyze import analyze
from detective_d.cli.cache import cache_app
from detective_d.cli.serve import serve
from detective_d.config import configure_logging

app = typer.Typer(
    name="detective-d",
    help="Detective D CLI: locate defects in JSON, CSV, XML and YAML files.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main_callback(
    log_level: Annotated[str | None, typer.Option(help="Logging level (default: LOG_LEVEL or INFO).")] = None,
) -> None:
    configure_logging(log_level)


app.command("analyze")(analyze)
app.add_typer(cache_app, name="cache")
app.command("serve")(serve)


def main() -> None:
    app()
