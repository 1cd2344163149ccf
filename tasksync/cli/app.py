"""CLI app entry point.

Provides the main Typer app with global flags for output format,
verbosity and API URL. State is stored in the Typer context for commands.
"""

import logging
from typing import Optional

import typer
from dotenv import load_dotenv

from tasksync.cli.commands.actions import answer, apply, approve, reject, revert
from tasksync.cli.commands.cache import cache_clear
from tasksync.cli.commands.follow import follow
from tasksync.cli.commands.show import show
from tasksync.cli.state import CLIState
from tasksync.client.core import resolve_url
from tasksync.config.settings import clear_settings_cache, get_logging_settings
from tasksync.logging import configure_logging, set_debug_mode

app = typer.Typer(
    name="tasksync",
    help="tasksync - follow and steer remote agent sessions.",
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for scripting",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logs",
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="Session API base URL",
        envvar="TASKSYNC_API_BASE_URL",
    ),
) -> None:
    """tasksync CLI."""
    load_dotenv()
    clear_settings_cache()

    set_debug_mode(verbose)
    logging_settings = get_logging_settings()
    configure_logging(
        log_dir=logging_settings.dir,
        console_level=logging.DEBUG if verbose else logging_settings.level,
        component_levels=logging_settings.component_levels,
    )

    ctx.obj = CLIState(
        json_mode=json_output,
        verbose=verbose,
        api_url=resolve_url(url),
    )


app.command()(follow)
app.command()(show)
app.command()(approve)
app.command()(reject)
app.command()(apply)
app.command()(revert)
app.command()(answer)
app.command("cache-clear")(cache_clear)


if __name__ == "__main__":
    app()
