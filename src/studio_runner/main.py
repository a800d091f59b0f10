"""CLI entrypoint for studio-runner."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click
from rich.console import Console
from rich.text import Text

from studio_runner import __version__
from studio_runner.session.controllers import ReapCommand, RunCommand, RunnerCliController
from studio_runner.session.models import EXIT_TOOLING_FAILURE
from studio_runner.session.workspace import PLACE_FINGERPRINT

logger = logging.getLogger(__name__)

click.rich_click.USE_MARKDOWN = True
RUNNER_CONTROLLER = RunnerCliController()


@click.group()
@click.version_option(version=__version__, prog_name="studio-runner")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Diagnostic log level. Defaults to STUDIO_RUNNER_LOG_LEVEL or WARNING.",
)
@click.pass_context
def studio_runner(ctx: click.Context, log_level: str | None) -> None:
    """Run scripts inside a studio application and report the result as an exit code."""

    ctx.ensure_object(dict)["log_level"] = log_level


@studio_runner.command("run")
@click.pass_context
@click.option(
    "--place",
    "place_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Place file to open. A private copy is used so the original is never locked.",
)
@click.option(
    "--script",
    "script_path",
    type=click.Path(path_type=Path, dir_okay=False),
    required=True,
    help="Script to run inside the studio.",
)
@click.option(
    "-a",
    "--stay-alive",
    is_flag=True,
    default=False,
    help="Leave the studio open after the script finishes.",
)
@click.option(
    "--port",
    type=click.IntRange(min=0, max=65535),
    default=None,
    help="Bridge port. 0 picks a free port. Defaults to STUDIO_RUNNER_BRIDGE_PORT or 50312.",
)
@click.option(
    "--connect-timeout",
    "connect_timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait for the studio to connect back.",
)
@click.option(
    "--studio-command",
    default=None,
    help=(
        "Launch template. Supports {studio}, {place}, {host}, {port}, {token} and "
        "{script_file}. If omitted, STUDIO_RUNNER_STUDIO_COMMAND is used."
    ),
)
@click.option(
    "--strict-disconnect/--lenient-disconnect",
    default=None,
    help="Fail the run when the studio disconnects before reporting it finished.",
)
def run(  # noqa: PLR0913
    ctx: click.Context,
    place_path: Path | None,
    script_path: Path,
    stay_alive: bool,
    port: int | None,
    connect_timeout_seconds: float | None,
    studio_command: str | None,
    strict_disconnect: bool | None,
) -> None:
    """Run a script in the studio.

    Exits 0 when the script passed, 1 when it reported errors and 2 when the runner failed.
    """

    exit_code = _guarded(
        lambda console: RUNNER_CONTROLLER.run(
            RunCommand(
                place_path=place_path,
                script_path=script_path,
                stay_alive=stay_alive,
                port=port,
                connect_timeout_seconds=connect_timeout_seconds,
                studio_command=studio_command,
                strict_disconnect=strict_disconnect,
                log_level=ctx.obj.get("log_level"),
            ),
            console,
        ),
    )
    ctx.exit(exit_code)


@studio_runner.command("reap")
@click.pass_context
@click.option(
    "--fingerprint",
    default=PLACE_FINGERPRINT,
    show_default=True,
    help="Substring of the launch arguments that identifies studios started by this tool.",
)
def reap(ctx: click.Context, fingerprint: str) -> None:
    """Close studio instances left running by earlier runs."""

    exit_code = _guarded(
        lambda console: RUNNER_CONTROLLER.reap(
            ReapCommand(fingerprint=fingerprint, log_level=ctx.obj.get("log_level")),
            console,
        ),
    )
    ctx.exit(exit_code)


def _guarded(action: Callable[[Console], int]) -> int:
    console = Console(highlight=False, soft_wrap=True)
    try:
        return action(console)
    except ValueError as error:
        console.print(Text(f"Configuration error: {error}", style="bold red"))
        return EXIT_TOOLING_FAILURE
    except Exception:  # noqa: BLE001
        logger.exception("studio-runner failed unexpectedly")
        return EXIT_TOOLING_FAILURE


if __name__ == "__main__":  # pragma: no cover
    studio_runner()
