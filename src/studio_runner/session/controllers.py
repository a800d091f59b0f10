"""Controllers for studio-runner CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from rich.console import Console
from rich.text import Text

from studio_runner.config import Settings
from studio_runner.logging_utils import configure_logging
from studio_runner.session.errors import RunnerError
from studio_runner.session.models import EXIT_SUCCESS, EXIT_TOOLING_FAILURE, LogEvent
from studio_runner.session.reaper import ProcessTable
from studio_runner.session.render import render_event, render_summary
from studio_runner.session.runner import RunRequest, execute_run, reap_stray_studios
from studio_runner.session.workspace import PLACE_FINGERPRINT

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    """CLI input for one scripted studio run."""

    place_path: Path | None
    script_path: Path
    stay_alive: bool = False
    port: int | None = None
    connect_timeout_seconds: float | None = None
    studio_command: str | None = None
    strict_disconnect: bool | None = None
    log_level: str | None = None


@dataclass(slots=True)
class ReapCommand:
    """CLI input for closing stray studios from earlier runs."""

    fingerprint: str = PLACE_FINGERPRINT
    log_level: str | None = None


class RunnerCliController:
    """CLI controller for run and cleanup operations."""

    def __init__(
        self,
        *,
        settings_loader: Callable[[], Settings] = Settings.from_env,
        process_table: ProcessTable | None = None,
    ) -> None:
        self._settings_loader = settings_loader
        self._process_table = process_table

    def run(self, command: RunCommand, console: Console) -> int:
        """Execute one run, printing output live; returns the process exit code."""

        settings = _ready(_apply_overrides(self._settings_loader(), command))

        def _on_event(event: LogEvent) -> None:
            console.print(render_event(event), markup=False, highlight=False)

        try:
            outcome = execute_run(
                RunRequest(
                    place_path=command.place_path,
                    script_path=command.script_path,
                    stay_alive=command.stay_alive,
                ),
                settings,
                on_event=_on_event,
                process_table=self._process_table,
            )
        except RunnerError as error:
            logger.debug("Run aborted", exc_info=True)
            console.print(Text(f"studio-runner: {error}", style="bold red"), highlight=False)
            return EXIT_TOOLING_FAILURE

        console.print(render_summary(outcome), highlight=False)
        return outcome.exit_code

    def reap(self, command: ReapCommand, console: Console) -> int:
        """Terminate studios whose launch arguments carry the fingerprint."""

        settings = _ready(
            _with_log_level(self._settings_loader(), command.log_level),
        )
        try:
            report = reap_stray_studios(
                settings,
                fingerprint=command.fingerprint,
                process_table=self._process_table,
            )
        except RunnerError as error:
            console.print(Text(f"studio-runner: {error}", style="bold red"), highlight=False)
            return EXIT_TOOLING_FAILURE

        for pid in report.terminated:
            console.print(f"Terminated pid={pid}", highlight=False)
        for pid in report.failed:
            console.print(Text(f"Could not terminate pid={pid}", style="yellow"), highlight=False)
        console.print(
            f"Matched {len(report.matched)} studio process(es), "
            f"terminated {len(report.terminated)}.",
            highlight=False,
        )
        return EXIT_SUCCESS


def _ready(settings: Settings) -> Settings:
    settings.validate()
    configure_logging(settings.log_level)
    return settings

def _apply_overrides(settings: Settings, command: RunCommand) -> Settings:
    bridge = settings.bridge
    if command.port is not None:
        bridge = replace(bridge, port=command.port)
    if command.connect_timeout_seconds is not None:
        bridge = replace(bridge, connect_timeout_seconds=command.connect_timeout_seconds)
    if command.strict_disconnect is not None:
        bridge = replace(bridge, strict_disconnect=command.strict_disconnect)
    studio = settings.studio
    if command.studio_command is not None:
        studio = replace(studio, command_template=command.studio_command)
    return _with_log_level(replace(settings, bridge=bridge, studio=studio), command.log_level)


def _with_log_level(settings: Settings, log_level: str | None) -> Settings:
    if log_level is None:
        return settings
    return replace(settings, log_level=log_level.strip().upper())
