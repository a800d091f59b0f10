"""Drain studio output into a run outcome, and drive one complete run."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PureWindowsPath

from studio_runner.config import Settings
from studio_runner.session.bridge import BridgeServer
from studio_runner.session.channel import MessageChannel
from studio_runner.session.errors import NoConnectionError, TransportClosedError
from studio_runner.session.launcher import LaunchRequest, StudioLauncher
from studio_runner.session.models import (
    EndMarker,
    EndReason,
    LogEvent,
    OutputLevel,
    RunConfiguration,
    RunOutcome,
    new_session_token,
)
from studio_runner.session.reaper import (
    ProcessTable,
    PsutilProcessTable,
    ReapReport,
    ensure_reaper_supported,
    reap_run_processes,
)
from studio_runner.session.workspace import load_script, prepare_workspace

logger = logging.getLogger(__name__)

_BRIDGE_JOIN_SECONDS = 5.0


class _DrainState(str, Enum):
    AWAITING_EVENTS = "awaiting_events"
    COMPLETE = "complete"


class RunOrchestrator:
    """Consumes one run's channel until the end marker and tallies severities."""

    def __init__(
        self,
        channel: MessageChannel,
        *,
        on_event: Callable[[LogEvent], None] | None = None,
        strict_disconnect: bool = False,
    ) -> None:
        self._channel = channel
        self._on_event = on_event or (lambda _event: None)
        self._strict_disconnect = strict_disconnect
        self._state: _DrainState | None = None
        self._counts = dict.fromkeys(OutputLevel, 0)

    def drain(self) -> RunOutcome:
        """Block until end of stream; raise for tooling failures reported by the bridge."""

        if self._state is not None:
            raise RuntimeError("RunOrchestrator.drain() may only be called once per run.")
        self._state = _DrainState.AWAITING_EVENTS

        while True:
            item = self._channel.receive()
            if isinstance(item, EndMarker):
                self._state = _DrainState.COMPLETE
                return self._finalize(item)
            self._counts[item.level] += 1
            self._on_event(item)

    def _finalize(self, marker: EndMarker) -> RunOutcome:
        if marker.reason is EndReason.NO_CONNECTION:
            raise NoConnectionError(marker.detail or "Studio never connected to the bridge.")
        if marker.reason is EndReason.BRIDGE_FAILED:
            raise TransportClosedError(marker.detail or "Bridge failed during the run.")
        return RunOutcome(
            error_count=self._counts[OutputLevel.ERROR],
            warning_count=self._counts[OutputLevel.WARNING],
            print_count=self._counts[OutputLevel.PRINT],
            info_count=self._counts[OutputLevel.INFO],
            end_reason=marker.reason,
            strict_disconnect=self._strict_disconnect,
        )


@dataclass(slots=True, frozen=True)
class RunRequest:
    """Per-invocation inputs on top of ``Settings``."""

    place_path: Path | None
    script_path: Path
    stay_alive: bool = False


def execute_run(
    request: RunRequest,
    settings: Settings,
    *,
    on_event: Callable[[LogEvent], None] | None = None,
    launcher: StudioLauncher | None = None,
    process_table: ProcessTable | None = None,
) -> RunOutcome:
    """Launch the studio, relay its output and close it again.

    Raises a ``RunnerError`` subclass for every failure of the tooling itself.
    """

    if not request.stay_alive:
        ensure_reaper_supported()

    script_source = load_script(request.script_path)
    launcher = launcher or StudioLauncher()

    with (
        prepare_workspace(request.place_path, temp_root=settings.temp_root_dir) as workspace,
        BridgeServer(
            settings.bridge.host,
            settings.bridge.port,
            handshake_timeout_seconds=settings.bridge.handshake_timeout_seconds,
        ) as server,
    ):
        config = RunConfiguration(
            host=server.host,
            port=server.port,
            place_path=workspace.place_path,
            session_token=new_session_token(),
            script_source=script_source,
        )
        channel = MessageChannel()
        bridge_thread = threading.Thread(
            target=_serve_bridge,
            args=(server, config, channel, settings.bridge.connect_timeout_seconds),
            daemon=True,
            name="studio-bridge",
        )
        bridge_thread.start()
        logger.info("Bridge listening on %s:%d", config.host, config.port)

        launched = False
        try:
            launcher.launch(
                LaunchRequest(
                    config=config,
                    command_template=settings.studio.command_template,
                    studio_executable=settings.studio.executable,
                    script_path=workspace.script_path,
                ),
            )
            launched = True
            return RunOrchestrator(
                channel,
                on_event=on_event,
                strict_disconnect=settings.bridge.strict_disconnect,
            ).drain()
        finally:
            server.request_stop()
            if launched and not request.stay_alive:
                reap_run_processes(
                    process_table or PsutilProcessTable(),
                    process_name=settings.studio.process_name,
                    fingerprint=workspace.fingerprint,
                    executable_suffix=_executable_suffix(settings),
                )
            bridge_thread.join(timeout=_BRIDGE_JOIN_SECONDS)
            if bridge_thread.is_alive():
                logger.warning(
                    "Bridge thread did not stop within %.0f seconds",
                    _BRIDGE_JOIN_SECONDS,
                )


def reap_stray_studios(
    settings: Settings,
    *,
    fingerprint: str,
    process_table: ProcessTable | None = None,
) -> ReapReport:
    """Close studios left behind by earlier runs that never cleaned up."""

    ensure_reaper_supported()
    return reap_run_processes(
        process_table or PsutilProcessTable(),
        process_name=settings.studio.process_name,
        fingerprint=fingerprint,
        executable_suffix=_executable_suffix(settings),
    )


def _serve_bridge(
    server: BridgeServer,
    config: RunConfiguration,
    channel: MessageChannel,
    connect_timeout_seconds: float,
) -> None:
    try:
        server.serve_session(config, channel, connect_timeout_seconds=connect_timeout_seconds)
    except Exception:  # noqa: BLE001
        logger.exception("Bridge thread crashed")


def _executable_suffix(settings: Settings) -> str | None:
    if "{studio}" not in settings.studio.command_template:
        return None
    return PureWindowsPath(settings.studio.executable).name or None
