"""Domain models shared by the bridge, the orchestrator and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from uuid import uuid4

EXIT_SUCCESS = 0
EXIT_TEST_FAILURE = 1
EXIT_TOOLING_FAILURE = 2

SESSION_TOKEN_PREFIX = "studio-runner-"


class OutputLevel(str, Enum):
    """Severity of one line of studio output."""

    INFO = "info"
    PRINT = "print"
    WARNING = "warning"
    ERROR = "error"


class EndReason(str, Enum):
    """Why the bridge stopped forwarding events."""

    FINISHED = "finished"
    DISCONNECTED = "disconnected"
    NO_CONNECTION = "no_connection"
    BRIDGE_FAILED = "bridge_failed"


@dataclass(slots=True, frozen=True)
class LogEvent:
    """One output record reported by the studio extension."""

    level: OutputLevel
    body: str


@dataclass(slots=True, frozen=True)
class EndMarker:
    """Sentinel that closes the event stream of a run."""

    reason: EndReason
    detail: str | None = None


@dataclass(slots=True, frozen=True)
class RunConfiguration:
    """Immutable per-run values shared by the launcher and the bridge thread."""

    host: str
    port: int
    place_path: Path
    session_token: str
    script_source: str


@dataclass(slots=True, frozen=True)
class RunOutcome:
    """Final counts of a drained run."""

    error_count: int
    warning_count: int
    print_count: int
    info_count: int
    end_reason: EndReason
    strict_disconnect: bool = False

    @property
    def exit_code(self) -> int:
        if self.error_count > 0:
            return EXIT_TEST_FAILURE
        if self.strict_disconnect and self.end_reason is EndReason.DISCONNECTED:
            return EXIT_TEST_FAILURE
        return EXIT_SUCCESS


def new_session_token() -> str:
    """Return a fresh correlation token for one run."""

    return f"{SESSION_TOKEN_PREFIX}{uuid4().hex}"
