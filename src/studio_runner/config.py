"""Runtime configuration for the bridge, the launched studio and logging."""

from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_STUDIO_EXECUTABLE = "RobloxStudioBeta.exe"
DEFAULT_BRIDGE_PORT = 50312
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_command_template(platform: str | None = None) -> str:
    """Launch template for the host platform; Linux runs the studio under Wine."""

    if (platform or sys.platform).startswith("linux"):
        return "wine {studio} {place}"
    return "{studio} {place}"


def default_process_name(platform: str | None = None) -> str:
    """Process name the reaper filters on before looking at arguments."""

    if (platform or sys.platform).startswith("linux"):
        return "wine"
    return DEFAULT_STUDIO_EXECUTABLE


def default_temp_root(platform: str | None = None) -> Path | None:
    """Parent for private workspace directories; Wine cannot always see the system temp."""

    if (platform or sys.platform).startswith("linux"):
        return Path.home() / ".tmp"
    return None


@dataclass(slots=True)
class BridgeSettings:
    """Local listener settings."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_BRIDGE_PORT
    connect_timeout_seconds: float = 120.0
    handshake_timeout_seconds: float = 10.0
    strict_disconnect: bool = False


@dataclass(slots=True)
class StudioSettings:
    """How the studio application is launched and later found again."""

    executable: str = DEFAULT_STUDIO_EXECUTABLE
    command_template: str = field(default_factory=default_command_template)
    process_name: str = field(default_factory=default_process_name)
    temp_root: Path | None = field(default_factory=default_temp_root)


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    bridge: BridgeSettings = field(default_factory=BridgeSettings)
    studio: StudioSettings = field(default_factory=StudioSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment, falling back to defaults for the host platform."""

        temp_root_raw = os.getenv("STUDIO_RUNNER_TEMP_ROOT", "").strip()
        return cls(
            bridge=BridgeSettings(
                host=os.getenv("STUDIO_RUNNER_BRIDGE_HOST", "127.0.0.1"),
                port=int(os.getenv("STUDIO_RUNNER_BRIDGE_PORT", str(DEFAULT_BRIDGE_PORT))),
                connect_timeout_seconds=float(
                    os.getenv("STUDIO_RUNNER_CONNECT_TIMEOUT_SECONDS", "120"),
                ),
                handshake_timeout_seconds=float(
                    os.getenv("STUDIO_RUNNER_HANDSHAKE_TIMEOUT_SECONDS", "10"),
                ),
                strict_disconnect=_env_bool("STUDIO_RUNNER_STRICT_DISCONNECT", default=False),
            ),
            studio=StudioSettings(
                executable=os.getenv("STUDIO_RUNNER_STUDIO_EXECUTABLE", DEFAULT_STUDIO_EXECUTABLE),
                command_template=os.getenv(
                    "STUDIO_RUNNER_STUDIO_COMMAND",
                    default_command_template(),
                ),
                process_name=os.getenv("STUDIO_RUNNER_PROCESS_NAME", default_process_name()),
                temp_root=(
                    Path(temp_root_raw).expanduser() if temp_root_raw else default_temp_root()
                ),
            ),
            log_level=os.getenv("STUDIO_RUNNER_LOG_LEVEL", "WARNING").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the runner cannot work with."""

        if not 0 <= self.bridge.port <= 65535:  # noqa: PLR2004
            raise ValueError(
                f"STUDIO_RUNNER_BRIDGE_PORT must be within 0..65535, got {self.bridge.port}.",
            )
        if self.bridge.connect_timeout_seconds <= 0:
            raise ValueError("STUDIO_RUNNER_CONNECT_TIMEOUT_SECONDS must be > 0.")
        if self.bridge.handshake_timeout_seconds <= 0:
            raise ValueError("STUDIO_RUNNER_HANDSHAKE_TIMEOUT_SECONDS must be > 0.")
        if "{place}" not in self.studio.command_template:
            raise ValueError("STUDIO_RUNNER_STUDIO_COMMAND must include {place}.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid STUDIO_RUNNER_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of: {', '.join(_LOG_LEVELS)}.",
            )

    @property
    def temp_root_dir(self) -> Path:
        return self.studio.temp_root or Path(tempfile.gettempdir())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
