"""Tooling failures that abort a run.

Every class here maps to exit code 2 at the CLI. Test failures reported by
the script itself are not exceptions; they are counted in ``RunOutcome``.
"""

from __future__ import annotations


class RunnerError(Exception):
    """Base exception for failures of the runner itself."""


class BindFailedError(RunnerError):
    """Raised when the bridge listener cannot be created."""


class LaunchFailedError(RunnerError):
    """Raised when the studio process cannot be spawned."""


class NoConnectionError(RunnerError):
    """Raised when no client presented a valid token before the connect deadline."""


class TransportClosedError(RunnerError):
    """Raised when the message channel closes without an end marker."""


class WorkspaceError(RunnerError):
    """Raised when the private place copy cannot be prepared."""


class ScriptLoadError(RunnerError):
    """Raised when the script to run cannot be read."""


class UnsupportedPlatformError(RunnerError):
    """Raised for option combinations the host platform cannot honour."""
