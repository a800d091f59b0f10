"""Spawn the studio application pointed at the prepared place and the bridge."""

from __future__ import annotations

import logging
import os
import re
import shlex
import string
import subprocess
from dataclasses import dataclass
from pathlib import Path

from studio_runner.session.errors import LaunchFailedError
from studio_runner.session.models import RunConfiguration

logger = logging.getLogger(__name__)

SESSION_ENV_HOST = "STUDIO_RUNNER_SESSION_HOST"
SESSION_ENV_PORT = "STUDIO_RUNNER_SESSION_PORT"
SESSION_ENV_TOKEN = "STUDIO_RUNNER_SESSION_TOKEN"  # noqa: S105
SESSION_ENV_SCRIPT = "STUDIO_RUNNER_SESSION_SCRIPT"
SESSION_ENV_PLACE = "STUDIO_RUNNER_SESSION_PLACE"

_PLACEHOLDERS = ("studio", "place", "host", "port", "token", "script_file")
_QUOTE_PATTERN = re.compile(r'(\\*)"')


@dataclass(slots=True, frozen=True)
class LaunchRequest:
    """Everything needed to start one studio instance."""

    config: RunConfiguration
    command_template: str
    studio_executable: str
    script_path: Path


@dataclass(slots=True, frozen=True)
class LaunchedProcess:
    """Handle of a spawned studio; the runner never waits on it."""

    pid: int
    command_head: str


class StudioLauncher:
    """Start the studio detached from this process's lifetime."""

    def launch(self, request: LaunchRequest) -> LaunchedProcess:
        config = request.config
        try:
            request.script_path.write_text(config.script_source, "utf-8")
        except OSError as error:
            raise LaunchFailedError(
                f"Could not write script file {request.script_path}: {error}",
            ) from error

        run_args, command_head = build_run_args(
            command_template=request.command_template,
            values=_placeholder_values(request),
        )
        env = os.environ.copy()
        env.update(session_environment(config, script_path=request.script_path))

        try:
            process = subprocess.Popen(  # noqa: S603
                run_args,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **_detach_options(),
            )
        except FileNotFoundError as error:
            raise LaunchFailedError(f"Studio command not found: {command_head}") from error
        except OSError as error:
            raise LaunchFailedError(f"Studio failed to start: {error}") from error

        logger.info("Launched %s (pid=%d) for %s", command_head, process.pid, config.place_path)
        return LaunchedProcess(pid=process.pid, command_head=command_head)


def session_environment(config: RunConfiguration, *, script_path: Path) -> dict[str, str]:
    """Variables the studio extension reads to dial back into the bridge."""

    return {
        SESSION_ENV_HOST: config.host,
        SESSION_ENV_PORT: str(config.port),
        SESSION_ENV_TOKEN: config.session_token,
        SESSION_ENV_SCRIPT: str(script_path),
        SESSION_ENV_PLACE: str(config.place_path),
    }


def _placeholder_values(request: LaunchRequest) -> dict[str, str]:
    config = request.config
    return {
        "studio": request.studio_executable,
        "place": str(config.place_path),
        "host": config.host,
        "port": str(config.port),
        "token": config.session_token,
        "script_file": str(request.script_path),
    }


def build_run_args(
    *,
    command_template: str,
    values: dict[str, str],
    os_name: str | None = None,
) -> tuple[str | list[str], str]:
    """Render the launch template into argv (POSIX) or a command line (Windows)."""

    stripped = command_template.strip()
    if not stripped:
        raise LaunchFailedError("Studio command template is empty.")
    if "{place}" not in stripped:
        raise LaunchFailedError("Studio command template must include {place}.")

    current_os_name = os_name or os.name
    try:
        if current_os_name == "nt":
            rendered = _render_windows_command_template(template=stripped, values=values).strip()
            if not rendered:
                raise LaunchFailedError("Studio command template rendered empty command.")
            return rendered, rendered.split(maxsplit=1)[0]

        rendered = stripped.format(**{key: shlex.quote(value) for key, value in values.items()})
    except (KeyError, IndexError) as error:
        raise LaunchFailedError(
            f"Unsupported command template placeholder: {error}. "
            f"Supported: {', '.join('{' + name + '}' for name in _PLACEHOLDERS)}",
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise LaunchFailedError("Studio command template rendered empty command.")
    return argv, argv[0]


def _render_windows_command_template(*, template: str, values: dict[str, str]) -> str:
    """Substitute values into a Windows command line.

    A value inside a double-quoted span of the template only has its quotes
    escaped; a bare value is quoted as one ``list2cmdline`` argument.
    """

    rendered_parts: list[str] = []
    quoted = False
    for literal_text, field_name, format_spec, conversion in string.Formatter().parse(template):
        rendered_parts.append(literal_text)
        quoted ^= _unescaped_quote_count(literal_text) % 2 == 1
        if field_name is None:
            continue
        if conversion or format_spec:
            raise LaunchFailedError(
                f"Format conversions are not supported in placeholder {{{field_name}}}.",
            )
        value = values[field_name]
        if quoted:
            rendered_parts.append(value.replace('"', '\\"'))
        else:
            rendered_parts.append(subprocess.list2cmdline([value]))
    return "".join(rendered_parts)


def _unescaped_quote_count(literal_text: str) -> int:
    # A quote preceded by an odd run of backslashes is escaped.
    return sum(
        1 for match in _QUOTE_PATTERN.finditer(literal_text) if len(match.group(1)) % 2 == 0
    )


def _detach_options() -> dict[str, object]:
    if os.name == "nt":
        return {
            "creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP,
        }
    return {"start_new_session": True}
