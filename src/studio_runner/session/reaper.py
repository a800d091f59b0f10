"""Find and terminate the studio instance launched for a run."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

import psutil

from studio_runner.session.errors import UnsupportedPlatformError

logger = logging.getLogger(__name__)

REAPER_PLATFORMS: tuple[str, ...] = ("linux",)


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """Snapshot of one running process."""

    pid: int
    name: str
    cmdline: tuple[str, ...]


@dataclass(slots=True)
class ReapReport:
    """What the reaper matched and what it managed to signal."""

    matched: list[ProcessInfo] = field(default_factory=list)
    terminated: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


class ProcessTable(Protocol):
    """Capability the reaper needs from the operating system."""

    def list_processes(self) -> list[ProcessInfo]:
        """Return every process visible to the current user."""

    def terminate(self, pid: int) -> None:
        """Send a termination signal; raise on failure."""


class PsutilProcessTable:
    """``ProcessTable`` backed by psutil."""

    def list_processes(self) -> list[ProcessInfo]:
        processes: list[ProcessInfo] = []
        for process in psutil.process_iter(["pid", "name", "cmdline"]):
            info = process.info
            processes.append(
                ProcessInfo(
                    pid=int(info["pid"]),
                    name=info.get("name") or "",
                    cmdline=tuple(info.get("cmdline") or ()),
                ),
            )
        return processes

    def terminate(self, pid: int) -> None:
        psutil.Process(pid).terminate()


def reaper_supported(platform: str | None = None) -> bool:
    """Whether argument introspection is reliable for the launch mechanism on this platform."""

    current = platform or sys.platform
    return any(current.startswith(prefix) for prefix in REAPER_PLATFORMS)


def ensure_reaper_supported(platform: str | None = None) -> None:
    if not reaper_supported(platform):
        raise UnsupportedPlatformError(
            f"Closing the studio after a run is not supported on {platform or sys.platform}; "
            "pass --stay-alive to keep it open.",
        )


def find_run_processes(
    processes: Iterable[ProcessInfo],
    *,
    process_name: str,
    fingerprint: str,
    executable_suffix: str | None = None,
    exclude_pids: Iterable[int] = (),
) -> list[ProcessInfo]:
    """Select processes named like the studio whose arguments carry ``fingerprint``.

    ``cmdline[0]`` is the program itself; the fingerprint must appear in one
    of the arguments after it. With ``executable_suffix`` set, ``cmdline[0]``
    must also end with it (for example the studio ``.exe`` run under Wine).
    """

    wanted_name = process_name.lower()
    excluded = set(exclude_pids)
    matches: list[ProcessInfo] = []
    for process in processes:
        if process.pid in excluded:
            continue
        if wanted_name not in process.name.lower():
            continue
        if len(process.cmdline) <= 1:
            continue
        if executable_suffix and not process.cmdline[0].lower().endswith(
            executable_suffix.lower(),
        ):
            continue
        if any(fingerprint in argument for argument in process.cmdline[1:]):
            matches.append(process)
    return matches


def reap_run_processes(
    table: ProcessTable,
    *,
    process_name: str,
    fingerprint: str,
    executable_suffix: str | None = None,
) -> ReapReport:
    """Terminate matching processes; signal failures are logged, never raised."""

    report = ReapReport()
    try:
        processes = table.list_processes()
    except (psutil.Error, OSError) as error:
        logger.warning("Could not enumerate processes to close the studio: %s", error)
        return report

    report.matched = find_run_processes(
        processes,
        process_name=process_name,
        fingerprint=fingerprint,
        executable_suffix=executable_suffix,
        exclude_pids=(os.getpid(),),
    )
    if not report.matched:
        logger.info("No running studio matched fingerprint %s", fingerprint)
    for process in report.matched:
        try:
            table.terminate(process.pid)
        except (psutil.Error, OSError) as error:
            report.failed.append(process.pid)
            logger.warning("Could not terminate studio pid=%d: %s", process.pid, error)
            continue
        report.terminated.append(process.pid)
        logger.info("Terminated studio pid=%d: %s", process.pid, " ".join(process.cmdline))
    if report.failed:
        logger.warning(
            "Studio instance(s) still running after the run: %s",
            ", ".join(str(pid) for pid in report.failed),
        )
    return report
