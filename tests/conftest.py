"""Shared test fixtures."""

from __future__ import annotations

import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import psutil
import pytest

from studio_runner.config import BridgeSettings, Settings, StudioSettings
from studio_runner.session.reaper import ProcessInfo

STUB_STUDIO_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m studio_runner.stub_studio --place {{place}}"
)


class FakeProcessTable:
    """In-memory process table recording termination requests."""

    def __init__(
        self,
        processes: list[ProcessInfo] | Callable[[], list[ProcessInfo]],
        *,
        failing_pids: tuple[int, ...] = (),
    ) -> None:
        self._processes = processes
        self._failing_pids = set(failing_pids)
        self.terminated: list[int] = []

    def list_processes(self) -> list[ProcessInfo]:
        if callable(self._processes):
            return self._processes()
        return list(self._processes)

    def terminate(self, pid: int) -> None:
        if pid in self._failing_pids:
            raise psutil.AccessDenied(pid=pid)
        self.terminated.append(pid)


@pytest.fixture()
def stub_settings(tmp_path: Path) -> Settings:
    """Settings that launch the stub studio against an ephemeral bridge port."""

    return Settings(
        bridge=BridgeSettings(
            port=0,
            connect_timeout_seconds=30.0,
            handshake_timeout_seconds=5.0,
        ),
        studio=StudioSettings(
            command_template=STUB_STUDIO_COMMAND_TEMPLATE,
            process_name="wine",
            temp_root=tmp_path / "studio-tmp",
        ),
    )


@pytest.fixture()
def stub_studio_env(monkeypatch, tmp_path: Path) -> None:
    """Environment that makes ``Settings.from_env`` launch the stub studio."""

    monkeypatch.setenv("STUDIO_RUNNER_BRIDGE_PORT", "0")
    monkeypatch.setenv("STUDIO_RUNNER_CONNECT_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("STUDIO_RUNNER_STUDIO_COMMAND", STUB_STUDIO_COMMAND_TEMPLATE)
    monkeypatch.setenv("STUDIO_RUNNER_TEMP_ROOT", str(tmp_path / "studio-tmp"))
    monkeypatch.delenv("STUDIO_RUNNER_STRICT_DISCONNECT", raising=False)


@pytest.fixture()
def place_file(tmp_path: Path) -> Path:
    path = tmp_path / "game.rbxl"
    path.write_bytes(b"<roblox />")
    return path


@pytest.fixture()
def write_script(tmp_path: Path) -> Callable[[str], Path]:
    def _write(source: str) -> Path:
        path = tmp_path / "script.lua"
        path.write_text(source, "utf-8")
        return path

    return _write


@pytest.fixture()
def process_table() -> type[FakeProcessTable]:
    """Factory for in-memory process tables."""

    return FakeProcessTable
