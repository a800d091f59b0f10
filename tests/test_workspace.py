from __future__ import annotations

from pathlib import Path

import allure
import pytest

from studio_runner.session.errors import ScriptLoadError, WorkspaceError
from studio_runner.session.workspace import (
    PLACE_FINGERPRINT,
    load_script,
    prepare_workspace,
)

pytestmark = [
    allure.epic("Studio Runs"),
    allure.feature("Workspace"),
]


def test_place_is_copied_into_private_directory_and_removed_after(
    tmp_path: Path,
    place_file: Path,
) -> None:
    temp_root = tmp_path / "nested" / "tmp"

    with prepare_workspace(place_file, temp_root=temp_root) as workspace:
        directory = workspace.directory
        assert directory.parent == temp_root
        assert workspace.place_path.name == f"{PLACE_FINGERPRINT}.rbxl"
        assert workspace.place_path.read_bytes() == place_file.read_bytes()
        assert workspace.fingerprint == directory.name
        assert workspace.fingerprint.startswith("studio-runner-")
        assert workspace.script_path.parent == directory

    assert not directory.exists()
    assert place_file.exists()


def test_workspace_is_removed_when_the_run_fails(tmp_path: Path, place_file: Path) -> None:
    with (
        pytest.raises(RuntimeError),
        prepare_workspace(place_file, temp_root=tmp_path) as workspace,
    ):
        directory = workspace.directory
        raise RuntimeError("boom")

    assert not directory.exists()


def test_each_run_gets_its_own_fingerprint(tmp_path: Path, place_file: Path) -> None:
    with (
        prepare_workspace(place_file, temp_root=tmp_path) as first,
        prepare_workspace(place_file, temp_root=tmp_path) as second,
    ):
        assert first.fingerprint != second.fingerprint


def test_missing_place_argument_is_rejected() -> None:
    with pytest.raises(WorkspaceError, match="pass --place"), prepare_workspace(None):
        pass


def test_place_without_extension_is_rejected(tmp_path: Path) -> None:
    place = tmp_path / "game"
    place.write_bytes(b"x")

    with pytest.raises(WorkspaceError, match="file extension"), prepare_workspace(place):
        pass


def test_missing_place_file_is_rejected(tmp_path: Path) -> None:
    with (
        pytest.raises(WorkspaceError, match="Place file not found"),
        prepare_workspace(tmp_path / "missing.rbxl"),
    ):
        pass


def test_load_script_reads_utf8(tmp_path: Path) -> None:
    script = tmp_path / "test.lua"
    script.write_text('print("héllo")\n', "utf-8")

    assert load_script(script) == 'print("héllo")\n'


def test_load_script_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ScriptLoadError, match="Script file not found"):
        load_script(tmp_path / "nope.lua")
