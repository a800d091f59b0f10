"""Private, writable copy of the place file and loading of the script source."""

from __future__ import annotations

import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory

from studio_runner.session.errors import ScriptLoadError, WorkspaceError

PLACE_FINGERPRINT = "studio-runner-place"
SCRIPT_FILE_NAME = "studio-runner-script.lua"


@dataclass(slots=True, frozen=True)
class PreparedWorkspace:
    """Paths inside the private directory of one run."""

    directory: Path
    place_path: Path

    @property
    def script_path(self) -> Path:
        return self.directory / SCRIPT_FILE_NAME

    @property
    def fingerprint(self) -> str:
        """Name of the private directory; unique per run and visible in launch arguments."""
        return self.directory.name


@contextmanager
def prepare_workspace(
    place_path: Path | None,
    *,
    temp_root: Path | None = None,
) -> Iterator[PreparedWorkspace]:
    """Copy the place into a fresh temporary directory that is removed on exit.

    The copy keeps the studio from prompting about a read-only or locked
    original. Its file name carries ``PLACE_FINGERPRINT`` so the reaper can
    later tell this run's studio apart from unrelated instances.
    """

    if place_path is None:
        raise WorkspaceError("Running without a place file is not supported yet; pass --place.")
    extension = place_path.suffix.lstrip(".")
    if not extension:
        raise WorkspaceError(f"Place file did not have a file extension: {place_path}")
    if not place_path.is_file():
        raise WorkspaceError(f"Place file not found: {place_path}")

    if temp_root is not None:
        try:
            temp_root.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise WorkspaceError(
                f"Could not create temporary root {temp_root}: {error}",
            ) from error

    with TemporaryDirectory(prefix="studio-runner-", dir=temp_root) as temp_dir:
        directory = Path(temp_dir)
        target = directory / f"{PLACE_FINGERPRINT}.{extension}"
        try:
            shutil.copyfile(place_path, target)
        except OSError as error:
            raise WorkspaceError(f"Could not copy place file {place_path}: {error}") from error
        yield PreparedWorkspace(directory=directory, place_path=target)


def load_script(script_path: Path) -> str:
    """Read the script source that the studio extension will execute."""

    try:
        return script_path.read_text("utf-8")
    except FileNotFoundError as error:
        raise ScriptLoadError(f"Script file not found: {script_path}") from error
    except (OSError, UnicodeDecodeError) as error:
        raise ScriptLoadError(f"Could not read script file {script_path}: {error}") from error
