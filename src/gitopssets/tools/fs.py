from collections.abc import Iterator
from contextlib import contextmanager
import os
import shutil
import tempfile
from typing import Literal, overload
from pathlib import Path

from loguru import logger

from gitopssets.errors import PathTraversalError


@overload
def find_config_file(filename: str, cwd: Path | None = None, required: Literal[False] = False) -> Path | None: ...


@overload
def find_config_file(filename: str, cwd: Path | None = None, required: Literal[True] = True) -> Path: ...


def find_config_file(filename: str, cwd: Path | None = None, required: bool = True) -> Path | None:
    """
    Find a file with the given *filename* in the given *cwd* or any of its parent directories.
    """

    if cwd is None:
        cwd = Path.cwd()

    for directory in [cwd] + list(cwd.parents):
        file = directory / filename
        if file.exists():
            return file

    if required:
        raise FileNotFoundError(f"Could not find '{filename}' in '{cwd}' or any of its parent directories.")

    return None


def secure_join(root: Path, path: str) -> Path:
    """
    Join *path* to *root* and make sure that the result stays inside of *root*. Absolute paths are interpreted
    relative to *root*. Symlinks that already exist below *root* are resolved before the check, so a link pointing
    outside of the directory is caught as well.

    Raises:
        PathTraversalError: If the resulting path is not *root* or one of its descendants.
    """

    root = root.resolve()
    candidate = (root / path.lstrip("/" + os.sep)).resolve()
    if candidate != root and root not in candidate.parents:
        raise PathTraversalError(path, root)
    return candidate


@contextmanager
def scratch_directory(prefix: str = "gitopssets-", parent: Path | None = None) -> Iterator[Path]:
    """
    Create a fresh temporary directory that is removed when the context exits, no matter how. Failing to remove the
    directory is logged, but not raised, as it only leaves behind orphaned storage.
    """

    directory = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
    logger.trace("Created scratch directory '{}'", directory)
    try:
        yield directory
    finally:
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            logger.error("Failed to remove scratch directory '{}': {}", directory, exc)
