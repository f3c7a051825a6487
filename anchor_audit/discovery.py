"""Source file discovery."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

RUST_SUFFIX = ".rs"


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A file to scan and the path used to report it."""

    path: Path
    display_path: str


def discover_rust_files(
    root: Path,
    *,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> list[SourceFile]:
    """Return ``.rs`` files under ``root`` sorted by display path.

    Display paths are POSIX paths relative to ``root``; include/exclude globs
    are matched against them.
    """
    if root.is_file():
        return [SourceFile(path=root, display_path=root.as_posix())]
    if not root.is_dir():
        raise FileNotFoundError(f"Scan path does not exist: {root}")

    files: list[SourceFile] = []
    for path in root.rglob(f"*{RUST_SUFFIX}"):
        if not path.is_file():
            continue
        display_path = path.relative_to(root).as_posix()
        if not _is_selected(display_path, include or [], exclude or []):
            logger.debug("skipping %s", display_path)
            continue
        files.append(SourceFile(path=path, display_path=display_path))
    return sorted(files, key=lambda item: item.display_path)


def _is_selected(path: str, includes: list[str], excludes: list[str]) -> bool:
    if includes and not any(fnmatch.fnmatch(path, pattern) for pattern in includes):
        return False
    if excludes and any(fnmatch.fnmatch(path, pattern) for pattern in excludes):
        return False
    return True


def files_matching(files: list[SourceFile], pattern: str) -> list[SourceFile]:
    """Subset of ``files`` whose display path matches one glob."""
    return [item for item in files if fnmatch.fnmatch(item.display_path, pattern)]
