#!/usr/bin/env python3
"""
Storage Root and Directory Manifest

The storage root owns every memory unit plus two store-managed artifacts:

    <root>/
    ├── ARCHIVE/          # reserved, created at initialization
    ├── DIRECTORY.txt     # manifest, regenerated after every mutation
    └── ...               # memory files and folders

DirectoryManifest renders the tree as text and writes it to DIRECTORY.txt.
The manifest never lists itself, so rendering twice with no change in
between gives byte-identical output.

Usage:
    root = StorageRoot(Path("~/.living_memory").expanduser())
    root.ensure_initialized()
    path = root.resolve("notes/today.txt")
    ...
    root.manifest.sync()
"""

import logging
from pathlib import Path

from .errors import ArgumentError, FileOperationError, ManifestSyncError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "DIRECTORY.txt"
ARCHIVE_NAME = "ARCHIVE"

BRANCH = "├── "
LAST_BRANCH = "└── "
PIPE = "│   "
SPACE = "    "


class DirectoryManifest:
    """Text snapshot of the storage root tree, kept on disk."""

    def __init__(self, root: Path, path: Path):
        self.root = root
        self.path = path

    def render(self) -> str:
        """Walk the root depth-first and return the tree listing."""
        lines = [str(self.root)]
        self._walk(self.root, "", lines)
        return "\n".join(lines) + "\n"

    def _walk(self, directory: Path, indent: str, lines: list[str]) -> None:
        entries = sorted(
            (p for p in directory.iterdir() if p != self.path),
            key=lambda p: p.name,
        )
        for index, entry in enumerate(entries):
            is_last = index == len(entries) - 1
            prefix = LAST_BRANCH if is_last else BRANCH
            if entry.is_dir():
                lines.append(f"{indent}{prefix}{entry.name}/")
                self._walk(entry, indent + (SPACE if is_last else PIPE), lines)
            else:
                lines.append(f"{indent}{prefix}{entry.name}")

    def sync(self) -> str:
        """Regenerate the manifest file. Raises ManifestSyncError on failure."""
        try:
            tree = self.render()
            self.path.write_text(tree, encoding="utf-8")
        except OSError as e:
            logger.error(f"Manifest sync failed for {self.root}: {e}")
            raise ManifestSyncError("update directory file", str(self.path), e) from e
        logger.debug(f"Manifest synced ({len(tree.splitlines())} lines)")
        return tree


class StorageRoot:
    """
    The directory a memory store owns.

    Shared by both backends so they agree on path resolution and on the
    single manifest file.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser().resolve()
        self.archive_dir = self.path / ARCHIVE_NAME
        self.manifest = DirectoryManifest(self.path, self.path / MANIFEST_NAME)

    def ensure_initialized(self) -> None:
        """Create the root and archive directories and write the manifest."""
        try:
            if not self.path.exists():
                logger.info(f"Creating memory directory at: {self.path}")
            self.path.mkdir(parents=True, exist_ok=True)
            self.archive_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise FileOperationError("initialize directories", str(self.path), e) from e
        self.manifest.sync()

    def resolve(self, name: str, writable: bool = True) -> Path:
        """
        Map a caller-supplied relative path onto the root.

        Rejects absolute paths, '..' segments and anything that resolves
        outside the root. The manifest and ARCHIVE/ can be read but never
        written, moved or created into.
        """
        raw = Path(name)
        if raw.is_absolute():
            raise ArgumentError(f"Absolute paths are not allowed: '{name}'")
        if ".." in raw.parts:
            raise ArgumentError(f"Path traversal rejected: '..' in path '{name}'")

        resolved = (self.path / raw).resolve()
        try:
            resolved.relative_to(self.path)
        except ValueError:
            raise ArgumentError(f"Path outside memory directory: '{name}'")
        if resolved == self.path:
            raise ArgumentError(f"Path must name an entry inside the memory directory: '{name}'")
        if writable and resolved == self.manifest.path:
            raise ArgumentError(f"{MANIFEST_NAME} is managed by the store and cannot be modified")
        if writable and (resolved == self.archive_dir or self.archive_dir in resolved.parents):
            raise ArgumentError(f"{ARCHIVE_NAME}/ is reserved by the store and cannot be modified")
        return resolved

    def relative(self, path: Path) -> str:
        """Root-relative POSIX path, as reported back to callers."""
        return path.relative_to(self.path).as_posix()
