#!/usr/bin/env python3
"""
Storage Backends for Living Memory

Two storage disciplines behind one capability contract:
- JSONBackend: every memory is a record file {timestamp, id, tags, content}
- RawBackend: plain files, written and appended to directly

Both share a StorageRoot, so they see the same directory and keep the same
DIRECTORY.txt manifest current after every mutation.

Usage:
    from living_memory.backends import JSONBackend, RawBackend
    from living_memory.manifest import StorageRoot

    root = StorageRoot(Path("~/.living_memory"))
    notes = JSONBackend(root)
    notes.create_file("standup", "Shipped the parser", tags=["work"])

    files = RawBackend(root)
    files.create_file("scratch.txt", "free-form text")
"""

import errno
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol, runtime_checkable

from .errors import ArgumentError, FileOperationError, RecordParseError
from .manifest import StorageRoot
from .tags import TagGraph

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"
RECORD_FIELDS = ("timestamp", "id", "tags", "content")


class CreatePolicy(str, Enum):
    """What create_file does when the target already exists."""
    OVERWRITE = "overwrite"
    REJECT = "reject"
    VERSION = "version"


_id_lock = threading.Lock()
_last_id = 0


def _mint_id() -> str:
    """Nanosecond creation instant, bumped so ids never repeat in-process."""
    global _last_id
    with _id_lock:
        _last_id = max(time.time_ns(), _last_id + 1)
        return str(_last_id)


def _timestamp() -> str:
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


@dataclass
class MemoryRecord:
    """Single structured memory unit, as stored on disk."""
    timestamp: str
    id: str
    content: str
    tags: list[str] = field(default_factory=list)
    # Fields beyond the four above, written back untouched
    extra: dict = field(default_factory=dict)

    @classmethod
    def new(cls, content: str, tags: Optional[list[str]] = None) -> "MemoryRecord":
        return cls(timestamp=_timestamp(), id=_mint_id(), content=content, tags=list(tags or []))

    def to_dict(self) -> dict:
        data = asdict(self)
        record = {key: data[key] for key in RECORD_FIELDS}
        record.update((k, v) for k, v in self.extra.items() if k not in record)
        return record

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: object, path: str = "<memory>") -> "MemoryRecord":
        """Validate the record shape; anything else raises RecordParseError."""
        if not isinstance(data, dict):
            raise RecordParseError(path, "expected a JSON object")
        missing = [k for k in RECORD_FIELDS if k not in data]
        if missing:
            raise RecordParseError(path, f"missing field(s): {', '.join(missing)}")
        for key in ("timestamp", "id", "content"):
            if not isinstance(data[key], str):
                raise RecordParseError(path, f"field '{key}' must be a string")
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise RecordParseError(path, "field 'tags' must be a list of strings")
        extra = {k: v for k, v in data.items() if k not in RECORD_FIELDS}
        return cls(
            timestamp=data["timestamp"], id=data["id"], content=data["content"],
            tags=list(tags), extra=extra,
        )

    @classmethod
    def from_json(cls, text: str, path: str = "<memory>") -> "MemoryRecord":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise RecordParseError(path, f"invalid JSON ({e.msg} at line {e.lineno})") from e
        return cls.from_dict(data, path)


@runtime_checkable
class MemoryBackend(Protocol):
    """Capability contract shared by the structured and raw stores."""

    root: StorageRoot
    recursive: bool

    def create_file(self, name: str, content: str, tags: Optional[list[str]] = None) -> str:
        """Create a memory unit. Returns its root-relative path."""
        ...

    def create_dir(self, name: str) -> None:
        """Create a directory, including missing parents."""
        ...

    def move_file(self, source: str, dest: str) -> None:
        """Relocate a file inside the storage root."""
        ...

    def move_dir(self, source: str, dest: str) -> None:
        """Relocate a directory inside the storage root."""
        ...

    def append_content(self, name: str, content: str) -> None:
        """Append text to an existing memory unit."""
        ...

    def rename_file(self, old_name: str, new_name: str) -> None:
        """Rename a file within its parent directory."""
        ...

    def read_all_files(self) -> "FileSequence":
        """Root-relative paths of every unit this backend can see."""
        ...

    def read_file_content(self, name: str) -> str:
        """Return the content of a memory unit."""
        ...

    def fuzzy_search(self, query: str) -> list[str]:
        """Case-insensitive substring search. Returns matching paths."""
        ...


class FileSequence:
    """
    Lazy, restartable listing.

    Nothing touches the disk until iteration starts, and every new iteration
    rescans, so the same object can be listed again after a mutation.
    """

    def __init__(self, scan: Callable[[], Iterator[str]]):
        self._scan = scan

    def __iter__(self) -> Iterator[str]:
        return self._scan()


# === Shared filesystem helpers ===


def _require(**arguments) -> None:
    for key, value in arguments.items():
        if not isinstance(value, str) or not value:
            raise ArgumentError(f"'{key}' must be a non-empty string")


def _os_error(exc_type: type, code: int, path: Path) -> OSError:
    return exc_type(code, os.strerror(code), str(path))


def _claim_target(path: Path, policy: CreatePolicy) -> tuple[Path, str]:
    """Pick the path and open mode create_file writes with."""
    if policy is CreatePolicy.REJECT:
        return path, "x"
    if policy is CreatePolicy.VERSION and path.exists():
        counter = 2
        candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        while candidate.exists():
            counter += 1
            candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        logger.info(f"{path.name} exists, writing new version {candidate.name}")
        return candidate, "x"
    return path, "w"


def _write_new(root: StorageRoot, path: Path, text: str, policy: CreatePolicy, operation: str, label: str) -> str:
    target, mode = _claim_target(path, policy)
    try:
        with open(target, mode, encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise FileOperationError(operation, label, e) from e
    root.manifest.sync()
    return root.relative(target)


def _make_dir(root: StorageRoot, name: str) -> None:
    _require(name=name)
    path = root.resolve(name)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileOperationError("create directory", name, e) from e
    root.manifest.sync()


def _relocate(root: StorageRoot, source: Path, dest: Path, operation: str, label: str, is_dir: bool) -> None:
    try:
        if not source.exists():
            raise _os_error(FileNotFoundError, errno.ENOENT, source)
        if is_dir and not source.is_dir():
            raise _os_error(NotADirectoryError, errno.ENOTDIR, source)
        if not is_dir and source.is_dir():
            raise _os_error(IsADirectoryError, errno.EISDIR, source)
        if not dest.parent.is_dir():
            raise _os_error(FileNotFoundError, errno.ENOENT, dest.parent)
        source.rename(dest)
    except OSError as e:
        raise FileOperationError(operation, label, e) from e
    logger.debug(f"{operation}: {label}")
    root.manifest.sync()


def _sibling(root: StorageRoot, path: Path, new_name: str) -> Path:
    if Path(new_name).name != new_name:
        raise ArgumentError(f"New name must not contain a directory: '{new_name}'")
    parent = Path(root.relative(path)).parent
    return root.resolve((parent / new_name).as_posix())


def _scan_files(root: StorageRoot, recursive: bool, suffix: Optional[str] = None) -> Iterator[str]:
    """Yield root-relative file paths in name order, skipping the manifest."""

    def walk(directory: Path) -> Iterator[str]:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise FileOperationError("read directory", str(directory), e) from e
        for entry in entries:
            if entry.is_dir():
                if recursive:
                    yield from walk(entry)
            elif entry != root.manifest.path and (suffix is None or entry.name.endswith(suffix)):
                yield root.relative(entry)

    return walk(root.path)


# === Backends ===


class JSONBackend:
    """
    Structured memory storage.

    Features:
    - One self-describing JSON record per memory unit (*.json)
    - Tags feed an in-memory co-occurrence graph
    - Append rewrites content and refreshes the timestamp, tags untouched
    - Non-recursive listing: only records directly under the root

    Record format:
        {
            "timestamp": "2025-01-01T12:00:00.000Z",
            "id": "1735732800000000000",
            "tags": ["work"],
            "content": "..."
        }
    """

    mode = "MODE_JSON"

    def __init__(
        self,
        root: StorageRoot,
        create_policy: CreatePolicy = CreatePolicy.OVERWRITE,
        recursive: bool = False,
        rebuild_tags: bool = True,
    ):
        self.root = root
        self.create_policy = CreatePolicy(create_policy)
        self.recursive = recursive
        self.tag_graph = TagGraph()
        self.root.ensure_initialized()
        if rebuild_tags:
            self.rebuild_tag_graph()

    def _record_path(self, name: str) -> Path:
        if not name.endswith(RECORD_SUFFIX):
            name += RECORD_SUFFIX
        return self.root.resolve(name)

    def _load(self, path: Path, operation: str, label: str) -> MemoryRecord:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise RecordParseError(self.root.relative(path), f"not UTF-8 text ({e.reason})") from e
        except OSError as e:
            raise FileOperationError(operation, label, e) from e
        return MemoryRecord.from_json(text, self.root.relative(path))

    def _write(self, path: Path, record: MemoryRecord, operation: str, label: str) -> None:
        try:
            path.write_text(record.to_json(), encoding="utf-8")
        except OSError as e:
            raise FileOperationError(operation, label, e) from e

    def connect_tags(self, tags: list[str]) -> None:
        self.tag_graph.connect_tags(tags)

    def rebuild_tag_graph(self) -> int:
        """Re-seed the tag graph from every record on disk. Returns records read."""
        self.tag_graph.clear()
        count = 0
        for rel in self.read_all_files():
            try:
                record = self._load(self.root.path / rel, "read record", rel)
            except (RecordParseError, FileOperationError) as e:
                logger.warning(f"Skipping {rel} while rebuilding tags: {e}")
                continue
            self.connect_tags(record.tags)
            count += 1
        logger.info(f"Tag graph rebuilt from {count} records ({len(self.tag_graph)} tags)")
        return count

    def related_tags(self, tag: str) -> list[str]:
        _require(tag=tag)
        return sorted(self.tag_graph.related(tag))

    def create_file(self, name: str, content: str, tags: Optional[list[str]] = None) -> str:
        _require(name=name, content=content)
        if tags is not None and (
            not isinstance(tags, list) or not all(isinstance(t, str) and t for t in tags)
        ):
            raise ArgumentError("'tags' must be a list of non-empty strings")
        record = MemoryRecord.new(content, tags)
        created = _write_new(
            self.root, self._record_path(name), record.to_json(),
            self.create_policy, "create JSON file", name,
        )
        if record.tags:
            self.connect_tags(record.tags)
        logger.info(f"Created record {created} (id {record.id})")
        return created

    def create_dir(self, name: str) -> None:
        _make_dir(self.root, name)

    def move_file(self, source: str, dest: str) -> None:
        _require(source=source, dest=dest)
        _relocate(
            self.root, self._record_path(source), self._record_path(dest),
            "move file", f"{source} to {dest}", is_dir=False,
        )

    def move_dir(self, source: str, dest: str) -> None:
        _require(source=source, dest=dest)
        _relocate(
            self.root, self.root.resolve(source), self.root.resolve(dest),
            "move directory", f"{source} to {dest}", is_dir=True,
        )

    def append_content(self, name: str, content: str) -> None:
        _require(name=name, content=content)
        path = self._record_path(name)
        record = self._load(path, "append content", name)
        record.content += content
        record.timestamp = _timestamp()
        self._write(path, record, "append content", name)
        self.root.manifest.sync()

    def rename_file(self, old_name: str, new_name: str) -> None:
        _require(old_name=old_name, new_name=new_name)
        if not new_name.endswith(RECORD_SUFFIX):
            new_name += RECORD_SUFFIX
        source = self._record_path(old_name)
        _relocate(
            self.root, source, _sibling(self.root, source, new_name),
            "rename file", f"{old_name} to {new_name}", is_dir=False,
        )

    def read_all_files(self) -> FileSequence:
        return FileSequence(lambda: _scan_files(self.root, self.recursive, RECORD_SUFFIX))

    def read_file_content(self, name: str) -> str:
        _require(name=name)
        return self._load(self._record_path(name), "read file content", name).content

    def fuzzy_search(self, query: str) -> list[str]:
        _require(query=query)
        needle = query.lower()
        matches = []
        for rel in self.read_all_files():
            try:
                record = self._load(self.root.path / rel, "fuzzy search", rel)
            except RecordParseError as e:
                logger.warning(f"Skipping malformed record during search: {e}")
                continue
            if needle in record.content.lower() or any(needle in t.lower() for t in record.tags):
                matches.append(rel)
        return matches


class RawBackend:
    """
    Plain file storage.

    Features:
    - Content written verbatim, no suffix, no tags
    - Append writes straight to the end of the existing file
    - Recursive listing: every file anywhere under the root, except the
      DIRECTORY.txt manifest (store-managed, readable by name)
    """

    mode = "MODE_RAW"

    def __init__(
        self,
        root: StorageRoot,
        create_policy: CreatePolicy = CreatePolicy.OVERWRITE,
        recursive: bool = True,
    ):
        self.root = root
        self.create_policy = CreatePolicy(create_policy)
        self.recursive = recursive
        self.root.ensure_initialized()

    def create_file(self, name: str, content: str, tags: Optional[list[str]] = None) -> str:
        _require(name=name, content=content)
        if tags:
            raise ArgumentError("Tags are only supported in MODE_JSON")
        created = _write_new(
            self.root, self.root.resolve(name), content,
            self.create_policy, "create RAW file", name,
        )
        logger.info(f"Created raw file {created}")
        return created

    def create_dir(self, name: str) -> None:
        _make_dir(self.root, name)

    def move_file(self, source: str, dest: str) -> None:
        _require(source=source, dest=dest)
        _relocate(
            self.root, self.root.resolve(source), self.root.resolve(dest),
            "move file", f"{source} to {dest}", is_dir=False,
        )

    def move_dir(self, source: str, dest: str) -> None:
        _require(source=source, dest=dest)
        _relocate(
            self.root, self.root.resolve(source), self.root.resolve(dest),
            "move directory", f"{source} to {dest}", is_dir=True,
        )

    def append_content(self, name: str, content: str) -> None:
        _require(name=name, content=content)
        path = self.root.resolve(name)
        try:
            if not path.is_file():
                raise _os_error(FileNotFoundError, errno.ENOENT, path)
            with open(path, "a", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise FileOperationError("append content", name, e) from e
        self.root.manifest.sync()

    def rename_file(self, old_name: str, new_name: str) -> None:
        _require(old_name=old_name, new_name=new_name)
        source = self.root.resolve(old_name)
        _relocate(
            self.root, source, _sibling(self.root, source, new_name),
            "rename file", f"{old_name} to {new_name}", is_dir=False,
        )

    def read_all_files(self) -> FileSequence:
        return FileSequence(lambda: _scan_files(self.root, self.recursive))

    def read_file_content(self, name: str) -> str:
        _require(name=name)
        try:
            return self.root.resolve(name, writable=False).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileOperationError("read file content", name, e) from e

    def fuzzy_search(self, query: str) -> list[str]:
        _require(query=query)
        needle = query.lower()
        matches = []
        for rel in self.read_all_files():
            try:
                text = (self.root.path / rel).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                raise FileOperationError("fuzzy search", rel, e) from e
            if needle in text.lower():
                matches.append(rel)
        return matches


def get_backend(backend_type: str, root: StorageRoot, **kwargs) -> MemoryBackend:
    """
    Factory function to get a storage backend.

    Args:
        backend_type: "json" or "raw"
        root: Storage root shared with the other backend
        **kwargs: Passed to backend constructor

    Returns:
        MemoryBackend instance
    """
    if backend_type == "json":
        return JSONBackend(root, **kwargs)
    elif backend_type == "raw":
        return RawBackend(root, **kwargs)
    else:
        raise ValueError(f"Unknown backend type: {backend_type}. Use 'json' or 'raw'.")
