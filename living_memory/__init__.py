"""
Living Memory Package
File-backed memory store with an MCP tool interface.

Supports two storage disciplines over one directory:
- JSONBackend (MODE_JSON): structured records with timestamp, id, tags, content
- RawBackend (MODE_RAW): plain files manipulated directly

Usage:
    from living_memory import MemoryConfig, open_dispatcher

    dispatcher = open_dispatcher(MemoryConfig(memory_dir=Path("/tmp/memory")))
    dispatcher.invoke("MODE_RAW", "create_file", {"name": "todo.txt", "content": "..."})
"""

from .errors import (
    MemoryManagerError,
    ArgumentError,
    FileOperationError,
    ManifestSyncError,
    RecordParseError,
    UnknownActionError,
)

from .manifest import (
    DirectoryManifest,
    StorageRoot,
    MANIFEST_NAME,
    ARCHIVE_NAME,
)

from .tags import TagGraph

from .backends import (
    MemoryRecord,
    MemoryBackend,
    JSONBackend,
    RawBackend,
    CreatePolicy,
    FileSequence,
    get_backend,
    RECORD_SUFFIX,
)

from .config import MemoryConfig, load_config, DEFAULT_MEMORY_DIR

from .memory import (
    MemoryDispatcher,
    ToolResult,
    open_dispatcher,
    ACTIONS,
    MODE_JSON,
    MODE_RAW,
)

__all__ = [
    # Dispatcher
    "MemoryDispatcher",
    "ToolResult",
    "open_dispatcher",
    "ACTIONS",
    "MODE_JSON",
    "MODE_RAW",
    # Backends
    "MemoryRecord",
    "MemoryBackend",
    "JSONBackend",
    "RawBackend",
    "CreatePolicy",
    "FileSequence",
    "get_backend",
    "TagGraph",
    "DirectoryManifest",
    "StorageRoot",
    # Config
    "MemoryConfig",
    "load_config",
    # Errors
    "MemoryManagerError",
    "ArgumentError",
    "FileOperationError",
    "ManifestSyncError",
    "RecordParseError",
    "UnknownActionError",
    # Constants
    "DEFAULT_MEMORY_DIR",
    "MANIFEST_NAME",
    "ARCHIVE_NAME",
    "RECORD_SUFFIX",
]
