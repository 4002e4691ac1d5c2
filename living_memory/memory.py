#!/usr/bin/env python3
"""
Living Memory dispatcher.

Routes a tool call (mode, action, arguments) to the structured or raw
backend and turns the outcome into a ToolResult. Failures of any kind come
back as an error result; nothing raises past invoke().

Usage:
    dispatcher = open_dispatcher(load_config())
    result = dispatcher.invoke("MODE_JSON", "create_file",
                               {"name": "standup", "content": "...", "tags": ["work"]})
    print(result.text)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .backends import JSONBackend, MemoryBackend, RawBackend
from .config import MemoryConfig
from .errors import ArgumentError, MemoryManagerError, UnknownActionError
from .manifest import StorageRoot

__all__ = ["ACTIONS", "MODE_JSON", "MODE_RAW", "MemoryDispatcher", "ToolResult", "open_dispatcher"]

logger = logging.getLogger(__name__)

MODE_JSON = "MODE_JSON"
MODE_RAW = "MODE_RAW"

ACTIONS = (
    "create_file",
    "create_dir",
    "move_file",
    "move_dir",
    "append_content",
    "rename_file",
    "read_all_files",
    "read_file_content",
    "fuzzy_search",
)


@dataclass
class ToolResult:
    """Text payload returned to the tool caller."""
    text: str
    is_error: bool = False


def _string_arg(args: dict, key: str, message: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise ArgumentError(message)
    return value


class MemoryDispatcher:
    """
    Front door for tool calls.

    Holds one backend per mode; both are injected so tests can point them
    at a temporary root.
    """

    def __init__(self, json_backend: MemoryBackend, raw_backend: MemoryBackend):
        self._backends = {MODE_JSON: json_backend, MODE_RAW: raw_backend}

    @property
    def root(self) -> StorageRoot:
        return self._backends[MODE_JSON].root

    def backend(self, tool: str) -> MemoryBackend:
        try:
            return self._backends[tool]
        except KeyError:
            raise UnknownActionError(tool, kind="tool")

    def invoke(self, tool: str, action: Optional[str], args: Optional[dict] = None) -> ToolResult:
        args = args or {}
        logger.info(f"Handling tool request: {tool}, action: {action}")
        try:
            text = self._dispatch(tool, action, args)
        except MemoryManagerError as e:
            logger.warning(f"{tool}.{action} failed: {e}")
            return ToolResult(text=f"Error: {e}", is_error=True)
        except Exception as e:
            logger.exception(f"Unexpected error in {tool}.{action}")
            return ToolResult(text=f"Error: {e}", is_error=True)
        return ToolResult(text=text)

    def _dispatch(self, tool: str, action: Optional[str], args: dict) -> str:
        manager = self.backend(tool)
        where = self.root.path

        if action == "create_file":
            name = _string_arg(args, "name", "Name and content are required for creating a file")
            content = _string_arg(args, "content", "Name and content are required for creating a file")
            tags = args.get("tags")
            if tags is not None and tool != MODE_JSON:
                raise ArgumentError(f"Tags are only supported in {MODE_JSON}")
            created = manager.create_file(name, content, tags)
            return f"File {created} created successfully in {where}"

        elif action == "create_dir":
            name = _string_arg(args, "name", "Name is required for creating a directory")
            manager.create_dir(name)
            return f"Directory {name} created successfully in {where}"

        elif action in ("move_file", "move_dir", "rename_file"):
            noun = "directory" if action == "move_dir" else "file"
            verb = "renaming" if action == "rename_file" else "moving"
            message = f"Source and destination are required for {verb} a {noun}"
            source = _string_arg(args, "source", message)
            dest = _string_arg(args, "dest", message)
            if action == "move_file":
                manager.move_file(source, dest)
                return f"File moved from {source} to {dest} in {where}"
            elif action == "move_dir":
                manager.move_dir(source, dest)
                return f"Directory moved from {source} to {dest} in {where}"
            manager.rename_file(source, dest)
            return f"File renamed from {source} to {dest} in {where}"

        elif action == "append_content":
            key = "name" if args.get("name") is not None else "file"
            name = _string_arg(args, key, "Name and content are required for appending content")
            content = _string_arg(args, "content", "Name and content are required for appending content")
            manager.append_content(name, content)
            return f"Content appended to {name} in {where}"

        elif action == "read_all_files":
            return "\n".join(manager.read_all_files())

        elif action == "read_file_content":
            name = _string_arg(args, "name", "Name is required for reading file content")
            return manager.read_file_content(name)

        elif action == "fuzzy_search":
            query = _string_arg(args, "query", "Query is required for fuzzy search")
            return "\n".join(manager.fuzzy_search(query))

        raise UnknownActionError(action)


def open_dispatcher(config: MemoryConfig) -> MemoryDispatcher:
    """Build both backends over one storage root and wire them together."""
    root = StorageRoot(config.memory_dir)
    json_backend = JSONBackend(root, create_policy=config.create_policy, rebuild_tags=config.rebuild_tags)
    raw_backend = RawBackend(root, create_policy=config.create_policy)
    logger.info(f"Memory directory: {root.path} (create policy: {config.create_policy.value})")
    return MemoryDispatcher(json_backend, raw_backend)
