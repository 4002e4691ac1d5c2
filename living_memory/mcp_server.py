#!/usr/bin/env python3
"""
MCP Server for Living Memory
Exposes the structured (MODE_JSON) and raw (MODE_RAW) memory stores as tools.

Setup:
1. Install the package:
   pipx install .

2. Add to your MCP client config:
   {
     "mcpServers": {
       "living-memory": {
         "command": "living-memory",
         "args": ["--memory-dir", "/path/to/memory"]
       }
     }
   }
"""

import argparse
import asyncio
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult,
    Prompt,
    PromptArgument,
    PromptMessage,
    TextContent,
    Tool,
)

from .backends import CreatePolicy
from .config import MemoryConfig, load_config
from .memory import ACTIONS, MODE_JSON, MODE_RAW, MemoryDispatcher, open_dispatcher

logger = logging.getLogger(__name__)

SERVER_NAME = "living-memory"

PROMPT_TEMPLATES = {
    MODE_JSON: (
        "Template for JSON mode operations with structured data and memory graphs",
        "Execute {action} operation in structured JSON mode.\n"
        "Parameters:\n- name: {name}\n- content: {content}\n- tags: {tags}\n"
        "- source: {source}\n- dest: {dest}\n- query: {query}\n\n"
        "Ensure all parameters conform to JSON schema specifications.",
    ),
    MODE_RAW: (
        "Template for RAW mode operations with direct filesystem access",
        "Execute {action} operation in raw filesystem mode.\n"
        "Parameters:\n- name: {name}\n- content: {content}\n"
        "- source: {source}\n- dest: {dest}\n- query: {query}\n\n"
        "Direct filesystem manipulation without structured constraints.",
    ),
}


async def run_sync(func, *args, **kwargs):
    """Run a synchronous function in a thread pool to avoid blocking."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


def _input_schema(with_tags: bool) -> dict:
    properties = {
        "action": {"type": "string", "enum": list(ACTIONS)},
        "name": {"type": "string", "description": "File or directory name relative to the memory directory"},
        "content": {"type": "string", "description": "Content to write or append"},
        "source": {"type": "string", "description": "Existing path (move/rename)"},
        "dest": {"type": "string", "description": "Target path (move) or new name (rename)"},
        "query": {"type": "string", "description": "Case-insensitive search text"},
    }
    if with_tags:
        properties["tags"] = {"type": "array", "items": {"type": "string"}}
    return {"type": "object", "properties": properties, "required": ["action"]}


def tool_definitions() -> list[Tool]:
    return [
        Tool(
            name=MODE_JSON,
            description="Interact with memory in JSON mode with structured data and memory graphs",
            inputSchema=_input_schema(with_tags=True),
        ),
        Tool(
            name=MODE_RAW,
            description="Interact with memory in RAW mode for direct filesystem access",
            inputSchema=_input_schema(with_tags=False),
        ),
    ]


def prompt_definitions() -> list[Prompt]:
    prompts = []
    for mode, (description, template) in PROMPT_TEMPLATES.items():
        fields = ["action", "name", "content", "source", "dest", "query"]
        if "{tags}" in template:
            fields.insert(3, "tags")
        prompts.append(Prompt(
            name=mode,
            description=description,
            arguments=[PromptArgument(name=f, required=(f == "action")) for f in fields],
        ))
    return prompts


def render_prompt(name: str, arguments: Optional[dict] = None) -> GetPromptResult:
    """Fill a mode template; parameters not supplied read as '(not provided)'."""
    if name not in PROMPT_TEMPLATES:
        raise ValueError(f"Unknown prompt: {name}")
    description, template = PROMPT_TEMPLATES[name]
    values = {f: "(not provided)" for f in ("action", "name", "content", "tags", "source", "dest", "query")}
    values.update({k: v for k, v in (arguments or {}).items() if v})
    return GetPromptResult(
        description=description,
        messages=[PromptMessage(role="user", content=TextContent(type="text", text=template.format_map(values)))],
    )


def handle_call(dispatcher: MemoryDispatcher, name: str, arguments: Optional[dict]) -> list[TextContent]:
    """Translate one MCP tool call into a dispatcher invocation."""
    arguments = dict(arguments or {})
    action = arguments.pop("action", None)
    result = dispatcher.invoke(name, action, arguments)
    return [TextContent(type="text", text=result.text)]


def create_server(config: Optional[MemoryConfig] = None) -> Server:
    server = Server(SERVER_NAME)
    dispatcher = open_dispatcher(config or load_config())
    # Store operations are not safe to interleave; run one call at a time.
    lock = asyncio.Lock()

    @server.list_tools()
    async def list_tools():
        logger.debug("Handling list tools request")
        return tool_definitions()

    @server.list_prompts()
    async def list_prompts():
        return prompt_definitions()

    @server.get_prompt()
    async def get_prompt(name: str, arguments: Optional[dict] = None):
        return render_prompt(name, arguments)

    @server.call_tool()
    async def call_tool(name: str, arguments: dict):
        async with lock:
            return await run_sync(handle_call, dispatcher, name, arguments)

    return server


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="Living Memory MCP server (structured and raw file-backed memory)",
    )
    p.add_argument("--memory-dir", type=Path, help="Storage root (env: LIVING_MEMORY_DIR)")
    p.add_argument(
        "--create-policy",
        choices=[policy.value for policy in CreatePolicy],
        help="What create_file does when the target exists (env: LIVING_MEMORY_CREATE_POLICY)",
    )
    p.add_argument(
        "--no-rebuild-tags",
        action="store_true",
        help="Start with an empty tag graph instead of scanning existing records",
    )
    p.add_argument("--log-level", help="Logging level (env: LIVING_MEMORY_LOG_LEVEL)")
    return p


def config_from_args(args: argparse.Namespace) -> MemoryConfig:
    """Environment configuration with command-line flags on top."""
    config = load_config()
    if args.memory_dir is not None:
        config.memory_dir = args.memory_dir.expanduser()
    if args.create_policy is not None:
        config.create_policy = CreatePolicy(args.create_policy)
    if args.no_rebuild_tags:
        config.rebuild_tags = False
    if args.log_level:
        config.log_level = args.log_level.upper()
    return config


async def main(argv: Optional[list[str]] = None):
    config = config_from_args(build_parser().parse_args(argv))
    # stdout carries the MCP stream
    logging.basicConfig(
        stream=sys.stderr,
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting Living Memory MCP Server")
    server = create_server(config)
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Living Memory MCP Server running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
