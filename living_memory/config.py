"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

from .backends import CreatePolicy

DEFAULT_MEMORY_DIR = Path.home() / ".living_memory"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class MemoryConfig:
    """Settings for a memory store and the server in front of it."""

    memory_dir: Path = DEFAULT_MEMORY_DIR
    create_policy: CreatePolicy = CreatePolicy.OVERWRITE
    rebuild_tags: bool = True
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from environment, with fallback."""
    val = os.getenv(name)
    if val is None:
        return default
    val = val.strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    raise ValueError(f"{name} must be one of {sorted(_TRUE | _FALSE)}, got {val!r}")


def load_config() -> MemoryConfig:
    """Build configuration from environment variables over defaults.

    LIVING_MEMORY_DIR            storage root (default ~/.living_memory)
    LIVING_MEMORY_CREATE_POLICY  overwrite | reject | version
    LIVING_MEMORY_REBUILD_TAGS   rebuild the tag graph from disk at startup
    LIVING_MEMORY_LOG_LEVEL      logging level name
    """
    policy = os.getenv("LIVING_MEMORY_CREATE_POLICY", CreatePolicy.OVERWRITE.value)
    try:
        create_policy = CreatePolicy(policy.strip().lower())
    except ValueError:
        choices = ", ".join(p.value for p in CreatePolicy)
        raise ValueError(f"LIVING_MEMORY_CREATE_POLICY must be one of: {choices}, got {policy!r}")

    return MemoryConfig(
        memory_dir=Path(os.getenv("LIVING_MEMORY_DIR", str(DEFAULT_MEMORY_DIR))).expanduser(),
        create_policy=create_policy,
        rebuild_tags=_env_bool("LIVING_MEMORY_REBUILD_TAGS", True),
        log_level=os.getenv("LIVING_MEMORY_LOG_LEVEL", "INFO").upper(),
    )
