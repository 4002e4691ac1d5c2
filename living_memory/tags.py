"""
Tag co-occurrence graph for structured memories.

Each tag maps to the set of tags it has appeared alongside in at least one
record. The graph lives in memory only; relationships last for the session
unless the structured backend rebuilds it from disk at startup.
"""

import logging
from typing import Iterable

logger = logging.getLogger(__name__)


class TagGraph:
    """Symmetric adjacency sets, no self-loops."""

    def __init__(self):
        self._edges: dict[str, set[str]] = {}

    def connect_tags(self, tags: Iterable[str]) -> None:
        """Register every tag and link each pair that occurs together."""
        tags = list(dict.fromkeys(tags))
        for tag in tags:
            related = self._edges.setdefault(tag, set())
            related.update(t for t in tags if t != tag)
        if tags:
            logger.debug(f"Connected tags: {tags}")

    def related(self, tag: str) -> set[str]:
        return set(self._edges.get(tag, ()))

    def tags(self) -> list[str]:
        return list(self._edges)

    def clear(self) -> None:
        self._edges.clear()

    def __contains__(self, tag: str) -> bool:
        return tag in self._edges

    def __len__(self) -> int:
        return len(self._edges)
