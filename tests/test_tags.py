"""Tests for the tag co-occurrence graph."""

from __future__ import annotations

from living_memory.tags import TagGraph


class TestTagGraph:
    def test_symmetric(self):
        graph = TagGraph()
        graph.connect_tags(["work", "python"])
        assert graph.related("work") == {"python"}
        assert graph.related("python") == {"work"}

    def test_no_self_loops(self):
        graph = TagGraph()
        graph.connect_tags(["solo", "solo", "pair"])
        assert "solo" not in graph.related("solo")
        assert graph.related("solo") == {"pair"}

    def test_single_tag_registered(self):
        graph = TagGraph()
        graph.connect_tags(["lonely"])
        assert "lonely" in graph
        assert graph.related("lonely") == set()

    def test_accumulates(self):
        graph = TagGraph()
        graph.connect_tags(["a", "b"])
        graph.connect_tags(["a", "c"])
        assert graph.related("a") == {"b", "c"}
        assert graph.related("b") == {"a"}
        assert len(graph) == 3

    def test_unknown_tag(self):
        assert TagGraph().related("missing") == set()

    def test_related_returns_copy(self):
        graph = TagGraph()
        graph.connect_tags(["a", "b"])
        graph.related("a").add("zzz")
        assert graph.related("a") == {"b"}

    def test_clear(self):
        graph = TagGraph()
        graph.connect_tags(["a", "b"])
        graph.clear()
        assert len(graph) == 0
        assert graph.tags() == []
