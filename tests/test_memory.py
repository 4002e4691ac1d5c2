"""Tests for the tool-call dispatcher."""

from __future__ import annotations

import pytest
from pathlib import Path

from living_memory.backends import CreatePolicy
from living_memory.config import MemoryConfig
from living_memory.memory import MODE_JSON, MODE_RAW, MemoryDispatcher, ToolResult, open_dispatcher


@pytest.fixture
def dispatcher(tmp_path: Path) -> MemoryDispatcher:
    return open_dispatcher(MemoryConfig(memory_dir=tmp_path / "memory"))


def ok(result: ToolResult) -> str:
    assert not result.is_error, result.text
    return result.text


def manifest_text(dispatcher: MemoryDispatcher) -> str:
    return dispatcher.root.manifest.path.read_text(encoding="utf-8")


class TestRoundTrip:
    def test_json_create_and_read(self, dispatcher: MemoryDispatcher):
        text = ok(dispatcher.invoke(MODE_JSON, "create_file", {"name": "idea", "content": "Use a trie"}))
        assert "idea.json created successfully" in text
        assert ok(dispatcher.invoke(MODE_JSON, "read_file_content", {"name": "idea"})) == "Use a trie"

    def test_raw_create_and_read(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "todo.txt", "content": "- milk\n- eggs\n"}))
        assert ok(dispatcher.invoke(MODE_RAW, "read_file_content", {"name": "todo.txt"})) == "- milk\n- eggs\n"

    def test_append_with_file_key(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "log.txt", "content": "a"}))
        ok(dispatcher.invoke(MODE_RAW, "append_content", {"file": "log.txt", "content": "b"}))
        ok(dispatcher.invoke(MODE_RAW, "append_content", {"name": "log.txt", "content": "c"}))
        assert ok(dispatcher.invoke(MODE_RAW, "read_file_content", {"name": "log.txt"})) == "abc"


class TestListing:
    def test_read_all_files_newline_joined(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "a.txt", "content": "1"}))
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "b.txt", "content": "2"}))
        assert ok(dispatcher.invoke(MODE_RAW, "read_all_files")) == "a.txt\nb.txt"

    def test_move_then_list(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_JSON, "create_file", {"name": "a", "content": "x"}))
        ok(dispatcher.invoke(MODE_JSON, "move_file", {"source": "a", "dest": "b"}))
        assert ok(dispatcher.invoke(MODE_JSON, "read_all_files")).splitlines() == ["b.json"]

        again = dispatcher.invoke(MODE_JSON, "move_file", {"source": "a", "dest": "b"})
        assert again.is_error
        assert "Failed to move file at a to b" in again.text

    def test_search_by_tag(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_JSON, "create_file", {
            "name": "meeting", "content": "quarterly numbers", "tags": ["Finance"],
        }))
        assert ok(dispatcher.invoke(MODE_JSON, "fuzzy_search", {"query": "finance"})) == "meeting.json"
        assert ok(dispatcher.invoke(MODE_RAW, "fuzzy_search", {"query": "quarterly"})) == "meeting.json"
        assert ok(dispatcher.invoke(MODE_RAW, "fuzzy_search", {"query": "zzz"})) == ""

    def test_rename_noop(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "same.txt", "content": "keep"}))
        ok(dispatcher.invoke(MODE_RAW, "rename_file", {"source": "same.txt", "dest": "same.txt"}))
        assert ok(dispatcher.invoke(MODE_RAW, "read_file_content", {"name": "same.txt"})) == "keep"


class TestManifest:
    def test_manifest_fresh_after_each_mutation(self, dispatcher: MemoryDispatcher):
        calls = [
            (MODE_RAW, "create_dir", {"name": "projects"}),
            (MODE_RAW, "create_file", {"name": "projects/plan.txt", "content": "p"}),
            (MODE_RAW, "append_content", {"name": "projects/plan.txt", "content": "q"}),
            (MODE_RAW, "move_dir", {"source": "projects", "dest": "work"}),
            (MODE_JSON, "create_file", {"name": "rec", "content": "r"}),
            (MODE_JSON, "rename_file", {"source": "rec", "dest": "renamed"}),
        ]
        for tool, action, args in calls:
            ok(dispatcher.invoke(tool, action, args))
            assert manifest_text(dispatcher) == dispatcher.root.manifest.render()

        text = manifest_text(dispatcher)
        assert "└── work/" in text
        assert "plan.txt" in text
        assert "renamed.json" in text
        assert "projects" not in text


class TestErrors:
    def test_unknown_action(self, dispatcher: MemoryDispatcher):
        result = dispatcher.invoke(MODE_JSON, "delete_file", {"name": "a"})
        assert result.is_error
        assert result.text == "Error: Unknown action: delete_file"

    def test_missing_action(self, dispatcher: MemoryDispatcher):
        result = dispatcher.invoke(MODE_RAW, None)
        assert result.is_error
        assert "Unknown action" in result.text

    def test_unknown_tool(self, dispatcher: MemoryDispatcher):
        result = dispatcher.invoke("MODE_XML", "read_all_files")
        assert result.is_error
        assert "MODE_XML" in result.text

    @pytest.mark.parametrize("action,args,message", [
        ("create_file", {"name": "a"}, "Name and content are required"),
        ("create_file", {"name": 5, "content": "x"}, "Name and content are required"),
        ("create_dir", {}, "Name is required"),
        ("move_file", {"source": "a"}, "Source and destination are required for moving a file"),
        ("move_dir", {"dest": "b"}, "Source and destination are required for moving a directory"),
        ("rename_file", {"source": "", "dest": "b"}, "Source and destination are required for renaming"),
        ("append_content", {"content": "x"}, "Name and content are required for appending"),
        ("read_file_content", {}, "Name is required for reading"),
        ("fuzzy_search", {"query": ""}, "Query is required"),
    ])
    def test_argument_errors(self, dispatcher: MemoryDispatcher, action, args, message):
        result = dispatcher.invoke(MODE_RAW, action, args)
        assert result.is_error
        assert message in result.text

    def test_tags_rejected_in_raw_mode(self, dispatcher: MemoryDispatcher):
        result = dispatcher.invoke(MODE_RAW, "create_file", {"name": "a", "content": "x", "tags": ["t"]})
        assert result.is_error
        assert "MODE_JSON" in result.text

    def test_parse_error_reported(self, dispatcher: MemoryDispatcher):
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "bad.json", "content": "{oops"}))
        result = dispatcher.invoke(MODE_JSON, "read_file_content", {"name": "bad"})
        assert result.is_error
        assert "Malformed memory record at bad.json" in result.text

    def test_traversal_reported(self, dispatcher: MemoryDispatcher):
        result = dispatcher.invoke(MODE_RAW, "create_file", {"name": "../outside.txt", "content": "x"})
        assert result.is_error
        assert not (dispatcher.root.path.parent / "outside.txt").exists()

    def test_unexpected_exception_becomes_error(self, dispatcher: MemoryDispatcher, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(dispatcher.backend(MODE_RAW), "read_file_content", boom)
        result = dispatcher.invoke(MODE_RAW, "read_file_content", {"name": "a"})
        assert result == ToolResult(text="Error: kaboom", is_error=True)


class TestOpenDispatcher:
    def test_create_policy_applied(self, tmp_path: Path):
        dispatcher = open_dispatcher(MemoryConfig(memory_dir=tmp_path / "m", create_policy=CreatePolicy.REJECT))
        ok(dispatcher.invoke(MODE_RAW, "create_file", {"name": "a.txt", "content": "1"}))
        result = dispatcher.invoke(MODE_RAW, "create_file", {"name": "a.txt", "content": "2"})
        assert result.is_error
        assert "File exists" in result.text

    def test_backends_share_root(self, dispatcher: MemoryDispatcher):
        assert dispatcher.backend(MODE_JSON).root is dispatcher.backend(MODE_RAW).root
