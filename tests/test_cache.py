"""Tests for core.cache stores."""

import json
from concurrent.futures import ThreadPoolExecutor

from core.cache import JsonFileCacheStore, KnowledgeBase, MemoryCacheStore


# ---------------------------------------------------------------------------
# MemoryCacheStore
# ---------------------------------------------------------------------------

class TestMemoryCacheStore:
    def test_put_get(self):
        store = MemoryCacheStore()
        store.put("todo app", [{"url": "u"}])
        assert store.get("todo app") == [{"url": "u"}]
        assert store.get("missing") is None

    def test_initial_and_items(self):
        store = MemoryCacheStore({"a": 1})
        store.put("b", 2)
        assert sorted(store.items()) == [("a", 1), ("b", 2)]


# ---------------------------------------------------------------------------
# JsonFileCacheStore
# ---------------------------------------------------------------------------

class TestJsonFileCacheStore:
    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileCacheStore(str(tmp_path / "cache.json"))
        assert store.items() == []
        assert store.get("x") is None

    def test_put_persists(self, tmp_path):
        path = tmp_path / "cache.json"
        JsonFileCacheStore(str(path)).put("todo app", [{"title": "t"}])
        assert json.loads(path.read_text()) == {"todo app": [{"title": "t"}]}
        assert JsonFileCacheStore(str(path)).get("todo app") == [{"title": "t"}]

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        store = JsonFileCacheStore(str(path))
        assert store.items() == []
        store.put("k", "v")
        assert store.get("k") == "v"

    def test_wrong_document_type_is_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileCacheStore(str(path)).items() == []

    def test_concurrent_writers_keep_every_key(self, tmp_path):
        store = JsonFileCacheStore(str(tmp_path / "cache.json"))
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda i: store.put(f"k{i}", i), range(20)))
        assert len(store.items()) == 20
        assert not [p for p in tmp_path.iterdir() if p.name.startswith(".tmp-")]


# ---------------------------------------------------------------------------
# KnowledgeBase
# ---------------------------------------------------------------------------

class TestKnowledgeBase:
    def test_append_adds_timestamp(self, tmp_path):
        kb = KnowledgeBase(str(tmp_path / "kb.json"))
        entry = kb.append(["Use hooks"])
        assert entry["insights"] == ["Use hooks"]
        assert entry["timestamp"]
        assert kb.entries() == [entry]

    def test_capped_to_newest(self, tmp_path):
        kb = KnowledgeBase(str(tmp_path / "kb.json"), limit=3)
        for i in range(5):
            kb.append([f"insight {i}"])
        entries = kb.entries()
        assert len(entries) == 3
        assert [e["insights"][0] for e in entries] == ["insight 2", "insight 3", "insight 4"]

    def test_corrupt_file_starts_over(self, tmp_path):
        path = tmp_path / "kb.json"
        path.write_text("oops")
        kb = KnowledgeBase(str(path))
        kb.append(["x"])
        assert len(kb.entries()) == 1
