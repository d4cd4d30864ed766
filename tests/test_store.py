"""
Store contract:
- get() of an absent key -> None
- set()/delete() visible to the next get()
- JsonFileStore: missing/invalid file -> empty store, survives re-opening
"""

import json

import pytest

from selection.store import JsonFileStore, MemoryStore, StoreError


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return JsonFileStore(tmp_path / "nested" / "selection.json")


class TestStoreContract:
    def test_missing_key(self, store):
        assert store.get("favorites") is None

    def test_set_get_delete(self, store):
        store.set("favorites", "[]")
        assert store.get("favorites") == "[]"
        store.delete("favorites")
        assert store.get("favorites") is None

    def test_delete_missing_is_noop(self, store):
        store.delete("nothing")
        assert store.get("nothing") is None

    def test_keys_are_independent(self, store):
        store.set("a", "1")
        store.set("b", "2")
        store.delete("a")
        assert store.get("b") == "2"


class TestJsonFileStore:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "selection.json"
        JsonFileStore(path).set("compareItems", '[{"id": "x"}]')
        assert JsonFileStore(path).get("compareItems") == '[{"id": "x"}]'

    def test_file_layout(self, tmp_path):
        path = tmp_path / "selection.json"
        JsonFileStore(path).set("favorites", "[]")
        assert json.loads(path.read_text(encoding="utf-8")) == {"favorites": "[]"}

    def test_invalid_file_reads_empty(self, tmp_path):
        path = tmp_path / "selection.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(path)
        assert store.get("favorites") is None
        store.set("favorites", "[]")
        assert store.get("favorites") == "[]"

    def test_non_object_file_reads_empty(self, tmp_path):
        path = tmp_path / "selection.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        assert JsonFileStore(path).get("favorites") is None

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = JsonFileStore(blocker / "selection.json")
        with pytest.raises(StoreError):
            store.set("favorites", "[]")

    def test_failed_replace_leaves_no_temp_file(self, tmp_path, monkeypatch):
        path = tmp_path / "selection.json"
        store = JsonFileStore(path)
        store.set("favorites", "[]")

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("selection.store.os.replace", fail_replace)
        with pytest.raises(StoreError):
            store.set("favorites", '[{"id": "x"}]')
        assert sorted(p.name for p in tmp_path.iterdir()) == ["selection.json"]
        assert store.get("favorites") == "[]"
