"""
Document store tests.

- Connection handling and database lifecycle
- Collection reads and writes
- Filter operators and ordering
"""

import json
from pathlib import Path

import pytest

from src.jobstore import (
    Document,
    DocumentStore,
    DuplicateKeyError,
    StoreConnectionError,
)


class TestConnection:
    """DocumentStore.connect and database lifecycle."""

    def test_connect_accepts_sqlite_uri(self, store_dir: Path):
        """sqlite:/// prefix is stripped to the directory path."""
        store = DocumentStore.connect(f"sqlite:///{store_dir}", "Fixture")
        assert store.directory == store_dir
        assert store.db_path == store_dir / "Fixture.db"

    def test_connect_missing_directory_raises(self, tmp_path: Path):
        with pytest.raises(StoreConnectionError) as exc_info:
            DocumentStore.connect(tmp_path / "missing", "Fixture")
        assert "does not exist" in str(exc_info.value)

    def test_connect_empty_database_name_raises(self, store_dir: Path):
        with pytest.raises(StoreConnectionError):
            DocumentStore.connect(store_dir, "")

    def test_closed_store_rejects_operations(self, store_dir: Path):
        with DocumentStore.connect(store_dir, "Fixture") as store:
            pass
        assert store.is_closed
        with pytest.raises(StoreConnectionError):
            store.list_collection_names()

    def test_drop_database_removes_files(self, store: DocumentStore):
        store.create_collection("a.b").insert_one({"_id": "1"})
        assert store.db_path.exists()

        store.drop_database()

        assert not store.db_path.exists()
        assert store.list_collection_names() == []


class TestCollectionReadsWrites:
    """Insert, replace, find, delete."""

    def test_insert_and_find_by_id(self, store: DocumentStore):
        collection = store.create_collection("test.items")
        collection.insert_one({"_id": "a", "value": 1})

        doc = collection.find_by_id("a")

        assert isinstance(doc, Document)
        assert doc == {"_id": "a", "value": 1}

    def test_insert_assigns_id(self, store: DocumentStore):
        doc = store.create_collection("test.items").insert_one({"value": 1})
        assert doc["_id"]

    def test_duplicate_insert_raises(self, store: DocumentStore):
        collection = store.create_collection("test.items")
        collection.insert_one({"_id": "a"})

        with pytest.raises(DuplicateKeyError) as exc_info:
            collection.insert_one({"_id": "a"})

        assert exc_info.value.collection_name == "test.items"
        assert exc_info.value.document_id == "a"

    def test_replace_one_upsert(self, store: DocumentStore):
        collection = store.create_collection("test.items")

        assert collection.replace_one({"_id": "a", "v": 1}) is False
        assert collection.replace_one({"_id": "a", "v": 1}, upsert=True) is True
        assert collection.replace_one({"_id": "a", "v": 2}) is True
        assert collection.find_by_id("a")["v"] == 2
        assert collection.count() == 1

    def test_find_all_in_insertion_order(self, store: DocumentStore):
        collection = store.create_collection("test.items")
        for key in ("c", "a", "b"):
            collection.insert_one({"_id": key})

        assert [doc["_id"] for doc in collection.find_all()] == ["c", "a", "b"]

    def test_reads_on_missing_collection_do_not_create_it(self, store: DocumentStore):
        collection = store.get_collection("test.missing")

        assert collection.find_all() == []
        assert collection.count() == 0
        assert collection.find_one_and_update({"_id": "x"}, set={"v": 1}) is None
        assert "test.missing" not in store.list_collection_names()

    def test_delete_one_and_many(self, store: DocumentStore):
        collection = store.create_collection("test.items")
        for i in range(3):
            collection.insert_one({"_id": str(i), "kind": "odd" if i % 2 else "even"})

        assert collection.delete_one("1") is True
        assert collection.delete_one("1") is False
        assert collection.delete_many({"kind": "even"}) == 2
        assert collection.count() == 0

    def test_list_collection_names(self, store: DocumentStore):
        store.create_collection("p.job")
        store.create_collection("p.signal")
        assert store.list_collection_names() == ["p.job", "p.signal"]


class TestFiltersAndUpdates:
    """Filter operators, sorting and atomic updates."""

    @pytest.fixture
    def collection(self, store: DocumentStore):
        collection = store.create_collection("test.scores")
        collection.insert_one({"_id": "a", "score": "2026-01-01", "tag": None})
        collection.insert_one({"_id": "b", "score": "2026-01-03", "tag": "x"})
        collection.insert_one({"_id": "c", "score": "2026-01-02"})
        return collection

    def test_comparison_operators(self, collection):
        due = collection.find({"score": {"$lte": "2026-01-02"}}, sort="score")
        assert [doc["_id"] for doc in due] == ["a", "c"]

        later = collection.find({"score": {"$gt": "2026-01-01"}}, sort="-score")
        assert [doc["_id"] for doc in later] == ["b", "c"]

    def test_none_matches_null_and_missing(self, collection):
        docs = collection.find({"tag": None})
        assert sorted(doc["_id"] for doc in docs) == ["a", "c"]

    def test_unsupported_operator_raises(self, collection):
        with pytest.raises(ValueError):
            collection.find({"score": {"$regex": "2026"}})

    def test_find_one_and_update_set_and_push(self, collection):
        doc = collection.find_one_and_update(
            {"_id": "a"},
            set={"tag": "y"},
            push={"history": "first"},
        )
        doc = collection.find_one_and_update({"_id": "a"}, push={"history": "second"})

        assert doc["tag"] == "y"
        assert doc["history"] == ["first", "second"]
        assert collection.find_by_id("a") == doc

    def test_find_one_and_update_uses_sort(self, collection):
        doc = collection.find_one_and_update({}, set={"picked": True}, sort="score")
        assert doc["_id"] == "a"

    def test_increment_creates_from_defaults(self, store: DocumentStore):
        collection = store.create_collection("test.counters")

        collection.increment("hits", "value", defaults={"type": "Counter"})
        doc = collection.increment("hits", "value", amount=2)

        assert doc == {"_id": "hits", "type": "Counter", "value": 3}


class TestCanonicalText:
    """Document.to_canonical_text rendering."""

    def test_sorted_compact_json(self):
        doc = Document({"b": 1, "a": {"d": [1, 2], "c": None}})
        assert doc.to_canonical_text() == '{"a":{"c":null,"d":[1,2]},"b":1}'

    def test_non_ascii_kept(self):
        text = Document({"name": "작업"}).to_canonical_text()
        assert "작업" in text
        assert json.loads(text) == {"name": "작업"}
