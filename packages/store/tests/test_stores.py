"""Tests for prchorus-store key-value backends."""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from prchorus_store.gist import GistStore
from prchorus_store.memory import MemoryStore
from prchorus_store.sqlite import SQLiteStore

HISTORY = [{"id": "rh-1-abc-000000", "pr_number": 1, "findings": [{"file": "a.py", "line": 3}]}]


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------


class TestMemoryStore:
    def test_missing_key_returns_default(self):
        assert MemoryStore().get("review_history", []) == []
        assert MemoryStore().get("review_history") is None

    def test_set_then_get(self):
        store = MemoryStore()
        store.set("review_history", HISTORY)
        assert store.get("review_history") == HISTORY

    def test_caller_cannot_mutate_stored_value(self):
        store = MemoryStore()
        value = [{"id": "a"}]
        store.set("k", value)
        value.append({"id": "b"})
        store.get("k").append({"id": "c"})
        assert store.get("k") == [{"id": "a"}]

    def test_close_is_safe(self):
        MemoryStore().close()  # must not raise


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_set_and_get(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.set("review_history", HISTORY)
        assert store.get("review_history") == HISTORY
        store.close()

    def test_missing_key_returns_default(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        assert store.get("nope", "fallback") == "fallback"
        store.close()

    def test_set_overwrites(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.set("k", [1])
        store.set("k", [2, 3])
        assert store.get("k") == [2, 3]
        store.close()

    def test_keys_are_isolated(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.set("review_history", [1])
        store.set("validation_history", [2])
        assert store.get("review_history") == [1]
        assert store.get("validation_history") == [2]
        store.close()

    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "test.db")
        store1 = SQLiteStore(db_path=db)
        store1.set("review_history", HISTORY)
        store1.close()

        store2 = SQLiteStore(db_path=db)
        assert store2.get("review_history") == HISTORY
        store2.close()

    def test_corrupt_value_returns_default(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store._conn.execute("INSERT INTO kv (key, value_json) VALUES (?, ?)", ("k", "{not json"))
        store._conn.commit()
        assert store.get("k", []) == []
        store.close()


# ---------------------------------------------------------------------------
# GistStore
# ---------------------------------------------------------------------------


def _make_gist_mock(document: dict | None = None):
    gist = MagicMock()
    if document is None:
        gist.files = {}
    else:
        file_obj = MagicMock()
        file_obj.content = json.dumps(document)
        gist.files = {"prchorus_store.json": file_obj}
    return gist


@pytest.fixture
def gist_store():
    with patch("prchorus_store.gist.Github"):
        store = GistStore(gist_id="abc123", token="tok")
    store._gh = MagicMock()
    return store


def _written(gist) -> dict:
    return json.loads(gist.edit.call_args[1]["files"]["prchorus_store.json"]["content"])


class TestGistStore:
    def test_get_reads_key_from_document(self, gist_store):
        gist_store._gh.get_gist.return_value = _make_gist_mock({"review_history": HISTORY})
        assert gist_store.get("review_history") == HISTORY

    def test_get_missing_file_returns_default(self, gist_store):
        gist_store._gh.get_gist.return_value = _make_gist_mock()
        assert gist_store.get("review_history", []) == []

    def test_get_raises_on_exception(self, gist_store):
        gist_store._gh.get_gist.side_effect = ConnectionError("network error")
        with pytest.raises(ConnectionError):
            gist_store.get("review_history", [])

    def test_get_raises_on_corrupt_document(self, gist_store):
        gist = _make_gist_mock({})
        gist.files["prchorus_store.json"].content = "not json"
        gist_store._gh.get_gist.return_value = gist
        with pytest.raises(ValueError):
            gist_store.get("review_history", [])

    def test_set_keeps_other_keys(self, gist_store):
        gist = _make_gist_mock({"validation_history": [{"id": "vh-1"}]})
        gist_store._gh.get_gist.return_value = gist

        gist_store.set("review_history", HISTORY)

        gist.edit.assert_called_once()
        assert _written(gist) == {"validation_history": [{"id": "vh-1"}], "review_history": HISTORY}

    def test_set_creates_file_when_missing(self, gist_store):
        gist = _make_gist_mock()
        gist_store._gh.get_gist.return_value = gist

        gist_store.set("review_history", [])

        assert _written(gist) == {"review_history": []}

    def test_set_leaves_corrupt_document_untouched(self, gist_store):
        gist = _make_gist_mock({})
        gist.files["prchorus_store.json"].content = "[1, 2]"
        gist_store._gh.get_gist.return_value = gist

        gist_store.set("review_history", HISTORY)

        gist.edit.assert_not_called()

    def test_set_does_not_raise_on_exception(self, gist_store, caplog):
        gist_store._gh.get_gist.side_effect = Exception("network error")

        with caplog.at_level(logging.WARNING, logger="prchorus_store.gist"):
            gist_store.set("review_history", HISTORY)  # must not raise

        assert "network error" in caplog.text

    def test_set_ci_hint_shown_in_github_actions(self, gist_store, caplog, monkeypatch):
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        gist_store._gh.get_gist.side_effect = Exception("403 Forbidden")

        with caplog.at_level(logging.WARNING, logger="prchorus_store.gist"):
            gist_store.set("review_history", HISTORY)

        assert "gist" in caplog.text.lower()
        assert "PAT" in caplog.text

    def test_set_no_ci_hint_outside_github_actions(self, gist_store, caplog, monkeypatch):
        monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
        gist_store._gh.get_gist.side_effect = Exception("403 Forbidden")

        with caplog.at_level(logging.WARNING, logger="prchorus_store.gist"):
            gist_store.set("review_history", HISTORY)

        assert "PAT" not in caplog.text
