"""Review and validation history on top of a key-value store.

Each history owns one store key holding a newest-first list of entries,
capped globally: saving at capacity evicts the oldest entry of any PR or
issue. Entries are immutable once written; only delete() and clear()
remove them.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import replace
from typing import Any

from prchorus_core.errors import StoreError
from prchorus_core.models import ReviewResult, ValidationResult, parse_timestamp

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 500
DEFAULT_CHAIN_LIMIT = 10


class HistoryStore:
    """Append-only capped log of results for one entity kind.

    Subclasses set the store key, result type and the names of the entity
    number and timestamp fields. ``store`` is any object with
    ``get(key, default)`` and ``set(key, value)``.
    """

    KEY: str = ""
    ID_PREFIX: str = ""
    RESULT_CLS: Any = None
    ENTITY_FIELD: str = ""
    TIMESTAMP_FIELD: str = ""

    def __init__(self, store, max_entries: int = MAX_HISTORY_ENTRIES):
        self._store = store
        self._max_entries = max_entries

    def save(self, result):
        """Assign an id, prepend the entry and persist. Returns the stored entry."""
        entries = self._raw_entries(strict=True)
        entry = replace(result, id=self._generate_id(getattr(result, self.ENTITY_FIELD)))
        entries.insert(0, entry.to_dict())

        if len(entries) > self._max_entries:
            del entries[self._max_entries :]
            logger.debug("History capped at %d entries", self._max_entries)

        self._store.set(self.KEY, entries)
        logger.info(
            "Saved %s #%s (%s), total: %d",
            self.KEY,
            getattr(result, self.ENTITY_FIELD),
            result.repository_full_name,
            len(entries),
        )
        return entry

    def list(self, repository: str | None = None, entity_number: int | None = None, limit: int | None = None) -> list:
        """Entries matching the filters, newest first."""
        entries = [self.RESULT_CLS.from_dict(d) for d in self._raw_entries()]
        if repository:
            entries = [e for e in entries if e.repository_full_name == repository]
        if entity_number is not None:
            entries = [e for e in entries if getattr(e, self.ENTITY_FIELD) == entity_number]

        entries.sort(key=lambda e: parse_timestamp(getattr(e, self.TIMESTAMP_FIELD)), reverse=True)

        if limit and limit > 0:
            entries = entries[:limit]
        return entries

    def get_latest(self, repository: str, entity_number: int):
        entries = self.list(repository, entity_number, limit=1)
        return entries[0] if entries else None

    def get_by_id(self, entry_id: str):
        for d in self._raw_entries():
            if d.get("id") == entry_id:
                return self.RESULT_CLS.from_dict(d)
        return None

    def get_chain(self, repository: str, entity_number: int, limit: int = DEFAULT_CHAIN_LIMIT) -> list:
        """All entries for one PR or issue, oldest first, keeping the most recent ``limit``."""
        chain = list(reversed(self.list(repository, entity_number)))
        if limit > 0 and len(chain) > limit:
            return chain[-limit:]
        return chain

    def delete(self, entry_id: str) -> bool:
        entries = self._raw_entries(strict=True)
        for index, d in enumerate(entries):
            if isinstance(d, dict) and d.get("id") == entry_id:
                del entries[index]
                self._store.set(self.KEY, entries)
                logger.info("Deleted history entry: %s", entry_id)
                return True
        logger.debug("History entry not found: %s", entry_id)
        return False

    def clear(self, repository: str | None = None) -> None:
        if repository:
            entries = [
                d
                for d in self._raw_entries(strict=True)
                if not isinstance(d, dict) or d.get("repository_full_name") != repository
            ]
            self._store.set(self.KEY, entries)
            logger.info("Cleared %s for %s", self.KEY, repository)
        else:
            self._store.set(self.KEY, [])
            logger.info("Cleared all %s", self.KEY)

    def _raw_entries(self, strict: bool = False) -> list:
        """The stored entry list.

        Reads degrade to an empty history. Writes pass strict=True, which
        raises StoreError instead, so an unreadable store is never replaced
        by a shorter list. Strict reads keep malformed items so a rewrite
        preserves them.
        """
        try:
            data = self._store.get(self.KEY, [])
        except Exception as e:
            if strict:
                raise StoreError(f"Could not read {self.KEY} from store: {e}") from e
            logger.error("Failed to read %s from store: %s", self.KEY, e)
            return []
        if data is None:
            return []
        if not isinstance(data, list):
            if strict:
                raise StoreError(f"Stored {self.KEY} is not a list; refusing to overwrite it")
            logger.warning("Ignoring stored %s: expected a list, got %s", self.KEY, type(data).__name__)
            return []
        if strict:
            return list(data)
        return [d for d in data if isinstance(d, dict)]

    def _generate_id(self, entity_number: int) -> str:
        return f"{self.ID_PREFIX}-{entity_number}-{int(time.time() * 1000):x}-{secrets.token_hex(3)}"


class ReviewHistory(HistoryStore):
    KEY = "review_history"
    ID_PREFIX = "rh"
    RESULT_CLS = ReviewResult
    ENTITY_FIELD = "pr_number"
    TIMESTAMP_FIELD = "reviewed_at"

    def import_from_github(
        self,
        pr_number: int,
        pr_title: str,
        repository_full_name: str,
        quality_score: float,
        verdict: str,
        reviewed_at: str,
        head_commit_sha: str | None = None,
    ) -> ReviewResult:
        """Record a review published elsewhere so re-reviews can chain from it.

        Returns the existing entry when one with the same timestamp is
        already stored for the PR.
        """
        for entry in self.list(repository_full_name, pr_number):
            if entry.reviewed_at == reviewed_at:
                logger.info("Review for PR #%d already exists locally, skipping import", pr_number)
                return entry

        entry = self.save(
            ReviewResult(
                pr_number=pr_number,
                pr_title=pr_title,
                repository_full_name=repository_full_name,
                verdict=verdict,
                quality_score=quality_score,
                reviewed_at=reviewed_at,
                model="unknown",
                head_commit_sha=head_commit_sha,
                review_sequence=1,
                is_imported=True,
            )
        )
        logger.info(
            "Imported GitHub review for PR #%d (%s), score: %s/10", pr_number, repository_full_name, quality_score
        )
        return entry


class ValidationHistory(HistoryStore):
    KEY = "validation_history"
    ID_PREFIX = "vh"
    RESULT_CLS = ValidationResult
    ENTITY_FIELD = "issue_number"
    TIMESTAMP_FIELD = "validated_at"
