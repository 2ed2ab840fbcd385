"""Abstract key-value store interface.

Services that persist state (review history, validation history) each own
one key and read/write the whole value. Any backend (in-memory, SQLite,
Gist) implements this interface; the services depend on it, not on a
concrete backend, so backends are swappable without touching them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseStore(ABC):
    """Pluggable key-value persistence.

    Values are JSON-serialisable (dicts, lists, strings, numbers). No
    transactions: each caller owns a disjoint key.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default if there is none."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Replace the value stored under key."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Subclasses holding a connection override this.
        Default is a no-op so callers can always call close() safely.
        """
