"""In-memory store. History lives for the lifetime of the process.

Useful for one-off CLI runs and tests. Values are deep-copied on the way in
and out so callers can never mutate stored state by accident.
"""

from __future__ import annotations

import copy
from typing import Any

from prchorus_store.base import BaseStore


class MemoryStore(BaseStore):
    def __init__(self):
        self._data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
