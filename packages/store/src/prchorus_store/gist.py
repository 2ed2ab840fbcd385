"""GistStore: zero-infrastructure team history via GitHub Gist.

Gist access follows GitHub account access, so every developer on the team
can read the shared history without a separate login, and CI can write it
with a token that has the 'gist' scope.

Data format: a single JSON file named `prchorus_store.json` inside the Gist,
holding one JSON object that maps each key to its value.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from github import Github

from prchorus_store.base import BaseStore

logger = logging.getLogger(__name__)

_GIST_FILENAME = "prchorus_store.json"


class GistStore(BaseStore):
    """Stores the key-value document in a GitHub Gist.

    Every get() reads the whole document and every set() rewrites it, which
    suits hundreds of history entries. For much larger histories use
    SQLiteStore.
    """

    def __init__(self, gist_id: str, token: str):
        self._gist_id = gist_id
        self._gh = Github(token)

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def get(self, key: str, default: Any = None) -> Any:
        """Value for key, or default when the file or key is absent; read errors propagate."""
        return self._read_document(self._get_gist()).get(key, default)

    def set(self, key: str, value: Any) -> None:
        try:
            gist = self._get_gist()
            document = self._read_document(gist)
            document[key] = value
            gist.edit(files={_GIST_FILENAME: {"content": json.dumps(document, indent=2)}})
        except Exception as e:
            # The review itself already completed; losing the history write
            # must not turn it into a failure.
            hint = ""
            if os.environ.get("GITHUB_ACTIONS") == "true":
                hint = (
                    " The built-in GITHUB_TOKEN does not have Gist permissions. "
                    "Use a PAT with 'gist' scope stored as a repository secret."
                )
            logger.warning("GistStore.set(%r) failed (%s): %s.%s", key, type(e).__name__, e, hint)

    def _read_document(self, gist) -> dict:
        """Read the JSON object from the Gist file; {} when the file is absent."""
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return {}
        document = json.loads(file_obj.content)
        if not isinstance(document, dict):
            raise ValueError(f"{_GIST_FILENAME} does not hold a JSON object")
        return document
