from __future__ import annotations

import pytest

from fakes import DictStore, FakeForge
from prchorus_core.events import EventBus


@pytest.fixture
def kv_store():
    return DictStore()


@pytest.fixture
def forge():
    return FakeForge()


@pytest.fixture
def bus():
    return EventBus()
