# tests/conftest.py
from __future__ import annotations

import pytest

from hera.urp.core.context import ExecutionContext
from tests.helpers.memory_store import ORG, InMemoryEntityStore, chart_of_accounts_store


@pytest.fixture
def store() -> InMemoryEntityStore:
    return chart_of_accounts_store()


@pytest.fixture
def context(store: InMemoryEntityStore) -> ExecutionContext:
    return ExecutionContext.create(organization_id=ORG, store=store)
