"""Fixtures for contract tests — one parameterized fixture per hook interface.

Each fixture yields a fresh implementation instance. Both shipped stores
are registered: "memory" (InMemoryStore) and "file" (LocalFileStore in an
isolated temp directory).

TEAM: To test your own StateStore against the contract:
    1. Add your param string (e.g., "sqlite") to the params list.
    2. Add an elif branch that yields your implementation instance.
    3. Run: python -m pytest focusflow/tests/contracts/ -v
    All tests should pass. If any fail, your store doesn't satisfy the
    contract; read the failing test's docstring for what's expected.

Uses @pytest_asyncio.fixture (not @pytest.fixture) for async fixture support
in strict mode.
"""

import pytest_asyncio

from focusflow.engine.records import dump_records
from focusflow.hooks.database import InMemoryStore
from focusflow.hooks.storage import LocalFileStore
from focusflow.schemas import ProgressionSnapshot, UserProgress


# ---------------------------------------------------------------------------
# Interface fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(params=["memory", "file"])
async def state_store(request, tmp_path):
    """Yields a StateStore implementation.

    TEAM: Add your store here:
        @pytest_asyncio.fixture(params=["memory", "file", "sqlite"])
        async def state_store(request, tmp_path):
            ...
            elif request.param == "sqlite":
                store = YourSqliteStore(tmp_path / "state.db")
                yield store
                await store.close()  # if needed
    """
    if request.param == "memory":
        yield InMemoryStore()
    elif request.param == "file":
        yield LocalFileStore(base_path=tmp_path)


# ---------------------------------------------------------------------------
# Helper fixtures (shared test data)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sample_records():
    """A complete record set with non-default values for integrity assertions."""
    snapshot = ProgressionSnapshot(
        user_id="contract-1",
        progress=UserProgress(level=7, xp=42, total_xp=1242, streak=3),
    )
    return dump_records(snapshot)
