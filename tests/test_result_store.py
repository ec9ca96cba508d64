"""
Tests for the in-memory result store.
"""
import pytest

from polyplan.services.result_store import InMemoryResultStore, StoredPlan


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _plan(result_id: str) -> StoredPlan:
    return StoredPlan(result_id=result_id, inputs={}, configuration={}, result={"structures": []})


@pytest.fixture
def clock():
    return FakeClock()


class TestInMemoryResultStore:
    """Tests for InMemoryResultStore."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, clock):
        store = InMemoryResultStore(clock=clock)
        plan = _plan("a")
        await store.put("a", plan)

        assert await store.get("a") is plan
        assert await store.get("b") is None
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_entries_expire(self, clock):
        store = InMemoryResultStore(ttl_seconds=60, clock=clock)
        await store.put("a", _plan("a"))

        clock.now += 59
        assert await store.get("a") is not None
        clock.now += 1
        assert await store.get("a") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_put_refreshes_ttl(self, clock):
        store = InMemoryResultStore(ttl_seconds=60, clock=clock)
        await store.put("a", _plan("a"))
        clock.now += 50
        await store.put("a", _plan("a"))
        clock.now += 50
        assert await store.get("a") is not None

    @pytest.mark.asyncio
    async def test_oldest_entry_evicted(self, clock):
        store = InMemoryResultStore(max_entries=2, clock=clock)
        for key in ("a", "b", "c"):
            await store.put(key, _plan(key))
            clock.now += 1

        assert await store.get("a") is None
        assert await store.get("b") is not None
        assert await store.get("c") is not None
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_replacing_moves_entry_to_newest(self, clock):
        store = InMemoryResultStore(max_entries=2, clock=clock)
        await store.put("a", _plan("a"))
        await store.put("b", _plan("b"))
        await store.put("a", _plan("a"))
        await store.put("c", _plan("c"))

        assert await store.get("a") is not None
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_delete(self, clock):
        store = InMemoryResultStore(clock=clock)
        await store.put("a", _plan("a"))

        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.get("a") is None
