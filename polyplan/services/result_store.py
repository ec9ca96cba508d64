"""
Storage for finished plans.

Plans are addressed by the SHA-256 of their canonical inputs, so the same
request always maps to the same id. Two backends share the ResultStore
interface: an in-process TTL/LRU map and a SQLAlchemy-backed table.
"""
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from polyplan.models import PlanningRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredPlan:
    """A finished plan together with the inputs that produced it."""
    result_id: str
    inputs: dict[str, Any]
    configuration: dict[str, Any]
    result: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ResultStore(ABC):
    """Async key-value store for plans."""

    @abstractmethod
    async def get(self, result_id: str) -> Optional[StoredPlan]:
        """Return the plan, or None when unknown or expired."""

    @abstractmethod
    async def put(self, result_id: str, plan: StoredPlan) -> None:
        """Insert or replace a plan under its result id."""

    @abstractmethod
    async def delete(self, result_id: str) -> bool:
        """Remove a plan; returns whether it existed."""


class InMemoryResultStore(ResultStore):
    """
    Process-local store with TTL expiry and oldest-first eviction.

    Args:
        ttl_seconds: Lifetime of an entry
        max_entries: Capacity before the oldest entry is evicted
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, StoredPlan]] = OrderedDict()

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    def _purge(self) -> None:
        now = self._clock()
        expired = [key for key, (expires, _) in self._entries.items() if expires <= now]
        for key in expired:
            del self._entries[key]

    async def get(self, result_id: str) -> Optional[StoredPlan]:
        entry = self._entries.get(result_id)
        if entry is None:
            return None
        expires, plan = entry
        if expires <= self._clock():
            del self._entries[result_id]
            return None
        return plan

    async def put(self, result_id: str, plan: StoredPlan) -> None:
        self._purge()
        self._entries.pop(result_id, None)
        self._entries[result_id] = (self._clock() + self.ttl_seconds, plan)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted plan {evicted[:12]} from result store")

    async def delete(self, result_id: str) -> bool:
        return self._entries.pop(result_id, None) is not None


class DatabaseResultStore(ResultStore):
    """
    Plans persisted as JSON rows through SQLAlchemy async sessions.

    Args:
        session_factory: async_sessionmaker bound to the application engine
        ttl_seconds: Lifetime of a row; expired rows are ignored and purged
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], ttl_seconds: float = 3600):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def get(self, result_id: str) -> Optional[StoredPlan]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PlanningRecord).where(
                    PlanningRecord.result_id == result_id,
                    PlanningRecord.expires_at > self._now(),
                )
            )
            record = result.scalar_one_or_none()
            if record is None:
                return None
            return StoredPlan(
                result_id=record.result_id,
                inputs=record.inputs,
                configuration=record.configuration,
                result=record.result,
                created_at=record.created_at,
            )

    async def put(self, result_id: str, plan: StoredPlan) -> None:
        async with self.session_factory() as session:
            await session.merge(PlanningRecord(
                result_id=result_id,
                inputs=plan.inputs,
                configuration=plan.configuration,
                result=plan.result,
                expires_at=self._now() + timedelta(seconds=self.ttl_seconds),
            ))
            await session.execute(
                delete(PlanningRecord).where(PlanningRecord.expires_at <= self._now())
            )
            await session.commit()

    async def delete(self, result_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(PlanningRecord).where(PlanningRecord.result_id == result_id)
            )
            await session.commit()
            return result.rowcount > 0
