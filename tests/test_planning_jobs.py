"""
Tests for background planning jobs.
"""
import pytest

from polyplan.services.configuration import PlannerConfiguration
from polyplan.services.planning_jobs import JobStatus, PlanningJobManager
from polyplan.services.planning_service import PlanningInputs, PlanningService
from polyplan.services.result_store import InMemoryResultStore

from tests.conftest import polygon_coords, rectangle_coords


@pytest.fixture
def store():
    return InMemoryResultStore()


@pytest.fixture
def manager(store):
    return PlanningJobManager(PlanningService(store))


@pytest.fixture
def inputs():
    return PlanningInputs.from_dict({
        "land_area": {"name": "Medium plot", "coordinates": rectangle_coords(140, 120)},
    })


class TestPlanningJobManager:
    """Tests for PlanningJobManager."""

    @pytest.mark.asyncio
    async def test_job_completes(self, manager, store, inputs):
        job = manager.submit(inputs, PlannerConfiguration())
        assert job.status == JobStatus.PROCESSING
        assert manager.get(job.id) is job

        await job.task

        assert job.status == JobStatus.COMPLETED
        assert job.progress_pct == 100
        assert job.error_message is None
        assert await store.get(job.result_id) is not None

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, manager, store, inputs):
        job = manager.submit(inputs, PlannerConfiguration())
        assert manager.cancel(job.id) is True

        await job.task

        assert job.status == JobStatus.FAILED
        assert job.result_id is None
        assert "cancelled" in job.error_message
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_blocked_terrain_fails_job(self, manager):
        blocked = PlanningInputs.from_dict({
            "land_area": {"coordinates": rectangle_coords(140, 120)},
            "terrain": {
                "restricted_zones": [{
                    "type": "water",
                    "reason": "Reservoir",
                    "coordinates": polygon_coords([(-80, -70), (80, -70), (80, 70), (-80, 70)]),
                }],
            },
        })
        job = manager.submit(blocked, PlannerConfiguration())
        await job.task

        assert job.status == JobStatus.FAILED
        assert "buildable" in job.error_message

    @pytest.mark.asyncio
    async def test_cancel_finished_job(self, manager, inputs):
        job = manager.submit(inputs, PlannerConfiguration())
        await job.task
        assert manager.cancel(job.id) is False

    @pytest.mark.asyncio
    async def test_unknown_job(self, manager):
        assert manager.get("missing") is None
        assert manager.cancel("missing") is False

    @pytest.mark.asyncio
    async def test_shutdown_stops_pending_jobs(self, manager, inputs):
        job = manager.submit(inputs, PlannerConfiguration())
        await manager.shutdown()
        assert job.done

    @pytest.mark.asyncio
    async def test_to_dict(self, manager, inputs):
        job = manager.submit(inputs, PlannerConfiguration())
        await job.task
        data = job.to_dict()

        assert data["job_id"] == job.id
        assert data["status"] == "completed"
        assert data["result_id"] == job.result_id
        assert set(data) == {
            "job_id", "status", "progress_pct", "result_id", "error_message", "created_at",
        }


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestFinishedJobEviction:
    """Finished jobs are dropped after the TTL or beyond the capacity."""

    async def _finished_job(self, manager, inputs):
        # Cancelled before it starts, so no planning work runs
        job = manager.submit(inputs, PlannerConfiguration())
        manager.cancel(job.id)
        await job.task
        return job

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, store, inputs):
        clock = FakeClock()
        manager = PlanningJobManager(PlanningService(store), ttl_seconds=60, clock=clock)
        job = await self._finished_job(manager, inputs)

        clock.now += 59
        assert manager.get(job.id) is job
        clock.now += 1
        assert manager.get(job.id) is None
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_oldest_finished_evicted_over_capacity(self, store, inputs):
        clock = FakeClock()
        manager = PlanningJobManager(PlanningService(store), max_finished=2, clock=clock)
        jobs = []
        for _ in range(3):
            jobs.append(await self._finished_job(manager, inputs))
            clock.now += 1

        assert manager.get(jobs[0].id) is None
        assert manager.get(jobs[1].id) is jobs[1]
        assert manager.get(jobs[2].id) is jobs[2]

    @pytest.mark.asyncio
    async def test_running_jobs_are_kept(self, store, inputs):
        clock = FakeClock()
        manager = PlanningJobManager(
            PlanningService(store), ttl_seconds=0, max_finished=0, clock=clock
        )
        job = manager.submit(inputs, PlannerConfiguration())

        assert manager.get(job.id) is job
        assert job.finished_at is None

        await job.task
        assert job.finished_at == clock.now
        assert manager.get(job.id) is None
