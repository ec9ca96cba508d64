"""
Tests for PlanningService and PlanningInputs.
"""
import pytest

from polyplan.services.configuration import RecalculateCommand, RecalculateKind
from polyplan.services.exceptions import (
    ConfigurationError,
    InvalidParcelError,
    PlanNotFoundError,
    PlanningCancelledError,
)
from polyplan.services.planning_service import (
    SOLAR_FORCED_WARNING,
    PlanningInputs,
    PlanningService,
    content_address,
)
from polyplan.services.result_store import InMemoryResultStore

from tests.conftest import polygon_coords, rectangle_coords


@pytest.fixture
def store():
    return InMemoryResultStore()


@pytest.fixture
def service(store):
    return PlanningService(store, timeout_s=60.0)


@pytest.fixture
def medium_inputs():
    return PlanningInputs.from_dict({
        "land_area": {"name": "Medium plot", "coordinates": rectangle_coords(140, 120)},
    })


class TestPlanningInputs:
    """Tests for PlanningInputs serialization."""

    def test_round_trip_with_zones_and_terrain(self):
        data = {
            "land_area": {"name": "Farm", "coordinates": rectangle_coords(200, 200)},
            "zones": [{
                "kind": "exclusion",
                "name": "Well",
                "coordinates": polygon_coords([(0, 0), (10, 0), (10, 10), (0, 10)]),
            }],
            "terrain": {
                "buildable_area": 35_000.0,
                "restricted_zones": [{
                    "type": "water",
                    "reason": "Pond",
                    "coordinates": polygon_coords([(-50, -50), (-30, -50), (-30, -30)]),
                    "severity": "prohibited",
                    "area": 200.0,
                }],
                "average_slope": 3.5,
                "elevation_range": [410.0, 432.0],
                "warnings": ["Coarse DEM"],
            },
        }
        inputs = PlanningInputs.from_dict(data)

        assert inputs.parcel.name == "Farm"
        assert len(inputs.zones) == 1
        assert inputs.terrain.elevation_range_m == (410.0, 432.0)
        assert PlanningInputs.from_dict(inputs.to_dict()) == inputs

    def test_degenerate_parcel(self):
        with pytest.raises(InvalidParcelError):
            PlanningInputs.from_dict({
                "land_area": {"coordinates": polygon_coords([(0, 0), (10, 0), (20, 0)])},
            })


class TestContentAddress:
    def test_stable_for_equal_inputs(self, medium_inputs):
        config, _ = PlanningService.resolve()
        again = PlanningInputs.from_dict(medium_inputs.to_dict())
        assert content_address(medium_inputs, config) == content_address(again, config)
        assert len(content_address(medium_inputs, config)) == 64

    def test_changes_with_configuration(self, medium_inputs):
        base, _ = PlanningService.resolve()
        other, _ = PlanningService.resolve({"structure_gap": 1.0})
        assert content_address(medium_inputs, base) != content_address(medium_inputs, other)


class TestResolve:
    def test_solar_disable_is_forced_on(self):
        config, warnings = PlanningService.resolve({"solar": {"enabled": False}})
        assert config.solar.enabled is True
        assert warnings == [SOLAR_FORCED_WARNING]

    def test_user_defaults_below_override(self):
        config, warnings = PlanningService.resolve(
            override={"structure_gap": 3.0},
            user_defaults={"structure_gap": 1.0, "safety_buffer": 0.5},
        )
        assert config.structure_gap == 3.0
        assert config.safety_buffer == 0.5
        assert warnings == []

    def test_unknown_engine(self):
        with pytest.raises(ConfigurationError):
            PlanningService.resolve({"optimization": {"engine": "genetic"}})

    def test_out_of_range(self):
        with pytest.raises(ConfigurationError) as exc:
            PlanningService.resolve({"min_side_length": 200.0})
        assert exc.value.errors


class TestPlanningService:
    """Async tests for PlanningService."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, service, store, medium_inputs):
        plan = await service.create_plan(medium_inputs)

        assert len(plan.result_id) == 64
        assert plan.result["metadata"]["structure_count"] > 0
        assert plan.configuration["solar"]["enabled"] is True
        assert await store.get(plan.result_id) is plan
        assert await service.get_plan(plan.result_id) is plan

    @pytest.mark.asyncio
    async def test_same_request_same_id(self, service, medium_inputs):
        first = await service.create_plan(medium_inputs)
        second = await service.create_plan(medium_inputs)
        assert first.result_id == second.result_id
        assert first.result["structures"] == second.result["structures"]

    @pytest.mark.asyncio
    async def test_forced_solar_warning_in_result(self, service, medium_inputs):
        plan = await service.create_plan(medium_inputs, override={"solar": {"enabled": False}})
        assert SOLAR_FORCED_WARNING in plan.result["warnings"]

    @pytest.mark.asyncio
    async def test_progress_reported(self, service, medium_inputs):
        seen = []
        await service.create_plan(medium_inputs, progress=seen.append)
        assert seen[-1] == 100

    @pytest.mark.asyncio
    async def test_unknown_plan(self, service):
        with pytest.raises(PlanNotFoundError):
            await service.get_plan("0" * 64)

    @pytest.mark.asyncio
    async def test_timeout_discards_run(self, store, medium_inputs):
        service = PlanningService(store, timeout_s=-1.0)
        with pytest.raises(PlanningCancelledError):
            await service.create_plan(medium_inputs)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_recalculate_maximize(self, service, medium_inputs):
        plan = await service.create_plan(medium_inputs)
        updated = await service.recalculate(plan.result_id, RecalculateCommand(RecalculateKind.MAXIMIZE))

        assert updated.result_id != plan.result_id
        assert updated.configuration["structure_gap"] == 1.0
        assert updated.configuration["optimization"]["orientation_strategy"] == "optimized"
        assert updated.configuration["optimization"]["allow_infill"] is True
        assert updated.inputs == plan.inputs

    @pytest.mark.asyncio
    async def test_recalculate_min_modules(self, service, medium_inputs):
        plan = await service.create_plan(medium_inputs)
        command = RecalculateCommand(RecalculateKind.ADJUST_MIN_MODULES, min_modules=40)
        updated = await service.recalculate(plan.result_id, command)

        assert updated.configuration["min_modules_per_structure"] == 40
        for structure in updated.result["structures"]:
            if structure["placement_pass"] != "infill":
                assert structure["module_count"] >= 40

    @pytest.mark.asyncio
    async def test_recalculate_rejects_bad_min_modules(self, service, medium_inputs):
        plan = await service.create_plan(medium_inputs)
        command = RecalculateCommand(RecalculateKind.ADJUST_MIN_MODULES, min_modules=0)
        with pytest.raises(ConfigurationError):
            await service.recalculate(plan.result_id, command)

    @pytest.mark.asyncio
    async def test_recalculate_unknown_plan(self, service):
        with pytest.raises(PlanNotFoundError):
            await service.recalculate("f" * 64, RecalculateCommand(RecalculateKind.MAXIMIZE))
