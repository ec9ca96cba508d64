"""
Unit tests for orientation selection.
"""
import pytest

from polyplan.services.buildable_region import resolve_buildable_region
from polyplan.services.candidates import build_candidate_catalog
from polyplan.services.configuration import OrientationStrategy, resolve_configuration
from polyplan.services.geometry import Rectangle
from polyplan.services.orientation import (
    SolarTarget,
    _trial_angles,
    angular_distance,
    auto_tolerance,
    east_west_gutter_policy,
    estimate_coverage,
    normalize_angle,
    select_orientation,
)


class TestSolarPolicy:
    @pytest.mark.parametrize("latitude,expected", [
        (0, 30), (-14.9, 30), (20, 20), (-29, 20), (35, 15), (44.9, 15), (60, 10), (-75, 10),
    ])
    def test_auto_tolerance_bands(self, latitude, expected):
        assert auto_tolerance(latitude) == expected

    def test_east_west_gutters(self):
        target = east_west_gutter_policy(28.6)
        assert target.angle_deg == 0.0
        assert target.auto_tolerance_deg == 20.0


class TestAngles:
    def test_normalize(self):
        assert normalize_angle(-20) == 160.0
        assert normalize_angle(180) == 0.0
        assert normalize_angle(200) == 20.0

    def test_angular_distance(self):
        assert angular_distance(170, 10) == pytest.approx(20.0)
        assert angular_distance(0, 90) == pytest.approx(90.0)

    def test_uniform_trials(self):
        assert _trial_angles(0.0, 20.0, OrientationStrategy.UNIFORM, 5.0) == [0.0, 160.0, 20.0]

    def test_optimized_sweep(self):
        angles = _trial_angles(0.0, 10.0, OrientationStrategy.OPTIMIZED, 5.0)
        assert angles == [0.0, 175.0, 5.0, 170.0, 10.0]

    def test_zero_tolerance(self):
        assert _trial_angles(30.0, 0.0, OrientationStrategy.OPTIMIZED, 5.0) == [30.0]


class TestSelectOrientation:
    """Tests for select_orientation."""

    def test_picks_best_scoring_trial_angle(self, square_300, default_config):
        region = resolve_buildable_region(square_300, default_config)
        plan = select_orientation(region, square_300.latitude, default_config, build_candidate_catalog(default_config))
        scores = dict(plan.scores)
        assert set(scores) == {0.0, 160.0, 20.0}
        assert scores[plan.primary_angle_deg] == max(scores.values())
        assert plan.secondary_angles_deg == ()
        assert plan.tolerance_deg == 20.0
        assert plan.strategy == OrientationStrategy.UNIFORM

    def test_ties_go_to_solar_target(self, small_parcel, default_config):
        # Nothing fits anywhere, so every angle scores zero
        region = resolve_buildable_region(small_parcel, default_config)
        plan = select_orientation(region, small_parcel.latitude, default_config, build_candidate_catalog(default_config))
        assert all(score == 0 for _, score in plan.scores)
        assert plan.primary_angle_deg == 0.0

    def test_configured_deviation_overrides_auto(self, square_300):
        config = resolve_configuration(override={"solar": {"allowed_deviation_deg": 5}})
        region = resolve_buildable_region(square_300, config)
        plan = select_orientation(region, square_300.latitude, config, build_candidate_catalog(config))
        assert plan.tolerance_deg == 5.0

    def test_custom_policy(self, square_300, default_config):
        region = resolve_buildable_region(square_300, default_config)
        plan = select_orientation(
            region,
            square_300.latitude,
            default_config,
            build_candidate_catalog(default_config),
            solar_policy=lambda lat: SolarTarget(angle_deg=30.0, auto_tolerance_deg=0.0),
        )
        assert plan.primary_angle_deg == 30.0
        assert plan.solar_target_deg == 30.0

    def test_varied_secondary_is_separated(self, square_300):
        config = resolve_configuration(override={"optimization": {"orientation_strategy": "varied"}})
        region = resolve_buildable_region(square_300, config)
        plan = select_orientation(region, square_300.latitude, config, build_candidate_catalog(config))
        assert len(plan.secondary_angles_deg) <= 1
        for angle in plan.secondary_angles_deg:
            assert angular_distance(angle, plan.primary_angle_deg) >= 15.0

    def test_coverage_excludes_taken_space(self, square_300, default_config):
        region = resolve_buildable_region(square_300, default_config)
        catalog = build_candidate_catalog(default_config)
        taken = [Rectangle(0.0, 0.0, 400.0, 400.0)]

        assert estimate_coverage(region, 0.0, catalog, default_config, placed=taken) == 0.0
        assert estimate_coverage(region, 30.0, catalog, default_config, None, placed=taken) == 0.0

    def test_varied_secondary_needs_room_left_by_primary(self, small_parcel):
        config = resolve_configuration(override={"optimization": {"orientation_strategy": "varied"}})
        region = resolve_buildable_region(small_parcel, config)
        plan = select_orientation(region, small_parcel.latitude, config, build_candidate_catalog(config))
        assert plan.secondary_angles_deg == ()

    def test_coverage_is_positive_for_large_parcel(self, square_300, default_config):
        region = resolve_buildable_region(square_300, default_config)
        coverage = estimate_coverage(region, 0.0, build_candidate_catalog(default_config), default_config)
        assert coverage >= 4 * 9984.0

    def test_check_can_abort(self, square_300, default_config):
        region = resolve_buildable_region(square_300, default_config)

        def abort():
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            select_orientation(
                region, square_300.latitude, default_config,
                build_candidate_catalog(default_config), check=abort,
            )
