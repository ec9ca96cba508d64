"""
Unit tests for the candidate size catalog.
"""
import pytest

from polyplan.services.candidates import (
    INFILL_MIN_MODULES,
    Candidate,
    build_candidate_catalog,
    infill_catalog,
)
from polyplan.services.configuration import resolve_configuration


class TestCandidateCatalog:
    """Tests for build_candidate_catalog."""

    @pytest.fixture
    def catalog(self, default_config):
        return build_candidate_catalog(default_config)

    def test_largest_first(self, catalog):
        first = catalog[0]
        assert (first.length, first.width) == (104.0, 96.0)
        assert first.area == 9984.0

    def test_sorted_by_area(self, catalog):
        areas = [c.area for c in catalog]
        assert areas == sorted(areas, reverse=True)

    def test_all_sizes_respect_limits(self, catalog, default_config):
        for c in catalog:
            assert c.length == c.module_count_x * default_config.module_width
            assert c.width == c.module_count_y * default_config.module_height
            assert default_config.min_side_length <= c.length <= default_config.max_side_length
            assert default_config.min_side_length <= c.width <= default_config.max_side_length
            assert c.module_count >= default_config.min_modules_per_structure
            assert c.area <= default_config.max_structure_area

    def test_equal_area_prefers_longer(self, catalog):
        # 104x96 and 96x104 tie on area and squareness
        assert catalog[1].length == 96.0 and catalog[1].width == 104.0

    def test_min_modules_override(self, default_config):
        catalog = build_candidate_catalog(default_config, min_modules=100)
        assert all(c.module_count >= 100 for c in catalog)

    def test_max_area_limits_catalog(self):
        config = resolve_configuration(override={"max_structure_area": 500})
        catalog = build_candidate_catalog(config)
        assert catalog[0].area <= 500
        assert catalog


class TestInfillCatalog:
    def test_below_regular_floor(self, default_config):
        infill = infill_catalog(default_config)
        assert infill
        assert all(INFILL_MIN_MODULES <= c.module_count < 10 for c in infill)

    def test_empty_when_floor_is_tiny(self):
        config = resolve_configuration(override={"min_modules_per_structure": 2})
        assert infill_catalog(config) == []


class TestCandidate:
    def test_aspect_ratio(self):
        assert Candidate(2, 4, 16, 16).aspect_ratio == 1.0
        assert Candidate(4, 2, 32, 8).aspect_ratio == 0.25

    def test_fits_within(self):
        small = Candidate(2, 4, 16, 16)
        big = Candidate(4, 8, 32, 32)
        assert small.fits_within(big)
        assert not big.fits_within(small)
        assert small.fits_within(small)
