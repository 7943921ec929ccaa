"""
Unit tests for zonal aggregation.

Tests cover:
- Grid selection and partitioning (including remainder pixels)
- Health score weighting and clamping
- Per-zone statistics and stress flags
- Strided field-level statistics
"""
import pytest
import numpy as np

from fieldhealth.domain.models import RasterBuffer
from fieldhealth.services.domain.zonal_aggregator import (
    compute_field_statistics,
    compute_zone_statistics,
    grid_size_for,
    health_score,
    zone_bounds,
    zone_label_image,
)


GREEN = (40, 160, 40)
RED = (255, 0, 0)
SOIL = (150, 110, 80)


# ============================================================
# Grid Partition Tests
# ============================================================

class TestGridPartition:
    """Tests for the zone grid."""

    @pytest.mark.parametrize("zone_count,expected", [(1, 2), (4, 2), (5, 3), (9, 3)])
    def test_grid_size(self, zone_count, expected):
        assert grid_size_for(zone_count) == expected

    def test_row_major_order(self):
        bounds = zone_bounds(40, 40, 2)

        assert [(b.row, b.col) for b in bounds] == [(0, 0), (0, 1), (1, 0), (1, 1)]
        assert bounds[1].x_start == 20
        assert bounds[2].y_start == 20

    def test_last_row_and_column_absorb_remainder(self):
        """A 5x7 raster on a 2x2 grid leaves no pixel unassigned."""
        bounds = zone_bounds(5, 7, 2)

        assert bounds[3].x_end == 5
        assert bounds[3].y_end == 7
        assert (bounds[3].x_end - bounds[3].x_start) == 3
        assert (bounds[3].y_end - bounds[3].y_start) == 4

    def test_every_pixel_labelled_once(self):
        labels = zone_label_image(11, 10, 3)

        assert (labels > 0).all()
        assert sorted(np.unique(labels).tolist()) == list(range(1, 10))

    def test_raster_smaller_than_grid_rejected(self):
        with pytest.raises(ValueError, match="too small"):
            zone_bounds(2, 2, 3)


# ============================================================
# Health Score Tests
# ============================================================

class TestHealthScore:
    """Tests for the weighted zone health score."""

    def test_extremes(self):
        assert health_score(1, 1, 1) == 100
        assert health_score(-1, -1, -1) == 0

    def test_weights(self):
        """Neutral indices land at exactly half of every weight."""
        assert health_score(0, 0, 0) == 50
        # Only NDVI at its maximum: 60 + 12.5 + 7.5
        assert health_score(1, 0, 0) == 80

    def test_monotonic_in_each_index(self):
        values = np.linspace(-1, 1, 21)

        for a, b in zip(values, values[1:]):
            assert health_score(a, 0, 0) <= health_score(b, 0, 0)
            assert health_score(0, a, 0) <= health_score(0, b, 0)
            assert health_score(0, 0, a) <= health_score(0, 0, b)


# ============================================================
# Zone Statistics Tests
# ============================================================

class TestZoneStatistics:
    """Tests for per-zone aggregation."""

    def test_split_raster_zones(self, split_raster):
        """Left zones are vegetation, right zones are pure red."""
        zones = compute_zone_statistics(split_raster, zone_count=4)

        assert len(zones) == 4
        left, right = zones[0], zones[1]

        assert left.avg_ndvi == 0.729
        assert left.avg_ndwi == -0.229
        assert left.avg_vari == 0.75
        assert left.health_score == 75
        # NDWI below -0.2 marks every vegetation pixel as stressed
        assert left.stress_percentage == 100.0
        assert left.water_stress is True
        assert left.vegetation_stress is False

        assert right.avg_ndvi == -1.0
        assert right.health_score == 13
        assert right.vegetation_stress is True
        assert right.water_stress is False

        assert zones[2].avg_ndvi == left.avg_ndvi
        assert zones[3].avg_ndvi == right.avg_ndvi

    def test_nine_zones(self, mixed_raster):
        zones = compute_zone_statistics(mixed_raster, zone_count=9)

        assert [z.zone_index for z in zones] == list(range(9))
        assert [(z.row_index, z.col_index) for z in zones][4] == (1, 1)

    def test_values_are_rounded(self, mixed_raster):
        for zone in compute_zone_statistics(mixed_raster):
            assert zone.avg_ndvi == round(zone.avg_ndvi, 3)
            assert zone.stress_percentage == round(zone.stress_percentage, 1)
            assert 0 <= zone.stress_percentage <= 100
            assert 0 <= zone.health_score <= 100

    def test_deterministic(self, mixed_raster):
        first = compute_zone_statistics(mixed_raster, zone_count=9)
        second = compute_zone_statistics(mixed_raster, zone_count=9)

        assert first == second

    def test_partial_stress(self):
        """One stressed pixel out of four gives 25% stress in that zone only."""
        pixels = np.empty((4, 4, 3), dtype=np.uint8)
        pixels[:, :] = (0, 255, 0)  # NDVI 1, NDWI 0
        pixels[0, 0] = RED
        raster = RasterBuffer.from_rgb(pixels)

        zones = compute_zone_statistics(raster, zone_count=1)

        assert zones[0].stress_percentage == 25.0
        assert [z.stress_percentage for z in zones[1:]] == [0.0, 0.0, 0.0]

    def test_tie_averages_round_away_from_zero(self, raster_factory):
        """Soil has NDVI exactly 20/320 = 0.0625, reported as 0.063."""
        zones = compute_zone_statistics(raster_factory(SOIL))
        stats = compute_field_statistics(raster_factory(SOIL))

        assert [z.avg_ndvi for z in zones] == [0.063] * 4
        assert stats.avg_ndvi == 0.063

    def test_too_small_raster_rejected(self, raster_factory):
        with pytest.raises(ValueError):
            compute_zone_statistics(raster_factory(width=1, height=1))


# ============================================================
# Field Statistics Tests
# ============================================================

class TestFieldStatistics:
    """Tests for strided field-level statistics."""

    def test_uniform_field(self, raster_factory):
        stats = compute_field_statistics(raster_factory(GREEN))

        assert stats.avg_ndvi == 0.729
        # ((0.7288 + 1) / 2) * 100 = 86.44
        assert stats.overall_health == 86

    def test_only_strided_pixels_count(self):
        """Pixels off the stride grid must not affect the averages."""
        pixels = np.empty((25, 25, 3), dtype=np.uint8)
        pixels[:, :] = GREEN
        pixels[::10, ::10] = RED
        raster = RasterBuffer.from_rgb(pixels)

        stats = compute_field_statistics(raster, stride=10)

        assert stats.avg_ndvi == -1.0
        assert stats.overall_health == 0

    def test_stride_one_uses_every_pixel(self, split_raster):
        stats = compute_field_statistics(split_raster, stride=1)

        assert stats.avg_ndvi == round((215 / 295 - 1) / 2, 3)

    def test_invalid_stride(self, raster_factory):
        with pytest.raises(ValueError, match="stride"):
            compute_field_statistics(raster_factory(), stride=0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
