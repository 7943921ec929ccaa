"""
Unit tests for spectral index helpers.

Tests cover:
- Simulated NIR clamping and rounding
- Index ranges and zero-denominator handling
- Scalar and vectorised results agreeing pixel for pixel
"""
import pytest
import numpy as np

from fieldhealth.domain.models import RasterBuffer
from fieldhealth.utils.spectral_indices import (
    band_sample,
    calculate_exg,
    calculate_ndvi,
    calculate_ndwi,
    calculate_vari,
    compute_index_arrays,
    round_half_up,
    round_to,
    simulate_nir,
)


# ============================================================
# Rounding Tests
# ============================================================

class TestRoundHalfUp:
    """Tests for round-half-up rounding."""

    def test_ties_round_up(self):
        """Halves should always round towards positive infinity."""
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(-0.5) == 0

    def test_non_ties(self):
        assert round_half_up(1.49) == 1
        assert round_half_up(-1.51) == -2

    def test_decimal_ties_round_away_from_zero(self):
        """Exact binary ties such as 0.0625 must not round to even."""
        assert round_to(0.0625, 3) == 0.063
        assert round_to(-0.0625, 3) == -0.063
        assert round_to(12.25, 1) == 12.3

    def test_decimal_non_ties(self):
        assert round_to(0.72881, 3) == 0.729
        assert round_to(-0.22891, 3) == -0.229
        assert round_to(-0.0001, 3) == 0.0


# ============================================================
# Simulated NIR Tests
# ============================================================

class TestSimulateNIR:
    """Tests for NIR simulation from visible channels."""

    def test_vegetation_pixel_saturates(self):
        """Strong green should saturate the NIR estimate at 255."""
        assert simulate_nir(40, 160, 40) == 255

    def test_rounds_half_up(self):
        """0 * 1.4 + 255 * 0.3 - 0 = 76.5 rounds to 77."""
        assert simulate_nir(0, 0, 0) == 77

    def test_clamped_at_zero(self):
        """Red with no green or blue gives a negative-free estimate."""
        assert simulate_nir(255, 0, 0) == 0
        assert simulate_nir(255, 0, 255) == 0

    def test_range_over_channel_grid(self):
        """NIR should stay within [0, 255] for any channel combination."""
        for r in range(0, 256, 51):
            for g in range(0, 256, 51):
                for b in range(0, 256, 51):
                    assert 0 <= simulate_nir(r, g, b) <= 255


# ============================================================
# Index Tests
# ============================================================

class TestIndices:
    """Tests for per-pixel vegetation and water indices."""

    def test_vegetation_pixel(self):
        """Known values for a green vegetation pixel."""
        sample = band_sample(40, 160, 40)

        assert sample.nir == 255
        assert sample.ndvi == pytest.approx(215 / 295)
        assert sample.ndwi == pytest.approx(-95 / 415)
        assert sample.vari == pytest.approx(0.75)
        assert sample.exg == pytest.approx(1.0)

    def test_white_pixel_is_neutral(self):
        """White has NIR 255, so NDVI, NDWI, VARI and ExG are all 0."""
        sample = band_sample(255, 255, 255)

        assert sample.ndvi == 0
        assert sample.ndwi == 0
        assert sample.vari == 0
        assert sample.exg == 0

    def test_zero_denominators_give_zero(self):
        """Pure red has NIR 0 and green 0, so NDWI is 0 rather than NaN."""
        assert calculate_ndwi(255, 0, 0) == 0
        assert calculate_ndvi(255, 0, 0) == -1
        # Black: g + r - b == 0
        assert calculate_vari(0, 0, 0) == 0
        assert calculate_exg(0, 0, 0) == 0

    def test_vari_is_clamped(self):
        """A tiny VARI denominator must not escape [-1, 1]."""
        # (120 - 100) / (120 + 100 - 215) = 4
        assert calculate_vari(100, 120, 215) == 1.0
        assert calculate_vari(120, 100, 215) == -1.0

    def test_normalized_indices_in_range(self):
        """NDVI, NDWI and VARI stay in [-1, 1]; ExG stays in [-1, 2]."""
        for r in range(0, 256, 15):
            for g in range(0, 256, 15):
                for b in range(0, 256, 15):
                    sample = band_sample(r, g, b)
                    assert -1 <= sample.ndvi <= 1
                    assert -1 <= sample.ndwi <= 1
                    assert -1 <= sample.vari <= 1
                    assert -1 <= sample.exg <= 2


# ============================================================
# Vectorised Index Tests
# ============================================================

class TestIndexArrays:
    """Tests for whole-raster index computation."""

    def test_matches_scalar_functions(self, mixed_raster):
        """Every pixel of the arrays should equal the scalar result."""
        indices = compute_index_arrays(mixed_raster)

        for y in range(0, mixed_raster.height, 4):
            for x in range(0, mixed_raster.width, 4):
                r, g, b, _ = mixed_raster.pixel(x, y)
                sample = band_sample(r, g, b)

                assert indices.nir[y, x] == sample.nir
                assert indices.ndvi[y, x] == pytest.approx(sample.ndvi)
                assert indices.ndwi[y, x] == pytest.approx(sample.ndwi)
                assert indices.vari[y, x] == pytest.approx(sample.vari)
                assert indices.exg[y, x] == pytest.approx(sample.exg)

    def test_shapes(self, mixed_raster):
        indices = compute_index_arrays(mixed_raster)

        for array in indices:
            assert array.shape == (mixed_raster.height, mixed_raster.width)

    def test_no_nan_for_degenerate_pixels(self):
        """Black and pure red pixels hit zero denominators without NaN."""
        raster = RasterBuffer.from_rgb(np.array([[[0, 0, 0], [255, 0, 0]]], dtype=np.uint8))
        indices = compute_index_arrays(raster)

        for array in indices:
            assert not np.isnan(array).any()


# ============================================================
# Raster Buffer Tests
# ============================================================

class TestRasterBuffer:
    """Tests for the immutable raster."""

    def test_pixels_are_read_only(self, raster_factory):
        raster = raster_factory()

        with pytest.raises(ValueError):
            raster.pixels[0, 0, 0] = 1

    def test_source_array_is_copied(self):
        """Mutating the caller's array should not affect the raster."""
        source = np.zeros((2, 2, 4), dtype=np.uint8)
        raster = RasterBuffer(width=2, height=2, pixels=source)

        source[0, 0] = 255

        assert raster.pixel(0, 0) == (0, 0, 0, 0)

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError, match="does not match"):
            RasterBuffer(width=3, height=2, pixels=np.zeros((2, 2, 4), dtype=np.uint8))

    def test_empty_rejected(self):
        with pytest.raises(ValueError, match="non-empty"):
            RasterBuffer(width=0, height=0, pixels=np.zeros((0, 0, 4), dtype=np.uint8))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
