"""
Spectral index helper functions.

Provides utilities for:
- Simulating a near-infrared band from visible RGB channels
- Per-pixel vegetation and water indices (NDVI, NDWI, VARI, ExG)
- Vectorised counterparts that evaluate a whole raster in one pass

The scalar and array versions evaluate the same arithmetic in the same
order, so every pixel of an array result equals the scalar result.
"""
from typing import NamedTuple
import math
import numpy as np
import logging

from fieldhealth.domain.models import BandSample, RasterBuffer

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with ties going up.

    Args:
        value: Value to round

    Returns:
        Rounded integer
    """
    return int(math.floor(value + 0.5))


def round_to(value: float, digits: int) -> float:
    """
    Round to a number of decimal places with ties going away from zero.

    Matches fixed-point formatting, so 0.0625 becomes 0.063 and -0.0625
    becomes -0.063.

    Args:
        value: Value to round
        digits: Decimal places to keep

    Returns:
        Rounded value
    """
    scale = 10 ** digits
    rounded = math.floor(abs(value) * scale + 0.5) / scale
    return -rounded if value < 0 and rounded else rounded


def round_half_up_array(values: np.ndarray) -> np.ndarray:
    """Vectorised :func:`round_half_up`, returned as float64."""
    return np.floor(values + 0.5)


def _safe_ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


def _safe_ratio_array(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    return np.divide(
        numerator,
        denominator,
        out=np.zeros_like(numerator, dtype=np.float64),
        where=denominator != 0,
    )


# ============================================================
# Scalar (per-pixel) functions
# ============================================================

def simulate_nir(r: int, g: int, b: int) -> int:
    """
    Approximate near-infrared reflectance from visible channels.

    Healthy vegetation reflects strongly in green and absorbs red, so the
    estimate boosts green and the inverse of red.

    Args:
        r: Red channel (0-255)
        g: Green channel (0-255)
        b: Blue channel (0-255)

    Returns:
        Simulated NIR value clamped to [0, 255]
    """
    r, g, b = float(r), float(g), float(b)
    nir = min(255.0, g * 1.4 + (255.0 - r) * 0.3 - b * 0.2)
    return max(0, round_half_up(nir))


def calculate_ndvi(r: int, g: int, b: int) -> float:
    """
    Normalized Difference Vegetation Index: (NIR - Red) / (NIR + Red).

    Returns 0 when the denominator is 0.
    """
    nir = simulate_nir(r, g, b)
    return _safe_ratio(float(nir) - float(r), float(nir) + float(r))


def calculate_ndwi(r: int, g: int, b: int) -> float:
    """
    Normalized Difference Water Index: (Green - NIR) / (Green + NIR).

    Returns 0 when the denominator is 0.
    """
    nir = simulate_nir(r, g, b)
    return _safe_ratio(float(g) - float(nir), float(g) + float(nir))


def calculate_vari(r: int, g: int, b: int) -> float:
    """
    Visible Atmospherically Resistant Index: (Green - Red) / (Green + Red - Blue).

    Returns 0 when the denominator is 0. The ratio is clamped to [-1, 1]
    because a small denominator can otherwise push it far outside.
    """
    vari = _safe_ratio(float(g) - float(r), float(g) + float(r) - float(b))
    return min(1.0, max(-1.0, vari))


def calculate_exg(r: int, g: int, b: int) -> float:
    """
    Excess Green Index on sum-normalised channels: 2*gn - rn - bn.

    Returns 0 for a black pixel.
    """
    r, g, b = float(r), float(g), float(b)
    total = r + g + b
    if total == 0:
        return 0.0
    rn = r / total
    gn = g / total
    bn = b / total
    return 2 * gn - rn - bn


def band_sample(r: int, g: int, b: int) -> BandSample:
    """
    Compute the simulated NIR value and all indices for one pixel.

    Args:
        r: Red channel (0-255)
        g: Green channel (0-255)
        b: Blue channel (0-255)

    Returns:
        BandSample with nir, ndvi, ndwi, vari and exg
    """
    return BandSample(
        nir=simulate_nir(r, g, b),
        ndvi=calculate_ndvi(r, g, b),
        ndwi=calculate_ndwi(r, g, b),
        vari=calculate_vari(r, g, b),
        exg=calculate_exg(r, g, b),
    )


# ============================================================
# Vectorised (whole raster) functions
# ============================================================

class IndexArrays(NamedTuple):
    """Per-pixel index arrays for a raster, each of shape (height, width)."""
    nir: np.ndarray
    ndvi: np.ndarray
    ndwi: np.ndarray
    vari: np.ndarray
    exg: np.ndarray


def _channels(raster: RasterBuffer) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    return (
        raster.red.astype(np.float64),
        raster.green.astype(np.float64),
        raster.blue.astype(np.float64),
    )


def simulate_nir_array(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Vectorised :func:`simulate_nir` over float64 channel arrays."""
    nir = np.minimum(255.0, g * 1.4 + (255.0 - r) * 0.3 - b * 0.2)
    return np.maximum(0.0, round_half_up_array(nir))


def ndvi_array(r: np.ndarray, nir: np.ndarray) -> np.ndarray:
    return _safe_ratio_array(nir - r, nir + r)


def ndwi_array(g: np.ndarray, nir: np.ndarray) -> np.ndarray:
    return _safe_ratio_array(g - nir, g + nir)


def vari_array(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.clip(_safe_ratio_array(g - r, g + r - b), -1.0, 1.0)


def exg_array(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    total = r + g + b
    rn = _safe_ratio_array(r, total)
    gn = _safe_ratio_array(g, total)
    bn = _safe_ratio_array(b, total)
    # Black pixels already give 2*0 - 0 - 0 = 0
    return 2 * gn - rn - bn


def compute_index_arrays(raster: RasterBuffer) -> IndexArrays:
    """
    Compute simulated NIR and every index for each pixel of a raster.

    Args:
        raster: Source raster

    Returns:
        IndexArrays with float64 arrays of shape (height, width)
    """
    r, g, b = _channels(raster)
    nir = simulate_nir_array(r, g, b)

    logger.debug(f"Computed index arrays for {raster.width}x{raster.height} raster")

    return IndexArrays(
        nir=nir,
        ndvi=ndvi_array(r, nir),
        ndwi=ndwi_array(g, nir),
        vari=vari_array(r, g, b),
        exg=exg_array(r, g, b),
    )
