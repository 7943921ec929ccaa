"""
Domain service: Zonal aggregation of per-pixel indices.

Partitions a raster into a 2x2 or 3x3 grid and aggregates full-resolution
NDVI, NDWI and VARI into per-zone statistics and a 0-100 health score.
Also computes the field-level statistics from a strided pixel sample.
"""
from typing import NamedTuple, Optional
import logging
import numpy as np
from scipy import ndimage

from fieldhealth.domain.models import GlobalStatistics, RasterBuffer, ZoneStatistics
from fieldhealth.utils.spectral_indices import (
    IndexArrays,
    compute_index_arrays,
    round_half_up,
    round_to,
)

logger = logging.getLogger(__name__)

# Health score weights; they sum to 100
NDVI_WEIGHT = 60
NDWI_WEIGHT = 25
VARI_WEIGHT = 15

STRESS_NDVI_THRESHOLD = 0.3
STRESS_NDWI_THRESHOLD = -0.2
WATER_STRESS_NDWI = -0.1
VEGETATION_STRESS_NDVI = 0.3


class ZoneBounds(NamedTuple):
    """Pixel bounds of one grid cell; end coordinates are exclusive."""
    row: int
    col: int
    x_start: int
    y_start: int
    x_end: int
    y_end: int


def grid_size_for(zone_count: int) -> int:
    """
    Grid size for a requested zone count: 2x2 up to 4 zones, else 3x3.

    Args:
        zone_count: Requested number of zones

    Returns:
        2 or 3
    """
    return 2 if zone_count <= 4 else 3


def zone_bounds(width: int, height: int, grid_size: int) -> list[ZoneBounds]:
    """
    Partition a raster into grid cells in row-major order.

    Cells are ``floor(dimension / grid_size)`` pixels; the last row and
    column extend to the raster edge to absorb any remainder.

    Raises:
        ValueError: If the raster is smaller than the grid
    """
    cell_width = width // grid_size
    cell_height = height // grid_size

    if cell_width == 0 or cell_height == 0:
        raise ValueError(
            f"Raster {width}x{height} is too small for a {grid_size}x{grid_size} zone grid"
        )

    bounds = []
    for row in range(grid_size):
        for col in range(grid_size):
            x_start = col * cell_width
            y_start = row * cell_height
            x_end = width if col == grid_size - 1 else x_start + cell_width
            y_end = height if row == grid_size - 1 else y_start + cell_height
            bounds.append(ZoneBounds(row, col, x_start, y_start, x_end, y_end))

    return bounds


def zone_label_image(width: int, height: int, grid_size: int) -> np.ndarray:
    """
    Label each pixel with its 1-based zone number.

    Args:
        width: Raster width
        height: Raster height
        grid_size: 2 or 3

    Returns:
        int32 array of shape (height, width)
    """
    labels = np.zeros((height, width), dtype=np.int32)
    for index, cell in enumerate(zone_bounds(width, height, grid_size)):
        labels[cell.y_start:cell.y_end, cell.x_start:cell.x_end] = index + 1
    return labels


def health_score(avg_ndvi: float, avg_ndwi: float, avg_vari: float) -> int:
    """
    Weighted 0-100 zone health score.

    Args:
        avg_ndvi: Mean NDVI of the zone
        avg_ndwi: Mean NDWI of the zone
        avg_vari: Mean VARI of the zone

    Returns:
        Integer score clamped to [0, 100]
    """
    score = (
        (avg_ndvi + 1) / 2 * NDVI_WEIGHT
        + (avg_ndwi + 1) / 2 * NDWI_WEIGHT
        + (avg_vari + 1) / 2 * VARI_WEIGHT
    )
    return round_half_up(max(0.0, min(100.0, score)))


def compute_zone_statistics(
    raster: RasterBuffer,
    zone_count: int = 4,
    indices: Optional[IndexArrays] = None,
) -> list[ZoneStatistics]:
    """
    Aggregate per-pixel indices into per-zone statistics.

    Every pixel contributes (no sampling). A pixel counts as stressed when
    NDVI < 0.3 or NDWI < -0.2.

    Args:
        raster: Source raster
        zone_count: Requested zone count (selects a 2x2 or 3x3 grid)
        indices: Precomputed index arrays for the raster, if available

    Returns:
        ZoneStatistics in row-major order
    """
    if indices is None:
        indices = compute_index_arrays(raster)

    grid_size = grid_size_for(zone_count)
    labels = zone_label_image(raster.width, raster.height, grid_size)
    label_ids = np.arange(1, grid_size * grid_size + 1)

    stressed = (indices.ndvi < STRESS_NDVI_THRESHOLD) | (indices.ndwi < STRESS_NDWI_THRESHOLD)

    pixel_counts = ndimage.sum_labels(np.ones_like(indices.ndvi), labels, label_ids)
    ndvi_sums = ndimage.sum_labels(indices.ndvi, labels, label_ids)
    ndwi_sums = ndimage.sum_labels(indices.ndwi, labels, label_ids)
    vari_sums = ndimage.sum_labels(indices.vari, labels, label_ids)
    stressed_counts = ndimage.sum_labels(stressed.astype(np.float64), labels, label_ids)

    zones = []
    for i in range(grid_size * grid_size):
        count = float(pixel_counts[i])
        avg_ndvi = float(ndvi_sums[i]) / count
        avg_ndwi = float(ndwi_sums[i]) / count
        avg_vari = float(vari_sums[i]) / count
        stress_percentage = float(stressed_counts[i]) / count * 100

        zone = ZoneStatistics(
            zone_index=i,
            row_index=i // grid_size,
            col_index=i % grid_size,
            avg_ndvi=round_to(avg_ndvi, 3),
            avg_ndwi=round_to(avg_ndwi, 3),
            avg_vari=round_to(avg_vari, 3),
            stress_percentage=round_to(min(100.0, max(0.0, stress_percentage)), 1),
            health_score=health_score(avg_ndvi, avg_ndwi, avg_vari),
            water_stress=avg_ndwi < WATER_STRESS_NDWI,
            vegetation_stress=avg_ndvi < VEGETATION_STRESS_NDVI,
        )
        zones.append(zone)

        logger.debug(
            f"Zone {i + 1}: ndvi={zone.avg_ndvi:.3f} ndwi={zone.avg_ndwi:.3f} "
            f"vari={zone.avg_vari:.3f} stress={zone.stress_percentage}% "
            f"score={zone.health_score}"
        )

    return zones


def compute_field_statistics(
    raster: RasterBuffer,
    stride: int = 10,
    indices: Optional[IndexArrays] = None,
) -> GlobalStatistics:
    """
    Field-level statistics from pixels sampled every ``stride`` pixels.

    ``overall_health`` rescales the sampled NDVI alone to 0-100, unlike the
    zone health score, which blends three indices.

    Args:
        raster: Source raster
        stride: Sampling step in both dimensions
        indices: Precomputed index arrays for the raster, if available

    Returns:
        GlobalStatistics
    """
    if stride < 1:
        raise ValueError(f"Sample stride must be >= 1, got {stride}")

    if indices is None:
        indices = compute_index_arrays(raster)

    sampled_ndvi = indices.ndvi[::stride, ::stride]
    sampled_ndwi = indices.ndwi[::stride, ::stride]

    avg_ndvi = float(sampled_ndvi.mean())
    avg_ndwi = float(sampled_ndwi.mean())

    logger.debug(f"Field statistics from {sampled_ndvi.size} sampled pixels (stride {stride})")

    return GlobalStatistics(
        avg_ndvi=round_to(avg_ndvi, 3),
        avg_ndwi=round_to(avg_ndwi, 3),
        overall_health=round_half_up(((avg_ndvi + 1) / 2) * 100),
    )
