"""
Domain service: Full multi-spectral analysis of one raster.

Runs every pass the analysis needs over a single immutable raster:
1. Simulates NIR and computes the per-pixel index arrays
2. Renders the five false-color composites
3. Aggregates full-resolution zone statistics
4. Samples field-level statistics every N pixels

Cancellation is only observed between passes, never inside one.
"""
from dataclasses import dataclass, field
from typing import Callable, Optional
import logging

from fieldhealth.config import settings
from fieldhealth.domain.errors import AnalysisCancelledError, AnalysisFailedError
from fieldhealth.domain.models import (
    CompositeKind,
    CompositeRaster,
    GlobalStatistics,
    RasterBuffer,
    ZoneStatistics,
)
from fieldhealth.services.domain.composite_renderer import render_all_composites
from fieldhealth.services.domain.zonal_aggregator import (
    compute_field_statistics,
    compute_zone_statistics,
    grid_size_for,
)
from fieldhealth.utils.spectral_indices import compute_index_arrays

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Configuration for the spectral analysis passes."""

    zone_count: int = 4
    """Requested zone count; up to 4 gives a 2x2 grid, more gives 3x3"""

    sample_stride: int = 10
    """Pixel stride for the field-level statistics sample"""

    render_composites: bool = True
    """Whether to render the false-color composites"""


@dataclass
class SpectralAnalysis:
    """Numeric output of one analysis run."""
    zones: list[ZoneStatistics]
    global_stats: GlobalStatistics
    grid_size: int
    composites: dict[CompositeKind, CompositeRaster] = field(default_factory=dict)


class SpectralAnalyzer:
    """
    Domain service running the full analysis over a raster.

    Holds no per-raster state, so one analyzer can serve concurrent
    analyses of different rasters.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        """
        Initialize the analyzer.

        Args:
            config: Analysis configuration; defaults come from settings
        """
        if config:
            self.config = config
        else:
            self.config = AnalysisConfig(
                zone_count=settings.default_zone_count,
                sample_stride=settings.field_sample_stride,
                render_composites=settings.include_composites_default,
            )

        logger.debug(f"Initialized SpectralAnalyzer with config: "
                     f"zones={self.config.zone_count}, stride={self.config.sample_stride}, "
                     f"composites={self.config.render_composites}")

    def analyze(
        self,
        raster: RasterBuffer,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SpectralAnalysis:
        """
        Run every analysis pass over the raster.

        Args:
            raster: Decoded source raster
            should_cancel: Polled between passes; returning True aborts the run

        Returns:
            SpectralAnalysis with zones, field statistics and composites

        Raises:
            AnalysisCancelledError: If cancellation was requested between passes
            AnalysisFailedError: If the raster cannot be analysed
        """
        def checkpoint():
            if should_cancel is not None and should_cancel():
                logger.info("Analysis superseded; abandoning remaining passes")
                raise AnalysisCancelledError("Analysis was superseded by a newer request")

        grid_size = grid_size_for(self.config.zone_count)
        logger.info(f"Starting spectral analysis of {raster.width}x{raster.height} raster "
                    f"({grid_size}x{grid_size} zones)")

        checkpoint()
        indices = compute_index_arrays(raster)

        composites = {}
        if self.config.render_composites:
            composites = render_all_composites(raster, indices, between_passes=checkpoint)
            logger.info(f"Rendered {len(composites)} composites")

        checkpoint()
        try:
            zones = compute_zone_statistics(raster, self.config.zone_count, indices)
            checkpoint()
            global_stats = compute_field_statistics(raster, self.config.sample_stride, indices)
        except ValueError as e:
            raise AnalysisFailedError(str(e))

        checkpoint()
        logger.info(f"Field statistics: avgNDVI={global_stats.avg_ndvi}, "
                    f"avgNDWI={global_stats.avg_ndwi}, overallHealth={global_stats.overall_health}")

        return SpectralAnalysis(
            zones=zones,
            global_stats=global_stats,
            grid_size=grid_size,
            composites=composites,
        )
