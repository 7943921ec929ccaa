"""
Domain service: False-color composite rendering.

Each view mode is one full-resolution pass over the raster producing a
new RGBA image of the same shape:
- CIR: simulated NIR mapped onto the red channel
- NDVI / NDWI heat maps
- Combined stress map (NDVI, VARI, ExG)
- NIR-enhanced vegetation vigor view
"""
from typing import Callable, Optional
import logging
import numpy as np

from fieldhealth.domain.models import (
    ANALYSIS_COMPOSITE_KINDS,
    CompositeKind,
    CompositeRaster,
    RasterBuffer,
)
from fieldhealth.utils.rule_tables import (
    NDVI_COLORS,
    NDWI_COLORS,
    SOIL_COLOR,
    STRESS_COLORS,
    WATER_COLOR,
    colorize,
)
from fieldhealth.utils.spectral_indices import (
    IndexArrays,
    compute_index_arrays,
    round_half_up_array,
)

logger = logging.getLogger(__name__)


def _with_alpha(rgb: np.ndarray) -> np.ndarray:
    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb.astype(np.uint8), alpha], axis=2)


def stress_score(indices: IndexArrays) -> np.ndarray:
    """
    Combined per-pixel health score in [0, 1] used by the stress map.

    Low NDVI, VARI and ExG together mean high stress.
    """
    return (
        (indices.ndvi + 1) / 2 * 0.5
        + (indices.vari + 1) / 2 * 0.3
        + (indices.exg + 1) / 2 * 0.2
    )


class CompositeRenderer:
    """
    Domain service for rendering composite view modes from a raster.

    Index arrays are computed lazily and cached per raster so that
    rendering several kinds from the same raster does not recompute them.
    """

    def __init__(self, raster: RasterBuffer, indices: Optional[IndexArrays] = None):
        self.raster = raster
        self._indices = indices

    @property
    def indices(self) -> IndexArrays:
        if self._indices is None:
            self._indices = compute_index_arrays(self.raster)
        return self._indices

    def render(self, kind: CompositeKind | str) -> CompositeRaster:
        """
        Render a single view mode.

        Args:
            kind: Composite kind or its string value

        Returns:
            CompositeRaster of the same shape as the source raster

        Raises:
            ValueError: If the kind is not supported
        """
        try:
            kind = CompositeKind(kind)
        except ValueError:
            supported = ", ".join(k.value for k in CompositeKind)
            raise ValueError(f"Unknown composite kind '{kind}'. Supported: {supported}")

        renderers = {
            CompositeKind.ORIGINAL: self._render_original,
            CompositeKind.CIR: self._render_cir,
            CompositeKind.NDVI: self._render_ndvi,
            CompositeKind.NDWI: self._render_ndwi,
            CompositeKind.STRESS: self._render_stress,
            CompositeKind.NIR_ENHANCED: self._render_nir_enhanced,
        }
        pixels = renderers[kind]()
        logger.debug(f"Rendered {kind.value} composite ({self.raster.width}x{self.raster.height})")
        return CompositeRaster(kind=kind, pixels=pixels)

    def _render_original(self) -> np.ndarray:
        return self.raster.pixels.copy()

    def _render_cir(self) -> np.ndarray:
        # CIR: NIR -> R, R -> G, G -> B
        rgb = np.stack(
            [
                self.indices.nir.astype(np.uint8),
                self.raster.red,
                self.raster.green,
            ],
            axis=2,
        )
        return _with_alpha(rgb)

    def _render_ndvi(self) -> np.ndarray:
        return _with_alpha(colorize(NDVI_COLORS, self.indices.ndvi))

    def _render_ndwi(self) -> np.ndarray:
        return _with_alpha(colorize(NDWI_COLORS, self.indices.ndwi))

    def _render_stress(self) -> np.ndarray:
        return _with_alpha(colorize(STRESS_COLORS, stress_score(self.indices)))

    def _render_nir_enhanced(self) -> np.ndarray:
        ndvi = self.indices.ndvi

        # Vegetation scales from red towards yellow with health
        health = np.minimum(1.0, (ndvi + 1) / 2)
        vegetation = np.stack(
            [
                round_half_up_array(255 * health),
                round_half_up_array(100 + 155 * health),
                round_half_up_array(50 * (1 - health)),
            ],
            axis=2,
        )

        is_vegetation = (ndvi > 0.2)[..., np.newaxis]
        is_soil = (ndvi > -0.1)[..., np.newaxis]

        rgb = np.where(
            is_vegetation,
            vegetation,
            np.where(is_soil, np.array(SOIL_COLOR), np.array(WATER_COLOR)),
        )
        return _with_alpha(rgb)


def render_composite(raster: RasterBuffer, kind: CompositeKind | str) -> CompositeRaster:
    """Render one view mode for a raster."""
    return CompositeRenderer(raster).render(kind)


def render_all_composites(
    raster: RasterBuffer,
    indices: Optional[IndexArrays] = None,
    between_passes: Optional[Callable[[], None]] = None,
) -> dict[CompositeKind, CompositeRaster]:
    """
    Render the five analysis composites (every kind except ``original``).

    Args:
        raster: Source raster
        indices: Precomputed index arrays for the raster, if available
        between_passes: Hook invoked before each render pass; may raise to abort

    Returns:
        Mapping of kind to rendered composite
    """
    renderer = CompositeRenderer(raster, indices)
    composites = {}

    for kind in ANALYSIS_COMPOSITE_KINDS:
        if between_passes is not None:
            between_passes()
        composites[kind] = renderer.render(kind)

    return composites
