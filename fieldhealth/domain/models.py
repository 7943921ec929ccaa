"""
Domain models for field imagery and zone health data.

These models represent the core domain entities and should be independent
of any infrastructure concerns (HTTP, image codecs, external services).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True, eq=False)
class RasterBuffer:
    """
    Immutable decoded pixel grid.

    ``pixels`` is a read-only ``(height, width, 4)`` uint8 array of RGBA
    values, so ``pixels[y, x]`` is the pixel at flat index ``y * width + x``.
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Raster must be non-empty, got {self.width}x{self.height}")

        pixels = np.asarray(self.pixels, dtype=np.uint8)
        if pixels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Pixel array shape {pixels.shape} does not match "
                f"({self.height}, {self.width}, 4)"
            )

        # Own a private read-only copy so callers cannot mutate it later
        pixels = pixels.copy()
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> "RasterBuffer":
        """Build a raster from an ``(height, width, 3)`` array with opaque alpha."""
        rgb = np.asarray(rgb, dtype=np.uint8)
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise ValueError(f"Expected (height, width, 3) array, got {rgb.shape}")

        height, width = rgb.shape[:2]
        alpha = np.full((height, width, 1), 255, dtype=np.uint8)
        return cls(width=width, height=height, pixels=np.concatenate([rgb, alpha], axis=2))

    @property
    def red(self) -> np.ndarray:
        return self.pixels[:, :, 0]

    @property
    def green(self) -> np.ndarray:
        return self.pixels[:, :, 1]

    @property
    def blue(self) -> np.ndarray:
        return self.pixels[:, :, 2]

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)


@dataclass(frozen=True)
class BandSample:
    """Simulated NIR and derived indices for a single pixel."""
    nir: int
    ndvi: float
    ndwi: float
    vari: float
    exg: float


class CompositeKind(str, Enum):
    """Supported composite view modes."""
    ORIGINAL = "original"
    CIR = "cir"
    NDVI = "ndvi"
    NDWI = "ndwi"
    STRESS = "stress"
    NIR_ENHANCED = "nirEnhanced"


# Kinds produced eagerly by a full analysis
ANALYSIS_COMPOSITE_KINDS = (
    CompositeKind.CIR,
    CompositeKind.NDVI,
    CompositeKind.NDWI,
    CompositeKind.STRESS,
    CompositeKind.NIR_ENHANCED,
)


@dataclass(frozen=True, eq=False)
class CompositeRaster:
    """A rendered view of a raster, same shape as the source."""
    kind: CompositeKind
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class ZoneStatistics(BaseModel):
    """Aggregate index statistics for one grid cell."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    zone_index: int = Field(alias="zoneIndex")
    row_index: int = Field(alias="rowIndex")
    col_index: int = Field(alias="colIndex")
    avg_ndvi: float = Field(alias="avgNDVI", description="Mean NDVI, 3 decimals")
    avg_ndwi: float = Field(alias="avgNDWI", description="Mean NDWI, 3 decimals")
    avg_vari: float = Field(alias="avgVARI", description="Mean VARI, 3 decimals")
    stress_percentage: float = Field(
        alias="stressPercentage", ge=0, le=100,
        description="Share of stressed pixels, 1 decimal"
    )
    health_score: int = Field(alias="healthScore", ge=0, le=100)
    water_stress: bool = Field(alias="waterStress")
    vegetation_stress: bool = Field(alias="vegetationStress")


class Zone(ZoneStatistics):
    """Zone statistics enriched with qualitative health labels."""
    color_signature: str = Field(alias="colorSignature")
    issues: List[str] = Field(default_factory=list)
    irrigation_need: str = Field(alias="irrigationNeed")
    fertilization_need: str = Field(alias="fertilizationNeed")
    priority: str


class GlobalStatistics(BaseModel):
    """Field-level statistics from the strided sample."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    avg_ndvi: float = Field(alias="avgNDVI")
    avg_ndwi: float = Field(alias="avgNDWI")
    overall_health: int = Field(alias="overallHealth", ge=0, le=100)


class EarlyWarning(BaseModel):
    """A computed early warning for one zone."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    severity: str
    location: str
    days_to_visible: str = Field(alias="daysToVisible")
    action: str
    detected_by: str = Field(alias="detectedBy")


class ActionItem(BaseModel):
    """A computed action plan entry."""
    model_config = ConfigDict(populate_by_name=True)

    priority: int
    action: str
    deadline: str
    expected_improvement: str = Field(alias="expectedImprovement")


class QualitativeAssessment(BaseModel):
    """
    Qualitative field assessment supplied by the external collaborator.

    Every field is optional and unknown keys are kept, since the whole
    object is layered over the computed result.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    zones: Optional[List[Any]] = None
    early_warnings: Optional[List[Any]] = Field(default=None, alias="earlyWarnings")
    action_plan: Optional[List[Any]] = Field(default=None, alias="actionPlan")
    health_map: Optional[Any] = Field(default=None, alias="healthMap")

    def to_payload(self) -> Dict[str, Any]:
        """Return only the keys the collaborator actually sent, camelCased."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class FieldAnalysisResult(BaseModel):
    """Computed analysis result, before the external assessment is layered on."""
    model_config = ConfigDict(populate_by_name=True)

    health_map: Dict[str, Any] = Field(alias="healthMap")
    zones: List[Dict[str, Any]]
    global_stats: GlobalStatistics = Field(alias="globalStats")
    spectral_analysis: Dict[str, Any] = Field(alias="spectralAnalysis")
    false_color_composites: Dict[str, str] = Field(
        default_factory=dict, alias="falseColorComposites"
    )
    early_warnings: List[Any] = Field(alias="earlyWarnings")
    resource_application: Dict[str, Any] = Field(alias="resourceApplication")
    action_plan: List[Dict[str, Any]] = Field(alias="actionPlan")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def activity_summary(self) -> Dict[str, Any]:
        """Scalar summary handed to the activity log."""
        return {
            "overallHealth": self.global_stats.overall_health,
            "zonesAnalyzed": len(self.zones),
            "avgNDVI": self.global_stats.avg_ndvi,
        }
