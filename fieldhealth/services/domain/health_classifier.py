"""
Domain service: Qualitative health classification of zones.

Derives color signatures, issue lists, irrigation and fertilization needs
and a priority tier from each zone's aggregate statistics, plus the
field-wide interpretation helpers used in the spectral analysis summary.

All threshold rules are ordered tables evaluated top-down.
"""
from typing import Sequence
import logging

from fieldhealth.domain.models import Zone, ZoneStatistics
from fieldhealth.utils.rule_tables import RuleTable
from fieldhealth.utils.spectral_indices import round_half_up

logger = logging.getLogger(__name__)

CRITICAL = "Critical"
HIGH = "High"
MEDIUM = "Medium"
LOW = "Low"

ANOMALY_NDVI_GAP = 0.15
HEALTHY_CHLOROPHYLL_NDVI = 0.4
CHLOROPHYLL_DEFICIENCY_NDVI = 0.25


COLOR_SIGNATURE_RULES: RuleTable[str] = RuleTable(
    name="color_signature",
    rules=(
        (lambda ndvi, ndwi: ndvi > 0.5 and ndwi > 0,
         "Bright red in CIR - Dense healthy vegetation"),
        (lambda ndvi, ndwi: ndvi > 0.3 and ndwi > -0.1,
         "Pink-red in CIR - Moderate vegetation"),
        (lambda ndvi, ndwi: ndvi > 0.1 and ndwi < -0.1,
         "Pale pink in CIR - Stressed vegetation"),
        (lambda ndvi, ndwi: ndvi < 0.1,
         "Brown/tan in CIR - Sparse or stressed vegetation"),
    ),
    default="Variable - Mixed vegetation patterns",
)

IRRIGATION_RULES: RuleTable[str] = RuleTable(
    name="irrigation_need",
    rules=(
        (lambda ndwi: ndwi < -0.3, "Critical - Urgent"),
        (lambda ndwi: ndwi < -0.1, "High - Immediate"),
        (lambda ndwi: ndwi < 0.1, "Moderate - Scheduled"),
    ),
    default="Low - Monitor",
)

FERTILIZATION_RULES: RuleTable[str] = RuleTable(
    name="fertilization_need",
    rules=(
        (lambda ndvi: ndvi < 0.2, "High - Nitrogen deficiency likely"),
        (lambda ndvi: ndvi < 0.35, "Moderate - Consider supplementation"),
    ),
    default="Low - Adequate",
)

PRIORITY_RULES: RuleTable[str] = RuleTable(
    name="priority",
    rules=(
        (lambda zone: zone.health_score < 40 or zone.water_stress, CRITICAL),
        (lambda zone: zone.health_score < 60 or zone.vegetation_stress, HIGH),
        (lambda zone: zone.health_score < 75, MEDIUM),
    ),
    default=LOW,
)

NDVI_INTERPRETATION_RULES: RuleTable[str] = RuleTable(
    name="ndvi_interpretation",
    rules=(
        (lambda v: v > 0.6, "Excellent vegetation vigor - Dense, healthy canopy detected"),
        (lambda v: v > 0.4, "Good vegetation health - Active photosynthesis"),
        (lambda v: v > 0.2, "Moderate vegetation - Some stress indicators present"),
        (lambda v: v > 0, "Poor vegetation - Significant stress or sparse coverage"),
    ),
    default="Very low/no vegetation - Bare soil or severe damage",
)

NDWI_INTERPRETATION_RULES: RuleTable[str] = RuleTable(
    name="ndwi_interpretation",
    rules=(
        (lambda v: v > 0.2, "High water content - Well-hydrated vegetation"),
        (lambda v: v > 0, "Adequate moisture - No immediate water stress"),
        (lambda v: v > -0.2, "Mild water stress - Monitor and prepare irrigation"),
    ),
    default="Severe water stress - Immediate irrigation recommended",
)

CHLOROPHYLL_RULES: RuleTable[str] = RuleTable(
    name="chlorophyll",
    rules=(
        (lambda v: v > 0.5, "High"),
        (lambda v: v > 0.3, "Moderate"),
        (lambda v: v > 0.1, "Low"),
    ),
    default="Very Low",
)

STATUS_RULES: RuleTable[str] = RuleTable(
    name="status",
    rules=(
        (lambda score: score >= 80, "Excellent Health"),
        (lambda score: score >= 60, "Good with Minor Issues"),
        (lambda score: score >= 40, "Moderate Stress Detected"),
        (lambda score: score >= 20, "Poor - Action Required"),
    ),
    default="Critical - Immediate Action",
)


# ============================================================
# Per-zone classification
# ============================================================

def color_signature(zone: ZoneStatistics) -> str:
    """Expected appearance of the zone in a CIR composite."""
    return COLOR_SIGNATURE_RULES.evaluate(zone.avg_ndvi, zone.avg_ndwi)


def zone_issues(zone: ZoneStatistics) -> list[str]:
    """
    List every issue that applies to a zone.

    Checks are independent, so several issues can be reported together.
    """
    issues = []

    if zone.water_stress:
        issues.append("Water stress detected (low NDWI)")
    if zone.vegetation_stress:
        issues.append("Vegetation stress detected (low NDVI)")
    if zone.avg_ndvi < 0.2:
        issues.append("Very low chlorophyll activity")
    if zone.avg_ndwi < -0.3:
        issues.append("Severe water deficiency")
    if zone.stress_percentage > 40:
        issues.append(f"{zone.stress_percentage:.1f}% of zone showing stress")

    return issues


def irrigation_need(zone: ZoneStatistics) -> str:
    return IRRIGATION_RULES.evaluate(zone.avg_ndwi)


def fertilization_need(zone: ZoneStatistics) -> str:
    return FERTILIZATION_RULES.evaluate(zone.avg_ndvi)


def zone_priority(zone: ZoneStatistics) -> str:
    """
    Priority tier of a zone.

    The health score and stress flags are checked together per tier, most
    severe tier first, so a score below 40 is Critical whatever the flags.
    """
    return PRIORITY_RULES.evaluate(zone)


def classify_zone(zone: ZoneStatistics) -> Zone:
    """
    Enrich zone statistics with qualitative labels.

    Args:
        zone: Aggregate zone statistics

    Returns:
        Zone carrying the statistics plus signature, issues, needs and priority
    """
    return Zone(
        **zone.model_dump(),
        color_signature=color_signature(zone),
        issues=zone_issues(zone),
        irrigation_need=irrigation_need(zone),
        fertilization_need=fertilization_need(zone),
        priority=zone_priority(zone),
    )


def classify_zones(zones: Sequence[ZoneStatistics]) -> list[Zone]:
    classified = [classify_zone(zone) for zone in zones]

    if classified:
        counts = {}
        for zone in classified:
            counts[zone.priority] = counts.get(zone.priority, 0) + 1
        logger.info(f"Classified {len(classified)} zones by priority: {counts}")

    return classified


# ============================================================
# Field-wide interpretation
# ============================================================

def find_ndvi_anomalies(zones: Sequence[ZoneStatistics]) -> list[str]:
    """
    Zones whose NDVI falls more than 0.15 below the mean zone NDVI.

    Args:
        zones: Zone statistics

    Returns:
        One message per anomalous zone stating the gap as a percentage
    """
    if not zones:
        return []

    mean_ndvi = sum(zone.avg_ndvi for zone in zones) / len(zones)
    anomalies = []

    for i, zone in enumerate(zones):
        gap = mean_ndvi - zone.avg_ndvi
        if zone.avg_ndvi < mean_ndvi - ANOMALY_NDVI_GAP:
            anomalies.append(f"Zone {i + 1}: NDVI {gap * 100:.0f}% below field average")

    return anomalies


def find_water_stress_areas(zones: Sequence[ZoneStatistics]) -> list[str]:
    return [
        f"Zone {zone.zone_index + 1}: NDWI {zone.avg_ndwi:.3f} indicates water deficit"
        for zone in zones
        if zone.water_stress
    ]


def find_chlorophyll_deficiency(zones: Sequence[ZoneStatistics]) -> list[str]:
    return [
        f"Zone {zone.zone_index + 1}"
        for zone in zones
        if zone.avg_ndvi < CHLOROPHYLL_DEFICIENCY_NDVI
    ]


def chlorophyll_distribution(zones: Sequence[ZoneStatistics]) -> str:
    """Share of zones with healthy chlorophyll levels, as a sentence."""
    if not zones:
        return "0% of field shows healthy chlorophyll levels"

    healthy = sum(1 for zone in zones if zone.avg_ndvi > HEALTHY_CHLOROPHYLL_NDVI)
    percentage = round_half_up(healthy / len(zones) * 100)
    return f"{percentage}% of field shows healthy chlorophyll levels"


def interpret_ndvi(ndvi: float) -> str:
    return NDVI_INTERPRETATION_RULES.evaluate(ndvi)


def interpret_ndwi(ndwi: float) -> str:
    return NDWI_INTERPRETATION_RULES.evaluate(ndwi)


def estimate_chlorophyll(ndvi: float) -> str:
    return CHLOROPHYLL_RULES.evaluate(ndvi)


def status_text(score: float) -> str:
    """Headline status for a 0-100 field health score."""
    return STATUS_RULES.evaluate(score)
