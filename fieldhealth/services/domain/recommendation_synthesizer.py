"""
Domain service: Recommendation synthesis and assessment merging.

Turns classified zones and field statistics into early warnings, a
resource-application plan and a prioritized action plan, and layers an
optional external qualitative assessment over the computed result.

Merge precedence:
- Per zone: the computed record is built first and the external zone at
  the same position is layered on top; the external value wins per key.
- Top level: the computed result is built first and every external
  top-level key replaces the computed one, except ``zones``, which always
  keeps the merged per-zone records.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

from fieldhealth.domain.models import (
    ActionItem,
    EarlyWarning,
    FieldAnalysisResult,
    GlobalStatistics,
    QualitativeAssessment,
    Zone,
    ZoneStatistics,
)
from fieldhealth.services.domain.health_classifier import (
    CRITICAL,
    HIGH,
    chlorophyll_distribution,
    estimate_chlorophyll,
    find_chlorophyll_deficiency,
    find_ndvi_anomalies,
    find_water_stress_areas,
    interpret_ndvi,
    interpret_ndwi,
    status_text,
)
from fieldhealth.utils.spectral_indices import round_half_up

logger = logging.getLogger(__name__)

ZONE_NAMES = ("NW (Z1)", "NE (Z2)", "SW (Z3)", "SE (Z4)")

# Top-level keys the external assessment may never replace
COMPUTED_ONLY_KEYS = frozenset({"zones"})

DEFAULT_FIELD_SIZE = "Analyzed"
DEFAULT_CROP_TYPE = "Detected from imagery"
DEFAULT_GROWTH_STAGE = "Vegetative"
DEFAULT_ANALYSIS_CONFIDENCE = 85

WATER_WARNING_STRESS_PERCENTAGE = 30
SEVERE_WATER_NDWI = -0.3
ACTION_MATCH_PREFIX = 20


# ============================================================
# Zone records
# ============================================================

def zone_id(index: int) -> str:
    return f"Z{index + 1}"


def zone_name(index: int) -> str:
    """Compass label for the first four zones, ``Zone N`` beyond that."""
    if index < len(ZONE_NAMES):
        return ZONE_NAMES[index]
    return f"Zone {index + 1}"


def build_zone_record(zone: Zone) -> Dict[str, Any]:
    """
    Flatten a classified zone into the record shape shared with the
    external assessment.
    """
    return {
        "id": zone_id(zone.zone_index),
        "name": zone_name(zone.zone_index),
        "rowIndex": zone.row_index,
        "colIndex": zone.col_index,
        "healthScore": zone.health_score,
        "ndvi": zone.avg_ndvi,
        "ndwi": zone.avg_ndwi,
        "vari": zone.avg_vari,
        "stressPercentage": zone.stress_percentage,
        "waterStress": zone.water_stress,
        "vegetationStress": zone.vegetation_stress,
        "colorSignature": zone.color_signature,
        "issues": list(zone.issues),
        "irrigationNeed": zone.irrigation_need,
        "fertilizationNeed": zone.fertilization_need,
        "priority": zone.priority,
    }


def merge_zone_records(
    zones: Sequence[Zone],
    external_zones: Optional[Sequence[Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Build computed zone records and layer external zones over them by position.

    Args:
        zones: Classified zones in row-major order
        external_zones: External zone objects, matched by index

    Returns:
        One merged record per computed zone
    """
    external_zones = external_zones or []
    records = []

    for i, zone in enumerate(zones):
        record = build_zone_record(zone)
        external = external_zones[i] if i < len(external_zones) else None
        if isinstance(external, Mapping):
            record.update(external)
        records.append(record)

    return records


# ============================================================
# Early warnings
# ============================================================

def generate_early_warnings(
    zones: Sequence[ZoneStatistics],
    external_warnings: Optional[Sequence[Any]] = None,
) -> List[Any]:
    """
    External warnings first, then computed warnings per zone in index order.

    A zone raises a water-stress warning when it is water stressed with
    more than 30% stressed pixels; otherwise a vegetation-stressed zone
    without water stress raises a nutrient-deficiency warning.
    """
    warnings: List[Any] = list(external_warnings or [])

    for zone in zones:
        location = f"Zone {zone.zone_index + 1}"

        if zone.water_stress and zone.stress_percentage > WATER_WARNING_STRESS_PERCENTAGE:
            severity = CRITICAL if zone.avg_ndwi < SEVERE_WATER_NDWI else HIGH
            warning = EarlyWarning(
                type="Water Stress",
                severity=severity,
                location=location,
                days_to_visible="May become visible in 3-5 days",
                action="Schedule immediate irrigation",
                detected_by="NDWI analysis",
            )
        elif zone.vegetation_stress and not zone.water_stress:
            warning = EarlyWarning(
                type="Nutrient Deficiency",
                severity="Moderate",
                location=location,
                days_to_visible="May become visible in 5-7 days",
                action="Check soil nutrients, consider foliar application",
                detected_by="NDVI analysis",
            )
        else:
            continue

        warnings.append(warning.model_dump(by_alias=True))

    return warnings


# ============================================================
# Resource application
# ============================================================

def _need_mentions(record: Mapping[str, Any], key: str, *levels: str) -> bool:
    need = str(record.get(key, ""))
    return any(level in need for level in levels)


def generate_resource_application(records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Irrigation, fertilization and pest-inspection plan across zones.

    Args:
        records: Merged zone records

    Returns:
        Resource application plan keyed by resource
    """
    irrigation_urgent = [
        r for r in records if _need_mentions(r, "irrigationNeed", "Critical", "High")
    ]
    irrigation_scheduled = [
        r for r in records if _need_mentions(r, "irrigationNeed", "Moderate")
    ]
    fertilizer_needed = [
        r for r in records if _need_mentions(r, "fertilizationNeed", "High", "Moderate")
    ]
    inspection_zones = [
        r.get("id") for r in records if r.get("priority") in (CRITICAL, HIGH)
    ]

    fertilization = []
    for record in fertilizer_needed:
        high_need = _need_mentions(record, "fertilizationNeed", "High")
        fertilization.append({
            "zone": record.get("id"),
            "fertilizer": "Nitrogen-rich (46-0-0)" if high_need else "Balanced NPK (20-20-20)",
            "rate": "150 kg/ha" if high_need else "100 kg/ha",
            "timing": "Within 3-5 days",
        })

    return {
        "irrigation": {
            "immediateZones": [r.get("id") for r in irrigation_urgent],
            "scheduledZones": [r.get("id") for r in irrigation_scheduled],
            "applicationRate": "25-30mm recommended" if irrigation_urgent else "Standard rate",
            "timing": "Early morning (5-7 AM) or evening (6-8 PM)",
            "method": "Drip irrigation preferred for targeted application",
        },
        "fertilization": {
            "recommendations": fertilization,
        },
        "pestControl": {
            "inspectionZones": inspection_zones,
            "reason": "Stressed plants more susceptible to pest/disease",
            "preventiveMeasures": [
                "Scout for early pest signs in stressed zones",
                "Apply preventive fungicide to vulnerable areas",
                "Install pest traps near zone boundaries",
            ],
        },
    }


# ============================================================
# Action plan
# ============================================================

def _is_duplicate_action(plan: Sequence[Mapping[str, Any]], item: Mapping[str, Any]) -> bool:
    prefix = str(item.get("action") or "").lower()[:ACTION_MATCH_PREFIX]
    return any(prefix in str(existing.get("action", "")).lower() for existing in plan)


def generate_action_plan(
    records: Sequence[Mapping[str, Any]],
    external_plan: Optional[Sequence[Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Prioritized action plan.

    Critical zones get urgent irrigation (priority 1), High zones get
    foliar nutrients (priority 2), and a field inspection is always
    included. External items follow unless their first 20 characters
    already appear in a planned action; each appended item takes the next
    priority number.

    Args:
        records: Merged zone records
        external_plan: Action items from the external assessment

    Returns:
        Ordered list of action items
    """
    critical_ids = [str(r.get("id")) for r in records if r.get("priority") == CRITICAL]
    high_ids = [str(r.get("id")) for r in records if r.get("priority") == HIGH]

    plan: List[Dict[str, Any]] = []

    if critical_ids:
        plan.append(ActionItem(
            priority=1,
            action=f"Urgent irrigation for zones: {', '.join(critical_ids)}",
            deadline="Within 24 hours",
            expected_improvement="+15-20 NDWI points in 48h",
        ).model_dump(by_alias=True))

    if high_ids:
        plan.append(ActionItem(
            priority=2,
            action=f"Apply foliar nutrients to: {', '.join(high_ids)}",
            deadline="Within 3 days",
            expected_improvement="+10-15 NDVI points in 7 days",
        ).model_dump(by_alias=True))

    plan.append(ActionItem(
        priority=len(plan) + 1,
        action="Conduct field inspection of flagged zones",
        deadline="Within 48 hours",
        expected_improvement="Early detection of hidden issues",
    ).model_dump(by_alias=True))

    skipped = 0
    for item in external_plan or []:
        if not isinstance(item, Mapping) or _is_duplicate_action(plan, item):
            skipped += 1
            continue
        plan.append({**item, "priority": len(plan) + 1})

    if skipped:
        logger.debug(f"Skipped {skipped} external action items already represented")

    return plan


# ============================================================
# Result assembly
# ============================================================

def build_health_map(
    zones: Sequence[Zone],
    global_stats: GlobalStatistics,
    external_health_map: Optional[Any] = None,
) -> Dict[str, Any]:
    """Headline field summary, with descriptive fields taken from the assessment."""
    if not isinstance(external_health_map, Mapping):
        external_health_map = {}

    overall_score = 0
    if zones:
        overall_score = round_half_up(sum(z.health_score for z in zones) / len(zones))

    return {
        "overallScore": overall_score,
        "overallStatus": status_text(overall_score),
        "fieldSize": external_health_map.get("fieldSize") or DEFAULT_FIELD_SIZE,
        "cropType": external_health_map.get("cropType") or DEFAULT_CROP_TYPE,
        "growthStage": external_health_map.get("growthStage") or DEFAULT_GROWTH_STAGE,
        "analysisConfidence": (
            external_health_map.get("analysisConfidence") or DEFAULT_ANALYSIS_CONFIDENCE
        ),
        "spectralMetrics": {
            "avgNDVI": global_stats.avg_ndvi,
            "avgNDWI": global_stats.avg_ndwi,
        },
    }


def build_spectral_analysis(
    zones: Sequence[ZoneStatistics],
    global_stats: GlobalStatistics,
) -> Dict[str, Any]:
    """Vegetation, water and chlorophyll interpretation of the field statistics."""
    return {
        "vegetationIndex": {
            "score": round_half_up((global_stats.avg_ndvi + 1) / 2 * 100),
            "rawValue": global_stats.avg_ndvi,
            "interpretation": interpret_ndvi(global_stats.avg_ndvi),
            "anomalies": find_ndvi_anomalies(zones),
        },
        "waterStressIndex": {
            "score": round_half_up((global_stats.avg_ndwi + 1) / 2 * 100),
            "rawValue": global_stats.avg_ndwi,
            "interpretation": interpret_ndwi(global_stats.avg_ndwi),
            "criticalAreas": find_water_stress_areas(zones),
        },
        "chlorophyllContent": {
            "level": estimate_chlorophyll(global_stats.avg_ndvi),
            "distribution": chlorophyll_distribution(zones),
            "deficiencyZones": find_chlorophyll_deficiency(zones),
        },
    }


def synthesize(
    zones: Sequence[Zone],
    global_stats: GlobalStatistics,
    assessment: Optional[QualitativeAssessment] = None,
    composite_urls: Optional[Mapping[str, str]] = None,
) -> FieldAnalysisResult:
    """
    Assemble the computed analysis result.

    Zone records already carry the external per-zone fields; the external
    top-level keys are applied later by :func:`merge_with_assessment`.

    Args:
        zones: Classified zones
        global_stats: Field-level statistics
        assessment: Optional external qualitative assessment
        composite_urls: Encoded composites keyed by kind

    Returns:
        FieldAnalysisResult
    """
    if assessment is None:
        assessment = QualitativeAssessment()

    records = merge_zone_records(zones, assessment.zones)

    result = FieldAnalysisResult(
        health_map=build_health_map(zones, global_stats, assessment.health_map),
        zones=records,
        global_stats=global_stats,
        spectral_analysis=build_spectral_analysis(zones, global_stats),
        false_color_composites=dict(composite_urls or {}),
        early_warnings=generate_early_warnings(zones, assessment.early_warnings),
        resource_application=generate_resource_application(records),
        action_plan=generate_action_plan(records, assessment.action_plan),
    )

    logger.info(
        f"Synthesized {len(result.early_warnings)} warnings and "
        f"{len(result.action_plan)} action items for {len(records)} zones"
    )
    return result


def merge_with_assessment(
    result: FieldAnalysisResult,
    assessment: Optional[QualitativeAssessment] = None,
) -> Dict[str, Any]:
    """
    Layer the external assessment's top-level keys over the computed result.

    Every key the assessment sent replaces the computed value, except
    ``zones``, which keeps the merged per-zone records.

    Args:
        result: Computed analysis result
        assessment: Optional external qualitative assessment

    Returns:
        Final result payload with camelCase keys
    """
    merged = result.to_payload()
    if assessment is None:
        return merged

    overridden = []
    for key, value in assessment.to_payload().items():
        if key in COMPUTED_ONLY_KEYS:
            continue
        if key in merged:
            overridden.append(key)
        merged[key] = value

    if overridden:
        logger.info(f"External assessment replaced computed keys: {', '.join(overridden)}")

    return merged
