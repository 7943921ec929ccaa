"""
API response models using Pydantic.
"""
from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict, Field

from fieldhealth.domain.models import CompositeKind


class FieldAnalysisResponse(BaseModel):
    """
    Response model for the field analysis endpoint.
    
    Keys sent by the qualitative assessment replace the computed ones, so
    values are loosely typed and unknown keys pass through.
    """
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "healthMap": {
                    "overallScore": 68,
                    "overallStatus": "Good with Minor Issues",
                    "fieldSize": "Analyzed",
                    "cropType": "Detected from imagery",
                    "growthStage": "Vegetative",
                    "analysisConfidence": 85,
                    "spectralMetrics": {"avgNDVI": 0.412, "avgNDWI": -0.127},
                },
                "zones": [
                    {
                        "id": "Z1",
                        "name": "NW (Z1)",
                        "healthScore": 71,
                        "ndvi": 0.455,
                        "ndwi": -0.131,
                        "priority": "Critical",
                    }
                ],
                "globalStats": {"avgNDVI": 0.412, "avgNDWI": -0.127, "overallHealth": 71},
            }
        },
    )
    
    health_map: Any = Field(alias="healthMap", description="Headline field summary")
    zones: List[Dict[str, Any]] = Field(description="Per-zone records in row-major order")
    global_stats: Any = Field(alias="globalStats", description="Field-level sampled statistics")
    spectral_analysis: Any = Field(alias="spectralAnalysis")
    false_color_composites: Any = Field(
        alias="falseColorComposites",
        description="PNG data URLs keyed by composite kind"
    )
    early_warnings: Any = Field(alias="earlyWarnings")
    resource_application: Any = Field(alias="resourceApplication")
    action_plan: Any = Field(alias="actionPlan")


class CompositeResponse(BaseModel):
    """Response model for a single rendered composite."""
    kind: CompositeKind = Field(description="Rendered view mode")
    width: int
    height: int
    image: str = Field(description="PNG data URL")
