"""
API router for field analysis endpoints.
"""
from fastapi import APIRouter, File, Form, HTTPException, Path, Request, UploadFile
from pydantic import ValidationError
from typing import Annotated, Optional

from fieldhealth.api.dependencies import FieldAnalysisServiceDep, limiter
from fieldhealth.api.v1.models.responses import CompositeResponse, FieldAnalysisResponse
from fieldhealth.config import settings
from fieldhealth.domain.models import CompositeKind, QualitativeAssessment
from fieldhealth.utils.image_codec import to_data_url


router = APIRouter(
    prefix="/fields",
    tags=["fields"],
)

RATE_LIMIT = f"{settings.rate_limit_requests}/minute"

ERROR_RESPONSES = {
    400: {"description": "Invalid upload (size, type) or malformed assessment"},
    409: {"description": "Analysis superseded by a newer request in the same session"},
    422: {"description": "Analysis failed (unreadable image or invalid parameters)"},
    429: {"description": "Rate limit exceeded"},
}


@router.post(
    "/analyze",
    response_model=FieldAnalysisResponse,
    summary="Analyze field health from an RGB photograph",
    description="""
    Run the multi-spectral field health analysis on an uploaded image.

    This endpoint:
    1. Simulates a near-infrared band from the visible channels
    2. Renders CIR, NDVI, NDWI, stress and NIR-enhanced composites
    3. Aggregates zone statistics over a 2x2 or 3x3 grid
    4. Classifies zones and synthesizes warnings, resource and action plans
    5. Layers the optional qualitative assessment over the computed result
    """,
    responses=ERROR_RESPONSES,
)
@limiter.limit(RATE_LIMIT)
async def analyze_field(
    request: Request,
    file: Annotated[UploadFile, File(description="Field photograph (JPEG, PNG, GIF, WebP or TIFF)")],
    analysis_service: FieldAnalysisServiceDep,
    zones: Annotated[int, Form(ge=1, le=9, description="Requested zone count (<= 4 gives 2x2, else 3x3)")] = settings.default_zone_count,
    include_composites: Annotated[bool, Form(description="Embed composites as PNG data URLs")] = settings.include_composites_default,
    session_id: Annotated[Optional[str], Form(description="Newer analyses in a session supersede older ones")] = None,
    assessment: Annotated[Optional[str], Form(description="Qualitative assessment JSON, replaces the assessment service")] = None,
) -> FieldAnalysisResponse:
    """
    Analyze an uploaded field photograph.

    Args:
        request: Incoming request (used by the rate limiter)
        file: Uploaded image
        analysis_service: Field analysis service (injected dependency)
        zones: Requested zone count
        include_composites: Whether to embed composites
        session_id: Optional session identifier
        assessment: Optional inline qualitative assessment JSON

    Returns:
        Merged analysis result

    Raises:
        HTTPException: If the inline assessment is malformed
    """
    inline_assessment = None
    if assessment:
        try:
            inline_assessment = QualitativeAssessment.model_validate_json(assessment)
        except ValidationError as e:
            raise HTTPException(
                status_code=400,
                detail=f"Malformed assessment JSON: {e.error_count()} invalid fields"
            )

    data = await file.read()

    # Delegate to service layer (no business logic here)
    result = await analysis_service.analyze_field(
        data=data,
        content_type=file.content_type,
        zone_count=zones,
        include_composites=include_composites,
        session_id=session_id,
        assessment=inline_assessment,
    )
    return result


@router.post(
    "/composites/{kind}",
    response_model=CompositeResponse,
    summary="Render one composite view",
    description="Render a single view mode (original, cir, ndvi, ndwi, stress, nirEnhanced) as a PNG data URL.",
    responses=ERROR_RESPONSES,
)
@limiter.limit(RATE_LIMIT)
async def render_composite_view(
    request: Request,
    kind: Annotated[CompositeKind, Path(description="Composite view mode")],
    file: Annotated[UploadFile, File(description="Field photograph")],
    analysis_service: FieldAnalysisServiceDep,
) -> CompositeResponse:
    """
    Render a single composite for an uploaded image.

    Args:
        request: Incoming request (used by the rate limiter)
        kind: Composite view mode
        file: Uploaded image
        analysis_service: Field analysis service (injected dependency)

    Returns:
        CompositeResponse with the encoded image
    """
    data = await file.read()
    composite = await analysis_service.render_view(data, file.content_type, kind)

    return CompositeResponse(
        kind=composite.kind,
        width=composite.width,
        height=composite.height,
        image=to_data_url(composite),
    )
