"""
Dependency injection for FastAPI.
"""
from typing import Annotated
from fastapi import Depends
from slowapi import Limiter
from slowapi.util import get_remote_address

from fieldhealth.infrastructure.assessment_client import (
    AssessmentClient,
    get_assessment_client,
)
from fieldhealth.services.application.field_analysis_service import FieldAnalysisService


# Rate limiter shared by the app and the routers
limiter = Limiter(key_func=get_remote_address)


def get_field_analysis_service(
    assessment_client: Annotated[AssessmentClient, Depends(get_assessment_client)],
) -> FieldAnalysisService:
    """
    Dependency factory for FieldAnalysisService.
    
    Args:
        assessment_client: Qualitative assessment client (injected)
        
    Returns:
        FieldAnalysisService instance
    """
    return FieldAnalysisService(assessment_client=assessment_client)


# Type aliases for cleaner route signatures
FieldAnalysisServiceDep = Annotated[FieldAnalysisService, Depends(get_field_analysis_service)]
