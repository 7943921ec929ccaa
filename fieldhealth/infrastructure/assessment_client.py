"""
Infrastructure layer: Qualitative assessment client with retry logic.

The assessment service is optional. When no base URL is configured the
client is disabled and every analysis proceeds without an assessment.
"""
from typing import Any, Dict, Optional
import base64
import logging

import httpx
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from fieldhealth.config import settings
from fieldhealth.domain.models import QualitativeAssessment

logger = logging.getLogger(__name__)

ASSESSMENTS_ENDPOINT = "/assessments"


class AssessmentAPIError(Exception):
    """Custom exception for qualitative assessment API errors."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AssessmentClient:
    """
    Client for the external qualitative assessment service.
    Implements retry logic with exponential backoff.
    """

    def __init__(self):
        """Initialize the API client with configuration."""
        self.base_url = settings.assessment_api_base_url
        self.api_key = settings.assessment_api_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "accept": "application/json",
            },
            timeout=settings.assessment_timeout,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "AssessmentClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.RequestError)),
        reraise=True,
    )
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Make an HTTP request with retry logic.

        Server errors (5xx) and transport errors are retried; client
        errors (4xx) fail immediately.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            **kwargs: Additional arguments for the request

        Returns:
            Response data as dictionary

        Raises:
            AssessmentAPIError: On a client error response
            httpx.HTTPError: If retries are exhausted
        """
        try:
            response = await self.client.request(method, endpoint, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code >= 500:
                raise
            raise AssessmentAPIError(
                f"API request failed: {e.response.status_code} - {e.response.text}",
                status_code=e.response.status_code,
            )

    async def fetch_assessment(
        self,
        image: bytes,
        content_type: str,
    ) -> Optional[QualitativeAssessment]:
        """
        Request a qualitative assessment of a field image.

        Args:
            image: Encoded image bytes
            content_type: MIME type of the image

        Returns:
            QualitativeAssessment, or None when the client is disabled

        Raises:
            AssessmentAPIError: If the request fails or the payload is malformed
        """
        if not self.enabled:
            return None

        payload = {
            "image": base64.b64encode(image).decode("ascii"),
            "mimeType": content_type,
        }

        try:
            data = await self._make_request("POST", ASSESSMENTS_ENDPOINT, json=payload)
        except httpx.HTTPStatusError as e:
            raise AssessmentAPIError(
                f"Assessment service error: {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            raise AssessmentAPIError(f"API request error: {str(e)}")
        except ValueError:
            # Body of a 2xx response that is not JSON
            raise AssessmentAPIError("Assessment response is not valid JSON")

        if not isinstance(data, dict):
            raise AssessmentAPIError("Assessment response is not a JSON object")

        try:
            return QualitativeAssessment.model_validate(data)
        except ValidationError as e:
            raise AssessmentAPIError(f"Malformed assessment: {e.error_count()} invalid fields")


# Singleton instance
_assessment_client: Optional[AssessmentClient] = None


def get_assessment_client() -> AssessmentClient:
    """
    Get or create the singleton assessment client instance.

    Returns:
        AssessmentClient instance
    """
    global _assessment_client
    if _assessment_client is None:
        _assessment_client = AssessmentClient()
    return _assessment_client
