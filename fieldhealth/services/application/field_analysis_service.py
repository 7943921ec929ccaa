"""
Application service: Orchestration layer for field analysis.
"""
from typing import Any, Dict, Optional
import asyncio
import logging
import threading

from fieldhealth.config import settings
from fieldhealth.domain.errors import AnalysisCancelledError
from fieldhealth.domain.models import CompositeKind, CompositeRaster, QualitativeAssessment
from fieldhealth.infrastructure.assessment_client import AssessmentAPIError, AssessmentClient
from fieldhealth.services.domain.composite_renderer import render_composite
from fieldhealth.services.domain.health_classifier import classify_zones
from fieldhealth.services.domain.recommendation_synthesizer import (
    merge_with_assessment,
    synthesize,
)
from fieldhealth.services.domain.spectral_analyzer import AnalysisConfig, SpectralAnalyzer
from fieldhealth.utils.image_codec import decode_image_async, to_data_url

logger = logging.getLogger(__name__)
activity_logger = logging.getLogger("fieldhealth.activity")


class AnalysisSessions:
    """
    Tracks the in-flight analysis per session.

    Starting an analysis for a session signals the previous one for that
    session to stop at its next pass boundary.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Dict[str, threading.Event] = {}

    def begin(self, session_id: Optional[str]) -> threading.Event:
        cancel_event = threading.Event()
        if session_id is None:
            return cancel_event

        with self._lock:
            previous = self._active.get(session_id)
            if previous is not None:
                logger.info(f"Superseding in-flight analysis for session {session_id}")
                previous.set()
            self._active[session_id] = cancel_event

        return cancel_event

    def end(self, session_id: Optional[str], cancel_event: threading.Event):
        if session_id is None:
            return

        with self._lock:
            if self._active.get(session_id) is cancel_event:
                del self._active[session_id]


# Shared across service instances, which are created per request
_sessions = AnalysisSessions()


class FieldAnalysisService:
    """
    Application service for field analysis operations.

    Orchestrates image decoding, spectral analysis, the optional
    qualitative assessment and result synthesis. No index math here,
    only coordination between infrastructure and domain layers.
    """

    def __init__(
        self,
        assessment_client: AssessmentClient,
        sessions: Optional[AnalysisSessions] = None,
    ):
        """
        Initialize the service with dependencies.

        Args:
            assessment_client: Client for the qualitative assessment service
            sessions: Session registry used to supersede in-flight analyses
        """
        self.assessment_client = assessment_client
        self.sessions = sessions or _sessions

    def validate_upload(self, data: bytes, content_type: Optional[str]):
        """
        Enforce the upload size ceiling and supported formats.

        Raises:
            ValueError: If the upload is empty, too large or of an unsupported type
        """
        if not data:
            raise ValueError("Uploaded image is empty")

        if len(data) > settings.max_upload_bytes:
            limit_mb = settings.max_upload_bytes / (1024 * 1024)
            raise ValueError(f"Image exceeds the {limit_mb:.0f} MB size limit")

        if content_type not in settings.allowed_content_types:
            allowed = ", ".join(settings.allowed_content_types)
            raise ValueError(f"Unsupported image type '{content_type}'. Supported: {allowed}")

    async def analyze_field(
        self,
        data: bytes,
        content_type: str,
        zone_count: Optional[int] = None,
        include_composites: Optional[bool] = None,
        session_id: Optional[str] = None,
        assessment: Optional[QualitativeAssessment] = None,
    ) -> Dict[str, Any]:
        """
        Run the full field analysis for an uploaded image.

        This method orchestrates:
        1. Validating and decoding the image
        2. Running the spectral analysis passes
        3. Fetching the qualitative assessment (unless one was supplied)
        4. Classifying zones and synthesizing recommendations
        5. Layering the assessment over the computed result

        Args:
            data: Encoded image bytes
            content_type: MIME type of the upload
            zone_count: Requested zone count (defaults from settings)
            include_composites: Embed composites as data URLs (defaults from settings)
            session_id: Analyses sharing a session supersede each other
            assessment: Qualitative assessment supplied by the caller

        Returns:
            Merged analysis result payload

        Raises:
            ValueError: If the upload is invalid
            ImageDecodeError: If the image cannot be decoded
            AnalysisFailedError: If the raster cannot be analysed
            AnalysisCancelledError: If a newer analysis superseded this one
        """
        self.validate_upload(data, content_type)

        if zone_count is None:
            zone_count = settings.default_zone_count
        if include_composites is None:
            include_composites = settings.include_composites_default

        cancel_event = self.sessions.begin(session_id)
        try:
            raster = await decode_image_async(data)

            analyzer = SpectralAnalyzer(AnalysisConfig(
                zone_count=zone_count,
                sample_stride=settings.field_sample_stride,
                render_composites=include_composites,
            ))
            spectral = await asyncio.to_thread(analyzer.analyze, raster, cancel_event.is_set)

            if assessment is None:
                assessment = await self._fetch_assessment(data, content_type)

            if cancel_event.is_set():
                raise AnalysisCancelledError("Analysis was superseded by a newer request")

            composite_urls = await asyncio.to_thread(
                lambda: {kind.value: to_data_url(c) for kind, c in spectral.composites.items()}
            )

            zones = classify_zones(spectral.zones)
            result = synthesize(zones, spectral.global_stats, assessment, composite_urls)
            merged = merge_with_assessment(result, assessment)
        finally:
            self.sessions.end(session_id, cancel_event)

        activity_logger.info(
            "Multi-spectral health map generated",
            extra={"activity": result.activity_summary()},
        )
        return merged

    async def render_view(
        self,
        data: bytes,
        content_type: str,
        kind: CompositeKind,
    ) -> CompositeRaster:
        """
        Render a single composite view mode for an uploaded image.

        Raises:
            ValueError: If the upload is invalid
            ImageDecodeError: If the image cannot be decoded
        """
        self.validate_upload(data, content_type)
        raster = await decode_image_async(data)
        return await asyncio.to_thread(render_composite, raster, kind)

    async def _fetch_assessment(
        self,
        data: bytes,
        content_type: str,
    ) -> Optional[QualitativeAssessment]:
        """Fetch the assessment; a failing service counts as no assessment."""
        try:
            return await self.assessment_client.fetch_assessment(data, content_type)
        except AssessmentAPIError as e:
            logger.warning(f"Qualitative assessment unavailable, using defaults: {e.message}")
            return None
