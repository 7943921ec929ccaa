"""
Unit tests for the field analysis application service.

Tests cover:
- Upload validation
- End-to-end analysis with a mocked assessment client
- Assessment fallback when the collaborator fails
- Session supersede behaviour
- Activity logging
"""
import logging
import threading
import httpx
import pytest
import respx
from unittest.mock import MagicMock

from fieldhealth.config import settings
from fieldhealth.domain.errors import (
    AnalysisCancelledError,
    AnalysisFailedError,
    ImageDecodeError,
)
from fieldhealth.domain.models import CompositeKind, QualitativeAssessment
from fieldhealth.infrastructure.assessment_client import AssessmentAPIError, AssessmentClient
from fieldhealth.services.application.field_analysis_service import (
    AnalysisSessions,
    FieldAnalysisService,
)


@pytest.fixture
def service(mock_assessment_client) -> FieldAnalysisService:
    return FieldAnalysisService(assessment_client=mock_assessment_client, sessions=AnalysisSessions())


# ============================================================
# Upload Validation Tests
# ============================================================

class TestUploadValidation:
    """Tests for upload size and type checks."""

    def test_empty_upload(self, service):
        with pytest.raises(ValueError, match="empty"):
            service.validate_upload(b"", "image/png")

    def test_oversized_upload(self, service, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_bytes", 16)

        with pytest.raises(ValueError, match="size limit"):
            service.validate_upload(b"x" * 17, "image/png")

    def test_unsupported_type(self, service):
        with pytest.raises(ValueError, match="Unsupported image type"):
            service.validate_upload(b"data", "application/pdf")

    def test_valid_upload(self, service, field_png):
        service.validate_upload(field_png, "image/png")


# ============================================================
# Analysis Tests
# ============================================================

class TestAnalyzeField:
    """Tests for the full analysis flow."""

    @pytest.mark.asyncio
    async def test_successful_analysis(self, service, field_png, mock_assessment_client):
        result = await service.analyze_field(field_png, "image/png")

        assert len(result["zones"]) == 4
        assert result["zones"][0]["id"] == "Z1"
        assert set(result["falseColorComposites"]) == {k.value for k in CompositeKind} - {"original"}
        assert result["falseColorComposites"]["cir"].startswith("data:image/png;base64,")
        assert result["healthMap"]["growthStage"] == "Vegetative"
        mock_assessment_client.fetch_assessment.assert_awaited_once_with(field_png, "image/png")

    @pytest.mark.asyncio
    async def test_nine_zones_without_composites(self, service, field_png):
        result = await service.analyze_field(
            field_png, "image/png", zone_count=9, include_composites=False
        )

        assert len(result["zones"]) == 9
        assert result["zones"][8]["name"] == "Zone 9"
        assert result["falseColorComposites"] == {}

    @pytest.mark.asyncio
    async def test_undecodable_image(self, service):
        with pytest.raises(ImageDecodeError):
            await service.analyze_field(b"definitely not a png", "image/png")

    @pytest.mark.asyncio
    async def test_image_too_small_for_grid(self, service, tiny_png):
        with pytest.raises(AnalysisFailedError, match="too small"):
            await service.analyze_field(tiny_png, "image/png")

    @pytest.mark.asyncio
    async def test_inline_assessment_skips_collaborator(self, service, field_png, mock_assessment_client):
        assessment = QualitativeAssessment.model_validate({"healthMap": {"cropType": "Wheat"}})

        result = await service.analyze_field(field_png, "image/png", assessment=assessment)

        assert result["healthMap"] == {"cropType": "Wheat"}
        mock_assessment_client.fetch_assessment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_collaborator_failure_falls_back_to_defaults(self, service, field_png, mock_assessment_client, caplog):
        mock_assessment_client.fetch_assessment.side_effect = AssessmentAPIError("Service down", status_code=503)

        with caplog.at_level(logging.WARNING):
            result = await service.analyze_field(field_png, "image/png")

        assert result["healthMap"]["analysisConfidence"] == 85
        assert "Qualitative assessment unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_non_json_assessment_falls_back_to_defaults(self, field_png, monkeypatch):
        """An assessment service answering 200 with HTML counts as no assessment."""
        monkeypatch.setattr(settings, "assessment_api_base_url", "https://assessments.example.test")
        client = AssessmentClient()
        service = FieldAnalysisService(assessment_client=client, sessions=AnalysisSessions())

        try:
            with respx.mock:
                respx.post("https://assessments.example.test/assessments").mock(
                    return_value=httpx.Response(200, text="<html>oops</html>")
                )
                result = await service.analyze_field(field_png, "image/png", include_composites=False)
        finally:
            await client.close()

        assert result["healthMap"]["analysisConfidence"] == 85
        assert result["healthMap"]["cropType"] == "Detected from imagery"

    @pytest.mark.asyncio
    async def test_activity_summary_logged(self, service, field_png, caplog):
        with caplog.at_level(logging.INFO, logger="fieldhealth.activity"):
            result = await service.analyze_field(field_png, "image/png")

        records = [r for r in caplog.records if r.name == "fieldhealth.activity"]
        assert len(records) == 1
        assert records[0].activity == {
            "overallHealth": result["globalStats"]["overallHealth"],
            "zonesAnalyzed": 4,
            "avgNDVI": result["globalStats"]["avgNDVI"],
        }

    @pytest.mark.asyncio
    async def test_render_view(self, service, field_png):
        composite = await service.render_view(field_png, "image/png", CompositeKind.NDVI)

        assert composite.kind == CompositeKind.NDVI
        assert (composite.width, composite.height) == (30, 30)


# ============================================================
# Session Tests
# ============================================================

class TestSessions:
    """Tests for superseding in-flight analyses."""

    def test_new_analysis_cancels_previous(self):
        sessions = AnalysisSessions()

        first = sessions.begin("field-7")
        second = sessions.begin("field-7")

        assert first.is_set()
        assert not second.is_set()

    def test_sessions_are_independent(self):
        sessions = AnalysisSessions()

        first = sessions.begin("field-7")
        sessions.begin("field-8")

        assert not first.is_set()

    def test_stale_end_keeps_newer_analysis(self):
        sessions = AnalysisSessions()

        first = sessions.begin("field-7")
        second = sessions.begin("field-7")
        sessions.end("field-7", first)
        third = sessions.begin("field-7")

        assert second.is_set()
        assert not third.is_set()

    def test_no_session_never_cancels(self):
        sessions = AnalysisSessions()

        first = sessions.begin(None)
        sessions.begin(None)

        assert not first.is_set()

    @pytest.mark.asyncio
    async def test_superseded_analysis_raises(self, mock_assessment_client, field_png):
        cancelled = threading.Event()
        cancelled.set()
        sessions = MagicMock(spec=AnalysisSessions)
        sessions.begin.return_value = cancelled
        service = FieldAnalysisService(assessment_client=mock_assessment_client, sessions=sessions)

        with pytest.raises(AnalysisCancelledError):
            await service.analyze_field(field_png, "image/png", session_id="field-7")

        sessions.end.assert_called_once_with("field-7", cancelled)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
