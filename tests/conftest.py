"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Synthetic rasters and encoded images
- Zone statistics factories
- Mock assessment client
- FastAPI test client
"""
import io
import pytest
import numpy as np
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from PIL import Image

from fieldhealth.main import app
from fieldhealth.api.dependencies import limiter
from fieldhealth.domain.models import RasterBuffer, ZoneStatistics
from fieldhealth.infrastructure.assessment_client import AssessmentClient


# Reference pixels used across the tests
GREEN = (40, 160, 40)
SOIL = (150, 110, 80)
RED = (255, 0, 0)
GRAY = (128, 128, 128)


# ============================================================
# Raster Fixtures
# ============================================================

@pytest.fixture
def raster_factory() -> Callable[..., RasterBuffer]:
    """Build a uniform raster of one RGB colour."""
    def build(rgb=GREEN, width: int = 20, height: int = 20) -> RasterBuffer:
        pixels = np.empty((height, width, 3), dtype=np.uint8)
        pixels[:, :] = rgb
        return RasterBuffer.from_rgb(pixels)
    return build


@pytest.fixture
def split_raster() -> RasterBuffer:
    """40x40 raster: green vegetation on the left half, red on the right."""
    pixels = np.empty((40, 40, 3), dtype=np.uint8)
    pixels[:, :20] = GREEN
    pixels[:, 20:] = RED
    return RasterBuffer.from_rgb(pixels)


@pytest.fixture
def mixed_raster() -> RasterBuffer:
    """Deterministic pseudo-random field raster."""
    rng = np.random.default_rng(42)
    pixels = rng.integers(0, 256, size=(37, 53, 3), dtype=np.uint8)
    return RasterBuffer.from_rgb(pixels)


def _encode(pixels: np.ndarray, image_format: str) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def field_png() -> bytes:
    """PNG field photograph: vegetation on the left, soil on the right."""
    pixels = np.empty((30, 30, 3), dtype=np.uint8)
    pixels[:, :15] = GREEN
    pixels[:, 15:] = SOIL
    return _encode(pixels, "PNG")


@pytest.fixture
def tiny_png() -> bytes:
    """A single-pixel PNG, too small for any zone grid."""
    return _encode(np.full((1, 1, 3), 128, dtype=np.uint8), "PNG")


# ============================================================
# Zone Fixtures
# ============================================================

@pytest.fixture
def zone_factory() -> Callable[..., ZoneStatistics]:
    """Build zone statistics with healthy defaults and field overrides."""
    def build(**overrides) -> ZoneStatistics:
        values = {
            "zone_index": 0,
            "row_index": 0,
            "col_index": 0,
            "avg_ndvi": 0.5,
            "avg_ndwi": 0.05,
            "avg_vari": 0.2,
            "stress_percentage": 10.0,
            "health_score": 80,
            "water_stress": False,
            "vegetation_stress": False,
        }
        values.update(overrides)
        return ZoneStatistics(**values)
    return build


# ============================================================
# Mock Assessment Client Fixtures
# ============================================================

@pytest.fixture
def mock_assessment_client():
    """Create a mock assessment client that returns no assessment."""
    mock_client = AsyncMock(spec=AssessmentClient)
    mock_client.fetch_assessment.return_value = None
    return mock_client


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture(autouse=True)
def disable_rate_limit():
    """Keep the per-client rate limit out of unrelated tests."""
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def test_client() -> TestClient:
    """Create a synchronous test client for FastAPI."""
    return TestClient(app)


@pytest.fixture
async def async_test_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for FastAPI."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
