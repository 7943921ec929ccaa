"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from fieldhealth.config import settings
from fieldhealth.api.dependencies import limiter
from fieldhealth.middleware.error_handler import ErrorHandlerMiddleware
from fieldhealth.api.v1.routers import fields

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.
    
    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Analysis config: default_zone_count={settings.default_zone_count}, "
                f"field_sample_stride={settings.field_sample_stride}")
    if settings.assessment_api_base_url:
        logger.info(f"Qualitative assessment service: {settings.assessment_api_base_url}")
    else:
        logger.info("Qualitative assessment service disabled; using default labels")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")
    
    yield
    
    # Shutdown
    from fieldhealth.infrastructure.assessment_client import get_assessment_client
    logger.info("Shutting down application...")
    client = get_assessment_client()
    await client.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Multi-Spectral Field Health Analysis API
    
    This API turns a single RGB field photograph into zone-level crop health
    statistics and prioritized, numerically grounded recommendations.
    
    ## Features
    
    - **Simulated NIR**: Near-infrared reflectance approximated from visible channels
    - **Vegetation Indices**: NDVI, NDWI, VARI and Excess Green per pixel
    - **False-Color Composites**: CIR, NDVI, NDWI, stress and NIR-enhanced views
    - **Zonal Statistics**: 2x2 or 3x3 grid with a 0-100 health score per zone
    - **Recommendations**: Early warnings, resource application and action plans
    - **Rate Limiting**: Protects the API from abuse
    
    ## Analysis Pipeline
    
    1. Decodes the upload into an immutable RGBA raster
    2. Simulates NIR and derives per-pixel indices
    3. Renders five false-color composites
    4. Aggregates full-resolution zone statistics
    5. Samples field-level statistics every 10 pixels
    6. Classifies zones and synthesizes recommendations
    7. Layers the optional qualitative assessment over the result
    
    Outputs are best-effort estimates, not calibrated remote-sensing products.
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(fields.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.
    
    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.
    
    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
    }
