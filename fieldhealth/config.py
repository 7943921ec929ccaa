"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Qualitative Assessment API Configuration
    assessment_api_base_url: str = Field(
        default="",
        description="Base URL for the qualitative assessment service (empty disables it)"
    )
    assessment_api_key: str = Field(
        default="",
        description="API key for the qualitative assessment service"
    )
    assessment_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for assessment requests"
    )
    
    # Retry Configuration
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of retry attempts for API calls"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=4,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Maximum wait time in seconds between retries"
    )
    
    # Field Analysis Parameters
    default_zone_count: int = Field(
        default=4,
        description="Requested zone count (<= 4 gives a 2x2 grid, otherwise 3x3)"
    )
    field_sample_stride: int = Field(
        default=10,
        description="Pixel stride used for field-level statistics"
    )
    include_composites_default: bool = Field(
        default=True,
        description="Whether analysis responses embed false-color composites"
    )
    
    # Upload Validation
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted image size in bytes"
    )
    allowed_content_types: list[str] = Field(
        default=[
            "image/jpeg",
            "image/png",
            "image/gif",
            "image/webp",
            "image/tiff",
        ],
        description="Accepted image content types"
    )
    
    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    
    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )
    
    # Rate Limiting
    rate_limit_requests: int = Field(
        default=30,
        description="Maximum requests per minute per client"
    )
    
    # Application Settings
    app_name: str = Field(
        default="Field Health Analysis API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )
    
    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
