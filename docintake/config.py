"""Configuration management for document intake processing."""
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docintake.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Centralized configuration for document intake processing."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    gemini_api_key: str = Field(default="", description="Gemini API key for document extraction")
    use_vertex_ai: bool = Field(default=False, description="Use Vertex AI instead of standard Gemini API")
    google_cloud_project: str = Field(default="not-set", description="Google Cloud project for Vertex AI")
    google_cloud_location: str = Field(default="not-set", description="Google Cloud location for Vertex AI")

    # Model Configuration
    extraction_model: str = Field(default="gemini-2.5-flash", description="Model for data extraction")
    quota_limit: int = Field(default=5, ge=1, description="API concurrency limit")

    # Retry Configuration
    retry_max_attempts: int = Field(default=3, ge=1, description="Maximum attempts per extraction call")
    retry_base_delay: float = Field(default=2.0, description="Base delay for exponential backoff")
    retry_max_delay: float = Field(default=10.0, description="Maximum delay between retries")
    retry_jitter_range: float = Field(default=3.0, description="Jitter range for retry delays")

    # Upload Configuration
    max_upload_mb: float = Field(default=20.0, gt=0, description="Maximum accepted upload size")

    # Schema Catalog Configuration
    catalog_path: Path | None = Field(default=None, description="Document-type catalog file (bundled one if unset)")
    aliases_path: Path | None = Field(default=None, description="Field alias table file")
    catalog_ttl_seconds: float = Field(default=300.0, ge=0, description="Seconds before the catalog is reloaded")

    # Debug Configuration
    debug_responses: bool = Field(default=False, description="Save raw model responses for debugging")
    json_responses_directory: Path = Field(default=Path("json_responses"), description="Where raw responses are saved")

    @field_validator("use_vertex_ai", mode="before")
    @classmethod
    def parse_vertex_ai_flag(cls, v):
        """Parse vertex AI flag from string."""
        if isinstance(v, str):
            return v.lower() == "true"
        return v

    @field_validator("debug_responses", mode="before")
    @classmethod
    def parse_debug_flag(cls, v):
        """Parse debug flag from string."""
        if isinstance(v, str):
            return v == "1" or v.lower() == "true"
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings instance from environment variables."""
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            use_vertex_ai=os.getenv("GOOGLE_GENAI_USE_VERTEXAI", "false"),
            google_cloud_project=os.getenv("GOOGLE_CLOUD_PROJECT", "not-set"),
            google_cloud_location=os.getenv("GOOGLE_CLOUD_LOCATION", "not-set"),
            debug_responses=os.getenv("DEBUG_RESPONSES", "0"),
        )

    def require_api_key(self) -> str:
        """Return the API key, failing when extraction is attempted without one."""
        if self.use_vertex_ai:
            return self.gemini_api_key
        if not self.gemini_api_key or self.gemini_api_key.strip() == "":
            raise ConfigurationError("GEMINI_API_KEY", "must be provided for document extraction")
        return self.gemini_api_key

    @property
    def api_client_kwargs(self) -> dict:
        """Get API client configuration."""
        if self.use_vertex_ai:
            return {
                "vertexai": True,
                "project": self.google_cloud_project,
                "location": self.google_cloud_location,
            }
        return {"api_key": self.require_api_key()}
