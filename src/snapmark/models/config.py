"""Configuration models."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .capture import DEFAULT_BROWSER_ARGS, DEFAULT_USER_AGENT, BrowserLaunchConfig


class EnvSettings(BaseSettings):
    """Settings loaded from .env file (secrets and credentials)."""

    # JSON object mapping bearer token -> user id, e.g. {"s3cr3t": "alice"}
    api_tokens: Dict[str, str] = Field(
        default_factory=dict, description="Accepted API bearer tokens and their users"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppConfig(BaseModel):
    """Application configuration from config.yaml."""

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    allowed_origins: List[str] = Field(
        default_factory=list, description="Extra CORS origins for the web frontend"
    )

    # Storage
    data_dir: Optional[str] = Field(
        None, description="Document and blob root (default: <config_dir>/data)"
    )
    blob_bucket: str = Field(default="snapmark-screenshots", description="Blob bucket name")
    blob_url_mode: Literal["local", "public"] = Field(
        default="local",
        description="'local' serves thumbnails from this API, 'public' from blob_public_base_url",
    )
    blob_local_base_url: str = Field(default="http://127.0.0.1:8000")
    blob_public_base_url: str = Field(default="https://firebasestorage.googleapis.com")

    # Screenshot capture
    enable_screenshots: bool = Field(default=True, description="Enable screenshot capture")
    viewport_width: int = Field(default=1280, ge=320, le=3840)
    viewport_height: int = Field(default=720, ge=240, le=2160)
    device_scale_factor: float = Field(default=1.0, ge=0.5, le=4.0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    navigation_timeout: int = Field(
        default=30, description="Page navigation timeout in seconds", ge=1, le=120
    )
    settle_delay: float = Field(
        default=2.0, description="Wait after DOM ready before capture, in seconds", ge=0, le=30
    )
    screenshot_timeout: int = Field(
        default=120, description="Overall capture budget in seconds", ge=5, le=600
    )
    browser_args: List[str] = Field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    browser_executable_path: Optional[str] = Field(None, description="Custom Chromium binary")
    thumbnail_width: int = Field(default=350, ge=16, le=2000)
    thumbnail_quality: int = Field(default=80, ge=1, le=95)

    # Retry sweeper
    enable_retry_sweeper: bool = Field(
        default=True, description="Run the retry sweeper inside the API process"
    )
    retry_ceiling: int = Field(default=3, ge=0, le=20)
    sweep_batch_size: int = Field(default=50, ge=1, le=500)
    sweep_interval_hours: float = Field(default=24.0, gt=0)
    sweep_pacing_seconds: float = Field(default=1.0, ge=0)
    stale_processing_minutes: Optional[int] = Field(
        default=30,
        ge=1,
        description="Re-sweep bookmarks stuck in 'processing' this long; null disables",
    )

    # Page metadata helper
    metadata_timeout: int = Field(default=10, ge=1, le=60)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "host": "127.0.0.1",
            "port": 8000,
            "data_dir": "/home/user/.snapmark/data",
            "blob_bucket": "snapmark-screenshots",
            "blob_url_mode": "local",
            "enable_screenshots": True,
            "navigation_timeout": 30,
            "screenshot_timeout": 120,
            "retry_ceiling": 3,
            "sweep_interval_hours": 24,
            "stale_processing_minutes": 30,
        }
    })

    def browser_launch_config(self) -> BrowserLaunchConfig:
        """Build the immutable launch settings handed to the capture engine."""
        return BrowserLaunchConfig(
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            device_scale_factor=self.device_scale_factor,
            user_agent=self.user_agent,
            navigation_timeout_seconds=float(self.navigation_timeout),
            settle_delay_seconds=float(self.settle_delay),
            capture_budget_seconds=float(self.screenshot_timeout),
            executable_path=self.browser_executable_path,
            args=tuple(self.browser_args),
        )
