"""Screenshot capture types: launch config, failure taxonomy and results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_BROWSER_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--disable-extensions",
    "--hide-scrollbars",
    "--mute-audio",
)


class CaptureFailure(str, Enum):
    """Closed set of reasons a capture attempt can fail."""

    NAVIGATION_TIMEOUT = "navigation_timeout"
    CONNECTION_FAILED = "connection_failed"
    RENDER_CRASH = "render_crash"
    ENCODING_FAILED = "encoding_failed"
    UPLOAD_FAILED = "upload_failed"


FAILURE_MESSAGES = {
    CaptureFailure.NAVIGATION_TIMEOUT: "The page took too long to load",
    CaptureFailure.CONNECTION_FAILED: "The site could not be reached",
    CaptureFailure.RENDER_CRASH: "The browser failed while rendering the page",
    CaptureFailure.ENCODING_FAILED: "The screenshot could not be converted to a thumbnail",
    CaptureFailure.UPLOAD_FAILED: "The thumbnail could not be stored",
}


class CaptureError(Exception):
    """A capture attempt failed for one of the ``CaptureFailure`` reasons.

    ``message`` depends only on the failure kind and is what gets stored on
    the bookmark; ``detail`` carries the underlying error text for logs.
    """

    def __init__(self, kind: CaptureFailure, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    @property
    def message(self) -> str:
        return FAILURE_MESSAGES[self.kind]


@dataclass(frozen=True)
class BrowserLaunchConfig:
    """Everything needed to launch and drive one headless browser."""

    viewport_width: int = 1280
    viewport_height: int = 720
    device_scale_factor: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout_seconds: float = 30.0
    settle_delay_seconds: float = 2.0
    capture_budget_seconds: float = 120.0
    headless: bool = True
    executable_path: Optional[str] = None
    args: Tuple[str, ...] = field(default=DEFAULT_BROWSER_ARGS)


@dataclass(frozen=True)
class CapturedImage:
    """Post-processed thumbnail ready for upload."""

    data: bytes
    content_type: str = "image/jpeg"
    extension: str = "jpg"
    width: Optional[int] = None
    height: Optional[int] = None


class CaptureOutcome(BaseModel):
    """Result handed back to whoever asked for a capture."""

    success: bool
    screenshot_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SweepStats:
    """Counts from one retry sweep."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }
