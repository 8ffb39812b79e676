"""Bookmark data model."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.url_utils import validate_bookmark_url

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 2000
MAX_TAGS = 20
MAX_TAG_LENGTH = 50


class ScreenshotStatus(str, Enum):
    """Lifecycle of a bookmark's thumbnail."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def validate_tag_list(v: List[str]) -> List[str]:
    """Validate tag count and length, dropping blank entries."""
    if not isinstance(v, list):
        raise ValueError("Tags must be a list")

    if len(v) > MAX_TAGS:
        raise ValueError(f"Too many tags (max {MAX_TAGS})")

    for tag in v:
        if not isinstance(tag, str):
            raise ValueError("Each tag must be a string")
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tag is too long (max {MAX_TAG_LENGTH} characters): {tag[:20]}...")

    return [t.strip() for t in v if t.strip()]


def validate_title_text(v: str) -> str:
    if not v.strip():
        raise ValueError("Title cannot be empty or whitespace")
    return v.strip()


def validate_folder_id_text(v: Optional[str]) -> Optional[str]:
    if v is not None and not v.strip():
        raise ValueError("Folder id cannot be empty")
    return v


class Bookmark(BaseModel):
    """A user-owned URL with metadata and an optional captured thumbnail."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier (UUID)",
    )
    url: str = Field(..., description="The bookmarked URL")
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    tags: List[str] = Field(default_factory=list, description="Ordered user tags")
    folder_id: Optional[str] = Field(None, description="Folder reference, None when unfiled")

    # Ownership
    user_id: str = Field(..., min_length=1, description="Owner, set once at creation")

    # Screenshot sub-record
    screenshot_url: Optional[str] = Field(None, description="Public thumbnail address")
    screenshot_path: Optional[str] = Field(
        None, description="Blob key, e.g. screenshots/{user_id}/{id}.jpg"
    )
    screenshot_status: ScreenshotStatus = Field(default=ScreenshotStatus.PENDING)
    screenshot_error: Optional[str] = Field(None, description="Last capture failure message")
    screenshot_retries: int = Field(default=0, ge=0, description="Sweeper retry counter")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "url": "https://github.com/python/cpython",
                "title": "CPython Official Repository",
                "description": "Official Python implementation source code",
                "tags": ["python", "open-source"],
                "folder_id": None,
                "user_id": "user-123",
                "screenshot_url": None,
                "screenshot_status": "pending",
                "screenshot_retries": 0,
                "created_at": "2026-02-03T10:30:00Z",
                "updated_at": "2026-02-03T10:30:00Z",
            }
        },
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return validate_bookmark_url(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title is not empty or whitespace."""
        return validate_title_text(v)

    @field_validator("description", mode="before")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> str:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> List[str]:
        return validate_tag_list(v or [])

    @field_validator("folder_id")
    @classmethod
    def validate_folder_id(cls, v: Optional[str]) -> Optional[str]:
        return validate_folder_id_text(v)

    @field_validator("screenshot_retries", mode="before")
    @classmethod
    def default_retries(cls, v: Optional[int]) -> int:
        # Records written before the counter existed carry no value
        return 0 if v is None else v

