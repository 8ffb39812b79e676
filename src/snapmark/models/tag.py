"""Tag popularity counter model."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9-]")


def normalize_tag_id(tag: str) -> str:
    """Derive the document id for a tag display name.

    Example:
        "Machine Learning!" -> "machine-learning"
    """
    slug = _WHITESPACE.sub("-", tag.lower().strip())
    return _NON_SLUG.sub("", slug)


class Tag(BaseModel):
    """Denormalized count of bookmarks carrying a tag."""

    name: str = Field(..., description="Display casing of the most recent attach")
    count: int = Field(default=0, description="May dip below 1; hidden from readers then")
    updated_at: Optional[datetime] = None
