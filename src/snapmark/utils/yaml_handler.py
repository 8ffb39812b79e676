"""YAML serialization utilities for stored documents."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict

import yaml


class YAMLError(Exception):
    """YAML processing error."""

    pass


def to_storable(value: Any) -> Any:
    """Convert a value into something ``yaml.safe_dump`` accepts.

    Datetimes become UTC ISO-8601 strings, enums their values; containers
    are converted recursively.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storable(v) for v in value]
    return value


def serialize_document(data: Dict[str, Any]) -> str:
    """Serialize a document dict to a YAML string.

    Raises:
        YAMLError: If serialization fails
    """
    try:
        return yaml.safe_dump(
            to_storable(data),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    except Exception as e:
        raise YAMLError(f"Failed to serialize document: {e}") from e


def deserialize_document(yaml_str: str) -> Dict[str, Any]:
    """Deserialize a document dict from a YAML string.

    Raises:
        YAMLError: If the content is empty, invalid, or not a mapping
    """
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise YAMLError(f"Invalid YAML format: {e}") from e

    if data is None:
        raise YAMLError("YAML content is empty")

    if not isinstance(data, dict):
        raise YAMLError(f"Expected a mapping, got {type(data).__name__}")

    return data


def load_document_from_file(file_path: Path) -> Dict[str, Any]:
    """Load a document from a YAML file.

    Raises:
        YAMLError: If file reading or parsing fails
    """
    try:
        if not file_path.exists():
            raise YAMLError(f"File not found: {file_path}")

        yaml_str = file_path.read_text(encoding="utf-8")
        return deserialize_document(yaml_str)

    except YAMLError:
        raise
    except Exception as e:
        raise YAMLError(f"Failed to load document from {file_path}: {e}") from e


def save_document_to_file(data: Dict[str, Any], file_path: Path) -> None:
    """Save a document to a YAML file.

    The content is written to a temporary sibling first and moved into
    place, so readers never observe a half-written document.

    Raises:
        YAMLError: If file writing fails
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        yaml_str = serialize_document(data)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        tmp_path.write_text(yaml_str, encoding="utf-8")
        tmp_path.replace(file_path)

    except YAMLError:
        raise
    except Exception as e:
        raise YAMLError(f"Failed to save document to {file_path}: {e}") from e
