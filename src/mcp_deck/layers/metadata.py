"""Per-image metadata ledger (``.deck-metadata``).

The file is a list of ``KEY=VALUE`` lines. Older deck versions wrote a
camelCase JSON document to the same path; such files are still readable and
are replaced by the key=value format on the next write.
"""
import json
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from mcp_deck.logging import get_logger
from mcp_deck.types import BuildStatus, ImageMetadata
from mcp_deck.utils.fs import write_text

logger = get_logger(__name__)

METADATA_FILE_NAME = ".deck-metadata"

KEYS = ("IMAGE_NAME", "CREATED_AT", "CREATED_BY", "SOURCE_CONFIG", "BUILD_STATUS", "LAST_STARTED")

# Ordinals of the build status enum used by the JSON format
_LEGACY_STATUS_ORDINALS = {1: BuildStatus.BUILT, 2: BuildStatus.RUNNING, 4: BuildStatus.FAILED}


def format_timestamp(value: Optional[datetime]) -> str:
    """ISO-8601 UTC with a ``Z`` suffix; fractional seconds only when present."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}"
    return text + "Z"


def parse_timestamp(value: str) -> Optional[datetime]:
    value = value.strip()
    if not value:
        return None
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_build_status(value: Any) -> Optional[BuildStatus]:
    if isinstance(value, int) and not isinstance(value, bool):
        return _LEGACY_STATUS_ORDINALS.get(value)
    text = str(value).strip()
    for status in BuildStatus:
        if text.lower() in (status.value.lower(), status.name.lower()):
            return status
    return None


def metadata_path(image_dir: Path) -> Path:
    return image_dir / METADATA_FILE_NAME


def serialize(metadata: ImageMetadata) -> str:
    lines = [
        f"IMAGE_NAME={metadata.image_name}",
        f"CREATED_AT={format_timestamp(metadata.created_at)}",
        f"CREATED_BY={metadata.created_by or ''}",
        f"SOURCE_CONFIG={metadata.source_config or ''}",
        f"BUILD_STATUS={metadata.build_status.value}",
        f"LAST_STARTED={format_timestamp(metadata.last_started)}",
    ]
    return "\n".join(lines) + "\n"


def parse(content: str) -> ImageMetadata:
    """Parse key=value content; unknown keys and malformed values are skipped."""
    metadata = ImageMetadata()

    for line in content.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()

        match key:
            case "IMAGE_NAME":
                metadata.image_name = value
            case "CREATED_AT":
                if (created := parse_timestamp(value)) is not None:
                    metadata.created_at = created
            case "CREATED_BY":
                metadata.created_by = value or None
            case "SOURCE_CONFIG":
                metadata.source_config = value or None
            case "BUILD_STATUS":
                if (status := parse_build_status(value)) is not None:
                    metadata.build_status = status
            case "LAST_STARTED":
                if (started := parse_timestamp(value)) is not None:
                    metadata.last_started = started

    return metadata


def parse_legacy_json(content: str) -> Optional[ImageMetadata]:
    try:
        data: Dict[str, Any] = json.loads(content)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    metadata = ImageMetadata(image_name=str(data.get("imageName") or ""))
    if isinstance(data.get("createdAt"), str):
        metadata.created_at = parse_timestamp(data["createdAt"])
    metadata.created_by = data.get("createdBy") or None
    metadata.source_config = data.get("sourceConfig") or None
    if "buildStatus" in data and (status := parse_build_status(data["buildStatus"])) is not None:
        metadata.build_status = status
    if isinstance(data.get("lastStarted"), str):
        metadata.last_started = parse_timestamp(data["lastStarted"])
    return metadata


def write_metadata(image_dir: Path, metadata: ImageMetadata) -> None:
    """Write the ledger record, overwriting any existing file."""
    write_text(metadata_path(image_dir), serialize(metadata))
    logger.debug({
        "event": "metadata_written",
        "image_dir": str(image_dir),
        "build_status": metadata.build_status.value,
    })


def read_metadata(image_dir: Path) -> Optional[ImageMetadata]:
    """Load the ledger record, or None when the image has none."""
    path = metadata_path(image_dir)
    if not path.is_file():
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning({"event": "metadata_unreadable", "path": str(path), "error": str(e)})
        return None

    if content.lstrip().startswith("{"):
        legacy = parse_legacy_json(content)
        if legacy is not None:
            logger.debug({"event": "legacy_metadata_read", "path": str(path)})
            return legacy

    return parse(content)


def update_metadata(image_dir: Path, **changes: Any) -> Optional[ImageMetadata]:
    """Apply field changes to an existing record; no-op when there is none."""
    metadata = read_metadata(image_dir)
    if metadata is None:
        return None
    metadata = replace(metadata, **changes)
    write_metadata(image_dir, metadata)
    return metadata
