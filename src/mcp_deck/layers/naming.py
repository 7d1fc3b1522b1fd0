"""Name allocation for custom configurations and images.

All functions read the layer directory at call time and never create
anything; the .deck tree is assumed to have a single writer.
"""
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from mcp_deck.errors import ValidationFailureError
from mcp_deck.logging import get_logger

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M"
TIMESTAMP_SUFFIX = re.compile(r"^(.+)-\d{8}-\d{4}$")
IMAGE_NAME_SUFFIX = "-build"
LAYER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_valid_layer_name(name: str) -> bool:
    """Single path component made of letters, digits, dots, dashes and underscores."""
    return isinstance(name, str) and LAYER_NAME_PATTERN.fullmatch(name) is not None


def validate_layer_name(name: str, kind: str) -> str:
    if not is_valid_layer_name(name):
        raise ValidationFailureError(
            f"Invalid {kind} name: {name!r}",
            details={"kind": kind, "name": name, "pattern": LAYER_NAME_PATTERN.pattern},
        )
    return name


def generate_unique_custom_name(base: str, custom_root: Path) -> str:
    """First of ``base-001``, ``base-002``, ... absent from custom_root."""
    counter = 1
    name = f"{base}-{counter:03d}"
    while (custom_root / name).exists():
        counter += 1
        name = f"{base}-{counter:03d}"

    logger.debug({"event": "custom_name_allocated", "base": base, "name": name})
    return name


def generate_timestamped_name(base: str, now: Optional[datetime] = None) -> str:
    """``base-YYYYMMDD-HHMM`` at minute granularity."""
    now = now or datetime.now()
    return f"{base}-{now.strftime(TIMESTAMP_FORMAT)}"


def allocate_timestamped_name(
    base: str, layer_root: Path, now: Optional[datetime] = None
) -> str:
    """Timestamped name that does not exist yet in layer_root.

    A second call within the same minute gets ``-2``, ``-3``, ... appended.
    """
    name = generate_timestamped_name(base, now)
    candidate = name
    counter = 1
    while (layer_root / candidate).exists():
        counter += 1
        candidate = f"{name}-{counter}"

    if candidate != name:
        logger.info({"event": "timestamped_name_collision", "name": name, "allocated": candidate})
    return candidate


def generate_image_name(base: str) -> str:
    """Image name for the direct-build shortcut."""
    return f"{base}{IMAGE_NAME_SUFFIX}"


def extract_prefix(name: str) -> str:
    """Strip a trailing ``-YYYYMMDD-HHMM``; names without one are their own prefix."""
    match = TIMESTAMP_SUFFIX.match(name)
    return match.group(1) if match else name
