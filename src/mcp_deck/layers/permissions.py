"""Write protection inside the image layer.

An image directory is a snapshot of the custom configuration it was built
from. Its build files stay as they were; afterwards only the runtime
variables of its .env may change.
"""
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from mcp_deck.errors import ValidationFailureError
from mcp_deck.layers.naming import TIMESTAMP_FORMAT, extract_prefix
from mcp_deck.logging import get_logger
from mcp_deck.types import (
    EnvChangeReport,
    EnvVariableCheck,
    EnvVariableType,
    FileOperation,
    ImageNameCheck,
    PermissionDecision,
    PermissionLevel,
)
from mcp_deck.utils.fs import set_env_value

logger = get_logger(__name__)

ENV_FILE_NAME = ".env"

RUNTIME_VARIABLES = frozenset({
    "DEV_PORT",
    "DEBUG_PORT",
    "PROJECT_NAME",
    "WORKSPACE_PATH",
    "CONTAINER_NAME",
    "NETWORK_NAME",
    "VOLUME_PREFIX",
})
SYSTEM_VARIABLES = frozenset({"PATH", "HOME", "USER", "SHELL"})

# compared lowercased
PROTECTED_CONFIG_FILES = frozenset({
    "compose.yaml",
    "compose.yml",
    "docker-compose.yaml",
    "docker-compose.yml",
    "dockerfile",
    "dockerfile.dev",
    "dockerfile.prod",
    ".dockerignore",
    "metadata.json",
    ".deck-metadata",
})

IMAGE_ALTERNATIVES = (
    "Change build settings in a custom configuration and create a new image from it",
    "Change runtime settings through the runtime variables of .env",
)

IMAGE_NAME_FORMAT = re.compile(r"^(?P<prefix>[A-Za-z0-9_-]+)-(?P<date>\d{8})-(?P<time>\d{4})$")


def is_protected_config_file(file_name: str) -> bool:
    return Path(file_name).name.lower() in PROTECTED_CONFIG_FILES


def check_file_operation(file_path: str, operation: FileOperation) -> PermissionDecision:
    """Decide whether operation on a file of an image directory is allowed.

    Reading is always allowed. Protected build files can never be changed,
    created, moved or deleted. The .env file may be edited but not removed.
    Anything else is the user's own file.
    """
    name = Path(file_path).name

    def decide(permission: PermissionLevel, reason: str, alternatives=()) -> PermissionDecision:
        return PermissionDecision(name, operation, permission, reason, list(alternatives))

    if operation == FileOperation.READ:
        return decide(PermissionLevel.ALLOWED, "Reading is always allowed")

    if is_protected_config_file(name):
        if operation == FileOperation.CREATE:
            return decide(PermissionLevel.DENIED, f"{name} would replace a protected build file")
        return decide(
            PermissionLevel.DENIED,
            f"{name} is part of the build snapshot and cannot be changed",
            IMAGE_ALTERNATIVES,
        )

    if name.lower() == ENV_FILE_NAME:
        match operation:
            case FileOperation.DELETE | FileOperation.MOVE:
                return decide(
                    PermissionLevel.DENIED,
                    f"{name} holds the image environment; edit it instead",
                )
            case _:
                return decide(
                    PermissionLevel.WARNING,
                    "Only runtime variables may change: " + ", ".join(sorted(RUNTIME_VARIABLES)),
                    IMAGE_ALTERNATIVES[:1],
                )

    match operation:
        case FileOperation.DELETE:
            return decide(PermissionLevel.WARNING, "Make sure the project does not need this file")
        case FileOperation.MOVE:
            return decide(PermissionLevel.WARNING, "Moving the file can break paths that refer to it")
        case _:
            return decide(PermissionLevel.ALLOWED, "Regular project file")


def check_env_variable(name: str, value: str) -> EnvVariableCheck:
    key = name.upper()
    if key in RUNTIME_VARIABLES:
        variable_type, permission, reason = (
            EnvVariableType.RUNTIME, PermissionLevel.ALLOWED, "Runtime variable"
        )
    elif key in SYSTEM_VARIABLES:
        variable_type, permission, reason = (
            EnvVariableType.SYSTEM, PermissionLevel.DENIED, "System variable managed by deck"
        )
    else:
        variable_type, permission, reason = (
            EnvVariableType.BUILD_TIME,
            PermissionLevel.DENIED,
            "Build-time variable; change it in the custom configuration and create a new image",
        )

    if "\n" in value or "\r" in value:
        permission, reason = PermissionLevel.DENIED, "Values must fit on one line"
    return EnvVariableCheck(name, value, variable_type, permission, reason)


def check_env_changes(changes: Dict[str, str]) -> EnvChangeReport:
    return EnvChangeReport(
        checks=[check_env_variable(name, str(value)) for name, value in changes.items()]
    )


def apply_runtime_env_changes(image_dir: Path, changes: Dict[str, str]) -> EnvChangeReport:
    """Write runtime variables into an image .env.

    Nothing is written when any variable is refused.
    """
    report = check_env_changes(changes)
    if not report.is_valid:
        logger.warning({
            "event": "image_env_change_refused",
            "image_dir": str(image_dir),
            "denied": report.denied,
        })
        raise ValidationFailureError(
            f"Refused to change {', '.join(report.denied)} in {Path(image_dir).name}",
            {"denied": {c.name: c.reason for c in report.checks if c.name in report.denied}},
        )

    env_file = Path(image_dir) / ENV_FILE_NAME
    for check in report.checks:
        set_env_value(env_file, check.name.upper(), check.value)
    report.applied = True

    logger.info({"event": "image_env_updated", "image_dir": str(image_dir), "variables": report.allowed})
    return report


def protected_files(image_dir: Path) -> List[str]:
    """Protected build files present at the top of an image directory."""
    image_dir = Path(image_dir)
    if not image_dir.is_dir():
        return []
    return sorted(p.name for p in image_dir.iterdir() if p.is_file() and is_protected_config_file(p.name))


def validate_image_directory_name(name: str, now: Optional[datetime] = None) -> ImageNameCheck:
    match = IMAGE_NAME_FORMAT.fullmatch(name or "")
    if match:
        try:
            created_at = datetime.strptime(f"{match['date']}-{match['time']}", TIMESTAMP_FORMAT)
        except ValueError:
            created_at = None
        return ImageNameCheck(name, True, prefix=match["prefix"], created_at=created_at)

    if not name or not name.strip():
        return ImageNameCheck(name, False, errors=["Name is empty"])

    errors = []
    parts = name.split("-")
    if len(parts) == 1:
        errors.append("Name has no '-' separator")
    elif len(parts) < 3:
        errors.append("Expected prefix-YYYYMMDD-HHMM")
    else:
        if not (len(parts[-2]) == 8 and parts[-2].isdigit()):
            errors.append("Date part must be YYYYMMDD")
        if not (len(parts[-1]) == 4 and parts[-1].isdigit()):
            errors.append("Time part must be HHMM")
    if not errors:
        errors.append("Prefix may only contain letters, digits, '_' and '-'")

    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return ImageNameCheck(name, False, errors=errors, suggested_name=f"{extract_prefix(name)}-{stamp}")
