"""Three-layer development environment manager."""

from mcp_deck.types import (
    Layer,
    BuildStatus,
    CleaningType,
    CleaningOperation,
    CleaningResult,
    ContainerStatus,
    ContainerAction,
    ImageMetadata,
    ResourceDescriptor,
    RetentionPlan,
    WorkflowResult,
)
from mcp_deck.config import DeckConfig, load_config
from mcp_deck.errors import (
    DeckError,
    NotFoundError,
    CollisionError,
    IncompleteConfigurationError,
    ValidationFailureError,
    TransientIOError,
    ExecutionFailureError,
)

__version__ = "0.1.0"

__all__ = [
    # Types
    "Layer",
    "BuildStatus",
    "CleaningType",
    "CleaningOperation",
    "CleaningResult",
    "ContainerStatus",
    "ContainerAction",
    "ImageMetadata",
    "ResourceDescriptor",
    "RetentionPlan",
    "WorkflowResult",

    # Configuration
    "DeckConfig",
    "load_config",

    # Error types
    "DeckError",
    "NotFoundError",
    "CollisionError",
    "IncompleteConfigurationError",
    "ValidationFailureError",
    "TransientIOError",
    "ExecutionFailureError",
]
