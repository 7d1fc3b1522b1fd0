"""Template, custom and image layers of the .deck directory."""
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.layers.transitions import TransitionEngine, validate_configuration
from mcp_deck.layers.metadata import read_metadata, write_metadata, update_metadata
from mcp_deck.layers.naming import (
    generate_unique_custom_name,
    generate_timestamped_name,
    allocate_timestamped_name,
    generate_image_name,
    extract_prefix,
    is_valid_layer_name,
    validate_layer_name,
)
from mcp_deck.layers.permissions import (
    apply_runtime_env_changes,
    check_file_operation,
    validate_image_directory_name,
)
from mcp_deck.layers.relationships import resource_detail, resource_relationships

__all__ = [
    "LayerRepository",
    "TransitionEngine",
    "validate_configuration",
    "read_metadata",
    "write_metadata",
    "update_metadata",
    "generate_unique_custom_name",
    "generate_timestamped_name",
    "allocate_timestamped_name",
    "generate_image_name",
    "extract_prefix",
    "is_valid_layer_name",
    "validate_layer_name",
    "apply_runtime_env_changes",
    "check_file_operation",
    "validate_image_directory_name",
    "resource_detail",
    "resource_relationships",
]
