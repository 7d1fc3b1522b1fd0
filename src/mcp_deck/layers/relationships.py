"""Provenance of custom configurations and images.

Images record the custom directory they were copied from. The template
behind a custom configuration is recovered from its generated name
(``<template>-001`` or ``<template>-temp-YYYYMMDD-HHMM``) when that template
still exists; hand-named configurations have no known template.
"""
import re
from pathlib import Path
from typing import Dict, Optional

from mcp_deck.containers import container_name_for
from mcp_deck.layers.permissions import protected_files, validate_image_directory_name
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.layers.transitions import validate_configuration
from mcp_deck.logging import get_logger
from mcp_deck.types import Layer, ResourceDescriptor, ResourceDetail, ResourceRelationship

logger = get_logger(__name__)

TEMPLATE_DERIVED_NAMES = (
    re.compile(r"^(?P<template>.+)-temp-\d{8}-\d{4}(?:-\d+)?$"),
    re.compile(r"^(?P<template>.+)-\d{3}$"),
)


def source_template(repository: LayerRepository, custom_name: str) -> Optional[str]:
    for pattern in TEMPLATE_DERIVED_NAMES:
        match = pattern.fullmatch(custom_name)
        if match and repository.exists(Layer.TEMPLATE, match["template"]):
            return match["template"]
    return None


def relationship_for(repository: LayerRepository, resource: ResourceDescriptor) -> Optional[ResourceRelationship]:
    match resource.layer:
        case Layer.CUSTOM:
            return ResourceRelationship(
                name=resource.name,
                layer=Layer.CUSTOM,
                source_template=source_template(repository, resource.name),
            )
        case Layer.IMAGE:
            source = resource.metadata.source_config if resource.metadata is not None else None
            custom = Path(source).name if source else None
            return ResourceRelationship(
                name=resource.name,
                layer=Layer.IMAGE,
                source_custom=custom,
                source_template=source_template(repository, custom) if custom else None,
                container_name=container_name_for(resource.name, repository.config.container_prefix),
            )
    return None


def resource_relationships(repository: LayerRepository) -> Dict[str, ResourceRelationship]:
    """Image name to its source custom configuration and template."""
    relationships = {
        image.name: relationship_for(repository, image) for image in repository.list_images()
    }
    logger.debug({"event": "relationships_resolved", "count": len(relationships)})
    return relationships


def resource_detail(repository: LayerRepository, layer: Layer, name: str) -> Optional[ResourceDetail]:
    """Everything known about one entry, or None when it does not exist."""
    if not repository.exists(layer, name):
        return None
    resource = repository.get(layer, name)
    if resource is None:
        logger.warning({"event": "resource_not_listed", "layer": layer.value, "name": name})
        return None

    detail = dict(
        resource=resource,
        configuration=validate_configuration(resource.path),
        file_count=sum(1 for p in resource.path.rglob("*") if p.is_file()),
        relationship=relationship_for(repository, resource),
    )
    if layer == Layer.IMAGE:
        detail.update(
            name_check=validate_image_directory_name(name),
            protected_files=protected_files(resource.path),
        )
    return ResourceDetail(**detail)
