"""MCP server implementation."""
import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.models import InitializationOptions
from mcp.server import stdio

from mcp_deck.config import DeckConfig, load_config
from mcp_deck.containers import ContainerEngine
from mcp_deck.errors import DeckError, NotFoundError, ValidationFailureError, log_error
from mcp_deck.layers.metadata import format_timestamp
from mcp_deck.layers.naming import validate_layer_name
from mcp_deck.layers.permissions import apply_runtime_env_changes, check_file_operation
from mcp_deck.layers.relationships import resource_detail, resource_relationships
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.layers.transitions import TransitionEngine
from mcp_deck.logging import configure_logging, get_logger
from mcp_deck.retention.engine import RetentionEngine
from mcp_deck.retention.options import CleaningOption, describe_strategy
from mcp_deck.types import (
    CleaningOperation,
    CleaningType,
    FileOperation,
    Layer,
    ResourceDescriptor,
    ResourceDetail,
    ResourceRelationship,
    WorkflowMode,
    WorkflowResult,
)
from mcp_deck.workflows.orchestrator import WorkflowOrchestrator

logger = get_logger("server")

SERVER_NAME = "mcp-deck"
SERVER_VERSION = "0.1.0"

tools = [
    types.Tool(
        name="deck_list",
        description="List templates, custom configurations and images of the .deck directory",
        inputSchema={
            "type": "object",
            "properties": {
                "layer": {
                    "type": "string",
                    "enum": ["templates", "custom", "images"],
                    "description": "Only list this layer",
                }
            },
        },
    ),
    types.Tool(
        name="deck_create_custom",
        description="Create an editable custom configuration from a template",
        inputSchema={
            "type": "object",
            "properties": {
                "template": {"type": "string", "description": "Template name"},
                "name": {"type": "string", "description": "Custom configuration name"},
            },
            "required": ["template"],
        },
    ),
    types.Tool(
        name="deck_create_image",
        description="Create an image from a complete custom configuration",
        inputSchema={
            "type": "object",
            "properties": {
                "custom": {"type": "string", "description": "Custom configuration name"},
                "image": {"type": "string", "description": "Image name"},
            },
            "required": ["custom", "image"],
        },
    ),
    types.Tool(
        name="deck_resource_detail",
        description="Show configuration state, provenance and protected files of one entry",
        inputSchema={
            "type": "object",
            "properties": {
                "layer": {"type": "string", "enum": ["templates", "custom", "images"]},
                "name": {"type": "string"},
            },
            "required": ["layer", "name"],
        },
    ),
    types.Tool(
        name="deck_relationships",
        description="Map every image to the custom configuration and template it came from",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="deck_check_image_file",
        description="Check whether a file operation inside an image directory is allowed",
        inputSchema={
            "type": "object",
            "properties": {
                "file": {"type": "string", "description": "File name inside the image"},
                "operation": {"type": "string", "enum": [o.name.lower() for o in FileOperation]},
            },
            "required": ["file", "operation"],
        },
    ),
    types.Tool(
        name="deck_set_image_env",
        description="Change runtime variables in the .env of an image; build-time variables are refused",
        inputSchema={
            "type": "object",
            "properties": {
                "image": {"type": "string", "description": "Image name"},
                "variables": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                    "description": "Variables to set",
                },
            },
            "required": ["image", "variables"],
        },
    ),
    types.Tool(
        name="deck_cleaning_options",
        description="Show the cleaning options of every layer with a recommendation",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="deck_retention_plan",
        description="Plan which images to keep and which to remove",
        inputSchema={
            "type": "object",
            "properties": {
                "keep_count": {"type": "integer", "description": "Images to keep per project"}
            },
        },
    ),
    types.Tool(
        name="deck_clean",
        description="Delete images or custom configurations; templates are never deleted",
        inputSchema={
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": [t.name.lower() for t in CleaningType],
                    "description": "What to clean",
                },
                "items": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Names to delete",
                },
                "dry_run": {"type": "boolean", "description": "Only report what would be deleted"},
            },
            "required": ["type"],
        },
    ),
]

start_tool = types.Tool(
    name="deck_start",
    description="Start a development container from an image, custom configuration or template",
    inputSchema={
        "type": "object",
        "properties": {
            "image": {"type": "string", "description": "Image name"},
            "custom": {"type": "string", "description": "Custom configuration name"},
            "template": {"type": "string", "description": "Template name"},
            "mode": {
                "type": "string",
                "enum": ["editable", "direct_build"],
                "description": "Template workflow mode",
            },
        },
    },
)


@dataclass
class Deck:
    """Services wired to one .deck directory"""
    config: DeckConfig
    repository: LayerRepository
    transitions: TransitionEngine
    retention: RetentionEngine
    orchestrator: Optional[WorkflowOrchestrator] = None


def create_deck(config: DeckConfig, engine: Optional[ContainerEngine] = None) -> Deck:
    repository = LayerRepository(config)
    transitions = TransitionEngine(repository)
    return Deck(
        config=config,
        repository=repository,
        transitions=transitions,
        retention=RetentionEngine(repository, engine),
        orchestrator=WorkflowOrchestrator(repository, engine, transitions) if engine is not None else None,
    )


def describe_resource(resource: ResourceDescriptor) -> Dict[str, Any]:
    data = {
        "name": resource.name,
        "layer": resource.layer.value,
        "path": str(resource.path),
        "available": resource.available,
        "last_modified": resource.last_modified.isoformat(),
        "project_type": resource.project_type.value,
        "size_bytes": resource.size_bytes,
    }
    if resource.metadata is not None:
        data["metadata"] = {
            "created_at": format_timestamp(resource.metadata.created_at),
            "created_by": resource.metadata.created_by,
            "source_config": resource.metadata.source_config,
            "build_status": resource.metadata.build_status.value,
            "last_started": format_timestamp(resource.metadata.last_started) or None,
        }
    return data


def describe_option(option: CleaningOption) -> Dict[str, Any]:
    return {
        "id": option.id,
        "name": option.display_name,
        "description": option.description,
        "layer": option.layer.value,
        "strategy": describe_strategy(option.strategy),
        "warning_level": option.warning_level.name,
        "estimated_count": option.estimated_count,
    }


def describe_workflow(result: WorkflowResult) -> Dict[str, Any]:
    return {
        "run_id": result.run_id,
        "action": result.action.name if result.action else None,
        "template": result.template_name,
        "custom": result.custom_name,
        "image": result.image_name,
        "container": result.container_name,
        "is_complete": result.is_complete,
        "messages": result.messages,
        "errors": result.errors,
    }


def describe_relationship(relationship: Optional[ResourceRelationship]) -> Optional[Dict[str, Any]]:
    if relationship is None:
        return None
    return {
        "layer": relationship.layer.value,
        "source_custom": relationship.source_custom,
        "source_template": relationship.source_template,
        "container": relationship.container_name,
    }


def describe_detail(detail: ResourceDetail) -> Dict[str, Any]:
    data = describe_resource(detail.resource)
    data.update({
        "configuration": {
            "status": detail.configuration.status.name,
            "missing_files": detail.configuration.missing_files,
        },
        "file_count": detail.file_count,
        "relationship": describe_relationship(detail.relationship),
    })
    if detail.name_check is not None:
        data["name_check"] = {
            "is_valid": detail.name_check.is_valid,
            "prefix": detail.name_check.prefix,
            "errors": detail.name_check.errors,
            "suggested_name": detail.name_check.suggested_name,
        }
        data["protected_files"] = detail.protected_files
    return data


def _layer(raw: str) -> Layer:
    try:
        return Layer(raw)
    except ValueError:
        raise ValidationFailureError(f"Unknown layer: {raw}", {"layer": raw})


def _set_image_env(deck: Deck, arguments: Dict[str, Any]) -> Dict[str, Any]:
    image = validate_layer_name(arguments["image"], "image")
    if not deck.repository.exists(Layer.IMAGE, image):
        raise NotFoundError("Image", image)

    report = apply_runtime_env_changes(deck.repository.path_for(Layer.IMAGE, image), arguments["variables"])
    return {"success": True, "data": {"image": image, "updated": report.allowed}}


def _clean(deck: Deck, arguments: Dict[str, Any]) -> Dict[str, Any]:
    raw_type = arguments["type"]
    if raw_type.upper() not in CleaningType.__members__:
        raise ValidationFailureError(f"Unknown cleaning type: {raw_type}", {"type": raw_type})
    cleaning_type = CleaningType[raw_type.upper()]

    op = CleaningOperation(
        cleaning_type, arguments.get("items", []), dry_run=bool(arguments.get("dry_run", False))
    )
    warnings = deck.retention.get_cleaning_warnings(op.type, op.items)
    if op.type != CleaningType.TEMPLATES and not deck.retention.validate_cleaning_operation(op):
        raise ValidationFailureError(
            "Cleaning request names unknown items or no items at all",
            {"type": op.type.name, "items": sorted(op.items)},
        )

    result = deck.retention.execute_cleaning(op)
    return {
        "success": result.success,
        "data": {
            "dry_run": result.dry_run,
            "removed": result.removed,
            "planned": result.planned,
            "messages": result.messages,
            "warnings": [
                {"level": w.level.name, "message": w.message, "items": w.affected_items}
                for w in warnings
            ],
        },
    }


def _start(deck: Deck, arguments: Dict[str, Any]) -> Dict[str, Any]:
    if "image" in arguments:
        result = deck.orchestrator.run_image_workflow(arguments["image"], arguments.get("custom"))
    elif "custom" in arguments:
        result = deck.orchestrator.run_custom_workflow(arguments["custom"])
    elif "template" in arguments:
        raw_mode = arguments.get("mode", "editable")
        if raw_mode.upper() not in WorkflowMode.__members__:
            raise ValidationFailureError(f"Unknown workflow mode: {raw_mode}", {"mode": raw_mode})
        mode = WorkflowMode[raw_mode.upper()]
        result = deck.orchestrator.run_template_workflow(arguments["template"], mode)
    else:
        raise ValidationFailureError("deck_start needs an image, custom or template name")
    return {"success": result.success, "data": describe_workflow(result)}


def dispatch(deck: Deck, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Run one tool call and return its JSON-ready response."""
    match name:
        case "deck_list":
            deck.repository.ensure_initialized()
            layer = arguments.get("layer")
            resources = (
                deck.repository.list_all() if layer is None else deck.repository.list_layer(_layer(layer))
            )
            return {"success": True, "data": [describe_resource(r) for r in resources]}

        case "deck_create_custom":
            deck.repository.ensure_initialized()
            custom = deck.transitions.promote_template_to_custom(
                arguments["template"], arguments.get("name")
            )
            return {"success": True, "data": {"custom": custom}}

        case "deck_create_image":
            custom = validate_layer_name(arguments["custom"], "custom configuration")
            custom_dir = deck.repository.path_for(Layer.CUSTOM, custom)
            image_dir = deck.transitions.promote_custom_to_image(arguments["image"], custom_dir)
            return {"success": True, "data": {"image": arguments["image"], "path": str(image_dir)}}

        case "deck_resource_detail":
            layer = _layer(arguments["layer"])
            detail = resource_detail(deck.repository, layer, arguments["name"])
            if detail is None:
                raise NotFoundError(layer.value, arguments["name"])
            return {"success": True, "data": describe_detail(detail)}

        case "deck_relationships":
            return {"success": True, "data": {
                image: describe_relationship(relationship)
                for image, relationship in resource_relationships(deck.repository).items()
            }}

        case "deck_check_image_file":
            raw_operation = arguments["operation"]
            if raw_operation.upper() not in FileOperation.__members__:
                raise ValidationFailureError(
                    f"Unknown file operation: {raw_operation}", {"operation": raw_operation}
                )
            decision = check_file_operation(arguments["file"], FileOperation[raw_operation.upper()])
            return {"success": True, "data": {
                "file": decision.file_name,
                "operation": decision.operation.name,
                "permission": decision.permission.name,
                "reason": decision.reason,
                "alternatives": decision.alternatives,
            }}

        case "deck_set_image_env":
            return _set_image_env(deck, arguments)

        case "deck_cleaning_options":
            options = deck.retention.get_cleaning_options()
            return {"success": True, "data": {
                "templates": [describe_option(o) for o in options.template_options],
                "custom": [describe_option(o) for o in options.custom_options],
                "images": [describe_option(o) for o in options.image_options],
                "recommendation": {
                    "summary": options.recommendation.summary,
                    "actions": options.recommendation.actions,
                    "warnings": options.recommendation.warnings,
                },
            }}

        case "deck_retention_plan":
            plan = deck.retention.plan_images(arguments.get("keep_count"))
            return {"success": True, "data": {
                "groups": {prefix: [r.name for r in group] for prefix, group in plan.groups.items()},
                "keep": [r.name for r in plan.to_keep],
                "remove": [r.name for r in plan.to_remove],
                "space_to_free_bytes": plan.space_to_free_bytes,
            }}

        case "deck_clean":
            return _clean(deck, arguments)

        case "deck_start" if deck.orchestrator is not None:
            return _start(deck, arguments)

    return {"success": False, "error": f"Unknown tool: {name}"}


async def handle_tool_call(
    deck: Deck, name: str, arguments: Dict[str, Any]
) -> List[types.TextContent]:
    logger.debug({"event": "tool_call_received", "tool": name, "arguments": arguments})
    try:
        response = dispatch(deck, name, arguments or {})
    except DeckError as e:
        log_error(e, {"tool": name})
        response = {"success": False, "error": str(e), "code": e.code, "details": e.details}
    except KeyError as e:
        response = {"success": False, "error": f"Missing argument: {e.args[0]}"}
    except Exception as e:
        log_error(e, {"tool": name})
        response = {"success": False, "error": str(e)}

    return [types.TextContent(type="text", text=json.dumps(response))]


async def init_server(
    config: Optional[DeckConfig] = None, engine: Optional[ContainerEngine] = None
) -> Server:
    deck = create_deck(config or load_config(), engine)
    available = tools + ([start_tool] if deck.orchestrator is not None else [])
    logger.info({"event": "tools_registered", "tools": [t.name for t in available]})

    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        logger.debug("Tools requested")
        return available

    @server.call_tool()
    async def call_tool(
        name: str, arguments: Dict[str, Any]
    ) -> list[types.TextContent | types.ImageContent | types.EmbeddedResource]:
        return await handle_tool_call(deck, name, arguments)

    return server


async def serve(project_root: Optional[Path] = None) -> None:
    config = load_config(project_root)
    configure_logging(config.log_level)
    logger.info({"event": "server_starting", "deck_dir": str(config.deck_dir)})
    server = await init_server(config)
    async with stdio.stdio_server() as (read_stream, write_stream):
        init_options = InitializationOptions(
            server_name=SERVER_NAME,
            server_version=SERVER_VERSION,
            capabilities=types.ServerCapabilities(
                tools=types.ToolsCapability(listChanged=False),
                logging=types.LoggingCapability(),
            ),
        )
        await server.run(read_stream, write_stream, init_options)


def main() -> None:
    """Run the MCP server."""
    asyncio.run(serve())
