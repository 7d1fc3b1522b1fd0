"""Workflows that take a configuration from any layer to a running container.

For an image the container state decides what happens:

    RUNNING    -> ENTER            only the start time is recorded
    STOPPED    -> RESTART          the existing container is started
    NOT_FOUND  -> BUILD_AND_START  built from the image directory, which is
                                   first promoted from a custom config when
                                   it does not exist yet

Partial effects of a failed workflow stay on disk; the result carries the
message trail up to the failure.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

from fuuid import b58_fuuid

from mcp_deck.containers import ContainerEngine, container_name_for
from mcp_deck.errors import (
    DeckError,
    IncompleteConfigurationError,
    NotFoundError,
    log_error,
)
from mcp_deck.layers.metadata import read_metadata, update_metadata, write_metadata
from mcp_deck.layers.naming import (
    allocate_timestamped_name,
    generate_image_name,
    validate_layer_name,
)
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.layers.transitions import TransitionEngine, validate_configuration
from mcp_deck.logging import get_logger
from mcp_deck.types import (
    BuildStatus,
    ConfigStatus,
    ContainerAction,
    ContainerStatus,
    ImageMetadata,
    Layer,
    WorkflowMode,
    WorkflowResult,
)

logger = get_logger(__name__)

ACTIONS = {
    ContainerStatus.RUNNING: ContainerAction.ENTER,
    ContainerStatus.STOPPED: ContainerAction.RESTART,
    ContainerStatus.NOT_FOUND: ContainerAction.BUILD_AND_START,
}


def decide_action(status: ContainerStatus) -> ContainerAction:
    return ACTIONS[status]


def configuration_chain(
    template_name: Optional[str] = None,
    custom_name: Optional[str] = None,
    image_name: Optional[str] = None,
) -> str:
    """Render the path a configuration took, e.g. ``Templates: a → Custom: b``."""
    parts = []
    if template_name:
        parts.append(f"Templates: {template_name}")
    if custom_name:
        parts.append(f"Custom: {custom_name}")
    if image_name:
        parts.append(f"Images: {image_name}")
    return " → ".join(parts)


class WorkflowOrchestrator:
    def __init__(
        self,
        repository: LayerRepository,
        engine: ContainerEngine,
        transitions: Optional[TransitionEngine] = None,
    ):
        self.repository = repository
        self.engine = engine
        self.transitions = transitions or TransitionEngine(repository)
        self._handlers: Dict[ContainerAction, Callable[[WorkflowResult, Optional[str]], None]] = {
            ContainerAction.ENTER: self._enter,
            ContainerAction.RESTART: self._restart,
            ContainerAction.BUILD_AND_START: self._build_and_start,
        }

    def container_name(self, image_name: str) -> str:
        return container_name_for(image_name, self.repository.config.container_prefix)

    def _new_result(self, **fields) -> WorkflowResult:
        return WorkflowResult(run_id=b58_fuuid(), **fields)

    def _fail(self, result: WorkflowResult, error: Exception) -> WorkflowResult:
        log_error(error, {
            "run_id": result.run_id,
            "template": result.template_name,
            "custom": result.custom_name,
            "image": result.image_name,
        })
        result.success = False
        result.errors.append(str(error))
        return result

    def run_image_workflow(
        self, image_name: str, source_custom: Optional[str] = None
    ) -> WorkflowResult:
        """Enter, restart or build the container of an image.

        source_custom names the custom configuration to promote when neither
        the container nor the image directory exists.
        """
        result = self._new_result(image_name=image_name, container_name=self.container_name(image_name))
        try:
            validate_layer_name(image_name, "image")
            if source_custom is not None:
                validate_layer_name(source_custom, "custom configuration")
            status = self.engine.detect_status(result.container_name)
            result.action = decide_action(status)
            logger.info({
                "event": "workflow_action_chosen",
                "run_id": result.run_id,
                "image": image_name,
                "status": status.name,
                "action": result.action.name,
            })
            self._handlers[result.action](result, source_custom)
        except (DeckError, OSError) as e:
            return self._fail(result, e)
        return result

    def _enter(self, result: WorkflowResult, _source_custom: Optional[str]) -> None:
        self._record_start(self.repository.path_for(Layer.IMAGE, result.image_name), result)
        result.success = True
        result.is_complete = True
        result.messages.append(f"Container {result.container_name} is running, entering it")

    def _restart(self, result: WorkflowResult, _source_custom: Optional[str]) -> None:
        started = self.engine.start(result.container_name)
        if started.message:
            result.messages.append(started.message)
        if not started.success:
            result.errors.append(f"Failed to start container {result.container_name}")
            return

        self._record_start(self.repository.path_for(Layer.IMAGE, result.image_name), result)
        result.success = True
        result.is_complete = True
        result.messages.append(f"Container {result.container_name} restarted")

    def _build_and_start(self, result: WorkflowResult, source_custom: Optional[str]) -> None:
        image_dir = self.repository.path_for(Layer.IMAGE, result.image_name)
        if not image_dir.is_dir():
            if source_custom is None:
                result.errors.append(
                    f"Image {result.image_name} does not exist and no custom configuration was given"
                )
                return
            custom_dir = self.repository.path_for(Layer.CUSTOM, source_custom)
            self.transitions.promote_custom_to_image(result.image_name, custom_dir)
            result.custom_name = source_custom
            result.messages.append(f"Created image {result.image_name} from {source_custom}")

        self._start_image(image_dir, result)

    def _start_image(self, image_dir: Path, result: WorkflowResult) -> None:
        logger.info({
            "event": "container_build_started",
            "run_id": result.run_id,
            "image_dir": str(image_dir),
            "container": result.container_name,
        })
        built = self.engine.build_and_start(image_dir, result.container_name)
        if built.message:
            result.messages.append(built.message)

        if not built.success:
            self._set_metadata(image_dir, result.image_name, build_status=BuildStatus.FAILED)
            result.errors.append(f"Failed to build and start {result.container_name}")
            logger.error({
                "event": "container_build_failed",
                "run_id": result.run_id,
                "container": result.container_name,
            })
            return

        self._record_start(image_dir, result, build_status=BuildStatus.RUNNING)
        result.success = True
        result.is_complete = True
        result.messages.append(f"Container {result.container_name} is up")

    def _record_start(
        self, image_dir: Path, result: WorkflowResult, build_status: Optional[BuildStatus] = None
    ) -> None:
        changes = {"last_started": datetime.now(timezone.utc)}
        if build_status is not None:
            changes["build_status"] = build_status
        self._set_metadata(image_dir, result.image_name, **changes)

    def _set_metadata(self, image_dir: Path, image_name: str, **changes) -> None:
        if not image_dir.is_dir():
            return
        if read_metadata(image_dir) is not None:
            update_metadata(image_dir, **changes)
            return

        # images copied in by hand have no record yet
        metadata = ImageMetadata(image_name=image_name, created_at=datetime.now(timezone.utc))
        for key, value in changes.items():
            setattr(metadata, key, value)
        write_metadata(image_dir, metadata)

    def run_template_workflow(
        self, template_name: str, mode: WorkflowMode = WorkflowMode.EDITABLE
    ) -> WorkflowResult:
        """Start from a template.

        EDITABLE stops after creating a custom config for the user to edit.
        DIRECT_BUILD goes through a temporary custom config and a ``-build``
        image straight to a running container.
        """
        result = self._new_result(template_name=template_name)
        logger.info({
            "event": "template_workflow_started",
            "run_id": result.run_id,
            "template": template_name,
            "mode": mode.name,
        })
        try:
            match mode:
                case WorkflowMode.EDITABLE:
                    result.custom_name = self.transitions.promote_template_to_custom(template_name)
                    result.success = True
                    result.messages.append(f"Created editable configuration {result.custom_name}")
                    result.messages.append(
                        f"Edit it, then start it from the custom layer: {result.custom_name}"
                    )
                case WorkflowMode.DIRECT_BUILD:
                    custom_name = allocate_timestamped_name(
                        f"{template_name}-temp", self.repository.custom_root
                    )
                    result.custom_name = self.transitions.promote_template_to_custom(
                        template_name, custom_name
                    )
                    result.messages.append(f"Created temporary configuration {custom_name}")
                    self._promote_and_start(result, generate_image_name(custom_name))
        except (DeckError, OSError) as e:
            return self._fail(result, e)

        result.messages.append(
            configuration_chain(result.template_name, result.custom_name, result.image_name)
        )
        return result

    def run_custom_workflow(self, custom_name: str) -> WorkflowResult:
        """Build a timestamped image from a custom config and start it."""
        result = self._new_result(custom_name=custom_name)
        logger.info({"event": "custom_workflow_started", "run_id": result.run_id, "custom": custom_name})
        try:
            validate_layer_name(custom_name, "custom configuration")
            custom_dir = self.repository.path_for(Layer.CUSTOM, custom_name)
            state = validate_configuration(custom_dir)
            if state.status == ConfigStatus.NOT_FOUND:
                raise NotFoundError("Custom configuration", custom_name)
            if not state.is_valid:
                raise IncompleteConfigurationError(str(custom_dir), state.missing_files)

            image_name = allocate_timestamped_name(custom_name, self.repository.images_root)
            self._promote_and_start(result, image_name)
        except (DeckError, OSError) as e:
            return self._fail(result, e)

        result.messages.append(configuration_chain(None, result.custom_name, result.image_name))
        return result

    def _promote_and_start(self, result: WorkflowResult, image_name: str) -> None:
        custom_dir = self.repository.path_for(Layer.CUSTOM, result.custom_name)
        result.image_name = image_name
        result.container_name = self.container_name(image_name)
        result.action = ContainerAction.BUILD_AND_START

        image_dir = self.transitions.promote_custom_to_image(image_name, custom_dir)
        result.messages.append(f"Created image {image_name}")
        self._start_image(image_dir, result)
