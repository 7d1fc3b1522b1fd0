"""Promotion between layers: Template -> Custom -> Image."""
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from mcp_deck.errors import (
    CollisionError,
    ExecutionFailureError,
    IncompleteConfigurationError,
    NotFoundError,
    TransientIOError,
    log_error,
)
from mcp_deck.layers.metadata import write_metadata
from mcp_deck.layers.naming import generate_unique_custom_name, validate_layer_name
from mcp_deck.layers.repository import LayerRepository, missing_required_files
from mcp_deck.logging import get_logger
from mcp_deck.types import (
    BuildStatus,
    ConfigStatus,
    ConfigurationState,
    ImageMetadata,
    Layer,
)
from mcp_deck.utils.fs import copy_tree, current_user, ensure_directory, set_env_value

logger = get_logger(__name__)

PROJECT_NAME_KEY = "PROJECT_NAME"
ENV_FILE_NAME = ".env"


def validate_configuration(path: Path) -> ConfigurationState:
    """Required-file check of a custom or image directory."""
    if not path.is_dir():
        return ConfigurationState(ConfigStatus.NOT_FOUND)

    missing = missing_required_files(path)
    status = ConfigStatus.INCOMPLETE if missing else ConfigStatus.COMPLETE
    logger.debug({"event": "configuration_validated", "path": str(path), "missing": missing})
    return ConfigurationState(status, missing)


class TransitionEngine:
    def __init__(self, repository: LayerRepository):
        self.repository = repository

    def _ensure(self, directory: Path) -> None:
        config = self.repository.config
        ensure_directory(directory, config.retry_attempts, config.retry_delay)

    def _rewrite_project_name(self, directory: Path, name: str) -> None:
        set_env_value(directory / ENV_FILE_NAME, PROJECT_NAME_KEY, name)

    def promote_template_to_custom(
        self, template_name: str, custom_name: Optional[str] = None
    ) -> str:
        """Copy a template into the custom layer and return the custom name.

        Raises ValidationFailureError for names that are not a single path
        component, NotFoundError when the template is absent and
        CollisionError when the custom name is taken. A failed copy is not
        cleaned up.
        """
        validate_layer_name(template_name, "template")
        if custom_name is not None:
            validate_layer_name(custom_name, "custom configuration")
        template_dir = self.repository.path_for(Layer.TEMPLATE, template_name)
        if not template_dir.is_dir():
            raise NotFoundError("Template", template_name)

        custom_root = self.repository.custom_root
        name = custom_name or generate_unique_custom_name(template_name, custom_root)
        target = custom_root / name
        if target.exists():
            raise CollisionError("Custom configuration", name)

        logger.info({
            "event": "promoting_template",
            "template": template_name,
            "custom": name,
        })
        self._ensure(custom_root)
        copy_tree(template_dir, target)
        self._rewrite_project_name(target, name)

        logger.info({"event": "custom_created", "template": template_name, "custom": name})
        return name

    def promote_custom_to_image(self, image_name: str, custom_dir: Path) -> Path:
        """Copy a complete custom configuration into the image layer.

        The new image gets a fresh metadata record with status Built. If the
        copy fails midway the record is written with status Failed and the
        error is raised as ExecutionFailureError.
        """
        validate_layer_name(image_name, "image")
        custom_dir = Path(custom_dir)
        state = validate_configuration(custom_dir)
        if state.status == ConfigStatus.NOT_FOUND:
            raise NotFoundError("Custom configuration", str(custom_dir))
        if not state.is_valid:
            raise IncompleteConfigurationError(str(custom_dir), state.missing_files)

        image_dir = self.repository.path_for(Layer.IMAGE, image_name)
        if image_dir.exists():
            raise CollisionError("Image", image_name)

        metadata = ImageMetadata(
            image_name=image_name,
            created_at=datetime.now(timezone.utc),
            created_by=current_user(),
            source_config=str(custom_dir),
            build_status=BuildStatus.BUILT,
            last_started=None,
        )

        logger.info({
            "event": "promoting_custom",
            "custom_dir": str(custom_dir),
            "image": image_name,
        })
        try:
            self._ensure(self.repository.images_root)
            copy_tree(custom_dir, image_dir)
            self._rewrite_project_name(image_dir, image_name)
            write_metadata(image_dir, metadata)
        except (OSError, TransientIOError) as e:
            metadata.build_status = BuildStatus.FAILED
            self._record_failure(image_dir, metadata)
            log_error(e, {"image": image_name, "custom_dir": str(custom_dir)})
            raise ExecutionFailureError(
                f"Failed to create image {image_name}: {e}",
                details={"image": image_name, "custom_dir": str(custom_dir)},
            ) from e

        logger.info({"event": "image_created", "image": image_name, "path": str(image_dir)})
        return image_dir

    def _record_failure(self, image_dir: Path, metadata: ImageMetadata) -> None:
        if not image_dir.is_dir():
            return
        try:
            write_metadata(image_dir, metadata)
        except (OSError, TransientIOError) as e:
            logger.error({
                "event": "failure_metadata_not_written",
                "image_dir": str(image_dir),
                "error": str(e),
            })
