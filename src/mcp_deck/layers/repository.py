"""Enumeration of the three .deck layers.

Layout::

    .deck/
      templates/<name>/   read-only, populated by template sync
      custom/<name>/      user-editable copies of templates
      images/<name>/      built copies of custom configs, plus .deck-metadata
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from mcp_deck.config import DeckConfig
from mcp_deck.layers.detection import detect_project_type
from mcp_deck.layers.metadata import read_metadata
from mcp_deck.layers.naming import is_valid_layer_name
from mcp_deck.logging import get_logger
from mcp_deck.types import (
    REQUIRED_CONFIG_FILES,
    DirectoryStructureResult,
    Layer,
    ResourceDescriptor,
)
from mcp_deck.utils.fs import directory_size, ensure_directory, write_text

logger = get_logger(__name__)

GITIGNORE_MARKER = ".deck/templates/"
GITIGNORE_RULES = [
    "# deck development environments",
    ".deck/templates/",
    ".deck/images/",
    "# .deck/custom/ stays under version control",
]


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def missing_required_files(directory: Path) -> List[str]:
    """Required configuration files absent from directory, in canonical order."""
    return [name for name in REQUIRED_CONFIG_FILES if not (directory / name).is_file()]


def is_valid_image_directory_name(name: str) -> bool:
    return bool(name) and "-" in name


class LayerRepository:
    """Reads the .deck tree and describes what each layer holds."""

    def __init__(self, config: DeckConfig):
        self.config = config

    @property
    def deck_dir(self) -> Path:
        return self.config.deck_dir

    def layer_root(self, layer: Layer) -> Path:
        return self.deck_dir / layer.value

    @property
    def templates_root(self) -> Path:
        return self.layer_root(Layer.TEMPLATE)

    @property
    def custom_root(self) -> Path:
        return self.layer_root(Layer.CUSTOM)

    @property
    def images_root(self) -> Path:
        return self.layer_root(Layer.IMAGE)

    def path_for(self, layer: Layer, name: str) -> Path:
        return self.layer_root(layer) / name

    def initialize(self) -> None:
        """Create the three layer directories and register them in .gitignore."""
        logger.info({"event": "initializing_deck_dir", "deck_dir": str(self.deck_dir)})

        for layer in Layer:
            ensure_directory(
                self.layer_root(layer),
                self.config.retry_attempts,
                self.config.retry_delay,
            )
        self._update_gitignore()

    def ensure_initialized(self) -> None:
        if not all(self.layer_root(layer).is_dir() for layer in Layer):
            self.initialize()

    def _update_gitignore(self) -> None:
        gitignore = self.config.project_root / ".gitignore"
        existing = gitignore.read_text(encoding="utf-8") if gitignore.is_file() else ""
        if GITIGNORE_MARKER in existing:
            return

        content = existing
        if content and not content.endswith("\n"):
            content += "\n"
        content += "\n" + "\n".join(GITIGNORE_RULES) + "\n"
        write_text(gitignore, content, self.config.retry_attempts, self.config.retry_delay)
        logger.info({"event": "gitignore_updated", "path": str(gitignore)})

    def _subdirectories(self, layer: Layer) -> List[Path]:
        root = self.layer_root(layer)
        if not root.is_dir():
            return []
        return [p for p in root.iterdir() if p.is_dir()]

    def _describe(self, layer: Layer, path: Path, **overrides) -> ResourceDescriptor:
        values = dict(
            name=path.name,
            layer=layer,
            path=path,
            available=not missing_required_files(path),
            last_modified=_mtime(path),
            project_type=detect_project_type(path),
            size_bytes=directory_size(path),
        )
        values.update(overrides)
        return ResourceDescriptor(**values)

    def list_templates(self) -> List[ResourceDescriptor]:
        templates = [
            self._describe(Layer.TEMPLATE, path, available=True)
            for path in self._subdirectories(Layer.TEMPLATE)
        ]
        return sorted(templates, key=lambda r: r.name)

    def list_custom(self) -> List[ResourceDescriptor]:
        customs = [self._describe(Layer.CUSTOM, path) for path in self._subdirectories(Layer.CUSTOM)]
        return sorted(customs, key=lambda r: r.last_modified, reverse=True)

    def list_images(self) -> List[ResourceDescriptor]:
        images = []
        for path in self._subdirectories(Layer.IMAGE):
            if not is_valid_image_directory_name(path.name):
                logger.warning({"event": "invalid_image_dir_skipped", "name": path.name})
                continue

            metadata = read_metadata(path)
            last_modified = (
                metadata.last_started
                if metadata is not None and metadata.last_started is not None
                else _mtime(path)
            )
            images.append(
                self._describe(Layer.IMAGE, path, metadata=metadata, last_modified=last_modified)
            )

        return sorted(images, key=lambda r: r.last_modified, reverse=True)

    def list_layer(self, layer: Layer) -> List[ResourceDescriptor]:
        match layer:
            case Layer.TEMPLATE:
                return self.list_templates()
            case Layer.CUSTOM:
                return self.list_custom()
            case Layer.IMAGE:
                return self.list_images()
        raise ValueError(f"Unknown layer: {layer}")

    def list_all(self) -> List[ResourceDescriptor]:
        """Images, then custom configs, then templates."""
        return self.list_images() + self.list_custom() + self.list_templates()

    def get(self, layer: Layer, name: str) -> Optional[ResourceDescriptor]:
        return next((r for r in self.list_layer(layer) if r.name == name), None)

    def exists(self, layer: Layer, name: str) -> bool:
        return is_valid_layer_name(name) and self.path_for(layer, name).is_dir()

    def validate_structure(self) -> DirectoryStructureResult:
        """Check the tree for missing layers and suspicious entries."""
        if not self.deck_dir.is_dir():
            return DirectoryStructureResult(
                is_valid=False,
                errors=[f"Missing {self.config.deck_dir_name} directory"],
                repair_suggestions=["Initialize the deck directory to create the layer structure"],
            )

        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []

        for layer in Layer:
            root = self.layer_root(layer)
            if not root.is_dir():
                errors.append(f"Missing {layer.value} directory")
                suggestions.append(f"Create directory: {root}")

        for path in self._subdirectories(Layer.IMAGE):
            if not is_valid_image_directory_name(path.name):
                warnings.append(f"Image directory {path.name} is not a valid image directory")
            elif missing := missing_required_files(path):
                warnings.append(f"Image directory {path.name} is missing {', '.join(missing)}")

        if self.templates_root.is_dir() and not self._subdirectories(Layer.TEMPLATE):
            warnings.append("Templates directory is empty, remote templates may need syncing")
            suggestions.append("Run the template sync to fetch the official templates")

        result = DirectoryStructureResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            repair_suggestions=suggestions,
        )
        logger.info({
            "event": "structure_validated",
            "is_valid": result.is_valid,
            "errors": len(errors),
            "warnings": len(warnings),
        })
        return result
