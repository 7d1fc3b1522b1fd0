import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mcp_deck.config import DeckConfig
from mcp_deck.layers.metadata import write_metadata
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.types import (
    BuildStatus,
    ContainerResult,
    ContainerStatus,
    ImageMetadata,
    Layer,
)


def write_config_dir(directory: Path, project_name: str, files=(".env", "compose.yaml", "Dockerfile")) -> Path:
    """Create a configuration directory holding the given required files"""
    directory.mkdir(parents=True, exist_ok=True)
    for name in files:
        if name == ".env":
            (directory / ".env").write_text(f"PROJECT_NAME={project_name}\nDEV_PORT=5000\n")
        elif name == "compose.yaml":
            (directory / "compose.yaml").write_text("services:\n  dev:\n    build: .\n")
        elif name == "Dockerfile":
            (directory / "Dockerfile").write_text("FROM python:3.12-slim\n")
        else:
            (directory / name).write_text("")
    return directory


class FakeContainerEngine:
    """Records calls and answers with preset results"""

    def __init__(self, statuses=None, start_ok=True, build_ok=True):
        self.statuses = dict(statuses or {})
        self.start_ok = start_ok
        self.build_ok = build_ok
        self.calls = []

    def detect_status(self, container_name):
        self.calls.append(("detect_status", container_name))
        return self.statuses.get(container_name, ContainerStatus.NOT_FOUND)

    def start(self, container_name):
        self.calls.append(("start", container_name))
        return ContainerResult(self.start_ok, "started" if self.start_ok else "start failed")

    def build_and_start(self, image_dir, container_name):
        self.calls.append(("build_and_start", container_name, Path(image_dir)))
        return ContainerResult(self.build_ok, "built" if self.build_ok else "build failed")


@pytest.fixture
def deck_config(tmp_path: Path) -> DeckConfig:
    """Config rooted in a temporary project"""
    return DeckConfig(project_root=tmp_path, retry_delay=0)


@pytest.fixture
def repository(deck_config: DeckConfig) -> LayerRepository:
    """Initialized .deck tree"""
    repo = LayerRepository(deck_config)
    repo.initialize()
    return repo


@pytest.fixture
def template(repository: LayerRepository) -> str:
    """Complete python template"""
    path = write_config_dir(repository.templates_root / "python-dev", "python-dev")
    (path / "pyproject.toml").write_text("[project]\nname = 'demo'\n")
    return "python-dev"


@pytest.fixture
def make_custom(repository: LayerRepository):
    def _make(name: str, files=(".env", "compose.yaml", "Dockerfile")) -> Path:
        return write_config_dir(repository.custom_root / name, name, files)
    return _make


@pytest.fixture
def make_image(repository: LayerRepository):
    """Image directory with a metadata record created at the given time"""
    def _make(name: str, created_at=None, payload_bytes: int = 0, with_metadata: bool = True) -> Path:
        path = write_config_dir(repository.images_root / name, name)
        if payload_bytes:
            (path / "payload.bin").write_bytes(b"x" * payload_bytes)
        if with_metadata:
            write_metadata(path, ImageMetadata(
                image_name=name,
                created_at=created_at or datetime.now(timezone.utc),
                created_by="tester",
                source_config=str(repository.custom_root / name),
                build_status=BuildStatus.BUILT,
            ))
        return path
    return _make


@pytest.fixture
def fake_engine() -> FakeContainerEngine:
    return FakeContainerEngine()


def snapshot(root: Path) -> set:
    """Relative paths of everything below root"""
    return {str(p.relative_to(root)) for p in root.rglob("*")}


def layer_names(repository: LayerRepository, layer: Layer) -> list:
    return sorted(os.listdir(repository.layer_root(layer)))
