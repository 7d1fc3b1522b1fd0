"""Container engine contract.

The concrete adapter (podman, docker compose, ...) lives outside this
package; anything implementing this protocol can drive the workflows.
"""
from pathlib import Path
from typing import Protocol, runtime_checkable

from mcp_deck.types import ContainerResult, ContainerStatus


@runtime_checkable
class ContainerEngine(Protocol):
    def detect_status(self, container_name: str) -> ContainerStatus:
        ...

    def start(self, container_name: str) -> ContainerResult:
        ...

    def build_and_start(self, image_dir: Path, container_name: str) -> ContainerResult:
        ...


def container_name_for(image_name: str, prefix: str = "deck_") -> str:
    return f"{prefix}{image_name}"
