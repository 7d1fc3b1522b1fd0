"""Project type detection."""
from dataclasses import dataclass
from pathlib import Path
from typing import List

from mcp_deck.types import ProjectType


@dataclass(frozen=True)
class ProjectSignature:
    """Project detection signature."""
    project_type: ProjectType
    file_names: List[str]
    suffixes: List[str]

    def matches(self, names: set[str]) -> bool:
        return any(n in names for n in self.file_names) or any(
            n.endswith(s) for n in names for s in self.suffixes
        )


# Checked in order; the first match wins
SIGNATURES = [
    ProjectSignature(ProjectType.TAURI, ["tauri.conf.json"], []),
    ProjectSignature(ProjectType.FLUTTER, ["pubspec.yaml"], []),
    ProjectSignature(ProjectType.AVALONIA, [], [".sln", ".csproj"]),
    ProjectSignature(ProjectType.DOTNET, ["global.json", "Directory.Build.props"], []),
    ProjectSignature(ProjectType.PYTHON, ["pyproject.toml", "setup.py", "requirements.txt"], []),
    ProjectSignature(ProjectType.NODE, ["package.json"], []),
]


def detect_project_type(directory: Path) -> ProjectType:
    """Detect the project type from the top-level files of a directory."""
    try:
        names = {p.name for p in directory.iterdir() if p.is_file()}
    except OSError:
        return ProjectType.UNKNOWN

    for signature in SIGNATURES:
        if signature.matches(names):
            return signature.project_type

    return ProjectType.UNKNOWN
