"""Cleaning strategies and the options offered for each layer.

Strategies only describe what a cleaning would do; nothing here deletes
anything. Templates are only ever offered a SmartSuggestion.
"""
from dataclasses import dataclass, field
from typing import List, Union

from mcp_deck.types import Layer, WarningLevel


@dataclass(frozen=True)
class KeepLatestN:
    count: int


@dataclass(frozen=True)
class DeleteSpecific:
    names: frozenset[str] = frozenset()


@dataclass(frozen=True)
class CleaningAlternative:
    action: str
    description: str
    command: str
    preferred: bool = False


@dataclass(frozen=True)
class SmartSuggestion:
    alternatives: tuple[CleaningAlternative, ...] = ()


CleaningStrategy = Union[KeepLatestN, DeleteSpecific, SmartSuggestion]

TEMPLATE_ALTERNATIVES = (
    CleaningAlternative(
        action="update",
        description="Update the template library to the latest version",
        command="deck templates update",
        preferred=True,
    ),
    CleaningAlternative(
        action="sync",
        description="Sync a single template",
        command="deck templates sync <template-name>",
    ),
    CleaningAlternative(
        action="reset",
        description="Reset the template library to a clean state",
        command="deck templates reset",
    ),
)


@dataclass(frozen=True)
class CleaningOption:
    id: str
    display_name: str
    description: str
    layer: Layer
    strategy: CleaningStrategy
    warning_level: WarningLevel
    estimated_count: int = 0


@dataclass(frozen=True)
class CleaningRecommendation:
    summary: str
    actions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CleaningOptions:
    template_options: List[CleaningOption]
    custom_options: List[CleaningOption]
    image_options: List[CleaningOption]
    recommendation: CleaningRecommendation


def describe_strategy(strategy: CleaningStrategy) -> str:
    match strategy:
        case KeepLatestN(count=count):
            return f"keep the latest {count} per group"
        case DeleteSpecific(names=names):
            return f"delete {len(names)} selected" if names else "delete selected entries"
        case SmartSuggestion(alternatives=alternatives):
            return "suggest: " + ", ".join(a.command for a in alternatives)
    raise TypeError(f"Unknown cleaning strategy: {strategy!r}")


def template_options(template_count: int) -> List[CleaningOption]:
    return [
        CleaningOption(
            id="templates-update",
            display_name="Update templates",
            description="Update the template library from the remote repository",
            layer=Layer.TEMPLATE,
            strategy=SmartSuggestion(TEMPLATE_ALTERNATIVES[:1]),
            warning_level=WarningLevel.INFO,
            estimated_count=template_count,
        ),
        CleaningOption(
            id="templates-smart-suggest",
            display_name="Smart suggestions",
            description="Suggest template management commands instead of deleting templates",
            layer=Layer.TEMPLATE,
            strategy=SmartSuggestion(TEMPLATE_ALTERNATIVES),
            warning_level=WarningLevel.INFO,
            estimated_count=0,
        ),
    ]


def custom_options(custom_count: int, incomplete: frozenset[str]) -> List[CleaningOption]:
    return [
        CleaningOption(
            id="custom-selective",
            display_name="Selective cleanup",
            description="Pick custom configurations to delete",
            layer=Layer.CUSTOM,
            strategy=DeleteSpecific(),
            warning_level=WarningLevel.WARNING,
            estimated_count=custom_count,
        ),
        CleaningOption(
            id="custom-unused",
            display_name="Clean incomplete configurations",
            description="Delete custom configurations missing required files",
            layer=Layer.CUSTOM,
            strategy=DeleteSpecific(incomplete),
            warning_level=WarningLevel.WARNING,
            estimated_count=len(incomplete),
        ),
    ]


def image_options(image_count: int, removal_counts: dict[int, int]) -> List[CleaningOption]:
    options = [
        CleaningOption(
            id=f"images-keep{keep}",
            display_name=f"Keep latest {keep}",
            description=f"Keep the latest {keep} images of every project",
            layer=Layer.IMAGE,
            strategy=KeepLatestN(keep),
            warning_level=WarningLevel.INFO,
            estimated_count=count,
        )
        for keep, count in sorted(removal_counts.items())
    ]
    options.append(
        CleaningOption(
            id="images-selective",
            display_name="Selective cleanup",
            description="Pick images to delete",
            layer=Layer.IMAGE,
            strategy=DeleteSpecific(),
            warning_level=WarningLevel.WARNING,
            estimated_count=image_count,
        )
    )
    return options


def recommend(
    template_opts: List[CleaningOption],
    custom_opts: List[CleaningOption],
    image_opts: List[CleaningOption],
    default_keep: int,
) -> CleaningRecommendation:
    actions = []
    keep_options = [o for o in image_opts if isinstance(o.strategy, KeepLatestN)]
    if keep_options:
        actions.append(f"Clean the image layer first, keeping the latest {default_keep} per project")
    if any(isinstance(o.strategy, SmartSuggestion) for o in template_opts):
        actions.append("Update the template library instead of deleting templates")
    if any(isinstance(o.strategy, DeleteSpecific) and o.estimated_count for o in custom_opts):
        actions.append("Remove custom configurations that are no longer used")

    default_option = next(
        (o for o in keep_options if o.strategy.count == default_keep),
        keep_options[0] if keep_options else None,
    )
    removable = default_option.estimated_count if default_option else 0

    return CleaningRecommendation(
        summary=f"Balanced cleanup: {removable} image(s) can be removed",
        actions=actions,
        warnings=[
            "Back up important configuration files before cleaning",
            "Preview the first cleanup with a dry run",
        ],
    )
