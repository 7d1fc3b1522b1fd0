"""Retention planning and cleaning execution.

Images are grouped by the name prefix left after stripping the
``-YYYYMMDD-HHMM`` suffix; each group is ordered newest first and split into
the entries to keep and the entries to remove. Cleaning requests are
validated as a whole before anything is deleted, and deletions already done
stay done when a later one fails.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from mcp_deck.containers import ContainerEngine, container_name_for
from mcp_deck.errors import log_error
from mcp_deck.layers.naming import extract_prefix
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.logging import get_logger
from mcp_deck.retention.options import (
    TEMPLATE_ALTERNATIVES,
    CleaningAlternative,
    CleaningOptions,
    custom_options,
    image_options,
    recommend,
    template_options,
)
from mcp_deck.types import (
    CleaningOperation,
    CleaningResult,
    CleaningType,
    CleaningWarning,
    ContainerStatus,
    Layer,
    ResourceDescriptor,
    RetentionPlan,
    WarningLevel,
)
from mcp_deck.utils.fs import remove_tree

logger = get_logger(__name__)

OFFERED_KEEP_COUNTS = (3, 5)


def group_by_prefix(images: Iterable[ResourceDescriptor]) -> Dict[str, List[ResourceDescriptor]]:
    """Group images by timestamp-stripped name, preserving input order."""
    groups: Dict[str, List[ResourceDescriptor]] = {}
    for image in images:
        groups.setdefault(extract_prefix(image.name), []).append(image)
    return groups


def _created_at(resource: ResourceDescriptor) -> datetime:
    if resource.metadata is not None and resource.metadata.created_at is not None:
        return resource.metadata.created_at
    try:
        return datetime.fromtimestamp(resource.path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return resource.last_modified


def sort_group(group: Iterable[ResourceDescriptor]) -> List[ResourceDescriptor]:
    """Newest first by metadata creation time, falling back to directory mtime."""
    return sorted(group, key=_created_at, reverse=True)


def keep_latest_n(
    group: List[ResourceDescriptor], n: int
) -> Tuple[List[ResourceDescriptor], List[ResourceDescriptor]]:
    """Split an already sorted group into (keep, remove)."""
    if n < 0:
        raise ValueError(f"keep count must not be negative: {n}")
    return list(group[:n]), list(group[n:])


def build_plan(images: Iterable[ResourceDescriptor], keep_count: int) -> RetentionPlan:
    plan = RetentionPlan()
    for prefix, members in group_by_prefix(images).items():
        ordered = sort_group(members)
        keep, remove = keep_latest_n(ordered, keep_count)
        plan.groups[prefix] = ordered
        plan.to_keep.extend(keep)
        plan.to_remove.extend(remove)

    plan.space_to_free_bytes = sum(r.size_bytes for r in plan.to_remove)
    return plan


class RetentionEngine:
    def __init__(
        self,
        repository: LayerRepository,
        engine: Optional[ContainerEngine] = None,
    ):
        self.repository = repository
        self.engine = engine
        self._handlers: Dict[CleaningType, Callable[[CleaningOperation, CleaningResult], bool]] = {
            CleaningType.IMAGES: self._clean_images,
            CleaningType.CUSTOM: self._clean_custom,
            CleaningType.TEMPLATES: self._reject_templates,
            CleaningType.ALL: self._clean_all,
            CleaningType.SELECTIVE: self._clean_selective,
        }

    @property
    def default_keep_count(self) -> int:
        return self.repository.config.default_keep_count

    def plan_images(self, keep_count: Optional[int] = None) -> RetentionPlan:
        """Retention plan for the image layer; recomputed on every call."""
        keep_count = self.default_keep_count if keep_count is None else keep_count
        plan = build_plan(self.repository.list_images(), keep_count)

        logger.info({
            "event": "retention_planned",
            "keep_count": keep_count,
            "groups": len(plan.groups),
            "keep": len(plan.to_keep),
            "remove": len(plan.to_remove),
            "space_to_free_bytes": plan.space_to_free_bytes,
        })
        return plan

    def plan_to_operation(self, plan: RetentionPlan, dry_run: bool = False) -> CleaningOperation:
        return CleaningOperation(
            CleaningType.IMAGES, [r.name for r in plan.to_remove], dry_run=dry_run
        )

    def get_cleaning_options(self) -> CleaningOptions:
        templates = self.repository.list_templates()
        customs = self.repository.list_custom()
        images = self.repository.list_images()

        removal_counts = {
            keep: len(build_plan(images, keep).to_remove)
            for keep in sorted({*OFFERED_KEEP_COUNTS, self.default_keep_count})
        }
        incomplete = frozenset(c.name for c in customs if not c.available)

        t_opts = template_options(len(templates))
        c_opts = custom_options(len(customs), incomplete)
        i_opts = image_options(len(images), removal_counts)

        logger.info({
            "event": "cleaning_options_generated",
            "templates": len(t_opts),
            "custom": len(c_opts),
            "images": len(i_opts),
        })
        return CleaningOptions(
            template_options=t_opts,
            custom_options=c_opts,
            image_options=i_opts,
            recommendation=recommend(t_opts, c_opts, i_opts, self.default_keep_count),
        )

    def get_template_alternatives(self) -> List[CleaningAlternative]:
        return list(TEMPLATE_ALTERNATIVES)

    def get_cleaning_warnings(
        self, cleaning_type: CleaningType, items: Iterable[str]
    ) -> List[CleaningWarning]:
        items = sorted(items)

        match cleaning_type:
            case CleaningType.IMAGES:
                return self._image_warnings(items)
            case CleaningType.CUSTOM:
                return [CleaningWarning(
                    message="Deleting custom configurations discards your personal edits",
                    level=WarningLevel.WARNING,
                    affected_items=items,
                    suggestion="Back up configuration files you want to keep",
                )]
            case CleaningType.TEMPLATES:
                return [CleaningWarning(
                    message="Deleting templates is not supported and would affect new projects",
                    level=WarningLevel.ERROR,
                    affected_items=items,
                    suggestion="Update the template library instead",
                )]
            case CleaningType.ALL:
                return [CleaningWarning(
                    message="Cleaning everything is high risk and affects every layer",
                    level=WarningLevel.CRITICAL,
                    affected_items=[layer.value for layer in Layer],
                    suggestion="Clean one layer at a time",
                )]
            case CleaningType.SELECTIVE:
                return self._image_warnings(
                    [i for i in items if self.repository.exists(Layer.IMAGE, i)]
                )
        raise ValueError(f"Unknown cleaning type: {cleaning_type}")

    def _image_warnings(self, items: List[str]) -> List[CleaningWarning]:
        warnings = []
        prefix = self.repository.config.container_prefix
        for item in items:
            if self.engine is not None:
                status = self.engine.detect_status(container_name_for(item, prefix))
                if status == ContainerStatus.NOT_FOUND:
                    continue
                message = f"Image {item} has a {status.name.lower()} container"
            else:
                message = f"Image {item} may have an associated running container"
            warnings.append(CleaningWarning(
                message=message,
                level=WarningLevel.WARNING,
                affected_items=[item],
                suggestion="Stop related containers before cleaning the image",
            ))
        return warnings

    def validate_cleaning_operation(self, op: CleaningOperation) -> bool:
        """All-or-nothing check that every named item exists in some layer."""
        if not op.items and op.type != CleaningType.ALL:
            logger.warning({"event": "cleaning_rejected", "reason": "no items", "type": op.type.name})
            return False

        known = {r.name for r in self.repository.list_all()}
        unknown = sorted(op.items - known)
        if unknown:
            logger.warning({
                "event": "cleaning_rejected",
                "reason": "unknown items",
                "type": op.type.name,
                "items": unknown,
            })
            return False
        return True

    def execute_cleaning(self, op: CleaningOperation) -> CleaningResult:
        """Run a cleaning request; the result is truthy on success."""
        logger.info({
            "event": "cleaning_started",
            "type": op.type.name,
            "items": len(op.items),
            "dry_run": op.dry_run,
        })
        result = CleaningResult(success=False, dry_run=op.dry_run)

        if op.type == CleaningType.TEMPLATES:
            self._reject_templates(op, result)
            return result

        if not self.validate_cleaning_operation(op):
            result.messages.append("Cleaning request rejected: unknown or missing items")
            return result

        result.success = self._handlers[op.type](op, result)
        logger.info({
            "event": "cleaning_finished",
            "type": op.type.name,
            "success": result.success,
            "removed": len(result.removed),
            "planned": len(result.planned),
        })
        return result

    def _delete_entries(
        self, layer: Layer, names: Iterable[str], dry_run: bool, result: CleaningResult
    ) -> bool:
        for name in sorted(names):
            path = self.repository.path_for(layer, name)
            if not path.is_dir():
                result.messages.append(f"{name} is not in {layer.value}, skipped")
                continue

            if dry_run:
                logger.info({"event": "dry_run_delete", "layer": layer.value, "name": name})
                result.planned.append(f"{layer.value}/{name}")
                result.messages.append(f"[dry-run] would delete {layer.value}/{name}")
                continue

            try:
                remove_tree(path)
            except OSError as e:
                log_error(e, {"layer": layer.value, "name": name})
                result.messages.append(f"Failed to delete {layer.value}/{name}: {e}")
                return False

            logger.info({"event": "entry_deleted", "layer": layer.value, "name": name})
            result.removed.append(f"{layer.value}/{name}")
            result.messages.append(f"Deleted {layer.value}/{name}")
        return True

    def _clean_images(self, op: CleaningOperation, result: CleaningResult) -> bool:
        return self._delete_entries(Layer.IMAGE, op.items, op.dry_run, result)

    def _clean_custom(self, op: CleaningOperation, result: CleaningResult) -> bool:
        return self._delete_entries(Layer.CUSTOM, op.items, op.dry_run, result)

    def _reject_templates(self, op: CleaningOperation, result: CleaningResult) -> bool:
        logger.warning({
            "event": "template_cleaning_rejected",
            "items": sorted(op.items),
            "reason": "templates are never deleted, update them instead",
        })
        result.messages.append("Template cleaning is not supported")
        result.messages.extend(f"Try: {a.command}" for a in TEMPLATE_ALTERNATIVES)
        return False

    def _clean_all(self, op: CleaningOperation, result: CleaningResult) -> bool:
        if op.items:
            image_names = {i for i in op.items if self.repository.exists(Layer.IMAGE, i)}
            custom_names = {i for i in op.items if self.repository.exists(Layer.CUSTOM, i)}
            templates_only = sorted(op.items - image_names - custom_names)
            if templates_only:
                logger.warning({"event": "template_cleaning_rejected", "items": templates_only})
                result.messages.extend(f"{i} is a template and cannot be deleted" for i in templates_only)
                return False
        else:
            image_names = {r.name for r in self.repository.list_images()}
            custom_names = {r.name for r in self.repository.list_custom()}

        if not self._delete_entries(Layer.IMAGE, image_names, op.dry_run, result):
            return False
        return self._delete_entries(Layer.CUSTOM, custom_names, op.dry_run, result)

    def _clean_selective(self, op: CleaningOperation, result: CleaningResult) -> bool:
        for item in sorted(op.items):
            if self.repository.exists(Layer.IMAGE, item):
                layer = Layer.IMAGE
            elif self.repository.exists(Layer.CUSTOM, item):
                layer = Layer.CUSTOM
            else:
                logger.warning({"event": "template_cleaning_rejected", "items": [item]})
                result.messages.append(f"{item} is a template and cannot be deleted")
                return False

            if not self._delete_entries(layer, [item], op.dry_run, result):
                return False
        return True
