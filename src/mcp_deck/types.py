"""Core type definitions"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

# Enum values for Layer are the directory names under .deck/
Layer = Enum('Layer', {'TEMPLATE': 'templates', 'CUSTOM': 'custom', 'IMAGE': 'images'})
BuildStatus = Enum('BuildStatus', {'BUILT': 'Built', 'RUNNING': 'Running', 'FAILED': 'Failed'})
ProjectType = Enum('ProjectType', {
    'TAURI': 'Tauri',
    'FLUTTER': 'Flutter',
    'AVALONIA': 'Avalonia',
    'DOTNET': 'DotNet',
    'PYTHON': 'Python',
    'NODE': 'Node',
    'UNKNOWN': 'Unknown',
})
ContainerStatus = Enum('ContainerStatus', ['RUNNING', 'STOPPED', 'NOT_FOUND'])
ContainerAction = Enum('ContainerAction', ['ENTER', 'RESTART', 'BUILD_AND_START'])
CleaningType = Enum('CleaningType', ['IMAGES', 'CUSTOM', 'TEMPLATES', 'ALL', 'SELECTIVE'])
WarningLevel = Enum('WarningLevel', ['INFO', 'WARNING', 'ERROR', 'CRITICAL'])
ConfigStatus = Enum('ConfigStatus', ['COMPLETE', 'INCOMPLETE', 'NOT_FOUND'])
WorkflowMode = Enum('WorkflowMode', ['EDITABLE', 'DIRECT_BUILD'])
PermissionLevel = Enum('PermissionLevel', ['ALLOWED', 'WARNING', 'DENIED'])
FileOperation = Enum('FileOperation', ['READ', 'WRITE', 'CREATE', 'DELETE', 'MOVE'])
EnvVariableType = Enum('EnvVariableType', ['RUNTIME', 'SYSTEM', 'BUILD_TIME'])

REQUIRED_CONFIG_FILES = (".env", "compose.yaml", "Dockerfile")


@dataclass
class ImageMetadata:
    """Ledger record kept beside every built image"""
    image_name: str = ""
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    source_config: Optional[str] = None
    build_status: BuildStatus = BuildStatus.BUILT
    last_started: Optional[datetime] = None


@dataclass(frozen=True)
class ResourceDescriptor:
    """One entry of a layer directory"""
    name: str
    layer: Layer
    path: Path
    available: bool
    last_modified: datetime
    project_type: ProjectType = ProjectType.UNKNOWN
    metadata: Optional[ImageMetadata] = None
    size_bytes: int = 0


@dataclass(frozen=True)
class ConfigurationState:
    """Required-file check of a configuration directory"""
    status: ConfigStatus
    missing_files: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.status == ConfigStatus.COMPLETE


@dataclass(frozen=True)
class DirectoryStructureResult:
    """Health report of the .deck tree"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    repair_suggestions: List[str] = field(default_factory=list)


@dataclass
class RetentionPlan:
    """Keep/remove partition of the image layer"""
    groups: dict[str, list[ResourceDescriptor]] = field(default_factory=dict)
    to_keep: list[ResourceDescriptor] = field(default_factory=list)
    to_remove: list[ResourceDescriptor] = field(default_factory=list)
    space_to_free_bytes: int = 0


@dataclass(frozen=True)
class CleaningOperation:
    """Cleaning request"""
    type: CleaningType
    items: frozenset[str] = frozenset()
    dry_run: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'items', frozenset(self.items))


@dataclass(frozen=True)
class CleaningWarning:
    message: str
    level: WarningLevel
    affected_items: List[str]
    suggestion: str


@dataclass
class CleaningResult:
    """Outcome of a cleaning run; truthy when it succeeded"""
    success: bool
    dry_run: bool = False
    removed: List[str] = field(default_factory=list)
    planned: List[str] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


@dataclass(frozen=True)
class ContainerResult:
    """Reply of the container engine"""
    success: bool
    message: str = ""


@dataclass
class WorkflowResult:
    """Outcome of a workflow with its message trail"""
    run_id: str
    success: bool = False
    action: Optional[ContainerAction] = None
    template_name: Optional[str] = None
    custom_name: Optional[str] = None
    image_name: Optional[str] = None
    container_name: Optional[str] = None
    is_complete: bool = False
    messages: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PermissionDecision:
    """Whether a file operation inside an image directory is allowed"""
    file_name: str
    operation: FileOperation
    permission: PermissionLevel
    reason: str
    alternatives: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class EnvVariableCheck:
    name: str
    value: str
    variable_type: EnvVariableType
    permission: PermissionLevel
    reason: str


@dataclass
class EnvChangeReport:
    """Per-variable verdicts for a requested image .env change"""
    checks: List[EnvVariableCheck] = field(default_factory=list)
    applied: bool = False

    @property
    def allowed(self) -> List[str]:
        return [c.name for c in self.checks if c.permission != PermissionLevel.DENIED]

    @property
    def denied(self) -> List[str]:
        return [c.name for c in self.checks if c.permission == PermissionLevel.DENIED]

    @property
    def is_valid(self) -> bool:
        return not self.denied


@dataclass(frozen=True)
class ImageNameCheck:
    """Parsed ``prefix-YYYYMMDD-HHMM`` image directory name"""
    name: str
    is_valid: bool
    prefix: Optional[str] = None
    created_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)
    suggested_name: Optional[str] = None


@dataclass(frozen=True)
class ResourceRelationship:
    """Where a custom configuration or image came from"""
    name: str
    layer: Layer
    source_custom: Optional[str] = None
    source_template: Optional[str] = None
    container_name: Optional[str] = None


@dataclass(frozen=True)
class ResourceDetail:
    resource: ResourceDescriptor
    configuration: ConfigurationState
    file_count: int
    relationship: Optional[ResourceRelationship] = None
    name_check: Optional[ImageNameCheck] = None
    protected_files: List[str] = field(default_factory=list)
