"""Tests for promotion between layers."""
import shutil

import pytest

from mcp_deck.errors import (
    CollisionError,
    ExecutionFailureError,
    IncompleteConfigurationError,
    NotFoundError,
    TransientIOError,
    ValidationFailureError,
)
from mcp_deck.layers.metadata import read_metadata, write_metadata
from mcp_deck.layers.transitions import TransitionEngine, validate_configuration
from mcp_deck.types import BuildStatus, ConfigStatus
from mcp_deck.utils.fs import read_env_value


@pytest.fixture
def transitions(repository) -> TransitionEngine:
    return TransitionEngine(repository)


def test_promote_template_to_custom(repository, transitions, template):
    """Test a template becomes a renamed custom config"""
    name = transitions.promote_template_to_custom(template)

    assert name == "python-dev-001"
    custom_dir = repository.custom_root / name
    assert (custom_dir / "pyproject.toml").is_file()
    assert read_env_value(custom_dir / ".env", "PROJECT_NAME") == name
    assert read_env_value(custom_dir / ".env", "DEV_PORT") == "5000"
    # the template itself is untouched
    assert read_env_value(repository.templates_root / template / ".env", "PROJECT_NAME") == template


def test_promote_template_twice(transitions, template):
    """Test repeated promotion picks the next free name"""
    assert transitions.promote_template_to_custom(template) == "python-dev-001"
    assert transitions.promote_template_to_custom(template) == "python-dev-002"


def test_promote_template_explicit_name(repository, transitions, template):
    """Test an explicit custom name is honored"""
    assert transitions.promote_template_to_custom(template, "mine") == "mine"
    assert (repository.custom_root / "mine" / "Dockerfile").is_file()


def test_promote_template_collision(transitions, template, make_custom):
    """Test existing custom names are never overwritten"""
    make_custom("mine")
    with pytest.raises(CollisionError):
        transitions.promote_template_to_custom(template, "mine")


def test_promote_missing_template(transitions):
    """Test unknown templates are rejected"""
    with pytest.raises(NotFoundError):
        transitions.promote_template_to_custom("nope")


def test_promote_template_adds_project_name(repository, transitions):
    """Test PROJECT_NAME is appended when the template lacks it"""
    template_dir = repository.templates_root / "bare"
    template_dir.mkdir()
    (template_dir / ".env").write_text("DEV_PORT=1")

    name = transitions.promote_template_to_custom("bare")
    env = (repository.custom_root / name / ".env").read_text()
    assert env == f"DEV_PORT=1\nPROJECT_NAME={name}\n"


def test_promote_custom_to_image(repository, transitions, make_custom):
    """Test a complete custom config becomes an image with fresh metadata"""
    custom_dir = make_custom("web-001")

    image_dir = transitions.promote_custom_to_image("web-20240101-0900", custom_dir)

    assert image_dir == repository.images_root / "web-20240101-0900"
    assert read_env_value(image_dir / ".env", "PROJECT_NAME") == "web-20240101-0900"
    metadata = read_metadata(image_dir)
    assert metadata.image_name == "web-20240101-0900"
    assert metadata.build_status == BuildStatus.BUILT
    assert metadata.source_config == str(custom_dir)
    assert metadata.created_by
    assert metadata.created_at is not None
    assert metadata.last_started is None


def test_promote_incomplete_custom(repository, transitions, make_custom):
    """Test a custom config without Dockerfile is refused"""
    custom_dir = make_custom("web-001", files=(".env", "compose.yaml"))

    with pytest.raises(IncompleteConfigurationError) as exc_info:
        transitions.promote_custom_to_image("web-20240101-0900", custom_dir)

    assert exc_info.value.missing_files == ["Dockerfile"]
    assert not (repository.images_root / "web-20240101-0900").exists()


def test_promote_missing_custom(repository, transitions):
    """Test an absent custom directory is reported as not found"""
    with pytest.raises(NotFoundError):
        transitions.promote_custom_to_image("web-1", repository.custom_root / "web-001")


def test_promote_custom_collision(transitions, make_custom, make_image):
    """Test existing images are never overwritten"""
    custom_dir = make_custom("web-001")
    make_image("web-20240101-0900")

    with pytest.raises(CollisionError):
        transitions.promote_custom_to_image("web-20240101-0900", custom_dir)


def test_promote_custom_copy_failure(repository, transitions, make_custom, monkeypatch):
    """Test a failed copy records a Failed build and raises"""
    custom_dir = make_custom("web-001")

    def broken_copy(src, dst):
        shutil.copytree(src, dst)
        raise OSError("disk full")

    monkeypatch.setattr("mcp_deck.layers.transitions.copy_tree", broken_copy)

    with pytest.raises(ExecutionFailureError):
        transitions.promote_custom_to_image("web-20240101-0900", custom_dir)

    image_dir = repository.images_root / "web-20240101-0900"
    assert image_dir.is_dir()
    assert read_metadata(image_dir).build_status == BuildStatus.FAILED


def test_validate_configuration(tmp_path, make_custom):
    """Test configuration states"""
    assert validate_configuration(tmp_path / "missing").status == ConfigStatus.NOT_FOUND

    state = validate_configuration(make_custom("partial", files=(".env",)))
    assert state.status == ConfigStatus.INCOMPLETE
    assert state.missing_files == ["compose.yaml", "Dockerfile"]
    assert not state.is_valid

    assert validate_configuration(make_custom("full")).is_valid


def test_promote_metadata_write_failure(repository, transitions, make_custom, monkeypatch):
    """Test a failed ledger write after the copy is reported as an execution failure"""
    custom_dir = make_custom("web-001")
    attempts = []

    def flaky_write(image_dir, metadata):
        attempts.append(metadata.build_status)
        if len(attempts) == 1:
            raise TransientIOError("write", str(image_dir), 3)
        write_metadata(image_dir, metadata)

    monkeypatch.setattr("mcp_deck.layers.transitions.write_metadata", flaky_write)

    with pytest.raises(ExecutionFailureError):
        transitions.promote_custom_to_image("web-20240101-0900", custom_dir)

    assert attempts == [BuildStatus.BUILT, BuildStatus.FAILED]
    assert read_metadata(repository.images_root / "web-20240101-0900").build_status == BuildStatus.FAILED


@pytest.mark.parametrize("name", ["../images/escaped-x", "nested/x", ".."])
def test_custom_name_cannot_leave_its_layer(repository, transitions, template, name):
    """Test custom names with path separators are refused before copying"""
    with pytest.raises(ValidationFailureError):
        transitions.promote_template_to_custom(template, name)

    assert not (repository.images_root / "escaped-x").exists()
    assert list(repository.custom_root.iterdir()) == []


def test_template_name_cannot_leave_its_layer(repository, transitions, make_custom):
    """Test a template reference cannot point into another layer"""
    make_custom("web-001")
    with pytest.raises(ValidationFailureError):
        transitions.promote_template_to_custom("../custom/web-001")


def test_image_name_cannot_leave_its_layer(repository, transitions, make_custom):
    """Test image names with path separators are refused before copying"""
    custom_dir = make_custom("web-001")

    with pytest.raises(ValidationFailureError):
        transitions.promote_custom_to_image("../custom/web-copy", custom_dir)

    assert not (repository.custom_root / "web-copy").exists()
    assert list(repository.images_root.iterdir()) == []
