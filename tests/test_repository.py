"""Tests for layer enumeration and structure checks."""
import os
from datetime import datetime, timedelta, timezone

from mcp_deck.layers.detection import detect_project_type
from mcp_deck.layers.metadata import update_metadata
from mcp_deck.layers.repository import LayerRepository
from mcp_deck.types import BuildStatus, Layer, ProjectType

from conftest import write_config_dir


def test_initialize_creates_layers(deck_config):
    """Test the three layer directories and gitignore rules are created"""
    repo = LayerRepository(deck_config)
    repo.initialize()

    for layer in Layer:
        assert repo.layer_root(layer).is_dir()

    gitignore = (deck_config.project_root / ".gitignore").read_text()
    assert ".deck/templates/" in gitignore
    assert ".deck/images/" in gitignore


def test_initialize_keeps_existing_gitignore(deck_config):
    """Test gitignore rules are appended once"""
    gitignore = deck_config.project_root / ".gitignore"
    gitignore.write_text("node_modules/")

    repo = LayerRepository(deck_config)
    repo.initialize()
    repo.initialize()

    content = gitignore.read_text()
    assert content.startswith("node_modules/\n")
    assert content.count(".deck/templates/") == 1


def test_empty_layers(repository):
    """Test listing an empty tree"""
    assert repository.list_templates() == []
    assert repository.list_custom() == []
    assert repository.list_images() == []


def test_list_templates_sorted(repository):
    """Test templates are listed by name and always available"""
    write_config_dir(repository.templates_root / "tauri-default", "tauri-default")
    (repository.templates_root / "avalonia-default").mkdir()

    templates = repository.list_templates()
    assert [t.name for t in templates] == ["avalonia-default", "tauri-default"]
    assert all(t.available for t in templates)
    assert all(t.layer == Layer.TEMPLATE for t in templates)


def test_list_custom_reports_completeness(repository, make_custom):
    """Test custom availability follows the required files"""
    make_custom("web-001")
    make_custom("web-002", files=(".env", "compose.yaml"))

    by_name = {c.name: c for c in repository.list_custom()}
    assert by_name["web-001"].available
    assert not by_name["web-002"].available


def test_list_custom_newest_first(repository, make_custom):
    """Test custom configs are ordered by modification time"""
    old = make_custom("web-001")
    make_custom("web-002")
    past = (datetime.now() - timedelta(days=1)).timestamp()
    os.utime(old, (past, past))

    assert [c.name for c in repository.list_custom()] == ["web-002", "web-001"]


def test_list_images_attaches_metadata(repository, make_image):
    """Test image descriptors carry their ledger record"""
    make_image("web-20240101-0900", datetime(2024, 1, 1, 9, tzinfo=timezone.utc), payload_bytes=100)

    (image,) = repository.list_images()
    assert image.metadata is not None
    assert image.metadata.build_status == BuildStatus.BUILT
    assert image.size_bytes >= 100
    assert image.project_type == ProjectType.UNKNOWN


def test_list_images_skips_invalid_names(repository, make_image):
    """Test image directories without a hyphen are ignored"""
    make_image("web-20240101-0900")
    (repository.images_root / "scratch").mkdir()

    assert [i.name for i in repository.list_images()] == ["web-20240101-0900"]


def test_list_images_uses_last_started(repository, make_image):
    """Test images are ordered by last start when known"""
    make_image("a-20240101-0900")
    path = make_image("b-20240101-0900")
    update_metadata(path, last_started=datetime.now(timezone.utc) + timedelta(hours=1))

    assert repository.list_images()[0].name == "b-20240101-0900"


def test_list_all_order(repository, template, make_custom, make_image):
    """Test images come first, then custom, then templates"""
    make_custom("python-dev-001")
    make_image("python-dev-20240101-0900")

    layers = [r.layer for r in repository.list_all()]
    assert layers == [Layer.IMAGE, Layer.CUSTOM, Layer.TEMPLATE]


def test_get_and_exists(repository, template):
    """Test lookup by layer and name"""
    assert repository.exists(Layer.TEMPLATE, template)
    assert not repository.exists(Layer.CUSTOM, template)
    assert repository.get(Layer.TEMPLATE, template).project_type == ProjectType.PYTHON
    assert repository.get(Layer.IMAGE, "missing-1") is None


def test_validate_structure_missing_deck(deck_config):
    """Test a project without .deck is reported invalid"""
    result = LayerRepository(deck_config).validate_structure()
    assert not result.is_valid
    assert result.repair_suggestions


def test_validate_structure_warnings(repository, make_image):
    """Test empty templates and incomplete images are flagged"""
    path = make_image("web-20240101-0900")
    (path / "Dockerfile").unlink()

    result = repository.validate_structure()
    assert result.is_valid
    assert any("Dockerfile" in w for w in result.warnings)
    assert any("Templates directory is empty" in w for w in result.warnings)


def test_validate_structure_missing_layer(repository):
    """Test a removed layer directory is an error"""
    repository.custom_root.rmdir()
    result = repository.validate_structure()
    assert not result.is_valid
    assert "Missing custom directory" in result.errors


def test_project_detection(tmp_path):
    """Test project type signatures"""
    assert detect_project_type(tmp_path) == ProjectType.UNKNOWN

    (tmp_path / "package.json").touch()
    assert detect_project_type(tmp_path) == ProjectType.NODE

    (tmp_path / "src-tauri.conf").touch()
    (tmp_path / "tauri.conf.json").touch()
    assert detect_project_type(tmp_path) == ProjectType.TAURI


def test_project_detection_dotnet(tmp_path):
    """Test solution files mark Avalonia projects"""
    (tmp_path / "App.sln").touch()
    assert detect_project_type(tmp_path) == ProjectType.AVALONIA
