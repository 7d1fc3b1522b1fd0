"""Tests for configuration loading."""
from pathlib import Path

from mcp_deck.config import DeckConfig, load_config, read_config_file


def write_toml(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_defaults(tmp_path):
    """Test built-in defaults"""
    config = load_config(tmp_path, environ={}, user_config_path=tmp_path / "none.toml")

    assert config.project_root == tmp_path
    assert config.deck_dir == tmp_path / ".deck"
    assert config.container_prefix == "deck_"
    assert config.default_keep_count == 3
    assert config.retry_attempts == 3
    assert config.retry_delay == 0.05


def test_user_then_project_then_env(tmp_path):
    """Test later sources override earlier ones"""
    user = write_toml(tmp_path / "user" / "config.toml", '[deck]\ncontainer_prefix = "u_"\ndefault_keep_count = 7\n')
    write_toml(tmp_path / ".deck" / "config.toml", "[deck]\ndefault_keep_count = 4\nlog_level = \"debug\"\n")

    config = load_config(tmp_path, environ={}, user_config_path=user)
    assert config.container_prefix == "u_"
    assert config.default_keep_count == 4
    assert config.log_level == "DEBUG"

    config = load_config(tmp_path, environ={"DECK_KEEP_COUNT": "9"}, user_config_path=user)
    assert config.default_keep_count == 9


def test_env_project_root(tmp_path):
    """Test DECK_PROJECT_ROOT selects the project and its config file"""
    project = tmp_path / "project"
    write_toml(project / ".deck" / "config.toml", '[deck]\ncontainer_prefix = "p_"\n')

    config = load_config(
        environ={"DECK_PROJECT_ROOT": str(project)}, user_config_path=tmp_path / "none.toml"
    )
    assert config.project_root == project
    assert config.container_prefix == "p_"


def test_unknown_keys_and_bad_values_are_ignored(tmp_path):
    """Test unusable entries fall back to defaults"""
    user = write_toml(tmp_path / "user.toml", '[deck]\nflavor = "x"\ndefault_keep_count = "many"\n')

    config = load_config(tmp_path, environ={}, user_config_path=user)
    assert config.default_keep_count == DeckConfig().default_keep_count


def test_malformed_file(tmp_path):
    """Test broken TOML is skipped"""
    broken = write_toml(tmp_path / "broken.toml", "[deck\nkey = ")
    assert read_config_file(broken) == {}
    assert read_config_file(tmp_path / "missing.toml") == {}


def test_file_without_deck_table(tmp_path):
    """Test other tables are ignored"""
    path = write_toml(tmp_path / "other.toml", "[tool]\nx = 1\n")
    assert read_config_file(path) == {}
