"""Tests for filesystem helpers."""
from pathlib import Path

import pytest

from mcp_deck.errors import TransientIOError
from mcp_deck.utils import fs
from mcp_deck.utils.fs import (
    copy_tree,
    current_user,
    directory_size,
    ensure_directory,
    read_env_value,
    set_env_value,
    write_text,
)


def test_ensure_directory(tmp_path):
    """Test nested directory creation"""
    target = tmp_path / "a" / "b"
    assert ensure_directory(target, delay=0) == target
    assert target.is_dir()


def test_ensure_directory_retries(tmp_path, monkeypatch):
    """Test transient mkdir failures are retried"""
    target = tmp_path / "flaky"
    real_mkdir = Path.mkdir
    failures = []

    def flaky_mkdir(self, *args, **kwargs):
        if self == target and len(failures) < 2:
            failures.append(self)
            raise OSError("race")
        return real_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", flaky_mkdir)

    ensure_directory(target, attempts=3, delay=0)
    assert target.is_dir()
    assert len(failures) == 2


def test_ensure_directory_gives_up(tmp_path, monkeypatch):
    """Test persistent failures raise after the last attempt"""
    sleeps = []
    monkeypatch.setattr(fs.time, "sleep", sleeps.append)

    def broken_mkdir(self, *args, **kwargs):
        raise OSError("gone")

    monkeypatch.setattr(Path, "mkdir", broken_mkdir)

    with pytest.raises(TransientIOError) as exc_info:
        ensure_directory(tmp_path / "never", attempts=3, delay=0.05)

    assert exc_info.value.details["attempts"] == 3
    assert sleeps == [0.05, 0.05]


def test_write_text_recreates_parent(tmp_path):
    """Test a vanished parent directory is recreated on retry"""
    target = tmp_path / "gone" / "file.txt"
    write_text(target, "hello", delay=0)
    assert target.read_text() == "hello"


def test_copy_tree_includes_hidden_files(tmp_path):
    """Test dotfiles are copied"""
    src = tmp_path / "src"
    src.mkdir()
    (src / ".env").write_text("A=1\n")
    (src / "sub").mkdir()
    (src / "sub" / "f").write_text("x")

    copy_tree(src, tmp_path / "dst")
    assert (tmp_path / "dst" / ".env").read_text() == "A=1\n"
    assert (tmp_path / "dst" / "sub" / "f").is_file()


def test_copy_tree_refuses_existing(tmp_path):
    """Test the destination must not exist"""
    (tmp_path / "src").mkdir()
    (tmp_path / "dst").mkdir()
    with pytest.raises(FileExistsError):
        copy_tree(tmp_path / "src", tmp_path / "dst")


def test_directory_size(tmp_path):
    """Test sizes of nested files are summed"""
    (tmp_path / "a").write_bytes(b"x" * 10)
    (tmp_path / "d").mkdir()
    (tmp_path / "d" / "b").write_bytes(b"x" * 5)
    assert directory_size(tmp_path) == 15


def test_env_values(tmp_path):
    """Test env keys are rewritten in place or appended"""
    env = tmp_path / ".env"
    env.write_text("PROJECT_NAME=old\nPORT=1\n")

    set_env_value(env, "PROJECT_NAME", "new")
    set_env_value(env, "EXTRA", "2")

    assert env.read_text() == "PROJECT_NAME=new\nPORT=1\nEXTRA=2\n"
    assert read_env_value(env, "PORT") == "1"
    assert read_env_value(env, "MISSING") is None
    assert read_env_value(tmp_path / "none", "PORT") is None


def test_env_value_prefix_match(tmp_path):
    """Test similar keys are left alone"""
    env = tmp_path / ".env"
    env.write_text("PROJECT_NAME_SUFFIX=keep\n")
    set_env_value(env, "PROJECT_NAME", "x")
    assert env.read_text() == "PROJECT_NAME_SUFFIX=keep\nPROJECT_NAME=x\n"


def test_current_user_strips_domain(monkeypatch):
    """Test DOMAIN\\user names are shortened"""
    class FakeProcess:
        def username(self):
            return "CORP\\alice"

    monkeypatch.setattr(fs.psutil, "Process", FakeProcess)
    assert current_user() == "alice"
