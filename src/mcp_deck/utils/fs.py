import getpass
import os
import shutil
import time
from pathlib import Path

import psutil

from mcp_deck.errors import TransientIOError
from mcp_deck.logging import get_logger

logger = get_logger(__name__)

RETRY_ATTEMPTS = 3
RETRY_DELAY = 0.05


def ensure_directory(
    path: Path, attempts: int = RETRY_ATTEMPTS, delay: float = RETRY_DELAY
) -> Path:
    """Create a directory, retrying short-lived OS races a bounded number of times."""

    for attempt in range(1, attempts + 1):
        try:
            path.mkdir(parents=True, exist_ok=True)
            if path.is_dir():
                return path
        except OSError as e:
            logger.warning({
                "event": "mkdir_retry",
                "path": str(path),
                "attempt": attempt,
                "max_attempts": attempts,
                "error": str(e),
            })
        if attempt < attempts:
            time.sleep(delay)

    raise TransientIOError("create directory", str(path), attempts)


def write_text(
    path: Path, content: str, attempts: int = RETRY_ATTEMPTS, delay: float = RETRY_DELAY
) -> None:
    """Write a text file with the same bounded retry as ensure_directory."""

    for attempt in range(1, attempts + 1):
        try:
            path.write_text(content, encoding="utf-8")
            if path.is_file():
                return
        except FileNotFoundError as e:
            logger.warning({
                "event": "write_retry",
                "path": str(path),
                "attempt": attempt,
                "error": str(e),
            })
            if attempt < attempts:
                ensure_directory(path.parent, attempts, delay)
        except OSError as e:
            logger.warning({
                "event": "write_retry",
                "path": str(path),
                "attempt": attempt,
                "error": str(e),
            })
        if attempt < attempts:
            time.sleep(delay)

    raise TransientIOError("write file", str(path), attempts)


def copy_tree(src: Path, dst: Path) -> None:
    """Copy a directory tree including hidden files.

    The destination must not exist yet. A failure midway leaves whatever was
    already copied in place.
    """

    logger.debug({"event": "copy_tree", "src": str(src), "dst": str(dst)})
    shutil.copytree(src, dst, symlinks=True)


def remove_tree(path: Path) -> None:
    logger.debug({"event": "remove_tree", "path": str(path)})
    shutil.rmtree(path)


def directory_size(path: Path) -> int:
    """Total size in bytes of the regular files below path."""

    total = 0
    for root, _, files in os.walk(path):
        for name in files:
            file_path = Path(root) / name
            if file_path.is_symlink():
                continue
            try:
                total += file_path.stat().st_size
            except OSError:
                continue
    return total


def set_env_value(env_file: Path, key: str, value: str) -> None:
    """Rewrite ``key=...`` in an env file, appending the line when it is absent."""

    lines = env_file.read_text(encoding="utf-8").splitlines() if env_file.exists() else []
    prefix = f"{key}="
    updated = False
    for i, line in enumerate(lines):
        if line.startswith(prefix):
            lines[i] = f"{key}={value}"
            updated = True

    if not updated:
        lines.append(f"{key}={value}")

    write_text(env_file, "\n".join(lines) + "\n")
    logger.debug({"event": "env_value_set", "file": str(env_file), "key": key, "value": value})


def read_env_value(env_file: Path, key: str) -> str | None:
    if not env_file.is_file():
        return None
    prefix = f"{key}="
    for line in env_file.read_text(encoding="utf-8").splitlines():
        if line.startswith(prefix):
            return line[len(prefix):]
    return None


def current_user() -> str:
    """Name of the user running this process."""

    try:
        name = psutil.Process().username()
    except (psutil.Error, KeyError):
        name = getpass.getuser()
    # Windows reports DOMAIN\\user
    return name.rsplit("\\", 1)[-1]
