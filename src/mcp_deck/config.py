"""Deck configuration loading.

Values are merged in order: built-in defaults, the user config file
(``<user config dir>/mcp-deck/config.toml``), the project config file
(``.deck/config.toml``) and finally ``DECK_*`` environment variables. Both
files hold their keys in a ``[deck]`` table.
"""
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import appdirs
import tomli

from mcp_deck.logging import get_logger

logger = get_logger(__name__)

APP_NAME = "mcp-deck"
CONFIG_FILE_NAME = "config.toml"

ENV_VARS = {
    "DECK_PROJECT_ROOT": "project_root",
    "DECK_DIR_NAME": "deck_dir_name",
    "DECK_CONTAINER_PREFIX": "container_prefix",
    "DECK_KEEP_COUNT": "default_keep_count",
    "DECK_LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class DeckConfig:
    """Deck settings"""
    project_root: Path = Path(".")
    deck_dir_name: str = ".deck"
    container_prefix: str = "deck_"
    default_keep_count: int = 3
    log_level: str = "INFO"
    retry_attempts: int = 3
    retry_delay: float = 0.05

    @property
    def deck_dir(self) -> Path:
        return self.project_root / self.deck_dir_name


def get_user_config_path() -> Path:
    return Path(appdirs.user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def _coerce(name: str, value: Any) -> Any:
    match name:
        case "project_root":
            return Path(value).expanduser()
        case "default_keep_count" | "retry_attempts":
            return int(value)
        case "retry_delay":
            return float(value)
        case "log_level":
            return str(value).upper()
        case _:
            return str(value)


def _apply(config: DeckConfig, values: Mapping[str, Any], source: str) -> DeckConfig:
    known = {f.name for f in fields(DeckConfig)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.debug({"event": "config_key_ignored", "key": key, "source": source})
            continue
        try:
            updates[key] = _coerce(key, value)
        except (TypeError, ValueError):
            logger.warning(
                {"event": "config_value_invalid", "key": key, "value": value, "source": source}
            )
    return replace(config, **updates)


def read_config_file(path: Path) -> Dict[str, Any]:
    """Read the ``[deck]`` table of a TOML file; missing or broken files yield {}."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        logger.warning({"event": "config_file_unreadable", "path": str(path), "error": str(e)})
        return {}
    return dict(data.get("deck", {}))


def load_config(
    project_root: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    user_config_path: Optional[Path] = None,
) -> DeckConfig:
    """Build the effective configuration."""
    environ = os.environ if environ is None else environ
    config = DeckConfig()

    config = _apply(config, read_config_file(user_config_path or get_user_config_path()), "user")

    env_values = {
        field_name: environ[var] for var, field_name in ENV_VARS.items() if var in environ
    }
    if project_root is not None:
        env_values["project_root"] = project_root

    # project_root decides where the project file lives, so resolve it first
    root_override = env_values.get("project_root")
    if root_override is not None:
        config = _apply(config, {"project_root": root_override}, "env")

    config = _apply(config, read_config_file(config.deck_dir / CONFIG_FILE_NAME), "project")
    config = _apply(config, env_values, "env")

    logger.debug({
        "event": "config_loaded",
        "deck_dir": str(config.deck_dir),
        "container_prefix": config.container_prefix,
        "keep_count": config.default_keep_count,
    })
    return config
