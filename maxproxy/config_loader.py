"""YAML configuration for maxproxy.

A config file may reference environment variables as ``${NAME}`` or
``$NAME``. Values come from a companion env file first
(``config_<suffix>.yaml`` pairs with ``.env_<suffix>``, anything else with
``.env``) and then from the process environment, which is never modified.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("maxproxy")

CONFIG_ENV_VAR = "MAXPROXY_CONFIG"
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
PROJECT_ROOT = Path(__file__).resolve().parent.parent

_PLACEHOLDER = re.compile(r"\$(?:\{(?P<braced>[^}]+)\}|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))")


def _project_path(path: str) -> Path:
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Env file paired with ``config_path``, unless ``env_path`` overrides it."""
    if env_path:
        return _project_path(env_path)
    prefix = "config_"
    name = config_path.stem
    if name.startswith(prefix):
        return config_path.with_name(".env_" + name[len(prefix):])
    return config_path.with_name(".env")


def _read_env_file(env_file: Path) -> dict[str, str]:
    if not env_file.is_file():
        return {}
    logger.info("Reading environment values from %s", env_file)
    return {key: value for key, value in dotenv_values(env_file).items() if value is not None}


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Read the proxy configuration.

    Args:
        path: Config file; defaults to ``$MAXPROXY_CONFIG`` and then
            ``configs/config_default.yaml`` under the project root.
        env_path: Env file to use instead of the one paired with ``path``.
        substitute_env: Expand ``$NAME`` placeholders when true.

    Raises:
        RuntimeError: the config file does not exist.
    """
    config_path = _project_path(path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    if not config_path.is_file():
        logger.error("Config file not found: %s", config_path)
        raise RuntimeError(f"Config file not found: {config_path}")

    logger.info("Loading configuration from %s", config_path)
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if substitute_env:
        data = _substitute_env_vars(data, _read_env_file(resolve_env_path(config_path, env_path)))
    return data


def _substitute_env_vars(obj: Any, env_values: Mapping[str, str] | None = None) -> Any:
    """Expand placeholders in every string nested inside ``obj``.

    Unknown names are left as written and reported once per occurrence.
    """
    values = env_values or {}

    def expand(match: re.Match) -> str:
        name = match.group("braced") or match.group("bare")
        value = values.get(name, os.getenv(name))
        if value is None:
            logger.warning("Config references unset variable %s; keeping placeholder", name)
            return match.group(0)
        return value

    if isinstance(obj, str):
        return _PLACEHOLDER.sub(expand, obj)
    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, values) for item in obj]
    return obj
