# hera/urp/core/loader.py
"""
Config file helpers shared by recipe and primitive loading.
"""
from __future__ import annotations

import importlib
import logging
import os
import re
from dataclasses import dataclass, field
from glob import glob
from pathlib import Path
from typing import Any, Iterable

import yaml

logger = logging.getLogger(__name__)

# ${VAR} or ${VAR:-default}; Jinja placeholders ({{ name }}) are left alone
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


@dataclass
class ConfigFile:
    """One parsed YAML file and where it came from."""

    path: Path
    data: dict[str, Any] = field(default_factory=dict)


def import_attr(path: str) -> Any:
    """
    Resolve ``package.module:Name`` (or ``package.module:Name.attr``).

    Raises:
        ValueError: If the path has no ``:`` separator
        ImportError: If the module cannot be imported
        AttributeError: If the attribute chain does not resolve
    """
    mod_name, sep, attr_path = path.partition(":")
    if not sep or not mod_name or not attr_path:
        raise ValueError(f"Invalid import path '{path}', expected 'module:attr'")

    try:
        target: Any = importlib.import_module(mod_name)
    except ImportError as exc:
        logger.error("Failed to import module '%s'", mod_name)
        raise ImportError(f"Cannot import module '{mod_name}'") from exc

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            logger.error("'%s' has no attribute '%s'", path, part)
            raise AttributeError(f"Module '{mod_name}' has no attribute '{attr_path}'") from exc
    return target


def substitute_env_vars(value: Any) -> Any:
    """
    Replace ``${VAR}`` / ``${VAR:-default}`` in every string of a nested value.

    Raises:
        ValueError: If a variable without default is not set
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_env_value, value)
    if isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [substitute_env_vars(item) for item in value]
    return value


def _env_value(match: re.Match) -> str:
    name, default = match.group(1), match.group(2)
    value = os.environ.get(name, default)
    if value is None:
        raise ValueError(f"Environment variable '{name}' is not set and no default provided")
    return value


def find_config_files(patterns: Iterable[str]) -> list[Path]:
    """Resolved, de-duplicated files matching any glob, in sorted order."""
    return sorted({Path(m).resolve() for pattern in patterns for m in glob(pattern)})


def load_yaml_files(patterns: Iterable[str]) -> list[ConfigFile]:
    """
    Parse every YAML file matching the glob patterns, in sorted path order.

    Later files win when the caller merges by key. Empty files parse to an
    empty mapping.

    Raises:
        ValueError: If a file's top level is not a mapping
        yaml.YAMLError: If a file is not valid YAML
    """
    patterns = list(patterns)
    files = find_config_files(patterns)
    if not files:
        logger.warning("No config files found matching patterns: %s", patterns)
        return []

    logger.info("Loading config files: %s", [str(f) for f in files])
    out: list[ConfigFile] = []
    for path in files:
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Failed to load YAML file '%s': %s", path, exc)
            raise
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file '{path}' must contain a mapping at the top level")
        out.append(ConfigFile(path=path, data=data))
    return out
