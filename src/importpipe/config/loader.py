# SPDX-License-Identifier: Apache-2.0
"""Configuration loader with version validation."""

from __future__ import annotations

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from .settings import CURRENT_CONFIG_VERSION, MIN_SUPPORTED_VERSION, ImportSettings

PathLike = Union[str, Path]

# Sections whose keys are setting names; directory keys are ids and kept as-is.
_NORMALIZED_SECTIONS = ("dispatch", "source")


class ConfigVersionError(RuntimeError):
    """Error when configuration version is incompatible."""

    pass


def load_settings(path: PathLike) -> ImportSettings:
    """Load and validate settings from a YAML file.

    Environment variables in the file are expanded and kebab-case keys are
    accepted alongside snake_case.

    Raises:
        ConfigVersionError: If config version is missing or too old
        FileNotFoundError: If the YAML file doesn't exist
        ValueError: If the YAML is invalid or contains invalid settings
    """
    yaml_path = Path(path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        raw = yaml.safe_load(os.path.expandvars(yaml_path.read_text(encoding="utf-8")))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}") from e

    if not isinstance(raw, dict):
        raise ValueError("YAML file must contain a dictionary at the root level")

    data = _normalize_keys(raw)
    for section in _NORMALIZED_SECTIONS:
        if isinstance(data.get(section), dict):
            data[section] = _normalize_keys(data[section])

    ver = str(data.get("config_version", ""))
    if not ver:
        raise ConfigVersionError('config_version missing. Add `config_version: "1"` to your YAML.')

    if ver < MIN_SUPPORTED_VERSION:
        raise ConfigVersionError(
            f"Config version {ver} is too old. Minimum supported is {MIN_SUPPORTED_VERSION}."
        )

    if ver > CURRENT_CONFIG_VERSION:
        warnings.warn(
            f"This binary understands config_version {CURRENT_CONFIG_VERSION}, "
            f"but file is {ver}. Attempting best-effort parse.",
            UserWarning,
            stacklevel=2,
        )

    data["config_version"] = ver
    try:
        settings = ImportSettings(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {path}: {e}") from e

    return _resolve_paths(settings, yaml_path.parent)


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert kebab-case keys to snake_case."""
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def _resolve_paths(settings: ImportSettings, base: Path) -> ImportSettings:
    """Make relative file locations relative to the configuration file."""
    updates: Dict[str, Any] = {}
    if not settings.database.is_absolute():
        updates["database"] = base / settings.database

    source = settings.source
    source_updates: Dict[str, Any] = {}
    if source.root is not None and not source.root.is_absolute():
        source_updates["root"] = base / source.root
    if not source.download_dir.is_absolute():
        source_updates["download_dir"] = base / source.download_dir
    if source_updates:
        updates["source"] = source.model_copy(update=source_updates)

    return settings.model_copy(update=updates) if updates else settings
