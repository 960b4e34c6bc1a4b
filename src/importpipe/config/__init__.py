# SPDX-License-Identifier: Apache-2.0
"""Configuration management for importpipe."""

from .loader import ConfigVersionError, load_settings
from .settings import (
    CURRENT_CONFIG_VERSION,
    MIN_SUPPORTED_VERSION,
    DirectoryConfig,
    DispatchConfig,
    ImportSettings,
    SourceConfig,
)

__all__ = [
    "ImportSettings",
    "DispatchConfig",
    "SourceConfig",
    "DirectoryConfig",
    "CURRENT_CONFIG_VERSION",
    "MIN_SUPPORTED_VERSION",
    "load_settings",
    "ConfigVersionError",
]
