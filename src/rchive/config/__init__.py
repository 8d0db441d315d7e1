"""Configuration system for rchive.

This module provides TOML-based configuration loading, validation,
and schema definitions for the backup run.
"""

from ..errors import ConfigError
from .loader import generate_example_config, load_config
from .schema import (
    ArchiveConfig,
    Config,
    GlobalConfig,
    JobSpec,
    RetentionPolicy,
    RunOptions,
    SnapshotConfig,
)

__all__ = [
    "ArchiveConfig",
    "Config",
    "GlobalConfig",
    "JobSpec",
    "RetentionPolicy",
    "RunOptions",
    "SnapshotConfig",
    "load_config",
    "generate_example_config",
    "ConfigError",
]
