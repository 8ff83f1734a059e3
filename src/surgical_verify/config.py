# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for surgical verification."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from surgical_verify.policy import ROOT_PARTITION

logger = logging.getLogger(__name__)


class Config:
    """Configuration for the surgical verification engine.

    Loads configuration from .surgical_verify.yml with validation and defaults.
    Paths in scan_roots, alias_map and subprojects are relative to the
    project root.
    """

    DEFAULTS: Dict[str, Any] = {
        "scan_roots": ["frontend", "backend", "mcp-servers"],
        "exclude_dirs": ["node_modules", "dist", "build", "coverage", "out"],
        # Any directory starting with one of these is skipped (.git, .next, ...)
        "exclude_prefixes": ["."],
        "extensions": [".ts", ".tsx", ".js", ".jsx"],
        "alias_map": {
            "@/": "frontend",
            "@backend/": "backend/src",
            "@mcp/": "mcp-servers",
        },
        "global_triggers": [
            "package.json",
            "package-lock.json",
            "pnpm-lock.yaml",
            "yarn.lock",
            "tsconfig.json",
            "tsconfig.*.json",
            ".eslintrc*",
            "eslint.config.*",
        ],
        "blast_radius_threshold": 50,
        "max_files": 50000,
        "cache_default_ttl_seconds": 24 * 60 * 60,
        "cache_file_ttl_seconds": 60 * 60,
        "subprojects": {
            "frontend": "frontend",
            "backend": "backend",
        },
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / ".surgical_verify.yml"

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        """Build a configuration from an in-memory mapping.

        Values are validated exactly like values loaded from a file.
        """
        config = cls.__new__(cls)
        config.config_path = None
        config._config = cls._defaults()
        config._validate_and_merge(values)
        return config

    @classmethod
    def _defaults(cls) -> Dict[str, Any]:
        # Copy nested containers so instances never share mutable defaults
        return {
            key: value.copy() if isinstance(value, (list, dict)) else value
            for key, value in cls.DEFAULTS.items()
        }

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self._defaults()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self._defaults()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self._defaults()
                return

            # Start with defaults and override with loaded values
            self._config = self._defaults()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._defaults()
        except OSError as e:
            logger.warning(
                f"Error reading configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._defaults()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        # bool is a subclass of int; reject it for numeric parameters
        if isinstance(value, bool) and not isinstance(self.DEFAULTS[key], bool):
            return False

        if key in ("cache_default_ttl_seconds", "cache_file_ttl_seconds"):
            # Fractional seconds are allowed
            return isinstance(value, (int, float)) and value > 0

        expected_type = type(self.DEFAULTS[key])
        if not isinstance(value, expected_type):
            return False

        if key in ("blast_radius_threshold", "max_files"):
            return value > 0
        elif key in ("scan_roots", "exclude_dirs", "exclude_prefixes", "global_triggers"):
            return all(isinstance(item, str) and item for item in value)
        elif key == "extensions":
            # Must be ".ext" strings
            return bool(value) and all(
                isinstance(ext, str) and ext.startswith(".") and len(ext) > 1 for ext in value
            )
        elif key == "subprojects" and ROOT_PARTITION in value:
            # Reserved for files under no sub-project
            return False
        elif key in ("alias_map", "subprojects"):
            # Must map non-empty strings to strings
            return all(
                isinstance(name, str) and name and isinstance(target, str)
                for name, target in value.items()
            )

        return True

    # Property accessors for all configuration values
    @property
    def scan_roots(self) -> List[str]:
        """Directories to scan, relative to the project root."""
        value = self._config["scan_roots"]
        assert isinstance(value, list)
        return value

    @property
    def exclude_dirs(self) -> List[str]:
        """Directory basenames whose whole subtree is skipped."""
        value = self._config["exclude_dirs"]
        assert isinstance(value, list)
        return value

    @property
    def exclude_prefixes(self) -> List[str]:
        """Directory basename prefixes whose whole subtree is skipped."""
        value = self._config["exclude_prefixes"]
        assert isinstance(value, list)
        return value

    @property
    def extensions(self) -> List[str]:
        """Source file extensions, in resolver probe order."""
        value = self._config["extensions"]
        assert isinstance(value, list)
        return value

    @property
    def alias_map(self) -> Dict[str, str]:
        """Import alias prefix -> directory relative to the project root.

        Example: {"@/": "frontend"} resolves "@/lib/db" to frontend/lib/db.
        """
        value = self._config["alias_map"]
        assert isinstance(value, dict)
        return value

    @property
    def global_triggers(self) -> List[str]:
        """Glob patterns whose modification always forces full verification."""
        value = self._config["global_triggers"]
        assert isinstance(value, list)
        return value

    @property
    def blast_radius_threshold(self) -> int:
        """Largest number of dependents still verified narrowly."""
        value = self._config["blast_radius_threshold"]
        assert isinstance(value, int)
        return value

    @property
    def max_files(self) -> int:
        """Hard cap on the number of files a scan collects."""
        value = self._config["max_files"]
        assert isinstance(value, int)
        return value

    @property
    def cache_default_ttl_seconds(self) -> float:
        """TTL for generic cache entries."""
        value = self._config["cache_default_ttl_seconds"]
        assert isinstance(value, (int, float))
        return value

    @property
    def cache_file_ttl_seconds(self) -> float:
        """TTL for file-content cache entries."""
        value = self._config["cache_file_ttl_seconds"]
        assert isinstance(value, (int, float))
        return value

    @property
    def subprojects(self) -> Dict[str, str]:
        """Sub-project name -> directory relative to the project root.

        Narrow file sets are partitioned along these directories so each
        partition is checked with its own tool configuration.
        """
        value = self._config["subprojects"]
        assert isinstance(value, dict)
        return value
