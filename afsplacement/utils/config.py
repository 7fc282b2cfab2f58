"""
Configuration management for afs-placement.

Handles loading and merging configuration from:
- Default configuration file
- A site configuration file given on the command line
- Environment variables

The merged tree is turned into an immutable PlacementConfig that is handed to
each component at construction. Nothing here is process-global.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

DEFAULT_THRESHOLD = 0.90


class Config:
    """Layered configuration tree for afs-placement."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file. If None, only defaults
                and environment overrides apply.
        """
        self._config: Dict[str, Any] = {}
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        """Load default configuration."""
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
            if not isinstance(file_config, dict):
                raise ValueError(f"{config_file}: top level must be a mapping")
            self._merge_config(file_config)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """
        Deep merge new configuration into existing configuration.

        Args:
            new_config: Configuration dictionary to merge
        """
        self._config = self._deep_merge(self._config, new_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if threshold := os.getenv("AFSPLACE_THRESHOLD"):
            self.set("placement.threshold", float(threshold))

        if vos := os.getenv("AFSPLACE_VOS"):
            self.set("vos.path", vos)

        if localauth := os.getenv("AFSPLACE_LOCALAUTH"):
            self.set("vos.localauth", localauth.lower() in ("1", "true", "yes"))

        if stop_file := os.getenv("AFSPLACE_STOP_FILE"):
            self.set("batch.stop_file", stop_file)

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "vos.path")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Get entire configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return self._config.copy()


@dataclass(frozen=True)
class PlacementConfig:
    """
    Typed settings shared by the placement components.

    Attributes:
        vos_path: Path to the vos binary
        cell: Cell passed to vos with -cell, if any
        localauth: Pass -localauth to vos
        verbose: Pass -verbose to mutating vos commands
        threshold: Fraction of a partition that may be filled
        companion_replica: Keep a read-only clone on the primary's partition
        inspection_format: auto, classic or attribute
        stop_file: Sentinel checked between volumes of a batch
        log_level: Logging level
        log_format: json or console
    """
    vos_path: str = "vos"
    cell: Optional[str] = None
    localauth: bool = False
    verbose: bool = False
    threshold: float = DEFAULT_THRESHOLD
    companion_replica: bool = False
    inspection_format: str = "auto"
    stop_file: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "console"
    extra_vos_args: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 0.0 < self.threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {self.threshold}")
        if self.inspection_format not in ("auto", "classic", "attribute"):
            raise ValueError(f"unknown inspection format: {self.inspection_format}")

    def vos_flags(self) -> Tuple[str, ...]:
        """
        Flags appended to every vos invocation.

        Returns:
            Tuple of vos arguments
        """
        flags = []
        if self.cell:
            flags.extend(["-cell", self.cell])
        if self.localauth:
            flags.append("-localauth")
        flags.extend(self.extra_vos_args)
        return tuple(flags)

    @classmethod
    def from_config(cls, config: Config) -> "PlacementConfig":
        """Create from a loaded configuration tree."""
        return cls(
            vos_path=config.get("vos.path", "vos"),
            cell=config.get("vos.cell"),
            localauth=bool(config.get("vos.localauth", False)),
            verbose=bool(config.get("vos.verbose", False)),
            threshold=float(config.get("placement.threshold", DEFAULT_THRESHOLD)),
            companion_replica=bool(config.get("placement.companion_replica", False)),
            inspection_format=config.get("inspection.format", "auto"),
            stop_file=config.get("batch.stop_file"),
            log_level=config.get("logging.level", "INFO"),
            log_format=config.get("logging.format", "console"),
            extra_vos_args=tuple(config.get("vos.extra_args", []) or []),
        )


def load_config(config_file: Optional[str] = None) -> PlacementConfig:
    """
    Load configuration and build the typed settings.

    Args:
        config_file: Optional configuration file path

    Returns:
        Placement configuration
    """
    return PlacementConfig.from_config(Config(config_file))
