"""
Configuration Loader Module

Handles loading and parsing YAML build configuration files for golden image
builds.
"""

from pathlib import Path
from typing import Dict, Any, Optional
import yaml


class ConfigLoader:
    """Load and parse YAML build configuration files."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the ConfigLoader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}

    def load(self, config_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Dictionary containing the parsed configuration

        Raises:
            FileNotFoundError: If the configuration file doesn't exist
            yaml.YAMLError: If the YAML is malformed
            ValueError: If no path was given or the file is not a mapping
        """
        path = config_path or self.config_path

        if not path:
            raise ValueError("No configuration path provided")

        config_file = Path(path)

        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                self.config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing YAML configuration: {e}")

        if not isinstance(self.config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {path}")

        self.config_path = str(config_file)
        self._resolve_paths(config_file.parent)

        return self.config

    def _resolve_paths(self, base_dir: Path):
        """Resolve the manifest path relative to the configuration file."""
        installer = self.config.get('installer')
        if not isinstance(installer, dict):
            return
        manifest_file = installer.get('manifest_file')
        if manifest_file and not Path(manifest_file).is_absolute():
            installer['manifest_file'] = str(base_dir / manifest_file)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key.

        Args:
            key: Configuration key (supports dot notation, e.g., 'build.vm_size')
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value
