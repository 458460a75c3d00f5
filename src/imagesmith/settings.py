"""
Installer Settings Module

Runtime settings for the application installer. Values come from defaults,
then an optional YAML settings file, then IMAGESMITH_* environment variables;
the CLI applies its own flags last.
"""

import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .errors import ConfigError


ENV_PREFIX = 'IMAGESMITH_'

VCLIBS_URL = 'https://aka.ms/Microsoft.VCLibs.x64.14.00.Desktop.appx'
UI_XAML_URL = (
    'https://github.com/microsoft/microsoft-ui-xaml/releases/download/'
    'v2.8.6/Microsoft.UI.Xaml.2.8.x64.appx'
)
APP_INSTALLER_URL = 'https://aka.ms/getwinget'


def _default_work_dir() -> str:
    if os.name == 'nt':
        return r'C:\ImageBuild'
    return str(Path(tempfile.gettempdir()) / 'imagesmith')


@dataclass
class InstallerSettings:
    """Settings for one installer run."""

    work_dir: str = field(default_factory=_default_work_dir)
    log_file: Optional[str] = None
    storage_base_url: str = ''
    winget_settle_seconds: float = 10.0
    download_timeout: float = 300.0
    download_retries: int = 3
    use_bits: bool = True
    vclibs_url: str = VCLIBS_URL
    ui_xaml_url: str = UI_XAML_URL
    app_installer_url: str = APP_INSTALLER_URL

    @property
    def log_path(self) -> Path:
        """Path of the run log (defaults to install.log in the work dir)."""
        if self.log_file:
            return Path(self.log_file)
        return Path(self.work_dir) / 'install.log'

    def update(self, values: Dict[str, Any]):
        """
        Apply overrides, converting strings to each field's type.

        Args:
            values: Mapping of field name to value; None values are ignored

        Raises:
            ConfigError: If a key is unknown or a value cannot be converted
        """
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if value is None:
                continue
            if key not in known:
                raise ConfigError(f"Unknown installer setting: {key}")
            setattr(self, key, _coerce(key, value, type(getattr(self, key))))

    @classmethod
    def load(cls, settings_file: Optional[str] = None,
             environ: Optional[Dict[str, str]] = None) -> 'InstallerSettings':
        """
        Build settings from defaults, a YAML file and the environment.

        Args:
            settings_file: Optional YAML file with setting overrides
            environ: Environment mapping (defaults to os.environ)

        Returns:
            InstallerSettings instance
        """
        settings = cls()

        if settings_file:
            path = Path(settings_file)
            if not path.exists():
                raise ConfigError(f"Settings file not found: {settings_file}")
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Error parsing settings file: {e}")
            if not isinstance(data, dict):
                raise ConfigError("Settings file must contain a mapping")
            settings.update(data)

        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            env_key = ENV_PREFIX + f.name.upper()
            if env_key in environ:
                overrides[f.name] = environ[env_key]
        settings.update(overrides)

        return settings


def _coerce(key: str, value: Any, target: type) -> Any:
    if target is bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
    if target is type(None):
        return str(value)
    try:
        return target(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for setting '{key}': {value!r}")
