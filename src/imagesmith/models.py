"""
Data Model Module

Typed representation of the application manifest and of installation verdicts.
Method-specific settings are decoded into one config class per method, with
defaults applied here rather than at each access site.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Callable, Optional, Union

from .errors import ConfigError

logger = logging.getLogger(__name__)


METHOD_DIRECT = 'direct'
METHOD_WINGET = 'winget'
METHOD_OFFLINE = 'offline'
METHOD_PSADT = 'psadt'

METHODS = (METHOD_DIRECT, METHOD_WINGET, METHOD_OFFLINE, METHOD_PSADT)

# Only these methods can run as a fallback, whatever the primary method is
FALLBACK_METHODS = (METHOD_DIRECT, METHOD_WINGET)

PACKAGE_BUNDLE_TYPES = ('msix', 'appx', 'msixbundle')
DIRECT_INSTALL_TYPES = ('msi', 'exe') + PACKAGE_BUNDLE_TYPES
OFFLINE_INSTALL_TYPES = DIRECT_INSTALL_TYPES + ('appv',)

CHECK_FILE = 'file'
CHECK_REGISTRY = 'registry'
CHECK_APPX = 'appx'

CHECK_TYPE_ALIASES = {
    'file': CHECK_FILE,
    'registry': CHECK_REGISTRY,
    'registry-key': CHECK_REGISTRY,
    'registry_key': CHECK_REGISTRY,
    'appx': CHECK_APPX,
    'provisioned-package': CHECK_APPX,
    'provisioned_package': CHECK_APPX,
}


def _require(data: Dict[str, Any], key: str, app_name: str, section: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(f"Application '{app_name}': {section}.{key} is required")
    return str(value)


def _section(data: Dict[str, Any], key: str, app_name: str) -> Dict[str, Any]:
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"Application '{app_name}': {key} must be a mapping")
    return section


def is_enabled(value: Any) -> bool:
    """Interpret a manifest ``enabled`` flag; a missing or null flag means enabled."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)


def _lenient(decode: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a decoder, logging a ConfigError and returning None instead."""
    try:
        return decode(*args, **kwargs)
    except ConfigError as e:
        logger.error(f"Manifest entry ignored: {e}")
        return None


@dataclass(frozen=True)
class DirectConfig:
    """Download an installer from a URL and run it."""

    download_url: str
    install_type: str = 'exe'
    install_args: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any], app_name: str) -> 'DirectConfig':
        return cls(
            download_url=_require(data, 'download_url', app_name, 'direct_config'),
            install_type=str(data.get('install_type') or 'exe').lower(),
            install_args=str(data.get('install_args') or ''),
        )


@dataclass(frozen=True)
class WingetConfig:
    """Install a package through the winget client."""

    package_id: str
    version: Optional[str] = None
    scope: str = 'machine'

    @classmethod
    def from_dict(cls, data: Dict[str, Any], app_name: str) -> 'WingetConfig':
        version = data.get('version')
        return cls(
            package_id=_require(data, 'package_id', app_name, 'winget_config'),
            version=str(version) if version else None,
            scope=str(data.get('scope') or 'machine'),
        )


@dataclass(frozen=True)
class OfflineConfig:
    """Install a package pre-staged in the artifact store."""

    blob_path: str
    install_type: str = 'exe'
    install_args: str = ''
    transform: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], app_name: str) -> 'OfflineConfig':
        transform = data.get('transform')
        return cls(
            blob_path=_require(data, 'blob_path', app_name, 'offline_config'),
            install_type=str(data.get('install_type') or 'exe').lower(),
            install_args=str(data.get('install_args') or ''),
            transform=str(transform) if transform else None,
        )


@dataclass(frozen=True)
class PsadtConfig:
    """Run a PSAppDeployToolkit package from the artifact store."""

    package_path: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any], app_name: str) -> 'PsadtConfig':
        return cls(package_path=_require(data, 'package_path', app_name, 'psadt_config'))


MethodConfig = Union[DirectConfig, WingetConfig, OfflineConfig, PsadtConfig]

CONFIG_KEYS = {
    METHOD_DIRECT: ('direct_config', DirectConfig),
    METHOD_WINGET: ('winget_config', WingetConfig),
    METHOD_OFFLINE: ('offline_config', OfflineConfig),
    METHOD_PSADT: ('psadt_config', PsadtConfig),
}


def decode_method_config(method: str, data: Dict[str, Any], app_name: str,
                         allowed: tuple = METHODS) -> Optional[MethodConfig]:
    """
    Decode the config block matching a method.

    Args:
        method: Method name
        data: Mapping holding the ``<method>_config`` section
        app_name: Application name for error messages
        allowed: Methods whose config should be decoded

    Returns:
        The typed config, or None for methods outside ``allowed``
    """
    if method not in allowed:
        return None
    key, config_cls = CONFIG_KEYS[method]
    return config_cls.from_dict(_section(data, key, app_name), app_name)


@dataclass(frozen=True)
class FallbackDescriptor:
    """Secondary method tried when the primary method fails."""

    method: str
    config: Optional[MethodConfig] = None


@dataclass(frozen=True)
class PreCheck:
    """Detection rule used to skip applications that are already present."""

    check_type: str
    check_path: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreCheck':
        raw_type = str(data.get('check_type') or '').strip().lower()
        return cls(
            check_type=CHECK_TYPE_ALIASES.get(raw_type, raw_type),
            check_path=str(data.get('check_path') or data.get('pattern') or ''),
        )


@dataclass(frozen=True)
class AppDescriptor:
    """One configured application, keyed by its manifest name."""

    name: str
    method: str
    enabled: bool = True
    description: str = ''
    config: Optional[MethodConfig] = None
    fallback: Optional[FallbackDescriptor] = None
    skip_if_installed: Optional[PreCheck] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'AppDescriptor':
        """
        Build a descriptor from one manifest entry.

        A malformed entry never raises: the broken part is logged and decoded
        as missing, so the application fails on its own at install time while
        the rest of the manifest is still processed.

        Args:
            name: Application name (manifest key)
            data: Entry mapping

        Returns:
            AppDescriptor instance
        """
        if not isinstance(data, dict):
            logger.error(f"Application '{name}' must be a mapping, it will fail")
            return cls(name=name, method='')

        method = str(data.get('method') or '').strip().lower()
        enabled = is_enabled(data.get('enabled'))
        description = str(data.get('description') or '')

        # Disabled entries are never evaluated, so their configs are not decoded
        if not enabled:
            return cls(name=name, method=method, enabled=False, description=description)

        fallback = None
        fallback_data = _lenient(_section, data, 'fallback', name) or {}
        if fallback_data:
            fallback_method = str(fallback_data.get('method') or '').strip().lower()
            fallback = FallbackDescriptor(
                method=fallback_method,
                config=_lenient(decode_method_config, fallback_method, fallback_data, name,
                                allowed=FALLBACK_METHODS),
            )

        precheck = None
        precheck_data = _lenient(_section, data, 'skip_if_installed', name)
        if precheck_data:
            precheck = PreCheck.from_dict(precheck_data)

        return cls(
            name=name,
            method=method,
            enabled=True,
            description=description,
            config=_lenient(decode_method_config, method, data, name),
            fallback=fallback,
            skip_if_installed=precheck,
        )


@dataclass(frozen=True)
class Verdict:
    """Terminal outcome of one application's install attempt."""

    success: bool
    method_used: str
    skipped: bool = False

    def __post_init__(self):
        if self.skipped and not self.success:
            raise ValueError("A skipped verdict must be successful")

    @classmethod
    def skip(cls) -> 'Verdict':
        return cls(success=True, method_used='skipped', skipped=True)

    @classmethod
    def ok(cls, method: str) -> 'Verdict':
        return cls(success=True, method_used=method)

    @classmethod
    def failed(cls, method: str) -> 'Verdict':
        return cls(success=False, method_used=method)
