"""
Pre-check Module

Decides whether an application is already present so the installer can skip
it. A broken or inconclusive check always answers "not installed".
"""

import fnmatch
import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .models import AppDescriptor, CHECK_FILE, CHECK_REGISTRY, CHECK_APPX
from .runner import ProcessRunner

logger = logging.getLogger(__name__)

REGISTRY_HIVES = {
    'HKLM': 'HKEY_LOCAL_MACHINE',
    'HKEY_LOCAL_MACHINE': 'HKEY_LOCAL_MACHINE',
    'HKCU': 'HKEY_CURRENT_USER',
    'HKEY_CURRENT_USER': 'HKEY_CURRENT_USER',
    'HKCR': 'HKEY_CLASSES_ROOT',
    'HKEY_CLASSES_ROOT': 'HKEY_CLASSES_ROOT',
    'HKU': 'HKEY_USERS',
    'HKEY_USERS': 'HKEY_USERS',
}


def split_registry_path(key_path: str):
    """
    Split a registry path into hive name and sub key.

    Accepts PowerShell drive syntax (``HKLM:\\SOFTWARE\\Foo``), the
    ``Registry::`` provider prefix and plain ``HKEY_LOCAL_MACHINE\\...`` paths.

    Returns:
        Tuple of (hive constant name, sub key)

    Raises:
        ValueError: If the hive is not recognised
    """
    path = key_path.strip()
    if path.lower().startswith('registry::'):
        path = path[len('registry::'):]
    path = path.replace('/', '\\')
    hive, _, sub_key = path.partition('\\')
    hive = hive.rstrip(':').upper()
    if hive not in REGISTRY_HIVES:
        raise ValueError(f"Unknown registry hive in '{key_path}'")
    return REGISTRY_HIVES[hive], sub_key.strip('\\')


def registry_key_exists(key_path: str) -> bool:
    """Check a registry key through winreg (Windows only)."""
    import winreg

    hive_name, sub_key = split_registry_path(key_path)
    hive = getattr(winreg, hive_name)
    try:
        with winreg.OpenKey(hive, sub_key):
            return True
    except FileNotFoundError:
        return False


def matches_display_name(pattern: str, names: Iterable[str]) -> bool:
    """
    Match a display-name pattern against package names.

    Glob wildcards are honoured; a pattern without wildcards matches as a
    case-insensitive substring.
    """
    pattern = pattern.strip().lower()
    if not pattern:
        return False
    if not any(ch in pattern for ch in '*?['):
        pattern = f"*{pattern}*"
    return any(fnmatch.fnmatchcase(name.lower(), pattern) for name in names)


class PrecheckEvaluator:
    """Evaluate skip_if_installed rules."""

    def __init__(self, runner: Optional[ProcessRunner] = None,
                 file_exists: Optional[Callable[[str], bool]] = None,
                 registry_exists: Optional[Callable[[str], bool]] = None,
                 provisioned_packages: Optional[Callable[[], List[str]]] = None):
        """
        Initialize the PrecheckEvaluator.

        Args:
            runner: Process runner used to query provisioned packages
            file_exists: Existence check for file paths
            registry_exists: Existence check for registry keys
            provisioned_packages: Returns display names of provisioned packages
        """
        self.runner = runner or ProcessRunner()
        self.file_exists = file_exists or (lambda path: Path(path).exists())
        self.registry_exists = registry_exists or registry_key_exists
        self.provisioned_packages = provisioned_packages or self._query_provisioned_packages

    def is_installed(self, app: AppDescriptor) -> bool:
        """
        Check whether an application is already installed.

        Args:
            app: Application descriptor

        Returns:
            True only on a positive match; False when there is no rule, the
            rule is unrecognised, or the check itself fails
        """
        check = app.skip_if_installed
        if check is None or not check.check_type or not check.check_path:
            return False

        try:
            if check.check_type == CHECK_FILE:
                found = self.file_exists(check.check_path)
            elif check.check_type == CHECK_REGISTRY:
                found = self.registry_exists(check.check_path)
            elif check.check_type == CHECK_APPX:
                found = matches_display_name(check.check_path, self.provisioned_packages())
            else:
                logger.warning(f"[{app.name}] Unknown pre-check type '{check.check_type}', not skipping")
                return False
        except Exception as e:
            # Fail open: a broken pre-check must not block the install
            logger.warning(f"[{app.name}] Pre-check failed ({check.check_type}): {e}")
            return False

        if found:
            logger.info(f"[{app.name}] Already installed ({check.check_type}: {check.check_path})")
        return bool(found)

    def _query_provisioned_packages(self) -> List[str]:
        result = self.runner.powershell(
            'Get-AppxProvisionedPackage -Online | '
            'Select-Object -ExpandProperty DisplayName',
            capture_output=True
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]
