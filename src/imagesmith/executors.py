"""
Method Executors Module

One executor per installation method. Every executor turns a method config
into an installed application and answers True or False; errors never
escape to the orchestrator.
"""

import logging
import re
import zipfile
from pathlib import Path
from typing import Optional, FrozenSet
from urllib.parse import urlsplit, unquote

from .acquisition import Downloader, storage_url
from .errors import ExecutionError, AcquisitionError, BootstrapError
from .models import (
    DirectConfig, WingetConfig, OfflineConfig, PsadtConfig, MethodConfig,
    METHOD_DIRECT, METHOD_WINGET, METHOD_OFFLINE, METHOD_PSADT,
    PACKAGE_BUNDLE_TYPES,
)
from .runner import ProcessRunner, POWERSHELL, ps_quote
from .winget import WingetBootstrap
from .workspace import Workspace, safe_name

logger = logging.getLogger(__name__)

# 0 = success, 3010 = reboot required, 1641 = reboot initiated
STANDARD_SUCCESS_CODES: FrozenSet[int] = frozenset({0, 3010, 1641})

# PSAppDeployToolkit also passes 3011 (success, restart required) through
PSADT_SUCCESS_CODES: FrozenSet[int] = frozenset({0, 1641, 3010, 3011})

PSADT_ENTRY_POINT = 'Deploy-Application.ps1'

_QUIET_FLAG = re.compile(r'(^|\s)[/-]q', re.IGNORECASE)


def is_success(exit_code: int, success_codes: FrozenSet[int] = STANDARD_SUCCESS_CODES) -> bool:
    """Classify a process exit code against a success set."""
    return exit_code in success_codes


def derive_filename(url: str, app_name: str, install_type: str) -> str:
    """
    Pick a local file name for a download.

    The last path segment of the URL is used without its query string. Names
    shorter than three characters fall back to ``<app_name>.<install_type>``.

    Args:
        url: Download URL
        app_name: Application name
        install_type: Install type used as the fallback extension

    Returns:
        File name
    """
    path = urlsplit(url).path
    name = unquote(path.rstrip('/').rsplit('/', 1)[-1])
    if len(name) < 3:
        return f"{safe_name(app_name)}.{install_type}"
    return name


def msi_command(package: Path, install_args: str = '', transform: Optional[Path] = None) -> str:
    """
    Build an msiexec command line.

    Silent and no-restart flags are appended unless the arguments already ask
    for a quiet UI level.
    """
    parts = [f'msiexec.exe /i "{package}"']
    if install_args:
        parts.append(install_args)
    if transform is not None:
        parts.append(f'TRANSFORMS="{transform}"')
    if not _QUIET_FLAG.search(install_args or ''):
        parts.append('/qn /norestart')
    return ' '.join(parts)


class MethodExecutor:
    """Base class for installation methods."""

    name = ''
    success_codes: FrozenSet[int] = STANDARD_SUCCESS_CODES

    def __init__(self, workspace: Workspace, downloader: Downloader,
                 runner: Optional[ProcessRunner] = None):
        self.workspace = workspace
        self.downloader = downloader
        self.runner = runner or ProcessRunner()

    def install(self, app_name: str, config: Optional[MethodConfig],
                storage_base_url: Optional[str] = None) -> bool:
        """
        Install one application.

        Args:
            app_name: Application name (used to tag log lines)
            config: Method config matching this executor
            storage_base_url: Base URL of the artifact store

        Returns:
            True if the application was installed
        """
        logger.info(f"[{app_name}] Installing via {self.name}")
        try:
            if config is None:
                raise ExecutionError(f"no {self.name} configuration")
            success = self._install(app_name, config, storage_base_url)
        except (ExecutionError, AcquisitionError, BootstrapError) as e:
            logger.error(f"[{app_name}] {self.name} install error: {e}")
            success = False
        except Exception as e:
            logger.exception(f"[{app_name}] Unexpected {self.name} install error: {e}")
            success = False

        if success:
            logger.info(f"[{app_name}] {self.name} install succeeded")
        else:
            logger.error(f"[{app_name}] {self.name} install failed")
        return success

    def _install(self, app_name: str, config: MethodConfig,
                 storage_base_url: Optional[str]) -> bool:
        raise NotImplementedError

    def _run(self, app_name: str, command) -> bool:
        exit_code = self.runner.run(command)
        success = is_success(exit_code, self.success_codes)
        level = logging.INFO if success else logging.ERROR
        logger.log(level, f"[{app_name}] Exit code {exit_code}")
        return success

    def _download(self, app_name: str, url: str, filename: str) -> Path:
        path = self.workspace.download_path(filename)
        if not self.downloader.fetch(url, path):
            raise AcquisitionError(f"could not download {filename}")
        return path

    def _install_file(self, app_name: str, path: Path, install_type: str,
                      install_args: str = '', transform: Optional[Path] = None) -> bool:
        """Dispatch a downloaded artifact by install type."""
        logger.info(f"[{app_name}] Install type: {install_type}")

        if install_type == 'msi':
            return self._run(app_name, msi_command(path, install_args, transform))

        if install_type == 'exe':
            command = f'"{path}" {install_args}'.strip()
            return self._run(app_name, command)

        if install_type in PACKAGE_BUNDLE_TYPES:
            # Provisioning reports failure by raising, there is no exit code to classify
            self.runner.powershell(
                f"Add-AppxProvisionedPackage -Online -PackagePath {ps_quote(str(path))} "
                f"-SkipLicense | Out-Null"
            )
            return True

        logger.error(f"[{app_name}] Unknown install type: {install_type}")
        return False


class DirectExecutor(MethodExecutor):
    """Download an installer from a public URL and run it."""

    name = METHOD_DIRECT

    def _install(self, app_name: str, config: DirectConfig,
                 storage_base_url: Optional[str]) -> bool:
        filename = derive_filename(config.download_url, app_name, config.install_type)
        path = self._download(app_name, config.download_url, filename)
        return self._install_file(app_name, path, config.install_type, config.install_args)


class WingetExecutor(MethodExecutor):
    """Install a package with winget."""

    name = METHOD_WINGET

    def __init__(self, workspace: Workspace, downloader: Downloader,
                 bootstrap: WingetBootstrap, runner: Optional[ProcessRunner] = None):
        super().__init__(workspace, downloader, runner)
        self.bootstrap = bootstrap

    def _install(self, app_name: str, config: WingetConfig,
                 storage_base_url: Optional[str]) -> bool:
        client = self.bootstrap.ensure_client()
        if not client:
            raise BootstrapError("winget client is not available")

        command = [
            client, 'install',
            '--id', config.package_id,
            '--exact',
            '--scope', config.scope,
            '--silent',
            '--accept-package-agreements',
            '--accept-source-agreements',
            '--disable-interactivity',
        ]
        if config.version:
            command.extend(['--version', config.version])

        logger.info(f"[{app_name}] winget package {config.package_id} "
                    f"({config.version or 'latest'}, scope {config.scope})")
        return self._run(app_name, command)


class OfflineExecutor(MethodExecutor):
    """Install a package pre-staged in the artifact store."""

    name = METHOD_OFFLINE

    def _install(self, app_name: str, config: OfflineConfig,
                 storage_base_url: Optional[str]) -> bool:
        if not storage_base_url:
            raise ExecutionError("storage base URL is required for offline installs")

        url = storage_url(storage_base_url, config.blob_path)
        path = self._download(app_name, url, derive_filename(url, app_name, config.install_type))

        transform = None
        if config.transform:
            transform_url = storage_url(storage_base_url, config.transform)
            transform_path = self.workspace.download_path(
                derive_filename(transform_url, app_name, 'mst'))
            if self.downloader.fetch(transform_url, transform_path):
                transform = transform_path
            else:
                logger.warning(f"[{app_name}] Transform {config.transform} unavailable, installing without it")

        if config.install_type == 'appv':
            logger.info(f"[{app_name}] Install type: appv")
            self.runner.powershell(
                "Import-Module AppvClient; "
                f"Add-AppvClientPackage -Path {ps_quote(str(path))} | "
                "Publish-AppvClientPackage -Global | Out-Null"
            )
            return True

        return self._install_file(app_name, path, config.install_type,
                                  config.install_args, transform)


class PsadtExecutor(MethodExecutor):
    """Run a PSAppDeployToolkit package."""

    name = METHOD_PSADT
    success_codes = PSADT_SUCCESS_CODES

    def _install(self, app_name: str, config: PsadtConfig,
                 storage_base_url: Optional[str]) -> bool:
        if not storage_base_url:
            raise ExecutionError("storage base URL is required for PSADT installs")

        url = storage_url(storage_base_url, config.package_path)
        archive = self._download(app_name, url, f"{safe_name(app_name)}-psadt.zip")

        target = self.workspace.toolkit_dir(app_name)
        logger.info(f"[{app_name}] Extracting {archive.name} to {target}")
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(target)

        script = find_entry_point(target)
        if script is None:
            logger.error(f"[{app_name}] {PSADT_ENTRY_POINT} not found in package")
            return False

        command = [
            POWERSHELL, '-NoProfile', '-ExecutionPolicy', 'Bypass',
            '-File', str(script),
            '-DeploymentType', 'Install',
            '-DeployMode', 'NonInteractive',
            '-AllowRebootPassThru',
        ]
        return self._run(app_name, command)


def find_entry_point(root: Path) -> Optional[Path]:
    """Return the shallowest Deploy-Application.ps1 below root."""
    matches = [p for p in root.rglob('*') if p.is_file() and p.name.lower() == PSADT_ENTRY_POINT.lower()]
    if not matches:
        return None
    return min(matches, key=lambda p: (len(p.relative_to(root).parts), str(p)))
