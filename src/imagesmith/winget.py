"""
Winget Bootstrap Module

Makes sure a usable winget client exists on the build VM. Image builder VMs
usually start without App Installer registered for the SYSTEM account, so the
client and its runtime dependencies are provisioned on demand.
"""

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, List, Optional

from .acquisition import Downloader
from .errors import BootstrapError, ExecutionError
from .runner import ProcessRunner, ps_quote
from .settings import InstallerSettings
from .workspace import Workspace

logger = logging.getLogger(__name__)

APP_INSTALLER_GLOB = 'Microsoft.DesktopAppInstaller_*_x64__8wekyb3d8bbwe/winget.exe'


def default_windows_apps_dir() -> Path:
    program_files = os.environ.get('ProgramFiles', r'C:\Program Files')
    return Path(program_files) / 'WindowsApps'


class WingetBootstrap:
    """Resolve, or install, the winget client."""

    def __init__(self, settings: InstallerSettings, workspace: Workspace,
                 downloader: Downloader, runner: Optional[ProcessRunner] = None,
                 windows_apps_dir: Optional[Path] = None,
                 which: Callable[[str], Optional[str]] = shutil.which,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the WingetBootstrap.

        Args:
            settings: Installer settings (dependency URLs, settle delay)
            workspace: Workspace receiving the downloaded packages
            downloader: Downloader for the dependency packages
            runner: Process runner used to provision packages
            windows_apps_dir: Directory searched for App Installer builds
            which: PATH lookup function
            sleep: Sleep function used for the settle delay
        """
        self.settings = settings
        self.workspace = workspace
        self.downloader = downloader
        self.runner = runner or ProcessRunner()
        self.windows_apps_dir = windows_apps_dir or default_windows_apps_dir()
        self.which = which
        self.sleep = sleep
        self._client: Optional[str] = None

    def ensure_client(self) -> Optional[str]:
        """
        Return the path of a usable winget client.

        Resolution order: PATH, newest App Installer build under WindowsApps,
        then a full bootstrap of the client and its dependencies.

        Returns:
            Path to winget.exe, or None when winget is unavailable
        """
        if self._client:
            return self._client

        try:
            client = self.which('winget') or self._find_installed_client()
            if not client:
                logger.info("winget not found, bootstrapping App Installer")
                self._bootstrap()
                client = self._find_installed_client()
                if not client:
                    raise BootstrapError("winget still not found after provisioning App Installer")
        except (BootstrapError, ExecutionError, OSError) as e:
            logger.error(f"winget unavailable: {e}")
            return None

        logger.info(f"Using winget client: {client}")
        self._client = str(client)
        return self._client

    def _find_installed_client(self) -> Optional[str]:
        if not self.windows_apps_dir.is_dir():
            return None
        candidates = [p for p in self.windows_apps_dir.glob(APP_INSTALLER_GLOB) if p.is_file()]
        if not candidates:
            return None
        newest = max(candidates, key=lambda p: p.stat().st_mtime)
        return str(newest)

    def _bootstrap(self):
        packages: List[Path] = []
        for url, filename in (
            (self.settings.vclibs_url, 'Microsoft.VCLibs.x64.14.00.Desktop.appx'),
            (self.settings.ui_xaml_url, 'Microsoft.UI.Xaml.x64.appx'),
            (self.settings.app_installer_url, 'Microsoft.DesktopAppInstaller.msixbundle'),
        ):
            path = self.workspace.download_path(filename)
            if not self.downloader.fetch(url, path):
                raise BootstrapError(f"Failed to download {filename}")
            packages.append(path)

        for path in packages:
            logger.info(f"Provisioning {path.name}")
            self.runner.powershell(
                f"Add-AppxProvisionedPackage -Online -PackagePath {ps_quote(str(path))} "
                f"-SkipLicense | Out-Null"
            )

        # Package registration is eventually consistent
        logger.info(f"Waiting {self.settings.winget_settle_seconds}s for App Installer registration")
        self.sleep(self.settings.winget_settle_seconds)
