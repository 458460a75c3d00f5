"""
Workspace Module

Working directories of one installer run. Every component receives the
workspace explicitly instead of reaching for a global temp folder, so runs
(and tests) stay isolated.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r'[^A-Za-z0-9._-]+')


def safe_name(name: str) -> str:
    """Make an application name usable as a directory name."""
    cleaned = _UNSAFE.sub('_', name).strip('._')
    return cleaned or 'app'


class Workspace:
    """Download and extraction directories for an installer run."""

    def __init__(self, root: Union[str, Path]):
        """
        Initialize the Workspace.

        Args:
            root: Base working directory (created on demand)
        """
        self.root = Path(root)
        self.downloads = self.root / 'downloads'
        self.toolkit_root = self.root / 'psadt'
        self.toolkit_dirs: List[Path] = []

    def prepare(self):
        """Create the base directories."""
        self.downloads.mkdir(parents=True, exist_ok=True)

    def download_path(self, filename: str) -> Path:
        """Path for a downloaded artifact."""
        self.downloads.mkdir(parents=True, exist_ok=True)
        return self.downloads / filename

    def toolkit_dir(self, app_name: str) -> Path:
        """
        Return a clean extraction directory for a toolkit package.

        Any directory left over from an earlier attempt is removed first.

        Args:
            app_name: Application name

        Returns:
            Empty directory path
        """
        path = self.toolkit_root / safe_name(app_name)
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
        if path not in self.toolkit_dirs:
            self.toolkit_dirs.append(path)
        return path

    def purge(self) -> int:
        """
        Delete downloaded artifacts (keeping log files) and toolkit directories.

        Files elsewhere in the work directory, such as a manifest or settings
        file kept next to the log, are left alone.

        Failures are logged as warnings and never raised.

        Returns:
            Number of entries that could not be removed
        """
        failures = 0

        if self.downloads.is_dir():
            for entry in self.downloads.iterdir():
                if entry.suffix.lower() == '.log' or entry.is_dir():
                    continue
                try:
                    entry.unlink()
                except OSError as e:
                    failures += 1
                    logger.warning(f"Cleanup: could not delete {entry}: {e}")

        for path in self.toolkit_dirs + [self.toolkit_root]:
            if not path.exists():
                continue
            try:
                shutil.rmtree(path)
            except OSError as e:
                failures += 1
                logger.warning(f"Cleanup: could not remove {path}: {e}")

        return failures
