"""
Acquisition Module

Downloads installer artifacts. BITS is tried first on Windows; any failure
falls back to a streamed HTTP GET through requests with retries.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import AcquisitionError, ExecutionError
from .runner import ProcessRunner, ps_quote

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 256


def storage_url(base_url: str, relative_path: str) -> str:
    """Join the artifact store base URL and a relative blob path."""
    return f"{base_url.rstrip('/')}/{relative_path.lstrip('/')}"


def build_session(retries: int = 3) -> requests.Session:
    """Create a requests session that retries throttled and 5xx responses."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=2,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(['GET', 'HEAD']),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session


class Downloader:
    """Fetch artifacts to local paths."""

    def __init__(self, runner: Optional[ProcessRunner] = None,
                 session: Optional[requests.Session] = None,
                 use_bits: Optional[bool] = None,
                 timeout: float = 300.0,
                 retries: int = 3):
        """
        Initialize the Downloader.

        Args:
            runner: Process runner used for BITS transfers
            session: requests session (built with retries when omitted)
            use_bits: Try BITS first (defaults to True on Windows)
            timeout: HTTP connect/read timeout in seconds
            retries: HTTP retry count
        """
        self.runner = runner or ProcessRunner()
        self.session = session or build_session(retries)
        self.use_bits = (os.name == 'nt') if use_bits is None else use_bits
        self.timeout = timeout

    def fetch(self, url: str, destination: Union[str, Path]) -> bool:
        """
        Download a URL to a file, overwriting any existing file.

        Args:
            url: Source URL
            destination: Local file path

        Returns:
            True if the destination file exists after the attempt
        """
        dest = Path(destination)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if dest.exists():
                dest.unlink()
        except OSError as e:
            logger.error(f"Cannot prepare download target {dest}: {e}")
            return False

        logger.info(f"Downloading {_display_url(url)} -> {dest}")

        transferred = False
        if self.use_bits:
            try:
                self._fetch_bits(url, dest)
                transferred = dest.exists()
            except ExecutionError as e:
                logger.warning(f"BITS transfer failed, falling back to HTTP: {e}")

        if not transferred:
            try:
                self._fetch_http(url, dest)
            except AcquisitionError as e:
                logger.error(f"Download failed: {e}")

        if not dest.exists():
            logger.error(f"Download produced no file: {dest}")
            return False
        return True

    def _fetch_bits(self, url: str, dest: Path):
        self.runner.powershell(
            f"Start-BitsTransfer -Source {ps_quote(url)} "
            f"-Destination {ps_quote(str(dest))} -ErrorAction Stop"
        )

    def _fetch_http(self, url: str, dest: Path):
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as r:
                r.raise_for_status()
                with open(dest, 'wb') as f:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except (requests.RequestException, OSError) as e:
            # Do not leave a truncated file behind
            if dest.exists():
                try:
                    dest.unlink()
                except OSError:
                    pass
            raise AcquisitionError(f"{_display_url(url)}: {e}")


def _display_url(url: str) -> str:
    """Strip the query string (SAS tokens) before logging a URL."""
    return url.split('?', 1)[0]
