"""
Process Runner Module

Thin wrapper around subprocess used by every component that starts an
installer, winget or PowerShell. Tests replace it with a fake.
"""

import logging
import subprocess
from typing import List, Union

from .errors import ExecutionError

logger = logging.getLogger(__name__)

Command = Union[str, List[str]]

POWERSHELL = 'powershell.exe'


class ProcessRunner:
    """Run external processes and report their exit codes."""

    def run(self, command: Command) -> int:
        """
        Run a command to completion.

        A string command is handed to the OS unchanged, which lets installer
        arguments keep their own quoting on Windows.

        Args:
            command: Argument list or a full command line

        Returns:
            Process exit code

        Raises:
            ExecutionError: If the process cannot be started
        """
        logger.debug(f"Running: {command}")
        try:
            result = subprocess.run(command, check=False)
        except OSError as e:
            raise ExecutionError(f"Cannot start process: {e}")
        return result.returncode

    def powershell(self, script: str, capture_output: bool = False,
                   check: bool = True) -> subprocess.CompletedProcess:
        """
        Run a PowerShell script block.

        Args:
            script: Script text
            capture_output: Capture stdout/stderr as text
            check: Raise ExecutionError on a non-zero exit code

        Returns:
            CompletedProcess instance

        Raises:
            ExecutionError: If PowerShell cannot start, or fails and check is set
        """
        cmd = [
            POWERSHELL, '-NoProfile', '-NonInteractive',
            '-ExecutionPolicy', 'Bypass',
            '-Command', f"$ErrorActionPreference = 'Stop'; {script}",
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=capture_output,
                text=True,
                check=False
            )
        except OSError as e:
            raise ExecutionError(f"Cannot start PowerShell: {e}")

        if check and result.returncode != 0:
            detail = (result.stderr or '').strip() if capture_output else ''
            raise ExecutionError(
                f"PowerShell exited with code {result.returncode}"
                + (f": {detail}" if detail else ''),
                returncode=result.returncode
            )
        return result


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + str(value).replace("'", "''") + "'"
