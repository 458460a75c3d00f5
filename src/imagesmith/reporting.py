"""
Reporting Module

Summarises verdicts at the end of a run and applies post-install hardening
for applications that installed successfully.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import ExecutionError
from .models import Verdict
from .runner import ProcessRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunSummary:
    """Counts of verdict outcomes."""

    succeeded: int
    failed: int
    skipped: int

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def render(self, verdicts: Mapping[str, Verdict]) -> List[str]:
        """
        Render the summary table.

        Args:
            verdicts: Verdict per application

        Returns:
            Table lines
        """
        width = max([len(name) for name in verdicts] + [len('Application')])
        lines = [
            '=' * 60,
            'INSTALLATION SUMMARY',
            '=' * 60,
            f"{'Application':<{width}}  {'Result':<8}  Method",
            f"{'-' * width}  {'-' * 8}  {'-' * 20}",
        ]
        for name, verdict in verdicts.items():
            lines.append(f"{name:<{width}}  {outcome(verdict):<8}  {verdict.method_used}")
        lines.append('-' * 60)
        lines.append(
            f"Succeeded: {self.succeeded}  Failed: {self.failed}  "
            f"Skipped: {self.skipped}  Total: {self.total}"
        )
        lines.append('=' * 60)
        return lines


def outcome(verdict: Verdict) -> str:
    if verdict.skipped:
        return 'SKIPPED'
    return 'SUCCESS' if verdict.success else 'FAILED'


def summarize(verdicts: Mapping[str, Verdict]) -> RunSummary:
    """Tally succeeded, failed and skipped verdicts."""
    skipped = sum(1 for v in verdicts.values() if v.skipped)
    succeeded = sum(1 for v in verdicts.values() if v.success and not v.skipped)
    failed = sum(1 for v in verdicts.values() if not v.success)
    return RunSummary(succeeded=succeeded, failed=failed, skipped=skipped)


def log_summary(verdicts: Mapping[str, Verdict]) -> RunSummary:
    """Log the summary table one line at a time and return the counts."""
    summary = summarize(verdicts)
    for line in summary.render(verdicts):
        logger.info(line)
    return summary


# (application name, description, PowerShell script)
HARDENING_ACTIONS: List[Tuple[str, str, str]] = [
    (
        'GoogleChrome',
        'Disable Google Update',
        "New-Item -Path 'HKLM:\\SOFTWARE\\Policies\\Google\\Update' -Force | Out-Null; "
        "Set-ItemProperty -Path 'HKLM:\\SOFTWARE\\Policies\\Google\\Update' "
        "-Name 'UpdateDefault' -Value 0 -Type DWord; "
        "Get-Service -Name gupdate, gupdatem -ErrorAction SilentlyContinue | "
        "Set-Service -StartupType Disabled",
    ),
    (
        'AdobeReader',
        'Disable Adobe updater',
        "$key = 'HKLM:\\SOFTWARE\\Policies\\Adobe\\Acrobat Reader\\DC\\FeatureLockDown'; "
        "New-Item -Path $key -Force | Out-Null; "
        "Set-ItemProperty -Path $key -Name 'bUpdater' -Value 0 -Type DWord; "
        "Get-Service -Name AdobeARMservice -ErrorAction SilentlyContinue | "
        "Set-Service -StartupType Disabled",
    ),
    (
        'MozillaFirefox',
        'Disable Firefox updates',
        "New-Item -Path 'HKLM:\\SOFTWARE\\Policies\\Mozilla\\Firefox' -Force | Out-Null; "
        "Set-ItemProperty -Path 'HKLM:\\SOFTWARE\\Policies\\Mozilla\\Firefox' "
        "-Name 'DisableAppUpdate' -Value 1 -Type DWord",
    ),
]


def apply_hardening(verdicts: Mapping[str, Verdict],
                    runner: Optional[ProcessRunner] = None,
                    actions: Optional[List[Tuple[str, str, str]]] = None) -> Dict[str, bool]:
    """
    Apply hardening actions for successfully installed applications.

    Each action runs on its own; a failing action is logged as a warning and
    the remaining actions still run.

    Args:
        verdicts: Verdict per application
        runner: Process runner
        actions: Actions to consider (defaults to HARDENING_ACTIONS)

    Returns:
        Mapping of action description to whether it succeeded, for the
        actions that were applicable
    """
    runner = runner or ProcessRunner()
    results: Dict[str, bool] = {}

    for app_name, description, script in (HARDENING_ACTIONS if actions is None else actions):
        verdict = verdicts.get(app_name)
        if verdict is None or not verdict.success:
            continue
        try:
            runner.powershell(script)
            logger.info(f"Hardening: {description}")
            results[description] = True
        except ExecutionError as e:
            logger.warning(f"Hardening '{description}' failed: {e}")
            results[description] = False

    return results
