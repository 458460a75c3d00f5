"""
Installer Run Module

Wires the installer components together for one batch run: workspace,
downloader, winget bootstrap, executors, orchestrator, summary, hardening and
cleanup.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple

from .acquisition import Downloader
from .executors import DirectExecutor, WingetExecutor, OfflineExecutor, PsadtExecutor
from .models import AppDescriptor, Verdict, METHOD_DIRECT, METHOD_WINGET, METHOD_OFFLINE, METHOD_PSADT
from .orchestrator import InstallOrchestrator
from .precheck import PrecheckEvaluator
from .reporting import RunSummary, log_summary, apply_hardening
from .runner import ProcessRunner
from .settings import InstallerSettings
from .winget import WingetBootstrap
from .workspace import Workspace

logger = logging.getLogger(__name__)


def build_executors(settings: InstallerSettings, workspace: Workspace,
                    runner: ProcessRunner, downloader: Downloader,
                    bootstrap: Optional[WingetBootstrap] = None) -> Dict[str, object]:
    """Create one executor per install method."""
    bootstrap = bootstrap or WingetBootstrap(settings, workspace, downloader, runner)
    return {
        METHOD_DIRECT: DirectExecutor(workspace, downloader, runner),
        METHOD_WINGET: WingetExecutor(workspace, downloader, bootstrap, runner),
        METHOD_OFFLINE: OfflineExecutor(workspace, downloader, runner),
        METHOD_PSADT: PsadtExecutor(workspace, downloader, runner),
    }


def run_installer(apps: Mapping[str, AppDescriptor], settings: InstallerSettings,
                  runner: Optional[ProcessRunner] = None,
                  downloader: Optional[Downloader] = None,
                  executors: Optional[Mapping[str, object]] = None,
                  precheck: Optional[PrecheckEvaluator] = None,
                  workspace: Optional[Workspace] = None) -> Tuple[Dict[str, Verdict], RunSummary]:
    """
    Install every enabled application and clean up afterwards.

    The summary is always logged. If the run cannot be set up, every enabled
    application without a verdict is recorded as failed with method "error".

    Args:
        apps: Decoded manifest
        settings: Installer settings
        runner: Process runner (shared by all components)
        downloader: Artifact downloader
        executors: Executor per method (built from the other arguments when omitted)
        precheck: Pre-check evaluator
        workspace: Working directories

    Returns:
        Tuple of (verdicts, summary)
    """
    runner = runner or ProcessRunner()
    workspace = workspace or Workspace(settings.work_dir)
    verdicts: Dict[str, Verdict] = {}

    try:
        workspace.prepare()
        downloader = downloader or Downloader(
            runner,
            use_bits=settings.use_bits,
            timeout=settings.download_timeout,
            retries=settings.download_retries
        )
        if executors is None:
            executors = build_executors(settings, workspace, runner, downloader)
        precheck = precheck or PrecheckEvaluator(runner)

        if not settings.storage_base_url:
            logger.info("No storage base URL configured; offline and PSADT installs will fail")

        orchestrator = InstallOrchestrator(executors, precheck, settings.storage_base_url)
        verdicts = orchestrator.run(apps)
    except Exception as e:
        logger.exception(f"Installer run aborted: {e}")
        # Applications left without a verdict are reported as errors
        for name, app in apps.items():
            if app.enabled and name not in verdicts:
                verdicts[name] = Verdict.failed('error')

    try:
        summary = log_summary(verdicts)
        apply_hardening(verdicts, runner)
    finally:
        failures = workspace.purge()
        if failures:
            logger.warning(f"Cleanup finished with {failures} warning(s)")
        else:
            logger.info("Cleanup complete")

    return verdicts, summary
