"""
Orchestrator Module

Drives the install of every enabled application in the manifest:
pre-check, primary method, fallback method, verdict. One application's
outcome never stops the next one.
"""

import logging
from enum import Enum
from typing import Dict, Mapping, Optional

from .models import AppDescriptor, Verdict, FALLBACK_METHODS
from .precheck import PrecheckEvaluator

logger = logging.getLogger(__name__)


class InstallState(Enum):
    """Per-application install states."""

    PENDING = 'pending'
    SKIPPED = 'skipped'
    PRIMARY_ATTEMPTED = 'primary_attempted'
    FALLBACK_ATTEMPTED = 'fallback_attempted'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class InstallOrchestrator:
    """Install applications one at a time and collect their verdicts."""

    def __init__(self, executors: Mapping[str, object],
                 precheck: PrecheckEvaluator,
                 storage_base_url: Optional[str] = None):
        """
        Initialize the InstallOrchestrator.

        Args:
            executors: Mapping of method name to executor (anything with an
                ``install(app_name, config, storage_base_url)`` method)
            precheck: Pre-check evaluator
            storage_base_url: Base URL of the artifact store
        """
        self.executors = dict(executors)
        self.precheck = precheck
        self.storage_base_url = storage_base_url or ''
        self.states: Dict[str, InstallState] = {}

    def run(self, apps: Mapping[str, AppDescriptor]) -> Dict[str, Verdict]:
        """
        Process every enabled application in manifest order.

        Args:
            apps: Mapping of application name to descriptor

        Returns:
            Verdict per enabled application
        """
        verdicts: Dict[str, Verdict] = {}
        enabled = [app for app in apps.values() if app.enabled]
        logger.info(f"Processing {len(enabled)} enabled application(s) "
                    f"({len(apps) - len(enabled)} disabled)")

        for index, app in enumerate(enabled, start=1):
            logger.info(f"=== [{index}/{len(enabled)}] {app.name}"
                        + (f" - {app.description}" if app.description else ''))
            self.states[app.name] = InstallState.PENDING
            try:
                verdict = self.install_app(app)
            except Exception as e:
                logger.exception(f"[{app.name}] Unhandled error: {e}")
                self.states[app.name] = InstallState.FAILED
                verdict = Verdict.failed('error')
            verdicts[app.name] = verdict
            logger.info(f"[{app.name}] Final state: {self.states[app.name].value} "
                        f"(method: {verdict.method_used})")

        return verdicts

    def install_app(self, app: AppDescriptor) -> Verdict:
        """
        Run the state machine for one application.

        Args:
            app: Application descriptor

        Returns:
            The application's verdict
        """
        if app.skip_if_installed is not None and self.precheck.is_installed(app):
            self.states[app.name] = InstallState.SKIPPED
            logger.info(f"[{app.name}] Skipping, already installed")
            return Verdict.skip()

        self.states[app.name] = InstallState.PRIMARY_ATTEMPTED
        if self._invoke(app.name, app.method, app.config):
            self.states[app.name] = InstallState.SUCCEEDED
            return Verdict.ok(app.method)

        if app.fallback is not None:
            self.states[app.name] = InstallState.FALLBACK_ATTEMPTED
            fallback = app.fallback
            logger.warning(f"[{app.name}] Primary method {app.method} failed, "
                           f"trying fallback {fallback.method}")
            # Unsupported fallback methods fail without invoking anything
            if fallback.method in FALLBACK_METHODS and \
                    self._invoke(app.name, fallback.method, fallback.config):
                self.states[app.name] = InstallState.SUCCEEDED
                return Verdict.ok(f"fallback:{fallback.method}")

        self.states[app.name] = InstallState.FAILED
        return Verdict.failed(app.method)

    def _invoke(self, app_name: str, method: str, config) -> bool:
        executor = self.executors.get(method)
        if executor is None:
            logger.error(f"[{app_name}] Unknown install method: '{method}'")
            return False
        return bool(executor.install(app_name, config, self.storage_base_url))
