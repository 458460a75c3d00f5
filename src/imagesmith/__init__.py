"""
Imagesmith - Windows Golden Image Builder for Azure

Builds Windows golden images with Azure Image Builder and installs the
image's applications through a multi-strategy installer (winget, direct
download, pre-staged packages, PSAppDeployToolkit) with pre-checks,
fallbacks and an append-only install log.
"""

__version__ = "1.0.0"
__author__ = "Imagesmith Contributors"
__license__ = "GPL-3.0"

from .config_loader import ConfigLoader
from .validator import ConfigValidator, ManifestValidator
from .manifest import ManifestLoader
from .orchestrator import InstallOrchestrator
from .template_builder import ImageTemplateBuilder

__all__ = [
    "ConfigLoader",
    "ConfigValidator",
    "ManifestValidator",
    "ManifestLoader",
    "InstallOrchestrator",
    "ImageTemplateBuilder",
]
