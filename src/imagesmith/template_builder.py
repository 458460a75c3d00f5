"""
Template Builder Module

Builds the ARM template of an Azure Image Builder job from the build
configuration and the application manifest.
"""

from typing import Dict, Any, List, Optional
import json

from .manifest import ManifestLoader, encode_manifest
from .runner import ps_quote

IMAGE_TEMPLATE_API_VERSION = '2022-07-01'

DEFAULT_VM_SIZE = 'Standard_D4s_v5'
DEFAULT_OS_DISK_GB = 127
DEFAULT_BUILD_TIMEOUT = 240
DEFAULT_INSTALLER_COMMAND = 'imagesmith'


class ImageTemplateBuilder:
    """Build Image Builder ARM templates from configuration."""

    def __init__(self, config: Dict[str, Any], manifest_b64: Optional[str] = None):
        """
        Initialize the ImageTemplateBuilder.

        Args:
            config: Parsed build configuration dictionary
            manifest_b64: Pre-encoded manifest (read from the configured
                manifest file when omitted)
        """
        self.config = config
        self.manifest_b64 = manifest_b64
        self.template: Dict[str, Any] = {
            "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#",
            "contentVersion": "1.0.0.0",
            "parameters": {},
            "variables": {},
            "resources": [],
            "outputs": {}
        }

    def build(self) -> Dict[str, Any]:
        """
        Build the complete ARM template.

        Returns:
            Complete ARM template dictionary
        """
        self._add_parameters()
        self._add_variables()
        self._add_image_template()
        self._add_outputs()
        return self.template

    def _add_parameters(self):
        """Add parameters to the template."""
        self.template["parameters"] = {
            "location": {
                "type": "string",
                "defaultValue": self.config.get('location', 'eastus'),
                "metadata": {
                    "description": "Location of the image template and build VM"
                }
            }
        }

    def _add_variables(self):
        """Add variables to the template."""
        self.template["variables"] = {
            "imageTemplateName": self.config['name']
        }

    def _add_image_template(self):
        """Add the imageTemplates resource."""
        identity_id = self.config['identity']['resource_id']
        build = self.config.get('build', {})

        properties: Dict[str, Any] = {
            "buildTimeoutInMinutes": build.get('timeout_minutes', DEFAULT_BUILD_TIMEOUT),
            "vmProfile": self._build_vm_profile(build),
            "source": self._build_source(),
            "customize": self._build_customizers(),
            "distribute": [self._build_distribute_target()]
        }

        self.template["resources"].append({
            "type": "Microsoft.VirtualMachineImages/imageTemplates",
            "apiVersion": IMAGE_TEMPLATE_API_VERSION,
            "name": "[variables('imageTemplateName')]",
            "location": "[parameters('location')]",
            "tags": dict(self.config.get('tags', {})),
            "identity": {
                "type": "UserAssigned",
                "userAssignedIdentities": {
                    identity_id: {}
                }
            },
            "properties": properties
        })

    def _build_vm_profile(self, build: Dict[str, Any]) -> Dict[str, Any]:
        profile = {
            "vmSize": build.get('vm_size', DEFAULT_VM_SIZE),
            "osDiskSizeGB": build.get('os_disk_size_gb', DEFAULT_OS_DISK_GB)
        }
        if build.get('subnet_id'):
            profile["vnetConfig"] = {"subnetId": build['subnet_id']}
        return profile

    def _build_source(self) -> Dict[str, Any]:
        """
        Build the image source.

        Returns:
            PlatformImage or SharedImageVersion source dictionary
        """
        source = self.config['source']
        if source['type'] == 'SharedImageVersion':
            return {
                "type": "SharedImageVersion",
                "imageVersionId": source['image_version_id']
            }
        return {
            "type": "PlatformImage",
            "publisher": source['publisher'],
            "offer": source['offer'],
            "sku": source['sku'],
            "version": source.get('version', 'latest')
        }

    def _build_customizers(self) -> List[Dict[str, Any]]:
        """
        Build the ordered customizer list.

        Order: installer setup, application install, restart, then the
        optional Windows Update, FSLogix and optimisation steps.

        Returns:
            List of customizer dictionaries
        """
        installer = self.config['installer']
        steps = self.config.get('steps', {})
        customizers: List[Dict[str, Any]] = []

        setup_commands = installer.get('setup_commands', [])
        if setup_commands:
            customizers.append(self._powershell_inline("SetupInstaller", setup_commands))

        customizers.append(self._powershell_inline(
            "InstallApplications",
            [self.installer_command()]
        ))
        customizers.append(self._restart("RestartAfterApplications"))

        if steps.get('windows_update'):
            customizers.append({
                "type": "WindowsUpdate",
                "name": "WindowsUpdate",
                "searchCriteria": "IsInstalled=0",
                "filters": [
                    "exclude:$_.Title -like '*Preview*'",
                    "include:$true"
                ],
                "updateLimit": 40
            })
            customizers.append(self._restart("RestartAfterUpdates"))

        for step_name, customizer_name in (('fslogix', 'ConfigureFSLogix'),
                                           ('optimize', 'OptimizeImage')):
            step = steps.get(step_name, {})
            if step.get('enabled'):
                customizers.append(self._powershell_script(customizer_name, step))

        return customizers

    def installer_command(self) -> str:
        """
        Build the command line that runs the application installer on the
        build VM.

        Returns:
            PowerShell command line
        """
        installer = self.config['installer']
        command = installer.get('command', DEFAULT_INSTALLER_COMMAND)
        parts = [command, 'install', '--manifest-b64', ps_quote(self._manifest_b64())]
        storage_url = installer.get('storage_base_url')
        if storage_url:
            parts.extend(['--storage-url', ps_quote(storage_url)])
        return ' '.join(parts)

    def _manifest_b64(self) -> str:
        if self.manifest_b64 is None:
            loader = ManifestLoader(manifest_file=self.config['installer']['manifest_file'])
            loader.load()
            self.manifest_b64 = encode_manifest(loader.raw)
        return self.manifest_b64

    def _powershell_inline(self, name: str, lines: List[str]) -> Dict[str, Any]:
        return {
            "type": "PowerShell",
            "name": name,
            "runElevated": True,
            "runAsSystem": True,
            "inline": list(lines)
        }

    def _powershell_script(self, name: str, step: Dict[str, Any]) -> Dict[str, Any]:
        customizer = {
            "type": "PowerShell",
            "name": name,
            "runElevated": True,
            "runAsSystem": True,
            "scriptUri": step['script_uri']
        }
        if step.get('sha256'):
            customizer["sha256Checksum"] = step['sha256'].lower()
        return customizer

    def _restart(self, name: str) -> Dict[str, Any]:
        return {
            "type": "WindowsRestart",
            "name": name,
            "restartTimeout": "10m"
        }

    def _build_distribute_target(self) -> Dict[str, Any]:
        """Build the gallery distribution target."""
        distribute = self.config['distribute']
        return {
            "type": "SharedImage",
            "galleryImageId": distribute['gallery_image_id'],
            "runOutputName": distribute.get('run_output_name', self.config['name']),
            "replicationRegions": distribute.get(
                'replication_regions', [self.config.get('location', 'eastus')]
            ),
            "artifactTags": dict(self.config.get('tags', {}))
        }

    def _add_outputs(self):
        """Add outputs to the template."""
        self.template["outputs"] = {
            "imageTemplateName": {
                "type": "string",
                "value": "[variables('imageTemplateName')]"
            }
        }

    def save_template(self, output_path: str):
        """
        Save the template to a file.

        Args:
            output_path: Path to save the template
        """
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.template, f, indent=2)
