"""
Image Builder Client Module

Submits image templates to Azure Image Builder and starts builds through the
Azure CLI.
"""

from typing import Dict, Any, Optional
import subprocess
import json
import os
import tempfile
from pathlib import Path


class ImageBuilderClient:
    """Submit and run Azure Image Builder templates."""

    def __init__(self, config: Dict[str, Any], template: Dict[str, Any]):
        """
        Initialize the ImageBuilderClient.

        Args:
            config: Parsed build configuration dictionary
            template: Generated image template ARM template
        """
        self.config = config
        self.template = template
        self.subscription_id: Optional[str] = None
        self.template_name = config.get('name', 'imagesmith')
        self.deployment_name = f"{self.template_name}-deployment"
        self.resource_group = config.get('resource_group', 'rg-imagesmith')
        self.location = config.get('location', 'eastus')

    def set_subscription(self, subscription_id: str):
        """Set the Azure subscription ID."""
        self.subscription_id = subscription_id

    def build(self, verbose: bool = False, wait: bool = True) -> bool:
        """
        Submit the image template and run the build.

        Args:
            verbose: Enable verbose az output
            wait: Wait for the image build to finish

        Returns:
            True if submission (and the build, when waiting) succeeded
        """
        try:
            if not self._check_azure_cli():
                print("❌ Azure CLI is not installed or not in PATH")
                print("   Install from: https://docs.microsoft.com/en-us/cli/azure/install-azure-cli")
                return False

            if self.subscription_id:
                print(f"Setting subscription: {self.subscription_id}")
                self._run_az_command(['account', 'set', '--subscription', self.subscription_id])

            print(f"Creating resource group: {self.resource_group}")
            self._create_resource_group()

            template_path = Path(tempfile.gettempdir()) / f"{self.deployment_name}.json"
            with open(template_path, 'w', encoding='utf-8') as f:
                json.dump(self.template, f, indent=2)

            print(f"Submitting image template: {self.template_name}")
            cmd = [
                'deployment', 'group', 'create',
                '--resource-group', self.resource_group,
                '--name', self.deployment_name,
                '--template-file', str(template_path),
                '--parameters', f"location={self.location}"
            ]
            if verbose:
                cmd.append('--verbose')

            try:
                result = self._run_az_command(cmd)
            finally:
                try:
                    template_path.unlink()
                except FileNotFoundError:
                    pass

            if result.returncode != 0:
                return False

            print(f"Starting image build: {self.template_name}")
            run_cmd = [
                'image', 'builder', 'run',
                '--name', self.template_name,
                '--resource-group', self.resource_group
            ]
            if not wait:
                run_cmd.append('--no-wait')

            result = self._run_az_command(run_cmd, timeout=None)
            return result.returncode == 0

        except Exception as e:
            print(f"Build error: {e}")
            return False

    def destroy(self) -> bool:
        """
        Delete the image template (the distributed image is kept).

        Returns:
            True if deletion succeeded, False otherwise
        """
        try:
            print(f"Deleting image template: {self.template_name}")
            result = self._run_az_command([
                'image', 'builder', 'delete',
                '--name', self.template_name,
                '--resource-group', self.resource_group
            ])
            return result.returncode == 0
        except Exception as e:
            print(f"Destroy error: {e}")
            return False

    def get_build_status(self) -> Optional[Dict[str, Any]]:
        """
        Get the status of the last image build run.

        Returns:
            lastRunStatus dictionary or None
        """
        try:
            result = self._run_az_command([
                'image', 'builder', 'show',
                '--name', self.template_name,
                '--resource-group', self.resource_group,
                '--query', 'lastRunStatus',
                '--output', 'json'
            ], capture_output=True)

            if result.returncode == 0 and result.stdout.strip():
                return json.loads(result.stdout)
            return None
        except (subprocess.SubprocessError, OSError, ValueError):
            return None

    def print_build_info(self):
        """Print information about the submitted build."""
        print("\n" + "=" * 60)
        print("IMAGE BUILD INFORMATION")
        print("=" * 60)

        print(f"\nResource Group: {self.resource_group}")
        print(f"Location: {self.location}")
        print(f"Image Template: {self.template_name}")

        distribute = self.config.get('distribute', {})
        print(f"Gallery Image: {distribute.get('gallery_image_id', 'N/A')}")
        print(f"Run Output: {distribute.get('run_output_name', self.template_name)}")

        status = self.get_build_status()
        if status:
            print(f"\nLast Run: {status.get('runState', 'unknown')} "
                  f"({status.get('runSubState', '')})")
            if status.get('message'):
                print(f"  {status['message']}")

        print("\n" + "=" * 60)

    def _check_azure_cli(self) -> bool:
        """Check if Azure CLI is installed."""
        commands = ['az', 'az.cmd'] if os.name == 'nt' else ['az']

        for cmd in commands:
            try:
                result = subprocess.run(
                    [cmd, '--version'],
                    capture_output=True,
                    text=True,
                    timeout=30,
                    shell=(os.name == 'nt')
                )
                if result.returncode == 0:
                    return True
            except (subprocess.TimeoutExpired, FileNotFoundError):
                continue

        return False

    def _create_resource_group(self):
        """Create the Azure resource group."""
        self._run_az_command([
            'group', 'create',
            '--name', self.resource_group,
            '--location', self.location
        ])

    def _run_az_command(self, args: list, capture_output: bool = False,
                        timeout: Optional[int] = 600):
        """
        Run an Azure CLI command.

        Args:
            args: Command arguments
            capture_output: Whether to capture output
            timeout: Timeout in seconds (None waits indefinitely)

        Returns:
            CompletedProcess instance
        """
        if os.name == 'nt':
            cmd = ['az.cmd'] + args
        else:
            cmd = ['az'] + args

        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=True,
            timeout=timeout,
            shell=(os.name == 'nt')
        )
