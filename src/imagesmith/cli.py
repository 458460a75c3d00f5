"""
Command Line Interface Module

Provides CLI commands for golden image builds: the application installer
that runs on the build VM, and the build-side commands that validate,
generate and submit Image Builder templates.
"""

import sys
import os
import argparse
import logging
from pathlib import Path
from typing import Optional
import json

from .config_loader import ConfigLoader
from .errors import ConfigError
from .image_builder import ImageBuilderClient
from .installer import run_installer
from .logging_setup import configure_logging
from .manifest import ManifestLoader, encode_manifest
from .settings import InstallerSettings
from .template_builder import ImageTemplateBuilder
from .validator import ConfigValidator, ManifestValidator

logger = logging.getLogger(__name__)


class ImagesmithCLI:
    """Command-line interface for Imagesmith."""

    def __init__(self):
        """Initialize the CLI."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog='imagesmith',
            description='Imagesmith - Windows Golden Image Builder for Azure',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Install applications on the build VM
  imagesmith install --manifest-file apps.json --storage-url https://st.blob.core.windows.net/apps

  # Validate a build configuration (and its manifest)
  imagesmith validate --config build.yaml

  # Generate the Image Builder template without submitting it
  imagesmith generate --config build.yaml --output template.json

  # Submit the template and run the build
  imagesmith build --config build.yaml
            """
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        # Install command
        install_parser = subparsers.add_parser(
            'install',
            help='Install the applications of a manifest (runs on the build VM)'
        )
        source = install_parser.add_mutually_exclusive_group()
        source.add_argument(
            '--manifest-b64',
            help='Base64-encoded JSON manifest'
        )
        source.add_argument(
            '--manifest-file',
            help='Path to a JSON or YAML manifest'
        )
        source.add_argument(
            '--manifest',
            dest='manifest_inline',
            help='Inline JSON manifest'
        )
        install_parser.add_argument(
            '--storage-url',
            help='Base URL of the artifact store for offline and PSADT packages'
        )
        install_parser.add_argument(
            '--work-dir',
            help='Working directory for downloads and extraction'
        )
        install_parser.add_argument(
            '--log-file',
            help='Log file path (default: <work-dir>/install.log)'
        )
        install_parser.add_argument(
            '--settings',
            help='YAML file with installer settings'
        )
        install_parser.add_argument(
            '--verbose', '-v',
            action='store_true',
            help='Enable debug logging'
        )

        # Validate command
        validate_parser = subparsers.add_parser(
            'validate',
            help='Validate a build configuration or an application manifest'
        )
        target = validate_parser.add_mutually_exclusive_group(required=True)
        target.add_argument(
            '--config', '-c',
            help='Path to YAML build configuration file'
        )
        target.add_argument(
            '--manifest-file', '-m',
            help='Path to an application manifest'
        )

        # Encode command
        encode_parser = subparsers.add_parser(
            'encode',
            help='Print the base64 transport form of a manifest'
        )
        encode_parser.add_argument(
            '--manifest-file', '-m',
            required=True,
            help='Path to an application manifest'
        )

        # Generate command
        generate_parser = subparsers.add_parser(
            'generate',
            help='Generate the Image Builder template from configuration'
        )
        generate_parser.add_argument(
            '--config', '-c',
            required=True,
            help='Path to YAML build configuration file'
        )
        generate_parser.add_argument(
            '--output', '-o',
            required=True,
            help='Output path for generated ARM template'
        )
        generate_parser.add_argument(
            '--format',
            choices=['json', 'yaml'],
            default='json',
            help='Output format (default: json)'
        )

        # Build command
        build_parser = subparsers.add_parser(
            'build',
            help='Submit the image template and run the build'
        )
        build_parser.add_argument(
            '--config', '-c',
            required=True,
            help='Path to YAML build configuration file'
        )
        build_parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate and generate template without submitting'
        )
        build_parser.add_argument(
            '--subscription-id',
            help='Azure subscription ID'
        )
        build_parser.add_argument(
            '--no-wait',
            action='store_true',
            help='Return once the build has started'
        )
        build_parser.add_argument(
            '--verbose', '-v',
            action='store_true',
            help='Enable verbose output'
        )

        # Destroy command
        destroy_parser = subparsers.add_parser(
            'destroy',
            help='Delete the image template'
        )
        destroy_parser.add_argument(
            '--config', '-c',
            required=True,
            help='Path to YAML build configuration file'
        )
        destroy_parser.add_argument(
            '--force',
            action='store_true',
            help='Skip confirmation prompt'
        )

        # Version command
        subparsers.add_parser('version', help='Show version information')

        return parser

    def run(self, args: Optional[list] = None):
        """
        Run the CLI with the given arguments.

        Args:
            args: Command-line arguments (defaults to sys.argv[1:])
        """
        parsed_args = self.parser.parse_args(args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            if parsed_args.command == 'install':
                return self._install(parsed_args)
            elif parsed_args.command == 'validate':
                return self._validate(parsed_args)
            elif parsed_args.command == 'encode':
                return self._encode(parsed_args)
            elif parsed_args.command == 'generate':
                return self._generate(parsed_args)
            elif parsed_args.command == 'build':
                return self._build(parsed_args)
            elif parsed_args.command == 'destroy':
                return self._destroy(parsed_args)
            elif parsed_args.command == 'version':
                return self._version()
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            if getattr(parsed_args, 'verbose', False):
                import traceback
                traceback.print_exc()
            return 1

        return 0

    def _install(self, args) -> int:
        """
        Handle install command.

        Exits 0 whatever happens to individual applications; only a missing
        or unparseable manifest (or settings) exits 1.
        """
        settings = InstallerSettings.load(args.settings)
        settings.update({
            'work_dir': args.work_dir,
            'log_file': args.log_file,
            'storage_base_url': args.storage_url,
        })

        configure_logging(settings.log_path, logging.DEBUG if args.verbose else logging.INFO)
        logger.info("Imagesmith application installer starting")
        logger.info(f"Work directory: {settings.work_dir}")

        manifest_b64 = args.manifest_b64
        manifest_file = args.manifest_file
        if not (manifest_b64 or manifest_file or args.manifest_inline):
            manifest_b64 = os.environ.get('IMAGESMITH_MANIFEST_B64')
            manifest_file = os.environ.get('IMAGESMITH_MANIFEST_FILE')

        try:
            apps = ManifestLoader(
                manifest_b64=manifest_b64,
                manifest_file=manifest_file,
                manifest_inline=args.manifest_inline
            ).load()
        except ConfigError as e:
            logger.error(f"Cannot load application manifest: {e}")
            return 1

        try:
            run_installer(apps, settings)
        except Exception as e:
            # Failures are reported through the log, never the exit code
            logger.exception(f"Installer run aborted: {e}")

        logger.info("Imagesmith application installer finished")
        return 0

    def _validate(self, args) -> int:
        """Handle validate command."""
        if args.manifest_file:
            print(f"Loading manifest from {args.manifest_file}...")
            loader = ManifestLoader(manifest_file=args.manifest_file)
            loader.load()
            validator = ManifestValidator()
            is_valid, errors, warnings = validator.validate(loader.raw)
        else:
            print(f"Loading configuration from {args.config}...")
            config = ConfigLoader(args.config).load()
            print("Validating configuration...")
            validator = ConfigValidator()
            is_valid, errors, warnings = validator.validate(config)

        if warnings:
            print("\nWarnings:")
            for warning in warnings:
                print(f"  ⚠️  {warning}")

        if errors:
            print("\nErrors:")
            for error in errors:
                print(f"  ❌ {error}")

        if is_valid:
            print("\n✅ Configuration is valid")
            return 0
        else:
            print("\n❌ Configuration is invalid")
            return 1

    def _encode(self, args) -> int:
        """Handle encode command."""
        loader = ManifestLoader(manifest_file=args.manifest_file)
        loader.load()
        print(encode_manifest(loader.raw))
        return 0

    def _load_valid_config(self, config_path: str) -> Optional[dict]:
        """Load and validate a build configuration, printing problems."""
        print(f"Loading configuration from {config_path}...")
        config = ConfigLoader(config_path).load()

        print("Validating configuration...")
        validator = ConfigValidator()
        is_valid, errors, warnings = validator.validate(config)

        if warnings:
            print("\nWarnings:")
            for warning in warnings:
                print(f"  ⚠️  {warning}")

        if not is_valid:
            print("\nValidation failed:")
            for error in errors:
                print(f"  ❌ {error}")
            return None

        print("✅ Configuration is valid")
        return config

    def _generate(self, args) -> int:
        """Handle generate command."""
        config = self._load_valid_config(args.config)
        if config is None:
            return 1

        print("Generating image template...")
        builder = ImageTemplateBuilder(config)
        template = builder.build()

        output_path = Path(args.output)

        if args.format == 'json':
            with open(output_path, 'w', encoding='utf-8') as f:
                json.dump(template, f, indent=2)
        else:  # yaml
            import yaml
            with open(output_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(template, f, default_flow_style=False)

        print(f"\n✅ Template generated: {output_path}")
        return 0

    def _build(self, args) -> int:
        """Handle build command."""
        config = self._load_valid_config(args.config)
        if config is None:
            return 1

        print("\nGenerating image template...")
        builder = ImageTemplateBuilder(config)
        template = builder.build()

        if args.dry_run:
            print("\n✅ Dry run completed successfully")
            customizers = template['resources'][0]['properties']['customize']
            print(f"Template would run {len(customizers)} customization step(s)")
            return 0

        print("\nSubmitting to Azure Image Builder...")
        client = ImageBuilderClient(config, template)

        if args.subscription_id:
            client.set_subscription(args.subscription_id)

        success = client.build(verbose=args.verbose, wait=not args.no_wait)

        if success:
            print("\n✅ Image build submitted successfully")
            client.print_build_info()
            return 0
        else:
            print("\n❌ Image build failed")
            return 1

    def _destroy(self, args) -> int:
        """Handle destroy command."""
        print(f"Loading configuration from {args.config}...")
        loader = ConfigLoader(args.config)
        config = loader.load()

        template_name = loader.get('name', 'unknown')

        if not args.force:
            response = input(
                f"\n⚠️  This will delete image template '{template_name}'.\n"
                f"Are you sure? (yes/no): "
            )
            if response.lower() != 'yes':
                print("Aborted.")
                return 0

        client = ImageBuilderClient(config, {})

        if client.destroy():
            print("\n✅ Image template deleted")
            return 0
        else:
            print("\n❌ Destroy operation failed")
            return 1

    def _version(self) -> int:
        """Handle version command."""
        from . import __version__, __author__
        print(f"Imagesmith version {__version__}")
        print(f"Author: {__author__}")
        return 0


def main():
    """Main entry point for the CLI."""
    cli = ImagesmithCLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
