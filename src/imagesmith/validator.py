"""
Configuration Validator Module

Validates the application manifest and the image build configuration against
their schemas, then applies semantic checks.
"""

import re
from pathlib import Path
from typing import Dict, Any, List, Tuple
import yaml
from jsonschema import validate, ValidationError

from .errors import ConfigError
from .manifest import ManifestLoader
from .models import (
    METHODS, FALLBACK_METHODS, CONFIG_KEYS, CHECK_TYPE_ALIASES,
    DIRECT_INSTALL_TYPES, OFFLINE_INSTALL_TYPES,
    METHOD_DIRECT, METHOD_OFFLINE, METHOD_PSADT, is_enabled,
)

MANIFEST_SCHEMA = 'app-manifest.schema.yaml'
BUILD_SCHEMA = 'build-config.schema.yaml'

GALLERY_IMAGE_PATTERN = re.compile(
    r'^/subscriptions/[^/]+/resourceGroups/[^/]+/providers/Microsoft\.Compute/'
    r'galleries/[^/]+/images/[^/]+$', re.IGNORECASE)
IDENTITY_PATTERN = re.compile(
    r'^/subscriptions/[^/]+/resourceGroups/[^/]+/providers/'
    r'Microsoft\.ManagedIdentity/userAssignedIdentities/[^/]+$', re.IGNORECASE)
SHA256_PATTERN = re.compile(r'^[0-9a-fA-F]{64}$')


def find_schema_file(name: str) -> Path:
    """
    Locate a schema shipped with the package.

    Args:
        name: Schema file name

    Returns:
        Path to the schema file

    Raises:
        FileNotFoundError: If the schema cannot be found
    """
    # Installed package resources
    try:
        import importlib.resources as pkg_resources
        if hasattr(pkg_resources, 'files'):
            schema_path = Path(str(pkg_resources.files('imagesmith') / 'schemas' / name))
            if schema_path.exists():
                return schema_path
    except (ImportError, TypeError):
        pass

    # Source checkout
    schema_path = Path(__file__).parent / 'schemas' / name
    if schema_path.exists():
        return schema_path

    raise FileNotFoundError(
        f"Could not find schema file {name}. "
        f"Please ensure Imagesmith is properly installed or run from the project root."
    )


def is_valid_url(url: str) -> bool:
    """Validate URL format."""
    if not url:
        return False
    url_pattern = re.compile(
        r'^https?://'
        r'(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,63}\.?|'
        r'localhost|'
        r'\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})'
        r'(?::\d+)?'
        r'(?:/?|[/?]\S+)$', re.IGNORECASE)
    return url_pattern.match(url) is not None


class SchemaValidator:
    """Shared schema loading and error/warning bookkeeping."""

    schema_name = ''

    def __init__(self, schema_path: str = None):
        """
        Initialize the validator.

        Args:
            schema_path: Path to the schema file (packaged schema by default)
        """
        if schema_path is None:
            schema_path = find_schema_file(self.schema_name)

        self.schema_path = Path(schema_path)
        self.schema = self._load_schema()
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def _load_schema(self) -> Dict[str, Any]:
        """Load the JSON schema from file."""
        if not self.schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {self.schema_path}")

        with open(self.schema_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)

    def _check_schema(self, document: Dict[str, Any]) -> bool:
        try:
            validate(instance=document, schema=self.schema)
        except ValidationError as e:
            location = '.'.join(str(p) for p in e.absolute_path)
            prefix = f"{location}: " if location else ''
            self.errors.append(f"Schema validation error: {prefix}{e.message}")
            return False
        return True


class ManifestValidator(SchemaValidator):
    """Validate an application manifest."""

    schema_name = MANIFEST_SCHEMA

    def validate(self, manifest: Dict[str, Any]) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a parsed manifest document.

        Args:
            manifest: Parsed manifest mapping

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors = []
        self.warnings = []

        if not self._check_schema(manifest):
            return False, self.errors, self.warnings

        applications = manifest.get('applications', manifest)
        enabled = 0
        for name, app in applications.items():
            if not is_enabled(app.get('enabled')):
                continue
            enabled += 1
            self._validate_application(name, app)

        if enabled == 0:
            self.warnings.append("Manifest has no enabled applications")

        is_valid = len(self.errors) == 0
        return is_valid, self.errors, self.warnings

    def _validate_application(self, name: str, app: Dict[str, Any]):
        method = str(app.get('method', '')).lower()

        if method not in METHODS:
            self.errors.append(
                f"Application '{name}': unknown method '{method}'. "
                f"Valid methods: {', '.join(METHODS)}"
            )
        else:
            key = CONFIG_KEYS[method][0]
            if key not in app:
                self.errors.append(f"Application '{name}': method '{method}' requires {key}")

        other_configs = [
            CONFIG_KEYS[m][0] for m in METHODS
            if m != method and CONFIG_KEYS[m][0] in app
        ]
        if other_configs:
            self.warnings.append(
                f"Application '{name}': {', '.join(other_configs)} ignored for method '{method}'"
            )

        install_type = None
        if method == METHOD_DIRECT:
            install_type = app.get('direct_config', {}).get('install_type', 'exe')
            valid_types = DIRECT_INSTALL_TYPES
        elif method == METHOD_OFFLINE:
            install_type = app.get('offline_config', {}).get('install_type', 'exe')
            valid_types = OFFLINE_INSTALL_TYPES
        if install_type is not None and str(install_type).lower() not in valid_types:
            self.errors.append(
                f"Application '{name}': invalid install_type '{install_type}'. "
                f"Valid types: {', '.join(valid_types)}"
            )

        if method in (METHOD_OFFLINE, METHOD_PSADT):
            self.warnings.append(
                f"Application '{name}': method '{method}' needs a storage base URL at install time"
            )

        self._validate_fallback(name, method, app.get('fallback'))
        self._validate_precheck(name, app.get('skip_if_installed'))

    def _validate_fallback(self, name: str, method: str, fallback: Any):
        if not fallback:
            return
        fallback_method = str(fallback.get('method', '')).lower()
        if fallback_method not in FALLBACK_METHODS:
            self.warnings.append(
                f"Application '{name}': fallback method '{fallback_method}' is not supported "
                f"and will always fail. Supported: {', '.join(FALLBACK_METHODS)}"
            )
            return
        key = CONFIG_KEYS[fallback_method][0]
        if key not in fallback:
            self.errors.append(f"Application '{name}': fallback '{fallback_method}' requires {key}")
        if fallback_method == method:
            self.warnings.append(
                f"Application '{name}': fallback uses the same method as the primary"
            )

    def _validate_precheck(self, name: str, precheck: Any):
        if not precheck:
            return
        check_type = str(precheck.get('check_type', '')).lower()
        if check_type not in CHECK_TYPE_ALIASES:
            self.warnings.append(
                f"Application '{name}': unknown check_type '{check_type}', "
                f"the application will never be skipped"
            )
        if not (precheck.get('check_path') or precheck.get('pattern')):
            self.warnings.append(
                f"Application '{name}': skip_if_installed has no check_path"
            )


class ConfigValidator(SchemaValidator):
    """Validate an image build configuration."""

    schema_name = BUILD_SCHEMA

    def __init__(self, schema_path: str = None, manifest_schema_path: str = None):
        super().__init__(schema_path)
        self.manifest_schema_path = manifest_schema_path

    def validate(self, config: Dict[str, Any]) -> Tuple[bool, List[str], List[str]]:
        """
        Validate configuration against schema and business rules.

        Args:
            config: Configuration dictionary to validate

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors = []
        self.warnings = []

        if not self._check_schema(config):
            return False, self.errors, self.warnings

        self._validate_identity(config)
        self._validate_source(config)
        self._validate_distribute(config)
        self._validate_installer(config)
        self._validate_steps(config)

        is_valid = len(self.errors) == 0
        return is_valid, self.errors, self.warnings

    def _validate_identity(self, config: Dict[str, Any]):
        resource_id = config['identity']['resource_id']
        if not IDENTITY_PATTERN.match(resource_id):
            self.errors.append(f"Invalid user-assigned identity resource ID: {resource_id}")

    def _validate_source(self, config: Dict[str, Any]):
        source = config['source']
        if source['type'] == 'PlatformImage':
            missing = [k for k in ('publisher', 'offer', 'sku') if not source.get(k)]
            if missing:
                self.errors.append(
                    f"PlatformImage source requires: {', '.join(missing)}"
                )
        elif not source.get('image_version_id'):
            self.errors.append("SharedImageVersion source requires image_version_id")

    def _validate_distribute(self, config: Dict[str, Any]):
        gallery_image_id = config['distribute']['gallery_image_id']
        if not GALLERY_IMAGE_PATTERN.match(gallery_image_id):
            self.errors.append(f"Invalid gallery image definition ID: {gallery_image_id}")

    def _validate_installer(self, config: Dict[str, Any]):
        installer = config['installer']

        storage_url = installer.get('storage_base_url')
        if storage_url and not is_valid_url(storage_url):
            self.errors.append(f"Invalid storage base URL format: {storage_url}")

        manifest_file = installer['manifest_file']
        try:
            loader = ManifestLoader(manifest_file=manifest_file)
            loader.load()
        except ConfigError as e:
            self.errors.append(f"Application manifest: {e}")
            return

        manifest_validator = ManifestValidator(self.manifest_schema_path)
        _, errors, warnings = manifest_validator.validate(loader.raw)
        self.errors.extend(f"Application manifest: {e}" for e in errors)

        for warning in warnings:
            if 'needs a storage base URL' in warning and storage_url:
                continue
            self.warnings.append(f"Application manifest: {warning}")

    def _validate_steps(self, config: Dict[str, Any]):
        steps = config.get('steps', {})
        for step_name in ('optimize', 'fslogix'):
            step = steps.get(step_name, {})
            if not step.get('enabled', False):
                continue
            script_uri = step.get('script_uri')
            if not script_uri:
                self.errors.append(f"Step '{step_name}' is enabled but 'script_uri' is not provided")
            elif not is_valid_url(script_uri):
                self.errors.append(f"Invalid script URI for step '{step_name}': {script_uri}")
            sha256 = step.get('sha256')
            if sha256 and not SHA256_PATTERN.match(sha256):
                self.errors.append(f"Invalid sha256 checksum for step '{step_name}'")
            elif not sha256:
                self.warnings.append(f"Step '{step_name}' script has no sha256 checksum")
