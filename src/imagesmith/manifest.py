"""
Manifest Loader Module

Decodes the application manifest handed to the installer by the build
pipeline. The manifest arrives as a base64 blob, a file path or inline text;
the transport layer is removed first, then the JSON (or YAML) document is
parsed into AppDescriptor objects.
"""

import base64
import binascii
import json
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .errors import ConfigError
from .models import AppDescriptor


class ManifestLoader:
    """Load the application manifest from its transport form."""

    def __init__(self, manifest_b64: Optional[str] = None,
                 manifest_file: Optional[str] = None,
                 manifest_inline: Optional[str] = None):
        """
        Initialize the ManifestLoader.

        Args:
            manifest_b64: Base64-encoded manifest document
            manifest_file: Path to a manifest file
            manifest_inline: Manifest document as plain text
        """
        self.manifest_b64 = manifest_b64
        self.manifest_file = manifest_file
        self.manifest_inline = manifest_inline
        self.raw: Dict[str, Any] = {}

    def load(self) -> Dict[str, AppDescriptor]:
        """
        Decode and parse the manifest.

        Returns:
            Mapping of application name to descriptor, in manifest order

        Raises:
            ConfigError: If no manifest was supplied or it cannot be parsed
        """
        text = self.read_text()
        self.raw = parse_document(text)

        applications = self.raw.get('applications', self.raw)
        if not isinstance(applications, dict):
            raise ConfigError("Manifest 'applications' must be a mapping of name to settings")

        return {
            str(name): AppDescriptor.from_dict(str(name), entry)
            for name, entry in applications.items()
        }

    def read_text(self) -> str:
        """
        Return the manifest document text from the first available source.

        Raises:
            ConfigError: If no source is available or decoding fails
        """
        if self.manifest_b64:
            try:
                decoded = base64.b64decode(self.manifest_b64.strip(), validate=True)
                return decoded.decode('utf-8-sig')
            except (binascii.Error, ValueError) as e:
                raise ConfigError(f"Manifest is not valid base64 UTF-8 text: {e}")

        if self.manifest_file:
            path = Path(self.manifest_file)
            if not path.is_file():
                raise ConfigError(f"Manifest file not found: {self.manifest_file}")
            try:
                return path.read_text(encoding='utf-8-sig')
            except (OSError, UnicodeDecodeError) as e:
                raise ConfigError(f"Cannot read manifest file {self.manifest_file}: {e}")

        if self.manifest_inline:
            return self.manifest_inline

        raise ConfigError("No application manifest supplied")


def parse_document(text: str) -> Dict[str, Any]:
    """
    Parse a manifest document.

    JSON is tried first; YAML is accepted as well since the manifest is often
    kept next to the YAML build configuration.

    Args:
        text: Document text

    Returns:
        Parsed mapping

    Raises:
        ConfigError: If the text is neither JSON nor YAML, or not a mapping
    """
    if not text or not text.strip():
        raise ConfigError("Application manifest is empty")

    try:
        data = json.loads(text)
    except ValueError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing application manifest: {e}")

    if not isinstance(data, dict):
        raise ConfigError("Application manifest must be a mapping of applications")
    return data


def encode_manifest(data: Dict[str, Any]) -> str:
    """
    Encode a manifest into the base64 transport form.

    Args:
        data: Manifest mapping

    Returns:
        Base64 text of the compact JSON document
    """
    payload = json.dumps(data, separators=(',', ':')).encode('utf-8')
    return base64.b64encode(payload).decode('ascii')
