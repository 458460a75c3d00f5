"""
Error Types Module

Exception hierarchy for the image build tooling. Only ConfigError is allowed
to stop an install run; the others are caught at the method executor boundary
and turned into a failed install.
"""


class ImagesmithError(Exception):
    """Base class for all Imagesmith errors."""


class ConfigError(ImagesmithError):
    """The application manifest or build configuration is missing or unparseable."""


class AcquisitionError(ImagesmithError):
    """A download could not be completed or produced no file."""


class BootstrapError(ImagesmithError):
    """The winget client could not be resolved or installed."""


class ExecutionError(ImagesmithError):
    """An installer process could not be started or failed during invocation."""

    def __init__(self, message: str, returncode: int = None):
        super().__init__(message)
        self.returncode = returncode
