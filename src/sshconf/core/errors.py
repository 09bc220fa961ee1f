"""Exceptions raised by the installer core."""


class SshconfError(Exception):
    """Base class for fatal installer errors."""

    pass


class SourceValidationError(SshconfError):
    """Raised when the source repository is missing required files."""

    pass


class EnvironmentValidationError(SshconfError):
    """Raised when a required external command is missing."""

    pass


class VerificationError(SshconfError):
    """Raised when post-install verification finds errors."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Installation verification failed with {len(errors)} error(s)")


class InstallCancelled(SshconfError):
    """Raised when the user declines a confirmation prompt."""

    pass


class ManifestError(SshconfError):
    """Raised when the manifest cannot be read or cannot record a path."""

    pass
