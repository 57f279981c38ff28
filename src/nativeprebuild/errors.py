"""
Error taxonomy for native-prebuild.

Two families matter to the orchestrator:
- ResolutionError and its subclasses degrade to the fallback build.
- ConfigurationError and SubprocessFailure are always fatal (exit 1).
"""

from __future__ import annotations


class PrebuildError(Exception):
    """Base exception for all native-prebuild errors."""


class ConfigurationError(PrebuildError):
    """Raised when required configuration is missing or malformed."""


class SubprocessFailure(PrebuildError):
    """Raised when a build-related command exits non-zero."""

    def __init__(self, step: str, command: str, returncode: int) -> None:
        super().__init__(f"{step} failed with exit code {returncode}: {command}")
        self.step = step
        self.command = command
        self.returncode = returncode


class ResolutionError(PrebuildError):
    """Base for errors on the detect/catalog/select/transfer path."""


class PlatformDetectionError(ResolutionError):
    """Raised when the host fingerprint cannot be fully determined."""


class MetadataParseError(ResolutionError):
    """Raised when a structured response cannot be decoded or validated."""


class ReleaseUnavailableError(ResolutionError):
    """Raised when a release is draft, prerelease or has no assets."""


class NoCompatibleBinaryError(ResolutionError):
    """Raised when no ranked candidate is available for this host."""


class ArchiveExtractionError(ResolutionError):
    """Raised when the minbuild archive cannot be extracted."""


class TransferError(ResolutionError):
    """Base for HTTP retrieval errors."""


class NetworkError(TransferError):
    """Raised on connect, DNS, TLS or socket failures."""


class UnsupportedSchemeError(TransferError):
    """Raised when a URL does not use http or https."""


class HTTPStatusError(TransferError):
    """Raised on 404 and any other non-200, non-redirect status."""

    def __init__(self, message: str, status: int, url: str) -> None:
        super().__init__(message)
        self.status = status
        self.url = url

    @property
    def is_not_found(self) -> bool:
        """Check if this is a 404."""
        return self.status == 404


class RedirectLoopError(TransferError):
    """Raised when the redirect hop cap is exceeded."""

    def __init__(self, message: str, hops: int) -> None:
        super().__init__(message)
        self.hops = hops


class ContentTypeMismatchError(TransferError):
    """Raised when a buffered response has an unexpected content type."""


class DecompressionError(TransferError):
    """Raised when a compressed transfer stream is corrupt."""


class VerificationError(ResolutionError):
    """Base for checksum and size verification failures."""


class ChecksumLengthError(VerificationError):
    """Raised when a fetched checksum is not exactly 64 characters."""


class ChecksumFormatError(VerificationError):
    """Raised when a fetched checksum is not hexadecimal."""


class ChecksumMismatchError(VerificationError):
    """Raised when the computed SHA256 differs from the published one."""

    def __init__(self, message: str, expected: str, actual: str) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class SizeMismatchError(VerificationError):
    """Raised when the received byte count differs from the advertised size."""

    def __init__(self, message: str, expected: int, actual: int) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual
