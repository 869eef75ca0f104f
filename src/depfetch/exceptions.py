"""
Custom exceptions for depfetch.

This module defines domain-specific exceptions that separate transport
failures, registry rejections, malformed responses and download problems so
callers can decide which ones abort an operation and which ones are skipped.
"""

from typing import Optional


class DepfetchError(Exception):
    """
    Base exception for all depfetch errors.

    All custom exceptions in depfetch inherit from this class to allow for
    easy catching of all application-specific errors.
    """

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DepfetchError):
    """Exception raised when configuration is invalid or missing."""

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or written."""

    pass


class ConfigValidationError(ConfigurationError):
    """
    Exception raised when a configuration value fails validation.

    Attributes:
        field: The configuration key that failed validation.
        value: The offending value.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: object = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


# =============================================================================
# Metadata Errors
# =============================================================================


class MetadataError(DepfetchError):
    """
    Base exception for failures while fetching package metadata.

    Attributes:
        name: The package name being looked up.
        url: The registry URL that was requested.
    """

    def __init__(
        self,
        message: str,
        name: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.name = name
        self.url = url


class NetworkError(MetadataError):
    """
    Exception raised when no response could be obtained from the registry.

    This includes DNS failures, refused connections, TLS errors and timeouts.
    """

    pass


class RegistryError(MetadataError):
    """
    Exception raised when the registry answered but rejected the request.

    Attributes:
        status_code: HTTP status code of the response, when known.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        name: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, name=name, url=url, details=details)
        self.status_code = status_code


class ParseError(MetadataError):
    """Exception raised when a successful registry response is not valid metadata."""

    pass


# =============================================================================
# Download Errors
# =============================================================================


class MissingArtifactError(DepfetchError):
    """Exception raised when metadata carries no downloadable tarball reference."""

    def __init__(self, name: str, details: Optional[str] = None) -> None:
        super().__init__(f"Tarball not found for {name}", details)
        self.name = name


class DownloadError(DepfetchError):
    """
    Exception raised when a tarball download fails.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        status_code: HTTP status code, when the server answered.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class DownloadInProgressError(DepfetchError):
    """Exception raised when a batch download is started while another one runs."""

    def __init__(self, message: str = "Already downloading") -> None:
        super().__init__(message)


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(DepfetchError):
    """
    Exception raised when the persistent store cannot be read or written.

    Attributes:
        path: The backing file, when the store is file based.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path
