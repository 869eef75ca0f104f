"""
Tests for the depfetch exceptions module.

Tests the custom exception hierarchy including:
- Base DepfetchError and error message formatting
- Configuration errors (ConfigurationError, ConfigFileError, ConfigValidationError)
- Metadata errors (MetadataError, NetworkError, RegistryError, ParseError)
- Download errors (MissingArtifactError, DownloadError, DownloadInProgressError)
- Storage errors (StorageError)
"""

import pytest

from depfetch.exceptions import (
    ConfigFileError,
    ConfigurationError,
    ConfigValidationError,
    DepfetchError,
    DownloadError,
    DownloadInProgressError,
    MetadataError,
    MissingArtifactError,
    NetworkError,
    ParseError,
    RegistryError,
    StorageError,
)


class TestDepfetchError:
    """Test base DepfetchError exception."""

    def test_basic_message(self):
        """Test basic error message."""
        error = DepfetchError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.details is None

    def test_message_with_details(self):
        """Test error message with additional details."""
        error = DepfetchError("Operation failed", details="Connection timeout")
        assert str(error) == "Operation failed - Connection timeout"
        assert error.details == "Connection timeout"

    def test_can_be_caught_as_exception(self):
        with pytest.raises(Exception):
            raise DepfetchError("boom")


class TestConfigurationErrors:
    """Test configuration error classes."""

    def test_hierarchy(self):
        assert issubclass(ConfigFileError, ConfigurationError)
        assert issubclass(ConfigValidationError, ConfigurationError)
        assert issubclass(ConfigurationError, DepfetchError)

    def test_validation_error_keeps_field_and_value(self):
        error = ConfigValidationError(
            "MAX_GRAPH_NODES must be >= 1", field="MAX_GRAPH_NODES", value=0
        )
        assert error.field == "MAX_GRAPH_NODES"
        assert error.value == 0
        assert str(error) == "MAX_GRAPH_NODES must be >= 1"


class TestMetadataErrors:
    """Test metadata lookup errors."""

    @pytest.mark.parametrize("error_class", [NetworkError, RegistryError, ParseError])
    def test_subclasses_are_metadata_errors(self, error_class):
        assert issubclass(error_class, MetadataError)
        assert issubclass(error_class, DepfetchError)

    def test_metadata_error_context(self):
        error = MetadataError("lookup failed", name="lodash", url="https://r/lodash")
        assert error.name == "lodash"
        assert error.url == "https://r/lodash"

    def test_registry_error_status_code(self):
        error = RegistryError("Not found", status_code=404, name="nope")
        assert error.status_code == 404
        assert error.name == "nope"
        assert str(error) == "Not found"

    def test_registry_error_default_status(self):
        assert RegistryError("weird").status_code is None


class TestDownloadErrors:
    """Test download related errors."""

    def test_missing_artifact_message(self):
        error = MissingArtifactError("left-pad")
        assert str(error) == "Tarball not found for left-pad"
        assert error.name == "left-pad"
        assert not isinstance(error, MetadataError)

    def test_download_error_fields(self):
        error = DownloadError("HTTP error 500", url="https://x/a.tgz", status_code=500)
        assert error.url == "https://x/a.tgz"
        assert error.status_code == 500

    def test_download_in_progress_default_message(self):
        assert str(DownloadInProgressError()) == "Already downloading"


class TestStorageError:
    def test_storage_error_path(self):
        error = StorageError("Could not read cache store", path="/tmp/c.json", details="EACCES")
        assert error.path == "/tmp/c.json"
        assert str(error) == "Could not read cache store - EACCES"
