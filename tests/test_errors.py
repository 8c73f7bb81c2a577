"""Tests for the storage-exchange exception hierarchy."""

from storage_exchange.errors import (
    ConfigurationError,
    FolderCopyError,
    InvalidOperationError,
    NotFoundError,
    NotRegisteredError,
    StorageError,
    StorageExchangeError,
    TransferError,
    UnsupportedConfigurationError,
)


def test_base_error_includes_details_and_suggestion():
    err = StorageExchangeError("boom", details={"path": "/a"}, suggestion="try again")
    text = str(err)
    assert text.startswith("boom")
    assert "path: /a" in text
    assert "Suggestion: try again" in text


def test_to_dict():
    err = NotFoundError("missing", path="/a.txt", backend="local")
    data = err.to_dict()
    assert data["error_type"] == "NotFoundError"
    assert data["message"] == "missing"
    assert data["details"] == {"backend": "local", "path": "/a.txt"}


def test_configuration_error_lists_issues():
    err = ConfigurationError("Invalid storage configuration", issues=["first", "second"])
    assert err.issues == ["first", "second"]
    assert "Issues found:" in str(err)
    assert "  - first" in str(err)
    assert "  - second" in str(err)
    assert err.details["issue_count"] == 2


def test_unsupported_is_configuration_error():
    assert issubclass(UnsupportedConfigurationError, ConfigurationError)


def test_not_registered_message():
    err = NotRegisteredError("Cloud2", registered=["Temp", "Local"])
    assert err.name == "Cloud2"
    assert err.message == "No file storage is registered for storage name Cloud2"
    assert err.details["registered"] == "Temp, Local"


def test_storage_error_records_cause():
    cause = OSError("disk full")
    err = StorageError("write failed", path="/a", backend="local", cause=cause)
    assert err.cause is cause
    assert err.details["cause_type"] == "OSError"
    assert err.suppressed == []


def test_storage_error_subclasses():
    for cls in (NotFoundError, InvalidOperationError, TransferError):
        assert issubclass(cls, StorageError)


def test_transfer_error_paths():
    err = TransferError("copy failed", source_path="/a", target_path="/b")
    assert err.source_path == "/a"
    assert err.target_path == "/b"
    assert err.details["source_path"] == "/a"


def test_folder_copy_error():
    failures = {"/b.txt": OSError("nope"), "/a.txt": TransferError("broken")}
    err = FolderCopyError("2 failed", failures=failures, succeeded=[("/c.txt", "/x/c.txt")])
    assert err.failed_paths == ["/a.txt", "/b.txt"]
    assert err.succeeded == [("/c.txt", "/x/c.txt")]
    assert "/a.txt: TransferError: broken" in str(err)
    assert err.details == {"failed": 2, "succeeded": 1}
