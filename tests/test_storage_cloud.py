"""Tests for the Azure Blob and S3 backends with the client libraries patched."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from storage_exchange.errors import StorageError
from storage_exchange.storage import AzureBlobStorage, S3Storage


class TestAzureBlobStorage:
    """Tests for AzureBlobStorage option wiring."""

    def test_scheme_and_root(self):
        storage = AzureBlobStorage("devstore", "key", "exchange")
        assert storage.scheme == "az"
        assert storage.root == "exchange"
        assert storage._full_path("/newfolder23/a.txt") == "exchange/newfolder23/a.txt"
        assert "key" not in repr(storage)

    def test_filesystem_created_with_credentials(self):
        with patch("adlfs.AzureBlobFileSystem") as mock_fs_cls:
            mock_fs = MagicMock()
            mock_fs.exists.return_value = True
            mock_fs_cls.return_value = mock_fs

            storage = AzureBlobStorage("devstore", "secret-key", "exchange")
            assert storage.fs is mock_fs

            mock_fs_cls.assert_called_once_with(
                skip_instance_cache=True,
                account_name="devstore",
                account_key="secret-key",
            )
            mock_fs.mkdir.assert_not_called()

    def test_missing_container_created(self):
        with patch("adlfs.AzureBlobFileSystem") as mock_fs_cls:
            mock_fs = MagicMock()
            mock_fs.exists.return_value = False
            mock_fs_cls.return_value = mock_fs

            _ = AzureBlobStorage("devstore", "secret-key", "exchange").fs

            mock_fs.mkdir.assert_called_once_with("exchange")

    def test_container_creation_can_be_disabled(self):
        with patch("adlfs.AzureBlobFileSystem") as mock_fs_cls:
            mock_fs = MagicMock()
            mock_fs.exists.return_value = False
            mock_fs_cls.return_value = mock_fs

            _ = AzureBlobStorage("devstore", "k", "exchange", create_container=False).fs

            mock_fs.mkdir.assert_not_called()

    def test_credentials_from_environment(self, monkeypatch):
        monkeypatch.setenv("AZURE_STORAGE_ACCOUNT", "envaccount")
        monkeypatch.setenv("AZURE_STORAGE_KEY", "envkey")
        storage = AzureBlobStorage(None, None, "exchange")
        assert storage.account_name == "envaccount"
        assert storage._account_key == "envkey"

    def test_list_maps_blob_names(self):
        with patch("adlfs.AzureBlobFileSystem") as mock_fs_cls:
            mock_fs = MagicMock()
            mock_fs.exists.return_value = True
            mock_fs.isfile.return_value = False
            mock_fs.ls.return_value = [
                {"name": "exchange/newfolder23/a.txt", "type": "file", "size": 3},
                {"name": "exchange/newfolder23/sub/", "type": "directory", "size": 0},
            ]
            mock_fs_cls.return_value = mock_fs

            storage = AzureBlobStorage("devstore", "k", "exchange")
            entries = asyncio.run(storage.list("/newfolder23"))

            assert [e.path for e in entries] == ["/newfolder23/a.txt", "/newfolder23/sub"]
            assert entries[0].size == 3
            assert entries[1].is_directory is True
            mock_fs.ls.assert_called_once_with("exchange/newfolder23", detail=True)

    def test_release_closes_service_client(self):
        from adlfs.utils import close_service_client

        with patch("adlfs.AzureBlobFileSystem") as mock_fs_cls, patch(
            "storage_exchange.storage.azure.sync"
        ) as mock_sync:
            mock_fs = MagicMock()
            mock_fs.exists.return_value = True
            mock_fs.credential = None
            mock_fs_cls.return_value = mock_fs

            storage = AzureBlobStorage("devstore", "k", "exchange")
            asyncio.run(storage.exists("/a.txt"))
            asyncio.run(storage.release())

            mock_sync.assert_called_once_with(mock_fs.loop, close_service_client, mock_fs)
            assert storage._fs is None

    def test_client_error_wrapped(self):
        with patch("adlfs.AzureBlobFileSystem") as mock_fs_cls:
            mock_fs = MagicMock()
            mock_fs.exists.side_effect = [True, RuntimeError("throttled")]
            mock_fs_cls.return_value = mock_fs

            storage = AzureBlobStorage("devstore", "k", "exchange")
            with pytest.raises(StorageError) as exc_info:
                asyncio.run(storage.exists("/a.txt"))

            assert isinstance(exc_info.value.cause, RuntimeError)
            assert exc_info.value.backend == "az"


class TestS3Storage:
    """Tests for S3Storage option wiring."""

    def test_root_from_bucket_and_prefix(self):
        assert S3Storage("bucket").root == "bucket"
        storage = S3Storage("bucket", prefix="/incoming/")
        assert storage.root == "bucket/incoming"
        assert storage._full_path("/a.txt") == "bucket/incoming/a.txt"
        assert storage._to_virtual("bucket/incoming/sub/a.txt") == "/sub/a.txt"
        assert storage.scheme == "s3"

    def test_filesystem_created_with_options(self):
        with patch("s3fs.S3FileSystem") as mock_fs_cls:
            storage = S3Storage(
                "bucket",
                key="AKIA",
                secret="shh",
                region="eu-west-1",
                endpoint_url="http://localhost:9000",
            )
            _ = storage.fs

            mock_fs_cls.assert_called_once_with(
                skip_instance_cache=True,
                key="AKIA",
                secret="shh",
                client_kwargs={
                    "region_name": "eu-west-1",
                    "endpoint_url": "http://localhost:9000",
                },
            )

    def test_credentials_from_environment(self, monkeypatch):
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "envkey")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "envsecret")
        monkeypatch.setenv("AWS_REGION", "us-east-2")
        monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)

        with patch("s3fs.S3FileSystem") as mock_fs_cls:
            _ = S3Storage("bucket").fs
            kwargs = mock_fs_cls.call_args.kwargs
            assert kwargs["key"] == "envkey"
            assert kwargs["secret"] == "envsecret"
            assert kwargs["client_kwargs"] == {"region_name": "us-east-2"}

    def test_anonymous_access(self, monkeypatch):
        for var in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION", "AWS_ENDPOINT_URL"):
            monkeypatch.delenv(var, raising=False)

        with patch("s3fs.S3FileSystem") as mock_fs_cls:
            _ = S3Storage("public-bucket", anon=True).fs
            mock_fs_cls.assert_called_once_with(skip_instance_cache=True, anon=True)

    def test_release_closes_session(self):
        with patch("s3fs.S3FileSystem") as mock_fs_cls:
            storage = S3Storage("bucket")
            _ = storage.fs
            asyncio.run(storage.release())
            assert storage._fs is None
            assert storage.released is True
            mock_fs_cls.close_session.assert_called_once_with(
                mock_fs_cls.return_value.loop, mock_fs_cls.return_value._s3creator
            )
