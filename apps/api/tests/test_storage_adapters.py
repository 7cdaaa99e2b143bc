"""Local and S3 storage adapters."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest
from urllib.parse import parse_qs, urlparse

import boto3
from botocore.client import Config
from botocore.stub import Stubber

from app.adapters.storage import LocalFileStorage, S3FileStorage, StoredObject
from app.errors import StorageError
from app.schemas.audio_file import StorageKind


class LocalFileStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.storage = LocalFileStorage(self._tmp.name)

    def test_store_writes_under_owner_directory_with_unique_name(self) -> None:
        first = self.storage.store(b"abc", user_id="owner-1", original_filename="My Clip.MP3", mime_type="audio/mpeg")
        second = self.storage.store(b"abc", user_id="owner-1", original_filename="My Clip.MP3", mime_type="audio/mpeg")

        self.assertEqual(first.storage_kind, StorageKind.LOCAL)
        self.assertNotEqual(first.stored_filename, second.stored_filename)
        self.assertTrue(first.stored_filename.endswith(".mp3"))
        self.assertNotIn(" ", first.stored_filename)
        path = Path(first.file_path)
        self.assertEqual(path.parent.name, "owner-1")
        self.assertEqual(path.read_bytes(), b"abc")
        self.assertIsNone(first.object_key)
        self.assertIsNone(first.bucket)

    def test_local_binaries_have_no_url_and_delete_is_idempotent(self) -> None:
        location = self.storage.store(b"abc", user_id="owner-1", original_filename="clip.wav", mime_type="audio/wav")

        self.assertIsNone(self.storage.resolve_download_url(location, 60))

        self.storage.delete(location)
        self.assertFalse(Path(location.file_path).exists())
        # Deleting twice is harmless.
        self.storage.delete(location)

    def test_stored_object_rejects_mixed_locations(self) -> None:
        with self.assertRaises(ValueError):
            StoredObject(storage_kind=StorageKind.LOCAL, stored_filename="a.mp3", file_path="/a.mp3", bucket="b")


class S3FileStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="test-access",
            aws_secret_access_key="test-secret",
            config=Config(signature_version="s3v4"),
        )
        self.stubber = Stubber(self.client)
        self.stubber.activate()
        self.addCleanup(self.stubber.deactivate)
        self.storage = S3FileStorage("vocali-audio", client=self.client)

    def test_store_puts_private_object_under_owner_prefix(self) -> None:
        self.stubber.add_response("put_object", {})

        location = self.storage.store(b"ID3", user_id="owner-1", original_filename="clip.mp3", mime_type="audio/mpeg")

        self.stubber.assert_no_pending_responses()
        self.assertEqual(location.storage_kind, StorageKind.REMOTE)
        self.assertEqual(location.bucket, "vocali-audio")
        self.assertTrue(location.object_key.startswith("audio-files/owner-1/"))
        self.assertTrue(location.object_key.endswith(location.stored_filename))
        self.assertIsNone(location.file_path)

    def test_presigned_url_carries_requested_ttl(self) -> None:
        location = StoredObject(
            storage_kind=StorageKind.REMOTE,
            stored_filename="abc-clip.mp3",
            object_key="audio-files/owner-1/abc-clip.mp3",
            bucket="vocali-audio",
        )

        url = self.storage.resolve_download_url(location, 3600)

        parsed = urlparse(url)
        self.assertIn("audio-files/owner-1/abc-clip.mp3", parsed.path)
        self.assertEqual(parse_qs(parsed.query)["X-Amz-Expires"], ["3600"])

    def test_delete_failure_raises_storage_error(self) -> None:
        self.stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
        location = StoredObject(
            storage_kind=StorageKind.REMOTE,
            stored_filename="abc-clip.mp3",
            object_key="audio-files/owner-1/abc-clip.mp3",
            bucket="vocali-audio",
        )

        with self.assertRaises(StorageError):
            self.storage.delete(location)


if __name__ == "__main__":
    unittest.main()
