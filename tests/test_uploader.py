"""
Tests for HLS artifact upload and object store adapter
"""

import re
from unittest.mock import MagicMock

import pytest
from botocore.stub import Stubber

from seedstream.config import StorageConfig
from seedstream.errors import UploadError
from seedstream.registry import StatusRegistry
from seedstream.storage import (
    PLAYLIST_CONTENT_TYPE,
    SEGMENT_CONTENT_TYPE,
    HLSUploader,
    S3ObjectStore,
)

from conftest import FakeObjectStore, write_hls_output

JOB_ID = "5f0c6d3e-8a1b-4c2d-9e3f-0a1b2c3d4e5f"


@pytest.fixture
def registry() -> StatusRegistry:
    return StatusRegistry()


@pytest.fixture
def uploader(object_store, registry) -> HLSUploader:
    return HLSUploader(object_store, registry)


class TestHLSUploader:
    @pytest.mark.asyncio
    async def test_segments_before_playlist(self, uploader, object_store, tmp_path):
        artifact = write_hls_output(tmp_path, segments=3)

        await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")

        types = [obj.content_type for obj in object_store.objects]
        assert types == [SEGMENT_CONTENT_TYPE] * 3 + [PLAYLIST_CONTENT_TYPE]
        sequences = [obj.sequence for obj in object_store.objects]
        assert sequences == sorted(sequences)

    @pytest.mark.asyncio
    async def test_keys_are_opaque_and_unique(self, uploader, object_store, tmp_path):
        artifact = write_hls_output(tmp_path, segments=5)

        await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")

        for key in object_store.keys[:-1]:
            assert re.fullmatch(rf"{JOB_ID}/[A-Za-z0-9]{{12}}\.ts", key)
        assert re.fullmatch(rf"{JOB_ID}/[A-Za-z0-9]{{12}}\.m3u8", object_store.keys[-1])
        assert len(set(object_store.keys)) == 6

    @pytest.mark.asyncio
    async def test_playlist_references_uploaded_names(self, uploader, object_store, tmp_path):
        artifact = write_hls_output(tmp_path, segments=12)

        await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")

        segment_names = [key.split("/", 1)[1] for key in object_store.keys[:-1]]
        uploaded_playlist = object_store.objects[-1].body.decode("utf-8")
        referenced = [line for line in uploaded_playlist.splitlines() if line and not line.startswith("#")]

        # Same order as the original segments, no original names left
        assert referenced == segment_names
        assert not re.search(r"index\d+\.ts", uploaded_playlist)
        # Rewritten copy also written back to disk
        assert artifact.playlist_path.read_text(encoding="utf-8") == uploaded_playlist

    @pytest.mark.asyncio
    async def test_segment_bodies_preserved(self, uploader, object_store, tmp_path):
        artifact = write_hls_output(tmp_path, segments=2)
        originals = [p.read_bytes() for p in artifact.segment_paths]

        await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")

        assert [obj.body for obj in object_store.objects[:2]] == originals

    @pytest.mark.asyncio
    async def test_result_recorded(self, uploader, object_store, registry, tmp_path):
        artifact = write_hls_output(tmp_path, segments=1)

        result = await uploader.upload_artifact(artifact, JOB_ID, "Some Movie (2020).mkv")

        assert result.file_name == "Some Movie (2020).mkv"
        assert result.playlist_url == f"http://127.0.0.1:9000/hls/{object_store.keys[-1]}"
        assert registry.get_results(JOB_ID) == [result]

    @pytest.mark.asyncio
    async def test_progress_after_each_file(self, uploader, tmp_path):
        artifact = write_hls_output(tmp_path, segments=3)
        reported = []

        await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4", progress_callback=reported.append)

        assert reported == [25.0, 50.0, 75.0, 100.0]

    @pytest.mark.asyncio
    async def test_progress_callback_errors_ignored(self, uploader, registry, tmp_path):
        artifact = write_hls_output(tmp_path, segments=1)

        def broken(percent):
            raise ValueError("observer bug")

        await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4", progress_callback=broken)
        assert len(registry.get_results(JOB_ID)) == 1

    @pytest.mark.asyncio
    async def test_segment_failure(self, uploader, object_store, registry, tmp_path):
        artifact = write_hls_output(tmp_path, segments=3)
        object_store.fail_on = lambda path, key: path.name == "index1.ts"

        with pytest.raises(UploadError, match="connection refused"):
            await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")

        # First segment stays uploaded, playlist never published
        assert len(object_store.objects) == 1
        assert object_store.objects[0].content_type == SEGMENT_CONTENT_TYPE
        assert registry.get_results(JOB_ID) == []

    @pytest.mark.asyncio
    async def test_playlist_failure(self, uploader, object_store, registry, tmp_path):
        artifact = write_hls_output(tmp_path, segments=2)
        object_store.fail_on = lambda path, key: key.endswith(".m3u8")

        with pytest.raises(UploadError):
            await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")

        assert len(object_store.objects) == 2
        assert registry.get_results(JOB_ID) == []

    @pytest.mark.asyncio
    async def test_unreadable_playlist(self, uploader, registry, tmp_path):
        artifact = write_hls_output(tmp_path, segments=1)
        artifact.playlist_path.unlink()

        with pytest.raises(UploadError, match="Failed to rewrite playlist"):
            await uploader.upload_artifact(artifact, JOB_ID, "movie.mp4")
        assert registry.get_results(JOB_ID) == []


class TestS3ObjectStore:
    def test_public_url(self):
        store = S3ObjectStore(StorageConfig(endpoint_url="http://minio:9000/", bucket="hls"))
        assert store.public_url("job/abc.m3u8") == "http://minio:9000/hls/job/abc.m3u8"

    def test_public_base_url_override(self):
        config = StorageConfig(endpoint_url="http://minio:9000", public_base_url="https://cdn.example.com")
        store = S3ObjectStore(config)
        assert store.public_url("job/abc.m3u8") == "https://cdn.example.com/hls/job/abc.m3u8"

    def test_client_uses_endpoint(self):
        store = S3ObjectStore(StorageConfig(endpoint_url="http://minio:9000"))
        assert store.client.meta.endpoint_url == "http://minio:9000"
        assert store.client.meta.region_name == "us-east-1"

    @pytest.mark.asyncio
    async def test_put_file(self, tmp_path):
        path = tmp_path / "index0.ts"
        path.write_bytes(b"\x47" * 188)
        store = S3ObjectStore(StorageConfig(bucket="videos"))
        store._client = MagicMock()

        await store.put_file(path, "job/abc.ts", SEGMENT_CONTENT_TYPE)

        store._client.upload_file.assert_called_once_with(
            str(path), "videos", "job/abc.ts", ExtraArgs={"ContentType": SEGMENT_CONTENT_TYPE}
        )
        store.close()

    @pytest.mark.asyncio
    async def test_put_file_error(self, tmp_path):
        path = tmp_path / "index0.ts"
        path.write_bytes(b"\x47" * 188)
        store = S3ObjectStore(StorageConfig())
        stubber = Stubber(store.client)
        stubber.add_client_error(
            "put_object", service_error_code="AccessDenied", service_message="Access Denied", http_status_code=403
        )

        with stubber, pytest.raises(UploadError, match="Failed to upload job/abc.ts"):
            await store.put_file(path, "job/abc.ts", SEGMENT_CONTENT_TYPE)
        store.close()

    @pytest.mark.asyncio
    async def test_put_file_missing_bucket(self, tmp_path):
        path = tmp_path / "index.m3u8"
        path.write_text("#EXTM3U\n")
        store = S3ObjectStore(StorageConfig(bucket="missing"))
        stubber = Stubber(store.client)
        stubber.add_client_error(
            "put_object",
            service_error_code="NoSuchBucket",
            service_message="The specified bucket does not exist",
            http_status_code=404,
        )

        with stubber, pytest.raises(UploadError, match="NoSuchBucket"):
            await store.put_file(path, "job/abc.m3u8", PLAYLIST_CONTENT_TYPE)
        store.close()
