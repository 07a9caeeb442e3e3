"""
Tests for the ingestion pipeline, end to end with in-process fakes.

The inspector is a fake, the remuxer is the mock (a real file copy) and
storage is the in-memory mock client, so temp-file handling and the
reference round trip are exercised for real.
"""

import asyncio
import contextlib
import io
import os
import re
import tempfile
import time
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from src.core.videos import pipeline as pipeline_module
from src.core.videos.errors import (
    InvalidReferenceError,
    MalformedReferenceError,
    NoVideoStreamError,
    RemuxFailedError,
    SigningFailedError,
    UploadFailedError,
    UploadTooLargeError,
)
from src.core.videos.models import StreamGeometry, UploadedFile, VideoRecord
from src.core.videos.pipeline import VideoIngestionPipeline, receive_upload
from src.core.videos.reference import decode_reference
from src.infrastructure.media.ffmpeg import MockFastStartRemuxer
from src.infrastructure.storage.client import MockStorageClient

BUCKET = "tubely-test"


class FakeInspector:
    def __init__(self, width=1280, height=720, error=None):
        self.geometry = StreamGeometry(width, height)
        self.error = error
        self.paths = []

    async def inspect(self, path):
        self.paths.append(path)
        if self.error:
            raise self.error
        return self.geometry


class PrefixRemuxer(MockFastStartRemuxer):
    """Mock remuxer that marks its output so tests can tell it was uploaded."""

    async def remux(self, path):
        out_path = await super().remux(path)
        with open(out_path, "r+b") as f:
            data = f.read()
            f.seek(0)
            f.write(b"FASTSTART:" + data)
        self.last_output = out_path
        return out_path


class FailingRemuxer:
    async def remux(self, path):
        raise RemuxFailedError("ffmpeg exploded", diagnostics="boom")


class FailingUploadStorage(MockStorageClient):
    async def upload_object(self, bucket, key, body, content_type):
        raise UploadFailedError("bucket said no")


class FlakySigningStorage(MockStorageClient):
    """Refuses to sign one particular key."""

    def __init__(self, bad_key):
        super().__init__()
        self.bad_key = bad_key

    async def generate_presigned_url(self, bucket, key, expires_in=timedelta(minutes=15)):
        if key == self.bad_key:
            raise SigningFailedError("signer unavailable")
        return await super().generate_presigned_url(bucket, key, expires_in)


@pytest.fixture
def upload(tmp_path):
    path = tmp_path / "upload.mp4"
    path.write_bytes(b"raw-mp4-bytes")
    return UploadedFile(path=str(path), content_type="video/mp4", size=13)


@pytest.fixture
def record():
    return VideoRecord(user_id="user-1", title="Boots and cats")


def make_pipeline(inspector=None, remuxer=None, storage=None):
    return VideoIngestionPipeline(
        inspector=inspector or FakeInspector(),
        remuxer=remuxer or PrefixRemuxer(),
        storage=storage or MockStorageClient(),
        bucket=BUCKET,
    )


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------

class TestIngest:
    def test_landscape_upload_end_to_end(self, upload, record):
        """1280x720 -> landscape key, remuxed bytes uploaded, reference persisted."""
        inspector = FakeInspector(1280, 720)
        remuxer = PrefixRemuxer()
        storage = MockStorageClient()
        pipeline = make_pipeline(inspector, remuxer, storage)

        updated = asyncio.run(pipeline.ingest(record, upload))

        assert inspector.paths == [upload.path]
        assert re.fullmatch(rf"{BUCKET},landscape/[0-9a-f]{{32}}\.mp4", updated.video_url)

        reference = decode_reference(updated.video_url)
        data, content_type = storage.get_object(reference.bucket, reference.key)
        assert data == b"FASTSTART:raw-mp4-bytes"
        assert content_type == "video/mp4"

    def test_portrait_upload_uses_portrait_prefix(self, upload, record):
        pipeline = make_pipeline(inspector=FakeInspector(1080, 1920))
        updated = asyncio.run(pipeline.ingest(record, upload))
        assert decode_reference(updated.video_url).key.startswith("portrait/")

    def test_square_upload_uses_other_prefix(self, upload, record):
        pipeline = make_pipeline(inspector=FakeInspector(1000, 1000))
        updated = asyncio.run(pipeline.ingest(record, upload))
        assert decode_reference(updated.video_url).key.startswith("other/")

    def test_input_record_is_not_mutated(self, upload, record):
        updated = asyncio.run(make_pipeline().ingest(record, upload))

        assert record.video_url is None
        assert updated is not record
        assert updated.id == record.id
        assert updated.updated_at >= record.updated_at

    def test_reupload_overwrites_reference(self, upload, record):
        pipeline = make_pipeline()
        first = asyncio.run(pipeline.ingest(record, upload))
        second = asyncio.run(pipeline.ingest(first, upload))

        assert second.video_url != first.video_url
        assert second.video_url.count(",") == 1

    def test_remuxed_file_removed_after_success(self, upload, record):
        remuxer = PrefixRemuxer()
        asyncio.run(make_pipeline(remuxer=remuxer).ingest(record, upload))

        assert not os.path.exists(remuxer.last_output)
        # the raw upload belongs to the caller
        assert os.path.exists(upload.path)

    def test_remuxed_file_removed_after_upload_failure(self, upload, record):
        remuxer = PrefixRemuxer()
        pipeline = make_pipeline(remuxer=remuxer, storage=FailingUploadStorage())

        with pytest.raises(UploadFailedError):
            asyncio.run(pipeline.ingest(record, upload))

        assert not os.path.exists(remuxer.last_output)
        assert record.video_url is None

    def test_probe_failure_stops_before_remux(self, upload, record):
        remuxer = PrefixRemuxer()
        storage = MockStorageClient()
        pipeline = make_pipeline(
            inspector=FakeInspector(error=NoVideoStreamError("audio only")),
            remuxer=remuxer,
            storage=storage,
        )

        with pytest.raises(NoVideoStreamError):
            asyncio.run(pipeline.ingest(record, upload))

        assert not hasattr(remuxer, "last_output")
        assert storage.object_count == 0

    def test_remux_failure_stops_before_upload(self, upload, record):
        storage = MockStorageClient()
        pipeline = make_pipeline(remuxer=FailingRemuxer(), storage=storage)

        with pytest.raises(RemuxFailedError):
            asyncio.run(pipeline.ingest(record, upload))

        assert storage.object_count == 0

    def test_unencodable_reference_fails_before_upload(self, upload, record, monkeypatch):
        def refuse(bucket, key):
            raise InvalidReferenceError("cannot encode")

        monkeypatch.setattr(pipeline_module, "encode_reference", refuse)
        remuxer = PrefixRemuxer()
        storage = MockStorageClient()

        with pytest.raises(InvalidReferenceError):
            asyncio.run(make_pipeline(remuxer=remuxer, storage=storage).ingest(record, upload))

        assert storage.object_count == 0
        assert not os.path.exists(remuxer.last_output)


class TestPipelineConstruction:
    @pytest.mark.parametrize("bucket", ["", "videos,archive"])
    def test_unusable_bucket_rejected(self, bucket):
        with pytest.raises(InvalidReferenceError):
            VideoIngestionPipeline(
                inspector=FakeInspector(),
                remuxer=PrefixRemuxer(),
                storage=MockStorageClient(),
                bucket=bucket,
            )


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------

class TestSignRecord:
    def test_record_without_reference_is_returned_unchanged(self, record):
        assert asyncio.run(make_pipeline().sign_record(record)) is record

    def test_empty_reference_is_treated_as_absent(self, record):
        record.video_url = ""
        assert asyncio.run(make_pipeline().sign_record(record)) is record

    def test_signed_url_replaces_reference_on_a_copy(self, upload, record):
        pipeline = make_pipeline()
        stored = asyncio.run(pipeline.ingest(record, upload))

        signed = asyncio.run(pipeline.sign_record(stored))

        assert signed.video_url != stored.video_url
        assert stored.video_url.startswith(f"{BUCKET},")
        query = parse_qs(urlparse(signed.video_url).query)
        assert query["X-Amz-Expires"] == ["900"]
        assert decode_reference(stored.video_url).key in signed.video_url

    def test_each_read_gets_a_fresh_url(self, upload, record):
        pipeline = make_pipeline()
        stored = asyncio.run(pipeline.ingest(record, upload))

        first = asyncio.run(pipeline.sign_record(stored))
        second = asyncio.run(pipeline.sign_record(stored))

        assert first.video_url != second.video_url

    def test_explicit_expiry_is_passed_through(self, record):
        record.video_url = f"{BUCKET},other/abc.mp4"
        signed = asyncio.run(make_pipeline().sign_record(record, expires_in=timedelta(hours=1)))
        assert parse_qs(urlparse(signed.video_url).query)["X-Amz-Expires"] == ["3600"]

    def test_malformed_reference_surfaces(self, record):
        record.video_url = "no-separator-here"
        with pytest.raises(MalformedReferenceError):
            asyncio.run(make_pipeline().sign_record(record))


class TestSignRecords:
    def test_one_signing_failure_does_not_abort_the_batch(self):
        records = [
            VideoRecord(user_id="u", title="a", video_url=f"{BUCKET},landscape/a.mp4"),
            VideoRecord(user_id="u", title="b", video_url=f"{BUCKET},landscape/bad.mp4"),
            VideoRecord(user_id="u", title="c"),
        ]
        pipeline = make_pipeline(storage=FlakySigningStorage(bad_key="landscape/bad.mp4"))

        signed = asyncio.run(pipeline.sign_records(records))

        assert [r.title for r in signed] == ["a", "b", "c"]
        assert "landscape/a.mp4" in signed[0].video_url
        assert signed[1].video_url is None
        assert signed[2].video_url is None
        # stored records untouched
        assert records[1].video_url == f"{BUCKET},landscape/bad.mp4"

    def test_malformed_reference_propagates(self):
        records = [VideoRecord(user_id="u", title="a", video_url=",landscape/a.mp4")]
        with pytest.raises(MalformedReferenceError):
            asyncio.run(make_pipeline().sign_records(records))


# ---------------------------------------------------------------------------
# Temp file handling
# ---------------------------------------------------------------------------

class SlowStream:
    """A client stream that blocks on every read, like a slow upload."""

    def __init__(self, chunks=5, delay=0.1):
        self.remaining = chunks
        self.delay = delay

    def read(self, size=-1):
        if not self.remaining:
            return b""
        time.sleep(self.delay)
        self.remaining -= 1
        return b"chunk"


class TestReceiveUpload:
    @pytest.fixture(autouse=True)
    def isolated_tempdir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
        self.tmp_path = tmp_path

    def test_spools_stream_and_deletes_afterwards(self):
        async def spool():
            async with receive_upload(io.BytesIO(b"hello video"), "video/mp4", max_bytes=1024) as uploaded:
                with open(uploaded.path, "rb") as f:
                    assert f.read() == b"hello video"
                return uploaded

        uploaded = asyncio.run(spool())

        assert uploaded.size == 11
        assert uploaded.content_type == "video/mp4"
        assert not os.path.exists(uploaded.path)

    def test_deletes_on_failure_inside_block(self):
        seen = []

        async def spool():
            async with receive_upload(io.BytesIO(b"data"), "video/mp4", max_bytes=1024) as uploaded:
                seen.append(uploaded.path)
                raise RuntimeError("pipeline blew up")

        with pytest.raises(RuntimeError):
            asyncio.run(spool())

        assert not os.path.exists(seen[0])

    def test_too_large_is_rejected_and_cleaned_up(self):
        async def spool():
            async with receive_upload(io.BytesIO(b"x" * 2048), "video/mp4", max_bytes=1024):
                pass

        with pytest.raises(UploadTooLargeError):
            asyncio.run(spool())

        assert list(self.tmp_path.iterdir()) == []

    def test_each_request_gets_its_own_file(self):
        async def spool():
            async with receive_upload(io.BytesIO(b"a"), "video/mp4", max_bytes=10) as first:
                async with receive_upload(io.BytesIO(b"b"), "video/mp4", max_bytes=10) as second:
                    return first.path, second.path

        first_path, second_path = asyncio.run(spool())
        assert first_path != second_path

    def test_slow_stream_does_not_stall_other_tasks(self):
        """While a slow upload is spooled, other coroutines keep running."""
        async def spool_with_ticker():
            ticks = 0

            async def ticker():
                nonlocal ticks
                while True:
                    await asyncio.sleep(0.01)
                    ticks += 1

            task = asyncio.create_task(ticker())
            try:
                async with receive_upload(SlowStream(), "video/mp4", max_bytes=1024) as uploaded:
                    size = uploaded.size
            finally:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            return ticks, size

        ticks, size = asyncio.run(spool_with_ticker())

        assert size == 5 * len(b"chunk")
        # 0.5 s of blocking reads; a blocked loop would tick about once
        assert ticks > 20
