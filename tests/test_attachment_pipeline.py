"""Tests for attachment validation and concurrent uploads."""

import asyncio

import pytest

from email_suite.core.exceptions import AttachmentRejected, UserInputError
from email_suite.schemas.attachment import LocalFile
from email_suite.services.attachment_pipeline import AttachmentPipeline, format_file_size


@pytest.fixture
def pipeline(storage, events) -> AttachmentPipeline:
    return AttachmentPipeline(
        storage,
        "user-1",
        events=events,
        max_bytes=1000,
        max_files=3,
        error_clear_seconds=5.0,
    )


def _file(name: str, size: int = 10) -> LocalFile:
    return LocalFile(name=name, content=b"x" * size, mime_type="text/plain")


# =============================================================================
# Validation
# =============================================================================

class TestValidation:
    """Tests for size, duplicate and count checks."""

    async def test_oversized_file_rejected_and_not_attached(self, pipeline, storage) -> None:
        with pytest.raises(AttachmentRejected) as exc:
            await pipeline.upload(_file("big.pdf", size=1001))

        assert exc.value.reason == AttachmentRejected.TOO_LARGE
        assert "big.pdf" in str(exc.value)
        assert pipeline.attachments == []
        assert storage.started == []
        assert pipeline.errors == [str(exc.value)]

    async def test_same_name_and_size_is_duplicate(self, pipeline) -> None:
        await pipeline.upload(_file("a.txt"))

        with pytest.raises(AttachmentRejected) as exc:
            await pipeline.upload(_file("a.txt"))

        assert exc.value.reason == AttachmentRejected.DUPLICATE
        assert len(pipeline.attachments) == 1

    async def test_same_name_different_size_is_not_duplicate(self, pipeline) -> None:
        await pipeline.upload(_file("a.txt", size=10))
        await pipeline.upload(_file("a.txt", size=11))
        assert len(pipeline.attachments) == 2

    async def test_count_ceiling_rejects_newest_excess(self, pipeline) -> None:
        files = [_file(f"{i}.txt", size=10 + i) for i in range(5)]

        uploaded = await pipeline.upload_many(files)

        assert [a.name for a in uploaded] == ["0.txt", "1.txt", "2.txt"]
        assert len(pipeline.errors) == 2
        assert all("Maximum 3 files" in e for e in pipeline.errors)

    def test_validation_order_size_before_duplicate(self, pipeline) -> None:
        accepted, rejected = pipeline.validate([_file("a.txt", size=2000), _file("a.txt", size=2000)])
        assert accepted == []
        assert [r.reason for r in rejected] == [AttachmentRejected.TOO_LARGE] * 2

    def test_duplicates_within_one_batch(self, pipeline) -> None:
        accepted, rejected = pipeline.validate([_file("a.txt"), _file("a.txt")])
        assert len(accepted) == 1
        assert rejected[0].reason == AttachmentRejected.DUPLICATE


# =============================================================================
# Uploads
# =============================================================================

class TestUploads:
    """Tests for concurrent upload tracking."""

    async def test_uploads_run_concurrently(self, pipeline, storage) -> None:
        storage.gates["a.txt"] = asyncio.Event()
        storage.gates["b.txt"] = asyncio.Event()

        task = asyncio.create_task(pipeline.upload_many([_file("a.txt"), _file("b.txt", size=20)]))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert sorted(storage.started) == ["a.txt", "b.txt"]
        assert pipeline.is_uploading
        assert {u.percent for u in pipeline.uploads.values()} == {50}

        storage.gates["b.txt"].set()
        await asyncio.sleep(0.01)
        assert pipeline.is_uploading
        assert [a.name for a in pipeline.attachments] == ["b.txt"]

        storage.gates["a.txt"].set()
        uploaded = await task
        assert {a.name for a in uploaded} == {"a.txt", "b.txt"}
        assert not pipeline.is_uploading
        assert pipeline.uploads == {}

    async def test_attachment_metadata(self, pipeline) -> None:
        attachment = await pipeline.upload(_file("Report.PDF", size=42))

        assert attachment.name == "Report.PDF"
        assert attachment.size == 42
        assert attachment.mime_type == "text/plain"
        assert attachment.id.startswith("attachments/user-1/")
        assert attachment.id.endswith(".pdf")
        assert attachment.url == f"https://cdn.test/{attachment.id}"

    async def test_failure_does_not_block_others(self, pipeline, storage) -> None:
        storage.fail_names.add("bad.txt")

        uploaded = await pipeline.upload_many([_file("bad.txt"), _file("good.txt", size=12)])

        assert [a.name for a in uploaded] == ["good.txt"]
        assert pipeline.errors == ['Failed to upload "bad.txt"']
        assert not pipeline.is_uploading

    async def test_failed_file_can_be_retried(self, pipeline, storage) -> None:
        storage.fail_names.add("flaky.txt")
        await pipeline.upload_many([_file("flaky.txt")])
        storage.fail_names.clear()

        attachment = await pipeline.upload(_file("flaky.txt"))
        assert attachment.name == "flaky.txt"

    async def test_cancel_single_upload(self, pipeline, storage) -> None:
        storage.gates["slow.txt"] = asyncio.Event()
        task = asyncio.create_task(pipeline.upload(_file("slow.txt")))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        (upload_id,) = pipeline.uploads.keys()
        assert pipeline.cancel(upload_id) is True

        with pytest.raises(UserInputError):
            await task
        assert pipeline.attachments == []
        assert not pipeline.is_uploading

    async def test_errors_auto_clear(self, storage, events) -> None:
        pipeline = AttachmentPipeline(storage, "user-1", events=events, max_bytes=5, error_clear_seconds=0.01)
        await pipeline.upload_many([_file("big.txt", size=50)])
        assert pipeline.errors

        await asyncio.sleep(0.05)
        assert pipeline.errors == []

    async def test_remove_attachment(self, pipeline) -> None:
        attachment = await pipeline.upload(_file("a.txt"))
        assert pipeline.remove(attachment.id) is True
        assert pipeline.remove(attachment.id) is False
        assert pipeline.attachments == []


class TestFormatFileSize:
    """Tests for format_file_size."""

    @pytest.mark.parametrize(
        "size, expected",
        [(512, "512 B"), (2048, "2.0 KB"), (25 * 1024 * 1024, "25.0 MB")],
    )
    def test_units(self, size: int, expected: str) -> None:
        assert format_file_size(size) == expected
