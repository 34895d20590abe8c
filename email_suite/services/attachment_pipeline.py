"""
Attachment validation and concurrent uploads with per-file progress.
"""

import asyncio
import logging
import uuid
from typing import Iterable, Optional

from email_suite.config import MEGABYTE, get_settings
from email_suite.core.events import UPLOADS_CHANGED, EventBus
from email_suite.core.exceptions import AttachmentRejected, UserInputError
from email_suite.core.storage_gateway import ATTACHMENTS_PREFIX, StorageGateway, build_upload_path
from email_suite.schemas.attachment import EmailAttachment, LocalFile, UploadProgress

logger = logging.getLogger(__name__)

settings = get_settings()


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < MEGABYTE:
        return f"{size / 1024:.1f} KB"
    return f"{size / MEGABYTE:.1f} MB"


class AttachmentPipeline:
    """
    Validates files and uploads the accepted ones concurrently.

    Validation order per file: size ceiling, duplicate (name, size) against
    attached and in-flight files, then the aggregate count ceiling. A
    rejected or failed file never blocks the others.
    """

    def __init__(
        self,
        storage: StorageGateway,
        user_id: str,
        events: Optional[EventBus] = None,
        max_bytes: Optional[int] = None,
        max_files: Optional[int] = None,
        path_prefix: str = ATTACHMENTS_PREFIX,
        default_extension: str = "bin",
        cache_control: Optional[str] = None,
        error_clear_seconds: Optional[float] = None,
        event: str = UPLOADS_CHANGED,
    ):
        self.storage = storage
        self.user_id = user_id
        self.events = events or EventBus()
        self.event = event
        self.max_bytes = max_bytes or settings.attachment_max_bytes
        self.max_files = max_files or settings.attachment_max_files
        self.path_prefix = path_prefix
        self.default_extension = default_extension
        self.cache_control = cache_control
        self.error_clear_seconds = (
            error_clear_seconds
            if error_clear_seconds is not None
            else settings.upload_error_clear_seconds
        )

        self.attachments: list[EmailAttachment] = []
        self.uploads: dict[str, UploadProgress] = {}
        self.errors: list[str] = []
        self._tasks: dict[str, asyncio.Task] = {}
        self._clear_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_uploading(self) -> bool:
        return any(u.status == "uploading" for u in self.uploads.values())

    def _in_flight(self) -> int:
        return sum(1 for u in self.uploads.values() if u.status == "uploading")

    def _publish(self) -> None:
        self.events.publish(
            self.event,
            {
                "attachments": list(self.attachments),
                "uploads": list(self.uploads.values()),
                "errors": list(self.errors),
            },
        )

    # ============== Validation ==============

    def validate(self, files: Iterable[LocalFile]) -> tuple[list[LocalFile], list[AttachmentRejected]]:
        """Split ``files`` into accepted files and rejections, without side effects."""
        accepted: list[LocalFile] = []
        rejected: list[AttachmentRejected] = []
        seen = {a.identity for a in self.attachments}
        seen.update((u.name, u.size) for u in self.uploads.values())

        for file in files:
            if file.size > self.max_bytes:
                rejected.append(AttachmentRejected(
                    f'"{file.name}" exceeds {format_file_size(self.max_bytes)} limit',
                    filename=file.name,
                    reason=AttachmentRejected.TOO_LARGE,
                ))
            elif file.identity in seen:
                rejected.append(AttachmentRejected(
                    f'"{file.name}" is already attached',
                    filename=file.name,
                    reason=AttachmentRejected.DUPLICATE,
                ))
            elif len(self.attachments) + self._in_flight() + len(accepted) >= self.max_files:
                rejected.append(AttachmentRejected(
                    f"Maximum {self.max_files} files allowed",
                    filename=file.name,
                    reason=AttachmentRejected.TOO_MANY,
                ))
            else:
                accepted.append(file)
                seen.add(file.identity)

        return accepted, rejected

    # ============== Uploads ==============

    async def upload(self, file: LocalFile) -> EmailAttachment:
        """Validate and upload a single file."""
        accepted, rejected = self.validate([file])
        if rejected:
            self._record_errors([str(r) for r in rejected])
            raise rejected[0]

        task = self._start(accepted[0])
        await self._settle([task])
        if task.cancelled():
            raise UserInputError(f'Upload of "{file.name}" was cancelled', field="attachments")
        return task.result()

    async def upload_many(self, files: Iterable[LocalFile]) -> list[EmailAttachment]:
        """
        Upload every acceptable file concurrently.

        Returns the attachments that completed; rejections and failures are
        collected in ``errors``.
        """
        accepted, rejected = self.validate(files)
        if rejected:
            self._record_errors([str(r) for r in rejected])

        tasks = [self._start(file) for file in accepted]
        if not tasks:
            return []
        await self._settle(tasks)
        return [
            t.result() for t in tasks
            if not t.cancelled() and t.exception() is None
        ]

    async def _settle(self, tasks: list[asyncio.Task]) -> None:
        try:
            await asyncio.wait(tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

    def _start(self, file: LocalFile) -> asyncio.Task:
        upload_id = uuid.uuid4().hex
        self.uploads[upload_id] = UploadProgress(upload_id=upload_id, name=file.name, size=file.size)
        task = asyncio.create_task(self._run(upload_id, file))
        task.add_done_callback(lambda _: self._finish(upload_id))
        self._tasks[upload_id] = task
        self._publish()
        return task

    async def _run(self, upload_id: str, file: LocalFile) -> EmailAttachment:
        progress = self.uploads[upload_id]

        def on_progress(sent: int, total: int) -> None:
            progress.percent = min(int(sent * 100 / total), 100) if total else 100
            self._publish()

        path = build_upload_path(self.path_prefix, self.user_id, file.name, self.default_extension)
        try:
            result = await self.storage.upload_file(
                file,
                path,
                on_progress=on_progress,
                cache_control=self.cache_control,
            )
        except asyncio.CancelledError:
            progress.status = "cancelled"
            logger.info(f"Upload of {file.name} cancelled")
            raise
        except Exception as e:
            progress.status = "failed"
            progress.error = str(e)
            logger.warning(f"Upload of {file.name} failed: {e}")
            self._record_errors([f'Failed to upload "{file.name}"'])
            raise

        attachment = EmailAttachment(
            id=result.get("path", path),
            name=file.name,
            mime_type=file.mime_type,
            size=file.size,
            url=result["url"],
        )
        progress.status = "done"
        progress.percent = 100
        self.attachments.append(attachment)
        self._publish()
        return attachment

    def _finish(self, upload_id: str) -> None:
        self.uploads.pop(upload_id, None)
        self._tasks.pop(upload_id, None)
        self._publish()

    def cancel(self, upload_id: str) -> bool:
        task = self._tasks.get(upload_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for task in list(self._tasks.values()):
            task.cancel()

    # ============== Attachments ==============

    def remove(self, attachment_id: str) -> bool:
        before = len(self.attachments)
        self.attachments = [a for a in self.attachments if a.id != attachment_id]
        removed = len(self.attachments) != before
        if removed:
            self._publish()
        return removed

    def reset(self, attachments: Optional[list[EmailAttachment]] = None) -> None:
        """Cancel in-flight uploads and start over with ``attachments``."""
        self.cancel_all()
        self.attachments = list(attachments or [])
        self.clear_errors()
        self._publish()

    # ============== Errors ==============

    def _record_errors(self, messages: list[str]) -> None:
        self.errors.extend(messages)
        self._publish()
        if self._clear_handle is not None:
            self._clear_handle.cancel()
        loop = asyncio.get_running_loop()
        self._clear_handle = loop.call_later(self.error_clear_seconds, self.clear_errors)

    def clear_errors(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
        if self.errors:
            self.errors = []
            self._publish()
