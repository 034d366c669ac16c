"""Attachment upload pipeline: signed URL, direct transfer, remote descriptor."""

import asyncio
import random
import string
import uuid
from typing import Dict, Iterable, List, Optional, Set

import aiofiles

from feedsync.core.api import FeedApi
from feedsync.core.exceptions import FeedSyncError, UploadError, get_error_message
from feedsync.models.data_models import (
    Attachment,
    LocalFile,
    RemoteMedia,
    StoragePurpose,
)
from feedsync.utils.config import DEFAULT_STORAGE_PURPOSE
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)


def generate_attachment_id() -> str:
    """Client-side attachment id; UUID4 with a pseudo-random fallback."""
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        # No OS randomness source available
        alphabet = string.ascii_lowercase + string.digits
        return "".join(random.choices(alphabet, k=16))


async def read_file_bytes(file: LocalFile) -> bytes:
    if file.data is not None:
        return file.data
    if file.path is None:
        raise UploadError(f"No content available for {file.name}")
    async with aiofiles.open(file.path, "rb") as f:
        return await f.read()


class PreviewRegistry:
    """
    Issues local preview references for selected files.

    Each reference must be released exactly once; releasing an unknown or
    already released reference is a no-op that returns False.
    """

    def __init__(self):
        self._previews: Dict[str, LocalFile] = {}

    def create(self, file: LocalFile) -> str:
        url = f"preview://{uuid.uuid4().hex}/{file.name}"
        self._previews[url] = file
        return url

    def resolve(self, url: str) -> Optional[LocalFile]:
        return self._previews.get(url)

    def release(self, url: str) -> bool:
        if self._previews.pop(url, None) is None:
            logger.warning(f"Preview already released: {url}")
            return False
        return True

    @property
    def active_count(self) -> int:
        return len(self._previews)


class AttachmentPipeline:
    """
    Tracks files selected for a post while they upload.

    Every file runs its own state machine (uploading -> uploaded | error).
    Failures are recorded on the attachment and never raised to the caller.
    Removing an attachment does not cancel its transfer; a result arriving
    for an id that is no longer tracked is dropped.
    """

    def __init__(self, api: FeedApi, previews: Optional[PreviewRegistry] = None):
        self.api = api
        self.previews = previews or PreviewRegistry()
        self._attachments: Dict[str, Attachment] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def attachments(self) -> List[Attachment]:
        return list(self._attachments.values())

    def get(self, attachment_id: str) -> Optional[Attachment]:
        return self._attachments.get(attachment_id)

    @property
    def has_pending(self) -> bool:
        return any(attachment.is_pending for attachment in self._attachments.values())

    @property
    def is_ready(self) -> bool:
        """True when no attachment is still uploading or failed."""
        return all(attachment.is_uploaded for attachment in self._attachments.values())

    def begin_upload(
        self,
        file: LocalFile,
        purpose: StoragePurpose = StoragePurpose(DEFAULT_STORAGE_PURPOSE),
    ) -> Attachment:
        """
        Start tracking a file and schedule its upload.

        Must be called with a running event loop; without one it raises
        RuntimeError before anything is tracked.

        Args:
            file: Selected file
            purpose: Storage purpose sent with the upload-URL request

        Returns:
            The new attachment, in uploading state
        """
        loop = asyncio.get_running_loop()

        attachment = Attachment(
            id=generate_attachment_id(),
            file=file,
            preview_url=self.previews.create(file),
        )
        self._attachments[attachment.id] = attachment

        task = loop.create_task(self._run_upload(attachment, purpose))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug(f"Attachment {attachment.id} uploading: {file.name} ({file.size} bytes)")
        return attachment

    def begin_uploads(self, files: Iterable[LocalFile]) -> List[Attachment]:
        return [self.begin_upload(file) for file in files]

    def remove(self, attachment_id: str) -> bool:
        """
        Discard an attachment in any state and release its preview.

        Returns:
            True if the attachment was tracked
        """
        attachment = self._attachments.pop(attachment_id, None)
        if attachment is None:
            return False
        self.previews.release(attachment.preview_url)
        logger.debug(f"Attachment {attachment_id} removed ({attachment.status.value})")
        return True

    def clear(self) -> None:
        for attachment_id in list(self._attachments):
            self.remove(attachment_id)

    async def drain(self) -> None:
        """Wait until every upload started so far has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _is_tracked(self, attachment: Attachment) -> bool:
        return self._attachments.get(attachment.id) is attachment

    async def _run_upload(self, attachment: Attachment, purpose: StoragePurpose) -> None:
        try:
            remote = await self.upload_file(attachment.file, purpose)
        except (FeedSyncError, OSError) as e:
            message = get_error_message(e, "Upload failed")
            logger.error(f"Upload of {attachment.file.name} failed: {message}")
            self._settle(attachment, error=message)
            return
        except Exception:
            logger.exception(f"Unexpected error uploading {attachment.file.name}")
            self._settle(attachment, error="Upload failed")
            return

        self._settle(attachment, remote=remote)

    def _settle(
        self,
        attachment: Attachment,
        remote: Optional[RemoteMedia] = None,
        error: Optional[str] = None,
    ) -> None:
        if not self._is_tracked(attachment):
            logger.debug(f"Dropping upload result for removed attachment {attachment.id}")
            return
        if remote is not None:
            attachment.mark_uploaded(remote)
            logger.info(f"Uploaded {attachment.file.name} -> {remote.file_url}")
        else:
            attachment.mark_failed(error or "Upload failed")

    async def upload_file(
        self,
        file: LocalFile,
        purpose: StoragePurpose = StoragePurpose(DEFAULT_STORAGE_PURPOSE),
    ) -> RemoteMedia:
        """
        Upload one file: signed-URL request, then direct transfer.

        Args:
            file: File to upload
            purpose: Storage purpose

        Returns:
            RemoteMedia descriptor of the stored file

        Raises:
            TransportError: If the upload-URL request fails
            UploadError: If the transfer fails
        """
        meta = await self.api.request_upload_url(
            file_name=file.name,
            file_type=file.content_type,
            file_size=file.size,
            purpose=purpose,
        )
        if not isinstance(meta, dict) or not meta.get("upload_url"):
            raise UploadError("Storage did not return an upload URL")

        data = await read_file_bytes(file)
        await self.api.put_object(meta["upload_url"], data, file.content_type)

        file_url = meta.get("file_url") or meta.get("public_url")
        if not file_url:
            raise UploadError("Storage did not return a file URL")

        return RemoteMedia(
            file_url=file_url,
            file_type=file.content_type or None,
            file_size=file.size,
            storage_bucket=meta.get("bucket"),
        )
