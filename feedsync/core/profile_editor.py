"""Editing of the signed-in user's profile, including avatar and cover images."""

from dataclasses import asdict, dataclass
from typing import Optional

from feedsync.core.api import FeedApi
from feedsync.core.attachments import AttachmentPipeline
from feedsync.core.exceptions import FeedSyncError, get_error_message
from feedsync.core.session import Session
from feedsync.models.data_models import LocalFile, StoragePurpose
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)

SAVED_MESSAGE = "Profile updated successfully."
IMAGE_UPDATED_MESSAGE = "Image updated successfully."


@dataclass
class EditableProfile:
    display_name: str = ""
    username: str = ""
    bio: str = ""
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None


class ProfileEditor:
    """Form state for the profile page, with separate status and error slots."""

    def __init__(self, api: FeedApi, session: Session, pipeline: AttachmentPipeline):
        self.api = api
        self.session = session
        self.pipeline = pipeline
        self.values = EditableProfile()
        self.status: Optional[str] = None
        self.error: Optional[str] = None
        self.saving = False
        self.avatar_uploading = False
        self.cover_uploading = False
        self.reset()

    def reset(self) -> None:
        """Copy the session's profile into the form."""
        profile = self.session.profile
        if profile is None:
            return
        self.values = EditableProfile(
            display_name=profile.display_name or "",
            username=profile.username or "",
            bio=profile.bio or "",
            avatar_url=profile.avatar_url,
            cover_url=profile.cover_url,
        )

    def update_field(self, name: str, value) -> None:
        if not hasattr(self.values, name):
            raise AttributeError(f"Unknown profile field: {name}")
        setattr(self.values, name, value)

    @property
    def can_save(self) -> bool:
        return (
            bool(self.values.display_name.strip())
            and bool(self.values.username.strip())
            and not self.saving
        )

    async def save(self) -> bool:
        self.status = None
        self.error = None
        if not self.can_save:
            self.error = "Display name and username are required."
            return False

        self.saving = True
        try:
            await self.api.update_my_profile(asdict(self.values))
            await self.session.refresh_profile()
            self.status = SAVED_MESSAGE
            return True
        except FeedSyncError as e:
            self.error = get_error_message(e, "Failed to save profile")
            logger.warning(f"Profile save failed: {self.error}")
            return False
        finally:
            self.saving = False

    async def change_avatar(self, file: LocalFile) -> bool:
        self.avatar_uploading = True
        try:
            return await self._change_image(file, StoragePurpose.AVATAR, "avatar_url")
        finally:
            self.avatar_uploading = False

    async def change_cover(self, file: LocalFile) -> bool:
        self.cover_uploading = True
        try:
            return await self._change_image(file, StoragePurpose.COVER, "cover_url")
        finally:
            self.cover_uploading = False

    async def _change_image(self, file: LocalFile, purpose: StoragePurpose, field_name: str) -> bool:
        self.status = None
        self.error = None

        # Show the local file until the upload lands
        preview_url = self.pipeline.previews.create(file)
        previous = getattr(self.values, field_name)
        setattr(self.values, field_name, preview_url)

        try:
            remote = await self.pipeline.upload_file(file, purpose)
            await self.api.update_my_profile({field_name: remote.file_url})
            await self.session.refresh_profile()
        except (FeedSyncError, OSError) as e:
            setattr(self.values, field_name, previous)
            self.error = get_error_message(e, "Failed to upload image")
            logger.warning(f"{purpose.value} upload failed: {self.error}")
            return False
        finally:
            self.pipeline.previews.release(preview_url)

        setattr(self.values, field_name, remote.file_url)
        self.status = IMAGE_UPDATED_MESSAGE
        return True
