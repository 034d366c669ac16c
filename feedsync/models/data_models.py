"""Data models for feed posts, comments and local attachments."""

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional


class Visibility(str, Enum):
    """Audience of a post."""
    PUBLIC = "public"
    FRIENDS = "friends"
    PRIVATE = "private"


class AttachmentStatus(str, Enum):
    """Upload state of a local attachment."""
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    ERROR = "error"


class StoragePurpose(str, Enum):
    """What an uploaded file is going to be used for."""
    AVATAR = "avatar"
    COVER = "cover"
    POST = "post"
    OTHER = "other"


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class ProfileSummary:
    """Author summary embedded in posts and comments."""
    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "is_verified": self.is_verified,
        }


@dataclass
class Profile:
    """Full profile of the signed-in user."""
    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None
    is_verified: bool = False


@dataclass
class Media:
    """A durable media record attached to a published post."""
    file_url: str
    id: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    storage_bucket: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "storage_bucket": self.storage_bucket,
            "created_at": _isoformat(self.created_at),
        }


@dataclass
class Like:
    """A reaction by one user on one post."""
    id: str
    user_id: str
    reaction_type: Optional[str] = "like"
    post_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "reaction_type": self.reaction_type,
            "post_id": self.post_id,
            "created_at": _isoformat(self.created_at),
        }


@dataclass
class Comment:
    """A comment on a post, with its author summary embedded."""
    id: str
    post_id: Optional[str]
    user_id: str
    text: str
    parent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    author: Optional[ProfileSummary] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "post_id": self.post_id,
            "user_id": self.user_id,
            "text": self.text,
            "parent_id": self.parent_id,
            "created_at": _isoformat(self.created_at),
            "profiles": self.author.to_dict() if self.author else None,
        }


@dataclass
class Post:
    """A feed post in canonical client shape."""
    id: str
    user_id: str
    content: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC
    edited: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[ProfileSummary] = None
    media: List[Media] = field(default_factory=list)
    likes: List[Like] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    likes_count: int = 0
    comments_count: int = 0
    has_liked: bool = False
    is_owner: bool = False
    # Viewer the derived flags were computed for
    viewer_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize back to the server payload shape, counters included."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content": self.content,
            "visibility": self.visibility.value,
            "edited": self.edited,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "profiles": self.author.to_dict() if self.author else None,
            "post_media": [media.to_dict() for media in self.media],
            "likes": [like.to_dict() for like in self.likes],
            "comments": [comment.to_dict() for comment in self.comments],
            "likes_count": self.likes_count,
            "comments_count": self.comments_count,
            "has_liked": self.has_liked,
            "is_owner": self.is_owner,
        }


@dataclass
class RemoteMedia:
    """Storage descriptor of a successfully uploaded file."""
    file_url: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    storage_bucket: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "storage_bucket": self.storage_bucket,
        }


@dataclass
class LocalFile:
    """A file selected on the local machine, either on disk or in memory."""
    name: str
    content_type: str = ""
    size: int = 0
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: Path) -> "LocalFile":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content_type=content_type or "",
            size=path.stat().st_size,
            path=path,
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str = "") -> "LocalFile":
        if not content_type:
            content_type = mimetypes.guess_type(name)[0] or ""
        return cls(name=name, content_type=content_type, size=len(data), data=data)


@dataclass
class Attachment:
    """A local file mid-upload. Never persisted beyond the composer."""
    id: str
    file: LocalFile
    preview_url: str
    status: AttachmentStatus = AttachmentStatus.UPLOADING
    remote: Optional[RemoteMedia] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == AttachmentStatus.UPLOADING

    @property
    def is_uploaded(self) -> bool:
        return self.status == AttachmentStatus.UPLOADED

    def mark_uploaded(self, remote: RemoteMedia) -> None:
        if not self.is_pending:
            raise RuntimeError(f"Attachment {self.id} already settled as {self.status.value}")
        self.status = AttachmentStatus.UPLOADED
        self.remote = remote

    def mark_failed(self, message: str) -> None:
        if not self.is_pending:
            raise RuntimeError(f"Attachment {self.id} already settled as {self.status.value}")
        self.status = AttachmentStatus.ERROR
        self.error = message


@dataclass
class Identity:
    """Signed-in user as resolved by the identity provider."""
    user_id: str
    access_token: str
    email: Optional[str] = None
    metadata: dict = field(default_factory=dict)
