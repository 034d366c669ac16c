"""Normalization of server post/comment payloads into canonical models."""

from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

from feedsync.core.exceptions import ParsingError
from feedsync.models.data_models import (
    Comment,
    Like,
    Media,
    Post,
    Profile,
    ProfileSummary,
    Visibility,
)
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)

RawPost = Union[Mapping[str, Any], Post]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, tolerating a trailing 'Z'."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None


def _as_list(value: Any) -> list:
    # Absent or malformed arrays collapse to empty
    return list(value) if isinstance(value, (list, tuple)) else []


def _require_mapping(raw: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ParsingError(f"Malformed {kind} in server response: {type(raw).__name__}")
    return raw


def _parse_visibility(value: Any) -> Visibility:
    if isinstance(value, Visibility):
        return value
    try:
        return Visibility(value)
    except ValueError:
        if value is not None:
            logger.warning(f"Unknown visibility {value!r}, treating as public")
        return Visibility.PUBLIC


def normalize_profile_summary(raw: Any) -> Optional[ProfileSummary]:
    if isinstance(raw, ProfileSummary):
        return raw
    if not isinstance(raw, Mapping) or not raw.get("id"):
        return None
    return ProfileSummary(
        id=str(raw["id"]),
        username=raw.get("username"),
        display_name=raw.get("display_name"),
        avatar_url=raw.get("avatar_url"),
        is_verified=bool(raw.get("is_verified", False)),
    )


def normalize_profile(raw: Any) -> Optional[Profile]:
    """Shape a full profile row as returned by /api/profiles/me."""
    if not isinstance(raw, Mapping) or not raw.get("id"):
        return None
    return Profile(
        id=str(raw["id"]),
        username=raw.get("username"),
        display_name=raw.get("display_name"),
        bio=raw.get("bio"),
        avatar_url=raw.get("avatar_url"),
        cover_url=raw.get("cover_url"),
        is_verified=bool(raw.get("is_verified", False)),
    )


def normalize_media(raw: Mapping[str, Any]) -> Media:
    raw = _require_mapping(raw, "media")
    return Media(
        id=raw.get("id"),
        file_url=raw.get("file_url", ""),
        file_type=raw.get("file_type"),
        file_size=raw.get("file_size"),
        storage_bucket=raw.get("storage_bucket"),
        created_at=parse_timestamp(raw.get("created_at")),
    )


def normalize_like(raw: Mapping[str, Any]) -> Like:
    raw = _require_mapping(raw, "like")
    return Like(
        id=str(raw.get("id", "")),
        user_id=str(raw.get("user_id", "")),
        reaction_type=raw.get("reaction_type") or "like",
        post_id=raw.get("post_id"),
        created_at=parse_timestamp(raw.get("created_at")),
    )


def normalize_likes(raw_likes: Any) -> List[Like]:
    return [
        like if isinstance(like, Like) else normalize_like(like)
        for like in _as_list(raw_likes)
    ]


def normalize_comment(raw: Union[Mapping[str, Any], Comment]) -> Comment:
    """
    Shape a comment payload, keeping the embedded author summary.

    Args:
        raw: Server comment payload or an existing Comment

    Returns:
        Comment instance

    Raises:
        ParsingError: If the payload is not an object
    """
    if isinstance(raw, Comment):
        return raw
    raw = _require_mapping(raw, "comment")
    return Comment(
        id=str(raw.get("id", "")),
        post_id=raw.get("post_id"),
        user_id=str(raw.get("user_id", "")),
        text=raw.get("text") or "",
        parent_id=raw.get("parent_id"),
        created_at=parse_timestamp(raw.get("created_at")),
        author=normalize_profile_summary(raw.get("profiles")),
    )


def normalize(raw_post: RawPost, viewer_id: Optional[str]) -> Post:
    """
    Convert a possibly partial server post payload into a canonical Post.

    Absent arrays become empty lists. Server-supplied counters win over the
    array lengths. has_liked falls back to scanning likes for the viewer, and
    is_owner is always recomputed locally since a payload may have been
    produced for a different viewer.

    Args:
        raw_post: Server payload, or a Post previously normalized
        viewer_id: Id of the signed-in user (None when signed out)

    Returns:
        Post instance

    Raises:
        ParsingError: If the post or one of its likes, comments or media
            is not an object
    """
    if isinstance(raw_post, Post):
        payload = raw_post.to_dict()
        if raw_post.viewer_id != viewer_id:
            # has_liked belonged to another identity
            payload.pop("has_liked", None)
    else:
        payload = _require_mapping(raw_post, "post")

    likes = normalize_likes(payload.get("likes"))
    comments = [normalize_comment(comment) for comment in _as_list(payload.get("comments"))]
    media = [
        item if isinstance(item, Media) else normalize_media(item)
        for item in _as_list(payload.get("post_media", payload.get("media")))
    ]

    likes_count = payload.get("likes_count")
    if not isinstance(likes_count, int):
        likes_count = len(likes)

    comments_count = payload.get("comments_count")
    if not isinstance(comments_count, int):
        comments_count = len(comments)

    has_liked = payload.get("has_liked")
    if not isinstance(has_liked, bool):
        has_liked = viewer_id is not None and any(like.user_id == viewer_id for like in likes)

    user_id = str(payload.get("user_id", ""))

    return Post(
        id=str(payload.get("id", "")),
        user_id=user_id,
        content=payload.get("content"),
        visibility=_parse_visibility(payload.get("visibility")),
        edited=bool(payload.get("edited", False)),
        created_at=parse_timestamp(payload.get("created_at")),
        updated_at=parse_timestamp(payload.get("updated_at")),
        author=normalize_profile_summary(payload.get("profiles")),
        media=media,
        likes=likes,
        comments=comments,
        likes_count=likes_count,
        comments_count=comments_count,
        has_liked=has_liked,
        is_owner=viewer_id is not None and user_id == viewer_id,
        viewer_id=viewer_id,
    )


def normalize_posts(raw_posts: Optional[Iterable[RawPost]], viewer_id: Optional[str]) -> List[Post]:
    """Normalize a page of posts; a missing page yields an empty list."""
    if raw_posts is None:
        return []
    if not isinstance(raw_posts, (list, tuple)):
        raise ParsingError(f"Expected a list of posts, got {type(raw_posts).__name__}")
    return [normalize(post, viewer_id) for post in raw_posts]
