"""Feed store: ordered post sequence, composer state and mutations."""

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from feedsync.core.api import FeedApi
from feedsync.core.attachments import AttachmentPipeline
from feedsync.core.exceptions import (
    FeedSyncError,
    ParsingError,
    TransportError,
    ValidationError,
    get_error_message,
)
from feedsync.core.normalizer import normalize, normalize_comment, normalize_likes, normalize_posts
from feedsync.core.session import Session
from feedsync.models.data_models import Attachment, Comment, Post, RemoteMedia, Visibility
from feedsync.utils.config import DEFAULT_VISIBILITY, FEED_PAGE_SIZE
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)

MEDIA_NOT_READY = "media not ready"
EMPTY_POST = "Write something or attach media before posting."


@dataclass
class ComposerState:
    """Draft of the post being written."""
    text: str = ""
    visibility: Visibility = Visibility(DEFAULT_VISIBILITY)
    is_publishing: bool = False
    error: Optional[str] = None


class FeedStore:
    """
    Owns the feed's post sequence (newest first) and the composer draft.

    Every operation settles without raising; failures land in
    ``fetch_error`` (feed), ``composer.error`` (publishing) or on the
    attachment itself (uploads).

    Likes are optimistic and reconciled with the server's response; a failed
    like or comment reloads the whole feed instead of undoing locally.
    Publishing and deleting only change the sequence after the server
    confirms.
    """

    def __init__(
        self,
        api: FeedApi,
        session: Session,
        pipeline: Optional[AttachmentPipeline] = None,
        page_size: int = FEED_PAGE_SIZE,
    ):
        self.api = api
        self.session = session
        self.pipeline = pipeline or AttachmentPipeline(api)
        self.page_size = page_size
        self.composer = ComposerState()
        self.fetch_error: Optional[str] = None
        self._posts: List[Post] = []
        self._loads_in_flight = 0
        self._like_requests: Dict[str, int] = {}
        self._like_sequence = 0

    # State accessors

    @property
    def posts(self) -> Tuple[Post, ...]:
        return tuple(self._posts)

    @property
    def is_fetching(self) -> bool:
        return self._loads_in_flight > 0

    @property
    def attachments(self) -> List[Attachment]:
        return self.pipeline.attachments

    @property
    def can_publish(self) -> bool:
        has_content = bool(self.composer.text.strip()) or any(
            attachment.is_uploaded for attachment in self.pipeline.attachments
        )
        return has_content and not self.composer.is_publishing

    def get_post(self, post_id: str) -> Optional[Post]:
        for post in self._posts:
            if post.id == post_id:
                return post
        return None

    def set_draft_text(self, text: str) -> None:
        self.composer.text = text

    def set_visibility(self, visibility: Union[Visibility, str]) -> None:
        self.composer.visibility = Visibility(visibility)

    def _update_post(self, post_id: str, change: Callable[[Post], Post]) -> None:
        self._posts = [change(post) if post.id == post_id else post for post in self._posts]

    # Loading

    async def load(self) -> bool:
        """
        Fetch the feed page and replace the local sequence wholesale.

        Overlapping loads are not coalesced; the last response to arrive wins.

        Returns:
            True if the feed was refreshed
        """
        self._loads_in_flight += 1
        self.fetch_error = None
        try:
            raw_posts = await self.api.list_posts(self.page_size)
            self._posts = normalize_posts(raw_posts, self.session.user_id)
            logger.debug(f"Loaded {len(self._posts)} posts")
            return True
        except FeedSyncError as e:
            self.fetch_error = get_error_message(e, "Failed to load posts")
            logger.error(f"Failed to load feed: {self.fetch_error}")
            return False
        finally:
            self._loads_in_flight -= 1

    # Publishing

    @staticmethod
    def _validate_publish(
        text: str,
        visibility: Union[Visibility, str],
        attachments: List[Attachment],
    ) -> Tuple[Visibility, List[RemoteMedia]]:
        try:
            visibility = Visibility(visibility)
        except ValueError:
            raise ValidationError(f"Unknown visibility: {visibility}") from None

        if any(not attachment.is_uploaded for attachment in attachments):
            raise ValidationError(MEDIA_NOT_READY)

        media = [attachment.remote for attachment in attachments if attachment.remote is not None]
        if not text.strip() and not media:
            raise ValidationError(EMPTY_POST)
        return visibility, media

    async def publish(
        self,
        text: Optional[str] = None,
        visibility: Optional[Union[Visibility, str]] = None,
        attachments: Optional[Iterable[Attachment]] = None,
    ) -> Optional[Post]:
        """
        Publish a post; not optimistic.

        Arguments left as None come from the composer draft and the
        attachment pipeline. On success the server's post is prepended and
        the draft reset; on failure the draft is kept for a retry.

        Returns:
            The published post, or None if rejected or failed
        """
        if self.composer.is_publishing:
            logger.debug("Publish already in progress")
            return None

        self.composer.error = None
        text = self.composer.text if text is None else text
        visibility = self.composer.visibility if visibility is None else visibility
        attachments = self.pipeline.attachments if attachments is None else list(attachments)

        try:
            visibility, media = self._validate_publish(text, visibility, attachments)
        except ValidationError as e:
            self.composer.error = str(e)
            logger.debug(f"Publish rejected: {e}")
            return None

        self.composer.is_publishing = True
        try:
            raw = await self.api.create_post(text.strip(), visibility, media)
            if not isinstance(raw, dict):
                raise TransportError("Server did not return the new post")
            post = normalize(raw, self.session.user_id)
        except FeedSyncError as e:
            self.composer.error = get_error_message(e, "Failed to publish post")
            logger.warning(f"Publish failed: {self.composer.error}")
            return None
        finally:
            self.composer.is_publishing = False

        self._posts = [post] + self._posts

        self.composer.text = ""
        self.composer.visibility = Visibility(DEFAULT_VISIBILITY)
        for attachment in attachments:
            self.pipeline.remove(attachment.id)

        logger.info(f"Published post {post.id} with {len(media)} media")
        return post

    # Likes

    @staticmethod
    def _parse_like_state(response: Any, viewer_id: Optional[str]) -> Dict[str, Any]:
        if not isinstance(response, dict):
            raise ParsingError("Server did not return like state")
        likes = normalize_likes(response.get("likes"))
        likes_count = response.get("likes_count")
        if not isinstance(likes_count, int):
            likes_count = len(likes)
        has_liked = response.get("has_liked")
        if not isinstance(has_liked, bool):
            has_liked = any(like.user_id == viewer_id for like in likes)
        return {"likes": likes, "likes_count": likes_count, "has_liked": has_liked}

    async def toggle_like(self, post_id: str, currently_liked: bool) -> bool:
        """
        Optimistically flip the viewer's like, then reconcile with the server.

        Only the response to the latest toggle on a post is applied, so an
        earlier response landing late cannot overwrite a newer one. On
        failure the whole feed is reloaded.

        Returns:
            True if the server accepted the toggle
        """
        if self.get_post(post_id) is None:
            logger.warning(f"Cannot toggle like on unknown post {post_id}")
            return False

        self._like_sequence += 1
        request_id = self._like_sequence
        self._like_requests[post_id] = request_id

        delta = -1 if currently_liked else 1
        self._update_post(
            post_id,
            lambda post: replace(
                post,
                has_liked=not currently_liked,
                likes_count=post.likes_count + delta,
            ),
        )

        try:
            if currently_liked:
                response: Any = await self.api.unlike_post(post_id)
            else:
                response = await self.api.like_post(post_id)
            state = self._parse_like_state(response, self.session.user_id)
        except FeedSyncError as e:
            self._settle_like_request(post_id, request_id)
            logger.warning(f"Like toggle on {post_id} failed ({e}), reloading feed")
            await self.load()
            return False

        if not self._settle_like_request(post_id, request_id):
            logger.debug(f"Dropping superseded like response for {post_id}")
            return True

        self._update_post(post_id, lambda post: replace(post, **state))
        return True

    def _settle_like_request(self, post_id: str, request_id: int) -> bool:
        """Forget the post's pending toggle if request_id is still the latest one."""
        if self._like_requests.get(post_id) != request_id:
            return False
        del self._like_requests[post_id]
        return True

    # Comments

    async def add_comment(self, post_id: str, text: str) -> Optional[Comment]:
        """
        Add a comment once the server confirms it.

        Whitespace-only text is ignored. On failure the feed is reloaded.

        Returns:
            The server's comment, or None
        """
        text = (text or "").strip()
        if not text:
            return None

        try:
            raw = await self.api.add_comment(post_id, text)
            if not isinstance(raw, dict):
                raise TransportError("Server did not return the new comment")
            comment = normalize_comment(raw)
        except FeedSyncError as e:
            logger.warning(f"Comment on {post_id} failed ({e}), reloading feed")
            await self.load()
            return None

        self._update_post(
            post_id,
            lambda post: replace(
                post,
                comments=post.comments + [comment],
                comments_count=post.comments_count + 1,
            ),
        )
        return comment

    async def edit_comment(self, post_id: str, comment_id: str, text: str) -> Optional[Comment]:
        text = (text or "").strip()
        if not text:
            return None

        try:
            raw = await self.api.update_comment(comment_id, text)
            if not isinstance(raw, dict):
                raise TransportError("Server did not return the comment")
            updated = normalize_comment(raw)
        except FeedSyncError as e:
            self.fetch_error = get_error_message(e, "Unable to update comment")
            return None

        self._update_post(
            post_id,
            lambda post: replace(
                post,
                comments=[updated if c.id == comment_id else c for c in post.comments],
            ),
        )
        return updated

    async def delete_comment(self, post_id: str, comment_id: str) -> bool:
        try:
            await self.api.delete_comment(comment_id)
        except FeedSyncError as e:
            self.fetch_error = get_error_message(e, "Unable to delete comment")
            return False

        def drop(post: Post) -> Post:
            remaining = [c for c in post.comments if c.id != comment_id]
            removed = len(post.comments) - len(remaining)
            return replace(
                post,
                comments=remaining,
                comments_count=max(0, post.comments_count - removed),
            )

        self._update_post(post_id, drop)
        return True

    # Posts

    async def edit_post(
        self,
        post_id: str,
        content: Optional[str] = None,
        visibility: Optional[Union[Visibility, str]] = None,
    ) -> Optional[Post]:
        """Update a post's text or audience once the server confirms it."""
        if content is None and visibility is None:
            return self.get_post(post_id)

        try:
            if visibility is not None:
                try:
                    visibility = Visibility(visibility)
                except ValueError:
                    raise ValidationError(f"Unknown visibility: {visibility}") from None
            raw = await self.api.update_post(
                post_id,
                content=content.strip() if content is not None else None,
                visibility=visibility,
            )
            if not isinstance(raw, dict):
                raise TransportError("Server did not return the post")
            updated = normalize(raw, self.session.user_id)
        except FeedSyncError as e:
            self.fetch_error = get_error_message(e, "Unable to update post")
            return None

        self._update_post(post_id, lambda post: updated)
        return updated

    async def delete_post(self, post_id: str) -> bool:
        """
        Delete a post; removed locally only after the server confirms.

        Returns:
            True if the post was deleted
        """
        try:
            await self.api.delete_post(post_id)
        except FeedSyncError as e:
            self.fetch_error = get_error_message(e, "Unable to delete post")
            logger.warning(f"Delete of {post_id} failed: {self.fetch_error}")
            return False

        self._posts = [post for post in self._posts if post.id != post_id]
        logger.info(f"Deleted post {post_id}")
        return True
