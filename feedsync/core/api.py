"""Typed wrappers around the feed backend's REST endpoints."""

from typing import Any, List, Optional

from feedsync.core.transport import Transport
from feedsync.models.data_models import RemoteMedia, StoragePurpose, Visibility
from feedsync.utils.config import FEED_PAGE_SIZE


class FeedApi:
    """
    Endpoint-level client. Returns raw payloads; shaping is left to the
    normalizer so that every caller applies the same viewer rules.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    # Posts

    async def list_posts(self, limit: int = FEED_PAGE_SIZE) -> List[dict]:
        response = await self.transport.request("GET", "/api/posts", params={"limit": limit})
        return _field(response, "posts") or []

    async def create_post(
        self,
        content: str,
        visibility: Visibility,
        media: List[RemoteMedia],
    ) -> dict:
        response = await self.transport.request(
            "POST",
            "/api/posts",
            json_body={
                "content": content,
                "visibility": visibility.value,
                "media": [item.to_dict() for item in media],
            },
        )
        return _field(response, "post")

    async def update_post(
        self,
        post_id: str,
        content: Optional[str] = None,
        visibility: Optional[Visibility] = None,
    ) -> dict:
        body: dict = {}
        if content is not None:
            body["content"] = content
        if visibility is not None:
            body["visibility"] = visibility.value
        response = await self.transport.request("PATCH", f"/api/posts/{post_id}", json_body=body)
        return _field(response, "post")

    async def delete_post(self, post_id: str) -> None:
        await self.transport.request("DELETE", f"/api/posts/{post_id}")

    # Likes

    async def like_post(self, post_id: str) -> dict:
        return await self.transport.request("POST", f"/api/posts/{post_id}/likes")

    async def unlike_post(self, post_id: str) -> dict:
        return await self.transport.request("DELETE", f"/api/posts/{post_id}/likes")

    # Comments

    async def add_comment(self, post_id: str, text: str) -> dict:
        response = await self.transport.request(
            "POST", f"/api/posts/{post_id}/comments", json_body={"text": text}
        )
        return _field(response, "comment")

    async def update_comment(self, comment_id: str, text: str) -> dict:
        response = await self.transport.request(
            "PATCH", f"/api/comments/{comment_id}", json_body={"text": text}
        )
        return _field(response, "comment")

    async def delete_comment(self, comment_id: str) -> None:
        await self.transport.request("DELETE", f"/api/comments/{comment_id}")

    # Storage

    async def request_upload_url(
        self,
        file_name: str,
        file_type: str,
        file_size: int,
        purpose: StoragePurpose = StoragePurpose.POST,
    ) -> dict:
        """Ask the storage layer for a signed upload target."""
        return await self.transport.request(
            "POST",
            "/api/storage/upload-url",
            json_body={
                "file_name": file_name,
                "file_type": file_type,
                "file_size": file_size,
                "purpose": purpose.value,
            },
        )

    async def put_object(self, upload_url: str, data: bytes, content_type: Optional[str]) -> None:
        await self.transport.put_object(upload_url, data, content_type)

    # Profiles

    async def get_my_profile(self) -> dict:
        response = await self.transport.request("GET", "/api/profiles/me")
        return _field(response, "profile")

    async def update_my_profile(self, fields: dict) -> dict:
        response = await self.transport.request("PATCH", "/api/profiles/me", json_body=fields)
        return _field(response, "profile")

    async def bootstrap_profile(self, user_id: str, email: Optional[str], metadata: dict) -> dict:
        response = await self.transport.request(
            "POST",
            "/api/profiles/bootstrap",
            json_body={"id": user_id, "email": email, "metadata": metadata},
        )
        return _field(response, "profile")


def _field(response: Any, key: str) -> Any:
    if isinstance(response, dict):
        return response.get(key)
    return None
