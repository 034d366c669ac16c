"""In-memory stand-in for the feed backend and storage, served via httpx.MockTransport."""

import asyncio
import copy
import itertools
import json
import re
from typing import Dict, List, Optional, Tuple

import httpx

from feedsync.models.data_models import Identity

VIEWER = "user-a"
OTHER = "user-b"
TOKENS = {"token-a": VIEWER, "token-b": OTHER}
CREATED_AT = "2024-05-01T12:00:00Z"

PROFILES = {
    VIEWER: {"id": VIEWER, "username": "alice", "display_name": "Alice", "avatar_url": None, "is_verified": False},
    OTHER: {"id": OTHER, "username": "bob", "display_name": "Bob", "avatar_url": None, "is_verified": True},
}

API_BASE = "http://api.test"
STORAGE_HOST = "storage.test"


def make_raw_post(post_id: str, user_id: str = VIEWER, content: Optional[str] = "hi", **extra) -> dict:
    post = {
        "id": post_id,
        "user_id": user_id,
        "content": content,
        "visibility": "public",
        "edited": False,
        "created_at": CREATED_AT,
        "updated_at": CREATED_AT,
        "profiles": dict(PROFILES[user_id]),
        "post_media": [],
        "likes": [],
        "comments": [],
    }
    post.update(extra)
    return post


def make_like(like_id: str, user_id: str) -> dict:
    return {"id": like_id, "user_id": user_id, "reaction_type": "like", "created_at": CREATED_AT}


def viewer_identity() -> Identity:
    return Identity(user_id=VIEWER, access_token="token-a", email="alice@example.com")


class StaticIdentityProvider:
    """Identity provider that always answers with the same identity."""

    def __init__(self, identity: Optional[Identity]):
        self.identity = identity
        self.saved: List[Identity] = []
        self.cleared = 0

    async def get_identity(self) -> Optional[Identity]:
        return self.identity

    def save(self, identity: Identity) -> None:
        self.saved.append(identity)

    def clear(self) -> None:
        self.cleared += 1


class FakeBackend:
    """
    Serves the feed REST contract from memory.

    State changes happen as soon as a request arrives, in arrival order; a
    held request only delays delivery of its already computed response.
    """

    def __init__(self):
        self.posts: List[dict] = []
        self.profile = {**PROFILES[VIEWER], "bio": "", "cover_url": None}
        self.profile_exists = True
        self.requests: List[httpx.Request] = []
        self.uploads: Dict[str, bytes] = {}
        self.upload_requests: List[dict] = []
        self._failures: Dict[Tuple[str, str], Tuple[int, object]] = {}
        self._holds: Dict[Tuple[str, str], List[asyncio.Event]] = {}
        self._ids = itertools.count(1)

    # Test controls

    def fail(self, method: str, path: str, status: int = 500, body: object = None) -> None:
        self._failures[(method, path)] = (status, {"error": "boom"} if body is None else body)

    def respond(self, method: str, path: str, body: object, status: int = 200) -> None:
        """Answer matching requests with a canned body instead of routing them."""
        self._failures[(method, path)] = (status, body)

    def recover(self, method: str, path: str) -> None:
        self._failures.pop((method, path), None)

    def hold_next(self, method: str, path: str) -> asyncio.Event:
        """Delay the response to the next matching request until the event is set."""
        event = asyncio.Event()
        self._holds.setdefault((method, path), []).append(event)
        return event

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url=API_BASE)

    def find_post(self, post_id: str) -> Optional[dict]:
        return next((p for p in self.posts if p["id"] == post_id), None)

    # Transport handler

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        if key in self._failures:
            status, body = self._failures[key]
            if isinstance(body, dict):
                response = httpx.Response(status, json=body)
            else:
                response = httpx.Response(status, text=str(body))
        else:
            response = self._route(request)

        holds = self._holds.get(key)
        if holds:
            await holds.pop(0).wait()
        return response

    def _route(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if request.url.host == STORAGE_HOST:
            if request.method == "PUT":
                self.uploads[path] = request.content
                return httpx.Response(200)
            return httpx.Response(405)

        auth = request.headers.get("Authorization", "")
        viewer = TOKENS.get(auth.removeprefix("Bearer "))
        if viewer is None:
            return httpx.Response(401, json={"error": "Authorization header is required"})

        body = json.loads(request.content) if request.content else {}

        if path == "/api/posts":
            if request.method == "GET":
                limit = int(request.url.params.get("limit", "20"))
                return _ok({"posts": copy.deepcopy(self.posts[:limit])})
            if request.method == "POST":
                post = make_raw_post(
                    f"post-{next(self._ids)}",
                    user_id=viewer,
                    content=body.get("content") or None,
                    visibility=body.get("visibility", "public"),
                    post_media=[
                        {"id": f"media-{next(self._ids)}", "created_at": CREATED_AT, **item}
                        for item in body.get("media", [])
                    ],
                )
                self.posts.insert(0, post)
                return _ok({"post": copy.deepcopy(post)})

        match = re.fullmatch(r"/api/posts/([^/]+)(/likes|/comments)?", path)
        if match:
            post = self.find_post(match.group(1))
            if post is None:
                return httpx.Response(404, json={"error": "Post not found"})
            sub = match.group(2)

            if sub == "/likes":
                if request.method == "POST" and not any(l["user_id"] == viewer for l in post["likes"]):
                    post["likes"].append(make_like(f"like-{next(self._ids)}", viewer))
                elif request.method == "DELETE":
                    post["likes"] = [l for l in post["likes"] if l["user_id"] != viewer]
                return _ok({
                    "likes_count": len(post["likes"]),
                    "has_liked": any(l["user_id"] == viewer for l in post["likes"]),
                    "likes": copy.deepcopy(post["likes"]),
                })

            if sub == "/comments" and request.method == "POST":
                comment = {
                    "id": f"comment-{next(self._ids)}",
                    "post_id": post["id"],
                    "user_id": viewer,
                    "text": body["text"],
                    "parent_id": None,
                    "created_at": CREATED_AT,
                    "profiles": dict(PROFILES[viewer]),
                }
                post["comments"].append(comment)
                return _ok({"comment": copy.deepcopy(comment)})

            if request.method == "PATCH":
                for field in ("content", "visibility"):
                    if field in body:
                        post[field] = body[field]
                post["edited"] = True
                return _ok({"post": copy.deepcopy(post)})

            if request.method == "DELETE":
                self.posts.remove(post)
                return _ok({"success": True})

        match = re.fullmatch(r"/api/comments/([^/]+)", path)
        if match:
            for post in self.posts:
                for comment in post["comments"]:
                    if comment["id"] != match.group(1):
                        continue
                    if request.method == "PATCH":
                        comment["text"] = body["text"]
                        return _ok({"comment": copy.deepcopy(comment)})
                    post["comments"].remove(comment)
                    return _ok({"success": True})
            return httpx.Response(404, json={"error": "Comment not found"})

        if path == "/api/storage/upload-url":
            self.upload_requests.append(body)
            name = body["file_name"]
            return _ok({
                "upload_url": f"https://{STORAGE_HOST}/upload/{name}",
                "public_url": f"https://{STORAGE_HOST}/public/{name}",
                "bucket": "public",
                "file_url": f"https://{STORAGE_HOST}/public/{name}",
            })

        if path == "/api/profiles/me":
            if not self.profile_exists:
                return httpx.Response(404, json={"error": "Profile not found"})
            if request.method == "PATCH":
                self.profile.update(body)
            return _ok({"profile": dict(self.profile)})

        if path == "/api/profiles/bootstrap":
            self.profile_exists = True
            return _ok({"profile": dict(self.profile)})

        return httpx.Response(404, json={"error": f"No route for {request.method} {path}"})


def _ok(payload: dict) -> httpx.Response:
    return httpx.Response(200, json=payload)
