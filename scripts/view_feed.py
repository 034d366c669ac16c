#!/usr/bin/env python3
"""
View the FeedSync feed, optionally publishing a post first.

Usage:
    python scripts/view_feed.py
    python scripts/view_feed.py --post "hello" --attach photo.jpg
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from feedsync.core.api import FeedApi
from feedsync.core.attachments import AttachmentPipeline
from feedsync.core.feed_store import FeedStore
from feedsync.core.session import Session
from feedsync.core.session_gate import SessionGate
from feedsync.core.session_store import SessionStore
from feedsync.core.transport import Transport
from feedsync.models.data_models import LocalFile, Post
from feedsync.utils.logging import setup_logging


def format_post(post: Post) -> str:
    author = post.author.username if post.author else post.user_id
    when = post.created_at.strftime("%Y-%m-%d %H:%M") if post.created_at else "?"
    lines = [f"@{author}  {when}  [{post.visibility.value}]{'  (edited)' if post.edited else ''}"]
    if post.content:
        lines.append(f"   {post.content}")
    for media in post.media:
        lines.append(f"   📎 {media.file_url}")
    heart = "❤️ " if post.has_liked else "🤍"
    lines.append(f"   {heart} {post.likes_count}   💬 {post.comments_count}")
    return "\n".join(lines)


async def run(text: str, visibility: str, files: list) -> int:
    redirected = []
    session = Session(identity_provider=SessionStore())

    async with Transport(token_provider=lambda: session.access_token) as transport:
        api = FeedApi(transport)
        session.api = api
        store = FeedStore(api, session, AttachmentPipeline(api))
        gate = SessionGate(session, store, redirect=redirected.append)

        await session.resolve()
        if redirected:
            print("🔒 Not signed in. Run scripts/login.py first.")
            return 1

        if text or files:
            store.set_draft_text(text or "")
            store.set_visibility(visibility)
            for path in files:
                store.pipeline.begin_upload(LocalFile.from_path(Path(path)))
            if store.pipeline.has_pending:
                print(f"⏳ Uploading {len(files)} file(s)...")
                await store.pipeline.drain()

            for attachment in store.attachments:
                if attachment.error:
                    print(f"❌ {attachment.file.name}: {attachment.error}")

            if await store.publish() is None:
                print(f"❌ {store.composer.error}")
                return 1
            print("✅ Published\n")

        if store.fetch_error:
            print(f"❌ {store.fetch_error}")
            return 1

        if not store.posts:
            print("📭 Feed is empty")
        for post in store.posts:
            print(format_post(post))
            print()

        gate.close()
    return 0


def main():
    parser = argparse.ArgumentParser(description="View the FeedSync feed")
    parser.add_argument("--post", help="Text to publish before listing")
    parser.add_argument("--visibility", default="public", choices=["public", "friends", "private"])
    parser.add_argument("--attach", action="append", default=[], help="File to attach (repeatable)")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(run(args.post, args.visibility, args.attach)))


if __name__ == "__main__":
    main()
