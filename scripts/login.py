#!/usr/bin/env python3
"""
Save an access token for FeedSync.

Sign in through the identity provider, paste the access token here, and
FeedSync will reuse it until you sign out. The token is stored encrypted.
"""

import asyncio
import getpass
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from feedsync.core.api import FeedApi
from feedsync.core.session import Session
from feedsync.core.session_store import SessionStore
from feedsync.core.transport import Transport
from feedsync.models.data_models import Identity
from feedsync.utils.logging import setup_logging


async def login(user_id: str, token: str, email: str) -> bool:
    store = SessionStore()
    session = Session(identity_provider=store)

    async with Transport(token_provider=lambda: session.access_token) as transport:
        session.api = FeedApi(transport)
        await session.sign_in(Identity(user_id=user_id, access_token=token, email=email or None))

    if session.profile is None:
        print("\n❌ Token saved, but the profile could not be loaded. Check the token and backend URL.")
        return False

    print(f"\n✅ Signed in as @{session.profile.username} ({session.profile.display_name})")
    print(f"📁 Session saved to: {store.session_file}\n")
    return True


def main():
    print("\n" + "=" * 60)
    print("FeedSync - Login")
    print("=" * 60 + "\n")

    user_id = input("User id: ").strip()
    if not user_id:
        print("❌ User id required")
        sys.exit(1)

    email = input("Email (optional): ").strip()

    token = getpass.getpass("Access token: ").strip()
    if not token:
        print("❌ Access token required")
        sys.exit(1)

    setup_logging()
    if not asyncio.run(login(user_id, token, email)):
        sys.exit(1)


if __name__ == "__main__":
    main()
