"""Explicit session object: resolved identity, profile and listeners."""

from typing import Awaitable, Callable, List, Optional

from feedsync.core.api import FeedApi
from feedsync.core.exceptions import ApiError, FeedSyncError
from feedsync.core.normalizer import normalize_profile
from feedsync.models.data_models import Identity, Profile
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)

SessionListener = Callable[["Session"], Awaitable[None]]


class Session:
    """
    Authentication state shared by the feed store and the session gate.

    The identity itself comes from an external identity provider: any object
    with an async ``get_identity()`` returning an Identity or None. Providers
    that also expose ``save(identity)`` and ``clear()`` are kept in sync on
    sign-in and sign-out.
    """

    def __init__(self, identity_provider=None, api: Optional[FeedApi] = None):
        self.identity_provider = identity_provider
        self.api = api
        self.identity: Optional[Identity] = None
        self.profile: Optional[Profile] = None
        self.is_resolving = True
        self.refreshing_profile = False
        self._listeners: List[SessionListener] = []

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    @property
    def access_token(self) -> Optional[str]:
        return self.identity.access_token if self.identity else None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a coroutine called after every session change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            await listener(self)

    async def resolve(self) -> Optional[Identity]:
        """
        Ask the identity provider who is signed in, then load the profile.

        Provider failures are logged and resolve to a signed-out session.
        """
        self.is_resolving = True
        identity = None

        if self.identity_provider is not None:
            try:
                identity = await self.identity_provider.get_identity()
            except (FeedSyncError, OSError) as e:
                logger.error(f"Failed to resolve session: {e}")

        self.identity = identity
        if identity is not None:
            await self._load_profile()
        else:
            self.profile = None

        self.is_resolving = False
        logger.info(f"Session resolved: {'signed in as ' + identity.user_id if identity else 'signed out'}")
        await self._notify()
        return identity

    async def sign_in(self, identity: Identity) -> None:
        self.identity = identity
        self.is_resolving = False
        save = getattr(self.identity_provider, "save", None)
        if save is not None:
            save(identity)
        await self._load_profile()
        await self._notify()

    async def sign_out(self) -> None:
        self.identity = None
        self.profile = None
        self.is_resolving = False
        clear = getattr(self.identity_provider, "clear", None)
        if clear is not None:
            clear()
        logger.info("Signed out")
        await self._notify()

    async def refresh_profile(self) -> None:
        if self.identity is None:
            return
        await self._load_profile()

    async def _load_profile(self) -> None:
        if self.api is None or self.identity is None:
            return

        self.refreshing_profile = True
        try:
            try:
                raw = await self.api.get_my_profile()
            except ApiError as e:
                if e.status_code != 404:
                    raise
                # First sign-in: create the profile row, then read it back
                logger.info(f"No profile for {self.identity.user_id}, bootstrapping")
                await self.api.bootstrap_profile(
                    self.identity.user_id,
                    self.identity.email,
                    self.identity.metadata,
                )
                raw = await self.api.get_my_profile()
            self.profile = normalize_profile(raw)
        except FeedSyncError as e:
            logger.error(f"Failed to load profile: {e}")
        finally:
            self.refreshing_profile = False
