"""Gates feed access on session resolution."""

from typing import Callable, Optional, Tuple

from feedsync.core.feed_store import FeedStore
from feedsync.core.session import Session
from feedsync.models.data_models import Identity
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)

LOGIN_PATH = "/login"


class SessionGate:
    """
    Keeps the feed closed while the session resolves.

    Acts only on transitions of (resolved, identity present): resolving to
    signed-out redirects to the login path, resolving to signed-in triggers
    one feed load. A repeated notification with the same pair does nothing,
    even if the identity object was replaced.
    """

    def __init__(
        self,
        session: Session,
        store: FeedStore,
        redirect: Callable[[str], None],
    ):
        self.session = session
        self.store = store
        self.redirect = redirect
        self._last_state: Optional[Tuple[bool, bool]] = None
        self._unsubscribe = session.subscribe(self._on_session_change)

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.identity

    @property
    def is_resolving(self) -> bool:
        return self.session.is_resolving

    @property
    def can_render(self) -> bool:
        return not self.is_resolving and self.identity is not None

    async def _on_session_change(self, session: Session) -> None:
        await self.evaluate()

    async def evaluate(self) -> None:
        """Apply the gate to the current session state."""
        state = (not self.session.is_resolving, self.session.identity is not None)
        if state == self._last_state:
            return
        self._last_state = state

        resolved, signed_in = state
        if not resolved:
            return

        if not signed_in:
            logger.info(f"No session, redirecting to {LOGIN_PATH}")
            self.redirect(LOGIN_PATH)
            return

        await self.store.load()

    def close(self) -> None:
        self._unsubscribe()
