"""Shared fixtures: a fake backend wired through the real transport stack."""

import pytest

from fakes import FakeBackend, StaticIdentityProvider, viewer_identity
from feedsync.core.api import FeedApi
from feedsync.core.attachments import AttachmentPipeline
from feedsync.core.feed_store import FeedStore
from feedsync.core.session import Session
from feedsync.core.transport import Transport


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session() -> Session:
    """A session already resolved to the viewer."""
    session = Session(identity_provider=StaticIdentityProvider(viewer_identity()))
    session.identity = viewer_identity()
    session.is_resolving = False
    return session


@pytest.fixture
def transport(backend, session) -> Transport:
    return Transport(token_provider=lambda: session.access_token, client=backend.make_client())


@pytest.fixture
def api(transport, session) -> FeedApi:
    api = FeedApi(transport)
    session.api = api
    return api


@pytest.fixture
def pipeline(api) -> AttachmentPipeline:
    return AttachmentPipeline(api)


@pytest.fixture
def store(api, session, pipeline) -> FeedStore:
    return FeedStore(api, session, pipeline)
