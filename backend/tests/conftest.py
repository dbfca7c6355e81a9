"""
Pytest configuration and fixtures for SUPRSS tests.
"""

import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("POSTGRES_PASSWORD", "test_password")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite:///:memory:")
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("COOKIE_SECURE", "false")

import pytest
from datetime import datetime, timedelta
from typing import Generator
from unittest.mock import AsyncMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from suprss.core.database import Base, get_db
from suprss.core.auth import create_access_token
from suprss.models import (
    Article,
    Collection,
    CollectionFeed,
    CollectionMembership,
    Feed,
    Role,
    User,
)
from suprss.services.feed_client import FeedSourceClient
from suprss.services.scheduler import FeedPollScheduler


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

FIXED_NOW = datetime(2024, 1, 10, 12, 0, 0)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory bound to the test engine, as the scheduler expects."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_client():
    """FeedSourceClient whose network call is replaced, parsing stays real."""
    client = FeedSourceClient(timeout=5)
    client.fetch = AsyncMock()
    return client


@pytest.fixture
def poller(session_factory, fake_client):
    """A scheduler wired to the test database and a fake client, never started."""
    return FeedPollScheduler(
        session_factory=session_factory,
        client=fake_client,
        clock=lambda: FIXED_NOW,
        max_concurrent=2,
    )


@pytest.fixture(scope="function")
def test_app(db_session, poller):
    """Create a FastAPI test app without lifespan events."""
    from fastapi import FastAPI
    from suprss.api.dependencies import get_poller
    from suprss.api.endpoints import articles, collections, comments, feeds
    from suprss.api.handlers import register_exception_handlers

    # Create app without lifespan to avoid starting the scheduler
    test_app = FastAPI(title="SUPRSS - Test", version="1.0.0")
    register_exception_handlers(test_app)

    test_app.include_router(
        collections.router, prefix="/api/collections", tags=["collections"]
    )
    test_app.include_router(feeds.router, prefix="/api/feeds", tags=["feeds"])
    test_app.include_router(articles.router, prefix="/api/articles", tags=["articles"])
    test_app.include_router(comments.router, prefix="/api/comments", tags=["comments"])

    @test_app.get("/health")
    def health():
        return {"status": "ok"}

    # Override database dependency
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_poller] = lambda: poller

    return test_app


@pytest.fixture(scope="function")
def client(test_app) -> TestClient:
    """Create a test client without entering context manager."""
    return TestClient(test_app, raise_server_exceptions=False)


def _make_user(db_session, email, name) -> User:
    user = User(email=email, name=name, is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def test_user(db_session) -> User:
    """Owner of the default test collection."""
    return _make_user(db_session, "owner@example.com", "Olivia Owner")


@pytest.fixture(scope="function")
def other_user(db_session) -> User:
    """A user with no memberships unless a test adds one."""
    return _make_user(db_session, "other@example.com", "Oscar Other")


@pytest.fixture(scope="function")
def auth_headers(test_user) -> dict:
    """Create authentication headers for test requests."""
    return {"Authorization": f"Bearer {create_access_token(test_user.id)}"}


@pytest.fixture(scope="function")
def authenticated_client(client, test_user) -> TestClient:
    """Create an authenticated test client."""
    client.cookies.set("auth_token", create_access_token(test_user.id))
    return client


def token_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def headers_for():
    """Build bearer headers for any user."""
    return token_headers


@pytest.fixture(scope="function")
def test_collection(db_session, test_user) -> Collection:
    """A collection owned by test_user."""
    collection = Collection(name="Tech", is_shared=False, owner_id=test_user.id)
    collection.memberships.append(
        CollectionMembership(user_id=test_user.id, role=Role.OWNER.value)
    )
    db_session.add(collection)
    db_session.commit()
    db_session.refresh(collection)
    return collection


def add_membership(db_session, collection, user, role: Role):
    membership = CollectionMembership(
        user_id=user.id, collection_id=collection.id, role=role.value
    )
    db_session.add(membership)
    collection.is_shared = True
    db_session.commit()
    return membership


def link_feed(db_session, collection, feed):
    db_session.add(CollectionFeed(collection_id=collection.id, feed_id=feed.id))
    db_session.commit()


@pytest.fixture(scope="function")
def test_feed(db_session, test_collection) -> Feed:
    """A feed linked to test_collection."""
    feed = Feed(
        url="https://example.com/feed.xml",
        title="Example Feed",
        description="A test feed",
        tags=["tech", "news"],
        categories=["Technology"],
        update_interval=60,
    )
    db_session.add(feed)
    db_session.commit()
    db_session.refresh(feed)
    link_feed(db_session, test_collection, feed)
    return feed


@pytest.fixture(scope="function")
def second_feed(db_session, test_collection) -> Feed:
    """Another feed linked to test_collection."""
    feed = Feed(
        url="https://blog.example.org/atom.xml",
        title="Example Blog",
        description="",
        tags=["blog"],
        categories=[],
        update_interval=30,
    )
    db_session.add(feed)
    db_session.commit()
    db_session.refresh(feed)
    link_feed(db_session, test_collection, feed)
    return feed


@pytest.fixture(scope="function")
def multiple_articles(db_session, test_feed) -> list:
    """Five articles on test_feed, one hour apart, newest first."""
    articles = []
    for i in range(5):
        article = Article(
            feed_id=test_feed.id,
            natural_key=f"https://example.com/article-{i+1}",
            title=f"Test Article {i+1}",
            link=f"https://example.com/article-{i+1}",
            author="Test Author",
            content=f"Content for article {i+1}",
            published_date=FIXED_NOW - timedelta(hours=i),
        )
        db_session.add(article)
        articles.append(article)

    db_session.commit()
    for article in articles:
        db_session.refresh(article)

    return articles


@pytest.fixture(scope="function")
def test_article(multiple_articles) -> Article:
    return multiple_articles[0]


@pytest.fixture
def mock_rss_feed_data():
    """RSS document with three guid items and two link-only items."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Test Feed</title>
        <link>https://example.com</link>
        <description>A test RSS feed</description>
        <item>
            <title>Test Article 1</title>
            <guid isPermaLink="false">urn:example:1</guid>
            <link>https://example.com/article1</link>
            <description>&lt;p&gt;Description of &lt;b&gt;article 1&lt;/b&gt;&lt;/p&gt;</description>
            <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
            <author>writer@example.com (Test Author)</author>
        </item>
        <item>
            <title>Test Article 2</title>
            <guid isPermaLink="false">urn:example:2</guid>
            <link>https://example.com/article2</link>
            <description>Description of article 2</description>
            <pubDate>Tue, 02 Jan 2024 12:00:00 GMT</pubDate>
        </item>
        <item>
            <title>Test Article 3</title>
            <guid isPermaLink="false">urn:example:3</guid>
            <link>https://example.com/article3</link>
            <description>Description of article 3</description>
            <pubDate>Wed, 03 Jan 2024 12:00:00 GMT</pubDate>
        </item>
        <item>
            <title>Link Only 4</title>
            <link>https://example.com/article4</link>
            <description>Description of article 4</description>
            <pubDate>Thu, 04 Jan 2024 12:00:00 GMT</pubDate>
        </item>
        <item>
            <title>Link Only 5</title>
            <link>https://example.com/article5</link>
            <description>Description of article 5</description>
        </item>
    </channel>
</rss>
"""


@pytest.fixture
def parsed_rss(fake_client, mock_rss_feed_data):
    """mock_rss_feed_data run through the real parser."""
    return fake_client.parse_document("https://example.com/feed.xml", mock_rss_feed_data)


@pytest.fixture(scope="function")
def reader_user(db_session, test_collection) -> User:
    """READER member of test_collection."""
    user = _make_user(db_session, "reader@example.com", "Rita Reader")
    add_membership(db_session, test_collection, user, Role.READER)
    return user


@pytest.fixture(scope="function")
def editor_user(db_session, test_collection) -> User:
    """EDITOR member of test_collection."""
    user = _make_user(db_session, "editor@example.com", "Eddie Editor")
    add_membership(db_session, test_collection, user, Role.EDITOR)
    return user


@pytest.fixture(scope="function")
def other_collection(db_session, other_user) -> Collection:
    """A collection owned by other_user with one feed test_user cannot reach."""
    collection = Collection(name="Private", is_shared=False, owner_id=other_user.id)
    collection.memberships.append(
        CollectionMembership(user_id=other_user.id, role=Role.OWNER.value)
    )
    db_session.add(collection)
    db_session.commit()

    feed = Feed(url="https://private.example.net/rss", title="Private Feed", tags=["tech"])
    db_session.add(feed)
    db_session.commit()
    link_feed(db_session, collection, feed)

    db_session.add(
        Article(
            feed_id=feed.id,
            natural_key="urn:private:1",
            title="Secret tech article",
            link="https://private.example.net/1",
            content="Only for the private collection",
            published_date=FIXED_NOW,
        )
    )
    db_session.commit()
    db_session.refresh(collection)
    return collection
