"""
Collections, their members, and the feeds they subscribe to.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from suprss.core.config import settings
from suprss.core.exceptions import FetchError, InvalidOperation, NotAuthorized, NotFound
from suprss.core.logging_config import log_security_event
from suprss.core.timeutil import utcnow
from suprss.models.collection import (
    Collection,
    CollectionFeed,
    CollectionMembership,
    Role,
)
from suprss.models.discussion import Comment, Message
from suprss.models.feed import Feed, FeedStatus
from suprss.models.user import User
from suprss.services.access import AccessGate
from suprss.services.feed_client import FeedSourceClient, ParsedFeed
from suprss.services.ingestor import ArticleIngestor
from suprss.services.normalizer import normalize_items

logger = logging.getLogger(__name__)

PERSONAL_COLLECTION_NAME = "My Feeds"


class CollectionService:
    def __init__(
        self,
        db: Session,
        gate: Optional[AccessGate] = None,
        client: Optional[FeedSourceClient] = None,
    ):
        self.db = db
        self.gate = gate or AccessGate(db)
        self.client = client or FeedSourceClient()

    # Collections

    def list_collections(self, user_id: int) -> List[Tuple[Collection, Role]]:
        memberships = (
            self.db.query(CollectionMembership)
            .filter(CollectionMembership.user_id == user_id)
            .order_by(CollectionMembership.collection_id)
            .all()
        )
        return [(m.collection, m.role_enum) for m in memberships]

    def get_collection(self, user_id: int, collection_id: int) -> Tuple[Collection, Role]:
        membership = self.gate.authorize(user_id, collection_id, Role.READER)
        return membership.collection, membership.role_enum

    def create_collection(self, user_id: int, name: str) -> Collection:
        collection = Collection(name=name, is_shared=False, owner_id=user_id)
        collection.memberships.append(
            CollectionMembership(user_id=user_id, role=Role.OWNER.value)
        )
        self.db.add(collection)
        self.db.commit()
        self.db.refresh(collection)
        logger.info(f"User {user_id} created collection {collection.id}")
        return collection

    def delete_collection(self, user_id: int, collection_id: int):
        """Delete a collection with its discussion, links and memberships. Feeds stay."""
        self.gate.authorize(user_id, collection_id, Role.OWNER)
        collection = self.db.query(Collection).filter(Collection.id == collection_id).first()

        self.db.query(Message).filter(Message.collection_id == collection_id).delete(
            synchronize_session=False
        )
        self.db.query(Comment).filter(Comment.collection_id == collection_id).delete(
            synchronize_session=False
        )
        self.db.delete(collection)
        self.db.commit()

        log_security_event(
            event_type="collection.deleted",
            message=f"User {user_id} deleted collection {collection_id}",
            user_id=user_id,
            collection_id=collection_id,
            event_category="collection",
        )

    def personal_collection(self, user_id: int) -> Collection:
        """First unshared collection the user owns, created when absent."""
        collection = (
            self.db.query(Collection)
            .join(CollectionMembership)
            .filter(
                CollectionMembership.user_id == user_id,
                CollectionMembership.role == Role.OWNER.value,
                Collection.is_shared == False,
            )
            .order_by(Collection.id)
            .first()
        )
        if collection is None:
            collection = self.create_collection(user_id, PERSONAL_COLLECTION_NAME)
        return collection

    # Members

    def list_members(self, user_id: int, collection_id: int) -> List[CollectionMembership]:
        self.gate.authorize(user_id, collection_id, Role.READER)
        return (
            self.db.query(CollectionMembership)
            .filter(CollectionMembership.collection_id == collection_id)
            .order_by(CollectionMembership.joined_at, CollectionMembership.id)
            .all()
        )

    def add_member(
        self,
        user_id: int,
        collection_id: int,
        email: Optional[str] = None,
        target_user_id: Optional[int] = None,
        role=Role.EDITOR,
    ) -> CollectionMembership:
        self.gate.authorize(user_id, collection_id, Role.OWNER)
        role = self._parse_role(role)
        if role == Role.OWNER:
            raise InvalidOperation("A collection has exactly one owner")

        target = self._find_user(email, target_user_id)
        existing = self._membership(target.id, collection_id)
        if existing is not None:
            raise InvalidOperation("User is already a member of this collection")

        membership = CollectionMembership(
            user_id=target.id, collection_id=collection_id, role=role.value
        )
        self.db.add(membership)
        self.db.flush()
        self._recompute_shared(collection_id)
        self.db.commit()
        self.db.refresh(membership)

        log_security_event(
            event_type="membership.added",
            message=f"User {user_id} added user {target.id} as {role.value}",
            user_id=user_id,
            collection_id=collection_id,
            event_category="membership",
            target_user_id=target.id,
        )
        return membership

    def remove_member(self, user_id: int, collection_id: int, target_user_id: int):
        self.gate.authorize(user_id, collection_id, Role.OWNER)
        if target_user_id == user_id:
            raise NotAuthorized("The owner cannot leave their own collection")

        membership = self._membership(target_user_id, collection_id)
        if membership is None:
            raise NotFound("User is not a member of this collection")

        self.db.delete(membership)
        self.db.flush()
        self._recompute_shared(collection_id)
        self.db.commit()

        log_security_event(
            event_type="membership.removed",
            message=f"User {user_id} removed user {target_user_id}",
            user_id=user_id,
            collection_id=collection_id,
            event_category="membership",
            target_user_id=target_user_id,
        )

    def change_role(
        self, user_id: int, collection_id: int, target_user_id: int, role
    ) -> CollectionMembership:
        self.gate.authorize(user_id, collection_id, Role.OWNER)
        role = self._parse_role(role)

        membership = self._membership(target_user_id, collection_id)
        if membership is None:
            raise NotFound("User is not a member of this collection")
        if membership.role_enum == Role.OWNER:
            raise InvalidOperation("The owner's role cannot be changed")
        if role == Role.OWNER:
            raise InvalidOperation("A collection has exactly one owner")

        previous = membership.role
        membership.role = role.value
        self.db.commit()
        self.db.refresh(membership)

        log_security_event(
            event_type="membership.role_changed",
            message=f"User {user_id} changed role of user {target_user_id} "
            f"from {previous} to {role.value}",
            user_id=user_id,
            collection_id=collection_id,
            event_category="membership",
            target_user_id=target_user_id,
        )
        return membership

    # Feeds

    def list_feeds(self, user_id: int, collection_id: int) -> List[Feed]:
        self.gate.authorize(user_id, collection_id, Role.READER)
        return (
            self.db.query(Feed)
            .join(CollectionFeed, CollectionFeed.feed_id == Feed.id)
            .filter(CollectionFeed.collection_id == collection_id)
            .order_by(Feed.title, Feed.id)
            .all()
        )

    def reachable_feeds(self, user_id: int) -> List[Feed]:
        """Every feed linked to any of the user's collections, once each."""
        feed_ids = self.gate.reachable_feed_ids(user_id)
        if not feed_ids:
            return []
        return (
            self.db.query(Feed)
            .filter(Feed.id.in_(feed_ids))
            .order_by(Feed.title, Feed.id)
            .all()
        )

    def reachable_labels(self, user_id: int) -> Dict[str, List[str]]:
        """Distinct tags and categories over the user's reachable feeds, sorted."""
        tags, categories = set(), set()
        for feed in self.reachable_feeds(user_id):
            tags.update(feed.tags or [])
            categories.update(feed.categories or [])
        return {"tags": sorted(tags), "categories": sorted(categories)}

    async def add_feed(
        self,
        user_id: int,
        collection_id: int,
        url: str,
        tags: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        fetch: bool = True,
    ) -> Feed:
        """Subscribe a collection to a feed URL.

        A known URL reuses the stored feed, replacing its tags and categories
        when given. An unknown URL is fetched once, best effort, before
        anything is written; when that fetch fails (or ``fetch`` is False)
        the feed is stored with its URL as title and the next poll picks it
        up. A concurrent subscription to the same new URL reuses the feed
        stored by the other request.
        """
        self.gate.authorize(user_id, collection_id, Role.EDITOR)

        feed = self._feed_by_url(url)
        parsed = None
        if feed is None:
            if fetch:
                parsed = await self._initial_fetch(url)
            feed = self._create_feed(url, tags, categories)

        if tags is not None:
            feed.tags = tags
        if categories is not None:
            feed.categories = categories
        if parsed is not None and feed.last_fetched is None:
            self._store_initial(feed, parsed)

        self._link_feed(collection_id, feed.id)
        self.db.commit()
        self.db.refresh(feed)
        return feed

    def remove_feed(self, user_id: int, collection_id: int, feed_id: int):
        """Unlink a feed from the collection; the feed and its articles remain."""
        self.gate.authorize_feed_in_collection(user_id, collection_id, feed_id, Role.EDITOR)
        self.db.query(CollectionFeed).filter(
            CollectionFeed.collection_id == collection_id,
            CollectionFeed.feed_id == feed_id,
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Feed {feed_id} unlinked from collection {collection_id}")

    def update_feed(
        self,
        user_id: int,
        collection_id: int,
        feed_id: int,
        title: Optional[str] = None,
        tags: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        status: Optional[str] = None,
        update_interval: Optional[int] = None,
    ) -> Feed:
        feed = self.gate.authorize_feed_in_collection(
            user_id, collection_id, feed_id, Role.EDITOR
        )

        if title is not None:
            feed.title = title
        if tags is not None:
            feed.tags = tags
        if categories is not None:
            feed.categories = categories
        if status is not None:
            if status not in FeedStatus.ALL:
                raise InvalidOperation(f"Unknown feed status: {status}")
            feed.status = status
        if update_interval is not None:
            feed.update_interval = update_interval

        self.db.commit()
        self.db.refresh(feed)
        return feed

    def feeds_to_refresh(self, user_id: int, collection_id: int) -> List[Feed]:
        """Active feeds of a collection, for an on-demand refresh by an editor."""
        self.gate.authorize(user_id, collection_id, Role.EDITOR)
        return (
            self.db.query(Feed)
            .join(CollectionFeed, CollectionFeed.feed_id == Feed.id)
            .filter(
                CollectionFeed.collection_id == collection_id,
                Feed.status == FeedStatus.ACTIVE,
            )
            .all()
        )

    async def _initial_fetch(self, url: str) -> Optional[ParsedFeed]:
        # No transaction stays open while waiting on the network
        self.db.commit()
        try:
            return await self.client.fetch(url)
        except FetchError as e:
            logger.warning(f"Initial fetch of {url} failed ({e.reason}): {e.detail}")
            return None

    def _store_initial(self, feed: Feed, parsed: ParsedFeed):
        if parsed.title:
            feed.title = parsed.title
        if parsed.description:
            feed.description = parsed.description

        ingestor = ArticleIngestor(self.db)
        ingestor.ingest(feed, normalize_items(parsed.items))
        ingestor.mark_fetched(feed, utcnow())

    def _feed_by_url(self, url: str) -> Optional[Feed]:
        return self.db.query(Feed).filter(Feed.url == url).first()

    def _create_feed(
        self, url: str, tags: Optional[List[str]], categories: Optional[List[str]]
    ) -> Feed:
        feed = Feed(
            url=url,
            title=url,
            description="",
            tags=tags or [],
            categories=categories or [],
            status=FeedStatus.ACTIVE,
            update_interval=settings.DEFAULT_UPDATE_INTERVAL,
        )
        try:
            with self.db.begin_nested():
                self.db.add(feed)
        except IntegrityError:
            logger.info(f"Feed {url} was stored concurrently, reusing it")
            return self._feed_by_url(url)
        return feed

    def _link_feed(self, collection_id: int, feed_id: int):
        link = (
            self.db.query(CollectionFeed)
            .filter(
                CollectionFeed.collection_id == collection_id,
                CollectionFeed.feed_id == feed_id,
            )
            .first()
        )
        if link is not None:
            return
        try:
            with self.db.begin_nested():
                self.db.add(CollectionFeed(collection_id=collection_id, feed_id=feed_id))
        except IntegrityError:
            logger.debug(f"Feed {feed_id} already linked to collection {collection_id}")

    # Helpers

    def _membership(self, user_id: int, collection_id: int) -> Optional[CollectionMembership]:
        return (
            self.db.query(CollectionMembership)
            .filter(
                CollectionMembership.user_id == user_id,
                CollectionMembership.collection_id == collection_id,
            )
            .first()
        )

    def _find_user(self, email: Optional[str], user_id: Optional[int]) -> User:
        query = self.db.query(User)
        if user_id is not None:
            user = query.filter(User.id == user_id).first()
        else:
            user = query.filter(User.email == email).first()
        if user is None:
            raise NotFound("User not found")
        return user

    def _recompute_shared(self, collection_id: int):
        count = (
            self.db.query(CollectionMembership)
            .filter(CollectionMembership.collection_id == collection_id)
            .count()
        )
        collection = self.db.query(Collection).filter(Collection.id == collection_id).first()
        collection.is_shared = count > 1

    @staticmethod
    def _parse_role(role) -> Role:
        try:
            return Role.parse(role)
        except ValueError:
            raise InvalidOperation(f"Unknown role: {role}")

