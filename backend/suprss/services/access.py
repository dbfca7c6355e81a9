"""
Access control for everything scoped to a collection.

Every read or write of collection data goes through ``AccessGate``. Roles
form one lattice, READER < EDITOR < OWNER, and a check passes when the
caller's role is the required one or above. Membership is always re-derived
from storage; a caller-supplied collection id is never trusted on its own.
"""

import logging
from typing import List, Set

from sqlalchemy.orm import Session

from suprss.core.exceptions import NotAuthorized, NotFound
from suprss.core.logging_config import log_security_event
from suprss.models.article import Article
from suprss.models.collection import (
    Collection,
    CollectionFeed,
    CollectionMembership,
    Role,
)
from suprss.models.feed import Feed

logger = logging.getLogger(__name__)


class AccessGate:
    def __init__(self, db: Session):
        self.db = db

    def authorize(
        self,
        user_id: int,
        collection_id: int,
        required_role: Role = Role.READER,
    ) -> CollectionMembership:
        """Return the caller's membership if it satisfies ``required_role``.

        Raises:
            NotFound: the collection does not exist.
            NotAuthorized: no membership, or the role is below ``required_role``.
        """
        membership = (
            self.db.query(CollectionMembership)
            .filter(
                CollectionMembership.user_id == user_id,
                CollectionMembership.collection_id == collection_id,
            )
            .first()
        )

        if membership is None:
            exists = (
                self.db.query(Collection.id)
                .filter(Collection.id == collection_id)
                .first()
            )
            if exists is None:
                raise NotFound("Collection not found")
            self._deny(user_id, collection_id, "not a member", required_role)

        if not membership.role_enum.satisfies(required_role):
            self._deny(
                user_id,
                collection_id,
                f"role {membership.role} below {required_role.value}",
                required_role,
            )

        return membership

    def collection_ids_for(self, user_id: int) -> List[int]:
        rows = (
            self.db.query(CollectionMembership.collection_id)
            .filter(CollectionMembership.user_id == user_id)
            .all()
        )
        return [row[0] for row in rows]

    def reachable_feed_ids(self, user_id: int) -> Set[int]:
        """Feeds linked to any collection the user belongs to."""
        rows = (
            self.db.query(CollectionFeed.feed_id)
            .join(
                CollectionMembership,
                CollectionMembership.collection_id == CollectionFeed.collection_id,
            )
            .filter(CollectionMembership.user_id == user_id)
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    def can_reach_feed(self, user_id: int, feed_id: int) -> bool:
        link = (
            self.db.query(CollectionFeed.feed_id)
            .join(
                CollectionMembership,
                CollectionMembership.collection_id == CollectionFeed.collection_id,
            )
            .filter(
                CollectionMembership.user_id == user_id,
                CollectionFeed.feed_id == feed_id,
            )
            .first()
        )
        return link is not None

    def authorize_article(self, user_id: int, article_id: int) -> Article:
        """Return the article if some membership of the user reaches its feed."""
        article = self.db.query(Article).filter(Article.id == article_id).first()
        if article is None:
            raise NotFound("Article not found")

        if not self.can_reach_feed(user_id, article.feed_id):
            self._deny(user_id, None, f"article {article_id} not reachable")

        return article

    def authorize_feed_in_collection(
        self,
        user_id: int,
        collection_id: int,
        feed_id: int,
        required_role: Role = Role.READER,
    ) -> Feed:
        """Authorize against the collection, then check the feed is linked to it."""
        self.authorize(user_id, collection_id, required_role)

        feed = self.db.query(Feed).filter(Feed.id == feed_id).first()
        if feed is None:
            raise NotFound("Feed not found")

        link = (
            self.db.query(CollectionFeed)
            .filter(
                CollectionFeed.collection_id == collection_id,
                CollectionFeed.feed_id == feed_id,
            )
            .first()
        )
        if link is None:
            raise NotFound("Feed is not part of this collection")
        return feed

    def _deny(self, user_id, collection_id, reason, required_role=None):
        log_security_event(
            event_type="access.denied",
            message=f"User {user_id} denied: {reason}",
            level=logging.WARNING,
            user_id=user_id,
            collection_id=collection_id,
            required_role=required_role.value if required_role else None,
        )
        raise NotAuthorized("You do not have access to this resource")
