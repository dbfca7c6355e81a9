"""
Filtered article queries over the feed/collection subscription graph.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from sqlalchemy import and_, desc, exists, or_
from sqlalchemy.orm import Session, joinedload

from suprss.models.article import Article
from suprss.models.article_state import ArticleState
from suprss.models.collection import CollectionFeed, Role
from suprss.models.feed import Feed
from suprss.services.access import AccessGate
from suprss.services.article_state import ArticleStateTracker

logger = logging.getLogger(__name__)


@dataclass
class ArticleFilter:
    feed_id: Optional[int] = None
    tag: Optional[str] = None
    unread: Optional[bool] = None
    favorite: Optional[bool] = None
    search: Optional[str] = None


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ArticleQuery:
    def __init__(self, db: Session, gate: Optional[AccessGate] = None):
        self.db = db
        self.gate = gate or AccessGate(db)

    def collection_feed_ids(self, collection_id: int) -> Set[int]:
        rows = (
            self.db.query(CollectionFeed.feed_id)
            .filter(CollectionFeed.collection_id == collection_id)
            .all()
        )
        return {row[0] for row in rows}

    def list_articles(
        self,
        user_id: int,
        collection_id: int,
        filters: Optional[ArticleFilter] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Article]:
        """Articles of the collection's feeds, newest first."""
        self.gate.authorize(user_id, collection_id, Role.READER)
        feed_ids = self.collection_feed_ids(collection_id)
        return self._query(user_id, feed_ids, filters or ArticleFilter(), skip, limit)

    def search_articles(
        self,
        user_id: int,
        filters: Optional[ArticleFilter] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Article]:
        """Same filters over every feed reachable through the user's memberships."""
        feed_ids = self.gate.reachable_feed_ids(user_id)
        return self._query(user_id, feed_ids, filters or ArticleFilter(), skip, limit)

    def get_article(self, user_id: int, article_id: int) -> Article:
        return self.gate.authorize_article(user_id, article_id)

    def annotate(self, user_id: int, articles: Iterable[Article]) -> List[dict]:
        """Attach the caller's read/favorite flags to each article."""
        articles = list(articles)
        tracker = ArticleStateTracker(self.db, self.gate)
        states = tracker.states_for(user_id, [a.id for a in articles])

        annotated = []
        for article in articles:
            state = states[article.id]
            annotated.append(
                {
                    "id": article.id,
                    "feed_id": article.feed_id,
                    "feed_title": article.feed_title,
                    "title": article.title,
                    "link": article.link,
                    "author": article.author,
                    "content": article.content,
                    "published_date": article.published_date,
                    "is_read": state.is_read,
                    "is_favorite": state.is_favorite,
                }
            )
        return annotated

    def _query(
        self,
        user_id: int,
        feed_ids: Set[int],
        filters: ArticleFilter,
        skip: int,
        limit: Optional[int],
    ) -> List[Article]:
        feed_ids = self._narrow_feeds(feed_ids, filters)
        if not feed_ids:
            return []

        query = (
            self.db.query(Article)
            .options(joinedload(Article.feed))
            .filter(Article.feed_id.in_(feed_ids))
        )

        if filters.unread is not None:
            is_read = exists().where(
                and_(
                    ArticleState.article_id == Article.id,
                    ArticleState.user_id == user_id,
                    ArticleState.is_read == True,
                )
            )
            query = query.filter(~is_read if filters.unread else is_read)

        if filters.favorite is not None:
            is_favorite = exists().where(
                and_(
                    ArticleState.article_id == Article.id,
                    ArticleState.user_id == user_id,
                    ArticleState.is_favorite == True,
                )
            )
            query = query.filter(is_favorite if filters.favorite else ~is_favorite)

        if filters.search and filters.search.strip():
            pattern = f"%{escape_like(filters.search.strip())}%"
            query = query.filter(
                or_(
                    Article.title.ilike(pattern, escape="\\"),
                    Article.content.ilike(pattern, escape="\\"),
                )
            )

        query = query.order_by(desc(Article.published_date), desc(Article.id))
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _narrow_feeds(self, feed_ids: Set[int], filters: ArticleFilter) -> Set[int]:
        if filters.feed_id is not None:
            # A feed outside the visible set yields nothing, never a bypass
            feed_ids = feed_ids & {filters.feed_id}

        if filters.tag and feed_ids:
            feeds = self.db.query(Feed).filter(Feed.id.in_(feed_ids)).all()
            feed_ids = {feed.id for feed in feeds if filters.tag in (feed.tags or [])}

        return feed_ids
