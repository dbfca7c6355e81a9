import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from suprss.core.timeutil import utcnow
from suprss.models.article import Article
from suprss.models.feed import Feed
from suprss.services.normalizer import NormalizedItem

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    inserted: int = 0
    skipped: int = 0


class ArticleIngestor:
    """Persists normalized items that are not yet known for a feed.

    ``(feed_id, natural_key)`` is the deduplication boundary. Existing
    articles are never updated. The caller owns the transaction and commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def ingest(self, feed: Feed, items: Iterable[NormalizedItem]) -> IngestResult:
        result = IngestResult()
        known = self._known_keys(feed.id)

        for item in items:
            if item.natural_key in known:
                result.skipped += 1
                continue

            if self._insert(feed, item):
                result.inserted += 1
            else:
                result.skipped += 1
            known.add(item.natural_key)

        if result.inserted:
            logger.info(
                f"Ingested {result.inserted} new articles for feed {feed.id} "
                f"({result.skipped} already known)"
            )
        return result

    def mark_fetched(self, feed: Feed, fetched_at: Optional[datetime] = None):
        """Stamp a successful fetch, whether or not it produced new articles."""
        feed.last_fetched = fetched_at or utcnow()

    def _known_keys(self, feed_id: int) -> Set[str]:
        rows = (
            self.db.query(Article.natural_key)
            .filter(Article.feed_id == feed_id)
            .all()
        )
        return {row[0] for row in rows}

    def _insert(self, feed: Feed, item: NormalizedItem) -> bool:
        """Insert one article; a concurrent insert of the same key is absorbed."""
        article = Article(
            feed_id=feed.id,
            natural_key=item.natural_key,
            title=item.title,
            link=item.link,
            author=item.author,
            content=item.content,
            published_date=item.published_date,
        )
        try:
            with self.db.begin_nested():
                self.db.add(article)
        except IntegrityError:
            logger.debug(
                f"Article {item.natural_key!r} already stored for feed {feed.id}"
            )
            return False
        return True
