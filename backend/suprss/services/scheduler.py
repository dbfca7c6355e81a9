import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from suprss.core.config import settings
from suprss.core.database import SessionLocal
from suprss.core.exceptions import FetchError
from suprss.core.timeutil import utcnow
from suprss.models.feed import Feed, FeedStatus
from suprss.services.feed_client import FeedSourceClient, ParsedFeed
from suprss.services.ingestor import ArticleIngestor, IngestResult
from suprss.services.normalizer import normalize_items

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueFeed:
    id: int
    url: str


def is_due(feed: Feed, now: datetime) -> bool:
    """A feed is due when never fetched or its update interval has elapsed."""
    if feed.last_fetched is None:
        return True
    return now - feed.last_fetched >= timedelta(minutes=feed.update_interval)


def select_due_feeds(db: Session, now: datetime) -> List[DueFeed]:
    feeds = db.query(Feed).filter(Feed.status == FeedStatus.ACTIVE).all()
    return [DueFeed(feed.id, feed.url) for feed in feeds if is_due(feed, now)]


class FeedPollScheduler:
    """
    Periodically refreshes due feeds.

    Each tick looks up due feeds and starts one asyncio task per feed, so a
    slow or failing source never delays the others. A feed already being
    polled is skipped until its task finishes. Outbound fetches are capped by
    a semaphore; no database session is held while a fetch is in progress.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        client: Optional[FeedSourceClient] = None,
        clock: Callable[[], datetime] = utcnow,
        due_feed_query: Callable[[Session, datetime], List[DueFeed]] = select_due_feeds,
        tick_minutes: Optional[int] = None,
        max_concurrent: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.client = client or FeedSourceClient()
        self.clock = clock
        self.due_feed_query = due_feed_query
        self.tick_minutes = tick_minutes or settings.POLL_TICK_MINUTES
        self.max_concurrent = max_concurrent or settings.FEED_FETCH_MAX_CONCURRENT

        self.scheduler = AsyncIOScheduler()
        self.in_flight: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    async def tick(self) -> List[int]:
        """Dispatch a poll task for every due feed not already in flight.

        Returns the ids of the feeds dispatched by this tick. Does not wait
        for the tasks to finish.
        """
        now = self.clock()
        db = self.session_factory()
        try:
            due = self.due_feed_query(db, now)
        except Exception as e:
            logger.error(f"Could not load due feeds: {str(e)}")
            return []
        finally:
            db.close()

        dispatched = []
        for feed in due:
            if feed.id in self.in_flight:
                logger.debug(f"Feed {feed.id} still in flight, skipping")
                continue
            self.in_flight.add(feed.id)
            task = asyncio.create_task(self._run_feed(feed))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched.append(feed.id)

        if dispatched:
            logger.info(f"Dispatched {len(dispatched)} feed polls")
        return dispatched

    async def run_once(self) -> List[int]:
        """Tick, then wait for every dispatched poll to complete."""
        dispatched = await self.tick()
        await self.wait_idle()
        return dispatched

    async def wait_idle(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def poll_feed(self, feed_id: int, url: str) -> Optional[IngestResult]:
        """Fetch and ingest one feed now, unless a poll for it is already running."""
        if feed_id in self.in_flight:
            logger.info(f"Feed {feed_id} already being polled")
            return None
        self.in_flight.add(feed_id)
        return await self._run_feed(DueFeed(feed_id, url))

    async def _run_feed(self, feed: DueFeed) -> Optional[IngestResult]:
        try:
            async with self._get_semaphore():
                parsed = await self.client.fetch(feed.url)
            return self.store(feed.id, parsed)
        except FetchError as e:
            logger.warning(f"Skipping feed {feed.id} ({e.reason}): {e.detail}")
            return None
        except Exception as e:
            logger.error(f"Error polling feed {feed.url}: {str(e)}", exc_info=True)
            return None
        finally:
            self.in_flight.discard(feed.id)

    def store(self, feed_id: int, parsed: ParsedFeed) -> Optional[IngestResult]:
        """Ingest a fetched document and stamp the feed as fetched."""
        db = self.session_factory()
        try:
            feed = db.query(Feed).filter(Feed.id == feed_id).first()
            if feed is None:
                logger.warning(f"Feed {feed_id} disappeared before ingestion")
                return None

            # Keep user-edited titles; only fill in missing metadata
            if parsed.title and (not feed.title or feed.title == feed.url):
                feed.title = parsed.title
            if parsed.description and not feed.description:
                feed.description = parsed.description

            ingestor = ArticleIngestor(db)
            result = ingestor.ingest(feed, normalize_items(parsed.items, clock=self.clock))
            ingestor.mark_fetched(feed, self.clock())
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def start(self):
        """Start the scheduler."""
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(minutes=self.tick_minutes),
            id="poll_feeds",
            name="Poll due feeds",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        logger.info(f"Scheduler started with tick: {self.tick_minutes} minutes")

    def shutdown(self):
        """Shutdown the scheduler and abandon polls still running."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        for task in list(self._tasks):
            task.cancel()
        logger.info("Scheduler shutdown")


# Global scheduler instance
scheduler = FeedPollScheduler()
