"""
Item normalization: natural key derivation and field fallback chains.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Callable, Iterable, List, Optional

from suprss.core.timeutil import utcnow, to_naive_utc
from suprss.services.feed_client import RawItem

logger = logging.getLogger(__name__)

UNTITLED = "(untitled)"


def ingestion_time_fallback(clock: Callable[[], datetime] = utcnow) -> datetime:
    """Publication date used for items that carry no usable date.

    Undated items are stamped with the time they were ingested, so they sort
    as the freshest among unknowns instead of being dropped.
    """
    return clock()


@dataclass
class NormalizedItem:
    natural_key: str
    title: str
    link: str
    author: str
    content: str
    published_date: datetime


def parse_date(date_string: Optional[str]) -> Optional[datetime]:
    """Parse RFC 822 or ISO 8601 dates found in feeds into naive UTC."""
    if not date_string:
        return None

    try:
        return to_naive_utc(parsedate_to_datetime(date_string))
    except (TypeError, ValueError, IndexError):
        pass

    try:
        return to_naive_utc(datetime.fromisoformat(date_string.replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"Could not parse date: {date_string}")
        return None


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def normalize_item(
    item: RawItem, clock: Callable[[], datetime] = utcnow
) -> Optional[NormalizedItem]:
    """Derive the natural key and canonical fields of one raw item.

    Returns None when the item has no guid, external id or link, since it
    could neither be deduplicated nor referenced later.
    """
    natural_key = _first(item.guid, item.external_id, item.link)
    if natural_key is None:
        return None

    published_date = item.iso_date
    if published_date is None:
        published_date = parse_date(item.pub_date)
    if published_date is None:
        published_date = ingestion_time_fallback(clock)

    return NormalizedItem(
        natural_key=natural_key,
        title=_first(item.title) or UNTITLED,
        link=_first(item.link) or natural_key,
        author=_first(item.creator, item.author) or "",
        content=_first(item.summary, item.full_content) or "",
        published_date=to_naive_utc(published_date),
    )


def normalize_items(
    items: Iterable[RawItem], clock: Callable[[], datetime] = utcnow
) -> List[NormalizedItem]:
    normalized = []
    discarded = 0
    for item in items:
        result = normalize_item(item, clock=clock)
        if result is None:
            discarded += 1
            continue
        normalized.append(result)

    if discarded:
        logger.debug(f"Discarded {discarded} items without guid, id or link")
    return normalized
