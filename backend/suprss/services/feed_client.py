import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union
from urllib.parse import urlparse

import feedparser
import httpx
from bs4 import BeautifulSoup

from suprss.core.config import settings
from suprss.core.exceptions import FetchError

logger = logging.getLogger(__name__)

# Loopback, private, link-local (cloud metadata), multicast and reserved ranges
BLOCKED_IP_NETWORKS = [
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("224.0.0.0/4"),
    ipaddress.ip_network("240.0.0.0/4"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("ff00::/8"),
]


@dataclass
class RawItem:
    """One entry of a feed document, before normalization."""

    guid: Optional[str] = None
    external_id: Optional[str] = None
    link: Optional[str] = None
    title: Optional[str] = None
    creator: Optional[str] = None
    author: Optional[str] = None
    summary: Optional[str] = None
    full_content: Optional[str] = None
    iso_date: Optional[datetime] = None
    pub_date: Optional[str] = None


@dataclass
class ParsedFeed:
    title: Optional[str] = None
    description: Optional[str] = None
    items: List[RawItem] = field(default_factory=list)


class FeedSourceClient:
    """Fetches a feed URL and parses it into raw items.

    Holds no state besides its configuration, so one instance can be shared
    by every concurrent poll task.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        allow_private_hosts: Optional[bool] = None,
    ):
        self.timeout = timeout or settings.FEED_FETCH_TIMEOUT
        self.user_agent = user_agent or settings.FEED_USER_AGENT
        if allow_private_hosts is None:
            allow_private_hosts = settings.FEED_ALLOW_PRIVATE_HOSTS
        self.allow_private_hosts = allow_private_hosts

    async def fetch(self, url: str) -> ParsedFeed:
        """Fetch and parse a single feed.

        Raises:
            FetchError: unreachable, malformed-document or timeout. Nothing else
                escapes, so a caller looping over feeds only has to catch this.
        """
        try:
            document = await asyncio.wait_for(
                self._download(url), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise FetchError(url, FetchError.TIMEOUT)

        return self.parse_document(url, document)

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                event_hooks={"request": [self._guard_request]},
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException:
            raise FetchError(url, FetchError.TIMEOUT)
        except httpx.HTTPStatusError as e:
            raise FetchError(
                url,
                FetchError.UNREACHABLE,
                f"HTTP {e.response.status_code} from {url}",
            )
        except httpx.HTTPError as e:
            raise FetchError(url, FetchError.UNREACHABLE, f"{url}: {e}")

        return response.content

    async def _guard_request(self, request: httpx.Request) -> None:
        """Request hook: runs for the first request and every redirect hop."""
        if not self.allow_private_hosts:
            await self.check_url_safety(str(request.url))

    async def check_url_safety(self, url: str) -> None:
        """Reject URLs whose host resolves into a blocked network.

        Raises:
            FetchError: unreachable, before any connection is attempted.
        """
        hostname = urlparse(url).hostname
        if not hostname:
            raise FetchError(url, FetchError.UNREACHABLE, f"{url}: missing hostname")

        try:
            addresses = await self._resolve(hostname)
        except socket.gaierror as e:
            raise FetchError(url, FetchError.UNREACHABLE, f"{url}: cannot resolve {hostname}: {e}")

        for address in addresses:
            try:
                ip = ipaddress.ip_address(address.split("%", 1)[0])
            except ValueError:
                raise FetchError(url, FetchError.UNREACHABLE, f"{url}: invalid address {address}")
            if ip.version == 6 and ip.ipv4_mapped:
                ip = ip.ipv4_mapped
            for network in BLOCKED_IP_NETWORKS:
                if ip in network:
                    logger.warning(f"Blocked fetch of {url}: {hostname} resolves to {ip} in {network}")
                    raise FetchError(
                        url,
                        FetchError.UNREACHABLE,
                        f"{url}: private or internal address {ip}",
                    )

    async def _resolve(self, hostname: str) -> List[str]:
        infos = await asyncio.get_running_loop().getaddrinfo(hostname, None)
        return [info[4][0] for info in infos]

    def parse_document(self, url: str, document: Union[bytes, str]) -> ParsedFeed:
        """Parse an RSS or Atom document. Untrusted input: failures become FetchError."""
        if isinstance(document, str):
            document = document.encode("utf-8")
        try:
            parsed = feedparser.parse(document)
        except Exception as e:
            raise FetchError(url, FetchError.MALFORMED, f"{url}: {e}")

        if not parsed.entries and (parsed.bozo or not parsed.get("version")):
            reason = parsed.get("bozo_exception") or "not a feed document"
            raise FetchError(url, FetchError.MALFORMED, f"{url}: {reason}")

        feed_info = parsed.feed
        items = [self._to_raw_item(entry) for entry in parsed.entries]
        logger.debug(f"Parsed {len(items)} items from {url}")

        return ParsedFeed(
            title=feed_info.get("title"),
            description=feed_info.get("description") or feed_info.get("subtitle"),
            items=items,
        )

    def _to_raw_item(self, entry) -> RawItem:
        full_content = None
        if entry.get("content"):
            full_content = entry.content[0].get("value") or None

        author_detail = entry.get("author_detail") or {}

        return RawItem(
            # feedparser exposes both RSS <guid> and Atom <id> as "id"
            guid=entry.get("id") or None,
            external_id=entry.get("dc_identifier") or None,
            link=entry.get("link") or None,
            title=entry.get("title"),
            creator=entry.get("author") or None,
            author=author_detail.get("name") or author_detail.get("email"),
            summary=self._snippet(entry.get("summary")),
            full_content=full_content,
            iso_date=self._struct_to_datetime(
                entry.get("published_parsed") or entry.get("updated_parsed")
            ),
            pub_date=entry.get("published") or entry.get("updated"),
        )

    def _snippet(self, html: Optional[str]) -> Optional[str]:
        """Reduce summary markup to plain text."""
        if not html:
            return None
        text = BeautifulSoup(html, "html.parser").get_text(" ", strip=True)
        return text or None

    def _struct_to_datetime(self, value) -> Optional[datetime]:
        # feedparser normalizes parsed dates to UTC struct_time
        if not value:
            return None
        try:
            return datetime(*value[:6])
        except (ValueError, TypeError):
            return None
