"""
Feed list import and export (OPML, JSON, CSV).

Parsing is independent of subscription: ``ImportParser`` only turns a
document into feed URLs, and each URL then goes through the regular
``CollectionService.add_feed`` path.
"""

import csv
import io
import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from suprss.core.exceptions import ImportFormatError, SuprssError, UnsupportedFormat
from suprss.models.collection import Role
from suprss.models.feed import Feed
from suprss.services.collections import CollectionService

logger = logging.getLogger(__name__)

FORMATS = ("opml", "json", "csv")

CSV_HEADER = ["title", "url", "tags", "description"]

CONTENT_TYPES = {
    "opml": "text/x-opml",
    "json": "application/json",
    "csv": "text/csv",
}


def normalize_format(format: str) -> str:
    name = (format or "").strip().lower()
    if name not in FORMATS:
        raise UnsupportedFormat(
            f"Unsupported format '{format}'. Use one of: {', '.join(FORMATS)}"
        )
    return name


def _is_feed_url(value) -> bool:
    return isinstance(value, str) and value.strip().lower().startswith(
        ("http://", "https://")
    )


class ImportParser:
    """Extracts feed URLs from an import document, in document order, without duplicates."""

    def parse(self, document: str, format: str) -> List[str]:
        name = normalize_format(format)
        if name == "opml":
            urls = self._parse_opml(document)
        elif name == "json":
            urls = self._parse_json(document)
        else:
            urls = self._parse_csv(document)

        seen = set()
        unique = []
        for url in urls:
            url = url.strip()
            if url and url not in seen:
                seen.add(url)
                unique.append(url)
        return unique

    def _parse_opml(self, document: str) -> List[str]:
        try:
            root = ET.fromstring(document)
        except ET.ParseError as e:
            raise ImportFormatError(f"Invalid OPML format: {str(e)}")

        if root.tag.lower() != "opml":
            raise ImportFormatError("Invalid OPML format: missing <opml> root element")

        # Nested category outlines are walked too
        return [
            outline.get("xmlUrl")
            for outline in root.iter("outline")
            if outline.get("xmlUrl")
        ]

    def _parse_json(self, document: str) -> List[str]:
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise ImportFormatError(f"Invalid JSON: {str(e)}")

        if isinstance(data, dict) and isinstance(data.get("feeds"), list):
            data = data["feeds"]
        if not isinstance(data, list):
            raise ImportFormatError("JSON import must be a list of feeds")

        urls = []
        for entry in data:
            if isinstance(entry, str):
                urls.append(entry)
            elif isinstance(entry, dict) and isinstance(entry.get("url"), str):
                urls.append(entry["url"])
            else:
                raise ImportFormatError(
                    "Each JSON entry must be a URL string or an object with a 'url'"
                )
        return urls

    def _parse_csv(self, document: str) -> List[str]:
        try:
            rows = [row for row in csv.reader(io.StringIO(document)) if row]
        except csv.Error as e:
            raise ImportFormatError(f"Invalid CSV: {str(e)}")

        if not rows:
            return []

        header = [cell.strip().lower() for cell in rows[0]]
        if "url" in header:
            index = header.index("url")
            return [row[index] for row in rows[1:] if len(row) > index and row[index]]

        # Headerless: take the first cell of each row that looks like a URL
        urls = []
        for row in rows:
            url = next((cell for cell in row if _is_feed_url(cell)), None)
            if url:
                urls.append(url)
        return urls


class FeedExporter:
    def export(self, feeds: Iterable[Feed], format: str) -> str:
        name = normalize_format(format)
        feeds = list(feeds)
        if name == "opml":
            return self._to_opml(feeds)
        if name == "json":
            return self._to_json(feeds)
        return self._to_csv(feeds)

    def _to_csv(self, feeds: List[Feed]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for feed in feeds:
            writer.writerow(
                [
                    feed.title or "",
                    feed.url,
                    ",".join(feed.tags or []),
                    feed.description or "",
                ]
            )
        return buffer.getvalue()

    def _to_json(self, feeds: List[Feed]) -> str:
        return json.dumps(
            [
                {
                    "title": feed.title,
                    "url": feed.url,
                    "description": feed.description,
                    "tags": feed.tags or [],
                    "categories": feed.categories or [],
                }
                for feed in feeds
            ],
            indent=2,
            ensure_ascii=False,
        )

    def _to_opml(self, feeds: List[Feed]) -> str:
        opml = ET.Element("opml", version="2.0")

        head = ET.SubElement(opml, "head")
        ET.SubElement(head, "title").text = "SUPRSS feed export"
        ET.SubElement(head, "dateCreated").text = datetime.now(timezone.utc).strftime(
            "%a, %d %b %Y %H:%M:%S GMT"
        )

        body = ET.SubElement(opml, "body")
        for feed in feeds:
            attrs = {
                "type": "rss",
                "text": feed.title or feed.url,
                "title": feed.title or feed.url,
                "xmlUrl": feed.url,
            }
            if feed.description:
                attrs["description"] = feed.description
            if feed.categories:
                attrs["category"] = ",".join(feed.categories)
            ET.SubElement(body, "outline", **attrs)

        ET.indent(opml, space="  ", level=0)
        return ET.tostring(opml, encoding="unicode", xml_declaration=True)


@dataclass
class ImportOutcome:
    collection_id: int
    discovered: int = 0
    added: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class FeedTransferService:
    def __init__(
        self,
        db: Session,
        collections: Optional[CollectionService] = None,
        parser: Optional[ImportParser] = None,
        exporter: Optional[FeedExporter] = None,
    ):
        self.db = db
        self.collections = collections or CollectionService(db)
        self.parser = parser or ImportParser()
        self.exporter = exporter or FeedExporter()

    async def import_feeds(
        self,
        user_id: int,
        document: str,
        format: str = "opml",
        collection_id: Optional[int] = None,
    ) -> ImportOutcome:
        """Subscribe a collection to every feed in the document.

        New feeds are stored unfetched and left to the poller, so the request
        never waits on the network. Not transactional: feeds added before a
        failing URL stay added.
        """
        urls = self.parser.parse(document, format)

        if collection_id is None:
            collection_id = self.collections.personal_collection(user_id).id
        else:
            self.collections.gate.authorize(user_id, collection_id, Role.EDITOR)

        outcome = ImportOutcome(collection_id=collection_id, discovered=len(urls))
        for url in urls:
            if not _is_feed_url(url):
                outcome.failed.append(url)
                continue
            try:
                await self.collections.add_feed(user_id, collection_id, url, fetch=False)
                outcome.added.append(url)
            except SuprssError as e:
                self.db.rollback()
                logger.warning(f"Import of {url} failed: {e.detail}")
                outcome.failed.append(url)

        logger.info(
            f"User {user_id} imported {len(outcome.added)}/{outcome.discovered} "
            f"feeds into collection {collection_id}"
        )
        return outcome

    def export_feeds(self, user_id: int, format: str) -> str:
        name = normalize_format(format)
        return self.exporter.export(self.collections.reachable_feeds(user_id), name)
