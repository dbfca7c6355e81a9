"""Tests for feed list import and export."""

import csv
import io
import json
import xml.etree.ElementTree as ET
import pytest
from suprss.core.exceptions import ImportFormatError, NotAuthorized, UnsupportedFormat
from suprss.models.collection import CollectionFeed
from suprss.core.timeutil import utcnow
from suprss.models.feed import Feed
from suprss.services.collections import PERSONAL_COLLECTION_NAME, CollectionService
from suprss.services.feed_io import (
    CSV_HEADER,
    FeedExporter,
    FeedTransferService,
    ImportParser,
    normalize_format,
)
from suprss.services.scheduler import DueFeed, select_due_feeds

OPML_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>Subscriptions</title></head>
  <body>
    <outline text="Tech">
      <outline type="rss" text="One" xmlUrl="https://one.example.com/rss"/>
      <outline type="rss" text="Two" xmlUrl="https://two.example.com/atom"/>
    </outline>
    <outline type="rss" text="One again" xmlUrl="https://one.example.com/rss"/>
    <outline text="No url"/>
  </body>
</opml>
"""


@pytest.fixture
def transfer(db_session, fake_client):
    collections = CollectionService(db_session, client=fake_client)
    return FeedTransferService(db_session, collections=collections)


@pytest.mark.unit
class TestFormats:
    def test_known_formats_case_insensitive(self):
        assert normalize_format("OPML") == "opml"
        assert normalize_format(" csv ") == "csv"

    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormat):
            normalize_format("yaml")

    def test_export_unknown_format(self):
        with pytest.raises(UnsupportedFormat):
            FeedExporter().export([], "xml")


@pytest.mark.unit
class TestImportParser:
    def test_opml_nested_outlines_deduplicated(self):
        urls = ImportParser().parse(OPML_DOCUMENT, "opml")

        assert urls == ["https://one.example.com/rss", "https://two.example.com/atom"]

    def test_opml_malformed(self):
        with pytest.raises(ImportFormatError):
            ImportParser().parse("<opml><body><outline></body>", "opml")

    def test_opml_wrong_root(self):
        with pytest.raises(ImportFormatError):
            ImportParser().parse("<rss><channel/></rss>", "opml")

    def test_json_strings_and_objects(self):
        document = json.dumps(
            ["https://a.example.com/rss", {"url": "https://b.example.com/rss", "title": "B"}]
        )

        assert ImportParser().parse(document, "json") == [
            "https://a.example.com/rss",
            "https://b.example.com/rss",
        ]

    def test_json_wrapped_in_feeds_key(self):
        document = json.dumps({"feeds": [{"url": "https://a.example.com/rss"}]})

        assert ImportParser().parse(document, "json") == ["https://a.example.com/rss"]

    def test_json_invalid(self):
        with pytest.raises(ImportFormatError):
            ImportParser().parse("{not json", "json")

    def test_json_wrong_shape(self):
        with pytest.raises(ImportFormatError):
            ImportParser().parse(json.dumps({"url": "https://a.example.com"}), "json")
        with pytest.raises(ImportFormatError):
            ImportParser().parse(json.dumps([42]), "json")

    def test_csv_with_header(self):
        document = "title,url,tags\nA,https://a.example.com/rss,x\nB,https://b.example.com/rss,\n"

        assert ImportParser().parse(document, "csv") == [
            "https://a.example.com/rss",
            "https://b.example.com/rss",
        ]

    def test_csv_without_header(self):
        document = "https://a.example.com/rss\nSome title,https://b.example.com/rss\nnot a url\n"

        assert ImportParser().parse(document, "csv") == [
            "https://a.example.com/rss",
            "https://b.example.com/rss",
        ]

    def test_csv_empty(self):
        assert ImportParser().parse("", "csv") == []


@pytest.mark.unit
class TestFeedExporter:
    def test_csv_header_and_rows(self, test_feed, second_feed):
        """Two feeds export as a header line followed by two rows."""
        output = FeedExporter().export([test_feed, second_feed], "csv")

        rows = list(csv.reader(io.StringIO(output)))
        assert len(rows) == 3
        assert rows[0] == CSV_HEADER
        assert rows[1] == ["Example Feed", "https://example.com/feed.xml", "tech,news", "A test feed"]
        assert rows[2] == ["Example Blog", "https://blog.example.org/atom.xml", "blog", ""]

    def test_json(self, test_feed):
        data = json.loads(FeedExporter().export([test_feed], "json"))

        assert data == [
            {
                "title": "Example Feed",
                "url": "https://example.com/feed.xml",
                "description": "A test feed",
                "tags": ["tech", "news"],
                "categories": ["Technology"],
            }
        ]

    def test_opml(self, test_feed, second_feed):
        output = FeedExporter().export([test_feed, second_feed], "opml")

        assert output.startswith("<?xml")
        root = ET.fromstring(output)
        assert root.tag == "opml"
        assert root.get("version") == "2.0"
        outlines = root.find("body").findall("outline")
        assert [o.get("xmlUrl") for o in outlines] == [test_feed.url, second_feed.url]
        assert outlines[0].get("type") == "rss"
        assert outlines[0].get("text") == "Example Feed"

    def test_opml_round_trips_through_parser(self, test_feed, second_feed):
        output = FeedExporter().export([test_feed, second_feed], "opml")

        assert ImportParser().parse(output, "opml") == [test_feed.url, second_feed.url]


@pytest.mark.integration
class TestFeedTransferService:
    @pytest.mark.asyncio
    async def test_import_into_personal_collection(
        self, db_session, transfer, fake_client, other_user
    ):
        outcome = await transfer.import_feeds(other_user.id, OPML_DOCUMENT, "opml")

        assert outcome.discovered == 2
        assert outcome.added == ["https://one.example.com/rss", "https://two.example.com/atom"]
        assert outcome.failed == []
        collection = transfer.collections.personal_collection(other_user.id)
        assert collection.id == outcome.collection_id
        assert collection.name == PERSONAL_COLLECTION_NAME
        assert (
            db_session.query(CollectionFeed)
            .filter_by(collection_id=outcome.collection_id)
            .count()
            == 2
        )

    @pytest.mark.asyncio
    async def test_imported_feeds_left_to_poller(
        self, db_session, transfer, fake_client, other_user
    ):
        """Import never waits on the network; new feeds stay due for the next poll."""
        fake_client.fetch.side_effect = AssertionError("import must not fetch")

        outcome = await transfer.import_feeds(other_user.id, OPML_DOCUMENT, "opml")

        assert outcome.failed == []
        fake_client.fetch.assert_not_called()
        feeds = db_session.query(Feed).order_by(Feed.url).all()
        assert [f.url for f in feeds] == [
            "https://one.example.com/rss",
            "https://two.example.com/atom",
        ]
        assert all(f.last_fetched is None for f in feeds)
        assert all(f.title == f.url for f in feeds)
        assert set(select_due_feeds(db_session, utcnow())) == {DueFeed(f.id, f.url) for f in feeds}

    @pytest.mark.asyncio
    async def test_import_reuses_known_feeds(
        self, db_session, transfer, fake_client, test_user, test_collection, test_feed
    ):
        document = json.dumps([test_feed.url])

        outcome = await transfer.import_feeds(
            test_user.id, document, "json", collection_id=test_collection.id
        )

        assert outcome.added == [test_feed.url]
        fake_client.fetch.assert_not_called()
        assert db_session.query(Feed).count() == 1

    @pytest.mark.asyncio
    async def test_non_http_entries_fail_individually(
        self, transfer, fake_client, parsed_rss, test_user, test_collection
    ):
        fake_client.fetch.return_value = parsed_rss
        document = json.dumps(["ftp://files.example.com/feed", "https://ok.example.com/rss"])

        outcome = await transfer.import_feeds(
            test_user.id, document, "json", collection_id=test_collection.id
        )

        assert outcome.added == ["https://ok.example.com/rss"]
        assert outcome.failed == ["ftp://files.example.com/feed"]

    @pytest.mark.asyncio
    async def test_import_requires_editor(
        self, db_session, transfer, fake_client, reader_user, test_collection
    ):
        with pytest.raises(NotAuthorized):
            await transfer.import_feeds(
                reader_user.id, OPML_DOCUMENT, "opml", collection_id=test_collection.id
            )

        assert db_session.query(Feed).count() == 0
        fake_client.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_parse_error_before_any_change(self, db_session, transfer, other_user):
        with pytest.raises(ImportFormatError):
            await transfer.import_feeds(other_user.id, "<<<", "opml")

        assert db_session.query(CollectionFeed).count() == 0

    def test_export_reachable_feeds(self, transfer, test_user, test_feed, other_collection):
        output = transfer.export_feeds(test_user.id, "json")

        assert [entry["url"] for entry in json.loads(output)] == [test_feed.url]
