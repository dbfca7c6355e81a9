"""Tests for the feed source client."""

import asyncio
import socket
import pytest
import httpx
from datetime import datetime
from unittest.mock import Mock, patch, AsyncMock
from suprss.core.exceptions import FetchError
from suprss.services.feed_client import FeedSourceClient


ATOM_DOCUMENT = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <subtitle>Atom subtitle</subtitle>
  <entry>
    <title>Atom entry</title>
    <id>tag:example.org,2024:1</id>
    <link href="https://example.org/entry-1"/>
    <updated>2024-02-01T08:30:00Z</updated>
    <author><name>Ada</name></author>
    <content type="html">&lt;p&gt;Full body&lt;/p&gt;</content>
  </entry>
</feed>
"""


@pytest.mark.unit
class TestParseDocument:
    """Test parsing of RSS and Atom documents."""

    def test_rss_items(self, mock_rss_feed_data):
        """All five RSS items are extracted with channel metadata."""
        client = FeedSourceClient()
        parsed = client.parse_document("https://example.com/feed.xml", mock_rss_feed_data)

        assert parsed.title == "Test Feed"
        assert parsed.description == "A test RSS feed"
        assert len(parsed.items) == 5

        first = parsed.items[0]
        assert first.guid == "urn:example:1"
        assert first.link == "https://example.com/article1"
        assert first.iso_date == datetime(2024, 1, 1, 12, 0, 0)
        assert "Test Author" in (first.creator or first.author)

    def test_summary_reduced_to_text(self, mock_rss_feed_data):
        """HTML in summaries is stripped to a plain-text snippet."""
        client = FeedSourceClient()
        parsed = client.parse_document("https://example.com/feed.xml", mock_rss_feed_data)

        assert parsed.items[0].summary == "Description of article 1"

    def test_link_only_items_have_no_guid(self, mock_rss_feed_data):
        client = FeedSourceClient()
        parsed = client.parse_document("https://example.com/feed.xml", mock_rss_feed_data)

        link_only = parsed.items[3]
        assert link_only.guid is None
        assert link_only.link == "https://example.com/article4"
        assert parsed.items[4].iso_date is None

    def test_atom_entry(self):
        """Atom id, content and updated date map onto the raw item."""
        client = FeedSourceClient()
        parsed = client.parse_document("https://example.org/atom", ATOM_DOCUMENT)

        assert parsed.title == "Atom Example"
        assert parsed.description == "Atom subtitle"
        entry = parsed.items[0]
        assert entry.guid == "tag:example.org,2024:1"
        assert entry.full_content == "<p>Full body</p>"
        assert entry.iso_date == datetime(2024, 2, 1, 8, 30, 0)
        assert entry.creator == "Ada"

    def test_malformed_document(self):
        """Non-feed content is reported as malformed-document."""
        client = FeedSourceClient()

        with pytest.raises(FetchError) as exc_info:
            client.parse_document("https://example.com/page", "<html><body>Nope")

        assert exc_info.value.reason == FetchError.MALFORMED
        assert exc_info.value.url == "https://example.com/page"

    def test_empty_but_valid_feed(self):
        """A well-formed feed with no items is not an error."""
        client = FeedSourceClient()
        document = (
            '<?xml version="1.0"?><rss version="2.0"><channel>'
            "<title>Quiet</title></channel></rss>"
        )

        parsed = client.parse_document("https://example.com/quiet", document)

        assert parsed.title == "Quiet"
        assert parsed.items == []


@pytest.mark.unit
class TestFetch:
    """Test network behavior of fetch()."""

    @pytest.mark.asyncio
    async def test_fetch_success(self, mock_rss_feed_data):
        client = FeedSourceClient()

        with patch("httpx.AsyncClient.get") as mock_get:
            mock_response = Mock()
            mock_response.content = mock_rss_feed_data.encode("utf-8")
            mock_response.raise_for_status = Mock()
            mock_get.return_value = mock_response

            parsed = await client.fetch("https://example.com/feed.xml")

        assert len(parsed.items) == 5

    @pytest.mark.asyncio
    async def test_fetch_http_error_is_unreachable(self):
        client = FeedSourceClient()
        request = httpx.Request("GET", "https://example.com/missing")
        response = httpx.Response(404, request=request)

        with patch("httpx.AsyncClient.get") as mock_get:
            mock_response = Mock()
            mock_response.raise_for_status = Mock(
                side_effect=httpx.HTTPStatusError(
                    "Not Found", request=request, response=response
                )
            )
            mock_get.return_value = mock_response

            with pytest.raises(FetchError) as exc_info:
                await client.fetch("https://example.com/missing")

        assert exc_info.value.reason == FetchError.UNREACHABLE
        assert "404" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_fetch_connection_error_is_unreachable(self):
        client = FeedSourceClient()

        with patch("httpx.AsyncClient.get") as mock_get:
            mock_get.side_effect = httpx.ConnectError("connection refused")

            with pytest.raises(FetchError) as exc_info:
                await client.fetch("https://down.example.com/feed")

        assert exc_info.value.reason == FetchError.UNREACHABLE

    @pytest.mark.asyncio
    async def test_fetch_read_timeout(self):
        client = FeedSourceClient()

        with patch("httpx.AsyncClient.get") as mock_get:
            mock_get.side_effect = httpx.ReadTimeout("timed out")

            with pytest.raises(FetchError) as exc_info:
                await client.fetch("https://slow.example.com/feed")

        assert exc_info.value.reason == FetchError.TIMEOUT

    @pytest.mark.asyncio
    async def test_slow_drip_download_times_out(self):
        """The overall deadline applies even when the transport keeps trickling."""
        client = FeedSourceClient(timeout=0.05)

        async def never_finishes(url):
            await asyncio.sleep(10)

        with patch.object(client, "_download", side_effect=never_finishes):
            with pytest.raises(FetchError) as exc_info:
                await client.fetch("https://drip.example.com/feed")

        assert exc_info.value.reason == FetchError.TIMEOUT

    @pytest.mark.asyncio
    async def test_user_agent_sent(self, mock_rss_feed_data):
        client = FeedSourceClient(user_agent="SUPRSS-Test/1.0")

        with patch("suprss.services.feed_client.httpx.AsyncClient") as mock_client_class:
            mock_http = AsyncMock()
            mock_client_class.return_value.__aenter__.return_value = mock_http
            mock_response = Mock()
            mock_response.content = mock_rss_feed_data.encode("utf-8")
            mock_response.raise_for_status = Mock()
            mock_http.get.return_value = mock_response

            await client.fetch("https://example.com/feed.xml")

        kwargs = mock_client_class.call_args.kwargs
        assert kwargs["headers"]["User-Agent"] == "SUPRSS-Test/1.0"
        assert kwargs["follow_redirects"] is True


def resolve_with(table):
    """Replacement for FeedSourceClient._resolve backed by a fixed host table."""

    async def _resolve(self, hostname):
        return table[hostname]

    return _resolve


@pytest.mark.unit
class TestPrivateAddressGuard:
    """Feeds hosted on internal networks are never contacted."""

    @pytest.mark.asyncio
    async def test_loopback_literal_rejected(self):
        client = FeedSourceClient(allow_private_hosts=False)

        with pytest.raises(FetchError) as exc_info:
            await client.check_url_safety("http://127.0.0.1:8000/feed.xml")

        assert exc_info.value.reason == FetchError.UNREACHABLE
        assert "127.0.0.1" in exc_info.value.detail

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "address", ["10.1.2.3", "192.168.0.10", "169.254.169.254", "::1", "::ffff:127.0.0.1"]
    )
    async def test_hostname_resolving_to_internal_address(self, address):
        client = FeedSourceClient(allow_private_hosts=False)

        with patch.object(
            FeedSourceClient, "_resolve", resolve_with({"intranet.example.com": [address]})
        ):
            with pytest.raises(FetchError) as exc_info:
                await client.fetch("https://intranet.example.com/rss")

        assert exc_info.value.reason == FetchError.UNREACHABLE
        assert "private or internal" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_public_address_allowed(self):
        client = FeedSourceClient(allow_private_hosts=False)

        with patch.object(
            FeedSourceClient, "_resolve", resolve_with({"example.com": ["93.184.215.14"]})
        ):
            await client.check_url_safety("https://example.com/feed.xml")

    @pytest.mark.asyncio
    async def test_unresolvable_host_is_unreachable(self):
        client = FeedSourceClient(allow_private_hosts=False)

        async def fail(self, hostname):
            raise socket.gaierror(-2, "Name or service not known")

        with patch.object(FeedSourceClient, "_resolve", fail):
            with pytest.raises(FetchError) as exc_info:
                await client.fetch("https://nowhere.invalid/rss")

        assert exc_info.value.reason == FetchError.UNREACHABLE

    @pytest.mark.asyncio
    async def test_redirect_to_internal_address_rejected(self):
        """Every redirect hop is checked, not only the subscribed URL."""
        client = FeedSourceClient(allow_private_hosts=False)
        contacted = []

        def handler(request):
            contacted.append(request.url.host)
            if request.url.host == "feeds.example.com":
                return httpx.Response(
                    302, headers={"Location": "http://169.254.169.254/latest/meta-data"}
                )
            return httpx.Response(200, content=b"secret")

        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(handler)
        hosts = {"feeds.example.com": ["93.184.215.14"], "169.254.169.254": ["169.254.169.254"]}

        with patch.object(FeedSourceClient, "_resolve", resolve_with(hosts)):
            with patch(
                "suprss.services.feed_client.httpx.AsyncClient",
                side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
            ):
                with pytest.raises(FetchError) as exc_info:
                    await client.fetch("https://feeds.example.com/rss")

        assert exc_info.value.reason == FetchError.UNREACHABLE
        assert contacted == ["feeds.example.com"]

    @pytest.mark.asyncio
    async def test_private_hosts_allowed_when_configured(self, mock_rss_feed_data):
        client = FeedSourceClient(allow_private_hosts=True)

        def handler(request):
            return httpx.Response(200, content=mock_rss_feed_data.encode("utf-8"))

        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(handler)

        with patch.object(FeedSourceClient, "_resolve", AsyncMock()) as mock_resolve:
            with patch(
                "suprss.services.feed_client.httpx.AsyncClient",
                side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
            ):
                parsed = await client.fetch("http://localhost:8080/feed.xml")

        assert len(parsed.items) == 5
        mock_resolve.assert_not_called()
