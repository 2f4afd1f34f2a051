from __future__ import annotations

import asyncio

import pytest

from adapters import feed_source
from adapters.feed_source import RssFeedSource, extract_content, parse_feed
from adapters.http_client import HttpResponse
from core.errors import NetworkError

ATOM = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>r/example</title>
  <entry>
    <title>Newest post</title>
    <link href="https://example.test/comments/2"/>
    <author><name>/u/bob</name></author>
    <category term="Question" label="Question"/>
    <updated>2024-01-02T10:00:00+00:00</updated>
    <content type="html">&lt;p&gt;Hello there&lt;/p&gt;&lt;img src="https://i.redd.it/pic.png"/&gt;</content>
  </entry>
  <entry>
    <title>Older post</title>
    <link href="https://example.test/comments/1"/>
    <author><name>/u/carol</name></author>
    <updated>2024-01-01T10:00:00+00:00</updated>
    <content type="html">&lt;p&gt;Plain text&lt;/p&gt;</content>
  </entry>
</feed>
"""


def test_parse_feed_keeps_served_order() -> None:
    items = parse_feed(ATOM)

    assert [item.link for item in items] == ["https://example.test/comments/2", "https://example.test/comments/1"]
    newest = items[0]
    assert newest.title == "Newest post"
    assert newest.author == "bob"
    assert newest.flair == "Question"
    assert newest.image_url == "https://i.redd.it/pic.png"
    assert "Hello there" in newest.summary
    assert newest.published is not None and newest.published.day == 2
    assert items[1].flair is None


def test_parse_feed_rejects_garbage() -> None:
    with pytest.raises(NetworkError):
        parse_feed(b"this is not a feed")


def test_extract_content_strips_markup_and_links() -> None:
    image, text = extract_content(
        '<p>Look &amp; see</p><a href="https://example.test">[link]</a><img src="https://i.redd.it/y.png"/>'
    )

    assert image == "https://i.redd.it/y.png"
    assert text == "Look & see"
    assert extract_content("") == (None, "")


def test_fetch_raises_on_bad_status(monkeypatch) -> None:
    async def fake_get(url, headers=None, timeout=20.0) -> HttpResponse:
        return HttpResponse(status=503, body=b"")

    monkeypatch.setattr(feed_source, "http_get", fake_get)

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(RssFeedSource("https://example.test/.rss").fetch())
    assert excinfo.value.status == 503


def test_fetch_parses_successful_body(monkeypatch) -> None:
    async def fake_get(url, headers=None, timeout=20.0) -> HttpResponse:
        assert "User-Agent" in headers
        return HttpResponse(status=200, body=ATOM)

    monkeypatch.setattr(feed_source, "http_get", fake_get)

    items = asyncio.run(RssFeedSource("https://example.test/.rss").fetch())
    assert len(items) == 2
