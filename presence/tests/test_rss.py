"""Tests for RSS feed generation: structure, escaping, dates."""

from datetime import datetime, timezone

import feedparser

from presence.models.post import Post
from presence.services.rss import SiteInfo, escape_xml, generate_rss, rss_date

SITE = SiteInfo(
    url="https://blog.test",
    title="Test Blog",
    description="Posts & notes",
    language="en-us",
)


def _post(slug="cats", **kwargs) -> Post:
    fields = {
        "title": "Cats",
        "date": datetime(2024, 1, 15, tzinfo=timezone.utc),
        "excerpt": "",
        "tags": [],
        "author": "Test Author",
        "content": "Body text.\n",
    }
    fields.update(kwargs)
    return Post(slug=slug, **fields)


def test_escape_xml_escapes_all_special_characters():
    assert escape_xml("""<a href="x">Tom & Jerry's</a>""") == (
        "&lt;a href=&quot;x&quot;&gt;Tom &amp; Jerry&apos;s&lt;/a&gt;"
    )


def test_rss_date_is_rfc822_gmt():
    assert rss_date(datetime(2024, 1, 15, tzinfo=timezone.utc)) == (
        "Mon, 15 Jan 2024 00:00:00 GMT"
    )


def test_excerpt_is_escaped_in_feed_body():
    feed = generate_rss([_post(excerpt="Cats & Dogs <3")], SITE)

    assert "<description>Cats &amp; Dogs &lt;3</description>" in feed
    assert "Cats & Dogs <3" not in feed


def test_title_and_tags_are_escaped():
    feed = generate_rss(
        [_post(title='Bikes "&" <Buses>', tags=["R&D", "<script>"])], SITE
    )

    assert "<title>Bikes &quot;&amp;&quot; &lt;Buses&gt;</title>" in feed
    assert "<category>R&amp;D</category>" in feed
    assert "<category>&lt;script&gt;</category>" in feed


def test_item_fields():
    feed = generate_rss([_post(slug="bus-network", tags=["transit", "policy"])], SITE)

    assert "<link>https://blog.test/blog/bus-network</link>" in feed
    assert '<guid isPermaLink="true">https://blog.test/blog/bus-network</guid>' in feed
    assert "<pubDate>Mon, 15 Jan 2024 00:00:00 GMT</pubDate>" in feed
    assert "<content:encoded><![CDATA[Body text.\n]]></content:encoded>" in feed
    assert feed.count("<category>") == 2


def test_description_falls_back_to_content():
    long_body = "x" * 300
    feed = generate_rss([_post(content=long_body)], SITE)
    assert f"<description>{'x' * 200}...</description>" in feed


def test_cdata_terminator_in_content_is_split():
    feed = generate_rss([_post(content="a ]]> b")], SITE)
    assert "<![CDATA[a ]]]]><![CDATA[> b]]>" in feed


def test_channel_metadata_and_last_build_date():
    posts = [
        _post("new", date=datetime(2024, 6, 1, tzinfo=timezone.utc)),
        _post("old", date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ]
    feed = generate_rss(posts, SITE)

    assert "<title>Test Blog</title>" in feed
    assert "<description>Posts &amp; notes</description>" in feed
    assert "<language>en-us</language>" in feed
    assert "<lastBuildDate>Sat, 01 Jun 2024 00:00:00 GMT</lastBuildDate>" in feed
    assert 'href="https://blog.test/rss.xml" rel="self"' in feed


def test_empty_feed_has_channel_and_no_items():
    feed = generate_rss([], SITE, built_at=datetime(2024, 1, 1, tzinfo=timezone.utc))

    assert "<item>" not in feed
    assert "<lastBuildDate>Mon, 01 Jan 2024 00:00:00 GMT</lastBuildDate>" in feed


def test_feed_parses_as_rss2():
    posts = [
        _post(
            "b",
            title="Newer",
            date=datetime(2024, 6, 1, tzinfo=timezone.utc),
            excerpt="Cats & Dogs <3",
            tags=["x", "y"],
        ),
        _post("a", title="Older", date=datetime(2024, 1, 1, tzinfo=timezone.utc), tags=["x"]),
    ]
    parsed = feedparser.parse(generate_rss(posts, SITE))

    assert parsed.version == "rss20"
    assert parsed.feed.title == "Test Blog"
    assert [e.title for e in parsed.entries] == ["Newer", "Older"]
    assert [t.term for t in parsed.entries[0].tags] == ["x", "y"]
    assert parsed.entries[0].link == "https://blog.test/blog/b"
