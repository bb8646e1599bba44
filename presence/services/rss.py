"""RSS 2.0 feed generation for the post manifest."""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from xml.sax.saxutils import escape

from presence.config import Settings
from presence.models.post import Post

# Length of the content-derived description when a post has no excerpt
DESCRIPTION_FALLBACK_LENGTH = 200

_ENTITIES = {'"': "&quot;", "'": "&apos;"}


@dataclass(frozen=True)
class SiteInfo:
    """Channel-level feed metadata."""

    url: str
    title: str
    description: str
    language: str = "en-us"
    feed_filename: str = "rss.xml"

    @classmethod
    def from_settings(cls, settings: Settings) -> "SiteInfo":
        return cls(
            url=settings.site_url.rstrip("/"),
            title=settings.site_title,
            description=settings.site_description,
            language=settings.site_language,
            feed_filename=settings.feed_filename,
        )


def escape_xml(text: str) -> str:
    """Escape ``& < > " '`` for XML text and attribute values."""
    return escape(text, _ENTITIES)


def rss_date(dt: datetime) -> str:
    """RFC 822 date as used by RSS, e.g. ``Mon, 15 Jan 2024 00:00:00 GMT``."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def _cdata(text: str) -> str:
    # "]]>" cannot appear inside a CDATA section; split it across two
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _description(post: Post) -> str:
    if post.excerpt:
        return post.excerpt
    return post.content[:DESCRIPTION_FALLBACK_LENGTH] + "..."


def _render_item(post: Post, site: SiteInfo) -> str:
    url = escape_xml(f"{site.url}/blog/{post.slug}")
    lines = [
        "    <item>",
        f"      <title>{escape_xml(post.title)}</title>",
        f"      <link>{url}</link>",
        f'      <guid isPermaLink="true">{url}</guid>',
        f"      <pubDate>{rss_date(post.date)}</pubDate>",
        f"      <description>{escape_xml(_description(post))}</description>",
        f"      <content:encoded>{_cdata(post.content)}</content:encoded>",
    ]
    lines.extend(f"      <category>{escape_xml(tag)}</category>" for tag in post.tags)
    lines.append("    </item>")
    return "\n".join(lines)


def generate_rss(
    posts: list[Post],
    site: SiteInfo,
    *,
    built_at: datetime | None = None,
) -> str:
    """Render the RSS feed for *posts* (expected newest first).

    ``lastBuildDate`` defaults to the newest post's date so an unchanged set
    of posts renders to identical bytes. With no posts it falls back to the
    current time.
    """
    if built_at is None:
        built_at = max((p.date for p in posts), default=None) or datetime.now(
            timezone.utc
        )

    feed_url = escape_xml(f"{site.url}/{site.feed_filename}")
    head = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0"',
        '     xmlns:content="http://purl.org/rss/1.0/modules/content/"',
        '     xmlns:atom="http://www.w3.org/2005/Atom">',
        "  <channel>",
        f"    <title>{escape_xml(site.title)}</title>",
        f"    <link>{escape_xml(site.url)}</link>",
        f"    <description>{escape_xml(site.description)}</description>",
        f"    <language>{escape_xml(site.language)}</language>",
        f"    <lastBuildDate>{rss_date(built_at)}</lastBuildDate>",
        f'    <atom:link href="{feed_url}" rel="self" type="application/rss+xml" />',
    ]
    items = [_render_item(post, site) for post in posts]
    tail = ["  </channel>", "</rss>", ""]
    return "\n".join(head + items + tail)
