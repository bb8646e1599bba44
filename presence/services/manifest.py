"""Manifest builder: parsed posts -> posts.json + rss.xml.

Both artifacts are written to a temporary file and atomically renamed into
place, so readers never see a partial file and a failed build leaves the
previous artifacts live.
"""

import json
import logging
import os
import tempfile
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from presence.config import Settings, get_settings
from presence.models.post import Post
from presence.services.frontmatter import load_posts
from presence.services.rss import SiteInfo, generate_rss

logger = logging.getLogger(__name__)


class DuplicateSlugError(Exception):
    """Two or more source files map to the same slug."""

    def __init__(self, slugs: list[str]) -> None:
        self.slugs = slugs
        super().__init__(f"Duplicate post slug(s): {', '.join(slugs)}")


@dataclass
class BuildReport:
    """Stats from a build run."""

    posts: int
    failures: list[tuple[str, str]] = field(default_factory=list)
    manifest_path: Path | None = None
    feed_path: Path | None = None

    def to_dict(self) -> dict:
        return {
            "posts": self.posts,
            "failures": [{"file": f, "reason": r} for f, r in self.failures],
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
            "feed_path": str(self.feed_path) if self.feed_path else None,
        }


def sort_posts(posts: list[Post]) -> list[Post]:
    """Newest first. The sort is stable, so equal dates keep input order."""
    return sorted(posts, key=lambda p: p.date, reverse=True)


def check_unique_slugs(posts: list[Post]) -> None:
    """Raise DuplicateSlugError if any slug appears more than once."""
    counts = Counter(p.slug for p in posts)
    duplicates = sorted(slug for slug, n in counts.items() if n > 1)
    if duplicates:
        raise DuplicateSlugError(duplicates)


def render_manifest(posts: list[Post]) -> str:
    """Serialize posts to the JSON manifest consumed by the front end."""
    data = [post.to_manifest_dict() for post in posts]
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_atomic(path: Path, text: str) -> None:
    """Replace *path* with *text* in one rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def build_site(
    settings: Settings | None = None,
    *,
    now: datetime | None = None,
) -> BuildReport:
    """Run a full build: parse content, write the manifest and the RSS feed.

    Args:
        settings: Build configuration. Defaults to ``get_settings()``.
        now: Timestamp used for posts without a date.

    Returns:
        Stats from the build.

    Raises:
        DuplicateSlugError: If two files produce the same slug. Nothing is
            written in that case.
    """
    if settings is None:
        settings = get_settings()

    logger.info("Building posts from %s", settings.content_dir)
    loaded = load_posts(
        settings.content_dir,
        default_author=settings.default_author,
        exclude=settings.template_filename,
        now=now,
    )
    if not loaded.posts:
        logger.warning(
            "No posts found in %s, writing an empty manifest", settings.content_dir
        )

    check_unique_slugs(loaded.posts)
    posts = sort_posts(loaded.posts)

    write_atomic(settings.manifest_path, render_manifest(posts))
    write_atomic(
        settings.feed_path, generate_rss(posts, SiteInfo.from_settings(settings))
    )

    if posts:
        logger.info(
            "Built %d post(s): latest %r, oldest %r",
            len(posts),
            posts[0].title,
            posts[-1].title,
        )
    logger.info("Wrote %s and %s", settings.manifest_path, settings.feed_path)

    return BuildReport(
        posts=len(posts),
        failures=loaded.failures,
        manifest_path=settings.manifest_path,
        feed_path=settings.feed_path,
    )
