"""Frontmatter parser: markdown files with a leading YAML block -> Post records.

A post file looks like::

    ---
    title: Rethinking the Bus Network
    date: 2024-06-01
    excerpt: Why frequency beats coverage.
    tags: [transit, planning]
    author: Public Presence
    ---

    Markdown body...

Only ``title``, ``date``, ``excerpt``, ``tags`` and ``author`` are read;
other keys are ignored.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from presence.models.post import Post

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Post"

MARKDOWN_SUFFIXES = (".md", ".markdown")

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<meta>.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


class FrontmatterError(ValueError):
    """A single post file could not be parsed."""


@dataclass
class LoadResult:
    """Outcome of parsing a content directory."""

    posts: list[Post] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)
    directory_missing: bool = False


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a leading ``---`` delimited YAML block from the markdown body.

    Returns (metadata, body). Text without a complete block is all body.

    Raises:
        FrontmatterError: If the block is not valid YAML or not a mapping.
    """
    text = text.lstrip("\ufeff")
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text

    try:
        meta = yaml.safe_load(match.group("meta"))
    except (yaml.YAMLError, ValueError) as e:
        # PyYAML raises a bare ValueError for impossible timestamps like 2024-02-30
        raise FrontmatterError(f"invalid YAML frontmatter: {e}") from e

    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise FrontmatterError(
            f"frontmatter must be a mapping, got {type(meta).__name__}"
        )
    return meta, text[match.end():]


def _coerce_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        raw = value.strip()
        # fromisoformat only understands a trailing Z from 3.11 on
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError as e:
            raise FrontmatterError(f"unrecognized date {value!r}") from e
    else:
        raise FrontmatterError(f"unrecognized date {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _coerce_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        tags = [item.strip() for item in value.split(",")]
    elif isinstance(value, (list, tuple, set)):
        tags = [str(item) for item in value if item is not None]
    else:
        raise FrontmatterError(f"tags must be a list of strings, got {value!r}")

    return [t for t in tags if t.strip()]


def _coerce_text(value: Any) -> str:
    # Values are kept as written; whitespace only decides whether one is missing
    if value is None:
        return ""
    return str(value)


def parse_post(
    slug: str,
    text: str,
    *,
    default_author: str,
    now: datetime | None = None,
) -> Post:
    """Parse one markdown document into a Post, applying field defaults.

    Args:
        slug: Post identifier, normally the filename stem.
        text: Full file content.
        default_author: Author used when the frontmatter has none.
        now: Timestamp used for a missing date. Defaults to the current time.

    Raises:
        FrontmatterError: On malformed frontmatter or an unparseable date.
    """
    meta, body = split_frontmatter(text)

    title = _coerce_text(meta.get("title"))
    if not title.strip():
        logger.warning("Post %s is missing a title", slug)
        title = DEFAULT_TITLE

    raw_date = meta.get("date")
    if raw_date is None or raw_date == "":
        logger.warning("Post %s is missing a date, using build time", slug)
        post_date = now or datetime.now(timezone.utc)
    else:
        post_date = _coerce_date(raw_date)

    author = _coerce_text(meta.get("author"))
    try:
        return Post(
            slug=slug,
            title=title,
            date=post_date,
            excerpt=_coerce_text(meta.get("excerpt")),
            tags=_coerce_tags(meta.get("tags")),
            author=author if author.strip() else default_author,
            content=body,
        )
    except ValidationError as e:
        raise FrontmatterError(f"invalid post fields: {e}") from e


def render_post(post: Post) -> str:
    """Serialize a Post back to frontmatter + body (inverse of ``parse_post``)."""
    meta = {
        "title": post.title,
        "date": post.date.isoformat(),
        "excerpt": post.excerpt,
        "tags": list(post.tags),
        "author": post.author,
    }
    block = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True)
    return f"---\n{block}---\n{post.content}"


def find_post_files(directory: Path, *, exclude: str = "") -> list[Path]:
    """List markdown files directly inside *directory*, sorted by name.

    Dotfiles and the *exclude* file (the post template) are skipped.
    """
    files = [
        p
        for p in directory.iterdir()
        if p.is_file()
        and p.suffix.lower() in MARKDOWN_SUFFIXES
        and not p.name.startswith(".")
        and p.name != exclude
    ]
    return sorted(files, key=lambda p: p.name)


def load_posts(
    directory: Path,
    *,
    default_author: str,
    exclude: str = "",
    now: datetime | None = None,
) -> LoadResult:
    """Parse every post in *directory*.

    A file that fails to parse is recorded in ``failures`` and skipped; the
    rest of the batch continues. A missing directory gives an empty result.
    """
    result = LoadResult()
    if not directory.is_dir():
        logger.warning("Content directory not found: %s", directory)
        result.directory_missing = True
        return result

    for path in find_post_files(directory, exclude=exclude):
        try:
            text = path.read_text(encoding="utf-8")
            post = parse_post(path.stem, text, default_author=default_author, now=now)
        except (OSError, UnicodeDecodeError, FrontmatterError) as e:
            logger.warning("Skipping %s: %s", path.name, e)
            result.failures.append((path.name, str(e)))
            continue
        result.posts.append(post)

    logger.info(
        "Parsed %d post(s) from %s (%d skipped)",
        len(result.posts),
        directory,
        len(result.failures),
    )
    return result


def slugify(text: str) -> str:
    """Convert text to URL-safe slug."""
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return text.strip("-")
