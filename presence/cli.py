"""Command-line entry point.

Usage:
    python -m presence build                 # Parse posts, write posts.json + rss.xml
    python -m presence watch                 # Rebuild on content changes (runs until stopped)
    python -m presence watch --debounce 2    # Shorter quiet interval
    python -m presence new "Post title" --tags transit,policy
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from presence.config import Settings, get_settings
from presence.models.post import Post
from presence.services.frontmatter import (
    FrontmatterError,
    render_post,
    slugify,
    split_frontmatter,
)
from presence.services.manifest import DuplicateSlugError, build_site
from presence.services.watcher import run_watch_service

logger = logging.getLogger("presence")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

NEW_POST_BODY = "\nWrite your post here.\n"


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose or settings.debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )


def cmd_build(settings: Settings, args: argparse.Namespace) -> int:
    try:
        report = build_site(settings)
    except DuplicateSlugError as e:
        logger.error("Build failed: %s", e)
        return 1

    print(f"Built {report.posts} post(s)")
    print(f"  Manifest: {report.manifest_path}")
    print(f"  Feed:     {report.feed_path}")
    for filename, reason in report.failures:
        print(f"  Skipped:  {filename} ({reason})")

    if args.strict and report.failures:
        return 1
    return 0


def cmd_watch(settings: Settings, args: argparse.Namespace) -> int:
    return asyncio.run(
        run_watch_service(
            settings,
            watch_path=args.path,
            quiet_interval=args.debounce,
        )
    )


def cmd_new(settings: Settings, args: argparse.Namespace) -> int:
    slug = slugify(args.title)
    if not slug:
        print(f"Cannot derive a slug from {args.title!r}", file=sys.stderr)
        return 1

    target = settings.content_dir / f"{slug}.md"
    if target.exists():
        print(f"Post already exists: {target}", file=sys.stderr)
        return 1

    body = NEW_POST_BODY
    template = settings.content_dir / settings.template_filename
    if template.is_file():
        try:
            _, body = split_frontmatter(template.read_text(encoding="utf-8"))
        except FrontmatterError as e:
            print(f"Cannot read template {template}: {e}", file=sys.stderr)
            return 1

    post = Post(
        slug=slug,
        title=args.title,
        date=datetime.now(timezone.utc).replace(microsecond=0),
        excerpt=args.excerpt,
        tags=[t.strip() for t in args.tags.split(",") if t.strip()],
        author=args.author or settings.default_author,
        content=body,
    )
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_post(post), encoding="utf-8")
    print(f"Created {target}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="presence", description="Build and watch the Public Presence blog content"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Write posts.json and rss.xml from content")
    build.add_argument(
        "--strict", action="store_true", help="Exit non-zero if any post was skipped"
    )
    build.set_defaults(func=cmd_build)

    watch = sub.add_parser("watch", help="Rebuild whenever posts change")
    watch.add_argument("--path", type=Path, default=None, help="Directory to watch")
    watch.add_argument(
        "--debounce", type=float, default=None, help="Quiet interval in seconds"
    )
    watch.set_defaults(func=cmd_watch)

    new = sub.add_parser("new", help="Create a new post file")
    new.add_argument("title")
    new.add_argument("--tags", default="", help="Comma separated tags")
    new.add_argument("--excerpt", default="")
    new.add_argument("--author", default="")
    new.set_defaults(func=cmd_new)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings, args.verbose)
    return args.func(settings, args)


if __name__ == "__main__":
    sys.exit(main())
