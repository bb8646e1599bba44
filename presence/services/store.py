"""Post store: the manifest loaded once and queried from memory.

The store moves through ``uninitialized -> loading -> ready``. ``reset()``
drops the cached posts so the next query reloads the manifest (used after a
rebuild, and between tests).
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from presence.config import Settings, get_settings
from presence.models.post import Post, PostNavigation
from presence.services import queries
from presence.services.http_client import get_shared_client
from presence.services.manifest import sort_posts

logger = logging.getLogger(__name__)

ManifestLoader = Callable[[], Awaitable[Any]]


class ManifestError(Exception):
    """The manifest could not be fetched or is not a valid post list."""


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


def file_loader(path: Path) -> ManifestLoader:
    """Loader reading the manifest artifact from the local filesystem."""

    async def load() -> Any:
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return json.loads(text)
        except FileNotFoundError as e:
            raise ManifestError(f"Manifest not found at {path}") from e
        except (OSError, ValueError) as e:
            raise ManifestError(f"Could not read manifest {path}: {e}") from e

    return load


def url_loader(url: str) -> ManifestLoader:
    """Loader fetching the manifest over HTTP, the way the browser does."""

    async def load() -> Any:
        client = get_shared_client()
        try:
            resp = await client.get(url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise ManifestError(f"Could not fetch manifest from {url}: {e}") from e
        except ValueError as e:
            raise ManifestError(f"Manifest at {url} is not valid JSON") from e

    return load


def parse_manifest(data: Any) -> list[Post]:
    """Validate raw manifest JSON into newest-first posts."""
    if not isinstance(data, list):
        raise ManifestError(
            f"Manifest must be a JSON array, got {type(data).__name__}"
        )
    try:
        posts = [Post.model_validate(item) for item in data]
    except ValidationError as e:
        raise ManifestError(f"Invalid post in manifest: {e}") from e
    return sort_posts(posts)


class PostStore:
    """In-memory post cache with an explicit load lifecycle.

    Usage::

        store = PostStore(file_loader(Path("public/posts.json")))
        posts = await store.get_all_posts()  # loads on first use
        store.reset()                         # next call reloads
    """

    def __init__(self, loader: ManifestLoader) -> None:
        self._loader = loader
        self._posts: list[Post] | None = None
        self._state = StoreState.UNINITIALIZED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> StoreState:
        return self._state

    async def load(self) -> list[Post]:
        """Load the manifest if needed. Concurrent callers share one fetch.

        Raises:
            ManifestError: If loading fails; the store stays uninitialized.
        """
        if self._posts is not None:
            return self._posts

        async with self._lock:
            if self._posts is not None:
                return self._posts
            self._state = StoreState.LOADING
            try:
                posts = parse_manifest(await self._loader())
            except ManifestError:
                self._state = StoreState.UNINITIALIZED
                logger.warning("Post manifest load failed", exc_info=True)
                raise
            self._posts = posts
            self._state = StoreState.READY
            logger.info("Loaded %d post(s) from manifest", len(posts))
            return posts

    def reset(self) -> None:
        """Forget cached posts; the next query reloads the manifest."""
        self._posts = None
        self._state = StoreState.UNINITIALIZED

    async def get_all_posts(self) -> list[Post]:
        return list(await self.load())

    async def get_post_by_slug(self, slug: str) -> Post | None:
        return queries.find_post(await self.load(), slug)

    async def get_all_tags(self) -> list[str]:
        return queries.all_tags(await self.load())

    async def get_posts_by_tag(self, tag: str) -> list[Post]:
        return queries.posts_by_tag(await self.load(), tag)

    async def get_recent_posts(
        self, count: int = queries.DEFAULT_RECENT_COUNT
    ) -> list[Post]:
        return queries.recent_posts(await self.load(), count)

    async def search_posts(self, query: str) -> list[Post]:
        return queries.search_posts(await self.load(), query)

    async def get_post_navigation(self, slug: str) -> PostNavigation:
        return queries.post_navigation(await self.load(), slug)

    async def get_related_posts(
        self, slug: str, limit: int = queries.DEFAULT_RELATED_LIMIT
    ) -> list[Post]:
        return queries.related_posts(await self.load(), slug, limit)


def create_store(settings: Settings) -> PostStore:
    if settings.manifest_url:
        return PostStore(url_loader(settings.manifest_url))
    return PostStore(file_loader(settings.manifest_path))


# Lazy singleton, lives for the process lifetime
_store: PostStore | None = None


def get_post_store() -> PostStore:
    """Return the shared PostStore, creating it on first call."""
    global _store
    if _store is None:
        _store = create_store(get_settings())
    return _store
