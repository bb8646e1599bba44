"""Post query endpoints over the built manifest."""

import logging

from fastapi import APIRouter, Header, HTTPException, Path, Query

from presence.config import get_settings
from presence.models.post import Post, PostList, PostNavigation, TagList
from presence.services.store import get_post_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["posts"])


def _post_list(posts: list[Post]) -> PostList:
    return PostList(posts=posts, total=len(posts))


@router.get("/posts", response_model=PostList)
async def list_posts(
    tag: str | None = Query(default=None, description="Only posts carrying this tag"),
):
    """All posts, newest first, optionally filtered by tag."""
    store = get_post_store()
    if tag is not None:
        return _post_list(await store.get_posts_by_tag(tag))
    return _post_list(await store.get_all_posts())


@router.get("/posts/recent", response_model=PostList)
async def recent_posts(count: int = Query(default=5, ge=1, le=100)):
    return _post_list(await get_post_store().get_recent_posts(count))


@router.get("/posts/search", response_model=PostList)
async def search_posts(q: str = Query(..., max_length=200)):
    """Case-insensitive search over title, excerpt, content and tags."""
    return _post_list(await get_post_store().search_posts(q))


@router.post("/posts/reload")
async def reload_posts(x_reload_key: str = Header(default="")):
    """Drop the cached manifest so the next request reads the new build."""
    settings = get_settings()
    if not settings.reload_api_key or x_reload_key != settings.reload_api_key:
        raise HTTPException(status_code=403, detail="Invalid reload key")

    store = get_post_store()
    store.reset()
    posts = await store.load()
    logger.info("Manifest reloaded via API (%d posts)", len(posts))
    return {"status": "reloaded", "posts": len(posts)}


@router.get("/posts/{slug}", response_model=Post)
async def get_post(slug: str = Path(..., min_length=1, max_length=200)):
    post = await get_post_store().get_post_by_slug(slug)
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.get("/posts/{slug}/navigation", response_model=PostNavigation)
async def get_post_navigation(slug: str = Path(..., min_length=1, max_length=200)):
    """Previous (newer) and next (older) posts."""
    store = get_post_store()
    if await store.get_post_by_slug(slug) is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return await store.get_post_navigation(slug)


@router.get("/posts/{slug}/related", response_model=PostList)
async def get_related_posts(
    slug: str = Path(..., min_length=1, max_length=200),
    limit: int = Query(default=3, ge=1, le=20),
):
    """Posts sharing tags with this one, most shared tags first."""
    store = get_post_store()
    if await store.get_post_by_slug(slug) is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return _post_list(await store.get_related_posts(slug, limit))


@router.get("/tags", response_model=TagList)
async def list_tags():
    tags = await get_post_store().get_all_tags()
    return TagList(tags=tags, total=len(tags))
