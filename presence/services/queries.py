"""Queries over a newest-first list of posts.

Everything here is a linear scan; the corpus is tens to low hundreds of
posts.
"""

from presence.models.post import Post, PostNavigation

DEFAULT_RECENT_COUNT = 5
DEFAULT_RELATED_LIMIT = 3


def find_post(posts: list[Post], slug: str) -> Post | None:
    for post in posts:
        if post.slug == slug:
            return post
    return None


def recent_posts(posts: list[Post], count: int = DEFAULT_RECENT_COUNT) -> list[Post]:
    return posts[: max(count, 0)]


def all_tags(posts: list[Post]) -> list[str]:
    """Every tag used by any post, deduplicated and sorted alphabetically."""
    return sorted({tag for post in posts for tag in post.tags})


def posts_by_tag(posts: list[Post], tag: str) -> list[Post]:
    return [post for post in posts if tag in post.tags]


def search_posts(posts: list[Post], query: str) -> list[Post]:
    """Case-insensitive substring match on title, excerpt, content and tags.

    The query is used as given; an empty query matches every post.
    """
    term = query.casefold()

    def matches(post: Post) -> bool:
        return (
            term in post.title.casefold()
            or term in post.excerpt.casefold()
            or term in post.content.casefold()
            or any(term in tag.casefold() for tag in post.tags)
        )

    return [post for post in posts if matches(post)]


def post_navigation(posts: list[Post], slug: str) -> PostNavigation:
    """Previous (newer) and next (older) neighbours of *slug*.

    An unknown slug has no neighbours.
    """
    for index, post in enumerate(posts):
        if post.slug == slug:
            return PostNavigation(
                previous=posts[index - 1] if index > 0 else None,
                next=posts[index + 1] if index < len(posts) - 1 else None,
            )
    return PostNavigation()


def related_posts(
    posts: list[Post], slug: str, limit: int = DEFAULT_RELATED_LIMIT
) -> list[Post]:
    """Other posts sharing at least one tag with *slug*.

    Ordered by number of shared tags, then newest first.
    """
    current = find_post(posts, slug)
    if current is None or not current.tags:
        return []

    current_tags = set(current.tags)
    scored = []
    for post in posts:
        if post.slug == slug:
            continue
        shared = len(current_tags.intersection(post.tags))
        if shared:
            scored.append((shared, post))

    # posts is already newest first and sort is stable
    scored.sort(key=lambda item: item[0], reverse=True)
    return [post for _, post in scored[: max(limit, 0)]]
