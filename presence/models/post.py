"""Post data models."""

import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

WORDS_PER_MINUTE = 200


def reading_time(content: str) -> int:
    """Estimated minutes to read *content* at 200 words per minute, at least 1."""
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


class Post(BaseModel):
    """A single blog post as it appears in the manifest.

    ``readingTime`` is derived from ``content`` on every dump; a value
    present in input data is ignored.
    """

    model_config = ConfigDict(frozen=True)

    slug: str
    title: str
    date: datetime
    excerpt: str = ""
    tags: list[str] = []
    author: str
    content: str

    @field_validator("date")
    @classmethod
    def normalize_date(cls, value: datetime) -> datetime:
        """Store every date as timezone-aware UTC; naive values are taken as UTC."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("tags")
    @classmethod
    def collapse_duplicate_tags(cls, value: list[str]) -> list[str]:
        # dict.fromkeys keeps first-seen order
        return list(dict.fromkeys(value))

    @computed_field(alias="readingTime")  # type: ignore[prop-decorator]
    @property
    def reading_time(self) -> int:
        return reading_time(self.content)

    def to_manifest_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class PostNavigation(BaseModel):
    """Neighbours of a post in newest-first order."""

    previous: Post | None = None
    next: Post | None = None


class TagList(BaseModel):
    tags: list[str]
    total: int


class PostList(BaseModel):
    posts: list[Post]
    total: int
