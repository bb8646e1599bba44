"""Application configuration via environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    debug: bool = False
    environment: str = "development"

    # CORS (the SPA fetches the manifest cross-origin in development)
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:4173",
        "https://publicpresence.org",
    ]

    # Content
    content_dir: Path = Path("content/posts")
    template_filename: str = "POST_TEMPLATE.md"
    default_author: str = "Public Presence"

    # Build artifacts
    output_dir: Path = Path("public")
    manifest_filename: str = "posts.json"
    feed_filename: str = "rss.xml"

    # Site metadata (RSS channel)
    site_url: str = "https://publicpresence.org"
    site_title: str = "Public Presence"
    site_description: str = (
        "Personal blog focused on sustainability science, public planning, "
        "policy, and public transportation"
    )
    site_language: str = "en-us"

    # Watch-rebuild loop
    debounce_seconds: float = 5.0
    build_command: str = ""  # empty -> `python -m presence build`
    site_build_command: str = ""  # e.g. "npm run build", runs after the manifest build
    build_timeout_seconds: float = 600.0
    log_file: Path | None = None

    # Post store: where the query API reads the manifest from.
    # Empty -> the local artifact at output_dir/manifest_filename.
    manifest_url: str = ""

    # Protects POST /api/posts/reload
    reload_api_key: str = ""

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / self.manifest_filename

    @property
    def feed_path(self) -> Path:
        return self.output_dir / self.feed_filename


@lru_cache
def get_settings() -> Settings:
    return Settings()
