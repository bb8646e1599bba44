"""Shared fixtures for presence tests."""

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset all module-level singletons and caches between tests."""
    yield

    # 1. Settings LRU cache
    from presence.config import get_settings

    get_settings.cache_clear()

    # 2. Post store singleton
    import presence.services.store as store_mod

    store_mod._store = None

    # 3. HTTP client singleton
    import presence.services.http_client as http_mod

    http_mod._client = None

    # 4. Health check cache
    import presence.main as main_mod

    main_mod._health_cache = None


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    path = tmp_path / "content" / "posts"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def write_post(content_dir: Path):
    """Write a markdown post with frontmatter built from keyword arguments."""

    def _write(
        slug: str,
        body: str = "Some words here.\n",
        suffix: str = ".md",
        **meta,
    ) -> Path:
        lines = ["---"]
        for key, value in meta.items():
            if isinstance(value, list):
                items = ", ".join(f'"{v}"' for v in value)
                lines.append(f"{key}: [{items}]")
            else:
                lines.append(f"{key}: {value}")
        lines.append("---")
        path = content_dir / f"{slug}{suffix}"
        path.write_text("\n".join(lines) + "\n" + body, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def test_settings(tmp_path: Path, content_dir: Path):
    from presence.config import Settings

    return Settings(
        content_dir=content_dir,
        output_dir=tmp_path / "public",
        site_url="https://blog.test",
        site_title="Test Blog",
        site_description="Posts for tests",
        default_author="Test Author",
        reload_api_key="test-reload-key",
        manifest_url="",
        log_file=None,
    )


@pytest.fixture
def mock_settings(monkeypatch, test_settings):
    """Patch get_settings everywhere it was imported by name."""
    from presence.config import get_settings

    get_settings.cache_clear()
    monkeypatch.setattr("presence.config.get_settings", lambda: test_settings)

    # `from presence.config import get_settings` creates a local binding that
    # the presence.config monkeypatch above does not affect
    for mod_path in [
        "presence.main",
        "presence.routers.posts",
        "presence.services.manifest",
        "presence.services.store",
        "presence.cli",
    ]:
        monkeypatch.setattr(f"{mod_path}.get_settings", lambda: test_settings)

    return test_settings
