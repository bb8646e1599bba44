"""Tests for the HTTP API over the built manifest."""

import httpx
import pytest

from presence.main import app
from presence.services.manifest import build_site


@pytest.fixture
def client():
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def built_site(mock_settings, write_post):
    write_post("a", title="A", date="2024-01-01", tags=["x"])
    write_post(
        "b",
        body="Cities need a sustainability plan.\n",
        title="B",
        date="2024-06-01",
        tags=["x", "y"],
        excerpt="Planning notes",
    )
    write_post("c", title="C", date="2024-03-01", tags=["z"])
    return build_site(mock_settings)


async def test_list_posts_newest_first(client, built_site):
    async with client:
        resp = await client.get("/api/posts")

    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert [p["slug"] for p in data["posts"]] == ["b", "c", "a"]
    assert data["posts"][0]["readingTime"] == 1


async def test_list_posts_by_tag(client, built_site):
    async with client:
        resp = await client.get("/api/posts", params={"tag": "y"})

    assert [p["slug"] for p in resp.json()["posts"]] == ["b"]


async def test_recent_posts(client, built_site):
    async with client:
        resp = await client.get("/api/posts/recent", params={"count": 2})
        bad = await client.get("/api/posts/recent", params={"count": 0})

    assert [p["slug"] for p in resp.json()["posts"]] == ["b", "c"]
    assert bad.status_code == 422


async def test_search(client, built_site):
    async with client:
        resp = await client.get("/api/posts/search", params={"q": "SUSTAINABILITY"})
        empty = await client.get("/api/posts/search", params={"q": ""})

    assert [p["slug"] for p in resp.json()["posts"]] == ["b"]
    assert empty.json()["total"] == 3


async def test_get_post(client, built_site):
    async with client:
        resp = await client.get("/api/posts/a")
        missing = await client.get("/api/posts/nope")

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "A"
    assert body["author"] == "Test Author"
    assert body["tags"] == ["x"]
    assert missing.status_code == 404


async def test_navigation(client, built_site):
    async with client:
        resp = await client.get("/api/posts/c/navigation")
        newest = await client.get("/api/posts/b/navigation")
        missing = await client.get("/api/posts/nope/navigation")

    nav = resp.json()
    assert nav["previous"]["slug"] == "b"
    assert nav["next"]["slug"] == "a"
    assert newest.json()["previous"] is None
    assert missing.status_code == 404


async def test_related(client, built_site):
    async with client:
        resp = await client.get("/api/posts/a/related")
        missing = await client.get("/api/posts/nope/related")

    assert [p["slug"] for p in resp.json()["posts"]] == ["b"]
    assert missing.status_code == 404


async def test_tags(client, built_site):
    async with client:
        resp = await client.get("/api/tags")

    assert resp.json() == {"tags": ["x", "y", "z"], "total": 3}


async def test_reload_requires_key(client, built_site):
    async with client:
        missing = await client.post("/api/posts/reload")
        wrong = await client.post("/api/posts/reload", headers={"X-Reload-Key": "nope"})

    assert missing.status_code == 403
    assert wrong.status_code == 403


async def test_reload_picks_up_new_build(client, built_site, mock_settings, write_post):
    async with client:
        before = await client.get("/api/posts")
        write_post("d", title="D", date="2024-07-01")
        build_site(mock_settings)

        stale = await client.get("/api/posts")
        reloaded = await client.post(
            "/api/posts/reload", headers={"X-Reload-Key": "test-reload-key"}
        )
        after = await client.get("/api/posts")

    assert before.json()["total"] == 3
    assert stale.json()["total"] == 3
    assert reloaded.json() == {"status": "reloaded", "posts": 4}
    assert after.json()["posts"][0]["slug"] == "d"


async def test_missing_manifest_is_503(client, mock_settings):
    async with client:
        resp = await client.get("/api/posts")

    assert resp.status_code == 503
    assert resp.json() == {"detail": "Post manifest unavailable"}


async def test_serves_built_artifacts(client, built_site):
    async with client:
        manifest = await client.get("/posts.json")
        feed = await client.get("/rss.xml")

    assert manifest.status_code == 200
    assert [p["slug"] for p in manifest.json()] == ["b", "c", "a"]
    assert feed.status_code == 200
    assert feed.headers["content-type"].startswith("application/rss+xml")
    assert "<title>Test Blog</title>" in feed.text


async def test_artifacts_404_before_build(client, mock_settings):
    async with client:
        manifest = await client.get("/posts.json")
        feed = await client.get("/rss.xml")

    assert manifest.status_code == 404
    assert feed.status_code == 404


async def test_health_ok(client, built_site):
    async with client:
        resp = await client.get("/api/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["checks"] == {"content": "ok", "manifest": "ok"}


async def test_health_fails_without_manifest(client, mock_settings):
    async with client:
        resp = await client.get("/api/health")

    assert resp.status_code == 503
    assert resp.json()["status"] == "fail"


async def test_health_degraded_without_content(client, built_site, mock_settings):
    for path in mock_settings.content_dir.iterdir():
        path.unlink()
    mock_settings.content_dir.rmdir()

    async with client:
        resp = await client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"


async def test_health_is_cached(client, built_site, mocker):
    spy = mocker.patch("presence.main._check_content", return_value="ok")
    async with client:
        await client.get("/api/health")
        await client.get("/api/health")

    assert spy.call_count == 1
