import pytest
from fastapi.testclient import TestClient

import app as app_module
from app import app, get_fetcher, get_settings
from config import ConfigStore, FetchConfig, Settings
from conftest import BASE_URL, LISTING_PAGE, FakeFetcher
from errors import UpstreamBlocked, UpstreamUnavailable

SETTINGS = Settings(base_url=BASE_URL, fetch=FetchConfig(proxy_endpoints=("https://relay.test/?u={url}",)))


@pytest.fixture
def serve():
    """Factory that wires a FakeFetcher into the app and returns (TestClient, fetcher)."""
    def _serve(pages=None, error=None):
        fetcher = FakeFetcher(pages, error)
        app.dependency_overrides[get_fetcher] = lambda: fetcher
        app.dependency_overrides[get_settings] = lambda: SETTINGS
        return TestClient(app), fetcher

    yield _serve
    app.dependency_overrides.clear()


@pytest.fixture
def store(monkeypatch):
    fresh = ConfigStore(SETTINGS)
    monkeypatch.setattr(app_module, "config_store", fresh)
    return fresh


def test_root_lists_endpoints(serve):
    client, _ = serve()
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Drakorkita Scraper API"
    assert body["endpoints"]["video"].startswith("/api/drakorkita/video/")


def test_health(serve):
    client, _ = serve()
    assert client.get("/health").json() == {"status": "alive"}


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------


def test_video_success(serve, video_pages):
    client, _ = serve(video_pages)

    response = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy", params={"episode": 0, "resolution": 1})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["video_url"] == "https://a/2.mp4"
    assert data["episode"] == 1
    assert data["total_episodes"] == 3
    assert data["total_resolutions"] == 2
    assert data["variants"] == ["https://a/1.mp4", "https://a/2.mp4"]
    assert data["headers_required"] == {
        "referer": BASE_URL,
        "origin": BASE_URL,
        "user-agent": "test-agent",
    }


def test_video_defaults_to_first_episode_and_resolution(serve, video_pages):
    client, _ = serve(video_pages)

    data = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy").json()["data"]

    assert data["episode"] == 1
    assert data["resolution"] == 0
    assert data["video_url"] == "https://a/1.mp4"


def test_video_episode_out_of_range(serve, video_pages):
    client, fetcher = serve(video_pages)

    response = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy", params={"episode": 3})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Invalid episode. 3 episodes available",
        "code": 400,
        "details": None,
    }
    assert "/api/server.php" not in fetcher.requested_paths()


def test_video_resolution_out_of_range(serve, video_pages):
    client, _ = serve(video_pages)

    response = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy", params={"resolution": 2})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid resolution. 2 resolutions available"


def test_video_invalid_endpoint(serve):
    client, fetcher = serve()

    response = client.get("/api/drakorkita/video/bad slug!")

    assert response.status_code == 400
    assert fetcher.requested == []


def test_video_not_found(serve, video_pages):
    video_pages["/detail/taxi-driver-2025-v1cy"] = "<html><body>no pagination here</body></html>"
    client, _ = serve(video_pages)

    response = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy")

    assert response.status_code == 404
    assert response.json()["error"] == "Video data not found"



def test_video_malformed_selected_variant(serve, video_pages):
    video_pages["/api/video.php"] = {"file": "'https://a/1.mp4','https//cdn broken/2.mp4'"}
    client, _ = serve(video_pages)

    response = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy", params={"resolution": 1})

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["code"] == 404
    assert body["details"] == "https//cdn broken/2.mp4"


def test_video_url_is_returned_verbatim(serve, video_pages):
    video_pages["/api/video.php"] = {"file": "'https://CDN.Test:443/v/ep1.m3u8?token=abc'"}
    client, _ = serve(video_pages)

    data = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy").json()["data"]

    assert data["video_url"] == "https://CDN.Test:443/v/ep1.m3u8?token=abc"


@pytest.mark.parametrize(
    "error, status",
    [
        (UpstreamBlocked("https://drakor.test/detail/x", 10.0, []), 503),
        (UpstreamUnavailable("https://drakor.test/detail/x", 10.0, []), 502),
    ],
)
def test_video_upstream_failures(serve, error, status):
    client, _ = serve(error=error)

    response = client.get("/api/drakorkita/video/taxi-driver-2025-v1cy")

    assert response.status_code == status
    body = response.json()
    assert body["success"] is False
    assert body["code"] == status
    assert body["details"] == "Attempts: no path enabled"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def test_series_listing(serve):
    client, fetcher = serve({"/all": LISTING_PAGE})

    response = client.get("/api/drakorkita/series", params={"page": 3})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "success"
    assert body["page"] == 3
    assert [card["endpoint"] for card in body["datas"]] == ["taxi-driver-2025-v1cy", "positively-yours-2026-eot"]
    assert "page=3" in fetcher.requested[0]


def test_search_echoes_keyword(serve):
    client, _ = serve({"/all": LISTING_PAGE})

    body = client.get("/api/drakorkita/search", params={"s": "taxi"}).json()

    assert body["keyword"] == "taxi"
    assert len(body["datas"]) == 2


def test_listing_page_must_be_positive(serve):
    client, fetcher = serve({"/all": LISTING_PAGE})

    assert client.get("/api/drakorkita/movie", params={"page": 0}).status_code == 422
    assert fetcher.requested == []


def test_empty_listing_is_404(serve):
    client, _ = serve({"/all": "<html><body>nothing</body></html>"})

    response = client.get("/api/drakorkita/series/ongoing")

    assert response.status_code == 404
    assert response.json()["success"] is False


# ---------------------------------------------------------------------------
# Config and connectivity
# ---------------------------------------------------------------------------


def test_get_config(serve):
    client, _ = serve()

    body = client.get("/api/drakorkita/config").json()

    assert body["base_url"] == BASE_URL
    assert body["max_retries"] == 3
    assert body["proxy_endpoints"] == ["https://relay.test/?u={url}"]


def test_put_config_updates_store(serve, store):
    client, _ = serve()
    before = store.snapshot()

    response = client.put("/api/drakorkita/config", json={"max_retries": 5, "proxy_enabled": False, "base_url": "mirror.test/"})

    assert response.status_code == 200
    body = response.json()
    assert body["max_retries"] == 5
    assert body["proxy_enabled"] is False
    assert body["base_url"] == "https://mirror.test"
    assert store.snapshot().fetch.max_retries == 5
    assert before.fetch.max_retries == 3


def test_put_config_rejects_bad_template(serve, store):
    client, _ = serve()
    before = store.snapshot()

    response = client.put("/api/drakorkita/config", json={"proxy_endpoints": ["https://relay.test/"]})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == 400
    assert "has no {url} placeholder" in body["error"]
    assert store.snapshot() is before


def test_put_config_validates_ranges(serve, store):
    client, _ = serve()

    assert client.put("/api/drakorkita/config", json={"max_retries": 0}).status_code == 422


def test_connection_probe(serve):
    client, _ = serve({"/": LISTING_PAGE})

    body = client.get("/api/drakorkita/test").json()

    assert body["success"] is True
    assert body["source"] == "direct"
    assert body["status_code"] == 200


def test_connection_probe_reports_failure(serve):
    client, _ = serve(error=UpstreamBlocked(BASE_URL, 5.0, []))

    response = client.get("/api/drakorkita/test")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("Failed to fetch")


def test_debug_reports_config_and_env_overrides(serve, monkeypatch):
    monkeypatch.setenv("FETCH_MAX_RETRIES", "4")
    monkeypatch.delenv("DRAKORKITA_URL", raising=False)
    client, _ = serve()

    body = client.get("/api/drakorkita/debug").json()

    assert body["config"]["base_url"] == BASE_URL
    assert "FETCH_MAX_RETRIES" in body["env_overrides"]
    assert "DRAKORKITA_URL" not in body["env_overrides"]
