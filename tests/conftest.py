import json
from urllib.parse import urlparse

import pytest

from errors import UpstreamUnavailable
from fetcher import FetchResult, MIN_BODY_BYTES

BASE_URL = "https://drakor.test"

# Padding keeps HTML fixtures above the fetcher's plausibility threshold
PADDING = "<p>" + "Nonton drama Korea subtitle Indonesia. " * 5 + "</p>"

DETAIL_PAGE = f"""
<html><body>
<h1>Drakorkita</h1>
<div class="pagination">
  <a onclick="loadServer('1','first')">1</a>
  <a onclick="loadEpisodes('MOV42','tag_movie')">All</a>
</div>
{PADDING}
</body></html>
"""

EPISODE_LIST = {
    "episode_lists": (
        "<p><a onclick=\"loadVideo('EP1','tag1')\">1</a></p>"
        "<p><a onclick=\"loadVideo('EP2','tag2')\">2</a></p>"
        "<p><a>3</a></p>"
    )
}

SERVER = {"data": {"qua": "HD", "server_id": "7"}}

VIDEO = {"file": "'https://a/1.mp4','https://a/2.mp4'"}

LISTING_PAGE = f"""
<html><body>
<div class="listupd">
  <a href="/detail/taxi-driver-2025-v1cy">
    <img data-src="/poster/taxi.jpg">
    <h3>Taxi Driver</h3><span>E12/16</span><span>8.5</span>
  </a>
  <a href="https://drakor.test/detail/positively-yours-2026-eot">
    <img src="https://cdn.test/p.jpg"><span>47:04</span>
  </a>
  <a href="/detail/taxi-driver-2025-v1cy">duplicate</a>
</div>
{PADDING}
</body></html>
"""


class FakeFetcher:
    """Serves canned bodies keyed by URL path; records every requested URL."""

    user_agent = "test-agent"

    def __init__(self, pages=None, error=None):
        self.pages = pages or {}
        self.error = error
        self.requested = []

    async def fetch(self, url, *, min_body_bytes=MIN_BODY_BYTES):
        self.requested.append(url)
        if self.error:
            raise self.error
        path = urlparse(url).path or "/"
        if path not in self.pages:
            raise UpstreamUnavailable(url, 0.0, [])
        body = self.pages[path]
        if not isinstance(body, str):
            body = json.dumps(body)
        return FetchResult(
            url=url,
            status_code=200,
            body=body.encode(),
            content_type=None,
            elapsed_ms=1.0,
            source="direct",
        )

    def requested_paths(self):
        return [urlparse(url).path for url in self.requested]


@pytest.fixture
def video_pages():
    return {
        "/detail/taxi-driver-2025-v1cy": DETAIL_PAGE,
        "/api/episode.php": EPISODE_LIST,
        "/api/server.php": SERVER,
        "/api/video.php": VIDEO,
    }


@pytest.fixture
def make_fetcher():
    return FakeFetcher
