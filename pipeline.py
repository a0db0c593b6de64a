# pipeline.py
"""
Resolution of (series, episode, resolution) into a playable video URL.

The upstream hides the video behind five dependent requests; every step needs
identifiers that only the previous response carries, so the chain is strictly
sequential:

1. /detail/{endpoint}                         -> movie id + tag (pagination onclick)
2. /api/episode.php?movie_id=&tag=            -> episode anchors
3. selected anchor                            -> episode id + tag (onclick)
4. /api/server.php?episode_id=&tag=           -> quality + server id
5. /api/video.php?id=&qua=&server_id=&tag=    -> comma-joined variant list
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from errors import (
    EpisodeIndexOutOfRange,
    InvalidEndpoint,
    ParseFailure,
    ResolutionIndexOutOfRange,
    ResolutionTimeout,
    VideoDataNotFound,
)
from fetcher import FetchResult, ResilientFetcher
from onclick import IdentifierPair, parse_onclick
from url_utils import SLUG_RE, compose_url, is_well_formed

logger = logging.getLogger(__name__)

# API responses are small JSON documents, any non-empty body is plausible
API_MIN_BODY_BYTES = 0


@dataclass(frozen=True)
class ResolutionRequest:
    endpoint: str
    episode_index: int = 0
    resolution_index: int = 0


@dataclass(frozen=True)
class EpisodeRef:
    index: int
    pair: IdentifierPair


@dataclass(frozen=True)
class ServerDescriptor:
    quality: str
    server_id: str


@dataclass(frozen=True)
class VideoResolution:
    endpoint: str
    episode: int
    total_episodes: int
    resolution: int
    total_resolutions: int
    video_url: str
    variants: Tuple[str, ...]
    headers_required: Dict[str, str] = field(default_factory=dict)


def clean_variant(entry: str) -> str:
    """Cut everything before the first "https", drop quotes, trim."""
    start = entry.find('https')
    if start == -1:
        return ''
    return re.sub(r'[\'"]', '', entry[start:]).strip()


def split_variants(file_field: str) -> Tuple[str, ...]:
    return tuple(clean_variant(entry) for entry in file_field.split(','))


def select_variant(variants: Tuple[str, ...], resolution_index: int) -> str:
    if resolution_index < 0 or resolution_index >= len(variants):
        raise ResolutionIndexOutOfRange(resolution_index, len(variants))
    return variants[resolution_index] or variants[0]


def _load_json(result: FetchResult, step: str) -> dict:
    try:
        payload = result.json()
    except ValueError as e:
        raise ParseFailure(f"{step} returned invalid JSON", details=str(e))
    if not isinstance(payload, dict):
        raise ParseFailure(f"{step} returned {type(payload).__name__}, expected an object")
    return payload


class VideoResolver:
    def __init__(
        self,
        fetcher: ResilientFetcher,
        base_url: str,
        *,
        parser: Callable[[str], IdentifierPair] = parse_onclick,
        deadline: Optional[float] = None,
    ):
        self.fetcher = fetcher
        self.base_url = base_url
        self.parser = parser
        self.deadline = deadline

    async def resolve(self, request: ResolutionRequest) -> VideoResolution:
        """Run the whole chain, bounded by `deadline` seconds when set."""
        if not request.endpoint or not SLUG_RE.match(request.endpoint):
            raise InvalidEndpoint(f"Invalid endpoint: {request.endpoint!r}")

        if self.deadline is None:
            return await self._resolve(request)
        try:
            return await asyncio.wait_for(self._resolve(request), timeout=self.deadline)
        except asyncio.TimeoutError:
            logger.error(f"Resolution of {request.endpoint} exceeded {self.deadline:.0f}s")
            raise ResolutionTimeout(f"Video resolution for {request.endpoint} timed out after {self.deadline:.0f}s")

    async def _resolve(self, request: ResolutionRequest) -> VideoResolution:
        logger.info(
            f"Resolving video for {request.endpoint}, episode index {request.episode_index}, "
            f"resolution index {request.resolution_index}"
        )
        movie = await self.fetch_movie_tokens(request.endpoint)
        episodes = await self.fetch_episodes(movie)

        if request.episode_index < 0 or request.episode_index >= len(episodes):
            raise EpisodeIndexOutOfRange(request.episode_index, len(episodes))
        episode = self.episode_ref(episodes, request.episode_index)

        server = await self.fetch_server(episode.pair)
        variants = await self.fetch_variants(episode.pair, server)

        video_url = select_variant(variants, request.resolution_index)
        if not video_url:
            raise VideoDataNotFound(f"No playable URL for {request.endpoint} episode {request.episode_index + 1}")
        if not is_well_formed(video_url):
            raise VideoDataNotFound(
                f"Malformed video URL for {request.endpoint} episode {request.episode_index + 1}",
                details=video_url,
            )

        logger.info(f"Resolved {request.endpoint} episode {request.episode_index + 1} to {video_url}")
        return VideoResolution(
            endpoint=request.endpoint,
            episode=request.episode_index + 1,
            total_episodes=len(episodes),
            resolution=request.resolution_index,
            total_resolutions=len(variants),
            video_url=video_url,
            variants=variants,
            headers_required=self.playback_headers(),
        )

    # Step 1
    async def fetch_movie_tokens(self, endpoint: str) -> IdentifierPair:
        result = await self.fetcher.fetch(compose_url(self.base_url, f"/detail/{endpoint}"))
        soup = BeautifulSoup(result.text, 'html.parser')
        anchors = soup.select("div.pagination > a")
        onclick = anchors[-1].get('onclick') if anchors else None
        if not onclick:
            raise VideoDataNotFound("Video data not found")
        return self.parser(onclick)

    # Step 2
    async def fetch_episodes(self, movie: IdentifierPair) -> List:
        url = compose_url(self.base_url, "/api/episode.php", {"movie_id": movie.id, "tag": movie.tag})
        payload = _load_json(await self.fetcher.fetch(url, min_body_bytes=API_MIN_BODY_BYTES), "episode list")
        fragment = payload.get('episode_lists')
        if not isinstance(fragment, str):
            raise VideoDataNotFound("Episode list missing from upstream response")
        episodes = BeautifulSoup(fragment, 'html.parser').select("p > a")
        logger.debug(f"Found {len(episodes)} episodes for movie {movie.id}")
        return episodes

    # Step 3
    def episode_ref(self, episodes: List, index: int) -> EpisodeRef:
        onclick = episodes[index].get('onclick')
        if not onclick:
            raise VideoDataNotFound("Episode data not found")
        return EpisodeRef(index=index, pair=self.parser(onclick))

    # Step 4
    async def fetch_server(self, episode: IdentifierPair) -> ServerDescriptor:
        url = compose_url(self.base_url, "/api/server.php", {"episode_id": episode.id, "tag": episode.tag})
        payload = _load_json(await self.fetcher.fetch(url, min_body_bytes=API_MIN_BODY_BYTES), "server descriptor")
        data = payload.get('data')
        if not isinstance(data, dict) or data.get('qua') is None or data.get('server_id') is None:
            raise ParseFailure("Server descriptor missing qua/server_id")
        return ServerDescriptor(quality=str(data['qua']), server_id=str(data['server_id']))

    # Step 5
    async def fetch_variants(self, episode: IdentifierPair, server: ServerDescriptor) -> Tuple[str, ...]:
        url = compose_url(self.base_url, "/api/video.php", {
            "id": episode.id,
            "qua": server.quality,
            "server_id": server.server_id,
            "tag": episode.tag,
        })
        payload = _load_json(await self.fetcher.fetch(url, min_body_bytes=API_MIN_BODY_BYTES), "video file list")
        file_field = payload.get('file')
        if not isinstance(file_field, str) or not file_field:
            raise VideoDataNotFound("Video file list missing from upstream response")
        return split_variants(file_field)

    def playback_headers(self) -> Dict[str, str]:
        return {
            "referer": self.base_url,
            "origin": self.base_url,
            "user-agent": self.fetcher.user_agent,
        }
