#  app.py
import logging
from fastapi import FastAPI, APIRouter, Depends, Path, Query, Request
from fastapi.responses import JSONResponse
from httpx import AsyncClient

from config import Settings, config_store, env_overrides
from errors import DrakorkitaError, InvalidConfiguration
from fetcher import ResilientFetcher
from models import (
    ConnectionReport,
    DebugReport,
    DetailResponse,
    ErrorResponse,
    FetchSettings,
    FetchSettingsUpdate,
    GenreListResponse,
    ListingResponse,
    PlaybackHeaders,
    VideoData,
    VideoResponse,
)
from pipeline import ResolutionRequest, VideoResolver
from scraper import (
    get_http_client,
    scrape_completed_series,
    scrape_detail,
    scrape_genre,
    scrape_genres,
    scrape_movies,
    scrape_newest_movies,
    scrape_ongoing_series,
    scrape_search,
    scrape_series,
    scrape_updated_series,
)
from url_utils import compose_url

# Configure logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Drakorkita Scraper API",
    description="API to scrape drama and movie listings from Drakorkita and resolve playable episode video URLs.",
    version="1.0.0"
)

router = APIRouter(prefix="/api/drakorkita")

UPSTREAM_ERRORS = {
    502: {"model": ErrorResponse, "description": "Upstream unreachable through every direct and proxy path"},
    503: {"model": ErrorResponse, "description": "Upstream blocked every path (HTTP 403/429)"},
}

LISTING_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid page or filter"},
    404: {"model": ErrorResponse, "description": "No titles found"},
    **UPSTREAM_ERRORS,
}

# Dependencies
def get_settings() -> Settings:
    return config_store.snapshot()

async def get_fetcher(
    client: AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings)
) -> ResilientFetcher:
    return ResilientFetcher(client, settings.fetch)

@app.exception_handler(DrakorkitaError)
async def drakorkita_error_handler(request: Request, exc: DrakorkitaError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.url.path} rejected: {exc.message}")
    error = ErrorResponse(error=exc.message, code=exc.status_code, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=error.model_dump())

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Drakorkita Scraper API",
        "version": "1.0.0",
        "endpoints": {
            "series": "/api/drakorkita/series?page={page}",
            "series_updated": "/api/drakorkita/series/updated",
            "series_ongoing": "/api/drakorkita/series/ongoing?page={page}",
            "series_completed": "/api/drakorkita/series/completed?page={page}",
            "movies": "/api/drakorkita/movie?page={page}",
            "movies_newest": "/api/drakorkita/movie/newest",
            "genres": "/api/drakorkita/genres",
            "genre": "/api/drakorkita/genres/{endpoint}?page={page}",
            "search": "/api/drakorkita/search?s={keyword}&page={page}",
            "detail": "/api/drakorkita/detail/{endpoint}",
            "video": "/api/drakorkita/video/{endpoint}?episode={index}&resolution={index}",
            "config": "/api/drakorkita/config",
            "debug": "/api/drakorkita/debug",
            "test": "/api/drakorkita/test"
        },
        "documentation": "/docs"
    }

@app.get("/health", tags=["Root"])
async def health():
    return {"status": "alive"}

@router.get(
    "/series",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get series by page",
    description="Fetch series from {base}/all?media_type=tv&page={page}"
)
async def series_all(
    page: int = Query(1, ge=1, description="Page number to fetch"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_series(fetcher, settings.base_url, page)
    return ListingResponse(page=page, datas=datas)

@router.get(
    "/series/updated",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get recently updated series",
    description="Fetch the updated-series block of the home page"
)
async def series_updated(
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_updated_series(fetcher, settings.base_url)
    return ListingResponse(datas=datas)

@router.get(
    "/series/ongoing",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get ongoing series by page",
    description="Fetch series from {base}/all?status=returning&page={page}"
)
async def ongoing_series(
    page: int = Query(1, ge=1, description="Page number to fetch"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_ongoing_series(fetcher, settings.base_url, page)
    return ListingResponse(page=page, datas=datas)

@router.get(
    "/series/completed",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get completed series by page",
    description="Fetch series from {base}/all?status=ended&page={page}"
)
async def completed_series(
    page: int = Query(1, ge=1, description="Page number to fetch"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_completed_series(fetcher, settings.base_url, page)
    return ListingResponse(page=page, datas=datas)

@router.get(
    "/movie",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get movies by page",
    description="Fetch movies from {base}/all?media_type=movie&page={page}"
)
async def movie_all(
    page: int = Query(1, ge=1, description="Page number to fetch"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_movies(fetcher, settings.base_url, page)
    return ListingResponse(page=page, datas=datas)

@router.get(
    "/movie/newest",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get newest movies",
    description="Fetch the newest-movies block of the home page"
)
async def new_movie(
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_newest_movies(fetcher, settings.base_url)
    return ListingResponse(datas=datas)

@router.get(
    "/genres",
    response_model=GenreListResponse,
    responses=LISTING_RESPONSES,
    summary="Get genres",
    description="Fetch the genre menu of the home page"
)
async def genres(
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_genres(fetcher, settings.base_url)
    return GenreListResponse(datas=datas)

@router.get(
    "/genres/{endpoint}",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Get titles by genre and page",
    description="Fetch titles from {base}/all?genre={endpoint}&page={page}. Example: `/genres/romance?page=2`"
)
async def detail_genres(
    endpoint: str = Path(..., description="Genre slug (e.g., romance, thriller)"),
    page: int = Query(1, ge=1, description="Page number to fetch"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_genre(fetcher, settings.base_url, endpoint.strip().lower(), page)
    return ListingResponse(page=page, datas=datas)

@router.get(
    "/search",
    response_model=ListingResponse,
    responses=LISTING_RESPONSES,
    summary="Search titles",
    description="Search titles through {base}/all?q={s}&page={page}. Example: `?s=taxi driver`"
)
async def search_all(
    s: str = Query(..., min_length=1, description="Search keyword"),
    page: int = Query(1, ge=1, description="Page number to fetch"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    datas = await scrape_search(fetcher, settings.base_url, s, page)
    return ListingResponse(page=page, keyword=s, datas=datas)

@router.get(
    "/detail/{endpoint}",
    response_model=DetailResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid endpoint"},
        **UPSTREAM_ERRORS,
    },
    summary="Get title detail",
    description="Fetch metadata from {base}/detail/{endpoint}. Example: `/detail/taxi-driver-2025-v1cy`"
)
async def detail_all_type(
    endpoint: str = Path(..., description="Upstream slug (e.g., 'taxi-driver-2025-v1cy')"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    data = await scrape_detail(fetcher, settings.base_url, endpoint)
    return DetailResponse(data=data)

@router.get(
    "/video/{endpoint}",
    response_model=VideoResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid endpoint, episode or resolution index"},
        404: {"model": ErrorResponse, "description": "Video data not found in upstream markup"},
        504: {"model": ErrorResponse, "description": "Resolution did not finish in time"},
        **UPSTREAM_ERRORS,
    },
    summary="Resolve an episode to a playable video URL",
    description=(
        "Walk detail page -> episode list -> server -> video file list and return the selected variant. "
        "`episode` and `resolution` are zero-based indices; the returned `episode` is one-based. "
        "Example: `/video/taxi-driver-2025-v1cy?episode=0&resolution=1`"
    )
)
async def get_video_url(
    endpoint: str = Path(..., description="Upstream slug (e.g., 'taxi-driver-2025-v1cy')"),
    episode: int = Query(0, description="Zero-based episode index"),
    resolution: int = Query(0, description="Zero-based resolution index"),
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    resolver = VideoResolver(fetcher, settings.base_url, deadline=settings.resolve_deadline_ms / 1000)
    result = await resolver.resolve(ResolutionRequest(endpoint=endpoint, episode_index=episode, resolution_index=resolution))
    return VideoResponse(data=VideoData(
        episode=result.episode,
        total_episodes=result.total_episodes,
        resolution=result.resolution,
        total_resolutions=result.total_resolutions,
        video_url=result.video_url,
        variants=[variant for variant in result.variants if variant],
        headers_required=PlaybackHeaders(**result.headers_required),
    ))

@router.get(
    "/config",
    response_model=FetchSettings,
    summary="Get fetch configuration",
    description="Current upstream base URL, retry and proxy settings"
)
async def get_config(settings: Settings = Depends(get_settings)):
    return FetchSettings(**settings.to_dict())

@router.put(
    "/config",
    response_model=FetchSettings,
    responses={400: {"model": ErrorResponse, "description": "Invalid configuration value"}},
    summary="Update fetch configuration",
    description="Partially update the configuration. Only the fields present in the body change; the new values apply to requests started afterwards."
)
async def update_config(update: FetchSettingsUpdate):
    changes = {key: value for key, value in update.model_dump(exclude_unset=True).items() if value is not None}
    try:
        settings = config_store.update(**changes)
    except ValueError as e:
        raise InvalidConfiguration(f"Invalid configuration: {e}") from e
    return FetchSettings(**settings.to_dict())

@router.get(
    "/debug",
    response_model=DebugReport,
    summary="Inspect configuration",
    description="Configuration in effect and the environment variables that override its defaults"
)
async def debug_env(settings: Settings = Depends(get_settings)):
    return DebugReport(config=FetchSettings(**settings.to_dict()), env_overrides=env_overrides())

@router.get(
    "/test",
    response_model=ConnectionReport,
    summary="Probe the upstream",
    description="Fetch the upstream home page once through the normal fallback chain and report which path answered"
)
async def test_connection(
    fetcher: ResilientFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings)
):
    try:
        result = await fetcher.fetch(compose_url(settings.base_url))
    except DrakorkitaError as e:
        return ConnectionReport(success=False, base_url=settings.base_url, error=f"{e.message}. {e.details or ''}".strip())
    return ConnectionReport(
        success=True,
        base_url=settings.base_url,
        source=result.source,
        status_code=result.status_code,
        elapsed_ms=round(result.elapsed_ms, 1),
        content_length=len(result.body),
    )

app.include_router(router, tags=["Drakorkita"])
