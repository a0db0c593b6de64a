# models.py
from pydantic import BaseModel, HttpUrl, Field
from typing import Dict, List, Optional

class DramaCard(BaseModel):
    title: str = Field(..., description="Drama or movie title")
    endpoint: str = Field(..., description="Upstream slug, usable with /detail/{endpoint} and /video/{endpoint}")
    url: HttpUrl = Field(..., description="Detail page URL")
    image: Optional[str] = Field(default=None, description="Poster URL")
    rating: Optional[str] = Field(default=None, description="Rating shown on the card")
    episode_info: Optional[str] = Field(default=None, description="Episode progress label, e.g. 'E12/16'")

    class Config:
        from_attributes = True

class Genre(BaseModel):
    name: str = Field(..., description="Genre name")
    endpoint: str = Field(..., description="Genre slug, usable with /genres/{endpoint}")

    class Config:
        from_attributes = True

class DramaDetail(BaseModel):
    title: str = Field(..., description="Title")
    endpoint: str = Field(..., description="Upstream slug")
    url: HttpUrl = Field(..., description="Detail page URL")
    alternative_title: Optional[str] = Field(None, description="Original (Korean) title")
    image: Optional[str] = Field(None, description="Poster URL")
    synopsis: Optional[str] = Field(None, description="Synopsis")
    type: Optional[str] = Field(None, description="Series or movie")
    status: Optional[str] = Field(None, description="Airing status")
    episode_count: Optional[str] = Field(None, description="Announced episode count")
    first_air_date: Optional[str] = Field(None, description="First air date")
    score: Optional[str] = Field(None, description="Score")
    genres: List[str] = Field(default_factory=list, description="List of genres")
    cast: List[str] = Field(default_factory=list, description="List of cast members")
    directors: List[str] = Field(default_factory=list, description="List of directors")
    countries: List[str] = Field(default_factory=list, description="Production countries")
    info: Dict[str, str] = Field(default_factory=dict, description="Every 'key : value' info row on the page")

    class Config:
        from_attributes = True

class ListingResponse(BaseModel):
    message: str = Field("success", description="Status message")
    page: Optional[int] = Field(None, description="Requested page, when the listing is paginated")
    keyword: Optional[str] = Field(None, description="Search keyword")
    datas: List[DramaCard] = Field(default_factory=list, description="Cards found on the page")

class GenreListResponse(BaseModel):
    message: str = Field("success", description="Status message")
    datas: List[Genre] = Field(default_factory=list, description="Genres")

class DetailResponse(BaseModel):
    message: str = Field("success", description="Status message")
    data: DramaDetail

class PlaybackHeaders(BaseModel):
    referer: str = Field(..., description="Referer the video host expects")
    origin: str = Field(..., description="Origin the video host expects")
    user_agent: str = Field(..., alias="user-agent", description="User agent used while resolving")

    class Config:
        populate_by_name = True

class VideoData(BaseModel):
    episode: int = Field(..., ge=1, description="One-based episode number")
    total_episodes: int = Field(..., description="Number of episodes listed upstream")
    resolution: int = Field(..., ge=0, description="Zero-based resolution index that was selected")
    total_resolutions: int = Field(..., description="Number of variants offered for the episode")
    video_url: str = Field(..., description="Playable video URL, exactly as extracted")
    variants: List[str] = Field(default_factory=list, description="Every variant URL, in upstream order")
    headers_required: PlaybackHeaders

class VideoResponse(BaseModel):
    success: bool = Field(True, description="Always true on success")
    data: VideoData

class FetchSettings(BaseModel):
    base_url: str = Field(..., description="Upstream base URL")
    resolve_deadline_ms: int = Field(..., description="Budget for a whole video resolution")
    timeout_ms: int = Field(..., description="Per-request HTTP timeout")
    max_retries: int = Field(..., description="Direct attempts before falling back to proxies")
    retry_delay_ms: int = Field(..., description="Linear backoff unit between direct attempts")
    direct_enabled: bool = Field(..., description="Try the upstream directly")
    proxy_enabled: bool = Field(..., description="Fall back to public relays")
    proxy_endpoints: List[str] = Field(default_factory=list, description="Relay templates, '{url}' is replaced by the target")
    proxy_delay_ms: int = Field(..., description="Pause between relay attempts")

class FetchSettingsUpdate(BaseModel):
    base_url: Optional[str] = Field(None, description="Upstream base URL")
    resolve_deadline_ms: Optional[int] = Field(None, gt=0, description="Budget for a whole video resolution")
    timeout_ms: Optional[int] = Field(None, gt=0, description="Per-request HTTP timeout")
    max_retries: Optional[int] = Field(None, ge=1, le=10, description="Direct attempts before falling back to proxies")
    retry_delay_ms: Optional[int] = Field(None, ge=0, description="Linear backoff unit between direct attempts")
    direct_enabled: Optional[bool] = Field(None, description="Try the upstream directly")
    proxy_enabled: Optional[bool] = Field(None, description="Fall back to public relays")
    proxy_endpoints: Optional[List[str]] = Field(None, description="Relay templates, '{url}' is replaced by the target")
    proxy_delay_ms: Optional[int] = Field(None, ge=0, description="Pause between relay attempts")

class ConnectionReport(BaseModel):
    success: bool = Field(..., description="Whether the upstream home page could be fetched")
    base_url: str = Field(..., description="Upstream base URL")
    source: Optional[str] = Field(None, description="'direct' or the relay that answered")
    status_code: Optional[int] = Field(None, description="Upstream HTTP status")
    elapsed_ms: Optional[float] = Field(None, description="Time spent on the successful attempt")
    content_length: Optional[int] = Field(None, description="Body size in bytes")
    error: Optional[str] = Field(None, description="Failure reason")

class ErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false")
    error: str = Field(..., description="Error message")
    code: Optional[int] = Field(None, description="HTTP status code")
    details: Optional[str] = Field(None, description="Additional error details")

    class Config:
        from_attributes = True

class DebugReport(BaseModel):
    config: FetchSettings = Field(..., description="Configuration in effect")
    env_overrides: List[str] = Field(default_factory=list, description="Configuration variables set in the environment")
