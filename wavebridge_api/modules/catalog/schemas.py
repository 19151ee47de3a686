"""Pydantic models for the catalog module."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wavebridge_api.modules.catalog.constants import (
    PRIMARY_PLATFORM,
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    UNKNOWN_SINGER,
    UNKNOWN_SONG,
)
from wavebridge_api.modules.catalog.normalizers import (
    normalize_album_name,
    normalize_artist_field,
    normalize_song_name,
)


class Song(BaseModel):
    """Canonical, dialect-independent song record.

    Name, artists and album are normalized on construction, so a ``Song``
    never carries an empty or placeholder title or artist.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Identifier, unique within the source platform")
    name: str = Field(default=UNKNOWN_SONG, description="Display title")
    artist: list[str] = Field(default_factory=lambda: [UNKNOWN_ARTIST], description="Artist names in upstream order")
    album: str = Field(default=UNKNOWN_ALBUM, description="Album title")
    pic_id: str | None = Field(default=None, description="Cover art reference")
    lyric_id: str | None = Field(default=None, description="Lyric reference, defaults to the song id")
    source: str = Field(default=PRIMARY_PLATFORM, description="Originating platform")
    duration: float | None = Field(default=None, description="Track length in seconds when known")
    raw: dict[str, Any] = Field(default_factory=dict, description="Untouched upstream payload")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Accept numeric upstream ids."""
        return str(v) if v is not None else ""

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        """Substitute a placeholder for missing titles."""
        return normalize_song_name(v)

    @field_validator("artist", mode="before")
    @classmethod
    def validate_artist(cls, v: Any) -> list[str]:
        """Split, clean and deduplicate artist names."""
        return normalize_artist_field(v)

    @field_validator("album", mode="before")
    @classmethod
    def validate_album(cls, v: Any) -> str:
        """Substitute a placeholder for missing album titles."""
        return normalize_album_name(v)

    @field_validator("source", mode="before")
    @classmethod
    def validate_source(cls, v: Any) -> str:
        """Lowercase the platform tag."""
        return str(v).strip().lower() if v else PRIMARY_PLATFORM

    @field_validator("pic_id", "lyric_id", mode="before")
    @classmethod
    def coerce_reference(cls, v: Any) -> str | None:
        """Accept numeric references."""
        if v is None or v == "":
            return None
        return str(v)


class SongUrlResult(BaseModel):
    """Outcome of stream URL resolution. Failure is a value, not an exception."""

    url: str = Field(default="", description="Playable stream URL, empty on failure")
    bitrate: str = Field(default="", description="Requested quality label")
    error: str | None = Field(default=None, description="Localized failure description")
    used_source: str | None = Field(default=None, description="Substitute platform when the track was de-greyed")
    api_source: str | None = Field(default=None, description="Backend that produced the URL")
    attempted_sources: list[str] = Field(default_factory=list, description="Backends tried, in order")

    @property
    def ok(self) -> bool:
        """Whether a URL was resolved."""
        return bool(self.url)


class LyricResult(BaseModel):
    """Lyrics in LRC format."""

    lyric: str = ""


class PlaylistResult(BaseModel):
    """Resolved playlist."""

    songs: list[Song] = Field(default_factory=list)
    name: str = "未命名歌单"
    count: int = 0


class ArtistInfo(BaseModel):
    """Artist profile with hot songs."""

    name: str = UNKNOWN_SINGER
    description: str = ""
    songs: list[Song] = Field(default_factory=list)


class AlbumSummary(BaseModel):
    """Album entry in an artist discography."""

    id: str
    name: str
    pic_url: str | None = None
    publish_time: int | None = None
    size: int = 0
    source: str = PRIMARY_PLATFORM


class AlbumInfo(BaseModel):
    """Album details with tracks."""

    name: str = UNKNOWN_ALBUM
    artist: str = UNKNOWN_SINGER
    description: str = ""
    songs: list[Song] = Field(default_factory=list)


class CommentUser(BaseModel):
    """Author of a comment."""

    nickname: str = "匿名用户"
    avatar_url: str = ""


class Comment(BaseModel):
    """Single hot comment."""

    user: CommentUser = Field(default_factory=CommentUser)
    content: str = ""
    time: int = 0
    liked_count: int = 0


class CommentsResult(BaseModel):
    """Hot comments for a song."""

    hot_comments: list[Comment] = Field(default_factory=list)
    total: int = 0


class PlaylistSummary(BaseModel):
    """Playlist entry in a listing."""

    id: str
    name: str
    cover_img_url: str = ""
    play_count: int = 0
    description: str = ""
    creator: str = "未知创建者"


class HotPlaylistsResult(BaseModel):
    """Paginated playlist listing."""

    playlists: list[PlaylistSummary] = Field(default_factory=list)
    total: int = 0
    more: bool = False


class ArtistSummary(BaseModel):
    """Artist entry in a listing."""

    id: str
    name: str = UNKNOWN_SINGER
    pic_url: str = ""
    album_size: int = 0
    music_size: int = 0


class ArtistListResult(BaseModel):
    """Paginated artist listing."""

    artists: list[ArtistSummary] = Field(default_factory=list)
    total: int = 0
    more: bool = False


class ArtistTopSongs(BaseModel):
    """An artist with their most popular songs."""

    artist: ArtistSummary
    songs: list[Song] = Field(default_factory=list)


class ToplistEntry(BaseModel):
    """Chart descriptor."""

    id: str
    name: str
    cover_img_url: str = ""
    description: str | None = None
    play_count: int = 0
    update_frequency: str | None = None
    tracks: list[dict[str, Any]] = Field(default_factory=list)


class ToplistResult(BaseModel):
    """All available charts."""

    code: int = 200
    toplists: list[ToplistEntry] = Field(default_factory=list)


class SourceDescriptor(BaseModel):
    """Backend catalog API."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str


class SourceCapabilities(BaseModel):
    """Operations a backend dialect supports."""

    search: bool = True
    song_url: bool = True
    lyrics: bool = True
    playlist: bool = True
    top_list: bool = True
    artist: bool = True
    album: bool = True
    cover: bool = True
    comments: bool = False
    hot_playlists: bool = False
    artist_list: bool = False


class SourceStatus(BaseModel):
    """Backend listing entry."""

    index: int
    name: str
    url: str
    dialect: str
    active: bool = False


class SourceTestResult(BaseModel):
    """Health probe result for one backend."""

    index: int
    name: str
    url: str
    dialect: str
    healthy: bool
    latency_ms: float | None = None
    capabilities: SourceCapabilities


class SourceChangeReason(str, Enum):
    """Why the active backend changed."""

    DISCOVERY = "discovery"
    FAILOVER = "failover"
    MANUAL = "manual"
    RESTORE = "restore"


class SourceChangeEvent(BaseModel):
    """Notification sent to source change listeners."""

    model_config = ConfigDict(frozen=True)

    previous_index: int | None
    current_index: int
    source: SourceDescriptor
    reason: SourceChangeReason


class CacheStats(BaseModel):
    """Snapshot of the in-process cache."""

    total: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    avg_hits: float = 0.0
    hit_rate: float = 0.0
    hits: int = 0
    misses: int = 0


class ApiStats(BaseModel):
    """Observability snapshot of the catalog service."""

    cache_hit_rate: float
    cache_size: int
    active_requests: int
    cache_stats: CacheStats
    active_source: SourceStatus | None = None


class SongUrlRequest(BaseModel):
    """Request body for stream URL resolution."""

    song: Song
    quality: str = Field(default="320", description="Bitrate label: 128, 192, 320, 999 or flac")
    force_refresh: bool = Field(default=False, description="Drop cached URLs for the song first")


class ErrorResponse(BaseModel):
    """Model for error response."""

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Localized, user-facing error message")
    retryable: bool = Field(default=False, description="Whether offering a retry makes sense")
