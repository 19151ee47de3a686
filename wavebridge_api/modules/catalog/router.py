"""Router for catalog endpoints."""

from collections.abc import Awaitable
from logging import Logger
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.constants import PRIMARY_PLATFORM
from wavebridge_api.modules.catalog.context import ResilienceContext
from wavebridge_api.modules.catalog.errors import ApiError, to_error_response
from wavebridge_api.modules.catalog.schemas import (
    AlbumInfo,
    AlbumSummary,
    ApiStats,
    ArtistInfo,
    ArtistListResult,
    ArtistTopSongs,
    CommentsResult,
    ErrorResponse,
    HotPlaylistsResult,
    LyricResult,
    PlaylistResult,
    Song,
    SongUrlRequest,
    SongUrlResult,
    SourceStatus,
    SourceTestResult,
    ToplistResult,
)
from wavebridge_api.modules.catalog.service import CatalogService

# Initialize module logger
logger: Logger = get_logger("modules.catalog.router")

T = TypeVar("T")

# Create router
router: APIRouter = APIRouter(
    prefix="/catalog",
    tags=["Catalog"],
    responses={
        status.HTTP_502_BAD_GATEWAY: {"description": "Every upstream source failed", "model": ErrorResponse},
    },
)


def get_context(request: Request) -> ResilienceContext:
    """Return the context created by the application lifespan."""
    return request.app.state.catalog


def get_service(context: Annotated[ResilienceContext, Depends(get_context)]) -> CatalogService:
    return context.service


Service = Annotated[CatalogService, Depends(get_service)]
Context = Annotated[ResilienceContext, Depends(get_context)]


async def _call(operation: Awaitable[T]) -> T:
    """Await a catalog operation, translating failures into HTTP errors.

    Raises:
        HTTPException: 400 for invalid input, 502 when upstream sources failed
    """
    try:
        return await operation
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ApiError as e:
        logger.warning("Catalog request failed: %r", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=to_error_response(e).model_dump(),
        ) from e


@router.get("/search", response_model=list[Song], summary="Search tracks")
async def search(
    service: Service,
    keyword: Annotated[str, Query(min_length=1)],
    source: str = PRIMARY_PLATFORM,
    limit: Annotated[int, Query(ge=1, le=100)] = 30,
) -> list[Song]:
    return await _call(service.search(keyword, source, limit))


@router.get("/playlist", response_model=PlaylistResult, summary="Load a playlist by id or share URL")
async def parse_playlist(
    service: Service,
    playlist: Annotated[str, Query(min_length=1, description="Playlist id or NetEase/QQ Music URL")],
    source: str = PRIMARY_PLATFORM,
) -> PlaylistResult:
    return await _call(service.parse_playlist(playlist, source))


@router.post("/lyrics", response_model=LyricResult, summary="Fetch lyrics of a song")
async def get_lyrics(service: Service, song: Song) -> LyricResult:
    return await _call(service.get_lyrics(song))


@router.post("/song_url", response_model=SongUrlResult, summary="Resolve a playable stream URL")
async def get_song_url(service: Service, request: SongUrlRequest) -> SongUrlResult:
    """Resolve a stream URL.

    Resolution failures are part of the result rather than an HTTP error:
    ``error`` is set and ``attempted_sources`` lists the backends tried.
    """
    return await service.get_song_url(request.song, request.quality, request.force_refresh)


@router.post("/cover", summary="Resolve the cover image URL of a song")
async def get_album_cover_url(
    service: Service,
    song: Song,
    size: Annotated[int | None, Query(ge=1, le=2048)] = None,
) -> dict[str, str]:
    return {"url": await service.get_album_cover_url(song, size)}


@router.get("/top", response_model=list[Song], summary="Fetch a chart")
async def get_top_songs(
    service: Service,
    category: str = "hot",
    source: str = PRIMARY_PLATFORM,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> list[Song]:
    return await _call(service.get_top_songs(category, source, limit))


@router.get("/toplist", response_model=ToplistResult, summary="List all charts")
async def get_all_toplist(service: Service) -> ToplistResult:
    return await _call(service.get_all_toplist())


@router.get("/hot_playlists", response_model=HotPlaylistsResult, summary="Browse popular playlists")
async def get_hot_playlists(
    service: Service,
    order: str = "hot",
    category: str = "全部",
    limit: Annotated[int, Query(ge=1, le=100)] = 30,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> HotPlaylistsResult:
    return await _call(service.get_hot_playlists(order, category, limit, offset))


@router.get("/artists", response_model=ArtistListResult, summary="Browse artists")
async def get_artist_list(
    service: Service,
    artist_type: Annotated[int, Query(alias="type")] = -1,
    area: int = -1,
    initial: str = "-1",
    limit: Annotated[int, Query(ge=1, le=100)] = 30,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ArtistListResult:
    return await _call(service.get_artist_list(artist_type, area, initial, limit, offset))


@router.get("/artist/{artist_id}", response_model=ArtistInfo, summary="Fetch artist details")
async def get_artist_info(service: Service, artist_id: str, source: str = PRIMARY_PLATFORM) -> ArtistInfo:
    return await _call(service.get_artist_info(artist_id, source))


@router.get("/artist/{artist_id}/albums", response_model=list[AlbumSummary], summary="List an artist's albums")
async def get_artist_albums(
    service: Service,
    artist_id: str,
    source: str = PRIMARY_PLATFORM,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> list[AlbumSummary]:
    return await _call(service.get_artist_albums(artist_id, source, limit))


@router.get("/artist/{artist_id}/desc", summary="Fetch an artist's biography")
async def get_artist_desc(service: Service, artist_id: str) -> dict[str, str]:
    return {"description": await _call(service.get_artist_desc(artist_id))}


@router.get("/artist/{artist_id}/top_songs", response_model=ArtistTopSongs, summary="Fetch an artist's top songs")
async def get_artist_top_songs(service: Service, artist_id: str) -> ArtistTopSongs:
    return await _call(service.get_artist_top_songs(artist_id))


@router.get("/album/{album_id}", response_model=AlbumInfo, summary="Fetch album details")
async def get_album_info(service: Service, album_id: str, source: str = PRIMARY_PLATFORM) -> AlbumInfo:
    return await _call(service.get_album_info(album_id, source))


@router.get("/album/{album_id}/songs", response_model=list[Song], summary="List album tracks")
async def get_album_songs(service: Service, album_id: str, source: str = PRIMARY_PLATFORM) -> list[Song]:
    return await _call(service.get_album_songs(album_id, source))


@router.get("/similar/{song_id}", response_model=list[Song], summary="Fetch similar songs")
async def get_similar_songs(
    service: Service,
    song_id: str,
    source: str = PRIMARY_PLATFORM,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> list[Song]:
    return await _call(service.get_similar_songs(song_id, source, limit))


@router.get("/comments/{song_id}", response_model=CommentsResult, summary="Fetch hot comments of a song")
async def get_comments(
    service: Service,
    song_id: str,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> CommentsResult:
    return await _call(service.get_comments(song_id, limit))


@router.get("/sources", response_model=list[SourceStatus], summary="List API sources")
async def list_sources(context: Context) -> list[SourceStatus]:
    return context.registry.list_sources()


@router.get("/sources/current", response_model=SourceStatus, summary="Show the active API source")
async def current_source(context: Context) -> SourceStatus:
    return context.registry.current_status()


@router.get("/sources/test", response_model=list[SourceTestResult], summary="Probe every API source")
async def test_sources(context: Context) -> list[SourceTestResult]:
    return await context.registry.test_all_sources()


@router.post("/sources/next", response_model=SourceStatus, summary="Fail over to the next healthy source")
async def switch_to_next(context: Context) -> SourceStatus:
    if not await context.registry.switch_to_next():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No other API source responded")
    return context.registry.current_status()


@router.post("/sources/{index}", response_model=SourceStatus, summary="Select an API source")
async def select_source(context: Context, index: int) -> SourceStatus:
    """Select a source explicitly; it is probed first and persisted on success."""
    switched = await _call(context.registry.switch_to(index))
    if not switched:
        source = context.registry.sources[index]
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"API source {source.name} did not respond",
        )
    return context.registry.current_status()


@router.get("/stats", response_model=ApiStats, summary="Cache and request statistics")
async def get_stats(service: Service) -> ApiStats:
    return service.get_stats()


@router.get("/capabilities", summary="Operations the active source supports")
async def get_capabilities(context: Context) -> dict[str, Any]:
    return context.registry.detect_capabilities().model_dump()
