"""Backend API dialects: detection, request shapes and response decoders.

Four upstream dialects are supported:

* ``gdstudio`` - query-string API selecting the operation with ``types=``
* ``ncm`` - RESTful NetEase Cloud Music API
* ``meting`` - query-string API selecting the operation with ``type=``
* ``clawcloud`` - enhanced NCM-compatible API with ``cloudsearch`` and
  ``song/url/v1`` endpoints

Each dialect class builds :class:`ApiRequest` objects and decodes the JSON it
gets back. Request builders return None for operations a dialect cannot serve.
:func:`to_song` is the best-effort decoder every dialect shares for song
payloads.
"""

import uuid
from enum import Enum
from typing import Any, ClassVar, NamedTuple

from wavebridge_api.modules.catalog.constants import (
    ENHANCED_DEFAULT_LEVEL,
    ENHANCED_KEYWORDS,
    ENHANCED_LEVELS,
    GDSTUDIO_KEYWORDS,
    METING_KEYWORDS,
    NCM_BITRATES,
    NCM_DEFAULT_BITRATE,
    NCM_HOSTING_MARKER,
    NCM_KEYWORDS,
    NETEASE_PIC_URL,
    UNKNOWN_ALBUM,
    UNKNOWN_SINGER,
)
from wavebridge_api.modules.catalog.normalizers import (
    extract_album_info,
    extract_artist_info,
    extract_duration,
    extract_pic_id,
    extract_song_info,
    get_path,
)
from wavebridge_api.modules.catalog.schemas import (
    AlbumSummary,
    ArtistListResult,
    ArtistSummary,
    Comment,
    CommentsResult,
    CommentUser,
    HotPlaylistsResult,
    PlaylistSummary,
    Song,
    SourceCapabilities,
    ToplistEntry,
)


class DialectFormat(str, Enum):
    """Upstream API dialects."""

    GDSTUDIO = "gdstudio"
    NCM = "ncm"
    METING = "meting"
    ENHANCED = "clawcloud"


class ApiRequest(NamedTuple):
    """A request URL with its query parameters."""

    url: str
    params: dict[str, Any]


def detect_format(api_url: str) -> DialectFormat:
    """Infer the dialect a backend speaks from its base URL.

    Keyword matches are checked in priority order gdstudio, ncm, clawcloud,
    meting. Without a keyword match, script URLs and URLs carrying a query
    string are treated as meting and everything else as ncm.

    Args:
        api_url: Backend base URL

    Returns:
        The detected dialect
    """
    url = api_url.lower()

    if any(keyword in url for keyword in GDSTUDIO_KEYWORDS):
        return DialectFormat.GDSTUDIO
    if any(keyword in url for keyword in NCM_KEYWORDS) or (NCM_HOSTING_MARKER in url and "meting" not in url):
        return DialectFormat.NCM
    if any(keyword in url for keyword in ENHANCED_KEYWORDS):
        return DialectFormat.ENHANCED
    if any(keyword in url for keyword in METING_KEYWORDS):
        return DialectFormat.METING
    if url.endswith(".php") or "?" in url:
        return DialectFormat.METING
    return DialectFormat.NCM


def to_song(raw: dict[str, Any], source: str) -> Song:
    """Best-effort conversion of any upstream song payload into a Song.

    Args:
        raw: Upstream song payload
        source: Platform the payload came from

    Returns:
        Canonical song keeping ``raw`` as passthrough
    """
    song_id = raw.get("id") or raw.get("url_id") or raw.get("lyric_id") or f"{source}_{uuid.uuid4().hex}"
    return Song(
        id=song_id,
        name=extract_song_info(raw),
        artist=extract_artist_info(raw),
        album=extract_album_info(raw),
        pic_id=extract_pic_id(raw),
        lyric_id=raw.get("lyric_id"),
        source=raw.get("source") or source,
        duration=extract_duration(raw),
        raw=raw,
    )


def to_songs(
    items: Any,
    source: str,
    require_id: bool = False,
    require_name: bool = False,
    limit: int | None = None,
) -> list[Song]:
    """Convert a list of upstream payloads, skipping unusable entries."""
    if not isinstance(items, list):
        return []
    songs: list[Song] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        if require_id and not item.get("id"):
            continue
        if require_name and not (item.get("name") or item.get("title")):
            continue
        songs.append(to_song(item, source))
        if limit is not None and len(songs) >= limit:
            break
    return songs


def _first_list(data: Any, *keys: str) -> list[Any]:
    if isinstance(data, list):
        return data
    for key in keys:
        value = get_path(data, key)
        if isinstance(value, list):
            return value
    return []


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class Dialect:
    """Request builders and decoders shared by the query-string dialects."""

    format: ClassVar[DialectFormat]
    requires_primary_platform: ClassVar[bool] = False
    capabilities: ClassVar[SourceCapabilities] = SourceCapabilities()

    # Query parameter names
    type_param: ClassVar[str] = "type"
    keyword_param: ClassVar[str] = "keywords"
    limit_param: ClassVar[str] = "limit"

    def _query(self, base_url: str, operation: str, **params: Any) -> ApiRequest:
        return ApiRequest(base_url, {self.type_param: operation, **params})

    # Request builders

    def search(self, base_url: str, keyword: str, source: str, limit: int) -> ApiRequest:
        return self._query(base_url, "search", source=source, **{self.keyword_param: keyword, self.limit_param: limit})

    def health_check(self, base_url: str) -> ApiRequest:
        return self.search(base_url, "test", "netease", 1)

    def song_url(self, base_url: str, song: Song, quality: str) -> ApiRequest:
        return self._query(base_url, "url", source=song.source, id=song.id, br=quality)

    def lyric(self, base_url: str, song: Song) -> ApiRequest:
        return self._query(base_url, "lyric", source=song.source, id=song.lyric_id or song.id)

    def playlist(self, base_url: str, playlist_id: str, source: str) -> ApiRequest:
        return self._query(base_url, "playlist", source=source, id=playlist_id)

    def top_list(self, base_url: str, category: str, list_id: str) -> ApiRequest | None:
        return self._query(base_url, "top", id=category)

    def artist(self, base_url: str, artist_id: str, source: str) -> ApiRequest:
        return self._query(base_url, "artist", id=artist_id)

    def artist_albums(self, base_url: str, artist_id: str, source: str, limit: int) -> ApiRequest | None:
        return None

    def artist_desc(self, base_url: str, artist_id: str) -> ApiRequest | None:
        return None

    def album(self, base_url: str, album_id: str, source: str) -> ApiRequest:
        return self._query(base_url, "album", id=album_id)

    def album_songs(self, base_url: str, album_id: str) -> ApiRequest | None:
        return None

    def cover(self, base_url: str, song: Song, pic_id: str, size: int) -> ApiRequest:
        return self._query(base_url, "pic", id=pic_id, size=size)

    def direct_cover_url(self, pic_id: str, size: int) -> str | None:
        return None

    def similar_songs(self, base_url: str, song_id: str) -> ApiRequest | None:
        return None

    def comments(self, base_url: str, song_id: str, limit: int) -> ApiRequest | None:
        return None

    def hot_playlists(self, base_url: str, order: str, category: str, limit: int, offset: int) -> ApiRequest | None:
        return None

    def artist_list(
        self,
        base_url: str,
        artist_type: int,
        area: int,
        initial: str | int,
        limit: int,
        offset: int,
    ) -> ApiRequest | None:
        return None

    def artist_top_songs(self, base_url: str, artist_id: str) -> ApiRequest | None:
        return None

    def toplist(self, base_url: str) -> ApiRequest | None:
        return None

    # Decoders

    def decode_songs(self, data: Any) -> list[Any]:
        return _first_list(data, "data", "songs", "result", "list")

    def decode_song_url(self, data: Any) -> str:
        url = get_path(data, "url")
        return url if isinstance(url, str) else ""

    def decode_lyric(self, data: Any) -> str:
        if isinstance(data, str):
            return data
        lyric = get_path(data, "lyric")
        return lyric if isinstance(lyric, str) else ""

    def decode_playlist(self, data: Any) -> tuple[list[Any], str | None]:
        if isinstance(data, list):
            return data, None
        for key in ("songs", "data", "playlist.tracks"):
            tracks = get_path(data, key)
            if isinstance(tracks, list):
                name = get_path(data, "playlist.name") if key == "playlist.tracks" else get_path(data, "name")
                return tracks, name if isinstance(name, str) else None
        return [], None

    def decode_top_list(self, data: Any) -> list[Any]:
        return _first_list(data, "songs")

    def decode_artist(self, data: Any) -> tuple[str, str, list[Any]]:
        if not isinstance(data, dict):
            return UNKNOWN_SINGER, "", _first_list(data)
        name = data.get("name") or data.get("artistName") or UNKNOWN_SINGER
        description = data.get("description") or data.get("desc") or ""
        return str(name), str(description), _first_list(data, "songs", "hotSongs")

    def decode_artist_albums(self, data: Any, source: str) -> list[AlbumSummary]:
        return [
            AlbumSummary(
                id=str(album.get("id", "")),
                name=str(album.get("name") or UNKNOWN_ALBUM),
                pic_url=album.get("picUrl") or album.get("pic_url") or album.get("cover"),
                publish_time=album.get("publishTime") or album.get("publish_time"),
                size=_as_int(album.get("size")),
                source=source,
            )
            for album in _first_list(data)
            if isinstance(album, dict)
        ]

    def decode_album(self, data: Any) -> tuple[str, str, str, list[Any]]:
        if not isinstance(data, dict):
            return UNKNOWN_ALBUM, UNKNOWN_SINGER, "", []
        name = data.get("name") or data.get("albumName") or UNKNOWN_ALBUM
        artist = data.get("artist") or data.get("artistName") or UNKNOWN_SINGER
        if isinstance(artist, dict):
            artist = artist.get("name") or UNKNOWN_SINGER
        description = data.get("description") or data.get("desc") or ""
        return str(name), str(artist), str(description), _first_list(data, "songs", "tracks")

    def decode_cover(self, data: Any) -> str | None:
        url = get_path(data, "url")
        return url if isinstance(url, str) and url else None

    def decode_artist_desc(self, data: Any) -> str:
        description = get_path(data, "description") or get_path(data, "desc")
        return description if isinstance(description, str) else ""

    def decode_similar_songs(self, data: Any) -> list[Any]:
        return self.decode_songs(data)

    def decode_comments(self, data: Any) -> CommentsResult:
        return CommentsResult()

    def decode_hot_playlists(self, data: Any) -> HotPlaylistsResult:
        return HotPlaylistsResult()

    def decode_artist_list(self, data: Any) -> ArtistListResult:
        return ArtistListResult()

    def decode_artist_top_songs(self, data: Any, artist_id: str) -> tuple[ArtistSummary, list[Any]]:
        return ArtistSummary(id=artist_id), self.decode_songs(data)

    def decode_toplist(self, data: Any) -> list[ToplistEntry]:
        return []


class GDStudioDialect(Dialect):
    """GD Studio style API: ``?types=<operation>&source=<platform>``."""

    format = DialectFormat.GDSTUDIO
    type_param = "types"
    keyword_param = "name"
    limit_param = "count"

    def top_list(self, base_url: str, category: str, list_id: str) -> ApiRequest | None:
        # No chart endpoint, charts are served through keyword searches
        return None

    def artist(self, base_url: str, artist_id: str, source: str) -> ApiRequest:
        return self._query(base_url, "artist", source=source, id=artist_id)

    def artist_albums(self, base_url: str, artist_id: str, source: str, limit: int) -> ApiRequest | None:
        return self._query(base_url, "album", source=source, id=artist_id)

    def album(self, base_url: str, album_id: str, source: str) -> ApiRequest:
        return self._query(base_url, "album", source=source, id=album_id)

    def cover(self, base_url: str, song: Song, pic_id: str, size: int) -> ApiRequest:
        return self._query(base_url, "pic", source=song.source, id=pic_id, size=size)


class MetingDialect(Dialect):
    """Meting style API: ``?type=<operation>&source=<platform>``."""

    format = DialectFormat.METING


class NcmDialect(Dialect):
    """RESTful NetEase Cloud Music API."""

    format = DialectFormat.NCM
    requires_primary_platform = True
    capabilities = SourceCapabilities(comments=True, hot_playlists=True, artist_list=True)

    @staticmethod
    def _path(base_url: str, path: str, **params: Any) -> ApiRequest:
        return ApiRequest(f"{base_url.rstrip('/')}/{path}", params)

    @staticmethod
    def bitrate_for(quality: str) -> str:
        """Convert a quality label into the bitrate parameter in bit/s."""
        return NCM_BITRATES.get(quality, NCM_DEFAULT_BITRATE)

    def search(self, base_url: str, keyword: str, source: str, limit: int) -> ApiRequest:
        # type=1 restricts results to single tracks
        return self._path(base_url, "search", keywords=keyword, limit=limit, type=1)

    def song_url(self, base_url: str, song: Song, quality: str) -> ApiRequest:
        return self._path(base_url, "song/url", id=song.id, br=self.bitrate_for(quality))

    def lyric(self, base_url: str, song: Song) -> ApiRequest:
        return self._path(base_url, "lyric", id=song.lyric_id or song.id)

    def playlist(self, base_url: str, playlist_id: str, source: str) -> ApiRequest:
        return self._path(base_url, "playlist/detail", id=playlist_id)

    def top_list(self, base_url: str, category: str, list_id: str) -> ApiRequest | None:
        return self._path(base_url, "top/list", id=list_id)

    def artist(self, base_url: str, artist_id: str, source: str) -> ApiRequest:
        return self._path(base_url, "artists", id=artist_id)

    def artist_albums(self, base_url: str, artist_id: str, source: str, limit: int) -> ApiRequest | None:
        return self._path(base_url, "artist/album", id=artist_id, limit=limit)

    def artist_desc(self, base_url: str, artist_id: str) -> ApiRequest | None:
        return self._path(base_url, "artist/desc", id=artist_id)

    def album(self, base_url: str, album_id: str, source: str) -> ApiRequest:
        return self._path(base_url, "album", id=album_id)

    def album_songs(self, base_url: str, album_id: str) -> ApiRequest | None:
        return self._path(base_url, "album", id=album_id)

    def direct_cover_url(self, pic_id: str, size: int) -> str | None:
        return NETEASE_PIC_URL.format(pic_id=pic_id, size=size)

    def similar_songs(self, base_url: str, song_id: str) -> ApiRequest | None:
        return self._path(base_url, "simi/song", id=song_id)

    def comments(self, base_url: str, song_id: str, limit: int) -> ApiRequest | None:
        return self._path(base_url, "comment/music", id=song_id, limit=limit)

    def hot_playlists(self, base_url: str, order: str, category: str, limit: int, offset: int) -> ApiRequest | None:
        return self._path(base_url, "top/playlist", order=order, cat=category, limit=limit, offset=offset)

    def artist_list(
        self,
        base_url: str,
        artist_type: int,
        area: int,
        initial: str | int,
        limit: int,
        offset: int,
    ) -> ApiRequest | None:
        return self._path(
            base_url,
            "artist/list",
            type=artist_type,
            area=area,
            initial=initial,
            limit=limit,
            offset=offset,
        )

    def artist_top_songs(self, base_url: str, artist_id: str) -> ApiRequest | None:
        return self._path(base_url, "artist/top/song", id=artist_id)

    def toplist(self, base_url: str) -> ApiRequest | None:
        return self._path(base_url, "toplist")

    def decode_songs(self, data: Any) -> list[Any]:
        return _first_list(data, "result.songs", "songs")

    def decode_song_url(self, data: Any) -> str:
        entries = get_path(data, "data")
        if isinstance(entries, list) and entries and isinstance(entries[0], dict):
            url = entries[0].get("url")
            return url if isinstance(url, str) else ""
        return super().decode_song_url(data)

    def decode_lyric(self, data: Any) -> str:
        lyric = get_path(data, "lrc.lyric")
        if isinstance(lyric, str) and lyric:
            return lyric
        return super().decode_lyric(data)

    def decode_playlist(self, data: Any) -> tuple[list[Any], str | None]:
        for key in ("playlist", "result"):
            tracks = get_path(data, f"{key}.tracks")
            if isinstance(tracks, list):
                name = get_path(data, f"{key}.name")
                return tracks, name if isinstance(name, str) else None
        return [], None

    def decode_top_list(self, data: Any) -> list[Any]:
        return _first_list(data, "playlist.tracks")

    def decode_artist(self, data: Any) -> tuple[str, str, list[Any]]:
        name = get_path(data, "artist.name") or UNKNOWN_SINGER
        description = get_path(data, "artist.briefDesc") or ""
        return str(name), str(description), _first_list(data, "hotSongs")[:20]

    def decode_artist_albums(self, data: Any, source: str) -> list[AlbumSummary]:
        return super().decode_artist_albums(_first_list(data, "hotAlbums"), source)

    def decode_artist_desc(self, data: Any) -> str:
        description = get_path(data, "briefDesc")
        parts = [description] if isinstance(description, str) and description else []
        for section in _first_list(data, "introduction"):
            if isinstance(section, dict):
                parts.append(f"【{section.get('ti', '')}】\n{section.get('txt', '')}")
        return "\n\n".join(parts)

    def decode_album(self, data: Any) -> tuple[str, str, str, list[Any]]:
        name = get_path(data, "album.name") or UNKNOWN_ALBUM
        artist = get_path(data, "album.artist.name")
        if not artist:
            artists = get_path(data, "album.artists")
            if isinstance(artists, list) and artists and isinstance(artists[0], dict):
                artist = artists[0].get("name")
        description = get_path(data, "album.description") or ""
        return str(name), str(artist or UNKNOWN_SINGER), str(description), _first_list(data, "songs")

    def decode_similar_songs(self, data: Any) -> list[Any]:
        return _first_list(data, "songs")

    def decode_comments(self, data: Any) -> CommentsResult:
        comments = [
            Comment(
                user=CommentUser(
                    nickname=get_path(item, "user.nickname") or "匿名用户",
                    avatar_url=get_path(item, "user.avatarUrl") or "",
                ),
                content=item.get("content") or "",
                time=_as_int(item.get("time")),
                liked_count=_as_int(item.get("likedCount")),
            )
            for item in _first_list(data, "hotComments")
            if isinstance(item, dict)
        ]
        return CommentsResult(hot_comments=comments, total=_as_int(get_path(data, "total")))

    def decode_hot_playlists(self, data: Any) -> HotPlaylistsResult:
        playlists = [
            PlaylistSummary(
                id=str(item.get("id", "")),
                name=str(item.get("name", "")),
                cover_img_url=item.get("coverImgUrl") or item.get("cover") or "",
                play_count=_as_int(item.get("playCount")),
                description=item.get("description") or "",
                creator=get_path(item, "creator.nickname") or "未知创建者",
            )
            for item in _first_list(data, "playlists")
            if isinstance(item, dict)
        ]
        return HotPlaylistsResult(
            playlists=playlists,
            total=_as_int(get_path(data, "total")),
            more=bool(get_path(data, "more")),
        )

    def decode_artist_list(self, data: Any) -> ArtistListResult:
        artists = [
            ArtistSummary(
                id=str(item.get("id", "")),
                name=str(item.get("name") or UNKNOWN_SINGER),
                pic_url=item.get("picUrl") or item.get("img1v1Url") or "",
                album_size=_as_int(item.get("albumSize")),
                music_size=_as_int(item.get("musicSize")),
            )
            for item in _first_list(data, "artists")
            if isinstance(item, dict)
        ]
        return ArtistListResult(
            artists=artists,
            total=_as_int(get_path(data, "total")),
            more=bool(get_path(data, "more")),
        )

    def decode_artist_top_songs(self, data: Any, artist_id: str) -> tuple[ArtistSummary, list[Any]]:
        artist = ArtistSummary(
            id=str(get_path(data, "artist.id") or artist_id),
            name=str(get_path(data, "artist.name") or UNKNOWN_SINGER),
            pic_url=get_path(data, "artist.picUrl") or "",
        )
        return artist, _first_list(data, "songs")

    def decode_toplist(self, data: Any) -> list[ToplistEntry]:
        return [
            ToplistEntry(
                id=str(item.get("id", "")),
                name=str(item.get("name", "")),
                cover_img_url=item.get("coverImgUrl") or "",
                description=item.get("description"),
                play_count=_as_int(item.get("playCount")),
                update_frequency=item.get("updateFrequency"),
                tracks=[track for track in (item.get("tracks") or [])[:3] if isinstance(track, dict)],
            )
            for item in _first_list(data, "list")
            if isinstance(item, dict)
        ]


class EnhancedNcmDialect(NcmDialect):
    """Enhanced NCM-compatible API with cloud search and leveled stream URLs."""

    format = DialectFormat.ENHANCED

    @staticmethod
    def level_for(quality: str) -> str:
        """Convert a quality label into the ``level`` parameter."""
        return ENHANCED_LEVELS.get(quality, ENHANCED_DEFAULT_LEVEL)

    def search(self, base_url: str, keyword: str, source: str, limit: int) -> ApiRequest:
        return self._path(base_url, "cloudsearch", keywords=keyword, limit=limit, type=1)

    def song_url(self, base_url: str, song: Song, quality: str) -> ApiRequest:
        return self._path(base_url, "song/url/v1", id=song.id, level=self.level_for(quality))


DIALECTS: dict[DialectFormat, Dialect] = {
    DialectFormat.GDSTUDIO: GDStudioDialect(),
    DialectFormat.NCM: NcmDialect(),
    DialectFormat.METING: MetingDialect(),
    DialectFormat.ENHANCED: EnhancedNcmDialect(),
}


def get_dialect(api_url: str) -> Dialect:
    """Return the dialect adapter for a backend base URL."""
    return DIALECTS[detect_format(api_url)]
