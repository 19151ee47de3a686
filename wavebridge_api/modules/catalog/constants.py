"""Constants and error codes for the catalog module."""

import asyncio

import httpx

# Platform that the RESTful dialects are bound to and whose CDN we can reach directly
PRIMARY_PLATFORM = "netease"

# Error codes exposed to API consumers
ERROR_CODES = {
    "NETWORK_ERROR": "network_error",
    "TIMEOUT": "timeout",
    "SERVER_ERROR": "server_error",
    "PARSE_ERROR": "parse_error",
    "UNKNOWN_ERROR": "unknown_error",
    "RATE_LIMIT_EXCEEDED": "rate_limit_exceeded",
    "NOT_FOUND": "not_found",
    "SOURCE_UNAVAILABLE": "source_unavailable",
    "INVALID_REQUEST": "invalid_request",
}

# User-facing messages, never raw exception text
ERROR_MESSAGES = {
    "NETWORK": "网络连接失败，请检查网络设置",
    "TIMEOUT": "请求超时，请稍后重试",
    "SERVER_4XX": "请求的资源不存在或无权访问",
    "SERVER_5XX": "服务器暂时无法响应，请稍后重试",
    "RATE_LIMIT": "请求过于频繁，请稍后再试",
    "PARSE": "数据解析失败，请稍后重试",
    "UNKNOWN": "发生未知错误，请稍后重试",
    "ALL_SOURCES_FAILED": "尝试{count}个API均失败 - {first_error}",
    "NO_STREAM_URL": "无法获取音乐链接",
    "URL_EXPIRED": "音乐链接已失效（版权或地区限制）",
    "REQUEST_FAILED": "API请求失败: {error}",
    "EMPTY_PLAYLIST": "歌单为空",
    "PLAYLIST_ID_NOT_FOUND": "无法从URL中提取歌单ID",
    "NO_WORKING_SOURCE": "所有API均不可用",
    "INVALID_SOURCE_INDEX": "无效的API索引: {index}",
    "SOURCE_UNREACHABLE": "API不可用: {name}",
}

# Placeholder values substituted when upstream data is missing
UNKNOWN_SONG = "未知歌曲"
UNKNOWN_ARTIST = "未知艺术家"
UNKNOWN_ALBUM = "未知专辑"
UNKNOWN_SINGER = "未知歌手"

# Upstream placeholder tokens rejected case-insensitively after trimming
INVALID_ARTIST_NAMES = frozenset(
    {"未知艺术家", "未知歌手", "未知", "unknown", "unknown artist", "various artists", "n/a", ""},
)
INVALID_SONG_NAMES = frozenset({"未知歌曲", "未知", "unknown", "untitled", "n/a", "", "null", "undefined"})
INVALID_ALBUM_NAMES = frozenset({"未知专辑", "未知", "unknown", "unknown album", "n/a", ""})

# Separators between artist names in a single upstream string
ARTIST_SEPARATOR_PATTERN = r"[,，、/／]"
AUDIO_EXTENSION_PATTERN = r"\.(mp3|flac|wav|m4a|aac)$"
EDGE_NOISE_PATTERN = r"^[_\-\s]+|[_\-\s]+$"
ALBUM_IN_URL_PATTERN = r"album[_/]?(\d+)"

# Dialect keyword tables, checked in priority order gdstudio > ncm > enhanced > meting
GDSTUDIO_KEYWORDS = ("gdstudio",)
NCM_KEYWORDS = ("ncm-api.imixc.top", "netease", "163.com")
NCM_HOSTING_MARKER = "vercel.app"
ENHANCED_KEYWORDS = ("clawcloudrun.com", "api-enhanced")
METING_KEYWORDS = ("meting", "api.lwl12.com")

# Bitrate parameters per dialect
NCM_BITRATES = {
    "128": "128000",
    "192": "192000",
    "320": "320000",
    "999": "999000",
    "flac": "999000",
}
NCM_DEFAULT_BITRATE = "320000"
ENHANCED_LEVELS = {"320": "exhigh", "192": "higher"}
ENHANCED_DEFAULT_LEVEL = "standard"
QUALITY_LEVELS = ("128", "192", "320", "999", "flac")

# Direct CDN locations for the primary platform
NETEASE_OUTER_URL = "https://music.163.com/song/media/outer/url?id={song_id}.mp3"
NETEASE_PIC_URL = "https://p1.music.126.net/{pic_id}/{size}y{size}.jpg"

# Statuses that mean a byte-range probe reached the media
REACHABLE_PROBE_STATUSES = frozenset({200, 206, 416})

# Track duration tolerance for cross-platform substitution (seconds)
DURATION_TOLERANCE = 5.0

# NetEase chart playlist ids
TOP_LIST_IDS = {
    "hot": "3778678",
    "new": "3779629",
    "original": "2884035",
    "soar": "19723756",
    "electronic": "10520166",
}

# Keyword searches standing in for charts on backends without a chart endpoint
TOP_SEARCH_KEYWORDS = {
    "hot": "热门歌曲",
    "new": "新歌推荐",
    "original": "原创音乐",
}
TOP_SEARCH_DEFAULT_KEYWORD = "热门"
SIMILAR_SEARCH_KEYWORD = "相似音乐 推荐"

# Playlist id extraction patterns per platform
PLAYLIST_URL_HOSTS = {
    "netease": ("music.163.com", "163cn.tv"),
    "tencent": ("y.qq.com",),
}
PLAYLIST_ID_PATTERNS = {
    "netease": (r"id=(\d+)", r"playlist/(\d+)", r"/(\d+)\?", r"/(\d+)$"),
    "tencent": (r"playlist/(\d+)", r"id=(\d+)", r"/(\d+)\?", r"/(\d+)$"),
}

# Cover art size buckets
COVER_SIZES = (150, 300, 500, 1024)
DEFAULT_COVER_SIZE = 300
DEFAULT_COVER = (
    "data:image/svg+xml;base64,PHN2ZyB3aWR0aD0iNTUiIGhlaWdodD0iNTUiIHZpZXdCb3g9IjAgMCA1NSA1NSIgZmlsbD0ibm9uZSIgeG1s"
    "bnM9Imh0dHA6Ly93d3cudzMub3JnLzIwMDAvc3ZnIj4KPHJlY3Qgd2lkdGg9IjU1IiBoZWlnaHQ9IjU1IiBmaWxsPSJyZ2JhKDI1NSwyNTUs"
    "MjU1LDAuMSkiIHJ4PSI4Ii8+CjxwYXRoIGQ9Ik0yNy41IDE4TDM1IDI3LjVIMzBWMzdIMjVWMjcuNUgyMEwyNy41IDE4WiIgZmlsbD0icmdi"
    "YSgyNTUsMjU1LDI1NSwwLjMpIi8+Cjwvc3ZnPgo="
)

# Fallback chart listing for dialects without a toplist endpoint
BUILT_IN_TOPLIST = (
    {"id": "3778678", "name": "热歌榜", "description": "全站最热歌曲", "play_count": 500000000},
    {"id": "3779629", "name": "新歌榜", "description": "每日新歌推荐", "play_count": 300000000},
    {"id": "19723756", "name": "飙升榜", "description": "热度增长最快", "play_count": 200000000},
    {"id": "2884035", "name": "原创榜", "description": "优秀原创作品", "play_count": 100000000},
    {"id": "10520166", "name": "电音榜", "description": "全球电音精选", "play_count": 80000000},
    {"id": "71385702", "name": "ACG榜", "description": "二次元音乐", "play_count": 150000000},
)

# Media hosts the proxy collaborator is allowed to fetch
PROXY_ALLOWED_DOMAINS = (
    "music.163.com",
    "y.qq.com",
    "dl.stream.qqmusic.qq.com",
    "kuwo.cn",
    "sycdn.kuwo.cn",
    "kugou.com",
    "bilibili.com",
    "bilivideo.com",
    "migu.cn",
)

# CDN hosts trusted for direct high-quality downloads
PROXY_TRUSTED_DOMAINS = (
    "music.163.com",
    "y.qq.com",
    "m701.music.126.net",
    "m801.music.126.net",
    "m7.music.126.net",
    "m8.music.126.net",
    "m10.music.126.net",
    "sy.music.163.com",
    "p1.music.126.net",
    "p2.music.126.net",
)
HIGH_QUALITY_LEVELS = frozenset({"999", "999000", "flac"})

PRIVATE_HOST_PATTERNS = (
    r"^localhost$",
    r"^127\.\d+\.\d+\.\d+$",
    r"^10\.\d+\.\d+\.\d+$",
    r"^172\.(1[6-9]|2[0-9]|3[01])\.\d+\.\d+$",
    r"^192\.168\.\d+\.\d+$",
    r"^::1$",
    r"^fe80:",
)

# Exception categories for transport failures
TIMEOUT_ERRORS = (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)
TRANSPORT_ERRORS = (httpx.TransportError, httpx.StreamError, ConnectionError, OSError)
