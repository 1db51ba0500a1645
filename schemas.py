"""
API レスポンスのスキーマ定義

Piped のレスポンス形式を正規モデルとし、Invidious のレスポンスは
response_mapper でこの形式に変換する。欠けているフィールドや null は
各フィールドのデフォルト値で補う。
"""
import re
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def _format_count(count: int, suffix: str = '', billions: bool = True) -> str:
    if billions and count >= 1_000_000_000:
        return f"{count / 1_000_000_000:.1f}B{suffix}"
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M{suffix}"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K{suffix}"
    return f"{count}{suffix}"


def _extract_resolution(quality: Optional[str]) -> int:
    match = re.match(r'(\d+)', quality or '')
    return int(match.group(1)) if match else 0


class WireModel(BaseModel):
    """camelCase の JSON と相互変換できるイミュータブルな値オブジェクト"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
        frozen=True,
    )

    @model_validator(mode='before')
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null はフィールド未指定として扱いデフォルト値を適用
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode='json')


# =============================================================================
# 正規モデル（Piped 形式）
# =============================================================================

class StreamItem(WireModel):
    url: str = ''
    type: str = 'stream'
    title: str = ''
    thumbnail: str = ''
    uploader_name: str = ''
    uploader_url: str = ''
    uploader_avatar: str = ''
    uploaded_date: str = ''
    short_description: Optional[str] = None
    duration: int = 0
    views: int = 0
    uploaded: int = 0
    uploader_verified: bool = False
    is_short: bool = False

    @property
    def video_id(self) -> str:
        return self.url.removeprefix('/watch?v=')

    @property
    def formatted_duration(self) -> str:
        hours, remainder = divmod(self.duration, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    @property
    def formatted_views(self) -> str:
        return _format_count(self.views, ' views')


class PipedStream(WireModel):
    url: str = ''
    format: str = ''
    quality: Optional[str] = None
    mime_type: str = ''
    codec: Optional[str] = None
    video_only: Optional[bool] = False
    bitrate: Optional[int] = None
    init_start: Optional[int] = None
    init_end: Optional[int] = None
    index_start: Optional[int] = None
    index_end: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[int] = None
    content_length: Optional[int] = None

    @property
    def quality_label(self) -> str:
        return self.quality or f"{self.height}p"

    @property
    def is_high_res(self) -> bool:
        return (self.height or 0) >= 1080

    @property
    def is_4k(self) -> bool:
        return (self.height or 0) >= 2160

    @property
    def is_8k(self) -> bool:
        return (self.height or 0) >= 4320

    @property
    def formatted_size(self) -> str:
        size = self.content_length
        if size is None:
            return 'Unknown'
        if size >= 1_073_741_824:
            return f"{size / 1_073_741_824:.1f} GB"
        if size >= 1_048_576:
            return f"{size / 1_048_576:.1f} MB"
        if size >= 1_024:
            return f"{size / 1_024:.1f} KB"
        return f"{size} B"


class Subtitle(WireModel):
    url: str = ''
    mime_type: str = ''
    name: str = ''
    code: str = ''
    auto_generated: bool = False


class Chapter(WireModel):
    title: str = ''
    image: str = ''
    start: int = 0


class PreviewFrame(WireModel):
    urls: List[str] = Field(default_factory=list)
    frame_width: int = 0
    frame_height: int = 0
    total_count: int = 0
    duration_per_frame: int = 0
    frames_per_page_x: int = 0
    frames_per_page_y: int = 0


class VideoStream(WireModel):
    title: str = ''
    description: str = ''
    upload_date: str = ''
    uploader: str = ''
    uploader_url: str = ''
    uploader_avatar: str = ''
    thumbnail_url: str = ''
    hls: Optional[str] = None
    dash: Optional[str] = None
    category: str = ''
    uploader_verified: bool = False
    duration: int = 0
    views: int = 0
    likes: int = 0
    dislikes: int = -1
    audio_streams: List[PipedStream] = Field(default_factory=list)
    video_streams: List[PipedStream] = Field(default_factory=list)
    related_streams: List[StreamItem] = Field(default_factory=list)
    subtitles: List[Subtitle] = Field(default_factory=list)
    livestream: bool = False
    proxy_url: str = ''
    chapters: List[Chapter] = Field(default_factory=list)
    uploader_subscriber_count: int = 0
    preview_frames: List[PreviewFrame] = Field(default_factory=list)

    @property
    def formatted_views(self) -> str:
        return _format_count(self.views, ' views')

    @property
    def formatted_likes(self) -> str:
        return _format_count(self.likes, billions=False)

    @property
    def formatted_subscribers(self) -> str:
        return _format_count(self.uploader_subscriber_count, ' subscribers', billions=False)

    @property
    def sorted_video_streams(self) -> List[PipedStream]:
        """音声付きストリームを解像度の高い順に"""
        streams = [s for s in self.video_streams if s.video_only is False]
        return sorted(streams, key=lambda s: _extract_resolution(s.quality), reverse=True)

    @property
    def video_only_streams(self) -> List[PipedStream]:
        streams = [s for s in self.video_streams if s.video_only is True]
        return sorted(streams, key=lambda s: _extract_resolution(s.quality), reverse=True)

    @property
    def best_audio_stream(self) -> Optional[PipedStream]:
        if not self.audio_streams:
            return None
        return max(self.audio_streams, key=lambda s: s.bitrate or 0)


class SearchResponse(WireModel):
    items: List[StreamItem] = Field(default_factory=list)
    nextpage: Optional[str] = None
    suggestion: Optional[str] = None
    corrected: bool = False


class Channel(WireModel):
    id: str = ''
    name: str = ''
    avatar_url: str = ''
    banner_url: str = ''
    description: str = ''
    nextpage: Optional[str] = None
    subscriber_count: int = 0
    verified: bool = False
    related_streams: List[StreamItem] = Field(default_factory=list)

    @property
    def formatted_subscribers(self) -> str:
        return _format_count(self.subscriber_count, billions=False)


class Comment(WireModel):
    author: str = ''
    thumbnail: str = ''
    comment_id: str = ''
    comment_text: str = ''
    commented_time: str = ''
    commentor_url: str = ''
    like_count: int = 0
    hearted: bool = False
    pinned: bool = False
    verified: bool = False
    reply_count: int = 0
    replies_page: Optional[str] = None
    creator_replied: bool = False


class CommentsResponse(WireModel):
    comments: List[Comment] = Field(default_factory=list)
    nextpage: Optional[str] = None
    disabled: bool = False


# =============================================================================
# Invidious レスポンス（正規モデルへ変換される）
# =============================================================================

class InvidiousThumbnail(WireModel):
    quality: str = ''
    url: str = ''
    width: int = 0
    height: int = 0


class InvidiousVideoItem(WireModel):
    type: str = 'video'
    title: str = ''
    video_id: str = ''
    author: str = ''
    author_id: str = ''
    author_url: str = ''
    video_thumbnails: List[InvidiousThumbnail] = Field(default_factory=list)
    description: str = ''
    view_count: int = 0
    published: int = 0
    published_text: str = ''
    length_seconds: int = 0
    live_now: bool = False
    is_upcoming: bool = False
    author_verified: bool = False


class InvidiousAdaptiveFormat(WireModel):
    index: Optional[str] = None
    bitrate: Optional[Union[int, str]] = None
    init: Optional[str] = None
    url: str = ''
    itag: Union[str, int] = ''
    type: str = ''
    clen: Optional[Union[int, str]] = None
    encoding: Optional[str] = None
    quality_label: Optional[str] = None
    resolution: Optional[str] = None
    container: Optional[str] = None
    fps: Optional[int] = None
    audio_quality: Optional[str] = None
    audio_sample_rate: Optional[int] = None
    audio_channels: Optional[int] = None

    @property
    def is_audio(self) -> bool:
        return self.type.startswith('audio/')

    @property
    def is_video(self) -> bool:
        return self.type.startswith('video/')

    @property
    def height_from_resolution(self) -> Optional[int]:
        return _parse_int((self.resolution or '').removesuffix('p'))


class InvidiousFormatStream(WireModel):
    url: str = ''
    itag: Union[str, int] = ''
    type: str = ''
    quality: str = ''
    quality_label: Optional[str] = None
    container: Optional[str] = None
    encoding: Optional[str] = None
    resolution: Optional[str] = None
    size: Optional[str] = None
    fps: Optional[int] = None


class InvidiousVideoDetail(WireModel):
    title: str = ''
    video_id: str = ''
    description: str = ''
    description_html: str = ''
    published: int = 0
    published_text: str = ''
    view_count: int = 0
    like_count: int = 0
    dislike_count: int = 0
    author: str = ''
    author_id: str = ''
    author_url: str = ''
    author_thumbnails: List[InvidiousThumbnail] = Field(default_factory=list)
    video_thumbnails: List[InvidiousThumbnail] = Field(default_factory=list)
    sub_count_text: str = ''
    length_seconds: int = 0
    hls_url: Optional[str] = None
    dash_url: Optional[str] = None
    adaptive_formats: List[InvidiousAdaptiveFormat] = Field(default_factory=list)
    format_streams: List[InvidiousFormatStream] = Field(default_factory=list)
    recommended_videos: List[InvidiousVideoItem] = Field(default_factory=list)
    live_now: bool = False
    genre: str = ''
    sub_count: int = 0
    author_verified: bool = False


class InvidiousSuggestions(WireModel):
    query: str = ''
    suggestions: List[str] = Field(default_factory=list)


class InvidiousCommentReplies(WireModel):
    reply_count: int = 0
    continuation: Optional[str] = None


class InvidiousComment(WireModel):
    author: str = ''
    author_thumbnails: List[InvidiousThumbnail] = Field(default_factory=list)
    author_id: str = ''
    author_url: str = ''
    content: str = ''
    content_html: str = ''
    published: int = 0
    published_text: str = ''
    like_count: int = 0
    comment_id: str = ''
    author_is_channel_owner: bool = False
    creator_heart: Optional[Any] = None
    is_pinned: bool = False
    replies: Optional[InvidiousCommentReplies] = None


class InvidiousCommentsResponse(WireModel):
    comment_count: Optional[int] = None
    comments: List[InvidiousComment] = Field(default_factory=list)
    continuation: Optional[str] = None


class InvidiousChannel(WireModel):
    author: str = ''
    author_id: str = ''
    author_url: str = ''
    author_banners: List[InvidiousThumbnail] = Field(default_factory=list)
    author_thumbnails: List[InvidiousThumbnail] = Field(default_factory=list)
    sub_count: int = 0
    total_views: int = 0
    description: str = ''
    description_html: str = ''
    is_family_friendly: bool = True
    latest_videos: List[InvidiousVideoItem] = Field(default_factory=list)
    auto_generated: bool = False
    tabs: List[str] = Field(default_factory=list)


def _parse_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
