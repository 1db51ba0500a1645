"""
Invidious レスポンス → Piped 正規モデルへの変換
"""
from typing import List, Optional

from schemas import (
    Channel,
    Comment,
    CommentsResponse,
    InvidiousChannel,
    InvidiousCommentsResponse,
    InvidiousSuggestions,
    InvidiousThumbnail,
    InvidiousVideoDetail,
    InvidiousVideoItem,
    PipedStream,
    SearchResponse,
    StreamItem,
    VideoStream,
)

SHORT_MAX_SECONDS = 60
SHORT_DESCRIPTION_LENGTH = 200


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def pick_thumbnail(thumbnails: List[InvidiousThumbnail]) -> str:
    """medium 品質を優先、無ければ先頭、それも無ければ空文字"""
    for thumb in thumbnails:
        if thumb.quality == 'medium':
            return thumb.url
    return thumbnails[0].url if thumbnails else ''


def pick_widest(thumbnails: List[InvidiousThumbnail]) -> str:
    if not thumbnails:
        return ''
    return max(thumbnails, key=lambda thumb: thumb.width).url


def is_short(length_seconds: int) -> bool:
    return 1 <= length_seconds <= SHORT_MAX_SECONDS


def to_stream_item(item: InvidiousVideoItem) -> StreamItem:
    return StreamItem(
        url=f"/watch?v={item.video_id}",
        type='stream' if item.type == 'video' else item.type,
        title=item.title,
        thumbnail=pick_thumbnail(item.video_thumbnails),
        uploader_name=item.author,
        uploader_url=item.author_url,
        uploader_avatar='',
        uploaded_date=item.published_text,
        short_description=item.description[:SHORT_DESCRIPTION_LENGTH],
        duration=item.length_seconds,
        views=item.view_count,
        uploaded=item.published * 1000,
        uploader_verified=item.author_verified,
        is_short=is_short(item.length_seconds),
    )


def to_video_stream(detail: InvidiousVideoDetail) -> VideoStream:
    audio_streams = [
        PipedStream(
            url=fmt.url,
            format=fmt.container or 'webm',
            quality=fmt.audio_quality,
            mime_type=fmt.type,
            codec=fmt.encoding,
            video_only=False,
            bitrate=_to_int(fmt.bitrate),
            content_length=_to_int(fmt.clen),
        )
        for fmt in detail.adaptive_formats
        if fmt.is_audio
    ]

    video_only_streams = [
        PipedStream(
            url=fmt.url,
            format=fmt.container or 'webm',
            quality=fmt.quality_label or fmt.resolution,
            mime_type=fmt.type,
            codec=fmt.encoding,
            video_only=True,
            bitrate=_to_int(fmt.bitrate),
            height=fmt.height_from_resolution,
            fps=fmt.fps,
            content_length=_to_int(fmt.clen),
        )
        for fmt in detail.adaptive_formats
        if fmt.is_video
    ]

    # formatStreams は音声付き（プログレッシブ）
    combined_streams = [
        PipedStream(
            url=fmt.url,
            format=fmt.container or 'mp4',
            quality=fmt.quality_label or fmt.quality,
            mime_type=fmt.type,
            codec=fmt.encoding,
            video_only=False,
            height=_to_int((fmt.resolution or '').removesuffix('p')),
            fps=fmt.fps,
        )
        for fmt in detail.format_streams
    ]

    return VideoStream(
        title=detail.title,
        description=detail.description,
        upload_date=detail.published_text,
        uploader=detail.author,
        uploader_url=detail.author_url,
        uploader_avatar=detail.author_thumbnails[0].url if detail.author_thumbnails else '',
        thumbnail_url=pick_thumbnail(detail.video_thumbnails),
        hls=detail.hls_url,
        dash=detail.dash_url,
        category=detail.genre,
        uploader_verified=detail.author_verified,
        duration=detail.length_seconds,
        views=detail.view_count,
        likes=detail.like_count,
        dislikes=detail.dislike_count,
        audio_streams=audio_streams,
        video_streams=combined_streams + video_only_streams,
        related_streams=[to_stream_item(video) for video in detail.recommended_videos],
        subtitles=[],
        livestream=detail.live_now,
        proxy_url='',
        chapters=[],
        uploader_subscriber_count=detail.sub_count,
        preview_frames=[],
    )


def to_search_response(items: List[InvidiousVideoItem]) -> SearchResponse:
    return SearchResponse(items=[to_stream_item(item) for item in items], nextpage=None)


def to_suggestions(suggestions: InvidiousSuggestions) -> List[str]:
    return list(suggestions.suggestions)


def to_comments_response(response: InvidiousCommentsResponse) -> CommentsResponse:
    comments = []
    for comment in response.comments:
        replies = comment.replies
        comments.append(Comment(
            author=comment.author,
            thumbnail=comment.author_thumbnails[0].url if comment.author_thumbnails else '',
            comment_id=comment.comment_id,
            comment_text=comment.content_html if comment.content_html.strip() else comment.content,
            commented_time=comment.published_text,
            commentor_url=comment.author_url,
            like_count=comment.like_count,
            hearted=comment.creator_heart is not None,
            pinned=comment.is_pinned,
            verified=False,
            reply_count=replies.reply_count if replies else 0,
            replies_page=replies.continuation if replies else None,
            creator_replied=comment.author_is_channel_owner,
        ))
    return CommentsResponse(comments=comments, nextpage=response.continuation, disabled=False)


def to_channel(channel: InvidiousChannel) -> Channel:
    return Channel(
        id=channel.author_id,
        name=channel.author,
        avatar_url=pick_widest(channel.author_thumbnails),
        banner_url=pick_widest(channel.author_banners),
        description=channel.description,
        nextpage=None,
        subscriber_count=channel.sub_count,
        verified=False,
        related_streams=[to_stream_item(video) for video in channel.latest_videos],
    )
