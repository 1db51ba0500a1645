"""
動画カタログのリポジトリ（全 API 呼び出しをフェイルオーバー経由で実行）
"""
import threading
from typing import List, Optional

import response_mapper
from failover import FailoverExecutor, Result
from schemas import Channel, CommentsResponse, SearchResponse, StreamItem, VideoStream


class VideoCatalogRepository:
    def __init__(self, executor: FailoverExecutor):
        self.executor = executor

    # =========================================================================
    # トレンド
    # =========================================================================

    def get_trending(self, region: str = 'US',
                     cancel_event: Optional[threading.Event] = None) -> Result[List[StreamItem]]:
        return self.executor.run(
            lambda api: api.get_trending(region),
            lambda api: [response_mapper.to_stream_item(item) for item in api.get_trending(region)],
            cancel_event=cancel_event,
        )

    # =========================================================================
    # 動画ストリーム
    # =========================================================================

    def get_streams(self, video_id: str,
                    cancel_event: Optional[threading.Event] = None) -> Result[VideoStream]:
        return self.executor.run(
            lambda api: api.get_streams(video_id),
            lambda api: response_mapper.to_video_stream(api.get_video(video_id)),
            cancel_event=cancel_event,
        )

    # =========================================================================
    # 検索
    # =========================================================================

    def search(self, query: str, filter: str = 'all',
               cancel_event: Optional[threading.Event] = None) -> Result[SearchResponse]:
        return self.executor.run(
            lambda api: api.search(query, filter),
            lambda api: response_mapper.to_search_response(api.search(query)),
            cancel_event=cancel_event,
        )

    def search_next_page(self, query: str, filter: str, nextpage: str,
                         cancel_event: Optional[threading.Event] = None) -> Result[SearchResponse]:
        # Invidious はページ番号方式で Piped の nextpage トークンと互換性がない
        return self.executor.run(
            lambda api: api.search_next_page(query, filter, nextpage),
            cancel_event=cancel_event,
        )

    def get_suggestions(self, query: str,
                        cancel_event: Optional[threading.Event] = None) -> Result[List[str]]:
        return self.executor.run(
            lambda api: api.get_suggestions(query),
            lambda api: response_mapper.to_suggestions(api.get_suggestions(query)),
            cancel_event=cancel_event,
        )

    # =========================================================================
    # チャンネル
    # =========================================================================

    def get_channel(self, channel_id: str,
                    cancel_event: Optional[threading.Event] = None) -> Result[Channel]:
        return self.executor.run(
            lambda api: api.get_channel(channel_id),
            lambda api: response_mapper.to_channel(api.get_channel(channel_id)),
            cancel_event=cancel_event,
        )

    def get_channel_next_page(self, channel_id: str, nextpage: str,
                              cancel_event: Optional[threading.Event] = None) -> Result[Channel]:
        return self.executor.run(
            lambda api: api.get_channel_next_page(channel_id, nextpage),
            cancel_event=cancel_event,
        )

    # =========================================================================
    # コメント
    # =========================================================================

    def get_comments(self, video_id: str,
                     cancel_event: Optional[threading.Event] = None) -> Result[CommentsResponse]:
        return self.executor.run(
            lambda api: api.get_comments(video_id),
            lambda api: response_mapper.to_comments_response(api.get_comments(video_id)),
            cancel_event=cancel_event,
        )

    def get_comments_next_page(self, video_id: str, nextpage: str,
                               cancel_event: Optional[threading.Event] = None) -> Result[CommentsResponse]:
        return self.executor.run(
            lambda api: api.get_comments_next_page(video_id, nextpage),
            lambda api: response_mapper.to_comments_response(api.get_comments(video_id, nextpage)),
            cancel_event=cancel_event,
        )
