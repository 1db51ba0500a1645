"""
Piped / Invidious API クライアントとクライアントファクトリー
"""
import logging
import threading
from typing import Dict, List, Optional

import requests
from pydantic import TypeAdapter
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import API_CONNECT_TIMEOUT, API_READ_TIMEOUT, TRANSPORT_CONNECT_RETRIES, USER_AGENT
from instance_registry import InstanceRegistry, Provider, normalize_url
from schemas import (
    Channel,
    CommentsResponse,
    InvidiousChannel,
    InvidiousCommentsResponse,
    InvidiousSuggestions,
    InvidiousVideoDetail,
    InvidiousVideoItem,
    SearchResponse,
    StreamItem,
    VideoStream,
)

_stream_items = TypeAdapter(List[StreamItem])
_invidious_items = TypeAdapter(List[InvidiousVideoItem])
_suggestions = TypeAdapter(List[str])


def build_session() -> requests.Session:
    """データ API 用の共有セッション（接続失敗のみトランスポート層で再試行）"""
    session = requests.Session()
    session.headers.update({'User-Agent': USER_AGENT})
    retry = Retry(
        total=TRANSPORT_CONNECT_RETRIES,
        connect=TRANSPORT_CONNECT_RETRIES,
        read=0,
        status=0,
        backoff_factor=0.2,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session


class BaseApi:
    """ベース URL に束縛された軽量な JSON クライアント"""

    provider: Provider

    def __init__(self, base_url: str, session: requests.Session):
        self.base_url = normalize_url(base_url)
        self.session = session
        self.timeout = (API_CONNECT_TIMEOUT, API_READ_TIMEOUT)

    def _get(self, path: str, params: Optional[Dict] = None):
        url = f"{self.base_url}/{path}"
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        response = self.session.get(url, params=params or None, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def __repr__(self):
        return f"{type(self).__name__}({self.base_url!r})"


class PipedApi(BaseApi):
    provider = Provider.PIPED

    def get_trending(self, region: str = 'US') -> List[StreamItem]:
        return _stream_items.validate_python(self._get('trending', {'region': region}))

    def get_streams(self, video_id: str) -> VideoStream:
        return VideoStream.model_validate(self._get(f"streams/{video_id}"))

    def search(self, query: str, filter: str = 'all') -> SearchResponse:
        return SearchResponse.model_validate(self._get('search', {'q': query, 'filter': filter}))

    def search_next_page(self, query: str, filter: str, nextpage: str) -> SearchResponse:
        data = self._get('nextpage/search', {'q': query, 'filter': filter, 'nextpage': nextpage})
        return SearchResponse.model_validate(data)

    def get_suggestions(self, query: str) -> List[str]:
        return _suggestions.validate_python(self._get('suggestions', {'query': query}))

    def get_channel(self, channel_id: str) -> Channel:
        return Channel.model_validate(self._get(f"channel/{channel_id}"))

    def get_channel_next_page(self, channel_id: str, nextpage: str) -> Channel:
        return Channel.model_validate(self._get(f"nextpage/channel/{channel_id}", {'nextpage': nextpage}))

    def get_comments(self, video_id: str) -> CommentsResponse:
        return CommentsResponse.model_validate(self._get(f"comments/{video_id}"))

    def get_comments_next_page(self, video_id: str, nextpage: str) -> CommentsResponse:
        data = self._get(f"nextpage/comments/{video_id}", {'nextpage': nextpage})
        return CommentsResponse.model_validate(data)


class InvidiousApi(BaseApi):
    provider = Provider.INVIDIOUS

    def get_trending(self, region: str = 'US') -> List[InvidiousVideoItem]:
        return _invidious_items.validate_python(self._get('api/v1/trending', {'region': region}))

    def get_video(self, video_id: str) -> InvidiousVideoDetail:
        return InvidiousVideoDetail.model_validate(self._get(f"api/v1/videos/{video_id}"))

    def search(self, query: str, type: str = 'video', page: int = 1) -> List[InvidiousVideoItem]:
        data = self._get('api/v1/search', {'q': query, 'type': type, 'page': page})
        return _invidious_items.validate_python(data)

    def get_suggestions(self, query: str) -> InvidiousSuggestions:
        return InvidiousSuggestions.model_validate(self._get('api/v1/search/suggestions', {'q': query}))

    def get_comments(self, video_id: str, continuation: Optional[str] = None) -> InvidiousCommentsResponse:
        data = self._get(f"api/v1/comments/{video_id}", {'continuation': continuation})
        return InvidiousCommentsResponse.model_validate(data)

    def get_channel(self, channel_id: str) -> InvidiousChannel:
        return InvidiousChannel.model_validate(self._get(f"api/v1/channels/{channel_id}"))


CLIENT_CLASSES = {
    Provider.PIPED: PipedApi,
    Provider.INVIDIOUS: InvidiousApi,
}


class ApiClientFactory:
    """プロバイダごとにクライアントをキャッシュし、ベース URL が変わった時だけ作り直す"""

    def __init__(self, registry: InstanceRegistry, session: Optional[requests.Session] = None):
        self.registry = registry
        self.session = session or build_session()
        self._clients: Dict[Provider, BaseApi] = {}
        self._lock = threading.Lock()

    def get(self, provider: Provider, base_url: Optional[str] = None) -> BaseApi:
        url = normalize_url(base_url or self.registry.current_best(provider))
        with self._lock:
            client = self._clients.get(provider)
            if client is None or client.base_url != url:
                client = self._build(provider, url)
                logging.info(f"{provider.value} API → {url}")
            return client

    def rebuild(self, provider: Provider, base_url: str) -> BaseApi:
        with self._lock:
            client = self._build(provider, normalize_url(base_url))
        logging.info(f"{provider.value} API を再構築 → {client.base_url}")
        return client

    def current_base_url(self, provider: Provider) -> str:
        with self._lock:
            client = self._clients.get(provider)
            return client.base_url if client else ''

    def _build(self, provider: Provider, url: str) -> BaseApi:
        # 呼び出し側から見て新しいクライアントへ一括で差し替わる
        client = CLIENT_CLASSES[provider](url, self.session)
        self._clients[provider] = client
        return client
