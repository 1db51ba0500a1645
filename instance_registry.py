"""
Piped / Invidious インスタンスリストの管理とヘルストラッキング
"""
import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from config import (
    COOLDOWN_DURATION,
    DEFAULT_INVIDIOUS_INSTANCES,
    DEFAULT_PIPED_INSTANCES,
    MAX_FAILURES_BEFORE_COOLDOWN,
)


class Provider(str, Enum):
    PIPED = 'piped'
    INVIDIOUS = 'invidious'


def normalize_url(url: str) -> str:
    """末尾のスラッシュを除去"""
    return url.strip().rstrip('/')


class InstanceRegistry:
    """2系統のインスタンスリストと失敗カウンタ・クールダウンを管理するクラス

    カーソルは「現在ブロックされていないインスタンス集合」への論理インデックス。
    クールダウンの出入りで集合が伸縮すると、同じカーソル値が指すURLも変わる。
    """

    def __init__(
        self,
        piped_instances: Optional[List[str]] = None,
        invidious_instances: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
        global_reset: bool = False,
    ):
        self._defaults = {
            Provider.PIPED: list(DEFAULT_PIPED_INSTANCES),
            Provider.INVIDIOUS: list(DEFAULT_INVIDIOUS_INSTANCES),
        }
        self._instances: Dict[Provider, List[str]] = {
            Provider.PIPED: self._dedupe(piped_instances if piped_instances is not None else DEFAULT_PIPED_INSTANCES),
            Provider.INVIDIOUS: self._dedupe(
                invidious_instances if invidious_instances is not None else DEFAULT_INVIDIOUS_INSTANCES
            ),
        }
        self._cursors: Dict[Provider, int] = {Provider.PIPED: 0, Provider.INVIDIOUS: 0}
        # URL → 連続失敗回数 / クールダウン解除時刻（プロバイダ共通）
        self._failure_counts: Dict[str, int] = {}
        self._cooldowns: Dict[str, float] = {}
        self._clock = clock
        self._global_reset = global_reset
        self._lock = threading.RLock()

    @staticmethod
    def _dedupe(urls) -> List[str]:
        result = []
        for url in urls:
            normalized = normalize_url(url)
            if normalized and normalized not in result:
                result.append(normalized)
        return result

    def _available(self, provider: Provider, now: float) -> List[str]:
        return [url for url in self._instances[provider] if self._cooldowns.get(url, 0) <= now]

    def current_best(self, provider: Provider) -> str:
        """現在最適なインスタンスURLを取得"""
        with self._lock:
            instances = self._instances[provider]
            available = self._available(provider, self._clock())
            if not available:
                # 全てクールダウン中 → リセットして先頭から再試行
                self._reset_cooldowns(provider)
                if instances:
                    return instances[0]
                return normalize_url(self._defaults[provider][0])
            return available[self._cursors[provider] % len(available)]

    def _reset_cooldowns(self, provider: Provider):
        if self._global_reset:
            self._cooldowns.clear()
            self._failure_counts.clear()
        else:
            for url in self._instances[provider]:
                self._cooldowns.pop(url, None)
                self._failure_counts.pop(url, None)
        logging.warning(f"{provider.value} の全インスタンスがクールダウン中のためリセットしました")

    def report_failure(self, provider: Provider, url: str):
        """インスタンスの失敗を記録（502/503/タイムアウト等）"""
        normalized = normalize_url(url)
        with self._lock:
            count = self._failure_counts.get(normalized, 0) + 1
            self._failure_counts[normalized] = count
            if count >= MAX_FAILURES_BEFORE_COOLDOWN:
                self._cooldowns[normalized] = self._clock() + COOLDOWN_DURATION
        logging.warning(f"{provider.value} インスタンス失敗 #{count}: {normalized}")
        if count >= MAX_FAILURES_BEFORE_COOLDOWN:
            logging.warning(f"{COOLDOWN_DURATION // 60}分間クールダウン: {normalized}")

    def report_success(self, provider: Provider, url: str):
        """成功したインスタンスの失敗カウンタとクールダウンをクリア"""
        normalized = normalize_url(url)
        with self._lock:
            self._failure_counts.pop(normalized, None)
            self._cooldowns.pop(normalized, None)

    def rotate_next(self, provider: Provider) -> Optional[str]:
        """次の利用可能なインスタンスへローテーション。代替が無い場合は None"""
        with self._lock:
            available = self._available(provider, self._clock())
            if len(available) <= 1:
                return None
            cursor = (self._cursors[provider] + 1) % len(available)
            self._cursors[provider] = cursor
            next_url = available[cursor]
        logging.info(f"{provider.value} インスタンスをローテーション: {next_url}")
        return next_url

    def all_exhausted(self, provider: Provider) -> bool:
        """全インスタンスがクールダウン中かどうか"""
        with self._lock:
            now = self._clock()
            return all(self._cooldowns.get(url, 0) > now for url in self._instances[provider])

    def set_preferred(self, url: str):
        """ユーザー指定のインスタンスを Piped リストの先頭に移動"""
        normalized = normalize_url(url)
        if not normalized:
            return
        with self._lock:
            instances = [inst for inst in self._instances[Provider.PIPED] if inst != normalized]
            instances.insert(0, normalized)
            self._instances[Provider.PIPED] = instances
            self._cursors[Provider.PIPED] = 0
        logging.info(f"優先インスタンスを設定: {normalized}")

    def replace_list(self, provider: Provider, urls: List[str]):
        """ディスカバリー結果でリストを丸ごと置き換え"""
        instances = self._dedupe(urls)
        with self._lock:
            self._instances[provider] = instances
            self._cursors[provider] = 0
        logging.info(f"{provider.value} インスタンスリストを更新: {len(instances)} 件")

    # ── 参照用 ──

    def instances(self, provider: Provider) -> List[str]:
        with self._lock:
            return list(self._instances[provider])

    def instance_count(self, provider: Provider) -> int:
        with self._lock:
            return len(self._instances[provider])

    def cursor(self, provider: Provider) -> int:
        with self._lock:
            return self._cursors[provider]

    def failure_count(self, url: str) -> int:
        with self._lock:
            return self._failure_counts.get(normalize_url(url), 0)

    def cooldown_until(self, url: str) -> Optional[float]:
        with self._lock:
            return self._cooldowns.get(normalize_url(url))

    def snapshot(self) -> Dict:
        """ステータス表示用のスナップショット"""
        with self._lock:
            now = self._clock()
            result = {}
            for provider, instances in self._instances.items():
                result[provider.value] = {
                    'cursor': self._cursors[provider],
                    'instances': [
                        {
                            'url': url,
                            'failures': self._failure_counts.get(url, 0),
                            'cooldown_remaining': max(0, int(self._cooldowns.get(url, 0) - now)),
                        }
                        for url in instances
                    ],
                }
            return result
