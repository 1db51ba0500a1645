"""
Piped / Invidious の公開インスタンス一覧を取得してレジストリに反映する
"""
import logging
import threading
from typing import List, Optional

import requests

from config import (
    DISCOVERY_TIMEOUT,
    INVIDIOUS_INSTANCE_LIMIT,
    INVIDIOUS_INSTANCES_URL,
    PIPED_INSTANCES_URL,
)
from instance_registry import InstanceRegistry, Provider, normalize_url


class InstanceListFetcher:
    """起動時に一度だけインスタンス一覧を取得する（失敗時はデフォルトのまま）"""

    def __init__(self, registry: InstanceRegistry, session: Optional[requests.Session] = None,
                 piped_url: str = PIPED_INSTANCES_URL, invidious_url: str = INVIDIOUS_INSTANCES_URL):
        self.registry = registry
        self.session = session or requests.Session()
        self.piped_url = piped_url
        self.invidious_url = invidious_url
        self._lock = threading.Lock()
        self._fetched = False

    @property
    def fetched(self) -> bool:
        return self._fetched

    def refresh(self):
        """インスタンス一覧を取得（プロセス内で一度だけ、例外は外に出さない）"""
        if self._fetched:
            return
        with self._lock:
            if self._fetched:
                return
            try:
                urls = self.fetch_piped_instances()
                if urls:
                    self.registry.replace_list(Provider.PIPED, urls)
                    logging.info(f"✅ Piped インスタンス取得: {len(urls)} 件")
            except Exception as e:
                logging.error(f"Piped インスタンス一覧の取得に失敗、デフォルトを使用: {e}")
            try:
                urls = self.fetch_invidious_instances()
                if urls:
                    self.registry.replace_list(Provider.INVIDIOUS, urls)
                    logging.info(f"✅ Invidious インスタンス取得: {len(urls)} 件")
            except Exception as e:
                logging.error(f"Invidious インスタンス一覧の取得に失敗、デフォルトを使用: {e}")
            self._fetched = True

    def fetch_piped_instances(self) -> List[str]:
        """[{api_url, up_to_date, ...}] 形式 → 最新版のインスタンスを優先して並べる"""
        response = self.session.get(self.piped_url, timeout=DISCOVERY_TIMEOUT)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise ValueError(f"予期しないデータ形式: {type(data)}")

        entries = []
        for item in data:
            if not isinstance(item, dict):
                continue
            api_url = item.get('api_url') or ''
            if not isinstance(api_url, str) or not api_url.strip():
                continue
            entries.append((api_url, bool(item.get('up_to_date', True))))

        # sorted は安定ソートなので同順位は元の並びを保つ
        entries.sort(key=lambda entry: entry[1], reverse=True)

        urls = []
        for api_url, _ in entries:
            normalized = normalize_url(api_url)
            if normalized not in urls:
                urls.append(normalized)
        return urls

    def fetch_invidious_instances(self) -> List[str]:
        """[[domain, {...}], ...] 形式 → 上位 15 件の https URL"""
        response = self.session.get(self.invidious_url, timeout=DISCOVERY_TIMEOUT)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise ValueError(f"予期しないデータ形式: {type(data)}")

        urls = []
        for entry in data:
            if not isinstance(entry, (list, tuple)) or not entry:
                continue
            domain = entry[0]
            if isinstance(domain, str) and domain.strip():
                urls.append(f"https://{domain.strip()}")
        return urls[:INVIDIOUS_INSTANCE_LIMIT]
