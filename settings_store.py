"""
アプリ設定の保存（キーごとの型付きデフォルト値）
"""
import json
import logging
from typing import Any, Dict

from instance_registry import InstanceRegistry
from models import Setting

DEFAULTS: Dict[str, Any] = {
    'dark_mode': True,
    'amoled_dark': False,
    'default_quality': '720p',
    'default_region': 'US',
    'background_play': True,
    'sponsorblock_enabled': True,
    'piped_instance': 'https://pipedapi.kavin.rocks/',
    'playback_speed': 1.0,
    'auto_play': True,
    'download_quality': '720p',
    'pip_enabled': True,
}

PREFERRED_INSTANCE_KEY = 'piped_instance'


class SettingsStore:
    def __init__(self, db, registry: InstanceRegistry):
        self.db = db
        self.registry = registry

    def get(self, key: str) -> Any:
        default = self._default(key)
        record = self.db.session.get(Setting, key)
        if record is None:
            return default
        try:
            return json.loads(record.value)
        except ValueError:
            logging.warning(f"設定値を読み込めないためデフォルトを使用: {key}")
            return default

    def all(self) -> Dict[str, Any]:
        return {key: self.get(key) for key in DEFAULTS}

    def set(self, key: str, value: Any):
        default = self._default(key)
        # bool は int のサブクラスなので先に判定
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ValueError(f"{key} には真偽値を指定してください")
        elif isinstance(default, float):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} には数値を指定してください")
            value = float(value)
        elif not isinstance(value, type(default)):
            raise ValueError(f"{key} には文字列を指定してください")

        record = self.db.session.get(Setting, key)
        if record is None:
            record = Setting(key=key, value=json.dumps(value))
            self.db.session.add(record)
        else:
            record.value = json.dumps(value)
        try:
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise

        if key == PREFERRED_INSTANCE_KEY:
            self.registry.set_preferred(value)

    def apply_preferred_instance(self):
        """保存済みの優先インスタンスがあればレジストリに反映"""
        record = self.db.session.get(Setting, PREFERRED_INSTANCE_KEY)
        if record is not None:
            self.registry.set_preferred(self.get(PREFERRED_INSTANCE_KEY))

    @staticmethod
    def _default(key: str) -> Any:
        if key not in DEFAULTS:
            raise KeyError(f"不明な設定キー: {key}")
        return DEFAULTS[key]
