"""
ダウンロード・視聴履歴・登録チャンネルのローカル保存（変更通知付き）
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy import asc, desc, select

from models import Download, DownloadStatus, Subscription, WatchHistory

TABLES = {
    'downloads': Download,
    'watch_history': WatchHistory,
    'subscriptions': Subscription,
}

# 一覧取得時の並び順
ORDERING = {
    'downloads': desc(Download.timestamp),
    'watch_history': desc(WatchHistory.timestamp),
    'subscriptions': asc(Subscription.channel_name),
}


class LocalStore:
    def __init__(self, db):
        self.db = db
        self._listeners: Dict[str, List[Callable[[str], None]]] = {name: [] for name in TABLES}
        self._listeners_lock = threading.Lock()

    # ── 変更通知 ──

    def subscribe(self, table: str, callback: Callable[[str], None]) -> Callable[[], None]:
        """テーブル変更時に呼ばれるコールバックを登録。戻り値で解除できる"""
        self._model(table)
        with self._listeners_lock:
            self._listeners[table].append(callback)

        def unsubscribe():
            with self._listeners_lock:
                if callback in self._listeners[table]:
                    self._listeners[table].remove(callback)

        return unsubscribe

    def _notify(self, table: str):
        with self._listeners_lock:
            listeners = list(self._listeners[table])
        for callback in listeners:
            try:
                callback(table)
            except Exception as e:
                logging.warning(f"変更通知コールバックでエラー ({table}): {e}")

    # ── CRUD ──

    def upsert(self, table: str, key: str, **fields):
        model = self._model(table)
        record = self.db.session.get(model, key)
        if record is None:
            record = model(**{self._key_name(model): key})
            self.db.session.add(record)
        for name, value in fields.items():
            if not hasattr(model, name):
                raise ValueError(f"不明なフィールド: {table}.{name}")
            setattr(record, name, value)
        if 'timestamp' not in fields:
            record.timestamp = datetime.now(timezone.utc)
        self._commit()
        self._notify(table)
        return record

    def get(self, table: str, key: str):
        return self.db.session.get(self._model(table), key)

    def delete(self, table: str, key: str) -> bool:
        record = self.get(table, key)
        if record is None:
            return False
        self.db.session.delete(record)
        self._commit()
        self._notify(table)
        return True

    def list(self, table: str, limit: Optional[int] = None):
        model = self._model(table)
        query = select(model).order_by(ORDERING[table])
        if limit:
            query = query.limit(limit)
        return list(self.db.session.scalars(query))

    def clear(self, table: str):
        model = self._model(table)
        self.db.session.query(model).delete()
        self._commit()
        self._notify(table)

    # ── 個別操作 ──

    def update_progress(self, video_id: str, progress: int, status: DownloadStatus,
                        file_size: Optional[int] = None):
        """既存のダウンロードのみ更新（削除済みなら None）"""
        record = self.get('downloads', video_id)
        if record is None:
            return None
        record.download_progress = progress
        record.status = DownloadStatus(status).value
        if file_size is not None:
            record.file_size = file_size
        self._commit()
        self._notify('downloads')
        return record

    def update_watch_position(self, video_id: str, position: int):
        record = self.get('watch_history', video_id)
        if record is None:
            return None
        record.progress_position = position
        record.timestamp = datetime.now(timezone.utc)
        self._commit()
        self._notify('watch_history')
        return record

    def is_subscribed(self, channel_id: str) -> bool:
        return self.get('subscriptions', channel_id) is not None

    def _commit(self):
        try:
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise

    @staticmethod
    def _model(table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"不明なテーブル: {table}") from None

    @staticmethod
    def _key_name(model) -> str:
        return model.__mapper__.primary_key[0].key
