"""
動画・音声のダウンロード（ストリーミングでファイルへ保存、進捗をローカルストアへ記録）
"""
import logging
import os
import re
import threading
from typing import Callable, Dict, Optional

import requests

from config import DOWNLOAD_CONNECT_TIMEOUT, DOWNLOAD_READ_TIMEOUT
from models import DownloadStatus

CHUNK_SIZE = 8192


def sanitize_filename(title: str) -> str:
    return re.sub(r'[^a-zA-Z0-9._\- ]', '_', title)


class DownloadService:
    def __init__(self, app, store, session: Optional[requests.Session] = None, download_dir: str = 'downloads'):
        self.app = app
        self.store = store
        self.session = session or requests.Session()
        self.download_dir = download_dir
        self._active: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def is_active(self, video_id: str) -> bool:
        with self._lock:
            return video_id in self._active

    def start(self, video_id: str, download_url: str, title: str, thumbnail: str = '',
              uploader: str = '', duration: int = 0, quality: str = '720p', is_audio: bool = False,
              progress_callback: Optional[Callable[[str, int], None]] = None) -> threading.Thread:
        """バックグラウンドスレッドでダウンロードを開始"""
        extension = 'm4a' if is_audio else 'mp4'
        file_path = os.path.join(self.download_dir, f"{sanitize_filename(title)}_{quality}.{extension}")

        cancel_event = threading.Event()
        with self._lock:
            previous = self._active.get(video_id)
            if previous is not None:
                previous.set()
            self._active[video_id] = cancel_event

        self.store.upsert(
            'downloads', video_id,
            title=title, thumbnail=thumbnail, uploader=uploader, duration=duration,
            file_path=file_path, file_size=0, quality=quality, download_progress=0,
            status=DownloadStatus.DOWNLOADING.value,
        )

        thread = threading.Thread(
            target=self._run,
            args=(video_id, download_url, file_path, cancel_event, progress_callback),
            daemon=True,
        )
        thread.start()
        return thread

    def cancel(self, video_id: str) -> bool:
        with self._lock:
            cancel_event = self._active.pop(video_id, None)
        if cancel_event is None:
            return False
        cancel_event.set()
        self.store.update_progress(video_id, 0, DownloadStatus.FAILED)
        logging.info(f"ダウンロードをキャンセル: {video_id}")
        return True

    def _run(self, video_id, download_url, file_path, cancel_event, progress_callback):
        with self.app.app_context():
            try:
                self._transfer(video_id, download_url, file_path, cancel_event, progress_callback)
            except Exception as e:
                logging.error(f"ダウンロード失敗 {video_id}: {e}")
                self.store.update_progress(video_id, 0, DownloadStatus.FAILED)
                _remove_file(file_path)
            finally:
                with self._lock:
                    if self._active.get(video_id) is cancel_event:
                        del self._active[video_id]

    def _transfer(self, video_id, download_url, file_path, cancel_event, progress_callback):
        os.makedirs(os.path.dirname(file_path) or '.', exist_ok=True)
        timeout = (DOWNLOAD_CONNECT_TIMEOUT, DOWNLOAD_READ_TIMEOUT)

        with self.session.get(download_url, stream=True, timeout=timeout) as response:
            if not response.ok:
                logging.warning(f"ダウンロード HTTPエラー {response.status_code}: {video_id}")
                self.store.update_progress(video_id, 0, DownloadStatus.FAILED)
                return

            content_length = int(response.headers.get('Content-Length') or 0)
            downloaded = 0
            last_progress = 0

            with open(file_path, 'wb') as output:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if cancel_event.is_set():
                        output.close()
                        _remove_file(file_path)
                        self.store.update_progress(video_id, 0, DownloadStatus.FAILED)
                        return
                    if not chunk:
                        continue
                    output.write(chunk)
                    downloaded += len(chunk)

                    if content_length > 0:
                        progress = min(100, downloaded * 100 // content_length)
                        if progress > last_progress:
                            last_progress = progress
                            self.store.update_progress(video_id, progress, DownloadStatus.DOWNLOADING)
                            if progress_callback:
                                progress_callback(video_id, progress)
                            if progress % 25 == 0:
                                logging.info(f"ダウンロード進捗 {video_id}: {progress}%")

        # 最後のチャンク以降のキャンセルも反映する
        if cancel_event.is_set():
            _remove_file(file_path)
            self.store.update_progress(video_id, 0, DownloadStatus.FAILED)
            return

        if self.store.update_progress(video_id, 100, DownloadStatus.COMPLETED, file_size=downloaded) is None:
            logging.warning(f"ダウンロード記録が削除済みのためファイルを破棄: {video_id}")
            _remove_file(file_path)
            return
        if progress_callback and last_progress < 100:
            progress_callback(video_id, 100)
        logging.info(f"✅ ダウンロード完了: {video_id} ({downloaded} bytes)")


def _remove_file(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
