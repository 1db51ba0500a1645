import os
from unittest.mock import MagicMock

import pytest

from download_service import DownloadService, sanitize_filename
from models import DownloadStatus


class FakeStreamResponse:
    def __init__(self, chunks, status_code=200, content_length=None, on_finish=None):
        self.chunks = chunks
        self.on_finish = on_finish
        self.status_code = status_code
        self.ok = status_code < 400
        total = sum(len(chunk) for chunk in chunks if not callable(chunk)) if content_length is None else content_length
        self.headers = {'Content-Length': str(total)}

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            yield chunk() if callable(chunk) else chunk
        if self.on_finish:
            self.on_finish()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture
def store(app_context):
    return app_context.extensions['relaytube']['store']


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def service(app_context, store, session, tmp_path):
    return DownloadService(app_context, store, session, str(tmp_path / 'downloads'))


def _record(store, video_id):
    store.db.session.expire_all()
    return store.get('downloads', video_id)


def test_sanitize_filename():
    assert sanitize_filename('My Video: part 1/2?') == 'My Video_ part 1_2_'
    assert sanitize_filename('ok-name_1.0') == 'ok-name_1.0'


def test_download_completes(service, store, session, tmp_path):
    session.get.return_value = FakeStreamResponse([b'a' * 50, b'', b'b' * 50])
    progress = []

    thread = service.start('v1', 'https://cdn.example/v1', 'Clip: one', quality='720p',
                           progress_callback=lambda video_id, pct: progress.append(pct))
    thread.join(timeout=5)

    path = tmp_path / 'downloads' / 'Clip_ one_720p.mp4'
    assert path.read_bytes() == b'a' * 50 + b'b' * 50
    record = _record(store, 'v1')
    assert record.status == DownloadStatus.COMPLETED.value
    assert record.download_progress == 100
    assert record.file_size == 100
    assert record.file_path == str(path)
    assert progress == [50, 100]
    assert not service.is_active('v1')

    _, kwargs = session.get.call_args
    assert kwargs['stream'] is True


def test_audio_download_uses_m4a(service, session, tmp_path):
    session.get.return_value = FakeStreamResponse([b'x'])

    service.start('v2', 'https://cdn.example/a', 'Song', quality='128k', is_audio=True).join(timeout=5)

    assert (tmp_path / 'downloads' / 'Song_128k.m4a').exists()


def test_unknown_length_reports_completion(service, store, session):
    session.get.return_value = FakeStreamResponse([b'x' * 10], content_length=0)
    progress = []

    service.start('v3', 'u', 'T', progress_callback=lambda video_id, pct: progress.append(pct)).join(timeout=5)

    assert progress == [100]
    assert _record(store, 'v3').status == DownloadStatus.COMPLETED.value


def test_http_error_marks_failed(service, store, session, tmp_path):
    session.get.return_value = FakeStreamResponse([], status_code=403)

    service.start('v4', 'u', 'T').join(timeout=5)

    record = _record(store, 'v4')
    assert record.status == DownloadStatus.FAILED.value
    assert record.download_progress == 0
    assert not os.path.exists(record.file_path)


def test_stream_exception_marks_failed_and_removes_file(service, store, session):
    def explode():
        raise ConnectionError('connection reset')

    session.get.return_value = FakeStreamResponse([b'x' * 10, explode], content_length=100)

    service.start('v5', 'u', 'T').join(timeout=5)

    record = _record(store, 'v5')
    assert record.status == DownloadStatus.FAILED.value
    assert not os.path.exists(record.file_path)


def test_cancel_mid_transfer(service, store, session):
    def cancel_then_chunk():
        service.cancel('v6')
        return b'y' * 10

    session.get.return_value = FakeStreamResponse([b'x' * 10, cancel_then_chunk, b'z' * 10])

    service.start('v6', 'u', 'T').join(timeout=5)

    record = _record(store, 'v6')
    assert record.status == DownloadStatus.FAILED.value
    assert not os.path.exists(record.file_path)
    assert not service.is_active('v6')


def test_cancel_unknown_download(service):
    assert service.cancel('nope') is False


def test_cancel_after_last_chunk_marks_failed(service, store, session):
    session.get.return_value = FakeStreamResponse(
        [b'x' * 10, b'y' * 10], on_finish=lambda: service.cancel('v7'))
    progress = []

    service.start('v7', 'u', 'T', progress_callback=lambda video_id, pct: progress.append(pct)).join(timeout=5)

    record = _record(store, 'v7')
    assert record.status == DownloadStatus.FAILED.value
    assert record.download_progress == 0
    assert not os.path.exists(record.file_path)
    assert 100 in progress


def test_deleted_download_is_not_recreated(service, store, session, tmp_path):
    def cancel_and_delete():
        service.cancel('v8')
        store.delete('downloads', 'v8')

    session.get.return_value = FakeStreamResponse([b'x' * 10], on_finish=cancel_and_delete)

    service.start('v8', 'u', 'T', quality='360p').join(timeout=5)

    assert _record(store, 'v8') is None
    assert not (tmp_path / 'downloads' / 'T_360p.mp4').exists()


def test_record_deleted_without_cancel_discards_file(service, store, session, tmp_path):
    session.get.return_value = FakeStreamResponse(
        [b'x' * 10], on_finish=lambda: store.delete('downloads', 'v9'))

    service.start('v9', 'u', 'T', quality='360p').join(timeout=5)

    assert _record(store, 'v9') is None
    assert not (tmp_path / 'downloads' / 'T_360p.mp4').exists()
