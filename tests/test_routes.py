import pytest

from config import DEFAULT_INVIDIOUS_INSTANCES, DEFAULT_PIPED_INSTANCES
from tests.conftest import FakeSession, make_http_error, make_response


@pytest.fixture
def services(app):
    return app.extensions['relaytube']


@pytest.fixture
def upstream(services):
    """Piped / Invidious へのリクエストをパスで振り分けるスタブ"""
    routes = {'piped': lambda url, params: make_http_error(503),
              'invidious': lambda url, params: make_http_error(503)}

    def handler(url, params):
        provider = 'invidious' if '/api/v1/' in url else 'piped'
        return routes[provider](url, params)

    session = FakeSession(handler)
    services['factory'].session = session
    session.routes = routes
    return session


# =============================================================================
# カタログ
# =============================================================================

def test_trending_from_piped(client, upstream):
    upstream.routes['piped'] = lambda url, params: make_response(200, [
        {'url': '/watch?v=abc', 'title': 'Trend', 'uploaderName': 'U', 'views': 10}
    ])

    response = client.get('/api/trending?region=JP')

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['items'][0]['title'] == 'Trend'
    assert data['items'][0]['uploaderName'] == 'U'
    assert upstream.calls[0] == (DEFAULT_PIPED_INSTANCES[0] + '/trending', {'region': 'JP'})


def test_trending_uses_default_region_setting(client, upstream):
    upstream.routes['piped'] = lambda url, params: make_response(200, [])

    client.get('/api/trending')

    assert upstream.calls[0][1] == {'region': 'US'}


def test_trending_falls_back_to_invidious(client, upstream):
    upstream.routes['invidious'] = lambda url, params: make_response(200, [
        {'type': 'video', 'videoId': 'inv1', 'title': 'From Invidious', 'published': 100, 'lengthSeconds': 30}
    ])

    response = client.get('/api/trending')

    assert response.status_code == 200
    item = response.get_json()['items'][0]
    assert item['url'] == '/watch?v=inv1'
    assert item['uploaded'] == 100000
    assert item['isShort'] is True
    assert upstream.calls[-1][0] == DEFAULT_INVIDIOUS_INSTANCES[0] + '/api/v1/trending'


def test_upstream_not_found_returns_404(client, upstream):
    upstream.routes['piped'] = lambda url, params: make_http_error(404)

    response = client.get('/api/streams/missing')

    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': '404 Error'}
    assert len(upstream.calls) == 1


def test_total_failure_returns_502(client, upstream):
    response = client.get('/api/channel/UC1')

    assert response.status_code == 502
    assert response.get_json()['success'] is False


def test_search_requires_query(client):
    response = client.get('/api/search?q=%20')
    assert response.status_code == 400


def test_search(client, upstream):
    upstream.routes['piped'] = lambda url, params: make_response(200, {
        'items': [{'url': '/watch?v=s1'}], 'nextpage': 'tok'
    })

    data = client.get('/api/search?q=cats&filter=videos').get_json()

    assert data['results']['nextpage'] == 'tok'
    assert upstream.calls[0][1] == {'q': 'cats', 'filter': 'videos'}


def test_search_next_requires_token(client):
    assert client.get('/api/search/next?q=cats').status_code == 400


def test_empty_suggestions_skip_upstream(client, upstream):
    data = client.get('/api/suggestions').get_json()

    assert data == {'success': True, 'suggestions': []}
    assert upstream.calls == []


def test_comments_next_page_falls_back_with_continuation(client, upstream):
    upstream.routes['invidious'] = lambda url, params: make_response(200, {
        'comments': [{'author': 'A', 'content': 'hi'}], 'continuation': 'more'
    })

    data = client.get('/api/comments/v1/next?nextpage=tok').get_json()

    assert data['comments']['nextpage'] == 'more'
    assert data['comments']['comments'][0]['commentText'] == 'hi'
    assert upstream.calls[-1][1] == {'continuation': 'tok'}


# =============================================================================
# インスタンス・設定
# =============================================================================

def test_instances_snapshot(client):
    data = client.get('/api/instances').get_json()

    assert data['discovered'] is False
    assert data['instances']['piped']['instances'][0]['url'] == DEFAULT_PIPED_INSTANCES[0]
    assert len(data['instances']['invidious']['instances']) == len(DEFAULT_INVIDIOUS_INSTANCES)


def test_set_preferred_instance(client):
    response = client.post('/api/instances/preferred', json={'url': 'https://mine.example/'})

    assert response.status_code == 200
    assert response.get_json()['instances']['piped']['instances'][0]['url'] == 'https://mine.example'
    assert client.get('/api/settings').get_json()['settings']['piped_instance'] == 'https://mine.example/'


def test_set_preferred_instance_rejects_invalid_url(client):
    assert client.post('/api/instances/preferred', json={'url': 'ftp://x'}).status_code == 400


def test_update_settings(client):
    response = client.post('/api/settings', json={'dark_mode': False, 'playback_speed': 1.5})

    assert response.status_code == 200
    settings = response.get_json()['settings']
    assert settings['dark_mode'] is False
    assert settings['playback_speed'] == 1.5


@pytest.mark.parametrize('payload', [{'dark_mode': 'yes'}, {'volume': 3}, {}])
def test_update_settings_rejects_bad_input(client, payload):
    assert client.post('/api/settings', json=payload).status_code == 400


# =============================================================================
# ダウンロード・履歴・登録チャンネル
# =============================================================================

def test_request_download(client, services, monkeypatch):
    monkeypatch.setattr(services['downloads'], '_run', lambda *args: None)

    response = client.post('/api/downloads', json={
        'video_id': 'v1', 'download_url': 'https://cdn.example/v1', 'title': 'Clip'
    })

    assert response.status_code == 200
    download = response.get_json()['download']
    assert download['status'] == 'DOWNLOADING'
    assert download['quality'] == '720p'
    assert client.get('/api/downloads').get_json()['downloads'][0]['video_id'] == 'v1'

    assert client.delete('/api/downloads/v1').status_code == 200
    assert client.delete('/api/downloads/v1').status_code == 404


def test_request_download_requires_fields(client):
    assert client.post('/api/downloads', json={'video_id': 'v1'}).status_code == 400


def test_history_flow(client):
    client.post('/api/history', json={'video_id': 'a', 'title': 'A'})
    client.post('/api/history', json={'video_id': 'b', 'title': 'B', 'progress_position': 12})

    history = client.get('/api/history').get_json()['history']
    assert {h['video_id'] for h in history} == {'a', 'b'}
    assert len(client.get('/api/history?limit=1').get_json()['history']) == 1

    assert client.delete('/api/history/a').status_code == 200
    assert client.delete('/api/history/a').status_code == 404

    client.delete('/api/history')
    assert client.get('/api/history').get_json()['history'] == []


def test_history_requires_video_id(client):
    assert client.post('/api/history', json={'title': 'A'}).status_code == 400


def test_subscription_flow(client):
    response = client.post('/api/subscriptions', json={
        'channel_id': 'UC1', 'channel_name': 'Chan', 'subscriber_count': 5
    })
    assert response.get_json()['subscription']['subscriber_count'] == 5

    assert client.get('/api/subscriptions/UC1').get_json()['subscribed'] is True
    assert [s['channel_id'] for s in client.get('/api/subscriptions').get_json()['subscriptions']] == ['UC1']

    assert client.delete('/api/subscriptions/UC1').status_code == 200
    assert client.get('/api/subscriptions/UC1').get_json()['subscribed'] is False
    assert client.delete('/api/subscriptions/UC1').status_code == 404


@pytest.mark.parametrize('value', ['many', [1], True])
def test_subscribe_rejects_non_numeric_count(client, value):
    response = client.post('/api/subscriptions', json={
        'channel_id': 'UC1', 'channel_name': 'Chan', 'subscriber_count': value
    })

    assert response.status_code == 400
    assert response.get_json()['success'] is False
    assert client.get('/api/subscriptions/UC1').get_json()['subscribed'] is False


def test_subscribe_accepts_numeric_string(client):
    response = client.post('/api/subscriptions', json={
        'channel_id': 'UC1', 'channel_name': 'Chan', 'subscriber_count': '12'
    })
    assert response.get_json()['subscription']['subscriber_count'] == 12


def test_request_download_rejects_non_numeric_duration(client, services, monkeypatch):
    started = []
    monkeypatch.setattr(services['downloads'], 'start', lambda *args, **kwargs: started.append(args))

    response = client.post('/api/downloads', json={
        'video_id': 'v1', 'download_url': 'https://cdn.example/v1', 'title': 'Clip', 'duration': '3 min'
    })

    assert response.status_code == 400
    assert response.get_json()['success'] is False
    assert started == []


def test_history_rejects_non_numeric_position(client):
    response = client.post('/api/history', json={'video_id': 'a', 'progress_position': 'end'})

    assert response.status_code == 400
    assert client.get('/api/history').get_json()['history'] == []
