import logging

import requests
from flask import Blueprint, current_app, jsonify, request

from failover import Result

api = Blueprint('api', __name__)


def _services():
    return current_app.extensions['relaytube']


def _serialize(value):
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    return value


def _result_response(result: Result, key: str):
    """Result を JSON レスポンスへ変換（失敗時はエラーメッセージを返す）"""
    if result.ok:
        return jsonify({'success': True, key: _serialize(result.value)})

    status = 502
    error = result.error
    if isinstance(error, requests.HTTPError) and error.response is not None \
            and error.response.status_code == 404:
        status = 404
    logging.warning(f"API 呼び出し失敗 ({request.path}): {result.message}")
    return jsonify({'success': False, 'error': result.message}), status


def _required_arg(name):
    value = request.args.get(name, '').strip()
    return value or None


def _int_field(data, name):
    """JSON の整数フィールドを取得（未指定は 0）"""
    value = data.get(name)
    if value is None or value == '':
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{name} には整数を指定してください")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} には整数を指定してください") from None


def _bad_request(error):
    return jsonify({'success': False, 'error': str(error)}), 400


# =============================================================================
# カタログ API
# =============================================================================

@api.route('/api/trending')
def api_trending():
    """トレンド動画を取得"""
    region = request.args.get('region') or _services()['settings'].get('default_region')
    return _result_response(_services()['repository'].get_trending(region), 'items')


@api.route('/api/streams/<string:video_id>')
def api_streams(video_id):
    """動画の詳細とストリーム一覧を取得"""
    return _result_response(_services()['repository'].get_streams(video_id), 'video')


@api.route('/api/search')
def api_search():
    """動画検索"""
    query = _required_arg('q')
    if not query:
        return jsonify({'success': False, 'error': 'クエリが必要です'}), 400
    search_filter = request.args.get('filter', 'all')
    return _result_response(_services()['repository'].search(query, search_filter), 'results')


@api.route('/api/search/next')
def api_search_next():
    query = _required_arg('q')
    nextpage = _required_arg('nextpage')
    if not query or not nextpage:
        return jsonify({'success': False, 'error': 'q と nextpage が必要です'}), 400
    search_filter = request.args.get('filter', 'all')
    result = _services()['repository'].search_next_page(query, search_filter, nextpage)
    return _result_response(result, 'results')


@api.route('/api/suggestions')
def api_suggestions():
    """検索候補を取得"""
    query = _required_arg('query')
    if not query:
        return jsonify({'success': True, 'suggestions': []})
    return _result_response(_services()['repository'].get_suggestions(query), 'suggestions')


@api.route('/api/channel/<string:channel_id>')
def api_channel(channel_id):
    return _result_response(_services()['repository'].get_channel(channel_id), 'channel')


@api.route('/api/channel/<string:channel_id>/next')
def api_channel_next(channel_id):
    nextpage = _required_arg('nextpage')
    if not nextpage:
        return jsonify({'success': False, 'error': 'nextpage が必要です'}), 400
    result = _services()['repository'].get_channel_next_page(channel_id, nextpage)
    return _result_response(result, 'channel')


@api.route('/api/comments/<string:video_id>')
def api_comments(video_id):
    return _result_response(_services()['repository'].get_comments(video_id), 'comments')


@api.route('/api/comments/<string:video_id>/next')
def api_comments_next(video_id):
    nextpage = _required_arg('nextpage')
    if not nextpage:
        return jsonify({'success': False, 'error': 'nextpage が必要です'}), 400
    result = _services()['repository'].get_comments_next_page(video_id, nextpage)
    return _result_response(result, 'comments')


# =============================================================================
# インスタンス管理
# =============================================================================

@api.route('/api/instances', methods=['GET'])
def api_instances():
    """インスタンスの状態（失敗回数・クールダウン）を取得"""
    services = _services()
    return jsonify({
        'success': True,
        'discovered': services['fetcher'].fetched,
        'instances': services['registry'].snapshot()
    })


@api.route('/api/instances/preferred', methods=['POST'])
def api_set_preferred_instance():
    data = request.get_json(silent=True) or {}
    url = (data.get('url') or '').strip()
    if not url.startswith(('http://', 'https://')):
        return jsonify({'success': False, 'error': '有効なインスタンス URL を指定してください'}), 400
    try:
        _services()['settings'].set('piped_instance', url)
    except Exception as e:
        logging.error(f"優先インスタンス設定エラー: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500
    return jsonify({'success': True, 'instances': _services()['registry'].snapshot()})


# =============================================================================
# 設定
# =============================================================================

@api.route('/api/settings', methods=['GET'])
def api_get_settings():
    return jsonify({'success': True, 'settings': _services()['settings'].all()})


@api.route('/api/settings', methods=['POST'])
def api_update_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({'success': False, 'error': '設定値が必要です'}), 400
    settings = _services()['settings']
    try:
        for key, value in data.items():
            settings.set(key, value)
    except (KeyError, ValueError) as e:
        return jsonify({'success': False, 'error': str(e).strip("'")}), 400
    return jsonify({'success': True, 'settings': settings.all()})


# =============================================================================
# ダウンロード
# =============================================================================

@api.route('/api/downloads', methods=['GET'])
def api_get_downloads():
    downloads = _services()['store'].list('downloads')
    return jsonify({'success': True, 'downloads': [d.to_dict() for d in downloads]})


@api.route('/api/downloads', methods=['POST'])
def api_request_download():
    """ダウンロードを開始"""
    data = request.get_json(silent=True) or {}
    video_id = (data.get('video_id') or '').strip()
    download_url = (data.get('download_url') or '').strip()
    title = (data.get('title') or '').strip()
    if not video_id or not download_url or not title:
        return jsonify({'success': False, 'error': 'video_id・download_url・title は必須です'}), 400

    try:
        duration = _int_field(data, 'duration')
    except ValueError as e:
        return _bad_request(e)

    services = _services()
    try:
        services['downloads'].start(
            video_id, download_url, title,
            thumbnail=data.get('thumbnail', ''),
            uploader=data.get('uploader', ''),
            duration=duration,
            quality=data.get('quality') or services['settings'].get('download_quality'),
            is_audio=bool(data.get('is_audio', False)),
        )
    except Exception as e:
        logging.error(f"ダウンロード開始エラー: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500
    return jsonify({'success': True, 'download': services['store'].get('downloads', video_id).to_dict()})


@api.route('/api/downloads/<string:video_id>', methods=['DELETE'])
def api_delete_download(video_id):
    services = _services()
    services['downloads'].cancel(video_id)
    if not services['store'].delete('downloads', video_id):
        return jsonify({'success': False, 'error': 'ダウンロードが見つかりません'}), 404
    return jsonify({'success': True})


# =============================================================================
# 視聴履歴
# =============================================================================

@api.route('/api/history', methods=['GET'])
def api_get_history():
    limit = request.args.get('limit', type=int)
    history = _services()['store'].list('watch_history', limit=limit)
    return jsonify({'success': True, 'history': [h.to_dict() for h in history]})


@api.route('/api/history', methods=['POST'])
def api_add_history():
    data = request.get_json(silent=True) or {}
    video_id = (data.get('video_id') or '').strip()
    if not video_id:
        return jsonify({'success': False, 'error': 'video_id は必須です'}), 400
    fields = {
        name: data[name]
        for name in ('title', 'thumbnail', 'uploader', 'uploader_url')
        if name in data
    }
    try:
        for name in ('duration', 'progress_position'):
            if name in data:
                fields[name] = _int_field(data, name)
    except ValueError as e:
        return _bad_request(e)
    entry = _services()['store'].upsert('watch_history', video_id, **fields)
    return jsonify({'success': True, 'history': entry.to_dict()})


@api.route('/api/history', methods=['DELETE'])
def api_clear_history():
    _services()['store'].clear('watch_history')
    return jsonify({'success': True})


@api.route('/api/history/<string:video_id>', methods=['DELETE'])
def api_delete_history(video_id):
    if not _services()['store'].delete('watch_history', video_id):
        return jsonify({'success': False, 'error': '履歴が見つかりません'}), 404
    return jsonify({'success': True})


# =============================================================================
# チャンネル登録
# =============================================================================

@api.route('/api/subscriptions', methods=['GET'])
def api_get_subscriptions():
    subscriptions = _services()['store'].list('subscriptions')
    return jsonify({'success': True, 'subscriptions': [s.to_dict() for s in subscriptions]})


@api.route('/api/subscriptions/<string:channel_id>', methods=['GET'])
def api_is_subscribed(channel_id):
    return jsonify({'success': True, 'subscribed': _services()['store'].is_subscribed(channel_id)})


@api.route('/api/subscriptions', methods=['POST'])
def api_subscribe():
    data = request.get_json(silent=True) or {}
    channel_id = (data.get('channel_id') or '').strip()
    channel_name = (data.get('channel_name') or '').strip()
    if not channel_id or not channel_name:
        return jsonify({'success': False, 'error': 'channel_id と channel_name は必須です'}), 400
    try:
        subscriber_count = _int_field(data, 'subscriber_count')
    except ValueError as e:
        return _bad_request(e)
    subscription = _services()['store'].upsert(
        'subscriptions', channel_id,
        channel_name=channel_name,
        avatar_url=data.get('avatar_url', ''),
        subscriber_count=subscriber_count,
        verified=bool(data.get('verified', False)),
    )
    return jsonify({'success': True, 'subscription': subscription.to_dict()})


@api.route('/api/subscriptions/<string:channel_id>', methods=['DELETE'])
def api_unsubscribe(channel_id):
    if not _services()['store'].delete('subscriptions', channel_id):
        return jsonify({'success': False, 'error': '登録チャンネルが見つかりません'}), 404
    return jsonify({'success': True})
