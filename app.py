import logging
import threading

from flask import Flask
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

import config
from extensions import db, limiter

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def create_app(test_config=None, start_discovery=True):
    from api_clients import ApiClientFactory
    from download_service import DownloadService
    from failover import FailoverExecutor
    from instance_list_fetcher import InstanceListFetcher
    from instance_registry import InstanceRegistry
    from local_store import LocalStore
    from settings_store import SettingsStore
    from video_catalog_repository import VideoCatalogRepository

    app = Flask(__name__)
    app.secret_key = config.SESSION_SECRET
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    app.config["SQLALCHEMY_DATABASE_URI"] = config.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["DOWNLOAD_DIR"] = config.DOWNLOAD_DIR
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    limiter.init_app(app)
    CORS(app)

    # インスタンスレジストリはアプリ単位で1つだけ生成して共有する
    registry = InstanceRegistry(global_reset=config.GLOBAL_COOLDOWN_RESET)
    fetcher = InstanceListFetcher(registry)
    factory = ApiClientFactory(registry)
    executor = FailoverExecutor(registry, factory)
    store = LocalStore(db)

    app.extensions['relaytube'] = {
        'registry': registry,
        'fetcher': fetcher,
        'factory': factory,
        'repository': VideoCatalogRepository(executor),
        'store': store,
        'settings': SettingsStore(db, registry),
        'downloads': DownloadService(app, store, factory.session, app.config["DOWNLOAD_DIR"]),
    }

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    from routes import api
    app.register_blueprint(api)

    if start_discovery:
        threading.Thread(target=_discover_instances, args=(app,), daemon=True).start()

    return app


def _discover_instances(app):
    """起動時にインスタンス一覧を取得し、保存済みの優先インスタンスを反映"""
    services = app.extensions['relaytube']
    services['fetcher'].refresh()
    with app.app_context():
        try:
            services['settings'].apply_preferred_instance()
        except Exception as e:
            logging.error(f"優先インスタンスの反映に失敗: {e}")


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=5000, debug=False)
