import os

# Piped API インスタンス（ディスカバリー失敗時のデフォルト、優先順位順）
DEFAULT_PIPED_INSTANCES = [
    'https://pipedapi.kavin.rocks',
    'https://pipedapi.adminforge.de',
    'https://pipedapi.r4fo.com',
    'https://api.piped.projectsegfau.lt',
    'https://pipedapi.leptons.xyz',
    'https://pipedapi.moomoo.me',
    'https://pipedapi.darkness.services',
    'https://pipedapi.drgns.space',
]

# Invidious インスタンス（Piped 全滅時のフォールバック）
DEFAULT_INVIDIOUS_INSTANCES = [
    'https://invidious.nerdvpn.de',
    'https://inv.nadeko.net',
    'https://yewtu.be',
    'https://invidious.materialio.us',
    'https://invidious.privacyredirect.com',
    'https://invidious.protokolla.fi',
]

# インスタンス一覧のディスカバリーエンドポイント
PIPED_INSTANCES_URL = os.environ.get('PIPED_INSTANCES_URL', 'https://piped-instances.kavin.rocks/')
INVIDIOUS_INSTANCES_URL = os.environ.get(
    'INVIDIOUS_INSTANCES_URL',
    'https://api.invidious.io/instances.json?sort_by=type,health',
)
INVIDIOUS_INSTANCE_LIMIT = 15

# ヘルストラッキング
MAX_FAILURES_BEFORE_COOLDOWN = 3
COOLDOWN_DURATION = 5 * 60  # 秒
GLOBAL_COOLDOWN_RESET = os.environ.get('GLOBAL_COOLDOWN_RESET', 'false').lower() == 'true'

# フェイルオーバー
MAX_PIPED_RETRIES = 4
MAX_INVIDIOUS_RETRIES = 3
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504, 520, 521, 522, 523, 524})

# タイムアウト設定（connect, read）
DISCOVERY_TIMEOUT = (10, 10)
API_CONNECT_TIMEOUT = 15
API_READ_TIMEOUT = 30
API_WRITE_TIMEOUT = 15  # requests には書き込みタイムアウトが無いため参考値
TRANSPORT_CONNECT_RETRIES = 2

USER_AGENT = 'RelayTube/1.0'

# Flask / ストレージ
DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///relaytube.db')
SESSION_SECRET = os.environ.get('SESSION_SECRET', 'relaytube-dev-secret')
RATE_LIMITS = ['600 per hour', '60 per minute']
DOWNLOAD_DIR = os.environ.get('DOWNLOAD_DIR', os.path.join(os.getcwd(), 'downloads'))
DOWNLOAD_CONNECT_TIMEOUT = 30
DOWNLOAD_READ_TIMEOUT = 60
