"""
Flask 拡張のインスタンス（app.py と models.py から共有する）
"""
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase

import config


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=config.RATE_LIMITS,
    storage_uri="memory://"
)
