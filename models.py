from datetime import datetime, timezone
from enum import Enum

from extensions import db


def _now():
    return datetime.now(timezone.utc)


class DownloadStatus(str, Enum):
    PENDING = 'PENDING'
    DOWNLOADING = 'DOWNLOADING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'
    PAUSED = 'PAUSED'


class Download(db.Model):
    __tablename__ = 'downloads'

    video_id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(500), nullable=False, default='')
    thumbnail = db.Column(db.String(1000), default='')
    uploader = db.Column(db.String(255), default='')
    duration = db.Column(db.Integer, default=0)
    file_path = db.Column(db.String(1000), default='')
    file_size = db.Column(db.BigInteger, default=0)
    quality = db.Column(db.String(20), default='')
    download_progress = db.Column(db.Integer, default=0)
    status = db.Column(db.String(20), default=DownloadStatus.PENDING.value)
    timestamp = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            'video_id': self.video_id,
            'title': self.title,
            'thumbnail': self.thumbnail,
            'uploader': self.uploader,
            'duration': self.duration,
            'file_path': self.file_path,
            'file_size': self.file_size,
            'quality': self.quality,
            'download_progress': self.download_progress,
            'status': self.status,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }


class WatchHistory(db.Model):
    __tablename__ = 'watch_history'

    video_id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(500), nullable=False, default='')
    thumbnail = db.Column(db.String(1000), default='')
    uploader = db.Column(db.String(255), default='')
    uploader_url = db.Column(db.String(500), default='')
    duration = db.Column(db.Integer, default=0)
    progress_position = db.Column(db.BigInteger, default=0)
    timestamp = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            'video_id': self.video_id,
            'title': self.title,
            'thumbnail': self.thumbnail,
            'uploader': self.uploader,
            'uploader_url': self.uploader_url,
            'duration': self.duration,
            'progress_position': self.progress_position,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }


class Subscription(db.Model):
    __tablename__ = 'subscriptions'

    channel_id = db.Column(db.String(64), primary_key=True)
    channel_name = db.Column(db.String(255), nullable=False, default='')
    avatar_url = db.Column(db.String(1000), default='')
    subscriber_count = db.Column(db.BigInteger, default=0)
    verified = db.Column(db.Boolean, default=False)
    timestamp = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            'channel_id': self.channel_id,
            'channel_name': self.channel_name,
            'avatar_url': self.avatar_url,
            'subscriber_count': self.subscriber_count,
            'verified': self.verified,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }


class Setting(db.Model):
    __tablename__ = 'settings'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=False)
