from dotenv import load_dotenv
load_dotenv()  # Load environment variables from .env file

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional


# Single source for every tunable default; env vars of the same name override.
DEFAULTS = {
    "MONGO_URI": "mongodb://localhost:27017/crosspost",
    "DB_NAME": "crosspost",
    "REDIS_URL": "redis://localhost:6379/0",

    "RQ_PUBLISH_QUEUE": "publish",
    "RQ_DEFAULT_TIMEOUT": 1800,             # seconds
    "RQ_DEFAULT_RESULT_TTL": 86400,         # seconds
    "RQ_DEFAULT_FAILURE_TTL": 2592000,      # 30 days
    "JOB_MAX_ATTEMPTS": 3,
    "JOB_BACKOFF_SECONDS": 2,
    "JOB_BACKOFF_MAX_SECONDS": 300,
    "WORKER_CONCURRENCY": 5,

    "TOKEN_EXPIRY_BUFFER_SECONDS": 300,
    "TOKEN_REFRESH_WINDOW_DAYS": 7,
    "TOKEN_SWEEP_CRON": "0 0 * * *",
    "TOKEN_LOCK_TIMEOUT_SECONDS": 60,
    "TOKEN_LOCK_WAIT_SECONDS": 30,

    "IG_POLL_INTERVAL_SECONDS": 2.0,
    "IG_IMAGE_MAX_POLLS": 10,
    "IG_VIDEO_MAX_POLLS": 30,
    "IG_PUBLISH_NOT_READY_RETRIES": 3,

    "YT_UPLOAD_CHUNK_BYTES": 8 * 1024 * 1024,
    "YT_UPLOAD_MAX_RETRIES": 3,
    "YT_UPLOAD_MAX_STALLS": 5,
    "YT_UPLOAD_BACKOFF_SECONDS": 1.0,
    "YT_PROCESSING_POLL_SECONDS": 5.0,
    "YT_PROCESSING_MAX_POLLS": 60,
    "YT_PRIVACY_STATUS": "public",

    "HTTP_TIMEOUT_SECONDS": 30,
    "GRAPH_API_VERSION": "v19.0",
}


def _env(name: str):
    """Env override for a DEFAULTS entry, cast to the default's type."""
    default = DEFAULTS[name]
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == "":
        return default
    return type(default)(raw)


class Config:
    """Base configuration class."""
    APP_NAME = os.getenv("APP_NAME", "Crosspost Publisher")

    SECRET_KEY = os.getenv("SECRET_KEY", "your_default_secret_key")
    INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY")
    DEBUG = os.getenv("FLASK_DEBUG", "False") == "True"
    TESTING = False

    # ========================================
    # STORAGE
    # ========================================
    MONGO_URI = _env("MONGO_URI")
    DB_NAME = _env("DB_NAME")
    REDIS_URL = _env("REDIS_URL")

    # ========================================
    # QUEUE (RQ)
    # ========================================
    RQ_PUBLISH_QUEUE = _env("RQ_PUBLISH_QUEUE")
    RQ_DEFAULT_TIMEOUT = _env("RQ_DEFAULT_TIMEOUT")
    RQ_DEFAULT_RESULT_TTL = _env("RQ_DEFAULT_RESULT_TTL")
    RQ_DEFAULT_FAILURE_TTL = _env("RQ_DEFAULT_FAILURE_TTL")
    JOB_MAX_ATTEMPTS = _env("JOB_MAX_ATTEMPTS")
    JOB_BACKOFF_SECONDS = _env("JOB_BACKOFF_SECONDS")
    JOB_BACKOFF_MAX_SECONDS = _env("JOB_BACKOFF_MAX_SECONDS")
    WORKER_CONCURRENCY = _env("WORKER_CONCURRENCY")

    # ========================================
    # TOKEN LIFECYCLE
    # ========================================
    TOKEN_EXPIRY_BUFFER_SECONDS = _env("TOKEN_EXPIRY_BUFFER_SECONDS")
    TOKEN_REFRESH_WINDOW_DAYS = _env("TOKEN_REFRESH_WINDOW_DAYS")
    TOKEN_SWEEP_CRON = _env("TOKEN_SWEEP_CRON")
    TOKEN_LOCK_TIMEOUT_SECONDS = _env("TOKEN_LOCK_TIMEOUT_SECONDS")
    TOKEN_LOCK_WAIT_SECONDS = _env("TOKEN_LOCK_WAIT_SECONDS")

    # ========================================
    # POLLING / UPLOAD TUNING
    # ========================================
    IG_POLL_INTERVAL_SECONDS = _env("IG_POLL_INTERVAL_SECONDS")
    IG_IMAGE_MAX_POLLS = _env("IG_IMAGE_MAX_POLLS")
    IG_VIDEO_MAX_POLLS = _env("IG_VIDEO_MAX_POLLS")
    IG_PUBLISH_NOT_READY_RETRIES = _env("IG_PUBLISH_NOT_READY_RETRIES")

    YT_UPLOAD_CHUNK_BYTES = _env("YT_UPLOAD_CHUNK_BYTES")
    YT_UPLOAD_MAX_RETRIES = _env("YT_UPLOAD_MAX_RETRIES")
    YT_UPLOAD_MAX_STALLS = _env("YT_UPLOAD_MAX_STALLS")
    YT_UPLOAD_BACKOFF_SECONDS = _env("YT_UPLOAD_BACKOFF_SECONDS")
    YT_PROCESSING_POLL_SECONDS = _env("YT_PROCESSING_POLL_SECONDS")
    YT_PROCESSING_MAX_POLLS = _env("YT_PROCESSING_MAX_POLLS")
    YT_PRIVACY_STATUS = _env("YT_PRIVACY_STATUS")

    HTTP_TIMEOUT_SECONDS = _env("HTTP_TIMEOUT_SECONDS")

    # ========================================
    # PLATFORM APPS
    # ========================================
    GRAPH_API_VERSION = _env("GRAPH_API_VERSION")
    FACEBOOK_APP_ID = os.getenv("FACEBOOK_APP_ID")
    FACEBOOK_APP_SECRET = os.getenv("FACEBOOK_APP_SECRET")
    YOUTUBE_CLIENT_ID = os.getenv("YOUTUBE_CLIENT_ID")
    YOUTUBE_CLIENT_SECRET = os.getenv("YOUTUBE_CLIENT_SECRET")
    TIKTOK_CLIENT_KEY = os.getenv("TIKTOK_CLIENT_KEY")
    TIKTOK_CLIENT_SECRET = os.getenv("TIKTOK_CLIENT_SECRET")


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    MONGO_URI = os.getenv("TEST_MONGO_URI", "mongodb://localhost:27017/crosspost_test")
    REDIS_URL = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


CONFIG_BY_ENV = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config_class(app_env: Optional[str] = None):
    env = (app_env or os.getenv("APP_ENV", "development")).strip().lower()
    return CONFIG_BY_ENV.get(env, DevelopmentConfig)


def load_config(app):
    app.config.from_object(get_config_class())


@dataclass
class PublishingSettings:
    """
    Runtime knobs for the publishing core.

    Built from a Config class (worker) or from a Flask app.config mapping (API),
    or directly in tests. Defaults come from DEFAULTS via SETTINGS_KEYS.
    """
    mongo_uri: str = DEFAULTS["MONGO_URI"]
    db_name: str = DEFAULTS["DB_NAME"]
    redis_url: str = DEFAULTS["REDIS_URL"]

    queue_name: str = DEFAULTS["RQ_PUBLISH_QUEUE"]
    job_timeout: int = DEFAULTS["RQ_DEFAULT_TIMEOUT"]
    result_ttl: int = DEFAULTS["RQ_DEFAULT_RESULT_TTL"]
    failure_ttl: int = DEFAULTS["RQ_DEFAULT_FAILURE_TTL"]
    max_attempts: int = DEFAULTS["JOB_MAX_ATTEMPTS"]
    backoff_seconds: int = DEFAULTS["JOB_BACKOFF_SECONDS"]
    backoff_max_seconds: int = DEFAULTS["JOB_BACKOFF_MAX_SECONDS"]
    concurrency: int = DEFAULTS["WORKER_CONCURRENCY"]

    token_buffer_seconds: int = DEFAULTS["TOKEN_EXPIRY_BUFFER_SECONDS"]
    refresh_window_days: int = DEFAULTS["TOKEN_REFRESH_WINDOW_DAYS"]
    sweep_cron: str = DEFAULTS["TOKEN_SWEEP_CRON"]
    lock_timeout_seconds: int = DEFAULTS["TOKEN_LOCK_TIMEOUT_SECONDS"]
    lock_wait_seconds: int = DEFAULTS["TOKEN_LOCK_WAIT_SECONDS"]

    ig_poll_interval: float = DEFAULTS["IG_POLL_INTERVAL_SECONDS"]
    ig_image_max_polls: int = DEFAULTS["IG_IMAGE_MAX_POLLS"]
    ig_video_max_polls: int = DEFAULTS["IG_VIDEO_MAX_POLLS"]
    ig_publish_not_ready_retries: int = DEFAULTS["IG_PUBLISH_NOT_READY_RETRIES"]

    yt_chunk_bytes: int = DEFAULTS["YT_UPLOAD_CHUNK_BYTES"]
    yt_upload_max_retries: int = DEFAULTS["YT_UPLOAD_MAX_RETRIES"]
    yt_upload_max_stalls: int = DEFAULTS["YT_UPLOAD_MAX_STALLS"]
    yt_upload_backoff_seconds: float = DEFAULTS["YT_UPLOAD_BACKOFF_SECONDS"]
    yt_processing_poll_seconds: float = DEFAULTS["YT_PROCESSING_POLL_SECONDS"]
    yt_processing_max_polls: int = DEFAULTS["YT_PROCESSING_MAX_POLLS"]
    yt_privacy_status: str = DEFAULTS["YT_PRIVACY_STATUS"]

    http_timeout: int = DEFAULTS["HTTP_TIMEOUT_SECONDS"]

    graph_api_version: str = DEFAULTS["GRAPH_API_VERSION"]
    platform_apps: Dict[str, Dict[str, Optional[str]]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "PublishingSettings":
        values: Dict[str, Any] = {}
        for f in fields(cls):
            key = SETTINGS_KEYS.get(f.name)
            if key is None or cfg.get(key) is None:
                continue
            values[f.name] = type(DEFAULTS[key])(cfg[key])

        g = cfg.get
        values["platform_apps"] = {
            "facebook": {
                "app_id": g("FACEBOOK_APP_ID"),
                "app_secret": g("FACEBOOK_APP_SECRET"),
            },
            "youtube": {
                "client_id": g("YOUTUBE_CLIENT_ID"),
                "client_secret": g("YOUTUBE_CLIENT_SECRET"),
            },
            "tiktok": {
                "client_key": g("TIKTOK_CLIENT_KEY"),
                "client_secret": g("TIKTOK_CLIENT_SECRET"),
            },
        }
        return cls(**values)

    @classmethod
    def from_config(cls, config_cls=None) -> "PublishingSettings":
        config_cls = config_cls or get_config_class()
        values = {k: getattr(config_cls, k) for k in dir(config_cls) if k.isupper()}
        return cls.from_mapping(values)

    def app_credentials(self, platform: str) -> Dict[str, Optional[str]]:
        return dict(self.platform_apps.get(platform) or {})


# PublishingSettings field -> Config / env key
SETTINGS_KEYS = {
    "mongo_uri": "MONGO_URI",
    "db_name": "DB_NAME",
    "redis_url": "REDIS_URL",
    "queue_name": "RQ_PUBLISH_QUEUE",
    "job_timeout": "RQ_DEFAULT_TIMEOUT",
    "result_ttl": "RQ_DEFAULT_RESULT_TTL",
    "failure_ttl": "RQ_DEFAULT_FAILURE_TTL",
    "max_attempts": "JOB_MAX_ATTEMPTS",
    "backoff_seconds": "JOB_BACKOFF_SECONDS",
    "backoff_max_seconds": "JOB_BACKOFF_MAX_SECONDS",
    "concurrency": "WORKER_CONCURRENCY",
    "token_buffer_seconds": "TOKEN_EXPIRY_BUFFER_SECONDS",
    "refresh_window_days": "TOKEN_REFRESH_WINDOW_DAYS",
    "sweep_cron": "TOKEN_SWEEP_CRON",
    "lock_timeout_seconds": "TOKEN_LOCK_TIMEOUT_SECONDS",
    "lock_wait_seconds": "TOKEN_LOCK_WAIT_SECONDS",
    "ig_poll_interval": "IG_POLL_INTERVAL_SECONDS",
    "ig_image_max_polls": "IG_IMAGE_MAX_POLLS",
    "ig_video_max_polls": "IG_VIDEO_MAX_POLLS",
    "ig_publish_not_ready_retries": "IG_PUBLISH_NOT_READY_RETRIES",
    "yt_chunk_bytes": "YT_UPLOAD_CHUNK_BYTES",
    "yt_upload_max_retries": "YT_UPLOAD_MAX_RETRIES",
    "yt_upload_max_stalls": "YT_UPLOAD_MAX_STALLS",
    "yt_upload_backoff_seconds": "YT_UPLOAD_BACKOFF_SECONDS",
    "yt_processing_poll_seconds": "YT_PROCESSING_POLL_SECONDS",
    "yt_processing_max_polls": "YT_PROCESSING_MAX_POLLS",
    "yt_privacy_status": "YT_PRIVACY_STATUS",
    "http_timeout": "HTTP_TIMEOUT_SECONDS",
    "graph_api_version": "GRAPH_API_VERSION",
}
