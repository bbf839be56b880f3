from __future__ import annotations

import logging
import os

_log = logging.getLogger(__name__)


def truthy(value: str) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default)


def env_int(name: str, default: int) -> int:
    try:
        return int(env_str(name, str(default)) or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return int(default)


def env_float(name: str, default: float) -> float:
    try:
        return float(env_str(name, str(default)) or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return float(default)


def env_bool(name: str, default: str = "") -> bool:
    return truthy(env_str(name, default))


def data_dir() -> str:
    return env_str("DATA_DIR", "")


def photo_check_records_path() -> str:
    return env_str("PHOTO_CHECK_RECORDS_PATH", "")


def photo_check_activity_log_path() -> str:
    return env_str("PHOTO_CHECK_ACTIVITY_LOG_PATH", "")


def photo_check_history_url() -> str:
    return env_str("PHOTO_CHECK_HISTORY_URL", "http://localhost:8000").strip().rstrip("/")


def photo_check_http_timeout_sec() -> float:
    return max(1.0, min(env_float("PHOTO_CHECK_HTTP_TIMEOUT_SEC", 30.0), 300.0))


def photo_check_prefer_latest_providers() -> str:
    return env_str("PHOTO_CHECK_PREFER_LATEST_PROVIDERS", "kimi")


def photo_check_providers_path() -> str:
    return env_str("PHOTO_CHECK_PROVIDERS_PATH", "")


def photo_check_entry_source() -> str:
    return env_str("PHOTO_CHECK_ENTRY_SOURCE", "photo-check").strip() or "photo-check"


def photo_check_log_limit() -> int:
    return max(1, min(env_int("PHOTO_CHECK_LOG_LIMIT", 50), 1000))


def cors_origins() -> str:
    return env_str("CORS_ORIGINS", "*")


def cors_allow_credentials() -> bool:
    return env_bool("CORS_ALLOW_CREDENTIALS", "1")


def log_format() -> str:
    return env_str("LOG_FORMAT", "text").strip().lower()


def log_level() -> str:
    return env_str("LOG_LEVEL", "INFO").strip().upper()


def photo_check_http_log_level() -> str:
    return env_str("PHOTO_CHECK_HTTP_LOG_LEVEL", "WARNING").strip().upper()
