from __future__ import annotations

from pathlib import Path

from . import settings as _settings
from .photo_check_provider_registry import build_provider_registry, parse_provider_list

APP_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = Path(_settings.data_dir() or (APP_ROOT / "data"))
PHOTO_CHECK_RECORDS_PATH = Path(
    _settings.photo_check_records_path() or (DATA_DIR / "photo_check" / "records.json")
)
PHOTO_CHECK_ACTIVITY_LOG_PATH = Path(
    _settings.photo_check_activity_log_path() or (DATA_DIR / "photo_check" / "activity.log")
)

PHOTO_CHECK_HISTORY_URL = _settings.photo_check_history_url()
PHOTO_CHECK_HTTP_TIMEOUT_SEC = _settings.photo_check_http_timeout_sec()
PHOTO_CHECK_ENTRY_SOURCE = _settings.photo_check_entry_source()
PHOTO_CHECK_LOG_LIMIT = _settings.photo_check_log_limit()

_PROVIDERS_PATH_RAW = _settings.photo_check_providers_path()
PHOTO_CHECK_PROVIDERS_PATH = (
    Path(_PROVIDERS_PATH_RAW) if _PROVIDERS_PATH_RAW else APP_ROOT / "config" / "photo_check_providers.yaml"
)
PHOTO_CHECK_PREFER_LATEST_PROVIDERS = parse_provider_list(_settings.photo_check_prefer_latest_providers())
PROVIDER_REGISTRY = build_provider_registry(
    PHOTO_CHECK_PROVIDERS_PATH,
    prefer_latest=PHOTO_CHECK_PREFER_LATEST_PROVIDERS,
)

CORS_ORIGINS = [o.strip() for o in _settings.cors_origins().split(",") if o.strip()] or ["*"]
CORS_ALLOW_CREDENTIALS = _settings.cors_allow_credentials()
