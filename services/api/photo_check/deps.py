from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from ..config import PHOTO_CHECK_LOG_LIMIT
from ..photo_check_history_cache import PhotoCheckHistoryCache
from ..photo_check_history_client import PhotoCheckHistoryClient
from ..photo_check_record_store import PhotoCheckRecordStoreDeps
from ..photo_check_session import PhotoCheckSession, PhotoCheckSessionDeps


@dataclass(frozen=True)
class PhotoCheckApplicationDeps:
    store: PhotoCheckRecordStoreDeps
    run_in_threadpool: Callable[..., Any]
    default_log_limit: int = PHOTO_CHECK_LOG_LIMIT


def build_photo_check_application_deps(store: PhotoCheckRecordStoreDeps) -> PhotoCheckApplicationDeps:
    from starlette.concurrency import run_in_threadpool

    return PhotoCheckApplicationDeps(store=store, run_in_threadpool=run_in_threadpool)


def default_record_store_deps() -> PhotoCheckRecordStoreDeps:
    from ..config import PHOTO_CHECK_ACTIVITY_LOG_PATH, PHOTO_CHECK_RECORDS_PATH, PROVIDER_REGISTRY
    from ..fs_atomic import append_jsonl, atomic_write_json

    return PhotoCheckRecordStoreDeps(
        records_path=PHOTO_CHECK_RECORDS_PATH,
        activity_log_path=PHOTO_CHECK_ACTIVITY_LOG_PATH,
        atomic_write_json=atomic_write_json,
        append_jsonl=append_jsonl,
        registry=PROVIDER_REGISTRY,
    )


def build_photo_check_session(
    *,
    base_url: Optional[str] = None,
    http_session: Optional[requests.Session] = None,
) -> PhotoCheckSession:
    from ..config import PHOTO_CHECK_ENTRY_SOURCE, PHOTO_CHECK_HISTORY_URL, PHOTO_CHECK_HTTP_TIMEOUT_SEC, PROVIDER_REGISTRY

    client = PhotoCheckHistoryClient(
        base_url or PHOTO_CHECK_HISTORY_URL,
        timeout_sec=PHOTO_CHECK_HTTP_TIMEOUT_SEC,
        session=http_session,
    )
    return PhotoCheckSession(
        PhotoCheckSessionDeps(
            history=PhotoCheckHistoryCache(client),
            registry=PROVIDER_REGISTRY,
            create_record=client.create_record,
            entry_source=PHOTO_CHECK_ENTRY_SOURCE,
        )
    )
