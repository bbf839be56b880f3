from __future__ import annotations

import logging
import shutil
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import JSONResponse

_log = logging.getLogger(__name__)
_DISK_MIN_BYTES = 100 * 1024 * 1024  # 100 MB


def _check_disk(data_dir: Path) -> dict:
    try:
        # statvfs needs an existing path
        check_path = data_dir
        while not check_path.exists() and check_path.parent != check_path:
            check_path = check_path.parent
        usage = shutil.disk_usage(str(check_path))
        free_mb = int(usage.free / (1024 * 1024))
        return {
            "status": "ok" if usage.free >= _DISK_MIN_BYTES else "degraded",
            "free_mb": free_mb,
        }
    except OSError as exc:
        _log.warning("health: disk check failed", exc_info=True)
        return {"status": "error", "detail": str(exc)}


def _check_records(records_path: Path) -> dict:
    if not records_path.exists():
        return {"status": "skipped", "reason": "no_records_yet"}
    try:
        with records_path.open("rb"):
            pass
        return {"status": "ok"}
    except OSError as exc:
        _log.warning("health: records file unreadable", exc_info=True)
        return {"status": "error", "detail": str(exc)}


def register_misc_health_routes(router: APIRouter, *, data_dir: Path, records_path: Path) -> None:
    @router.get("/health")
    async def health():
        checks = {"disk": _check_disk(data_dir), "records": _check_records(records_path)}
        degraded = any(c.get("status") not in ("ok", "skipped") for c in checks.values())
        payload = {"status": "degraded" if degraded else "ok", "checks": checks}
        return JSONResponse(content=payload, status_code=503 if degraded else 200)
