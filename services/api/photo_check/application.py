from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..photo_check_normalize_service import normalize_check_result
from ..photo_check_record_store import (
    create_record as _create_record,
    delete_record as _delete_record,
    get_record as _get_record,
    list_records as _list_records,
    read_logs as _read_logs,
    rename_record as _rename_record,
)
from ..photo_check_report_service import build_report
from .deps import PhotoCheckApplicationDeps


def render_report(payload: Dict[str, Any], *, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    result = normalize_check_result(payload)
    return dict(build_report(result, deps.store.registry).tree)


async def create_record(payload: Dict[str, Any], *, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    return await deps.run_in_threadpool(_create_record, payload, deps=deps.store)


async def list_records(*, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    items = await deps.run_in_threadpool(_list_records, deps=deps.store)
    return {"ok": True, "items": items}


async def get_record(record_id: str, *, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    return await deps.run_in_threadpool(_get_record, record_id, deps=deps.store)


async def rename_record(record_id: str, alias: str, *, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    item = await deps.run_in_threadpool(_rename_record, record_id, alias, deps=deps.store)
    return {"ok": True, "item": item}


async def delete_record(record_id: str, *, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    await deps.run_in_threadpool(_delete_record, record_id, deps=deps.store)
    return {"ok": True, "id": record_id}


async def read_logs(limit: Optional[int], *, deps: PhotoCheckApplicationDeps) -> Dict[str, Any]:
    effective = deps.default_log_limit if limit is None else int(limit)
    logs: List[Dict[str, Any]] = await deps.run_in_threadpool(_read_logs, effective, deps=deps.store)
    return {"ok": True, "logs": logs}
