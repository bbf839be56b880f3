from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List

from .photo_check_models import HistoryItem
from .photo_check_normalize_service import normalize_check_result
from .photo_check_provider_registry import ProviderRegistry
from .photo_check_report_service import build_report
from .photo_check_values import created_timestamp

_log = logging.getLogger(__name__)

_LOCKS_GUARD = threading.Lock()
_LOCKS: Dict[str, threading.RLock] = {}


def _lock(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        current = _LOCKS.get(key)
        if current is None:
            current = threading.RLock()
            _LOCKS[key] = current
        return current


def _default_now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class PhotoCheckRecordError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = int(status_code)
        self.detail = detail


@dataclass(frozen=True)
class PhotoCheckRecordStoreDeps:
    records_path: Path
    activity_log_path: Path
    atomic_write_json: Callable[[Path, Any], None]
    append_jsonl: Callable[[Path, Dict[str, Any]], None]
    registry: ProviderRegistry = ProviderRegistry()
    now_iso: Callable[[], str] = _default_now_iso
    new_id: Callable[[], str] = lambda: uuid.uuid4().hex


def log_action(action: str, status: str, details: Dict[str, Any], *, deps: PhotoCheckRecordStoreDeps) -> None:
    _log.debug("photo-check activity %s", status, extra={"action": action, "record_id": details.get("id")})
    deps.append_jsonl(
        deps.activity_log_path,
        {"timestamp": deps.now_iso(), "action": action, "status": status, "details": details},
    )


def _read_records(deps: PhotoCheckRecordStoreDeps) -> List[Dict[str, Any]]:
    path = deps.records_path
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        _log.warning("photo-check records file %s is unreadable; treating as empty", path, exc_info=True)
        return []
    records = data.get("records") if isinstance(data, dict) else data
    return [dict(x) for x in records if isinstance(x, dict)] if isinstance(records, list) else []


def _write_records(records: List[Dict[str, Any]], deps: PhotoCheckRecordStoreDeps) -> None:
    deps.atomic_write_json(
        deps.records_path,
        {"schema_version": 1, "updated_at": deps.now_iso(), "records": records},
    )


def _public_item(record: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in record.items() if k != "result"}


def _find(records: List[Dict[str, Any]], record_id: str) -> int:
    for pos, record in enumerate(records):
        if str(record.get("id") or "") == record_id:
            return pos
    return -1


def _default_alias(created_at: str) -> str:
    return f"Photo check {created_at[:16].replace('T', ' ')}".strip()


def create_record(payload: Any, *, deps: PhotoCheckRecordStoreDeps) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        log_action("create-record", "error", {"message": "payload must be an object"}, deps=deps)
        raise PhotoCheckRecordError(status_code=400, detail="payload must be an object")
    result = normalize_check_result(payload)
    report = build_report(result, deps.registry)
    created_at = result.created_at or deps.now_iso()
    with _lock(deps.records_path):
        records = _read_records(deps)
        record_id = result.record_id if result.record_id and _find(records, result.record_id) < 0 else deps.new_id()
        item = HistoryItem(
            id=record_id,
            alias=result.alias or _default_alias(created_at),
            created_at=created_at,
            total_images=report.total_images,
            problems=report.problem_rows,
            overall=report.overall,
        ).to_dict()
        records.insert(0, {**item, "result": payload})
        _write_records(records, deps)
    _log.info("photo-check record created", extra={"record_id": record_id})
    log_action(
        "create-record",
        "success",
        {"id": record_id, "images": item["totalImages"], "problems": item["problems"]},
        deps=deps,
    )
    return {"ok": True, "recordId": record_id, "createdAt": created_at, "item": item}


def _sort_key(record: Dict[str, Any]) -> float:
    return created_timestamp(record.get("createdAt"))


def list_records(*, deps: PhotoCheckRecordStoreDeps) -> List[Dict[str, Any]]:
    with _lock(deps.records_path):
        records = _read_records(deps)
    items = [_public_item(r) for r in sorted(records, key=_sort_key, reverse=True)]
    log_action("list-records", "success", {"total": len(items)}, deps=deps)
    return items


def get_record(record_id: str, *, deps: PhotoCheckRecordStoreDeps) -> Dict[str, Any]:
    with _lock(deps.records_path):
        records = _read_records(deps)
    pos = _find(records, record_id)
    if pos < 0:
        raise PhotoCheckRecordError(status_code=404, detail="record not found")
    record = records[pos]
    stored = record.get("result") if isinstance(record.get("result"), dict) else {}
    payload = {**stored, "recordId": record_id, "createdAt": record.get("createdAt"), "alias": record.get("alias")}
    report = build_report(normalize_check_result(payload), deps.registry)
    return {**_public_item(record), "report": report.tree}


def rename_record(record_id: str, alias: str, *, deps: PhotoCheckRecordStoreDeps) -> Dict[str, Any]:
    alias = str(alias or "").strip()
    if not alias:
        log_action("rename-record", "error", {"id": record_id, "message": "alias is required"}, deps=deps)
        raise PhotoCheckRecordError(status_code=400, detail="alias is required")
    with _lock(deps.records_path):
        records = _read_records(deps)
        pos = _find(records, record_id)
        if pos < 0:
            log_action("rename-record", "error", {"id": record_id, "message": "record not found"}, deps=deps)
            raise PhotoCheckRecordError(status_code=404, detail="record not found")
        records[pos]["alias"] = alias
        _write_records(records, deps)
        item = _public_item(records[pos])
    log_action("rename-record", "success", {"id": record_id, "alias": alias}, deps=deps)
    return item


def delete_record(record_id: str, *, deps: PhotoCheckRecordStoreDeps) -> None:
    with _lock(deps.records_path):
        records = _read_records(deps)
        pos = _find(records, record_id)
        if pos < 0:
            log_action("delete-record", "error", {"id": record_id, "message": "record not found"}, deps=deps)
            raise PhotoCheckRecordError(status_code=404, detail="record not found")
        records.pop(pos)
        _write_records(records, deps)
    _log.info("photo-check record deleted", extra={"record_id": record_id})
    log_action("delete-record", "success", {"id": record_id}, deps=deps)


def read_logs(limit: int, *, deps: PhotoCheckRecordStoreDeps) -> List[Dict[str, Any]]:
    path = deps.activity_log_path
    if not path.exists():
        return []
    entries: List[Dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    entries.sort(key=lambda e: str(e.get("timestamp") or ""), reverse=True)
    return entries[: max(0, int(limit))]
