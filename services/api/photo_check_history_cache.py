from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol, Set

from .photo_check_history_client import PhotoCheckHistoryError
from .photo_check_models import HistoryItem
from .photo_check_values import created_timestamp

_log = logging.getLogger(__name__)


class HistoryTransport(Protocol):
    def list_records(self) -> List[HistoryItem]: ...

    def rename_alias(self, record_id: str, alias: str) -> Optional[HistoryItem]: ...

    def delete_record(self, record_id: str) -> bool: ...


def sort_history_items(items: List[HistoryItem]) -> List[HistoryItem]:
    """Newest first, then drop later duplicates of an id."""
    ordered = sorted(items, key=lambda item: created_timestamp(item.created_at), reverse=True)
    seen: Set[str] = set()
    out: List[HistoryItem] = []
    for item in ordered:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


def merge_history_item(current: HistoryItem, incoming: HistoryItem) -> HistoryItem:
    changes: Dict[str, Any] = {}
    if incoming.alias:
        changes["alias"] = incoming.alias
    if incoming.created_at and created_timestamp(incoming.created_at) >= created_timestamp(current.created_at):
        changes["created_at"] = incoming.created_at
    if incoming.total_images or not current.total_images:
        changes["total_images"] = incoming.total_images
    if incoming.problems or not current.problems:
        changes["problems"] = incoming.problems
    if incoming.overall.total or not current.overall.total:
        changes["overall"] = incoming.overall
    return replace(current, **changes)


class PhotoCheckHistoryCache:
    """Client-side mirror of persisted photo-check records.

    ``list`` holds one global loading guard; each mutation holds a guard on
    its own record id. A call that finds its guard taken is dropped and
    returns ``None``; callers re-invoke once the first call has finished.
    Guards are released on every exit path, and a failed call leaves the
    cached items untouched.
    """

    def __init__(self, transport: HistoryTransport):
        self._transport = transport
        self._lock = threading.Lock()
        self._items: List[HistoryItem] = []
        self._mutating: Set[str] = set()
        self.loading = False
        self.selected_id: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def items(self) -> List[HistoryItem]:
        with self._lock:
            return list(self._items)

    def get(self, record_id: str) -> Optional[HistoryItem]:
        with self._lock:
            for item in self._items:
                if item.id == record_id:
                    return item
        return None

    def is_mutating(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._mutating

    def select(self, record_id: Optional[str]) -> None:
        with self._lock:
            known = any(item.id == record_id for item in self._items)
            self.selected_id = record_id if known else None

    def list(self) -> Optional[List[HistoryItem]]:
        with self._lock:
            if self.loading:
                _log.warning("history list already loading; dropped duplicate request")
                return None
            self.loading = True
        try:
            fetched = self._transport.list_records()
        except PhotoCheckHistoryError as exc:
            self.last_error = exc.detail
            raise
        finally:
            with self._lock:
                self.loading = False
        with self._lock:
            self._items = sort_history_items(list(fetched))
            if self.selected_id and not any(item.id == self.selected_id for item in self._items):
                self.selected_id = None
            self.last_error = None
            return list(self._items)

    def upsert(self, item: HistoryItem) -> List[HistoryItem]:
        with self._lock:
            merged = False
            items: List[HistoryItem] = []
            for current in self._items:
                if not merged and current.id == item.id:
                    items.append(merge_history_item(current, item))
                    merged = True
                else:
                    items.append(current)
            if not merged:
                items.insert(0, item)
            self._items = sort_history_items(items)
            return list(self._items)

    def _begin(self, record_id: str) -> bool:
        with self._lock:
            if record_id in self._mutating:
                return False
            self._mutating.add(record_id)
            return True

    def _end(self, record_id: str) -> None:
        with self._lock:
            self._mutating.discard(record_id)

    def rename_alias(self, record_id: str, alias: str) -> Optional[HistoryItem]:
        alias = str(alias or "").strip()
        if not alias:
            raise PhotoCheckHistoryError(status_code=400, detail="alias is required")
        if not self._begin(record_id):
            _log.warning("history record %s is already being updated; dropped rename", record_id)
            return None
        try:
            updated = self._transport.rename_alias(record_id, alias)
        except PhotoCheckHistoryError as exc:
            self.last_error = exc.detail
            raise
        finally:
            self._end(record_id)
        current = self.get(record_id)
        if updated is None and current is not None:
            updated = replace(current, alias=alias)
        if updated is not None:
            self.upsert(updated)
        self.last_error = None
        return updated

    def delete(self, record_id: str) -> Optional[bool]:
        if not self._begin(record_id):
            _log.warning("history record %s is already being updated; dropped delete", record_id)
            return None
        try:
            self._transport.delete_record(record_id)
        except PhotoCheckHistoryError as exc:
            self.last_error = exc.detail
            raise
        finally:
            self._end(record_id)
        with self._lock:
            self._items = [item for item in self._items if item.id != record_id]
            if self.selected_id == record_id:
                self.selected_id = None
            self.last_error = None
        return True
