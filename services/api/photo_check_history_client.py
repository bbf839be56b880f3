"""HTTP transport to the photo-check persistence collaborator.

No retries are issued here; every failure surfaces as a
``PhotoCheckHistoryError`` and callers decide what to show the user.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests  # type: ignore[import-untyped]

from .photo_check_models import AttemptSummary, HistoryItem
from .photo_check_values import first_present, normalize_count

_log = logging.getLogger(__name__)

RECORDS_PATH = "/photo-check/records"


class PhotoCheckHistoryError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = int(status_code)
        self.detail = detail


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_history_item(raw: Any) -> Optional[HistoryItem]:
    if not isinstance(raw, dict):
        return None
    item_id = _text(first_present(raw, ("id", "recordId", "record_id")))
    if not item_id:
        return None
    overall_raw = raw.get("overall") if isinstance(raw.get("overall"), dict) else {}
    overall = AttemptSummary(
        total=normalize_count(overall_raw.get("total")) or 0,
        correct=normalize_count(overall_raw.get("correct")) or 0,
        incorrect=normalize_count(overall_raw.get("incorrect")) or 0,
        unknown=normalize_count(overall_raw.get("unknown")) or 0,
    )
    return HistoryItem(
        id=item_id,
        alias=_text(first_present(raw, ("alias", "name"))),
        created_at=_text(first_present(raw, ("createdAt", "created_at"))) or None,
        total_images=normalize_count(first_present(raw, ("totalImages", "total_images", "images"))) or 0,
        problems=normalize_count(first_present(raw, ("problems", "problemCount", "problem_count"))) or 0,
        overall=overall,
    )


class PhotoCheckHistoryClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = str(base_url or "").rstrip("/")
        self.timeout_sec = float(timeout_sec)
        self._session = session or requests.Session()

    def _url(self, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}{RECORDS_PATH}"
        if record_id is not None:
            url = f"{url}/{quote(str(record_id), safe='')}"
        return url

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self._session.request(method, url, timeout=self.timeout_sec, **kwargs)
        except requests.RequestException as exc:
            _log.warning("photo-check history %s %s failed: %s", method, url, exc)
            raise PhotoCheckHistoryError(status_code=503, detail=f"history service unreachable: {exc}") from exc
        if resp.status_code >= 400:
            detail = ""
            try:
                body = resp.json()
                detail = _text(body.get("detail") or body.get("error")) if isinstance(body, dict) else ""
            except ValueError:
                detail = ""
            _log.warning("photo-check history %s %s returned %s", method, url, resp.status_code)
            raise PhotoCheckHistoryError(
                status_code=resp.status_code,
                detail=detail or f"history request failed with HTTP {resp.status_code}",
            )
        if resp.status_code == 204:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def create_record(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", self._url(), json=payload)
        data = data if isinstance(data, dict) else {}
        record_id = _text(first_present(data, ("recordId", "id", "record_id")))
        if not record_id:
            raise PhotoCheckHistoryError(status_code=502, detail="history service returned no record id")
        return {
            "record_id": record_id,
            "created_at": _text(first_present(data, ("createdAt", "created_at"))) or None,
            "item": normalize_history_item(data.get("item")) if isinstance(data.get("item"), dict) else None,
        }

    def list_records(self) -> List[HistoryItem]:
        data = self._request("GET", self._url())
        if isinstance(data, dict):
            data = first_present(data, ("items", "records"))
        items = [normalize_history_item(x) for x in (data if isinstance(data, list) else [])]
        return [item for item in items if item is not None]

    def rename_alias(self, record_id: str, alias: str) -> Optional[HistoryItem]:
        data = self._request("PATCH", self._url(record_id), json={"alias": alias})
        if isinstance(data, dict) and isinstance(data.get("item"), dict):
            data = data["item"]
        return normalize_history_item(data)

    def delete_record(self, record_id: str) -> bool:
        self._request("DELETE", self._url(record_id))
        return True
