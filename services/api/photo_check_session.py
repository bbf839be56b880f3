"""Single-owner state of one user's photo-check screen.

Owns the displayed report, the row selection and the history cache. All
normalization runs synchronously; only the collaborator calls (check
submission, history load/rename/delete, record creation) can fail, and their
failures become ``message`` text while prior state stays in place.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .photo_check_history_cache import PhotoCheckHistoryCache
from .photo_check_history_client import PhotoCheckHistoryError
from .photo_check_models import CheckResult, HistoryItem
from .photo_check_normalize_service import normalize_check_result
from .photo_check_provider_registry import ProviderRegistry
from .photo_check_report_service import PhotoCheckReport, build_report
from .photo_check_selection_service import PhotoCheckSaveError, PhotoCheckSelection, save_selected_entries

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhotoCheckSessionDeps:
    history: PhotoCheckHistoryCache
    registry: ProviderRegistry
    create_record: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    entry_source: str = "photo-check"


class PhotoCheckSession:
    def __init__(self, deps: PhotoCheckSessionDeps):
        self._deps = deps
        self.selection = PhotoCheckSelection()
        self.report: Optional[PhotoCheckReport] = None
        self.message: Optional[str] = None
        self.submitting = False

    @property
    def history(self) -> PhotoCheckHistoryCache:
        return self._deps.history

    def _render(self, result: CheckResult) -> PhotoCheckReport:
        report = build_report(result, self._deps.registry)
        self.report = report
        # a new check invalidates prior selections
        self.selection.reset(report.lookup)
        return report

    def _persist(self, payload: Dict[str, Any], result: CheckResult) -> Tuple[CheckResult, Optional[HistoryItem]]:
        if result.record_id or self._deps.create_record is None:
            return result, None
        created = self._deps.create_record(payload)
        item = created.get("item")
        saved = item if isinstance(item, HistoryItem) and item.id == created.get("record_id") else None
        # the server-assigned alias and timestamp are authoritative
        persisted = CheckResult(
            batches=result.batches,
            record_id=created.get("record_id"),
            created_at=created.get("created_at") or (saved.created_at if saved else None) or result.created_at,
            alias=(saved.alias if saved else None) or result.alias,
        )
        return persisted, saved

    def complete_check(self, payload: Any) -> PhotoCheckReport:
        result = normalize_check_result(payload)
        saved: Optional[HistoryItem] = None
        if isinstance(payload, dict):
            try:
                result, saved = self._persist(payload, result)
            except PhotoCheckHistoryError as exc:
                self.message = f"Check finished but could not be saved to history: {exc.detail}"
        report = self._render(result)
        if report.record_id:
            self.history.upsert(
                saved
                or HistoryItem(
                    id=report.record_id,
                    alias=report.alias or "",
                    created_at=report.created_at,
                    total_images=report.total_images,
                    problems=report.problem_rows,
                    overall=report.overall,
                )
            )
            self.history.select(report.record_id)
        return report

    def submit_check(self, run_check: Callable[[], Any]) -> Optional[PhotoCheckReport]:
        if self.submitting:
            _log.warning("photo check already in flight; dropped duplicate submission")
            return None
        self.submitting = True
        self.message = None
        try:
            payload = run_check()
        except Exception as exc:
            _log.warning("photo check failed", exc_info=True)
            self.message = f"Photo check failed: {exc}"
            return None
        finally:
            self.submitting = False
        return self.complete_check(payload)

    def toggle(self, key: str, selected: Optional[bool] = None) -> bool:
        return self.selection.toggle(key, selected)

    def clear_report(self) -> None:
        self.report = None
        self.selection.reset({})

    def load_history(self) -> Optional[List[HistoryItem]]:
        try:
            return self.history.list()
        except PhotoCheckHistoryError as exc:
            self.message = f"Could not load history: {exc.detail}"
            return None

    def rename_history(self, record_id: str, alias: str) -> Optional[HistoryItem]:
        try:
            updated = self.history.rename_alias(record_id, alias)
        except PhotoCheckHistoryError as exc:
            self.message = f"Could not rename record: {exc.detail}"
            return None
        if updated is not None and self.report is not None and self.report.record_id == record_id:
            tree = dict(self.report.tree)
            tree["alias"] = updated.alias
            self.report = replace(self.report, alias=updated.alias, tree=tree)
        return updated

    def delete_history(self, record_id: str) -> bool:
        try:
            deleted = self.history.delete(record_id)
        except PhotoCheckHistoryError as exc:
            self.message = f"Could not delete record: {exc.detail}"
            return False
        if not deleted:
            return False
        if self.report is not None and self.report.record_id == record_id:
            self.clear_report()
        return True

    def save_selected(
        self,
        create_entry: Callable[[Dict[str, Any]], Any],
        *,
        subject: str = "",
        semester: str = "",
        question_type: str = "",
    ) -> List[Any]:
        try:
            saved = save_selected_entries(
                self.selection,
                create_entry,
                source=self._deps.entry_source,
                subject=subject,
                semester=semester,
                question_type=question_type,
            )
        except PhotoCheckSaveError as exc:
            self.message = (
                f"Saved {len(exc.saved)} question(s); question {exc.problem_index} "
                f"of image {exc.batch_index} failed: {exc.detail}"
            )
            raise
        self.message = f"Saved {len(saved)} question(s)."
        return saved
