from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import AbstractSet, Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .photo_check_models import AttemptMeta, Batch, BoundingBox, Problem, ProblemImage, RowSet
from .photo_check_rows import build_problem_rows, display_attempt_order, row_problems
from .photo_check_values import to_number

_log = logging.getLogger(__name__)

VERDICT_LABELS = {True: "correct", False: "needs review", None: "unresolved"}


class PhotoCheckEntryError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = int(status_code)
        self.detail = detail


class PhotoCheckSaveError(Exception):
    """Batch save stopped at the first failing row."""

    def __init__(self, batch_index: int, problem_index: int, detail: str, saved: List[Any]):
        super().__init__(f"failed to save question {problem_index} of image {batch_index}: {detail}")
        self.batch_index = batch_index
        self.problem_index = problem_index
        self.detail = detail
        self.saved = saved


def selection_key(batch_index: Any, problem_index: Any) -> str:
    """Stable ``"{batch}:{problem}"`` identity of a report row, or ``""``."""
    values = []
    for raw in (batch_index, problem_index):
        number = to_number(raw)
        if number is None or number <= 0:
            return ""
        floored = int(math.floor(number))
        if floored < 1:
            return ""
        values.append(floored)
    return f"{values[0]}:{values[1]}"


@dataclass(frozen=True)
class SelectionEntry:
    batch_index: int
    batch_name: str
    problem_index: int
    attempts: Tuple[Tuple[int, Problem], ...] = ()
    attempt_order: Tuple[int, ...] = ()
    image: Optional[ProblemImage] = None
    bounding_box: Optional[BoundingBox] = None
    attempt_metadata: Mapping[int, AttemptMeta] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return selection_key(self.batch_index, self.problem_index)


def batch_selection_entries(batch: Batch, row_set: RowSet, order: Sequence[int]) -> Dict[str, SelectionEntry]:
    entries: Dict[str, SelectionEntry] = {}
    for row in row_set.rows:
        key = selection_key(batch.index, row.index)
        if not key:
            continue
        entries[key] = SelectionEntry(
            batch_index=batch.index,
            batch_name=batch.name,
            problem_index=row.index,
            attempts=tuple(row_problems(row, order)),
            attempt_order=tuple(order),
            image=row.image,
            bounding_box=row.bounding_box,
            attempt_metadata=dict(row_set.attempt_metadata),
        )
    return entries


def build_selection_lookup(
    batches: Iterable[Batch],
    prefer_latest: AbstractSet[str] = frozenset(),
) -> Dict[str, SelectionEntry]:
    """Selection key -> entry for every row of every batch, in render order."""
    lookup: Dict[str, SelectionEntry] = {}
    for batch in batches:
        row_set = build_problem_rows(batch)
        lookup.update(batch_selection_entries(batch, row_set, display_attempt_order(row_set, prefer_latest)))
    return lookup


class PhotoCheckSelection:
    """Selected report rows, owned independently of any rendered view.

    ``reset`` runs on every full report render; ``toggle`` is the only user
    mutation. Views are synchronized from this set, never read back into it.
    """

    def __init__(self) -> None:
        self._keys: Set[str] = set()
        self._lookup: Dict[str, SelectionEntry] = {}

    def reset(self, lookup: Mapping[str, SelectionEntry]) -> None:
        self._keys.clear()
        self._lookup = dict(lookup)

    @property
    def lookup(self) -> Mapping[str, SelectionEntry]:
        return MappingProxyType(self._lookup)

    def entry(self, key: str) -> Optional[SelectionEntry]:
        return self._lookup.get(key)

    def toggle(self, key: str, selected: Optional[bool] = None) -> bool:
        if key not in self._lookup:
            _log.debug("ignored toggle for unknown selection key %r", key)
            return False
        want = (key not in self._keys) if selected is None else bool(selected)
        if want:
            self._keys.add(key)
        else:
            self._keys.discard(key)
        return want

    def clear(self) -> None:
        self._keys.clear()

    def is_selected(self, key: str) -> bool:
        return key in self._keys

    def selected_keys(self) -> List[str]:
        return [key for key in self._lookup if key in self._keys]

    def selected_entries(self) -> List[SelectionEntry]:
        return [entry for key, entry in self._lookup.items() if key in self._keys]

    def sync_view(self, view_keys: Iterable[str]) -> Dict[str, bool]:
        return {key: key in self._keys for key in view_keys}

    def __len__(self) -> int:
        return len(self._keys)


@dataclass(frozen=True)
class EntryDraft:
    batch_index: int
    batch_name: str
    problem_index: int
    question: Optional[str] = None
    student_answer: Optional[str] = None
    solved_answer: Optional[str] = None
    analysis: Optional[str] = None
    verdict: Optional[bool] = None
    image: Optional[ProblemImage] = None
    bounding_box: Optional[BoundingBox] = None


def merged_verdict(problems: Iterable[Problem]) -> Optional[bool]:
    """One explicit False from any attempt wins over every True."""
    seen_true = False
    for problem in problems:
        if problem.is_correct is False:
            return False
        if problem.is_correct is True:
            seen_true = True
    return True if seen_true else None


def _first_text(problems: Iterable[Problem], attr: str) -> Optional[str]:
    for problem in problems:
        value = getattr(problem, attr)
        if value:
            return value
    return None


def build_entry_draft(entry: SelectionEntry) -> EntryDraft:
    problems = [problem for _, problem in entry.attempts]
    primary = entry.attempt_order[0] if entry.attempt_order else None
    # review attempts in display order, then the primary one
    preferred = [problem for idx, problem in entry.attempts if idx != primary]
    preferred += [problem for idx, problem in entry.attempts if idx == primary]
    return EntryDraft(
        batch_index=entry.batch_index,
        batch_name=entry.batch_name,
        problem_index=entry.problem_index,
        question=_first_text(preferred, "question"),
        student_answer=_first_text(preferred, "student_answer"),
        solved_answer=_first_text(preferred, "solved_answer"),
        analysis=_first_text(preferred, "analysis"),
        verdict=merged_verdict(problems),
        image=entry.image,
        bounding_box=entry.bounding_box,
    )


def _remark(draft: EntryDraft) -> str:
    parts = []
    if draft.student_answer:
        parts.append(f"Student answer: {draft.student_answer}")
    parts.append(f"AI verdict: {VERDICT_LABELS[draft.verdict]}")
    parts.append(f"From {draft.batch_name}, question {draft.problem_index}")
    return "\n".join(parts)


def build_entry_payload(
    draft: EntryDraft,
    *,
    source: str,
    subject: str = "",
    semester: str = "",
    question_type: str = "",
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    has_text = any((draft.question, draft.student_answer, draft.solved_answer, draft.analysis))
    if not has_text and draft.image is None:
        raise PhotoCheckEntryError(
            status_code=400,
            detail=f"question {draft.problem_index} of image {draft.batch_index} has neither text nor image",
        )
    payload: Dict[str, Any] = {
        "source": source,
        "subject": (subject or "").strip(),
        "semester": (semester or "").strip(),
        "questionType": (question_type or "").strip(),
        "questionText": draft.question or "",
        "answerText": draft.solved_answer or "",
        "errorReason": draft.analysis or "",
        "remark": _remark(draft),
        "createdAt": created_at or datetime.now().isoformat(timespec="seconds"),
    }
    if draft.image is not None:
        box = draft.image.bounding_box or draft.bounding_box
        payload["questionImage"] = {
            "url": draft.image.url,
            "boundingBox": box.to_dict() if box else None,
        }
    return payload


def save_selected_entries(
    selection: PhotoCheckSelection,
    create_entry: Callable[[Dict[str, Any]], Any],
    *,
    source: str,
    subject: str = "",
    semester: str = "",
    question_type: str = "",
    now_iso: Optional[Callable[[], str]] = None,
) -> List[Any]:
    saved: List[Any] = []
    for entry in selection.selected_entries():
        draft = build_entry_draft(entry)
        try:
            payload = build_entry_payload(
                draft,
                source=source,
                subject=subject,
                semester=semester,
                question_type=question_type,
                created_at=now_iso() if now_iso else None,
            )
            saved.append(create_entry(payload))
        except Exception as exc:
            _log.warning(
                "photo-check save stopped at image %s question %s",
                entry.batch_index,
                entry.problem_index,
                exc_info=True,
            )
            detail = exc.detail if isinstance(exc, PhotoCheckEntryError) else str(exc)
            raise PhotoCheckSaveError(entry.batch_index, entry.problem_index, detail, saved) from exc
    return saved
