"""Cross-attempt join: one row per question ordinal within a batch."""
from __future__ import annotations

from typing import AbstractSet, Dict, Iterable, List, Optional, Tuple

from .photo_check_models import Attempt, AttemptMeta, Batch, Problem, ProblemRow, RowSet


def attempt_order(batch: Batch) -> Tuple[int, ...]:
    seen: List[int] = []
    for attempt in batch.attempts:
        if attempt.index not in seen:
            seen.append(attempt.index)
    return tuple(seen)


def build_problem_rows(batch: Batch) -> RowSet:
    order = attempt_order(batch)
    metadata: Dict[int, AttemptMeta] = {}
    by_index: Dict[int, List[Attempt]] = {}
    for attempt in batch.attempts:
        metadata.setdefault(attempt.index, AttemptMeta(provider=attempt.provider, label=attempt.label))
        by_index.setdefault(attempt.index, []).append(attempt)

    rows: Dict[int, ProblemRow] = {}
    for attempt_index in order:
        for attempt in by_index[attempt_index]:
            for problem in attempt.problems:
                row = rows.get(problem.index)
                if row is None:
                    row = ProblemRow(index=problem.index, order=len(rows))
                    rows[problem.index] = row
                row.attempts[attempt_index] = problem
                if row.bounding_box is None:
                    row.bounding_box = problem.bounding_box or (
                        problem.image.bounding_box if problem.image else None
                    )
                if row.image is None and problem.image is not None:
                    row.image = problem.image

    ordered = sorted(rows.values(), key=lambda r: (r.index, r.order))
    return RowSet(rows=tuple(ordered), attempt_order=order, attempt_metadata=metadata)


def display_attempt_order(row_set: RowSet, prefer_latest: AbstractSet[str] = frozenset()) -> Tuple[int, ...]:
    """Attempt order for columns and drafts.

    For every provider in ``prefer_latest`` the positions held by that
    provider's attempts are refilled newest first, so a re-check surfaces
    ahead of the first pass. Every other attempt keeps its first-seen slot.
    """
    order = list(row_set.attempt_order)
    if not prefer_latest:
        return tuple(order)
    for provider in prefer_latest:
        slots = [
            pos
            for pos, attempt_index in enumerate(order)
            if _provider_of(row_set, attempt_index) == provider
        ]
        if len(slots) < 2:
            continue
        reordered = [order[pos] for pos in reversed(slots)]
        for pos, attempt_index in zip(slots, reordered):
            order[pos] = attempt_index
    return tuple(order)


def _provider_of(row_set: RowSet, attempt_index: int) -> Optional[str]:
    meta = row_set.attempt_metadata.get(attempt_index)
    return meta.provider if meta else None


def row_problems(row: ProblemRow, order: Iterable[int]) -> List[Tuple[int, Problem]]:
    return [(attempt_index, row.attempts[attempt_index]) for attempt_index in order if attempt_index in row.attempts]


def provider_problem(
    row_set: RowSet,
    row: ProblemRow,
    provider: str,
    *,
    prefer_latest: AbstractSet[str] = frozenset(),
) -> Optional[Tuple[int, Problem]]:
    wanted = str(provider or "").strip().casefold()
    candidates = [
        (attempt_index, problem)
        for attempt_index, problem in row_problems(row, row_set.attempt_order)
        if _provider_of(row_set, attempt_index) == wanted
    ]
    if not candidates:
        return None
    return candidates[-1] if wanted in prefer_latest else candidates[0]
