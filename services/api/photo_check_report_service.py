"""Summaries and the render tree of a photo-check report.

The tree is plain data (dicts, lists, strings, numbers); any view layer can
rebuild itself from it. Selection keys on rows are the only identity a view
needs to keep checkboxes in sync across re-renders.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Optional, Sequence

from .photo_check_models import Attempt, AttemptMeta, AttemptSummary, Batch, CheckResult, ProblemRow, RowSet
from .photo_check_normalize_service import sum_summaries
from .photo_check_provider_registry import ProviderRegistry
from .photo_check_rows import build_problem_rows, display_attempt_order, provider_problem, row_problems
from .photo_check_selection_service import (
    VERDICT_LABELS,
    SelectionEntry,
    batch_selection_entries,
    merged_verdict,
    selection_key,
)

_log = logging.getLogger(__name__)

NO_ATTEMPTS_SENTENCE = "No AI check results were returned for this submission."


@dataclass(frozen=True)
class PhotoCheckReport:
    record_id: Optional[str]
    created_at: Optional[str]
    alias: Optional[str]
    tree: Dict[str, Any]
    lookup: Dict[str, SelectionEntry] = field(default_factory=dict)
    total_images: int = 0
    problem_rows: int = 0
    overall: AttemptSummary = AttemptSummary()


def format_summary_text(summary: AttemptSummary) -> str:
    text = f"{summary.total} total, {summary.correct} correct, {summary.incorrect} need review"
    if summary.unknown > 0:
        text += f", {summary.unknown} unresolved"
    return text


def attempt_display_name(
    index: int,
    meta: Optional[AttemptMeta],
    registry: Optional[ProviderRegistry] = None,
) -> str:
    if meta is not None:
        if meta.label:
            return meta.label
        if meta.provider:
            return registry.label_for(meta.provider) if registry else meta.provider
    return f"Attempt {index}"


def _meta(attempt: Attempt) -> AttemptMeta:
    return AttemptMeta(provider=attempt.provider, label=attempt.label)


def attempt_summary_lines(batch: Batch, registry: Optional[ProviderRegistry] = None) -> List[str]:
    if len(batch.attempts) <= 1:
        return [format_summary_text(a.summary) for a in batch.attempts]
    return [
        f"{attempt_display_name(a.index, _meta(a), registry)}: {format_summary_text(a.summary)}"
        for a in batch.attempts
    ]


def overall_summary(batches: Sequence[Batch]) -> AttemptSummary:
    return sum_summaries(b.summary for b in batches)


def workflow_sentence(batches: Sequence[Batch], registry: Optional[ProviderRegistry] = None) -> str:
    attempts = [a for b in batches for a in b.attempts]
    if not attempts:
        return NO_ATTEMPTS_SENTENCE
    names = Counter(attempt_display_name(a.index, _meta(a), registry) for a in attempts)
    parts = [name if count == 1 else f"{name} ×{count}" for name, count in names.items()]
    calls = "AI check" if len(attempts) == 1 else "AI checks"
    photos = "photo" if len(batches) == 1 else "photos"
    return f"Ran {len(attempts)} {calls} across {len(batches)} {photos}: {', '.join(parts)}."


def _box(value: Any) -> Optional[Dict[str, Any]]:
    return value.to_dict() if value is not None else None


def _row_node(
    batch: Batch,
    row_set: RowSet,
    row: ProblemRow,
    order: Sequence[int],
    registry: Optional[ProviderRegistry],
) -> Dict[str, Any]:
    problems = row_problems(row, order)
    verdict = merged_verdict(p for _, p in problems)
    cells = []
    for attempt_index in order:
        problem = row.attempts.get(attempt_index)
        if problem is None:
            cells.append({"attempt": attempt_index, "missing": True})
            continue
        cells.append(
            {
                "attempt": attempt_index,
                "missing": False,
                "question": problem.question,
                "studentAnswer": problem.student_answer,
                "solvedAnswer": problem.solved_answer,
                "analysis": problem.analysis,
                "isCorrect": problem.is_correct,
                "verdict": VERDICT_LABELS[problem.is_correct],
            }
        )
    providers: Dict[str, Any] = {}
    for meta in row_set.attempt_metadata.values():
        if not meta.provider or meta.provider in providers:
            continue
        found = provider_problem(
            row_set,
            row,
            meta.provider,
            prefer_latest=registry.prefer_latest if registry else frozenset(),
        )
        if found is not None:
            providers[meta.provider] = {"attempt": found[0], "isCorrect": found[1].is_correct}
    return {
        "key": selection_key(batch.index, row.index),
        "index": row.index,
        "boundingBox": _box(row.bounding_box),
        "image": row.image.to_dict() if row.image else None,
        "isCorrect": verdict,
        "verdict": VERDICT_LABELS[verdict],
        "cells": cells,
        "providers": providers,
    }


def _batch_node(
    batch: Batch,
    registry: Optional[ProviderRegistry],
    lookup: Dict[str, SelectionEntry],
) -> Dict[str, Any]:
    row_set = build_problem_rows(batch)
    prefer_latest: AbstractSet[str] = registry.prefer_latest if registry else frozenset()
    order = display_attempt_order(row_set, prefer_latest)
    rows = [_row_node(batch, row_set, row, order, registry) for row in row_set.rows]
    lookup.update(batch_selection_entries(batch, row_set, order))
    columns = [
        {
            "attempt": attempt_index,
            "provider": row_set.attempt_metadata[attempt_index].provider,
            "label": attempt_display_name(attempt_index, row_set.attempt_metadata[attempt_index], registry),
        }
        for attempt_index in order
    ]
    return {
        "index": batch.index,
        "name": batch.name,
        "image": batch.image.to_dict() if batch.image else None,
        "summary": batch.summary.to_dict(),
        "summaryText": format_summary_text(batch.summary),
        "attemptSummaries": attempt_summary_lines(batch, registry),
        "columns": columns,
        "rows": rows,
    }


def build_report(result: CheckResult, registry: Optional[ProviderRegistry] = None) -> PhotoCheckReport:
    lookup: Dict[str, SelectionEntry] = {}
    batches = [_batch_node(batch, registry, lookup) for batch in result.batches]
    overall = overall_summary(result.batches)
    problem_rows = sum(len(node["rows"]) for node in batches)
    tree = {
        "recordId": result.record_id,
        "createdAt": result.created_at,
        "alias": result.alias,
        "overall": overall.to_dict(),
        "overallText": format_summary_text(overall),
        "workflow": workflow_sentence(result.batches, registry),
        "totalImages": len(result.batches),
        "problems": problem_rows,
        "batches": batches,
    }
    _log.debug("rendered photo-check report with %s batches and %s rows", len(batches), problem_rows)
    return PhotoCheckReport(
        record_id=result.record_id,
        created_at=result.created_at,
        alias=result.alias,
        tree=tree,
        lookup=lookup,
        total_images=len(result.batches),
        problem_rows=problem_rows,
        overall=overall,
    )
