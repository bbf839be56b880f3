"""Builds the canonical batch/attempt/problem tree from one AI response payload.

Each entity has exactly one normalizer that enumerates every accepted alias and
returns a canonical record or ``None``. Malformed entries are dropped, never
raised, so one bad problem cannot abort a whole report.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .photo_check_models import (
    Attempt,
    AttemptSummary,
    Batch,
    BatchImage,
    BoundingBox,
    CheckResult,
    Problem,
    ProblemImage,
)
from .photo_check_values import (
    clean_text,
    first_present,
    normalize_bounding_box,
    normalize_correctness,
    normalize_count,
    parse_ordinal,
    to_number,
)

_log = logging.getLogger(__name__)

PROBLEM_INDEX_KEYS = (
    "index",
    "questionIndex",
    "question_index",
    "questionNumber",
    "question_number",
    "questionNo",
    "number",
    "no",
)
QUESTION_KEYS = ("question", "questionText", "question_text", "stem", "prompt", "title", "content")
STUDENT_ANSWER_KEYS = ("studentAnswer", "student_answer", "answer", "userAnswer", "response")
SOLVED_ANSWER_KEYS = (
    "solvedAnswer",
    "solved_answer",
    "correctAnswer",
    "correct_answer",
    "solution",
    "expectedAnswer",
    "standardAnswer",
)
ANALYSIS_KEYS = ("analysis", "explanation", "reason", "comment", "feedback", "errorReason")
CORRECTNESS_KEYS = (
    "isCorrect",
    "is_correct",
    "correct",
    "correctness",
    "result",
    "verdict",
    "judgement",
    "status",
)
BOX_KEYS = ("boundingBox", "bounding_box", "bbox", "box", "region", "location", "coords")
PROBLEM_IMAGE_KEYS = ("image", "imageUrl", "image_url", "crop", "cropUrl", "questionImage")
IMAGE_URL_KEYS = ("url", "src", "href", "dataUrl")

ATTEMPT_INDEX_KEYS = ("attempt", "attemptIndex", "attempt_index", "index", "pass", "round")
PROVIDER_KEYS = ("provider", "model", "source", "engine", "name", "vendor")
LABEL_KEYS = ("label", "title", "displayName", "display_name")
PROBLEM_LIST_KEYS = ("problems", "questions", "items")

SUMMARY_TOTAL_KEYS = ("total", "count", "totalQuestions", "total_questions")
SUMMARY_CORRECT_KEYS = ("correct", "correctCount", "correct_count", "right")
SUMMARY_INCORRECT_KEYS = ("incorrect", "incorrectCount", "incorrect_count", "wrong", "needReview")
SUMMARY_UNKNOWN_KEYS = ("unknown", "unresolved", "uncertain")

BATCH_INDEX_KEYS = ("index", "batchIndex", "batch_index", "imageIndex", "image_index", "page", "pageIndex")
BATCH_NAME_KEYS = ("name", "filename", "fileName", "originalName", "title")
BATCH_IMAGE_KEYS = ("image", "imageUrl", "image_url", "photo", "photoUrl")

RECORD_ID_KEYS = ("recordId", "record_id", "id")
CREATED_AT_KEYS = ("createdAt", "created_at")


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _first_list(raw: Mapping[str, Any], keys: Sequence[str]) -> Optional[List[Any]]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, (list, tuple)):
            return list(value)
    return None


def _short_text(raw: Any) -> Optional[str]:
    if raw is None or isinstance(raw, (bool, dict, list, tuple)):
        return None
    text = str(raw).strip()
    return text or None


def _image_url(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, Mapping):
        return _short_text(first_present(raw, IMAGE_URL_KEYS))
    return None


def _raw_problem_image(raw: Mapping[str, Any]) -> Any:
    return first_present(raw, PROBLEM_IMAGE_KEYS)


def normalize_problem_image(
    raw: Any,
    *,
    inherited_box: Optional[BoundingBox] = None,
    index: Optional[int] = None,
) -> Optional[ProblemImage]:
    url = _image_url(raw)
    if not url:
        return None
    box: Optional[BoundingBox] = None
    width = height = None
    source = None
    if isinstance(raw, Mapping):
        box = normalize_bounding_box(first_present(raw, BOX_KEYS))
        width = to_number(raw.get("width"))
        height = to_number(raw.get("height"))
        source = _short_text(raw.get("source"))
    return ProblemImage(
        url=url,
        width=width,
        height=height,
        bounding_box=box or inherited_box,
        source=source,
        index=index,
    )


def normalize_problem(raw: Any, fallback_index: int) -> Optional[Problem]:
    if not isinstance(raw, Mapping):
        return None

    raw_image = _raw_problem_image(raw)
    image_hints: Mapping[str, Any] = raw_image if isinstance(raw_image, Mapping) else {}

    index = parse_ordinal(first_present(raw, PROBLEM_INDEX_KEYS))
    if index is None:
        index = parse_ordinal(first_present(image_hints, PROBLEM_INDEX_KEYS))
    if index is None:
        index = max(1, int(fallback_index))

    box = normalize_bounding_box(first_present(raw, BOX_KEYS))
    if box is None:
        box = normalize_bounding_box(first_present(image_hints, BOX_KEYS))

    image = normalize_problem_image(raw_image, inherited_box=box, index=index)

    question = clean_text(first_present(raw, QUESTION_KEYS))
    student_answer = clean_text(first_present(raw, STUDENT_ANSWER_KEYS))
    solved_answer = clean_text(first_present(raw, SOLVED_ANSWER_KEYS))
    analysis = clean_text(first_present(raw, ANALYSIS_KEYS))
    if not any((question, student_answer, solved_answer, analysis)) and image is None:
        return None

    return Problem(
        index=index,
        question=question,
        student_answer=student_answer,
        solved_answer=solved_answer,
        analysis=analysis,
        is_correct=normalize_correctness(first_present(raw, CORRECTNESS_KEYS)),
        bounding_box=box,
        image=image,
    )


def _derive_summary(problems: Sequence[Problem]) -> AttemptSummary:
    correct = sum(1 for p in problems if p.is_correct is True)
    incorrect = sum(1 for p in problems if p.is_correct is False)
    return AttemptSummary(
        total=len(problems),
        correct=correct,
        incorrect=incorrect,
        unknown=len(problems) - correct - incorrect,
    )


def resolve_summary(raw: Any, problems: Sequence[Problem]) -> AttemptSummary:
    """Explicit counts win over derived ones; total never drops below the problem count."""
    return overlay_summary(raw, _derive_summary(problems), min_total=len(problems))


def overlay_summary(raw: Any, derived: AttemptSummary, *, min_total: int = 0) -> AttemptSummary:
    hints: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}

    total = normalize_count(first_present(hints, SUMMARY_TOTAL_KEYS))
    correct = normalize_count(first_present(hints, SUMMARY_CORRECT_KEYS))
    incorrect = normalize_count(first_present(hints, SUMMARY_INCORRECT_KEYS))
    unknown = normalize_count(first_present(hints, SUMMARY_UNKNOWN_KEYS))

    total = derived.total if total is None else total
    correct = derived.correct if correct is None else correct
    incorrect = derived.incorrect if incorrect is None else incorrect
    raised = total < min_total
    if raised:
        total = min_total
    if unknown is None or raised:
        unknown = max(0, total - correct - incorrect)
    return AttemptSummary(total=total, correct=correct, incorrect=incorrect, unknown=unknown)


def normalize_attempt(raw: Any, fallback_index: int) -> Optional[Attempt]:
    if not isinstance(raw, Mapping):
        return None

    index = parse_ordinal(first_present(raw, ATTEMPT_INDEX_KEYS)) or max(1, int(fallback_index))
    provider_raw = _short_text(first_present(raw, PROVIDER_KEYS))
    provider = provider_raw.casefold() if provider_raw else None
    label = _short_text(first_present(raw, LABEL_KEYS))

    problems: List[Problem] = []
    for position, item in enumerate(_first_list(raw, PROBLEM_LIST_KEYS) or [], start=1):
        problem = normalize_problem(item, position)
        if problem is None:
            _log.debug("dropped empty problem at position %s of attempt %s", position, index)
            continue
        if problem.image is not None:
            problem = replace(problem, image=replace(problem.image, attempt=index))
        problems.append(problem)

    summary_raw = raw.get("summary") if isinstance(raw.get("summary"), Mapping) else None
    return Attempt(
        index=index,
        provider=provider,
        label=label,
        summary=resolve_summary(summary_raw, problems),
        problems=tuple(problems),
    )


def sum_summaries(summaries: Iterable[AttemptSummary]) -> AttemptSummary:
    total = correct = incorrect = unknown = 0
    for summary in summaries:
        total += summary.total
        correct += summary.correct
        incorrect += summary.incorrect
        unknown += summary.unknown
    return AttemptSummary(total=total, correct=correct, incorrect=incorrect, unknown=unknown)


def _batch_image(raw: Mapping[str, Any]) -> Optional[BatchImage]:
    value = first_present(raw, BATCH_IMAGE_KEYS)
    url = _image_url(value)
    if not url:
        return None
    if isinstance(value, Mapping):
        return BatchImage(url=url, width=to_number(value.get("width")), height=to_number(value.get("height")))
    return BatchImage(url=url)


def _batch_attempts(raw: Mapping[str, Any]) -> List[Attempt]:
    listed = raw.get("attempts")
    if isinstance(listed, (list, tuple)) and listed:
        attempts = [normalize_attempt(item, position) for position, item in enumerate(listed, start=1)]
        return [a for a in attempts if a is not None]
    if _first_list(raw, PROBLEM_LIST_KEYS) is None and not isinstance(raw.get("summary"), Mapping):
        return []
    # Bare problems on the batch form one implicit attempt; batch ordinals must not leak into it.
    implicit = {key: raw.get(key) for key in PROVIDER_KEYS + LABEL_KEYS if key not in ("name", "title")}
    implicit.update({key: raw.get(key) for key in PROBLEM_LIST_KEYS + ("summary",)})
    attempt = normalize_attempt({k: v for k, v in implicit.items() if v is not None}, 1)
    return [attempt] if attempt is not None else []


def _build_batch(raw: Mapping[str, Any], *, index: int, order: int) -> Batch:
    attempts = _batch_attempts(raw)
    name = _short_text(first_present(raw, BATCH_NAME_KEYS)) or f"Image {index}"
    summary = sum_summaries(a.summary for a in attempts)
    summary_raw = raw.get("summary")
    if isinstance(summary_raw, Mapping) and raw.get("attempts"):
        summary = overlay_summary(summary_raw, summary)
    return Batch(
        index=index,
        order=order,
        name=name,
        attempts=tuple(attempts),
        summary=summary,
        image=_batch_image(raw),
    )


def normalize_batches(payload: Any) -> List[Batch]:
    """Split a raw payload into batches sorted by (index, arrival order).

    A bare list or a payload with a non-empty ``results`` list is multi-image;
    any other object is a single image and yields exactly one batch of index 1.
    """
    if isinstance(payload, (list, tuple)):
        elements: Optional[List[Any]] = list(payload)
    elif isinstance(payload, Mapping):
        results = _as_list(payload.get("results"))
        elements = results or None
    else:
        return []

    if elements is None:
        return [_build_batch(payload, index=1, order=0)]  # type: ignore[arg-type]

    batches: List[Batch] = []
    for order, element in enumerate(elements):
        if not isinstance(element, Mapping):
            _log.debug("dropped non-object batch at position %s", order)
            continue
        index = parse_ordinal(first_present(element, BATCH_INDEX_KEYS)) or order + 1
        batches.append(_build_batch(element, index=index, order=order))
    batches.sort(key=lambda b: (b.index, b.order))
    return batches


def normalize_check_result(payload: Any) -> CheckResult:
    hints: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
    alias = hints.get("alias")
    return CheckResult(
        batches=tuple(normalize_batches(payload)),
        record_id=_short_text(first_present(hints, RECORD_ID_KEYS)),
        created_at=_short_text(first_present(hints, CREATED_AT_KEYS)),
        alias=alias.strip() if isinstance(alias, str) and alias.strip() else None,
    )
