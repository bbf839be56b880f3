"""Canonical records produced by photo-check normalization.

Every record is immutable except ``ProblemRow``, which the row builder fills
while joining attempts. ``to_dict`` returns the camelCase wire shape used by
the HTTP surface and the persisted history.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

UNIT_RATIO = "ratio"
UNIT_PIXEL = "pixel"


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    width: float
    height: float
    unit: str = UNIT_PIXEL
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
            "unit": self.unit,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ProblemImage:
    url: str
    width: Optional[float] = None
    height: Optional[float] = None
    bounding_box: Optional[BoundingBox] = None
    source: Optional[str] = None
    attempt: Optional[int] = None
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "url": self.url,
            "width": self.width,
            "height": self.height,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "source": self.source,
        }
        if self.attempt is not None:
            payload["attempt"] = self.attempt
        if self.index is not None:
            payload["index"] = self.index
        return payload


@dataclass(frozen=True)
class Problem:
    index: int
    question: Optional[str] = None
    student_answer: Optional[str] = None
    solved_answer: Optional[str] = None
    analysis: Optional[str] = None
    is_correct: Optional[bool] = None
    bounding_box: Optional[BoundingBox] = None
    image: Optional[ProblemImage] = None

    def has_text(self) -> bool:
        return any((self.question, self.student_answer, self.solved_answer, self.analysis))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "question": self.question,
            "studentAnswer": self.student_answer,
            "solvedAnswer": self.solved_answer,
            "analysis": self.analysis,
            "isCorrect": self.is_correct,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "image": self.image.to_dict() if self.image else None,
        }


@dataclass(frozen=True)
class AttemptSummary:
    total: int = 0
    correct: int = 0
    incorrect: int = 0
    unknown: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "unknown": self.unknown,
        }


@dataclass(frozen=True)
class Attempt:
    index: int
    provider: Optional[str] = None
    label: Optional[str] = None
    summary: AttemptSummary = AttemptSummary()
    problems: Tuple[Problem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "provider": self.provider,
            "label": self.label,
            "summary": self.summary.to_dict(),
            "problems": [p.to_dict() for p in self.problems],
        }


@dataclass(frozen=True)
class BatchImage:
    url: str
    width: Optional[float] = None
    height: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Batch:
    index: int
    order: int
    name: str
    attempts: Tuple[Attempt, ...] = ()
    summary: AttemptSummary = AttemptSummary()
    image: Optional[BatchImage] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "order": self.order,
            "name": self.name,
            "attempts": [a.to_dict() for a in self.attempts],
            "summary": self.summary.to_dict(),
            "image": self.image.to_dict() if self.image else None,
        }


@dataclass(frozen=True)
class CheckResult:
    batches: Tuple[Batch, ...] = ()
    record_id: Optional[str] = None
    created_at: Optional[str] = None
    alias: Optional[str] = None


@dataclass
class ProblemRow:
    index: int
    order: int
    attempts: Dict[int, Problem] = field(default_factory=dict)
    bounding_box: Optional[BoundingBox] = None
    image: Optional[ProblemImage] = None


@dataclass(frozen=True)
class AttemptMeta:
    provider: Optional[str] = None
    label: Optional[str] = None


@dataclass(frozen=True)
class RowSet:
    rows: Tuple[ProblemRow, ...] = ()
    attempt_order: Tuple[int, ...] = ()
    attempt_metadata: Dict[int, AttemptMeta] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoryItem:
    id: str
    alias: str = ""
    created_at: Optional[str] = None
    total_images: int = 0
    problems: int = 0
    overall: AttemptSummary = AttemptSummary()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "alias": self.alias,
            "createdAt": self.created_at,
            "totalImages": self.total_images,
            "problems": self.problems,
            "overall": self.overall.to_dict(),
        }
