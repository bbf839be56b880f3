from __future__ import annotations

import unittest

from services.api.photo_check_models import AttemptSummary
from services.api.photo_check_normalize_service import (
    normalize_attempt,
    normalize_batches,
    normalize_check_result,
    normalize_problem,
    resolve_summary,
)


def _multi_image_payload() -> dict:
    return {
        "recordId": "rec-1",
        "createdAt": "2024-03-01T09:30:00",
        "alias": "  Week 3 homework ",
        "results": [
            {
                "index": 2,
                "name": "page-2.jpg",
                "problems": [{"index": 1, "question": "2 + 2", "studentAnswer": "4", "isCorrect": "对"}],
            },
            {
                "index": 1,
                "name": "page-1.jpg",
                "image": {"url": "https://img.example/p1.jpg", "width": 1200, "height": 1600},
                "attempts": [
                    {
                        "attempt": 1,
                        "provider": "Qwen",
                        "problems": [{"index": 1, "question": "x + 1 = 3", "isCorrect": True}],
                    },
                    {
                        "attempt": 2,
                        "provider": "kimi",
                        "label": "Kimi re-check",
                        "problems": [{"questionNumber": "1", "question": "x + 1 = 3", "isCorrect": False}],
                    },
                ],
            },
        ],
    }


class NormalizeProblemTest(unittest.TestCase):
    def test_empty_problem_is_dropped(self):
        raw = {"question": "", "studentAnswer": None, "solvedAnswer": None, "analysis": None, "image": None}
        self.assertIsNone(normalize_problem(raw, 1))
        self.assertIsNone(normalize_problem("not a problem", 1))

    def test_aliases_and_fallback_index(self):
        problem = normalize_problem(
            {
                "stem": "Find x",
                "answer": "x=2",
                "correctAnswer": "x=3",
                "explanation": "sign error",
                "verdict": "wrong",
            },
            4,
        )
        self.assertEqual(problem.index, 4)
        self.assertEqual(problem.question, "Find x")
        self.assertEqual(problem.student_answer, "x=2")
        self.assertEqual(problem.solved_answer, "x=3")
        self.assertEqual(problem.analysis, "sign error")
        self.assertIs(problem.is_correct, False)

    def test_image_only_problem_inherits_box(self):
        problem = normalize_problem(
            {"no": "Q7", "bbox": [10, 10, 50, 40], "image": {"url": "https://img.example/crop.png"}},
            1,
        )
        self.assertEqual(problem.index, 7)
        self.assertIsNotNone(problem.image)
        self.assertEqual(problem.image.url, "https://img.example/crop.png")
        self.assertEqual(problem.image.bounding_box, problem.bounding_box)
        self.assertEqual(problem.image.index, 7)

    def test_index_and_box_from_image_hints(self):
        problem = normalize_problem(
            {"question": "q", "image": {"url": "u", "index": 3, "boundingBox": {"x": 1, "y": 2, "w": 3, "h": 4}}},
            1,
        )
        self.assertEqual(problem.index, 3)
        self.assertEqual(problem.bounding_box.width, 3.0)


class ResolveSummaryTest(unittest.TestCase):
    def test_derived_from_problems(self):
        problems = [
            normalize_problem({"index": 1, "question": "a", "isCorrect": True}, 1),
            normalize_problem({"index": 2, "question": "b", "isCorrect": False}, 2),
            normalize_problem({"index": 3, "question": "c"}, 3),
        ]
        self.assertEqual(resolve_summary(None, problems), AttemptSummary(total=3, correct=1, incorrect=1, unknown=1))

    def test_explicit_counts_win_but_total_covers_problems(self):
        problems = [normalize_problem({"index": i, "question": "q"}, i) for i in range(1, 5)]
        summary = resolve_summary({"total": 2, "correct": 1, "incorrect": "1"}, problems)
        self.assertEqual(summary.total, 4)
        self.assertEqual(summary.unknown, 2)

    def test_explicit_unknown_kept(self):
        summary = resolve_summary({"total": 10, "correct": 5, "incorrect": 2, "unknown": 1}, [])
        self.assertEqual(summary, AttemptSummary(total=10, correct=5, incorrect=2, unknown=1))


class NormalizeAttemptTest(unittest.TestCase):
    def test_total_never_below_problem_count(self):
        for declared in (None, 0, 1, "2", "abc", -5):
            raw = {
                "provider": "qwen",
                "summary": {"total": declared},
                "problems": [{"index": 1, "question": "a"}, {"index": 2, "question": "b"}, {"question": ""}],
            }
            attempt = normalize_attempt(raw, 1)
            self.assertGreaterEqual(attempt.summary.total, len(attempt.problems), repr(declared))
            self.assertEqual(len(attempt.problems), 2)

    def test_provider_is_casefolded_and_images_tagged(self):
        attempt = normalize_attempt(
            {"round": 3, "model": "KIMI", "questions": [{"question": "q", "imageUrl": "https://img.example/a.png"}]},
            1,
        )
        self.assertEqual(attempt.index, 3)
        self.assertEqual(attempt.provider, "kimi")
        self.assertEqual(attempt.problems[0].image.attempt, 3)

    def test_non_mapping_is_dropped(self):
        self.assertIsNone(normalize_attempt(["x"], 1))


class NormalizeBatchesTest(unittest.TestCase):
    def test_multi_image_sorted_by_declared_index(self):
        batches = normalize_batches(_multi_image_payload())
        self.assertEqual([b.index for b in batches], [1, 2])
        self.assertEqual([b.order for b in batches], [1, 0])
        first = batches[0]
        self.assertEqual(first.name, "page-1.jpg")
        self.assertEqual(first.image.url, "https://img.example/p1.jpg")
        self.assertEqual([a.provider for a in first.attempts], ["qwen", "kimi"])
        self.assertEqual(first.summary, AttemptSummary(total=2, correct=1, incorrect=1, unknown=0))

    def test_bare_problems_form_one_implicit_attempt(self):
        batches = normalize_batches(_multi_image_payload())
        second = batches[1]
        self.assertEqual(len(second.attempts), 1)
        implicit = second.attempts[0]
        self.assertEqual(implicit.index, 1)
        self.assertIsNone(implicit.label)
        self.assertIs(implicit.problems[0].is_correct, True)

    def test_single_image_payload(self):
        batches = normalize_batches(
            {
                "summary": {"total": 3, "correct": 2},
                "problems": [{"index": 1, "question": "a", "isCorrect": True}],
                "image": "https://img.example/one.jpg",
            }
        )
        self.assertEqual(len(batches), 1)
        self.assertEqual(batches[0].index, 1)
        self.assertEqual(batches[0].name, "Image 1")
        self.assertEqual(batches[0].summary.total, 3)
        self.assertEqual(batches[0].summary.unknown, 1)

    def test_ties_keep_arrival_order_and_junk_is_dropped(self):
        batches = normalize_batches({"results": [{"name": "a"}, "junk", {"name": "b", "index": 1}]})
        self.assertEqual([(b.index, b.name) for b in batches], [(1, "a"), (1, "b")])

    def test_unknown_payload_shape(self):
        self.assertEqual(normalize_batches("nope"), [])
        self.assertEqual(normalize_batches(None), [])


def test_check_result_envelope() -> None:
    result = normalize_check_result(_multi_image_payload())
    assert result.record_id == "rec-1"
    assert result.created_at == "2024-03-01T09:30:00"
    assert result.alias == "Week 3 homework"
    assert len(result.batches) == 2


def test_check_result_without_envelope() -> None:
    result = normalize_check_result({"problems": []})
    assert result.record_id is None
    assert result.alias is None
    assert len(result.batches) == 1
    assert result.batches[0].attempts[0].summary.total == 0
