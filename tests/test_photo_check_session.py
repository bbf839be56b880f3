from __future__ import annotations

import unittest

from services.api.photo_check_history_cache import PhotoCheckHistoryCache
from services.api.photo_check_history_client import PhotoCheckHistoryError
from services.api.photo_check_models import HistoryItem
from services.api.photo_check_provider_registry import ProviderRegistry
from services.api.photo_check_selection_service import PhotoCheckSaveError
from services.api.photo_check_session import PhotoCheckSession, PhotoCheckSessionDeps


class _FakeTransport:
    def __init__(self):
        self.items = []
        self.fail_with = None
        self.deleted = []

    def list_records(self):
        if self.fail_with:
            raise self.fail_with
        return list(self.items)

    def rename_alias(self, record_id, alias):
        if self.fail_with:
            raise self.fail_with
        return HistoryItem(id=record_id, alias=alias, created_at="2024-06-01T10:00:00")

    def delete_record(self, record_id):
        if self.fail_with:
            raise self.fail_with
        self.deleted.append(record_id)
        return True


def _payload(**extra) -> dict:
    payload = {
        "results": [
            {
                "index": 1,
                "name": "page-1.jpg",
                "attempts": [
                    {"attempt": 1, "provider": "qwen", "problems": [{"index": 1, "question": "a", "isCorrect": True}]},
                    {"attempt": 2, "provider": "kimi", "problems": [{"index": 1, "question": "a", "isCorrect": False}]},
                ],
            },
            {"index": 2, "name": "page-2.jpg", "problems": [{"index": 1, "question": "b", "isCorrect": True}]},
        ]
    }
    payload.update(extra)
    return payload


class PhotoCheckSessionTest(unittest.TestCase):
    def _session(self, create_record=None):
        transport = _FakeTransport()
        deps = PhotoCheckSessionDeps(
            history=PhotoCheckHistoryCache(transport),
            registry=ProviderRegistry(prefer_latest=frozenset({"kimi"})),
            create_record=create_record,
        )
        return PhotoCheckSession(deps), transport

    def test_complete_check_persists_and_selects_history(self):
        created = []

        def create_record(payload):
            created.append(payload)
            return {"record_id": "rec-1", "created_at": "2024-06-01T09:00:00"}

        session, _ = self._session(create_record)
        report = session.complete_check(_payload())
        self.assertEqual(len(created), 1)
        self.assertEqual(report.record_id, "rec-1")
        self.assertEqual(session.history.selected_id, "rec-1")
        item = session.history.get("rec-1")
        self.assertEqual(item.total_images, 2)
        self.assertEqual(item.problems, 2)
        self.assertEqual(sorted(session.selection.lookup), ["1:1", "2:1"])

    def test_cached_history_uses_server_assigned_alias(self):
        def create_record(payload):
            return {
                "record_id": "rec-1",
                "created_at": "2024-01-01T10:00:00",
                "item": HistoryItem(
                    id="rec-1", alias="Photo check 2024-01-01 10:00", created_at="2024-01-01T10:00:00", total_images=2
                ),
            }

        session, _ = self._session(create_record)
        report = session.complete_check(_payload())
        self.assertEqual(session.history.get("rec-1").alias, "Photo check 2024-01-01 10:00")
        self.assertEqual(report.alias, "Photo check 2024-01-01 10:00")
        self.assertEqual(report.tree["alias"], "Photo check 2024-01-01 10:00")

    def test_complete_check_with_record_id_skips_persist(self):
        session, _ = self._session(lambda payload: self.fail("should not persist"))
        report = session.complete_check(_payload(recordId="rec-x", createdAt="2024-06-01T00:00:00", alias="Known"))
        self.assertEqual(report.record_id, "rec-x")
        self.assertEqual(session.history.get("rec-x").alias, "Known")

    def test_persist_failure_still_renders(self):
        def create_record(payload):
            raise PhotoCheckHistoryError(503, "history service unreachable")

        session, _ = self._session(create_record)
        report = session.complete_check(_payload())
        self.assertIsNone(report.record_id)
        self.assertIn("history service unreachable", session.message)
        self.assertEqual(session.history.items, [])

    def test_new_report_resets_selection(self):
        session, _ = self._session()
        session.complete_check(_payload(recordId="r1"))
        self.assertTrue(session.toggle("1:1"))
        self.assertEqual(len(session.selection), 1)
        session.complete_check(_payload(recordId="r2"))
        self.assertEqual(len(session.selection), 0)

    def test_submit_check_failure_sets_message(self):
        session, _ = self._session()

        def run_check():
            raise RuntimeError("model timeout")

        self.assertIsNone(session.submit_check(run_check))
        self.assertFalse(session.submitting)
        self.assertIn("model timeout", session.message)
        self.assertIsNone(session.report)

    def test_submit_check_drops_reentrant_call(self):
        session, _ = self._session()
        inner = []

        def run_check():
            inner.append(session.submit_check(lambda: _payload()))
            return _payload(recordId="r1")

        report = session.submit_check(run_check)
        self.assertEqual(inner, [None])
        self.assertEqual(report.record_id, "r1")

    def test_deleting_displayed_record_clears_report(self):
        session, transport = self._session()
        session.complete_check(_payload(recordId="r1"))
        session.toggle("1:1")
        self.assertTrue(session.delete_history("r1"))
        self.assertEqual(transport.deleted, ["r1"])
        self.assertIsNone(session.report)
        self.assertEqual(len(session.selection), 0)
        self.assertEqual(dict(session.selection.lookup), {})

    def test_deleting_other_record_keeps_report(self):
        session, _ = self._session()
        session.history.upsert(HistoryItem(id="other", created_at="2024-01-01"))
        session.complete_check(_payload(recordId="r1"))
        self.assertTrue(session.delete_history("other"))
        self.assertEqual(session.report.record_id, "r1")

    def test_delete_failure_sets_message(self):
        session, transport = self._session()
        session.complete_check(_payload(recordId="r1"))
        transport.fail_with = PhotoCheckHistoryError(500, "boom")
        self.assertFalse(session.delete_history("r1"))
        self.assertEqual(session.message, "Could not delete record: boom")
        self.assertIsNotNone(session.report)

    def test_rename_updates_displayed_alias(self):
        session, _ = self._session()
        session.complete_check(_payload(recordId="r1"))
        updated = session.rename_history("r1", "Renamed")
        self.assertEqual(updated.alias, "Renamed")
        self.assertEqual(session.report.alias, "Renamed")
        self.assertEqual(session.report.tree["alias"], "Renamed")

    def test_load_history_failure(self):
        session, transport = self._session()
        transport.fail_with = PhotoCheckHistoryError(503, "down")
        self.assertIsNone(session.load_history())
        self.assertEqual(session.message, "Could not load history: down")

    def test_save_selected_uses_dissent_verdict(self):
        session, _ = self._session()
        session.complete_check(_payload(recordId="r1"))
        session.toggle("1:1")
        entries = []
        saved = session.save_selected(lambda payload: entries.append(payload) or payload, subject="math")
        self.assertEqual(len(saved), 1)
        self.assertEqual(entries[0]["source"], "photo-check")
        self.assertIn("AI verdict: needs review", entries[0]["remark"])
        self.assertEqual(session.message, "Saved 1 question(s).")

    def test_save_selected_failure_reports_progress(self):
        session, _ = self._session()
        session.complete_check(_payload(recordId="r1"))
        session.toggle("1:1")
        session.toggle("2:1")
        calls = []

        def create_entry(payload):
            calls.append(payload)
            if len(calls) == 2:
                raise RuntimeError("store offline")
            return payload

        with self.assertRaises(PhotoCheckSaveError):
            session.save_selected(create_entry)
        self.assertEqual(
            session.message,
            "Saved 1 question(s); question 1 of image 2 failed: store offline",
        )


class _RecordingHttpSession:
    def __init__(self):
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url))

        class _Resp:
            status_code = 200

            @staticmethod
            def json():
                return {
                    "recordId": "srv-1",
                    "createdAt": "2024-06-01T12:00:00",
                    "item": {"id": "srv-1", "alias": "Photo check 2024-06-01 12:00", "createdAt": "2024-06-01T12:00:00"},
                }

        return _Resp()


def test_session_factory_wires_history_client() -> None:
    from services.api.photo_check.deps import build_photo_check_session

    http = _RecordingHttpSession()
    session = build_photo_check_session(base_url="http://history.invalid", http_session=http)
    report = session.complete_check(_payload())
    assert report.record_id == "srv-1"
    assert http.calls == [("POST", "http://history.invalid/photo-check/records")]
    assert session.history.selected_id == "srv-1"
    assert session.history.get("srv-1").alias == "Photo check 2024-06-01 12:00"
