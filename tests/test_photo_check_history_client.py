import unittest

import requests

from services.api.photo_check_history_client import (
    PhotoCheckHistoryClient,
    PhotoCheckHistoryError,
    normalize_history_item,
)


class _FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class _FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestPhotoCheckHistoryClient(unittest.TestCase):
    def _client(self, *responses):
        session = _FakeSession(responses)
        return PhotoCheckHistoryClient("http://history.invalid/", timeout_sec=5, session=session), session

    def test_create_record(self):
        client, session = self._client(_FakeResponse(200, {"recordId": "r1", "createdAt": "2024-01-02T00:00:00"}))
        created = client.create_record({"results": []})
        self.assertEqual(created["record_id"], "r1")
        self.assertEqual(created["created_at"], "2024-01-02T00:00:00")
        method, url, kwargs = session.calls[0]
        self.assertEqual(method, "POST")
        self.assertEqual(url, "http://history.invalid/photo-check/records")
        self.assertEqual(kwargs["timeout"], 5.0)
        self.assertEqual(kwargs["json"], {"results": []})

    def test_create_record_without_id_is_bad_gateway(self):
        client, _ = self._client(_FakeResponse(200, {"ok": True}))
        with self.assertRaises(PhotoCheckHistoryError) as ctx:
            client.create_record({})
        self.assertEqual(ctx.exception.status_code, 502)

    def test_list_records_accepts_wrapped_and_bare_lists(self):
        client, _ = self._client(
            _FakeResponse(200, {"items": [{"id": "a", "alias": "A"}, {"alias": "no id"}]}),
            _FakeResponse(200, [{"recordId": "b", "totalImages": "2"}]),
        )
        self.assertEqual([item.id for item in client.list_records()], ["a"])
        items = client.list_records()
        self.assertEqual(items[0].id, "b")
        self.assertEqual(items[0].total_images, 2)

    def test_rename_alias_quotes_id(self):
        client, session = self._client(_FakeResponse(200, {"ok": True, "item": {"id": "a/b", "alias": "New"}}))
        item = client.rename_alias("a/b", "New")
        self.assertEqual(item.alias, "New")
        method, url, kwargs = session.calls[0]
        self.assertEqual(method, "PATCH")
        self.assertEqual(url, "http://history.invalid/photo-check/records/a%2Fb")
        self.assertEqual(kwargs["json"], {"alias": "New"})

    def test_delete_no_content(self):
        client, session = self._client(_FakeResponse(204))
        self.assertTrue(client.delete_record("a"))
        self.assertEqual(session.calls[0][0], "DELETE")

    def test_http_error_carries_server_detail(self):
        client, _ = self._client(_FakeResponse(404, {"detail": "record not found"}))
        with self.assertRaises(PhotoCheckHistoryError) as ctx:
            client.delete_record("missing")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.detail, "record not found")

    def test_http_error_without_body(self):
        client, _ = self._client(_FakeResponse(500))
        with self.assertRaises(PhotoCheckHistoryError) as ctx:
            client.list_records()
        self.assertEqual(ctx.exception.detail, "history request failed with HTTP 500")

    def test_transport_failure_is_service_unavailable(self):
        client, _ = self._client(requests.ConnectionError("refused"))
        with self.assertRaises(PhotoCheckHistoryError) as ctx:
            client.list_records()
        self.assertEqual(ctx.exception.status_code, 503)


class TestNormalizeHistoryItem(unittest.TestCase):
    def test_aliases_and_counts(self):
        item = normalize_history_item(
            {
                "record_id": " r9 ",
                "name": "Quiz",
                "created_at": "2024-02-02T10:00:00",
                "problemCount": 4.4,
                "overall": {"total": "4", "correct": 3, "incorrect": None},
            }
        )
        self.assertEqual(item.id, "r9")
        self.assertEqual(item.alias, "Quiz")
        self.assertEqual(item.problems, 4)
        self.assertEqual(item.overall.total, 4)
        self.assertEqual(item.overall.incorrect, 0)

    def test_rejects_items_without_id(self):
        self.assertIsNone(normalize_history_item({"alias": "x"}))
        self.assertIsNone(normalize_history_item("x"))
