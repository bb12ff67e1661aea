#!/usr/bin/env python3
"""
HTTP-level tests for the gateway endpoints.
"""
import unittest
import uuid
from unittest import mock

from fastapi.testclient import TestClient

from gateway.app import main
from gateway.schemas.io_models import AgentResult, QueryResult


def user_id():
    return f"test-{uuid.uuid4().hex[:8]}"


class TestApi(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(main.app)

    def test_health(self):
        for path in ("/health", "/api/health"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 200)
            data = response.json()
            self.assertEqual(data["status"], "ok")
            self.assertIn("txql", data["systems"])

    def test_chat_requires_question(self):
        response = self.client.post("/chat", json={"userId": user_id()})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Question is required")

    def test_chat_greeting(self):
        response = self.client.post("/api/chat", json={"question": "hello", "userId": user_id()})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["system"], "greeting")
        self.assertTrue(data["sessionId"].startswith("session_"))

    def test_chat_txql_body(self):
        result = AgentResult(system="txql", answer="2 users", sql_query="SELECT * FROM users LIMIT 100",
                             execution_results=QueryResult(success=True, rows=[{"id": 1}, {"id": 2}]))
        with mock.patch.object(main.orchestrator.agents["txql"], "handle", return_value=result):
            response = self.client.post("/chat", json={"question": "list users", "userId": user_id()})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["sqlQuery"], "SELECT * FROM users LIMIT 100")
        self.assertEqual(data["executionResults"]["rowCount"], 2)

    def test_chat_unexpected_error(self):
        with mock.patch.object(main.orchestrator.agents["txql"], "handle", side_effect=RuntimeError("boom")):
            response = self.client.post("/chat", json={"question": "list users", "userId": user_id()})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["technicalError"], "boom")

    def test_session_lifecycle(self):
        uid = user_id()
        self.assertFalse(self.client.get("/txql/session", params={"userId": uid}).json()["success"])

        self.client.post("/chat", json={"question": "hi", "userId": uid})
        info = self.client.get("/api/txql/session", params={"userId": uid}).json()
        self.assertEqual(info["session"]["messageCount"], 1)

        cleared = self.client.request("DELETE", "/txql/session", json={"userId": uid}).json()
        self.assertTrue(cleared["success"])
        self.assertFalse(self.client.get("/txql/session", params={"userId": uid}).json()["success"])

    def test_commlog_requires_patnum(self):
        response = self.client.post("/commlog/analyze", json={})
        self.assertEqual(response.status_code, 400)

    def test_commlog_analyze(self):
        rows = [{"CommlogNum": 5, "CommDateTime": "2024-02-01T09:00:00", "CommType": 0, "Note": "left message"}]
        with mock.patch.object(main.orchestrator.executor, "execute",
                               return_value=QueryResult(success=True, rows=rows)):
            response = self.client.post("/api/commlog/analyze", json={"patNum": 12})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["analysis"]["totalRecords"], 1)
        self.assertEqual(data["structuredData"]["type"], "structured_commlog")

    def test_commlog_rejects_quoted_date(self):
        with mock.patch.object(main.orchestrator.executor, "execute") as execute:
            response = self.client.post("/commlog/analyze", json={
                "patNum": 7, "startDate": "2024-01-01' OR '1'='1", "endDate": "2024-01-02"})
        self.assertEqual(response.status_code, 400)
        execute.assert_not_called()

    def test_license_keys_requires_dates(self):
        response = self.client.post("/aivoice/license-keys", json={"startDate": "2024-01-01"})
        self.assertEqual(response.status_code, 400)

    def test_license_keys_report(self):
        fetched = {"rawData": [{"licenseKey": "A" * 30, "totalCost": 0.5, "callDuration": 1000}], "data": []}
        with mock.patch.object(main.orchestrator.aivoice_client, "fetch_call_details", return_value=fetched):
            response = self.client.post("/aivoice/license-keys",
                                        json={"startDate": "2024-01-01", "endDate": "2024-01-02"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["uniqueLicenseKeys"], 1)


if __name__ == '__main__':
    unittest.main()
