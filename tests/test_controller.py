#!/usr/bin/env python3
import unittest
from unittest import mock

from gateway.app.controller import ChatOrchestrator, execution_payload, history_result
from gateway.app.errors import BackendUnavailable
from gateway.app.session import InMemorySessionStore
from gateway.nlu.route_selector import RouteSelector
from gateway.schemas.io_models import AgentResult, DateRange, QueryResult

KEY = "L" * 36


class TestPayloadHelpers(unittest.TestCase):
    def test_execution_payload(self):
        self.assertIsNone(execution_payload(None))
        self.assertEqual(execution_payload(QueryResult(success=True, rows=[{"a": 1}])),
                         {"success": True, "data": [{"a": 1}], "rowCount": 1})
        failed = execution_payload(QueryResult(success=False, error="bad", status_code=400, response_data="x"))
        self.assertEqual(failed["statusCode"], 400)
        self.assertEqual(failed["rowCount"], 0)

    def test_history_result(self):
        result = AgentResult(system="aivoice", answer="3 calls",
                             date_range=DateRange(start_date="2024-01-01", end_date="2024-01-02"), license_key=KEY)
        self.assertEqual(history_result(result), {
            "success": True, "answer": "3 calls",
            "dateRange": {"startDate": "2024-01-01", "endDate": "2024-01-02"}, "licenseKey": KEY})


class TestChatOrchestrator(unittest.TestCase):
    def setUp(self):
        self.store = InMemorySessionStore()
        self.txql_agent = mock.Mock()
        self.aivoice_agent = mock.Mock()
        self.greeting_agent = mock.Mock()
        self.aivoice_client = mock.Mock()
        self.executor = mock.Mock()
        self.orchestrator = ChatOrchestrator(
            store=self.store, router=RouteSelector(),
            agents={"greeting": self.greeting_agent, "txql": self.txql_agent, "aivoice": self.aivoice_agent},
            aivoice_client=self.aivoice_client, executor=self.executor)

    def test_question_required(self):
        self.assertEqual(self.orchestrator.handle("  ", "u1"), (400, {"success": False,
                                                                      "error": "Question is required"}))
        self.assertEqual(self.store.count(), 0)

    def test_txql_success_body_and_history(self):
        self.txql_agent.handle.return_value = AgentResult(
            system="txql", answer="table", sql_query="SELECT * FROM users LIMIT 100",
            execution_results=QueryResult(success=True, rows=[{"Name": "Ann"}]),
            extra={"originalQuery": "SELECT * FROM users"})

        status, body = self.orchestrator.handle("show me users in California", "u1")

        self.assertEqual(status, 200)
        self.assertEqual(body["answer"], "table")
        self.assertEqual(body["sqlQuery"], "SELECT * FROM users LIMIT 100")
        self.assertEqual(body["executionResults"]["rowCount"], 1)
        self.assertEqual(body["originalQuery"], "SELECT * FROM users")
        self.assertEqual(body["system"], "txql")
        session = self.store.get("u1")
        self.assertEqual(body["sessionId"], session["sessionId"])
        entry = session["conversationHistory"][0]
        self.assertEqual(entry["question"], "show me users in California")
        self.assertEqual(entry["system"], "txql")
        self.assertEqual(entry["result"]["sqlQuery"], "SELECT * FROM users LIMIT 100")

    def test_failure_is_not_recorded(self):
        self.aivoice_agent.handle.return_value = AgentResult(system="aivoice", success=False, error="down",
                                                             friendly_error="Service down")
        status, body = self.orchestrator.handle("How many inbound calls today?", "u1")
        self.assertEqual(status, 500)
        self.assertEqual(body["friendlyError"], "Service down")
        self.assertEqual(body["system"], "aivoice")
        self.assertEqual(self.store.get("u1")["conversationHistory"], [])

    def test_invalid_sql_is_returned(self):
        self.txql_agent.handle.return_value = AgentResult(system="txql", success=False, error="Invalid SQL",
                                                          friendly_error="syntax", sql_query="SELECT * WHERE 1")
        _, body = self.orchestrator.handle("list users", "u1")
        self.assertEqual(body["invalidSQL"], "SELECT * WHERE 1")

    def test_greeting(self):
        self.greeting_agent.handle.return_value = AgentResult(system="greeting", answer="Hello!")
        status, body = self.orchestrator.handle("hello", "u1")
        self.assertEqual((status, body["answer"], body["system"]), (200, "Hello!", "greeting"))
        self.assertNotIn("sqlQuery", body)

    def test_chart_and_extras_for_aivoice(self):
        self.aivoice_agent.handle.return_value = AgentResult(
            system="aivoice", answer="2 calls", chart={"type": "pie", "data": []},
            date_range=DateRange(start_date="2024-01-01", end_date="2024-01-01"),
            extra={"callHistory": [{"id": 1}]})
        _, body = self.orchestrator.handle("how many calls on 2024-01-01", "u1")
        self.assertEqual(body["chart"]["type"], "pie")
        self.assertEqual(body["callHistory"], [{"id": 1}])
        self.assertEqual(self.store.get("u1")["conversationHistory"][0]["result"]["dateRange"],
                         {"startDate": "2024-01-01", "endDate": "2024-01-01"})

    def test_license_key_prefix_reaches_agent(self):
        self.aivoice_agent.handle.return_value = AgentResult(system="aivoice", answer="ok")
        self.orchestrator.handle(f"In {KEY} how many calls today", "u1")
        routed = self.aivoice_agent.handle.call_args.args[0]
        self.assertEqual(routed.license_key, KEY)
        self.assertEqual(routed.query, "how many calls today")

    def test_handle_txql(self):
        self.txql_agent.handle.return_value = AgentResult(system="txql", answer="a", sql_query="SELECT 1 FROM x")
        status, body = self.orchestrator.handle_txql("how many calls today", "u1", max_retries=2)
        self.assertEqual(status, 200)
        self.assertEqual(body["sqlQuery"], "SELECT 1 FROM x")
        routed = self.txql_agent.handle.call_args.args[0]
        self.assertEqual(routed.backend.value, "txql")
        self.assertEqual(self.txql_agent.handle.call_args.kwargs["max_retries"], 2)

    def test_handle_txql_failure(self):
        self.txql_agent.handle.return_value = AgentResult(system="txql", success=False, error="x",
                                                          friendly_error="TXQL down")
        status, body = self.orchestrator.handle_txql("list users", "u1")
        self.assertEqual((status, body["error"]), (500, "TXQL down"))

    def test_license_key_report(self):
        raw = [{"licenseKey": KEY, "totalCost": 1.0, "callDuration": 2000},
               {"licenseKey": "other-key", "totalCost": 2.0, "callDuration": 4000}]
        self.aivoice_client.fetch_call_details.return_value = {"rawData": raw, "data": []}

        status, body = self.orchestrator.license_key_report("2024-01-01", "2024-01-02")
        self.assertEqual(status, 200)
        self.assertEqual((body["totalCalls"], body["uniqueLicenseKeys"]), (2, 2))

        status, body = self.orchestrator.license_key_report("2024-01-01", "2024-01-02", KEY)
        self.assertEqual((body["callCount"], body["totalCost"], body["avgDuration"]), (1, 1.0, 2))

    def test_license_key_report_validation_and_errors(self):
        self.assertEqual(self.orchestrator.license_key_report(None, "2024-01-02")[0], 400)
        self.aivoice_client.fetch_call_details.side_effect = BackendUnavailable("down", friendly_message="later")
        status, body = self.orchestrator.license_key_report("2024-01-01", "2024-01-02")
        self.assertEqual((status, body["friendlyError"]), (500, "later"))

    def test_license_key_report_no_calls(self):
        self.aivoice_client.fetch_call_details.return_value = {"rawData": [], "data": []}
        status, body = self.orchestrator.license_key_report("2024-01-01", "2024-01-02")
        self.assertEqual((status, body["data"]), (200, []))

    def test_analyze_commlog(self):
        self.executor.execute.return_value = QueryResult(success=True, rows=[
            {"CommlogNum": 1, "CommDateTime": "2024-01-01T10:00:00", "CommType": 386, "SentOrReceived": 2,
             "Note": "phone call with duration of 1 minute 5 seconds"}])
        status, body = self.orchestrator.analyze_commlog(77, "2024-01-01", "2024-01-31")
        self.assertEqual(status, 200)
        self.assertEqual(body["patNum"], 77)
        self.assertIn("PatNum = 77", body["sqlQuery"])
        self.assertEqual(body["analysis"]["sentVsReceived"]["received"], 1)
        self.assertEqual(body["structuredData"]["data"]["analysis"]["callCount"], 1)

    def test_analyze_commlog_errors(self):
        self.assertEqual(self.orchestrator.analyze_commlog(None)[0], 400)
        self.executor.execute.return_value = QueryResult(success=False, error="Query execution failed (400): x")
        status, body = self.orchestrator.analyze_commlog(77)
        self.assertEqual((status, body["error"]), (500, "Failed to fetch CommLog data"))

    def test_analyze_commlog_rejects_bad_dates(self):
        for start in ("2024-13-45", "yesterday", "2024-01-01' OR '1'='1"):
            status, body = self.orchestrator.analyze_commlog(7, start, "2024-01-02")
            self.assertEqual(status, 400, start)
            self.assertFalse(body["success"])
        status, _ = self.orchestrator.analyze_commlog(7, "2024-01-01", "2024-01-02'; DROP TABLE commlog; --")
        self.assertEqual(status, 400)
        self.executor.execute.assert_not_called()

    def test_analyze_commlog_normalizes_dates(self):
        self.executor.execute.return_value = QueryResult(success=True, rows=[])
        status, body = self.orchestrator.analyze_commlog(7, "1/5/2024", "01-31-2024")
        self.assertEqual(status, 200)
        self.assertIn("BETWEEN '2024-01-05' AND '2024-01-31'", body["sqlQuery"])

    def test_session_info_and_clear(self):
        self.assertFalse(self.orchestrator.session_info("nobody")["success"])
        self.greeting_agent.handle.return_value = AgentResult(system="greeting", answer="Hello!")
        self.orchestrator.handle("hi", "u9")
        info = self.orchestrator.session_info("u9")
        self.assertEqual(info["session"]["messageCount"], 1)
        self.assertEqual(self.orchestrator.clear_session("u9"), {"success": True, "message": "Session cleared"})
        self.assertFalse(self.orchestrator.clear_session("u9")["success"])


if __name__ == '__main__':
    unittest.main()
