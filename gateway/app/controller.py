"""Controller / Orchestrator: one request/response cycle per question.

Routes the question, hands it to the matching agent, records the turn in the
user's session and shapes the JSON body the HTTP layer returns.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .aivoice_client import AIVoiceClient
from .errors import GatewayError
from .session import SessionStore, create_session_store
from .sql_executor import SqlExecutor
from ..agents.aivoice_agent import AIVoiceAgent
from ..agents.base_agent import BaseAgent
from ..agents.greeting_agent import GreetingAgent
from ..agents.txql_agent import TxqlAgent
from ..formatting.calls import build_license_key_summary, get_calls_for_license_key, group_calls_by_license_key
from ..formatting.commlog import analyze_commlog, format_commlog_as_structured_data
from ..nlu.date_resolver import normalize_date
from ..nlu.route_selector import RouteSelector
from ..schemas.io_models import AgentResult, Backend, QueryResult, RouteDecision, RouteKind
from ..sql.builders import build_commlog_query
from ..utils.logger import get_logger
from ..utils.security import mask_pii

logger = get_logger("controller")


def execution_payload(result: Optional[QueryResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    payload = {"success": result.success, "data": result.rows, "rowCount": len(result.rows or [])}
    if not result.success:
        payload.update({"error": result.error, "statusCode": result.status_code,
                        "responseData": result.response_data})
    return payload


def history_result(result: AgentResult) -> Dict[str, Any]:
    """The slice of a result later turns read back for context."""
    entry: Dict[str, Any] = {"success": result.success, "answer": result.answer}
    if result.date_range:
        entry["dateRange"] = {"startDate": result.date_range.start_date, "endDate": result.date_range.end_date}
    if result.license_key:
        entry["licenseKey"] = result.license_key
    if result.sql_query:
        entry["sqlQuery"] = result.sql_query
    return entry


class ChatOrchestrator:
    def __init__(self, store: SessionStore = None, router: RouteSelector = None,
                 agents: Dict[str, BaseAgent] = None, aivoice_client: AIVoiceClient = None,
                 executor: SqlExecutor = None):
        self.store = store or create_session_store()
        self.router = router or RouteSelector()
        self.aivoice_client = aivoice_client or AIVoiceClient()
        self.executor = executor or SqlExecutor()
        self.agents = agents or {
            "greeting": GreetingAgent(),
            Backend.txql.value: TxqlAgent(executor=self.executor),
            Backend.aivoice.value: AIVoiceAgent(client=self.aivoice_client),
        }

    def _record(self, user_id: str, question: str, result: AgentResult) -> None:
        self.store.append_history(user_id, {"timestamp": datetime.now().isoformat(), "question": question,
                                            "system": result.system, "result": history_result(result)})

    @staticmethod
    def _body(result: AgentResult, session_id: str) -> Dict[str, Any]:
        if not result.success:
            body = {"success": False, "error": result.error, "friendlyError": result.friendly_error,
                    "system": result.system, "sessionId": session_id}
            if result.sql_query:
                body["invalidSQL"] = result.sql_query
            return body

        body: Dict[str, Any] = {"success": True, "answer": result.answer}
        if result.system == Backend.txql.value and result.sql_query:
            body["sqlQuery"] = result.sql_query
            body["executionResults"] = execution_payload(result.execution_results)
        if result.chart:
            body["chart"] = result.chart
        body.update(result.extra)
        body["system"] = result.system
        body["sessionId"] = session_id
        return body

    def handle(self, question: Optional[str], user_id: str = "anonymous") -> Tuple[int, Dict[str, Any]]:
        """Answer one chat question. Returns (HTTP status, JSON body)."""
        if not question or not question.strip():
            return 400, {"success": False, "error": "Question is required"}

        user_id = user_id or "anonymous"
        logger.info(f"[ROUTER] new question from {user_id}: {mask_pii(question)}")
        session = self.store.get_or_create(user_id)
        decision = self.router.route(question, session)

        if decision.kind == RouteKind.greeting:
            agent = self.agents["greeting"]
        else:
            agent = self.agents[decision.backend.value]
        result = agent.handle(decision, session)

        if result.success:
            self._record(user_id, question, result)
            return 200, self._body(result, session["sessionId"])
        return 500, self._body(result, session["sessionId"])

    def handle_txql(self, question: Optional[str], user_id: str = "anonymous",
                    max_retries: Optional[int] = None) -> Tuple[int, Dict[str, Any]]:
        """TXQL only, skipping routing."""
        if not question or not question.strip():
            return 400, {"success": False, "error": "Question is required"}
        session = self.store.get_or_create(user_id or "anonymous")
        decision = self.router.route(question, session)
        decision = RouteDecision(kind=RouteKind.backend, backend=Backend.txql,
                                 query=decision.query, license_key=decision.license_key)
        result = self.agents[Backend.txql.value].handle(decision, session, max_retries=max_retries)
        if not result.success:
            return 500, {"success": False, "error": result.friendly_error, "sessionId": session["sessionId"]}
        self._record(user_id, question, result)
        return 200, {"success": True, "answer": result.answer, "sqlQuery": result.sql_query,
                     "executionResults": execution_payload(result.execution_results),
                     "sessionId": session["sessionId"]}

    def license_key_report(self, start_date: Optional[str], end_date: Optional[str],
                           license_key: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
        if not start_date or not end_date:
            return 400, {"success": False, "error": "startDate and endDate are required"}
        try:
            fetched = self.aivoice_client.fetch_call_details(start_date, end_date)
        except GatewayError as e:
            logger.error(f"[AIVOICE] license key report failed: {e}")
            return 500, {"success": False, "error": str(e), "friendlyError": e.friendly_message}

        raw_calls = fetched.get("rawData") or []
        if not raw_calls:
            return 200, {"success": True, "message": "No calls found for the specified date range", "data": []}

        if license_key:
            result = get_calls_for_license_key(raw_calls, license_key)
            return 200, {"success": result["found"], "message": result["message"],
                         "licenseKey": license_key, "callCount": result["count"],
                         "totalCost": result.get("totalCost", 0), "avgDuration": result.get("avgDuration", 0),
                         "calls": result.get("calls") or []}

        grouped = group_calls_by_license_key(raw_calls)
        return 200, {"success": True, "summary": build_license_key_summary(raw_calls),
                     "breakdown": grouped, "totalCalls": len(raw_calls), "uniqueLicenseKeys": len(grouped)}

    def analyze_commlog(self, pat_num: Optional[int], start_date: Optional[str] = None,
                        end_date: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
        if not pat_num:
            return 400, {"success": False, "error": "patNum is required"}
        dates = []
        for value in (start_date, end_date):
            normalized = normalize_date(value) if value else None
            if value and normalized is None:
                logger.warning(f"[SQL] rejected commlog date {value!r}")
                return 400, {"success": False,
                             "error": "Invalid date format. Use YYYY-MM-DD, M/D/YYYY or M-D-YYYY."}
            dates.append(normalized)
        sql = build_commlog_query(pat_num, *dates)
        logger.info(f"[SQL] commlog analysis for PatNum {pat_num}")
        try:
            result = self.executor.execute(sql)
        except GatewayError as e:
            return 500, {"success": False, "error": "Failed to fetch CommLog data", "details": e.friendly_message}
        if not result.success:
            return 500, {"success": False, "error": "Failed to fetch CommLog data", "details": result.error}

        records = [row for row in result.rows or [] if isinstance(row, dict)]
        return 200, {"success": True, "patNum": pat_num, "sqlQuery": sql,
                     "analysis": analyze_commlog(records),
                     "structuredData": format_commlog_as_structured_data(records)}

    def session_info(self, user_id: str) -> Dict[str, Any]:
        session = self.store.get(user_id or "anonymous")
        if not session:
            return {"success": False, "message": "No active session"}
        history = session.get("conversationHistory") or []
        return {"success": True, "session": {
            "sessionId": session["sessionId"],
            "createdAt": session["createdAt"],
            "lastActive": session["lastActive"],
            "messageCount": len(history),
            "recentMessages": history[-10:],
        }}

    def clear_session(self, user_id: str) -> Dict[str, Any]:
        if self.store.delete(user_id or "anonymous"):
            return {"success": True, "message": "Session cleared"}
        return {"success": False, "message": "No session found"}
