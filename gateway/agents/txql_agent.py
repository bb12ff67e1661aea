"""TXQL Agent: question -> TXQL -> augmented SQL -> executor -> formatted answer.

Also owns the local shortcuts around TXQL: patient-name resolution, the
multi-patient pricing search, and the note query used when TXQL returns the
wrong note query, no SQL at all, or fails outright.
"""
import json
from typing import Any, Dict, List, Optional

from .base_agent import BaseAgent
from ..app.errors import BackendRejected, BackendUnavailable, GatewayError, InvalidInputError
from ..app.sql_executor import SqlExecutor
from ..app.txql_client import TxqlClient
from ..formatting.commlog import format_commlog_as_structured_data, is_commlog_rows
from ..formatting.formatter import ResponseFormatter, format_multi_patient_pricing
from ..nlu import rules
from ..nlu.entity_extractor import EntityExtractor
from ..schemas.io_models import AgentResult, ExtractedEntities, RouteDecision
from ..sql.augmenter import SQLAugmenter, ensure_limit
from ..sql.builders import (build_note_query, build_patient_lookup_query, build_pricing_search_query,
                            substitute_patient_number)
from ..sql.extraction import extract_sql_from_txql
from ..utils.logger import get_logger

logger = get_logger("agents.txql")


def clarification_text(name: str, matches: List[Dict[str, Any]]) -> str:
    text = "## 👥 Multiple Patients Found\n\n"
    text += f"I found **{len(matches)}** patients matching \"{name}\":\n\n"
    for index, patient in enumerate(matches, start=1):
        text += f"{index}. **{patient.get('FName')} {patient.get('LName')}** (PatNum: `{patient.get('PatNum')}`)\n"
    first = matches[0].get("PatNum")
    text += "\n💡 **Please rephrase your question with the specific PatNum**, for example:\n"
    text += f"- \"Show appointments for PatNum = {first}\"\n"
    text += f"- \"Get notes for PatNum {first}\"\n"
    return text


def not_found_text(name: str) -> str:
    return (f"## ❌ No Patient Found\n\nI couldn't find any patient matching \"{name}\".\n\n"
            "💡 **Suggestions:**\n- Check the spelling\n- Try using first and last name\n"
            "- Use PatNum if you know it: \"Show appointments for PatNum = 123\"")


def passthrough_text(payload: Any) -> str:
    """Whatever TXQL said, when it said no SQL."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        for field in ("response", "answer", "message"):
            if payload.get(field):
                return str(payload[field])
    return json.dumps(payload, indent=2, default=str)


class TxqlAgent(BaseAgent):
    name = "txql"

    def __init__(self, txql_client: TxqlClient = None, executor: SqlExecutor = None,
                 augmenter: SQLAugmenter = None, extractor: EntityExtractor = None,
                 formatter: ResponseFormatter = None):
        self.txql = txql_client or TxqlClient()
        self.executor = executor or SqlExecutor()
        self.augmenter = augmenter or SQLAugmenter()
        self.extractor = extractor or EntityExtractor()
        self.formatter = formatter or ResponseFormatter()

    def handle(self, decision: RouteDecision, session: Dict[str, Any],
               max_retries: Optional[int] = None) -> AgentResult:
        question = (decision.query or "").strip()
        if not question:
            return self._fail(InvalidInputError("Please provide a valid question."))
        if not session or not session.get("txqlSessionId"):
            return self._fail(InvalidInputError("Session ID is required.",
                                                "Session error occurred. Please refresh and try again."))

        # The prefixed key picks which practice database the executor queries
        custom_key = decision.license_key
        try:
            return self._run(question, session["txqlSessionId"], custom_key, max_retries)
        except (BackendUnavailable, BackendRejected) as e:
            return self._fail(e)

    def _run(self, question: str, txql_session_id: str, custom_key: Optional[str],
             max_retries: Optional[int]) -> AgentResult:
        entities = self.extractor.extract(question)

        resolved_by_lookup = False
        if entities.patient_name and not entities.patient_number:
            matches = self._lookup_patient(entities.patient_name, custom_key)
            if len(matches) == 1:
                entities.patient_number = int(matches[0]["PatNum"])
                resolved_by_lookup = True
                logger.info(f"[TXQL] '{entities.patient_name}' resolved to PatNum {entities.patient_number}")
            elif matches:
                return self._ok(clarification_text(entities.patient_name, matches),
                                extra={"needsClarification": True, "patientMatches": matches})
            else:
                return self._ok(not_found_text(entities.patient_name))

        if rules.is_multi_patient_pricing_search(question):
            sql = ensure_limit(build_pricing_search_query(question))
            logger.info("[TXQL] multi-patient pricing search, bypassing TXQL")
            result = self.executor.execute(sql, custom_key)
            return self._ok(format_multi_patient_pricing(result, sql), sql_query=sql, execution_results=result,
                            extra={"queryType": "multi_patient_pricing_search"})

        try:
            payload = self.txql.query(question, txql_session_id, max_retries)
        except (BackendUnavailable, BackendRejected):
            fallback = self._note_fallback(question, entities, custom_key)
            if fallback is not None:
                fallback.extra["reason"] = "TXQL unavailable - used direct SQL fallback"
                return fallback
            raise

        sql = extract_sql_from_txql(payload)
        if not sql:
            logger.info("[TXQL] no SQL in TXQL response")
            fallback = self._note_fallback(question, entities, custom_key)
            if fallback is not None:
                return fallback
            return self._ok(passthrough_text(payload), extra={"noSqlExtracted": True})

        final_sql = self._swap_note_query(question, sql)
        if resolved_by_lookup:
            final_sql = substitute_patient_number(final_sql, entities.patient_name, entities.patient_number)
        final_sql = self.augmenter.augment(final_sql, entities)

        validation = self.augmenter.validate(final_sql)
        if not validation["valid"]:
            error = validation["error"]
            logger.error(f"[TXQL] SQL validation failed: {error}")
            return self._fail(GatewayError(
                f"Invalid SQL generated by TXQL: {error}",
                f"The generated SQL query has syntax errors. {error}. "
                "Please rephrase your question or try a simpler query."),
                sql_query=final_sql)

        return self._execute_and_format(final_sql, question, custom_key, originalQuery=sql)

    def _lookup_patient(self, name: str, custom_key: Optional[str]) -> List[Dict[str, Any]]:
        logger.info(f"[TXQL] looking up PatNum for '{name}'")
        try:
            result = self.executor.execute(build_patient_lookup_query(name), custom_key)
        except BackendUnavailable as e:
            logger.error(f"[TXQL] patient lookup failed: {e}")
            return []
        if not result.success:
            return []
        return [row for row in result.rows or [] if isinstance(row, dict)]

    def _swap_note_query(self, question: str, sql: str) -> str:
        """Replace a wrong or single-table note query with the full note query."""
        if not (rules.is_note_summary_query(question) or rules.is_pricing_from_notes_query(question)):
            return sql
        lowered = sql.lower()
        wrong = "procnote" not in lowered and "patientnote" not in lowered
        incomplete = "procnote" in lowered and "union" not in lowered
        if wrong or incomplete:
            better = build_note_query(question)
            if better:
                logger.info(f"[TXQL] TXQL note query {'wrong' if wrong else 'incomplete'}, using full note query")
                return better
        return sql

    def _note_fallback(self, question: str, entities: ExtractedEntities,
                       custom_key: Optional[str]) -> Optional[AgentResult]:
        if not (rules.is_note_summary_query(question) or rules.is_pricing_from_notes_query(question)):
            return None
        sql = build_note_query(question)
        if not sql:
            return None
        logger.info("[TXQL] using locally built note query")
        sql = ensure_limit(self.augmenter.augment(sql, entities))
        return self._execute_and_format(sql, question, custom_key, usedFallback=True)

    def _execute_and_format(self, sql: str, question: str, custom_key: Optional[str], **extra) -> AgentResult:
        result = self.executor.execute(sql, custom_key)
        formatted = self.formatter.format(result, sql, question)
        if result.success and is_commlog_rows(result.rows or []):
            logger.info("[TXQL] communication-log rows, attaching structured data")
            extra["structuredData"] = format_commlog_as_structured_data(result.rows)
        return self._ok(formatted.text, chart=formatted.chart, sql_query=sql,
                        execution_results=result, extra=extra)
