"""AI-Voice Agent: call analytics over the AI-Voice call-detail API.

Questions are answered without the LLM whenever possible: call direction,
license-key breakdowns and any question the intent classifier recognizes.
Only unclassifiable questions go to the LLM, which may call back into the
call-detail API through a single tool.
"""
import json
from typing import Any, Dict, List, Optional, Tuple

from .base_agent import BaseAgent
from ..app.aivoice_client import AIVoiceClient
from ..app.errors import GatewayError
from ..app.generate import LLMClient
from ..formatting.calls import (build_call_direction_summary, build_comprehensive_call_analysis,
                                build_conversation_context, build_license_key_summary,
                                count_calls_by_direction, filter_calls_by_entities, format_call_count,
                                format_call_details, format_license_key_analysis, get_calls_for_license_key,
                                group_calls_by_license_key, normalize_call)
from ..formatting.charts import generate_call_chart
from ..nlu import rules
from ..nlu.date_resolver import DateResolver, today_in_timezone
from ..nlu.entity_extractor import EntityExtractor, extract_license_key
from ..nlu.intent_model import IntentClassifier
from ..schemas.io_models import AgentResult, DateRange, Intent, RouteDecision
from ..utils.logger import get_logger
from ..utils.security import mask_secret

logger = get_logger("agents.aivoice")

TOOL_NAME = "aivoice_get_call_details"
HISTORY_TURNS = 3
CONTEXT_TURNS = 5

SYSTEM_PROMPT = (
    "You are an AI assistant for PatientXpress AI voice call analysis. Provide clear, concise answers. "
    "IMPORTANT: When users ask follow-up questions without specifying dates, you MUST use the date range "
    "from the most recent query in the conversation. Look for date context provided in the user message."
)

NO_LLM_ERROR = "AI Voice system is not configured (missing OpenAI API key)"
NO_LLM_FRIENDLY = (
    "AI Voice system is currently unavailable for general questions. However, I can still help you with "
    "specific queries about call counts, inbound/outbound calls, or license key breakdowns without OpenAI."
    "\n\nExamples:\n"
    "- \"How many inbound calls did we get today?\"\n"
    "- \"Show me calls by license key\"\n"
    "- \"How many calls yesterday?\""
)


def _history_date_range(entry: Dict[str, Any]) -> Optional[DateRange]:
    date_range = (entry.get("result") or {}).get("dateRange")
    if date_range and date_range.get("startDate") and date_range.get("endDate"):
        return DateRange(start_date=date_range["startDate"], end_date=date_range["endDate"])
    return None


def resolve_from_context(question: str, session: Dict[str, Any],
                         date_resolver: DateResolver = None) -> Tuple[Optional[DateRange], Optional[str]]:
    """Dates and license key from the question, else from recent AI-Voice turns."""
    date_resolver = date_resolver or DateResolver()
    dates = date_resolver.resolve(question)
    license_key = extract_license_key(question)
    if dates and license_key:
        return dates, license_key

    history = (session or {}).get("conversationHistory") or []
    for entry in reversed(history[-CONTEXT_TURNS:]):
        if entry.get("system") != "aivoice":
            continue
        if dates is None:
            dates = _history_date_range(entry)
            if dates:
                logger.info(f"[AIVOICE] using dates from history: {dates.start_date} to {dates.end_date}")
        if license_key is None and (entry.get("result") or {}).get("licenseKey"):
            license_key = entry["result"]["licenseKey"]
            logger.info(f"[AIVOICE] using license key from history: {mask_secret(license_key)}")
        if dates and license_key:
            break
    return dates, license_key


def call_tool_definition(context_dates: Optional[DateRange]) -> Dict[str, Any]:
    if context_dates:
        start, end = context_dates.start_date, context_dates.end_date
        description = (f"Fetches AI Voice call records between startDate and endDate. If dates are not provided, "
                       f"use startDate=\"{start}\" and endDate=\"{end}\" from the current context.")
        start_description = f"Start date (YYYY-MM-DD). Default from context: {start}"
        end_description = f"End date (YYYY-MM-DD). Default from context: {end}"
    else:
        description = "Fetches AI Voice call records between startDate and endDate"
        start_description = "Start date (YYYY-MM-DD)"
        end_description = "End date (YYYY-MM-DD)"
    return {
        "type": "function",
        "function": {
            "name": TOOL_NAME,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": {
                    "startDate": {"type": "string", "description": start_description},
                    "endDate": {"type": "string", "description": end_description},
                    "includeTranscript": {"type": "boolean", "default": False},
                    "includeAudio": {"type": "boolean", "default": False},
                },
                "required": [] if context_dates else ["startDate", "endDate"],
            },
        },
    }


class AIVoiceAgent(BaseAgent):
    name = "aivoice"

    def __init__(self, client: AIVoiceClient = None, llm_client: LLMClient = None,
                 classifier: IntentClassifier = None, extractor: EntityExtractor = None):
        self.client = client or AIVoiceClient()
        self.llm = llm_client or LLMClient()
        self.classifier = classifier or IntentClassifier()
        self.extractor = extractor or EntityExtractor()

    def handle(self, decision: RouteDecision, session: Dict[str, Any]) -> AgentResult:
        question = decision.query
        dates, context_key = resolve_from_context(question, session, self.extractor.date_resolver)
        # A prefixed key filters calls fetched under the default key
        license_key = decision.license_key or context_key

        try:
            if rules.is_call_direction_query(question):
                logger.info("[AIVOICE] call direction query, bypassing LLM")
                return self._direction(dates, decision.license_key)
            if rules.is_license_key_query(question):
                logger.info("[AIVOICE] license key query, bypassing LLM")
                return self._license_keys(dates, license_key)

            intent = self.classifier.classify(question)
            if intent is not None:
                return self._fast_path(question, intent, dates, license_key)
            return self._llm(question, session, dates)
        except GatewayError as e:
            return self._fail(e)

    def _dates_or_today(self, dates: Optional[DateRange]) -> DateRange:
        if dates:
            return dates
        today = today_in_timezone().isoformat()
        return DateRange(start_date=today, end_date=today)

    def _fetch(self, dates: DateRange, include_transcript: bool = False,
               include_audio: bool = False) -> Dict[str, Any]:
        return self.client.fetch_call_details(dates.start_date, dates.end_date, include_transcript, include_audio)

    def _no_calls(self, dates: DateRange, license_key: Optional[str] = None) -> AgentResult:
        return self._ok(f"No calls found for the date range {dates.start_date} to {dates.end_date}.",
                        date_range=dates, license_key=license_key, extra={"callHistory": []})

    def _direction(self, dates: Optional[DateRange], license_key: Optional[str]) -> AgentResult:
        dates = self._dates_or_today(dates)
        fetched = self._fetch(dates)
        raw_calls = fetched.get("rawData") or []
        history = fetched.get("data") or []
        if raw_calls and license_key:
            matched = get_calls_for_license_key(raw_calls, license_key)
            raw_calls = matched.get("calls") or []
            history = [normalize_call(call) for call in raw_calls]
        if not raw_calls:
            return self._no_calls(dates, license_key)

        stats = count_calls_by_direction(raw_calls)
        summary = build_call_direction_summary(stats, dates.start_date, dates.end_date)
        return self._ok(summary, date_range=dates, license_key=license_key,
                        extra={"callHistory": history, "directionStats": stats})

    def _license_keys(self, dates: Optional[DateRange], license_key: Optional[str]) -> AgentResult:
        dates = self._dates_or_today(dates)
        fetched = self._fetch(dates)
        raw_calls = fetched.get("rawData") or []
        if not raw_calls:
            return self._no_calls(dates, license_key)

        if license_key:
            logger.info(f"[AIVOICE] looking for license key {mask_secret(license_key)}")
            result = get_calls_for_license_key(raw_calls, license_key)
            answer = format_license_key_analysis(result, license_key, dates.start_date, dates.end_date)
            return self._ok(answer, date_range=dates, license_key=license_key,
                            extra={"callHistory": result.get("calls") or [], "licenseKeyStats": result})

        logger.info("[AIVOICE] license key breakdown")
        return self._ok(build_license_key_summary(raw_calls), date_range=dates,
                        extra={"callHistory": fetched.get("data") or [],
                               "licenseKeyBreakdown": group_calls_by_license_key(raw_calls)})

    def _fast_path(self, question: str, intent: Intent, dates: Optional[DateRange],
                   license_key: Optional[str]) -> AgentResult:
        dates = self._dates_or_today(dates)
        logger.info(f"[AIVOICE] intent fast path: {intent.value} for {dates.start_date} to {dates.end_date}")
        include_transcript = intent == Intent.content and "transcript" in question.lower()
        fetched = self._fetch(dates, include_transcript=include_transcript)
        calls: List[Dict[str, Any]] = fetched.get("rawData") or []
        if calls and license_key:
            calls = get_calls_for_license_key(calls, license_key).get("calls") or []

        calls = filter_calls_by_entities(calls, self.extractor.extract_call_entities(question))
        if not calls:
            return self._no_calls(dates, license_key)

        if intent == Intent.count:
            answer = format_call_count(calls, dates.start_date, dates.end_date)
        elif intent == Intent.analysis:
            answer = build_comprehensive_call_analysis(calls, question)
        else:
            answer = format_call_details(calls, question)

        history = [normalize_call(call, include_transcript=include_transcript) for call in calls]
        return self._ok(answer, chart=generate_call_chart(question, calls), date_range=dates,
                        license_key=license_key, extra={"callHistory": history, "intent": intent.value})

    def _llm(self, question: str, session: Dict[str, Any], resolved: Optional[DateRange]) -> AgentResult:
        if not self.llm.configured:
            return AgentResult(system=self.name, success=False, error=NO_LLM_ERROR, friendly_error=NO_LLM_FRIENDLY)

        messages: List[Dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        recent = ((session or {}).get("conversationHistory") or [])[-HISTORY_TURNS:]
        for entry in recent:
            if entry.get("system") == "aivoice" and entry.get("question"):
                messages.append({"role": "user", "content": entry["question"]})
                answer = (entry.get("result") or {}).get("answer")
                if answer:
                    messages.append({"role": "assistant", "content": answer})

        context_dates = self.extractor.date_resolver.resolve(question)
        if context_dates is None:
            for entry in reversed(recent):
                if entry.get("system") == "aivoice":
                    context_dates = _history_date_range(entry)
                    if context_dates:
                        break
        context_dates = context_dates or resolved

        prompt = question
        if context_dates:
            prompt += (f"\n\n[CONTEXT: Use date range {context_dates.start_date} "
                       f"to {context_dates.end_date} for this query]")
        messages.append({"role": "user", "content": prompt})

        tools = [call_tool_definition(context_dates)]
        reply = self.llm.complete(messages, tools)
        tool_calls = reply.get("tool_calls")
        if not tool_calls:
            return self._ok(reply.get("content") or "", extra={"callHistory": []})

        tool_call = tool_calls[0]
        try:
            args = json.loads(tool_call.get("function", {}).get("arguments") or "{}")
        except ValueError:
            args = {}
        fallback = self._dates_or_today(context_dates)
        dates = DateRange(start_date=args.get("startDate") or fallback.start_date,
                          end_date=args.get("endDate") or fallback.end_date)
        logger.info(f"[AIVOICE] LLM tool call for {dates.start_date} to {dates.end_date}")

        fetched = self._fetch(dates, bool(args.get("includeTranscript")), bool(args.get("includeAudio")))
        calls = fetched.get("rawData") or []
        license_key = extract_license_key(question)
        key_info = None
        if license_key:
            matched = get_calls_for_license_key(calls, license_key)
            calls = matched.get("calls") or [] if matched.get("found") else []
            if matched.get("found"):
                key_info = {"licenseKey": license_key, "count": matched["count"],
                            "totalCost": matched["totalCost"], "avgDuration": matched["avgDuration"]}

        tool_payload = {
            "success": True,
            "summary": build_conversation_context([normalize_call(call) for call in calls]),
            "count": len(calls),
            "message": (f"Fetched {len(calls)} calls for license key {license_key[:20]}..."
                        if license_key else f"Fetched {len(calls)} calls."),
            "licenseKeyFilter": ({"applied": True, "licenseKey": license_key[:40] + "...",
                                  "matchedCalls": len(calls)} if license_key else {"applied": False}),
        }
        messages.append(reply)
        messages.append({"role": "tool", "tool_call_id": tool_call.get("id"), "name": TOOL_NAME,
                         "content": json.dumps(tool_payload)})

        final = self.llm.complete(messages, tools)
        return self._ok(final.get("content") or "", date_range=dates, license_key=license_key,
                        extra={"callHistory": calls, "licenseKeyInfo": key_info})
