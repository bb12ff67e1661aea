"""Turns executor results into chat markdown, choosing the response shape."""
import json
import re
from typing import Any, Dict, List, Optional

from ..app.errors import GatewayError
from ..app.generate import LLMClient
from ..nlu import rules
from ..schemas.io_models import FormattedResponse, QueryResult
from ..utils.logger import get_logger
from .charts import detect_chart_data
from .payment_analyzer import analyze_pricing_details, extract_patient_number, format_pricing_analysis
from .values import format_clean_results, sql_details

logger = get_logger("formatting.formatter")

PATNUM_RE = re.compile(r"patnum\s*=?\s*(\d+)", re.I)
PRICE_MENTION_RE = re.compile(r"\$(\d+)(?:\s*per\s*month)?", re.I)


def has_note_columns(columns: List[str]) -> bool:
    return any(c in ("Note", "NoteType") or "note" in c.lower() for c in columns)


def has_payment_columns(columns: List[str]) -> bool:
    return any(c in rules.PAYMENT_COLUMNS for c in columns)


def format_execution_error(result: QueryResult, sql: str) -> str:
    output = "## ❌ Query Execution Failed\n\n"
    output += f"**Error:** {result.error or 'Unknown error'}\n\n"
    if result.status_code:
        output += f"**Status Code:** {result.status_code}\n\n"
    if result.response_data:
        output += f"**Server Response:** ```json\n{json.dumps(result.response_data, indent=2, default=str)}\n```\n\n"
    output += f"### SQL Query That Failed:\n```sql\n{sql}\n```\n\n"
    output += "💡 **Troubleshooting Tips:**\n"
    output += "- Verify the SQL syntax is correct for your database engine\n"
    output += "- Check that all table and column names exist\n"
    output += "- Ensure date formats match database requirements\n"
    output += "- Try simplifying the query to isolate the issue\n"
    return output


def format_empty_result(sql: str) -> str:
    return ("## 📊 Query Results\n\n"
            "**Status:** ✅ Query executed successfully\n\n"
            "**Records Found:** 0\n\n"
            "### Possible Reasons:\n"
            "- The PatNum doesn't exist in the database\n"
            "- The specified conditions returned no matches  \n"
            "- The table is empty\n"
            "- PatNum might need to be a number instead of a string\n\n"
            "💡 **Tip:** Try removing quotes from PatNum values "
            "(use `PatNum = 123` instead of `PatNum = '123'`)\n\n"
            f"### SQL Query:\n```sql\n{sql}\n```")


def format_unexpected_shape(rows: List[Any], sql: str) -> str:
    debug = json.dumps(rows, default=str)[:300]
    return ("## 📊 Query Results\n\n"
            "**Status:** ⚠️ Query returned unexpected data format\n\n"
            f"**Records:** {len(rows)}\n\n"
            f"**Debug Info:** {debug}\n\n"
            f"### SQL Query:\n```sql\n{sql}\n```")


def format_note_summary(rows: List[Dict[str, Any]], summary: str, patient_number: Any,
                        focus_on_pricing: bool, sql: str) -> str:
    label = "💰 AI-Powered Pricing Information from Notes" if focus_on_pricing else "📋 AI-Powered Note Summary"
    output = f"## {label}\n\n"
    output += f"**Patient Number:** {patient_number}\n"
    output += f"**Total Notes Analyzed:** {len(rows)}\n"
    if focus_on_pricing:
        output += "**Focus:** Pricing and Financial Information Only\n"
    output += "\n---\n\n"
    output += summary
    output += "\n\n---\n\n"
    output += f"<details>\n<summary>🔍 View All {len(rows)} Raw Notes</summary>\n\n"
    for index, note in enumerate(rows, start=1):
        output += f"### Note {index}\n"
        output += f"**Type:** {note.get('NoteType') or 'Unknown'}\n"
        output += f"**Date:** {note.get('DateTime') or 'No date'}\n"
        output += f"**Content:** {note.get('Note') or 'No content'}\n\n"
    output += "</details>\n\n"
    output += sql_details(sql, "View SQL Query Used")
    return output


def format_multi_patient_pricing(result: QueryResult, sql: str) -> str:
    """Cards for the patients whose commlog notes discuss pricing."""
    if not result.success:
        return f"## ❌ Search Failed\n\n**Error:** {result.error or 'Unknown error'}\n\n```sql\n{sql}\n```"

    rows = result.rows or []
    if not rows:
        return ("## 🔍 Multi-Patient Pricing Search\n\n**Status:** ✅ Query executed successfully\n\n"
                "**Results:** No patients found with pricing information in their notes.\n\n"
                + sql_details(sql, "View SQL Query Used"))

    output = "## 🔍 Patients with Pricing Information\n\n"
    output += f"**Found:** {len(rows)} patient{'' if len(rows) == 1 else 's'} with pricing discussions\n\n"
    output += "---\n\n"
    for index, row in enumerate(rows, start=1):
        pat_num = row.get("PatNum")
        output += f"### {index}. {row.get('PatientName') or 'Unknown Patient'}\n\n"
        output += f"**Patient Number:** `{pat_num}`\n"
        output += f"**Notes with Pricing:** {row.get('NotesWithPricing') or 0}\n"
        output += f"**Latest Discussion:** {row.get('LatestPricingDiscussion') or 'Unknown'}\n\n"

        note = row.get("LatestNote")
        if note:
            note = str(note)
            output += "**Latest Note Preview:**\n"
            output += f"> {note[:300]}{'...' if len(note) > 300 else ''}\n\n"
            mentions = [m.group(0) for m in PRICE_MENTION_RE.finditer(note)]
            if mentions:
                output += f"**Pricing Mentioned:** {', '.join(mentions[:3])}\n\n"

        output += "**Quick Actions:**\n"
        output += f"- To see full summary: `summarize only pricing from notes for patnum = {pat_num}`\n"
        output += f"- To see all notes: `summarize all notes for patnum = {pat_num}`\n\n"
        if index < len(rows):
            output += "---\n\n"

    output += "\n---\n\n"
    output += "💡 **Tip:** Click on a patient number to get detailed pricing analysis.\n\n"
    output += sql_details(sql, "View SQL Query Used")
    return output


class ResponseFormatter:
    """
    Picks the response shape for one executed query.

    Order: execution failure, empty rows, rows that are not objects, AI note
    summary, payment analysis, chart plus table, plain cards or table.
    Never raises for a failed or odd result; those become markdown.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client or LLMClient()

    def format(self, result: QueryResult, sql: str, question: str = "") -> FormattedResponse:
        if not result.success:
            logger.info(f"[FORMAT] execution failure: {result.error}")
            return FormattedResponse(text=format_execution_error(result, sql))

        rows = result.rows or []
        if not rows:
            logger.info("[FORMAT] query returned no rows")
            return FormattedResponse(text=format_empty_result(sql))

        if not isinstance(rows[0], dict):
            logger.warning(f"[FORMAT] rows are not objects ({type(rows[0]).__name__})")
            return FormattedResponse(text=format_unexpected_shape(rows, sql))

        columns = list(rows[0].keys())

        summary = self._note_summary(rows, columns, sql, question or "")
        if summary is not None:
            return FormattedResponse(text=summary)

        if rules.is_pricing_analysis_query(question or "") and has_payment_columns(columns):
            pat_num = extract_patient_number(rows)
            if pat_num:
                logger.info(f"[FORMAT] payment analysis for PatNum {pat_num}")
                text = format_pricing_analysis(analyze_pricing_details(rows, pat_num))
                return FormattedResponse(text=text + "\n\n" + sql_details(sql, "View SQL Query Used"))

        text = format_clean_results(rows, columns, sql)
        chart = detect_chart_data(rows, columns)
        if chart:
            logger.info(f"[FORMAT] chart detected: {chart['type']}")
        return FormattedResponse(text=text, chart=chart)

    def _note_summary(self, rows: List[Dict[str, Any]], columns: List[str], sql: str,
                      question: str) -> Optional[str]:
        focus_on_pricing = rules.is_pricing_from_notes_query(question)
        if not (rules.is_note_summary_query(question) or focus_on_pricing) or not has_note_columns(columns):
            return None

        # Note rows carry no PatNum column; the question names it
        match = PATNUM_RE.search(question)
        pat_num = int(match.group(1)) if match else extract_patient_number(rows)
        logger.info(f"[FORMAT] note summary for PatNum {pat_num} (pricing={focus_on_pricing})")
        try:
            summary = self.llm.summarize_notes(rows, pat_num, focus_on_pricing)
        except GatewayError as e:
            logger.warning(f"[FORMAT] AI summary failed, falling back to plain results: {e}")
            return None
        return format_note_summary(rows, summary, pat_num, focus_on_pricing, sql)
