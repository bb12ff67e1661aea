"""Communication-log (CommLog) records: labels, display rows, analysis, structured payload."""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

COMM_TYPE_LABELS = {
    0: "📝 General Note",
    224: "📅 Appointment",
    228: "💬 Text Message",
    386: "☎️ Phone Call",
    387: "📋 Form Completed",
    384: "⭐ Feedback",
    385: "📧 Email Campaign",
    388: "💼 Demo/Sales",
    399: "📊 Feedback Request",
    530: "🤖 AI Transcript",
    582: "🏥 Clinical Note",
    593: "💌 Patient Message",
}

MODE_LABELS = {0: "System", 1: "Email", 3: "Phone", 4: "Web", 5: "SMS", 6: "Other"}

PHONE_CALL_TYPE = 386
SUMMARY_MARKER = "PX Summary"
DURATION_RE = re.compile(r"duration of (\d+) minutes? (\d+) seconds?")
PHONE_RE = re.compile(r"to (\+?\d+)")


def get_comm_type_label(comm_type: Any) -> str:
    return COMM_TYPE_LABELS.get(comm_type, f"📄 Type {comm_type}")


def get_mode_label(mode: Any) -> str:
    return MODE_LABELS.get(mode, f"Mode {mode}")


def is_commlog_rows(rows: List[Any]) -> bool:
    """Rows look like commlog records (PatNum alone is not enough)."""
    return bool(rows) and isinstance(rows[0], dict) and (
        "CommlogNum" in rows[0] or "CommDateTime" in rows[0])


def _display_date(value: Any) -> str:
    if not value:
        return ""
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return parsed.strftime("%b %d, %Y, %I:%M %p")


def _direction(sent_or_received: Any, outbound: str, inbound: str, other: str) -> str:
    if sent_or_received == 1:
        return outbound
    if sent_or_received == 2:
        return inbound
    return other


def format_commlog_for_display(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    formatted = []
    for record in records:
        note = record.get("Note") or ""
        duration = DURATION_RE.search(note)
        phone = PHONE_RE.search(note)
        if SUMMARY_MARKER in note:
            start = note.index(SUMMARY_MARKER)
            message = note[start:start + 500]
        elif len(note) > 300:
            message = note[:300] + "..."
        else:
            message = note
        formatted.append({
            "id": record.get("CommlogNum"),
            "date": _display_date(record.get("CommDateTime")),
            "type": get_comm_type_label(record.get("CommType")),
            "direction": _direction(record.get("SentOrReceived"), "📤 Outbound", "📥 Inbound", "📋 Note"),
            "phone": phone.group(1) if phone else None,
            "duration": f"{duration.group(1)}m {duration.group(2)}s" if duration else None,
            "message": message,
            "mode": get_mode_label(record.get("Mode_")),
            "isCall": record.get("CommType") == PHONE_CALL_TYPE or "duration of" in note,
        })
    return formatted


def analyze_commlog(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_type: Dict[str, int] = {}
    by_mode: Dict[str, int] = {}
    sent_vs_received = {"sent": 0, "received": 0, "unknown": 0}
    call_summaries = []
    timeline = []

    for record in records:
        comm_type = record.get("CommType")
        comm_type = "Unknown" if comm_type is None else comm_type
        by_type[str(comm_type)] = by_type.get(str(comm_type), 0) + 1
        mode = record.get("Mode_")
        mode = "Unknown" if mode is None else mode
        by_mode[str(mode)] = by_mode.get(str(mode), 0) + 1

        sent = record.get("SentOrReceived")
        sent_vs_received[_direction(sent, "sent", "received", "unknown")] += 1

        note = record.get("Note") or ""
        if SUMMARY_MARKER in note:
            call_summaries.append({"date": record.get("CommDateTime"), "note": note,
                                   "commType": record.get("CommType")})
        timeline.append({"date": record.get("CommDateTime"), "type": record.get("CommType"),
                         "mode": record.get("Mode_"),
                         "direction": _direction(sent, "Sent", "Received", "Unknown"),
                         "preview": note[:100]})

    timeline.sort(key=lambda item: str(item["date"] or ""), reverse=True)
    return {
        "totalRecords": len(records),
        "byCommType": by_type,
        "byMode": by_mode,
        "sentVsReceived": sent_vs_received,
        "recentActivity": timeline[:10],
        "callSummaries": call_summaries,
        "timeline": timeline,
        "formattedRecords": format_commlog_for_display(records),
    }


def _summary_excerpt(note: str) -> str:
    if SUMMARY_MARKER not in note:
        return "No summary"
    start = note.index(SUMMARY_MARKER)
    return note[start:start + 200]


def extract_phone_call_details(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    calls = []
    for record in records:
        note = record.get("Note") or ""
        if not note or not ("phone call" in note or "duration of" in note
                            or record.get("CommType") == PHONE_CALL_TYPE):
            continue
        duration = DURATION_RE.search(note)
        phone = PHONE_RE.search(note)
        calls.append({
            "date": record.get("CommDateTime"),
            "phone": phone.group(1) if phone else "Unknown",
            "duration": f"{duration.group(1)}m {duration.group(2)}s" if duration else "Unknown",
            "direction": "Outbound" if record.get("SentOrReceived") == 1 else "Inbound",
            "summary": _summary_excerpt(note),
        })
    return calls


def format_commlog_as_structured_data(records: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Payload the frontend renders as a communication timeline."""
    if not records:
        return {"type": "structured_commlog",
                "data": {"records": [], "phoneCalls": [],
                         "analysis": {"totalRecords": 0, "byCommType": {},
                                      "sentVsReceived": {"sent": 0, "received": 0, "unknown": 0}}}}

    analysis = analyze_commlog(records)
    phone_calls = extract_phone_call_details(records)
    return {
        "type": "structured_commlog",
        "data": {
            "records": analysis["formattedRecords"][:100],
            "phoneCalls": phone_calls[:20],
            "analysis": {
                "totalRecords": len(records),
                "byCommType": analysis["byCommType"],
                "sentVsReceived": analysis["sentVsReceived"],
                "callCount": len(phone_calls),
                "recentActivity": [{"date": r["date"], "direction": r["direction"],
                                    "preview": (r["message"] or "")[:150]}
                                   for r in analysis["formattedRecords"][:10]],
            },
        },
    }
