"""Chart-data objects for the frontend: SQL result charts and call-record charts."""
import re
from typing import Any, Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger("formatting.charts")

DATE_VALUE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
MAX_CHART_ROWS = 100

GREEN, RED, GREY, AMBER, BLUE, PURPLE, LIGHT_GREY = (
    "#22c55e", "#ef4444", "#6b7280", "#f59e0b", "#3b82f6", "#8b5cf6", "#9ca3af")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if value is None or value == "":
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def detect_chart_data(rows: List[Dict[str, Any]], columns: List[str]) -> Optional[Dict[str, Any]]:
    """Classify a result set as a line, bar or pie chart, or None.

    line: a date-like column plus a numeric column.
    bar: a categorical column with 2-20 distinct values plus a numeric column.
    pie: at most 10 rows with a numeric column, labelled by the first column.
    """
    if not rows or len(rows) > MAX_CHART_ROWS or not columns:
        return None

    date_columns = []
    for column in columns:
        sample = rows[0].get(column)
        lowered = column.lower()
        if sample and (DATE_VALUE_RE.match(str(sample)) or "date" in lowered or "time" in lowered):
            date_columns.append(column)

    numeric_columns = [c for c in columns if all(_is_number(row.get(c)) for row in rows)]
    logger.info(f"[FORMAT] chart scan: dates={date_columns} numeric={numeric_columns}")

    if date_columns and numeric_columns:
        date_col, value_col = date_columns[0], numeric_columns[0]
        return {
            "type": "line",
            "data": [{"date": str(row.get(date_col)), "value": _to_float(row.get(value_col)),
                      "label": str(row.get(date_col))} for row in rows],
            "config": {"xKey": "date", "yKey": "value", "title": f"{value_col} over time",
                       "xLabel": date_col, "yLabel": value_col},
        }

    if numeric_columns:
        value_col = numeric_columns[0]
        category_columns = []
        for column in columns:
            if column in date_columns or column in numeric_columns:
                continue
            distinct = {str(row.get(column)) for row in rows}
            if 1 < len(distinct) <= 20:
                category_columns.append(column)
        if category_columns:
            cat_col = category_columns[0]
            return {
                "type": "bar",
                "data": [{"category": str(row.get(cat_col)), "value": _to_float(row.get(value_col))}
                         for row in rows],
                "config": {"xKey": "category", "yKey": "value", "title": f"{value_col} by {cat_col}",
                           "xLabel": cat_col, "yLabel": value_col},
            }

        if len(rows) <= 10:
            label_col = columns[0]
            return {
                "type": "pie",
                "data": [{"name": str(row.get(label_col)), "value": _to_float(row.get(value_col))}
                         for row in rows],
                "config": {"title": f"Distribution of {label_col}"},
            }

    return None


def _pie(title: str, data: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "pie", "title": title, "data": data}


def generate_call_chart(question: str, calls: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Chart over raw AI-Voice call records, chosen by what the question mentions."""
    if not calls:
        return None
    ql = (question or "").lower()

    if "sentiment" in ql:
        counts: Dict[str, int] = {}
        for call in calls:
            name = str(call.get("sentiments") or call.get("user_sentiment") or "Unknown")
            counts[name] = counts.get(name, 0) + 1
        return _pie("Sentiment Distribution", [
            {"name": name, "value": value,
             "color": GREEN if "positive" in name.lower() else RED if "negative" in name.lower() else GREY}
            for name, value in counts.items()])

    if "direction" in ql or "inbound" in ql or "outbound" in ql:
        counts = {"inbound": 0, "outbound": 0, "unknown": 0}
        for call in calls:
            counts[call_direction(call)] += 1
        colors = {"inbound": BLUE, "outbound": PURPLE, "unknown": LIGHT_GREY}
        data = [{"name": name.capitalize(), "value": value, "color": colors[name]}
                for name, value in counts.items() if value > 0]
        if data:
            return _pie("Call Direction Breakdown", data)

    if "license key" in ql or "by license" in ql:
        counts = {}
        for call in calls:
            key = str(call.get("licenseKey") or "Unknown")
            short = key[:20] + "..." if len(key) > 20 else key
            counts[short] = counts.get(short, 0) + 1
        data = sorted(({"name": k, "value": v} for k, v in counts.items()),
                      key=lambda item: item["value"], reverse=True)[:10]
        return {"type": "bar", "title": "Calls by License Key (Top 10)", "data": data}

    if "appointment" in ql and "how many" not in ql:
        counts = {"booked": 0, "rescheduled": 0, "cancelled": 0, "none": 0}
        for call in calls:
            if is_booked(call):
                counts["booked"] += 1
            elif call.get("isAppointmentRescheduled") == 1:
                counts["rescheduled"] += 1
            elif call.get("isAppointmentCancelled") == 1:
                counts["cancelled"] += 1
            else:
                counts["none"] += 1
        colors = {"booked": GREEN, "rescheduled": AMBER, "cancelled": RED, "none": GREY}
        data = [{"name": name.capitalize(), "value": value, "color": colors[name]}
                for name, value in counts.items() if value > 0]
        if len(data) > 1:
            return _pie("Appointment Outcomes", data)

    if "success" in ql and "upsell" not in ql:
        successful = sum(1 for c in calls if str(c.get("call_successful")) in ("1", "true"))
        unsuccessful = sum(1 for c in calls if str(c.get("call_successful")) in ("0", "false"))
        if successful or unsuccessful:
            data = [{"name": "Successful", "value": successful, "color": GREEN},
                    {"name": "Unsuccessful", "value": unsuccessful, "color": RED}]
            return _pie("Call Success Rate", [d for d in data if d["value"] > 0])

    if "thumbs" in ql or "quality" in ql or "feedback" in ql:
        up = sum(1 for c in calls if str(c.get("thumbs_up")) == "1")
        down = sum(1 for c in calls if str(c.get("thumbs_up")) != "1" and str(c.get("thumbs_down")) == "1")
        data = [{"name": "Thumbs Up", "value": up, "color": GREEN},
                {"name": "Thumbs Down", "value": down, "color": RED},
                {"name": "No Feedback", "value": len(calls) - up - down, "color": GREY}]
        data = [d for d in data if d["value"] > 0]
        if len(data) > 1:
            return _pie("Quality Feedback", data)

    if "language" in ql:
        counts = {}
        for call in calls:
            language = str(call.get("languageUsed") or "Unknown")
            counts[language] = counts.get(language, 0) + 1
        return _pie("Language Distribution", sorted(
            ({"name": k, "value": v} for k, v in counts.items()), key=lambda item: item["value"], reverse=True))

    return None


def call_direction(call: Dict[str, Any]) -> str:
    direction = str(call.get("callDirection") or call.get("call_type") or "").lower()
    if direction in ("inbound", "incoming"):
        return "inbound"
    if direction in ("outbound", "outgoing"):
        return "outbound"
    return "unknown"


def is_booked(call: Dict[str, Any]) -> bool:
    return call.get("isAppointmentBooked") == 1 or str(call.get("appt_booked")) == "1"
