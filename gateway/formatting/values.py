"""Markdown-safe cell values and the card/table renderers."""
import re
from typing import Any, Dict, List

from ..app.config import Config

EMPTY = "—"
ISO_DATETIME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})T(.*)$")


def _format_number(value) -> str:
    if isinstance(value, int):
        return f"{value:,}"
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return text or "0"


def clean_value(value: Any, max_chars: int = None) -> str:
    """One table cell: no line breaks, no pipes, capped length."""
    if value is None or value == "":
        return EMPTY

    if isinstance(value, str):
        match = ISO_DATETIME_RE.match(value)
        if match:
            if value.startswith("0001-01-01"):
                return EMPTY
            day, time = match.groups()
            if time and not time.startswith("00:00:00"):
                return f"{day} {time[:8]}"
            return day

    if isinstance(value, bool):
        text = str(value).lower()
    elif isinstance(value, (int, float)):
        return _format_number(value)
    else:
        text = str(value)

    text = re.sub(r"[\r\n\t]+", " ", text)
    text = re.sub(r"\s+", " ", text)
    text = text.replace("|", "❘").strip()

    max_chars = Config.DISPLAY_MAX_CHARS if max_chars is None else max_chars
    if max_chars > 0 and len(text) > max_chars:
        text = text[:max_chars - 3] + "..."
    return text


def format_as_cards(rows: List[Dict[str, Any]], columns: List[str]) -> str:
    output = ""
    for index, row in enumerate(rows):
        output += f"### 📋 Record {index + 1}\n\n"
        for column in columns:
            value = clean_value(row.get(column))
            if value and value != EMPTY:
                output += f"**{column}:** {value}\n\n"
        if index < len(rows) - 1:
            output += "---\n\n"
    return output


def format_as_table(rows: List[Dict[str, Any]], columns: List[str]) -> str:
    max_rows = Config.DISPLAY_MAX_ROWS
    columns = columns[:Config.DISPLAY_MAX_COLS]
    table = "| " + " | ".join(f"**{c}**" for c in columns) + " |\n"
    table += "|" + "|".join("---" for _ in columns) + "|\n"
    for row in rows[:max_rows]:
        table += "| " + " | ".join(clean_value(row.get(c)) for c in columns) + " |\n"
    if len(rows) > max_rows:
        table += f"\n> Showing first {max_rows} of {len(rows):,} total records\n"
    return table


def sql_details(sql: str, label: str = "View SQL Query") -> str:
    return f"<details>\n<summary>🔍 {label}</summary>\n\n```sql\n{sql}\n```\n</details>\n"


def format_clean_results(rows: List[Dict[str, Any]], columns: List[str], sql: str) -> str:
    """Header, then cards (few rows) or a table, then the SQL used."""
    count = len(rows)
    output = "## 📊 Query Results\n\n"
    output += f"✅ Found **{count:,}** record{'' if count == 1 else 's'}\n\n"
    output += "---\n\n"
    if count <= Config.DISPLAY_CARD_THRESHOLD:
        output += format_as_cards(rows, columns)
    else:
        output += format_as_table(rows, columns)
    output += "\n---\n\n"
    output += sql_details(sql)
    return output
