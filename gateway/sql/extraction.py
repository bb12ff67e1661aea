"""Recovers a SQL string from the loosely typed TXQL response payload."""
import json
import re
from typing import Any, Optional

from ..utils.logger import get_logger

logger = get_logger("sql.extraction")

SQL_FIELDS = ["sql", "query", "sqlQuery", "sql_query", "statement"]
FENCED_SQL_RE = re.compile(r"```sql\s*([\s\S]*?)\s*```", re.I)
SQL_START_RE = re.compile(r"^\s*(SELECT|WITH|INSERT|UPDATE|DELETE|CREATE|ALTER|DROP)\b", re.I)
QUOTED_QUERY_RE = re.compile(r'"query"\s*:\s*"((?:[^"\\]|\\.)*)"')


def _fenced(text: Any) -> Optional[str]:
    if isinstance(text, str):
        match = FENCED_SQL_RE.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return (value.replace('\\"', '"').replace("\\n", "\n")
                .replace("\\t", "\t").replace("\\\\", "\\"))


def extract_sql_from_txql(payload: Any) -> Optional[str]:
    """Search the likely places for SQL; None when nothing usable is found."""
    if isinstance(payload, str):
        fenced = _fenced(payload)
        if fenced:
            logger.info("[SQL] found SQL in fenced block")
            return fenced
        match = QUOTED_QUERY_RE.search(payload)
        if match and match.group(1).strip():
            logger.info('[SQL] found SQL in "query" substring')
            return _unescape(match.group(1)).strip()
        if SQL_START_RE.match(payload):
            logger.info("[SQL] response text is SQL")
            return payload.strip()
        return None

    if isinstance(payload, dict):
        for field in SQL_FIELDS:
            value = payload.get(field)
            if isinstance(value, str) and value.strip():
                logger.info(f"[SQL] found SQL in field '{field}'")
                return value.strip()

        data = payload.get("data")
        if isinstance(data, dict):
            for field in SQL_FIELDS:
                value = data.get(field)
                if isinstance(value, str) and value.strip():
                    logger.info(f"[SQL] found SQL in field 'data.{field}'")
                    return value.strip()

        match = QUOTED_QUERY_RE.search(json.dumps(payload))
        if match and match.group(1).strip():
            logger.info("[SQL] found SQL in nested 'query' value")
            return _unescape(match.group(1)).strip()

        for field in ("response", "answer"):
            fenced = _fenced(payload.get(field))
            if fenced:
                logger.info(f"[SQL] found SQL in '{field}' fenced block")
                return fenced

    logger.info("[SQL] could not extract SQL from TXQL response")
    return None
