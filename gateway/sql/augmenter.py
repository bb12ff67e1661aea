"""String-level SQL post-processing: LIMIT injection, filter splices, validation.

This is regex surgery on the statement text, not a parser. The splice
primitive acts on the first WHERE / ORDER BY / GROUP BY / HAVING / LIMIT
token it finds, so it is only correct for single-level statements.
Statements containing UNION get LIMIT handling only.
"""
import re
from typing import Any, Dict, Optional

from ..app.config import Config
from ..nlu.rules import DATE_COLUMNS
from ..schemas.io_models import ExtractedEntities
from ..utils.logger import get_logger

logger = get_logger("sql.augmenter")

LIMIT_RE = re.compile(r"\bLIMIT\b", re.I)
WHERE_RE = re.compile(r"\bWHERE\b", re.I)
TRAILING_CLAUSE_RE = re.compile(r"\s+(ORDER\s+BY|GROUP\s+BY|HAVING|LIMIT)\b", re.I)
UNION_RE = re.compile(r"\bUNION\b", re.I)
PATIENT_TABLE_RE = re.compile(r"\b(?:FROM|JOIN)\s+(?:`patient`|patient\b)", re.I)
OR_RE = re.compile(r"\bOR\b", re.I)
STRING_LITERAL_RE = re.compile(r"'(?:[^'\\]|\\.|'')*'")


def strip_terminator(sql: str) -> str:
    return re.sub(r"[\s;]+$", "", sql or "")


def has_limit(sql: str) -> bool:
    return LIMIT_RE.search(sql or "") is not None


def has_top_level_or(predicate: str) -> bool:
    """True when ``predicate`` has an OR outside parentheses and string literals."""
    masked = STRING_LITERAL_RE.sub(lambda m: "'" + "x" * (len(m.group(0)) - 2) + "'", predicate or "")
    for match in OR_RE.finditer(masked):
        before = masked[:match.start()]
        if before.count("(") == before.count(")"):
            return True
    return False


def splice_condition(sql: str, condition: str) -> str:
    """Add ``condition`` to the statement's filter.

    Existing WHERE -> ``WHERE <condition> AND ...``, with the old predicate
    parenthesized when it has a top-level OR; otherwise a new WHERE goes
    before the first trailing ORDER BY / GROUP BY / HAVING / LIMIT, or at the end.
    """
    sql = strip_terminator(sql)
    where = WHERE_RE.search(sql)
    if where:
        rest = sql[where.end():]
        trailing = TRAILING_CLAUSE_RE.search(rest)
        predicate, tail = (rest[:trailing.start()], rest[trailing.start():]) if trailing else (rest, "")
        if has_top_level_or(predicate):
            predicate = f" ({predicate.strip()})"
        return f"{sql[:where.start()]}WHERE {condition} AND{predicate}{tail}"
    trailing = TRAILING_CLAUSE_RE.search(sql)
    if trailing:
        return f"{sql[:trailing.start()]} WHERE {condition}{sql[trailing.start():]}"
    return f"{sql} WHERE {condition}"


def ensure_limit(sql: str, limit: int = None) -> str:
    """Safety net: append ``LIMIT <limit>`` when the statement has none."""
    sql = strip_terminator(sql)
    if has_limit(sql):
        return sql
    limit = limit or Config.SQL_SAFETY_LIMIT
    logger.info(f"[SQL] safety limit appended: LIMIT {limit}")
    return f"{sql} LIMIT {limit}"


def find_date_column(sql: str) -> Optional[str]:
    for column in DATE_COLUMNS:
        if re.search(rf"\b{column}\b", sql, re.I):
            return column
    return None


class SQLAugmenter:
    def __init__(self, default_limit: int = None):
        self.default_limit = default_limit or Config.SQL_DEFAULT_LIMIT

    def augment(self, sql: str, entities: ExtractedEntities) -> str:
        sql = strip_terminator(sql)
        if not sql:
            return sql

        if not has_limit(sql):
            if entities.result_limit:
                sql = f"{sql} LIMIT {entities.result_limit}"
                logger.info(f"[SQL] user limit appended: LIMIT {entities.result_limit}")
            elif entities.needs_auto_limit:
                sql = f"{sql} LIMIT {self.default_limit}"
                logger.info(f"[SQL] default limit appended: LIMIT {self.default_limit}")

        if UNION_RE.search(sql):
            logger.info("[SQL] UNION statement, filter splices skipped")
            return sql

        if entities.is_active_only and "ISACTIVE" not in sql.upper():
            sql = splice_condition(sql, "IsActive = 1")
            logger.info("[SQL] added IsActive = 1")

        if (not entities.include_deleted and PATIENT_TABLE_RE.search(sql)
                and "PATSTATUS" not in sql.upper()):
            sql = splice_condition(sql, "(PatStatus != 2)")
            logger.info("[SQL] excluded deleted patients")

        if entities.date_range:
            column = find_date_column(sql)
            if column and not re.search(rf"DATE\(\s*{column}\s*\)\s+BETWEEN", sql, re.I):
                start, end = entities.date_range.start_date, entities.date_range.end_date
                sql = splice_condition(sql, f"DATE({column}) BETWEEN '{start}' AND '{end}'")
                logger.info(f"[SQL] date filter on {column}: {start} -> {end}")

        if entities.state:
            condition = f"State = '{entities.state}'"
            if condition.upper() not in sql.upper():
                sql = splice_condition(sql, condition)
                logger.info(f"[SQL] state filter: {entities.state}")

        return sql

    def validate(self, sql: str) -> Dict[str, Any]:
        """Structural sanity checks. Never corrects, only reports."""
        text = (sql or "").strip()
        if not text:
            return {"valid": False, "error": "Empty SQL query"}
        upper = text.upper()
        if re.search(r"\bSELECT\b(?:(?!\bFROM\b).)*?\bWHERE\b", upper, re.S):
            return {"valid": False, "error": "Invalid SQL: WHERE clause without FROM clause"}
        if upper.count("/*") != upper.count("*/"):
            return {"valid": False, "error": "Invalid SQL: unbalanced comment delimiters"}
        if (re.search(r"\bSELECT\b", upper) and not re.search(r"\bFROM\b", upper)
                and not re.search(r"\bDUAL\b", upper)):
            return {"valid": False, "error": "Invalid SQL: SELECT without FROM clause"}
        return {"valid": True}
