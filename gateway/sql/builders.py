"""Locally synthesized SQL: note queries, pricing searches, patient lookups."""
import re
from typing import Optional

from ..app.errors import InvalidInputError
from ..nlu.date_resolver import validate_date_format
from ..utils.logger import get_logger

logger = get_logger("sql.builders")

PATNUM_RE = re.compile(r"patnum\s*=?\s*(\d+)", re.I)

NOTE_QUERY_TEMPLATE = """SELECT
    'Procedure Note' AS NoteType,
    pn.EntryDateTime AS DateTime,
    pn.Note
FROM procnote pn
INNER JOIN procedurelog pl ON pn.ProcNum = pl.ProcNum
WHERE pl.PatNum = {pat_num}

UNION ALL

SELECT
    'Patient Note' AS NoteType,
    NULL AS DateTime,
    Medical AS Note
FROM patientnote
WHERE PatNum = {pat_num}

UNION ALL

SELECT
    'Patient Note (Field)' AS NoteType,
    NULL AS DateTime,
    FamFinancial AS Note
FROM patientnote
WHERE PatNum = {pat_num}
AND FamFinancial IS NOT NULL
AND FamFinancial != ''

UNION ALL

SELECT
    'Patient Note (Field)' AS NoteType,
    NULL AS DateTime,
    ApptPhone AS Note
FROM patientnote
WHERE PatNum = {pat_num}
AND ApptPhone IS NOT NULL
AND ApptPhone != ''

UNION ALL

SELECT
    'Communication Log' AS NoteType,
    CommDateTime AS DateTime,
    Note AS Note
FROM commlog
WHERE PatNum = {pat_num}
AND Note IS NOT NULL
AND Note != ''

ORDER BY DateTime DESC"""

PRICING_SEARCH_TEMPLATE = """SELECT
    c.PatNum,
    CONCAT(p.LName, ', ', p.FName) AS PatientName,
    COUNT(DISTINCT c.CommlogNum) AS NotesWithPricing,
    MAX(c.CommDateTime) AS LatestPricingDiscussion,
    LEFT(MAX(c.Note), 500) AS LatestNote
FROM commlog c
INNER JOIN patient p ON c.PatNum = p.PatNum
WHERE c.Note IS NOT NULL
AND (
    c.Note LIKE '%$ % per month%'
    OR c.Note LIKE '%$% for%'
    OR c.Note LIKE '%pricing%'
    OR c.Note LIKE '%PX Summary%pricing%'
    OR c.Note LIKE '%fee%waived%'
    OR c.Note LIKE '%monthly package%'
    OR c.Note LIKE '%setup fee%'
    OR c.Note LIKE '%subscription%'
    OR c.Note LIKE '%cost%'
)
GROUP BY c.PatNum, p.LName, p.FName
ORDER BY LatestPricingDiscussion DESC
LIMIT {limit}"""


def build_note_query(question: str) -> Optional[str]:
    """Every note for one patient across procnote, patientnote and commlog.

    None unless the question names a PatNum.
    """
    match = PATNUM_RE.search(question or "")
    if not match:
        return None
    pat_num = int(match.group(1))
    logger.info(f"[SQL] built note query for PatNum {pat_num}")
    return NOTE_QUERY_TEMPLATE.format(pat_num=pat_num)


def build_pricing_search_query(question: str, default_limit: int = 10) -> str:
    match = re.search(r"(\d+)\s+(patient|patnum)", question or "", re.I)
    limit = int(match.group(1)) if match else default_limit
    logger.info(f"[SQL] built multi-patient pricing search, limit {limit}")
    return PRICING_SEARCH_TEMPLATE.format(limit=limit)


def build_patient_lookup_query(patient_name: str) -> str:
    parts = (patient_name or "").strip().replace("'", "''").split()
    first = parts[0] if parts else ""
    last = parts[-1] if len(parts) > 1 else ""
    if last:
        where = f"LName LIKE '%{last}%' AND FName LIKE '%{first}%'"
    else:
        where = f"(LName LIKE '%{first}%' OR FName LIKE '%{first}%')"
    return f"SELECT PatNum, LName, FName FROM patient WHERE {where} AND PatStatus != 2 LIMIT 10"


def substitute_patient_number(sql: str, patient_name: str, pat_num: int) -> str:
    """Swap name comparisons in generated SQL for the resolved PatNum."""
    name = re.escape(patient_name)
    logger.info(f"[SQL] substituting '{patient_name}' with PatNum = {pat_num}")
    modified = re.sub(rf"LIKE\s+['\"]%?{name}%?['\"]", f"= {pat_num}", sql, flags=re.I)
    modified = re.sub(rf"=\s+['\"]{name}['\"]", f"= {pat_num}", modified, flags=re.I)
    modified = re.sub(rf"(FName|LName|PatientName)\s*=\s*['\"]{name}['\"]", f"PatNum = {pat_num}",
                      modified, flags=re.I)
    modified = re.sub(rf"['\"]{name}['\"]", str(pat_num), modified, flags=re.I)
    return modified


def build_commlog_query(pat_num: int, start_date: str = None, end_date: str = None) -> str:
    sql = f"SELECT * FROM commlog WHERE PatNum = {int(pat_num)}"
    if start_date and end_date:
        # Only ISO dates are spliced into the string
        for value in (start_date, end_date):
            if not validate_date_format(value):
                raise InvalidInputError(f"Invalid date for commlog query: {value!r}",
                                        "Invalid date format. Use YYYY-MM-DD.")
        sql += f" AND CommDateTime BETWEEN '{start_date}' AND '{end_date}'"
    return sql + " ORDER BY CommDateTime DESC LIMIT 1000"
