"""Entity extractor: independent regex matchers over the raw question.

Every matcher defaults to None/False on no match and never raises.
"""
import re
from typing import Optional, Tuple

from ..schemas.io_models import CallEntities, Comparison, ExtractedEntities
from ..utils.logger import get_logger
from ..utils.security import mask_secret
from .date_resolver import DateResolver, date_context
from .rules import STATE_ABBREVIATIONS, TABLE_KEYWORDS, US_STATES

logger = get_logger("nlu.entities")

NAME_PATTERNS = [
    re.compile(r"\b(?:for|patient|of)\s+([A-Z][a-z]+\s+[A-Z][a-z]+)\b"),
    re.compile(r"\b([A-Z][a-z]+\s+[A-Z][a-z]+)'s?\b"),
]
PATNUM_PATTERN = re.compile(r"\bpatnum\s*=?\s*(\d+)", re.I)
LICENSE_KEY_PATTERN = re.compile(r"[A-Za-z0-9+/=]{20,}")
LICENSE_KEY_PREFIX_PATTERN = re.compile(r"^In\s+([A-Za-z0-9+/=]{30,})\s+(.+)$", re.I | re.S)
STATE_PATTERN = re.compile(
    r"\b(" + "|".join(US_STATES + STATE_ABBREVIATIONS) + r")\b", re.I)
LIMIT_PATTERN = re.compile(r"\b(?:top|first|limit)\s+(\d+)")

GREATER_WORDS = ("longer", "more", "greater", "over", "above")
DURATION_UNIT = r"(min|mins|minute|minutes|sec|secs|second|seconds)"
DURATION_PATTERNS = [
    re.compile(r"\b(longer|shorter)\s+than\s+(\d+(?:\.\d+)?)\s*" + DURATION_UNIT + r"?\b"),
    re.compile(r"\b(more|greater|over|above|less|under|below|fewer)\s+than\s+(\d+(?:\.\d+)?)\s*"
               + DURATION_UNIT + r"\b"),
]
# Call durations are stored in milliseconds; a bare number means minutes
MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
COST_PATTERNS = [
    re.compile(r"\b(more|over|greater|above|less|under|below)\s+than\s+\$(\d+(?:\.\d+)?)"),
    re.compile(r"\bcost(?:s|ing)?\s+(more|over|greater|above|less|under|below)\s+than\s+\$?(\d+(?:\.\d+)?)"),
]


def extract_license_key(text: str) -> Optional[str]:
    """Longest run of 20+ base64-alphabet characters, or None."""
    runs = LICENSE_KEY_PATTERN.findall(text or "")
    if not runs:
        return None
    return max(runs, key=len)


def split_license_key_prefix(question: str) -> Tuple[Optional[str], str]:
    """``"In <key> <query>"`` -> ``(key, query)``; otherwise ``(None, question)``.

    Must run before any other stage: it changes the text every later stage sees.
    """
    match = LICENSE_KEY_PREFIX_PATTERN.match((question or "").strip())
    if not match:
        return None, question
    key, remainder = match.group(1).strip(), match.group(2).strip()
    logger.info(f"[ENTITIES] license key prefix {mask_secret(key)} -> '{remainder}'")
    return key, remainder


def _comparison(ql: str, patterns) -> Optional[Comparison]:
    for pattern in patterns:
        match = pattern.search(ql)
        if match:
            op = ">" if match.group(1) in GREATER_WORDS else "<"
            return Comparison(op=op, value=float(match.group(2)))
    return None


def _duration_comparison(ql: str) -> Optional[Comparison]:
    """Duration threshold in milliseconds, matching ``callDuration``."""
    for pattern in DURATION_PATTERNS:
        match = pattern.search(ql)
        if match:
            op = ">" if match.group(1) in GREATER_WORDS else "<"
            unit = match.group(3) or "min"
            scale = MS_PER_SECOND if unit.startswith("sec") else MS_PER_MINUTE
            return Comparison(op=op, value=float(match.group(2)) * scale)
    return None


class EntityExtractor:
    def __init__(self, date_resolver: DateResolver = None):
        self.date_resolver = date_resolver or DateResolver()

    def extract(self, text: str, today=None) -> ExtractedEntities:
        q = text or ""
        ql = q.lower()
        entities = ExtractedEntities()

        for pattern in NAME_PATTERNS:
            match = pattern.search(q)
            if match:
                entities.patient_name = match.group(1)
                break

        match = PATNUM_PATTERN.search(q)
        if match:
            entities.patient_number = int(match.group(1))

        entities.date_range = self.date_resolver.resolve(q, today=today)
        entities.date_context = date_context(q)
        entities.license_key = extract_license_key(q)

        match = STATE_PATTERN.search(q)
        if match:
            entities.state = match.group(1)

        if re.search(r"\bactive\b", ql):
            entities.is_active_only = True
        if re.search(r"\bdeleted\b", ql):
            entities.include_deleted = True

        match = LIMIT_PATTERN.search(ql)
        if match:
            entities.result_limit = int(match.group(1))
            entities.needs_auto_limit = False
        elif re.search(r"\ball\b", ql):
            entities.needs_auto_limit = False

        entities.duration_filter = _duration_comparison(ql)
        entities.cost_filter = _comparison(ql, COST_PATTERNS)

        for table, keywords in TABLE_KEYWORDS.items():
            if any(kw in ql for kw in keywords):
                entities.table_hint = table
                break

        found = {k: v for k, v in entities.model_dump(exclude_defaults=True).items() if k != "license_key"}
        logger.info(f"[ENTITIES] {found}")
        return entities

    def extract_call_entities(self, text: str) -> CallEntities:
        """Filters over AI-Voice call records."""
        q = text or ""
        ql = q.lower()
        entities = CallEntities()

        if re.search(r"\b(book|booked|scheduled|made.*appointment)\b", ql):
            entities.appointment_status = "booked"
        if re.search(r"\b(cancel|cancelled|canceled)\b", ql):
            entities.appointment_status = "cancelled"
        if re.search(r"\b(reschedule|rescheduled|changed|moved)\b", ql):
            entities.appointment_status = "rescheduled"

        if re.search(r"\b(unsuccessful|failed|didn'?t (work|succeed)|not successful|wasn'?t successful|no success)\b", ql):
            entities.call_success = False
        elif re.search(r"\b(successful|succeeded|worked|did work|was successful)\b", ql):
            entities.call_success = True

        if re.search(r"\b(positive|good|happy|satisfied|pleased)\b.*\b(sentiment|feedback|feeling)\b", ql):
            entities.sentiment = "positive"
        if re.search(r"\b(negative|bad|unhappy|unsatisfied|upset|angry)\b.*\b(sentiment|feedback|feeling)\b", ql):
            entities.sentiment = "negative"
        if re.search(r"\b(sentiment|feedback|feeling)\b.*\b(positive|good|happy)\b", ql):
            entities.sentiment = "positive"
        if re.search(r"\b(sentiment|feedback|feeling)\b.*\b(negative|bad|unhappy)\b", ql):
            entities.sentiment = "negative"

        if re.search(r"\b(thumbs? up|positive feedback|good rating|high score)\b", ql):
            entities.quality = "thumbs_up"
        if re.search(r"\b(thumbs? down|negative feedback|bad rating|low score)\b", ql):
            entities.quality = "thumbs_down"

        if re.search(r"\b(upsell|upgrade|additional service|extra service|more.*service)\b", ql):
            entities.has_upsell = True

        if re.search(r"\b(follow-up|follow up|callback|call back|need.*contact|requires?.*follow|need.*call)\b", ql):
            entities.needs_followup = True

        if re.search(r"\bspanish\b", ql):
            entities.language = "spanish"
        if re.search(r"\benglish\b", ql):
            entities.language = "english"

        entities.duration = _duration_comparison(ql)
        entities.cost = _comparison(ql, COST_PATTERNS)

        match = re.search(r"\b([A-Z][a-z]+\s+[A-Z][a-z]+)\b", q)
        if match:
            entities.name = match.group(1)

        logger.info(f"[ENTITIES] call filters {entities.model_dump(exclude_none=True)}")
        return entities
