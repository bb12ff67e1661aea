"""Keyword tables and plain substring/regex detectors.

Every table is data: extend a list here rather than touching control flow.
"""
import re
from typing import Dict, List, Tuple

GREETINGS = ["hi", "hello", "hey", "good morning", "good afternoon", "good evening",
             "how are you", "what's up", "whats up", "sup", "yo", "greetings",
             "hola", "howdy", "hi there", "hello there"]

GREETING_RESPONSES = [
    "Hello! 👋 I'm your AI assistant. I can help you with:\n\n"
    "🟢 **Call Analysis** - Ask about appointments, call records, sentiment, costs\n"
    "🔵 **Database Queries** - Ask about users, orders, tables, customers\n\n"
    "What would you like to know?",
    "Hi there! 👋 I'm here to help! I can assist with:\n\n"
    "🟢 Call data analysis\n🔵 Database queries\n\nJust ask me anything!",
    "Hey! 😊 I can help you analyze call data or query your database. What can I do for you today?",
]

AIVOICE_KEYWORDS = ["call", "calls", "voice", "phone", "patient", "appointment",
                    "booked", "cancelled", "rescheduled", "upsell", "sentiment",
                    "transcript", "audio", "follow-up", "callback", "cost of calls",
                    "call duration", "call summary", "call records", "inbound", "outbound",
                    "thumbs up", "thumbs down", "voicemail", "license key", "license keys",
                    "licensekey", "how many calls", "call count", "calls per license"]

TXQL_KEYWORDS = ["users", "customers", "orders", "products", "inventory",
                 "california", "texas", "state", "city", "address",
                 "age", "email", "show me", "count", "list", "find",
                 "table", "tables", "database", "records", "rows",
                 "filter", "sort", "group by", "join", "select", "transaction"]

CALL_DIRECTION_PATTERNS = ["inbound call", "inbound", "outbound call", "outbound",
                           "incoming call", "incoming", "outgoing call", "outgoing",
                           "call direction", "direction of", "type of call", "call type",
                           "how many calls came in", "how many calls did we receive",
                           "how many calls did we get", "how many calls did we make",
                           "calls we received", "calls we made",
                           "calls coming in", "calls going out"]

LICENSE_KEY_QUERY_PATTERNS = ["license key", "licensekey", "license keys",
                              "calls per license", "calls by license", "how many calls for",
                              "count by license", "group by license", "breakdown by license",
                              "associated with", "calls associated",
                              "for this license", "with this license"]

# intent -> (priority, keywords); entries containing '.*' are regexes
INTENT_KEYWORDS: Dict[str, Tuple[int, List[str]]] = {
    "count": (4, ["how many", "count", "total", "number of", "how much"]),
    # 'get' is left out: it collides with "how many calls did we get"
    "filter": (3, ["show", "which", "find", "list", "give me", "provide", "display", "where"]),
    "content": (2, ["transcript", "transcripts", "summary", "summaries", "text", "details",
                    "read", "what.*say", "what.*said"]),
    "analysis": (1, ["analyze", "review", "feedback", "performance", "insights",
                     "what went well", "what went wrong", "improve"]),
}

PRICING_ANALYSIS_KEYWORDS = ["pricing details", "analyze pricing", "payment details",
                             "analyze payment", "financial analysis", "billing analysis",
                             "payment analysis", "cost analysis", "analyze costs", "analyze charges"]

NOTE_SUMMARY_KEYWORDS = ["summarize notes", "summarize all notes", "summary of notes",
                         "analyze notes", "review notes", "overview of notes",
                         "what do the notes say", "tell me about the notes"]

# Ordered: the first category with a hit wins
TABLE_KEYWORDS: Dict[str, List[str]] = {
    "patient": ["patient", "patients"],
    "appointment": ["appointment", "appointments", "appt", "schedule"],
    "payment": ["payment", "payments", "transaction", "transactions"],
    "procedure": ["procedure", "procedures", "treatment", "treatments"],
    "note": ["note", "notes", "comment", "comments"],
}

US_STATES = ["Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado",
             "Connecticut", "Delaware", "Florida", "Georgia", "Hawaii", "Idaho",
             "Illinois", "Indiana", "Iowa", "Kansas", "Kentucky", "Louisiana", "Maine",
             "Maryland", "Massachusetts", "Michigan", "Minnesota", "Mississippi",
             "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey",
             "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
             "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina",
             "South Dakota", "Tennessee", "Texas", "Utah", "Vermont", "Virginia",
             "Washington", "West Virginia", "Wisconsin", "Wyoming"]

STATE_ABBREVIATIONS = ["CA", "NY", "TX", "FL", "IL"]

# Checked in this order against the SQL text
DATE_COLUMNS = ["AptDateTime", "ProcDate", "DateEntry", "CreatedDate", "ModifiedDate", "CommDateTime"]

PAYMENT_COLUMNS = ["ProcFee", "InsPayAmt", "WriteOff", "Adjustments", "Payments"]


def _matches(ql: str, keyword: str) -> bool:
    if ".*" in keyword:
        return re.search(keyword, ql) is not None
    return keyword in ql


def count_matches(query: str, vocab: List[str]) -> int:
    ql = (query or "").lower()
    return sum(1 for kw in vocab if _matches(ql, kw))


def contains_any(query: str, vocab: List[str]) -> bool:
    ql = (query or "").lower()
    return any(_matches(ql, kw) for kw in vocab)


def is_greeting(query: str) -> bool:
    ql = (query or "").lower().strip()
    return ql in GREETINGS or (0 < len(ql) <= 3 and re.fullmatch(r"[a-z]+", ql) is not None)


def is_call_direction_query(query: str) -> bool:
    return contains_any(query, CALL_DIRECTION_PATTERNS)


def is_license_key_query(query: str) -> bool:
    return contains_any(query, LICENSE_KEY_QUERY_PATTERNS)


def is_pricing_analysis_query(query: str) -> bool:
    return contains_any(query, PRICING_ANALYSIS_KEYWORDS)


def is_note_summary_query(query: str) -> bool:
    return contains_any(query, NOTE_SUMMARY_KEYWORDS)


def is_pricing_from_notes_query(query: str) -> bool:
    q = query or ""
    has_note = re.search(r"\bnotes?\b", q, re.I) is not None
    has_pricing = re.search(r"pricing|price|cost|fee|charge|payment|bill", q, re.I) is not None
    return has_note and has_pricing


def is_note_request(query: str) -> bool:
    return is_note_summary_query(query) or is_pricing_from_notes_query(query)


def is_multi_patient_pricing_search(query: str) -> bool:
    q = query or ""
    # A single explicit PatNum is a per-patient question
    if re.search(r"patnum\s*=?\s*\d+", q, re.I):
        return False
    has_search = re.search(r"find|search|extract|list|show|get", q, re.I) is not None
    has_multiple = re.search(r"patients|patnums?|customers|all", q, re.I) is not None
    has_pricing = re.search(r"pricing|price|cost|fee|charge|\$|payment", q, re.I) is not None
    has_notes = re.search(r"notes?|commlog|summary|px summary", q, re.I) is not None
    has_number = re.search(r"\d+\s+(patient|patnum)", q, re.I) is not None
    return ((has_search and has_multiple and has_pricing)
            or (has_search and has_number and has_pricing)
            or (has_search and has_pricing and has_notes))
