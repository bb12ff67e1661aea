"""AI-Voice call records: normalization, grouping, filtering and markdown rendering.

Raw records come straight from the call-analytics API and use several
alternate field names; ``normalize_call`` maps them onto one shape.
Grouping, filtering and rendering work on the raw records.
"""
from typing import Any, Dict, List, Optional, Sequence, Union

from ..schemas.io_models import CallEntities
from ..utils.logger import get_logger
from ..utils.security import mask_secret
from .charts import call_direction, is_booked

logger = get_logger("formatting.calls")

AI_VOICE_FIELD_MAP: Dict[str, List[str]] = {
    "sentiment": ["sentiments", "user_sentiment"],
    "quality": ["thumbs_up", "thumbs_down", "thumbsUpStatus"],
    "successful": ["call_successful", "confirmation_success", "reschedule_success", "successful_upsell"],
    "appointment": ["isAppointmentBooked", "appt_booked", "appointmentBookedDateTime", "appointmentNumber"],
    "reschedule": ["isAppointmentRescheduled", "reschedule_success", "appointmentRescheduledDateTime",
                   "is_reschedule_opportunity"],
    "cancel": ["isAppointmentCancelled", "appointmentCanceledDateTime"],
    "upsell": ["upsellOpportunity", "upsellOpportunityDetails", "upsell_opportunity", "successful_upsell"],
    "opportunity": ["appt_opportunity", "missed_appt_opportunity", "upsell_opportunity"],
    "duration": ["callDuration", "duration_ms"],
    "cost": ["totalCost", "sttCost", "llmCost", "ttsCost", "vapiCost"],
    "direction": ["callDirection", "call_type"],
    "patient": ["patientNumber", "GuestName", "GuestEmail"],
    "name": ["GuestName"],
    "transcript": ["transcript"],
    "summary": ["callSummary"],
    "topics": ["topics", "intents"],
    "review": ["ai_reviewed", "what_went_well", "what_did_not_go_well", "area_to_improve"],
    "callback": ["is_call_back", "call_back_due_date", "CallBackContext"],
    "language": ["languageUsed"],
    "device": ["deviceType"],
    "confirmation": ["is_confirmation", "confirmation_success"],
    "reminder": ["is_reminder"],
}


def safe_get(record: Dict[str, Any], paths: Union[str, Sequence[str]], default: Any = None) -> Any:
    """First non-null value among dotted ``paths``."""
    for path in [paths] if isinstance(paths, str) else paths:
        value: Any = record
        for key in path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break
        if value is not None:
            return value
    return default


def _float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _int(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (TypeError, ValueError):
        return 0


def normalize_call(raw: Dict[str, Any], include_transcript: bool = False,
                   include_audio: bool = False) -> Dict[str, Any]:
    normalized = {
        "id": safe_get(raw, ["aiVoiceMetaId", "id"], 0),
        "callSessionID": safe_get(raw, ["callSessionID", "sessionId", "meta.sessionId"]),
        "patientNumber": safe_get(raw, ["patientNumber", "patient.number"], "0"),
        "patientName": safe_get(raw, ["GuestName", "patientName", "patient.name", "meta.guestName"]),
        "dateTime": safe_get(raw, ["createdAt", "startTime", "dateTime", "meta.createdAt"]),
        "callType": safe_get(raw, ["callDirection", "call_type", "callType", "type", "direction",
                                   "meta.callType"], "unknown"),
        "callDirection": safe_get(raw, ["callDirection", "call_type", "direction"], "unknown"),
        "outcome": safe_get(raw, ["call_status", "callStatus", "outcome", "meta.callStatus",
                                  "call_successful"], "unknown"),
        "sentiment": safe_get(raw, ["user_sentiment", "sentiments", "sentiment", "userSentiment",
                                    "analysis.sentiments", "analysis.userSentiment"], "neutral"),
        "duration": safe_get(raw, ["callDuration", "duration_ms", "duration", "costs.durationSec",
                                   "durationSec"], 0),
        "cost": safe_get(raw, ["totalCost", "cost", "costs.total"], 0),
        "summary": safe_get(raw, ["callSummary", "summary"], "No summary available"),
        "phoneNumber": safe_get(raw, ["phoneNumber", "phone"]),
        "licenseKey": safe_get(raw, ["licenseKey"]),
        "appointmentBooked": safe_get(raw, ["isAppointmentBooked", "appt_booked"], False),
        "appointmentRescheduled": safe_get(raw, ["isAppointmentRescheduled", "reschedule_success"], False),
        "appointmentCancelled": safe_get(raw, ["isAppointmentCancelled"], False),
        "callSuccessful": safe_get(raw, ["call_successful", "callSuccessful"]),
        "disconnectionReason": safe_get(raw, ["disconnection_reason"]),
    }
    if include_transcript and raw.get("transcript"):
        normalized["transcript"] = raw["transcript"]
    if include_audio:
        normalized["audioUrl"] = safe_get(raw, ["audioRecordingURL", "audioUrl"])
    return normalized


# License keys

def group_calls_by_license_key(calls: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    grouped: Dict[str, Dict[str, Any]] = {}
    for call in calls:
        key = call.get("licenseKey") or "unknown"
        stats = grouped.setdefault(key, {"licenseKey": key, "callCount": 0, "totalCost": 0.0,
                                         "totalDuration": 0, "calls": []})
        stats["callCount"] += 1
        stats["totalCost"] += _float(call.get("totalCost"))
        stats["totalDuration"] += _int(call.get("callDuration") or call.get("duration_ms"))
        stats["calls"].append(call)
    return grouped


def build_license_key_summary(calls: List[Dict[str, Any]]) -> str:
    if not calls:
        return "No call data available."
    grouped = group_calls_by_license_key(calls)
    summary = "📊 **Call Distribution by License Key**\n\n"
    summary += f"Total License Keys: {len(grouped)}\n"
    summary += f"Total Calls: {len(calls)}\n\n"
    ranked = sorted(grouped.values(), key=lambda s: s["callCount"], reverse=True)
    for index, stats in enumerate(ranked, start=1):
        key = stats["licenseKey"]
        preview = key[:20] + "..." if len(key) > 20 else key
        summary += f"{index}. **License Key:** `{preview}`\n"
        summary += f"   - Calls: {stats['callCount']}\n"
        summary += f"   - Total Cost: ${stats['totalCost']:.2f}\n"
        summary += f"   - Avg Duration: {round(stats['totalDuration'] / stats['callCount'] / 1000)}s\n\n"
    return summary


def _match_license_key(calls: List[Dict[str, Any]], target: str) -> List[Dict[str, Any]]:
    """Five strategies, loosest last: exact, case-insensitive, 30-char prefix,
    target is a prefix of the record key, record key is a prefix of the target."""
    keyed = [c for c in calls if c.get("licenseKey")]
    lowered = target.lower().strip()
    strategies = [
        ("exact", lambda key: key == target),
        ("case-insensitive", lambda key: key.lower().strip() == lowered),
        ("prefix", lambda key: key[:30].lower() == target[:30].lower()),
        ("reverse prefix", lambda key: key.lower().startswith(target.lower())),
        ("contains", lambda key: target.lower().startswith(key.lower())),
    ]
    for name, matches in strategies:
        found = [c for c in keyed if matches(c["licenseKey"])]
        if found:
            logger.info(f"[AIVOICE] license key {mask_secret(target)} matched {len(found)} calls ({name})")
            return found
    return []


def get_calls_for_license_key(calls: List[Dict[str, Any]], target: str) -> Dict[str, Any]:
    if not calls:
        return {"found": False, "count": 0, "message": "No call data available."}

    available = list(dict.fromkeys(c.get("licenseKey") for c in calls))
    matched = _match_license_key(calls, target)
    if not matched:
        logger.info(f"[AIVOICE] no calls for license key {mask_secret(target)}")
        return {
            "found": False,
            "count": 0,
            "message": f"No calls found for license key: {target}",
            "availableLicenseKeys": [f"{k[:40]}..." if k else "null" for k in available],
            "searchedKey": target,
        }

    total_cost = sum(_float(c.get("totalCost")) for c in matched)
    total_duration = sum(_int(c.get("callDuration") or c.get("duration_ms")) for c in matched)
    return {
        "found": True,
        "count": len(matched),
        "licenseKey": target,
        "totalCost": total_cost,
        "avgDuration": round(total_duration / len(matched) / 1000),
        "calls": matched,
        "message": f"Found {len(matched)} call(s) for license key: {target[:20]}...",
    }


def format_license_key_analysis(result: Dict[str, Any], key: str, start_date: str, end_date: str) -> str:
    if result.get("found"):
        answer = "🔑 **License Key Analysis**\n\n"
        answer += f"**License Key:** `{key[:40]}...`\n"
        answer += f"**Date Range:** {start_date} to {end_date}\n\n"
        answer += "📊 **Statistics:**\n"
        answer += f"- Total Calls: **{result['count']}**\n"
        answer += f"- Total Cost: **${result['totalCost']:.2f}**\n"
        answer += f"- Average Duration: **{result['avgDuration']} seconds**\n"
        return answer

    answer = "❌ **No Calls Found**\n\n"
    answer += f"**License Key:** `{key[:40]}...`\n"
    answer += f"**Date Range:** {start_date} to {end_date}\n\n"
    available = result.get("availableLicenseKeys") or []
    if available:
        answer += "**💡 Available License Keys for this date range:**\n"
        for index, available_key in enumerate(available, start=1):
            answer += f"{index}. `{available_key}`\n"
        answer += "\n**Possible Issues:**\n"
        answer += "- The license key format might be different in the database\n"
        answer += "- This office might not have any calls for the selected date range\n"
        answer += "- Try selecting a different office from the dropdown\n"
    else:
        answer += (f"No calls found for license key `{key[:40]}...` "
                   f"in the date range {start_date} to {end_date}.")
    return answer


# Direction and context

def count_calls_by_direction(calls: List[Dict[str, Any]]) -> Dict[str, Any]:
    counts = {"inbound": 0, "outbound": 0, "unknown": 0}
    for call in calls or []:
        counts[call_direction(call)] += 1
    total = len(calls or [])
    return {
        "total": total,
        **counts,
        "inboundPercentage": f"{counts['inbound'] / total * 100:.1f}" if total else "0.0",
        "outboundPercentage": f"{counts['outbound'] / total * 100:.1f}" if total else "0.0",
        "breakdown": [{"direction": "Inbound", "count": counts["inbound"]},
                      {"direction": "Outbound", "count": counts["outbound"]},
                      {"direction": "Unknown", "count": counts["unknown"]}],
    }


def build_call_direction_summary(stats: Dict[str, Any], start_date: str, end_date: str) -> str:
    summary = "📞 **Call Direction Summary**\n\n"
    summary += f"**Date Range:** {start_date} to {end_date}\n\n"
    summary += "📊 **Overall Statistics:**\n"
    summary += f"- Total Calls: **{stats['total']}**\n"
    summary += f"- Inbound Calls: **{stats['inbound']}** ({stats['inboundPercentage']}%)\n"
    summary += f"- Outbound Calls: **{stats['outbound']}** ({stats['outboundPercentage']}%)\n"
    if stats["unknown"] > 0:
        summary += f"- Unknown Direction: {stats['unknown']}\n"
    return summary


def _tally(values) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for value in values:
        counts[str(value)] = counts.get(str(value), 0) + 1
    return counts


def build_conversation_context(calls: List[Dict[str, Any]]) -> str:
    """Plain-text digest of normalized calls, handed to the LLM as tool output."""
    if not calls:
        return "No call data available."
    total = len(calls)
    total_cost = sum(_float(c.get("cost")) for c in calls)
    avg_duration = sum(_int(c.get("duration")) for c in calls) / total

    def block(counts: Dict[str, int]) -> str:
        return "\n".join(f"  - {k}: {v}" for k, v in counts.items())

    return (f"Call Data Summary:\n"
            f"- Total Calls: {total}\n"
            f"- Total Cost: ${total_cost:.2f}\n"
            f"- Average Duration: {round(avg_duration)} seconds\n\n"
            f"Call Direction:\n{block(_tally(c.get('callType') for c in calls))}\n\n"
            f"Outcomes:\n{block(_tally(c.get('outcome') for c in calls))}\n\n"
            f"Sentiments:\n{block(_tally(c.get('sentiment') for c in calls))}")


# Entity filters

def filter_calls_by_entities(calls: List[Dict[str, Any]], entities: CallEntities) -> List[Dict[str, Any]]:
    filtered = list(calls)

    def keep(predicate, label):
        nonlocal filtered
        filtered = [c for c in filtered if predicate(c)]
        logger.info(f"[AIVOICE] filter {label}: {len(filtered)} calls")

    def flag(call, field):
        return str(call.get(field))

    if entities.appointment_status == "booked":
        keep(is_booked, "appointment booked")
    elif entities.appointment_status == "cancelled":
        keep(lambda c: c.get("isAppointmentCancelled") == 1, "appointment cancelled")
    elif entities.appointment_status == "rescheduled":
        keep(lambda c: c.get("isAppointmentRescheduled") == 1 or flag(c, "reschedule_success") == "1",
             "appointment rescheduled")

    if entities.call_success is False:
        keep(lambda c: flag(c, "call_successful") in ("0", "false") or flag(c, "confirmation_success") == "0"
             or c.get("call_status") == "failed", "unsuccessful")
    elif entities.call_success is True:
        keep(lambda c: flag(c, "call_successful") in ("1", "true") or flag(c, "confirmation_success") == "1"
             or c.get("call_status") == "success", "successful")

    if entities.sentiment == "positive":
        keep(lambda c: c.get("sentiments") == "Positive" or c.get("user_sentiment") == "positive",
             "positive sentiment")
    elif entities.sentiment == "negative":
        keep(lambda c: c.get("sentiments") == "Negative" or c.get("user_sentiment") == "negative",
             "negative sentiment")

    if entities.quality == "thumbs_up":
        keep(lambda c: flag(c, "thumbs_up") == "1", "thumbs up")
    elif entities.quality == "thumbs_down":
        keep(lambda c: flag(c, "thumbs_down") == "1", "thumbs down")

    if entities.has_upsell:
        keep(lambda c: c.get("upsellOpportunity") == "Yes" or flag(c, "upsell_opportunity") == "1", "upsell")

    if entities.needs_followup:
        keep(lambda c: c.get("isfollowuprequired") == 1 or flag(c, "is_call_back") == "1", "follow-up")

    if entities.language:
        keep(lambda c: str(c.get("languageUsed") or "").lower() == entities.language,
             f"language {entities.language}")

    if entities.duration:
        op, value = entities.duration.op, entities.duration.value
        keep(lambda c: (_int(c.get("callDuration") or c.get("duration_ms")) > value) if op == ">"
             else (_int(c.get("callDuration") or c.get("duration_ms")) < value),
             f"duration {op} {value / 1000:g}s")

    if entities.cost:
        op, value = entities.cost.op, entities.cost.value
        keep(lambda c: (_float(c.get("totalCost")) > value) if op == ">" else (_float(c.get("totalCost")) < value),
             f"cost {op} ${value:g}")

    if entities.name:
        needle = entities.name.lower()
        keep(lambda c: needle in str(c.get("GuestName") or "").lower(), f"name contains '{entities.name}'")

    logger.info(f"[AIVOICE] {len(filtered)} of {len(calls)} calls after filters")
    return filtered


# Rendering

def detect_relevant_fields(question: str) -> List[str]:
    ql = (question or "").lower()
    fields: List[str] = []
    for category, names in AI_VOICE_FIELD_MAP.items():
        if category in ql:
            fields.extend(names)
    for names in AI_VOICE_FIELD_MAP.values():
        for name in names:
            if name.lower().replace("_", " ") in ql:
                fields.append(name)
    return list(dict.fromkeys(fields))


def build_comprehensive_call_analysis(calls: List[Dict[str, Any]], question: str) -> str:
    if not calls:
        return "No calls match your criteria."

    relevant = detect_relevant_fields(question)
    total = len(calls)
    summary = "## 📊 Call Analysis Results\n\n"
    summary += f"**Total Calls:** {total}\n\n"

    def mentions(*parts):
        return any(part in field for field in relevant for part in parts)

    if mentions("appointment", "appt"):
        summary += "### 📅 Appointments\n"
        summary += f"- Booked: **{sum(1 for c in calls if is_booked(c))}**\n"
        summary += f"- Rescheduled: **{sum(1 for c in calls if c.get('isAppointmentRescheduled') == 1)}**\n"
        summary += f"- Cancelled: **{sum(1 for c in calls if c.get('isAppointmentCancelled') == 1)}**\n\n"

    if mentions("upsell"):
        opportunities = sum(1 for c in calls
                            if c.get("upsellOpportunity") == "Yes" or str(c.get("upsell_opportunity")) == "1")
        successes = sum(1 for c in calls if str(c.get("successful_upsell")) == "1")
        summary += "### 💰 Upsell Performance\n"
        summary += f"- Opportunities: **{opportunities}**\n"
        summary += f"- Successful: **{successes}**\n"
        if opportunities > 0:
            summary += f"- Success Rate: **{successes / opportunities * 100:.1f}%**\n"
        summary += "\n"

    if mentions("sentiment"):
        summary += "### 😊 Sentiment Breakdown\n"
        for sentiment, count in _tally(c.get("sentiments") or c.get("user_sentiment") or "Unknown"
                                       for c in calls).items():
            emoji = "✅" if sentiment == "Positive" else "❌" if sentiment == "Negative" else "➖"
            summary += f"{emoji} {sentiment}: **{count}** ({count / total * 100:.1f}%)\n"
        summary += "\n"

    if mentions("thumbs", "quality"):
        summary += "### 👍 Quality Scores\n"
        summary += f"- Thumbs Up: **{sum(1 for c in calls if str(c.get('thumbs_up')) == '1')}**\n"
        summary += f"- Thumbs Down: **{sum(1 for c in calls if str(c.get('thumbs_down')) == '1')}**\n\n"

    if mentions("cost", "duration", "Cost", "Duration"):
        total_cost = sum(_float(c.get("totalCost")) for c in calls)
        avg_duration = sum(_int(c.get("callDuration")) for c in calls) / total
        summary += "### 💵 Cost & Duration\n"
        summary += f"- Total Cost: **${total_cost:.2f}**\n"
        summary += f"- Average Cost: **${total_cost / total:.3f}**\n"
        summary += f"- Average Duration: **{round(avg_duration)} minutes**\n\n"

    if mentions("direction", "Direction", "call_type"):
        summary += "### 📞 Call Direction\n"
        summary += f"- Inbound: **{sum(1 for c in calls if call_direction(c) == 'inbound')}**\n"
        summary += f"- Outbound: **{sum(1 for c in calls if call_direction(c) == 'outbound')}**\n\n"

    return summary


def _when(call: Dict[str, Any]) -> Optional[str]:
    return call.get("startTime") or call.get("createdAt")


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_call_details(calls: List[Dict[str, Any]], question: str) -> str:
    """Transcripts, summaries or reviews when asked for; otherwise the analysis."""
    if not calls:
        return "No calls found."
    ql = (question or "").lower()

    if "transcript" in ql:
        output = "## 📝 Call Transcripts\n\n"
        output += f"**Found {_plural(len(calls), 'call')}**\n\n"
        for index, call in enumerate(calls[:10], start=1):
            output += f"### Call {index}: {call.get('GuestName') or 'Unknown'}\n"
            output += f"**Date:** {_when(call)}\n"
            output += f"**Duration:** {call.get('callDuration') or 0} minutes\n"
            output += f"**Phone:** {call.get('phoneNumber') or 'N/A'}\n\n"
            transcript = str(call.get("transcript") or "").strip()
            output += f"**Transcript:**\n{transcript}\n\n" if transcript else "*No transcript available*\n\n"
            output += "---\n\n"
        if len(calls) > 10:
            output += f"\n*Showing first 10 of {len(calls)} transcripts*\n"
        return output

    if "summary" in ql or "summaries" in ql:
        output = "## 📋 Call Summaries\n\n"
        output += f"**Found {_plural(len(calls), 'call')}**\n\n"
        for index, call in enumerate(calls[:20], start=1):
            output += f"### {index}. {call.get('GuestName') or 'Unknown'}\n"
            output += f"**Date:** {_when(call)}\n"
            output += f"**Summary:** {call.get('callSummary') or 'No summary'}\n\n"
            upsell = call.get("upsellOpportunityDetails")
            if upsell and upsell != "NA":
                output += f"**Upsell:** {upsell}\n\n"
            output += "---\n\n"
        if len(calls) > 20:
            output += f"\n*Showing first 20 of {len(calls)} summaries*\n"
        return output

    if "review" in ql or "feedback" in ql or "improve" in ql:
        output = "## 🔍 Call Reviews & Feedback\n\n"
        reviewed = [c for c in calls if str(c.get("ai_reviewed")) == "1"]
        if not reviewed:
            return output + "*No AI-reviewed calls found in the filtered results*\n"
        output += f"**Found {_plural(len(reviewed), 'reviewed call')}**\n\n"
        for index, call in enumerate(reviewed[:10], start=1):
            output += f"### {index}. {call.get('GuestName') or 'Unknown'} - {_when(call)}\n\n"
            if call.get("what_went_well"):
                output += f"✅ **What Went Well:**\n{call['what_went_well']}\n\n"
            if call.get("what_did_not_go_well"):
                output += f"❌ **What Didn't Go Well:**\n{call['what_did_not_go_well']}\n\n"
            if call.get("area_to_improve"):
                output += f"💡 **Areas to Improve:**\n{call['area_to_improve']}\n\n"
            output += "---\n\n"
        if len(reviewed) > 10:
            output += f"\n*Showing first 10 of {len(reviewed)} reviews*\n"
        return output

    return build_comprehensive_call_analysis(calls, question)


def format_call_count(calls: List[Dict[str, Any]], start_date: str, end_date: str) -> str:
    """Answer for count-intent questions: totals plus the direction split."""
    stats = count_calls_by_direction(calls)
    answer = "📊 **Call Count**\n\n"
    answer += f"**Date Range:** {start_date} to {end_date}\n\n"
    answer += f"- Total Calls: **{stats['total']}**\n"
    answer += f"- Inbound: **{stats['inbound']}**\n"
    answer += f"- Outbound: **{stats['outbound']}**\n"
    total_cost = sum(_float(c.get("totalCost")) for c in calls)
    if total_cost:
        answer += f"- Total Cost: **${total_cost:.2f}**\n"
    return answer
