#!/usr/bin/env python3
import unittest

from gateway.formatting.calls import (build_call_direction_summary, build_comprehensive_call_analysis,
                                      build_conversation_context, build_license_key_summary,
                                      count_calls_by_direction, detect_relevant_fields, filter_calls_by_entities,
                                      format_call_count, format_call_details, format_license_key_analysis,
                                      get_calls_for_license_key, group_calls_by_license_key, normalize_call,
                                      safe_get)
from gateway.formatting.charts import call_direction, generate_call_chart
from gateway.formatting.commlog import (analyze_commlog, format_commlog_as_structured_data,
                                        format_commlog_for_display, get_comm_type_label, get_mode_label,
                                        is_commlog_rows)
from gateway.schemas.io_models import CallEntities, Comparison

KEY1 = "A" * 35
KEY2 = "B" * 35

CALLS = [
    {"aiVoiceMetaId": 1, "licenseKey": KEY1, "callDirection": "inbound", "totalCost": 1.0,
     "callDuration": 60000, "sentiments": "Positive", "isAppointmentBooked": 1, "GuestName": "Ann Lee",
     "call_successful": "1", "thumbs_up": "1", "callSummary": "Booked a cleaning"},
    {"aiVoiceMetaId": 2, "licenseKey": KEY1, "callDirection": "outbound", "totalCost": 0.5,
     "callDuration": 30000, "sentiments": "Negative", "isAppointmentBooked": 0, "GuestName": "Bob Ray",
     "call_successful": "0", "thumbs_down": "1", "languageUsed": "Spanish"},
    {"aiVoiceMetaId": 3, "licenseKey": KEY2, "call_type": "Incoming", "totalCost": 0.25,
     "callDuration": 90000, "user_sentiment": "neutral", "appt_booked": "1", "GuestName": "Cy Dunn"},
]


class TestNormalizeCall(unittest.TestCase):
    def test_alternate_field_names(self):
        normalized = normalize_call(CALLS[2])
        self.assertEqual(normalized["id"], 3)
        self.assertEqual(normalized["patientName"], "Cy Dunn")
        self.assertEqual(normalized["callType"], "Incoming")
        self.assertEqual(normalized["sentiment"], "neutral")
        self.assertEqual(normalized["duration"], 90000)
        self.assertEqual(normalized["summary"], "No summary available")

    def test_transcript_and_audio_only_on_request(self):
        raw = {"aiVoiceMetaId": 9, "transcript": "hello", "audioRecordingURL": "https://x/a.mp3"}
        self.assertNotIn("transcript", normalize_call(raw))
        self.assertNotIn("audioUrl", normalize_call(raw))
        full = normalize_call(raw, include_transcript=True, include_audio=True)
        self.assertEqual(full["transcript"], "hello")
        self.assertEqual(full["audioUrl"], "https://x/a.mp3")

    def test_safe_get_dotted_paths(self):
        self.assertEqual(safe_get({"meta": {"sessionId": "x"}}, ["sessionId", "meta.sessionId"]), "x")
        self.assertEqual(safe_get({}, "a.b", "default"), "default")


class TestLicenseKeys(unittest.TestCase):
    def test_group(self):
        grouped = group_calls_by_license_key(CALLS)
        self.assertEqual(grouped[KEY1]["callCount"], 2)
        self.assertEqual(grouped[KEY1]["totalCost"], 1.5)
        self.assertEqual(grouped[KEY2]["totalDuration"], 90000)

    def test_summary(self):
        summary = build_license_key_summary(CALLS)
        self.assertIn("Total License Keys: 2", summary)
        self.assertIn("Total Calls: 3", summary)
        self.assertEqual(build_license_key_summary([]), "No call data available.")

    def test_exact_match(self):
        result = get_calls_for_license_key(CALLS, KEY1)
        self.assertTrue(result["found"])
        self.assertEqual(result["count"], 2)
        self.assertEqual(result["totalCost"], 1.5)
        self.assertEqual(result["avgDuration"], 45)

    def test_loose_matches(self):
        self.assertEqual(get_calls_for_license_key(CALLS, "a" * 35)["count"], 2)
        self.assertEqual(get_calls_for_license_key(CALLS, "A" * 30 + "Z" * 5)["count"], 2)

    def test_not_found(self):
        result = get_calls_for_license_key(CALLS, "C" * 35)
        self.assertFalse(result["found"])
        self.assertEqual(len(result["availableLicenseKeys"]), 2)
        text = format_license_key_analysis(result, "C" * 35, "2024-01-01", "2024-01-02")
        self.assertIn("No Calls Found", text)
        self.assertIn("Available License Keys", text)

    def test_found_analysis_text(self):
        result = get_calls_for_license_key(CALLS, KEY1)
        text = format_license_key_analysis(result, KEY1, "2024-01-01", "2024-01-02")
        self.assertIn("Total Calls: **2**", text)
        self.assertIn("Total Cost: **$1.50**", text)


class TestDirectionAndContext(unittest.TestCase):
    def test_count_by_direction(self):
        stats = count_calls_by_direction(CALLS)
        self.assertEqual((stats["total"], stats["inbound"], stats["outbound"]), (3, 2, 1))
        self.assertEqual(stats["inboundPercentage"], "66.7")
        self.assertEqual(count_calls_by_direction([])["inboundPercentage"], "0.0")

    def test_direction_summary(self):
        summary = build_call_direction_summary(count_calls_by_direction(CALLS), "2024-01-01", "2024-01-01")
        self.assertIn("Inbound Calls: **2** (66.7%)", summary)
        self.assertNotIn("Unknown Direction", summary)

    def test_conversation_context(self):
        context = build_conversation_context([normalize_call(c) for c in CALLS])
        self.assertIn("Total Calls: 3", context)
        self.assertIn("Total Cost: $1.75", context)
        self.assertEqual(build_conversation_context([]), "No call data available.")


class TestFilters(unittest.TestCase):
    def test_sentiment_and_duration(self):
        entities = CallEntities(sentiment="negative")
        self.assertEqual([c["aiVoiceMetaId"] for c in filter_calls_by_entities(CALLS, entities)], [2])
        entities = CallEntities(duration=Comparison(op=">", value=45000))
        self.assertEqual([c["aiVoiceMetaId"] for c in filter_calls_by_entities(CALLS, entities)], [1, 3])

    def test_booked_and_cost(self):
        entities = CallEntities(appointment_status="booked", cost=Comparison(op="<", value=0.5))
        self.assertEqual([c["aiVoiceMetaId"] for c in filter_calls_by_entities(CALLS, entities)], [3])

    def test_language_and_name(self):
        self.assertEqual(len(filter_calls_by_entities(CALLS, CallEntities(language="spanish"))), 1)
        self.assertEqual(len(filter_calls_by_entities(CALLS, CallEntities(name="Ann Lee"))), 1)

    def test_no_filters_keeps_everything(self):
        self.assertEqual(len(filter_calls_by_entities(CALLS, CallEntities())), 3)


class TestRendering(unittest.TestCase):
    def test_call_count(self):
        text = format_call_count(CALLS, "2024-01-01", "2024-01-07")
        self.assertIn("Total Calls: **3**", text)
        self.assertIn("Inbound: **2**", text)
        self.assertIn("Total Cost: **$1.75**", text)

    def test_relevant_fields(self):
        fields = detect_relevant_fields("analyze sentiment and upsell")
        self.assertIn("sentiments", fields)
        self.assertIn("upsellOpportunity", fields)

    def test_comprehensive_analysis(self):
        text = build_comprehensive_call_analysis(CALLS, "analyze sentiment")
        self.assertIn("**Total Calls:** 3", text)
        self.assertIn("Sentiment Breakdown", text)
        self.assertEqual(build_comprehensive_call_analysis([], "x"), "No calls match your criteria.")

    def test_call_details_summaries(self):
        text = format_call_details(CALLS, "give me call summaries")
        self.assertIn("## 📋 Call Summaries", text)
        self.assertIn("Booked a cleaning", text)

    def test_call_details_transcripts(self):
        text = format_call_details([{"GuestName": "Ann", "transcript": "Hi there"}], "show transcripts")
        self.assertIn("**Transcript:**\nHi there", text)


class TestCallCharts(unittest.TestCase):
    def test_sentiment_pie(self):
        chart = generate_call_chart("sentiment breakdown", CALLS)
        self.assertEqual(chart["type"], "pie")
        self.assertIn({"name": "Positive", "value": 1, "color": "#22c55e"}, chart["data"])

    def test_direction_pie(self):
        chart = generate_call_chart("inbound vs outbound", CALLS)
        self.assertEqual(chart["title"], "Call Direction Breakdown")
        self.assertEqual([d["value"] for d in chart["data"]], [2, 1])

    def test_license_key_bar(self):
        chart = generate_call_chart("calls by license key", CALLS)
        self.assertEqual(chart["type"], "bar")
        self.assertEqual(chart["data"][0]["value"], 2)

    def test_no_chart(self):
        self.assertIsNone(generate_call_chart("sentiment", []))
        self.assertIsNone(generate_call_chart("how many appointments were booked", CALLS))

    def test_call_direction(self):
        self.assertEqual(call_direction({"call_type": "Incoming"}), "inbound")
        self.assertEqual(call_direction({"callDirection": "outgoing"}), "outbound")
        self.assertEqual(call_direction({}), "unknown")


class TestCommlog(unittest.TestCase):
    RECORD = {"CommlogNum": 11, "CommDateTime": "2024-03-05T14:30:00", "CommType": 386, "Mode_": 3,
              "SentOrReceived": 1,
              "Note": "Outbound phone call to +15551234567 with duration of 2 minutes 30 seconds. "
                      "PX Summary: discussed the $99 plan"}

    def test_labels(self):
        self.assertEqual(get_comm_type_label(386), "☎️ Phone Call")
        self.assertEqual(get_comm_type_label(999), "📄 Type 999")
        self.assertEqual(get_mode_label(5), "SMS")
        self.assertEqual(get_mode_label(9), "Mode 9")

    def test_is_commlog_rows(self):
        self.assertTrue(is_commlog_rows([{"CommlogNum": 1}]))
        self.assertTrue(is_commlog_rows([{"CommDateTime": "2024-01-01"}]))
        self.assertFalse(is_commlog_rows([{"PatNum": 1}]))
        self.assertFalse(is_commlog_rows([]))

    def test_display(self):
        display = format_commlog_for_display([self.RECORD])[0]
        self.assertEqual(display["date"], "Mar 05, 2024, 02:30 PM")
        self.assertEqual(display["phone"], "+15551234567")
        self.assertEqual(display["duration"], "2m 30s")
        self.assertEqual(display["direction"], "📤 Outbound")
        self.assertTrue(display["message"].startswith("PX Summary"))
        self.assertTrue(display["isCall"])

    def test_analysis(self):
        received = {"CommlogNum": 12, "CommDateTime": "2024-03-06T09:00:00", "CommType": 228,
                    "SentOrReceived": 2, "Note": "Thanks!"}
        analysis = analyze_commlog([self.RECORD, received])
        self.assertEqual(analysis["totalRecords"], 2)
        self.assertEqual(analysis["sentVsReceived"], {"sent": 1, "received": 1, "unknown": 0})
        self.assertEqual(analysis["byCommType"], {"386": 1, "228": 1})
        self.assertEqual(len(analysis["callSummaries"]), 1)
        self.assertEqual(analysis["recentActivity"][0]["date"], "2024-03-06T09:00:00")

    def test_structured_data(self):
        payload = format_commlog_as_structured_data([self.RECORD])
        self.assertEqual(payload["type"], "structured_commlog")
        self.assertEqual(payload["data"]["analysis"]["callCount"], 1)
        self.assertEqual(payload["data"]["phoneCalls"][0]["direction"], "Outbound")
        empty = format_commlog_as_structured_data([])
        self.assertEqual(empty["data"]["records"], [])


if __name__ == '__main__':
    unittest.main()
