#!/usr/bin/env python3
import unittest

from gateway.nlu import rules
from gateway.nlu.intent_model import IntentClassifier
from gateway.nlu.route_selector import RouteSelector, greeting_response
from gateway.schemas.io_models import Backend, Intent, RouteKind

LICENSE_KEY = "AbCdEfGhIjKlMnOpQrStUvWxYz0123456789"


class TestIntentClassifier(unittest.TestCase):
    def setUp(self):
        self.classifier = IntentClassifier()

    def test_count_beats_filter_on_tie(self):
        self.assertEqual(self.classifier.classify("how many calls show"), Intent.count)

    def test_filter(self):
        self.assertEqual(self.classifier.classify("show me calls with negative sentiment"), Intent.filter)

    def test_content_regex_keyword(self):
        self.assertEqual(self.classifier.classify("what did the caller say"), Intent.content)

    def test_analysis(self):
        self.assertEqual(self.classifier.classify("analyze call performance"), Intent.analysis)

    def test_nothing_matched(self):
        self.assertIsNone(self.classifier.classify("hello"))


class TestRouteSelector(unittest.TestCase):
    def setUp(self):
        self.router = RouteSelector()

    def test_database_question_goes_to_txql(self):
        decision = self.router.route("show me users in California")
        self.assertEqual(decision.kind, RouteKind.backend)
        self.assertEqual(decision.backend, Backend.txql)
        self.assertEqual(decision.query, "show me users in California")

    def test_call_direction_goes_to_aivoice(self):
        decision = self.router.route("How many inbound calls today?")
        self.assertEqual(decision.kind, RouteKind.direction)
        self.assertEqual(decision.backend, Backend.aivoice)

    def test_call_question_goes_to_aivoice(self):
        decision = self.router.route("show me calls with negative sentiment")
        self.assertEqual(decision.backend, Backend.aivoice)

    def test_greetings(self):
        for question in ("hello", "Hi", "good morning", "ok"):
            self.assertEqual(self.router.route(question).kind, RouteKind.greeting, question)

    def test_zero_zero_and_ties_go_to_txql(self):
        self.assertEqual(self.router.select_backend("what is the weather like"), Backend.txql)
        self.assertEqual(self.router.backend_scores("phone email"), (1, 1))
        self.assertEqual(self.router.select_backend("phone email"), Backend.txql)

    def test_license_key_prefix(self):
        decision = self.router.route(f"In {LICENSE_KEY} how many calls today")
        self.assertEqual(decision.kind, RouteKind.license_key_scoped)
        self.assertEqual(decision.backend, Backend.aivoice)
        self.assertEqual(decision.license_key, LICENSE_KEY)
        self.assertEqual(decision.query, "how many calls today")

    def test_license_key_prefix_with_database_question(self):
        decision = self.router.route(f"In {LICENSE_KEY} show me users in Texas")
        self.assertEqual(decision.kind, RouteKind.license_key_scoped)
        self.assertEqual(decision.backend, Backend.txql)

    def test_routing_is_deterministic(self):
        question = "list all appointments booked by phone"
        first = self.router.route(question)
        for _ in range(5):
            self.assertEqual(self.router.route(question), first)

    def test_greeting_response_is_canned(self):
        self.assertIn(greeting_response(), rules.GREETING_RESPONSES)


class TestRules(unittest.TestCase):
    def test_note_detectors(self):
        self.assertTrue(rules.is_note_summary_query("summarize notes for patnum = 4521"))
        self.assertTrue(rules.is_pricing_from_notes_query("summarize only pricing from notes for patnum = 10"))
        self.assertFalse(rules.is_pricing_from_notes_query("summarize notes for patnum = 10"))
        self.assertTrue(rules.is_note_request("what do the notes say for patnum 3"))

    def test_multi_patient_pricing_search(self):
        self.assertTrue(rules.is_multi_patient_pricing_search("find all patients with pricing in notes"))
        self.assertTrue(rules.is_multi_patient_pricing_search("find 5 patients with pricing"))
        self.assertFalse(rules.is_multi_patient_pricing_search("find pricing in notes for patnum = 5"))
        self.assertFalse(rules.is_multi_patient_pricing_search("show me users in California"))

    def test_pricing_analysis_query(self):
        self.assertTrue(rules.is_pricing_analysis_query("payment analysis for patnum = 10"))
        self.assertFalse(rules.is_pricing_analysis_query("show payments"))

    def test_license_key_and_direction_queries(self):
        self.assertTrue(rules.is_license_key_query("show calls by license key"))
        self.assertTrue(rules.is_call_direction_query("how many outgoing calls"))
        self.assertFalse(rules.is_call_direction_query("show me users"))


if __name__ == '__main__':
    unittest.main()
