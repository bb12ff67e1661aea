#!/usr/bin/env python3
import unittest
from datetime import date

from gateway.formatting.calls import filter_calls_by_entities
from gateway.nlu.entity_extractor import EntityExtractor, extract_license_key, split_license_key_prefix

LICENSE_KEY = "AbCdEfGhIjKlMnOpQrStUvWxYz0123456789+/=="


class TestEntityExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = EntityExtractor()

    def test_patient_number_and_table_hint(self):
        entities = self.extractor.extract("show appointments for patnum = 4521")
        self.assertEqual(entities.patient_number, 4521)
        self.assertEqual(entities.table_hint, "appointment")
        self.assertTrue(entities.needs_auto_limit)

    def test_patient_name(self):
        entities = self.extractor.extract("show appointments for John Smith")
        self.assertEqual(entities.patient_name, "John Smith")
        self.assertIsNone(entities.patient_number)

    def test_user_limit_and_state(self):
        entities = self.extractor.extract("top 5 patients in California")
        self.assertEqual(entities.result_limit, 5)
        self.assertFalse(entities.needs_auto_limit)
        self.assertEqual(entities.state, "California")
        self.assertEqual(entities.table_hint, "patient")

    def test_all_disables_auto_limit(self):
        entities = self.extractor.extract("show all active patients")
        self.assertIsNone(entities.result_limit)
        self.assertFalse(entities.needs_auto_limit)
        self.assertTrue(entities.is_active_only)
        self.assertFalse(entities.include_deleted)

    def test_deleted(self):
        self.assertTrue(self.extractor.extract("list deleted patients").include_deleted)

    def test_date_range(self):
        entities = self.extractor.extract("appointments yesterday", today=date(2024, 3, 13))
        self.assertEqual(entities.date_range.start_date, "2024-03-12")
        self.assertEqual(entities.date_context, "yesterday")

    def test_no_matches_leave_defaults(self):
        entities = self.extractor.extract("hello there")
        self.assertIsNone(entities.patient_number)
        self.assertIsNone(entities.patient_name)
        self.assertIsNone(entities.state)
        self.assertIsNone(entities.date_range)
        self.assertIsNone(entities.license_key)

    def test_call_entities(self):
        entities = self.extractor.extract_call_entities(
            "calls longer than 5 minutes with negative sentiment in spanish")
        self.assertEqual(entities.duration.op, ">")
        self.assertEqual(entities.duration.value, 300000)
        self.assertEqual(entities.sentiment, "negative")
        self.assertEqual(entities.language, "spanish")
        self.assertIsNone(entities.name)

    def test_call_duration_units_become_milliseconds(self):
        entities = self.extractor.extract_call_entities("calls less than 90 seconds")
        self.assertEqual((entities.duration.op, entities.duration.value), ("<", 90000))
        entities = self.extractor.extract_call_entities("calls shorter than 2 mins")
        self.assertEqual(entities.duration.value, 120000)
        # A bare number is read as minutes
        entities = self.extractor.extract_call_entities("calls longer than 3")
        self.assertEqual(entities.duration.value, 180000)

    def test_duration_filter_drops_short_calls(self):
        entities = self.extractor.extract_call_entities("show calls longer than 5 minutes")
        calls = [{"aiVoiceMetaId": 1, "callDuration": 10000}, {"aiVoiceMetaId": 2, "callDuration": 360000}]
        self.assertEqual([c["aiVoiceMetaId"] for c in filter_calls_by_entities(calls, entities)], [2])

    def test_call_entities_cost_and_status(self):
        entities = self.extractor.extract_call_entities("booked calls that cost more than $2")
        self.assertEqual(entities.appointment_status, "booked")
        self.assertEqual(entities.cost.op, ">")
        self.assertEqual(entities.cost.value, 2.0)

        entities = self.extractor.extract_call_entities("show unsuccessful calls with thumbs down")
        self.assertIs(entities.call_success, False)
        self.assertEqual(entities.quality, "thumbs_down")


class TestLicenseKeys(unittest.TestCase):
    def test_extract_license_key_takes_longest_run(self):
        self.assertEqual(extract_license_key(f"calls for {LICENSE_KEY} and abcdefghijklmnopqrstu"), LICENSE_KEY)
        self.assertIsNone(extract_license_key("no key here"))

    def test_split_prefix(self):
        key, query = split_license_key_prefix(f"In {LICENSE_KEY} how many calls today")
        self.assertEqual(key, LICENSE_KEY)
        self.assertEqual(query, "how many calls today")

    def test_split_prefix_requires_long_key(self):
        key, query = split_license_key_prefix("In California how many users")
        self.assertIsNone(key)
        self.assertEqual(query, "In California how many users")


if __name__ == '__main__':
    unittest.main()
