#!/usr/bin/env python3
import unittest

from gateway.app.errors import InvalidInputError
from gateway.sql.builders import (build_commlog_query, build_note_query, build_patient_lookup_query,
                                  build_pricing_search_query, substitute_patient_number)
from gateway.sql.extraction import extract_sql_from_txql


class TestExtractSql(unittest.TestCase):
    def test_top_level_field(self):
        self.assertEqual(extract_sql_from_txql({"sql": " SELECT 1 FROM a "}), "SELECT 1 FROM a")

    def test_nested_data_field(self):
        self.assertEqual(extract_sql_from_txql({"data": {"query": "SELECT * FROM b"}}), "SELECT * FROM b")

    def test_deeply_nested_query_value(self):
        payload = {"result": {"inner": {"query": "SELECT 3 FROM g"}}}
        self.assertEqual(extract_sql_from_txql(payload), "SELECT 3 FROM g")

    def test_fenced_block_in_text(self):
        self.assertEqual(extract_sql_from_txql("Here you go:\n```sql\nSELECT * FROM c\n```\nEnjoy"),
                         "SELECT * FROM c")

    def test_fenced_block_in_response_field(self):
        self.assertEqual(extract_sql_from_txql({"response": "```sql\nSELECT 2 FROM f\n```"}), "SELECT 2 FROM f")

    def test_quoted_query_in_text_is_unescaped(self):
        self.assertEqual(extract_sql_from_txql(r'result {"query": "SELECT *\nFROM d"}'), "SELECT *\nFROM d")

    def test_plain_sql_text(self):
        self.assertEqual(extract_sql_from_txql("  SELECT * FROM e"), "SELECT * FROM e")

    def test_nothing_usable(self):
        self.assertIsNone(extract_sql_from_txql({"response": "I can't answer that"}))
        self.assertIsNone(extract_sql_from_txql("Sorry, no idea"))
        self.assertIsNone(extract_sql_from_txql(None))
        self.assertIsNone(extract_sql_from_txql(["SELECT 1"]))


class TestBuilders(unittest.TestCase):
    def test_note_query(self):
        sql = build_note_query("summarize notes for patnum = 4521")
        self.assertIn("WHERE pl.PatNum = 4521", sql)
        self.assertIn("FROM commlog", sql)
        self.assertEqual(sql.count("UNION ALL"), 4)
        self.assertIsNone(build_note_query("summarize notes for John"))

    def test_pricing_search_limit(self):
        self.assertTrue(build_pricing_search_query("find 5 patients with pricing").endswith("LIMIT 5"))
        self.assertTrue(build_pricing_search_query("find all patients with pricing").endswith("LIMIT 10"))

    def test_patient_lookup(self):
        self.assertEqual(
            build_patient_lookup_query("John Smith"),
            "SELECT PatNum, LName, FName FROM patient "
            "WHERE LName LIKE '%Smith%' AND FName LIKE '%John%' AND PatStatus != 2 LIMIT 10")
        self.assertIn("(LName LIKE '%O''Brien%' OR FName LIKE '%O''Brien%')",
                      build_patient_lookup_query("O'Brien"))

    def test_substitute_patient_number(self):
        sql = ("SELECT * FROM appointment a JOIN patient p ON a.PatNum = p.PatNum "
               "WHERE CONCAT(p.FName, ' ', p.LName) LIKE '%John Smith%'")
        result = substitute_patient_number(sql, "John Smith", 42)
        self.assertIn("= 42", result)
        self.assertNotIn("John Smith", result)

    def test_commlog_query(self):
        self.assertEqual(build_commlog_query(5),
                         "SELECT * FROM commlog WHERE PatNum = 5 ORDER BY CommDateTime DESC LIMIT 1000")
        self.assertIn("CommDateTime BETWEEN '2024-01-01' AND '2024-01-31'",
                      build_commlog_query(5, "2024-01-01", "2024-01-31"))

    def test_commlog_query_rejects_non_iso_dates(self):
        with self.assertRaises(InvalidInputError):
            build_commlog_query(5, "2024-01-01' OR '1'='1", "2024-01-31")


if __name__ == '__main__':
    unittest.main()
