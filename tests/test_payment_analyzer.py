#!/usr/bin/env python3
import unittest

from gateway.formatting.payment_analyzer import (analyze_pricing_details, classify_payment, extract_patient_number,
                                                 format_pricing_analysis)

ROWS = [
    {"PatNum": 10, "ProcDate": "2023-05-01", "ProcFee": 100, "InsPayAmt": 80, "WriteOff": 0,
     "Adjustments": 0, "Payments": 20},
    {"PatNum": 10, "ProcDate": "2024-01-10", "ProcFee": 200, "InsPayAmt": 50, "WriteOff": 0,
     "Adjustments": 0, "Payments": 0},
    {"PatNum": 10, "ProcDate": "2024-02-10", "ProcFee": 150, "InsPayAmt": 0, "WriteOff": 0,
     "Adjustments": 0, "Payments": 0},
    {"PatNum": 10, "ProcDate": "2024-03-01", "ProcFee": 0, "InsPayAmt": 0, "WriteOff": 0,
     "Adjustments": 0, "Payments": 0},
]


class TestPaymentAnalyzer(unittest.TestCase):
    def test_totals(self):
        analysis = analyze_pricing_details(ROWS, 10)
        financial = analysis["financial"]
        self.assertTrue(analysis["success"])
        self.assertEqual(financial["totalBilled"], 450.0)
        self.assertEqual(financial["totalInsurancePaid"], 130.0)
        self.assertEqual(financial["totalPatientPayments"], 20.0)
        self.assertEqual(financial["netPatientBalance"], 300.0)
        self.assertEqual(financial["insuranceCoverage"], "28.89")
        self.assertEqual(analysis["dateRange"], {"earliest": "2023-05-01", "latest": "2024-03-01"})

    def test_each_record_in_exactly_one_bucket(self):
        analysis = analyze_pricing_details(ROWS, 10)
        status = analysis["breakdown"]["paymentStatus"]
        self.assertEqual(status, {"fullyPaid": 1, "partiallyPaid": 1, "unpaid": 1, "zeroCharge": 1})
        self.assertEqual(sum(status.values()), analysis["totalRecords"])

    def test_yearly_breakdown(self):
        by_year = analyze_pricing_details(ROWS, 10)["breakdown"]["byYear"]
        self.assertEqual(by_year["2023"]["count"], 1)
        self.assertEqual(by_year["2024"]["count"], 3)
        self.assertEqual(by_year["2024"]["totalPaid"], 50.0)

    def test_recommendations(self):
        recommendations = analyze_pricing_details(ROWS, 10)["recommendations"]
        self.assertTrue(recommendations[0].startswith("⚠️ Outstanding Balance"))
        self.assertIn("$300.00", recommendations[0])
        self.assertIn("📉 Low Insurance Coverage: Only 28.89%", recommendations[1])
        self.assertIn("1 procedure(s) have no payments recorded", recommendations[2])
        self.assertEqual(len(recommendations), 3)

    def test_deterministic(self):
        self.assertEqual(analyze_pricing_details(ROWS, 10), analyze_pricing_details(ROWS, 10))

    def test_zero_billed(self):
        analysis = analyze_pricing_details([{"ProcDate": "2024-01-01", "ProcFee": 0}], 3)
        self.assertIsNone(analysis["financial"]["insuranceCoverage"])
        self.assertIn("(0.00% coverage)", analysis["summary"]["financialSummary"])
        self.assertEqual(analysis["recommendations"], ["✅ Account Balanced: No outstanding balance."])

    def test_no_rows(self):
        analysis = analyze_pricing_details([], 3)
        self.assertFalse(analysis["success"])
        self.assertEqual(format_pricing_analysis(analysis), "No payment data found for patient 3")

    def test_classify_payment_order(self):
        self.assertEqual(classify_payment(0, 0, 0, 50, -50), "zeroCharge")
        self.assertEqual(classify_payment(100, 100, 0, 0, 0), "fullyPaid")
        self.assertEqual(classify_payment(100, 0, 10, 0, 90), "partiallyPaid")
        self.assertEqual(classify_payment(100, 0, 0, 0, 100), "unpaid")

    def test_extract_patient_number(self):
        self.assertEqual(extract_patient_number(ROWS), 10)
        self.assertEqual(extract_patient_number([{"patNum": 4}]), 4)
        self.assertIsNone(extract_patient_number([]))

    def test_format(self):
        text = format_pricing_analysis(analyze_pricing_details(ROWS, 10))
        self.assertIn("## 📊 Payment Analysis for Patient 10", text)
        self.assertIn("| 2024-01-10 | $200.00 | $50.00 |", text)
        self.assertIn("### 💡 Recommendations", text)


if __name__ == '__main__':
    unittest.main()
