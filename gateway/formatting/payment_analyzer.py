"""Per-patient payment analysis over procedure rows.

Pure functions: identical rows always give identical numbers and text.
"""
from typing import Any, Dict, List, Optional


def _amount(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _year(proc_date: Any) -> str:
    text = str(proc_date or "")
    return text[:4] if text[:4].isdigit() else "Unknown"


def classify_payment(fee: float, insurance: float, write_off: float, patient_paid: float,
                     remaining: float) -> str:
    """Exactly one bucket per record, checked in this order."""
    if fee == 0:
        return "zeroCharge"
    if remaining <= 0:
        return "fullyPaid"
    if insurance > 0 or patient_paid > 0 or write_off > 0:
        return "partiallyPaid"
    return "unpaid"


def extract_patient_number(rows: List[Dict[str, Any]]) -> Optional[Any]:
    if not rows:
        return None
    first = rows[0]
    return first.get("PatNum") or first.get("patNum") or first.get("PatientNumber")


def analyze_pricing_details(rows: List[Dict[str, Any]], pat_num: Any) -> Dict[str, Any]:
    if not rows:
        return {"success": False, "message": f"No payment data found for patient {pat_num}",
                "patientNumber": pat_num}

    financial = {"totalBilled": 0.0, "totalInsurancePaid": 0.0, "totalWriteOffs": 0.0,
                 "totalAdjustments": 0.0, "totalPatientPayments": 0.0,
                 "netPatientBalance": 0.0, "insuranceCoverage": None}
    status_counts = {"fullyPaid": 0, "partiallyPaid": 0, "unpaid": 0, "zeroCharge": 0}
    by_year: Dict[str, Dict[str, Any]] = {}
    procedures = []
    dates = []

    for record in rows:
        fee = _amount(record.get("ProcFee"))
        insurance = _amount(record.get("InsPayAmt"))
        write_off = _amount(record.get("WriteOff"))
        adjustment = _amount(record.get("Adjustments"))
        patient_paid = _amount(record.get("Payments"))
        remaining = fee - insurance - write_off - adjustment - patient_paid

        financial["totalBilled"] += fee
        financial["totalInsurancePaid"] += insurance
        financial["totalWriteOffs"] += write_off
        financial["totalAdjustments"] += abs(adjustment)
        financial["totalPatientPayments"] += patient_paid

        proc_date = record.get("ProcDate")
        if proc_date:
            dates.append(str(proc_date))

        status_counts[classify_payment(fee, insurance, write_off, patient_paid, remaining)] += 1

        year = _year(proc_date)
        bucket = by_year.setdefault(year, {"year": year, "totalBilled": 0.0, "totalPaid": 0.0, "count": 0})
        bucket["totalBilled"] += fee
        bucket["totalPaid"] += insurance + patient_paid
        bucket["count"] += 1

        if remaining <= 0:
            status = "Paid"
        elif remaining < fee:
            status = "Partial"
        else:
            status = "Unpaid"
        procedures.append({"date": proc_date, "procFee": fee, "insurancePaid": insurance,
                           "writeOff": write_off, "adjustments": adjustment,
                           "patientPaid": patient_paid, "remainingBalance": remaining,
                           "status": status})

    financial["netPatientBalance"] = (financial["totalBilled"] - financial["totalInsurancePaid"]
                                      - financial["totalWriteOffs"] - financial["totalPatientPayments"])
    if financial["totalBilled"] > 0:
        coverage = financial["totalInsurancePaid"] / financial["totalBilled"] * 100
        financial["insuranceCoverage"] = f"{coverage:.2f}"

    analysis = {
        "success": True,
        "patientNumber": pat_num,
        "totalRecords": len(rows),
        "dateRange": {"earliest": min(dates) if dates else None, "latest": max(dates) if dates else None},
        "financial": financial,
        "procedures": procedures,
        "breakdown": {"byYear": by_year, "paymentStatus": status_counts},
    }
    analysis["summary"] = build_payment_summary(analysis)
    analysis["recommendations"] = generate_payment_recommendations(analysis)
    return analysis


def build_payment_summary(analysis: Dict[str, Any]) -> Dict[str, Any]:
    fin = analysis["financial"]
    status = analysis["breakdown"]["paymentStatus"]
    coverage = fin["insuranceCoverage"] if fin["insuranceCoverage"] is not None else "0.00"
    years = sorted(analysis["breakdown"]["byYear"].values(), key=lambda y: y["year"], reverse=True)
    return {
        "overview": f"Payment Analysis for Patient {analysis['patientNumber']}",
        "period": f"{analysis['dateRange']['earliest'] or 'N/A'} to {analysis['dateRange']['latest'] or 'N/A'}",
        "totalProcedures": analysis["totalRecords"],
        "financialSummary": "\n".join([
            f"💰 Total Billed: ${fin['totalBilled']:.2f}",
            f"🏥 Insurance Paid: ${fin['totalInsurancePaid']:.2f} ({coverage}% coverage)",
            f"📝 Write-offs: ${fin['totalWriteOffs']:.2f}",
            f"⚖️ Adjustments: ${fin['totalAdjustments']:.2f}",
            f"👤 Patient Paid: ${fin['totalPatientPayments']:.2f}",
            "",
            f"📊 Net Patient Balance: ${fin['netPatientBalance']:.2f}",
        ]),
        "paymentStatus": "\n".join([
            f"✅ Fully Paid: {status['fullyPaid']} procedures",
            f"⏳ Partially Paid: {status['partiallyPaid']} procedures",
            f"❌ Unpaid: {status['unpaid']} procedures",
            f"🆓 Zero Charge: {status['zeroCharge']} procedures",
        ]),
        "yearlyBreakdown": "\n".join(
            f"{y['year']}: {y['count']} procedures | Billed: ${y['totalBilled']:.2f} | Paid: ${y['totalPaid']:.2f}"
            for y in years),
    }


def generate_payment_recommendations(analysis: Dict[str, Any]) -> List[str]:
    fin = analysis["financial"]
    recommendations = []

    balance = fin["netPatientBalance"]
    if balance > 0:
        recommendations.append(f"⚠️ Outstanding Balance: Patient has ${balance:.2f} remaining balance.")
    elif balance < 0:
        recommendations.append(f"ℹ️ Credit Balance: Patient has a credit of ${abs(balance):.2f}.")
    else:
        recommendations.append("✅ Account Balanced: No outstanding balance.")

    if fin["insuranceCoverage"] is not None:
        coverage = float(fin["insuranceCoverage"])
        if coverage < 50 and fin["totalInsurancePaid"] > 0:
            recommendations.append(f"📉 Low Insurance Coverage: Only {coverage:g}% of charges covered by insurance.")
        elif coverage >= 80:
            recommendations.append(f"📈 Good Insurance Coverage: {coverage:g}% of charges covered by insurance.")

    unpaid = analysis["breakdown"]["paymentStatus"]["unpaid"]
    if unpaid > 0:
        recommendations.append(f"💳 Unpaid Procedures: {unpaid} procedure(s) have no payments recorded.")

    if fin["totalWriteOffs"] > 0 and fin["totalBilled"] > 0:
        percent = fin["totalWriteOffs"] / fin["totalBilled"] * 100
        recommendations.append(f"📝 Write-offs: ${fin['totalWriteOffs']:.2f} ({percent:.2f}% of total billed) written off.")

    return recommendations


def format_pricing_analysis(analysis: Dict[str, Any]) -> str:
    if not analysis.get("success"):
        return analysis["message"]

    summary = analysis["summary"]
    output = (f"## 📊 Payment Analysis for Patient {analysis['patientNumber']}\n\n"
              f"### 📅 Period\n{summary['period']} ({analysis['totalRecords']} procedures)\n\n---\n\n"
              f"### 💰 Financial Summary\n\n{summary['financialSummary']}\n\n---\n\n"
              f"### 📈 Payment Status Distribution\n\n{summary['paymentStatus']}\n\n---\n\n"
              f"### 📆 Yearly Breakdown\n\n{summary['yearlyBreakdown']}\n\n---\n\n"
              "### 📋 Detailed Procedure Records\n\n")
    output += "| Date | Billed | Insurance | Write-off | Adjustments | Patient Paid | Balance | Status |\n"
    output += "|------|--------|-----------|-----------|-------------|--------------|---------|--------|\n"
    for proc in analysis["procedures"]:
        output += (f"| {proc['date']} | ${proc['procFee']:.2f} | ${proc['insurancePaid']:.2f} "
                   f"| ${proc['writeOff']:.2f} | ${proc['adjustments']:.2f} | ${proc['patientPaid']:.2f} "
                   f"| ${proc['remainingBalance']:.2f} | {proc['status']} |\n")

    if analysis.get("recommendations"):
        output += "\n---\n\n### 💡 Recommendations\n\n"
        for rec in analysis["recommendations"]:
            output += f"{rec}\n"
    return output
