"""Security helpers: secret and PII masking for log lines."""
import re


def mask_pii(text: str) -> str:
    # Long digit runs are phone numbers or account ids
    return re.sub(r"\b\d{10,}\b", "[REDACTED]", text or "")


def mask_secret(value: str, keep: int = 8) -> str:
    if not value:
        return "<unset>"
    if len(value) <= keep:
        return "*" * len(value)
    return f"{value[:keep]}...({len(value)} chars)"
