#!/usr/bin/env python3
"""
Generation module for the chat gateway.

This module talks to an OpenAI-compatible chat-completions API. It is used
for two things only: summarizing patient notes and the open-ended AI-Voice
conversation with tool calling.
"""

import math
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import BackendRejected, BackendUnavailable, GatewayError, MalformedResponse
from ..utils.logger import get_logger

logger = get_logger("llm")

RETRY_AFTER_CAP_SECONDS = 60.0

PRICING_SYSTEM_PROMPT = (
    "You are a financial analyst extracting pricing and cost information from medical practice "
    "notes and call transcripts. Search thoroughly through ALL content including long transcripts. "
    "Focus ONLY on financial details like monthly costs, fees, packages, setup charges, discounts, "
    "and payment terms. Extract specific dollar amounts."
)

NOTES_SYSTEM_PROMPT = (
    "You are a medical assistant helping to summarize patient notes. Be thorough, accurate, "
    "and highlight important medical information."
)

PRICING_PROMPT = """You are analyzing patient notes to extract ONLY pricing and financial information.

Patient Number: {patient_number}
Total Notes: {count}

{notes}

CRITICAL INSTRUCTIONS:
- Search through ALL notes, including call transcripts and summaries
- Look for dollar amounts ($), monthly costs, fees, setup charges, packages
- Extract pricing even if buried in long transcripts or mixed with other content
- Common patterns: "$ X per month", "$ Y for", "total $ Z", "fee waived", "package"
- Include subscription pricing, one-time fees, setup costs, service packages
- Note any discounts, waivers, or special offers

Please provide:
1. **Pricing Summary** - All fees, costs, monthly charges, and packages mentioned (be specific with amounts)
2. **Payment Information** - Payment terms, billing frequency, setup fees
3. **Financial Discussions** - Key points from pricing conversations (who, what, when)
4. **Special Offers** - Discounts, waivers, promotional pricing
5. **Insurance/Coverage** - Any mentions of insurance or coverage

If NO pricing information is found after thoroughly searching all notes, clearly state: "No pricing or financial information found in notes."

Format your response in clear markdown with headers and bullet points. Be specific with dollar amounts and dates when available."""

NOTES_PROMPT = """You are a medical assistant reviewing patient notes. Please provide a comprehensive summary of the following patient notes.

Patient Number: {patient_number}
Total Notes: {count}

{notes}

Please provide:
1. **Overall Summary** - A brief overview of the patient's situation
2. **Medical History** - Key medical conditions, allergies, medications
3. **Treatment Timeline** - Chronological summary of procedures and appointments
4. **Important Flags** - Any urgent issues, allergies, or concerns
5. **Follow-up Items** - Any pending actions or appointments

Format your response in clear markdown with headers and bullet points."""


def batch_notes(notes: List[Dict[str, Any]]) -> str:
    """Render note rows as one block of text for the prompt."""
    blocks = []
    for index, note in enumerate(notes, start=1):
        blocks.append(
            f"\n--- Note {index} ---\n"
            f"Type: {note.get('NoteType') or 'Unknown'}\n"
            f"Date: {note.get('DateTime') or 'No date'}\n"
            f"Content: {note.get('Note') or 'No content'}\n"
        )
    return "\n".join(blocks)


def retry_after_seconds(value: Optional[str], default: float, cap: float = RETRY_AFTER_CAP_SECONDS) -> float:
    """Seconds to wait from a ``Retry-After`` header: delta-seconds or an HTTP-date."""
    if not value:
        return default
    try:
        seconds = float(value)
        if not math.isfinite(seconds):
            return default
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.warning(f"[LLM] unreadable Retry-After {value!r}, using {default}s")
            return default
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return min(max(seconds, 0.0), cap)


class LLMClient:
    """Client for an OpenAI-compatible chat-completions endpoint."""

    def __init__(self, api_key: str = None, model: str = None, api_url: str = None,
                 max_retries: int = 3, backoff: float = 2.0):
        self.api_key = api_key if api_key is not None else Config.OPENAI_API_KEY
        self.model = model or Config.OPENAI_MODEL
        self.api_url = api_url or Config.OPENAI_API_URL
        self.max_retries = max_retries
        self.backoff = backoff

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None,
                 temperature: float = 0.7, max_tokens: int = None) -> Dict[str, Any]:
        """
        Send one chat-completion request and return the first choice's message.

        Args:
            messages: Chat messages in OpenAI format
            tools: Optional function-tool definitions; enables tool_choice "auto"

        Returns:
            The assistant message dict (``content`` and possibly ``tool_calls``)
        """
        if not self.configured:
            raise GatewayError("OpenAI API key not configured",
                               "AI features are unavailable - API key not set")

        payload: Dict[str, Any] = {"model": self.model, "messages": messages, "temperature": temperature}
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        last_err: Optional[GatewayError] = None
        for attempt in range(1, self.max_retries + 1):
            logger.info(f"[LLM] calling {self.model} (attempt {attempt}, {len(messages)} messages)")
            try:
                response = requests.post(self.api_url, headers=headers, json=payload,
                                         timeout=Config.OPENAI_TIMEOUT_SECONDS)
            except requests.exceptions.Timeout as e:
                last_err = BackendUnavailable(f"LLM request timed out: {e}", BackendUnavailable.TIMEOUT)
            except requests.exceptions.RequestException as e:
                last_err = BackendUnavailable(f"LLM request failed: {e}", BackendUnavailable.CONNECTION)
            else:
                if response.status_code == 429:
                    retry_after = retry_after_seconds(response.headers.get("Retry-After"), self.backoff)
                    logger.warning(f"[LLM] rate limited, sleeping {retry_after}s")
                    last_err = BackendUnavailable("LLM rate limited", BackendUnavailable.SERVER)
                    if attempt < self.max_retries:
                        time.sleep(retry_after)
                    continue
                if 400 <= response.status_code < 500:
                    raise BackendRejected(f"LLM request rejected ({response.status_code}): {response.text[:300]}",
                                          response.status_code, response.text)
                if response.status_code != 200:
                    last_err = BackendUnavailable(f"LLM server error ({response.status_code})",
                                                  BackendUnavailable.SERVER)
                else:
                    try:
                        return response.json()["choices"][0]["message"]
                    except (ValueError, KeyError, IndexError) as e:
                        raise MalformedResponse(f"Error parsing LLM response: {e}")

            logger.warning(f"[LLM] attempt {attempt} failed: {last_err}")
            if attempt < self.max_retries:
                time.sleep(self.backoff * attempt)

        logger.error("[LLM] exhausted retries")
        raise last_err

    def summarize_notes(self, notes: List[Dict[str, Any]], patient_number: Any,
                        focus_on_pricing: bool = False) -> str:
        """Markdown summary of a patient's notes, optionally limited to pricing."""
        if not self.configured:
            raise GatewayError("OpenAI API key not configured",
                               "AI summarization unavailable - API key not set")
        if not notes:
            return f"No notes found for patient {patient_number}."

        logger.info(f"[LLM] summarizing {len(notes)} notes (pricing={focus_on_pricing})")
        template = PRICING_PROMPT if focus_on_pricing else NOTES_PROMPT
        prompt = template.format(patient_number=patient_number, count=len(notes), notes=batch_notes(notes))
        message = self.complete(
            [{"role": "system", "content": PRICING_SYSTEM_PROMPT if focus_on_pricing else NOTES_SYSTEM_PROMPT},
             {"role": "user", "content": prompt}],
            temperature=0.3, max_tokens=3000)
        summary = message.get("content") or ""
        logger.info(f"[LLM] summary generated ({len(summary)} characters)")
        return summary
