#!/usr/bin/env python3
"""
TXQL client: natural-language question in, loosely typed payload out.

Timeouts, refused connections, DNS failures and 5xx answers are retried with
exponential backoff; 4xx answers are surfaced at once.
"""

import time
from typing import Any, Optional

import requests

from .config import Config
from .errors import BackendRejected, BackendUnavailable
from ..utils.logger import get_logger

logger = get_logger("txql")

DNS_MARKERS = ("Name or service not known", "nodename nor servname", "getaddrinfo",
               "NameResolutionError", "Temporary failure in name resolution")


def connection_reason(error: requests.exceptions.RequestException) -> str:
    """Map a requests failure onto a BackendUnavailable reason."""
    if isinstance(error, requests.exceptions.Timeout):
        return BackendUnavailable.TIMEOUT
    if any(marker in str(error) for marker in DNS_MARKERS):
        return BackendUnavailable.DNS
    return BackendUnavailable.CONNECTION


def friendly_txql_error(error: Exception, url: str, timeout: float) -> str:
    message = "❌ Error: Sorry, I couldn't connect to the database server. "
    reason = getattr(error, "reason", None)
    if reason == BackendUnavailable.TIMEOUT:
        message += (f"The request took too long (timed out after {timeout:g} seconds). "
                    "The TXQL service might be unavailable or overloaded. "
                    "\n\n💡 **Suggestions:**\n"
                    "- Try a simpler query\n"
                    "- Wait a moment and try again\n"
                    "- Ask about call data instead (AI Voice system is working)")
    elif reason in (BackendUnavailable.CONNECTION, BackendUnavailable.DNS):
        message += (f"Cannot reach the TXQL service at `{url}`. "
                    "\n\n💡 **Possible issues:**\n"
                    "- The TXQL service may be down\n"
                    "- Network connectivity issues\n"
                    "- Firewall or DNS problems\n\n"
                    "Please check if the TXQL service is running and accessible.")
    else:
        message += ("The TXQL service encountered an error. "
                    f"\n\n**Error details:** {error}"
                    "\n\n💡 You can try asking about call data instead (AI Voice system is working).")
    return message


class TxqlClient:
    """Client for the TXQL question-to-SQL service."""

    def __init__(self, api_url: str = None, timeout: float = None, max_retries: int = None,
                 backoff_base: float = None, backoff_cap: float = None, sleep=time.sleep):
        self.api_url = api_url or Config.TXQL_API_URL
        self.timeout = timeout or Config.TXQL_TIMEOUT_SECONDS
        self.max_retries = max_retries or Config.TXQL_MAX_RETRIES
        self.backoff_base = Config.TXQL_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self.backoff_cap = Config.TXQL_BACKOFF_CAP_SECONDS if backoff_cap is None else backoff_cap
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_base * 2 ** (attempt - 1), self.backoff_cap)

    def _post(self, question: str, session_id: str) -> Any:
        try:
            response = requests.post(
                self.api_url,
                headers={"accept": "application/json", "Content-Type": "application/json"},
                json={"question": question, "session_id": session_id},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise BackendUnavailable(f"TXQL request failed: {e}", connection_reason(e))

        if 400 <= response.status_code < 500:
            raise BackendRejected(f"Server responded with status {response.status_code}: {response.text}",
                                  response.status_code, response.text)
        if response.status_code >= 500:
            raise BackendUnavailable(f"Server responded with status {response.status_code}: {response.text}",
                                     BackendUnavailable.SERVER)
        try:
            return response.json()
        except ValueError:
            return response.text

    def query(self, question: str, session_id: str, max_retries: Optional[int] = None) -> Any:
        """
        Ask TXQL a question.

        Args:
            question: Natural-language question (license-key prefix already removed)
            session_id: TXQL conversation id kept per user session
            max_retries: Attempt ceiling; defaults to Config.TXQL_MAX_RETRIES

        Returns:
            The decoded JSON payload (or raw text when the body is not JSON)
        """
        attempts = max_retries or self.max_retries
        question = question.strip()
        logger.info(f"[TXQL] endpoint={self.api_url} session={session_id} timeout={self.timeout:g}s "
                    f"retries={attempts}")

        last_error: Optional[BackendUnavailable] = None
        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                payload = self._post(question, session_id)
            except BackendRejected as e:
                logger.error(f"[TXQL] rejected on attempt {attempt}: {e}")
                e.friendly_message = friendly_txql_error(e, self.api_url, self.timeout)
                raise
            except BackendUnavailable as e:
                last_error = e
                elapsed = time.monotonic() - started
                logger.warning(f"[TXQL] attempt {attempt}/{attempts} failed ({e.reason}) after {elapsed:.1f}s: {e}")
                if attempt < attempts:
                    delay = self.backoff_delay(attempt)
                    logger.info(f"[TXQL] retrying in {delay:g}s")
                    self._sleep(delay)
                continue

            keys = list(payload.keys()) if isinstance(payload, dict) else type(payload).__name__
            logger.info(f"[TXQL] response received on attempt {attempt}: {keys}")
            return payload

        logger.error(f"[TXQL] all {attempts} attempts failed: {last_error}")
        last_error.friendly_message = friendly_txql_error(last_error, self.api_url, self.timeout)
        raise last_error
