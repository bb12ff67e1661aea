#!/usr/bin/env python3
"""
AI-Voice call analytics client.

Pages through call records for a date range until a short page or the page
ceiling, and normalizes every record.
"""

from typing import Any, Dict, List

import requests

from .config import Config
from .errors import BackendRejected, BackendUnavailable, InvalidInputError
from .txql_client import connection_reason
from ..formatting.calls import build_conversation_context, normalize_call
from ..nlu.date_resolver import validate_date_format
from ..utils.logger import get_logger
from ..utils.security import mask_secret

logger = get_logger("aivoice")

DETAIL_PATH = "/api/config/get/aivoice/detail"


def extract_page_rows(data: Any) -> List[Dict[str, Any]]:
    """Rows from a page body: a bare list, or a list under content/data/items."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for field in ("content", "data", "items"):
            if isinstance(data.get(field), list):
                return data[field]
    return []


class AIVoiceClient:
    """Client for the AI-Voice call-detail API."""

    def __init__(self, base_url: str = None, license_key: str = None, bearer: str = None,
                 page_size: int = None, max_pages: int = None, timeout: float = None):
        self.base_url = (base_url or Config.AIVOICE_BASE_URL).rstrip("/")
        self.license_key = license_key if license_key is not None else Config.AIVOICE_LICENSE_KEY
        self.bearer = bearer if bearer is not None else Config.AIVOICE_BEARER
        self.page_size = page_size or Config.AIVOICE_PAGE_SIZE
        self.max_pages = max_pages or Config.AIVOICE_MAX_PAGES
        self.timeout = timeout or Config.AIVOICE_TIMEOUT_SECONDS

    @property
    def url(self) -> str:
        return self.base_url + DETAIL_PATH

    def _get_page(self, start_date: str, end_date: str, page: int) -> Any:
        try:
            response = requests.get(
                self.url,
                params={"licenseKey": self.license_key, "startDate": start_date, "endDate": end_date,
                        "size": self.page_size, "page": page},
                headers={"Authorization": f"Bearer {self.bearer}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise self._unavailable(e)

        if response.status_code == 404:
            raise BackendRejected(
                "API endpoint not found", 404,
                friendly_message=(
                    "❌ The AI Voice API endpoint was not found.\n\n"
                    f"**Endpoint:** `{self.url}`\n\n"
                    "**Possible issues:**\n"
                    "- The API endpoint may have changed\n"
                    "- The AIVOICE_BASE_URL might be incorrect\n"
                    "- The API service may be down\n\n"
                    "💡 **Action needed:** Please verify the correct API endpoint with your AI Voice service provider."))

        try:
            data = response.json()
        except ValueError:
            data = None

        if 400 <= response.status_code < 500:
            if response.status_code == 401:
                message = "Invalid authentication credentials"
            elif response.status_code == 403:
                message = "Access forbidden - check API permissions"
            elif isinstance(data, dict) and data.get("message"):
                message = data["message"]
            else:
                message = "Authentication or request error"
            raise BackendRejected(
                message, response.status_code, data,
                friendly_message=(f"❌ Error fetching call data: {message}\n\n**Status:** {response.status_code}\n\n"
                                  "💡 Please check your API credentials and permissions."))

        if response.status_code >= 500:
            message = f"Request failed with status code {response.status_code}"
            raise BackendUnavailable(
                message, BackendUnavailable.SERVER,
                friendly_message=(f"❌ Error fetching call data: {message}\n\n**Server:** {self.base_url}\n\n"
                                  "💡 Please check server logs for more details."))
        return data

    def _unavailable(self, error: requests.exceptions.RequestException) -> BackendUnavailable:
        reason = connection_reason(error)
        logger.error(f"[AIVOICE] request failed ({reason}): {error}")
        if reason == BackendUnavailable.TIMEOUT:
            friendly = (f"❌ Request timed out after {self.timeout:g} seconds.\n\n**Server:** {self.base_url}\n\n"
                        "💡 The AI Voice service may be slow or unresponsive.")
            return BackendUnavailable("Request timeout", reason, friendly)
        if reason == BackendUnavailable.DNS:
            friendly = (f"❌ Cannot resolve hostname.\n\n**Server:** {self.base_url}\n\n"
                        "💡 Please check the AIVOICE_BASE_URL configuration.")
            return BackendUnavailable("DNS resolution failed", reason, friendly)
        friendly = (f"❌ Cannot connect to the AI Voice service.\n\n**Server:** {self.base_url}\n\n"
                    "**Error:** Connection refused\n\n"
                    "💡 Please verify the AI Voice service is running and accessible.")
        return BackendUnavailable("Connection refused", reason, friendly)

    def fetch_call_details(self, start_date: str, end_date: str, include_transcript: bool = False,
                           include_audio: bool = False) -> Dict[str, Any]:
        """
        Fetch every call in [start_date, end_date].

        Returns:
            Dict with ``success``, normalized ``data``, ``rawData``, ``count``,
            a text ``summary`` and ``paginationInfo``
        """
        if not validate_date_format(start_date) or not validate_date_format(end_date):
            raise InvalidInputError(
                "Invalid date format",
                f"❌ Invalid date format. Dates must be YYYY-MM-DD.\n\nReceived:\n- Start: {start_date}\n- End: {end_date}")

        logger.info(f"[AIVOICE] fetching {start_date} to {end_date} from {self.url} "
                    f"(license {mask_secret(self.license_key, 10)})")

        raw_calls: List[Dict[str, Any]] = []
        page = 1
        pages = 0
        while True:
            rows = extract_page_rows(self._get_page(start_date, end_date, page))
            if not rows:
                break
            raw_calls.extend(rows)
            pages += 1
            logger.info(f"[AIVOICE] page {page}: {len(rows)} calls (total {len(raw_calls)})")
            if len(rows) < self.page_size:
                break
            page += 1
            if page > self.max_pages:
                logger.warning(f"[AIVOICE] reached page ceiling ({self.max_pages}), stopping")
                break

        if not raw_calls:
            logger.info("[AIVOICE] no calls found for date range")
            return {"success": True, "data": [], "rawData": [], "count": 0,
                    "summary": "No calls found for the specified date range.",
                    "paginationInfo": {"totalPages": 0, "pageSize": self.page_size, "totalRecords": 0}}

        normalized = [normalize_call(call, include_transcript, include_audio) for call in raw_calls]
        unique_keys = {call.get("licenseKey") for call in raw_calls if call.get("licenseKey")}
        logger.info(f"[AIVOICE] fetched {len(raw_calls)} calls over {pages} pages, "
                    f"{len(unique_keys)} license keys")
        return {
            "success": True,
            "data": normalized,
            "rawData": raw_calls,
            "count": len(normalized),
            "summary": build_conversation_context(normalized),
            "paginationInfo": {"totalPages": pages, "pageSize": self.page_size, "totalRecords": len(raw_calls)},
        }
