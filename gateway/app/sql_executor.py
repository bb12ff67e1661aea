#!/usr/bin/env python3
"""
Query executor adapter.

A 4xx answer is a failed query, returned as a QueryResult. A 5xx answer or a
network failure means the executor itself is unavailable and raises.
"""

from typing import Any, Optional

import requests

from .config import Config
from .errors import BackendUnavailable
from .txql_client import connection_reason
from ..schemas.io_models import QueryResult
from ..utils.logger import get_logger
from ..utils.security import mask_secret

logger = get_logger("executor")


def _error_text(data: Any) -> str:
    if isinstance(data, dict):
        return data.get("error") or data.get("message") or "Unknown error"
    return "Unknown error"


class SqlExecutor:
    """Runs SQL against the practice database behind the executor service."""

    def __init__(self, url: str = None, key: str = None, auth: str = None, timeout: float = None):
        self.url = url or Config.QUERY_EXEC_URL
        self.key = key if key is not None else Config.QUERY_EXEC_KEY
        self.auth = auth if auth is not None else Config.QUERY_EXEC_AUTH
        self.timeout = timeout or Config.QUERY_EXEC_TIMEOUT_SECONDS

    def execute(self, sql: str, custom_key: Optional[str] = None) -> QueryResult:
        key = custom_key or self.key
        logger.info(f"[SQL] executing against {self.url} with {'custom' if custom_key else 'default'} "
                    f"key {mask_secret(key)}:\n{sql}")
        try:
            response = requests.post(
                self.url,
                headers={"Authorization": self.auth, "Content-Type": "application/json"},
                json={"key": key, "query": sql.strip()},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            reason = connection_reason(e)
            logger.error(f"[SQL] executor unreachable ({reason}): {e}")
            raise BackendUnavailable(f"Query executor request failed: {e}", reason,
                                     "The query execution service is unavailable. Please try again shortly.")

        if response.status_code >= 500:
            logger.error(f"[SQL] executor server error {response.status_code}")
            raise BackendUnavailable(f"Query executor server error ({response.status_code})",
                                     BackendUnavailable.SERVER,
                                     "The query execution service is unavailable. Please try again shortly.")

        try:
            data = response.json()
        except ValueError:
            data = response.text

        if response.status_code >= 400:
            logger.error(f"[SQL] execution failed with status {response.status_code}: {data}")
            return QueryResult(success=False,
                               error=f"Query execution failed ({response.status_code}): {_error_text(data)}",
                               status_code=response.status_code, response_data=data)

        rows = data.get("data") if isinstance(data, dict) and "data" in data else data
        if not isinstance(rows, list):
            # Anything but a list of rows is an empty result set
            logger.warning(f"[SQL] execution returned no row list: {str(data)[:200]}")
            return QueryResult(success=True, rows=[], response_data=data)
        logger.info(f"[SQL] execution successful, {len(rows)} rows")
        return QueryResult(success=True, rows=rows, response_data=None)
