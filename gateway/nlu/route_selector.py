"""Decides which handler a question goes to.

Checks run in a fixed order and the first match short-circuits:
license-key prefix split, greeting, prefixed query, call direction,
then keyword-overlap scoring between the two backends.
"""
import random
from typing import Any, Dict, Tuple

from ..schemas.io_models import Backend, RouteDecision, RouteKind
from ..utils.logger import get_logger
from ..utils.security import mask_secret
from .entity_extractor import split_license_key_prefix
from .rules import (AIVOICE_KEYWORDS, GREETING_RESPONSES, TXQL_KEYWORDS, count_matches,
                    is_call_direction_query, is_greeting)

logger = get_logger("nlu.router")


def greeting_response() -> str:
    return random.choice(GREETING_RESPONSES)


class RouteSelector:
    def backend_scores(self, query: str) -> Tuple[int, int]:
        return count_matches(query, AIVOICE_KEYWORDS), count_matches(query, TXQL_KEYWORDS)

    def select_backend(self, query: str) -> Backend:
        aivoice_score, txql_score = self.backend_scores(query)
        # Ties, including 0-0, stay on txql
        backend = Backend.aivoice if aivoice_score > txql_score else Backend.txql
        logger.info(f"[ROUTER] scores aivoice={aivoice_score} txql={txql_score} -> {backend.value}")
        return backend

    def route(self, question: str, session: Dict[str, Any] = None) -> RouteDecision:
        license_key, query = split_license_key_prefix(question or "")
        query = (query or "").strip()

        if license_key is None and is_greeting(query):
            logger.info("[ROUTER] greeting")
            return RouteDecision(kind=RouteKind.greeting, query=query)

        if license_key is not None:
            if is_call_direction_query(query):
                backend = Backend.aivoice
            else:
                backend = self.select_backend(query)
            logger.info(f"[ROUTER] license key scoped ({mask_secret(license_key)}) -> {backend.value}")
            return RouteDecision(kind=RouteKind.license_key_scoped, backend=backend,
                                 query=query, license_key=license_key)

        if is_call_direction_query(query):
            logger.info("[ROUTER] call direction query -> aivoice")
            return RouteDecision(kind=RouteKind.direction, backend=Backend.aivoice, query=query)

        return RouteDecision(kind=RouteKind.backend, backend=self.select_backend(query), query=query)
