"""Rule-based single-label intent classifier for call-analytics questions."""
from typing import Dict, List, Optional, Tuple

from ..schemas.io_models import Intent
from ..utils.logger import get_logger
from .rules import INTENT_KEYWORDS, count_matches

logger = get_logger("nlu.intent")


class IntentClassifier:
    def __init__(self, mapping: Dict[str, Tuple[int, List[str]]] = None):
        # intent -> (priority, keywords)
        self.mapping = mapping or INTENT_KEYWORDS

    def scores(self, text: str) -> Dict[str, int]:
        return {intent: count_matches(text, kws) for intent, (_, kws) in self.mapping.items()}

    def classify(self, text: str) -> Optional[Intent]:
        """Highest keyword count wins; priority breaks ties. None when nothing matched."""
        scores = self.scores(text)
        ranked = sorted(scores.items(), key=lambda item: (-item[1], -self.mapping[item[0]][0]))
        top_intent, top_score = ranked[0]
        logger.info(f"[ROUTER] intent scores {scores}")
        if top_score == 0:
            return None
        return Intent(top_intent)
