"""BaseAgent interface for all agents."""
from abc import ABC, abstractmethod
from typing import Any, Dict

from ..app.errors import GatewayError
from ..schemas.io_models import AgentResult, RouteDecision
from ..utils.logger import get_logger

logger = get_logger("agents")


class BaseAgent(ABC):
    name: str = "base"

    @abstractmethod
    def handle(self, decision: RouteDecision, session: Dict[str, Any]) -> AgentResult:
        """Answer one routed question. Failures come back as data, not exceptions."""
        ...

    def _ok(self, answer: str, **extras) -> AgentResult:
        return AgentResult(system=self.name, answer=answer, **extras)

    def _fail(self, error: GatewayError, **extras) -> AgentResult:
        logger.warning(f"[{self.name.upper()}] {type(error).__name__}: {error}")
        return AgentResult(system=self.name, success=False, error=str(error),
                           friendly_error=error.friendly_message, **extras)
