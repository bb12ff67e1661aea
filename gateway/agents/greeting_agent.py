"""Greeting Agent: canned replies to hellos, no backend involved."""
from typing import Any, Dict

from .base_agent import BaseAgent
from ..nlu.route_selector import greeting_response
from ..schemas.io_models import AgentResult, RouteDecision


class GreetingAgent(BaseAgent):
    name = "greeting"

    def handle(self, decision: RouteDecision, session: Dict[str, Any] = None) -> AgentResult:
        return self._ok(greeting_response())
