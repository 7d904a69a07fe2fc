import copy
import logging
import threading

from financebuddy.graph.state import TRIAGE_AGENT_ID, Agent

logger = logging.getLogger(__name__)

_DEFAULT_ROSTER: list[Agent] = [
    {
        "id": TRIAGE_AGENT_ID,
        "display_name": "Personal Manager",
        "description": "Main interface and agent manager",
        "role": "triage",
        "enabled": True,
        "status": "active",
    },
    {
        "id": "expense-agent",
        "display_name": "Expense Specialist",
        "description": "Expense tracking and analysis expert",
        "role": "specialist",
        "enabled": True,
        "status": "active",
    },
    {
        "id": "savings-agent",
        "display_name": "Savings Specialist",
        "description": "Savings optimization and strategy expert",
        "role": "specialist",
        "enabled": True,
        "status": "active",
    },
    {
        "id": "goals-agent",
        "display_name": "Goals Specialist",
        "description": "Financial goal setting and tracking expert",
        "role": "specialist",
        "enabled": True,
        "status": "active",
    },
    {
        "id": "investment-agent",
        "display_name": "Investment Specialist",
        "description": "Investment advisory and portfolio management expert",
        "role": "specialist",
        "enabled": True,
        "status": "active",
    },
]


QUICK_SUGGESTIONS: list[dict] = [
    {"text": "Analyse my spending from last month", "agent_id": "expense-agent", "category": "Expenses"},
    {"text": "Investment recommendations for my profile", "agent_id": "investment-agent", "category": "Investments"},
    {"text": "How do I build an efficient budget?", "agent_id": TRIAGE_AGENT_ID, "category": "Budget"},
    {"text": "Help me define my financial goals", "agent_id": "goals-agent", "category": "Goals"},
    {"text": "Strategies to grow my savings", "agent_id": "savings-agent", "category": "Savings"},
    {"text": "How do I build my emergency savings?", "agent_id": "savings-agent", "category": "Emergency"},
    {"text": "Full review of my investment portfolio", "agent_id": "investment-agent", "category": "Portfolio"},
    {"text": "Strategy to pay off my debts, tracking every expense", "agent_id": "expense-agent", "category": "Debt"},
]


class AgentNotFoundError(KeyError):
    pass


class AgentRegistry:
    """Roster of dispatch agents and their enabled/status flags.

    The triage agent is the fallback for every disabled specialist, so
    set_enabled() refuses to change it regardless of the caller.
    """

    def __init__(self, roster: list[Agent] | None = None) -> None:
        agents = copy.deepcopy(roster if roster is not None else _DEFAULT_ROSTER)
        triage = [a for a in agents if a["role"] == "triage"]
        if len(triage) != 1:
            raise ValueError(f"Roster needs exactly one triage agent, got {len(triage)}")
        triage[0]["enabled"] = True
        self._agents: dict[str, Agent] = {a["id"]: a for a in agents}
        self._triage_id = triage[0]["id"]
        # processing counts per agent; one agent can serve several conversations
        self._in_flight: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def triage_agent_id(self) -> str:
        return self._triage_id

    def list_agents(self) -> list[Agent]:
        with self._lock:
            return [dict(a) for a in self._agents.values()]

    def get(self, agent_id: str) -> Agent:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise AgentNotFoundError(agent_id)
            return dict(agent)

    def is_enabled(self, agent_id: str) -> bool:
        with self._lock:
            agent = self._agents.get(agent_id)
            return bool(agent and agent["enabled"])

    def set_enabled(self, agent_id: str, enabled: bool) -> dict:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise AgentNotFoundError(agent_id)
            if agent["role"] == "triage":
                logger.info("Ignoring request to toggle triage agent %s", agent_id)
                return {"agent_id": agent_id, "enabled": True, "changed": False}
            if agent["enabled"] == enabled:
                return {"agent_id": agent_id, "enabled": enabled, "changed": False}
            agent["enabled"] = enabled
            if self._in_flight.get(agent_id, 0) == 0:
                agent["status"] = "active" if enabled else "inactive"
            logger.info("Agent %s %s", agent_id, "enabled" if enabled else "disabled")
            return {"agent_id": agent_id, "enabled": enabled, "changed": True}

    def mark_processing(self, agent_id: str) -> None:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return
            self._in_flight[agent_id] = self._in_flight.get(agent_id, 0) + 1
            agent["status"] = "processing"

    def release(self, agent_id: str) -> None:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return
            remaining = max(self._in_flight.get(agent_id, 0) - 1, 0)
            self._in_flight[agent_id] = remaining
            if remaining == 0:
                agent["status"] = "active" if agent["enabled"] else "inactive"

    def suggestions(self) -> list[dict]:
        """Quick prompts for the chat panel, minus those aimed at disabled agents."""
        return [dict(s) for s in QUICK_SUGGESTIONS if self.is_enabled(s["agent_id"])]
