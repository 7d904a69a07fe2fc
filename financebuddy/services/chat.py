import datetime
import logging
import uuid

from financebuddy.graph.agents import AgentRegistry
from financebuddy.graph.graph import compile_graph, run_dispatch
from financebuddy.graph.state import GUARDRAIL_ID, ChatMessage, RoutingStep
from financebuddy.services.conversations import ConversationManager
from financebuddy.services.profile import UserContextProvider

logger = logging.getLogger(__name__)


class ConversationBusyError(RuntimeError):
    pass


class ChatDispatcher:
    """Chat-panel channel: one dispatch at a time per conversation."""

    def __init__(
        self,
        registry: AgentRegistry,
        manager: ConversationManager,
        context_provider: UserContextProvider,
        latency: tuple[float, float] | None = None,
    ) -> None:
        self._graph = compile_graph(registry, latency)
        self._manager = manager
        self._context_provider = context_provider
        self._in_flight: set[str] = set()

    def is_busy(self, conversation_id: str) -> bool:
        return conversation_id in self._in_flight

    async def dispatch_chat(
        self, utterance: str, conversation_id: str | None = None
    ) -> tuple[ChatMessage, list[RoutingStep]]:
        if not utterance or not utterance.strip():
            raise ValueError("Message must not be empty")
        conversation_id = conversation_id or self._manager.active_conversation_id
        if conversation_id in self._in_flight:
            raise ConversationBusyError(conversation_id)
        # raises ConversationNotFoundError before anything is recorded
        self._manager.get(conversation_id)

        self._in_flight.add(conversation_id)
        try:
            await self._manager.append_message(
                conversation_id,
                {
                    "id": f"user-{uuid.uuid4().hex[:12]}",
                    "content": utterance,
                    "sender": "user",
                    "timestamp": datetime.datetime.utcnow().isoformat(),
                    "guardrail_triggered": False,
                },
            )

            state = await run_dispatch(
                self._graph, utterance, self._context_provider.get_context()
            )
            trace = state["routing_trace"]
            triggered = bool(state["guardrail"].get("triggered"))
            classification = state["classification"]

            reply: ChatMessage = {
                "id": f"agent-{uuid.uuid4().hex[:12]}",
                "content": state["response"],
                "sender": "agent",
                "timestamp": datetime.datetime.utcnow().isoformat(),
                "routing_trace": trace,
                "guardrail_triggered": triggered,
            }
            if triggered:
                reply["agent_id"] = GUARDRAIL_ID
            else:
                reply["intent"] = classification["intent"]
                reply["confidence"] = classification["confidence"]
                reply["agent_id"] = classification["target_agent"]

            await self._manager.append_message(conversation_id, reply)
            return reply, trace
        finally:
            self._in_flight.discard(conversation_id)
