import logging

from financebuddy.graph.agents import AgentRegistry
from financebuddy.graph.state import USER, Classification, RoutingDecision
from financebuddy.graph.trace import intake_step, make_step

logger = logging.getLogger(__name__)

_FALLBACK_INTENT = "general_assistance"
_FALLBACK_CONFIDENCE = 0.75
_RESPONSE_PLACEHOLDER = "Processing your request with specialized knowledge..."


def resolve(utterance: str, classification: Classification, registry: AgentRegistry) -> RoutingDecision:
    """
    Apply agent enablement to the classifier's suggestion and build the trace.

    The target's enabled flag is read exactly once. A disabled target is
    silently rerouted to the triage agent as general assistance. The chosen
    agent is marked as processing; the caller releases it once the reply has
    been generated.
    """
    target = classification["target_agent"]
    fallback = not registry.is_enabled(target)
    if fallback:
        logger.info("Agent %s disabled, falling back to %s", target, registry.triage_agent_id)
        classification = {
            "intent": _FALLBACK_INTENT,
            "target_agent": registry.triage_agent_id,
            "confidence": _FALLBACK_CONFIDENCE,
        }
        target = registry.triage_agent_id

    intent = classification["intent"]
    confidence = classification["confidence"]
    role = registry.get(target)["role"]
    trace = [
        intake_step(utterance),
        make_step(
            2,
            registry.triage_agent_id,
            target,
            f"Routing {intent} query to {role} agent",
            "routing",
            {"intent": intent, "confidence": confidence},
        ),
        make_step(3, target, USER, _RESPONSE_PLACEHOLDER, "response"),
    ]
    registry.mark_processing(target)
    return {"classification": classification, "routing_trace": trace, "fallback": fallback}
