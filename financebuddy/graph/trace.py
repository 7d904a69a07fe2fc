import datetime

from financebuddy.graph.state import TRIAGE_AGENT_ID, USER, RoutingStep, StepType


def make_step(
    index: int,
    from_agent: str,
    to_agent: str,
    content: str,
    step_type: StepType,
    metadata: dict | None = None,
) -> RoutingStep:
    return {
        "id": str(index),
        "from_agent": from_agent,
        "to_agent": to_agent,
        "content": content,
        "timestamp": datetime.datetime.utcnow().isoformat(),
        "step_type": step_type,
        "metadata": metadata or {},
    }


def intake_step(utterance: str) -> RoutingStep:
    """Every trace opens with the user's utterance reaching the triage agent."""
    return make_step(1, USER, TRIAGE_AGENT_ID, utterance, "processing")
