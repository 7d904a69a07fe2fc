import logging

from langgraph.graph import END, START, StateGraph

from financebuddy.graph import guardrail
from financebuddy.graph.agents import AgentRegistry
from financebuddy.graph.router import classify
from financebuddy.graph.routing import resolve
from financebuddy.graph.state import DispatchState, UserContext
from financebuddy.graph.synthesizer import generate_response

logger = logging.getLogger(__name__)


def compile_graph(registry: AgentRegistry, latency: tuple[float, float] | None = None):
    """
    Build the dispatch pipeline:

        classify -> check_guardrail -> (refuse | route -> respond)

    The guardrail edge is the only branch; a refusal goes straight to END so
    the routing policy and response generator never see that turn.
    """

    def classify_node(state: DispatchState) -> dict:
        return {"classification": classify(state["utterance"])}

    def guardrail_node(state: DispatchState) -> dict:
        return {"guardrail": guardrail.check(state["utterance"])}

    def refuse_node(state: DispatchState) -> dict:
        return {
            "routing_trace": guardrail.refusal_trace(state["utterance"], state["guardrail"]),
            "response": guardrail.REFUSAL_MESSAGE,
        }

    def route_node(state: DispatchState) -> dict:
        decision = resolve(state["utterance"], state["classification"], registry)
        return {
            "classification": decision["classification"],
            "routing_trace": decision["routing_trace"],
        }

    async def respond_node(state: DispatchState) -> dict:
        classification = state["classification"]
        try:
            text = await generate_response(
                classification["intent"], state.get("user_context"), latency=latency
            )
        finally:
            registry.release(classification["target_agent"])
        return {"response": text}

    def after_guardrail(state: DispatchState) -> str:
        return "refuse" if state["guardrail"].get("triggered") else "route"

    graph = StateGraph(DispatchState)

    graph.add_node("classify", classify_node)
    graph.add_node("check_guardrail", guardrail_node)
    graph.add_node("refuse", refuse_node)
    graph.add_node("route", route_node)
    graph.add_node("respond", respond_node)

    graph.add_edge(START, "classify")
    graph.add_edge("classify", "check_guardrail")
    graph.add_conditional_edges("check_guardrail", after_guardrail, {"refuse": "refuse", "route": "route"})
    graph.add_edge("refuse", END)
    graph.add_edge("route", "respond")
    graph.add_edge("respond", END)

    return graph.compile()


async def run_dispatch(compiled, utterance: str, user_context: UserContext) -> DispatchState:
    final_state = await compiled.ainvoke({"utterance": utterance, "user_context": user_context})
    classification = final_state.get("classification", {})
    logger.info(
        "Dispatched utterance: guardrail=%s intent=%s target=%s confidence=%s",
        final_state["guardrail"].get("triggered", False),
        classification.get("intent"),
        classification.get("target_agent"),
        classification.get("confidence"),
    )
    return final_state
