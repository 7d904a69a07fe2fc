"""
Relevance guardrail.

Scans the raw utterance for off-topic or prompt-probing requests. A
triggered verdict ends the turn with REFUSAL_MESSAGE; nothing downstream of
the guardrail runs for that turn.
"""

import logging

from financebuddy.graph.state import GUARDRAIL_ID, TRIAGE_AGENT_ID, USER, GuardrailVerdict, RoutingStep
from financebuddy.graph.trace import intake_step, make_step
from financebuddy.rules import load_rules, normalize

logger = logging.getLogger(__name__)

REFUSAL_MESSAGE = "🛡️ Sorry, I can only help with questions about your personal finances."


def check(utterance: str, keyword_groups: dict[str, list[str]] | None = None) -> GuardrailVerdict:
    groups = keyword_groups if keyword_groups is not None else load_rules()["guardrail"]
    text = normalize(utterance)
    for reason, keywords in groups.items():
        hit = next((kw for kw in keywords if kw.lower() in text), None)
        if hit is not None:
            logger.info("Guardrail triggered (%s) on keyword %r", reason, hit)
            return {"triggered": True, "reason": reason, "keyword": hit}
    return {"triggered": False}


def refusal_trace(utterance: str, verdict: GuardrailVerdict) -> list[RoutingStep]:
    return [
        intake_step(utterance),
        make_step(2, TRIAGE_AGENT_ID, GUARDRAIL_ID, "Checking message relevance...", "routing"),
        make_step(
            3,
            GUARDRAIL_ID,
            USER,
            REFUSAL_MESSAGE,
            "guardrail",
            {"guardrail_reason": verdict.get("reason", "relevance")},
        ),
    ]
