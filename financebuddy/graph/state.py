from typing import Literal, TypedDict

Intent = Literal[
    "expense_tracking",
    "investment_advice",
    "budget_planning",
    "goal_tracking",
    "savings_optimization",
    "general_assistance",
]
RiskProfile = Literal["conservative", "moderate", "aggressive"]
StepType = Literal["processing", "routing", "response", "guardrail"]

TRIAGE_AGENT_ID = "triage-agent"
GUARDRAIL_ID = "relevance-guardrail"
USER = "user"


class Agent(TypedDict):
    id: str
    display_name: str
    description: str
    role: Literal["triage", "specialist"]
    enabled: bool
    status: Literal["active", "processing", "inactive"]


class RoutingStep(TypedDict):
    id: str
    from_agent: str
    to_agent: str
    content: str
    timestamp: str
    step_type: StepType
    # {intent, confidence} on routing steps, {guardrail_reason} on refusals
    metadata: dict


class Classification(TypedDict):
    intent: Intent
    target_agent: str
    confidence: float


class RoutingDecision(TypedDict):
    classification: Classification
    routing_trace: list[RoutingStep]
    fallback: bool


class GuardrailVerdict(TypedDict, total=False):
    triggered: bool
    reason: str
    keyword: str


class UserContext(TypedDict, total=False):
    name: str
    monthly_income: float
    risk_profile: RiskProfile
    savings_progress_percent: float
    expenses_ratio_percent: float
    preferred_currency: str


class ChatMessage(TypedDict, total=False):
    id: str
    content: str
    sender: Literal["user", "agent"]
    timestamp: str
    routing_trace: list[RoutingStep]
    guardrail_triggered: bool
    intent: str
    confidence: float
    agent_id: str


class Conversation(TypedDict):
    id: str
    title: str
    messages: list[ChatMessage]
    created_at: str
    last_activity: str


class DispatchState(TypedDict, total=False):
    utterance: str
    user_context: UserContext
    classification: Classification
    guardrail: GuardrailVerdict
    routing_trace: list[RoutingStep]
    response: str
