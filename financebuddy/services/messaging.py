"""
Messaging channel (WhatsApp).

Incoming texts go through the relevance guardrail first, then a small
keyword grammar (expense, report, goal, investment, insight). Replies are
built from the sender's financial context only; nothing here mutates
conversation state.
"""

import datetime
import logging
import re
from typing import Literal, TypedDict

from financebuddy.config import ALLOWED_NUMBERS
from financebuddy.graph import guardrail
from financebuddy.graph.state import RoutingStep, UserContext
from financebuddy.graph.synthesizer import first_name
from financebuddy.rules import contains_any, load_rules, normalize
from financebuddy.services.profile import UserContextProvider
from financebuddy.services.transport import TransportSender

logger = logging.getLogger(__name__)

# 1,500 and 1,234.56 use thousands separators; 12,50 is a decimal comma
_AMOUNT_RE = re.compile(
    r"(?:R\$|\$|€|£)?\s?"
    r"(?:(?P<grouped>\d{1,3}(?:,\d{3})+(?!\d)(?:\.\d{1,2}(?!\d))?)"
    r"|(?P<plain>\d+(?:[.,]\d{1,2}(?!\d))?))"
)
_CURRENCY_PREFIX = {"BRL": "R$ ", "EUR": "€", "GBP": "£", "USD": "$"}
_DESCRIPTION_MIN_LENGTH = 3

HELP_MESSAGE = """🤖 *Finance Buddy Assistant*

I can help you with:

💰 *Track Expenses:*
"I spent $50 on groceries"
"Paid $30 for gas"

📊 *Get Reports:*
"Show me my spending report"
"Monthly summary"

🎯 *Check Goals:*
"Goal progress"
"What is my target status?"

📈 *Investment Updates:*
"Portfolio overview"
"How are my investments?"

💡 *Get Insights:*
"Give me financial advice"
"What do you recommend?"

Just send a message in natural language! 🚀"""

CLARIFICATION_MESSAGE = 'I need more details to record your expense. Try: "I spent $50 on groceries"'
APOLOGY_MESSAGE = "Sorry, I encountered an error processing your request. Please try again."


class Command(TypedDict):
    type: Literal["expense", "report", "goal", "investment", "insight"]
    action: str
    data: dict


class Reply(TypedDict):
    to: str
    message: str
    type: Literal["text"]
    command: str | None
    guardrail_triggered: bool
    routing_trace: list[RoutingStep]


# ── pure extraction ──────────────────────────────────────────────────────


def extract_amount(text: str) -> float | None:
    match = _AMOUNT_RE.search(text or "")
    if match is None:
        return None
    if match.group("grouped"):
        return float(match.group("grouped").replace(",", ""))
    return float(match.group("plain").replace(",", "."))


def extract_category(text: str, categories: dict[str, list[str]] | None = None) -> str:
    categories = categories if categories is not None else load_rules()["messaging"]["categories"]
    lowered = normalize(text)
    for category, keywords in categories.items():
        if contains_any(lowered, keywords):
            return category
    return "other"


def extract_description(text: str, stop_words: list[str] | None = None) -> str:
    stop_words = stop_words if stop_words is not None else load_rules()["messaging"]["stop_words"]
    cleaned = _AMOUNT_RE.sub(" ", text or "")
    if stop_words:
        pattern = r"\b(?:" + "|".join(re.escape(w) for w in stop_words) + r")\b"
        cleaned = re.sub(pattern, " ", cleaned, flags=re.IGNORECASE)
    cleaned = " ".join(cleaned.split())
    return cleaned if len(cleaned) > _DESCRIPTION_MIN_LENGTH else ""


def parse_command(text: str, command_rules: list[dict] | None = None) -> Command | None:
    rules = command_rules if command_rules is not None else load_rules()["messaging"]["commands"]
    lowered = normalize(text)
    for rule in rules:
        if not contains_any(lowered, rule["keywords"]):
            continue
        if rule.get("requires") and not contains_any(lowered, rule["requires"]):
            continue
        data: dict = {}
        if rule["type"] == "expense":
            data = {
                "amount": extract_amount(text),
                "category": extract_category(text),
                "description": extract_description(text),
            }
        return {"type": rule["type"], "action": rule["action"], "data": data}
    return None


# ── command execution ────────────────────────────────────────────────────


def format_money(amount: float, user_context: UserContext | None) -> str:
    currency = (user_context or {}).get("preferred_currency", "USD")
    prefix = _CURRENCY_PREFIX.get(currency, f"{currency} ")
    return f"{prefix}{amount:,.2f}"


def _spending(ctx: UserContext) -> tuple[float, float]:
    income = float(ctx.get("monthly_income", 0) or 0)
    spent = income * float(ctx.get("expenses_ratio_percent", 0) or 0) / 100
    return spent, income - spent


def _handle_expense(command: Command, ctx: UserContext) -> str:
    data = command.get("data") or {}
    amount = data.get("amount")
    if amount is None:
        return CLARIFICATION_MESSAGE
    return (
        "✅ Expense recorded!\n"
        f"💰 Amount: {format_money(amount, ctx)}\n"
        f"📁 Category: {data.get('category') or 'other'}\n"
        f"📝 Description: {data.get('description') or 'No description'}\n\n"
        'Type "report" to see your current month summary.'
    )


def _handle_report(command: Command, ctx: UserContext) -> str:
    month = datetime.date.today().strftime("%B %Y")
    spent, remaining = _spending(ctx)
    return (
        f"📊 *{month} Financial Summary*\n\n"
        f"💸 *Total Spending:* {format_money(spent, ctx)}\n"
        f"💰 *Remaining:* {format_money(remaining, ctx)}\n"
        f"📈 *Expenses / income:* {ctx.get('expenses_ratio_percent', 0)}%\n"
        f"🎯 *Savings progress:* {ctx.get('savings_progress_percent', 0)}%\n\n"
        'Need help optimizing your spending? Type "insight" for personalized advice!'
    )


def _handle_goal(command: Command, ctx: UserContext) -> str:
    progress = float(ctx.get("savings_progress_percent", 0) or 0)
    income = float(ctx.get("monthly_income", 0) or 0)
    emergency_target = income * 6
    status = "On track! ✅" if progress >= 50 else "Behind schedule 📈"
    return (
        "🎯 *Your Financial Goals Status*\n\n"
        "🚨 *Emergency Fund*\n"
        f"Target: {format_money(emergency_target, ctx)} (6 months of income)\n"
        f"Current: {format_money(emergency_target * progress / 100, ctx)}\n"
        f"Progress: {progress:g}%\n"
        f"Status: {status}\n\n"
        f"💡 *Tip:* Saving {format_money(income * 0.2, ctx)}/month keeps you at the 20% target."
    )


_ALLOCATION_BY_RISK = {
    "conservative": (("Fixed income", 70), ("Stocks", 20), ("Cash", 10)),
    "moderate": (("Fixed income", 50), ("Stocks", 40), ("Cash", 10)),
    "aggressive": (("Stocks", 70), ("Fixed income", 20), ("Alternatives", 10)),
}


def _handle_investment(command: Command, ctx: UserContext) -> str:
    risk = ctx.get("risk_profile", "moderate")
    allocation = _ALLOCATION_BY_RISK.get(risk, _ALLOCATION_BY_RISK["moderate"])
    lines = "\n".join(f"• {label}: {share}%" for label, share in allocation)
    return (
        "📈 *Investment Overview*\n\n"
        f"*Risk profile:* {risk}\n"
        f"*Suggested allocation:*\n{lines}\n\n"
        'Need investment advice? Type "insight" for personalized recommendations!'
    )


def _handle_insight(command: Command, ctx: UserContext) -> str:
    tips: list[str] = []
    ratio = float(ctx.get("expenses_ratio_percent", 0) or 0)
    progress = float(ctx.get("savings_progress_percent", 0) or 0)
    income = float(ctx.get("monthly_income", 0) or 0)
    if ratio > 70:
        tips.append(f"⚠️ Expenses take {ratio:g}% of your income. Aim for 70% or less.")
    else:
        tips.append(f"✅ Expenses are under control at {ratio:g}% of your income.")
    if progress < 50:
        tips.append(f"💰 Automate a {format_money(income * 0.2, ctx)} transfer on payday.")
    else:
        tips.append("📈 You are ahead on savings. Consider investing the surplus.")
    tips.append("🔄 Review subscriptions you no longer use.")
    body = "\n".join(f"{i}. {tip}" for i, tip in enumerate(tips, start=1))
    return f"💡 *Insights for {first_name(ctx)}*\n\n{body}\n\nWant me to help with any specific area? Just ask!"


_HANDLERS = {
    "expense": _handle_expense,
    "report": _handle_report,
    "goal": _handle_goal,
    "investment": _handle_investment,
    "insight": _handle_insight,
}


def _reply(recipient: str, message: str, command: str | None = None) -> Reply:
    return {
        "to": recipient,
        "message": message,
        "type": "text",
        "command": command,
        "guardrail_triggered": False,
        "routing_trace": [],
    }


def execute_command(command: Command | None, user_context: UserContext, recipient: str) -> Reply:
    if command is None:
        return _reply(recipient, HELP_MESSAGE)
    handler = _HANDLERS.get(command["type"])
    if handler is None:
        return _reply(recipient, HELP_MESSAGE)
    return _reply(recipient, handler(command, user_context), f"{command['type']}.{command['action']}")


# ── scheduled texts ──────────────────────────────────────────────────────


def daily_update_message(user_context: UserContext) -> str:
    today = datetime.date.today().strftime("%A, %B %d, %Y")
    spent, remaining = _spending(user_context)
    return (
        f"🌅 *Good morning {first_name(user_context)}! Daily Financial Update*\n"
        f"📅 {today}\n\n"
        f"💸 *Spent this month:* {format_money(spent, user_context)}\n"
        f"🎯 *Remaining:* {format_money(remaining, user_context)}\n"
        f"📊 *Savings progress:* {user_context.get('savings_progress_percent', 0)}%\n\n"
        'Type "report" for a detailed analysis or "insight" for personalized advice!'
    )


def weekly_report_message(user_context: UserContext) -> str:
    week_ending = datetime.date.today().isoformat()
    spent, _ = _spending(user_context)
    return (
        "📊 *Weekly Financial Summary*\n\n"
        f"🗓️ *Week ending:* {week_ending}\n"
        f"💸 *Weekly spending (est.):* {format_money(spent / 4, user_context)}\n"
        f"📈 *Expenses / income:* {user_context.get('expenses_ratio_percent', 0)}%\n"
        f"🎯 *Savings progress:* {user_context.get('savings_progress_percent', 0)}%\n\n"
        "Keep up the great work! 🌟"
    )


# ── dispatcher ───────────────────────────────────────────────────────────


def extract_text_messages(payload: dict) -> list[dict]:
    """Flatten a WhatsApp Cloud webhook payload into {from, body, id} text messages."""
    messages: list[dict] = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            for message in (change.get("value") or {}).get("messages") or []:
                body = (message.get("text") or {}).get("body")
                if message.get("type", "text") != "text" or not body:
                    continue
                messages.append({"from": message.get("from", ""), "body": body, "id": message.get("id")})
    return messages


class MessagingDispatcher:
    def __init__(
        self,
        context_provider: UserContextProvider,
        sender: TransportSender | None = None,
        allowed_numbers: list[str] | None = None,
    ) -> None:
        self._context_provider = context_provider
        self._sender = sender
        self._allowed = list(ALLOWED_NUMBERS if allowed_numbers is None else allowed_numbers)

    def is_authorized(self, number: str) -> bool:
        return not self._allowed or number in self._allowed

    def dispatch_channel_message(self, raw_text: str, sender_id: str) -> Reply:
        verdict = guardrail.check(raw_text)
        if verdict.get("triggered"):
            reply = _reply(sender_id, guardrail.REFUSAL_MESSAGE)
            reply["guardrail_triggered"] = True
            reply["routing_trace"] = guardrail.refusal_trace(raw_text, verdict)
            return reply

        user_context = self._context_provider.get_context(
            self._context_provider.find_user_by_number(sender_id)
        )
        command = parse_command(raw_text)
        try:
            reply = execute_command(command, user_context, sender_id)
        except Exception as exc:
            logger.error("Executing %s for %s failed: %s", command, sender_id, exc)
            return _reply(sender_id, APOLOGY_MESSAGE)
        logger.info("Messaging command %s for %s", reply["command"] or "help", sender_id)
        return reply

    async def handle_webhook(self, payload: dict) -> dict:
        results = {"processed": 0, "skipped": 0, "sent": 0, "failed": 0}
        for message in extract_text_messages(payload):
            sender_id = message["from"]
            if not self.is_authorized(sender_id):
                logger.warning("Ignoring message from unauthorized number %s", sender_id)
                results["skipped"] += 1
                continue
            try:
                reply = self.dispatch_channel_message(message["body"], sender_id)
                results["processed"] += 1
                if self._sender is None:
                    continue
                if await self._sender.send(reply["to"], reply["message"]):
                    results["sent"] += 1
                else:
                    results["failed"] += 1
            except Exception as exc:
                logger.error("Webhook message %s from %s failed: %s", message.get("id"), sender_id, exc)
                results["failed"] += 1
        return results
