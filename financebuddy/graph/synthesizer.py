import asyncio
import logging
import random

from financebuddy.config import RESPONSE_LATENCY_MAX, RESPONSE_LATENCY_MIN
from financebuddy.graph.state import UserContext

logger = logging.getLogger(__name__)

_NAME_FALLBACK = "there"
_SAVINGS_TARGET_SHARE = 0.20
_SAVINGS_PROGRESS_THRESHOLD = 50
_EXPENSES_RATIO_THRESHOLD = 70

_SAVINGS_IMPROVEMENT = """{name}, looking at your data you are saving {current}% of the recommended amount. To improve, I suggest:

💰 Target: {recommended}/month (20% of your income)
🤖 Automate transfers on payday
📊 Review non-essential spending
🎯 Create specific goals

Want me to analyse a specific spending category?"""

_SAVINGS_DOING_WELL = """Congratulations {name}! 🎉 You are saving {current}% of the recommended amount, beating the target!

📈 Consider investing the surplus
🏦 Diversify into fixed income such as CDBs or treasury bonds
💼 Evaluate investment funds

I can suggest specific options based on your risk profile!"""

_EXPENSES_TOO_HIGH = """{name}, your expenses take {ratio}% of your income, above the healthy ceiling of 70%.

📋 Categorize every expense
✂️ Identify superfluous spending
📊 Follow the 50/30/20 rule: 50% needs, 30% wants, 20% savings
🔄 Cancel subscriptions you no longer use

Want help building a spending reduction plan?"""

_EXPENSES_CONTROLLED = """Well done {name}! 👏 Your expenses are under control at {ratio}% of your income.

✅ Keep monitoring them
💰 Consider increasing your savings
📈 Explore investment opportunities
🎯 Set long-term goals

I can help you optimise your finances even further!"""

_INVESTMENT_BY_RISK = {
    "conservative": """{name}, for your conservative profile I recommend 70% fixed income and 30% variable income.

🛡️ Inflation-linked treasury bonds for protection
🏦 CDBs from large banks with good liquidity
📄 Conservative fixed-income funds

I can detail specific options whenever you like!""",
    "moderate": """{name}, for your moderate profile I recommend a 50/50 split between fixed and variable income.

🌎 Diversify between domestic and international stocks
📊 Broad index ETFs
🏢 Real estate funds for diversification

I can detail specific options whenever you like!""",
    "aggressive": """{name}, for your aggressive profile I recommend 30% fixed income and 70% variable income.

🚀 Growth stocks and small caps
🌍 Emerging-market ETFs
🪙 Crypto assets (5% of the portfolio at most)

I can detail specific options whenever you like!""",
}

_GOAL_CHECKLIST = """{name}, clear goals are fundamental! Based on your situation:

🚨 Emergency fund: 6 months of expenses (priority #1)
🏖️ Retirement: 25x your annual expenses
🎯 Custom goals: travel, a home, education
📅 A deadline for each goal

Want me to calculate amounts and deadlines for a specific goal?"""

_BUDGET_PLAN = """{name}, a simple budget starts with the 50/30/20 rule applied to your income:

🏠 Needs (50%): {needs}
🎉 Wants (30%): {wants}
💰 Savings (20%): {savings}

📋 Track every expense for one month before adjusting the split."""

_GENERAL_SUMMARY = """{name}, I can help with a range of financial questions! 💡

📊 Personalised analysis based on your real data
💰 Savings strategies and spending control
📈 Investment suggestions for your profile
🎯 Goal and retirement planning
📱 Practical day-to-day tips

What would you like to know?"""


def _number(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _amount(value: float) -> str:
    return f"{value:,.2f}"


def first_name(user_context: UserContext | None) -> str:
    name = ((user_context or {}).get("name") or "").strip()
    return name.split()[0] if name else _NAME_FALLBACK


def render_response(intent: str, user_context: UserContext | None) -> str:
    """Pick and fill the template for an intent; unknown intents get the general summary."""
    ctx = user_context or {}
    name = first_name(ctx)
    income = _number(ctx.get("monthly_income"))

    if intent == "savings_optimization":
        progress = _number(ctx.get("savings_progress_percent"))
        if progress < _SAVINGS_PROGRESS_THRESHOLD:
            return _SAVINGS_IMPROVEMENT.format(
                name=name,
                current=round(progress),
                recommended=_amount(income * _SAVINGS_TARGET_SHARE),
            )
        return _SAVINGS_DOING_WELL.format(name=name, current=round(progress))

    if intent == "expense_tracking":
        ratio = _number(ctx.get("expenses_ratio_percent"))
        template = _EXPENSES_TOO_HIGH if ratio > _EXPENSES_RATIO_THRESHOLD else _EXPENSES_CONTROLLED
        return template.format(name=name, ratio=round(ratio))

    if intent == "investment_advice":
        risk = str(ctx.get("risk_profile") or "moderate").lower()
        template = _INVESTMENT_BY_RISK.get(risk, _INVESTMENT_BY_RISK["moderate"])
        return template.format(name=name)

    if intent == "goal_tracking":
        return _GOAL_CHECKLIST.format(name=name)

    if intent == "budget_planning":
        return _BUDGET_PLAN.format(
            name=name,
            needs=_amount(income * 0.5),
            wants=_amount(income * 0.3),
            savings=_amount(income * 0.2),
        )

    return _GENERAL_SUMMARY.format(name=name)


async def generate_response(
    intent: str,
    user_context: UserContext | None,
    latency: tuple[float, float] | None = None,
) -> str:
    """
    Produce the reply text for a resolved intent.

    Emulates a remote model call with a random delay drawn from `latency`
    (defaults to RESPONSE_LATENCY_MIN..RESPONSE_LATENCY_MAX). A real model
    client can replace render_response() behind this coroutine.
    """
    low, high = latency or (RESPONSE_LATENCY_MIN, RESPONSE_LATENCY_MAX)
    if high > 0:
        await asyncio.sleep(random.uniform(max(low, 0.0), high))
    try:
        return render_response(intent, user_context)
    except Exception as exc:
        logger.error("Response template for %s failed: %s", intent, exc)
        return _GENERAL_SUMMARY.format(name=_NAME_FALLBACK)
