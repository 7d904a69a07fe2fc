import asyncio

from financebuddy.graph.synthesizer import first_name, generate_response, render_response

CONTEXT = {
    "name": "Ana Souza",
    "monthly_income": 6500,
    "risk_profile": "moderate",
    "savings_progress_percent": 30,
    "expenses_ratio_percent": 64,
    "preferred_currency": "BRL",
}


def test_low_savings_progress_gets_improvement_variant():
    text = render_response("savings_optimization", CONTEXT)
    assert text.startswith("Ana, looking at your data")
    assert "30%" in text
    # 20% of 6500
    assert "1,300.00/month" in text


def test_high_savings_progress_gets_congratulations():
    text = render_response("savings_optimization", {**CONTEXT, "savings_progress_percent": 80})
    assert text.startswith("Congratulations Ana!")


def test_expense_ratio_threshold():
    assert "above the healthy ceiling" in render_response(
        "expense_tracking", {**CONTEXT, "expenses_ratio_percent": 75}
    )
    assert "under control at 64%" in render_response("expense_tracking", CONTEXT)
    # exactly 70 is still under control
    assert "under control" in render_response(
        "expense_tracking", {**CONTEXT, "expenses_ratio_percent": 70}
    )


def test_investment_advice_follows_risk_profile():
    assert "conservative profile" in render_response(
        "investment_advice", {**CONTEXT, "risk_profile": "conservative"}
    )
    assert "50/50" in render_response("investment_advice", CONTEXT)
    assert "aggressive profile" in render_response(
        "investment_advice", {**CONTEXT, "risk_profile": "aggressive"}
    )


def test_budget_plan_splits_income():
    text = render_response("budget_planning", CONTEXT)
    assert "3,250.00" in text
    assert "1,950.00" in text
    assert "1,300.00" in text


def test_goal_and_general_templates():
    assert "Emergency fund" in render_response("goal_tracking", CONTEXT)
    assert render_response("general_assistance", CONTEXT).startswith("Ana, I can help")
    assert render_response("not-an-intent", CONTEXT).startswith("Ana, I can help")


def test_missing_context_uses_fallback_name():
    assert first_name(None) == "there"
    assert first_name({"name": "  "}) == "there"
    assert render_response("goal_tracking", None).startswith("there,")


def test_generate_response_without_latency():
    text = asyncio.run(generate_response("savings_optimization", CONTEXT, latency=(0, 0)))
    assert text == render_response("savings_optimization", CONTEXT)


def test_generate_response_survives_bad_context():
    # a non-numeric income makes _number fall back to zero rather than raise
    text = asyncio.run(
        generate_response("budget_planning", {"name": "Ana", "monthly_income": "lots"}, latency=(0, 0))
    )
    assert "0.00" in text
