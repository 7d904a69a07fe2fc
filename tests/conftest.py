import os
import tempfile

# Settings are read at import time, so they must be in place before any
# financebuddy module is imported.
_DB_DIR = tempfile.mkdtemp(prefix="financebuddy-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/financebuddy.db"
os.environ["RESPONSE_LATENCY_MIN"] = "0"
os.environ["RESPONSE_LATENCY_MAX"] = "0"
os.environ["DIGEST_ENABLED"] = "false"
os.environ["ALLOWED_NUMBERS"] = ""
os.environ["WHATSAPP_API_ENDPOINT"] = ""
os.environ["DIGEST_SEND_DELAY_SECONDS"] = "0"

import copy

import pytest

from financebuddy.graph.agents import AgentRegistry
from financebuddy.services.profile import UserContextProvider

DEMO_PROFILES = {
    "default_user": "ana",
    "users": {
        "ana": {
            "name": "Ana Souza",
            "monthly_income": 6500,
            "risk_profile": "moderate",
            "savings_progress_percent": 30,
            "expenses_ratio_percent": 75,
            "preferred_currency": "BRL",
            "messaging": {
                "number": "+5511999990000",
                "enabled": True,
                "daily_updates": True,
                "weekly_reports": True,
            },
        },
        "carlos": {
            "name": "Carlos Lima",
            "monthly_income": 12000,
            "risk_profile": "aggressive",
            "savings_progress_percent": 80,
            "expenses_ratio_percent": 48,
            "preferred_currency": "USD",
            "messaging": {
                "number": "+15550001111",
                "enabled": True,
                "daily_updates": True,
                "weekly_reports": False,
            },
        },
        "bia": {
            "name": "Bia",
            "monthly_income": 3000,
            "messaging": {"number": "+5521000000000", "enabled": False},
        },
    },
}


class MemoryStore:
    """In-memory ConversationStore that records every call."""

    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}
        self.saves: list[str] = []
        self.deletes: list[str] = []

    async def save(self, conversation):
        self.saves.append(conversation["id"])
        self.rows[conversation["id"]] = copy.deepcopy(conversation)
        return True

    async def load(self, conversation_id):
        row = self.rows.get(conversation_id)
        return copy.deepcopy(row) if row else None

    async def delete(self, conversation_id):
        self.deletes.append(conversation_id)
        self.rows.pop(conversation_id, None)
        return True


class BrokenStore:
    async def save(self, conversation):
        return False

    async def load(self, conversation_id):
        return None

    async def delete(self, conversation_id):
        return False


class RecordingSender:
    def __init__(self, fail_for: set[str] | None = None, raise_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_for = fail_for or set()
        self.raise_for = raise_for or set()

    async def send(self, recipient, text):
        if recipient in self.raise_for:
            raise RuntimeError("transport down")
        if recipient in self.fail_for:
            return False
        self.sent.append((recipient, text))
        return True


@pytest.fixture
def registry():
    return AgentRegistry()


@pytest.fixture
def profiles():
    return UserContextProvider(profiles=copy.deepcopy(DEMO_PROFILES))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def flaky_sender():
    # "+1" is rejected by the provider, "+2" blows up inside the client
    return RecordingSender(fail_for={"+1"}, raise_for={"+2"})
