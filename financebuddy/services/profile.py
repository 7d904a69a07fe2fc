import json
import logging
from pathlib import Path
from typing import TypedDict

from financebuddy.config import PROFILE_PATH
from financebuddy.graph.state import UserContext

logger = logging.getLogger(__name__)

_CONTEXT_KEYS = (
    "name",
    "monthly_income",
    "risk_profile",
    "savings_progress_percent",
    "expenses_ratio_percent",
    "preferred_currency",
)


class Subscriber(TypedDict):
    user_id: str
    number: str
    daily_updates: bool
    weekly_reports: bool


class UserContextProvider:
    """Read-only snapshots of each user's financial context, keyed by user id."""

    def __init__(self, path: Path = PROFILE_PATH, profiles: dict | None = None) -> None:
        data = profiles if profiles is not None else json.loads(Path(path).read_text(encoding="utf-8"))
        self._users: dict[str, dict] = data.get("users", {})
        self._default_user = data.get("default_user") or next(iter(self._users), "")

    def get_context(self, user_id: str | None = None) -> UserContext:
        raw = self._users.get(user_id or self._default_user)
        if raw is None:
            logger.warning("No profile for user %s, using default", user_id)
            raw = self._users.get(self._default_user, {})
        return {key: raw[key] for key in _CONTEXT_KEYS if key in raw}

    def find_user_by_number(self, number: str) -> str | None:
        for user_id, raw in self._users.items():
            if raw.get("messaging", {}).get("number") == number:
                return user_id
        return None

    def subscribers(self) -> list[Subscriber]:
        result: list[Subscriber] = []
        for user_id, raw in self._users.items():
            messaging = raw.get("messaging") or {}
            if not messaging.get("enabled") or not messaging.get("number"):
                continue
            result.append(
                {
                    "user_id": user_id,
                    "number": messaging["number"],
                    "daily_updates": bool(messaging.get("daily_updates")),
                    "weekly_reports": bool(messaging.get("weekly_reports")),
                }
            )
        return result
