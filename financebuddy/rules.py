"""
Keyword configuration for the dispatch core.

Classifier, guardrail and messaging keyword lists live in
data/dispatch_rules.json so that the language mix (Portuguese and English
fragments) can be changed without touching the matching code.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from financebuddy.config import DISPATCH_RULES_PATH

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def load_rules(path: Path = DISPATCH_RULES_PATH) -> dict:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    logger.debug(
        "Loaded dispatch rules from %s (%d classifier rules)",
        path,
        len(raw.get("classifier", [])),
    )
    return raw


def normalize(text: str) -> str:
    return (text or "").lower().strip()


def contains_any(text: str, keywords: list[str]) -> bool:
    return any(kw in text for kw in keywords)
