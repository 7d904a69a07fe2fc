import logging
from collections.abc import Callable
from typing import TypedDict

from financebuddy.graph.state import Classification
from financebuddy.rules import contains_any, load_rules, normalize

logger = logging.getLogger(__name__)


class ClassifierRule(TypedDict):
    name: str
    predicate: Callable[[str], bool]
    result: Classification


def _keyword_predicate(keywords: list[str]) -> Callable[[str], bool]:
    lowered = [kw.lower() for kw in keywords]
    return lambda text: contains_any(text, lowered)


def build_rules(config: dict | None = None) -> tuple[list[ClassifierRule], Classification]:
    """
    Build the ordered rule table plus its default tail.

    Rules are evaluated top-down; the first predicate that accepts the
    normalized utterance decides the classification.
    """
    config = config or load_rules()
    rules: list[ClassifierRule] = []
    for entry in config["classifier"]:
        rules.append(
            {
                "name": entry["name"],
                "predicate": _keyword_predicate(entry["keywords"]),
                "result": {
                    "intent": entry["intent"],
                    "target_agent": entry["target_agent"],
                    "confidence": float(entry["confidence"]),
                },
            }
        )
    default = config["classifier_default"]
    return rules, {
        "intent": default["intent"],
        "target_agent": default["target_agent"],
        "confidence": float(default["confidence"]),
    }


_RULES, _DEFAULT = build_rules()


def classify(
    utterance: str,
    rules: list[ClassifierRule] | None = None,
    default: Classification | None = None,
) -> Classification:
    text = normalize(utterance)
    for rule in rules if rules is not None else _RULES:
        if rule["predicate"](text):
            logger.debug("Classifier rule %s matched", rule["name"])
            return dict(rule["result"])
    return dict(default or _DEFAULT)
