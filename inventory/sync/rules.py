"""Workload classification: ordered predicate rules evaluated against a draft."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from .draft import AssetDraft
from .normalizers import parse_number

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    return str(value).strip().lower()


def _regex(actual: Any, pattern: str) -> bool:
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning("Invalid regex in workload rule %r: %s", pattern, exc)
        return False
    return compiled.search(str(actual)) is not None


# Supported operators; numeric ones raise ValueError on non-numeric input.
OPERATORS: dict[str, Callable[[Any, str], bool]] = {
    "=": lambda a, b: _text(a) == _text(b),
    "!=": lambda a, b: _text(a) != _text(b),
    ">=": lambda a, b: parse_number(a) >= parse_number(b),
    "<=": lambda a, b: parse_number(a) <= parse_number(b),
    ">": lambda a, b: parse_number(a) > parse_number(b),
    "<": lambda a, b: parse_number(a) < parse_number(b),
    "includes": lambda a, b: _text(b) in _text(a),
    "regex": _regex,
}


@dataclass(frozen=True)
class ClassificationRule:
    """Immutable snapshot of an active rule, safe to share across row tasks."""

    id: uuid.UUID
    category_id: uuid.UUID
    category_name: str
    priority: int
    source_field: str
    operator: str
    value: str
    description: str | None = None

    @property
    def name(self) -> str:
        return self.description or f"{self.source_field} {self.operator} {self.value}"


@dataclass(frozen=True)
class RuleMatch:
    category_id: uuid.UUID
    category_name: str
    rule_name: str


def matches(rule: ClassificationRule, draft: AssetDraft) -> bool:
    actual = draft.get(rule.source_field)
    if actual is None or (isinstance(actual, str) and not actual.strip()):
        return False
    op_func = OPERATORS.get(rule.operator)
    if op_func is None:
        logger.warning("Unknown operator %r in workload rule %s", rule.operator, rule.id)
        return False
    try:
        return bool(op_func(actual, rule.value))
    except (TypeError, ValueError):
        return False


class WorkloadClassifier:
    """First active rule in ascending priority order wins."""

    def __init__(self, rules: list[ClassificationRule]):
        self.rules = sorted(rules, key=lambda r: r.priority)

    def classify(self, draft: AssetDraft) -> RuleMatch | None:
        for rule in self.rules:
            if matches(rule, draft):
                return RuleMatch(rule.category_id, rule.category_name, rule.name)
        return None
