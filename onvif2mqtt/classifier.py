from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .events import CanonicalEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationRule:
    """Map any name containing one of ``keywords`` to ``event_type``."""

    event_type: str
    keywords: Tuple[str, ...]

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self.keywords)


# Evaluated top to bottom, first match wins.
CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule("line", ("linecross", "line")),
    ClassificationRule("people", ("person", "people")),
    ClassificationRule("vehicle", ("vehicle",)),
    ClassificationRule("animal", ("pet", "animal")),
    ClassificationRule("motion", ("motion",)),
)

_FLAG_KEY = re.compile(r"Is([A-Za-z]+)")
_TRUE_WORD = re.compile(r"\b(true|1)\b")
_FALSE_WORD = re.compile(r"\b(false|0)\b")


def canonical_type(name: str, rules: Tuple[ClassificationRule, ...] = CLASSIFICATION_RULES) -> Optional[str]:
    """Return the canonical event type for a raw name, or None when unknown."""

    if not name:
        return None
    for rule in rules:
        if rule.matches(name):
            return rule.event_type
    return None


def coerce_state(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in {"true", "1"}:
            return True
        if lowered in {"false", "0"}:
            return False
    return None


class _Collector:
    """Ordered per-type accumulator for a single classification pass."""

    def __init__(self, rules: Tuple[ClassificationRule, ...]):
        self._rules = rules
        self._found: Dict[str, CanonicalEvent] = {}

    def add(self, name: str, state: Optional[bool]) -> None:
        event_type = canonical_type(name, self._rules)
        if event_type is None:
            return

        existing = self._found.get(event_type)
        if existing is None:
            self._found[event_type] = CanonicalEvent(type=event_type, state=state)
        elif existing.state is None and state is not None:
            existing.state = state

    def events(self) -> List[CanonicalEvent]:
        return list(self._found.values())

    def visit(self, node: Any) -> None:
        if not node:
            return
        if isinstance(node, str):
            self._visit_text(node)
        elif isinstance(node, (list, tuple)):
            for item in node:
                self.visit(item)
        elif isinstance(node, dict):
            self._visit_mapping(node)

    def _visit_text(self, text: str) -> None:
        lowered = text.lower()
        if _TRUE_WORD.search(lowered):
            state: Optional[bool] = True
        elif _FALSE_WORD.search(lowered):
            state = False
        else:
            state = None

        for rule in self._rules:
            if rule.matches(lowered):
                self.add(rule.event_type, state)

    def _visit_mapping(self, node: Dict[str, Any]) -> None:
        name = node.get("@Name")
        value = node.get("@Value")
        if name and value is not None and value != "":
            self.add(str(name), coerce_state(str(value)))

        for key, value in node.items():
            flag = _FLAG_KEY.search(str(key))
            if flag:
                self.add(flag.group(1), coerce_state(value))
            self.visit(value)


def classify(raw: Any, rules: Tuple[ClassificationRule, ...] = CLASSIFICATION_RULES) -> List[CanonicalEvent]:
    """
    Extract canonical events from a parsed notification tree, a list, or free text.

    Events come back in first-discovery order with at most one event per type.
    Unrecognized nodes are skipped silently.
    """

    collector = _Collector(rules)
    collector.visit(raw)
    events = collector.events()
    if events:
        logger.debug("Classified events", extra={"events": [e.summary() for e in events]})
    return events
