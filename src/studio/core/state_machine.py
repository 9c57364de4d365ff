from __future__ import annotations

from typing import Dict, List

# Session lifecycle; "deleted" is terminal
STATUS_TRANSITIONS: Dict[str, List[str]] = {
    "active": ["archived", "deleted"],
    "archived": ["active", "deleted"],
    "deleted": [],
}

READABLE_STATUSES = ("active", "archived")
MUTABLE_STATUSES = ("active",)


def is_valid_transition(current: str, target: str) -> bool:
    if current == target:
        return current != "deleted"
    return target in STATUS_TRANSITIONS.get(current, [])


def is_terminal(status: str) -> bool:
    return not STATUS_TRANSITIONS.get(status)
