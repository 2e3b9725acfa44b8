"""
Trigger matching - decides whether a lead satisfies a sequence's entry conditions.

trigger_conditions keys (each optional):
  sources   - lead.source must be one of them
  intents   - lead.intent must be one of them
  statuses  - lead.status must be one of them
  min_score - lead.score must be >= it

All present keys must hold; within a list any value matches. A missing key, an
empty list or a null min_score places no restriction.
"""
from typing import Any, Iterable, Optional


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _in_list(value: Any, allowed: Optional[Iterable[Any]]) -> bool:
    if not allowed:
        return True
    normalized = {_as_str(item) for item in allowed}
    return _as_str(value) in normalized


def conditions_match(conditions: Optional[dict], lead: Any) -> bool:
    if not conditions:
        return True

    if not _in_list(lead.source, conditions.get("sources")):
        return False
    if not _in_list(lead.intent, conditions.get("intents")):
        return False
    if not _in_list(lead.status, conditions.get("statuses")):
        return False

    min_score = conditions.get("min_score")
    if min_score is not None and (lead.score or 0) < int(min_score):
        return False

    return True


def matches(sequence: Any, lead: Any) -> bool:
    """True when the lead satisfies the sequence's trigger conditions. No side effects."""
    return conditions_match(sequence.trigger_conditions, lead)
