"""
SAFE merge of re-extracted reservation facts.

A stored field is replaced only when the new extraction produced a value and
that value ranks strictly higher under field_confidence(). Empty never beats
populated, and ties keep the stored value, so re-processing a message can add
or improve fields but never erase them.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from sync_stays.parsers.reservation_email import RULE_ORDER, clean_guest_name
from sync_stays.parsers.rules import rule_rank
from sync_stays.schemas.messages import ExtractedFact

MERGED_FIELDS = ("platform", "check_in", "check_out", "guest_name", "guest_count", "confirmation_code")

_INITIAL = re.compile(r"^[A-Za-z]\.?$")


def name_quality(name: str) -> Tuple[int, int, int]:
    """
    Quality of a guest name, higher is better.

    Compared as a tuple: a name that survives cleaning beats one that does
    not, a full name beats one with initials ("Jane Lee" > "J. Lee"), and more
    name parts beat fewer (capped at three).

    Args:
        name: Guest name

    Returns:
        Tuple[int, int, int]: (clean, no initials, part count)
    """
    clean = 1 if clean_guest_name(name) == name.strip() else 0
    parts = name.split()
    no_initials = 0 if any(_INITIAL.match(part) for part in parts) else 1
    return clean, no_initials, min(len(parts), 3)


def field_confidence(field: str, value: Any, rule: Optional[str]) -> Tuple[int, ...]:
    """
    Total order used to compare two non-empty values of the same field.

    guest_name ranks by name_quality() first, then by rule priority. Every
    other field ranks by rule priority only. Values with no recorded rule
    (rows written before field_sources existed) rank below every known rule.

    Args:
        field: Fact column name
        value: Non-empty value
        rule: Name of the rule that produced the value, if known

    Returns:
        Tuple[int, ...]: Comparable confidence key
    """
    rank = -rule_rank(RULE_ORDER.get(field, []), rule)
    if field == "guest_name":
        return name_quality(str(value)) + (rank,)
    return (rank,)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge_field(
    field: str,
    old_value: Any,
    old_rule: Optional[str],
    new_value: Any,
    new_rule: Optional[str],
) -> Tuple[Any, Optional[str], bool]:
    """
    Merge one field of a stored fact with a fresh extraction.

    Args:
        field: Fact column name
        old_value: Stored value
        old_rule: Rule recorded for the stored value
        new_value: Freshly extracted value
        new_rule: Rule that produced the fresh value

    Returns:
        Tuple[Any, Optional[str], bool]: (value, rule, changed)
    """
    if _is_empty(new_value):
        return old_value, old_rule, False
    if _is_empty(old_value):
        return new_value, new_rule, True
    if new_value == old_value:
        return old_value, old_rule, False
    if field_confidence(field, new_value, new_rule) > field_confidence(field, old_value, old_rule):
        return new_value, new_rule, True
    return old_value, old_rule, False


@dataclass
class FactMerge:
    """Column changes to apply to a stored fact (empty when nothing improved)."""

    changes: dict[str, Any]
    improved_fields: list[str]

    @property
    def changed(self) -> bool:
        return bool(self.improved_fields)


def merge_fact(existing: Mapping[str, Any], extracted: ExtractedFact) -> FactMerge:
    """
    SAFE merge of a re-extraction into a stored fact.

    Args:
        existing: Stored fact row
        extracted: Fresh extraction from the same message

    Returns:
        FactMerge: Changed columns (plus the updated field_sources) and the
            names of the improved fields
    """
    old_sources: dict[str, str] = dict(existing.get("field_sources") or {})
    sources = dict(old_sources)
    changes: dict[str, Any] = {}
    improved: list[str] = []

    for field in MERGED_FIELDS:
        value, rule, changed = merge_field(
            field,
            existing.get(field),
            old_sources.get(field),
            getattr(extracted, field),
            extracted.field_sources.get(field),
        )
        if changed:
            changes[field] = value
            improved.append(field)
            if rule is not None:
                sources[field] = rule

    # A merged pair must still describe a stay: undo the date that inverted it
    check_in = changes.get("check_in", existing.get("check_in"))
    check_out = changes.get("check_out", existing.get("check_out"))
    if check_in is not None and check_out is not None and check_out <= check_in:
        for field in ("check_in", "check_out"):
            if field in changes:
                del changes[field]
                improved.remove(field)
                if field in old_sources:
                    sources[field] = old_sources[field]
                else:
                    sources.pop(field, None)

    if improved:
        changes["field_sources"] = sources
    return FactMerge(changes=changes, improved_fields=improved)
