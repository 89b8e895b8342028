"""
Ordered extraction rules.

A rule is a compiled pattern plus a converter for a match and an acceptance
check on the converted value. A field's cascade is a list of rules tried in
order; the first rule producing an accepted value wins.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple


def _first_group(match: re.Match) -> Any:
    return match.group(1).strip()


def _always(value: Any) -> bool:
    return True


@dataclass(frozen=True)
class ExtractionRule:
    """
    One named pattern in a field cascade.

    Attributes:
        name: Stable identifier recorded in a fact's field_sources
        pattern: Compiled regex searched against the rule's source text
        convert: Turns a match into a value (None means no value)
        accept: Validates the converted value
        source: Text the rule reads: "body", "subject" or "all"
    """

    name: str
    pattern: re.Pattern
    convert: Callable[[re.Match], Any] = _first_group
    accept: Callable[[Any], bool] = _always
    source: str = "body"

    def apply(self, text: str) -> Optional[Any]:
        """
        Run the rule against text.

        Matches are tried left to right; the first one whose converted value
        is accepted is returned.

        Args:
            text: Input text

        Returns:
            The accepted value, or None when the rule does not apply
        """
        if not text:
            return None
        for match in self.pattern.finditer(text):
            value = self.convert(match)
            if value is not None and self.accept(value):
                return value
        return None


def first_match(
    rules: Sequence[ExtractionRule], body: str, subject: str = "", sender: str = ""
) -> Optional[Tuple[str, Any]]:
    """
    Evaluate a cascade in priority order.

    Args:
        rules: Ordered rules for one field
        body: Plain-text message body
        subject: Message subject
        sender: From header (only read by "all" rules)

    Returns:
        Optional[Tuple[str, Any]]: (rule name, value) of the first accepted rule
    """
    texts = {
        "body": body,
        "subject": subject,
        "all": "\n".join(part for part in (sender, subject, body) if part),
    }
    for rule in rules:
        value = rule.apply(texts[rule.source])
        if value is not None:
            return rule.name, value
    return None


def rule_rank(order: Sequence[str], name: Optional[str]) -> int:
    """
    Position of a rule in its cascade; unknown names rank after every rule.

    Args:
        order: Rule names for one field, highest priority first
        name: Rule name recorded on a stored fact

    Returns:
        int: 0 for the highest-priority rule, len(order) for unknown
    """
    try:
        return list(order).index(name)  # type: ignore[arg-type]
    except ValueError:
        return len(order)
