"""
HTML-to-text conversion for confirmation emails.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

_SPACES = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{2,}")


def strip_markup(html: str) -> str:
    """
    Convert an HTML body to plain text with one text block per line.

    Style and script blocks are dropped, entities are decoded and non-breaking
    spaces become plain spaces.

    Args:
        html: HTML message body

    Returns:
        str: Plain text
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["style", "script", "head"]):
        tag.decompose()
    text = soup.get_text("\n")
    return normalize_text(text)


def normalize_text(text: str) -> str:
    """Collapse runs of spaces inside lines and drop empty lines."""
    text = text.replace("\xa0", " ").replace("\u200b", "")
    lines = (_SPACES.sub(" ", line).strip() for line in text.split("\n"))
    return _BLANK_LINES.sub("\n", "\n".join(line for line in lines if line))


def message_text(body_html: Optional[str], body_text: Optional[str]) -> str:
    """
    Plain text to run extraction rules over: HTML when present, else the text part.

    Args:
        body_html: HTML part of the message
        body_text: Plain-text part of the message

    Returns:
        str: Normalized plain text (empty when the message has no body)
    """
    if body_html and body_html.strip():
        return strip_markup(body_html)
    return normalize_text(body_text or "")
