"""
Unit tests for HTML-to-text conversion of email bodies.
"""

from __future__ import annotations

import pytest

from sync_stays.parsers.markup import message_text, normalize_text, strip_markup


@pytest.mark.unit
def test_strip_markup_drops_style_and_keeps_blocks_on_lines() -> None:
    """Test that style blocks vanish and table cells land on separate lines."""
    html = (
        "<html><head><style>td { color: red; }</style></head><body>"
        "<table><tr><td>Check-in:</td><td>Apr&nbsp;4, 2026</td></tr></table>"
        "<script>var x = 1;</script></body></html>"
    )

    text = strip_markup(html)

    assert "color" not in text
    assert "var x" not in text
    assert "Check-in:" in text
    assert "Apr 4, 2026" in text


@pytest.mark.unit
def test_normalize_text_collapses_spaces_and_blank_lines() -> None:
    """Test that runs of spaces collapse and empty lines disappear."""
    text = "Guest:   Jamie Lee\n\n\n   \nGuests: 2  "

    assert normalize_text(text) == "Guest: Jamie Lee\nGuests: 2"


@pytest.mark.unit
def test_message_text_prefers_html_part() -> None:
    """Test that the HTML part is used when present and the text part otherwise."""
    assert message_text("<p>From HTML</p>", "From text") == "From HTML"
    assert message_text("   ", "From text") == "From text"
    assert message_text(None, None) == ""
