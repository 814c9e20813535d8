"""Unit tests for HTML sanitization."""

from doc_rag.ingestion.sanitizer import sanitize_html


def test_safe_markup_unchanged() -> None:
    assert sanitize_html("<p>Hello <b>world</b></p>") == "<p>Hello <b>world</b></p>"


def test_script_and_style_removed_with_content() -> None:
    cleaned = sanitize_html("<style>p {color: red}</style><script>alert(1)</script><p>kept</p>")
    assert cleaned == "<p>kept</p>"


def test_event_handlers_dropped() -> None:
    cleaned = sanitize_html('<a href="https://example.org" onclick="steal()">link</a>')
    assert cleaned == '<a href="https://example.org">link</a>'


def test_image_keeps_only_src_and_alt() -> None:
    cleaned = sanitize_html('<img src="cat.png" alt="cat" width="10" onerror="x()">')
    assert "onerror" not in cleaned
    assert "width" not in cleaned
    assert 'src="cat.png"' in cleaned
    assert 'alt="cat"' in cleaned


def test_javascript_urls_dropped() -> None:
    assert "javascript" not in sanitize_html('<a href="javascript:alert(1)">x</a>')


def test_plain_text_passes_through() -> None:
    assert sanitize_html("Tuition is due in March.") == "Tuition is due in March."
