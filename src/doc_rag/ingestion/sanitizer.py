"""HTML sanitization applied to every document before it is chunked."""

from __future__ import annotations

import nh3

# Only these attributes survive; every other attribute is dropped.
ALLOWED_ATTRIBUTES: dict[str, set[str]] = {
    "a": {"href", "title"},
    "img": {"src", "alt"},
}


def sanitize_html(content: str) -> str:
    """Strip unsafe markup from *content*.

    ``<script>`` and ``<style>`` elements are removed together with their
    text; other disallowed tags are unwrapped so their text is kept.
    Links are left without an injected ``rel`` attribute.
    """
    return nh3.clean(content, attributes=ALLOWED_ATTRIBUTES, link_rel=None)
