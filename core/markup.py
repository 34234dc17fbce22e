# =============================================================================
# core/markup.py  —  HTML → plain text
# =============================================================================
#
# Drupal's formatted text fields arrive as HTML ("processed" markup).  The
# MCP client gets both versions: the original markup and a plain-text
# rendering produced here.
#
# The rendering is regex based, with no HTML parser: script and style
# blocks disappear with their content, every other tag becomes a space,
# whitespace runs collapse.  Entities are left as they are.
# =============================================================================

import re

_SCRIPT_BLOCK = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_BLOCK = re.compile(r"<style[\s\S]*?>[\s\S]*?</style>", re.IGNORECASE)
_TAG = re.compile(r"</?[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def strip_html(html) -> str:
    """Return the visible text of ``html`` on a single line.

    >>> strip_html("<p>Hi<script>bad()</script></p>")
    'Hi'
    """
    if not html:
        return ""
    text = str(html)
    text = _SCRIPT_BLOCK.sub("", text)
    text = _STYLE_BLOCK.sub("", text)
    text = _TAG.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()
