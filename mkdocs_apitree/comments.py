"""
Comment normalization for scanned doc comments.

Turns the raw text of a C/C++ comment into description prose and pulls out
the bits of metadata authors encode inline:

  - ``'name()' - description``   legacy function header convention
  - ``I - description``          argument direction (``I``, ``O``, ``IO``)
  - ``@deprecated@``, ``@since 1.2@``   summary annotations
  - ``@private@``                hides the symbol from generated docs
  - ``@code x@``, ``@link x@``   inline markup
"""

from __future__ import annotations

import re

PRIVATE_MARKER = "@private@"
DEPRECATED = "DEPRECATED"

_DIRECTIONS = ("I ", "O ", "IO ")
_INFO_RE = re.compile(r"@deprecated@|@since ([^@]*)")
_ANNOTATION_RE = re.compile(r"@(?:deprecated@|since [^@]*@?)")
_CODE_RE = re.compile(r"@code\s+([^@]*)@?")
_LINK_RE = re.compile(r"@link\s+([^@]*)@?")


def _skip_dash(text):
    text = text.lstrip()
    if text.startswith("-"):
        text = text[1:]
    return text.lstrip()


def normalize_comment(text):
    """Return ``(description, direction)`` for raw comment text.

    *direction* is ``None`` unless the comment starts with a direction marker.
    """
    direction = None
    text = text.replace("\\/", "/")

    if text.startswith("'"):
        end = text.find("'", 1)
        if end >= 0:
            text = _skip_dash(text[end + 1 :])
    elif text.startswith(_DIRECTIONS):
        direction, _, rest = text.partition(" ")
        text = _skip_dash(rest)

    text = text.lstrip("*").lstrip()
    text = text.rstrip("*").rstrip()
    return text, direction


def is_private(text):
    return PRIVATE_MARKER in (text or "")


def comment_info(text):
    """Summary annotation of a description: deprecation marker or @since value."""
    m = _INFO_RE.search(text or "")
    if not m:
        return ""
    if m.group(1) is None:
        return DEPRECATED
    return m.group(1)


def split_description(text):
    """Split description text into (summary, discussion) at the first blank line."""
    summary, sep, discussion = (text or "").partition("\n\n")
    if not sep:
        return summary.strip(), ""
    return summary.strip(), discussion.strip()


def strip_markup(text):
    text = _ANNOTATION_RE.sub("", text or "")
    text = _CODE_RE.sub(lambda m: f"`{m.group(1).strip()}`", text)
    text = _LINK_RE.sub(lambda m: f"`{m.group(1).strip()}`", text)
    return text.strip()
