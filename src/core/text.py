"""Small text helpers shared by notification builders."""

from __future__ import annotations

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKDOWN_CHARS = re.compile(r"[*_`~|]")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)].rstrip() + "..."


def truncate_markdown(text: str, limit: int) -> str:
    """Truncate release notes, dropping Markdown markup only if needed."""

    if len(text) <= limit:
        return text
    clean = _MARKDOWN_LINK.sub(r"\1", _MARKDOWN_CHARS.sub("", text))
    return truncate(clean, limit)


def strip_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)
