"""Approximate token counting.

History budgets are measured in unicode words rather than the sub-word
tokens a model would actually see.  A word is a run of letters, digits
or underscores, optionally joined by an apostrophe or hyphen
(``don't`` and ``well-known`` count once).  Punctuation never counts.
"""

from __future__ import annotations

import re

_WORD_PATTERN = re.compile(r"\w+(?:['’-]\w+)*", re.UNICODE)


def split_words(text: str | None) -> list[str]:
    """Return the word segments of ``text`` in order."""
    if not text:
        return []
    return _WORD_PATTERN.findall(text)


def count_tokens(text: str | None) -> int:
    """Return the approximate token count of ``text``."""
    return len(split_words(text))
