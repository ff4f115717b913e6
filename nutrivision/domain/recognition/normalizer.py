"""Classifier label cleanup before nutrition search."""

import re

_DIGITS = re.compile(r"\d")


def normalize_label(raw_label: str) -> str:
    """
    Turn a raw classifier label into a search term.

    Rules, in order:
    1. Keep only the text before the first comma ("burrito, wrap" -> "burrito")
    2. Remove every digit
    3. Strip surrounding whitespace

    Idempotent: normalize_label(normalize_label(x)) == normalize_label(x).

    Example:
        >>> normalize_label("hot_dog2, frankfurter")
        'hot_dog'
        >>> normalize_label("  pizza ")
        'pizza'
    """
    head = raw_label.split(",", 1)[0]
    return _DIGITS.sub("", head).strip()
