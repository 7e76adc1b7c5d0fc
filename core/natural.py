"""
Natural ("human") ordering for setup names and labels.

Embedded digit runs compare by numeric value, so "Setup 2" sorts before
"Setup 10", and text runs compare case-insensitively.
"""
import re
from typing import Callable, Iterable, Optional

_RUN_RE = re.compile(r"\d+|\D+")


def natural_key(text: str) -> tuple:
    """
    Build a sort key for ``text``.

    Each run becomes ``(0, number)`` or ``(1, folded_text)`` so that a digit
    run sorts before a text run at the same position. The raw string is the
    final tie-breaker, which keeps the order total ("a1" vs "A1", "01" vs "1").
    """
    runs = []
    for run in _RUN_RE.findall(text):
        if run.isdecimal():
            runs.append((0, int(run)))
        else:
            runs.append((1, run.casefold()))
    return (tuple(runs), text)


def compare_natural(a: str, b: str) -> int:
    """Three-way natural comparison: -1, 0 or 1."""
    key_a = natural_key(a)
    key_b = natural_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def natural_sorted(items: Iterable, key: Optional[Callable] = None) -> list:
    """Sort ``items`` in natural order, optionally through a key function."""
    if key is None:
        return sorted(items, key=natural_key)
    return sorted(items, key=lambda item: natural_key(key(item)))
