"""Text helpers applied to model output before display."""

from __future__ import annotations

import re

_CJK = r"\u3400-\u4dbf\u4e00-\u9fff\u3040-\u309f\u30a0-\u30ff"

_CJK_THEN_ASCII = re.compile(rf"(?<=[{_CJK}])(?=[A-Za-z0-9])")
_ASCII_THEN_CJK = re.compile(rf"(?<=[A-Za-z0-9])(?=[{_CJK}])")

# Alternatives are tried left to right, so the longer international form wins
# over a mainland number embedded in it.
_PHONE_RE = re.compile(
    r"(?<![\d+])(?:"
    r"\+\d{1,3}(?:[ \-]?\d{1,4}){2,5}"  # +86 138 0013 8000, +1-415-555-0100
    r"|[48]00[ \-]?\d{3}[ \-]?\d{4}"  # 400-123-4567
    r"|1[3-9]\d[ \-]?\d{4}[ \-]?\d{4}"  # 138 0013 8000
    r"|0\d{2,3}[ \-]?\d{7,8}"  # 010-12345678
    r")(?!\d)"
)

_MIN_DIGITS = 7
_MAX_DIGITS = 15


def detect_phone_numbers(text: str) -> list[str]:
    """Return the distinct phone numbers written in *text*, sorted.

    Recognises mainland mobile numbers, landlines with area code, 400/800
    service numbers and ``+``-prefixed international numbers. Numbers are
    returned as written (separators kept).
    """
    if not text:
        return []
    found: set[str] = set()
    for match in _PHONE_RE.finditer(text):
        number = match.group(0).strip(" -")
        digits = sum(ch.isdigit() for ch in number)
        if _MIN_DIGITS <= digits <= _MAX_DIGITS:
            found.add(number)
    return sorted(found)


def auto_cjk_spacing(text: str) -> str:
    """Insert a space between CJK characters and adjacent ASCII letters or digits."""
    text = _CJK_THEN_ASCII.sub(" ", text)
    return _ASCII_THEN_CJK.sub(" ", text)
