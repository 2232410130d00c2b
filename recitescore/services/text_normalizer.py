"""
Text normalisation for recitation comparison.

The same pipeline is applied to the transcript and to the reference text:

  - remove Arabic diacritics (tashkeel, U+064B..U+065F and the dagger alif U+0670)
  - collapse the hamza/madda forms of alif to a bare alif
  - remove Arabic and Latin sentence punctuation

Every step only deletes or maps characters to ones no later step touches,
so normalize(normalize(x)) == normalize(x).
"""

from __future__ import annotations

import re

_DIACRITICS = re.compile("[\u064B-\u065F\u0670]")
_ALIF_VARIANTS = re.compile("[\u0623\u0625\u0622]")  # alif with hamza above/below, alif madda
_PUNCTUATION = re.compile("[\u060C\u061B\u061F.:!]")  # arabic comma, semicolon, question mark

BARE_ALIF = "\u0627"


def remove_diacritics(text: str) -> str:
    return _DIACRITICS.sub("", text)


def normalize_alif(text: str) -> str:
    return _ALIF_VARIANTS.sub(BARE_ALIF, text)


def remove_punctuation(text: str) -> str:
    return _PUNCTUATION.sub("", text)


def normalize(text: str | None) -> str:
    if not text:
        return ""
    return remove_punctuation(normalize_alif(remove_diacritics(text)))
