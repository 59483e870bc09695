"""
Norma - normalization layer.

Responsibility:
- Turn free-text transaction descriptions into comparable strings.
- Build the feature string the category model trains and predicts on.

Design notes:
- This module must be PURE:
  - no file IO
  - no network calls
  - no global state mutation
- Similarity is plain substring containment. Grouping built on it depends on
  the order descriptions are seen in.
"""

from __future__ import annotations

import re
import unicodedata
from typing import List, Optional

_NON_WORD_RE = re.compile(r"[^\w\s]", re.ASCII)

# (upper bound exclusive, label); anything >= the last bound is "very high"
AMOUNT_RANGES = (
    (50.0, "amount_very_low"),
    (100.0, "amount_low"),
    (500.0, "amount_medium"),
    (1000.0, "amount_high"),
)
AMOUNT_RANGE_MAX = "amount_very_high"


def normalize_text(text: Optional[str]) -> str:
    """
    Lowercase, strip accents, drop punctuation and non-ASCII letters, trim.

    "Café  Brasília!" -> "cafe  brasilia"
    "Straße 東京 taxi" -> "strae  taxi"
    """
    s = (text or "").lower()
    s = unicodedata.normalize("NFD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = _NON_WORD_RE.sub("", s)
    return s.strip()


def descriptions_similar(a: str, b: str) -> bool:
    return a in b or b in a


def tokenize(normalized: str) -> List[str]:
    return [tok for tok in normalized.split() if tok]


def amount_polarity(amount: float) -> str:
    return "expense" if float(amount or 0.0) < 0 else "income"


def amount_range(value: float) -> str:
    v = abs(float(value or 0.0))
    for bound, label in AMOUNT_RANGES:
        if v < bound:
            return label
    return AMOUNT_RANGE_MAX


def extract_features(description: Optional[str], amount: float) -> str:
    """
    Word tokens + polarity token + magnitude bucket token, space-joined.

    ("Uber *Trip", -23.5) -> "uber trip expense amount_very_low"
    """
    tokens = tokenize(normalize_text(description))
    tokens.append(amount_polarity(amount))
    tokens.append(amount_range(amount))
    return " ".join(tokens)
