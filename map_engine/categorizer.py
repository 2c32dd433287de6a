"""Merchant categorization.

Guesses a category for merchant names that come out of statement analysis
without one. Names are lowercased and stripped of punctuation (``&`` is
kept so "AT&T" still matches), then checked against the keyword rules.
The longest matching keyword wins, so "whole foods market" beats "market".
"""

from __future__ import annotations

import re
import string
from typing import Dict, List, Tuple

_STRIP_PUNCT = str.maketrans({c: " " for c in string.punctuation if c != "&"})


def normalize_merchant(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").lower().translate(_STRIP_PUNCT)).strip()


def _ranked_keywords(rules: Dict[str, List[str]]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    seen = set()
    for category, keywords in rules.items():
        for keyword in keywords or []:
            keyword = keyword.lower()
            if keyword.strip() and keyword not in seen:
                seen.add(keyword)
                pairs.append((keyword, category))
    # stable sort: ties keep rule order
    pairs.sort(key=lambda pair: len(pair[0].strip()), reverse=True)
    return pairs


def categorize_merchant(name: str, rules: Dict[str, List[str]], default_category: str = "Other") -> str:
    padded = f" {normalize_merchant(name)} "
    for keyword, category in _ranked_keywords(rules):
        if keyword in padded:
            return category
    return default_category
