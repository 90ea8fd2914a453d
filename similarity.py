"""
Name and value similarity for statement assets.

Names from different statements describe the same holding in different ways:
"HDFC Bank Ltd" vs "Bank HDFC Limited", "Axis Bluechip Fund - Direct Plan - Growth"
vs "Axis Bluechip". Three independent strategies score a pair of names and the
strongest one wins:

    direct token sort      sorted tokens, normalised Levenshtein ratio
    expanded token sort    same, after expanding common Indian financial abbreviations
    common tokens          shared significant tokens / smaller token set, stopwords removed

All scores are on a 0-100 scale. Everything here is pure; no caching.
"""
from __future__ import annotations

import logging
import re
from typing import FrozenSet, List, Mapping

from schemas import DetectionConfig, MatchType

logger = logging.getLogger(__name__)

__all__ = [
    "ABBREVIATIONS",
    "STOPWORDS",
    "VALUE_DECAY_FACTOR",
    "classify_match",
    "common_token_ratio",
    "duplicate_score",
    "expand_abbreviations",
    "levenshtein_distance",
    "name_similarity",
    "normalize_name",
    "significant_tokens",
    "string_similarity",
    "token_sort",
    "token_sort_ratio",
    "value_similarity",
    "weighted_score",
]

# Percentage points of similarity lost per point of difference beyond the tolerance band.
VALUE_DECAY_FACTOR = 2

# Minimum number of distinct shared tokens before the common-token strategy counts.
MIN_COMMON_TOKENS = 2

ABBREVIATIONS: Mapping[str, str] = {
    "mf": "mutual fund",
    "ltd": "limited",
    "pvt": "private",
    "co": "company",
    "corp": "corporation",
    "inc": "incorporated",
    "intl": "international",
    "govt": "government",
    "hdfc": "housing development finance corporation",
    "sbi": "state bank of india",
    "icici": "industrial credit and investment corporation of india",
    "lic": "life insurance corporation",
    "ppf": "public provident fund",
    "epf": "employees provident fund",
    "nps": "national pension system",
    "fd": "fixed deposit",
    "rd": "recurring deposit",
    "etf": "exchange traded fund",
    "elss": "equity linked savings scheme",
    "amc": "asset management company",
    "sgb": "sovereign gold bond",
    "nsc": "national savings certificate",
    "reit": "real estate investment trust",
}

STOPWORDS: FrozenSet[str] = frozenset({
    # corporate suffixes
    "limited", "ltd", "private", "pvt", "company", "co", "corporation", "corp",
    "incorporated", "inc", "llp", "plc", "group", "holdings", "industries", "enterprises",
    # geography
    "india", "indian", "bharat", "national", "international", "global",
    "mumbai", "delhi", "new", "bangalore", "bengaluru", "chennai", "kolkata",
    "hyderabad", "pune", "ahmedabad",
    # generic instrument words
    "fund", "funds", "mutual", "scheme", "plan", "direct", "regular", "growth",
    "dividend", "idcw", "option", "reinvestment", "payout", "equity", "debt",
    "bond", "bonds", "share", "shares", "stock", "stocks", "index", "bank",
    "finance", "financial", "savings", "account", "deposit", "fixed", "trust",
    "securities", "investment", "investments", "portfolio",
    # english
    "the", "of", "and", "a", "an", "in", "for", "to", "on", "at", "by",
})

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_ABBREVIATION_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(map(re.escape, ABBREVIATIONS), key=len, reverse=True)) + r")\b"
)


# -------- String primitives --------

def normalize_name(name: str) -> str:
    """Lowercase and keep only [a-z0-9] and whitespace."""
    return _NON_ALNUM.sub("", (name or "").lower()).strip()


def expand_abbreviations(text: str) -> str:
    """Replace whole-word abbreviations with their expansion. Expects normalised text."""
    return _ABBREVIATION_PATTERN.sub(lambda m: ABBREVIATIONS[m.group(1)], text)


def token_sort(text: str) -> str:
    return " ".join(sorted(text.split()))


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost edit distance (insert, delete, substitute), two-row DP."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev_row: List[int] = list(range(len(b) + 1))
    curr_row: List[int] = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        curr_row[0] = i
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr_row[j] = min(
                prev_row[j] + 1,         # deletion
                curr_row[j - 1] + 1,     # insertion
                prev_row[j - 1] + cost,  # substitution
            )
        prev_row, curr_row = curr_row, prev_row
    return prev_row[len(b)]


def string_similarity(a: str, b: str) -> float:
    """100 * (maxLen - distance) / maxLen; two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    return 100.0 * (max_len - levenshtein_distance(a, b)) / max_len


def token_sort_ratio(a: str, b: str) -> float:
    return string_similarity(token_sort(a), token_sort(b))


def significant_tokens(text: str) -> FrozenSet[str]:
    return frozenset(t for t in text.split() if t not in STOPWORDS)


def common_token_ratio(a: str, b: str) -> float:
    """Shared significant tokens over the smaller set.

    Scores 0 when either side has no significant tokens or fewer than two are
    shared, so "Nippon India Growth Fund" and "Polycab India Ltd" do not match on
    the one generic word they have in common.
    """
    tokens_a = significant_tokens(a)
    tokens_b = significant_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    common = len(tokens_a & tokens_b)
    if common < MIN_COMMON_TOKENS:
        return 0.0
    return 100.0 * common / min(len(tokens_a), len(tokens_b))


# -------- Scorers --------

def name_similarity(name1: str, name2: str) -> float:
    """Confidence (0-100) that two asset names denote the same holding."""
    norm1 = normalize_name(name1)
    norm2 = normalize_name(name2)
    expanded1 = expand_abbreviations(norm1)
    expanded2 = expand_abbreviations(norm2)

    direct = token_sort_ratio(norm1, norm2)
    expanded = token_sort_ratio(expanded1, expanded2)
    common = common_token_ratio(expanded1, expanded2)

    best = max(direct, expanded, common)
    logger.debug(
        "name_similarity %r vs %r: direct=%.1f expanded=%.1f common=%.1f -> %.1f",
        name1, name2, direct, expanded, common, best,
    )
    return best


def value_similarity(value1: float, value2: float, tolerance_percentage: float) -> float:
    """100 inside the tolerance band, then linear decay to 0."""
    if value1 == 0 or value2 == 0:
        return 100.0 if value1 == value2 else 0.0

    pct_diff = abs(value1 - value2) / max(value1, value2) * 100.0
    if pct_diff <= tolerance_percentage:
        return 100.0
    return max(0.0, 100.0 - (pct_diff - tolerance_percentage) * VALUE_DECAY_FACTOR)


def duplicate_score(
    name1: str,
    name2: str,
    value1: float,
    value2: float,
    config: DetectionConfig,
) -> float:
    """Weighted sum of name and value similarity."""
    return weighted_score(
        name_similarity(name1, name2),
        value_similarity(value1, value2, config.value_tolerance_percentage),
        config,
    )


def weighted_score(name_sim: float, value_sim: float, config: DetectionConfig) -> float:
    return name_sim * config.name_weight + value_sim * config.value_weight


def classify_match(name_sim: float, value_sim: float) -> MatchType:
    if name_sim == 100 and value_sim == 100:
        return "exact"
    if name_sim >= 90 and value_sim >= 90:
        return "name_and_value"
    return "name"
