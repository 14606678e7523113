"""
Fuzzy customer-name matching.

Source data spells the same customer several ways ("Air Culinaire",
"Air Culinaire Worldwide", "AirCulinaire"), so lookups go through a layered
comparison instead of string equality.
"""
import re
from difflib import SequenceMatcher
from typing import Iterable, List

STOP_WORDS = {"the", "and", "inc", "llc", "ltd", "co", "corp", "of", "for"}
MIN_SUBSTRING_LENGTH = 3


def normalize_name(name: str) -> str:
    """Lower-case, drop punctuation, collapse whitespace."""
    cleaned = re.sub(r"[^a-z0-9\s]", " ", (name or "").lower())
    return re.sub(r"\s+", " ", cleaned).strip()


def significant_words(name: str) -> List[str]:
    return [w for w in normalize_name(name).split() if len(w) > 1 and w not in STOP_WORDS]


def _words_contained(words: List[str], text: str) -> bool:
    return bool(words) and all(word in text for word in words)


def names_match(query: str, candidate: str) -> bool:
    """
    True when two customer names refer to the same customer.

    Layers, any success wins:
        1. normalized equality
        2. substring either direction
        3. every significant word of one appears in the other
        4. space-stripped equality or substring
    """
    q = normalize_name(query)
    c = normalize_name(candidate)
    if not q or not c:
        return False

    if q == c:
        return True

    shorter = min(len(q), len(c))
    if shorter >= MIN_SUBSTRING_LENGTH and (q in c or c in q):
        return True

    if _words_contained(significant_words(q), c) or _words_contained(significant_words(c), q):
        return True

    q_compact = q.replace(" ", "")
    c_compact = c.replace(" ", "")
    if q_compact == c_compact:
        return True
    if min(len(q_compact), len(c_compact)) < MIN_SUBSTRING_LENGTH:
        return False
    return q_compact in c_compact or c_compact in q_compact


def similarity(query: str, candidate: str) -> float:
    """Score used to rank suggestions, higher is closer."""
    q = normalize_name(query)
    c = normalize_name(candidate)
    if not q or not c:
        return 0.0
    score = SequenceMatcher(None, q, c).ratio()
    shared = set(significant_words(q)) & set(significant_words(c))
    if shared:
        score += 0.2 * len(shared)
    if names_match(q, c):
        score += 0.5
    return score


def suggest_customers(query: str, names: Iterable[str], limit: int = 5, cutoff: float = 0.45) -> List[str]:
    """Distinct names most similar to the query, best first."""
    scored = {}
    for name in names:
        if not name or name in scored:
            continue
        scored[name] = similarity(query, name)
    ranked = sorted(
        (name for name, score in scored.items() if score >= cutoff),
        key=lambda name: (-scored[name], name)
    )
    return ranked[:limit]
