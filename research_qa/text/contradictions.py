import re
import functools
from typing import List, Optional, Tuple

from ..guardrails import load_guardrails


@functools.lru_cache(maxsize=64)
def _term_pattern(term: str, guard_negation: bool = False) -> "re.Pattern":
    words = r"\s+".join(re.escape(w) for w in term.lower().split())
    guard = r"(?<!\bnot )" if guard_negation else ""
    return re.compile(guard + r"\b" + words + r"\b")


def _has_term(text: str, term: str, partner: str) -> bool:
    # "found" must not match the tail of its own partner "not found"
    guard = partner.lower() == f"not {term.lower()}"
    return bool(_term_pattern(term, guard).search(text))


def antonym_pairs(guardrails_path: Optional[str] = None) -> List[Tuple[str, str]]:
    g = load_guardrails(guardrails_path)
    return [tuple(p) for p in g.get("contradiction", {}).get("antonym_pairs", [])]


def find_antonym_conflict(a_text: Optional[str], b_text: Optional[str],
                          guardrails_path: Optional[str] = None) -> Optional[Tuple[str, str]]:
    """First opposite-term pair used across the two texts, in either direction."""
    if not a_text or not b_text:
        return None
    ta, tb = " ".join(a_text.lower().split()), " ".join(b_text.lower().split())
    for x, y in antonym_pairs(guardrails_path):
        if ((_has_term(ta, x, y) and _has_term(tb, y, x)) or
                (_has_term(ta, y, x) and _has_term(tb, x, y))):
            return (x, y)
    return None


def has_result_conflict(a_text: Optional[str], b_text: Optional[str],
                        guardrails_path: Optional[str] = None) -> bool:
    return find_antonym_conflict(a_text, b_text, guardrails_path) is not None
