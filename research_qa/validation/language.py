"""
Conservative language validation.

Generated findings and summaries must not overstate the evidence. The policy
is a denylist of absolute/causal terms (and, optionally, a requirement that
text carries at least one tentative marker such as "suggests" or "found"),
loaded from the guardrails file.
"""

import re
import logging
from typing import List, Optional, Sequence

from research_qa.exceptions import LanguageValidationError
from research_qa.guardrails import load_guardrails

logger = logging.getLogger(__name__)


def _phrase_pattern(phrase: str) -> "re.Pattern":
    words = r"\s+".join(re.escape(w) for w in phrase.lower().split())
    return re.compile(r"\b" + words + r"\b")


class LanguageValidator:
    """Checks generated text against the conservative language policy"""

    def __init__(self, denylist: Optional[Sequence[str]] = None,
                 required_markers: Optional[Sequence[str]] = None,
                 require_markers: bool = False,
                 guardrails_path: Optional[str] = None):
        rules = load_guardrails(guardrails_path).get("language", {})
        self.denylist: List[str] = list(denylist if denylist is not None else rules.get("denylist", []))
        self.required_markers: List[str] = list(
            required_markers if required_markers is not None else rules.get("required_markers", [])
        )
        self.require_markers = require_markers
        self._deny = [(p, _phrase_pattern(p)) for p in self.denylist]
        self._markers = [_phrase_pattern(p) for p in self.required_markers]

    @classmethod
    def from_settings(cls, settings) -> "LanguageValidator":
        return cls(
            require_markers=settings.LANGUAGE_REQUIRE_MARKERS,
            guardrails_path=settings.GUARDRAILS_PATH,
        )

    def violation(self, text: str) -> Optional[str]:
        """First policy violation in text, or None when it passes."""
        if not text or not text.strip():
            return "empty text"
        lower = text.lower()
        for phrase, pattern in self._deny:
            if pattern.search(lower):
                return phrase
        if self.require_markers and self._markers:
            if not any(p.search(lower) for p in self._markers):
                return "missing conservative language marker"
        return None

    def check(self, text: str) -> bool:
        """True if text follows the conservative language policy."""
        v = self.violation(text)
        if v is not None:
            logger.debug(f"Conservative language violation ({v}): {text[:120]!r}")
            return False
        return True

    def enforce(self, text: str) -> str:
        """Return text unchanged, or raise LanguageValidationError."""
        v = self.violation(text)
        if v is not None:
            raise LanguageValidationError(f"Conservative language violation: {v}", text=text, term=v)
        return text
