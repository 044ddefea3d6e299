"""
Keyword pre-filter selecting candidate papers for a question.

Deliberately simple: a paper is a candidate when any significant question
keyword appears in its title or abstract.
"""

from typing import List, Optional, Sequence
import logging

from research_qa.guardrails import load_guardrails
from research_qa.models import Paper
from research_qa.text.normalize import ordered_keywords

logger = logging.getLogger(__name__)


def stop_words(guardrails_path: Optional[str] = None) -> List[str]:
    return list(load_guardrails(guardrails_path).get("selection", {}).get("stop_words", []))


def extract_keywords(text: str, guardrails_path: Optional[str] = None) -> List[str]:
    """Lower-cased, stop-word-filtered words longer than three characters."""
    return ordered_keywords(text, stop_words(guardrails_path))


def matches(paper: Paper, keywords: Sequence[str]) -> bool:
    haystack = paper.search_text
    return any(k in haystack for k in keywords)


def select_candidates(question_text: str, papers: Sequence[Paper],
                      guardrails_path: Optional[str] = None) -> List[Paper]:
    """Papers matching any question keyword, in library order."""
    keywords = extract_keywords(question_text, guardrails_path)
    if not keywords:
        logger.info(f"No usable keywords in question: {question_text!r}")
        return []
    selected = [p for p in papers if matches(p, keywords)]
    logger.info(f"Found {len(selected)} of {len(papers)} papers matching keywords {keywords}")
    return selected
