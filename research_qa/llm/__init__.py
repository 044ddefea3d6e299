"""
LLM Module - Evidence extraction and synthesis collaborators

Extraction requires a configured provider; synthesis falls back to
rules-based scoring when the LLM is not configured or fails.
"""

from research_qa.llm.llm_client import LLMClient, parse_json_response
from research_qa.llm.evidence_extractor import LLMEvidenceExtractor
from research_qa.llm.synthesizer import Synthesizer

__all__ = [
    'LLMClient',
    'parse_json_response',
    'LLMEvidenceExtractor',
    'Synthesizer',
]
