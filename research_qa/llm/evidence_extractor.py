"""
Evidence extractor - one LLM call per (paper, question) pair
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from research_qa.config.settings import Settings, get_settings
from research_qa.exceptions import MalformedResponseError
from research_qa.llm.llm_client import LLMClient
from research_qa.llm.prompts import CONSERVATIVE_SYSTEM_PROMPT, build_extraction_prompt
from research_qa.models import ExtractionResult, Paper

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "LLM provider not configured"

# Provider replies occasionally use camelCase keys
_KEY_ALIASES = {"studyType": "study_type", "sampleSize": "sample_size"}


def _coerce_sample_size(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = int(str(value).replace(",", "").strip())
    except ValueError:
        return None
    return n if n >= 0 else None


def normalize_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map a raw extraction reply onto ExtractionResult field names."""
    out = {_KEY_ALIASES.get(k, k): v for k, v in data.items()}
    out["sample_size"] = _coerce_sample_size(out.get("sample_size"))
    limitations = out.get("limitations") or []
    if isinstance(limitations, str):
        limitations = [limitations]
    out["limitations"] = [str(l) for l in limitations if l]
    return {k: v for k, v in out.items() if k in ExtractionResult.model_fields}


class LLMEvidenceExtractor:
    """Evidence collaborator backed by an LLM provider"""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[LLMClient] = None):
        self.settings = settings or get_settings()
        self.client = client
        if self.client is None and self.settings.llm_enabled:
            self.client = LLMClient(self.settings)

    async def extract(self, paper: Paper, question_text: str) -> ExtractionResult:
        """
        Extract one claim about ``question_text`` from ``paper``.

        Returns a not-relevant result when no provider is configured. Provider
        and parse failures raise; the caller decides how to absorb them.
        """
        if self.client is None:
            logger.debug(f"Skipping extraction for {paper.id}: {NOT_CONFIGURED}")
            return ExtractionResult.not_relevant(NOT_CONFIGURED)

        data = await self.client.complete_json(
            build_extraction_prompt(paper, question_text),
            system=CONSERVATIVE_SYSTEM_PROMPT,
            temperature=self.settings.EXTRACTION_TEMPERATURE,
        )
        try:
            result = ExtractionResult.model_validate(normalize_payload(data))
        except ValidationError as e:
            raise MalformedResponseError(
                f"Extraction reply for paper {paper.id} did not match schema: {e}",
                collaborator="evidence", paper_id=paper.id,
            ) from e

        logger.info(f"Extraction for {paper.id}: relevant={result.relevant} "
                    f"confidence={result.confidence:.2f} study_type={result.study_type}")
        return result
