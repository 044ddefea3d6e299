"""
LLM Client - Provider Interface for Evidence Extraction and Synthesis

Handles communication with Anthropic or OpenAI through their async SDKs.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import anthropic
import openai
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from research_qa.config.settings import Settings, get_settings
from research_qa.exceptions import APIError, ConfigurationError, MalformedResponseError, RateLimitError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response.

    Accepts a bare object, an object wrapped in a markdown code fence, or an
    object surrounded by prose.
    """
    if not text or not text.strip():
        raise MalformedResponseError("Empty LLM response")

    candidate = text.strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    elif not candidate.startswith("{"):
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponseError(f"No JSON object in LLM response: {text[:200]!r}")
        candidate = candidate[start:end + 1]

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in LLM response: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class LLMClient:
    """Unified async LLM client for multiple providers"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = self.settings.LLM_PROVIDER
        self.model_name = self.settings.model_name
        self._client = self._initialize_client()

    def _initialize_client(self):
        """Initialize the appropriate LLM client"""
        if self.provider == "anthropic":
            return anthropic.AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)
        if self.provider == "openai":
            kwargs = {"api_key": self.settings.OPENAI_API_KEY}
            if self.settings.OPENAI_API_BASE:
                kwargs["base_url"] = self.settings.OPENAI_API_BASE
            return openai.AsyncOpenAI(**kwargs)
        return None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(self, prompt: str, system: str = "", max_tokens: Optional[int] = None,
                       temperature: float = 0.3) -> str:
        """
        Send one prompt and return the text of the reply.

        Provider errors are retried with exponential backoff; after the last
        attempt the APIError propagates.
        """
        if not self._client:
            raise ConfigurationError(f"LLM client not initialized for provider '{self.provider}'")

        max_tokens = max_tokens or self.settings.LLM_MAX_TOKENS
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.RETRY_MAX_TRIES),
            wait=wait_exponential(multiplier=self.settings.RETRY_BACKOFF_BASE_SECONDS,
                                  max=self.settings.RETRY_BACKOFF_MAX_SECONDS),
            retry=retry_if_exception_type(APIError),
            reraise=True,
        ):
            with attempt:
                if self.provider == "anthropic":
                    return await self._anthropic_complete(prompt, system, max_tokens, temperature)
                return await self._openai_complete(prompt, system, max_tokens, temperature)

    async def _anthropic_complete(self, prompt: str, system: str, max_tokens: int,
                                  temperature: float) -> str:
        """Generate text using Anthropic"""
        try:
            message = await self._client.messages.create(
                model=self.model_name,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            logger.warning(f"Anthropic rate limit hit: {e}")
            raise RateLimitError(str(e), provider="anthropic", status_code=429) from e
        except anthropic.APIError as e:
            logger.error(f"Anthropic request failed: {e}")
            raise APIError(f"Anthropic request failed: {e}", provider="anthropic",
                           status_code=getattr(e, "status_code", None)) from e

        texts = [block.text for block in message.content if getattr(block, "type", "") == "text"]
        if not texts:
            raise MalformedResponseError("Anthropic response contained no text", collaborator="anthropic")
        return "".join(texts)

    async def _openai_complete(self, prompt: str, system: str, max_tokens: int,
                               temperature: float) -> str:
        """Generate text using OpenAI"""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        try:
            response = await self._client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit hit: {e}")
            raise RateLimitError(str(e), provider="openai", status_code=429) from e
        except openai.APIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise APIError(f"OpenAI request failed: {e}", provider="openai",
                           status_code=getattr(e, "status_code", None)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise MalformedResponseError("OpenAI response contained no text", collaborator="openai")
        return content

    async def complete_json(self, prompt: str, system: str = "", max_tokens: Optional[int] = None,
                            temperature: float = 0.3) -> Dict[str, Any]:
        """``complete`` followed by ``parse_json_response``."""
        text = await self.complete(prompt, system=system, max_tokens=max_tokens, temperature=temperature)
        return parse_json_response(text)
