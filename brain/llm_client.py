"""
llm_client.py
=============
Request/response adapter for an OpenAI-compatible chat-completions endpoint
(mistral.rs, llama.cpp server, vLLM, LM Studio, OpenAI itself ...).

Any failure to obtain a non-empty completion surfaces as
GenerationUnavailable. Retries are a property of this adapter
(``max_retries``) and nothing upstream relies on them.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import openai  # type: ignore
from openai import OpenAI  # type: ignore

from brain.config import GenerationConfig
from brain.errors import GenerationUnavailable

logger = logging.getLogger(__name__)

Message = Dict[str, str]


def _status_of(exc: Exception) -> Optional[int]:
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        return status_code
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


class GenerationClient:
    """Stateless chat/completion calls with a bounded timeout."""

    def __init__(self, config: GenerationConfig) -> None:
        self._config = config
        self._client = OpenAI(
            base_url    = config.base_url,
            api_key     = config.api_key or "not-needed",
            timeout     = config.timeout,
            max_retries = config.max_retries,
        )

    @property
    def model(self) -> str:
        return self._config.model

    def chat(
        self,
        messages: List[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Send ``messages`` and return the first choice's text."""
        try:
            completion = self._client.chat.completions.create(
                model       = self._config.model,
                messages    = messages,
                max_tokens  = max_tokens or self._config.max_tokens,
                temperature = self._config.temperature if temperature is None else temperature,
            )
        except openai.APITimeoutError as exc:
            logger.warning("Generation request timed out after %.1fs", self._config.timeout)
            raise GenerationUnavailable(
                f"Generation service timed out: {exc}",
                details={"base_url": self._config.base_url, "timeout": self._config.timeout},
            ) from exc
        except openai.APIConnectionError as exc:
            logger.warning("Generation service unreachable at %s: %s", self._config.base_url, exc)
            raise GenerationUnavailable(
                f"Generation service unreachable: {exc}",
                details={"base_url": self._config.base_url},
            ) from exc
        except openai.APIError as exc:
            status_code = _status_of(exc)
            logger.warning("Generation service error (status=%s): %s", status_code, exc)
            raise GenerationUnavailable(
                f"Generation service error: {exc}",
                details={"base_url": self._config.base_url, "status_code": status_code},
            ) from exc

        choices = getattr(completion, "choices", None) or []
        content = None
        if choices and choices[0].message is not None:
            content = choices[0].message.content
        if not content or not content.strip():
            raise GenerationUnavailable(
                "Generation service returned an empty response",
                details={"model": self._config.model},
            )
        return content.strip()

    def complete(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        return self.chat([{"role": "user", "content": prompt}], max_tokens, temperature)

    def health_check(self) -> bool:
        """True when the service answers a model listing."""
        try:
            self._client.models.list()
        except openai.APIError as exc:
            logger.debug("Generation health check failed: %s", exc)
            return False
        return True
