"""
Language Model Service

Chat completions through the OpenAI SDK against any OpenAI-compatible endpoint,
plus normalisation of the response shapes providers return.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Protocol, Union

from .errors import GenerationError
from .models import TokenUsage

logger = logging.getLogger(__name__)

Messages = list[dict]
PromptInput = Union[str, Messages]


def normalize_content(content: Any) -> str:
    """
    Reduce a model response body to plain text.

    Handles:
    - str: returned unchanged
    - list of parts: text of each part concatenated; parts may be strings,
      dicts with "text"/"content", or objects with a .text attribute.
      Non-text parts (images, tool calls) contribute nothing.
    - dict or object carrying "text"/"content": that value, normalised
    - None: empty string
    Anything else is JSON-encoded when possible, otherwise str()-ed.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return "".join(_part_text(part) for part in content)
    if isinstance(content, dict):
        for key in ("text", "content"):
            if key in content:
                return normalize_content(content[key])
    else:
        for attr in ("text", "content"):
            value = getattr(content, attr, None)
            if value is not None:
                return normalize_content(value)

    # Fallback for unknown shapes
    try:
        return json.dumps(content, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(content)


def _part_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        value = part.get("text", part.get("content"))
        return normalize_content(value) if value is not None else ""
    value = getattr(part, "text", None)
    return value if isinstance(value, str) else ""


def to_messages(prompt: PromptInput, system: Optional[str] = None) -> Messages:
    """Turn a bare prompt or a message list into chat messages."""
    if isinstance(prompt, str):
        messages = [{"role": "user", "content": prompt}]
    else:
        messages = [dict(m) for m in prompt]
    if system:
        messages.insert(0, {"role": "system", "content": system})
    return messages


@dataclass
class LLMResponse:
    """Raw content from one model call and the tokens it used."""
    content: Any
    usage: Optional[TokenUsage] = None

    @property
    def text(self) -> str:
        return normalize_content(self.content)


class LanguageModel(Protocol):
    """Capability consumed by the classifier, composer and enrichment steps."""

    def invoke(self, prompt: PromptInput) -> LLMResponse: ...

    def stream(self, prompt: PromptInput) -> Iterator[str]: ...


class OpenAIChatModel:
    """
    Chat model over the OpenAI SDK.

    Works with api.openai.com or any compatible base URL.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        timeout: float = 120.0,
        max_tokens: int = 2000,
        client=None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_config(cls, config) -> "OpenAIChatModel":
        return cls(
            model=config.llm_model,
            base_url=config.llm_base_url,
            api_key=config.llm_api_key,
            temperature=config.llm_temperature,
            timeout=config.llm_timeout,
        )

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                base_url=self._base_url or os.getenv("OPENAI_BASE_URL") or None,
                api_key=self._api_key or os.getenv("OPENAI_API_KEY"),
                timeout=self._timeout,
            )
        return self._client

    def invoke(self, prompt: PromptInput) -> LLMResponse:
        """
        Single chat completion.

        Raises:
            GenerationError: on any provider failure
        """
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=to_messages(prompt),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error(f"LLM call failed ({self.model}): {type(e).__name__}: {e}")
            raise GenerationError(f"Language model call failed: {e}") from e

        if not response.choices:
            raise GenerationError("Language model returned no choices")

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = TokenUsage(
                prompt=response.usage.prompt_tokens or 0,
                completion=response.usage.completion_tokens or 0,
                total=response.usage.total_tokens or 0,
            )
        return LLMResponse(content=response.choices[0].message.content, usage=usage)

    def stream(self, prompt: PromptInput) -> Iterator[str]:
        """
        Streamed chat completion, yielding text deltas as they arrive.

        Raises:
            GenerationError: on any provider failure, including mid-stream
        """
        try:
            stream = self._get_client().chat.completions.create(
                model=self.model,
                messages=to_messages(prompt),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
            for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except Exception as e:
            logger.error(f"LLM stream failed ({self.model}): {type(e).__name__}: {e}")
            raise GenerationError(f"Language model stream failed: {e}") from e
