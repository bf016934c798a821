"""Text-completion transport used by the LLM-backed collaborators.

Collaborators depend only on the LLM protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` names the caller ("interpreter", "room_generator", "crafting",
"corpse_search") and selects the sampling profile. The interpreter runs cool
so intents stay literal; the room generator runs hot for variety.

    HttpLLM     KoboldCpp generate API or an OpenAI-compatible chat API
                in JSON mode.
    OfflineLLM  raises LLMError on every call, so each collaborator falls
                back to its local default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)

ProviderFormat = Literal["koboldcpp", "openai"]


class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""


@dataclass(frozen=True)
class Sampling:
    temperature: float
    max_tokens: int


STAGE_SAMPLING: dict[str, Sampling] = {
    "interpreter": Sampling(temperature=0.4, max_tokens=1024),
    "room_generator": Sampling(temperature=0.9, max_tokens=2048),
    "crafting": Sampling(temperature=0.7, max_tokens=512),
    "corpse_search": Sampling(temperature=0.8, max_tokens=512),
}
DEFAULT_SAMPLING = Sampling(temperature=0.8, max_tokens=1024)


class HttpLLM:
    """Async HTTP client for a dungeon-master model.

    Wire formats:
      "koboldcpp"  POST /api/v1/generate
                   {"prompt", "max_length", "temperature"} -> {"results": [{"text"}]}
      "openai"     POST /v1/chat/completions, JSON mode
                   {"model", "messages", "max_tokens", "temperature", "response_format"}
                   -> {"choices": [{"message": {"content"}}]}

    Args:
        provider_url:    Base URL, e.g. "http://localhost:5001".
        api_key:         Bearer token; empty sends no Authorization header.
        provider_format: "koboldcpp" (default) or "openai".
        model:           Model name for the openai format.
        timeout:         Per-request HTTP timeout in seconds.
        sampling:        Per-stage overrides merged over STAGE_SAMPLING.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 60.0,
        sampling: dict[str, Sampling] | None = None,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._sampling = {**STAGE_SAMPLING, **(sampling or {})}

    def sampling_for(self, stage: str) -> Sampling:
        return self._sampling.get(stage, DEFAULT_SAMPLING)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _request_for(self, stage: str, prompt: str) -> tuple[str, dict]:
        sampling = self.sampling_for(stage)
        if self._format == "openai":
            body: dict = {
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": sampling.max_tokens,
                "temperature": sampling.temperature,
                "response_format": {"type": "json_object"},
            }
            if self._model:
                body["model"] = self._model
            return f"{self._base_url}/v1/chat/completions", body

        return f"{self._base_url}/api/v1/generate", {
            "prompt": prompt,
            "max_length": sampling.max_tokens,
            "temperature": sampling.temperature,
        }

    def _completion_text(self, data: dict) -> str:
        if self._format == "openai":
            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError):
                content = None
            if not isinstance(content, str):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return content

        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def __call__(self, stage: str, prompt: str) -> str:
        url, body = self._request_for(stage, prompt)
        logger.debug("llm %s -> %s (%d chars)", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e

        text = self._completion_text(data)
        logger.debug("llm %s <- %d chars", stage, len(text))
        return text


class OfflineLLM:
    """Stands in when no backend is configured."""

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("offline llm refused stage %s", stage)
        raise LLMError("No LLM backend configured")
