from __future__ import annotations

"""Deadline-enforcing client for OpenAI-compatible chat completions."""

from dataclasses import dataclass, field
import asyncio
import logging
from typing import Protocol, Sequence

import httpx

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Base class for generation failures."""
    pass


class GenerationTimeout(GenerationError):
    """Raised when the deadline elapses before a response arrives."""
    pass


class GenerationUnavailable(GenerationError):
    """Raised when the endpoint is unreachable or returns a non-success status."""
    pass


class GenerationEmpty(GenerationError):
    """Raised when a success response carries no usable content."""
    pass


Message = tuple[str, str]


class Generator(Protocol):
    """Anything that turns a prompt and messages into text within a deadline."""

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        deadline: float,
    ) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class GenerationClient:
    """Chat-completions client (OpenRouter by default).

    The deadline is enforced here with ``asyncio.wait_for``: when it elapses
    the in-flight request is cancelled and its connection closed with the
    client, regardless of how the remote side behaves.
    """
    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-oss-120b:free"
    temperature: float | None = None
    max_tokens: int | None = None
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False, compare=False)

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        deadline: float,
    ) -> str:
        """Return generated text or raise a GenerationError subclass."""
        if deadline <= 0:
            raise GenerationTimeout("No time left for generation")
        try:
            return await asyncio.wait_for(
                self._request(system_prompt, messages, deadline), timeout=deadline
            )
        except asyncio.TimeoutError as exc:
            raise GenerationTimeout(f"Generation exceeded {deadline:.2f}s") from exc

    async def _request(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        deadline: float,
    ) -> str:
        payload: dict[str, object] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}]
            + [{"role": role, "content": content} for role, content in messages],
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=deadline, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url.rstrip('/')}/chat/completions",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as exc:
            raise GenerationTimeout(str(exc) or "Generation request timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "generation_http_error",
                extra={"status": exc.response.status_code, "model": self.model},
            )
            raise GenerationUnavailable(
                f"Generation endpoint returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationUnavailable(str(exc)) from exc
        except ValueError as exc:
            raise GenerationUnavailable("Generation response is not valid JSON") from exc
        return _extract_content(data)


def _extract_content(data: object) -> str:
    """Pull choices[0].message.content out of a chat-completions body."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices:
        raise GenerationEmpty("Generation response has no choices")
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise GenerationEmpty("Generation response has no content")
    return content.strip()
