"""Narrator and image clients — connections to the generation backends.

The turn engine talks to the narrator through the protocol:

    async def start_session(settings) -> (Transcript, first_response)
    def continue_session(transcript, action) -> AsyncIterator[str]
    def rehydrate_session(serialized) -> Transcript
    def export_transcript(transcript) -> list[dict]
    def consult(transcript, prompt) -> AsyncIterator[str]

The transcript is the narrator's own conversation state. The engine treats
it as opaque: it only hands it back to the narrator and persists whatever
export_transcript() returns.

Implementations:

    HttpNarrator — streaming HTTP client, supports KoboldCpp and
                   OpenAI-compatible backends. Selected by provider_format.
    EchoNarrator — streams the action back unchanged. Useful for
                   smoke-testing the wiring without a running model.

Images go through a separate ImageGenerator (HttpImageGenerator for an
OpenAI-compatible images endpoint). Tests use scripted stubs instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol

import httpx

from rpg_chronicle import prompts
from rpg_chronicle.models import GameSettings

logger = logging.getLogger(__name__)

ChatRole = Literal["system", "user", "assistant"]
_CHAT_ROLES = ("system", "user", "assistant")


# ---------------------------------------------------------------------------
# Transcript: the narrator-side conversation state
# ---------------------------------------------------------------------------

class Transcript:
    """Ordered chat messages exchanged with the narrator."""

    def __init__(self, messages: list[dict[str, str]] | None = None) -> None:
        self.messages: list[dict[str, str]] = [dict(m) for m in messages or []]

    def append(self, role: ChatRole, content: str) -> None:
        self.messages.append({"role": role, "content": content})

    def export(self) -> list[dict[str, str]]:
        return [dict(m) for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)


# ---------------------------------------------------------------------------
# Protocols: every implementation must match these signatures
# ---------------------------------------------------------------------------

class Narrator(Protocol):
    async def start_session(self, settings: GameSettings) -> tuple[Transcript, str]: ...

    def continue_session(self, transcript: Transcript, action: str) -> AsyncIterator[str]: ...

    def rehydrate_session(self, serialized: list[dict[str, Any]]) -> Transcript: ...

    def export_transcript(self, transcript: Transcript) -> list[dict[str, Any]]: ...

    def consult(self, transcript: Transcript, prompt: str) -> AsyncIterator[str]: ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# ChatNarrator: transcript bookkeeping shared by all narrators
# ---------------------------------------------------------------------------

class ChatNarrator:
    """Implements the Narrator protocol on top of a single `_stream` hook.

    A continue_session() exchange is committed to the transcript only
    after its stream finished, so a failed turn leaves no trace.
    """

    async def _stream(self, stage: str, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        raise NotImplementedError
        yield ""  # pragma: no cover

    async def start_session(self, settings: GameSettings) -> tuple[Transcript, str]:
        transcript = Transcript()
        transcript.append("system", prompts.game_master_prompt(settings.language))
        opening = prompts.opening_prompt(settings)
        messages = transcript.messages + [{"role": "user", "content": opening}]

        parts = [fragment async for fragment in self._stream("opening", messages)]
        text = "".join(parts)

        transcript.append("user", opening)
        transcript.append("assistant", text)
        return transcript, text

    async def continue_session(self, transcript: Transcript, action: str) -> AsyncIterator[str]:
        messages = transcript.messages + [{"role": "user", "content": action}]
        parts: list[str] = []
        async for fragment in self._stream("turn", messages):
            parts.append(fragment)
            yield fragment
        transcript.append("user", action)
        transcript.append("assistant", "".join(parts))

    async def consult(self, transcript: Transcript, prompt: str) -> AsyncIterator[str]:
        messages = transcript.messages + [{"role": "user", "content": prompt}]
        async for fragment in self._stream("consult", messages):
            yield fragment

    def rehydrate_session(self, serialized: list[dict[str, Any]]) -> Transcript:
        if not isinstance(serialized, list):
            raise LLMError("Transcript must be a list of chat messages")
        for entry in serialized:
            if (
                not isinstance(entry, dict)
                or entry.get("role") not in _CHAT_ROLES
                or not isinstance(entry.get("content"), str)
            ):
                raise LLMError(f"Transcript entry is not a chat message: {entry!r}")
        return Transcript(serialized)

    def export_transcript(self, transcript: Transcript) -> list[dict[str, Any]]:
        return transcript.export()


# ---------------------------------------------------------------------------
# HttpNarrator: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]

_DONE = object()


class HttpNarrator(ChatNarrator):
    """Async streaming HTTP client for text-generation backends.

    Supported formats:
      "koboldcpp"  — POST /api/extra/generate/stream  {"prompt": ...}
                     SSE frames: data: {"token": "..."}
      "openai"     — POST /v1/chat/completions  {"model", "messages", "stream": true}
                     SSE frames: data: {"choices": [{"delta": {"content": "..."}}]}
                     terminated by data: [DONE]

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "koboldcpp".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, messages: list[dict[str, str]]) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {"messages": messages, "stream": True}
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp (default)
        url = f"{self._base_url}/api/extra/generate/stream"
        return url, {"prompt": flatten_transcript(messages)}

    def _parse_event(self, line: str) -> Any:
        """Extract the text fragment from one SSE line.

        Returns None for lines that carry no text, _DONE at end of stream.
        """
        line = line.strip()
        if not line.startswith("data:"):
            return None
        payload = line[len("data:"):].strip()
        if payload == "[DONE]":
            return _DONE
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise LLMError(f"Malformed stream frame from LLM backend: {payload[:80]!r}") from e

        if self._format == "openai":
            choices = data.get("choices") if isinstance(data, dict) else None
            if not choices:
                return None
            return (choices[0].get("delta") or {}).get("content")

        # koboldcpp
        if not isinstance(data, dict):
            raise LLMError("Unexpected stream frame from KoboldCpp backend")
        return data.get("token")

    async def _stream(self, stage: str, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        url, body = self._build_request(messages)
        logger.debug("llm stream stage=%s url=%s messages=%d", stage, url, len(messages))

        received = 0
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        fragment = self._parse_event(line)
                        if fragment is _DONE:
                            break
                        if fragment:
                            received += len(fragment)
                            yield fragment
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise LLMError(f"LLM stream interrupted: {e}") from e

        logger.debug("llm stream done stage=%s len=%d", stage, received)


def flatten_transcript(messages: list[dict[str, str]]) -> str:
    """Render chat messages as a single completion prompt."""
    labels = {"user": "### Player:", "assistant": "### Game Master:"}
    parts: list[str] = []
    for message in messages:
        label = labels.get(message["role"])
        if label:
            parts.append(f"{label}\n{message['content']}")
        else:
            parts.append(message["content"])
    parts.append(labels["assistant"])
    return "\n\n".join(parts) + "\n"


# ---------------------------------------------------------------------------
# EchoNarrator: streams the action back; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoNarrator(ChatNarrator):
    """Streams the last user message back word by word. No network calls."""

    async def _stream(self, stage: str, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        logger.debug("EchoNarrator stage=%s messages=%d", stage, len(messages))
        words = messages[-1]["content"].split(" ") if messages else []
        for i, word in enumerate(words):
            yield word if i == 0 else f" {word}"


# ---------------------------------------------------------------------------
# HttpImageGenerator: OpenAI-compatible images endpoint
# ---------------------------------------------------------------------------

class HttpImageGenerator:
    """POST /v1/images/generations and return the image as a data: URL."""

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        size: str = "1024x1024",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._size = size
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def generate(self, prompt: str) -> str:
        url = f"{self._base_url}/v1/images/generations"
        body: dict = {"prompt": prompt, "n": 1, "size": self._size, "response_format": "b64_json"}
        if self._model:
            body["model"] = self._model
        logger.debug("image request url=%s prompt_len=%d", url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to image backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"Image backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"Image backend timed out after {self._timeout}s") from e

        data = resp.json().get("data")
        if not data:
            raise LLMError("Image generation response did not contain any images")
        if data[0].get("b64_json"):
            return f"data:image/png;base64,{data[0]['b64_json']}"
        if data[0].get("url"):
            return data[0]["url"]
        raise LLMError("Image generation response did not contain image data")


# ---------------------------------------------------------------------------
# LLMError: raised for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when a generation backend cannot be reached or returns an error."""
