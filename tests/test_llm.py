"""Tests for rpg_chronicle.llm — HttpNarrator, EchoNarrator and HttpImageGenerator."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from rpg_chronicle.llm import (
    EchoNarrator,
    HttpImageGenerator,
    HttpNarrator,
    LLMError,
    Transcript,
    flatten_transcript,
)


class _FakeStream:
    """Stands in for the async context manager returned by AsyncClient.stream()."""

    def __init__(self, lines: list[str], status: int = 200, error: Exception | None = None) -> None:
        self.lines = lines
        self.status_code = status
        self.error = error

    async def __aenter__(self) -> "_FakeStream":
        return self

    async def __aexit__(self, *exc) -> bool:
        return False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("", request=MagicMock(), response=self)

    async def aiter_lines(self):
        for line in self.lines:
            yield line
        if self.error is not None:
            raise self.error


def _kobold_lines(*tokens: str) -> list[str]:
    lines = []
    for token in tokens:
        lines += ["event: message", f"data: {json.dumps({'token': token})}", ""]
    return lines


def _openai_lines(*tokens: str) -> list[str]:
    lines = [f"data: {json.dumps({'choices': [{'delta': {'role': 'assistant'}}]})}"]
    for token in tokens:
        lines.append(f"data: {json.dumps({'choices': [{'delta': {'content': token}}]})}")
    lines.append("data: [DONE]")
    return lines


async def _collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


# ---------------------------------------------------------------------------
# EchoNarrator
# ---------------------------------------------------------------------------

class TestEchoNarrator:
    async def test_streams_action_back(self) -> None:
        narrator = EchoNarrator()
        transcript = Transcript()
        fragments = await _collect(narrator.continue_session(transcript, "open the door"))
        assert fragments == ["open", " the", " door"]
        assert "".join(fragments) == "open the door"

    async def test_commits_exchange_after_stream(self) -> None:
        narrator = EchoNarrator()
        transcript = Transcript([{"role": "system", "content": "rules"}])
        await _collect(narrator.continue_session(transcript, "wave"))
        assert transcript.export() == [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "wave"},
            {"role": "assistant", "content": "wave"},
        ]

    async def test_start_session(self, settings) -> None:
        transcript, text = await EchoNarrator().start_session(settings)
        assert [m["role"] for m in transcript.messages] == ["system", "user", "assistant"]
        assert "Dark fantasy" in text

    async def test_consult_leaves_transcript_alone(self) -> None:
        transcript = Transcript()
        fragments = await _collect(EchoNarrator().consult(transcript, "what now?"))
        assert "".join(fragments) == "what now?"
        assert len(transcript) == 0


# ---------------------------------------------------------------------------
# Transcript rehydration
# ---------------------------------------------------------------------------

class TestRehydrate:
    def test_round_trip(self) -> None:
        narrator = EchoNarrator()
        messages = [{"role": "system", "content": "a"}, {"role": "user", "content": "b"}]
        transcript = narrator.rehydrate_session(messages)
        assert narrator.export_transcript(transcript) == messages

    def test_export_is_a_copy(self) -> None:
        transcript = Transcript([{"role": "user", "content": "a"}])
        exported = transcript.export()
        exported[0]["content"] = "changed"
        assert transcript.messages[0]["content"] == "a"

    @pytest.mark.parametrize("bad", [
        [{"role": "wizard", "content": "x"}],
        [{"role": "user"}],
        [{"role": "user", "content": 3}],
        ["just text"],
    ])
    def test_rejects_foreign_entries(self, bad) -> None:
        with pytest.raises(LLMError):
            EchoNarrator().rehydrate_session(bad)

    def test_rejects_non_list(self) -> None:
        with pytest.raises(LLMError):
            EchoNarrator().rehydrate_session({"role": "user"})


# ---------------------------------------------------------------------------
# HttpNarrator: KoboldCpp format
# ---------------------------------------------------------------------------

class TestHttpNarratorKoboldCpp:
    @pytest.fixture
    def narrator(self) -> HttpNarrator:
        return HttpNarrator(provider_url="http://localhost:5001/", api_key="")

    async def test_streams_tokens(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(return_value=_FakeStream(_kobold_lines("The ", "tavern.")))
        with patch("httpx.AsyncClient.stream", mock_stream):
            fragments = await _collect(narrator.continue_session(Transcript(), "look"))
        assert fragments == ["The ", "tavern."]

    async def test_posts_flattened_prompt(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(return_value=_FakeStream(_kobold_lines("ok")))
        transcript = Transcript([{"role": "system", "content": "You are the GM."}])
        with patch("httpx.AsyncClient.stream", mock_stream):
            await _collect(narrator.continue_session(transcript, "look"))

        method, url = mock_stream.call_args[0]
        assert method == "POST"
        assert url == "http://localhost:5001/api/extra/generate/stream"
        prompt = mock_stream.call_args.kwargs["json"]["prompt"]
        assert prompt.startswith("You are the GM.")
        assert "### Player:\nlook" in prompt
        assert prompt.endswith("### Game Master:\n")

    async def test_no_auth_header_without_api_key(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(return_value=_FakeStream(_kobold_lines("ok")))
        with patch("httpx.AsyncClient.stream", mock_stream):
            await _collect(narrator.continue_session(Transcript(), "look"))
        assert "Authorization" not in mock_stream.call_args.kwargs["headers"]

    async def test_connect_error(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.stream", mock_stream):
            with pytest.raises(LLMError, match="Cannot connect"):
                await _collect(narrator.continue_session(Transcript(), "look"))

    async def test_http_error(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(return_value=_FakeStream([], status=503))
        with patch("httpx.AsyncClient.stream", mock_stream):
            with pytest.raises(LLMError, match="HTTP 503"):
                await _collect(narrator.continue_session(Transcript(), "look"))

    async def test_interrupted_stream_is_not_committed(self, narrator: HttpNarrator) -> None:
        lines = _kobold_lines("The ", "door")
        mock_stream = MagicMock(return_value=_FakeStream(lines, error=httpx.ReadError("reset")))
        transcript = Transcript()
        received: list[str] = []
        with patch("httpx.AsyncClient.stream", mock_stream):
            with pytest.raises(LLMError, match="interrupted"):
                async for fragment in narrator.continue_session(transcript, "look"):
                    received.append(fragment)
        assert received == ["The ", "door"]
        assert len(transcript) == 0

    async def test_malformed_frame(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(return_value=_FakeStream(["data: {broken"]))
        with patch("httpx.AsyncClient.stream", mock_stream):
            with pytest.raises(LLMError, match="Malformed stream frame"):
                await _collect(narrator.continue_session(Transcript(), "look"))


# ---------------------------------------------------------------------------
# HttpNarrator: OpenAI format
# ---------------------------------------------------------------------------

class TestHttpNarratorOpenAI:
    @pytest.fixture
    def narrator(self) -> HttpNarrator:
        return HttpNarrator(
            provider_url="http://localhost:8080",
            api_key="secret",
            provider_format="openai",
            model="mistral-7b",
        )

    async def test_streams_deltas_until_done(self, narrator: HttpNarrator) -> None:
        lines = _openai_lines("A stormy", " night.") + [
            f"data: {json.dumps({'choices': [{'delta': {'content': 'after done'}}]})}"
        ]
        mock_stream = MagicMock(return_value=_FakeStream(lines))
        with patch("httpx.AsyncClient.stream", mock_stream):
            fragments = await _collect(narrator.continue_session(Transcript(), "look"))
        assert fragments == ["A stormy", " night."]

    async def test_request_body(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(return_value=_FakeStream(_openai_lines("ok")))
        transcript = Transcript([{"role": "system", "content": "rules"}])
        with patch("httpx.AsyncClient.stream", mock_stream):
            await _collect(narrator.continue_session(transcript, "look"))

        assert mock_stream.call_args[0][1] == "http://localhost:8080/v1/chat/completions"
        body = mock_stream.call_args.kwargs["json"]
        assert body["model"] == "mistral-7b"
        assert body["stream"] is True
        assert body["messages"] == [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "look"},
        ]
        assert mock_stream.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    async def test_start_session_collects_opening(self, narrator: HttpNarrator, settings) -> None:
        mock_stream = MagicMock(return_value=_FakeStream(_openai_lines("You ", "wake.")))
        with patch("httpx.AsyncClient.stream", mock_stream):
            transcript, text = await narrator.start_session(settings)
        assert text == "You wake."
        assert transcript.messages[-1] == {"role": "assistant", "content": "You wake."}

    async def test_timeout(self, narrator: HttpNarrator) -> None:
        mock_stream = MagicMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.stream", mock_stream):
            with pytest.raises(LLMError, match="timed out"):
                await _collect(narrator.continue_session(Transcript(), "look"))


def test_flatten_transcript():
    prompt = flatten_transcript([
        {"role": "system", "content": "Rules."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
    ])
    assert prompt == "Rules.\n\n### Player:\nHi\n\n### Game Master:\nHello\n\n### Game Master:\n"


# ---------------------------------------------------------------------------
# HttpImageGenerator
# ---------------------------------------------------------------------------

def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


class TestHttpImageGenerator:
    @pytest.fixture
    def generator(self) -> HttpImageGenerator:
        return HttpImageGenerator(provider_url="http://localhost:7860", model="sdxl", size="512x512")

    async def test_returns_data_url(self, generator: HttpImageGenerator) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"data": [{"b64_json": "AAAA"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            ref = await generator.generate("a castle")
        assert ref == "data:image/png;base64,AAAA"

        assert mock_post.call_args[0][0] == "http://localhost:7860/v1/images/generations"
        body = mock_post.call_args.kwargs["json"]
        assert body["prompt"] == "a castle"
        assert body["model"] == "sdxl"
        assert body["size"] == "512x512"
        assert body["response_format"] == "b64_json"

    async def test_accepts_hosted_url(self, generator: HttpImageGenerator) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"data": [{"url": "https://img/1.png"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await generator.generate("a castle") == "https://img/1.png"

    async def test_empty_response(self, generator: HttpImageGenerator) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"data": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="did not contain any images"):
                await generator.generate("a castle")

    async def test_http_error(self, generator: HttpImageGenerator) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=500))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 500"):
                await generator.generate("a castle")

    async def test_connect_error(self, generator: HttpImageGenerator) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await generator.generate("a castle")
