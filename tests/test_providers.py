import json

import httpx
import pytest

from conftest import make_settings
from docschat.errors import ProviderError
from docschat.providers.anthropic import AnthropicProvider, to_anthropic_payload
from docschat.providers.gemini import GeminiProvider, to_gemini_payload
from docschat.providers.granite import GraniteProvider
from docschat.providers.openai import OpenAIProvider
from docschat.providers.router import ProviderRouter
from docschat.schemas.chat import ChatMessage

MESSAGES = [
    ChatMessage(role="system", content="Be brief."),
    ChatMessage(role="user", content="hi"),
    ChatMessage(role="assistant", content="hello"),
    ChatMessage(role="user", content="how are you?"),
]


async def collect(backend, model="m", messages=MESSAGES, max_tokens=64):
    return [text async for text in backend.stream(model, messages, max_tokens)]


def sse(*objects, done=True):
    lines = [f"data: {json.dumps(o)}\n\n" for o in objects]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


@pytest.mark.parametrize("backend_cls, prefix", [(AnthropicProvider, "anthropic"), (OpenAIProvider, "openai"), (GeminiProvider, "google"), (GraniteProvider, "ibm")])
async def test_mock_stream_without_credentials(backend_cls, prefix):
    parts = await collect(backend_cls(make_settings()))
    assert "".join(parts) == f"[{prefix}-mock] You said: 'how are you?'"
    assert len(parts) > 1


async def test_openai_parses_sse_deltas():
    seen = []

    def handler(request):
        seen.append(request)
        body = sse(
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
        )
        return httpx.Response(200, text=body)

    backend = OpenAIProvider(make_settings(openai_api_key="sk-test"), transport=httpx.MockTransport(handler))
    assert await collect(backend, model="gpt-4o") == ["Hel", "lo"]

    request = seen[0]
    assert request.url == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "gpt-4o"
    assert payload["stream"] is True
    assert payload["max_tokens"] == 64
    assert [m["role"] for m in payload["messages"]] == ["system", "user", "assistant", "user"]


async def test_retries_transient_failures():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, json={"error": "overloaded"})
        return httpx.Response(200, text=sse({"choices": [{"delta": {"content": "ok"}}]}))

    backend = OpenAIProvider(make_settings(openai_api_key="sk-test"), transport=httpx.MockTransport(handler))
    assert await collect(backend) == ["ok"]
    assert len(calls) == 2


async def test_gives_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    settings = make_settings(openai_api_key="sk-test", upstream_max_attempts=3)
    backend = OpenAIProvider(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderError, match="unreachable"):
        await collect(backend)
    assert len(calls) == 3


@pytest.mark.parametrize(
    "status, fragment",
    [(401, "Authentication"), (403, "Authentication"), (400, "Bad request"), (402, "Payment required")],
)
async def test_client_errors_are_not_retried(status, fragment):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, json={"error": {"message": "nope"}})

    backend = OpenAIProvider(make_settings(openai_api_key="sk-test"), transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderError, match=fragment) as info:
        await collect(backend)
    assert info.value.status == status
    assert len(calls) == 1


async def test_rate_limit_message_after_retries():
    backend = OpenAIProvider(
        make_settings(openai_api_key="sk-test", upstream_max_attempts=2),
        transport=httpx.MockTransport(lambda r: httpx.Response(429, json={})),
    )
    with pytest.raises(ProviderError, match="Too many requests"):
        await collect(backend)


def test_anthropic_payload_moves_system_prompt():
    payload = to_anthropic_payload("claude", MESSAGES + [ChatMessage(role="assistant", content="  ")], 128)
    assert payload["system"] == "Be brief."
    assert [m["role"] for m in payload["messages"]] == ["user", "assistant", "user"]
    assert payload["messages"][0]["content"] == [{"type": "text", "text": "hi"}]
    assert payload["max_tokens"] == 128


async def test_anthropic_stream_events():
    def handler(request):
        assert request.headers["x-api-key"] == "sk-ant-test"
        body = "".join(
            [
                'event: message_start\ndata: {"type":"message_start"}\n\n',
                'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Bon"}}\n\n',
                "data: not-json\n\n",
                'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"jour"}}\n\n',
                'data: {"type":"message_stop"}\n\n',
                'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"late"}}\n\n',
            ]
        )
        return httpx.Response(200, text=body)

    backend = AnthropicProvider(make_settings(anthropic_api_key="sk-ant-test"), transport=httpx.MockTransport(handler))
    assert await collect(backend) == ["Bon", "jour"]


async def test_anthropic_error_event_raises():
    body = 'data: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}\n\n'
    backend = AnthropicProvider(
        make_settings(anthropic_api_key="sk-ant-test"),
        transport=httpx.MockTransport(lambda r: httpx.Response(200, text=body)),
    )
    with pytest.raises(ProviderError, match="Overloaded"):
        await collect(backend)


def test_gemini_payload():
    payload = to_gemini_payload(MESSAGES, 256)
    assert payload["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert payload["generationConfig"] == {"maxOutputTokens": 256}


async def test_gemini_generate_content():
    def handler(request):
        assert request.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
        assert request.headers["x-goog-api-key"] == "AIza-test"
        assert "key" not in request.url.params
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "One"}, {"text": " two"}]}}]})

    backend = GeminiProvider(make_settings(google_api_key="AIza-test"), transport=httpx.MockTransport(handler))
    assert await collect(backend, model="gemini-1.5-pro") == ["One", " two"]


async def test_granite_uses_configured_base_url():
    def handler(request):
        assert str(request.url) == "http://granite.local:8000/v1/chat/completions"
        assert "Authorization" not in request.headers
        return httpx.Response(200, text=sse({"choices": [{"delta": {"content": "granite"}}]}))

    settings = make_settings(granite_base_url="http://granite.local:8000/")
    backend = GraniteProvider(settings, transport=httpx.MockTransport(handler))
    assert await collect(backend) == ["granite"]


def test_router_lookup():
    router = ProviderRouter(make_settings())
    assert isinstance(router.get_backend("anthropic"), AnthropicProvider)
    assert isinstance(router.get_backend("google"), GeminiProvider)
    assert isinstance(router.get_backend("ibm"), GraniteProvider)
    with pytest.raises(LookupError):
        router.get_backend("deepseek")
