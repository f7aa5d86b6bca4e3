"""Tests for ModelGatewayClient: request shape, parsing, error classification."""

from __future__ import annotations

import asyncio
import io
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import litellm
import pytest
from PIL import Image

from screenlens.chat.session import ChatMessage
from screenlens.config import ProviderCfg
from screenlens.errors import (
    ConnectivityError,
    DecodeError,
    EmptyResponseError,
    MissingCredentialError,
    ServerError,
)
from screenlens.gateway.client import (
    ModelGatewayClient,
    classify_error,
    extract_content,
    parse_error_message,
)

_ACOMPLETION = "screenlens.gateway.client.litellm.acompletion"


class StaticSecrets:
    def __init__(self, value):
        self.value = value

    def read(self):
        return self.value


def _client(**settings) -> ModelGatewayClient:
    return ModelGatewayClient(ProviderCfg(**settings), StaticSecrets("sk-test"))


def _response(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color=(0, 120, 255)).save(buf, format="PNG")
    return buf.getvalue()


class HttpStatusError(Exception):
    """Stand-in for an SDK error carrying an HTTP status and body."""

    def __init__(self, status_code, body):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.response = SimpleNamespace(text=body)


# ------------------------------------------------------------------
# Request construction
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_analyze_with_image_uses_vision_model_and_data_uri():
    client = _client(base_url="https://gw.example.com/v1/")
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("总结")) as mock:
        result = await client.analyze_screen(_png(), "")

    assert result == "总结"
    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "openai/qwen3-vl-plus"
    assert kwargs["api_base"] == "https://gw.example.com/v1"
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["timeout"] == 30.0
    assert kwargs["num_retries"] == 2

    [message] = kwargs["messages"]
    assert message["role"] == "user"
    text, image = message["content"]
    assert text["type"] == "text"
    assert "hasImage = 有图" in text["text"]
    assert image["type"] == "image_url"
    assert image["image_url"]["url"].startswith("data:image/jpeg;base64,")


@pytest.mark.asyncio
async def test_analyze_without_image_uses_text_model_only():
    client = _client(text_model="custom-text")
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("ok")) as mock:
        await client.analyze_screen(None, "解释一下")

    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "openai/custom-text"
    [message] = kwargs["messages"]
    assert [part["type"] for part in message["content"]] == ["text"]
    assert "解释一下" in message["content"][0]["text"]


@pytest.mark.asyncio
async def test_follow_up_sends_transcript_with_text_model():
    history = [
        ChatMessage(role="assistant", text="屏幕上是一个登录页"),
        ChatMessage(role="user", text="密码忘了怎么办"),
    ]
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("点忘记密码")) as mock:
        reply = await _client().follow_up("登录页总结", history)

    assert reply == "点忘记密码"
    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "openai/qwen-plus"
    prompt = kwargs["messages"][0]["content"][0]["text"]
    assert "登录页总结" in prompt
    assert "用户：密码忘了怎么办" in prompt


@pytest.mark.asyncio
async def test_temperature_passed_only_when_set():
    client = ModelGatewayClient(ProviderCfg(), StaticSecrets("sk"), temperature=0.2)
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("ok")) as mock:
        await client.analyze_screen(None, "")
    assert mock.call_args.kwargs["temperature"] == 0.2

    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("ok")) as mock:
        await _client().analyze_screen(None, "")
    assert "temperature" not in mock.call_args.kwargs


@pytest.mark.asyncio
async def test_settings_changes_apply_to_next_call():
    settings = ProviderCfg()
    client = ModelGatewayClient(settings, StaticSecrets("sk"))
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("ok")) as mock:
        await client.analyze_screen(None, "")
        settings.base_url = "https://other.example.com"
        await client.analyze_screen(None, "")
    assert mock.call_args_list[1].kwargs["api_base"] == "https://other.example.com/v1"


# ------------------------------------------------------------------
# Configuration errors — no request issued
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_credential_issues_no_request():
    client = ModelGatewayClient(ProviderCfg(), StaticSecrets(None))
    with patch(_ACOMPLETION, new_callable=AsyncMock) as mock:
        with pytest.raises(MissingCredentialError):
            await client.analyze_screen(None, "")
    mock.assert_not_awaited()


@pytest.mark.asyncio
async def test_static_fallback_credential_used():
    client = ModelGatewayClient(ProviderCfg(), StaticSecrets(None), static_api_key="sk-static")
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("ok")) as mock:
        await client.analyze_screen(None, "")
    assert mock.call_args.kwargs["api_key"] == "sk-static"


@pytest.mark.asyncio
async def test_unreadable_image_raises_value_error():
    with patch(_ACOMPLETION, new_callable=AsyncMock) as mock:
        with pytest.raises(ValueError):
            await _client().analyze_screen(b"garbage", "")
    mock.assert_not_awaited()


# ------------------------------------------------------------------
# Error classification
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_connection_failure_maps_to_connectivity_error():
    exc = litellm.exceptions.APIConnectionError(
        message="Connection refused", llm_provider="openai", model="qwen-plus"
    )
    with patch(_ACOMPLETION, new_callable=AsyncMock, side_effect=exc):
        with pytest.raises(ConnectivityError):
            await _client().analyze_screen(None, "")


def test_timeout_maps_to_connectivity_error():
    exc = litellm.exceptions.Timeout(message="timed out", model="qwen-plus", llm_provider="openai")
    assert isinstance(classify_error(exc), ConnectivityError)


def test_builtin_connection_error_maps_to_connectivity_error():
    assert isinstance(classify_error(ConnectionResetError("reset")), ConnectivityError)


@pytest.mark.asyncio
async def test_server_error_carries_status_and_server_message():
    exc = litellm.exceptions.InternalServerError(
        message='{"error": {"message": "model overloaded", "type": "server_error"}}',
        llm_provider="openai",
        model="qwen-plus",
    )
    with patch(_ACOMPLETION, new_callable=AsyncMock, side_effect=exc):
        with pytest.raises(ServerError) as info:
            await _client().analyze_screen(None, "")
    assert info.value.status_code == 500
    assert info.value.message == "model overloaded"


def test_server_error_from_body_text():
    classified = classify_error(HttpStatusError(401, '{"error": {"message": "Invalid API key"}}'))
    assert isinstance(classified, ServerError)
    assert classified.status_code == 401
    assert classified.message == "Invalid API key"


def test_server_error_unparsable_body_is_raw_text():
    classified = classify_error(HttpStatusError(502, "Bad Gateway"))
    assert classified.message == "Bad Gateway"


def test_unknown_exception_not_classified():
    assert classify_error(RuntimeError("bug")) is None


def test_parse_error_message_python_literal():
    text = "Error code: 429 - {'error': {'message': 'Rate limit exceeded', 'code': 'limit'}}"
    assert parse_error_message(text) == "Rate limit exceeded"


def test_parse_error_message_none_without_payload():
    assert parse_error_message("plain failure") is None


# ------------------------------------------------------------------
# Response parsing
# ------------------------------------------------------------------


def test_extract_content_from_object_response():
    response = MagicMock()
    response.choices[0].message.content = "Hello"
    assert extract_content(response) == "Hello"


@pytest.mark.parametrize("content", [None, "", "   \n"])
def test_blank_content_is_empty_response(content):
    with pytest.raises(EmptyResponseError):
        extract_content(_response(content))


@pytest.mark.parametrize("payload", [{}, {"choices": []}, {"choices": [{}]}, {"data": "x"}])
def test_malformed_payload_is_decode_error(payload):
    with pytest.raises(DecodeError):
        extract_content(payload)


@pytest.mark.asyncio
async def test_empty_answer_surfaces_from_analyze():
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("  ")):
        with pytest.raises(EmptyResponseError):
            await _client().analyze_screen(None, "")


# ------------------------------------------------------------------
# Warm-up
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_warm_up_pings_without_retries():
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("OK")) as mock:
        await _client().warm_up(delay=0)
    kwargs = mock.call_args.kwargs
    assert kwargs["num_retries"] == 0
    assert kwargs["model"] == "openai/qwen-plus"


@pytest.mark.asyncio
async def test_warm_up_swallows_failures():
    exc = litellm.exceptions.APIConnectionError(
        message="offline", llm_provider="openai", model="qwen-plus"
    )
    with patch(_ACOMPLETION, new_callable=AsyncMock, side_effect=exc):
        await _client().warm_up(delay=0)


@pytest.mark.asyncio
async def test_warm_up_skips_without_credential():
    client = ModelGatewayClient(ProviderCfg(), StaticSecrets(None))
    with patch(_ACOMPLETION, new_callable=AsyncMock) as mock:
        await client.warm_up(delay=0)
    mock.assert_not_awaited()


@pytest.mark.asyncio
async def test_warm_up_waits_for_delay():
    with patch(_ACOMPLETION, new_callable=AsyncMock, return_value=_response("OK")) as mock:
        task = _client().warm_up(delay=10)
        await asyncio.sleep(0.05)
        mock.assert_not_awaited()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
