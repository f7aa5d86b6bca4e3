"""OpenAI-compatible chat-completions client for screen analysis.

All gateway calls route through litellm.acompletion() with an ``openai/``
model prefix and an explicit api_base, so any provider exposing
``/v1/chat/completions`` works. Provider configuration is resolved per call;
failures are classified into the screenlens.errors taxonomy:

  connection failure / timeout   → ConnectivityError
  non-2xx status                 → ServerError(status, server message or body)
  2xx without answer content     → EmptyResponseError
  malformed payload              → DecodeError
  no credential / bad base URL   → ConfigurationError (before any request)
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import re
from collections.abc import Sequence
from typing import Any

import httpx
import litellm
import openai

from screenlens.chat.session import ChatMessage
from screenlens.config import ProviderCfg
from screenlens.errors import (
    ConfigurationError,
    ConnectivityError,
    DecodeError,
    EmptyResponseError,
    ScreenlensError,
    ServerError,
)
from screenlens.gateway import imaging
from screenlens.gateway.prompts import (
    WARM_UP_PROMPT,
    build_analysis_prompt,
    build_follow_up_prompt,
)
from screenlens.gateway.provider import (
    CredentialSource,
    ProviderConfig,
    resolve_provider_config,
)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_JSON = json.JSONDecoder()

# "litellm.InternalServerError: InternalServerError: OpenAIException - " and similar
_WRAPPER_PREFIX = re.compile(r"^litellm\.\w+:\s*(?:[\w ]+?:\s*)?(?:\w+Exception\s*-\s*)?")


# ------------------------------------------------------------------
# Error classification
# ------------------------------------------------------------------


def _response_text(exc: BaseException) -> str:
    response = getattr(exc, "response", None)
    if response is None:
        return ""
    try:
        return response.text or ""
    except (AttributeError, RuntimeError, UnicodeDecodeError):
        return ""


def _message_from_payload(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message
    if isinstance(error, str) and error.strip():
        return error
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return None


def parse_error_message(text: str) -> str | None:
    """Extract ``error.message`` from an error body embedded in *text*.

    Accepts JSON and the Python-literal dict form some SDKs put in exception
    messages. Returns None if no message can be found.
    """
    start = text.find("{")
    if start == -1:
        return None
    fragment = text[start:]
    try:
        payload, _ = _JSON.raw_decode(fragment)
    except ValueError:
        end = fragment.rfind("}")
        try:
            payload = ast.literal_eval(fragment[: end + 1]) if end != -1 else None
        except (ValueError, SyntaxError):
            payload = None
    return _message_from_payload(payload)


def _strip_wrapper(text: str) -> str:
    stripped = _WRAPPER_PREFIX.sub("", text, count=1).strip()
    return stripped or text


def server_message(exc: BaseException) -> str:
    """Server-supplied error message for *exc*, else the raw body/exception text."""
    body = _response_text(exc)
    raw = str(getattr(exc, "message", "") or exc)
    for text in (body, raw):
        if text and (message := parse_error_message(text)):
            return message
    return body.strip() or _strip_wrapper(raw)


def _status_error_message(exc: openai.APIStatusError) -> str:
    text = _response_text(exc)
    message = parse_error_message(text) if text else None
    if message is None:
        body = exc.body
        if isinstance(body, str):
            message = parse_error_message(body) or body.strip() or None
        else:
            message = _message_from_payload(body)
    return message or text.strip() or _strip_wrapper(exc.message)


def _exception_chain(exc: BaseException):
    """Yield *exc* and the exceptions it was raised from, outermost first."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _raised_by_litellm(exc: BaseException) -> bool:
    return type(exc).__module__.partition(".")[0] == "litellm"


def classify_error(exc: BaseException) -> ScreenlensError | None:
    """Map a transport exception onto the screenlens taxonomy (None if unknown).

    litellm re-maps provider errors (a refused connection arrives as an
    InternalServerError, an HTTP 408/504 as a Timeout), so the SDK and httpx
    exceptions further down the chain decide first: a real HTTP response is a
    ServerError with that status, a transport failure is a ConnectivityError.
    """
    if isinstance(exc, ScreenlensError):
        return exc
    chain = [link for link in _exception_chain(exc) if not _raised_by_litellm(link)]
    for link in chain:
        if isinstance(link, openai.APIStatusError):
            return ServerError(link.status_code, _status_error_message(link))
        if isinstance(link, httpx.HTTPStatusError):
            return ServerError(link.response.status_code, server_message(link))
    for link in chain:
        if isinstance(
            link, (openai.APIConnectionError, httpx.TransportError, ConnectionError, TimeoutError)
        ):
            return ConnectivityError(str(link) or "network unreachable")

    if isinstance(exc, (litellm.exceptions.APIConnectionError, litellm.exceptions.Timeout)):
        return ConnectivityError(_strip_wrapper(str(exc)) or "network unreachable")
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and not 200 <= status < 300:
        return ServerError(status, server_message(exc))
    return None


def extract_content(response: Any) -> str:
    """Return the first choice's message content.

    Raises:
        DecodeError: The payload has no (or empty) ``choices`` or no ``message``.
        EmptyResponseError: The content is missing or blank.
    """
    try:
        choices = response["choices"] if isinstance(response, dict) else response.choices
        if not choices:
            raise DecodeError("The response contains no choices.")
        first = choices[0]
        message = first["message"] if isinstance(first, dict) else first.message
        content = message.get("content") if isinstance(message, dict) else message.content
    except (AttributeError, KeyError, IndexError, TypeError) as exc:
        raise DecodeError(f"Malformed chat-completion payload: {exc}") from exc

    if isinstance(content, list):
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    if content is not None and not isinstance(content, str):
        raise DecodeError(f"Unexpected content type: {type(content).__name__}")
    if not content or not content.strip():
        raise EmptyResponseError("The model returned an empty answer.")
    return content


# ------------------------------------------------------------------
# Message construction
# ------------------------------------------------------------------


def text_part(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def image_part(data_uri: str) -> dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": data_uri}}


def user_message(*parts: dict[str, Any]) -> dict[str, Any]:
    return {"role": "user", "content": list(parts)}


# ------------------------------------------------------------------
# Client
# ------------------------------------------------------------------


class ModelGatewayClient:
    """Multimodal chat gateway: analysis, follow-up and warm-up calls.

    Args:
        settings: Provider settings (read on every call).
        secret_store: Primary credential source.
        static_api_key: Fallback credential used when the secret store is empty.
        jpeg_quality: Quality used when re-encoding screenshots.
        temperature: Sampling temperature; omitted from requests when None.
    """

    def __init__(
        self,
        settings: ProviderCfg | None = None,
        secret_store: CredentialSource | None = None,
        *,
        static_api_key: str | None = None,
        jpeg_quality: float = imaging.DEFAULT_JPEG_QUALITY,
        temperature: float | None = None,
    ) -> None:
        self._settings = settings if settings is not None else ProviderCfg()
        self._secret_store = secret_store
        self._static_api_key = static_api_key
        self._jpeg_quality = jpeg_quality
        self._temperature = temperature
        self._background: set[asyncio.Task[None]] = set()

    def resolve_config(self) -> ProviderConfig:
        """Resolve endpoint, credential and models for one call."""
        return resolve_provider_config(
            self._settings,
            self._secret_store,
            static_api_key=self._static_api_key,
        )

    async def analyze_screen(self, image: bytes | None, instruction: str) -> str:
        """Analyse an optional screenshot according to *instruction*.

        Raises:
            ConfigurationError, ConnectivityError, ServerError,
            EmptyResponseError, DecodeError: See module docstring.
            ValueError: *image* is not decodable image data.
        """
        config = self.resolve_config()
        has_image = image is not None

        parts = [text_part(build_analysis_prompt(instruction, has_image))]
        if image is not None:
            data_uri = await asyncio.to_thread(
                imaging.image_to_data_uri, image, self._jpeg_quality
            )
            parts.append(image_part(data_uri))

        return await self._complete(config, config.model_for(has_image), [user_message(*parts)])

    async def follow_up(self, initial_summary: str, history: Sequence[ChatMessage]) -> str:
        """Answer the latest user turn of *history* in the context of *initial_summary*."""
        config = self.resolve_config()
        prompt = build_follow_up_prompt(initial_summary, history)
        return await self._complete(config, config.text_model, [user_message(text_part(prompt))])

    def warm_up(self, delay: float = 1.0) -> asyncio.Task[None]:
        """Fire-and-forget ping that pre-establishes the connection.

        Waits *delay* seconds first so it does not contend with startup work.
        Never raises and never retries; the returned task may be ignored.
        """
        task = asyncio.get_running_loop().create_task(self._warm_up(delay))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _warm_up(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            config = self.resolve_config()
        except ConfigurationError:
            logger.debug("Skipping warm-up: gateway not configured")
            return
        try:
            await self._complete(
                config,
                config.text_model,
                [user_message(text_part(WARM_UP_PROMPT))],
                num_retries=0,
            )
        except Exception as exc:
            logger.debug("Warm-up request failed: %s", exc)

    async def _complete(
        self,
        config: ProviderConfig,
        model: str,
        messages: list[dict[str, Any]],
        *,
        num_retries: int | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": f"openai/{model}",
            "messages": messages,
            "api_base": config.api_base,
            "api_key": config.api_key,
            "timeout": self._settings.timeout,
            "num_retries": self._settings.num_retries if num_retries is None else num_retries,
        }
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature

        logger.debug("POST %s model=%s", config.chat_completions_url, model)
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            classified = classify_error(exc)
            if classified is None:
                raise
            raise classified from exc
        return extract_content(response)
