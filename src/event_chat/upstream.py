"""
Upstream chat-completions client.

The OpenAI SDK handles auth headers and HTTP errors. The body is read raw and
handed to :mod:`event_chat.stream_decoder`, so the SSE framing is decoded here
rather than by the SDK.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from .errors import TransportFailure, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o"
GENERIC_FAILURE = "API request failed"


def _upstream_message(exc: "openai.APIStatusError") -> Optional[str]:
    body = exc.body
    if isinstance(body, dict):
        # The SDK usually unwraps {"error": {...}} already
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return None


class OpenRouterClient:
    """Streams chat completions from an OpenRouter-compatible endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        app_url: str = "http://localhost:8000",
        app_title: str = "Event-Driven Chat",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.app_url = app_url
        self.app_title = app_title
        self.http_client = http_client
        self._owns_http_client = http_client is None

    def _client_for(self, api_key: str) -> AsyncOpenAI:
        # One SDK client per request (the credential is per request), one shared pool
        if self.http_client is None:
            self.http_client = openai.DefaultAsyncHttpxClient()
        return AsyncOpenAI(
            api_key=api_key.strip(),
            base_url=self.base_url,
            max_retries=0,
            default_headers={"HTTP-Referer": self.app_url, "X-Title": self.app_title},
            http_client=self.http_client,
        )

    async def aclose(self) -> None:
        if self._owns_http_client and self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None

    def build_request(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> Dict[str, Any]:
        create_args = {
            "model": model,
            "messages": messages,
            "stream": True,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            create_args["tools"] = tools
            create_args["tool_choice"] = "auto"
        return create_args

    async def stream_chat(
        self,
        api_key: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> AsyncIterator[str]:
        """Yield raw text chunks of the streamed response body.

        Raises:
            UpstreamError: The service answered with a structured error
            TransportFailure: Non-success status without detail, or connection failure
        """
        client = self._client_for(api_key)
        create_args = self.build_request(messages, tools, model, temperature, max_tokens)
        try:
            async with client.chat.completions.with_streaming_response.create(**create_args) as response:
                async for text in response.iter_text():
                    yield text
        except openai.APIStatusError as e:
            message = _upstream_message(e)
            logger.error(f"Upstream HTTP error: {e.status_code} - {message or e.message}")
            if message:
                raise UpstreamError(message) from e
            raise TransportFailure(GENERIC_FAILURE) from e
        except openai.APIConnectionError as e:
            logger.error(f"Cannot connect to upstream at {self.base_url}: {e}")
            raise TransportFailure(f"{GENERIC_FAILURE}: {e}") from e
        except httpx.HTTPError as e:
            # Errors raised while reading the body bypass the SDK wrappers
            logger.error(f"Upstream stream error: {e}")
            raise TransportFailure(f"{GENERIC_FAILURE}: {e}") from e
