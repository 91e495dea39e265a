"""Direct Messages API client authenticated with CLI credentials."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from ..auth import CredentialProvider
from ..core.exceptions import UpstreamError
from ..core.models import resolve_model
from ..core.sse import SSEDecoder
from ..core.upstream_transport import get_upstream_transport
from ..logging import safe_headers_for_log
from ..settings import UpstreamSettings
from ..types import AnthropicRequest, AnthropicResponse, ChatRequest, ChatResult
from .events import UpstreamEvent, decode_upstream_event

logger = logging.getLogger("maxproxy")

CLI_VERSION = "2.1.42"
OAUTH_TOKEN_MARKER = "sk-ant-oat"
IDENTITY_PREAMBLE = "You are Claude Code, Anthropic's official CLI for Claude."

# Headers required for OAuth token authentication (mirrors the CLI)
OAUTH_HEADERS = {
    "anthropic-beta": "claude-code-20250219,oauth-2025-04-20",
    "user-agent": f"claude-cli/{CLI_VERSION} (external, cli)",
    "x-app": "cli",
    "anthropic-dangerous-direct-browser-access": "true",
}


def is_oauth_token(token: str) -> bool:
    return OAUTH_TOKEN_MARKER in token


def format_httpx_error(exc: httpx.HTTPError, url: str, timeout: Optional[float] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)
    parts.append(f"url={url}")
    if isinstance(exc, httpx.TimeoutException) and timeout:
        parts.append(f"timeout={timeout}s")
    return "; ".join(parts)


def build_headers(token: str, api_version: str) -> dict[str, str]:
    """Pick the header bundle for the token shape."""
    headers = {
        "content-type": "application/json",
        "anthropic-version": api_version,
    }
    if is_oauth_token(token):
        headers.update(OAUTH_HEADERS)
        headers["authorization"] = f"Bearer {token}"
    else:
        headers["x-api-key"] = token
    return headers


def build_body(
    request: ChatRequest,
    token: str,
    *,
    stream: bool = False,
    aliases: Optional[Mapping[str, str]] = None,
) -> AnthropicRequest:
    """Build the Messages API body for a normalized request.

    OAuth tokens require the CLI identity preamble as the first system block.
    """
    body: AnthropicRequest = {
        "model": resolve_model(request.model, aliases),
        "messages": [{"role": turn.role, "content": turn.text} for turn in request.turns],
        "max_tokens": request.max_tokens,
    }

    if is_oauth_token(token):
        system_parts = [
            {"type": "text", "text": IDENTITY_PREAMBLE, "cache_control": {"type": "ephemeral"}}
        ]
        if request.system:
            system_parts.append(
                {"type": "text", "text": request.system, "cache_control": {"type": "ephemeral"}}
            )
        body["system"] = system_parts
    elif request.system:
        body["system"] = request.system

    if request.temperature is not None:
        body["temperature"] = request.temperature
    if request.top_p is not None:
        body["top_p"] = request.top_p
    if request.stop_sequences:
        body["stop_sequences"] = list(request.stop_sequences)
    if stream:
        body["stream"] = True
    return body


def result_from_response(payload: AnthropicResponse, fallback_model: str) -> ChatResult:
    """Collapse a Messages API response into a ``ChatResult``."""
    blocks = payload.get("content") or []
    text = "".join(
        block.get("text", "")
        for block in blocks
        if isinstance(block, dict) and block.get("type") == "text"
    )
    usage = payload.get("usage") or {}
    return ChatResult(
        model=payload.get("model") or fallback_model,
        text=text,
        input_tokens=int(usage.get("input_tokens") or 0),
        output_tokens=int(usage.get("output_tokens") or 0),
    )


class UpstreamStream:
    """An open streaming response whose status has already been checked."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        url: str,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._response = response
        self._url = url
        self._timeout = timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def events(self) -> AsyncIterator[UpstreamEvent]:
        """Yield upstream events in arrival order; always releases the connection."""
        decoder = SSEDecoder()
        try:
            async for chunk in self._response.aiter_bytes():
                for sse_event in decoder.feed(chunk):
                    event = decode_upstream_event(sse_event.data)
                    if event is not None:
                        yield event
            for sse_event in decoder.flush():
                event = decode_upstream_event(sse_event.data)
                if event is not None:
                    yield event
        except httpx.HTTPError as exc:
            message = format_httpx_error(exc, self._url, self._timeout)
            logger.error("Upstream stream from %s failed: %s", self._url, message)
            raise UpstreamError(f"Anthropic API stream failed: {message}") from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing upstream stream for %s", self._url)
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class AnthropicClient:
    """Issues Messages API calls with headers shaped for the resolved token."""

    def __init__(
        self,
        settings: UpstreamSettings,
        credentials: CredentialProvider,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.settings = settings
        self.credentials = credentials
        self.aliases = dict(aliases or {})

    @property
    def url(self) -> str:
        return self.settings.api_url

    def _make_client(self, timeout: httpx.Timeout | float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            transport=get_upstream_transport(self.url),
            follow_redirects=True,
        )

    async def _prepare(self, request: ChatRequest, stream: bool) -> tuple[dict[str, str], dict[str, Any]]:
        creds = await self.credentials.aget_valid_credentials()
        headers = build_headers(creds.access_token, self.settings.api_version)
        body = build_body(request, creds.access_token, stream=stream, aliases=self.aliases)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Outbound headers: %s", safe_headers_for_log(headers))
        return headers, dict(body)

    async def create_message(self, request: ChatRequest) -> ChatResult:
        """Non-streaming call."""
        headers, body = await self._prepare(request, stream=False)
        timeout = self.settings.timeout
        try:
            async with self._make_client(timeout) as client:
                resp = await client.post(self.url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            message = format_httpx_error(exc, self.url, timeout)
            logger.error("Request to %s failed: %s", self.url, message)
            raise UpstreamError(f"Anthropic API request failed: {message}") from exc

        if resp.status_code >= 400:
            logger.warning("Upstream returned error status %s", resp.status_code)
            raise UpstreamError(
                f"Anthropic API error: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError("Anthropic API returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Anthropic API returned an unexpected body")
        return result_from_response(payload, body["model"])

    async def open_stream(self, request: ChatRequest) -> UpstreamStream:
        """Send a streaming request and return once the status is known.

        Raises:
            UpstreamError: transport failure or a non-success status.
        """
        headers, body = await self._prepare(request, stream=True)
        timeout = self.settings.timeout
        stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
        client = self._make_client(stream_timeout)
        try:
            upstream_request = client.build_request("POST", self.url, headers=headers, json=body)
            resp = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            message = format_httpx_error(exc, self.url, timeout)
            logger.error("Failed to send streaming request to %s: %s", self.url, message)
            raise UpstreamError(f"Anthropic API request failed: {message}") from exc
        except BaseException:
            await client.aclose()
            raise

        if resp.status_code >= 400:
            try:
                data = await resp.aread()
            finally:
                await resp.aclose()
                await client.aclose()
            text = data.decode("utf-8", errors="replace")
            logger.warning("Streaming request returned error status %s", resp.status_code)
            raise UpstreamError(
                f"Anthropic API error: {resp.status_code} {text}",
                status_code=resp.status_code,
                body=text,
            )

        logger.info("Streaming request to %s accepted, status %s", self.url, resp.status_code)
        return UpstreamStream(client, resp, self.url, timeout)
