"""OpenAI-compatible chat completions endpoint."""

import json
import logging
from typing import AsyncGenerator, AsyncIterator, Awaitable, Callable, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from ...adapter import ChunkFormatter, from_internal, new_request_id, to_internal
from ...backends import EventStream
from ...context import ProxyContext, get_context
from ...core.exceptions import InvalidRequestError, ProxyError, build_error_envelope
from ...logging import preview
from ...translator import DownstreamEvent, DownstreamEventType, StreamTranslator
from ...types import ChatRequest

logger = logging.getLogger("maxproxy")

DisconnectChecker = Callable[[], Awaitable[bool]]


def _invalid_request(exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(exc.to_envelope(), status_code=400)


def _server_error(message: str, request_id: Optional[str] = None) -> JSONResponse:
    headers = {"X-Request-Id": request_id} if request_id else None
    return JSONResponse(build_error_envelope(message), status_code=500, headers=headers)


def _log_request(chat_request: ChatRequest, request_id: str, message_count: int) -> None:
    last = chat_request.turns[-1]
    logger.info(
        "[%s] model=%s stream=%s messages=%d last=%s \"%s\"",
        request_id,
        chat_request.model,
        chat_request.stream,
        message_count,
        last.role,
        preview(last.text),
    )


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    context = get_context(request)

    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        logger.error("Invalid JSON payload: %s", exc)
        return _invalid_request(InvalidRequestError("Invalid JSON payload", code="invalid_json"))

    if not isinstance(payload, Mapping):
        logger.error("Payload must be a JSON object")
        return _invalid_request(
            InvalidRequestError("Request body must be a JSON object", code="invalid_json_shape")
        )

    try:
        chat_request = to_internal(payload, context.settings.upstream.default_max_tokens)
    except InvalidRequestError as exc:
        logger.error("Rejected chat request: %s", exc.message)
        return _invalid_request(exc)

    request_id = new_request_id()
    _log_request(chat_request, request_id, len(payload.get("messages") or []))

    if chat_request.stream:
        return await _stream_completion(request, context, chat_request, request_id)

    try:
        result = await context.backend.complete(chat_request)
    except ProxyError as exc:
        logger.error("[%s] Request failed: %s", request_id, exc.message)
        return _server_error(exc.message, request_id)
    except Exception as exc:
        logger.exception("[%s] Unexpected error", request_id)
        return _server_error(f"{exc.__class__.__name__}: {exc}", request_id)

    logger.info(
        "[%s] Completed: model=%s in=%s out=%s text=\"%s\"",
        request_id,
        result.model,
        result.input_tokens,
        result.output_tokens,
        preview(result.text),
    )
    return JSONResponse(from_internal(result, request_id), headers={"X-Request-Id": request_id})


async def _stream_completion(
    request: Request,
    context: ProxyContext,
    chat_request: ChatRequest,
    request_id: str,
) -> Response:
    """Open the upstream stream and commit to SSE only once it produced output."""
    try:
        stream = await context.backend.open_stream(chat_request)
    except ProxyError as exc:
        logger.error("[%s] Failed to open stream: %s", request_id, exc.message)
        return _server_error(exc.message, request_id)

    translator = StreamTranslator(chat_request.model)
    downstream = translator.translate(stream.events())
    try:
        first: Optional[DownstreamEvent] = await downstream.__anext__()
    except StopAsyncIteration:
        first = None
    except BaseException:
        await stream.aclose()
        raise

    if first is None or first.type is DownstreamEventType.ERROR:
        await downstream.aclose()
        await stream.aclose()
        message = first.error if first is not None and first.error else "stream ended without output"
        return _server_error(message, request_id)

    formatter = ChunkFormatter(request_id, chat_request.model, chat_request.include_usage)
    return StreamingResponse(
        _sse_body(first, downstream, formatter, stream, request.is_disconnected, request_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Request-Id": request_id},
        background=BackgroundTask(stream.aclose),
    )


async def _sse_body(
    first: DownstreamEvent,
    downstream: AsyncGenerator[DownstreamEvent, None],
    formatter: ChunkFormatter,
    stream: EventStream,
    disconnect_checker: Optional[DisconnectChecker],
    request_id: str,
) -> AsyncIterator[bytes]:
    try:
        yield formatter.format(first)
        async for event in downstream:
            if disconnect_checker is not None and await disconnect_checker():
                logger.info("[%s] Client disconnected, cancelling upstream", request_id)
                break
            yield formatter.format(event)
    finally:
        await downstream.aclose()
        await stream.aclose()
