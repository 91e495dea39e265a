"""Backend that calls the Messages API directly."""

from ..types import ChatRequest, ChatResult
from ..upstream import AnthropicClient, UpstreamStream


class ApiBackend:
    name = "api"

    def __init__(self, client: AnthropicClient) -> None:
        self.client = client

    async def complete(self, request: ChatRequest) -> ChatResult:
        return await self.client.create_message(request)

    async def open_stream(self, request: ChatRequest) -> UpstreamStream:
        return await self.client.open_stream(request)
