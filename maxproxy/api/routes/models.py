"""Models listing endpoint - OpenAI compatible."""

import logging

from ...core.models import list_models as supported_models

logger = logging.getLogger("maxproxy")


async def list_models() -> dict:
    """List available models in OpenAI API format.

    GET /v1/models
    """
    logger.info("Received models list request")
    return {"object": "list", "data": supported_models()}
