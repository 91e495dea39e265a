"""Client-facing dialect adapters."""

from .openai import (
    ChunkFormatter,
    completion_id,
    content_text,
    from_internal,
    new_request_id,
    to_internal,
)

__all__ = [
    "ChunkFormatter",
    "completion_id",
    "content_text",
    "from_internal",
    "new_request_id",
    "to_internal",
]
