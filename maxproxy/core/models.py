"""Model name aliases and the static model listing."""

import time
from typing import Any, Mapping, Optional

MODEL_ALIASES: dict[str, str] = {
    "claude-opus-4": "claude-opus-4-20250514",
    "claude-sonnet-4": "claude-sonnet-4-20250514",
    "claude-haiku-4": "claude-haiku-4-20250514",
    "opus": "claude-opus-4-20250514",
    "sonnet": "claude-sonnet-4-20250514",
    "haiku": "claude-haiku-4-20250514",
}

SUPPORTED_MODELS = ("claude-opus-4", "claude-sonnet-4", "claude-haiku-4")

CLI_MODEL_FAMILIES = ("opus", "sonnet", "haiku")
DEFAULT_CLI_MODEL = "sonnet"


def resolve_model(model: str, aliases: Optional[Mapping[str, str]] = None) -> str:
    """Map a short model name to its full dated identifier.

    Unmapped names pass through unchanged.
    """
    if aliases and model in aliases:
        return aliases[model]
    return MODEL_ALIASES.get(model, model)


def cli_model_for(model: str) -> str:
    """Return the CLI family name (opus/sonnet/haiku) for any model name."""
    lowered = (model or "").lower()
    for family in CLI_MODEL_FAMILIES:
        if family in lowered:
            return family
    return DEFAULT_CLI_MODEL


def list_models() -> list[dict[str, Any]]:
    created = int(time.time())
    return [
        {"id": model_id, "object": "model", "owned_by": "anthropic", "created": created}
        for model_id in SUPPORTED_MODELS
    ]
