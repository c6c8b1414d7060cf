"""
Chat model factory for the generation backend.

WorkPilot asks one model for two things: a forced tool call carrying the
compiled workflow (with an optional screenshot block in capture mode) and a
plain text completion for each pilot run. Both need a Converse model that
accepts image content and reports token usage, so the default is a
multimodal Claude model on Bedrock.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

WORKPILOT_BEDROCK_MODEL_ID = "us.anthropic.claude-sonnet-4-20250514-v1:0"
MODEL_ID_ENV = "WORKPILOT_MODEL_ID"


def build_chat_bedrock_converse(
    *,
    model_id: Optional[str] = None,
    region_name: Optional[str] = None,
    temperature: float = 0.0,
) -> Any:
    """
    Temperature defaults to 0 so the same task description compiles to the
    same steps. ``WORKPILOT_MODEL_ID`` overrides the model without a code
    change; the region falls back to the standard AWS variables.
    """

    from langchain_aws import ChatBedrockConverse

    kwargs: Dict[str, Any] = {
        "model": model_id or os.getenv(MODEL_ID_ENV) or WORKPILOT_BEDROCK_MODEL_ID,
        "temperature": temperature,
    }
    region = region_name or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
    if region:
        kwargs["region_name"] = region
    return ChatBedrockConverse(**kwargs)
