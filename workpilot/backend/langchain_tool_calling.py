"""
Helpers for asking a LangChain chat model for a pydantic-shaped reply and
reading text and token usage back out of its message.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterator, List, Optional, Type

from pydantic import BaseModel

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def supports_tool_binding(llm: Any) -> bool:
    return llm is not None and hasattr(llm, "bind_tools")


def invoke_with_schema(llm: Any, messages: List[Any], *, schema: Type[BaseModel]) -> Any:
    """
    Invoke ``llm`` forcing a call to ``schema`` when tools can be bound.

    Models without tool binding get the messages as-is and must answer with
    a JSON object in the content.
    """
    if not supports_tool_binding(llm):
        return llm.invoke(messages)
    try:
        bound = llm.bind_tools([schema], tool_choice="any")
    except TypeError:
        bound = llm.bind_tools([schema])
    return bound.invoke(messages)


def extract_schema_payload(response: Any) -> Optional[Dict[str, Any]]:
    """First dict-shaped tool argument, else the first JSON object in the content."""
    for arguments in _tool_call_arguments(response):
        payload = _as_dict(arguments)
        if payload is not None:
            return payload

    match = _JSON_OBJECT.search(response_text(response))
    return _as_dict(match.group(0)) if match else None


def response_text(response: Any) -> str:
    content = getattr(response, "content", None)
    if content is None:
        return str(response)
    if not isinstance(content, list):
        return str(content)
    # Converse returns content blocks; keep the text ones.
    chunks = [
        str(block.get("text", "")) if isinstance(block, dict) else str(block)
        for block in content
    ]
    return " ".join(chunk for chunk in chunks if chunk)


def response_total_tokens(response: Any) -> Optional[int]:
    usage = getattr(response, "usage_metadata", None)
    if isinstance(usage, dict) and usage.get("total_tokens") is not None:
        return int(usage["total_tokens"])

    metadata = getattr(response, "response_metadata", None) or {}
    if not isinstance(metadata, dict):
        return None
    for key in ("usage", "token_usage"):
        counts = metadata.get(key)
        if not isinstance(counts, dict):
            continue
        total = counts.get("total_tokens", counts.get("totalTokens"))
        if total is not None:
            return int(total)
    return None


def _tool_call_arguments(response: Any) -> Iterator[Any]:
    calls = list(getattr(response, "tool_calls", None) or [])
    extra = getattr(response, "additional_kwargs", None)
    if isinstance(extra, dict):
        calls.extend(extra.get("tool_calls") or [])

    for call in calls:
        if isinstance(call, dict):
            function = call.get("function") if isinstance(call.get("function"), dict) else {}
            arguments = call.get("args", call.get("arguments", function.get("arguments")))
        else:
            arguments = getattr(call, "args", None) or getattr(call, "arguments", None)
        if arguments is not None:
            yield arguments


def _as_dict(raw: Any) -> Optional[Dict[str, Any]]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
