"""
Input field parsing from the CSV-like text users type into the builder.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from workpilot.ir.spec_schema import InputField

DEFAULT_INPUT_KEY = "input_value"

# "필수" is the Korean "required" marker accepted by the original builder form.
_TRUTHY_TOKENS = {"true", "1", "yes", "y", "필수"}

DEFAULT_INPUT_FIELD = InputField(
    key="source_text",
    label="Source text",
    required=True,
    placeholder="Paste the text or key data to work from",
)


def normalize_key(text: str) -> str:
    normalized = text.strip().lower()
    normalized = re.sub(r"[^a-z0-9_\s-]", "", normalized)
    normalized = re.sub(r"[\s-]+", "_", normalized)
    normalized = normalized.strip("_")
    return normalized or DEFAULT_INPUT_KEY


def parse_required_flag(text: str) -> bool:
    return text.strip().lower() in _TRUTHY_TOKENS


def dedupe_inputs(fields: Iterable[InputField]) -> List[InputField]:
    unique: dict = {}
    for field in fields:
        if field.key not in unique:
            unique[field.key] = field
    return list(unique.values())


def parse_input_fields(raw_csv_text: Optional[str]) -> List[InputField]:
    """
    Parse one input field per line.

    Lines are either a single label (``Customer name``) or
    ``key,label,required,placeholder``. A leading ``key,...`` header is skipped.
    """

    if not raw_csv_text or not raw_csv_text.strip():
        return []

    rows = [line.strip() for line in re.split(r"\r?\n", raw_csv_text) if line.strip()]
    fields: List[InputField] = []
    for index, row in enumerate(rows):
        cells = [cell.strip() for cell in row.split(",")]
        if index == 0 and cells[0].lower() == "key":
            continue

        if len(cells) == 1:
            fields.append(
                InputField(
                    key=normalize_key(cells[0]),
                    label=cells[0],
                    required=True,
                    placeholder=f"Enter {cells[0]}",
                )
            )
            continue

        padded = cells + [""] * (4 - len(cells))
        raw_key, raw_label, raw_required, raw_placeholder = padded[:4]
        fields.append(
            InputField(
                key=normalize_key(raw_key or raw_label or f"field_{index + 1}"),
                label=raw_label or raw_key or f"Input {index + 1}",
                required=parse_required_flag(raw_required) if raw_required else True,
                placeholder=raw_placeholder or None,
            )
        )

    return dedupe_inputs(fields)


def ensure_minimum_inputs(fields: List[InputField]) -> List[InputField]:
    if fields:
        return fields
    return [DEFAULT_INPUT_FIELD.model_copy()]


def input_template_lines(fields: Iterable[InputField]) -> str:
    return "\n".join(f"- {field.label}: {{{{{field.key}}}}}" for field in fields)
