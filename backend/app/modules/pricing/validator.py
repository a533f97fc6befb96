"""Validation of raw persona responses.

Raw text -> strip code fences -> JSON object -> light sanitizing ->
strict Pydantic model for the persona. Any failure raises EvaluationError.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from app.modules.pricing.errors import EvaluationError
from app.modules.pricing.schemas import OPINION_MODELS, Persona

_PERCENT_STRING = re.compile(r"^\s*(\d{1,3})\s*%\s*$")


def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from an LLM response."""
    text = raw_text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def sanitize_opinion_json(data: dict[str, Any]) -> dict[str, Any]:
    """Fix common LLM format slips before validation.

    1. ``"confidencePercentage": "85%"`` -> ``"85"``
    2. Price fields wrapped as ``{"value": "$9,000/month"}`` -> plain string
    """
    result: dict[str, Any] = {}
    for key, val in data.items():
        if key == "confidencePercentage" and isinstance(val, str):
            match = _PERCENT_STRING.match(val)
            result[key] = match.group(1) if match else val
        elif isinstance(val, dict) and set(val) == {"value"}:
            result[key] = val["value"]
        else:
            result[key] = val
    return result


def parse_opinion(persona: Persona, raw_response: str | None) -> Any:
    """Parse and validate one evaluator response for ``persona``.

    Returns the persona's opinion model instance.

    Raises:
        EvaluationError: empty payload, unparseable JSON, or schema violation.
    """
    if raw_response is None or not raw_response.strip():
        raise EvaluationError(persona, "empty", ["No response payload"], raw_response)

    try:
        data = json.loads(strip_code_fences(raw_response))
    except (json.JSONDecodeError, TypeError) as exc:
        raise EvaluationError(persona, "json_parse", [str(exc)], raw_response) from exc

    if not isinstance(data, dict):
        raise EvaluationError(
            persona, "schema", ["top-level JSON must be an object"], raw_response
        )

    model = OPINION_MODELS[persona]
    try:
        return model.model_validate(sanitize_opinion_json(data))
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(loc) for loc in e['loc']) or '<root>'}: {e['msg']}"
            for e in exc.errors()
        ]
        raise EvaluationError(persona, "schema", errors, raw_response) from exc
