# processing/structured_extractor.py
"""Best-effort extraction of typed records from raw model output.

``extract_structured`` never raises: when no valid record can be recovered it
returns the caller's fallback and logs a warning, so every step downstream
always receives a well-typed value.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from core.llm_interface import clean_model_response

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

Fallback = T | Callable[[str], T]

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


@dataclass(frozen=True)
class ExtractionResult(Generic[T]):
    value: T
    ok: bool
    error: str | None = None


def find_json_blob(text: str) -> str | None:
    """Return the outermost balanced ``{...}`` span, honouring string literals."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        start = text.find("{", start + 1)
    return None


def _loads_lenient(blob: str) -> Any:
    try:
        return json.loads(blob)
    except json.JSONDecodeError:
        return json.loads(_TRAILING_COMMA_RE.sub(r"\1", blob))


def _resolve_fallback(fallback: Fallback[T], text: str) -> T:
    if isinstance(fallback, BaseModel):
        return fallback.model_copy(deep=True)
    return fallback(text)


def extract_structured(
    text: str | None,
    model_cls: type[T],
    fallback: Fallback[T],
    *,
    context: str = "",
) -> ExtractionResult[T]:
    """Parse ``text`` into ``model_cls`` or return ``fallback``.

    Args:
        text: Raw completion text, possibly wrapped in prose, code fences or
            reasoning blocks.
        model_cls: Pydantic model describing the expected record.
        fallback: A model instance (copied) or a callable building one from
            the raw text, e.g. to echo the input back.
        context: Label used in the warning log.
    """
    raw = text or ""
    error: str
    cleaned = clean_model_response(raw)
    blob = find_json_blob(cleaned) or find_json_blob(raw)
    if blob is None:
        error = "no JSON object found"
    else:
        try:
            data = _loads_lenient(blob)
            return ExtractionResult(value=model_cls.model_validate(data), ok=True)
        except json.JSONDecodeError as exc:
            error = f"invalid JSON: {exc}"
        except ValidationError as exc:
            error = f"schema mismatch: {exc.error_count()} error(s)"
        except RecursionError:
            error = "JSON nested too deeply"
        except ValueError as exc:
            error = f"unreadable JSON: {exc}"

    logger.warning(
        "Structured extraction failed; using fallback record.",
        model=model_cls.__name__,
        context=context or None,
        reason=error,
        preview=raw[:200],
    )
    try:
        value = _resolve_fallback(fallback, raw)
    except (ValidationError, ValueError, TypeError) as exc:
        logger.error(
            "Fallback factory failed; using model defaults.",
            model=model_cls.__name__,
            error=str(exc),
        )
        value = model_cls.model_construct()
    return ExtractionResult(value=value, ok=False, error=error)
