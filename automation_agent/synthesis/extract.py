"""Tolerant extraction of a flow graph from noisy generator output.

LLM completions rarely arrive as bare JSON. Typical shapes seen in practice:

    ```json
    {"graph": {...}}
    ```

    Sure! Here is your automation:
    {"graph": {...}}
    Let me know if you want changes.

Extraction steps:
  1. strip_code_fences()   — trim, drop a leading ```json / ``` and a trailing ```
  2. extract_json_object() — parse; on failure parse the span between the
                             first '{' and the last '}'
  3. unwrap_graph()        — use obj["graph"] when present, else obj itself
  4. decode_graph()        — pydantic decode, unknown keys dropped, defaults applied

Anything that cannot be located or decoded raises MalformedResponseError,
except an unknown block type, which is a validation failure
(FlowValidationError, rule "unsupported_block_type") — the JSON was fine,
the generator hallucinated a block.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from automation_agent.errors import FlowValidationError, MalformedResponseError
from automation_agent.flow.models import FlowGraph

logger = logging.getLogger("automation_agent.synthesis.extract")

_LEADING_FENCES = ("```json", "```JSON", "```")


def strip_code_fences(text: str) -> str:
    """Remove one leading fence token and one trailing fence token, if present."""
    stripped = text.strip()
    for fence in _LEADING_FENCES:
        if stripped.startswith(fence):
            stripped = stripped[len(fence):]
            break
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object embedded in `text`.

    Raises MalformedResponseError when no object can be located.
    """
    cleaned = strip_code_fences(text or "")
    try:
        obj = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start < 0 or end <= start:
            raise MalformedResponseError("Unable to locate JSON object in response")
        logger.debug("Direct parse failed; retrying on span [%d:%d]", start, end + 1)
        try:
            obj = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Unable to parse JSON object in response: {e.msg}"
            ) from e

    if not isinstance(obj, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(obj).__name__}"
        )
    return obj


def unwrap_graph(obj: dict[str, Any]) -> dict[str, Any]:
    """Return the graph object, unwrapping a top-level "graph" field."""
    inner = obj.get("graph")
    if inner is None:
        return obj
    if not isinstance(inner, dict):
        raise MalformedResponseError(
            f"Expected 'graph' to be an object, got {type(inner).__name__}"
        )
    return inner


def decode_graph(obj: dict[str, Any]) -> FlowGraph:
    """Decode a graph dict into a FlowGraph."""
    try:
        return FlowGraph.model_validate(obj)
    except ValidationError as exc:
        for err in exc.errors():
            loc = err.get("loc", ())
            if (
                err.get("type") == "enum"
                and len(loc) == 3
                and loc[0] == "blocks"
                and loc[2] == "type"
            ):
                raise FlowValidationError(
                    "unsupported_block_type",
                    f"Unsupported block type {err.get('input')}",
                ) from exc
        raise MalformedResponseError(
            f"Response does not match the flow graph shape "
            f"({exc.error_count()} error(s)): {exc.errors()[0].get('msg', '')}"
        ) from exc


def parse_graph(text: str) -> tuple[FlowGraph, dict[str, Any]]:
    """Extract, unwrap and decode a graph from raw completion text.

    Returns (graph, envelope) where envelope is the top-level object, so the
    caller can read wrapper fields such as "explanation" or "risk_flags".
    """
    envelope = extract_json_object(text)
    graph = decode_graph(unwrap_graph(envelope))
    return graph, envelope
