"""Synthesis pipeline: intent text → prompt → provider → extract → validate."""

from automation_agent.synthesis.extract import (
    decode_graph,
    extract_json_object,
    parse_graph,
    strip_code_fences,
    unwrap_graph,
)
from automation_agent.synthesis.gateway import (
    SYSTEM_PROMPT,
    FlowGateway,
    GeneratedFlow,
    build_prompt,
)
from automation_agent.synthesis.service import FlowSynthesisService, demo_graph

__all__ = [
    "FlowGateway",
    "FlowSynthesisService",
    "GeneratedFlow",
    "SYSTEM_PROMPT",
    "build_prompt",
    "decode_graph",
    "demo_graph",
    "extract_json_object",
    "parse_graph",
    "strip_code_fences",
    "unwrap_graph",
]
