"""Error taxonomy for the automation agent.

  FlowValidationError    — structural graph defect (blank id, unknown type,
                           dangling edge, missing trigger). Always surfaced
                           to the synthesis caller; blocks activation.
  MalformedResponseError — generator output could not be turned into a graph.
                           No re-prompt is attempted.
  ProviderError          — the text-generation provider call itself failed.

Handler exceptions raised during execution are not wrapped:
they propagate out of FlowEngine.execute() unchanged.
"""

from __future__ import annotations


class AutomationAgentError(Exception):
    """Base class for all errors raised by automation_agent."""


class FlowValidationError(AutomationAgentError):
    """Raised when a flow graph fails a structural validation rule.

    rule:    stable identifier of the violated rule, e.g. "dangling_edge".
    message: human-readable description naming the offending block/edge.
    """

    def __init__(self, rule: str, message: str) -> None:
        super().__init__(message)
        self.rule = rule
        self.message = message


class MalformedResponseError(AutomationAgentError):
    """Raised when generator output is not parseable as the expected JSON shape."""


class ProviderError(AutomationAgentError):
    """Raised when the upstream text-generation provider call fails."""
