"""Typed failures raised by the stateful plan-change services.

Guardrail findings are never raised; they travel as warning strings on an
otherwise successful result.
"""

from __future__ import annotations


class EngineError(Exception):
    code = "ENGINE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidPayload(EngineError):
    """Malformed input: scenario params, suggestion payloads, proposal patches."""

    code = "INVALID_PAYLOAD"


class InvalidScenario(InvalidPayload):
    code = "INVALID_SCENARIO"


class NotFound(EngineError):
    """Referenced row is missing or owned by another athlete."""

    code = "NOT_FOUND"


class StateConflict(EngineError):
    """Row exists but is not in a state that allows the operation."""

    code = "STATE_CONFLICT"
