"""Error taxonomy shared by the store, registry, tools, providers and orchestrator."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_BUSY = "session_busy"
    TOOL_UNKNOWN = "tool_unknown"
    TOOL_INVALID_ARGUMENTS = "tool_invalid_arguments"
    TOOL_EXECUTION_FAILED = "tool_execution_failed"
    TOOL_ITERATION_LIMIT = "tool_iteration_limit"
    PERMISSION_NOT_FOUND = "permission_not_found"
    PERMISSION_ALREADY_RESOLVED = "permission_already_resolved"
    PROVIDER_TRANSPORT_ERROR = "provider_transport_error"
    PROVIDER_PROTOCOL_ERROR = "provider_protocol_error"
    PROVIDER_CONFIG_ERROR = "provider_config_error"
    TURN_CANCELLED = "turn_cancelled"
    TURN_TIMED_OUT = "turn_timed_out"
    INTERNAL_ERROR = "internal_error"


class ChatOrchestratorError(Exception):
    """Base error. Every subclass carries a stable ``code`` for the wire."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code.value)
        self.message = message or self.code.value
        self.details = details


class SessionNotFound(ChatOrchestratorError):
    code = ErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", session_id=session_id)
        self.session_id = session_id


class SessionBusy(ChatOrchestratorError):
    code = ErrorCode.SESSION_BUSY

    def __init__(self, session_id: str) -> None:
        super().__init__(f"A turn is already running for session {session_id}", session_id=session_id)
        self.session_id = session_id


class ToolUnknown(ChatOrchestratorError):
    code = ErrorCode.TOOL_UNKNOWN


class ToolInvalidArguments(ChatOrchestratorError):
    code = ErrorCode.TOOL_INVALID_ARGUMENTS


class ToolExecutionFailed(ChatOrchestratorError):
    code = ErrorCode.TOOL_EXECUTION_FAILED


class ToolIterationLimit(ChatOrchestratorError):
    code = ErrorCode.TOOL_ITERATION_LIMIT


class PermissionNotFound(ChatOrchestratorError):
    code = ErrorCode.PERMISSION_NOT_FOUND

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Permission request not found: {request_id}", request_id=request_id)
        self.request_id = request_id


class PermissionAlreadyResolved(ChatOrchestratorError):
    code = ErrorCode.PERMISSION_ALREADY_RESOLVED

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Permission request already resolved: {request_id}", request_id=request_id)
        self.request_id = request_id


class ProviderTransportError(ChatOrchestratorError):
    """The provider call failed (network, HTTP status, SDK error)."""

    code = ErrorCode.PROVIDER_TRANSPORT_ERROR

    def __init__(self, message: str = "", *, retryable: bool = False, **details: Any) -> None:
        super().__init__(message, **details)
        self.retryable = retryable


class ProviderProtocolError(ChatOrchestratorError):
    """The provider stream had an unexpected or malformed shape."""

    code = ErrorCode.PROVIDER_PROTOCOL_ERROR


class ProviderConfigError(ChatOrchestratorError):
    code = ErrorCode.PROVIDER_CONFIG_ERROR


class TurnCancelled(ChatOrchestratorError):
    code = ErrorCode.TURN_CANCELLED


class TurnTimedOut(ChatOrchestratorError):
    code = ErrorCode.TURN_TIMED_OUT
