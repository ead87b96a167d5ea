"""Exception hierarchy for the A2A transport client.

Three families:
    - ConfigurationError: invalid settings, raised at construction time
    - ClientError: failures detected locally (transport, timeouts, auth,
      circuit breaker, negotiation)
    - ProtocolError: JSON-RPC errors returned by the remote agent, one class
      per error code
"""

from typing import Any, Dict, Optional, Type


class A2AException(Exception):
    """Base class for every error raised by this package.

    Carries the JSON-RPC error code (when one applies), optional error data,
    and the HTTP status/body for errors that originate from an HTTP response.
    """

    default_message = "A2A error"
    default_code: Optional[int] = None

    def __init__(self, message: Optional[str] = None, *, code: Optional[int] = None,
                 data: Any = None, status_code: Optional[int] = None,
                 response_body: Optional[str] = None):
        self.message = message or self.default_message
        self.code = code if code is not None else self.default_code
        self.data = data
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self.message)

    def to_json_rpc_error(self) -> Dict[str, Any]:
        """Render as a JSON-RPC error object."""
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class ConfigurationError(A2AException):
    default_message = "Invalid configuration"


# ---------------------------------------------------------------------------
# Locally detected failures
# ---------------------------------------------------------------------------

class ClientError(A2AException):
    default_message = "Client error"


class TransportError(ClientError):
    """Connection-level failure or non-2xx HTTP response."""
    default_message = "Transport error"


class RequestTimeoutError(ClientError):
    default_message = "Request timed out"


class PoolTimeout(ClientError):
    """No pooled connection became available in time."""
    default_message = "Could not check out a connection in time"


class AuthenticationError(ClientError):
    default_message = "Authentication failed"


class CircuitOpenError(ClientError):
    """Raised without touching the network while a circuit is open."""

    default_message = "Circuit breaker is open"

    def __init__(self, message: Optional[str] = None, *, target: Optional[str] = None,
                 retry_after: Optional[float] = None, **kwargs):
        self.target = target
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class NoCompatibleTransport(ClientError):
    default_message = "No compatible transport protocol found"


# ---------------------------------------------------------------------------
# JSON-RPC errors returned by the agent
# ---------------------------------------------------------------------------

class ProtocolError(A2AException):
    default_message = "Protocol error"


class ParseError(ProtocolError):
    default_message = "Parse error"
    default_code = -32700


class InvalidRequest(ProtocolError):
    default_message = "Invalid Request"
    default_code = -32600


class MethodNotFound(ProtocolError):
    default_message = "Method not found"
    default_code = -32601


class InvalidParams(ProtocolError):
    default_message = "Invalid params"
    default_code = -32602


class InternalError(ProtocolError):
    default_message = "Internal error"
    default_code = -32603


class TaskNotFound(ProtocolError):
    default_message = "Task not found"
    default_code = -32001


class TaskNotCancelable(ProtocolError):
    default_message = "Task cannot be canceled"
    default_code = -32002


class InvalidTaskState(ProtocolError):
    default_message = "Invalid task state"
    default_code = -32003


class AuthenticationRequired(ProtocolError, AuthenticationError):
    default_message = "Authentication required"
    default_code = -32004


class AuthorizationFailed(ProtocolError, AuthenticationError):
    default_message = "Insufficient permissions"
    default_code = -32005


class RateLimitExceeded(ProtocolError):
    default_message = "Rate limit exceeded"
    default_code = -32006


class AgentUnavailable(ProtocolError):
    default_message = "Agent unavailable"
    default_code = -32007


class TransportNotSupported(ProtocolError):
    default_message = "Transport not supported"
    default_code = -32008


class CapabilityNotSupported(ProtocolError):
    default_message = "Capability not supported"
    default_code = -32009


class ServiceUnavailable(ProtocolError):
    default_message = "Service unavailable"
    default_code = -32010


_ERRORS_BY_CODE: Dict[int, Type[ProtocolError]] = {
    cls.default_code: cls
    for cls in (
        ParseError, InvalidRequest, MethodNotFound, InvalidParams, InternalError,
        TaskNotFound, TaskNotCancelable, InvalidTaskState, AuthenticationRequired,
        AuthorizationFailed, RateLimitExceeded, AgentUnavailable,
        TransportNotSupported, CapabilityNotSupported, ServiceUnavailable,
    )
}


def error_from_code(code: Any, message: Optional[str] = None, data: Any = None) -> ProtocolError:
    """Build the typed error for a JSON-RPC error code.

    Unknown codes produce a plain ProtocolError that keeps the code. Codes
    that are not integers are dropped.
    """
    if not isinstance(code, int) or isinstance(code, bool):
        return ProtocolError(message, code=None, data=data)
    error_class = _ERRORS_BY_CODE.get(code, ProtocolError)
    return error_class(message, code=code, data=data)


def error_from_payload(error: Any) -> ProtocolError:
    """Build the typed error for a JSON-RPC ``error`` object."""
    if not isinstance(error, dict):
        return ProtocolError(str(error))
    return error_from_code(error.get("code"), error.get("message"), error.get("data"))
