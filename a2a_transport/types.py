"""Wire and value types used by the transport layer.

The agent card is a pydantic model because it arrives as untrusted JSON with
camelCase keys. Everything the client builds itself is a plain dataclass.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .utils.config.constants import JSONRPC_VERSION, TRANSPORT_JSONRPC


# ---------------------------------------------------------------------------
# Agent card
# ---------------------------------------------------------------------------

class _CardModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AgentInterface(_CardModel):
    """An extra endpoint at which the agent speaks one transport."""
    url: str
    transport: str


class AgentCapabilities(_CardModel):
    streaming: bool = False
    push_notifications: bool = Field(default=False, alias="pushNotifications")
    state_transition_history: bool = Field(default=False, alias="stateTransitionHistory")


class AgentCard(_CardModel):
    """Capability document published by an agent.

    Only the fields the transport needs are typed; the rest of the document
    is kept as extra attributes.
    """
    name: str = ""
    url: str
    version: Optional[str] = None
    description: Optional[str] = None
    protocol_version: Optional[str] = Field(default=None, alias="protocolVersion")
    preferred_transport: str = Field(default=TRANSPORT_JSONRPC, alias="preferredTransport")
    additional_interfaces: List[AgentInterface] = Field(default_factory=list,
                                                        alias="additionalInterfaces")
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    security_schemes: Dict[str, Dict[str, Any]] = Field(default_factory=dict,
                                                        alias="securitySchemes")
    default_input_modes: List[str] = Field(default_factory=list, alias="defaultInputModes")
    default_output_modes: List[str] = Field(default_factory=list, alias="defaultOutputModes")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentCard":
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def transports(self) -> List[str]:
        """Every transport the card advertises, preferred first."""
        seen = [self.preferred_transport]
        for interface in self.additional_interfaces:
            if interface.transport not in seen:
                seen.append(interface.transport)
        return seen


# ---------------------------------------------------------------------------
# JSON-RPC envelopes
# ---------------------------------------------------------------------------

RequestId = Union[int, str]


@dataclass
class JsonRpcRequest:
    method: str
    params: Any = None
    id: Optional[RequestId] = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> Dict[str, Any]:
        data = {"jsonrpc": self.jsonrpc, "method": self.method, "id": self.id}
        if self.params is not None:
            data["params"] = self.params
        return data


@dataclass
class JsonRpcResponse:
    """Decoded response envelope; exactly one of result/error is set."""
    id: Optional[RequestId]
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    jsonrpc: str = JSONRPC_VERSION

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class SseEvent:
    data: str
    id: Optional[str] = None
    event_type: Optional[str] = None
    retry_ms: Optional[int] = None


# ---------------------------------------------------------------------------
# Negotiation and credentials
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NegotiationResult:
    transport: str
    endpoint_url: str


@dataclass(frozen=True)
class Credential:
    """Opaque credential value with an optional absolute expiry (epoch seconds).

    Credentials are immutable; a refresh replaces the object.
    """
    value: str
    expires_at: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def expires_within(self, seconds: float, now: Optional[float] = None) -> bool:
        """True when expired or expiring within ``seconds``; never for non-expiring values."""
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at - seconds
