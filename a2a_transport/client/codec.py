"""JSON-RPC 2.0 encoding and decoding for the A2A protocol."""

import itertools
import json
import uuid
from typing import Any, Optional, Union

from ..errors import ParseError, error_from_code, error_from_payload
from ..types import JsonRpcRequest, JsonRpcResponse, SseEvent
from ..utils.config.constants import JSONRPC_VERSION

_MISSING = object()


class JsonRpcCodec:
    """Builds requests with unique ids and turns responses into results or typed errors.

    Unary requests use an increasing integer id; streaming requests use a
    fresh UUID so they never collide with unary ids on the same client.
    """

    def __init__(self):
        self._ids = itertools.count(1)

    def next_id(self, streaming: bool = False) -> Union[int, str]:
        if streaming:
            return str(uuid.uuid4())
        return next(self._ids)

    def build_request(self, method: str, params: Any = None, streaming: bool = False) -> JsonRpcRequest:
        return JsonRpcRequest(method=method, params=params, id=self.next_id(streaming))

    def encode(self, request: JsonRpcRequest) -> str:
        return json.dumps(request.to_dict())

    def decode_response(self, raw: Union[str, bytes, dict]) -> JsonRpcResponse:
        """Validate the envelope; raises ParseError when it is not JSON-RPC."""
        payload = self._load(raw) if not isinstance(raw, dict) else raw
        if not isinstance(payload, dict):
            raise ParseError("Response is not a JSON object")

        result = payload.get("result", _MISSING)
        error = payload.get("error", _MISSING)
        if (result is _MISSING) == (error is _MISSING):
            raise ParseError("Response must contain exactly one of result or error", data=payload)
        if error is not _MISSING and not isinstance(error, dict):
            raise ParseError("Response error must be an object", data=payload)

        return JsonRpcResponse(
            id=payload.get("id"),
            result=None if result is _MISSING else result,
            error=None if error is _MISSING else error,
            jsonrpc=payload.get("jsonrpc", JSONRPC_VERSION),
        )

    def parse_response(self, raw: Union[str, bytes, dict]) -> Any:
        """Return the result, or raise the error the response carries."""
        response = self.decode_response(raw)
        if response.is_error:
            raise error_from_payload(response.error)
        return response.result

    def decode_event(self, event: SseEvent) -> Any:
        """Decode one SSE event's data into a payload.

        An ``error`` event or an error envelope raises; a result envelope is
        unwrapped; any other JSON value is returned unchanged.
        """
        payload = self._load(event.data)

        if event.event_type == "error":
            if isinstance(payload, dict) and "error" in payload:
                raise error_from_payload(payload["error"])
            if isinstance(payload, dict):
                raise error_from_code(payload.get("code"), payload.get("message"), payload.get("data"))
            raise error_from_code(None, str(payload))

        if isinstance(payload, dict) and payload.get("jsonrpc") == JSONRPC_VERSION:
            return self.parse_response(payload)
        return payload

    @staticmethod
    def _load(raw: Optional[Union[str, bytes]]) -> Any:
        if raw is None:
            raise ParseError("Empty response body")
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Invalid JSON: {e}") from e
