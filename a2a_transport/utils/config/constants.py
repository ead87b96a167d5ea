"""
Central constants for the A2A transport client.

Single source of truth for transport names, JSON-RPC method names, error
codes and the numeric defaults used by the configuration dataclasses.
"""

# Transport protocols advertised in agent cards
TRANSPORT_JSONRPC = "JSONRPC"
TRANSPORT_GRPC = "GRPC"
TRANSPORT_HTTP_JSON = "HTTP+JSON"
VALID_TRANSPORTS = (TRANSPORT_JSONRPC, TRANSPORT_GRPC, TRANSPORT_HTTP_JSON)

# Transports this client can actually speak
IMPLEMENTED_TRANSPORTS = (TRANSPORT_JSONRPC,)

JSONRPC_VERSION = "2.0"

# JSON-RPC method names
METHOD_MESSAGE_SEND = "message/send"
METHOD_MESSAGE_STREAM = "message/stream"
METHOD_TASKS_GET = "tasks/get"
METHOD_TASKS_CANCEL = "tasks/cancel"
METHOD_TASKS_RESUBSCRIBE = "tasks/resubscribe"
METHOD_PUSH_CONFIG_SET = "tasks/pushNotificationConfig/set"
METHOD_PUSH_CONFIG_GET = "tasks/pushNotificationConfig/get"
METHOD_PUSH_CONFIG_LIST = "tasks/pushNotificationConfig/list"
METHOD_PUSH_CONFIG_DELETE = "tasks/pushNotificationConfig/delete"
METHOD_AUTHENTICATED_CARD = "agent/getAuthenticatedExtendedCard"

# JSON-RPC 2.0 standard error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# A2A protocol error codes
TASK_NOT_FOUND = -32001
TASK_NOT_CANCELABLE = -32002
INVALID_TASK_STATE = -32003
AUTHENTICATION_REQUIRED = -32004
AUTHORIZATION_FAILED = -32005
RATE_LIMIT_EXCEEDED = -32006
AGENT_UNAVAILABLE = -32007
TRANSPORT_NOT_SUPPORTED = -32008
CAPABILITY_NOT_SUPPORTED = -32009
SERVICE_UNAVAILABLE = -32010

AUTH_ERROR_CODES = (AUTHENTICATION_REQUIRED, AUTHORIZATION_FAILED)

# HTTP
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_EVENT_STREAM = "text/event-stream"
DEFAULT_AGENT_CARD_PATH = "/.well-known/agent-card.json"
SENSITIVE_HEADERS = ("authorization", "proxy-authorization", "cookie", "x-api-key")

# SSE
SSE_DONE_SENTINEL = "[DONE]"

# Client timeouts (seconds)
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_CONNECT_TIMEOUT = 10

# Retry defaults
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MAX_RETRY_DELAY = 60.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Circuit breaker defaults
CIRCUIT_BREAKER_FAILURE_THRESHOLD = 5
CIRCUIT_BREAKER_RECOVERY_TIMEOUT = 60.0
CIRCUIT_BREAKER_SUCCESS_THRESHOLD = 2

# Rate limit defaults
DEFAULT_REQUESTS_PER_SECOND = 10.0
DEFAULT_BURST_SIZE = 20

# Connection pool defaults
DEFAULT_POOL_SIZE = 5
DEFAULT_POOL_TIMEOUT = 5.0
DEFAULT_IDLE_TIMEOUT = 30.0
POOL_CLEANUP_INTERVAL = 60.0
POOL_MAX_AGE_FACTOR = 10

# Credentials are refreshed this many seconds before they expire
TOKEN_EXPIRY_BUFFER_SECONDS = 30
DEFAULT_OAUTH2_EXPIRES_IN = 3600
