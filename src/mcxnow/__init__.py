"""Live commodity-exchange quotes over Server-Sent Events."""

from .backoff import BackoffPolicy
from .config import SupervisorConfig
from .exceptions import (
    ConnectError,
    InitializationError,
    MalformedPayloadError,
    MCXNowError,
    ServerSignaledError,
    TransportError,
)
from .models import (
    ChangeType,
    ConnectionPhase,
    ConnectionState,
    ErrorRaised,
    Notification,
    QuotesUpdated,
    ReconnectScheduled,
    StateChanged,
)
from .pubsub import Broadcaster, Subscription
from .quotes import QuoteBook
from .streams import SSEDecoder, SSEEvent, aiter_sse_events, iter_sse_events, parse_sse_lines, parse_sse_lines_async
from .supervisor import ConnectionSupervisor

__version__ = "0.1.0"

__all__ = [
    "BackoffPolicy",
    "Broadcaster",
    "ChangeType",
    "ConnectError",
    "ConnectionPhase",
    "ConnectionState",
    "ConnectionSupervisor",
    "ErrorRaised",
    "InitializationError",
    "MCXNowError",
    "MalformedPayloadError",
    "Notification",
    "QuoteBook",
    "QuotesUpdated",
    "ReconnectScheduled",
    "SSEDecoder",
    "SSEEvent",
    "ServerSignaledError",
    "StateChanged",
    "Subscription",
    "SupervisorConfig",
    "TransportError",
    "aiter_sse_events",
    "iter_sse_events",
    "parse_sse_lines",
    "parse_sse_lines_async",
]
