"""Client-side helpers: the HTTP API client and the offline send queue."""

from .api import ChatApiClient, ChatApiError
from .outbox import (
    InMemoryOutboxStorage,
    JsonFileOutboxStorage,
    Outbox,
    OutboxEntry,
    OutboxStorage,
    create_outbox,
)

__all__ = [
    "ChatApiClient",
    "ChatApiError",
    "InMemoryOutboxStorage",
    "JsonFileOutboxStorage",
    "Outbox",
    "OutboxEntry",
    "OutboxStorage",
    "create_outbox",
]
