"""Storage layer: connection pool, schema, intake repository and retries."""

from src.storage.database import Database
from src.storage.repository import TicketRepository
from src.storage.retry import StoreUnavailable, backoff_delay, retry_store_call

__all__ = [
    "Database",
    "StoreUnavailable",
    "TicketRepository",
    "backoff_delay",
    "retry_store_call",
]
