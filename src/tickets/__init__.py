"""Ticket, customer and event records read by the monitor.

Components:
- Ticket / Customer / Event: Dataclasses mapping to the intake tables
- parse_tags / format_tags: ``tags_str`` helpers
"""

from src.tickets.schemas import (
    EVENT_TABLES,
    VALID_EVENT_TYPES,
    Customer,
    Event,
    Ticket,
    format_tags,
    parse_tags,
)

__all__ = [
    "Customer",
    "EVENT_TABLES",
    "Event",
    "Ticket",
    "VALID_EVENT_TYPES",
    "format_tags",
    "parse_tags",
]
