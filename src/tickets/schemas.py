"""Schema definitions for the facts the monitor reads.

Maps to the ``customers``, ``tickets`` and ``*_events`` tables. These
records are written by intake and never mutated by the monitoring
engine (ticket ``status`` is the only field an operator may change).
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

TicketStatus = Literal["open", "acknowledged", "closed"]

VALID_TICKET_STATUSES: frozenset[str] = frozenset({
    "open",
    "acknowledged",
    "closed",
})

EventSource = Literal["auth", "billing", "product"]

EVENT_TABLES: dict[str, str] = {
    "auth": "auth_events",
    "billing": "billing_events",
    "product": "product_events",
}

VALID_EVENT_TYPES: dict[str, frozenset[str]] = {
    "auth": frozenset({"login_success", "login_fail", "password_reset", "2fa_fail"}),
    "billing": frozenset({"refund_requested", "refund_issued", "chargeback"}),
    "product": frozenset({"server_error", "spike_latency", "outage"}),
}

TAG_SEPARATOR = "|"


def parse_tags(tags_str: str | None) -> list[str]:
    """Split a ``"refund | double_charge"`` string into clean tag names."""
    if not tags_str:
        return []
    return [t.strip() for t in tags_str.split(TAG_SEPARATOR) if t.strip()]


def format_tags(tags: list[str]) -> str | None:
    """Inverse of :func:`parse_tags`."""
    cleaned = [t.strip() for t in tags if t and t.strip()]
    if not cleaned:
        return None
    return f" {TAG_SEPARATOR} ".join(cleaned)


@dataclass
class Customer:
    """A customer account referenced by tickets and events."""

    customer_id: str
    email: str | None = None
    full_name: str | None = None
    plan: str | None = None
    country: str | None = None
    is_active: bool = True
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


@dataclass
class Ticket:
    """A support ticket.

    Attributes:
        body: Raw ticket body.
        message: Normalized text used by the classifier (subject + body).
        queue: Routing queue, e.g. "Billing and Payments".
        type: Incident / Request / Problem / Change.
        tags: Tag names, stored as ``tags_str``.
        ticket_id: Database identity, None until inserted.
    """

    body: str
    message: str = ""
    customer_id: str | None = None
    channel: str | None = None
    subject: str | None = None
    queue: str | None = None
    type: str | None = None
    tags: list[str] = field(default_factory=list)
    status: str = "open"
    ticket_id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.status not in VALID_TICKET_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_TICKET_STATUSES)}"
            )
        if not self.message:
            parts = [p for p in (self.subject, self.body) if p]
            self.message = "\n".join(parts)

    @property
    def tags_str(self) -> str | None:
        return format_tags(self.tags)


@dataclass
class Event:
    """An append-only auth, billing or product event.

    ``value`` carries the numeric payload: refund amount for billing,
    error count / latency for product events, unused for auth.
    """

    source: str
    event_type: str
    customer_id: str | None = None
    service: str | None = None
    value: float | None = None
    severity: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    event_id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.source not in VALID_EVENT_TYPES:
            raise ValueError(
                f"Invalid source {self.source!r}. "
                f"Must be one of: {sorted(VALID_EVENT_TYPES)}"
            )
        allowed = VALID_EVENT_TYPES[self.source]
        if self.event_type not in allowed:
            raise ValueError(
                f"Invalid {self.source} event_type {self.event_type!r}. "
                f"Must be one of: {sorted(allowed)}"
            )
        if isinstance(self.meta, str):
            self.meta = json.loads(self.meta)

    @property
    def table(self) -> str:
        return EVENT_TABLES[self.source]
