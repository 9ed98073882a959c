"""
Ticket and event repository.

Owns the relational schema (``create_tables``) and the thin
create/read operations intake uses for tickets, customers and risk
events. The monitoring engine only reads these tables, through
``src.series.source.MetricSourceAdapter``.
"""

import json
import logging
from datetime import datetime
from typing import Any

from src.storage.database import Database
from src.tickets.schemas import (
    VALID_TICKET_STATUSES,
    Customer,
    Event,
    Ticket,
    parse_tags,
)

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
-- Customers
CREATE TABLE IF NOT EXISTS customers (
    customer_id     TEXT PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    email           TEXT,
    full_name       TEXT,
    plan            TEXT,
    country         TEXT,
    is_active       BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE INDEX IF NOT EXISTS idx_customers_email ON customers(email);

-- Tickets (source of truth)
CREATE TABLE IF NOT EXISTS tickets (
    ticket_id       BIGSERIAL PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    customer_id     TEXT REFERENCES customers(customer_id) ON DELETE SET NULL,
    channel         TEXT,
    subject         TEXT,
    body            TEXT NOT NULL,
    message         TEXT NOT NULL,
    queue           TEXT,
    type            TEXT,
    tags_str        TEXT,
    status          TEXT NOT NULL DEFAULT 'open'
        CHECK (status IN ('open', 'acknowledged', 'closed'))
);

CREATE INDEX IF NOT EXISTS idx_tickets_created_at ON tickets(created_at);
CREATE INDEX IF NOT EXISTS idx_tickets_customer_id ON tickets(customer_id);
CREATE INDEX IF NOT EXISTS idx_tickets_queue ON tickets(queue);
CREATE INDEX IF NOT EXISTS idx_tickets_type ON tickets(type);

-- Predictions (append-only model outputs per ticket)
CREATE TABLE IF NOT EXISTS predictions (
    prediction_id   BIGSERIAL PRIMARY KEY,
    ticket_id       BIGINT NOT NULL REFERENCES tickets(ticket_id) ON DELETE CASCADE,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    model_name      TEXT NOT NULL,
    model_version   TEXT,
    policy          TEXT NOT NULL DEFAULT 'balanced'
        CHECK (policy IN ('balanced', 'safety')),
    threshold_high  DOUBLE PRECISION,
    pred_category   TEXT,
    pred_priority   TEXT NOT NULL
        CHECK (pred_priority IN ('low', 'medium', 'high')),
    proba_high      DOUBLE PRECISION,
    meta            JSONB
);

CREATE INDEX IF NOT EXISTS idx_predictions_ticket_id ON predictions(ticket_id);
CREATE INDEX IF NOT EXISTS idx_predictions_created_at ON predictions(created_at);
CREATE INDEX IF NOT EXISTS idx_predictions_pred_priority ON predictions(pred_priority);
CREATE INDEX IF NOT EXISTS idx_predictions_pred_category ON predictions(pred_category);
CREATE INDEX IF NOT EXISTS idx_predictions_ticket_latest
    ON predictions(ticket_id, created_at DESC);

-- Feedback (human corrections, retraining input only)
CREATE TABLE IF NOT EXISTS feedback (
    feedback_id     BIGSERIAL PRIMARY KEY,
    ticket_id       BIGINT NOT NULL REFERENCES tickets(ticket_id) ON DELETE CASCADE,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    user_category   TEXT,
    user_priority   TEXT,
    comment         TEXT
);

CREATE INDEX IF NOT EXISTS idx_feedback_ticket_id ON feedback(ticket_id);

-- Alerts (output of the monitoring engine)
CREATE TABLE IF NOT EXISTS alerts (
    alert_id        BIGSERIAL PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    alert_time      TIMESTAMPTZ NOT NULL,
    alert_type      TEXT NOT NULL,
    level           TEXT NOT NULL,
    metric          TEXT NOT NULL,
    value           DOUBLE PRECISION NOT NULL,
    zscore          DOUBLE PRECISION,
    window_size     INTEGER NOT NULL DEFAULT 14,
    severity        TEXT NOT NULL DEFAULT 'warning'
        CHECK (severity IN ('warning', 'critical')),
    status          TEXT NOT NULL DEFAULT 'open'
        CHECK (status IN ('open', 'acknowledged', 'closed')),
    acknowledged_at TIMESTAMPTZ,
    closed_at       TIMESTAMPTZ,
    details         JSONB NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_alerts_alert_time ON alerts(alert_time);
CREATE INDEX IF NOT EXISTS idx_alerts_status ON alerts(status);
CREATE INDEX IF NOT EXISTS idx_alerts_type_level ON alerts(alert_type, level);

-- At most one active alert per natural key
CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_active_key
    ON alerts(alert_type, level, metric, alert_time)
    WHERE status IN ('open', 'acknowledged');

-- Auth events (login failures / resets)
CREATE TABLE IF NOT EXISTS auth_events (
    event_id        BIGSERIAL PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    customer_id     TEXT REFERENCES customers(customer_id) ON DELETE SET NULL,
    event_type      TEXT NOT NULL,
    ip              TEXT,
    user_agent      TEXT,
    meta            JSONB
);

CREATE INDEX IF NOT EXISTS idx_auth_events_time ON auth_events(created_at);
CREATE INDEX IF NOT EXISTS idx_auth_events_customer ON auth_events(customer_id);
CREATE INDEX IF NOT EXISTS idx_auth_events_type ON auth_events(event_type);

-- Billing events (refunds / chargebacks)
CREATE TABLE IF NOT EXISTS billing_events (
    event_id        BIGSERIAL PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    customer_id     TEXT REFERENCES customers(customer_id) ON DELETE SET NULL,
    event_type      TEXT NOT NULL,
    amount          DOUBLE PRECISION,
    currency        TEXT DEFAULT 'USD',
    meta            JSONB
);

CREATE INDEX IF NOT EXISTS idx_billing_events_time ON billing_events(created_at);
CREATE INDEX IF NOT EXISTS idx_billing_events_customer ON billing_events(customer_id);
CREATE INDEX IF NOT EXISTS idx_billing_events_type ON billing_events(event_type);

-- Product / server events (errors, incidents)
CREATE TABLE IF NOT EXISTS product_events (
    event_id        BIGSERIAL PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    service         TEXT,
    event_type      TEXT NOT NULL,
    severity        TEXT,
    value           DOUBLE PRECISION,
    meta            JSONB
);

CREATE INDEX IF NOT EXISTS idx_product_events_time ON product_events(created_at);
CREATE INDEX IF NOT EXISTS idx_product_events_service ON product_events(service);
CREATE INDEX IF NOT EXISTS idx_product_events_type ON product_events(event_type);

-- Latest prediction per ticket
CREATE OR REPLACE VIEW v_ticket_latest_prediction AS
SELECT
    t.*,
    p.prediction_id,
    p.created_at AS prediction_time,
    p.model_name,
    p.policy,
    p.threshold_high,
    p.pred_category,
    p.pred_priority,
    p.proba_high
FROM tickets t
LEFT JOIN LATERAL (
    SELECT *
    FROM predictions p
    WHERE p.ticket_id = t.ticket_id
    ORDER BY p.created_at DESC, p.prediction_id DESC
    LIMIT 1
) p ON TRUE;
"""


class TicketRepository:
    """
    Repository for intake-side persistence.

    Tables:
        - customers, tickets: created by intake
        - auth_events, billing_events, product_events: append-only facts
        - predictions, feedback, alerts: created here, owned elsewhere
    """

    def __init__(self, database: Database):
        """
        Initialize repository.

        Args:
            database: Connected Database instance
        """
        self._db = database

    async def create_tables(self) -> None:
        """Create all tables, indexes and views if they don't exist."""
        await self._db.execute(SCHEMA_SQL)
        logger.info("Database tables created/verified")

    async def upsert_customer(self, customer: Customer) -> None:
        """Insert a customer, updating profile fields if it already exists."""
        sql = """
            INSERT INTO customers (
                customer_id, created_at, email, full_name, plan, country, is_active
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (customer_id) DO UPDATE SET
                email = EXCLUDED.email,
                full_name = EXCLUDED.full_name,
                plan = EXCLUDED.plan,
                country = EXCLUDED.country,
                is_active = EXCLUDED.is_active
        """
        await self._db.execute(
            sql,
            customer.customer_id,
            customer.created_at,
            customer.email,
            customer.full_name,
            customer.plan,
            customer.country,
            customer.is_active,
        )

    async def insert_ticket(self, ticket: Ticket) -> Ticket:
        """
        Insert a ticket.

        Returns:
            The ticket with its database-assigned ``ticket_id``.
        """
        sql = """
            INSERT INTO tickets (
                created_at, customer_id, channel, subject, body,
                message, queue, type, tags_str, status
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            ticket.created_at,
            ticket.customer_id,
            ticket.channel,
            ticket.subject,
            ticket.body,
            ticket.message,
            ticket.queue,
            ticket.type,
            ticket.tags_str,
            ticket.status,
        )
        return _row_to_ticket(row)

    async def get_ticket(self, ticket_id: int) -> Ticket | None:
        """Get a ticket by ID."""
        row = await self._db.fetchrow(
            "SELECT * FROM tickets WHERE ticket_id = $1", ticket_id,
        )
        if row is None:
            return None
        return _row_to_ticket(row)

    async def list_tickets(
        self,
        since: datetime,
        until: datetime,
        *,
        queue: str | None = None,
        limit: int = 100,
    ) -> list[Ticket]:
        """List tickets created in ``[since, until)``, newest first."""
        params: list[Any] = [since, until]
        queue_clause = ""
        if queue is not None:
            params.append(queue)
            queue_clause = f"AND queue = ${len(params)}"
        params.append(limit)

        sql = f"""
            SELECT * FROM tickets
            WHERE created_at >= $1 AND created_at < $2
            {queue_clause}
            ORDER BY created_at DESC
            LIMIT ${len(params)}
        """
        rows = await self._db.fetch(sql, *params)
        return [_row_to_ticket(row) for row in rows]

    async def update_status(self, ticket_id: int, status: str) -> bool:
        """Set a ticket's status (the only mutable ticket field)."""
        if status not in VALID_TICKET_STATUSES:
            raise ValueError(
                f"Invalid status {status!r}. "
                f"Must be one of: {sorted(VALID_TICKET_STATUSES)}"
            )
        result = await self._db.fetchval(
            "UPDATE tickets SET status = $2 WHERE ticket_id = $1 RETURNING ticket_id",
            ticket_id,
            status,
        )
        return result is not None

    async def insert_event(self, event: Event) -> Event:
        """Append an auth, billing or product event to its table."""
        meta = json.dumps(event.meta) if event.meta else None

        if event.source == "auth":
            sql = """
                INSERT INTO auth_events (created_at, customer_id, event_type, meta)
                VALUES ($1, $2, $3, $4)
                RETURNING event_id
            """
            args: tuple[Any, ...] = (
                event.created_at, event.customer_id, event.event_type, meta,
            )
        elif event.source == "billing":
            sql = """
                INSERT INTO billing_events (
                    created_at, customer_id, event_type, amount, meta
                ) VALUES ($1, $2, $3, $4, $5)
                RETURNING event_id
            """
            args = (
                event.created_at, event.customer_id, event.event_type,
                event.value, meta,
            )
        else:
            sql = """
                INSERT INTO product_events (
                    created_at, service, event_type, severity, value, meta
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING event_id
            """
            args = (
                event.created_at, event.service, event.event_type,
                event.severity, event.value, meta,
            )

        event.event_id = await self._db.fetchval(sql, *args)
        return event


def _row_to_ticket(row: Any) -> Ticket:
    """Convert an asyncpg Record to a Ticket."""
    return Ticket(
        ticket_id=row["ticket_id"],
        created_at=row["created_at"],
        customer_id=row.get("customer_id"),
        channel=row.get("channel"),
        subject=row.get("subject"),
        body=row["body"],
        message=row["message"],
        queue=row.get("queue"),
        type=row.get("type"),
        tags=parse_tags(row.get("tags_str")),
        status=row.get("status", "open"),
    )
