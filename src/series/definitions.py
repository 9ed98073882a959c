"""Metric definitions and the SQL that materialises them.

Each metric is data: a source table, an aggregation and the level kinds
it can be partitioned by. ``build_series_query`` turns a definition plus
a level kind into one grouped range scan returning
``(partition, bucket, numerator, denominator)`` rows.

Query parameters are always:
    $1 range start (inclusive), $2 range end (exclusive),
    $3 date_trunc unit, $4 event types / numerator priority (if used).
"""

from dataclasses import dataclass, field
from typing import Literal

Aggregation = Literal["count", "sum", "ratio"]

VALID_AGGREGATIONS: frozenset[str] = frozenset({"count", "sum", "ratio"})

SOURCE_TABLES: frozenset[str] = frozenset({
    "tickets",
    "auth_events",
    "billing_events",
    "product_events",
})

# Partition expression per (table, level kind). Global is handled separately.
PARTITION_EXPRESSIONS: dict[tuple[str, str], str] = {
    ("tickets", "queue"): "t.queue",
    ("tickets", "customer"): "t.customer_id",
    ("tickets", "tag"): "btrim(tag.name)",
    ("auth_events", "customer"): "t.customer_id",
    ("billing_events", "customer"): "t.customer_id",
}

LATEST_PREDICTION_JOIN = """
    LEFT JOIN LATERAL (
        SELECT p.pred_priority
        FROM predictions p
        WHERE p.ticket_id = t.ticket_id
        ORDER BY p.created_at DESC, p.prediction_id DESC
        LIMIT 1
    ) lp ON TRUE"""

TAG_JOIN = """
    CROSS JOIN LATERAL unnest(string_to_array(t.tags_str, '|')) AS tag(name)"""


@dataclass(frozen=True)
class MetricDefinition:
    """How to compute one metric from stored facts.

    Attributes:
        name: Metric name as stored in ``alerts.metric``.
        table: Source table.
        aggregation: ``count`` rows, ``sum`` a value column, or ``ratio``
            (share of tickets whose latest prediction has
            ``numerator_priority``).
        level_kinds: Level kinds this metric supports.
        event_types: Optional ``event_type`` filter for event tables.
        value_column: Column summed by ``sum`` aggregations.
        numerator_priority: Priority counted by ``ratio`` aggregations.
        description: Human-readable summary.
    """

    name: str
    table: str
    aggregation: str = "count"
    level_kinds: frozenset[str] = field(default_factory=lambda: frozenset({"global"}))
    event_types: tuple[str, ...] = ()
    value_column: str | None = None
    numerator_priority: str = "high"
    description: str = ""

    def __post_init__(self) -> None:
        if self.table not in SOURCE_TABLES:
            raise ValueError(
                f"Invalid table {self.table!r}. Must be one of: {sorted(SOURCE_TABLES)}"
            )
        if self.aggregation not in VALID_AGGREGATIONS:
            raise ValueError(
                f"Invalid aggregation {self.aggregation!r}. "
                f"Must be one of: {sorted(VALID_AGGREGATIONS)}"
            )
        if self.aggregation == "sum" and not self.value_column:
            raise ValueError(f"Metric {self.name!r}: sum aggregation needs value_column")
        if self.aggregation == "ratio" and self.table != "tickets":
            raise ValueError(f"Metric {self.name!r}: ratio is only defined on tickets")
        for kind in self.level_kinds:
            if kind != "global" and (self.table, kind) not in PARTITION_EXPRESSIONS:
                raise ValueError(
                    f"Metric {self.name!r}: {self.table} cannot be partitioned by {kind!r}"
                )

    def supports(self, kind: str) -> bool:
        return kind in self.level_kinds


DEFAULT_METRICS: dict[str, MetricDefinition] = {
    m.name: m
    for m in (
        MetricDefinition(
            name="tickets_total",
            table="tickets",
            aggregation="count",
            level_kinds=frozenset({"global", "queue", "tag", "customer"}),
            description="Tickets created per bucket",
        ),
        MetricDefinition(
            name="high_rate",
            table="tickets",
            aggregation="ratio",
            level_kinds=frozenset({"global", "queue", "tag"}),
            numerator_priority="high",
            description="Share of tickets whose current prediction is high priority",
        ),
        MetricDefinition(
            name="auth_failures",
            table="auth_events",
            aggregation="count",
            level_kinds=frozenset({"global", "customer"}),
            event_types=("login_fail", "2fa_fail"),
            description="Failed logins and 2FA failures per bucket",
        ),
        MetricDefinition(
            name="refund_requests",
            table="billing_events",
            aggregation="count",
            level_kinds=frozenset({"global", "customer"}),
            event_types=("refund_requested", "chargeback"),
            description="Refund requests and chargebacks per bucket",
        ),
        MetricDefinition(
            name="product_errors",
            table="product_events",
            aggregation="sum",
            level_kinds=frozenset({"global"}),
            event_types=("server_error",),
            value_column="value",
            description="Server error count reported by product events",
        ),
    )
}


def build_series_query(definition: MetricDefinition, kind: str) -> str:
    """Build the grouped range scan for ``definition`` at level ``kind``."""
    if not definition.supports(kind):
        raise ValueError(f"Metric {definition.name!r} does not support level {kind!r}")

    if kind == "global":
        partition = "NULL::text"
    else:
        partition = PARTITION_EXPRESSIONS[(definition.table, kind)]

    joins = ""
    conditions = ["t.created_at >= $1", "t.created_at < $2"]

    if definition.aggregation == "ratio":
        joins += LATEST_PREDICTION_JOIN
        numerator = "COUNT(*) FILTER (WHERE lp.pred_priority = $4)::float8"
        denominator = "COUNT(*)::float8"
    elif definition.aggregation == "sum":
        numerator = f"COALESCE(SUM(t.{definition.value_column}), 0)::float8"
        denominator = "COUNT(*)::float8"
    else:
        numerator = "COUNT(*)::float8"
        denominator = "COUNT(*)::float8"

    if definition.event_types:
        conditions.append("t.event_type = ANY($4::text[])")

    if kind == "tag":
        joins += TAG_JOIN
        conditions.append("btrim(tag.name) <> ''")
    elif kind != "global":
        conditions.append(f"{partition} IS NOT NULL")

    where = " AND ".join(conditions)
    return f"""
        SELECT
            {partition} AS partition,
            date_trunc($3, t.created_at AT TIME ZONE 'UTC') AS bucket,
            {numerator} AS numerator,
            {denominator} AS denominator
        FROM {definition.table} t{joins}
        WHERE {where}
        GROUP BY 1, 2
        ORDER BY 1, 2
    """


def query_params(definition: MetricDefinition) -> tuple:
    """Extra positional parameters ($4...) for ``build_series_query``."""
    if definition.aggregation == "ratio":
        return (definition.numerator_priority,)
    if definition.event_types:
        return (list(definition.event_types),)
    return ()
