"""
Command-line interface for the support risk monitor.

Provides commands to run the monitoring batch job, manage alerts,
apply the prediction policy, and run diagnostic checks.

Usage:
    risk-monitor init-db          # Initialize database
    risk-monitor health           # Check service health
    risk-monitor monitor          # Run one monitoring pass
    risk-monitor alerts list      # Show alerts
    risk-monitor select-priority  # Apply the prediction policy
"""

import asyncio
import json
import math
import sys
from typing import Any

import click

from src.observability.logging import bind_run_context, clear_context, setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Support Risk Monitor - anomaly alerts over ticket and event metrics."""
    setup_logging("DEBUG" if debug else None)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.storage.database import Database
    from src.storage.repository import TicketRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = TicketRepository(db)
            await repo.create_tables()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of the store and the configuration."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check configuration
        try:
            from src.monitoring.config import MonitorConfig
            config = MonitorConfig()
            from src.anomaly.rules import load_rule_set
            load_rule_set(config.default_threshold, config.rules_file)
            results["monitor_config"] = True
        except Exception as e:
            results["monitor_config"] = False
            logger.error("Monitor configuration invalid", error=str(e))

        try:
            from src.triage.config import TriagePolicyConfig
            triage = TriagePolicyConfig()
            results["triage_policy"] = not (
                triage.policy == "safety" and triage.threshold_high is None
            )
            if not results["triage_policy"]:
                logger.error("Safety policy configured without TRIAGE_THRESHOLD_HIGH")
        except Exception as e:
            results["triage_policy"] = False
            logger.error("Triage configuration invalid", error=str(e))

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All checks passed!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some checks failed!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--as-of", "as_of", default=None,
              type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M"]),
              help="Evaluation time, UTC (default: now)")
@click.option("--dry-run", is_flag=True, help="Evaluate without writing or closing alerts")
@click.option("--metrics-port", default=None, type=int,
              help="Expose Prometheus metrics on this port while running")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON")
def monitor(as_of: Any, dry_run: bool, metrics_port: int | None, as_json: bool) -> None:
    """Run one monitoring pass over all enabled metrics.

    Computes rolling z-scores per (metric, level) partition, evaluates
    anomaly rules, and materializes deduplicated alerts. Safe to re-run
    for the same --as-of: existing alerts are not duplicated.

    Designed for cron scheduling: 5 0 * * * risk-monitor monitor

    Example:
        risk-monitor monitor                       # Evaluate up to yesterday
        risk-monitor monitor --as-of 2026-03-02    # Backfill a specific day
        risk-monitor monitor --dry-run             # Preview only
    """
    from datetime import timezone as tz

    from src.monitoring.job import run_monitoring
    from src.storage.database import Database

    if metrics_port is not None:
        get_metrics().start_server(metrics_port)

    async def run():
        db = Database()
        await db.connect()

        try:
            when = as_of.replace(tzinfo=tz.utc) if as_of else None
            bind_run_context(as_of=when.isoformat() if when else "now", dry_run=dry_run)
            summary = await run_monitoring(db, as_of=when, dry_run=dry_run)
        finally:
            clear_context()
            await db.close()

        if as_json:
            click.echo(json.dumps(summary.to_dict(), indent=2))
            return

        title = "Monitoring Dry Run" if dry_run else "Monitoring Results"
        click.echo(f"\n{title} (as of {summary.as_of:%Y-%m-%d %H:%M} UTC):")
        click.echo(f"  Range:              {summary.time_range.start:%Y-%m-%d} .. "
                   f"{summary.time_range.end:%Y-%m-%d} ({summary.time_range.granularity})")
        click.echo(f"  Partitions ok:      {summary.succeeded}")
        click.echo(f"  Partitions skipped: {summary.skipped}")
        click.echo(f"  Partitions failed:  {summary.failed}")
        click.echo(f"  Actionable buckets: {summary.actionable}")
        if not dry_run:
            click.echo(f"  Alerts created:     {summary.alerts_created}")
            click.echo(f"  Alerts existing:    {summary.alerts_existing}")
            click.echo(f"  Alerts closed:      {summary.alerts_closed}")
        click.echo(f"  Data gaps:          {len(summary.data_gaps)}")
        click.echo(f"  Elapsed:            {summary.elapsed_seconds:.2f}s")

        if summary.errors:
            click.echo("\nErrors:")
            for err in summary.errors:
                click.echo(click.style(f"  - {err}", fg="red"))

    asyncio.run(run())


# ── Alerts ───────────────────────────────────────────────


@main.group()
def alerts() -> None:
    """List and manage alerts."""


@alerts.command("list")
@click.option("--status", default=None,
              type=click.Choice(["open", "acknowledged", "closed"]),
              help="Filter by status")
@click.option("--type", "alert_type", default=None, help="Filter by alert type")
@click.option("--level", default=None, help="Filter by level (global, queue:Billing, ...)")
@click.option("--metric", default=None, help="Filter by metric")
@click.option("--limit", default=20, type=int, help="Maximum alerts to show")
def alerts_list(
    status: str | None,
    alert_type: str | None,
    level: str | None,
    metric: str | None,
    limit: int,
) -> None:
    """Show alerts, newest bucket first."""
    from src.alerts.repository import AlertRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = AlertRepository(db)
            rows = await repo.list_alerts(
                status=status,
                alert_type=alert_type,
                level=level,
                metric=metric,
                limit=limit,
            )
        finally:
            await db.close()

        if not rows:
            click.echo("No alerts found.")
            return

        click.echo(f"\n{'ID':>6}  {'Bucket':<10}  {'Type':<20}  {'Level':<24}  "
                   f"{'Z':>7}  {'Severity':<8}  Status")
        click.echo("-" * 96)
        for alert in rows:
            zscore = "inf" if math.isinf(alert.zscore) else f"{alert.zscore:.2f}"
            color = "red" if alert.severity == "critical" else None
            click.echo(click.style(
                f"{alert.alert_id:>6}  {alert.alert_time:%Y-%m-%d}  {alert.alert_type:<20}  "
                f"{alert.level:<24}  {zscore:>7}  {alert.severity:<8}  {alert.status}",
                fg=color,
            ))

    asyncio.run(run())


@alerts.command("ack")
@click.argument("alert_id", type=int)
def alerts_ack(alert_id: int) -> None:
    """Acknowledge an alert."""
    from src.alerts.repository import AlertRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            ok = await AlertRepository(db).acknowledge(alert_id)
        finally:
            await db.close()

        if ok:
            click.echo(f"Alert {alert_id} acknowledged")
        else:
            click.echo(click.style(f"Alert {alert_id} not found or already closed", fg="red"))
            sys.exit(1)

    asyncio.run(run())


@alerts.command("close")
@click.argument("alert_id", type=int)
def alerts_close(alert_id: int) -> None:
    """Close an open or acknowledged alert."""
    from src.alerts.repository import AlertRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            ok = await AlertRepository(db).close(alert_id)
        finally:
            await db.close()

        if ok:
            click.echo(f"Alert {alert_id} closed")
        else:
            click.echo(click.style(f"Alert {alert_id} not found or already closed", fg="red"))
            sys.exit(1)

    asyncio.run(run())


# ── Prediction policy ────────────────────────────────────


@main.command("select-priority")
@click.option("--priority", default=None, type=click.Choice(["low", "medium", "high"]),
              help="Classifier argmax priority")
@click.option("--score", "scores", multiple=True,
              help="Per-label score as label=value (can repeat)")
@click.option("--proba-high", default=None, type=float, help="Probability of 'high'")
@click.option("--category", default=None, help="Predicted category")
@click.option("--policy", default=None, type=click.Choice(["balanced", "safety"]),
              help="Policy (default: TRIAGE_POLICY)")
@click.option("--threshold-high", default=None, type=float,
              help="Safety threshold (default: TRIAGE_THRESHOLD_HIGH)")
@click.option("--ticket-id", default=None, type=int,
              help="Store the prediction for this ticket")
def select_priority_cmd(
    priority: str | None,
    scores: tuple[str, ...],
    proba_high: float | None,
    category: str | None,
    policy: str | None,
    threshold_high: float | None,
    ticket_id: int | None,
) -> None:
    """Apply the prediction policy to one classifier output.

    Example:
        risk-monitor select-priority --priority medium --proba-high 0.85 \\
            --policy safety --threshold-high 0.7
    """
    from src.triage.policy import ConfigurationError
    from src.triage.repository import PredictionRepository
    from src.triage.schemas import ClassifierOutput
    from src.triage.service import TriageService

    try:
        priority_scores = _parse_scores(scores) if scores else None
        output = ClassifierOutput(
            category=category,
            priority=priority,
            priority_scores=priority_scores,
            proba_high=proba_high,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if output.priority is None and not output.priority_scores:
        raise click.UsageError("Provide --priority or at least one --score")

    async def run():
        if ticket_id is None:
            service = TriageService(prediction_repo=None)
            return service.decide(0, output, policy, threshold_high)

        from src.storage.database import Database
        db = Database()
        await db.connect()
        try:
            service = TriageService(PredictionRepository(db))
            return await service.record_prediction(ticket_id, output, policy, threshold_high)
        finally:
            await db.close()

    try:
        prediction = asyncio.run(run())
    except ConfigurationError as e:
        click.echo(click.style(f"Configuration error: {e}", fg="red"))
        sys.exit(1)

    click.echo(f"Priority: {prediction.pred_priority} (policy={prediction.policy})")
    if prediction.prediction_id is not None:
        click.echo(f"Stored prediction {prediction.prediction_id} for ticket {ticket_id}")


def _parse_scores(pairs: tuple[str, ...]) -> dict[str, float]:
    """Parse ``label=value`` pairs into a score mapping."""
    scores: dict[str, float] = {}
    for pair in pairs:
        label, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Expected label=value, got {pair!r}")
        scores[label.strip()] = float(value)
    return scores


if __name__ == "__main__":
    main()
