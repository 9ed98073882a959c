"""Configuration for the anomaly monitoring batch job."""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.series.levels import VALID_LEVEL_KINDS
from src.series.schemas import LevelSelector


class MonitorConfig(BaseSettings):
    """Rolling window, bucketing and fan-out parameters.

    All settings can be overridden via environment variables with the
    ``MONITOR_`` prefix (e.g. ``MONITOR_WINDOW_SIZE=28``). List values are
    given as JSON (``MONITOR_LEVEL_KINDS='["global", "queue"]'``).
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Rolling statistics ───────────────────────────────────
    window_size: int = Field(
        default=14,
        ge=2,
        le=365,
        description="Number of prior buckets in each baseline window",
    )
    bucket_granularity: Literal["hour", "day", "week"] = Field(
        default="day",
        description="Bucket width of every series",
    )
    evaluation_buckets: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Most recent buckets evaluated per run",
    )

    # ── Anomaly rules ────────────────────────────────────────
    default_threshold: float = Field(
        default=2.0,
        gt=0.0,
        description="Z-score threshold for built-in rules",
    )
    rules_file: str | None = Field(
        default=None,
        description="Optional JSON file with per-metric rule overrides",
    )

    # ── Fan-out ──────────────────────────────────────────────
    max_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum partitions processed concurrently",
    )
    level_kinds: list[str] = Field(
        default_factory=lambda: ["global", "queue", "tag", "customer"],
        description="Level kinds materialised per metric (if the metric supports them)",
    )
    top_n_queues: int = Field(default=10, ge=1, description="Queues evaluated, by volume")
    top_n_tags: int = Field(default=20, ge=1, description="Tags evaluated, by volume")
    top_n_customers: int = Field(default=50, ge=1, description="Customers evaluated, by volume")

    @field_validator("level_kinds")
    @classmethod
    def _known_kinds(cls, v: list[str]) -> list[str]:
        unknown = set(v) - VALID_LEVEL_KINDS
        if unknown:
            raise ValueError(f"Unknown level kinds: {sorted(unknown)}")
        return v

    @property
    def range_buckets(self) -> int:
        """Buckets fetched per series: baseline plus evaluated buckets."""
        return self.window_size + self.evaluation_buckets

    def level_selector(self) -> LevelSelector:
        return LevelSelector(
            kinds=tuple(self.level_kinds),
            top_n={
                "queue": self.top_n_queues,
                "tag": self.top_n_tags,
                "customer": self.top_n_customers,
            },
        )
