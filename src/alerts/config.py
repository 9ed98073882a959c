"""Alert materializer configuration.

Controls engine-driven auto-resolution. All settings can be overridden
via ``ALERTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for alert materialization."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    auto_close: bool = Field(
        default=True,
        description="Close open alerts when the latest bucket is no longer anomalous",
    )

    auto_close_lookback_buckets: int = Field(
        default=1,
        ge=0,
        le=30,
        description=(
            "Open alerts whose bucket is within this many buckets before the "
            "latest bucket track the current state and may be auto-closed"
        ),
    )
