"""Job configuration models.

Configuration for scheduled background jobs.
"""

from pydantic import BaseModel, Field, SecretStr


class HatchetConfig(BaseModel):
    """Hatchet background job orchestration configuration.

    Hatchet runs the periodic batch flush and the integrity scan.
    """

    enabled: bool = Field(default=False, description="Enable Hatchet integration")
    server_url: str = Field(
        default="http://localhost:7077",
        description="Hatchet engine server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Hatchet API key (from HATCHET_API_KEY env var)",
    )
    cron_flush_batches: str = Field(
        default="* * * * *",
        description="Cron schedule for draining stale batch buckets (every minute)",
    )
    cron_integrity_scan: str = Field(
        default="0 3 * * *",
        description="Cron schedule for the integrity scan (daily at 3 AM UTC)",
    )
    integrity_scan_lookback_hours: int = Field(
        default=24,
        ge=1,
        description="Window scanned by the scheduled integrity check",
    )


class JobsConfig(BaseModel):
    """Top-level jobs configuration."""

    hatchet: HatchetConfig = Field(
        default_factory=HatchetConfig,
        description="Hatchet configuration",
    )
