"""Configuration models, one module per concern."""

from trailguard.config.models.dispatch import (
    DispatchConfig,
    HealthThresholdsConfig,
    QueueNamesConfig,
    WorkerConfig,
)
from trailguard.config.models.integrity import AuditorConfig, IntegrityConfig
from trailguard.config.models.jobs import HatchetConfig, JobsConfig
from trailguard.config.models.observability import (
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
)
from trailguard.config.models.redaction import RedactionConfig
from trailguard.config.models.retry import RetryConfig
from trailguard.config.models.storage import RedisConfig, StorageConfig

__all__ = [
    "AuditorConfig",
    "DispatchConfig",
    "HatchetConfig",
    "HealthThresholdsConfig",
    "IntegrityConfig",
    "JobsConfig",
    "LoggingConfig",
    "MetricsConfig",
    "ObservabilityConfig",
    "QueueNamesConfig",
    "RedactionConfig",
    "RedisConfig",
    "RetryConfig",
    "StorageConfig",
    "WorkerConfig",
]
