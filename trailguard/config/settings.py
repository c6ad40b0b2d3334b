"""Root settings model for trailguard configuration."""

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from trailguard.config.models.dispatch import DispatchConfig, WorkerConfig
from trailguard.config.models.integrity import AuditorConfig, IntegrityConfig
from trailguard.config.models.jobs import JobsConfig
from trailguard.config.models.observability import ObservabilityConfig
from trailguard.config.models.redaction import RedactionConfig
from trailguard.config.models.retry import RetryConfig
from trailguard.config.models.storage import StorageConfig

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class TomlDictSettingsSource(PydanticBaseSettingsSource):
    """Settings source that serves an already-loaded TOML document."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data = data

    def get_field_value(
        self, field: Any, field_name: str  # noqa: ARG002
    ) -> tuple[Any, str, bool]:
        """Get field value from TOML config."""
        value = self._data.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        """Return the TOML config values."""
        return self._data.copy()


class Settings(BaseSettings):
    """Root configuration object containing all nested configuration sections.

    Configuration is loaded in this order:
    1. Pydantic model defaults (in code)
    2. config/default.toml (base configuration)
    3. config/{TRAILGUARD_ENV}.toml (environment overrides)
    4. TRAILGUARD_* environment variables (runtime overrides)
    """

    model_config = SettingsConfigDict(
        env_prefix="TRAILGUARD_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="trailguard", description="Application name for logging")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: LogLevel = Field(default="INFO", description="Logging level")

    integrity: IntegrityConfig = Field(
        default_factory=IntegrityConfig,
        description="Signing configuration",
    )
    redaction: RedactionConfig = Field(
        default_factory=RedactionConfig,
        description="Sensitive data masking configuration",
    )
    dispatch: DispatchConfig = Field(
        default_factory=DispatchConfig,
        description="Async dispatch configuration",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry executor configuration",
    )
    auditor: AuditorConfig = Field(
        default_factory=AuditorConfig,
        description="Integrity scan configuration",
    )
    worker: WorkerConfig = Field(
        default_factory=WorkerConfig,
        description="Consumer-side job processing configuration",
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Collaborator backend configuration",
    )
    jobs: JobsConfig = Field(
        default_factory=JobsConfig,
        description="Scheduled job configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )


def build_settings(toml_config: dict[str, Any] | None = None) -> Settings:
    """Create Settings layered over a loaded TOML document.

    Priority order (highest to lowest):
    1. init arguments
    2. TRAILGUARD_* environment variables
    3. the given TOML document
    4. model defaults
    """
    data = dict(toml_config or {})

    class _TomlBackedSettings(Settings):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (
                init_settings,
                env_settings,
                TomlDictSettingsSource(settings_cls, data),
            )

    return _TomlBackedSettings()
