"""Hatchet client wrapper.

Runs the scheduled batch flush and integrity scan. Hatchet is optional:
when it is disabled or hatchet-sdk is not installed the client reports
itself unavailable and callers fall back to flushing in-process.
"""

from typing import Any

from trailguard.config.models.jobs import HatchetConfig
from trailguard.observability.logging import get_logger

logger = get_logger(__name__)


class HatchetClient:
    """Lazily created Hatchet SDK client."""

    def __init__(self, config: HatchetConfig) -> None:
        self._config = config
        self._client: Any | None = None

    @property
    def config(self) -> HatchetConfig:
        return self._config

    @property
    def is_available(self) -> bool:
        """True once a client has been created successfully."""
        return self._client is not None

    def get_client(self) -> Any | None:
        """Get the Hatchet client, creating it on first use.

        Returns:
            Hatchet instance, or None when disabled or unavailable
        """
        if self._client is not None:
            return self._client

        if not self._config.enabled:
            logger.info("hatchet_disabled", reason="config")
            return None

        try:
            from hatchet_sdk import Hatchet
        except ImportError:
            logger.warning("hatchet_sdk_not_installed")
            return None

        api_key = self._config.api_key.get_secret_value() if self._config.api_key else None
        try:
            self._client = Hatchet(server_url=self._config.server_url, api_key=api_key)
        except Exception as e:
            logger.error("hatchet_client_init_failed", error=str(e))
            return None

        logger.info("hatchet_client_initialized", server_url=self._config.server_url)
        return self._client
