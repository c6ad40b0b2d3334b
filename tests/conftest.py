"""Shared test fixtures for the trailguard test suite."""

import os
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from pydantic import SecretStr

from trailguard.audit.models import Event
from trailguard.audit.stores import InMemoryAuditRecordStore
from trailguard.config.models import IntegrityConfig, RetryConfig
from trailguard.integrity import Signer
from trailguard.redaction import Redactor
from trailguard.resilience import RetryExecutor


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "development.toml": "debug = true",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            (test_config_dir / filename).write_text(content)

    return _create_toml_files


class EnvOverrideContext:
    """Context manager for temporarily setting environment variables."""

    def __init__(self, overrides: dict[str, str]) -> None:
        self.overrides = overrides
        self.original_env: dict[str, str | None] = {}

    def __enter__(self) -> None:
        for key, value in self.overrides.items():
            self.original_env[key] = os.environ.get(key)
            os.environ[key] = value

    def __exit__(self, *args: Any) -> None:
        for key in self.overrides:
            if self.original_env[key] is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = self.original_env[key]


@pytest.fixture
def env_override() -> Generator[Callable[[dict[str, str]], EnvOverrideContext], None, None]:
    """Context manager for temporarily setting environment variables.

    Usage:
        def test_something(env_override):
            with env_override({"TRAILGUARD_DEBUG": "true"}):
                # test code here
    """

    def _env_override(overrides: dict[str, str]) -> EnvOverrideContext:
        return EnvOverrideContext(overrides)

    yield _env_override


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test."""
    from trailguard.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Domain fixtures
# =============================================================================


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def integrity_config() -> IntegrityConfig:
    return IntegrityConfig(signing_secret=SecretStr("secret"))


@pytest.fixture
def signer(integrity_config: IntegrityConfig) -> Signer:
    return Signer(integrity_config)


@pytest.fixture
def redactor() -> Redactor:
    return Redactor()


@pytest.fixture
def record_store() -> InMemoryAuditRecordStore:
    return InMemoryAuditRecordStore()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def retry_executor(sleep_recorder: SleepRecorder) -> RetryExecutor:
    """Retry executor that never actually sleeps."""
    return RetryExecutor(RetryConfig(max_retries=3, jitter_ratio=0.0), sleep=sleep_recorder)


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events with sensible defaults."""

    def _make_event(**overrides: Any) -> Event:
        fields: dict[str, Any] = {
            "type": "login",
            "description": "User signed in",
            "actor_id": "42",
            "created_at": datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=UTC),
        }
        fields.update(overrides)
        return Event(**fields)

    return _make_event
