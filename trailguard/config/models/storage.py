"""Storage backend configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

BackendType = Literal["inmemory", "redis"]


class RedisConfig(BaseModel):
    """Redis connection settings shared by broker, accumulator and metrics."""

    url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    key_prefix: str = Field(default="trailguard", description="Prefix for all keys")


class StorageConfig(BaseModel):
    """Backends for the collaborators the pipeline talks to."""

    broker: BackendType = Field(default="inmemory", description="Queue broker backend")
    batch: BackendType = Field(default="inmemory", description="Batch accumulator backend")
    metrics: BackendType = Field(default="inmemory", description="Dispatch metrics backend")
    redis: RedisConfig = Field(default_factory=RedisConfig)
