"""Priority classification and queue routing.

Pure functions: the same event type and risk level always land on the same
queue.
"""

from collections.abc import Collection
from enum import Enum

from trailguard.config.models.dispatch import DispatchConfig

DEFAULT_HIGH_PRIORITY_TYPES: frozenset[str] = frozenset(
    {
        "security_incident",
        "login_failed",
        "permission_escalation",
        "system_error",
        "data_breach",
    }
)
DEFAULT_HIGH_RISK_THRESHOLD = 7


class Priority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"


def classify_priority(
    event_type: str,
    risk_level: int,
    high_priority_types: Collection[str] = DEFAULT_HIGH_PRIORITY_TYPES,
    high_risk_threshold: int = DEFAULT_HIGH_RISK_THRESHOLD,
) -> Priority:
    """Classify an event as high or normal priority."""
    if event_type in high_priority_types or risk_level >= high_risk_threshold:
        return Priority.HIGH
    return Priority.NORMAL


def route_queue(event_type: str, risk_level: int, config: DispatchConfig) -> str:
    """Pick the queue a single event is dispatched to."""
    priority = classify_priority(
        event_type,
        risk_level,
        high_priority_types=frozenset(config.high_priority_types),
        high_risk_threshold=config.high_risk_threshold,
    )
    if priority == Priority.HIGH:
        return config.queues.high_priority
    return config.queues.default
