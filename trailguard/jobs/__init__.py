"""Background job infrastructure.

Hatchet-based scheduling for:
- Periodic batch flushes
- Daily integrity scans

Usage:
    from trailguard.jobs import HatchetClient
    from trailguard.jobs.workflows import register_workflows

    client = HatchetClient(settings.jobs.hatchet)
    hatchet = client.get_client()
    if hatchet is not None:
        register_workflows(hatchet, container)
"""

from trailguard.jobs.client import HatchetClient

__all__ = ["HatchetClient"]
