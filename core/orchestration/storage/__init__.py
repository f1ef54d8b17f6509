"""Storage backends for orchestration records."""

from orchestration.storage.run_store import RunStore

__all__ = ["RunStore"]
