"""
Run Store - Persisted orchestrator records.

One JSON file per orchestrator holds its configuration, the active run and
the run history:
  {base_path}/orchestrators/{orchestrator_id}.json
"""

import asyncio
import logging
from pathlib import Path

from orchestration.schemas.orchestrator import OrchestratorState
from orchestration.utils.io import atomic_write

logger = logging.getLogger(__name__)


class RunStore:
    """File-backed store of OrchestratorState records."""

    def __init__(self, base_path: Path):
        """
        Initialize run store.

        Args:
            base_path: Base path for storage (e.g., ~/.canvas/orchestrations)
        """
        self.base_path = Path(base_path)
        self.orchestrators_dir = self.base_path / "orchestrators"

    def get_state_path(self, orchestrator_id: str) -> Path:
        return self.orchestrators_dir / f"{orchestrator_id}.json"

    async def write_state(self, state: OrchestratorState) -> None:
        """
        Atomically write the record for one orchestrator.

        Uses temp file + rename for crash safety.
        """
        payload = state.model_dump_json(indent=2)

        def _write():
            path = self.get_state_path(state.orchestrator_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(path) as f:
                f.write(payload)

        await asyncio.to_thread(_write)
        logger.debug(f"Wrote record for orchestrator {state.orchestrator_id}")

    async def read_state(self, orchestrator_id: str) -> OrchestratorState | None:
        """
        Read the record for one orchestrator.

        Returns:
            OrchestratorState or None if not found
        """

        def _read():
            path = self.get_state_path(orchestrator_id)
            if not path.exists():
                return None
            return OrchestratorState.model_validate_json(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def list_states(self) -> list[OrchestratorState]:
        """
        Load every stored record. Unreadable files are logged and skipped.

        Returns:
            Records sorted by updated_at, most recent first
        """

        def _scan():
            states: list[OrchestratorState] = []
            if not self.orchestrators_dir.exists():
                return states

            for path in self.orchestrators_dir.glob("*.json"):
                try:
                    states.append(
                        OrchestratorState.model_validate_json(path.read_text(encoding="utf-8"))
                    )
                except Exception as e:
                    logger.warning(f"Failed to load {path}: {e}")

            states.sort(key=lambda s: s.updated_at, reverse=True)
            return states

        return await asyncio.to_thread(_scan)

    async def delete_state(self, orchestrator_id: str) -> bool:
        """
        Delete the record for one orchestrator.

        Returns:
            True if deleted, False if not found
        """

        def _delete():
            path = self.get_state_path(orchestrator_id)
            if not path.exists():
                return False
            path.unlink()
            logger.info(f"Deleted record for orchestrator {orchestrator_id}")
            return True

        return await asyncio.to_thread(_delete)
