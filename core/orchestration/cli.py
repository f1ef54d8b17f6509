"""
Command-line interface for canvas orchestrations.

Usage:
    canvas-orch recover
    canvas-orch status
    canvas-orch history orch-1 --limit 5
    canvas-orch --storage ./runs --log-level DEBUG status
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from orchestration.config import CoordinatorConfig
from orchestration.observability.logging import configure_logging
from orchestration.runtime.coordinator import recover_interrupted_runs
from orchestration.schemas.orchestrator import OrchestratorState
from orchestration.schemas.run import Run
from orchestration.storage.run_store import RunStore


def _store_from_args(args: argparse.Namespace) -> RunStore | None:
    if args.storage:
        return RunStore(Path(args.storage).expanduser())
    storage_path = CoordinatorConfig().storage_path
    return RunStore(storage_path) if storage_path else None


def _run_summary(run: Run) -> dict:
    return {
        "run_id": run.id,
        "status": str(run.status),
        "strategy": str(run.strategy),
        "started_at": run.started_at.isoformat(),
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "total_tokens": run.total_tokens,
        "total_cost_usd": round(run.total_cost_usd, 6),
        "agents": len(run.agent_results),
        "error": run.error,
    }


def cmd_recover(args: argparse.Namespace) -> int:
    """Fail runs left active by a process that is no longer running."""
    store = _store_from_args(args)
    if store is None:
        print("Persistence is disabled; nothing to recover", file=sys.stderr)
        return 1

    recovered = asyncio.run(recover_interrupted_runs(store))
    for state in recovered:
        print(f"Recovered {state.orchestrator_id}")
    print(f"{len(recovered)} orchestration(s) recovered")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show runs the store records as active."""
    store = _store_from_args(args)
    if store is None:
        print("Persistence is disabled", file=sys.stderr)
        return 1

    states: list[OrchestratorState] = asyncio.run(store.list_states())
    active = {
        state.orchestrator_id: _run_summary(state.current_run)
        for state in states
        if state.current_run is not None and state.current_run.is_active
    }
    print(json.dumps(active, indent=2))
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Show the finished runs of one orchestrator."""
    store = _store_from_args(args)
    if store is None:
        print("Persistence is disabled", file=sys.stderr)
        return 1

    state = asyncio.run(store.read_state(args.orchestrator_id))
    if state is None:
        print(f"Unknown orchestrator: {args.orchestrator_id}", file=sys.stderr)
        return 1

    runs = state.run_history[: args.limit] if args.limit else state.run_history
    print(json.dumps([_run_summary(run) for run in runs], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="canvas-orch",
        description="Inspect and recover canvas orchestration runs",
    )
    parser.add_argument(
        "--storage",
        default=None,
        help="Run store directory (default: from ~/.canvas/configuration.json)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    recover_parser = subparsers.add_parser("recover", help="Fail runs interrupted by a restart")
    recover_parser.set_defaults(func=cmd_recover)

    status_parser = subparsers.add_parser("status", help="Show active runs in the store")
    status_parser.set_defaults(func=cmd_status)

    history_parser = subparsers.add_parser("history", help="Show finished runs")
    history_parser.add_argument("orchestrator_id", help="Orchestrator id")
    history_parser.add_argument("--limit", type=int, default=None, help="Maximum runs to show")
    history_parser.set_defaults(func=cmd_history)

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level or CoordinatorConfig().log_level)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
