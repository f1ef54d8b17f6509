"""Tests for the canvas-orch command line."""

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from orchestration.cli import build_parser, main
from orchestration.schemas.orchestrator import INTERRUPTED_BY_RESTART, OrchestratorState
from orchestration.schemas.run import Run, RunStatus, Strategy
from orchestration.storage import RunStore


def _seed(tmp_path: Path, *states: OrchestratorState) -> RunStore:
    store = RunStore(tmp_path)

    async def write_all():
        for state in states:
            await store.write_state(state)

    asyncio.run(write_all())
    return store


def _state(orchestrator_id: str, status: RunStatus, history: int = 0) -> OrchestratorState:
    run = Run(
        id=f"{orchestrator_id}-current",
        orchestrator_id=orchestrator_id,
        strategy=Strategy.PARALLEL,
        status=status,
    )
    past = [
        Run(
            id=f"{orchestrator_id}-{i}",
            orchestrator_id=orchestrator_id,
            strategy=Strategy.PARALLEL,
            status=RunStatus.COMPLETED,
        )
        for i in range(history)
    ]
    return OrchestratorState(orchestrator_id=orchestrator_id, current_run=run, run_history=past)


def _main(*argv: str) -> int:
    with patch("orchestration.cli.configure_logging"):
        with pytest.raises(SystemExit) as exc_info:
            main(list(argv))
    return exc_info.value.code


class TestParser:
    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_history_args(self):
        args = build_parser().parse_args(["--storage", "/tmp/x", "history", "orch-1", "--limit", "3"])
        assert args.storage == "/tmp/x"
        assert args.orchestrator_id == "orch-1"
        assert args.limit == 3


class TestRecoverCommand:
    def test_recovers_active_runs(self, tmp_path: Path, capsys):
        store = _seed(
            tmp_path,
            _state("orch-1", RunStatus.RUNNING),
            _state("orch-2", RunStatus.COMPLETED),
        )

        assert _main("--storage", str(tmp_path), "recover") == 0

        out = capsys.readouterr().out
        assert "Recovered orch-1" in out
        assert "1 orchestration(s) recovered" in out

        state = asyncio.run(store.read_state("orch-1"))
        assert state.current_run is None
        assert state.run_history[0].status == RunStatus.FAILED
        assert state.run_history[0].error == INTERRUPTED_BY_RESTART

    def test_nothing_to_recover(self, tmp_path: Path, capsys):
        assert _main("--storage", str(tmp_path), "recover") == 0
        assert "0 orchestration(s) recovered" in capsys.readouterr().out


class TestStatusCommand:
    def test_lists_only_active_runs(self, tmp_path: Path, capsys):
        _seed(
            tmp_path,
            _state("orch-1", RunStatus.PAUSED),
            _state("orch-2", RunStatus.FAILED),
        )

        assert _main("--storage", str(tmp_path), "status") == 0

        active = json.loads(capsys.readouterr().out)
        assert list(active) == ["orch-1"]
        assert active["orch-1"]["status"] == "paused"
        assert active["orch-1"]["strategy"] == "parallel"


class TestHistoryCommand:
    def test_limit(self, tmp_path: Path, capsys):
        _seed(tmp_path, _state("orch-1", RunStatus.COMPLETED, history=3))

        assert _main("--storage", str(tmp_path), "history", "orch-1", "--limit", "2") == 0

        runs = json.loads(capsys.readouterr().out)
        assert [r["run_id"] for r in runs] == ["orch-1-0", "orch-1-1"]

    def test_unknown_orchestrator(self, tmp_path: Path, capsys):
        assert _main("--storage", str(tmp_path), "history", "nope") == 1
        assert "Unknown orchestrator: nope" in capsys.readouterr().err
