import asyncio

import pytest

from steadfast import DurableWorkflowEngine
from steadfast.benchmarks import MakerBenchmark, hanoi
from steadfast.config import BenchmarkConfig, EngineConfig, SteadfastConfig
from steadfast.persistence import InMemoryCheckpointStore

CONFIG = SteadfastConfig(
    engine=EngineConfig(backoff_base_ms=1),
    benchmark=BenchmarkConfig(max_discs=4, max_retry_per_step=1),
)


def _benchmark() -> tuple[MakerBenchmark, InMemoryCheckpointStore]:
    store = InMemoryCheckpointStore()
    engine = DurableWorkflowEngine(store, config=CONFIG)
    return MakerBenchmark(engine, store, config=CONFIG), store


@pytest.mark.asyncio
async def test_three_discs_end_on_peg_c():
    benchmark, store = _benchmark()

    report = await benchmark.run_tower_of_hanoi(3)

    assert report.success
    assert report.benchmark_name == "TowerOfHanoi-3"
    assert report.total_steps_required == 7
    assert report.steps_completed == 7
    assert report.steps_failed == 0
    assert report.checkpoints_created == 7
    assert report.maker_score == 30.0
    assert report.average_step_duration > 0

    checkpoints = await store.get_workflow_checkpoints(report.workflow_id)
    first = checkpoints[0].deserialize_output()
    assert first == {"move": 1, "disc": 1, "from": "A", "to": "C"}
    final_state = checkpoints[-1].resumed_state()
    assert final_state["PegA"] == []
    assert final_state["PegB"] == []
    assert final_state["PegC"] == [1, 2, 3]


@pytest.mark.asyncio
async def test_ten_discs():
    benchmark, _ = _benchmark()

    report = await benchmark.run_tower_of_hanoi(10)

    assert report.success
    assert report.steps_completed == 1023
    assert report.checkpoints_created == 1023
    assert report.maker_score == 100.0


@pytest.mark.asyncio
@pytest.mark.parametrize("discs", [0, 26])
async def test_rejects_out_of_range_disc_counts(discs):
    benchmark, store = _benchmark()

    with pytest.raises(ValueError):
        await benchmark.run_tower_of_hanoi(discs)
    assert store.total_checkpoint_count == 0


@pytest.mark.asyncio
async def test_progressive_runs_up_to_configured_maximum():
    benchmark, _ = _benchmark()

    report = await benchmark.run_progressive()

    assert report.max_discs_attempted == 4
    assert report.max_discs_completed == 4
    assert report.max_steps_completed == 15
    assert report.overall_maker_score == report.results[-1].maker_score
    summary = report.summary()
    assert "Max Discs Completed: 4/4" in summary
    assert "4 discs (15 steps): PASS" in summary


@pytest.mark.asyncio
async def test_progressive_stops_at_first_failure(monkeypatch):
    benchmark, _ = _benchmark()

    original = hanoi.iter_move_sequence

    def _corrupted(disc_count):
        moves = list(original(disc_count))
        if disc_count == 3:
            moves[2], moves[3] = moves[3], moves[2]
        return iter(moves)

    monkeypatch.setattr(hanoi, "iter_move_sequence", _corrupted)

    report = await benchmark.run_progressive(5)

    assert report.max_discs_attempted == 3
    assert report.max_discs_completed == 2
    assert report.max_steps_completed == 3
    assert report.overall_maker_score == 20.0
    failed = report.results[-1]
    assert not failed.success
    assert failed.steps_completed == 2
    assert failed.steps_failed == 1
    assert "3 discs (7 steps): FAIL" in report.summary()


@pytest.mark.asyncio
async def test_concurrent_benchmarks_keep_separate_trails():
    benchmark, store = _benchmark()

    first, second = await asyncio.gather(
        benchmark.run_tower_of_hanoi(4), benchmark.run_tower_of_hanoi(5)
    )

    assert first.success and second.success
    assert first.workflow_id != second.workflow_id
    assert len(await store.get_workflow_checkpoints(first.workflow_id)) == 15
    assert len(await store.get_workflow_checkpoints(second.workflow_id)) == 31


@pytest.mark.asyncio
async def test_progressive_with_zero_discs_runs_nothing():
    benchmark, store = _benchmark()

    report = await benchmark.run_progressive(0)

    assert report.max_discs_attempted == 0
    assert report.max_discs_completed == 0
    assert report.max_steps_completed == 0
    assert report.overall_maker_score == 0.0
    assert store.total_checkpoint_count == 0
