"""Resume workflows across engine restarts backed by a SQLite checkpoint store."""

import asyncio

import pytest

from steadfast import (
    CancellationToken,
    DurableWorkflowEngine,
    ExecutionStepStatus,
    WorkflowCancelledError,
    WorkflowDefinition,
    WorkflowStepDefinition,
    WorkflowStepResult,
)
from steadfast.benchmarks import build_workflow, generate_move_sequence
from steadfast.config import EngineConfig, SteadfastConfig
from steadfast.persistence import SQLiteCheckpointStore

FAST = SteadfastConfig(engine=EngineConfig(backoff_base_ms=1))


@pytest.mark.asyncio
async def test_failed_workflow_resumes_after_restart(tmp_path):
    db_path = tmp_path / "checkpoints.db"
    healthy = {"value": False}

    def _step(ctx, token):
        if ctx.step_number == 2 and not healthy["value"]:
            return WorkflowStepResult.fail("downstream unavailable")
        total = ctx.state.get("total", 0) + ctx.step_number
        return WorkflowStepResult.ok(output=total, state_updates={"total": total})

    workflow = WorkflowDefinition(
        name="sum",
        steps=[
            WorkflowStepDefinition(step_number=i, name=f"add-{i}", execute=_step)
            for i in range(4)
        ],
        max_retry_per_step=1,
    )

    store = SQLiteCheckpointStore(db_path)
    first = await DurableWorkflowEngine(store, config=FAST).execute_workflow(workflow)
    assert not first.success
    store.close()

    # a new process: fresh store connection and engine, same definition
    healthy["value"] = True
    store = SQLiteCheckpointStore(db_path)
    engine = DurableWorkflowEngine(store, config=FAST)
    engine.register_workflow(workflow)
    resumed = await engine.resume_workflow(workflow.workflow_id)

    assert resumed.success
    assert resumed.final_output == 0 + 1 + 2 + 3
    trail = await store.get_workflow_checkpoints(workflow.workflow_id)
    assert [(cp.step_number, cp.status) for cp in trail] == [
        (0, ExecutionStepStatus.COMPLETED),
        (1, ExecutionStepStatus.COMPLETED),
        (2, ExecutionStepStatus.FAILED),
        (2, ExecutionStepStatus.COMPLETED),
        (3, ExecutionStepStatus.COMPLETED),
    ]
    store.close()


@pytest.mark.asyncio
async def test_cancelled_hanoi_resumes_to_solution(tmp_path):
    db_path = tmp_path / "checkpoints.db"
    workflow = build_workflow(4, generate_move_sequence(4))
    token = CancellationToken()

    # cancel from inside move 8; the move itself still completes
    original = workflow.steps[7].execute

    def _cancel_then_move(ctx, step_token):
        token.cancel("operator stop")
        return original(ctx, step_token)

    workflow.steps[7].execute = _cancel_then_move

    store = SQLiteCheckpointStore(db_path)
    with pytest.raises(WorkflowCancelledError) as exc_info:
        await DurableWorkflowEngine(store, config=FAST).execute_workflow(workflow, token)
    assert exc_info.value.checkpoint.step_number == 8
    store.close()

    store = SQLiteCheckpointStore(db_path)
    engine = DurableWorkflowEngine(store, config=FAST)
    engine.register_workflow(workflow)
    resumed = await engine.resume_workflow(workflow.workflow_id)

    assert resumed.success
    assert resumed.completed_steps == 15
    assert [cp.step_number for cp in resumed.checkpoints] == list(range(8, 15))
    final_state = resumed.checkpoints[-1].resumed_state()
    assert final_state["PegC"] == [1, 2, 3, 4]
    assert final_state["PegA"] == [] and final_state["PegB"] == []
    store.close()


@pytest.mark.asyncio
async def test_concurrent_workflows_share_a_store(tmp_path):
    store = SQLiteCheckpointStore(tmp_path / "checkpoints.db")
    engine = DurableWorkflowEngine(store, config=FAST)
    workflows = [build_workflow(n, generate_move_sequence(n)) for n in (3, 4, 5)]

    results = await asyncio.gather(*(engine.execute_workflow(w) for w in workflows))

    assert all(r.success for r in results)
    for workflow, result in zip(workflows, results):
        trail = await store.get_workflow_checkpoints(workflow.workflow_id)
        assert len(trail) == len(workflow.steps) == result.completed_steps
        assert [cp.step_number for cp in trail] == list(range(len(workflow.steps)))
    store.close()
