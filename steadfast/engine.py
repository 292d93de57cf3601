"""Durable workflow engine with checkpointing, retry and resume."""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .cancellation import CancellationToken
from .config import SteadfastConfig, load_config
from .constants import CANCELLED_STEP_NAME
from .contracts import (
    StepAttempt,
    StepOutcome,
    WorkflowDefinition,
    WorkflowResult,
    WorkflowState,
    WorkflowStatus,
    WorkflowStepContext,
    WorkflowStepDefinition,
    WorkflowStepResult,
)
from .errors import (
    EmptyWorkflowError,
    NoCheckpointsError,
    StepTimeoutError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
)
from .persistence import CheckpointStore
from .persistence.models import ExecutionCheckpoint, ExecutionStepStatus, dump_json
from .registry import WorkflowRegistry
from .utils.retry import compute_backoff, sleep_unless_cancelled

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DurableWorkflowEngine:
    """Executes sequential step chains, checkpointing after every step.

    A checkpoint is written once per step after its retry loop concludes, so
    the checkpoint trail of a workflow replays its execution history in
    order. ``resume_workflow`` restarts from the latest checkpoint: after a
    completed step it continues with the next one, after a failed step it
    runs the same step again from the state recorded before it.
    """

    def __init__(
        self,
        checkpoint_store: CheckpointStore,
        config: Optional[SteadfastConfig] = None,
    ) -> None:
        if checkpoint_store is None:
            raise ValueError("checkpoint_store is required")
        self._store = checkpoint_store
        self._config = config or load_config()
        self._statuses: WorkflowRegistry[WorkflowStatus] = WorkflowRegistry()
        self._tokens: WorkflowRegistry[CancellationToken] = WorkflowRegistry()
        self._definitions: WorkflowRegistry[WorkflowDefinition] = WorkflowRegistry()

    # ------------------------------------------------------------------
    # Public API
    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        """Make ``workflow`` resumable by id without running it.

        Used after a process restart, when the checkpoint trail survived but
        the in-memory definitions did not.
        """
        if not workflow.steps:
            raise EmptyWorkflowError("Workflow must have at least one step.")
        self._definitions.set(workflow.workflow_id, workflow)

    async def execute_workflow(
        self,
        workflow: WorkflowDefinition,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """Run ``workflow`` from its first step.

        Raises:
            EmptyWorkflowError: If the workflow has no steps.
            WorkflowCancelledError: If the run is cancelled through
                ``cancel_token`` or :meth:`cancel_workflow`.
        """
        if not workflow.steps:
            raise EmptyWorkflowError("Workflow must have at least one step.")

        self._definitions.set(workflow.workflow_id, workflow)
        token = self._replace_token(workflow.workflow_id, cancel_token)
        self._statuses.set(
            workflow.workflow_id,
            WorkflowStatus(
                workflow_id=workflow.workflow_id,
                state=WorkflowState.RUNNING,
                total_steps=len(workflow.steps),
                current_step=0,
                started_at=_utcnow(),
            ),
        )

        logger.info(
            f"Starting workflow {workflow.workflow_id} '{workflow.name}' "
            f"with {len(workflow.steps)} steps"
        )

        return await self._execute_from_step(
            workflow, 0, copy.deepcopy(workflow.initial_context), None, token
        )

    async def resume_workflow(
        self,
        workflow_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """Continue ``workflow_id`` from its latest checkpoint.

        Raises:
            WorkflowNotFoundError: If no definition is registered for the id.
            NoCheckpointsError: If the store holds no checkpoints for the id.
        """
        workflow = self._definitions.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        latest = await self._store.get_latest_checkpoint(workflow_id)
        if latest is None:
            raise NoCheckpointsError(workflow_id)

        token = self._replace_token(workflow_id, cancel_token)

        if latest.status == ExecutionStepStatus.COMPLETED:
            resume_step = latest.step_number + 1
            previous_output = latest.deserialize_output()
        else:
            # retry the failed step from the state recorded before it ran
            resume_step = latest.step_number
            previous_output = None
        state = latest.resumed_state()

        logger.info(
            f"Resuming workflow {workflow_id} from step {resume_step} "
            f"(last checkpoint: step {latest.step_number}, status {latest.status.value})"
        )

        self._statuses.set(
            workflow_id,
            WorkflowStatus(
                workflow_id=workflow_id,
                state=WorkflowState.RUNNING,
                total_steps=len(workflow.steps),
                current_step=resume_step,
                started_at=_utcnow(),
            ),
        )

        return await self._execute_from_step(
            workflow, resume_step, state, previous_output, token
        )

    async def get_workflow_status(self, workflow_id: str) -> WorkflowStatus:
        """Return the live status of ``workflow_id``, or a pending record."""
        status = self._statuses.get(workflow_id)
        if status is None:
            return WorkflowStatus(workflow_id=workflow_id, state=WorkflowState.PENDING)
        return status.model_copy()

    async def cancel_workflow(self, workflow_id: str) -> None:
        """Signal cancellation to a running workflow. No-op for unknown ids."""
        token = self._tokens.get(workflow_id)
        if token is None or token.cancelled:
            return
        token.cancel(f"Workflow {workflow_id} cancelled by request")
        logger.info(f"Workflow {workflow_id} cancellation requested")

    # ------------------------------------------------------------------
    # Step loop
    async def _execute_from_step(
        self,
        workflow: WorkflowDefinition,
        start_step: int,
        state: Dict[str, Any],
        previous_output: Any,
        token: CancellationToken,
    ) -> WorkflowResult:
        started = time.perf_counter()
        ordered_steps = workflow.ordered_steps()
        checkpoints: List[ExecutionCheckpoint] = []
        completed_steps = sum(1 for s in ordered_steps if s.step_number < start_step)
        current_output = previous_output
        cursor = start_step

        try:
            for step in ordered_steps:
                if step.step_number < start_step:
                    continue

                cursor = step.step_number
                token.raise_if_cancelled(workflow.workflow_id)
                self._statuses.update(
                    workflow.workflow_id,
                    current_step=step.step_number,
                    current_step_name=step.name,
                )

                step_started = time.perf_counter()
                attempt = await self._execute_step_with_retry(
                    workflow, step, state, current_output, token
                )
                if attempt.outcome is StepOutcome.CANCELLED:
                    raise WorkflowCancelledError(workflow.workflow_id, token.reason)

                result = attempt.result
                checkpoint = ExecutionCheckpoint(
                    workflow_id=workflow.workflow_id,
                    step_number=step.step_number,
                    step_name=step.name,
                    status=(
                        ExecutionStepStatus.COMPLETED
                        if attempt.succeeded
                        else ExecutionStepStatus.FAILED
                    ),
                    state_json=dump_json(state),
                    input_json=dump_json({"previous_output": current_output}),
                    output_json=dump_json(result.output) if result.output is not None else "",
                    state_updates_json=(
                        dump_json(result.state_updates) if attempt.succeeded else "{}"
                    ),
                    error_message=result.error_message,
                    execution_duration=time.perf_counter() - step_started,
                )
                await self._store.save_checkpoint(checkpoint)
                checkpoints.append(checkpoint)

                if attempt.succeeded:
                    state.update(result.state_updates)
                    current_output = result.output
                    completed_steps += 1
                    continue

                logger.error(
                    f"Workflow {workflow.workflow_id} failed at step "
                    f"{step.step_number}/{step.name}: {result.error_message}"
                )
                self._update_workflow_state(workflow.workflow_id, WorkflowState.FAILED, token)
                return WorkflowResult(
                    workflow_id=workflow.workflow_id,
                    success=False,
                    total_steps=len(ordered_steps),
                    completed_steps=completed_steps,
                    failed_steps=1,
                    error_message=(
                        f"Failed at step {step.step_number} ({step.name}): "
                        f"{result.error_message}"
                    ),
                    total_duration=time.perf_counter() - started,
                    checkpoints=checkpoints,
                )
        except WorkflowCancelledError as exc:
            terminal = await self._record_cancellation(
                workflow, token, cursor, state, started, exc.reason
            )
            raise WorkflowCancelledError(
                workflow.workflow_id, exc.reason, terminal
            ) from None
        except asyncio.CancelledError:
            await self._record_cancellation(
                workflow, token, cursor, state, started, "task cancelled"
            )
            raise

        duration = time.perf_counter() - started
        self._update_workflow_state(workflow.workflow_id, WorkflowState.COMPLETED, token)
        logger.info(
            f"Workflow {workflow.workflow_id} completed successfully: "
            f"{completed_steps}/{len(ordered_steps)} steps in {duration:.3f}s"
        )
        return WorkflowResult(
            workflow_id=workflow.workflow_id,
            success=True,
            total_steps=len(ordered_steps),
            completed_steps=completed_steps,
            failed_steps=0,
            final_output=current_output,
            total_duration=duration,
            checkpoints=checkpoints,
        )

    async def _record_cancellation(
        self,
        workflow: WorkflowDefinition,
        token: CancellationToken,
        step_number: int,
        state: Dict[str, Any],
        started: float,
        reason: Optional[str],
    ) -> Optional[ExecutionCheckpoint]:
        self._update_workflow_state(workflow.workflow_id, WorkflowState.CANCELLED, token)
        logger.info(f"Workflow {workflow.workflow_id} cancelled at step {step_number}")

        checkpoint = ExecutionCheckpoint(
            workflow_id=workflow.workflow_id,
            step_number=step_number,
            step_name=CANCELLED_STEP_NAME,
            status=ExecutionStepStatus.FAILED,
            state_json=dump_json(state),
            error_message=f"Workflow cancelled: {reason}" if reason else "Workflow cancelled",
            execution_duration=time.perf_counter() - started,
        )
        # must survive a second cancellation of the caller's task
        try:
            await asyncio.shield(self._store.save_checkpoint(checkpoint))
        except Exception:
            logger.exception(
                f"Failed to write cancellation checkpoint for workflow {workflow.workflow_id}"
            )
            return None
        return checkpoint

    # ------------------------------------------------------------------
    # Retry policy
    async def _execute_step_with_retry(
        self,
        workflow: WorkflowDefinition,
        step: WorkflowStepDefinition,
        state: Dict[str, Any],
        previous_output: Any,
        token: CancellationToken,
    ) -> StepAttempt:
        if step.execute is None:
            return StepAttempt(
                outcome=StepOutcome.RETRYABLE_FAILURE,
                result=WorkflowStepResult.fail(
                    f"Step {step.step_number} ({step.name}) has no execution function."
                ),
                attempts=0,
            )

        max_retries = workflow.max_retry_per_step
        attempt = StepAttempt(outcome=StepOutcome.RETRYABLE_FAILURE)
        for attempt_index in range(max_retries + 1):
            # every attempt starts from an untouched copy of the state
            context = WorkflowStepContext(
                workflow_id=workflow.workflow_id,
                step_number=step.step_number,
                step_name=step.name,
                state=copy.deepcopy(state),
                previous_step_output=previous_output,
            )
            attempt = await self._run_attempt(workflow, step, context, token, attempt_index)
            if attempt.outcome is not StepOutcome.RETRYABLE_FAILURE:
                if attempt.succeeded:
                    logger.debug(
                        f"Step {step.step_number}/{step.name} completed on attempt {attempt_index + 1}"
                    )
                return attempt
            if attempt_index >= max_retries:
                return attempt

            backoff = compute_backoff(attempt_index, self._config.engine.backoff_base_ms)
            logger.warning(
                f"Step {step.step_number}/{step.name} failed on attempt {attempt_index + 1}, "
                f"retrying after {backoff * 1000:.0f}ms: {attempt.result.error_message}"
            )
            if not await sleep_unless_cancelled(backoff, token):
                return StepAttempt(outcome=StepOutcome.CANCELLED, attempts=attempt_index + 1)

        return attempt

    async def _run_attempt(
        self,
        workflow: WorkflowDefinition,
        step: WorkflowStepDefinition,
        context: WorkflowStepContext,
        token: CancellationToken,
        attempt_index: int,
    ) -> StepAttempt:
        attempts = attempt_index + 1
        step_token = token.linked()
        step_token.cancel_after(workflow.step_timeout)
        try:
            result = await self._invoke(step, context, step_token)
        except Exception as exc:
            # the workflow token wins whenever it has fired
            if token.cancelled:
                return StepAttempt(outcome=StepOutcome.CANCELLED, attempts=attempts)
            if step_token.cancelled:
                message = f"Step {step.name} timed out after {workflow.step_timeout}s"
            else:
                logger.debug(
                    f"Step {step.step_number}/{step.name} raised on attempt {attempts}",
                    exc_info=True,
                )
                message = f"Step {step.name} threw exception after {attempts} attempts: {exc}"
            return StepAttempt(
                outcome=StepOutcome.RETRYABLE_FAILURE,
                result=WorkflowStepResult.fail(message),
                attempts=attempts,
            )
        finally:
            step_token.dispose()

        if result.success:
            return StepAttempt(outcome=StepOutcome.SUCCESS, result=result, attempts=attempts)
        if token.cancelled:
            return StepAttempt(outcome=StepOutcome.CANCELLED, attempts=attempts)
        return StepAttempt(
            outcome=StepOutcome.RETRYABLE_FAILURE, result=result, attempts=attempts
        )

    async def _invoke(
        self,
        step: WorkflowStepDefinition,
        context: WorkflowStepContext,
        step_token: CancellationToken,
    ) -> WorkflowStepResult:
        """Run the step unit until it returns or ``step_token`` fires."""
        step_task = asyncio.ensure_future(_call_step(step, context, step_token))
        waiter = asyncio.ensure_future(step_token.wait())
        try:
            await asyncio.wait({step_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            step_task.cancel()
            await asyncio.gather(step_task, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if step_task.done():
            return step_task.result()

        step_task.cancel()
        await asyncio.gather(step_task, return_exceptions=True)
        raise StepTimeoutError(step_token.reason or "step cancelled")

    # ------------------------------------------------------------------
    # Registry helpers
    def _replace_token(
        self, workflow_id: str, parent: Optional[CancellationToken]
    ) -> CancellationToken:
        token = parent.linked() if parent is not None else CancellationToken()
        previous = self._tokens.set(workflow_id, token)
        if previous is not None:
            previous.dispose()
        return token

    def _update_workflow_state(
        self, workflow_id: str, state: WorkflowState, token: CancellationToken
    ) -> None:
        changes: Dict[str, Any] = {"state": state}
        if state.is_terminal:
            changes["completed_at"] = _utcnow()
            # a newer run of the same id may already own the slot
            if self._tokens.discard(workflow_id, token):
                token.dispose()
        self._statuses.update(workflow_id, **changes)


async def _call_step(
    step: WorkflowStepDefinition,
    context: WorkflowStepContext,
    step_token: CancellationToken,
) -> WorkflowStepResult:
    """Call the step unit and normalise its result.

    Plain functions run inline on the event loop, so ``step_timeout`` and
    cancellation only interrupt a unit at its awaits. A blocking synchronous
    unit always runs to completion; it can still watch ``step_token``.
    """
    result = step.execute(context, step_token)
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, WorkflowStepResult):
        return result
    if isinstance(result, dict):
        return WorkflowStepResult.model_validate(result)
    raise TypeError(
        f"Step {step.name} returned {type(result).__name__}, expected WorkflowStepResult"
    )
