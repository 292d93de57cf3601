"""Tower of Hanoi MAKER benchmark.

Measures how many strictly ordered steps the engine can durably complete.
N discs need ``2**N - 1`` moves; each move becomes one workflow step that
validates and applies the move against peg lists held in workflow state.
Pegs are stored top first: ``PegA == [1, 2, 3]`` has disc 1 on top.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..cancellation import CancellationToken
from ..config import SteadfastConfig, load_config
from ..constants import MAX_HANOI_DISCS
from ..contracts import (
    WorkflowDefinition,
    WorkflowStepContext,
    WorkflowStepDefinition,
    WorkflowStepResult,
)
from ..engine import DurableWorkflowEngine
from ..persistence import CheckpointStore

logger = logging.getLogger(__name__)

FINAL_PEG = "C"

_EVEN_CYCLE: Tuple[Tuple[str, str], ...] = (("A", "B"), ("A", "C"), ("B", "C"))
_ODD_CYCLE: Tuple[Tuple[str, str], ...] = (("A", "C"), ("A", "B"), ("B", "C"))


@dataclass(frozen=True, slots=True)
class HanoiMove:
    """A single move of the optimal solution."""

    move_number: int
    disc: int
    from_peg: str
    to_peg: str


class MakerScoreReport(BaseModel):
    """Outcome of one Tower of Hanoi run."""

    benchmark_name: str
    num_discs: int
    total_steps_required: int
    steps_completed: int
    steps_failed: int
    success: bool
    total_duration: float
    average_step_duration: float
    checkpoints_created: int
    maker_score: float
    workflow_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MakerProgressiveReport(BaseModel):
    """Outcome of a progressive run over increasing disc counts."""

    max_discs_attempted: int
    max_discs_completed: int
    max_steps_completed: int
    overall_maker_score: float
    results: List[MakerScoreReport] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def summary(self) -> str:
        lines = [
            "MAKER Progressive Benchmark Report",
            "===================================",
            f"Max Discs Completed: {self.max_discs_completed}/{self.max_discs_attempted}",
            f"Max Steps Completed: {self.max_steps_completed:,}",
            f"Overall MAKER Score: {self.overall_maker_score:.1f}",
            "",
            "Disc-by-Disc Results:",
        ]
        for r in self.results:
            lines.append(
                f"  {r.num_discs} discs ({r.total_steps_required:,} steps): "
                f"{'PASS' if r.success else 'FAIL'} in {r.total_duration:.2f}s "
                f"(score: {r.maker_score:.1f})"
            )
        return "\n".join(lines)


def total_moves(disc_count: int) -> int:
    return (1 << disc_count) - 1


def _legal_move(stacks: Dict[str, List[int]], peg1: str, peg2: str) -> Tuple[str, str]:
    # stacks keep their top disc at the end of the list
    if not stacks[peg1]:
        return peg2, peg1
    if not stacks[peg2]:
        return peg1, peg2
    if stacks[peg1][-1] < stacks[peg2][-1]:
        return peg1, peg2
    return peg2, peg1


def iter_move_sequence(disc_count: int) -> Iterator[HanoiMove]:
    """Yield the optimal moves for ``disc_count`` discs, A to C.

    Iterative solution: the three peg pairs are visited cyclically, in an
    order that depends on the parity of ``disc_count``, and within each pair
    the smaller top disc moves.
    """
    if disc_count < 1:
        raise ValueError("disc_count must be at least 1")
    return _moves(disc_count)


def _moves(disc_count: int) -> Iterator[HanoiMove]:
    cycle = _EVEN_CYCLE if disc_count % 2 == 0 else _ODD_CYCLE
    stacks: Dict[str, List[int]] = {
        "A": list(range(disc_count, 0, -1)),
        "B": [],
        "C": [],
    }
    for move_number in range(1, total_moves(disc_count) + 1):
        peg1, peg2 = cycle[(move_number - 1) % 3]
        source, target = _legal_move(stacks, peg1, peg2)
        disc = stacks[source].pop()
        stacks[target].append(disc)
        yield HanoiMove(move_number=move_number, disc=disc, from_peg=source, to_peg=target)


def generate_move_sequence(disc_count: int) -> List[HanoiMove]:
    """Return the optimal move list for ``disc_count`` discs, A to C."""
    return list(iter_move_sequence(disc_count))


def _peg_from_state(state: Dict[str, object], key: str) -> List[int]:
    value = state.get(key)
    if not value:
        return []
    return [int(d) for d in value]  # type: ignore[union-attr]


def make_move_step(move: HanoiMove):
    """Build the step unit that validates and applies ``move``."""

    source_key = f"Peg{move.from_peg}"
    target_key = f"Peg{move.to_peg}"

    def _apply(
        context: WorkflowStepContext, token: CancellationToken
    ) -> WorkflowStepResult:
        source = _peg_from_state(context.state, source_key)
        target = _peg_from_state(context.state, target_key)

        if not source:
            return WorkflowStepResult.fail(
                f"Move {move.move_number}: Peg {move.from_peg} is empty"
            )
        disc = source[0]
        if disc != move.disc:
            return WorkflowStepResult.fail(
                f"Move {move.move_number}: Expected disc {move.disc} on top of "
                f"peg {move.from_peg}, found disc {disc}"
            )
        if target and target[0] < disc:
            return WorkflowStepResult.fail(
                f"Move {move.move_number}: Cannot place disc {disc} on top of "
                f"smaller disc {target[0]}"
            )

        source.pop(0)
        target.insert(0, disc)
        return WorkflowStepResult.ok(
            output={
                "move": move.move_number,
                "disc": disc,
                "from": move.from_peg,
                "to": move.to_peg,
            },
            state_updates={source_key: source, target_key: target},
        )

    return _apply


def build_workflow(
    disc_count: int,
    moves: Iterable[HanoiMove],
    *,
    max_retry_per_step: int = 1,
    step_timeout: float = 30.0,
) -> WorkflowDefinition:
    """Wrap ``moves`` in a pre-approved workflow, one step per move."""
    steps = [
        WorkflowStepDefinition(
            step_number=index,
            name=f"Move disc {move.disc}: {move.from_peg}->{move.to_peg}",
            description=(
                f"Move disc {move.disc} from peg {move.from_peg} to peg {move.to_peg}"
            ),
            requires_governance_check=False,
            execute=make_move_step(move),
        )
        for index, move in enumerate(moves)
    ]
    return WorkflowDefinition(
        name=f"TowerOfHanoi-{disc_count}",
        description=f"Tower of Hanoi with {disc_count} discs ({len(steps)} moves)",
        steps=steps,
        is_pre_approved=True,
        max_retry_per_step=max_retry_per_step,
        step_timeout=step_timeout,
        initial_context={
            "NumDiscs": disc_count,
            "PegA": list(range(1, disc_count + 1)),
            "PegB": [],
            "PegC": [],
        },
    )


def calculate_score(
    total_steps: int, completed_steps: int, success: bool, duration: float
) -> float:
    """Completion percentage scaled by ``log2(total_steps + 1) / 10``.

    ``duration`` is accepted for reporting symmetry and does not affect the
    score.
    """
    if total_steps == 0:
        return 0.0
    base_score = completed_steps / total_steps * 100
    if success:
        base_score = max(base_score, 100.0)
    complexity = math.log2(total_steps + 1)
    return round(base_score * complexity / 10.0, 1)


class MakerBenchmark:
    """Runs Tower of Hanoi workflows through a :class:`DurableWorkflowEngine`."""

    def __init__(
        self,
        engine: DurableWorkflowEngine,
        checkpoint_store: CheckpointStore,
        config: Optional[SteadfastConfig] = None,
    ) -> None:
        self._engine = engine
        self._store = checkpoint_store
        self._config = config or load_config()

    async def run_tower_of_hanoi(
        self, num_discs: int, cancel_token: Optional[CancellationToken] = None
    ) -> MakerScoreReport:
        if num_discs < 1 or num_discs > MAX_HANOI_DISCS:
            raise ValueError(f"num_discs must be between 1 and {MAX_HANOI_DISCS}")

        steps_required = total_moves(num_discs)
        logger.info(
            f"Starting MAKER benchmark: Tower of Hanoi with {num_discs} discs "
            f"({steps_required} steps)"
        )

        workflow = build_workflow(
            num_discs,
            iter_move_sequence(num_discs),
            max_retry_per_step=self._config.benchmark.max_retry_per_step,
            step_timeout=self._config.benchmark.step_timeout,
        )

        started = time.perf_counter()
        result = await self._engine.execute_workflow(workflow, cancel_token)
        duration = time.perf_counter() - started

        checkpoints = await self._store.get_workflow_checkpoints(workflow.workflow_id)
        report = MakerScoreReport(
            benchmark_name=f"TowerOfHanoi-{num_discs}",
            num_discs=num_discs,
            total_steps_required=steps_required,
            steps_completed=result.completed_steps,
            steps_failed=result.failed_steps,
            success=result.success,
            total_duration=duration,
            average_step_duration=(
                duration / result.completed_steps if result.completed_steps else 0.0
            ),
            checkpoints_created=len(checkpoints),
            maker_score=calculate_score(
                steps_required, result.completed_steps, result.success, duration
            ),
            workflow_id=workflow.workflow_id,
        )

        logger.info(
            f"MAKER benchmark complete: {report.benchmark_name}, "
            f"score={report.maker_score:.1f}, "
            f"steps={report.steps_completed}/{report.total_steps_required}, "
            f"duration={report.total_duration:.2f}s"
        )
        return report

    async def run_progressive(
        self,
        max_discs: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MakerProgressiveReport:
        """Run 1, 2, ... ``max_discs`` discs, stopping at the first failure."""
        if max_discs is None:
            max_discs = self._config.benchmark.max_discs
        results: List[MakerScoreReport] = []
        max_completed = 0

        for discs in range(1, max_discs + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            logger.info(f"Progressive MAKER: testing {discs} discs")
            report = await self.run_tower_of_hanoi(discs, cancel_token)
            results.append(report)
            if not report.success:
                logger.info(
                    f"Progressive MAKER: failed at {discs} discs, "
                    f"max successful: {max_completed}"
                )
                break
            max_completed = discs

        last_success = next((r for r in reversed(results) if r.success), None)
        return MakerProgressiveReport(
            max_discs_attempted=len(results),
            max_discs_completed=max_completed,
            max_steps_completed=total_moves(max_completed) if max_completed else 0,
            overall_maker_score=last_success.maker_score if last_success else 0.0,
            results=results,
        )
