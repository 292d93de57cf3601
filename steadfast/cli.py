"""Command line interface for steadfast benchmarks and checkpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer

from steadfast import DurableWorkflowEngine, get_checkpoint_store
from steadfast.benchmarks import MakerBenchmark
from steadfast.config import load_config

app = typer.Typer(help="CLI for steadfast durable workflows")

# Command groups
benchmark_app = typer.Typer(help="Commands for running the MAKER benchmark")
checkpoints_app = typer.Typer(help="Commands for inspecting checkpoints")

app.add_typer(benchmark_app, name="benchmark")
app.add_typer(checkpoints_app, name="checkpoints")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Steadfast CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _benchmark() -> MakerBenchmark:
    config = load_config()
    store = get_checkpoint_store()
    engine = DurableWorkflowEngine(store, config=config)
    return MakerBenchmark(engine, store, config=config)


@benchmark_app.command("run")
def benchmark_run(discs: int) -> None:
    """
    Run the Tower of Hanoi benchmark for a single disc count.

    N discs require 2^N - 1 strictly ordered steps, each checkpointed.

    Example:
        steadfast benchmark run 10
        # Output: TowerOfHanoi-10: PASS 1023/1023 steps in 0.84s (score: 100.0)
    """
    if discs < 1 or discs > 25:
        typer.secho("Disc count must be between 1 and 25", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    report = asyncio.run(_benchmark().run_tower_of_hanoi(discs))
    typer.echo(
        f"{report.benchmark_name}: {'PASS' if report.success else 'FAIL'} "
        f"{report.steps_completed}/{report.total_steps_required} steps "
        f"in {report.total_duration:.2f}s (score: {report.maker_score:.1f})"
    )
    typer.echo(f"Workflow ID: {report.workflow_id}")
    if not report.success:
        raise typer.Exit(code=1)


@benchmark_app.command("progressive")
def benchmark_progressive(
    max_discs: Optional[int] = typer.Option(
        None, help="Highest disc count to attempt (default: from configuration)"
    ),
) -> None:
    """
    Run increasing disc counts until the first failure.

    Example:
        steadfast benchmark progressive --max-discs 8
    """
    report = asyncio.run(_benchmark().run_progressive(max_discs))
    typer.echo(report.summary())


@checkpoints_app.command("list")
def checkpoints_list(workflow_id: str) -> None:
    """
    List the checkpoints of a workflow in write order.

    Example:
        steadfast checkpoints list 3f2a...
        # Output: 0    Move disc 1: A->C    completed    0.0004s
    """
    store = get_checkpoint_store()
    checkpoints = asyncio.run(store.get_workflow_checkpoints(workflow_id))
    if not checkpoints:
        typer.echo("No checkpoints found")
        raise typer.Exit(code=1)
    for cp in checkpoints:
        line = f"{cp.step_number}\t{cp.step_name}\t{cp.status.value}\t{cp.execution_duration:.4f}s"
        if cp.error_message:
            line += f"\t{cp.error_message}"
        typer.echo(line)


@checkpoints_app.command("purge")
def checkpoints_purge(workflow_id: str) -> None:
    """Delete all checkpoints of a workflow."""
    store = get_checkpoint_store()
    removed = asyncio.run(store.purge_workflow_checkpoints(workflow_id))
    typer.echo(f"Purged {removed} checkpoints for workflow {workflow_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
