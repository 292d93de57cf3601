"""Benchmarks that exercise the workflow engine end to end."""

from __future__ import annotations

from .hanoi import (
    FINAL_PEG,
    HanoiMove,
    MakerBenchmark,
    MakerProgressiveReport,
    MakerScoreReport,
    build_workflow,
    calculate_score,
    generate_move_sequence,
    iter_move_sequence,
    total_moves,
)

__all__ = [
    "FINAL_PEG",
    "HanoiMove",
    "MakerBenchmark",
    "MakerProgressiveReport",
    "MakerScoreReport",
    "build_workflow",
    "calculate_score",
    "generate_move_sequence",
    "iter_move_sequence",
    "total_moves",
]
