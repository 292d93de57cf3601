from itertools import islice

import pytest

from steadfast import WorkflowStepContext
from steadfast.benchmarks import (
    FINAL_PEG,
    HanoiMove,
    build_workflow,
    calculate_score,
    generate_move_sequence,
    iter_move_sequence,
    total_moves,
)
from steadfast.benchmarks.hanoi import make_move_step
from steadfast.cancellation import CancellationToken


def _replay(disc_count: int, moves) -> tuple[dict, int]:
    """Apply ``moves`` to fresh pegs, asserting every move is legal.

    Returns the final pegs and the number of moves applied.
    """
    pegs = {"A": list(range(disc_count, 0, -1)), "B": [], "C": []}
    applied = 0
    for move in moves:
        applied += 1
        assert move.move_number == applied
        assert pegs[move.from_peg], f"move {move.move_number} from empty peg"
        disc = pegs[move.from_peg].pop()
        assert disc == move.disc
        if pegs[move.to_peg]:
            assert pegs[move.to_peg][-1] > disc
        pegs[move.to_peg].append(disc)
    return pegs, applied


@pytest.mark.parametrize("disc_count", range(1, 15))
def test_sequence_is_optimal_and_legal(disc_count):
    moves = generate_move_sequence(disc_count)

    assert len(moves) == 2**disc_count - 1 == total_moves(disc_count)
    pegs, _ = _replay(disc_count, moves)
    assert pegs[FINAL_PEG] == list(range(disc_count, 0, -1))
    assert pegs["A"] == [] and pegs["B"] == []


def test_twenty_disc_sequence_streams_to_peg_c():
    pegs, applied = _replay(20, iter_move_sequence(20))

    assert applied == total_moves(20) == 1_048_575
    assert pegs[FINAL_PEG] == list(range(20, 0, -1))
    assert pegs["A"] == [] and pegs["B"] == []


def test_largest_sequence_is_generated_lazily():
    assert total_moves(25) == 33_554_431
    first = list(islice(iter_move_sequence(25), 3))
    assert [(m.disc, m.from_peg, m.to_peg) for m in first] == [
        (1, "A", "C"),
        (2, "A", "B"),
        (1, "C", "B"),
    ]
    # moves carry no per-instance dict
    assert not hasattr(first[0], "__dict__")


def test_three_disc_sequence():
    moves = generate_move_sequence(3)
    assert [(m.disc, m.from_peg, m.to_peg) for m in moves] == [
        (1, "A", "C"),
        (2, "A", "B"),
        (1, "C", "B"),
        (3, "A", "C"),
        (1, "B", "A"),
        (2, "B", "C"),
        (1, "A", "C"),
    ]


def test_even_disc_count_starts_towards_b():
    first = generate_move_sequence(4)[0]
    assert (first.disc, first.from_peg, first.to_peg) == (1, "A", "B")


def test_invalid_disc_count():
    with pytest.raises(ValueError):
        generate_move_sequence(0)
    with pytest.raises(ValueError):
        iter_move_sequence(0)


def test_build_workflow():
    moves = generate_move_sequence(3)
    workflow = build_workflow(3, moves, max_retry_per_step=2, step_timeout=5)

    assert workflow.name == "TowerOfHanoi-3"
    assert workflow.is_pre_approved
    assert workflow.max_retry_per_step == 2
    assert workflow.step_timeout == 5
    assert [s.step_number for s in workflow.steps] == list(range(7))
    assert workflow.steps[0].name == "Move disc 1: A->C"
    assert not any(s.requires_governance_check for s in workflow.steps)
    assert workflow.initial_context == {
        "NumDiscs": 3,
        "PegA": [1, 2, 3],
        "PegB": [],
        "PegC": [],
    }


def _context(state: dict) -> WorkflowStepContext:
    return WorkflowStepContext(workflow_id="wf", step_number=0, step_name="move", state=state)


def test_move_step_applies_legal_move():
    step = make_move_step(HanoiMove(move_number=1, disc=1, from_peg="A", to_peg="C"))
    result = step(_context({"PegA": [1, 2], "PegB": [], "PegC": []}), CancellationToken())

    assert result.success
    assert result.output == {"move": 1, "disc": 1, "from": "A", "to": "C"}
    assert result.state_updates == {"PegA": [2], "PegC": [1]}


@pytest.mark.parametrize(
    "move, state, message",
    [
        (
            HanoiMove(move_number=1, disc=1, from_peg="B", to_peg="C"),
            {"PegA": [1], "PegB": [], "PegC": []},
            "Move 1: Peg B is empty",
        ),
        (
            HanoiMove(move_number=2, disc=2, from_peg="A", to_peg="B"),
            {"PegA": [1, 2], "PegB": [], "PegC": []},
            "Move 2: Expected disc 2 on top of peg A, found disc 1",
        ),
        (
            HanoiMove(move_number=3, disc=2, from_peg="A", to_peg="C"),
            {"PegA": [2], "PegB": [], "PegC": [1]},
            "Move 3: Cannot place disc 2 on top of smaller disc 1",
        ),
    ],
)
def test_move_step_rejects_illegal_moves(move, state, message):
    result = make_move_step(move)(_context(state), CancellationToken())

    assert not result.success
    assert result.error_message == message
    assert result.state_updates == {}


def test_score_formula():
    assert calculate_score(7, 7, True, 0.1) == 30.0
    assert calculate_score(1023, 1023, True, 2.0) == 100.0
    assert calculate_score(3, 1, False, 0.1) == 6.7
    assert calculate_score(0, 0, False, 0.0) == 0.0
    # a successful run always scores full completion
    assert calculate_score(7, 5, True, 0.1) == 30.0
    # duration does not change the score
    assert calculate_score(7, 7, True, 100.0) == calculate_score(7, 7, True, 0.001)
