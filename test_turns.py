"""
Tests for seed reconciliation and turn parity.
"""
from wordcoop.coop.turns import TurnCoordinator


def reconcile_pair(seed_a, seed_b):
    a, b = TurnCoordinator(seed_a), TurnCoordinator(seed_b)
    a.reconcile(b.local_seed)
    b.reconcile(a.local_seed)
    return a, b


def test_larger_seed_moves_first():
    a, b = reconcile_pair(5, 9)
    assert b.is_my_turn
    assert not a.is_my_turn
    assert a.shared_seed == b.shared_seed == 9


def test_negative_seeds_compare_as_signed():
    a, b = reconcile_pair(-5, 3)
    assert a.shared_seed == b.shared_seed == 3
    assert b.is_my_turn and not a.is_my_turn


def test_converged_generators_stay_in_step():
    a, b = reconcile_pair(123456, 654321)
    assert [a.next_word_index(1000) for _ in range(20)] == [b.next_word_index(1000) for _ in range(20)]


def test_equal_seeds_keep_local_values():
    a, b = reconcile_pair(7, 7)
    assert a.shared_seed == b.shared_seed == 7
    assert a.move_count == b.move_count == 0


def test_random_seeds_converge_on_max():
    for _ in range(20):
        a, b = TurnCoordinator(), TurnCoordinator()
        a.reconcile(b.local_seed)
        b.reconcile(a.local_seed)
        assert a.shared_seed == b.shared_seed == max(a.local_seed, b.local_seed)
        if a.local_seed != b.local_seed:
            assert a.is_my_turn != b.is_my_turn


def test_no_turn_before_reconciliation():
    turns = TurnCoordinator(42)
    assert not turns.reconciled
    assert not turns.is_my_turn


def test_second_seed_ignored():
    turns = TurnCoordinator(5)
    assert turns.reconcile(9) is True
    assert turns.reconcile(100) is False
    assert turns.remote_seed == 9
    assert turns.shared_seed == 9
    assert turns.move_count == 1


def test_advance_alternates_turns():
    a, b = reconcile_pair(9, 5)
    assert a.is_my_turn
    a.advance()
    b.advance()
    assert b.is_my_turn and not a.is_my_turn
    assert a.get_status()["move_count"] == 1
