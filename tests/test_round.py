"""
Tests for messages, discrepancy and the unconditioned round simulator.
"""

import numpy as np
import pytest

from approxagree.errors import InvalidParameterError
from approxagree.simulation import (
    Algorithm,
    AlgorithmParams,
    DistanceMetric,
    build_messages,
    delivered_count,
    draw_delivery_matrix,
    full_delivery_matrix,
    link_count,
    scalar_discrepancy,
    simulate_round,
    vector_discrepancy,
)


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    def test_link_count(self):
        assert link_count(2) == 2
        assert link_count(4) == 12

    def test_diagonal_never_delivered(self):
        rng = np.random.default_rng(0)
        matrix = draw_delivery_matrix(5, 1.0, rng)
        assert not matrix.diagonal().any()
        assert delivered_count(matrix) == 20

    def test_zero_probability(self):
        matrix = draw_delivery_matrix(4, 0.0, np.random.default_rng(0))
        assert delivered_count(matrix) == 0

    def test_sender_major_order(self):
        messages = build_messages([10.0, 20.0, 30.0], full_delivery_matrix(3))
        pairs = [(m.sender, m.receiver) for m in messages]
        assert pairs == [(0, 1), (0, 2), (1, 0), (1, 2), (2, 0), (2, 1)]
        assert messages[2].value == 20.0
        assert all(m.delivered for m in messages)


# =============================================================================
# Discrepancy
# =============================================================================


class TestDiscrepancy:
    def test_scalar(self):
        assert scalar_discrepancy([0.2, 0.9, 0.5]) == pytest.approx(0.7)

    def test_identical_values(self):
        assert scalar_discrepancy([0.5, 0.5]) == 0.0

    def test_metrics(self):
        a, b = (0.0, 0.0), (3.0, 4.0)
        assert DistanceMetric.EUCLIDEAN.distance(a, b) == pytest.approx(5.0)
        assert DistanceMetric.MANHATTAN.distance(a, b) == pytest.approx(7.0)
        assert DistanceMetric.CHEBYSHEV.distance(a, b) == pytest.approx(4.0)

    def test_vector_is_max_pairwise(self):
        points = [(0.0, 0.0), (1.0, 0.0), (0.0, 2.0)]
        assert vector_discrepancy(points) == pytest.approx(np.sqrt(5.0))


# =============================================================================
# Round Simulator
# =============================================================================


class TestSimulateRound:
    @pytest.mark.parametrize("algorithm", list(Algorithm))
    def test_no_delivery_changes_nothing(self, algorithm):
        values = [0.0, 0.4, 1.0]
        result = simulate_round(
            values, 0.0, algorithm, rng=np.random.default_rng(1), final_round=True
        )
        assert result.new_values == values
        assert result.delivered_count == 0
        assert result.discrepancy == pytest.approx(1.0)

    def test_amp_full_delivery_meets(self):
        result = simulate_round([0.0, 1.0], 1.0, Algorithm.AMP, AlgorithmParams(meeting_point=0.5))
        assert result.new_values == [0.5, 0.5]
        assert result.discrepancy == 0.0

    def test_fv_full_delivery_swaps(self):
        result = simulate_round([0.0, 1.0], 1.0, Algorithm.FV)
        assert result.new_values == [1.0, 0.0]
        assert result.discrepancy == 1.0

    def test_fv_uses_sender_order(self):
        result = simulate_round([0.0, 1.0, 2.0], 1.0, "FV")
        assert result.new_values == [1.0, 0.0, 0.0]

    def test_recursive_amp_full_delivery(self):
        result = simulate_round(
            [0.0, 1.0, 4.0], 1.0, Algorithm.RECURSIVE_AMP, AlgorithmParams(meeting_point=0.5)
        )
        assert result.new_values == [2.0, 2.0, 2.0]
        assert result.discrepancy == 0.0

    def test_min_decides_on_final_round(self):
        result = simulate_round([5.0, 3.0, 8.0], 1.0, Algorithm.MIN, final_round=True)
        assert result.new_values == [3.0, 3.0, 3.0]

    def test_min_keeps_values_before_final_round(self):
        result = simulate_round([5.0, 3.0, 8.0], 1.0, Algorithm.MIN)
        assert result.new_values == [5.0, 3.0, 8.0]
        assert all(3.0 in known for known in result.known_values)

    def test_message_count(self):
        result = simulate_round([0.0, 1.0, 0.5, 0.2], 0.5, Algorithm.AMP, rng=np.random.default_rng(3))
        assert len(result.messages) == 12

    def test_discrepancy_matches_values(self):
        rng = np.random.default_rng(7)
        for _ in range(50):
            values = list(rng.random(4))
            result = simulate_round(values, 0.6, Algorithm.RECURSIVE_AMP, rng=rng)
            expected = max(result.new_values) - min(result.new_values)
            assert result.discrepancy >= 0
            assert result.discrepancy == pytest.approx(expected)

    def test_input_is_not_mutated(self):
        values = [0.0, 1.0]
        simulate_round(values, 1.0, Algorithm.AMP)
        assert values == [0.0, 1.0]

    @pytest.mark.parametrize("p", [-0.1, 1.1, "high"])
    def test_invalid_probability(self, p):
        with pytest.raises(InvalidParameterError):
            simulate_round([0.0, 1.0], p, Algorithm.AMP)

    def test_single_process_rejected(self):
        with pytest.raises(InvalidParameterError):
            simulate_round([0.0], 0.5, Algorithm.AMP)

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_value_rejected(self, bad):
        with pytest.raises(InvalidParameterError):
            simulate_round([0.0, bad], 0.5, Algorithm.AMP, rng=np.random.default_rng(0))
