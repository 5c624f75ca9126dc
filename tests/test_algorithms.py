"""
Tests for the combining rules and their parameters.
"""

import pytest

from approxagree.errors import InvalidParameterError
from approxagree.simulation.algorithms import (
    Algorithm,
    AlgorithmParams,
    UPDATE_RULES,
    apply_update,
    decide_min,
    extend_known_values,
    initial_known_values,
    optimal_algorithm,
    recursive_step,
)


class TestAlgorithmEnum:
    def test_parse_by_value(self):
        assert Algorithm.parse("AMP") is Algorithm.AMP
        assert Algorithm.parse("fv") is Algorithm.FV

    def test_parse_recursive_amp_spellings(self):
        assert Algorithm.parse("RECURSIVE AMP") is Algorithm.RECURSIVE_AMP
        assert Algorithm.parse("recursive-amp") is Algorithm.RECURSIVE_AMP

    def test_parse_member_passthrough(self):
        assert Algorithm.parse(Algorithm.MIN) is Algorithm.MIN

    def test_parse_unknown(self):
        with pytest.raises(InvalidParameterError):
            Algorithm.parse("median")

    def test_every_algorithm_has_a_rule(self):
        assert set(UPDATE_RULES) == set(Algorithm)

    def test_closed_forms(self):
        assert Algorithm.AMP.has_closed_form
        assert Algorithm.FV.has_closed_form
        assert not Algorithm.MIN.has_closed_form
        assert not Algorithm.RECURSIVE_AMP.has_closed_form

    def test_optimal_algorithm(self):
        assert optimal_algorithm(0.7) is Algorithm.AMP
        assert optimal_algorithm(0.5) is Algorithm.FV
        assert optimal_algorithm(0.2) is Algorithm.FV


class TestAlgorithmParams:
    def test_defaults(self):
        params = AlgorithmParams()
        assert params.scalar_meeting_point == 0.5

    @pytest.mark.parametrize("a", [-0.1, 1.5, float("nan"), float("inf")])
    def test_rejects_bad_meeting_point(self, a):
        with pytest.raises(InvalidParameterError):
            AlgorithmParams(meeting_point=a)

    def test_rejects_negative_tolerance(self):
        with pytest.raises(InvalidParameterError):
            AlgorithmParams(tolerance=-1.0)

    def test_meeting_vector_broadcast(self):
        assert AlgorithmParams(meeting_point=0.25).meeting_vector(3) == (0.25, 0.25, 0.25)

    def test_meeting_vector_dimension_mismatch(self):
        params = AlgorithmParams(meeting_point=(0.1, 0.2))
        with pytest.raises(InvalidParameterError):
            params.meeting_vector(3)

    def test_vector_meeting_point_has_no_scalar_form(self):
        with pytest.raises(InvalidParameterError):
            AlgorithmParams(meeting_point=(0.1, 0.2)).scalar_meeting_point


class TestUpdateRules:
    params = AlgorithmParams(meeting_point=0.3)

    def test_nothing_received_keeps_value(self):
        for algorithm in Algorithm:
            assert apply_update(algorithm, 0.8, [], self.params) == 0.8

    def test_amp_jumps_to_meeting_point(self):
        assert apply_update(Algorithm.AMP, 1.0, [0.0], self.params) == 0.3

    def test_amp_ignores_equal_values(self):
        assert apply_update(Algorithm.AMP, 1.0, [1.0, 1.0 + 1e-12], self.params) == 1.0

    def test_fv_adopts_first_differing_value(self):
        assert apply_update(Algorithm.FV, 1.0, [1.0, 0.2, 0.7], self.params) == 0.2

    def test_min_keeps_value_mid_protocol(self):
        assert apply_update(Algorithm.MIN, 1.0, [0.0], self.params) == 1.0

    def test_recursive_amp_moves_within_range(self):
        # Observed range [0, 2], fraction 0.3.
        assert apply_update(Algorithm.RECURSIVE_AMP, 1.0, [0.0, 2.0], self.params) == pytest.approx(0.6)

    def test_recursive_step_below_epsilon(self):
        assert recursive_step([0.5, 0.5 + 1e-12], 0.5, 0.5, 1e-9) == 0.5


class TestKnownValues:
    def test_accumulate_and_decide(self):
        known = initial_known_values([5.0, 3.0, 8.0])
        known = extend_known_values(known, [[3.0], [], [5.0, 3.0]])
        assert decide_min(known) == [3.0, 3.0, 3.0]

    def test_own_value_is_known(self):
        assert decide_min(initial_known_values([2.0, 1.0])) == [2.0, 1.0]
