"""
Tests for the closed-form expected discrepancies.
"""

from decimal import Decimal

import numpy as np
import pytest

from approxagree.errors import UNAVAILABLE, InvalidParameterError
from approxagree.simulation.algorithms import Algorithm
from approxagree.theory import (
    TheoreticalValue,
    calculate_expected_discrepancy,
    conditioned_two_process_factor,
    convergence_rates,
    count_zero_processes,
    expected_discrepancy_for_values,
    n_process_factor,
    optimal_conditioned_algorithm,
    optimal_conditioned_factor,
    two_process_factor,
)


# =============================================================================
# Two processes
# =============================================================================


class TestTwoProcess:
    def test_amp_single_round(self):
        result = calculate_expected_discrepancy(0.7, Algorithm.AMP, 1)
        assert isinstance(result, TheoreticalValue)
        assert float(result) == pytest.approx(0.3, abs=1e-9)
        assert not result.approximate

    def test_fv_single_round(self):
        result = calculate_expected_discrepancy(0.3, "FV", 1)
        assert float(result) == pytest.approx(0.58, abs=1e-9)

    def test_exact_decimal(self):
        assert calculate_expected_discrepancy(0.7, Algorithm.AMP, 2).value == Decimal("0.09")

    def test_multi_round_is_power(self):
        result = calculate_expected_discrepancy(0.6, Algorithm.FV, 4)
        assert float(result) == pytest.approx(0.52**4)

    def test_zero_rounds_is_initial_gap(self):
        assert float(calculate_expected_discrepancy(0.4, Algorithm.AMP, 0)) == 1.0

    def test_extreme_probabilities(self):
        assert float(calculate_expected_discrepancy(1.0, Algorithm.AMP, 1)) == 0.0
        assert float(calculate_expected_discrepancy(0.0, Algorithm.AMP, 3)) == 1.0
        assert float(calculate_expected_discrepancy(1.0, Algorithm.FV, 3)) == 1.0

    @pytest.mark.parametrize("algorithm", [Algorithm.MIN, Algorithm.RECURSIVE_AMP])
    def test_no_closed_form(self, algorithm):
        result = calculate_expected_discrepancy(0.5, algorithm, 1)
        assert result is UNAVAILABLE
        assert not result
        assert result != 0

    def test_factor_helpers(self):
        assert two_process_factor(0.25, Algorithm.AMP) == Decimal("0.75")
        assert two_process_factor(0.25, Algorithm.FV) == Decimal("0.625")


# =============================================================================
# Guaranteed progress
# =============================================================================


class TestConditioned:
    def test_formulas_at_one_half(self):
        amp = conditioned_two_process_factor(0.5, Algorithm.AMP)
        fv = conditioned_two_process_factor(0.5, Algorithm.FV)
        assert float(amp) == pytest.approx(1 / 3)
        assert float(fv) == pytest.approx(1 / 3)

    def test_multi_round(self):
        result = calculate_expected_discrepancy(0.5, Algorithm.AMP, 3, conditioned=True)
        assert float(result) == pytest.approx((1 / 3) ** 3)

    def test_optimal_factor_bounded_by_one_third(self):
        grid = np.linspace(0.001, 0.999, 999)
        factors = [float(optimal_conditioned_factor(float(p))) for p in grid]
        assert max(factors) <= 1 / 3 + 1e-12
        assert grid[int(np.argmax(factors))] == pytest.approx(0.5, abs=1e-3)

    def test_optimal_choice_matches_factor(self):
        for p in (0.1, 0.3, 0.7, 0.9):
            best = optimal_conditioned_algorithm(p)
            assert conditioned_two_process_factor(p, best) == optimal_conditioned_factor(p)

    def test_zero_probability_is_unavailable(self):
        assert calculate_expected_discrepancy(0.0, Algorithm.AMP, 1, conditioned=True) is UNAVAILABLE
        assert optimal_conditioned_factor(0.0) is UNAVAILABLE

    @pytest.mark.parametrize("algorithm", [Algorithm.MIN, Algorithm.RECURSIVE_AMP])
    def test_unsupported_algorithms_raise(self, algorithm):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(0.5, algorithm, 1, conditioned=True)

    def test_more_processes_unavailable(self):
        result = calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=3, m=1, conditioned=True)
        assert result is UNAVAILABLE


# =============================================================================
# n processes
# =============================================================================


class TestNProcess:
    @pytest.mark.parametrize("p", [0.1, 0.5, 0.8])
    def test_reduces_to_two_process(self, p):
        for algorithm in (Algorithm.AMP, Algorithm.FV):
            assert float(n_process_factor(p, 2, 1, algorithm)) == pytest.approx(
                float(two_process_factor(p, algorithm))
            )

    def test_three_process_amp(self):
        # q = 0.5, m = 1: A = (1 - q^2) = 0.75, B = (1 - q)^2 = 0.25.
        result = calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=3, m=1, meeting_point=0.5)
        assert float(result) == pytest.approx(1 - (0.5 * 0.75 + 0.5 * 0.25))
        assert not result.approximate

    def test_three_process_fv(self):
        # q = 0.5, m = 1: C = q^2 = 0.25.
        result = calculate_expected_discrepancy(0.5, Algorithm.FV, 1, n=3, m=1)
        assert float(result) == pytest.approx(1 - 0.25 * (0.75 + 0.25))

    def test_meeting_point_matters(self):
        low = calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=3, m=1, meeting_point=0.0)
        high = calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=3, m=1, meeting_point=1.0)
        assert float(low) != pytest.approx(float(high))

    def test_multi_round_is_flagged_approximate(self):
        result = calculate_expected_discrepancy(0.5, Algorithm.AMP, 3, n=4, m=2)
        assert result.approximate
        single = float(calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=4, m=2))
        assert float(result) == pytest.approx(single * 0.5**2)

    def test_agreeing_inputs(self):
        assert float(calculate_expected_discrepancy(0.5, Algorithm.FV, 2, n=3, m=0)) == 0.0
        assert float(calculate_expected_discrepancy(0.5, Algorithm.FV, 2, n=3, m=3)) == 0.0

    def test_m_required(self):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=3)

    def test_m_out_of_range(self):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=3, m=4)


class TestValidation:
    @pytest.mark.parametrize("p", [-0.01, 1.01])
    def test_probability(self, p):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(p, Algorithm.AMP, 1)

    def test_negative_rounds(self):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(0.5, Algorithm.AMP, -1)

    def test_fractional_rounds(self):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(0.5, Algorithm.AMP, 1.5)

    def test_single_process(self):
        with pytest.raises(InvalidParameterError):
            calculate_expected_discrepancy(0.5, Algorithm.AMP, 1, n=1, m=0)


# =============================================================================
# Helpers
# =============================================================================


class TestCountZeroProcesses:
    def test_binary(self):
        assert count_zero_processes([0, 1, 1, 0, 0]) == 3

    def test_non_binary(self):
        assert count_zero_processes([0, 0.5]) is None

    def test_vectors(self):
        assert count_zero_processes([(0.0,), (1.0,)]) is None

    def test_theory_for_values(self):
        result = expected_discrepancy_for_values([1.0, 0.0], 0.7, Algorithm.AMP, 1)
        assert float(result) == pytest.approx(0.3)
        assert expected_discrepancy_for_values([0.2, 0.9], 0.7, Algorithm.AMP, 1) is UNAVAILABLE


class TestConvergenceRates:
    def test_amp(self):
        analysis = convergence_rates(0.7, Algorithm.AMP, 3)
        assert analysis.factor == pytest.approx(0.3)
        assert [r.round_index for r in analysis.rounds] == [1, 2, 3]
        assert [r.discrepancy for r in analysis.rounds] == pytest.approx([0.3, 0.09, 0.027])
        for r in analysis.rounds:
            assert r.reduction_factor == pytest.approx(0.3)
            assert r.convergence_rate == pytest.approx(0.7)

    def test_instant_agreement(self):
        analysis = convergence_rates(1.0, Algorithm.AMP, 2)
        assert analysis.rounds[0].convergence_rate == 1.0
        assert analysis.rounds[1].convergence_rate == 0.0
        assert analysis.rounds[1].reduction_factor == 0.0

    def test_conditioned(self):
        analysis = convergence_rates(0.5, Algorithm.FV, 1, conditioned=True)
        assert analysis.rounds[0].discrepancy == pytest.approx(1 / 3)

    def test_unavailable(self):
        assert convergence_rates(0.5, Algorithm.MIN, 2) is UNAVAILABLE
