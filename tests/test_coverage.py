#!/usr/bin/env python
"""
Unit tests for corrected coverage estimates.

Run with pytest: pytest tests/test_coverage.py
"""

import numpy as np
import pytest

from corrcoverage.coverage import (
    CoverageEstimator,
    corrected_coverage,
    corrected_coverage_bhat,
    corrected_coverage_interval,
    corrected_coverage_nvar,
)
from corrcoverage.exceptions import CorrectionCancelled
from corrcoverage.posterior import case_control_variance

N0 = 1000
N1 = 1000


def exchangeable_ld(nsnps, rho):
    """Correlation matrix with the same correlation between every pair of variants."""
    sigma = np.full((nsnps, nsnps), rho)
    np.fill_diagonal(sigma, 1.0)
    return sigma


@pytest.fixture
def dominant_region():
    """Five independent variants, one with overwhelming evidence."""
    z = np.array([10.0, 0.0, 0.0, 0.0, 0.0])
    maf = np.full(5, 0.3)
    return z, maf, np.eye(5)


@pytest.fixture
def ambiguous_region():
    """Ten variants in strong LD with similar Z-scores."""
    z = np.linspace(3.2, 2.8, 10)
    maf = np.full(10, 0.3)
    return z, maf, exchangeable_ld(10, 0.9)


class TestCorrectedCoverage:
    """Tests for the single-threshold estimate."""

    def test_dominant_variant_coverage_near_one(self, dominant_region):
        """Test a single overwhelming variant gives corrected coverage near 1."""
        z, maf, sigma = dominant_region
        result = corrected_coverage(z, maf, N0, N1, sigma, threshold=0.9, nrep=500, random_state=1)
        assert result > 0.99

    def test_reproducible_with_seed(self, ambiguous_region):
        """Test two runs with the same seed give identical coverage."""
        z, maf, sigma = ambiguous_region
        first = corrected_coverage(z, maf, N0, N1, sigma, threshold=0.9, nrep=300, random_state=2024)
        second = corrected_coverage(z, maf, N0, N1, sigma, threshold=0.9, nrep=300, random_state=2024)
        assert first == second
        assert 0 <= first <= 1

    def test_threads_do_not_change_estimate(self, ambiguous_region):
        """Test parallel hypotheses give the same estimate as serial ones."""
        z, maf, sigma = ambiguous_region
        serial = corrected_coverage(z, maf, N0, N1, sigma, threshold=0.8, nrep=200, random_state=5)
        threaded = corrected_coverage(z, maf, N0, N1, sigma, threshold=0.8, nrep=200, random_state=5, n_jobs=3)
        assert serial == threaded

    def test_bhat_family_matches_z_family(self, ambiguous_region):
        """Test effect sizes with variances give the same estimate as Z-scores with MAFs."""
        z, maf, sigma = ambiguous_region
        variance = case_control_variance(maf, N0, N1)
        bhat = z * np.sqrt(variance)

        from_z = corrected_coverage(z, maf, N0, N1, sigma, threshold=0.9, nrep=300, random_state=8)
        from_bhat = corrected_coverage_bhat(bhat, variance, sigma, threshold=0.9, nrep=300, random_state=8)
        assert from_bhat == pytest.approx(from_z, abs=0.01)

    def test_full_set_always_covers(self, dominant_region):
        """Test the set of every variant always contains the causal variant."""
        z, maf, sigma = dominant_region
        assert corrected_coverage_nvar(z, maf, N0, N1, sigma, nvar=5, nrep=100, random_state=0) == 1.0


class TestCoverageEstimator:
    """Tests for repeated queries against one set of simulations."""

    @pytest.fixture
    def estimator(self, ambiguous_region):
        z, maf, sigma = ambiguous_region
        variance = case_control_variance(maf, N0, N1)
        return CoverageEstimator(z, variance, sigma, nrep=300, random_state=17,
                                 snp_ids=['rs%d' % i for i in range(10)])

    def test_observed_posteriors(self, estimator):
        """Test the estimator keeps the observed posterior probabilities."""
        assert np.isclose(estimator.pp.sum(), 1)
        assert estimator.nsnps == 10
        assert len(estimator.simulations) == 10

    def test_coverage_monotone_in_threshold(self, estimator):
        """Test corrected coverage does not decrease as the threshold grows."""
        coverages = [estimator.coverage(thr) for thr in np.linspace(0, 1, 51)]
        assert np.all(np.diff(coverages) >= 0)
        assert coverages[-1] == 1.0

    def test_repeated_queries_are_stable(self, estimator):
        """Test querying a threshold twice reuses the same simulations."""
        assert estimator.coverage(0.75) == estimator.coverage(0.75)
        assert estimator(0.75) == estimator.coverage(0.75)

    def test_coverage_at_size(self, estimator):
        """Test fixed-size sets agree with threshold sets at the extremes."""
        assert estimator.coverage_at_size(1) == estimator.coverage(0.0)
        assert estimator.coverage_at_size(10) == 1.0
        with pytest.raises(ValueError):
            estimator.coverage_at_size(0)

    def test_coverage_table(self, estimator):
        """Test per-hypothesis coverage and Wilson intervals."""
        table = estimator.coverage_table(0.9)

        assert list(table.columns) == ['snp', 'pp', 'propcov', 'ci_lower', 'ci_upper']
        assert list(table['snp']) == ['rs%d' % i for i in range(10)]
        assert np.all(table['ci_lower'] <= table['propcov'] + 1e-12)
        assert np.all(table['propcov'] <= table['ci_upper'] + 1e-12)

        weighted = np.sum(table['propcov'] * table['pp']) / np.sum(table['pp'])
        assert np.isclose(weighted, estimator.coverage(0.9))


class TestCoverageInterval:
    """Tests for repeated corrections."""

    def test_interval_brackets_mean(self, ambiguous_region):
        """Test the interval is ordered and contains the mean estimate."""
        z, maf, sigma = ambiguous_region
        variance = case_control_variance(maf, N0, N1)
        interval = corrected_coverage_interval(z, variance, sigma, threshold=0.9, nrep=100,
                                               n_repeats=5, random_state=3)

        assert interval.n_repeats == 5
        assert interval.level == 0.95
        assert 0 <= interval.lower <= interval.mean <= interval.upper <= 1

    def test_interval_reproducible(self, ambiguous_region):
        """Test repeated corrections are reproducible with a seed."""
        z, maf, sigma = ambiguous_region
        variance = case_control_variance(maf, N0, N1)
        first = corrected_coverage_interval(z, variance, sigma, 0.9, nrep=50, n_repeats=3, random_state=4)
        second = corrected_coverage_interval(z, variance, sigma, 0.9, nrep=50, n_repeats=3, random_state=4)
        assert first == second

    def test_cancellation_between_repeats(self, ambiguous_region):
        """Test the checkpoint stops the repeats once it returns True."""
        z, maf, sigma = ambiguous_region
        variance = case_control_variance(maf, N0, N1)
        calls = []

        def should_stop():
            calls.append(1)
            return len(calls) > 2

        with pytest.raises(CorrectionCancelled):
            corrected_coverage_interval(z, variance, sigma, 0.9, nrep=50, n_repeats=10,
                                        random_state=4, should_stop=should_stop)
        assert len(calls) == 3

    def test_invalid_arguments(self, ambiguous_region):
        """Test non-positive repeats and levels outside (0, 1) are rejected."""
        z, maf, sigma = ambiguous_region
        with pytest.raises(ValueError):
            corrected_coverage_interval(z, 0.01, sigma, 0.9, n_repeats=0)
        with pytest.raises(ValueError):
            corrected_coverage_interval(z, 0.01, sigma, 0.9, level=1.0)


if __name__ == "__main__":
    pytest.main()
