#!/usr/bin/env python
"""
Corrected coverage estimates for credible sets.

The claimed coverage of a credible set (its cumulative posterior probability)
is a biased estimate of the probability that the set contains the causal
variant. The corrected coverage averages, over each plausible causal variant
j weighted by its posterior probability, the proportion of simulated credible
sets that contain j:

    corrected_cov(thr) = sum_j propcov_j(thr) * pp_j / sum_j pp_j

Simulations are drawn once per ``CoverageEstimator`` and reused for every
threshold it is queried at.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import numpy as np
import pandas as pd
from statsmodels.stats.proportion import proportion_confint

from corrcoverage.credible_set import covered
from corrcoverage.exceptions import CorrectionCancelled
from corrcoverage.posterior import (
    DEFAULT_PRIOR_SD,
    case_control_variance,
    posterior_probabilities,
    z_from_bhat,
)
from corrcoverage.simulation import (
    DEFAULT_NREP,
    DEFAULT_PP0MIN,
    RandomState,
    as_generator,
    resample_hypotheses,
)

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_N_REPEATS = 100
DEFAULT_LEVEL = 0.95


def variant_ids(values, snp_ids: Optional[Sequence[Any]] = None) -> list:
    """Variant identifiers: explicit ids, else a pandas index, else positions."""
    if snp_ids is not None:
        snp_ids = list(snp_ids)
        if len(snp_ids) != len(values):
            raise ValueError("Got %d identifiers for %d variants" % (len(snp_ids), len(values)))
        return snp_ids
    if isinstance(values, pd.Series):
        return list(values.index)
    return list(range(len(values)))


def check_cancelled(should_stop: Optional[Callable[[], bool]], where: str) -> None:
    """Raise CorrectionCancelled if the caller's checkpoint asks to stop."""
    if should_stop is not None and should_stop():
        logger.info("Correction cancelled during %s", where)
        raise CorrectionCancelled("Correction cancelled during %s" % where)


class CoverageEstimator:
    """
    Corrected coverage of credible sets for one set of summary statistics.

    Construction computes the observed posterior probabilities and simulates
    every eligible causal hypothesis once. The estimator can then be queried
    at any number of thresholds without resimulating.

    Args:
        z: Observed Z-scores
        variance: Effect size variance, scalar or one per variant
        sigma: Correlation matrix of the variants
        W: Prior standard deviation of the effect size
        nrep: Number of simulated replicates per hypothesis
        pp0min: Only hypotheses with pp above this value are averaged over
        random_state: Seed or Generator for the simulations
        n_jobs: Number of worker threads across hypotheses
        snp_ids: Variant identifiers
    """

    def __init__(self, z, variance, sigma, W: float = DEFAULT_PRIOR_SD, nrep: int = DEFAULT_NREP,
                 pp0min: float = DEFAULT_PP0MIN, random_state: RandomState = None, n_jobs: int = 1,
                 snp_ids: Optional[Sequence[Any]] = None):
        self.snp_ids = variant_ids(z, snp_ids)
        self.z = np.asarray(z, dtype=float)
        self.variance = np.broadcast_to(np.asarray(variance, dtype=float), self.z.shape)
        self.W = W
        self.pp = posterior_probabilities(self.z, self.variance, W)

        self.simulations = resample_hypotheses(
            self.z, self.pp, self.variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
            random_state=random_state, n_jobs=n_jobs,
        )
        self.weights = np.array([sim.weight for sim in self.simulations])

    @property
    def nsnps(self) -> int:
        return len(self.pp)

    def _weighted(self, propcov: np.ndarray) -> float:
        return float(np.sum(propcov * self.weights) / np.sum(self.weights))

    def proportions_covered(self, threshold: float) -> np.ndarray:
        """Proportion of simulated credible sets containing the causal variant, per hypothesis."""
        return np.array([
            np.mean(covered(sim.cumulative, sim.causal_rank, threshold)) for sim in self.simulations
        ])

    def coverage(self, threshold: float) -> float:
        """Corrected coverage of the credible set built at ``threshold``."""
        corrected = self._weighted(self.proportions_covered(threshold))
        logger.debug("Corrected coverage at threshold %.6f: %.4f", threshold, corrected)
        return corrected

    __call__ = coverage

    def coverage_at_size(self, nvar: int) -> float:
        """Corrected coverage of credible sets made of the top ``nvar`` variants."""
        if not 1 <= nvar <= self.nsnps:
            raise ValueError("nvar must be between 1 and %d, got %r" % (self.nsnps, nvar))
        propcov = np.array([np.mean(sim.causal_rank < nvar) for sim in self.simulations])
        return self._weighted(propcov)

    def coverage_table(self, threshold: float, alpha: float = 0.05) -> pd.DataFrame:
        """
        Per-hypothesis coverage with Monte Carlo confidence intervals.

        Args:
            threshold: Credible set threshold
            alpha: Significance level of the Wilson intervals

        Returns:
            pandas.DataFrame: One row per simulated hypothesis with columns
            ``snp``, ``pp``, ``propcov``, ``ci_lower`` and ``ci_upper``
        """
        nrep = np.array([sim.causal_rank.shape[0] for sim in self.simulations])
        propcov = self.proportions_covered(threshold)
        n_covered = np.rint(propcov * nrep).astype(int)
        ci_lower, ci_upper = proportion_confint(n_covered, nrep, alpha=alpha, method='wilson')

        return pd.DataFrame({
            'snp': [self.snp_ids[sim.causal_index] for sim in self.simulations],
            'pp': self.weights,
            'propcov': propcov,
            'ci_lower': ci_lower,
            'ci_upper': ci_upper,
        })


@dataclass(frozen=True)
class CoverageInterval:
    """Spread of the corrected coverage over repeated corrections."""
    mean: float
    lower: float
    upper: float
    level: float
    n_repeats: int


def corrected_coverage(z, allele_freq, n0: int, n1: int, sigma, threshold: float, W: float = DEFAULT_PRIOR_SD,
                       nrep: int = DEFAULT_NREP, pp0min: float = DEFAULT_PP0MIN,
                       random_state: RandomState = None, n_jobs: int = 1) -> float:
    """
    Corrected coverage of a credible set from Z-scores and minor allele frequencies.

    Args:
        z: Z-scores
        allele_freq: Minor allele frequencies
        n0: Number of controls
        n1: Number of cases
        sigma: Correlation matrix of the variants
        threshold: Threshold used to build the credible set
        W: Prior standard deviation of the effect size
        nrep: Number of simulated replicates per hypothesis
        pp0min: Only average over variants with pp above this value
        random_state: Seed or Generator for the simulations
        n_jobs: Number of worker threads

    Returns:
        float: Corrected coverage estimate in [0, 1]
    """
    variance = case_control_variance(allele_freq, n0, n1)
    estimator = CoverageEstimator(z, variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
                                  random_state=random_state, n_jobs=n_jobs)
    return estimator.coverage(threshold)


def corrected_coverage_bhat(bhat, variance, sigma, threshold: float, W: float = DEFAULT_PRIOR_SD,
                            nrep: int = DEFAULT_NREP, pp0min: float = DEFAULT_PP0MIN,
                            random_state: RandomState = None, n_jobs: int = 1) -> float:
    """Corrected coverage of a credible set from effect size estimates and their variances."""
    z = z_from_bhat(bhat, variance)
    estimator = CoverageEstimator(z, variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
                                  random_state=random_state, n_jobs=n_jobs)
    return estimator.coverage(threshold)


def corrected_coverage_nvar(z, allele_freq, n0: int, n1: int, sigma, nvar: int, W: float = DEFAULT_PRIOR_SD,
                            nrep: int = DEFAULT_NREP, pp0min: float = DEFAULT_PP0MIN,
                            random_state: RandomState = None, n_jobs: int = 1) -> float:
    """Corrected coverage of the credible set formed by the ``nvar`` most probable variants."""
    variance = case_control_variance(allele_freq, n0, n1)
    estimator = CoverageEstimator(z, variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
                                  random_state=random_state, n_jobs=n_jobs)
    return estimator.coverage_at_size(nvar)


def corrected_coverage_interval(z, variance, sigma, threshold: float, W: float = DEFAULT_PRIOR_SD,
                                nrep: int = DEFAULT_NREP, pp0min: float = DEFAULT_PP0MIN,
                                n_repeats: int = DEFAULT_N_REPEATS, level: float = DEFAULT_LEVEL,
                                random_state: RandomState = None, n_jobs: int = 1,
                                should_stop: Optional[Callable[[], bool]] = None) -> CoverageInterval:
    """
    Interval for the corrected coverage over repeated corrections.

    The whole correction is repeated ``n_repeats`` times with fresh noise
    ensembles. Each repeat is reduced to a single coverage value before the
    next one starts, so only one set of simulations is held at a time.

    Args:
        z: Z-scores
        variance: Effect size variance, scalar or one per variant
        sigma: Correlation matrix of the variants
        threshold: Threshold used to build the credible set
        level: Central probability of the returned interval
        n_repeats: Number of repeated corrections
        should_stop: Checked before each repeat; returning True cancels

    Returns:
        CoverageInterval: Mean and empirical quantiles of the repeated estimates
    """
    if n_repeats < 1:
        raise ValueError("n_repeats must be positive, got %r" % n_repeats)
    if not 0 < level < 1:
        raise ValueError("level must lie in (0, 1), got %r" % level)

    rng = as_generator(random_state)
    estimates = np.empty(n_repeats)
    for i in range(n_repeats):
        check_cancelled(should_stop, "repeat %d of %d" % (i + 1, n_repeats))
        estimator = CoverageEstimator(z, variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
                                      random_state=rng, n_jobs=n_jobs)
        estimates[i] = estimator.coverage(threshold)

    tail = (1 - level) / 2
    lower, upper = np.quantile(estimates, [tail, 1 - tail])
    logger.info("Corrected coverage over %d repeats: mean %.4f, %g%% interval [%.4f, %.4f]",
                n_repeats, estimates.mean(), 100 * level, lower, upper)

    return CoverageInterval(mean=float(estimates.mean()), lower=float(lower), upper=float(upper),
                            level=level, n_repeats=n_repeats)
