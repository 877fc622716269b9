#!/usr/bin/env python
"""
Corrected credible sets: the threshold whose corrected coverage matches a target.

The corrected coverage of a credible set is a non-decreasing step function of
the threshold used to build it. Bisection over ``[lower, upper]`` finds a
threshold whose corrected coverage lies in ``[desired, desired + acc]``; the
threshold is then turned back into an explicit list of variants using the
observed posterior probabilities.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from corrcoverage.coverage import CoverageEstimator, check_cancelled
from corrcoverage.credible_set import build_credible_set
from corrcoverage.exceptions import CannotShrinkFurther, MaxIterExceeded, NoRootInRange
from corrcoverage.posterior import DEFAULT_PRIOR_SD, case_control_variance, z_from_bhat
from corrcoverage.simulation import DEFAULT_NREP, DEFAULT_PP0MIN, RandomState

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_ACC = 0.005
DEFAULT_MAX_ITER = 20


@dataclass(frozen=True)
class ThresholdSearch:
    """Outcome of one bisection: the chosen threshold and its corrected coverage."""
    threshold: float
    coverage: float
    iterations: int
    converged: bool


@dataclass(frozen=True)
class CorrectedCredibleSet:
    """
    Smallest credible set whose corrected coverage reaches the desired coverage.

    Attributes:
        variants: Identifiers of the selected variants, highest posterior first
        indices: Positions of the selected variants
        required_threshold: Threshold on cumulative posterior probability that builds the set
        corrected_coverage: Corrected coverage at ``required_threshold``
        claimed_coverage: Cumulative posterior probability of the set
        size: Number of variants in the set
        iterations: Bisection iterations used
        converged: False if ``max_iter`` ran out before reaching the accuracy
    """
    variants: List[Any]
    indices: np.ndarray
    required_threshold: float
    corrected_coverage: float
    claimed_coverage: float
    size: int
    iterations: int
    converged: bool


def _within(value: float, acc: float) -> bool:
    return 0 <= value <= acc


def solve_threshold(coverage: Callable[[float], float], desired_coverage: float, lower: float = 0.0,
                    upper: float = 1.0, acc: float = DEFAULT_ACC, max_iter: int = DEFAULT_MAX_ITER,
                    should_stop: Optional[Callable[[], bool]] = None) -> ThresholdSearch:
    """
    Bisection for the threshold whose coverage lies in ``[desired, desired + acc]``.

    Args:
        coverage: Non-decreasing function from threshold to corrected coverage
        desired_coverage: Target coverage
        lower: Lower end of the threshold window
        upper: Upper end of the threshold window
        acc: Accepted excess of coverage over the target
        max_iter: Maximum number of bisection iterations
        should_stop: Checked once per iteration; returning True cancels

    Returns:
        ThresholdSearch: Converged threshold, or the bracket end with coverage
        at least the target if ``max_iter`` ran out

    Raises:
        NoRootInRange: If the coverage at both ends lies on the same side of the target
        CorrectionCancelled: If ``should_stop`` returns True
    """
    if not lower < upper:
        raise ValueError("lower must be below upper, got [%r, %r]" % (lower, upper))

    def f(thr):
        return coverage(thr) - desired_coverage

    fa = f(lower)
    fb = f(upper)
    logger.debug("Bracket [%g, %g]: coverage - desired = %.4f, %.4f", lower, upper, fa, fb)

    if fa * fb > 0:
        raise NoRootInRange(lower, upper, fa, fb)
    if _within(fa, acc):
        return ThresholdSearch(threshold=lower, coverage=desired_coverage + fa, iterations=0, converged=True)
    if _within(fb, acc):
        return ThresholdSearch(threshold=upper, coverage=desired_coverage + fb, iterations=0, converged=True)

    iterations = 0
    while iterations < max_iter:
        check_cancelled(should_stop, "bisection iteration %d" % (iterations + 1))
        iterations += 1

        c = lower + (upper - lower) / 2
        fc = f(c)
        logger.info("thr: %.6f, cov: %.4f", c, desired_coverage + fc)

        if _within(fc, acc):
            return ThresholdSearch(threshold=c, coverage=desired_coverage + fc, iterations=iterations,
                                   converged=True)
        if fa * fc < 0:
            upper, fb = c, fc
        else:
            lower, fa = c, fc

    # The bracket end with f >= 0 still reaches the desired coverage
    threshold, fbest = (upper, fb) if fb >= 0 else (lower, fa)
    message = ("Threshold search stopped after %d iterations: coverage %.4f at threshold %.6f "
               "is not within %g of the desired %.4f" % (iterations, desired_coverage + fbest, threshold,
                                                          acc, desired_coverage))
    logger.warning(message)
    warnings.warn(message, MaxIterExceeded)

    return ThresholdSearch(threshold=threshold, coverage=desired_coverage + fbest, iterations=iterations,
                           converged=False)


def corrected_credible_set_from_estimator(estimator: CoverageEstimator, desired_coverage: float,
                                          lower: float = 0.0, upper: float = 1.0, acc: float = DEFAULT_ACC,
                                          max_iter: int = DEFAULT_MAX_ITER,
                                          should_stop: Optional[Callable[[], bool]] = None) -> CorrectedCredibleSet:
    """
    Corrected credible set using the simulations held by ``estimator``.

    Raises:
        CannotShrinkFurther: If the single-variant set at ``desired_coverage``
            already exceeds the desired corrected coverage
        NoRootInRange: If ``[lower, upper]`` does not bracket the desired coverage
    """
    if not 0 < desired_coverage < 1:
        raise ValueError("desired_coverage must lie in (0, 1), got %r" % desired_coverage)

    pp = estimator.pp
    naive = build_credible_set(pp, desired_coverage)
    naive_coverage = estimator.coverage(desired_coverage)
    logger.info("Naive %g credible set has %d variants, claimed coverage %.4f, corrected coverage %.4f",
                desired_coverage, naive.size, naive.claimed_coverage, naive_coverage)

    if naive_coverage - desired_coverage > 0 and naive.size == 1:
        raise CannotShrinkFurther(desired_coverage, naive_coverage)

    search = solve_threshold(estimator.coverage, desired_coverage, lower=lower, upper=upper, acc=acc,
                             max_iter=max_iter, should_stop=should_stop)

    credset = build_credible_set(pp, search.threshold, snp_ids=estimator.snp_ids)
    logger.info("Corrected credible set: %d variants at threshold %.6f, corrected coverage %.4f",
                credset.size, search.threshold, search.coverage)

    return CorrectedCredibleSet(
        variants=credset.variants,
        indices=credset.indices,
        required_threshold=search.threshold,
        corrected_coverage=search.coverage,
        claimed_coverage=credset.claimed_coverage,
        size=credset.size,
        iterations=search.iterations,
        converged=search.converged,
    )


def corrected_credible_set(z, allele_freq, n0: int, n1: int, sigma, desired_coverage: float,
                           W: float = DEFAULT_PRIOR_SD, lower: float = 0.0, upper: float = 1.0,
                           acc: float = DEFAULT_ACC, max_iter: int = DEFAULT_MAX_ITER,
                           pp0min: float = DEFAULT_PP0MIN, nrep: int = DEFAULT_NREP,
                           random_state: RandomState = None, n_jobs: int = 1,
                           should_stop: Optional[Callable[[], bool]] = None,
                           snp_ids: Optional[Sequence[Any]] = None) -> CorrectedCredibleSet:
    """
    Corrected credible set from Z-scores and minor allele frequencies.

    Finds the smallest set of variants whose corrected coverage is within
    ``acc`` above ``desired_coverage``, searching thresholds in ``[lower, upper]``.

    Args:
        z: Z-scores (a pandas Series index gives the variant ids)
        allele_freq: Minor allele frequencies
        n0: Number of controls
        n1: Number of cases
        sigma: Correlation matrix of the variants
        desired_coverage: Target corrected coverage
        W: Prior standard deviation of the effect size
        lower: Lower threshold
        upper: Upper threshold
        acc: Accuracy of the corrected coverage to the desired coverage
        max_iter: Maximum bisection iterations
        pp0min: Only average over variants with pp above this value
        nrep: Number of simulated replicates per hypothesis
        random_state: Seed or Generator for the simulations
        n_jobs: Number of worker threads
        should_stop: Cooperative cancellation checkpoint
        snp_ids: Variant identifiers

    Returns:
        CorrectedCredibleSet: Variants, required threshold, corrected coverage and size
    """
    variance = case_control_variance(allele_freq, n0, n1)
    estimator = CoverageEstimator(z, variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
                                  random_state=random_state, n_jobs=n_jobs, snp_ids=snp_ids)
    return corrected_credible_set_from_estimator(estimator, desired_coverage, lower=lower, upper=upper,
                                                 acc=acc, max_iter=max_iter, should_stop=should_stop)


def corrected_credible_set_bhat(bhat, variance, sigma, desired_coverage: float, W: float = DEFAULT_PRIOR_SD,
                                lower: float = 0.0, upper: float = 1.0, acc: float = DEFAULT_ACC,
                                max_iter: int = DEFAULT_MAX_ITER, pp0min: float = DEFAULT_PP0MIN,
                                nrep: int = DEFAULT_NREP, random_state: RandomState = None, n_jobs: int = 1,
                                should_stop: Optional[Callable[[], bool]] = None,
                                snp_ids: Optional[Sequence[Any]] = None) -> CorrectedCredibleSet:
    """Corrected credible set from effect size estimates and their variances."""
    if snp_ids is None and hasattr(bhat, 'index'):
        snp_ids = list(bhat.index)
    z = z_from_bhat(bhat, variance)
    estimator = CoverageEstimator(z, variance, sigma, W=W, nrep=nrep, pp0min=pp0min,
                                  random_state=random_state, n_jobs=n_jobs, snp_ids=snp_ids)
    return corrected_credible_set_from_estimator(estimator, desired_coverage, lower=lower, upper=upper,
                                                 acc=acc, max_iter=max_iter, should_stop=should_stop)
