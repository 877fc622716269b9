#!/usr/bin/env python
"""
Posterior probabilities of causality from GWAS summary statistics.

Under the single causal variant assumption, the posterior probability that
variant i is causal is proportional to its asymptotic Bayes factor (ABF):

    r_i = W^2 / (W^2 + V_i)
    log ABF_i = 0.5 * log(1 - r_i) + 0.5 * r_i * z_i^2

where V_i is the variance of the estimated effect size and W the prior
standard deviation of the effect size. Normalisation is done in log space by
subtracting the maximum log ABF, so large Z-scores do not overflow.
"""

import logging
from typing import Tuple, Union

import numpy as np

from corrcoverage.exceptions import NumericalInstability

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_PRIOR_SD = 0.2
DEFAULT_PRIOR_CAUSAL = 1e-4

ArrayLike = Union[float, np.ndarray]


def effect_size_variance(allele_freq: ArrayLike, total_n: float, case_fraction: float) -> np.ndarray:
    """
    Approximate variance of the estimated log odds ratio in a case-control study.

    V = 1 / (2 * N * f * (1 - f) * s * (1 - s))

    Args:
        allele_freq: Minor allele frequencies, each strictly between 0 and 1
        total_n: Total sample size (cases plus controls)
        case_fraction: Proportion of cases, strictly between 0 and 1

    Returns:
        numpy.ndarray: Effect size variance for each variant
    """
    f = np.asarray(allele_freq, dtype=float)
    if np.any((f <= 0) | (f >= 1)) or not np.all(np.isfinite(f)):
        raise ValueError("Allele frequencies must lie strictly between 0 and 1")
    if total_n <= 0:
        raise ValueError("Total sample size must be positive, got %r" % total_n)
    if not 0 < case_fraction < 1:
        raise ValueError("Case fraction must lie strictly between 0 and 1, got %r" % case_fraction)

    return 1.0 / (2 * total_n * f * (1 - f) * case_fraction * (1 - case_fraction))


def case_control_variance(allele_freq: ArrayLike, n0: int, n1: int) -> np.ndarray:
    """Effect size variance from allele frequencies and control/case counts."""
    total_n = n0 + n1
    if n0 <= 0 or n1 <= 0:
        raise ValueError("Numbers of controls and cases must be positive, got N0=%r, N1=%r" % (n0, n1))
    return effect_size_variance(allele_freq, total_n, n1 / total_n)


def z_from_bhat(bhat: ArrayLike, variance: ArrayLike) -> np.ndarray:
    """Z-scores from effect size estimates and their variances."""
    return np.asarray(bhat, dtype=float) / np.sqrt(np.asarray(variance, dtype=float))


def shrinkage_factor(variance: ArrayLike, W: float = DEFAULT_PRIOR_SD) -> np.ndarray:
    """Shrinkage factor r = W^2 / (W^2 + V)."""
    return W ** 2 / (W ** 2 + np.asarray(variance, dtype=float))


def log_abf(z: ArrayLike, variance: ArrayLike, W: float = DEFAULT_PRIOR_SD) -> np.ndarray:
    """
    Asymptotic log Bayes factors.

    ``z`` may be a vector or a matrix with one Z-score vector per row;
    ``variance`` broadcasts along the last axis. Variants with a non-positive
    variance get a log Bayes factor of ``-inf``.
    """
    z = np.asarray(z, dtype=float)
    variance = np.asarray(variance, dtype=float)
    r = shrinkage_factor(variance, W)
    with np.errstate(divide='ignore', invalid='ignore'):
        labf = 0.5 * np.log(1 - r) + 0.5 * r * z ** 2
    return np.where(variance > 0, labf, -np.inf)


def _normalise_log_weights(log_weights: np.ndarray) -> np.ndarray:
    """
    Normalise log weights along the last axis so each row sums to 1.

    Entries that are not finite get zero weight. A row without any finite
    weight cannot be normalised.
    """
    log_weights = np.where(np.isnan(log_weights), -np.inf, log_weights)
    row_max = np.max(log_weights, axis=-1, keepdims=True)
    if not np.all(np.isfinite(row_max)):
        raise NumericalInstability(
            "Posterior normalisation collapsed: no finite log Bayes factor "
            "(check for non-positive variances or infinite Z-scores)"
        )

    weights = np.exp(log_weights - row_max)
    denom = np.sum(weights, axis=-1, keepdims=True)
    return weights / denom


def posterior_probabilities(z: ArrayLike, variance: ArrayLike, W: float = DEFAULT_PRIOR_SD) -> np.ndarray:
    """
    Posterior probability that each variant is causal.

    Args:
        z: Z-scores, a vector or a matrix with one vector per row
        variance: Effect size variance, scalar or one per variant
        W: Prior standard deviation of the effect size

    Returns:
        numpy.ndarray: Posterior probabilities with the shape of ``z``; each row sums to 1

    Raises:
        NumericalInstability: If a row has no finite log Bayes factor
    """
    return _normalise_log_weights(log_abf(z, variance, W))


def posterior_probabilities_with_null(z: ArrayLike, variance: ArrayLike, W: float = DEFAULT_PRIOR_SD,
                                      prior_causal: float = DEFAULT_PRIOR_CAUSAL) -> Tuple[np.ndarray, float]:
    """
    Posterior probabilities including the hypothesis of no causal variant in the region.

    Each variant has prior probability ``prior_causal`` of being causal; the
    null hypothesis has prior ``1 - nsnps * prior_causal`` and Bayes factor 1.

    Args:
        z: Vector of Z-scores
        variance: Effect size variance, scalar or one per variant
        W: Prior standard deviation of the effect size
        prior_causal: Prior probability that a given variant is causal

    Returns:
        tuple: (pp, pp_null)
            - pp: Posterior probability for each variant
            - pp_null: Posterior probability of no causal variant
    """
    labf = np.atleast_1d(log_abf(z, variance, W))
    if not np.any(np.isfinite(labf)):
        raise NumericalInstability("No finite log Bayes factor (check for non-positive variances)")
    nsnps = labf.shape[-1]
    prior_null = 1 - nsnps * prior_causal
    if not 0 < prior_causal or prior_null <= 0:
        raise ValueError(
            "prior_causal must be positive and below 1/nsnps (got %g with %d variants)" % (prior_causal, nsnps)
        )

    log_weights = np.append(labf + np.log(prior_causal), np.log(prior_null))
    pp_all = _normalise_log_weights(log_weights)
    logger.debug("Posterior probability of no causal variant: %.4g", pp_all[-1])

    return pp_all[:-1], float(pp_all[-1])
