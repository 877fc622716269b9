#!/usr/bin/env python
"""
Conditional resampling of posterior probabilities under each causal hypothesis.

For every variant j that is plausibly causal (pp_j > pp0min), the expected
marginal Z-scores are ``mu_hat * Sigma[j, :]``: the joint effect vector with
``mu_hat`` at j, spread through the correlation matrix. Adding draws from
MVN(0, Sigma) gives simulated Z-score vectors, which are converted to
posterior probabilities with the same Bayes factor model as the observed
data.

One noise ensemble is drawn per correction and shared by all hypotheses.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np

from corrcoverage.credible_set import sorted_cumulative
from corrcoverage.exceptions import InvalidCorrelationMatrix
from corrcoverage.posterior import DEFAULT_PRIOR_SD, posterior_probabilities

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_NREP = 1000
DEFAULT_PP0MIN = 0.001

RandomState = Optional[Union[int, np.random.Generator]]


@dataclass(frozen=True)
class SimulationEnsemble:
    """Shared noise draws from MVN(0, Sigma), one replicate per row (read-only)."""
    noise: np.ndarray

    @property
    def nrep(self) -> int:
        return self.noise.shape[0]


@dataclass(frozen=True)
class HypothesisSimulation:
    """
    Simulated credible set ingredients for one causal hypothesis.

    Attributes:
        causal_index: Position of the variant assumed causal
        weight: Posterior probability of the hypothesis in the observed data
        cumulative: Descending cumulative posterior mass of each replicate
        causal_rank: Rank of the causal variant in each replicate
    """
    causal_index: int
    weight: float
    cumulative: np.ndarray
    causal_rank: np.ndarray


def as_generator(random_state: RandomState) -> np.random.Generator:
    """Return a Generator for a seed, an existing Generator, or fresh entropy."""
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)


def spawn_generators(random_state: RandomState, n: int) -> List[np.random.Generator]:
    """Independent Generators derived from one seed, Generator, or fresh entropy."""
    if isinstance(random_state, np.random.Generator):
        return random_state.spawn(n)
    return [np.random.default_rng(s) for s in np.random.SeedSequence(random_state).spawn(n)]


def validate_correlation_matrix(sigma, nsnps: int, tol: float = 1e-8) -> np.ndarray:
    """
    Check that ``sigma`` can serve as the covariance of the simulated Z-scores.

    Args:
        sigma: Candidate correlation matrix
        nsnps: Number of variants in the summary statistics
        tol: Tolerance for asymmetry and negative eigenvalues

    Returns:
        numpy.ndarray: ``sigma`` as a float array

    Raises:
        InvalidCorrelationMatrix: If ``sigma`` is not square, does not match
            ``nsnps``, has non-finite entries, is not symmetric or is not
            positive semi-definite
    """
    sigma = np.asarray(sigma, dtype=float)
    shape = sigma.shape

    if sigma.ndim != 2 or shape[0] != shape[1]:
        raise InvalidCorrelationMatrix("Correlation matrix must be square, got shape %s" % (shape,),
                                       shape=shape, nsnps=nsnps)
    if shape[0] != nsnps:
        raise InvalidCorrelationMatrix(
            "Correlation matrix is %d x %d but there are %d variants" % (shape[0], shape[1], nsnps),
            shape=shape, nsnps=nsnps)
    if not np.all(np.isfinite(sigma)):
        raise InvalidCorrelationMatrix("Correlation matrix has non-finite entries", shape=shape, nsnps=nsnps)
    if not np.allclose(sigma, sigma.T, atol=tol, rtol=0):
        raise InvalidCorrelationMatrix("Correlation matrix is not symmetric", shape=shape, nsnps=nsnps)

    eigenvalues = np.linalg.eigvalsh(sigma)
    if eigenvalues[0] < -tol * max(1.0, eigenvalues[-1]):
        raise InvalidCorrelationMatrix(
            "Correlation matrix is not positive semi-definite (smallest eigenvalue %.3g)" % eigenvalues[0],
            shape=shape, nsnps=nsnps)

    logger.debug("Correlation matrix %d x %d passed validation", shape[0], shape[1])
    return sigma


def estimate_true_effect(z: np.ndarray, pp: np.ndarray) -> float:
    """Posterior-weighted estimate of the absolute true Z-score, mu_hat = sum |z| * pp."""
    return float(np.sum(np.abs(z) * pp))


def eligible_hypotheses(pp: np.ndarray, pp0min: float = DEFAULT_PP0MIN) -> np.ndarray:
    """Positions of variants whose posterior probability exceeds ``pp0min``."""
    return np.flatnonzero(pp > pp0min)


def draw_noise(sigma: np.ndarray, nrep: int, rng: np.random.Generator) -> SimulationEnsemble:
    """
    Draw the shared noise ensemble.

    Args:
        sigma: Validated correlation matrix
        nrep: Number of replicates
        rng: Source of randomness

    Returns:
        SimulationEnsemble: ``nrep`` draws from MVN(0, sigma)
    """
    if nrep < 1:
        raise ValueError("Number of replicates must be positive, got %r" % nrep)

    noise = rng.multivariate_normal(np.zeros(sigma.shape[0]), sigma, size=nrep,
                                    check_valid='ignore', method='eigh')
    noise.setflags(write=False)
    logger.debug("Drew %d noise replicates for %d variants", nrep, sigma.shape[0])
    return SimulationEnsemble(noise=noise)


def expected_marginal_z(mu_hat: float, causal_index: int, sigma: np.ndarray) -> np.ndarray:
    """Expected marginal Z-scores when only ``causal_index`` has joint effect ``mu_hat``."""
    return mu_hat * sigma[causal_index, :]


def simulate_posteriors(causal_index: int, mu_hat: float, sigma: np.ndarray, ensemble: SimulationEnsemble,
                        variance, W: float = DEFAULT_PRIOR_SD) -> np.ndarray:
    """
    Simulated posterior probabilities for one causal hypothesis.

    Returns:
        numpy.ndarray: ``nrep x nsnps`` matrix, one posterior vector per replicate
    """
    zstar = expected_marginal_z(mu_hat, causal_index, sigma) + ensemble.noise
    return posterior_probabilities(zstar, variance, W)


def simulate_hypothesis(causal_index: int, weight: float, mu_hat: float, sigma: np.ndarray,
                        ensemble: SimulationEnsemble, variance, W: float = DEFAULT_PRIOR_SD) -> HypothesisSimulation:
    """Simulate one hypothesis and reduce it to its threshold-independent summary."""
    pps = simulate_posteriors(causal_index, mu_hat, sigma, ensemble, variance, W)
    cumulative, causal_rank = sorted_cumulative(pps, causal_index)
    return HypothesisSimulation(
        causal_index=int(causal_index),
        weight=float(weight),
        cumulative=cumulative,
        causal_rank=causal_rank,
    )


def resample_hypotheses(z: np.ndarray, pp: np.ndarray, variance, sigma: np.ndarray, W: float = DEFAULT_PRIOR_SD,
                        nrep: int = DEFAULT_NREP, pp0min: float = DEFAULT_PP0MIN,
                        random_state: RandomState = None, n_jobs: int = 1) -> List[HypothesisSimulation]:
    """
    Simulate every eligible causal hypothesis against one shared noise ensemble.

    Args:
        z: Observed Z-scores
        pp: Observed posterior probabilities
        variance: Effect size variance, scalar or one per variant
        sigma: Correlation matrix of the variants
        W: Prior standard deviation of the effect size
        nrep: Number of replicates per hypothesis
        pp0min: Only hypotheses with pp above this value are simulated; if
            none qualifies, every variant is simulated
        random_state: Seed or Generator for the noise ensemble
        n_jobs: Number of worker threads across hypotheses

    Returns:
        list: One HypothesisSimulation per eligible variant, in position order
    """
    sigma = validate_correlation_matrix(sigma, len(pp))
    rng = as_generator(random_state)

    mu_hat = estimate_true_effect(z, pp)
    usesnps = eligible_hypotheses(pp, pp0min)
    if usesnps.size == 0:
        logger.warning("No variant has posterior probability above pp0min=%g (max %.3g); "
                       "simulating all %d variants", pp0min, np.max(pp), len(pp))
        usesnps = np.arange(len(pp))
    logger.info("Simulating %d causal hypotheses (of %d variants) with %d replicates, mu_hat=%.3f",
                usesnps.size, len(pp), nrep, mu_hat)

    ensemble = draw_noise(sigma, nrep, rng)

    def run(j):
        return simulate_hypothesis(j, pp[j], mu_hat, sigma, ensemble, variance, W)

    if n_jobs > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            simulations = list(executor.map(run, usesnps.tolist()))
    else:
        simulations = [run(j) for j in usesnps.tolist()]

    return simulations
