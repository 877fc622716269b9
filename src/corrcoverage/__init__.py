"""
Corrected coverage estimates for Bayesian fine-mapping credible sets.

The claimed coverage of a single causal variant credible set (the sum of the
posterior probabilities of its variants) is a biased estimate of the
probability that it contains the causal variant. This package estimates the
coverage by simulating credible sets under each plausible causal variant, and
finds the smallest credible set that reaches a desired corrected coverage.
"""

__version__ = "0.1.0"

# Import main functionality to expose at package level
from corrcoverage.coverage import (
    CoverageEstimator,
    CoverageInterval,
    corrected_coverage,
    corrected_coverage_bhat,
    corrected_coverage_interval,
    corrected_coverage_nvar,
)
from corrcoverage.credible_set import CredibleSet, build_credible_set, simulated_credible_sets
from corrcoverage.exceptions import (
    CannotShrinkFurther,
    CorrectedCoverageError,
    CorrectionCancelled,
    InvalidCorrelationMatrix,
    MaxIterExceeded,
    NoRootInRange,
    NumericalInstability,
)
from corrcoverage.posterior import (
    effect_size_variance,
    posterior_probabilities,
    posterior_probabilities_with_null,
)
from corrcoverage.solver import (
    CorrectedCredibleSet,
    corrected_credible_set,
    corrected_credible_set_bhat,
    solve_threshold,
)

__all__ = [
    "CoverageEstimator",
    "CoverageInterval",
    "corrected_coverage",
    "corrected_coverage_bhat",
    "corrected_coverage_interval",
    "corrected_coverage_nvar",
    "CredibleSet",
    "build_credible_set",
    "simulated_credible_sets",
    "CannotShrinkFurther",
    "CorrectedCoverageError",
    "CorrectionCancelled",
    "InvalidCorrelationMatrix",
    "MaxIterExceeded",
    "NoRootInRange",
    "NumericalInstability",
    "effect_size_variance",
    "posterior_probabilities",
    "posterior_probabilities_with_null",
    "CorrectedCredibleSet",
    "corrected_credible_set",
    "corrected_credible_set_bhat",
    "solve_threshold",
]
