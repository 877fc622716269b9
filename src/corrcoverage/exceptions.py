"""
Error conditions raised by the corrected coverage engine.

Fatal conditions derive from ``CorrectedCoverageError`` and abort the current
call. ``MaxIterExceeded`` is a warning: the threshold search still returns a
usable result, flagged as not converged.
"""

from typing import Optional, Tuple


class CorrectedCoverageError(Exception):
    """Base class for all fatal corrected coverage errors."""


class NumericalInstability(CorrectedCoverageError):
    """Posterior probabilities cannot be normalised (no finite log Bayes factor)."""


class InvalidCorrelationMatrix(CorrectedCoverageError, ValueError):
    """
    The correlation matrix cannot be used for multivariate normal sampling.

    Args:
        message: Description of the failed check
        shape: Shape of the offending matrix
        nsnps: Number of variants in the summary statistics
    """

    def __init__(self, message: str, shape: Optional[Tuple[int, ...]] = None,
                 nsnps: Optional[int] = None):
        super().__init__(message)
        self.shape = shape
        self.nsnps = nsnps


class NoRootInRange(CorrectedCoverageError):
    """
    The desired coverage is not bracketed by the coverage at ``lower`` and ``upper``.

    Carries the bounds and the evaluated differences ``coverage - desired``
    so the caller can widen the window and retry.
    """

    def __init__(self, lower: float, upper: float, f_lower: float, f_upper: float):
        super().__init__(
            "No root in range [%g, %g]: coverage - desired is %.4f at lower and %.4f at upper; "
            "increase window" % (lower, upper, f_lower, f_upper)
        )
        self.lower = lower
        self.upper = upper
        self.f_lower = f_lower
        self.f_upper = f_upper


class CannotShrinkFurther(CorrectedCoverageError):
    """The desired coverage is already reached by a single-variant credible set."""

    def __init__(self, desired_coverage: float, corrected_coverage: float):
        super().__init__(
            "Cannot make credible set smaller: the single-variant set at threshold %g "
            "already has corrected coverage %.4f" % (desired_coverage, corrected_coverage)
        )
        self.desired_coverage = desired_coverage
        self.corrected_coverage = corrected_coverage


class CorrectionCancelled(CorrectedCoverageError):
    """A cooperative cancellation checkpoint was triggered."""


class MaxIterExceeded(UserWarning):
    """The threshold search stopped at ``max_iter`` before reaching the requested accuracy."""
