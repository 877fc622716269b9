#!/usr/bin/env python
"""
Credible sets from posterior probabilities.

A credible set at threshold ``thr`` holds the variants with the highest
posterior probabilities, added in descending order until the cumulative
probability first exceeds ``thr``. The prefix-length rule in
``_prefix_length`` is shared by the single-set builder and by the vectorised
builder applied to simulated replicates.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import numpy as np
import pandas as pd

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredibleSet:
    """
    Variants selected at a threshold.

    Attributes:
        variants: Identifiers of the selected variants, highest posterior first
        indices: Positions of the selected variants in the input vector
        claimed_coverage: Cumulative posterior probability of the set
        size: Number of variants in the set
        threshold: Threshold used to build the set
        contains_causal: Whether the supplied causal variant is in the set
    """
    variants: List[Any]
    indices: np.ndarray
    claimed_coverage: float
    size: int
    threshold: float
    contains_causal: Optional[bool] = None


def _check_threshold(threshold: float) -> None:
    if not 0 <= threshold <= 1:
        raise ValueError("Credible set threshold must lie in [0, 1], got %r" % threshold)


def descending_order(pp: np.ndarray) -> np.ndarray:
    """Indices sorting ``pp`` in descending order along the last axis, ties in original order."""
    return np.argsort(-pp, axis=-1, kind='stable')


def _prefix_length(cumulative: np.ndarray, threshold: float) -> np.ndarray:
    """
    Smallest prefix length whose cumulative probability exceeds ``threshold``.

    Works along the last axis; rows that never exceed the threshold get the
    full length. A threshold at or above the total mass always gives the full
    length, even where rounding in ``cumsum`` passes 1 before the last variant.
    """
    nsnps = cumulative.shape[-1]
    length = np.minimum(np.sum(cumulative <= threshold, axis=-1) + 1, nsnps)
    full = (threshold >= 1) | (threshold >= cumulative[..., -1])
    return np.where(full, nsnps, length)


def build_credible_set(pp: Sequence[float], threshold: float, causal: Optional[Any] = None,
                       snp_ids: Optional[Sequence[Any]] = None) -> CredibleSet:
    """
    Build the credible set for a posterior probability vector.

    Args:
        pp: Posterior probabilities, one per variant
        threshold: Coverage threshold in [0, 1]
        causal: Identifier of the true causal variant, if known
        snp_ids: Variant identifiers; taken from the index if ``pp`` is a
            pandas Series, otherwise positions are used

    Returns:
        CredibleSet: The minimal descending prefix exceeding ``threshold``
    """
    _check_threshold(threshold)
    if snp_ids is None and isinstance(pp, pd.Series):
        snp_ids = list(pp.index)
    pp = np.asarray(pp, dtype=float)
    if snp_ids is None:
        snp_ids = list(range(len(pp)))
    elif len(snp_ids) != len(pp):
        raise ValueError("Got %d identifiers for %d variants" % (len(snp_ids), len(pp)))

    order = descending_order(pp)
    cumulative = np.cumsum(pp[order])
    size = int(_prefix_length(cumulative, threshold))
    indices = order[:size]
    variants = [snp_ids[i] for i in indices]

    contains_causal = None
    if causal is not None:
        contains_causal = causal in variants

    return CredibleSet(
        variants=variants,
        indices=indices,
        claimed_coverage=float(cumulative[size - 1]),
        size=size,
        threshold=float(threshold),
        contains_causal=contains_causal,
    )


def sorted_cumulative(pp_matrix: np.ndarray, causal_index: int):
    """
    Threshold-independent summary of simulated posterior probabilities.

    Args:
        pp_matrix: Simulated posterior probabilities, one replicate per row
        causal_index: Position of the assumed causal variant

    Returns:
        tuple: (cumulative, causal_rank)
            - cumulative: Cumulative posterior mass in descending order, per row
            - causal_rank: Position of the causal variant in each row's ordering
    """
    order = descending_order(pp_matrix)
    cumulative = np.cumsum(np.take_along_axis(pp_matrix, order, axis=1), axis=1)
    causal_rank = np.argmax(order == causal_index, axis=1)
    return cumulative, causal_rank


def covered(cumulative: np.ndarray, causal_rank: np.ndarray, threshold: float) -> np.ndarray:
    """Whether each replicate's credible set at ``threshold`` contains the causal variant."""
    _check_threshold(threshold)
    return causal_rank < _prefix_length(cumulative, threshold)


def simulated_credible_sets(pp_matrix: np.ndarray, causal_index: int, threshold: float) -> pd.DataFrame:
    """
    Credible set diagnostics for each simulated replicate.

    Args:
        pp_matrix: Simulated posterior probabilities, one replicate per row
        causal_index: Position of the assumed causal variant
        threshold: Coverage threshold in [0, 1]

    Returns:
        pandas.DataFrame: Columns ``claimed_coverage``, ``contains_causal`` and ``size``
    """
    _check_threshold(threshold)
    pp_matrix = np.atleast_2d(np.asarray(pp_matrix, dtype=float))
    cumulative, causal_rank = sorted_cumulative(pp_matrix, causal_index)
    size = _prefix_length(cumulative, threshold)
    claimed = cumulative[np.arange(cumulative.shape[0]), size - 1]

    return pd.DataFrame({
        'claimed_coverage': claimed,
        'contains_causal': causal_rank < size,
        'size': size,
    })
