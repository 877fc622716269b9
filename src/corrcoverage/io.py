#!/usr/bin/env python
"""
Reading summary statistics and LD matrices, writing corrected credible sets.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from corrcoverage.solver import CorrectedCredibleSet

# Configure logging
logger = logging.getLogger(__name__)

Z_COLUMNS = ('z', 'maf')
BHAT_COLUMNS = ('bhat', 'V')


def _normalise_sep(sep: str) -> str:
    if sep == '\\t':
        return '\t'
    return sep


def load_summary_statistics(location: Union[str, Path], sep: str = '\t') -> pd.DataFrame:
    """
    Load a table of per-variant summary statistics.

    The table needs a ``snp`` column and either ``z`` and ``maf`` columns or
    ``bhat`` and ``V`` columns. Variant order is kept and must match the LD
    matrix.

    Args:
        location: Path to the summary statistics table
        sep: Column separator

    Returns:
        pandas.DataFrame: Summary statistics indexed by ``snp``
    """
    logger.info("Reading summary statistics from %s", location)
    stats_df = pd.read_csv(location, sep=_normalise_sep(sep))

    if 'snp' not in stats_df.columns:
        raise ValueError("Summary statistics table %s has no 'snp' column" % location)
    has_z = all(col in stats_df.columns for col in Z_COLUMNS)
    has_bhat = all(col in stats_df.columns for col in BHAT_COLUMNS)
    if not (has_z or has_bhat):
        raise ValueError("Summary statistics table %s needs columns %s or %s"
                         % (location, ','.join(Z_COLUMNS), ','.join(BHAT_COLUMNS)))

    stats_df = stats_df.set_index('snp')
    numeric = [col for col in Z_COLUMNS + BHAT_COLUMNS if col in stats_df.columns]
    stats_df[numeric] = stats_df[numeric].apply(pd.to_numeric, errors='raise')

    logger.info("Summary statistics loaded for %d variants", len(stats_df))
    logger.debug("Summary statistics head:\n%s", stats_df.head())
    return stats_df


def load_correlation_matrix(location: Union[str, Path], sep: str = '\t') -> np.ndarray:
    """Load a square LD matrix stored without header or index."""
    logger.info("Reading LD matrix from %s", location)
    ld_df = pd.read_csv(location, sep=_normalise_sep(sep), header=None)
    sigma = ld_df.to_numpy(dtype=float)
    logger.info("LD matrix loaded with shape %s", sigma.shape)
    return sigma


def credible_set_frame(result: CorrectedCredibleSet, pp: np.ndarray) -> pd.DataFrame:
    """Variants of a corrected credible set with their posterior and cumulative probabilities."""
    selected_pp = np.asarray(pp)[result.indices]
    return pd.DataFrame({
        'snp': result.variants,
        'pp': selected_pp,
        'cumulative_pp': np.cumsum(selected_pp),
    })


def save_credible_set(output_dir: Union[str, Path], result: CorrectedCredibleSet, pp: np.ndarray,
                      desired_coverage: float) -> Path:
    """
    Save a corrected credible set and its summary.

    Args:
        output_dir: Directory to save output files
        result: Corrected credible set
        pp: Observed posterior probabilities
        desired_coverage: Target coverage, used in the file names

    Returns:
        Path: The credible set file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(exist_ok=True, parents=True)
    logger.info("Saving results to %s", output_dir)

    credset_file = output_dir / f'corrected_credset.cov-{desired_coverage}.tsv'
    credible_set_frame(result, pp).to_csv(credset_file, sep='\t', header=True, index=False)
    logger.info("Corrected credible set saved to %s", credset_file)

    summary_file = output_dir / f'corrected_credset.cov-{desired_coverage}.summary.tsv'
    pd.DataFrame([{
        'desired_coverage': desired_coverage,
        'required_threshold': result.required_threshold,
        'corrected_coverage': result.corrected_coverage,
        'claimed_coverage': result.claimed_coverage,
        'size': result.size,
        'iterations': result.iterations,
        'converged': result.converged,
    }]).to_csv(summary_file, sep='\t', header=True, index=False)
    logger.info("Summary saved to %s", summary_file)

    return credset_file
