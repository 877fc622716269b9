#!/usr/bin/env python
"""
Command-line interface for corrected coverage of credible sets.

This module provides a command-line interface to the corrected coverage
engine. It handles argument parsing, logging configuration, and loading of the
summary statistics and LD matrix.

Usage:
    corrcoverage coverage --stats stats.tsv --ld ld.tsv --n0 5000 --n1 5000 --threshold 0.9
    corrcoverage credset --stats stats.tsv --ld ld.tsv --n0 5000 --n1 5000 --desired-coverage 0.95 --output-dir ./results
"""

import logging
import sys
from typing import Optional

import click
import pandas as pd

from corrcoverage.coverage import CoverageEstimator, corrected_coverage_interval
from corrcoverage.credible_set import build_credible_set
from corrcoverage.exceptions import CorrectedCoverageError
from corrcoverage.io import load_correlation_matrix, load_summary_statistics, save_credible_set
from corrcoverage.posterior import DEFAULT_PRIOR_SD, case_control_variance, z_from_bhat
from corrcoverage.simulation import DEFAULT_NREP, DEFAULT_PP0MIN, spawn_generators
from corrcoverage.solver import DEFAULT_ACC, DEFAULT_MAX_ITER, corrected_credible_set_from_estimator

# Configure root logger
logger = logging.getLogger()


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    # Clear any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)

    if verbose:
        logger.setLevel(logging.DEBUG)
        console_handler.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)
        console_handler.setLevel(logging.INFO)

    logger.addHandler(console_handler)


def load_inputs(stats: str, ld: str, sep: str, n0: Optional[int], n1: Optional[int]):
    """Read the input tables and convert them to Z-scores, variances and the LD matrix."""
    stats_df = load_summary_statistics(stats, sep)
    sigma = load_correlation_matrix(ld, sep)

    if 'z' in stats_df.columns and 'maf' in stats_df.columns:
        if n0 is None or n1 is None:
            raise click.UsageError("--n0 and --n1 are required when the statistics table has z and maf columns")
        z = stats_df['z']
        variance = case_control_variance(stats_df['maf'].to_numpy(), n0, n1)
    else:
        variance = stats_df['V'].to_numpy()
        z = pd.Series(z_from_bhat(stats_df['bhat'].to_numpy(), variance), index=stats_df.index)

    return z, variance, sigma


def common_options(func):
    """Options shared by the coverage and credset commands."""
    options = [
        click.option('--stats', type=click.Path(exists=True), required=True,
                     help="Summary statistics table with columns snp and z,maf or bhat,V."),
        click.option('--ld', type=click.Path(exists=True), required=True,
                     help="LD (correlation) matrix without header, in the order of the statistics table."),
        click.option('--sep', default='\t', help="Separator for the input tables."),
        click.option('--n0', type=int, default=None, help="Number of controls."),
        click.option('--n1', type=int, default=None, help="Number of cases."),
        click.option('--prior-sd', type=float, default=DEFAULT_PRIOR_SD, show_default=True,
                     help="Prior standard deviation of the effect size."),
        click.option('--nrep', type=int, default=DEFAULT_NREP, show_default=True,
                     help="Number of simulated replicates per causal hypothesis."),
        click.option('--pp0min', type=float, default=DEFAULT_PP0MIN, show_default=True,
                     help="Only average over variants with posterior probability above this value."),
        click.option('--seed', type=int, default=None, help="Random seed for the simulations."),
        click.option('--n-jobs', type=int, default=1, show_default=True,
                     help="Number of worker threads across causal hypotheses."),
        click.option('--verbose', is_flag=True, default=False, help="Enable verbose (debug) logging."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def cli() -> None:
    """Corrected coverage estimates for single causal variant credible sets."""


@cli.command()
@common_options
@click.option('--threshold', type=float, required=True,
              help="Threshold on cumulative posterior probability used to build the credible set.")
@click.option('--repeats', type=int, default=0, show_default=True,
              help="If positive, repeat the correction this many times and report an interval.")
@click.option('--level', type=float, default=0.95, show_default=True,
              help="Central probability of the reported interval.")
def coverage(stats: str, ld: str, sep: str, n0: Optional[int], n1: Optional[int], prior_sd: float,
             nrep: int, pp0min: float, seed: Optional[int], n_jobs: int, verbose: bool,
             threshold: float, repeats: int, level: float) -> None:
    """
    Estimate the corrected coverage of the credible set built at THRESHOLD.

    Examples:
        corrcoverage coverage --stats stats.tsv --ld ld.tsv --n0 5000 --n1 5000 --threshold 0.9
    """
    setup_logging(verbose)

    try:
        z, variance, sigma = load_inputs(stats, ld, sep, n0, n1)
        # Separate streams for the point estimate and the interval repeats
        point_rng, interval_rng = spawn_generators(seed, 2)
        estimator = CoverageEstimator(z, variance, sigma, W=prior_sd, nrep=nrep, pp0min=pp0min,
                                      random_state=point_rng, n_jobs=n_jobs)
        credset = build_credible_set(estimator.pp, threshold, snp_ids=estimator.snp_ids)
        corrected = estimator.coverage(threshold)

        click.echo("claimed_coverage\t%.6f" % credset.claimed_coverage)
        click.echo("corrected_coverage\t%.6f" % corrected)
        click.echo("size\t%d" % credset.size)

        if repeats > 0:
            interval = corrected_coverage_interval(z, variance, sigma, threshold, W=prior_sd, nrep=nrep,
                                                   pp0min=pp0min, n_repeats=repeats, level=level,
                                                   random_state=interval_rng, n_jobs=n_jobs)
            click.echo("interval\t%.6f\t%.6f" % (interval.lower, interval.upper))
    except (CorrectedCoverageError, ValueError) as e:
        logger.error("Error during coverage correction: %s", str(e))
        raise click.ClickException(str(e))


@cli.command()
@common_options
@click.option('--desired-coverage', type=float, required=True,
              help="Desired corrected coverage of the credible set.")
@click.option('--lower', type=float, default=0.0, show_default=True, help="Lower threshold.")
@click.option('--upper', type=float, default=1.0, show_default=True, help="Upper threshold.")
@click.option('--acc', type=float, default=DEFAULT_ACC, show_default=True,
              help="Accuracy of corrected coverage to desired coverage.")
@click.option('--max-iter', type=int, default=DEFAULT_MAX_ITER, show_default=True,
              help="Maximum bisection iterations.")
@click.option('--output-dir', type=click.Path(), default=None,
              help="Directory to save the credible set. If omitted, only the summary is printed.")
def credset(stats: str, ld: str, sep: str, n0: Optional[int], n1: Optional[int], prior_sd: float,
            nrep: int, pp0min: float, seed: Optional[int], n_jobs: int, verbose: bool,
            desired_coverage: float, lower: float, upper: float, acc: float, max_iter: int,
            output_dir: Optional[str]) -> None:
    """
    Find the smallest credible set with the desired corrected coverage.

    Examples:
        corrcoverage credset --stats stats.tsv --ld ld.tsv --n0 5000 --n1 5000 --desired-coverage 0.95
    """
    setup_logging(verbose)

    try:
        z, variance, sigma = load_inputs(stats, ld, sep, n0, n1)
        estimator = CoverageEstimator(z, variance, sigma, W=prior_sd, nrep=nrep, pp0min=pp0min,
                                      random_state=seed, n_jobs=n_jobs)
        result = corrected_credible_set_from_estimator(estimator, desired_coverage, lower=lower, upper=upper,
                                                       acc=acc, max_iter=max_iter)

        click.echo("credible_set\t%s" % ','.join(str(v) for v in result.variants))
        click.echo("required_threshold\t%.6f" % result.required_threshold)
        click.echo("corrected_coverage\t%.6f" % result.corrected_coverage)
        click.echo("size\t%d" % result.size)
        if not result.converged:
            click.echo("converged\tFalse")

        if output_dir is not None:
            save_credible_set(output_dir, result, estimator.pp, desired_coverage)
    except (CorrectedCoverageError, ValueError) as e:
        logger.error("Error during coverage correction: %s", str(e))
        raise click.ClickException(str(e))


if __name__ == "__main__":
    cli()
