#!/usr/bin/env python
"""
Tests for the corrected coverage CLI.

This module contains tests for the command-line interface of the corrected
coverage package.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from click.testing import CliRunner

from corrcoverage.corrected_coverage_cli import cli, load_inputs
from corrcoverage.coverage import CoverageEstimator
from corrcoverage.simulation import spawn_generators


def write_region(directory, z, maf=None, variance=None, rho=0.9):
    """Write a statistics table and an exchangeable LD matrix, returning both paths."""
    nsnps = len(z)
    snps = ['rs%d' % i for i in range(nsnps)]
    if variance is None:
        stats_df = pd.DataFrame({'snp': snps, 'z': z, 'maf': maf})
    else:
        stats_df = pd.DataFrame({'snp': snps, 'bhat': np.asarray(z) * np.sqrt(variance), 'V': variance})
    stats_path = os.path.join(directory, 'stats.tsv')
    stats_df.to_csv(stats_path, sep='\t', index=False)

    sigma = np.full((nsnps, nsnps), rho)
    np.fill_diagonal(sigma, 1.0)
    ld_path = os.path.join(directory, 'ld.tsv')
    pd.DataFrame(sigma).to_csv(ld_path, sep='\t', header=False, index=False)

    return stats_path, ld_path


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Remove handlers the CLI attaches to the root logger."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test inputs and outputs."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Clean up after the test
    shutil.rmtree(temp_dir)


@pytest.fixture
def ambiguous_inputs(temp_dir):
    """Ten variants in strong LD with similar Z-scores."""
    return write_region(temp_dir, np.linspace(3.2, 2.8, 10), maf=np.full(10, 0.3))


def test_cli_coverage(ambiguous_inputs):
    """Test the coverage command prints claimed and corrected coverage."""
    stats_path, ld_path = ambiguous_inputs
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--threshold', '0.9',
        '--nrep', '100',
        '--seed', '1',
    ])

    assert result.exit_code == 0
    assert 'claimed_coverage' in result.output
    assert 'corrected_coverage' in result.output


def test_cli_coverage_interval(ambiguous_inputs):
    """Test the coverage command reports an interval over repeats."""
    stats_path, ld_path = ambiguous_inputs
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--threshold', '0.9',
        '--nrep', '50',
        '--seed', '1',
        '--repeats', '3',
    ])

    assert result.exit_code == 0
    assert 'interval' in result.output


def test_cli_interval_uses_separate_stream(ambiguous_inputs):
    """Test the interval repeats do not reuse the point estimate's noise draw."""
    stats_path, ld_path = ambiguous_inputs
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--threshold', '0.9',
        '--nrep', '50',
        '--seed', '1',
        '--repeats', '1',
    ])
    assert result.exit_code == 0

    fields = dict(line.split('\t', 1) for line in result.output.splitlines() if '\t' in line)
    z, variance, sigma = load_inputs(stats_path, ld_path, '\t', 1000, 1000)
    point_rng, interval_rng = spawn_generators(1, 2)
    point = CoverageEstimator(z, variance, sigma, nrep=50, random_state=point_rng).coverage(0.9)
    repeat = CoverageEstimator(z, variance, sigma, nrep=50, random_state=interval_rng).coverage(0.9)

    assert fields['corrected_coverage'] == "%.6f" % point
    assert fields['interval'] == "%.6f\t%.6f" % (repeat, repeat)


def test_cli_coverage_bhat_table(temp_dir):
    """Test a bhat/V table does not need sample sizes."""
    stats_path, ld_path = write_region(temp_dir, np.linspace(3.2, 2.8, 10), variance=np.full(10, 0.005))
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--threshold', '0.9',
        '--nrep', '50',
        '--seed', '1',
    ])

    assert result.exit_code == 0
    assert 'corrected_coverage' in result.output


def test_cli_requires_sample_sizes_for_maf(ambiguous_inputs):
    """Test z/maf tables need --n0 and --n1."""
    stats_path, ld_path = ambiguous_inputs
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--threshold', '0.9',
    ])

    assert result.exit_code != 0


def test_cli_credset_writes_output(ambiguous_inputs, temp_dir):
    """Test the credset command prints the set and saves it."""
    stats_path, ld_path = ambiguous_inputs
    output_dir = os.path.join(temp_dir, 'results')
    runner = CliRunner()
    result = runner.invoke(cli, [
        'credset',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--desired-coverage', '0.9',
        '--nrep', '200',
        '--seed', '7',
        '--output-dir', output_dir,
    ])

    assert result.exit_code == 0
    assert 'required_threshold' in result.output

    credset_file = Path(output_dir, 'corrected_credset.cov-0.9.tsv')
    assert credset_file.exists()
    assert Path(output_dir, 'corrected_credset.cov-0.9.summary.tsv').exists()

    credset_df = pd.read_csv(credset_file, sep='\t')
    assert list(credset_df.columns) == ['snp', 'pp', 'cumulative_pp']
    assert credset_df['snp'].iloc[0] == 'rs0'


def test_cli_credset_no_root(temp_dir):
    """Test a window that cannot bracket the target exits with an error."""
    stats_path, ld_path = write_region(temp_dir, [4.0, 3.5, 3.0, 1.0, 0.0], maf=np.full(5, 0.3), rho=0.0)
    runner = CliRunner()
    result = runner.invoke(cli, [
        'credset',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--desired-coverage', '0.9',
        '--nrep', '500',
        '--seed', '1',
    ])

    assert result.exit_code == 1
    assert 'No root in range' in result.output


def test_cli_invalid_ld(temp_dir):
    """Test an LD matrix of the wrong size is reported."""
    stats_path, _ = write_region(temp_dir, np.linspace(3.2, 2.8, 10), maf=np.full(10, 0.3))
    _, ld_path = write_region(tempfile.mkdtemp(dir=temp_dir), [1.0, 2.0], maf=[0.3, 0.3])
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--threshold', '0.9',
    ])

    assert result.exit_code == 1
    assert 'Correlation matrix' in result.output


def test_cli_verbose_flag(ambiguous_inputs):
    """Test CLI with verbose flag."""
    stats_path, ld_path = ambiguous_inputs
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', stats_path,
        '--ld', ld_path,
        '--n0', '1000',
        '--n1', '1000',
        '--threshold', '0.9',
        '--nrep', '50',
        '--verbose',
    ])

    assert result.exit_code == 0

    # Verbose output should contain DEBUG messages
    assert "DEBUG" in result.output


def test_cli_invalid_input():
    """Test CLI with invalid input file."""
    runner = CliRunner()
    result = runner.invoke(cli, [
        'coverage',
        '--stats', 'nonexistent_file.tsv',
        '--ld', 'nonexistent_ld.tsv',
        '--threshold', '0.9',
    ])

    # Command should fail with non-zero exit code
    assert result.exit_code != 0
