#!/usr/bin/env python3
"""
Correlation - Between-sample concordance of TSS or TSR counts
"""

import typer
import pandas as pd
from typing import Optional, List, Dict
from pathlib import Path
import logging

from TSRpy.exceptions import ConfigurationError
from TSRpy.samples import read_sample_tables
from TSRpy.thresholding import count_matrix

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

CORRELATION_METHODS = ('pearson', 'spearman')


def find_correlation(samples: Dict[str, pd.DataFrame],
                     method: str = 'pearson',
                     use_normalized: bool = False) -> pd.DataFrame:
    """
    Correlate samples over the union of their feature hashes.

    Positions missing from a sample count as 0.

    Args:
        samples: TSS or TSR sample collection
        method: 'pearson' or 'spearman'
        use_normalized: Correlate normalized_score instead of score

    Returns:
        Long table with sample_1, sample_2 and cor, one row per sample pair
    """
    if method not in CORRELATION_METHODS:
        raise ConfigurationError(
            f"unknown correlation method '{method}' (expected one of: {', '.join(CORRELATION_METHODS)})",
            parameter='method'
        )

    mat = count_matrix(samples, use_normalized)
    if mat.empty:
        return pd.DataFrame(columns=['sample_1', 'sample_2', 'cor'])

    corr = mat.corr(method=method)
    corr.index.name = 'sample_1'
    corr.columns.name = None
    return corr.reset_index().melt(id_vars='sample_1', var_name='sample_2', value_name='cor')


def correlation(
    input_files: List[Path] = typer.Option(..., "-i", "--input", help="Input TSS or TSR table per sample"),
    sample_names: Optional[str] = typer.Option(None, "-n", "--sample-names", help="Sample names (space-separated), defaults to file names"),
    output: Optional[Path] = typer.Option(None, "-o", "--output", help="Output correlation table (tab-delimited, optional)"),
    method: str = typer.Option("pearson", "--method", help="Correlation method: 'pearson' or 'spearman'"),
    use_normalized: bool = typer.Option(False, "--use-normalized", help="Correlate normalized_score instead of score"),
):
    """
    Calculate pairwise sample correlations.
    """
    typer.echo("[1/3] Reading input tables...")
    try:
        samples = read_sample_tables(input_files, sample_names.split() if sample_names else None)
        typer.echo(f"[2/3] Found {len(samples)} samples. Calculating {method} correlation...")
        result = find_correlation(samples, method=method.lower(), use_normalized=use_normalized)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    if not result.empty:
        typer.echo(f"Correlation matrix ({method}):")
        typer.echo(result.pivot(index='sample_1', columns='sample_2', values='cor').round(3).to_string())
    if output:
        result.to_csv(output, sep='\t', index=False, na_rep='NA')
        typer.echo(f"[3/3] Correlation table saved to {output}")
