#!/usr/bin/env python3
"""
Thresholding - Remove background TSS positions by read count
"""

import typer
import pandas as pd
from numbers import Integral, Real
from typing import Optional, List, Dict
from pathlib import Path
import logging

from TSRpy.exceptions import ConfigurationError
from TSRpy.intervals import add_feature_hash
from TSRpy.samples import DataType, read_sample_tables, write_sample_tables

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

app = typer.Typer(help=f"Apply count thresholds to TSSs (v{__version__})")


def count_matrix(samples: Dict[str, pd.DataFrame], use_normalized: bool = False) -> pd.DataFrame:
    """
    Build a position x sample count matrix.

    Rows are feature hashes, columns are samples in collection order.
    Positions absent from a sample count as 0.
    """
    column = 'normalized_score' if use_normalized else 'score'
    counts = {}
    for name, df in samples.items():
        if column not in df.columns:
            raise ConfigurationError(f"'{column}' column not found", sample=name, parameter='use_normalized')
        if 'FHASH' not in df.columns:
            df = add_feature_hash(df)
        counts[name] = df.groupby('FHASH')[column].sum()

    if not counts:
        return pd.DataFrame()
    return pd.DataFrame(counts).reindex(columns=list(counts)).fillna(0)


def apply_threshold(samples: Dict[str, pd.DataFrame],
                    threshold: float,
                    n_samples: Optional[int] = 1,
                    use_normalized: bool = False) -> Dict[str, pd.DataFrame]:
    """
    Keep positions reaching the threshold in enough samples.

    A position survives in every sample when at least n_samples samples
    have a count >= threshold there. n_samples=None requires all samples.

    Args:
        samples: TSS sample collection
        threshold: Minimum count (positive)
        n_samples: Number of samples that must reach the threshold
        use_normalized: Compare normalized_score instead of score

    Returns:
        New collection with surviving positions only
    """
    if not isinstance(threshold, Real) or threshold <= 0:
        raise ConfigurationError(f"threshold must be positive, got {threshold!r}", parameter='threshold')
    if n_samples is not None and (not isinstance(n_samples, Integral) or n_samples < 1):
        raise ConfigurationError(f"n_samples must be a positive integer, got {n_samples!r}", parameter='n_samples')

    mat = count_matrix(samples, use_normalized)
    if mat.empty:
        return {name: df.copy() for name, df in samples.items()}

    passing = (mat >= threshold).sum(axis=1)
    required = mat.shape[1] if n_samples is None else n_samples
    kept = mat.index[passing >= required]
    logger.info(f"{len(kept)} of {len(mat)} positions reach {threshold} in >= {required} samples")

    result = {}
    for name, df in samples.items():
        if 'FHASH' not in df.columns:
            df = add_feature_hash(df)
        result[name] = df[df['FHASH'].isin(kept)].reset_index(drop=True)
    return result


@app.command("run")
def threshold_command(
    input_files: List[Path] = typer.Option(
        ..., "-i", "--input",
        help="Input TSS table per sample"
    ),
    sample_names: Optional[str] = typer.Option(
        None, "-n", "--sample-names",
        help="Sample names (space-separated), defaults to file names"
    ),
    output_dir: Path = typer.Option(
        ..., "-o", "--output-dir",
        help="Output directory for filtered TSS tables"
    ),
    threshold: float = typer.Option(
        ..., "--threshold",
        help="Minimum count"
    ),
    n_samples: int = typer.Option(
        1, "--n-samples",
        help="Number of samples that must reach the threshold (0 = all samples)"
    ),
    use_normalized: bool = typer.Option(
        False, "--use-normalized/--use-raw",
        help="Threshold normalized_score instead of score"
    ),
):
    """
    Filter TSS positions by read count across samples.

    Example:
        tsrpy threshold run -i WT_1.tsv -i WT_2.tsv -o filtered --threshold 3 --n-samples 2
    """
    try:
        samples = read_sample_tables(input_files, sample_names.split() if sample_names else None)
        filtered = apply_threshold(
            samples, threshold, n_samples=n_samples or None, use_normalized=use_normalized
        )
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    write_sample_tables(filtered, output_dir, DataType.TSS, normalized=use_normalized)


if __name__ == '__main__':
    app()
