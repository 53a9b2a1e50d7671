"""Shared fixtures for TSRpy tests."""

from pathlib import Path

import pandas as pd
import pytest


def make_tss(rows, normalized=None):
    """Build a TSS table from (seqname, position, strand, score) tuples."""
    df = pd.DataFrame(rows, columns=['seqname', 'start', 'strand', 'score'])
    df['end'] = df['start']
    df = df[['seqname', 'start', 'end', 'strand', 'score']]
    if normalized is not None:
        df['normalized_score'] = normalized
    return df


@pytest.fixture
def tss_sample():
    """Two clusters on chr1 '+', one on chr1 '-', one on chr2 '+'."""
    return make_tss([
        ('chr1', 100, '+', 5),
        ('chr1', 110, '+', 3),
        ('chr1', 120, '+', 2),
        ('chr1', 400, '+', 7),
        ('chr1', 105, '-', 4),
        ('chr2', 50, '+', 1),
    ])


@pytest.fixture
def tss_samples(tss_sample):
    return {
        'WT_1': tss_sample,
        'WT_2': make_tss([
            ('chr1', 100, '+', 2),
            ('chr1', 400, '+', 9),
            ('chr2', 50, '+', 6),
        ]),
    }


@pytest.fixture
def wide_tss_table():
    """TSS table in the chr/pos/strand + sample columns layout."""
    return pd.DataFrame({
        'chr': ['chr1', 'chr1', 'chr1', 'chr2'],
        'pos': [100, 110, 400, 50],
        'strand': ['+', '+', '-', '+'],
        'WT_1': [5, 0, 7, 1],
        'WT_2': [2, 3, 0, 0],
    })


@pytest.fixture
def sample_files(tmp_path: Path, tss_samples):
    """Write the TSS samples to tab-delimited files."""
    paths = []
    for name, df in tss_samples.items():
        path = tmp_path / f"{name}.tsv"
        df.to_csv(path, sep='\t', index=False)
        paths.append(path)
    return paths
