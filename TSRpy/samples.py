#!/usr/bin/env python3
"""
Samples - Read and write per-sample TSS/TSR tables

A sample collection is a plain dict mapping sample names to interval
tables. These helpers are the only place that touches files; the engines
take and return collections.
"""

import pandas as pd
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging

from TSRpy.exceptions import ConfigurationError
from TSRpy.intervals import add_feature_hash, validate_intervals

logger = logging.getLogger(__name__)

SampleCollection = Dict[str, pd.DataFrame]

# Column names used by other tools for the same fields
COLUMN_ALIASES = {
    'seqnames': 'seqname',
    'chr': 'seqname',
    'chrom': 'seqname',
}

WIDE_TABLE_KEYS = ['chr', 'pos', 'strand']


class DataType(Enum):
    """Kinds of sample tables a collection can hold."""

    TSS = 'tss'
    TSR = 'tsr'
    TSS_FEATURES = 'tss_features'
    TSR_FEATURES = 'tsr_features'

    @classmethod
    def parse(cls, value: str) -> 'DataType':
        try:
            return cls(value.lower())
        except ValueError:
            valid = ', '.join(t.value for t in cls)
            raise ConfigurationError(
                f"unknown data type '{value}' (expected one of: {valid})", parameter='data_type'
            )


def count_slot(data_type: DataType, normalized: bool = False) -> str:
    """Name of the storage slot for a data type, e.g. 'tsr.raw'."""
    return f"{data_type.value}.{'normalized' if normalized else 'raw'}"


def sample_name_from_path(path: Union[str, Path]) -> str:
    """
    Default sample name for a table file.

    Strips '.tsv' and a trailing storage slot written by
    write_sample_tables, so 'WT.rep1.tsr.raw.tsv' becomes 'WT.rep1'.
    """
    path = Path(path)
    if path.suffix != '.tsv':
        return path.stem
    name = path.name[:-len('.tsv')]
    for data_type in DataType:
        for normalized in (False, True):
            slot = f".{count_slot(data_type, normalized)}"
            if name.endswith(slot) and len(name) > len(slot):
                return name[:-len(slot)]
    return name


def prepare_table(df: pd.DataFrame, sample: str = None) -> pd.DataFrame:
    """Normalize column names, validate and add FHASH/width."""
    df = df.rename(columns={k: v for k, v in COLUMN_ALIASES.items() if k in df.columns})
    if 'pos' in df.columns and 'start' not in df.columns:
        df = df.rename(columns={'pos': 'start'})
        df['end'] = df['start']
    validate_intervals(df, sample=sample)
    return add_feature_hash(df)


def read_sample_tables(paths: List[Union[str, Path]],
                       names: Optional[List[str]] = None) -> SampleCollection:
    """
    Load one tab-delimited table per sample.

    Args:
        paths: Table files with seqname, start, end, strand and score columns
        names: Sample names; defaults to each file name without '.<slot>.tsv'

    Returns:
        Sample collection keyed by sample name
    """
    paths = [Path(p) for p in paths]
    if names is None:
        names = [sample_name_from_path(p) for p in paths]
    if len(names) != len(paths):
        raise ConfigurationError(
            f"Number of sample names ({len(names)}) must match number of input files ({len(paths)})",
            parameter='names'
        )
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Sample names must be unique: {names}", parameter='names')

    samples = {}
    for path, name in zip(paths, names):
        df = pd.read_csv(path, sep='\t')
        samples[name] = prepare_table(df, sample=name)
        logger.info(f"Loaded {len(df)} intervals for sample {name} from {path}")
    return samples


def from_tss_table(df: pd.DataFrame,
                   sample_cols: Optional[List[str]] = None) -> SampleCollection:
    """
    Split a wide TSS count table (chr, pos, strand, one column per sample)
    into a TSS sample collection. Positions with zero counts are dropped.
    """
    missing = [c for c in WIDE_TABLE_KEYS if c not in df.columns]
    if missing:
        raise ConfigurationError(f"TSS table is missing columns {missing}")
    if sample_cols is None:
        sample_cols = [c for c in df.columns if c not in WIDE_TABLE_KEYS]

    samples = {}
    for sample in sample_cols:
        sub = df.loc[df[sample] > 0, WIDE_TABLE_KEYS + [sample]]
        sub = pd.DataFrame({
            'seqname': sub['chr'].astype(str),
            'start': sub['pos'].astype('int64'),
            'end': sub['pos'].astype('int64'),
            'strand': sub['strand'],
            'score': sub[sample],
        }).reset_index(drop=True)
        samples[sample] = prepare_table(sub, sample=sample)
        logger.info(f"Sample {sample}: {len(sub)} TSS positions")
    return samples


def write_sample_tables(samples: SampleCollection,
                        out_dir: Union[str, Path],
                        data_type: DataType,
                        normalized: bool = False) -> List[Path]:
    """
    Write one table per sample to '<out_dir>/<sample>.<slot>.tsv'.

    Returns:
        Paths of the written files
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    slot = count_slot(data_type, normalized)

    written = []
    for name, df in samples.items():
        path = out_dir / f"{name}.{slot}.tsv"
        df.to_csv(path, sep='\t', index=False, na_rep='NA')
        logger.info(f"Saved {len(df)} {data_type.value.upper()} records for {name} to {path}")
        written.append(path)
    return written
