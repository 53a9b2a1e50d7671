#!/usr/bin/env python3
"""
Association - Link TSSs to the TSRs that contain them

TSS samples must be associated with TSR samples after clustering, TSR
merging or TSR import. Every TSS overlapping a TSR on the same strand is
linked to it and inherits the TSR's summary fields; TSSs outside all TSRs
are kept with empty TSR fields.

A TSS overlapping several TSRs (possible with imported TSR sets) is
reported once per TSR. Callers needing one TSR per TSS should merge the
TSR set first.
"""

import typer
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Union
from pathlib import Path
import logging

from TSRpy.exceptions import ConfigurationError
from TSRpy.intervals import add_feature_hash, find_overlaps, sort_intervals, validate_intervals
from TSRpy.samples import DataType, read_sample_tables, write_sample_tables

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

app = typer.Typer(help=f"Associate TSSs with TSRs (v{__version__})")

# TSR column -> column name on the associated TSS record
TSR_FIELDS = {
    'FHASH': 'TSR_FHASH',
    'score': 'tsr_score',
    'width': 'tsr_width',
    'n_unique': 'tsr_n_unique',
    'normalized_score': 'tsr_normalized_score',
}
ASSOCIATION_COLUMNS = ['tsr_sample'] + list(TSR_FIELDS.values())


def resolve_sample_mapping(tss_samples: Dict[str, pd.DataFrame],
                           tsr_samples: Dict[str, pd.DataFrame],
                           sample_mapping: Optional[Dict[str, Union[str, List[str]]]] = None
                           ) -> Dict[str, List[str]]:
    """
    Check a TSR sample -> TSS samples mapping against both collections.

    Without a mapping every TSS sample is paired with the TSR sample of
    the same name.
    """
    if sample_mapping is None:
        missing = [name for name in tss_samples if name not in tsr_samples]
        if missing:
            raise ConfigurationError(
                f"no TSR sample with the same name for TSS samples {missing}",
                sample=missing[0]
            )
        return {name: [name] for name in tss_samples}

    mapping = {}
    seen = {}
    for tsr_name, tss_names in sample_mapping.items():
        if tsr_name not in tsr_samples:
            raise ConfigurationError(
                "unknown TSR sample in sample_mapping", sample=tsr_name, parameter='sample_mapping'
            )
        if isinstance(tss_names, str):
            tss_names = [tss_names]
        for tss_name in tss_names:
            if tss_name not in tss_samples:
                raise ConfigurationError(
                    "unknown TSS sample in sample_mapping", sample=tss_name, parameter='sample_mapping'
                )
            if tss_name in seen:
                raise ConfigurationError(
                    f"TSS sample is mapped to both '{seen[tss_name]}' and '{tsr_name}'",
                    sample=tss_name, parameter='sample_mapping'
                )
            seen[tss_name] = tsr_name
        mapping[tsr_name] = list(tss_names)
    return mapping


def associate_sample(tss: pd.DataFrame, tsr: pd.DataFrame, tsr_sample: str) -> pd.DataFrame:
    """
    Overlap-left join of one TSS table onto one TSR table.

    Args:
        tss: TSS table
        tsr: TSR table
        tsr_sample: Name of the TSR sample, stored in 'tsr_sample'

    Returns:
        TSS records with TSR fields, sorted by seqname, start and strand
    """
    # Drop fields of any earlier association
    tss = tss.drop(columns=[c for c in ASSOCIATION_COLUMNS if c in tss.columns])
    tss = tss.reset_index(drop=True)
    if 'FHASH' not in tss.columns:
        tss = add_feature_hash(tss)

    tsr = tsr.reset_index(drop=True)
    if 'FHASH' not in tsr.columns or 'width' not in tsr.columns:
        tsr = add_feature_hash(tsr)
    if 'n_unique' not in tsr.columns:
        tsr = tsr.assign(n_unique=np.nan)
    tsr_cols = [c for c in TSR_FIELDS if c in tsr.columns]
    tsr_fields = tsr[tsr_cols].rename(columns=TSR_FIELDS)
    columns = list(tss.columns) + ['tsr_sample'] + list(tsr_fields.columns)

    tss_rows, tsr_rows = find_overlaps(tss, tsr)

    matched = pd.concat([
        tss.iloc[tss_rows].reset_index(drop=True),
        tsr_fields.iloc[tsr_rows].reset_index(drop=True),
    ], axis=1)

    unmatched = tss[~np.isin(np.arange(len(tss)), tss_rows)]
    parts = [part for part in (matched, unmatched) if not part.empty]
    if parts:
        result = pd.concat(parts, ignore_index=True)
    else:
        result = pd.DataFrame(columns=columns)
    result['tsr_sample'] = tsr_sample
    result = result.reindex(columns=columns)

    n_unmatched = len(unmatched)
    n_multi = len(tss_rows) - len(np.unique(tss_rows))
    logger.debug(f"{len(tss)} TSSs vs {len(tsr)} TSRs from {tsr_sample}: {n_unmatched} unassociated")
    if n_multi:
        logger.warning(f"{n_multi} extra rows for TSSs overlapping more than one TSR in {tsr_sample}")

    return sort_intervals(result)


def associate(tss_samples: Dict[str, pd.DataFrame],
              tsr_samples: Dict[str, pd.DataFrame],
              sample_mapping: Optional[Dict[str, Union[str, List[str]]]] = None
              ) -> Dict[str, pd.DataFrame]:
    """
    Associate TSS samples with TSR samples.

    Args:
        tss_samples: TSS sample collection
        tsr_samples: TSR sample collection
        sample_mapping: TSR sample name -> TSS sample name(s) to match against
            it. If None, TSS samples are matched to the same-named TSR sample.

    Returns:
        TSS sample collection in which every mapped sample is replaced by its
        associated records; other samples are passed through unchanged
    """
    mapping = resolve_sample_mapping(tss_samples, tsr_samples, sample_mapping)
    for tsr_name, tss_names in mapping.items():
        validate_intervals(tsr_samples[tsr_name], sample=tsr_name)
        for tss_name in tss_names:
            validate_intervals(tss_samples[tss_name], sample=tss_name)

    result = dict(tss_samples)
    for tsr_name, tss_names in mapping.items():
        for tss_name in tss_names:
            associated = associate_sample(tss_samples[tss_name], tsr_samples[tsr_name], tsr_name)
            n_linked = int(associated['TSR_FHASH'].notna().sum())
            logger.info(f"Sample {tss_name}: {n_linked} of {len(associated)} TSSs associated with TSRs from {tsr_name}")
            result[tss_name] = associated
    return result


def read_sample_sheet(path: Path) -> Dict[str, List[str]]:
    """Read a tab-delimited sheet with 'tsr_sample' and 'tss_sample' columns."""
    sheet = pd.read_csv(path, sep='\t', dtype=str)
    missing = [c for c in ('tsr_sample', 'tss_sample') if c not in sheet.columns]
    if missing:
        raise ConfigurationError(f"sample sheet {path} is missing columns {missing}", parameter='sample_sheet')
    mapping = {}
    for tsr_name, tss_name in zip(sheet['tsr_sample'], sheet['tss_sample']):
        mapping.setdefault(tsr_name, []).append(tss_name)
    return mapping


@app.command("run")
def associate_command(
    tss_files: List[Path] = typer.Option(
        ..., "-t", "--tss",
        help="Input TSS table per sample"
    ),
    tsr_files: List[Path] = typer.Option(
        ..., "-r", "--tsr",
        help="Input TSR table per sample"
    ),
    tss_names: Optional[str] = typer.Option(
        None, "--tss-names",
        help="TSS sample names (space-separated), defaults to file names"
    ),
    tsr_names: Optional[str] = typer.Option(
        None, "--tsr-names",
        help="TSR sample names (space-separated), defaults to file names"
    ),
    sample_sheet: Optional[Path] = typer.Option(
        None, "-s", "--sample-sheet",
        help="Sheet with tsr_sample and tss_sample columns; default pairs samples by name"
    ),
    output_dir: Path = typer.Option(
        ..., "-o", "--output-dir",
        help="Output directory for associated TSS tables"
    ),
):
    """
    Associate TSSs with the TSRs that contain them.

    Example:
        tsrpy associate run -t WT_1.tss.tsv -r WT_1.tsr.tsv -o associated
    """
    try:
        tss_samples = read_sample_tables(tss_files, tss_names.split() if tss_names else None)
        tsr_samples = read_sample_tables(tsr_files, tsr_names.split() if tsr_names else None)
        mapping = read_sample_sheet(sample_sheet) if sample_sheet else None
        associated = associate(tss_samples, tsr_samples, mapping)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    write_sample_tables(associated, output_dir, DataType.TSS)


if __name__ == '__main__':
    app()
