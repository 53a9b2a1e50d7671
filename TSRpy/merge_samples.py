#!/usr/bin/env python3
"""
Merge Samples - Merge TSS or TSR samples into consensus sets and scale counts
"""

import typer
import pandas as pd
from typing import Optional, List, Dict
from pathlib import Path
import logging

from TSRpy.aggregate import ScoreSchema, aggregate_scores
from TSRpy.config import MergeConfig
from TSRpy.exceptions import ConfigurationError
from TSRpy.intervals import merge_groups, sort_intervals, validate_intervals
from TSRpy.samples import DataType, read_sample_tables, write_sample_tables

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

app = typer.Typer(help=f"Merge samples and normalize scores (v{__version__})")

DEFAULT_GROUP = "merged"


def group_samples(samples: Dict[str, pd.DataFrame],
                  group_by: Optional[Dict[str, str]] = None) -> Dict[str, List[str]]:
    """
    Invert a sample -> group assignment into group -> member samples.

    Without an assignment all samples form one group named 'merged'.
    """
    if group_by is None:
        return {DEFAULT_GROUP: list(samples)}

    groups = {}
    for sample, group in group_by.items():
        if sample not in samples:
            raise ConfigurationError("unknown sample in group_by", sample=sample, parameter='group_by')
        groups.setdefault(group, []).append(sample)
    return groups


def merge(samples: Dict[str, pd.DataFrame],
          group_by: Optional[Dict[str, str]] = None,
          max_distance: int = 0,
          merge_adjacent: bool = False) -> Dict[str, pd.DataFrame]:
    """
    Union the intervals of each group of samples into one consensus set.

    Intervals of all members are pooled and merged per seqname and strand;
    by default only truly overlapping intervals merge, so a set that is
    already non-overlapping comes back unchanged.

    Args:
        samples: TSS or TSR sample collection
        group_by: Sample name -> group name; samples not listed are left out
        max_distance: Stretch applied before testing overlap
        merge_adjacent: Also merge book-ended intervals

    Returns:
        One consensus table per group, with n_unique (merged intervals) and
        n_samples (contributing samples)
    """
    config = MergeConfig(max_distance=max_distance, merge_adjacent=merge_adjacent)
    groups = group_samples(samples, group_by)

    schemas = {}
    for group, members in groups.items():
        member_schemas = set()
        for name in members:
            validate_intervals(samples[name], sample=name)
            # Empty members carry no scores to reconcile
            if samples[name].empty:
                continue
            schema = ScoreSchema.for_frame(samples[name])
            schema.validate(samples[name], sample=name)
            member_schemas.add(schema)
        if len(member_schemas) > 1:
            raise ConfigurationError(
                "normalized_score is present in some member samples but not others",
                sample=group, parameter='group_by'
            )
        schemas[group] = member_schemas.pop() if member_schemas else ScoreSchema()

    merged = {}
    for group, members in groups.items():
        logger.info(f"Merging samples {members} into '{group}'")
        pooled = pd.concat(
            [samples[name].assign(sample=name) for name in members],
            ignore_index=True
        )
        ids = merge_groups(pooled, config.max_distance, merge_adjacent=config.merge_adjacent)
        consensus = aggregate_scores(
            pooled, ids, schemas[group], sample=group,
            count_distinct={'n_samples': 'sample'}
        )
        merged[group] = sort_intervals(consensus)
        logger.info(f"Group {group}: {len(pooled)} intervals -> {len(merged[group])} consensus intervals")

    return merged


def normalize_scores(samples: Dict[str, pd.DataFrame],
                     scale: float = 1e6) -> Dict[str, pd.DataFrame]:
    """
    Add normalized_score = score / library size * scale (CPM by default).

    Args:
        samples: TSS or TSR sample collection
        scale: Scaling factor

    Returns:
        New collection with a normalized_score column
    """
    result = {}
    for name, df in samples.items():
        total = df['score'].sum()
        if total > 0:
            result[name] = df.assign(normalized_score=df['score'] / total * scale)
        else:
            result[name] = df.assign(normalized_score=0.0)
            logger.warning(f"Sample {name} has zero total counts")
    return result


def parse_groups(group_names: str, merge_index: str, sample_names: List[str]) -> Dict[str, str]:
    """
    Build a sample -> group assignment from CLI strings.

    Example: groups "control treat" and index "1 1 2 2" put the first two
    samples in 'control' and the last two in 'treat'.
    """
    groups = group_names.split()
    indices = [int(x) for x in merge_index.split()]
    if len(indices) != len(sample_names):
        raise ConfigurationError(
            f"Number of merge indices ({len(indices)}) must match number of samples ({len(sample_names)})",
            parameter='merge_index'
        )
    bad = [i for i in indices if i < 1 or i > len(groups)]
    if bad:
        raise ConfigurationError(f"Merge indices {bad} do not name a group", parameter='merge_index')
    return {sample: groups[i - 1] for sample, i in zip(sample_names, indices)}


@app.command("run")
def merge_command(
    input_files: List[Path] = typer.Option(
        ..., "-i", "--input",
        help="Input TSS or TSR table per sample"
    ),
    sample_names: Optional[str] = typer.Option(
        None, "-n", "--sample-names",
        help="Sample names (space-separated), defaults to file names"
    ),
    output_dir: Path = typer.Option(
        ..., "-o", "--output-dir",
        help="Output directory for merged tables"
    ),
    group_names: Optional[str] = typer.Option(
        None, "-g", "--groups",
        help="Group names (space-separated). If not provided, all samples are merged"
    ),
    merge_index: Optional[str] = typer.Option(
        None, "-m", "--merge-index",
        help="Group assignment for each sample (space-separated integers, 1-indexed)"
    ),
    data_type: str = typer.Option(
        "tsr", "--data-type",
        help="Type of the input tables: 'tss' or 'tsr'"
    ),
    max_distance: int = typer.Option(
        0, "-d", "--max-distance",
        help="Merge intervals within this distance"
    ),
):
    """
    Merge replicates or conditions into consensus TSS/TSR sets.

    Example:
        tsrpy mergeSamples run -i c1.tsv -i c2.tsv -i t1.tsv -i t2.tsv \\
            -g "control treat" -m "1 1 2 2" -o merged
    """
    try:
        kind = DataType.parse(data_type)
        samples = read_sample_tables(input_files, sample_names.split() if sample_names else None)
        group_by = None
        if group_names and merge_index:
            group_by = parse_groups(group_names, merge_index, list(samples))
        merged = merge(samples, group_by, max_distance=max_distance)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    write_sample_tables(merged, output_dir, kind)


@app.command("normalize")
def normalize_command(
    input_files: List[Path] = typer.Option(
        ..., "-i", "--input",
        help="Input TSS or TSR table per sample"
    ),
    sample_names: Optional[str] = typer.Option(
        None, "-n", "--sample-names",
        help="Sample names (space-separated), defaults to file names"
    ),
    output_dir: Path = typer.Option(
        ..., "-o", "--output-dir",
        help="Output directory for normalized tables"
    ),
    data_type: str = typer.Option(
        "tss", "--data-type",
        help="Type of the input tables: 'tss' or 'tsr'"
    ),
):
    """
    Add CPM-normalized scores (normalized_score column).

    Example:
        tsrpy mergeSamples normalize -i WT_1.tsv -i WT_2.tsv -o normalized
    """
    try:
        kind = DataType.parse(data_type)
        samples = read_sample_tables(input_files, sample_names.split() if sample_names else None)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    for name, df in samples.items():
        logger.info(f"Library size for {name}: {df['score'].sum():,}")

    write_sample_tables(normalize_scores(samples), output_dir, kind, normalized=True)


if __name__ == '__main__':
    app()
