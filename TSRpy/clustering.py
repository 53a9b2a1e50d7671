#!/usr/bin/env python3
"""
Clustering - Distance and threshold based clustering of TSSs into TSRs

TSSs are clustered when their scores pass the threshold and they lie
within max_distance of each other on the same strand. Clusters wider
than max_width are discarded.
"""

import typer
import pandas as pd
from typing import Optional, List, Dict
from pathlib import Path
import logging
from multiprocessing import Pool

from TSRpy.aggregate import ScoreSchema, aggregate_scores
from TSRpy.config import ClusterConfig
from TSRpy.exceptions import ConfigurationError
from TSRpy.intervals import add_feature_hash, merge_groups, sort_intervals, validate_intervals
from TSRpy.samples import DataType, from_tss_table, read_sample_tables, write_sample_tables

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

app = typer.Typer(help=f"Cluster TSSs into TSRs (v{__version__})")


def filter_by_threshold(tss_samples: Dict[str, pd.DataFrame],
                        threshold: Optional[float] = None,
                        n_samples: Optional[int] = None) -> Dict[str, pd.DataFrame]:
    """
    Apply the score threshold, optionally gated by cross-sample presence.

    With only a threshold, each sample keeps TSSs with score >= threshold.
    With n_samples as well, a feature hash must first appear in at least
    n_samples samples (counted over all samples together); each sample then
    keeps its own record for that hash if its score >= threshold.

    Args:
        tss_samples: TSS sample collection
        threshold: Minimum score
        n_samples: Minimum number of samples a position must appear in

    Returns:
        New collection with the same sample names (empty tables allowed)
    """
    if not tss_samples:
        return {}
    if threshold is None:
        if n_samples is not None:
            logger.warning("n_samples is ignored when no threshold is given")
        return {name: df.copy() for name, df in tss_samples.items()}

    if n_samples is None:
        return {
            name: df[df['score'] >= threshold].reset_index(drop=True)
            for name, df in tss_samples.items()
        }

    hashed = {
        name: df if 'FHASH' in df.columns else add_feature_hash(df)
        for name, df in tss_samples.items()
    }
    presence = pd.concat(
        [pd.Series(df['FHASH'].unique(), dtype=object) for df in hashed.values()],
        ignore_index=True
    ).value_counts()
    qualified = presence.index[presence >= n_samples]
    logger.info(f"{len(qualified)} of {len(presence)} positions are present in >= {n_samples} samples")

    return {
        name: df[(df['score'] >= threshold) & df['FHASH'].isin(qualified)].reset_index(drop=True)
        for name, df in hashed.items()
    }


def cluster_sample(tss: pd.DataFrame,
                   max_distance: int = 25,
                   max_width: Optional[int] = None,
                   schema: Optional[ScoreSchema] = None,
                   sample: str = None) -> pd.DataFrame:
    """
    Cluster the TSSs of one sample.

    TSSs are stretched by max_distance on both ends and merged when the
    stretched intervals overlap or touch on the same strand. Each TSR spans
    its member TSSs only, sums their scores and counts them in n_unique.

    Returns:
        TSR table sorted by seqname, start and strand
    """
    if schema is None:
        schema = ScoreSchema.for_frame(tss)
    groups = merge_groups(tss, max_distance, merge_adjacent=True)
    tsrs = aggregate_scores(tss, groups, schema, sample=sample)

    if max_width is not None:
        n_before = len(tsrs)
        tsrs = tsrs[tsrs['width'] <= max_width]
        logger.debug(f"Sample {sample}: removed {n_before - len(tsrs)} TSRs wider than {max_width}")

    return sort_intervals(tsrs)


def _cluster_sample_wrapper(args):
    name, tss, max_distance, max_width, schema = args
    return name, cluster_sample(tss, max_distance, max_width, schema, sample=name)


def cluster(tss_samples: Dict[str, pd.DataFrame],
            threshold: Optional[float] = None,
            n_samples: Optional[int] = None,
            max_distance: int = 25,
            max_width: Optional[int] = None,
            n_processes: int = 1) -> Dict[str, pd.DataFrame]:
    """
    Cluster TSSs into TSRs for every sample.

    All parameters and input tables are validated before any sample is
    clustered. The input collection is not modified.

    Args:
        tss_samples: TSS sample collection
        threshold: Minimum TSS score
        n_samples: Keep a position only if it is present in n_samples samples
        max_distance: Maximum distance between TSSs for clustering
        max_width: Maximum TSR width
        n_processes: Number of processes used to cluster samples

    Returns:
        TSR sample collection, one table per input sample
    """
    config = ClusterConfig(
        threshold=threshold, n_samples=n_samples, max_distance=max_distance,
        max_width=max_width, n_processes=n_processes
    )

    schemas = {}
    for name, df in tss_samples.items():
        validate_intervals(df, sample=name)
        schemas[name] = ScoreSchema.for_frame(df)
        schemas[name].validate(df, sample=name)

    selected = filter_by_threshold(tss_samples, config.threshold, config.n_samples)
    for name, df in selected.items():
        logger.info(f"Sample {name}: {len(df)} of {len(tss_samples[name])} TSSs pass filtering")

    args_list = [
        (name, df, config.max_distance, config.max_width, schemas[name])
        for name, df in selected.items()
    ]
    if config.n_processes > 1 and len(args_list) > 1:
        with Pool(processes=min(config.n_processes, len(args_list))) as pool:
            results = pool.map(_cluster_sample_wrapper, args_list)
    else:
        results = [_cluster_sample_wrapper(args) for args in args_list]

    tsr_samples = {}
    for name, tsrs in results:
        logger.info(f"Sample {name}: {len(tsrs)} TSRs")
        tsr_samples[name] = tsrs
    return tsr_samples


@app.command("run")
def cluster_command(
    input_files: Optional[List[Path]] = typer.Option(
        None, "-i", "--input",
        help="Input TSS table per sample (seqname, start, end, strand, score)"
    ),
    sample_names: Optional[str] = typer.Option(
        None, "-n", "--sample-names",
        help="Sample names (space-separated), defaults to file names"
    ),
    tss_table: Optional[Path] = typer.Option(
        None, "-t", "--tss-table",
        help="Wide TSS table (chr, pos, strand, one column per sample) instead of -i"
    ),
    output_dir: Path = typer.Option(
        ..., "-o", "--output-dir",
        help="Output directory for TSR tables"
    ),
    threshold: Optional[float] = typer.Option(
        None, "--threshold",
        help="Minimum TSS score"
    ),
    n_samples: Optional[int] = typer.Option(
        None, "--n-samples",
        help="Keep TSS positions present in at least this many samples (requires --threshold)"
    ),
    max_distance: int = typer.Option(
        25, "-d", "--max-distance",
        help="Maximum distance between TSSs for clustering"
    ),
    max_width: Optional[int] = typer.Option(
        None, "--max-width",
        help="Maximum TSR width"
    ),
    processes: int = typer.Option(
        1, "-p", "--processes",
        help="Number of processes"
    ),
):
    """
    Cluster TSSs into TSRs.

    Example:
        tsrpy clustering run -i WT_1.tsv -i WT_2.tsv -o tsrs --threshold 3 -d 25
    """
    try:
        if tss_table is not None:
            logger.info(f"Reading TSS table: {tss_table}")
            tss_samples = from_tss_table(pd.read_csv(tss_table, sep='\t'))
        elif input_files:
            names = sample_names.split() if sample_names else None
            tss_samples = read_sample_tables(input_files, names)
        else:
            raise typer.BadParameter("Either -i/--input or -t/--tss-table is required")

        tsr_samples = cluster(
            tss_samples, threshold=threshold, n_samples=n_samples,
            max_distance=max_distance, max_width=max_width, n_processes=processes
        )
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    write_sample_tables(tsr_samples, output_dir, DataType.TSR)
    total = sum(len(df) for df in tsr_samples.values())
    logger.info(f"Saved {total} TSRs for {len(tsr_samples)} samples to {output_dir}")


if __name__ == '__main__':
    app()
