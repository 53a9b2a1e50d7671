#!/usr/bin/env python3
"""
Intervals - Strand-aware genomic intervals and the overlap engine

Coordinates are 1-based and closed on both ends, so a single TSS has
start == end and width 1. All overlap and merge operations are directed:
intervals on opposite strands never touch.
"""

import pandas as pd
import numpy as np
from typing import NamedTuple, Optional, List, Tuple

from TSRpy.exceptions import ConfigurationError

INTERVAL_COLUMNS = ['seqname', 'start', 'end', 'strand']
REQUIRED_COLUMNS = INTERVAL_COLUMNS + ['score']
VALID_STRANDS = ('+', '-')


class GenomicInterval(NamedTuple):
    """A scored, stranded genomic interval.

    Attributes:
        seqname: Chromosome/contig name.
        start: Start position (1-based, inclusive).
        end: End position (1-based, inclusive).
        strand: '+' or '-'.
        score: Read count (non-negative).
        normalized_score: Normalized count, when normalization was applied.
    """

    seqname: str
    start: int
    end: int
    strand: str
    score: float = 0.0
    normalized_score: Optional[float] = None

    @property
    def width(self) -> int:
        return self.end - self.start + 1

    @property
    def fhash(self) -> str:
        return feature_hash(self.seqname, self.start, self.end, self.strand)

    def overlaps(self, other: "GenomicInterval") -> bool:
        """Directed overlap: same sequence, same strand, shared bases."""
        return (
            self.seqname == other.seqname
            and self.strand == other.strand
            and self.start <= other.end
            and other.start <= self.end
        )


def feature_hash(seqname: str, start: int, end: int, strand: str) -> str:
    """Build the feature hash (FHASH) 'seqname:start:end:strand'."""
    return f"{seqname}:{start}:{end}:{strand}"


def add_feature_hash(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of an interval table with FHASH and width columns."""
    df = df.copy()
    if df.empty:
        df['FHASH'] = pd.Series(dtype=object)
        df['width'] = pd.Series(dtype='int64')
        return df
    df['FHASH'] = (
        df['seqname'].astype(str) + ':' +
        df['start'].astype('int64').astype(str) + ':' +
        df['end'].astype('int64').astype(str) + ':' +
        df['strand'].astype(str)
    )
    df['width'] = df['end'] - df['start'] + 1
    return df


def intervals_to_frame(intervals: List[GenomicInterval]) -> pd.DataFrame:
    """Convert GenomicIntervals to an interval table.

    The normalized_score column is only kept when every interval has one.
    """
    df = pd.DataFrame(list(intervals), columns=list(GenomicInterval._fields))
    if df['normalized_score'].isna().any():
        df = df.drop(columns='normalized_score')
    return add_feature_hash(df)


def frame_to_intervals(df: pd.DataFrame) -> List[GenomicInterval]:
    has_normalized = 'normalized_score' in df.columns
    intervals = []
    for row in df.itertuples(index=False):
        normalized = getattr(row, 'normalized_score') if has_normalized else None
        if normalized is not None and pd.isna(normalized):
            normalized = None
        intervals.append(GenomicInterval(
            row.seqname, int(row.start), int(row.end), row.strand,
            row.score, normalized
        ))
    return intervals


def validate_intervals(df: pd.DataFrame, sample: str = None):
    """
    Check an interval table before any computation.

    Raises:
        ConfigurationError: missing columns, unstranded or malformed intervals.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ConfigurationError(f"missing required columns {missing}", sample=sample)
    if df.empty:
        return

    bad_strand = ~df['strand'].isin(VALID_STRANDS)
    if bad_strand.any():
        found = sorted(df.loc[bad_strand, 'strand'].astype(str).unique())
        raise ConfigurationError(
            f"{int(bad_strand.sum())} intervals are not on '+' or '-' strand (found {found})",
            sample=sample
        )

    if df[['start', 'end']].isna().any().any():
        raise ConfigurationError("intervals with missing coordinates", sample=sample)
    inverted = df['start'] > df['end']
    if inverted.any():
        raise ConfigurationError(
            f"{int(inverted.sum())} intervals have start > end", sample=sample
        )

    scores = df['score']
    if scores.isna().any() or (scores < 0).any():
        raise ConfigurationError("scores must be non-negative numbers", sample=sample)


def sort_intervals(df: pd.DataFrame) -> pd.DataFrame:
    """Sort by seqname, start and strand, the order TSR tables are reported in."""
    return df.sort_values(
        ['seqname', 'start', 'strand', 'end'], kind='mergesort'
    ).reset_index(drop=True)


def stretch(df: pd.DataFrame, max_distance: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Expand every interval by max_distance on both ends.

    The expanded bounds are only used to test connectivity; they never
    become reported coordinates.
    """
    if max_distance < 0:
        raise ConfigurationError(
            f"max_distance must be non-negative, got {max_distance}",
            parameter='max_distance'
        )
    starts = df['start'].to_numpy(dtype=np.int64)
    ends = df['end'].to_numpy(dtype=np.int64)
    return starts - max_distance, ends + max_distance


def merge_groups(df: pd.DataFrame, max_distance: int = 0,
                 merge_adjacent: bool = True) -> np.ndarray:
    """
    Assign every interval to a merge group.

    Intervals are sorted by (seqname, strand, start, end) and swept per
    (seqname, strand) partition. An interval joins the current group when
    its stretched start reaches the running maximum of the stretched ends
    seen so far in the group.

    Args:
        df: Interval table
        max_distance: Stretch applied to both ends before testing overlap
        merge_adjacent: Also merge book-ended intervals (end + 1 == start)

    Returns:
        Array of group ids aligned with the rows of df
    """
    exp_start, exp_end = stretch(df, max_distance)
    n = len(df)
    if n == 0:
        return np.zeros(0, dtype=np.int64)

    ordered = df[INTERVAL_COLUMNS].reset_index(drop=True)
    ordered = ordered.sort_values(['seqname', 'strand', 'start', 'end'], kind='mergesort')
    order = ordered.index.to_numpy()
    exp_start = exp_start[order]
    exp_end = exp_end[order]

    seqnames = ordered['seqname'].to_numpy()
    strands = ordered['strand'].to_numpy()
    new_partition = np.ones(n, dtype=bool)
    new_partition[1:] = (seqnames[1:] != seqnames[:-1]) | (strands[1:] != strands[:-1])
    partition_id = np.cumsum(new_partition)

    running_end = pd.Series(exp_end).groupby(partition_id).cummax().to_numpy()
    gap = 1 if merge_adjacent else 0
    new_group = new_partition.copy()
    new_group[1:] |= exp_start[1:] > running_end[:-1] + gap

    groups = np.empty(n, dtype=np.int64)
    groups[order] = np.cumsum(new_group) - 1
    return groups


def find_overlaps(query: pd.DataFrame, subject: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find every directed overlap between two interval tables.

    Subject intervals may overlap each other; a query overlapping several
    subjects is reported once per subject.

    Returns:
        (query_rows, subject_rows) positional index arrays, one entry per pair
    """
    query_rows, subject_rows = [], []
    if query.empty or subject.empty:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)

    q_start_all = query['start'].to_numpy(dtype=np.int64)
    q_end_all = query['end'].to_numpy(dtype=np.int64)
    s_start_all = subject['start'].to_numpy(dtype=np.int64)
    s_end_all = subject['end'].to_numpy(dtype=np.int64)

    subject_parts = subject.reset_index(drop=True).groupby(['seqname', 'strand'], sort=False).indices
    query_parts = query.reset_index(drop=True).groupby(['seqname', 'strand'], sort=False).indices

    for key, q_idx in query_parts.items():
        s_idx = subject_parts.get(key)
        if s_idx is None:
            continue
        s_idx = s_idx[np.argsort(s_start_all[s_idx], kind='mergesort')]
        s_start = s_start_all[s_idx]
        s_end = s_end_all[s_idx]
        # Running max of ends is sorted, so it bounds the candidates from the left
        reach = np.maximum.accumulate(s_end)

        q_start = q_start_all[q_idx]
        q_end = q_end_all[q_idx]
        hi = np.searchsorted(s_start, q_end, side='right')
        lo = np.searchsorted(reach, q_start, side='left')
        counts = np.clip(hi - lo, 0, None)
        if counts.sum() == 0:
            continue

        offsets = np.arange(counts.sum()) - np.repeat(np.cumsum(counts) - counts, counts)
        candidates = np.repeat(lo, counts) + offsets
        keep = s_end[candidates] >= np.repeat(q_start, counts)
        query_rows.append(np.repeat(q_idx, counts)[keep])
        subject_rows.append(s_idx[candidates[keep]])

    if not query_rows:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
    return np.concatenate(query_rows), np.concatenate(subject_rows)
