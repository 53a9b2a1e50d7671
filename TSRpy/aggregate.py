#!/usr/bin/env python3
"""
Aggregate - Reduce merge groups of intervals into summary intervals
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from typing import Optional, Dict, Tuple

from TSRpy.exceptions import ConfigurationError
from TSRpy.intervals import add_feature_hash

OPTIONAL_SCORE_FIELDS = ('normalized_score',)


@dataclass(frozen=True)
class ScoreSchema:
    """
    Numeric fields summed when intervals are aggregated.

    The schema is declared up front; a declared field that is absent or
    only partly present in the input is rejected instead of silently
    producing nulls.
    """

    sum_fields: Tuple[str, ...] = ('score',)

    @classmethod
    def for_frame(cls, df: pd.DataFrame) -> 'ScoreSchema':
        """Declare 'score' plus every optional score field carried by df."""
        fields = ['score']
        for field in OPTIONAL_SCORE_FIELDS:
            if field in df.columns and df[field].notna().any():
                fields.append(field)
        return cls(tuple(fields))

    @property
    def has_normalized(self) -> bool:
        return 'normalized_score' in self.sum_fields

    def validate(self, df: pd.DataFrame, sample: str = None):
        for field in self.sum_fields:
            if field not in df.columns:
                raise ConfigurationError(
                    f"score field '{field}' is declared but missing", sample=sample, parameter=field
                )
            n_missing = int(df[field].isna().sum())
            if n_missing:
                raise ConfigurationError(
                    f"'{field}' is missing for {n_missing} of {len(df)} intervals",
                    sample=sample, parameter=field
                )

    def output_columns(self, extra: Tuple[str, ...] = ()) -> list:
        """Column order of aggregated tables."""
        sums = [f for f in self.sum_fields if f != 'score']
        return ['seqname', 'start', 'end', 'strand', 'width', 'score', 'n_unique'] + sums + list(extra) + ['FHASH']


def aggregate_scores(df: pd.DataFrame,
                     groups: np.ndarray,
                     schema: ScoreSchema,
                     sample: str = None,
                     count_distinct: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """
    Collapse each merge group into one interval.

    Boundaries come from the original member coordinates (min start,
    max end), every schema field is summed and n_unique counts members.

    Args:
        df: Interval table
        groups: Group id per row of df (from merge_groups)
        schema: Score fields to sum
        sample: Sample name used in error messages
        count_distinct: Output column -> input column, counted as number of
            distinct values per group (e.g. {'n_samples': 'sample'})

    Returns:
        One row per group, unsorted
    """
    schema.validate(df, sample)
    count_distinct = count_distinct or {}
    columns = schema.output_columns(tuple(count_distinct))

    if df.empty:
        return pd.DataFrame(columns=columns)
    if len(groups) != len(df):
        raise ValueError(f"Got {len(groups)} group ids for {len(df)} intervals")

    keep = ['seqname', 'strand', 'start', 'end'] + list(schema.sum_fields) + list(count_distinct.values())
    work = df[list(dict.fromkeys(keep))].reset_index(drop=True)
    work['_group'] = groups

    spec = {
        'seqname': ('seqname', 'first'),
        'strand': ('strand', 'first'),
        'start': ('start', 'min'),
        'end': ('end', 'max'),
        'n_unique': ('start', 'size'),
    }
    for field in schema.sum_fields:
        spec[field] = (field, 'sum')
    for out_col, in_col in count_distinct.items():
        spec[out_col] = (in_col, 'nunique')

    result = work.groupby('_group', sort=True).agg(**spec).reset_index(drop=True)
    result = add_feature_hash(result)
    return result[columns]
