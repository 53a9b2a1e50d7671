# TSRpy package init
"""
TSRpy: Python CLI for TSS clustering and TSR analysis

Clusters transcription start sites into transcription start regions,
associates TSSs with TSRs and merges samples into consensus sets.
"""

__version__ = "0.1.0"

from TSRpy.association import associate
from TSRpy.clustering import cluster
from TSRpy.correlation import find_correlation
from TSRpy.intervals import GenomicInterval, feature_hash
from TSRpy.merge_samples import merge
from TSRpy.thresholding import apply_threshold
from TSRpy.main import app, main

__all__ = [
    'app',
    'main',
    'associate',
    'cluster',
    'merge',
    'find_correlation',
    'apply_threshold',
    'GenomicInterval',
    'feature_hash',
    '__version__',
]
