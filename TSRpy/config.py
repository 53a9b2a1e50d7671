#!/usr/bin/env python3
"""
Per-operation configuration for clustering and merging.

Each public operation collects its parameters into one dataclass and
validates it on entry, so bad parameters are rejected before any sample
is touched.
"""

from dataclasses import dataclass, asdict
from numbers import Integral, Real
from typing import Optional, Dict, Any

from TSRpy.exceptions import ConfigurationError


def _is_count(value) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


@dataclass
class ClusterConfig:
    """Parameters of TSS clustering."""

    threshold: Optional[float] = None
    n_samples: Optional[int] = None
    max_distance: int = 25
    max_width: Optional[int] = None
    n_processes: int = 1

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.threshold is not None:
            if not isinstance(self.threshold, Real) or self.threshold < 0:
                raise ConfigurationError(
                    f"threshold must be a non-negative number, got {self.threshold!r}",
                    parameter="threshold"
                )
        if self.n_samples is not None:
            if not _is_count(self.n_samples) or self.n_samples < 1:
                raise ConfigurationError(
                    f"n_samples must be a positive integer, got {self.n_samples!r}",
                    parameter="n_samples"
                )
        if not _is_count(self.max_distance) or self.max_distance < 0:
            raise ConfigurationError(
                f"max_distance must be a non-negative integer, got {self.max_distance!r}",
                parameter="max_distance"
            )
        if self.max_width is not None:
            if not _is_count(self.max_width) or self.max_width < 1:
                raise ConfigurationError(
                    f"max_width must be a positive integer, got {self.max_width!r}",
                    parameter="max_width"
                )
        if not _is_count(self.n_processes) or self.n_processes < 1:
            raise ConfigurationError(
                f"n_processes must be a positive integer, got {self.n_processes!r}",
                parameter="n_processes"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MergeConfig:
    """Parameters of cross-sample merging."""

    max_distance: int = 0
    merge_adjacent: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self):
        if not _is_count(self.max_distance) or self.max_distance < 0:
            raise ConfigurationError(
                f"max_distance must be a non-negative integer, got {self.max_distance!r}",
                parameter="max_distance"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
