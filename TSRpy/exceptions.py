#!/usr/bin/env python3
"""
Exceptions raised by the TSRpy engines.
"""


class TSRpyError(Exception):
    """Base exception for all TSRpy errors."""
    pass


class ConfigurationError(TSRpyError):
    """Invalid parameters or input tables, raised before any computation."""

    def __init__(self, message: str, sample: str = None, parameter: str = None):
        super().__init__(message)
        self.sample = sample
        self.parameter = parameter

    def __str__(self):
        context = []
        if self.sample is not None:
            context.append(f"sample '{self.sample}'")
        if self.parameter is not None:
            context.append(f"parameter '{self.parameter}'")
        if context:
            return f"Configuration error ({', '.join(context)}): {super().__str__()}"
        return f"Configuration error: {super().__str__()}"
