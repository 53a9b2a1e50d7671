#!/usr/bin/env python3
"""
TSRpy: Python CLI for TSS clustering and TSR analysis

Clusters transcription start sites (TSSs) from STRIPE-seq or CAGE data
into transcription start regions (TSRs), links TSSs back to TSRs and
builds consensus TSR sets across samples.

Main features:
- Count thresholding with cross-sample presence filtering
- Distance-based TSS clustering into TSRs
- TSS to TSR association
- Consensus merging of TSS/TSR samples and CPM scaling
- Between-sample correlation of counts

Usage:
    tsrpy <command> [options]

Commands:
    threshold     - Filter TSS positions by read count
    clustering    - Cluster TSSs into TSRs
    associate     - Associate TSSs with TSRs
    mergeSamples  - Merge samples into consensus sets, normalize scores
    correlation   - Calculate sample correlations
"""

import logging

import typer

from TSRpy import clustering
from TSRpy import association
from TSRpy import merge_samples
from TSRpy import thresholding
from TSRpy.correlation import correlation

__version__ = "0.1.0"

# Create main app
app = typer.Typer(
    name="tsrpy",
    help=f"TSRpy: Python CLI for TSS clustering and TSR analysis (v{__version__})",
    add_completion=False,
)

# Register all subcommands
app.add_typer(thresholding.app, name="threshold", help="Filter TSS positions by read count")
app.add_typer(clustering.app, name="clustering", help="Cluster TSSs into TSRs")
app.add_typer(association.app, name="associate", help="Associate TSSs with TSRs")
app.add_typer(merge_samples.app, name="mergeSamples", help="Merge samples and normalize scores")

# Register correlation as a direct command
app.command(name="correlation", help="Calculate sample correlations")(correlation)


@app.command()
def version():
    """Show version information."""
    typer.echo(f"TSRpy version {__version__}")
    typer.echo("A Python CLI for TSS clustering and TSR analysis")


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """
    TSRpy: Python CLI for TSS clustering and TSR analysis
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
