"""Command line tests using typer's CliRunner."""

import pandas as pd
from typer.testing import CliRunner

from TSRpy.main import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "TSRpy version" in result.output


def test_clustering(tmp_path, sample_files):
    out_dir = tmp_path / "tsrs"
    args = ["clustering", "run", "-o", str(out_dir), "-d", "25", "--threshold", "2"]
    for path in sample_files:
        args += ["-i", str(path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    tsrs = pd.read_csv(out_dir / "WT_1.tsr.raw.tsv", sep='\t')
    assert list(tsrs['start']) == [100, 105, 400]
    assert tsrs.loc[0, 'score'] == 10


def test_clustering_wide_table(tmp_path, wide_tss_table):
    table = tmp_path / "tss.tsv"
    wide_tss_table.to_csv(table, sep='\t', index=False)
    out_dir = tmp_path / "tsrs"
    result = runner.invoke(app, ["clustering", "run", "-t", str(table), "-o", str(out_dir)])
    assert result.exit_code == 0, result.output
    assert (out_dir / "WT_2.tsr.raw.tsv").exists()


def test_clustering_bad_distance(tmp_path, sample_files):
    result = runner.invoke(app, [
        "clustering", "run", "-i", str(sample_files[0]), "-o", str(tmp_path / "x"), "--max-distance=-3"
    ])
    assert result.exit_code == 2


def test_associate(tmp_path, sample_files):
    tsr_dir = tmp_path / "tsrs"
    cluster_args = ["clustering", "run", "-o", str(tsr_dir)]
    for path in sample_files:
        cluster_args += ["-i", str(path)]
    assert runner.invoke(app, cluster_args).exit_code == 0

    out_dir = tmp_path / "associated"
    args = ["associate", "run", "-o", str(out_dir)]
    for path in sample_files:
        args += ["-t", str(path)]
    for name in ("WT_1", "WT_2"):
        args += ["-r", str(tsr_dir / f"{name}.tsr.raw.tsv")]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    associated = pd.read_csv(out_dir / "WT_1.tss.raw.tsv", sep='\t')
    assert associated['TSR_FHASH'].notna().all()
    assert (associated['tsr_sample'] == 'WT_1').all()


def test_associate_sample_sheet(tmp_path, sample_files):
    tsr = tmp_path / "ref.tsv"
    pd.DataFrame({
        'seqname': ['chr1'], 'start': [100], 'end': [110], 'strand': ['+'], 'score': [10], 'n_unique': [2],
    }).to_csv(tsr, sep='\t', index=False)
    sheet = tmp_path / "sheet.tsv"
    pd.DataFrame({'tsr_sample': ['ref', 'ref'], 'tss_sample': ['WT_1', 'WT_2']}).to_csv(sheet, sep='\t', index=False)

    out_dir = tmp_path / "associated"
    args = ["associate", "run", "-r", str(tsr), "-s", str(sheet), "-o", str(out_dir)]
    for path in sample_files:
        args += ["-t", str(path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    associated = pd.read_csv(out_dir / "WT_2.tss.raw.tsv", sep='\t')
    assert associated['TSR_FHASH'].notna().sum() == 1


def test_associate_unpaired(tmp_path, sample_files):
    result = runner.invoke(app, [
        "associate", "run", "-t", str(sample_files[0]), "-r", str(sample_files[1]), "-o", str(tmp_path / "x")
    ])
    assert result.exit_code == 2


def test_merge(tmp_path, sample_files):
    out_dir = tmp_path / "merged"
    args = ["mergeSamples", "run", "-o", str(out_dir), "--data-type", "tss", "-g", "wt", "-m", "1 1"]
    for path in sample_files:
        args += ["-i", str(path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    merged = pd.read_csv(out_dir / "wt.tss.raw.tsv", sep='\t')
    assert merged['n_samples'].max() == 2


def test_normalize(tmp_path, sample_files):
    out_dir = tmp_path / "normalized"
    args = ["mergeSamples", "normalize", "-o", str(out_dir)]
    for path in sample_files:
        args += ["-i", str(path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    normalized = pd.read_csv(out_dir / "WT_1.tss.normalized.tsv", sep='\t')
    assert abs(normalized['normalized_score'].sum() - 1e6) < 1e-3


def test_threshold(tmp_path, sample_files):
    out_dir = tmp_path / "filtered"
    args = ["threshold", "run", "-o", str(out_dir), "--threshold", "2", "--n-samples", "2"]
    for path in sample_files:
        args += ["-i", str(path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    filtered = pd.read_csv(out_dir / "WT_1.tss.raw.tsv", sep='\t')
    assert sorted(filtered['start']) == [100, 400]


def test_correlation(tmp_path, sample_files):
    output = tmp_path / "cor.tsv"
    args = ["correlation", "-o", str(output), "--method", "spearman"]
    for path in sample_files:
        args += ["-i", str(path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output

    cor = pd.read_csv(output, sep='\t')
    assert list(cor.columns) == ['sample_1', 'sample_2', 'cor']
    assert len(cor) == 4
    diagonal = cor[cor['sample_1'] == cor['sample_2']]
    assert ((diagonal['cor'] - 1.0).abs() < 1e-9).all()


def test_correlation_bad_method(tmp_path, sample_files):
    result = runner.invoke(app, ["correlation", "-i", str(sample_files[0]), "--method", "cosine"])
    assert result.exit_code == 2
