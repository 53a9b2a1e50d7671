"""Tests for TSS clustering into TSRs."""

import pandas as pd
import pytest

from TSRpy.clustering import cluster, cluster_sample, filter_by_threshold
from TSRpy.config import ClusterConfig
from TSRpy.exceptions import ConfigurationError

from conftest import make_tss


# =============================================================================
# Test cluster_sample
# =============================================================================


class TestClusterSample:

    def test_default_distance(self, tss_sample):
        tsrs = cluster_sample(tss_sample)
        assert list(tsrs['seqname']) == ['chr1', 'chr1', 'chr1', 'chr2']
        assert list(tsrs['start']) == [100, 105, 400, 50]
        assert list(tsrs['strand']) == ['+', '-', '+', '+']

        first = tsrs.iloc[0]
        assert (first['start'], first['end']) == (100, 120)
        assert first['width'] == 21
        assert first['score'] == 10
        assert first['n_unique'] == 3
        assert first['FHASH'] == "chr1:100:120:+"

    def test_zero_distance_merges_adjacent_only(self):
        tss = make_tss([('chr1', 100, '+', 1), ('chr1', 101, '+', 1), ('chr1', 103, '+', 1)])
        tsrs = cluster_sample(tss, max_distance=0)
        assert list(tsrs['start']) == [100, 103]
        assert list(tsrs['end']) == [101, 103]

    def test_max_width_drops_tsr(self):
        tss = make_tss([('chr1', 100, '+', 2), ('chr1', 130, '+', 3)])
        tsrs = cluster_sample(tss, max_distance=25)
        assert len(tsrs) == 1
        assert tsrs.loc[0, 'width'] == 31

        assert cluster_sample(tss, max_distance=25, max_width=20).empty

    def test_max_width_keeps_narrow(self, tss_sample):
        tsrs = cluster_sample(tss_sample, max_width=20)
        assert 100 not in list(tsrs['start'])
        assert len(tsrs) == 3

    def test_strand_isolation(self):
        tss = make_tss([('chr1', 100, '+', 1), ('chr1', 100, '-', 1)])
        for distance in (0, 25, 1000):
            assert len(cluster_sample(tss, max_distance=distance)) == 2

    def test_normalized_score(self):
        tss = make_tss([('chr1', 100, '+', 1), ('chr1', 105, '+', 3)], normalized=[10.0, 30.0])
        tsrs = cluster_sample(tss)
        assert tsrs.loc[0, 'normalized_score'] == pytest.approx(40.0)

    def test_empty(self):
        tsrs = cluster_sample(make_tss([]))
        assert tsrs.empty
        assert 'FHASH' in tsrs.columns


# =============================================================================
# Test threshold filtering
# =============================================================================


class TestFilterByThreshold:

    def test_no_threshold(self, tss_samples):
        filtered = filter_by_threshold(tss_samples)
        assert len(filtered['WT_1']) == len(tss_samples['WT_1'])

    def test_threshold_is_inclusive(self, tss_sample):
        filtered = filter_by_threshold({'WT_1': tss_sample}, threshold=3)
        assert sorted(filtered['WT_1']['score']) == [3, 4, 5, 7]

    def test_fractional_threshold(self, tss_sample):
        filtered = filter_by_threshold({'WT_1': tss_sample}, threshold=2.5)
        assert len(filtered['WT_1']) == 4

    def test_presence_gate(self):
        samples = {
            's1': make_tss([('chr1', 100, '+', 5)]),
            's2': make_tss([('chr1', 100, '+', 2)]),
            's3': make_tss([('chr1', 100, '+', 6)]),
        }
        filtered = filter_by_threshold(samples, threshold=3, n_samples=2)
        assert len(filtered['s1']) == 1
        assert filtered['s2'].empty
        assert len(filtered['s3']) == 1

    def test_presence_gate_drops_rare_positions(self):
        samples = {
            's1': make_tss([('chr1', 100, '+', 50), ('chr1', 500, '+', 5)]),
            's2': make_tss([('chr1', 500, '+', 5)]),
        }
        filtered = filter_by_threshold(samples, threshold=3, n_samples=2)
        assert list(filtered['s1']['start']) == [500]
        assert list(filtered['s2']['start']) == [500]

    def test_n_samples_without_threshold(self, tss_samples):
        filtered = filter_by_threshold(tss_samples, n_samples=5)
        assert len(filtered['WT_2']) == len(tss_samples['WT_2'])


# =============================================================================
# Test cluster
# =============================================================================


class TestCluster:

    def test_one_tsr_set_per_sample(self, tss_samples):
        tsr_samples = cluster(tss_samples)
        assert set(tsr_samples) == {'WT_1', 'WT_2'}
        assert len(tsr_samples['WT_2']) == 3

    def test_does_not_mutate_input(self, tss_samples):
        before = {name: df.copy() for name, df in tss_samples.items()}
        cluster(tss_samples, threshold=3, n_samples=1)
        for name, df in tss_samples.items():
            pd.testing.assert_frame_equal(df, before[name])

    def test_presence_gate_example(self):
        samples = {
            's1': make_tss([('chr1', 100, '+', 5)]),
            's2': make_tss([('chr1', 100, '+', 2)]),
            's3': make_tss([('chr1', 100, '+', 6)]),
        }
        tsr_samples = cluster(samples, threshold=3, n_samples=2)
        assert list(tsr_samples['s1']['score']) == [5]
        assert tsr_samples['s2'].empty
        assert list(tsr_samples['s3']['score']) == [6]

    def test_empty_sample_after_filtering(self, tss_samples):
        tsr_samples = cluster(tss_samples, threshold=100)
        assert tsr_samples['WT_1'].empty
        assert tsr_samples['WT_2'].empty

    @pytest.mark.parametrize("distance", [0, 5, 25, 100, 1000])
    def test_score_conservation(self, tss_sample, distance):
        filtered = tss_sample[tss_sample['score'] >= 2]
        tsrs = cluster({'s': tss_sample}, threshold=2, max_distance=distance)['s']
        assert tsrs['score'].sum() == filtered['score'].sum()
        assert tsrs['n_unique'].sum() == len(filtered)

    def test_width_monotonicity(self, tss_sample):
        previous = None
        for distance in (0, 5, 10, 25, 150, 400):
            tsrs = cluster({'s': tss_sample}, max_distance=distance)['s']
            if previous is not None:
                assert len(tsrs) <= len(previous)
                for row in previous.itertuples():
                    container = tsrs[
                        (tsrs['seqname'] == row.seqname) & (tsrs['strand'] == row.strand) &
                        (tsrs['start'] <= row.start) & (tsrs['end'] >= row.end)
                    ]
                    assert len(container) == 1
                    assert container['width'].iloc[0] >= row.width
            previous = tsrs

    def test_parallel_matches_serial(self, tss_samples):
        serial = cluster(tss_samples, n_processes=1)
        parallel = cluster(tss_samples, n_processes=2)
        for name in serial:
            pd.testing.assert_frame_equal(serial[name], parallel[name])

    def test_negative_distance(self, tss_samples):
        with pytest.raises(ConfigurationError, match="max_distance"):
            cluster(tss_samples, max_distance=-1)

    def test_unstranded_rejects_whole_call(self, tss_samples):
        samples = dict(tss_samples)
        samples['bad'] = make_tss([('chr1', 100, '*', 1)])
        with pytest.raises(ConfigurationError, match="bad"):
            cluster(samples)

    def test_mixed_normalized_rejected(self):
        tss = make_tss([('chr1', 100, '+', 1), ('chr1', 101, '+', 1)], normalized=[1.0, None])
        with pytest.raises(ConfigurationError):
            cluster({'s': tss})


class TestClusterConfig:

    def test_defaults(self):
        config = ClusterConfig()
        assert config.max_distance == 25
        assert config.threshold is None
        assert config.to_dict()['n_processes'] == 1

    @pytest.mark.parametrize("kwargs", [
        {'max_distance': -5},
        {'max_distance': 2.5},
        {'max_width': 0},
        {'threshold': -1},
        {'n_samples': 0},
        {'n_processes': 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            ClusterConfig(**kwargs)
