"""
Tests for the cluster recommender
"""
import threading

import pytest

import capacity.recommender as recommender_mod
from capacity.cluster import Cluster
from capacity.recommender import (
    ConfigurationError,
    NoEligibleClusterError,
    evaluate,
    recommend,
)
from capacity.sampler import SamplingCancelledError, UtilizationSample
from metrics.prometheus_client import PrometheusQueryError


def _marked(clusters):
    return [c.id for c in clusters if c.recommended]


class TestRecommend:
    """Selection of the least loaded cluster"""

    def test_selects_lowest_score(self, sample_clusters, fake_sampler):
        index = recommend(sample_clusters, sampler=fake_sampler)

        assert sample_clusters[index].id == 'cluster-b'
        assert _marked(sample_clusters) == ['cluster-b']

    def test_index_refers_to_input_sequence(self, sample_clusters, sample_utilization, fake_sampler):
        sample_utilization['cluster-c'] = UtilizationSample(0.1, 0.1, 0.1)

        index = recommend(sample_clusters, sampler=fake_sampler)

        # the excluded cluster sits at index 2, so C is at 3
        assert index == 3
        assert _marked(sample_clusters) == ['cluster-c']

    def test_excluded_clusters_are_not_sampled(self, sample_clusters, fake_sampler):
        recommend(sample_clusters, sampler=fake_sampler)

        assert fake_sampler.calls == ['cluster-a', 'cluster-b', 'cluster-c']

    def test_tie_keeps_first_cluster(self):
        clusters = [Cluster(id='x', name='x'), Cluster(id='y', name='y')]

        def sampler(cluster, cancel_event=None):
            return UtilizationSample(0.6, 0.6, 0.6)

        assert recommend(clusters, sampler=sampler) == 0
        assert _marked(clusters) == ['x']

    def test_zero_score_can_win(self):
        clusters = [Cluster(id='busy', name='busy'), Cluster(id='idle', name='idle')]
        samples = {
            'busy': UtilizationSample(0.5, 0.5, 0.5),
            'idle': UtilizationSample(0.0, 0.0, 0.0),
        }

        index = recommend(clusters, sampler=lambda c, cancel_event=None: samples[c.id])

        assert clusters[index].id == 'idle'

    def test_first_zero_score_is_not_replaced(self):
        clusters = [Cluster(id='idle', name='idle'), Cluster(id='busy', name='busy')]
        samples = {
            'idle': UtilizationSample(0.0, 0.0, 0.0),
            'busy': UtilizationSample(0.5, 0.5, 0.5),
        }

        assert recommend(clusters, sampler=lambda c, cancel_event=None: samples[c.id]) == 0

    def test_single_cluster_is_always_recommended(self):
        clusters = [Cluster(id='only', name='only')]

        index = recommend(clusters, sampler=lambda c, cancel_event=None: UtilizationSample(1, 1, 1))

        assert index == 0
        assert clusters[0].recommended is True

    def test_previous_mark_is_cleared(self, sample_clusters, fake_sampler):
        sample_clusters[0].recommended = True

        recommend(sample_clusters, sampler=fake_sampler)

        assert _marked(sample_clusters) == ['cluster-b']

    def test_uses_module_sampler_by_default(self, sample_clusters, fake_sampler, monkeypatch):
        monkeypatch.setattr(recommender_mod, 'sample_cluster', fake_sampler)

        assert sample_clusters[recommend(sample_clusters)].id == 'cluster-b'


class TestEvaluate:
    """Details reported by evaluate()"""

    def test_scores_for_each_eligible_cluster(self, sample_clusters, fake_sampler):
        result = evaluate(sample_clusters, sampler=fake_sampler)

        assert [(s.cluster.id, s.score) for s in result.scores] == [
            ('cluster-a', 0.84),
            ('cluster-b', 0.6),
            ('cluster-c', 0.65),
        ]
        assert result.cluster is sample_clusters[1]
        assert result.index == 1

    def test_cancel_event_is_passed_to_sampler(self, sample_clusters):
        event = threading.Event()
        received = []

        def sampler(cluster, cancel_event=None):
            received.append(cancel_event)
            return UtilizationSample(0.1, 0.1, 0.1)

        evaluate(sample_clusters, sampler=sampler, cancel_event=event)

        assert received and all(e is event for e in received)


class TestFailures:
    """Runs that cannot produce a recommendation"""

    def test_empty_list(self):
        with pytest.raises(NoEligibleClusterError):
            recommend([], sampler=lambda c, cancel_event=None: UtilizationSample(0, 0, 0))

    def test_all_excluded(self):
        clusters = [
            Cluster(id='p', name='p', exclusion_group='private'),
            Cluster(id='d', name='d', exclusion_group='deprecated'),
        ]
        calls = []

        def sampler(cluster, cancel_event=None):
            calls.append(cluster.id)
            return UtilizationSample(0, 0, 0)

        with pytest.raises(ConfigurationError):
            recommend(clusters, sampler=sampler)
        assert calls == []
        assert _marked(clusters) == []

    def test_sampling_error_aborts_run(self, sample_clusters, sample_utilization):
        calls = []

        def sampler(cluster, cancel_event=None):
            calls.append(cluster.id)
            if cluster.id == 'cluster-b':
                raise PrometheusQueryError("status 503")
            return sample_utilization[cluster.id]

        with pytest.raises(PrometheusQueryError):
            recommend(sample_clusters, sampler=sampler)

        assert calls == ['cluster-a', 'cluster-b']
        assert _marked(sample_clusters) == []

    def test_cancellation_marks_nothing(self, sample_clusters):
        def sampler(cluster, cancel_event=None):
            raise SamplingCancelledError("cancelled")

        with pytest.raises(SamplingCancelledError):
            recommend(sample_clusters, sampler=sampler)
        assert _marked(sample_clusters) == []
