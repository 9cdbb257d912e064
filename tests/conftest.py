"""
Test fixtures and configuration for pytest
"""
import pytest
from unittest.mock import MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capacity.cluster import Cluster
from capacity.sampler import UtilizationSample


@pytest.fixture
def sample_clusters():
    """Three eligible clusters plus one private cluster"""
    return [
        Cluster(id='cluster-a', name='Cluster A', url='https://api.a.example.com:6443',
                token='token-a', prometheus_url='https://prometheus.a.example.com'),
        Cluster(id='cluster-b', name='Cluster B', url='https://api.b.example.com:6443',
                token='token-b', prometheus_url='https://prometheus.b.example.com'),
        Cluster(id='cluster-private', name='Private', url='https://api.p.example.com:6443',
                token='token-p', exclusion_group='private'),
        Cluster(id='cluster-c', name='Cluster C', url='https://api.c.example.com:6443',
                token='token-c', prometheus_url='https://prometheus.c.example.com'),
    ]


@pytest.fixture
def sample_utilization():
    """Utilization per cluster id: A scores 0.84, B 0.6, C 0.65"""
    return {
        'cluster-a': UtilizationSample(0.9, 0.2, 0.4),
        'cluster-b': UtilizationSample(0.6, 0.6, 0.6),
        'cluster-c': UtilizationSample(0.5, 0.6, 0.7),
    }


@pytest.fixture
def fake_sampler(sample_utilization):
    """Sampler that answers from sample_utilization and records the order of calls"""
    calls = []

    def sampler(cluster, cancel_event=None):
        calls.append(cluster.id)
        return sample_utilization[cluster.id]

    sampler.calls = calls
    return sampler


@pytest.fixture
def prometheus_vector_response():
    """Factory for a successful instant-vector response with the given values"""
    def build(*values):
        return {
            "status": "success",
            "data": {
                "resultType": "vector",
                "result": [
                    {"metric": {}, "value": [1704355200.123, str(v)]}
                    for v in values
                ]
            }
        }
    return build


@pytest.fixture
def mock_response():
    """Factory for a requests.Response double"""
    def build(status_code=200, payload=None, text=''):
        resp = MagicMock()
        resp.status_code = status_code
        resp.text = text
        resp.json.return_value = payload
        return resp
    return build
