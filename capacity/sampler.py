"""
Cluster sampler - reads request and pod utilization of compute nodes
Each sample costs three sequential Prometheus instant queries
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from capacity.cluster import Cluster
from config import COMPUTE_NODE_SELECTOR
from metrics.prometheus_client import single_value_query

logger = logging.getLogger(__name__)

QueryFn = Callable[[Cluster, str], float]


class SamplingCancelledError(Exception):
    """The caller gave up before all queries were issued"""
    pass


@dataclass(frozen=True)
class UtilizationSample:
    cpu_requests: float
    memory_requests: float
    pod_capacity: float

    def as_fractions(self) -> Tuple[float, float, float]:
        return (self.cpu_requests, self.memory_requests, self.pod_capacity)


def _compute_nodes(selector: str) -> str:
    return f"on(node) kube_node_labels{{{selector}}}"


def cpu_requests_query(selector: str = COMPUTE_NODE_SELECTOR) -> str:
    nodes = _compute_nodes(selector)
    return (
        f"sum(kube_pod_container_resource_requests_cpu_cores and {nodes})"
        f" / sum(node:node_num_cpu:sum and {nodes})"
    )


def memory_requests_query(selector: str = COMPUTE_NODE_SELECTOR) -> str:
    nodes = _compute_nodes(selector)
    return (
        f"sum(kube_pod_container_resource_requests_memory_bytes and {nodes})"
        f" / sum(node:node_memory_bytes_total:sum and {nodes})"
    )


def pod_capacity_query(selector: str = COMPUTE_NODE_SELECTOR) -> str:
    nodes = _compute_nodes(selector)
    return (
        f"count(kube_pod_info and on(pod) kube_pod_container_status_running == 1 and {nodes})"
        f" / sum(kube_node_status_capacity_pods and {nodes})"
    )


def sample_cluster(cluster: Cluster,
                   query: Optional[QueryFn] = None,
                   cancel_event: Optional[threading.Event] = None) -> UtilizationSample:
    """Sample CPU, memory and pod utilization of one cluster.

    Any PrometheusError from `query` propagates unchanged and aborts the
    sample. If `cancel_event` is set, no further query is issued.

    Raises:
        PrometheusError: If a query fails or is ambiguous
        SamplingCancelledError: If `cancel_event` was set
    """
    if query is None:
        query = single_value_query
    values = []
    for promql in (cpu_requests_query(), memory_requests_query(), pod_capacity_query()):
        if cancel_event is not None and cancel_event.is_set():
            raise SamplingCancelledError(f"sampling of {cluster.id} cancelled")
        values.append(query(cluster, promql))
    return UtilizationSample(*values)
