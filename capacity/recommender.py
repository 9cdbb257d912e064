"""
Cluster recommender - picks the least loaded OpenShift cluster for new projects
Samples every eligible cluster, scores it and marks the lowest score.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from capacity.cluster import Cluster
from capacity.sampler import UtilizationSample, sample_cluster
from capacity.scoring import score

logger = logging.getLogger(__name__)

SamplerFn = Callable[..., UtilizationSample]


class ConfigurationError(Exception):
    """The cluster configuration does not allow a recommendation"""
    pass


class NoEligibleClusterError(ConfigurationError):
    pass


@dataclass
class ClusterScore:
    index: int
    cluster: Cluster
    sample: UtilizationSample
    score: float


@dataclass
class Recommendation:
    index: int
    cluster: Cluster
    scores: List[ClusterScore] = field(default_factory=list)


def evaluate(clusters: Sequence[Cluster],
             sampler: Optional[SamplerFn] = None,
             cancel_event: Optional[threading.Event] = None) -> Recommendation:
    """Score every eligible cluster and mark the least loaded one.

    Excluded clusters are never sampled. The first error from `sampler` aborts
    the run and leaves every cluster unmarked. Ties keep the earlier cluster.

    Returns:
        Recommendation whose `index` points into `clusters`

    Raises:
        NoEligibleClusterError: If no cluster is left after exclusion
        PrometheusError: If sampling any cluster fails
        SamplingCancelledError: If `cancel_event` was set during the run
    """
    if sampler is None:
        sampler = sample_cluster
    for cluster in clusters:
        cluster.recommended = False

    candidates = [(i, c) for i, c in enumerate(clusters) if not c.excluded]
    if not candidates:
        raise NoEligibleClusterError(
            f"no cluster eligible for recommendation ({len(clusters)} configured)"
        )

    scores: List[ClusterScore] = []
    best: Optional[ClusterScore] = None
    for index, cluster in candidates:
        sample = sampler(cluster, cancel_event=cancel_event)
        value = score(sample.as_fractions())
        logger.info(
            f"Cluster capacity {cluster.id}: cpu: {sample.cpu_requests} "
            f"mem: {sample.memory_requests} pods: {sample.pod_capacity} score: {value}"
        )
        current = ClusterScore(index=index, cluster=cluster, sample=sample, score=value)
        scores.append(current)
        if best is None or current.score < best.score:
            best = current

    best.cluster.recommended = True
    logger.info(f"Recommended cluster: {best.cluster.id} (score {best.score})")
    return Recommendation(index=best.index, cluster=best.cluster, scores=scores)


def recommend(clusters: Sequence[Cluster],
              sampler: Optional[SamplerFn] = None,
              cancel_event: Optional[threading.Event] = None) -> int:
    """Mark the least loaded cluster and return its index in `clusters`"""
    return evaluate(clusters, sampler=sampler, cancel_event=cancel_event).index
