"""Orchestrator: load clusters -> sample -> score -> recommend -> atomic report write.
Runs one recommendation outside the HTTP server, e.g. from a cron job, and keeps
the per-cluster samples so capacity trends can be inspected afterwards.
"""
import logging
import signal
import threading
from datetime import datetime, timezone
import json
import os
import tempfile
from typing import List, Dict, Any, Optional

from config import (
    setup_logging, validate_config, ConfigValidationError,
    get_clusters, get_report_output_path, OUTPUT_DIR
)
from capacity import recommender
from capacity.cluster import Cluster
from capacity.sampler import SamplingCancelledError
from metrics.prometheus_client import PrometheusError

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    fd, tmp = tempfile.mkstemp(prefix='.tmp_report_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        # Atomic replace
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def build_report(clusters: List[Cluster],
                 cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
    """Run a recommendation and describe every configured cluster

    Args:
        clusters: Ordered cluster list, the winner gets marked in place
        cancel_event: Set to stop before the next Prometheus query

    Returns:
        Report dict with the recommended cluster and per-cluster facts
    """
    result = recommender.evaluate(clusters, cancel_event=cancel_event)
    by_index = {s.index: s for s in result.scores}

    entries: List[Dict[str, Any]] = []
    for i, cluster in enumerate(clusters):
        entry: Dict[str, Any] = {
            'cluster': cluster.id,
            'name': cluster.name,
            'excluded': cluster.excluded,
            'exclusion_group': cluster.exclusion_group,
            'recommended': cluster.recommended,
        }
        scored = by_index.get(i)
        if scored is not None:
            entry.update({
                'cpu_requests': scored.sample.cpu_requests,
                'memory_requests': scored.sample.memory_requests,
                'pod_capacity': scored.sample.pod_capacity,
                'score': scored.score,
            })
        entries.append(entry)

    return {
        'generated_at': _now_iso(),
        'recommended_cluster': result.cluster.id,
        'cluster_count': len(clusters),
        'eligible_count': len(result.scores),
        'clusters': entries,
    }


def main() -> int:
    setup_logging()

    try:
        validate_config()
        logger.info("Configuration validated successfully")
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    os.makedirs(OUTPUT_DIR, exist_ok=True)
    output_path = get_report_output_path()

    # SIGTERM stops the run before the next Prometheus query
    cancel_event = threading.Event()
    previous_handler = signal.signal(signal.SIGTERM, lambda *_: cancel_event.set())

    clusters = get_clusters()
    logger.info(f"Sampling capacity of {len(clusters)} cluster(s)...")

    try:
        report = build_report(clusters, cancel_event=cancel_event)
    except (PrometheusError, recommender.ConfigurationError, SamplingCancelledError) as e:
        logger.error(f"Capacity run failed: {e}")
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    _atomic_write(output_path, json.dumps(report, indent=2))
    logger.info(f"Recommended cluster: {report['recommended_cluster']}")
    logger.info(f"Wrote capacity report to {output_path}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
