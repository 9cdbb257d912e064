#!/usr/bin/env python3
"""
HTTP surface of the self-service portal capacity API

Endpoints:
- /api/ose/clustercapacity: runs a recommendation and returns the least loaded cluster
- /api/ose/clusters: configured OpenShift clusters (without credentials)
- /api/ose/features: volume backend toggles of one cluster
- /health, /metrics: liveness and self-monitoring

Failures are answered with a generic message; the cause only goes to the log.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from flask import Flask, jsonify, Response, request

from config import (
    setup_logging,
    validate_config,
    ConfigValidationError,
    get_clusters,
    GENERIC_API_ERROR,
    PORTAL_HOST,
    PORTAL_PORT,
    DEBUG,
    CAPACITY_RUN_TIMEOUT_SECONDS,
)
from capacity import recommender
from capacity.cluster import find_cluster
from capacity.sampler import SamplingCancelledError
from metrics.prometheus_client import PrometheusError

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Metrics for observability
_metrics = {
    'requests_total': 0,
    'requests_by_endpoint': {},
    'errors_total': 0,
    'recommendations_total': 0,
    'recommendation_failures_total': 0,
    'start_time': time.time()
}


def _record_request(endpoint: str):
    """Record request metrics"""
    _metrics['requests_total'] += 1
    _metrics['requests_by_endpoint'][endpoint] = _metrics['requests_by_endpoint'].get(endpoint, 0) + 1


def _api_error(status: int = 400):
    _metrics['errors_total'] += 1
    return jsonify({'message': GENERIC_API_ERROR}), status


@app.route('/api/ose/clustercapacity')
def cluster_capacity():
    """Recommend the least loaded cluster for a new project"""
    _record_request('/api/ose/clustercapacity')
    # Flask reports no client disconnect to a running handler, so sampling
    # stops at the next query once the caller has waited too long
    cancel_event = threading.Event()
    deadline = threading.Timer(CAPACITY_RUN_TIMEOUT_SECONDS, cancel_event.set)
    deadline.daemon = True
    deadline.start()
    try:
        clusters = get_clusters()
        result = recommender.evaluate(clusters, cancel_event=cancel_event)
    except (PrometheusError, recommender.ConfigurationError,
            ConfigValidationError, SamplingCancelledError) as e:
        logger.error(f"Cluster recommendation failed: {e}")
        _metrics['recommendation_failures_total'] += 1
        return _api_error()
    finally:
        deadline.cancel()

    _metrics['recommendations_total'] += 1
    return jsonify({'message': result.cluster.id})


@app.route('/api/ose/clusters')
def clusters():
    """List configured clusters"""
    _record_request('/api/ose/clusters')
    try:
        configured = get_clusters()
    except ConfigValidationError as e:
        logger.error(f"Cannot list clusters: {e}")
        return _api_error()
    return jsonify([c.to_dict() for c in configured])


@app.route('/api/ose/features')
def features():
    """NFS and Gluster availability of one cluster"""
    _record_request('/api/ose/features')
    cluster_id = request.args.get('clusterid', '')
    try:
        cluster = find_cluster(get_clusters(), cluster_id)
    except ConfigValidationError as e:
        logger.error(f"Cannot read cluster features: {e}")
        return _api_error()
    if cluster is None:
        if cluster_id:
            logger.warning(f"Cluster {cluster_id} not found")
        return jsonify({'nfs': False, 'gluster': False})
    return jsonify(cluster.features())


@app.route('/health')
def health():
    """Health check endpoint for liveness probes"""
    _record_request('/health')
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
    })


@app.route('/metrics')
def metrics():
    """Prometheus metrics endpoint for self-monitoring"""
    _record_request('/metrics')
    uptime = time.time() - _metrics['start_time']

    lines = [
        "# HELP ssp_portal_requests_total Total number of HTTP requests",
        "# TYPE ssp_portal_requests_total counter",
        f"ssp_portal_requests_total {_metrics['requests_total']}",
        "",
        "# HELP ssp_portal_errors_total Total number of error responses",
        "# TYPE ssp_portal_errors_total counter",
        f"ssp_portal_errors_total {_metrics['errors_total']}",
        "",
        "# HELP ssp_portal_recommendations_total Successful cluster recommendations",
        "# TYPE ssp_portal_recommendations_total counter",
        f"ssp_portal_recommendations_total {_metrics['recommendations_total']}",
        "",
        "# HELP ssp_portal_recommendation_failures_total Failed cluster recommendations",
        "# TYPE ssp_portal_recommendation_failures_total counter",
        f"ssp_portal_recommendation_failures_total {_metrics['recommendation_failures_total']}",
        "",
        "# HELP ssp_portal_uptime_seconds Portal uptime in seconds",
        "# TYPE ssp_portal_uptime_seconds gauge",
        f"ssp_portal_uptime_seconds {uptime:.2f}",
    ]

    lines.append("")
    lines.append("# HELP ssp_portal_requests_by_endpoint Requests per endpoint")
    lines.append("# TYPE ssp_portal_requests_by_endpoint counter")
    for endpoint, count in _metrics['requests_by_endpoint'].items():
        lines.append(f'ssp_portal_requests_by_endpoint{{endpoint="{endpoint}"}} {count}')

    return Response('\n'.join(lines), mimetype='text/plain')


def main() -> int:
    setup_logging()
    try:
        validate_config()
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info("Cloud SSP capacity API is running")
    logger.info(f"Listening on http://{PORTAL_HOST}:{PORTAL_PORT}")
    app.run(debug=DEBUG, host=PORTAL_HOST, port=PORTAL_PORT)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
