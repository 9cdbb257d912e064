import logging
import math
from dataclasses import dataclass
from typing import List, Dict, Any
import requests

from capacity.cluster import Cluster
from config import (
    PROMETHEUS_TIMEOUT_SECONDS,
    PROMETHEUS_VERIFY_TLS,
    PROMETHEUS_ROUTE_NAMESPACE,
    PROMETHEUS_ROUTE_NAME,
)

logger = logging.getLogger(__name__)


class PrometheusError(Exception):
    """Base error for any failure talking to a cluster's Prometheus"""
    pass


class PrometheusConnectionError(PrometheusError):
    """Transport failure: connection refused, timeout, TLS"""
    pass


class PrometheusQueryError(PrometheusError):
    """Prometheus answered, but not with a usable result"""
    pass


class AmbiguousResultError(PrometheusQueryError):
    """A single-value query returned more than one row"""
    pass


@dataclass(frozen=True)
class InstantSample:
    """One row of an instant-vector result"""
    metric: Dict[str, str]
    timestamp: float
    value: float


def _auth_headers(cluster: Cluster) -> Dict[str, str]:
    if not cluster.token:
        return {}
    return {'Authorization': f'Bearer {cluster.token}'}


def _get(url: str, cluster: Cluster, params: Dict[str, Any] = None) -> requests.Response:
    try:
        return requests.get(
            url,
            params=params,
            headers=_auth_headers(cluster),
            timeout=PROMETHEUS_TIMEOUT_SECONDS,
            verify=PROMETHEUS_VERIFY_TLS,
        )
    except requests.RequestException as e:
        raise PrometheusConnectionError(f"request to cluster {cluster.id} failed: {e}")


def resolve_prometheus_url(cluster: Cluster) -> str:
    """Return the Prometheus base URL of a cluster.

    Uses `cluster.prometheus_url` when configured. Otherwise the host is read
    from the monitoring route through the cluster's OpenShift API, which
    requires the cluster token.
    """
    if cluster.prometheus_url:
        return cluster.prometheus_url.rstrip('/')

    if not cluster.token:
        raise PrometheusError(
            f"cluster token not configured for {cluster.id}, cannot discover Prometheus route"
        )
    if not cluster.url:
        raise PrometheusError(f"cluster url not configured for {cluster.id}")

    url = (
        f"{cluster.url.rstrip('/')}/apis/route.openshift.io/v1/namespaces/"
        f"{PROMETHEUS_ROUTE_NAMESPACE}/routes/{PROMETHEUS_ROUTE_NAME}"
    )
    r = _get(url, cluster)
    if r.status_code != 200:
        raise PrometheusQueryError(
            f"could not read Prometheus route of {cluster.id}: status {r.status_code}: {r.text}"
        )
    try:
        route = r.json()
    except ValueError as e:
        raise PrometheusQueryError(f"invalid route response from {cluster.id}: {e}")

    host = (route.get('spec') or {}).get('host') if isinstance(route, dict) else None
    if not host:
        raise PrometheusQueryError(f"Prometheus route of {cluster.id} has no spec.host")
    return f"https://{host}"


def _parse_instant_sample(row: Any) -> InstantSample:
    if not isinstance(row, dict):
        raise PrometheusQueryError(f"unexpected result row: {row!r}")
    value = row.get('value')
    # value is [<unix timestamp>, "<number as string>"]
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise PrometheusQueryError(f"result row has no value pair: {row!r}")
    try:
        ts = float(value[0])
        val = float(value[1])
    except (TypeError, ValueError) as e:
        raise PrometheusQueryError(f"unparsable sample value {value!r}: {e}")
    return InstantSample(metric=row.get('metric') or {}, timestamp=ts, value=val)


def query_instant(cluster: Cluster, promql: str) -> List[InstantSample]:
    """
    Query Prometheus `/api/v1/query` of `cluster` and return the typed instant vector.
    Vector and scalar results are accepted; anything else raises PrometheusQueryError.
    """
    if not promql:
        raise PrometheusQueryError("empty query")

    base_url = resolve_prometheus_url(cluster)
    logger.debug(f"[{cluster.id}] Calling {base_url}/api/v1/query")
    r = _get(f"{base_url}/api/v1/query", cluster, params={'query': promql})
    if r.status_code != 200:
        raise PrometheusQueryError(
            f"prometheus of {cluster.id} returned status {r.status_code}: {r.text}"
        )
    try:
        data = r.json()
    except ValueError as e:
        raise PrometheusQueryError(f"invalid JSON from prometheus of {cluster.id}: {e}")
    if not isinstance(data, dict) or data.get('status') != 'success':
        raise PrometheusQueryError(f"prometheus error from {cluster.id}: {data}")

    body = data.get('data') or {}
    result_type = body.get('resultType')
    if result_type == 'scalar':
        return [_parse_instant_sample({'metric': {}, 'value': body.get('result')})]
    if result_type != 'vector':
        raise PrometheusQueryError(
            f"expected vector result from {cluster.id}, got {result_type!r}"
        )
    return [_parse_instant_sample(row) for row in body.get('result') or []]


def single_value_query(cluster: Cluster, promql: str) -> float:
    """Run a query that must yield exactly one finite number"""
    samples = query_instant(cluster, promql)
    if len(samples) > 1:
        raise AmbiguousResultError(
            f"prometheus result of {cluster.id} contains {len(samples)} records, expected one"
        )
    if not samples:
        raise PrometheusQueryError(f"prometheus result of {cluster.id} is empty")
    value = samples[0].value
    if not math.isfinite(value):
        raise PrometheusQueryError(f"prometheus result of {cluster.id} is not finite: {value}")
    return value
