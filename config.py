import os
import json
import logging
import sys
from typing import Optional, List, Dict, Any, Tuple
from urllib.parse import urlparse

from capacity.cluster import Cluster, parse_clusters


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


# =============================================================================
# OpenShift Clusters Configuration
# =============================================================================
# Ordered list of clusters, loaded once at startup. Can be overridden via
# OPENSHIFT_CLUSTERS_JSON (inline JSON) or OPENSHIFT_CLUSTERS_FILE (path).
# Entries with a non-empty "exclusion_group" (e.g. "private", "deprecated")
# are listed but never recommended.
_DEFAULT_OPENSHIFT_CLUSTERS: List[Dict[str, Any]] = [
    {
        "id": "local",
        "name": "Local",
        "url": "https://localhost:6443",
        "prometheus_url": "http://localhost:9090",
    }
]

OPENSHIFT_CLUSTERS_FILE: Optional[str] = os.getenv("OPENSHIFT_CLUSTERS_FILE")


def _load_cluster_entries() -> Tuple[Any, Optional[str]]:
    """Load raw cluster entries from env var or file, defaults only when neither is set

    Returns:
        (entries, load_error); load_error is set when the configured source is unusable
    """
    env_json = os.getenv("OPENSHIFT_CLUSTERS_JSON")
    if env_json:
        try:
            return json.loads(env_json), None
        except json.JSONDecodeError as e:
            return [], f"OPENSHIFT_CLUSTERS_JSON is not valid JSON ({e})"
    if OPENSHIFT_CLUSTERS_FILE:
        try:
            with open(OPENSHIFT_CLUSTERS_FILE, 'r', encoding='utf-8') as f:
                return json.load(f), None
        except (OSError, json.JSONDecodeError) as e:
            return [], f"Could not read OPENSHIFT_CLUSTERS_FILE {OPENSHIFT_CLUSTERS_FILE} ({e})"
    return _DEFAULT_OPENSHIFT_CLUSTERS, None


OPENSHIFT_CLUSTERS, OPENSHIFT_CLUSTERS_LOAD_ERROR = _load_cluster_entries()


def get_clusters() -> List[Cluster]:
    """Build fresh Cluster objects from the loaded configuration.

    Every call returns new objects, so a recommendation run can mark its
    winner without touching state seen by concurrent runs.

    Raises:
        ConfigValidationError: If the cluster configuration could not be loaded or is malformed
    """
    if OPENSHIFT_CLUSTERS_LOAD_ERROR:
        raise ConfigValidationError(OPENSHIFT_CLUSTERS_LOAD_ERROR)
    if not isinstance(OPENSHIFT_CLUSTERS, list):
        raise ConfigValidationError("cluster configuration must be a JSON list")
    try:
        return parse_clusters(OPENSHIFT_CLUSTERS)
    except ValueError as e:
        raise ConfigValidationError(f"Invalid cluster configuration: {e}")


# =============================================================================
# Prometheus Configuration
# =============================================================================
PROMETHEUS_TIMEOUT_SECONDS: int = int(os.getenv("PROMETHEUS_TIMEOUT_SECONDS", "30"))
PROMETHEUS_VERIFY_TLS: bool = _env_bool("PROMETHEUS_VERIFY_TLS", True)
# Route used to discover the Prometheus host of a cluster without prometheus_url
PROMETHEUS_ROUTE_NAMESPACE: str = os.getenv("PROMETHEUS_ROUTE_NAMESPACE", "openshift-monitoring")
PROMETHEUS_ROUTE_NAME: str = os.getenv("PROMETHEUS_ROUTE_NAME", "prometheus-k8s")
# Label matcher selecting compute nodes in kube_node_labels
COMPUTE_NODE_SELECTOR: str = os.getenv(
    "COMPUTE_NODE_SELECTOR", "label_node_role_kubernetes_io_compute='true'"
)

# =============================================================================
# HTTP Server Configuration
# =============================================================================
PORTAL_HOST: str = os.getenv("PORTAL_HOST", "0.0.0.0")
PORTAL_PORT: int = int(os.getenv("PORTAL_PORT", "8000"))
DEBUG: bool = _env_bool("DEBUG", False)
# A recommendation request stops sampling once its caller has waited this long
CAPACITY_RUN_TIMEOUT_SECONDS: int = int(os.getenv("CAPACITY_RUN_TIMEOUT_SECONDS", "120"))
# Shown to callers on any upstream failure; the cause is only logged
GENERIC_API_ERROR: str = os.getenv(
    "GENERIC_API_ERROR",
    "Error calling the OpenShift API. Please open a ticket"
)

# Output directory for capacity reports
OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "output")


def get_report_output_path() -> str:
    """Get capacity report path: {OUTPUT_DIR}/capacity_report.json"""
    return os.path.join(OUTPUT_DIR, "capacity_report.json")


__all__ = [
    "OPENSHIFT_CLUSTERS",
    "OPENSHIFT_CLUSTERS_FILE",
    "OPENSHIFT_CLUSTERS_LOAD_ERROR",
    "get_clusters",
    "PROMETHEUS_TIMEOUT_SECONDS",
    "PROMETHEUS_VERIFY_TLS",
    "PROMETHEUS_ROUTE_NAMESPACE",
    "PROMETHEUS_ROUTE_NAME",
    "COMPUTE_NODE_SELECTOR",
    "PORTAL_HOST",
    "PORTAL_PORT",
    "DEBUG",
    "CAPACITY_RUN_TIMEOUT_SECONDS",
    "GENERIC_API_ERROR",
    "OUTPUT_DIR",
    "get_report_output_path",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "validate_config",
    "ConfigValidationError",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_cluster(cluster: Cluster) -> List[str]:
    errors = []
    if not cluster.prometheus_url and not cluster.url:
        errors.append(f"cluster '{cluster.id}' needs either url or prometheus_url")
    for attr in ('url', 'prometheus_url', 'gluster_api', 'nfs_api'):
        value = getattr(cluster, attr)
        if not value:
            continue
        try:
            _validate_url(f"OPENSHIFT_CLUSTERS[{cluster.id}].{attr}", value)
        except ConfigValidationError as e:
            errors.append(str(e))
    if not cluster.prometheus_url and not cluster.token:
        errors.append(
            f"cluster '{cluster.id}' has no token; Prometheus route discovery will fail"
        )
    return errors


def validate_config() -> None:
    """Validate all configuration values on startup

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []

    try:
        _validate_positive_int("PROMETHEUS_TIMEOUT_SECONDS", PROMETHEUS_TIMEOUT_SECONDS)
    except ConfigValidationError as e:
        errors.append(str(e))

    try:
        _validate_positive_int("PORTAL_PORT", PORTAL_PORT)
    except ConfigValidationError as e:
        errors.append(str(e))

    try:
        _validate_positive_int("CAPACITY_RUN_TIMEOUT_SECONDS", CAPACITY_RUN_TIMEOUT_SECONDS)
    except ConfigValidationError as e:
        errors.append(str(e))

    try:
        clusters = get_clusters()
    except ConfigValidationError as e:
        errors.append(str(e))
        clusters = []

    for cluster in clusters:
        errors.extend(_validate_cluster(cluster))

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
