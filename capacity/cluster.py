"""OpenShift cluster model loaded from static configuration."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

_STRING_FIELDS = (
    'id', 'name', 'url', 'token', 'exclusion_group',
    'prometheus_url', 'gluster_api', 'nfs_api',
)


@dataclass
class Cluster:
    id: str
    name: str
    url: str = ''
    # never serialised, see to_dict()
    token: str = field(default='', repr=False)
    exclusion_group: str = ''
    prometheus_url: Optional[str] = None
    gluster_api: Optional[str] = None
    nfs_api: Optional[str] = None
    recommended: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cluster':
        """Build a cluster from one configuration entry

        Raises:
            ValueError: If the entry is not a mapping, has no id or a field is not a string
        """
        if not isinstance(data, dict):
            raise ValueError(f"cluster entry must be an object, got {type(data).__name__}")
        for key in _STRING_FIELDS:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"'{key}' must be a string, got {type(value).__name__}")
        cluster_id = (data.get('id') or '').strip()
        if not cluster_id:
            raise ValueError("cluster entry is missing 'id'")
        return cls(
            id=cluster_id,
            name=data.get('name') or cluster_id,
            url=data.get('url') or '',
            token=data.get('token') or '',
            exclusion_group=(data.get('exclusion_group') or '').strip(),
            prometheus_url=data.get('prometheus_url') or None,
            gluster_api=data.get('gluster_api') or None,
            nfs_api=data.get('nfs_api') or None,
        )

    @property
    def excluded(self) -> bool:
        """Clusters tagged with an exclusion group never get recommended"""
        return bool(self.exclusion_group)

    def features(self) -> Dict[str, bool]:
        return {
            'nfs': self.nfs_api is not None,
            'gluster': self.gluster_api is not None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'url': self.url,
            'exclusion_group': self.exclusion_group,
            'recommended': self.recommended,
        }


def parse_clusters(entries: Iterable[Dict[str, Any]]) -> List[Cluster]:
    """Parse configuration entries into an ordered cluster list.

    Raises:
        ValueError: On a malformed entry or a duplicate cluster id
    """
    clusters: List[Cluster] = []
    seen = set()
    for i, entry in enumerate(entries):
        try:
            cluster = Cluster.from_dict(entry)
        except ValueError as e:
            raise ValueError(f"clusters[{i}]: {e}")
        if cluster.id in seen:
            raise ValueError(f"clusters[{i}]: duplicate cluster id '{cluster.id}'")
        seen.add(cluster.id)
        clusters.append(cluster)
    return clusters


def find_cluster(clusters: Iterable[Cluster], cluster_id: str) -> Optional[Cluster]:
    for cluster in clusters:
        if cluster.id == cluster_id:
            return cluster
    return None
