"""Cluster definition loading, validation and defaulting."""
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from jsonschema import ValidationError, validate

from .config import SSHSettings
from .errors import ConfigurationError
from .models import (
    DEFAULT_CLUSTER_NAME,
    DEFAULT_KUBE_VERSION,
    DEFAULT_LB_DOMAIN,
    DOCKER,
    ROLES,
    ClusterSpec,
    ControlPlaneEndpoint,
    HostGroups,
    HostSpec,
    KubernetesSpec,
    KubeSphereSpec,
)

logger = logging.getLogger("kubeops.spec")

HOST_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "address": {"type": "string", "minLength": 1},
        "internalAddress": {"type": "string"},
        "port": {"type": "integer"},
        "user": {"type": "string"},
        "password": {"type": "string"},
        "privateKeyPath": {"type": "string"},
        "roles": {"type": "array", "items": {"enum": list(ROLES)}},
        "containerManager": {"type": "string"},
        "arch": {"type": "string"},
    },
    "required": ["name", "address"],
}

CLUSTER_SCHEMA = {
    "type": "object",
    "properties": {
        "hosts": {"type": "array", "items": HOST_SCHEMA, "minItems": 1},
        "roleGroups": {
            "type": "object",
            "properties": {role: {"type": "array", "items": {"type": "string"}} for role in ROLES},
            "additionalProperties": False,
        },
        "controlPlaneEndpoint": {
            "type": "object",
            "properties": {
                "domain": {"type": "string"},
                "address": {"type": "string"},
                "port": {"type": "integer"},
            },
        },
        "kubernetes": {
            "type": "object",
            "properties": {
                "version": {"type": "string"},
                "clusterName": {"type": "string"},
                "containerManager": {"type": "string"},
                "containerRuntimeEndpoint": {"type": "string"},
            },
        },
        "kubesphere": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "version": {"type": "string"},
            },
        },
    },
    "required": ["hosts"],
}


def load_cluster_spec(path: Union[str, Path]) -> ClusterSpec:
    """Load a cluster definition file.

    The file is either the bare spec or a resource with ``metadata.name`` and
    a ``spec`` section.

    Raises:
        ConfigurationError: the file is missing, not YAML, or fails validation
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigurationError(f"Cluster config not found: {path}")
    try:
        with open(path, 'r') as f:
            document = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return parse_cluster_spec(document, default_name=path.stem)


def parse_cluster_spec(document: Dict[str, Any], default_name: str = 'sample') -> ClusterSpec:
    if not isinstance(document, dict):
        raise ConfigurationError("Cluster config must be a mapping")
    body = document.get('spec', document)
    name = (document.get('metadata') or {}).get('name') or document.get('name') or default_name

    try:
        validate(instance=body, schema=CLUSTER_SCHEMA)
    except ValidationError as ve:
        location = '.'.join(str(p) for p in ve.absolute_path) or '<root>'
        raise ConfigurationError(f"Cluster config validation error at {location}: {ve.message}") from ve

    role_groups: Dict[str, List[str]] = body.get('roleGroups') or {}
    hosts = [_parse_host(h, role_groups) for h in body['hosts']]

    known = {h.name for h in hosts}
    for role, names in role_groups.items():
        unknown = [n for n in names if n not in known]
        if unknown:
            raise ConfigurationError(f"roleGroups.{role} references unknown hosts: {', '.join(unknown)}")

    cpe = body.get('controlPlaneEndpoint') or {}
    kube = body.get('kubernetes') or {}
    ks = body.get('kubesphere') or {}
    return ClusterSpec(
        name=name,
        hosts=hosts,
        control_plane_endpoint=ControlPlaneEndpoint(
            domain=cpe.get('domain', ''),
            address=cpe.get('address', ''),
            port=cpe.get('port', 0),
        ),
        kubernetes=KubernetesSpec(
            version=kube.get('version', ''),
            cluster_name=kube.get('clusterName', ''),
            container_manager=kube.get('containerManager', ''),
            container_runtime_endpoint=kube.get('containerRuntimeEndpoint', ''),
        ),
        kubesphere=KubeSphereSpec(enabled=ks.get('enabled', False), version=ks.get('version', '')),
    )


def _parse_host(data: Dict[str, Any], role_groups: Dict[str, List[str]]) -> HostSpec:
    roles = list(data.get('roles') or [])
    for role in ROLES:
        if data['name'] in role_groups.get(role, []) and role not in roles:
            roles.append(role)
    return HostSpec(
        name=data['name'],
        address=data['address'],
        internal_address=data.get('internalAddress', ''),
        port=data.get('port', 0),
        user=data.get('user', ''),
        password=data.get('password'),
        private_key_path=data.get('privateKeyPath'),
        roles=tuple(r for r in ROLES if r in roles),
        container_manager=data.get('containerManager'),
        arch=data.get('arch', 'amd64'),
    )


def set_defaults(cluster: ClusterSpec, ssh: Optional[SSHSettings] = None) -> Tuple[ClusterSpec, HostGroups]:
    """Return a defaulted copy of `cluster` and its role groups.

    The input spec is left untouched.

    Raises:
        ConfigurationError: duplicate host names or addresses
    """
    ssh = ssh or SSHSettings()
    names = [h.name for h in cluster.hosts]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate host names: {', '.join(duplicates)}")

    hosts = [
        dataclasses.replace(
            h,
            internal_address=h.internal_address or h.address,
            port=h.port or ssh.port,
            user=h.user or ssh.user,
            private_key_path=h.private_key_path or (None if h.password else ssh.private_key_path),
        )
        for h in cluster.hosts
    ]
    addresses = [h.internal_address for h in hosts]
    duplicates = sorted({a for a in addresses if addresses.count(a) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate internal addresses: {', '.join(duplicates)}")

    cpe = cluster.control_plane_endpoint
    kube = cluster.kubernetes
    defaulted = dataclasses.replace(
        cluster,
        hosts=hosts,
        control_plane_endpoint=ControlPlaneEndpoint(
            domain=cpe.domain or DEFAULT_LB_DOMAIN,
            address=cpe.address,
            port=cpe.port or ControlPlaneEndpoint().port,
        ),
        kubernetes=KubernetesSpec(
            version=kube.version or DEFAULT_KUBE_VERSION,
            cluster_name=kube.cluster_name or DEFAULT_CLUSTER_NAME,
            container_manager=kube.container_manager or DOCKER,
            container_runtime_endpoint=kube.container_runtime_endpoint,
        ),
        kubesphere=dataclasses.replace(cluster.kubesphere),
    )
    groups = defaulted.group_hosts()
    logger.debug(f"Grouped {len(groups.all)} host(s): {len(groups.etcd)} etcd, "
                 f"{len(groups.master)} master, {len(groups.worker)} worker")
    return defaulted, groups
