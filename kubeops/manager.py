"""
Cluster topology and live status for one run.
"""
import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .connector.base import Connector
from .models import ClusterSpec, ControlPlaneEndpoint, HostSpec, RunFlags, default_download_command
from .pipeline.runtime import Runtime
from .runner import Runner


@dataclass
class ClusterStatus:
    """Facts observed about an existing cluster."""
    is_exist: bool = False
    version: str = ''
    # Keyed by node name or internal address
    all_nodes_info: Dict[str, str] = field(default_factory=dict)
    kubeconfig: str = ''
    bootstrap_token: str = ''
    certificate_key: str = ''

    def reset(self) -> None:
        self.is_exist = False
        self.version = ''
        self.all_nodes_info.clear()
        self.kubeconfig = ''
        self.bootstrap_token = ''
        self.certificate_key = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isExist': self.is_exist,
            'version': self.version,
            'allNodesInfo': dict(self.all_nodes_info),
            'kubeconfig': self.kubeconfig,
            'bootstrapToken': self.bootstrap_token,
            'certificateKey': self.certificate_key,
        }

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        self.is_exist = bool(data.get('isExist', False))
        self.version = data.get('version') or ''
        self.all_nodes_info.clear()
        self.all_nodes_info.update(data.get('allNodesInfo') or {})
        self.kubeconfig = data.get('kubeconfig') or ''
        self.bootstrap_token = data.get('bootstrapToken') or ''
        self.certificate_key = data.get('certificateKey') or ''


class UpgradeStatus:
    """Per-component versions written concurrently by per-host upgrade workers.

    `current_versions` is only reachable through the guarded accessors.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._current_versions: Dict[str, str] = {}
        self.current_version_str = ''
        self.next_version_str = ''
        self.kubeconfig = ''

    def set_version(self, component: str, version: str) -> None:
        with self._lock:
            self._current_versions[component] = version

    def get_version(self, component: str) -> Optional[str]:
        with self._lock:
            return self._current_versions.get(component)

    def versions(self) -> Dict[str, str]:
        """Consistent snapshot of every component version."""
        with self._lock:
            return dict(self._current_versions)

    def clear(self) -> None:
        with self._lock:
            self._current_versions.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentVersions': self.versions(),
            'currentVersionStr': self.current_version_str,
            'nextVersionStr': self.next_version_str,
            'kubeconfig': self.kubeconfig,
        }

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._current_versions.clear()
            self._current_versions.update(data.get('currentVersions') or {})
        self.current_version_str = data.get('currentVersionStr') or ''
        self.next_version_str = data.get('nextVersionStr') or ''
        self.kubeconfig = data.get('kubeconfig') or ''


@dataclass
class Manager:
    """All the parameters needed for an installation run."""
    obj_name: str
    cluster: ClusterSpec
    all_nodes: List[HostSpec] = field(default_factory=list)
    etcd_nodes: List[HostSpec] = field(default_factory=list)
    master_nodes: List[HostSpec] = field(default_factory=list)
    worker_nodes: List[HostSpec] = field(default_factory=list)
    k8s_nodes: List[HostSpec] = field(default_factory=list)
    etcd_container: bool = False
    cluster_hosts: List[str] = field(default_factory=list)
    work_dir: str = ''
    ks_enable: bool = False
    ks_version: str = ''
    debug: bool = False
    skip_check: bool = False
    skip_pull_images: bool = False
    sources_dir: str = ''
    add_images_repo: bool = False
    in_cluster: bool = False
    deploy_local_storage: bool = False
    container_manager: str = ''
    container_runtime_endpoint: str = ''
    kubeconfig: str = ''
    max_workers: int = 20
    connector: Optional[Connector] = None
    runner: Optional[Runner] = None
    cluster_status: ClusterStatus = field(default_factory=ClusterStatus)
    upgrade_status: UpgradeStatus = field(default_factory=UpgradeStatus)
    kube_client: Any = None
    download_command: Callable[[str, str], str] = default_download_command

    def copy(self) -> "Manager":
        """Shallow copy: scalars are private to the copy, maps and status records stay shared."""
        return copy.copy(self)

    @property
    def flags(self) -> RunFlags:
        return RunFlags(
            debug=self.debug,
            skip_check=self.skip_check,
            skip_pull_images=self.skip_pull_images,
            deploy_local_storage=self.deploy_local_storage,
            add_images_repo=self.add_images_repo,
            in_cluster=self.in_cluster,
            container_manager=self.container_manager,
            sources_dir=self.sources_dir,
            kubeconfig=self.kubeconfig,
            download_command=self.download_command,
        )

    def runtime(self) -> Runtime:
        """Build the read-only view handed to tasks."""
        return Runtime(
            cluster_name=self.cluster.kubernetes.cluster_name,
            work_dir=self.work_dir,
            all_hosts=tuple(self.all_nodes),
            etcd_hosts=tuple(self.etcd_nodes),
            master_hosts=tuple(self.master_nodes),
            worker_hosts=tuple(self.worker_nodes),
            k8s_hosts=tuple(self.k8s_nodes),
            cluster_hosts=tuple(self.cluster_hosts),
            flags=self.flags,
            container_manager=self.cluster.kubernetes.container_manager,
            container_runtime_endpoint=self.container_runtime_endpoint,
            control_plane_endpoint=copy.copy(self.cluster.control_plane_endpoint or ControlPlaneEndpoint()),
            kube_version=self.cluster.kubernetes.version,
            max_workers=self.max_workers,
            runner=self.runner,
            cluster_status=self.cluster_status,
            upgrade_status=self.upgrade_status,
            kube_client=self.kube_client,
        )


def exist_node(manager: Any, node: HostSpec) -> bool:
    """Whether `node` is already part of the cluster.

    A name entry only counts with a non-empty value; an internal-address entry
    counts whatever its value.
    """
    info = manager.cluster_status.all_nodes_info
    by_name = bool(info.get(node.name))
    by_address = node.internal_address in info
    return by_name or by_address
