"""
Data models for cluster topology and run flags.
"""
import shlex
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

# Container runtimes
DOCKER = 'docker'
CONTAINERD = 'containerd'
CRIO = 'crio'
ISULA = 'isula'

DEFAULT_CONTAINERD_ENDPOINT = 'unix:///run/containerd/containerd.sock'
DEFAULT_CRIO_ENDPOINT = 'unix:///var/run/crio/crio.sock'
DEFAULT_ISULA_ENDPOINT = 'unix:///var/run/isulad.sock'

DEFAULT_PRE_DIR = 'kubekey'
DEFAULT_CLUSTER_NAME = 'cluster.local'
DEFAULT_LB_DOMAIN = 'lb.kubesphere.local'
DEFAULT_API_SERVER_PORT = 6443
DEFAULT_KUBE_VERSION = 'v1.21.5'

ETCD = 'etcd'
MASTER = 'master'
WORKER = 'worker'
K8S = 'k8s'
ALL = 'all'
ROLES = (ETCD, MASTER, WORKER)


@dataclass(frozen=True)
class HostSpec:
    """One cluster node and how to reach it."""
    name: str
    address: str
    internal_address: str = ''
    port: int = 22
    user: str = 'root'
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    roles: Tuple[str, ...] = ()
    container_manager: Optional[str] = None
    arch: str = 'amd64'

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_master(self) -> bool:
        return MASTER in self.roles

    @property
    def is_worker(self) -> bool:
        return WORKER in self.roles

    @property
    def is_etcd(self) -> bool:
        return ETCD in self.roles


@dataclass
class ControlPlaneEndpoint:
    domain: str = DEFAULT_LB_DOMAIN
    address: str = ''
    port: int = DEFAULT_API_SERVER_PORT


@dataclass
class KubernetesSpec:
    version: str = DEFAULT_KUBE_VERSION
    cluster_name: str = ''
    container_manager: str = ''
    container_runtime_endpoint: str = ''


@dataclass
class KubeSphereSpec:
    enabled: bool = False
    version: str = ''


@dataclass
class HostGroups:
    """Hosts partitioned by role. Every grouped host is also in `all`."""
    all: List[HostSpec] = field(default_factory=list)
    etcd: List[HostSpec] = field(default_factory=list)
    master: List[HostSpec] = field(default_factory=list)
    worker: List[HostSpec] = field(default_factory=list)
    k8s: List[HostSpec] = field(default_factory=list)


@dataclass
class ClusterSpec:
    """Runtime view of a cluster definition file."""
    name: str
    hosts: List[HostSpec] = field(default_factory=list)
    control_plane_endpoint: ControlPlaneEndpoint = field(default_factory=ControlPlaneEndpoint)
    kubernetes: KubernetesSpec = field(default_factory=KubernetesSpec)
    kubesphere: KubeSphereSpec = field(default_factory=KubeSphereSpec)

    def group_hosts(self) -> HostGroups:
        groups = HostGroups()
        for host in self.hosts:
            groups.all.append(host)
            if host.is_etcd:
                groups.etcd.append(host)
            if host.is_master:
                groups.master.append(host)
            if host.is_worker:
                groups.worker.append(host)
            if host.is_master or host.is_worker:
                groups.k8s.append(host)
        return groups


def default_download_command(path: str, url: str) -> str:
    """Render the shell command that fetches `url` into `path` on a remote host."""
    return f"curl -L -o {shlex.quote(path)} {shlex.quote(url)}"


@dataclass(frozen=True)
class RunFlags:
    """Flags that shape a single run."""
    debug: bool = False
    skip_check: bool = False
    skip_pull_images: bool = False
    deploy_local_storage: bool = False
    add_images_repo: bool = False
    in_cluster: bool = False
    container_manager: str = ''
    sources_dir: str = ''
    kubeconfig: str = ''
    download_command: Callable[[str, str], str] = default_download_command
