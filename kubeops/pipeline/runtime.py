"""Read-only per-run view of the cluster."""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Tuple

from ..models import ALL, DEFAULT_PRE_DIR, ETCD, K8S, MASTER, WORKER, ControlPlaneEndpoint, HostSpec, RunFlags

if TYPE_CHECKING:
    from ..manager import ClusterStatus, UpgradeStatus
    from ..runner import Runner


@dataclass(frozen=True)
class Runtime:
    """Topology, flags and shared collaborators bound into every task.

    Tasks never mutate the runtime. Facts discovered during a run go into the
    shared status records or the module cache.
    """
    cluster_name: str
    work_dir: str
    all_hosts: Tuple[HostSpec, ...] = ()
    etcd_hosts: Tuple[HostSpec, ...] = ()
    master_hosts: Tuple[HostSpec, ...] = ()
    worker_hosts: Tuple[HostSpec, ...] = ()
    k8s_hosts: Tuple[HostSpec, ...] = ()
    cluster_hosts: Tuple[str, ...] = ()
    flags: RunFlags = field(default_factory=RunFlags)
    container_manager: str = ''
    container_runtime_endpoint: str = ''
    control_plane_endpoint: ControlPlaneEndpoint = field(default_factory=ControlPlaneEndpoint)
    kube_version: str = ''
    max_workers: int = 20
    runner: Optional["Runner"] = None
    cluster_status: Optional["ClusterStatus"] = None
    upgrade_status: Optional["UpgradeStatus"] = None
    kube_client: Any = None

    def hosts_for(self, role: str) -> Tuple[HostSpec, ...]:
        groups = {
            ALL: self.all_hosts,
            ETCD: self.etcd_hosts,
            MASTER: self.master_hosts,
            WORKER: self.worker_hosts,
            K8S: self.k8s_hosts,
        }
        try:
            return groups[role]
        except KeyError:
            raise ValueError(f"Unknown role group: {role}") from None

    @property
    def first_master(self) -> HostSpec:
        return self.master_hosts[0]

    @property
    def remote_work_dir(self) -> str:
        return f"/tmp/{DEFAULT_PRE_DIR}"
