"""Entry point that builds the Manager and drives a Pipeline against it."""
import logging
import os
import sys
from typing import Callable, List, Optional

from .config import KubeopsConfig, get_config
from .connector.base import Connector
from .connector.ssh import SSHConnector
from .errors import ConfigurationError
from .manager import Manager
from .models import (
    CONTAINERD,
    CRIO,
    DEFAULT_CONTAINERD_ENDPOINT,
    DEFAULT_CRIO_ENDPOINT,
    DEFAULT_ISULA_ENDPOINT,
    DEFAULT_PRE_DIR,
    DOCKER,
    ISULA,
    ClusterSpec,
    HostGroups,
    RunFlags,
)
from .pipeline import Pipeline, Runtime
from .runner import Runner
from .spec import set_defaults
from .state import ConfigMapStatusStore, StatusStore
from .utils.kube import load_client

logger = logging.getLogger("kubeops.executor")

DEFAULT_RUNTIME_ENDPOINTS = {
    DOCKER: '',
    CRIO: DEFAULT_CRIO_ENDPOINT,
    CONTAINERD: DEFAULT_CONTAINERD_ENDPOINT,
    ISULA: DEFAULT_ISULA_ENDPOINT,
}


class Executor:
    """Builds a Manager from a cluster definition and runs pipelines against it."""

    def __init__(
        self,
        cluster: ClusterSpec,
        obj_name: Optional[str] = None,
        flags: Optional[RunFlags] = None,
        connector: Optional[Connector] = None,
        config: Optional[KubeopsConfig] = None,
        status_store=None,
        kube_client=None,
        argv0: Optional[str] = None,
    ):
        self.cluster = cluster
        self.obj_name = obj_name or cluster.name
        self.flags = flags or RunFlags()
        self.config = config or get_config()
        self.connector = connector or SSHConnector(self.config.ssh)
        self.status_store = status_store
        self.kube_client = kube_client
        self.argv0 = argv0

    def create_manager(self) -> Manager:
        """Derive topology and settings for this run.

        Raises:
            ConfigurationError: the cluster definition cannot produce a usable topology
        """
        cluster, groups = set_defaults(self.cluster, self.config.ssh)
        flags = self.flags

        mgr = Manager(
            obj_name=self.obj_name,
            cluster=cluster,
            all_nodes=groups.all,
            etcd_nodes=groups.etcd,
            master_nodes=groups.master,
            worker_nodes=groups.worker,
            k8s_nodes=groups.k8s,
            cluster_hosts=generate_hosts(groups, cluster),
            connector=self.connector,
            work_dir=generate_work_dir(self.argv0),
            ks_enable=cluster.kubesphere.enabled,
            ks_version=cluster.kubesphere.version,
            debug=flags.debug,
            skip_check=flags.skip_check,
            skip_pull_images=flags.skip_pull_images,
            sources_dir=flags.sources_dir,
            kubeconfig=flags.kubeconfig,
            add_images_repo=flags.add_images_repo,
            in_cluster=flags.in_cluster,
            deploy_local_storage=flags.deploy_local_storage,
            container_manager=flags.container_manager,
            download_command=flags.download_command,
            max_workers=self.config.runner.max_workers,
        )
        if flags.container_manager and flags.container_manager != DOCKER:
            mgr.cluster.kubernetes.container_manager = flags.container_manager

        mgr.runner = Runner(self.connector, self.config.runner)
        mgr.container_runtime_endpoint = resolve_runtime_endpoint(
            mgr.cluster.kubernetes.container_manager,
            mgr.cluster.kubernetes.container_runtime_endpoint,
        )
        mgr.kube_client = self.kube_client
        if mgr.kube_client is None and flags.in_cluster:
            mgr.kube_client = load_client(in_cluster=True, kubeconfig=mgr.kubeconfig or None)

        logger.info(
            f"Cluster {self.obj_name}: {len(mgr.all_nodes)} host(s), {len(mgr.master_nodes)} master(s), "
            f"{len(mgr.worker_nodes)} worker(s), container runtime {mgr.cluster.kubernetes.container_manager}"
        )
        return mgr

    def status_store_for(self, mgr: Manager):
        if self.status_store is not None:
            return self.status_store
        if mgr.in_cluster and mgr.kube_client is not None:
            return ConfigMapStatusStore(mgr.kube_client, self.obj_name)
        return StatusStore.for_cluster(mgr.work_dir, self.obj_name)

    def execute(self, pipeline_factory: Callable[[Runtime], Pipeline]) -> Manager:
        """Build the manager, run the pipeline built by `pipeline_factory`, persist status.

        Status recorded before a failure is still persisted so the next run can
        skip completed steps. The first fatal error is re-raised.
        """
        mgr = self.create_manager()
        store = self.status_store_for(mgr)
        if store.load(mgr.cluster_status, mgr.upgrade_status):
            logger.info(f"Resuming with recorded status (cluster exists: {mgr.cluster_status.is_exist})")

        pipeline = pipeline_factory(mgr.runtime())
        try:
            pipeline.run()
        except Exception:
            self._save_status(store, mgr, strict=False)
            raise
        else:
            self._save_status(store, mgr)
        finally:
            self.connector.close_all()
        return mgr

    @staticmethod
    def _save_status(store, mgr: Manager, strict: bool = True) -> None:
        try:
            store.save(mgr.cluster_status, mgr.upgrade_status)
        except Exception as e:
            logger.error(f"Failed to persist cluster status: {e}")
            if strict:
                raise


def generate_hosts(groups: HostGroups, cluster: ClusterSpec) -> List[str]:
    """Hosts-file lines for every named host followed by the load-balancer entry.

    Raises:
        ConfigurationError: no explicit control-plane address and no master to fall back to
    """
    endpoint = cluster.control_plane_endpoint
    if endpoint.address:
        lb_host = f"{endpoint.address}  {endpoint.domain}"
    elif groups.master:
        lb_host = f"{groups.master[0].internal_address}  {endpoint.domain}"
    else:
        raise ConfigurationError(
            "Cannot derive the control-plane endpoint: no controlPlaneEndpoint.address and no master host")

    hosts_list = []
    for host in cluster.hosts:
        if host.name:
            hosts_list.append(
                f"{host.internal_address}  {host.name}.{cluster.kubernetes.cluster_name} {host.name}")
    hosts_list.append(lb_host)
    return hosts_list


def generate_work_dir(argv0: Optional[str] = None) -> str:
    """Scratch directory next to the running program."""
    try:
        current_dir = os.path.abspath(os.path.dirname(argv0 or sys.argv[0]))
    except OSError as e:
        raise ConfigurationError(f"Failed to get current dir: {e}") from e
    return os.path.join(current_dir, DEFAULT_PRE_DIR)


def resolve_runtime_endpoint(container_manager: str, explicit_endpoint: str = '') -> str:
    """An explicit endpoint wins over the runtime's default; unknown runtimes have none."""
    if explicit_endpoint:
        return explicit_endpoint
    return DEFAULT_RUNTIME_ENDPOINTS.get(container_manager, '')
