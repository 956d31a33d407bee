"""Discovery of an already-installed cluster."""
import json
from typing import Any, Dict

from ..errors import TaskError
from ..models import K8S, HostSpec
from ..pipeline import RemoteTask, Task, TaskModule

CLUSTER_EXISTS = 'cluster_exists'

ADMIN_CONF = '/etc/kubernetes/admin.conf'
KUBECTL = f"/usr/local/bin/kubectl --kubeconfig={ADMIN_CONF}"
KUBELET = '/usr/local/bin/kubelet'


def parse_nodes(document: Dict[str, Any]) -> Dict[str, str]:
    """Map node name and internal IP to kubelet version from ``kubectl get nodes -o json``."""
    info = {}
    for item in document.get('items', []):
        name = item.get('metadata', {}).get('name', '')
        status = item.get('status', {})
        version = status.get('nodeInfo', {}).get('kubeletVersion', '')
        if name:
            info[name] = version
        for address in status.get('addresses', []):
            if address.get('type') == 'InternalIP' and address.get('address'):
                info[address['address']] = version
    return info


def parse_kubelet_version(output: str) -> str:
    """``Kubernetes v1.21.5`` -> ``v1.21.5``."""
    parts = output.split()
    return parts[-1] if parts else ''


class GetClusterStatus(Task):
    """Probe the first master and fill ClusterStatus when a cluster is already there."""

    def run(self) -> None:
        if not self.runtime.master_hosts:
            raise TaskError("No master host to inspect")
        master = self.runtime.first_master
        runner = self.runtime.runner
        cluster_status = self.runtime.cluster_status

        probe = runner.run(master, f"[ -f {ADMIN_CONF} ] && echo yes || echo no", sudo=True)
        if probe != 'yes':
            self.log.info(f"No existing cluster found on {master.name}")
            cluster_status.reset()
            self.cache.set(CLUSTER_EXISTS, False)
            return

        cluster_status.is_exist = True
        cluster_status.kubeconfig = runner.run(master, f"cat {ADMIN_CONF}", sudo=True)

        version = json.loads(runner.run(master, f"{KUBECTL} version -o json", sudo=True))
        cluster_status.version = version.get('serverVersion', {}).get('gitVersion', '')

        nodes = json.loads(runner.run(master, f"{KUBECTL} get nodes -o json", sudo=True))
        cluster_status.all_nodes_info.clear()
        cluster_status.all_nodes_info.update(parse_nodes(nodes))

        self.log.info(f"Found cluster {cluster_status.version} with "
                      f"{len(nodes.get('items', []))} node(s)")
        self.cache.set(CLUSTER_EXISTS, True)


class NodeVersions(RemoteTask):
    """Record each k8s host's kubelet version in UpgradeStatus."""

    roles = (K8S,)

    def run_on(self, host: HostSpec) -> str:
        version = parse_kubelet_version(self.runtime.runner.run(host, f"{KUBELET} --version", check=False))
        if version:
            self.runtime.upgrade_status.set_version(host.name, version)
        return version

    def run(self) -> None:
        if not self.cache.get_or(CLUSTER_EXISTS, False):
            self.log.info("No cluster installed, skipping version discovery")
            return
        super().run()
        upgrade_status = self.runtime.upgrade_status
        upgrade_status.current_version_str = ','.join(sorted(set(upgrade_status.versions().values())))
        upgrade_status.kubeconfig = self.runtime.cluster_status.kubeconfig


class ClusterStatusModule(TaskModule):
    module_name = 'ClusterStatusModule'

    def init(self) -> None:
        self.tasks = [GetClusterStatus(), NodeVersions()]
