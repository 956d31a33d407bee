"""Kubernetes installation with kubeadm: binaries, first control plane, joins."""
from typing import Dict, Optional

from ..errors import TaskError
from ..manager import exist_node
from ..models import K8S, HostSpec
from ..pipeline import RemoteTask, Task, TaskModule
from ..pipeline.runtime import Runtime
from .status import ADMIN_CONF

JOIN_CREDENTIALS = 'join_credentials'

KUBE_BINARIES = ('kubeadm', 'kubelet', 'kubectl')
KUBE_RELEASE_URL = 'https://storage.googleapis.com/kubernetes-release/release/{version}/bin/linux/{arch}/{binary}'
INSTALL_DIR = '/usr/local/bin'

KUBELET_SERVICE = """[Unit]
Description=kubelet: The Kubernetes Node Agent
Documentation=http://kubernetes.io/docs/
Wants=network-online.target
After=network-online.target

[Service]
ExecStart=/usr/local/bin/kubelet
Restart=always
StartLimitInterval=0
RestartSec=10

[Install]
WantedBy=multi-user.target
"""

CA_CERT_HASH_CMD = (
    "openssl x509 -pubkey -in /etc/kubernetes/pki/ca.crt | "
    "openssl rsa -pubin -outform der 2>/dev/null | "
    "openssl dgst -sha256 -hex | sed 's/^.* //'"
)


def control_plane_address(runtime: Runtime) -> str:
    endpoint = runtime.control_plane_endpoint
    return f"{endpoint.domain}:{endpoint.port}"


def kubeadm_init_command(runtime: Runtime, master: HostSpec) -> str:
    parts = [
        f"{INSTALL_DIR}/kubeadm init",
        f"--control-plane-endpoint {control_plane_address(runtime)}",
        f"--kubernetes-version {runtime.kube_version}",
        f"--apiserver-advertise-address {master.internal_address}",
        "--upload-certs",
    ]
    if runtime.container_runtime_endpoint:
        parts.append(f"--cri-socket {runtime.container_runtime_endpoint}")
    if runtime.flags.skip_pull_images:
        parts.append("--ignore-preflight-errors=ImagePull")
    return ' '.join(parts)


def kubeadm_join_command(runtime: Runtime, host: HostSpec, credentials: Dict[str, str]) -> str:
    parts = [
        f"{INSTALL_DIR}/kubeadm join {control_plane_address(runtime)}",
        f"--token {credentials['token']}",
        f"--discovery-token-ca-cert-hash sha256:{credentials['ca_cert_hash']}",
    ]
    if host.is_master:
        parts.append("--control-plane")
        parts.append(f"--certificate-key {credentials['certificate_key']}")
        parts.append(f"--apiserver-advertise-address {host.internal_address}")
    if runtime.container_runtime_endpoint:
        parts.append(f"--cri-socket {runtime.container_runtime_endpoint}")
    return ' '.join(parts)


def refresh_join_credentials(runtime: Runtime, master: HostSpec) -> Dict[str, str]:
    """Issue a new bootstrap token and certificate key on `master` and record them."""
    runner = runtime.runner
    credentials = {
        'token': runner.run(master, f"{INSTALL_DIR}/kubeadm token create", sudo=True),
        'certificate_key': runner.run(
            master, f"{INSTALL_DIR}/kubeadm init phase upload-certs --upload-certs | tail -1", sudo=True),
        'ca_cert_hash': runner.run(master, CA_CERT_HASH_CMD, sudo=True),
    }
    cluster_status = runtime.cluster_status
    cluster_status.bootstrap_token = credentials['token']
    cluster_status.certificate_key = credentials['certificate_key']
    return credentials


class InstallKubeBinaries(RemoteTask):
    """Download kubeadm, kubelet and kubectl onto hosts not yet in the cluster."""

    roles = (K8S,)

    def run_on(self, host: HostSpec) -> Optional[str]:
        log = self.host_log(host)
        if exist_node(self.runtime, host):
            log.info("Node already in cluster, skipping binaries")
            return None

        runner = self.runtime.runner
        download = self.runtime.flags.download_command
        for binary in KUBE_BINARIES:
            path = f"{self.runtime.remote_work_dir}/{binary}"
            url = KUBE_RELEASE_URL.format(version=self.runtime.kube_version, arch=host.arch, binary=binary)
            log.info(f"Downloading {binary} {self.runtime.kube_version}")
            runner.run(host, download(path, url), sudo=True)
            runner.run(host, f"install -m 755 {path} {INSTALL_DIR}/{binary}", sudo=True)

        runner.run(
            host,
            f"cat > /etc/systemd/system/kubelet.service <<'EOF'\n{KUBELET_SERVICE}EOF\n"
            "systemctl daemon-reload && systemctl enable kubelet",
            sudo=True,
        )
        return self.runtime.kube_version


class InitControlPlane(Task):
    """Bootstrap the first master with ``kubeadm init`` unless a cluster exists."""

    def run(self) -> None:
        cluster_status = self.runtime.cluster_status
        if cluster_status.is_exist:
            self.log.info("Cluster already exists, skipping control plane init")
            return

        master = self.runtime.first_master
        runner = self.runtime.runner
        self.log.info(f"Initializing control plane on {master.name}")
        runner.run(master, kubeadm_init_command(self.runtime, master), sudo=True)

        credentials = refresh_join_credentials(self.runtime, master)
        cluster_status.is_exist = True
        cluster_status.version = self.runtime.kube_version
        cluster_status.kubeconfig = runner.run(master, f"cat {ADMIN_CONF}", sudo=True)
        cluster_status.all_nodes_info[master.name] = self.runtime.kube_version
        cluster_status.all_nodes_info[master.internal_address] = self.runtime.kube_version
        self.cache.set(JOIN_CREDENTIALS, credentials)


class GenerateJoinCredentials(Task):
    """Refresh join credentials for a cluster that existed before this run."""

    def run(self) -> None:
        if JOIN_CREDENTIALS in self.cache:
            return
        if not self.runtime.cluster_status.is_exist:
            raise TaskError("Cannot issue join credentials: no control plane is running")
        self.log.info("Refreshing bootstrap token and certificate key")
        self.cache.set(JOIN_CREDENTIALS, refresh_join_credentials(self.runtime, self.runtime.first_master))


class JoinNodes(RemoteTask):
    """Join every k8s host that is not yet part of the cluster.

    Masters join as additional control-plane nodes.
    """

    roles = (K8S,)

    def run_on(self, host: HostSpec) -> Optional[str]:
        if exist_node(self.runtime, host):
            self.host_log(host).info("Node already in cluster")
            return None

        credentials, found = self.cache.get(JOIN_CREDENTIALS)
        if not found:
            raise TaskError("Join credentials were not generated")
        self.host_log(host).info("Joining as " + ("control plane" if host.is_master else "worker"))
        self.runtime.runner.run(host, kubeadm_join_command(self.runtime, host, credentials), sudo=True)
        return self.runtime.kube_version

    def run(self) -> None:
        try:
            super().run()
        finally:
            # Record joined hosts even when siblings failed so the next run skips them
            info = self.runtime.cluster_status.all_nodes_info
            for host in self.hosts():
                version = self.results.get(host.name)
                if version:
                    info[host.name] = version
                    info[host.internal_address] = version


class KubernetesModule(TaskModule):
    module_name = 'KubernetesModule'

    def init(self) -> None:
        self.tasks = [
            InstallKubeBinaries(),
            InitControlPlane(),
            GenerateJoinCredentials(),
            JoinNodes(),
        ]
