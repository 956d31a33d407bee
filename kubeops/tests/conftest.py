import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

import pytest

from kubeops.config import KubeopsConfig, RunnerSettings, SSHSettings
from kubeops.connector.base import CommandResult, Connector, Session
from kubeops.errors import RemoteConnectionError
from kubeops.executor import Executor
from kubeops.models import ETCD, MASTER, WORKER, ClusterSpec, ControlPlaneEndpoint, HostSpec, KubernetesSpec
from kubeops.state import StatusStore


SAMPLE_CLUSTER = """
apiVersion: kubekey.kubesphere.io/v1alpha1
kind: Cluster
metadata:
  name: sample
spec:
  hosts:
  - {name: node1, address: 172.16.0.2, internalAddress: 10.0.0.2, user: ubuntu, password: "Qcloud@123"}
  - {name: node2, address: 172.16.0.3, internalAddress: 10.0.0.3, privateKeyPath: "~/.ssh/node2"}
  - {name: node3, address: 172.16.0.4}
  roleGroups:
    etcd: [node1]
    master: [node1]
    worker: [node2, node3]
  controlPlaneEndpoint:
    domain: lb.kubekey.local
    port: 6443
  kubernetes:
    version: v1.21.5
    clusterName: demo
    containerManager: containerd
"""


@dataclass
class Rule:
    pattern: str
    stdout: Union[str, Callable[[HostSpec, str], str]] = ''
    exit_code: int = 0
    stderr: str = ''
    host: Optional[str] = None
    error: Optional[Exception] = None
    times: Optional[int] = None


class FakeSession(Session):
    def __init__(self, host: HostSpec, connector: "FakeConnector"):
        super().__init__(host)
        self.connector = connector

    def exec(self, command: str, timeout: float) -> CommandResult:
        return self.connector.respond(self.host, command)


class FakeConnector(Connector):
    """Records every command and answers from rules registered with `on()`.

    The most recently registered matching rule wins; unmatched commands
    succeed with empty output.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.rules: List[Rule] = []
        self.commands: List[Tuple[str, str]] = []
        self.connects = 0
        self.closed: List[Tuple[str, bool]] = []
        self.closed_all = False
        self.unreachable = {}

    def on(self, pattern: str, stdout='', exit_code: int = 0, stderr: str = '',
           host: Optional[str] = None, error: Optional[Exception] = None, times: Optional[int] = None) -> None:
        self.rules.append(Rule(pattern, stdout, exit_code, stderr, host, error, times))

    def fail_connects(self, host_name: str, count: int) -> None:
        self.unreachable[host_name] = count

    def connect(self, host: HostSpec) -> Session:
        with self.lock:
            self.connects += 1
            remaining = self.unreachable.get(host.name, 0)
            if remaining:
                self.unreachable[host.name] = remaining - 1
                raise RemoteConnectionError(f"{host.address} unreachable", host=host.name)
        return FakeSession(host, self)

    def close(self, session: Session, broken: bool = False) -> None:
        with self.lock:
            self.closed.append((session.host.name, broken))
        session.closed = True

    def close_all(self) -> None:
        self.closed_all = True

    def respond(self, host: HostSpec, command: str) -> CommandResult:
        with self.lock:
            self.commands.append((host.name, command))
            rule = self._match(host, command)
            if rule is not None and rule.times is not None:
                rule.times -= 1
        if rule is None:
            return CommandResult(0)
        if rule.error is not None:
            raise rule.error
        stdout = rule.stdout(host, command) if callable(rule.stdout) else rule.stdout
        return CommandResult(rule.exit_code, stdout, rule.stderr)

    def _match(self, host: HostSpec, command: str) -> Optional[Rule]:
        for rule in reversed(self.rules):
            if rule.times is not None and rule.times <= 0:
                continue
            if rule.host is not None and rule.host != host.name:
                continue
            if rule.pattern in command:
                return rule
        return None

    def ran(self, pattern: str, host_name: Optional[str] = None) -> bool:
        return any(pattern in cmd for name, cmd in self.commands
                   if host_name is None or name == host_name)


@pytest.fixture
def fake_connector():
    return FakeConnector()


@pytest.fixture
def hosts():
    return [
        HostSpec(name='master1', address='192.168.0.1', internal_address='10.0.0.1', roles=(ETCD, MASTER)),
        HostSpec(name='worker1', address='192.168.0.2', internal_address='10.0.0.2', roles=(WORKER,)),
        HostSpec(name='worker2', address='192.168.0.3', internal_address='10.0.0.3', roles=(WORKER,)),
    ]


@pytest.fixture
def cluster_spec(hosts):
    return ClusterSpec(
        name='demo',
        hosts=hosts,
        control_plane_endpoint=ControlPlaneEndpoint(domain='lb.kubekey.local', address=''),
        kubernetes=KubernetesSpec(version='v1.21.5'),
    )


@pytest.fixture
def config():
    return KubeopsConfig(
        ssh=SSHSettings(private_key_path=None),
        runner=RunnerSettings(timeout=5, retries=2, retry_interval=0, max_workers=4),
    )


@pytest.fixture
def status_store(tmp_path):
    return StatusStore(tmp_path / 'demo' / 'status.yaml')


@pytest.fixture
def executor(cluster_spec, fake_connector, config, status_store, tmp_path):
    return Executor(
        cluster_spec,
        connector=fake_connector,
        config=config,
        status_store=status_store,
        argv0=str(tmp_path / 'bin' / 'kubeops'),
    )


@pytest.fixture
def manager(executor):
    return executor.create_manager()


@pytest.fixture
def runtime(manager):
    return manager.runtime()


@pytest.fixture
def cluster_file(tmp_path):
    path = tmp_path / "sample.yaml"
    path.write_text(SAMPLE_CLUSTER)
    return path
