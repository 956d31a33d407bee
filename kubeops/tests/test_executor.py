import os
from dataclasses import replace

import pytest

from kubeops import executor as executor_module
from kubeops.errors import CommandError, ConfigurationError
from kubeops.executor import Executor, generate_hosts, generate_work_dir, resolve_runtime_endpoint
from kubeops.models import (
    CONTAINERD,
    CRIO,
    DEFAULT_CONTAINERD_ENDPOINT,
    DEFAULT_CRIO_ENDPOINT,
    DOCKER,
    MASTER,
    WORKER,
    ClusterSpec,
    ControlPlaneEndpoint,
    HostSpec,
    KubernetesSpec,
    RunFlags,
)
from kubeops.pipeline import Pipeline, Task, TaskModule
from kubeops.spec import set_defaults
from kubeops.state import ConfigMapStatusStore


def test_generate_hosts_falls_back_to_first_master():
    cluster = ClusterSpec(
        name="demo",
        hosts=[HostSpec(name="node1", address="10.0.0.1", roles=(MASTER,))],
        control_plane_endpoint=ControlPlaneEndpoint(domain="lb.kubekey.local"),
        kubernetes=KubernetesSpec(cluster_name="demo"),
    )
    cluster, groups = set_defaults(cluster)
    assert generate_hosts(groups, cluster) == [
        "10.0.0.1  node1.demo node1",
        "10.0.0.1  lb.kubekey.local",
    ]


def test_generate_hosts_prefers_explicit_address(manager):
    assert manager.cluster_hosts == [
        "10.0.0.1  master1.cluster.local master1",
        "10.0.0.2  worker1.cluster.local worker1",
        "10.0.0.3  worker2.cluster.local worker2",
        "10.0.0.1  lb.kubekey.local",
    ]

    cluster = replace(manager.cluster, control_plane_endpoint=ControlPlaneEndpoint(
        domain="lb.kubekey.local", address="10.0.0.100"))
    groups = cluster.group_hosts()
    assert generate_hosts(groups, cluster)[-1] == "10.0.0.100  lb.kubekey.local"


def test_no_master_and_no_address_is_a_configuration_error(fake_connector, config):
    cluster = ClusterSpec(name="demo", hosts=[HostSpec(name="w", address="10.0.0.9", roles=(WORKER,))])
    with pytest.raises(ConfigurationError):
        Executor(cluster, connector=fake_connector, config=config).create_manager()


@pytest.mark.parametrize("manager_name,explicit,expected", [
    (CRIO, "", DEFAULT_CRIO_ENDPOINT),
    (CRIO, "unix:///custom.sock", "unix:///custom.sock"),
    (CONTAINERD, "", DEFAULT_CONTAINERD_ENDPOINT),
    (DOCKER, "", ""),
    ("podman", "", ""),
])
def test_resolve_runtime_endpoint(manager_name, explicit, expected):
    assert resolve_runtime_endpoint(manager_name, explicit) == expected


def test_container_manager_override(executor, cluster_spec):
    executor.flags = RunFlags(container_manager=CONTAINERD)
    mgr = executor.create_manager()
    assert mgr.cluster.kubernetes.container_manager == CONTAINERD
    assert mgr.container_runtime_endpoint == DEFAULT_CONTAINERD_ENDPOINT
    assert mgr.runtime().container_manager == CONTAINERD
    assert cluster_spec.kubernetes.container_manager == ""


def test_docker_flag_does_not_override_cluster_runtime(executor, cluster_spec):
    executor.cluster = replace(cluster_spec, kubernetes=KubernetesSpec(container_manager=CRIO))
    executor.flags = RunFlags(container_manager=DOCKER)
    mgr = executor.create_manager()
    assert mgr.cluster.kubernetes.container_manager == CRIO
    assert mgr.container_runtime_endpoint == DEFAULT_CRIO_ENDPOINT


def test_in_cluster_client_uses_kubeconfig_flag(executor, monkeypatch):
    calls = []
    monkeypatch.setattr(executor_module, "load_client", lambda **kwargs: calls.append(kwargs) or "core-v1")
    executor.flags = RunFlags(in_cluster=True, kubeconfig="/etc/kubeops/admin.conf")
    executor.status_store = None

    mgr = executor.create_manager()

    assert calls == [{"in_cluster": True, "kubeconfig": "/etc/kubeops/admin.conf"}]
    assert mgr.kube_client == "core-v1"
    assert mgr.flags.kubeconfig == "/etc/kubeops/admin.conf"
    store = executor.status_store_for(mgr)
    assert isinstance(store, ConfigMapStatusStore)
    assert store.api == "core-v1"


def test_client_is_not_built_outside_a_cluster(manager):
    assert manager.kube_client is None


def test_manager_starts_with_empty_status(manager):
    assert manager.cluster_status.is_exist is False
    assert manager.cluster_status.all_nodes_info == {}
    assert manager.upgrade_status.versions() == {}
    assert manager.runner is not None


def test_generate_work_dir():
    assert generate_work_dir("/opt/tools/kubeops") == os.path.join("/opt/tools", "kubekey")


class MarkInstalled(Task):
    def run(self):
        self.runtime.cluster_status.is_exist = True
        self.runtime.cluster_status.all_nodes_info["master1"] = "v1.21.5"


class Explode(Task):
    def run(self):
        raise CommandError("kubeadm failed", exit_code=1)


def single_module_pipeline(*tasks):
    def factory(runtime):
        return Pipeline("TestPipeline", [TaskModule("TestModule", list(tasks))], runtime)
    return factory


def test_execute_persists_status(executor, status_store, fake_connector):
    mgr = executor.execute(single_module_pipeline(MarkInstalled()))
    assert mgr.cluster_status.is_exist is True
    assert status_store.exists()
    assert fake_connector.closed_all is True

    second = executor.create_manager()
    assert status_store.load(second.cluster_status, second.upgrade_status)
    assert second.cluster_status.all_nodes_info == {"master1": "v1.21.5"}


def test_execute_saves_status_when_pipeline_fails(executor, status_store, fake_connector):
    with pytest.raises(CommandError) as excinfo:
        executor.execute(single_module_pipeline(MarkInstalled(), Explode()))

    assert excinfo.value.module == "TestModule"
    assert excinfo.value.task == "Explode"
    assert fake_connector.closed_all is True

    mgr = executor.create_manager()
    status_store.load(mgr.cluster_status, mgr.upgrade_status)
    assert mgr.cluster_status.is_exist is True


def test_execute_resumes_from_recorded_status(executor):
    executor.execute(single_module_pipeline(MarkInstalled()))
    seen = []

    class Inspect(Task):
        def run(self):
            seen.append(dict(self.runtime.cluster_status.all_nodes_info))

    executor.execute(single_module_pipeline(Inspect()))
    assert seen == [{"master1": "v1.21.5"}]
