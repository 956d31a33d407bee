"""Pipelines wiring the provisioning modules together."""
from ..pipeline import Pipeline, Runtime
from .kubernetes import KubernetesModule
from .os import InitOSModule
from .precheck import GreetingsModule, NodePreCheckModule
from .status import ClusterStatusModule


def create_cluster_pipeline(runtime: Runtime) -> Pipeline:
    modules = [
        GreetingsModule(),
        NodePreCheckModule(),
        InitOSModule(),
        ClusterStatusModule(),
        KubernetesModule(),
    ]
    return Pipeline("CreateClusterPipeline", modules, runtime)


def cluster_status_pipeline(runtime: Runtime) -> Pipeline:
    return Pipeline("ClusterStatusPipeline", [GreetingsModule(), ClusterStatusModule()], runtime)
