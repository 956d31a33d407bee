"""Provisioning modules and the pipelines built from them."""
from .kubernetes import KubernetesModule
from .os import InitOSModule
from .pipelines import cluster_status_pipeline, create_cluster_pipeline
from .precheck import GreetingsModule, NodePreCheckModule
from .status import ClusterStatusModule

__all__ = [
    'ClusterStatusModule',
    'GreetingsModule',
    'InitOSModule',
    'KubernetesModule',
    'NodePreCheckModule',
    'cluster_status_pipeline',
    'create_cluster_pipeline',
]
