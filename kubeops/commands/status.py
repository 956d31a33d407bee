import logging
from pathlib import Path

import typer

from kubeops.errors import KubeopsError
from kubeops.executor import Executor
from kubeops.models import RunFlags
from kubeops.modules import cluster_status_pipeline
from kubeops.spec import load_cluster_spec

logger = logging.getLogger("kubeops.commands.status")


def status_cluster(
    ctx: typer.Context,
    filename: Path = typer.Option(..., "--filename", "-f", help="Path to the cluster definition"),
):
    """Show what is installed on the hosts of a cluster."""
    flags = RunFlags(debug=bool((ctx.obj or {}).get("debug")))
    try:
        cluster = load_cluster_spec(filename)
        mgr = Executor(cluster, flags=flags).execute(cluster_status_pipeline)
    except KubeopsError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    cluster_status = mgr.cluster_status
    typer.echo(f"📡 Status for cluster: {mgr.obj_name}")
    if not cluster_status.is_exist:
        typer.echo("Cluster is not installed")
        return

    typer.echo(f"Version: {cluster_status.version}")
    versions = mgr.upgrade_status.versions()
    for node in mgr.all_nodes:
        version = versions.get(node.name) or cluster_status.all_nodes_info.get(node.name) or '-'
        joined = 'yes' if cluster_status.all_nodes_info.get(node.name) else 'no'
        typer.echo(f"{node.name:<20} {node.internal_address:<16} {','.join(node.roles):<20} "
                   f"joined={joined} kubelet={version}")
