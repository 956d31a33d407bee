import logging
from pathlib import Path

import typer

from kubeops.errors import KubeopsError
from kubeops.executor import Executor
from kubeops.models import RunFlags
from kubeops.modules import create_cluster_pipeline
from kubeops.spec import load_cluster_spec

app = typer.Typer(help="Create resources.")
logger = logging.getLogger("kubeops.commands.create")


@app.command("cluster")
def create_cluster_cmd(
    ctx: typer.Context,
    filename: Path = typer.Option(..., "--filename", "-f", help="Path to the cluster definition"),
    container_manager: str = typer.Option("", "--container-manager", help="Container runtime (docker, containerd, crio, isula)"),
    skip_check: bool = typer.Option(False, "--skip-check", help="Skip node prechecks"),
    skip_pull_images: bool = typer.Option(False, "--skip-pull-images", help="Do not pull images during init"),
    deploy_local_storage: bool = typer.Option(False, "--with-local-storage", help="Deploy the local storage class"),
    add_images_repo: bool = typer.Option(False, "--with-images-repo", help="Create a local images repository"),
    in_cluster: bool = typer.Option(False, "--in-cluster", help="Running inside a Kubernetes pod"),
    sources_dir: str = typer.Option("", "--sources-dir", help="Directory with pre-downloaded artifacts"),
    kubeconfig: str = typer.Option("", "--kubeconfig", help="Kubeconfig path or content for --in-cluster status storage"),
):
    """Create a Kubernetes cluster from a cluster definition file."""
    debug = bool((ctx.obj or {}).get("debug"))
    flags = RunFlags(
        debug=debug,
        skip_check=skip_check,
        skip_pull_images=skip_pull_images,
        deploy_local_storage=deploy_local_storage,
        add_images_repo=add_images_repo,
        in_cluster=in_cluster,
        container_manager=container_manager,
        sources_dir=sources_dir,
        kubeconfig=kubeconfig,
    )

    try:
        cluster = load_cluster_spec(filename)
        logger.info(f"📄 Loaded cluster {cluster.name} from {filename}")
        mgr = Executor(cluster, flags=flags).execute(create_cluster_pipeline)
    except KubeopsError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    logger.info("✅ Cluster provisioning complete.")
    typer.echo(f"Cluster {mgr.obj_name} is running Kubernetes {mgr.cluster_status.version}")
