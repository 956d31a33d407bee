import logging
import sys
from typing import Optional

import typer

from kubeops.commands import create, status
from kubeops.config import KubeopsConfig, set_config
from kubeops.logging import setup_logging

app = typer.Typer(help="Cluster lifecycle management over SSH.")

app.add_typer(create.app, name="create")
app.command("status")(status.status_cluster)


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a kubeops config file"),
):
    """KubeOps - Kubernetes cluster provisioning CLI."""
    settings = KubeopsConfig.load(config)
    set_config(settings)
    setup_logging(debug, settings.logging)
    ctx.obj = {"debug": debug}
    if debug:
        logging.getLogger("kubeops").debug("Debug mode enabled")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        logging.getLogger("kubeops").error(f"Error: {e}")
        sys.exit(1)
