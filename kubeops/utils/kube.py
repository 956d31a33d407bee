"""Kubernetes API client construction."""
import os
from pathlib import Path
from typing import Optional

import yaml
from kubernetes import client, config

from ..errors import ConfigurationError


def load_client(in_cluster: bool = False, kubeconfig: Optional[str] = None) -> client.CoreV1Api:
    """
    Build a CoreV1Api client.

    `kubeconfig` may be the kubeconfig text itself or a path to it. Without
    one, the KUBECONFIG_CONTENT env var is used, and after that the pod's
    service account when `in_cluster` is set.
    """
    content = kubeconfig or os.environ.get("KUBECONFIG_CONTENT")
    try:
        if content:
            path = Path(os.path.expanduser(content))
            if "\n" not in content and path.exists():
                content = path.read_text()
            document = yaml.safe_load(content)
            if not isinstance(document, dict):
                raise ConfigurationError("Kubeconfig is neither a readable file nor kubeconfig YAML")
            api_client = config.new_client_from_config_dict(document)
            return client.CoreV1Api(api_client)

        if in_cluster:
            config.load_incluster_config()
            return client.CoreV1Api()
    except config.ConfigException as e:
        raise ConfigurationError(f"Failed to load Kubernetes client configuration: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Kubeconfig is not valid YAML: {e}") from e

    raise ConfigurationError("No kubeconfig provided and KUBECONFIG_CONTENT is not set")
