"""Persistence of cluster and upgrade status between runs."""
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException

from .manager import ClusterStatus, UpgradeStatus

logger = logging.getLogger("kubeops.state")

STATUS_FILE = 'status.yaml'


class StatusStore:
    """Keeps ClusterStatus and UpgradeStatus in a YAML file under the work dir."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @classmethod
    def for_cluster(cls, work_dir: str, obj_name: str) -> "StatusStore":
        return cls(Path(work_dir) / obj_name / STATUS_FILE)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, cluster_status: ClusterStatus, upgrade_status: UpgradeStatus) -> bool:
        """Fill the records from disk. Returns False when nothing was stored yet."""
        if not self.path.exists():
            return False
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        cluster_status.update_from_dict(data.get('clusterStatus') or {})
        upgrade_status.update_from_dict(data.get('upgradeStatus') or {})
        logger.info(f"Loaded cluster status from {self.path}")
        return True

    def save(self, cluster_status: ClusterStatus, upgrade_status: UpgradeStatus) -> None:
        data = {
            'clusterStatus': cluster_status.to_dict(),
            'upgradeStatus': upgrade_status.to_dict(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix='.status-', suffix='.yaml')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Saved cluster status to {self.path}")


class ConfigMapStatusStore:
    """Keeps the status records in a ConfigMap when running inside a cluster."""

    def __init__(self, api, name: str, namespace: str = 'kubekey-system'):
        self.api = api
        self.name = f"{name}-status"
        self.namespace = namespace

    def load(self, cluster_status: ClusterStatus, upgrade_status: UpgradeStatus) -> bool:
        try:
            cm = self.api.read_namespaced_config_map(self.name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        data = yaml.safe_load((cm.data or {}).get(STATUS_FILE) or '') or {}
        cluster_status.update_from_dict(data.get('clusterStatus') or {})
        upgrade_status.update_from_dict(data.get('upgradeStatus') or {})
        logger.info(f"Loaded cluster status from configmap {self.namespace}/{self.name}")
        return True

    def save(self, cluster_status: ClusterStatus, upgrade_status: UpgradeStatus) -> None:
        document = yaml.safe_dump({
            'clusterStatus': cluster_status.to_dict(),
            'upgradeStatus': upgrade_status.to_dict(),
        }, default_flow_style=False, sort_keys=False)
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=self.name, namespace=self.namespace),
            data={STATUS_FILE: document},
        )
        try:
            self.api.replace_namespaced_config_map(self.name, self.namespace, body)
        except ApiException as e:
            if e.status != 404:
                raise
            self.api.create_namespaced_config_map(self.namespace, body)
        logger.debug(f"Saved cluster status to configmap {self.namespace}/{self.name}")
