"""Application settings.

Settings are loaded with the following precedence:
1. Environment variables (``KUBEOPS_<SECTION>__<FIELD>``, ``.env`` supported)
2. Configuration file
3. Default values
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger("kubeops.config")

# Load environment variables from .env file if it exists
load_dotenv()

ENV_PREFIX = "KUBEOPS_"
ENV_NESTED_DELIMITER = "__"

DEFAULT_CONFIG_PATHS = [
    Path("/etc/kubeops/config.yaml"),
    Path("~/.config/kubeops/config.yaml"),
    Path("kubeops-config.yaml"),
]


class SSHSettings(BaseModel):
    """Defaults for hosts that do not set their own connection parameters."""
    user: str = Field(default="root", description="Default SSH username")
    port: int = Field(default=22, description="SSH port number")
    private_key_path: Optional[str] = Field(default="~/.ssh/id_rsa", description="Path to SSH private key")
    connect_timeout: int = Field(default=30, description="SSH connection timeout in seconds")

    @field_validator("private_key_path")
    @classmethod
    def expand_key_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand the user home directory in the key path."""
        return os.path.expanduser(v) if v else v


class RunnerSettings(BaseModel):
    """Default policy for remote commands."""
    timeout: float = Field(default=300, gt=0, description="Command timeout in seconds")
    retries: int = Field(default=3, ge=0, description="Retries after a transient failure")
    retry_interval: float = Field(default=5, ge=0, description="Seconds between attempts")
    max_workers: int = Field(default=20, gt=0, description="Parallel hosts per task")


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Logging level")
    file: Optional[str] = Field(default=None, description="Path to log file (stderr only when unset)")
    max_size_mb: int = Field(default=100, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of rotated log files to keep")


class KubeopsConfig(BaseModel):
    ssh: SSHSettings = Field(default_factory=SSHSettings)
    runner: RunnerSettings = Field(default_factory=RunnerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None,
             environ: Optional[Mapping[str, str]] = None) -> "KubeopsConfig":
        """Load configuration from file and environment variables."""
        config_data: Dict[str, Any] = {}

        if config_path:
            path = Path(config_path).expanduser().absolute()
            if path.exists():
                config_data = cls._load_config_file(path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        overrides = _env_overrides(os.environ if environ is None else environ)
        for section, values in overrides.items():
            config_data.setdefault(section, {}).update(values)

        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.model_dump(exclude_none=True), f, default_flow_style=False, sort_keys=False)


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Dict[str, str]]:
    sections: List[str] = list(KubeopsConfig.model_fields)
    overrides: Dict[str, Dict[str, str]] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTED_DELIMITER)
        if len(parts) != 2 or parts[0] not in sections:
            continue
        overrides.setdefault(parts[0], {})[parts[1]] = value
    return overrides


# Global configuration instance
_config: Optional[KubeopsConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> KubeopsConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = KubeopsConfig.load(config_path)
    return _config


def set_config(config: Optional[KubeopsConfig]) -> None:
    """Set (or clear, with None) the global configuration instance."""
    global _config
    _config = config
