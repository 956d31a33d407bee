"""Error types raised by kubeops.

Every error carries optional call-site context (module, task, host) that is
filled in as the error crosses each layer on its way to the executor.
"""
from typing import Dict, Optional


class KubeopsError(Exception):
    """Base class for all kubeops errors."""

    def __init__(self, message: str = "", module: Optional[str] = None,
                 task: Optional[str] = None, host: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.module = module
        self.task = task
        self.host = host

    def with_context(self, module: Optional[str] = None, task: Optional[str] = None,
                     host: Optional[str] = None) -> "KubeopsError":
        """Attach context without overwriting what an inner layer already set."""
        if module and not self.module:
            self.module = module
        if task and not self.task:
            self.task = task
        if host and not self.host:
            self.host = host
        return self

    @property
    def context(self) -> Dict[str, str]:
        ctx = {}
        for key in ("module", "task", "host"):
            value = getattr(self, key)
            if value:
                ctx[key] = value
        return ctx

    def __str__(self) -> str:
        ctx = self.context
        if not ctx:
            return self.message
        prefix = " ".join(f"{k}={v}" for k, v in ctx.items())
        return f"[{prefix}] {self.message}"


class RemoteConnectionError(KubeopsError, ConnectionError):
    """A host could not be reached or authenticated against. Retryable."""


class CommandTimeoutError(KubeopsError, TimeoutError):
    """A remote command exceeded its deadline. Retryable."""


class CommandError(KubeopsError):
    """A remote command ran and exited non-zero. Never retried automatically."""

    def __init__(self, message: str, exit_code: int = 1, stdout: str = "",
                 stderr: str = "", command: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.command = command


class RunnerExhaustedError(KubeopsError):
    """Retries ran out; `cause` is the last transient error."""

    def __init__(self, message: str, cause: Exception, attempts: int, **kwargs):
        super().__init__(message, **kwargs)
        self.cause = cause
        self.attempts = attempts


class ConfigurationError(KubeopsError):
    """The cluster topology or settings are unusable. Fatal before the pipeline starts."""


class TaskError(KubeopsError):
    """A task's own validation or business-rule failure.

    For fan-out tasks `failures` maps each failed host name to its error.
    """

    def __init__(self, message: str, failures: Optional[Dict[str, Exception]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.failures = failures or {}
