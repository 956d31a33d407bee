"""Tasks: the atomic units of provisioning work."""
import copy
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..errors import KubeopsError, TaskError
from ..logging import ContextLogger, get_logger
from ..models import ALL, HostSpec
from .cache import Cache
from .runtime import Runtime


class TaskState(str, Enum):
    CREATED = 'created'
    INITIALIZED = 'initialized'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


_TRANSITIONS = {
    TaskState.CREATED: {TaskState.INITIALIZED},
    TaskState.INITIALIZED: {TaskState.RUNNING},
    TaskState.RUNNING: {TaskState.SUCCEEDED, TaskState.FAILED},
    TaskState.SUCCEEDED: set(),
    TaskState.FAILED: set(),
}


class Task(ABC):
    """A unit of work bound to a Runtime and a Cache, executed exactly once.

    Subclasses implement `run()`; raising from it fails the task. A task
    instance moves Created -> Initialized -> Running -> Succeeded/Failed and
    never goes back. Use `fresh()` to get a new instance for another run.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        self.state = TaskState.CREATED
        self.runtime: Optional[Runtime] = None
        self.cache: Optional[Cache] = None
        self.log: ContextLogger = get_logger("kubeops.task", task=self.name)

    def _transition(self, new_state: TaskState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise TaskError(f"Invalid task state transition {self.state.value} -> {new_state.value}",
                            task=self.name)
        self.state = new_state

    def init(self, runtime: Runtime, cache: Cache, logger: Optional[ContextLogger] = None) -> None:
        self._transition(TaskState.INITIALIZED)
        self.runtime = runtime
        self.cache = cache
        if logger is not None:
            self.log = logger.bind(task=self.name)

    def execute(self) -> None:
        self._transition(TaskState.RUNNING)
        self.log.debug("Begin execute")
        try:
            self.run()
        except KubeopsError as e:
            self.state = TaskState.FAILED
            raise e.with_context(task=self.name)
        except Exception as e:
            self.state = TaskState.FAILED
            raise TaskError(f"{type(e).__name__}: {e}", task=self.name) from e
        self.state = TaskState.SUCCEEDED

    @abstractmethod
    def run(self) -> None:
        """Do the work of the task."""

    def fresh(self) -> "Task":
        """Return a Created copy of this task carrying the same parameters."""
        clone = copy.copy(self)
        clone.state = TaskState.CREATED
        clone.runtime = None
        clone.cache = None
        clone.log = get_logger("kubeops.task", task=self.name)
        return clone

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.state.value}>"


class RemoteTask(Task):
    """A task that runs `run_on()` against a set of hosts.

    With ``parallel=True`` one worker per host is started and all of them are
    joined before the task returns; a failing or timed-out host never cancels
    its siblings. The task fails if any host fails unless ``min_success`` (or
    ``quorum``) says fewer successes are acceptable.
    """

    roles: Sequence[str] = (ALL,)

    def __init__(self, name: Optional[str] = None, roles: Optional[Sequence[str]] = None,
                 parallel: bool = True, min_success: Optional[int] = None, quorum: bool = False,
                 max_workers: Optional[int] = None):
        super().__init__(name)
        if roles is not None:
            self.roles = tuple(roles)
        self.parallel = parallel
        self.min_success = min_success
        self.quorum = quorum
        self.max_workers = max_workers
        self.results: Dict[str, Any] = {}
        self.failures: Dict[str, Exception] = {}

    def fresh(self) -> "RemoteTask":
        clone = super().fresh()
        clone.results = {}
        clone.failures = {}
        return clone

    def hosts(self) -> List[HostSpec]:
        """Target hosts in topology order, each host once."""
        seen = set()
        selected = []
        for role in self.roles:
            for host in self.runtime.hosts_for(role):
                if host.name not in seen:
                    seen.add(host.name)
                    selected.append(host)
        return selected

    def host_log(self, host: HostSpec) -> ContextLogger:
        return self.log.bind(host=host.name)

    @abstractmethod
    def run_on(self, host: HostSpec) -> Any:
        """Do the work for one host. The return value lands in `results`."""

    def run(self) -> None:
        hosts = self.hosts()
        if not hosts:
            self.log.info("No target hosts, nothing to do")
            return

        if self.parallel and len(hosts) > 1:
            workers = min(self.max_workers or self.runtime.max_workers, len(hosts))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=self.name) as executor:
                future_to_host = {executor.submit(self._run_host, host): host for host in hosts}
                for future in as_completed(future_to_host):
                    host = future_to_host[future]
                    try:
                        self.results[host.name] = future.result()
                    except Exception as e:
                        self.failures[host.name] = e
        else:
            for host in hosts:
                try:
                    self.results[host.name] = self._run_host(host)
                except Exception as e:
                    self.failures[host.name] = e
                    break

        self._aggregate(hosts)

    def _run_host(self, host: HostSpec) -> Any:
        try:
            return self.run_on(host)
        except KubeopsError as e:
            raise e.with_context(host=host.name)
        except Exception as e:
            raise TaskError(f"{type(e).__name__}: {e}", host=host.name) from e

    def required_successes(self, total: int) -> int:
        if self.quorum:
            return total // 2 + 1
        if self.min_success is not None:
            return min(self.min_success, total)
        return total

    def _aggregate(self, hosts: List[HostSpec]) -> None:
        if not self.failures:
            return
        for host_name, error in self.failures.items():
            self.log.bind(host=host_name).error(f"Failed: {error}")

        succeeded = len(self.results)
        required = self.required_successes(len(hosts))
        if succeeded >= required and len(self.failures) + succeeded == len(hosts):
            self.log.warning(f"{len(self.failures)} host(s) failed, tolerated "
                             f"({succeeded}/{len(hosts)} succeeded, {required} required)")
            return

        if len(self.failures) == 1:
            raise next(iter(self.failures.values()))
        failed = ', '.join(sorted(self.failures))
        raise TaskError(f"{len(self.failures)} of {len(hosts)} hosts failed: {failed}",
                        failures=dict(self.failures))
