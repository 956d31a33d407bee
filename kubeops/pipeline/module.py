"""Modules: ordered groups of tasks sharing one Cache."""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..errors import KubeopsError, TaskError
from ..logging import ContextLogger, get_logger
from .cache import Cache
from .runtime import Runtime
from .task import Task

DEFAULT_MODULE_NAME = 'DefaultModule'
TASK_MODULE = 'TaskModule'


class Module(ABC):
    """A step of a pipeline.

    The pipeline binds a Runtime and a Cache, asks `is_skip()`, then calls
    `init()` and `run()`.
    """

    kind = 'Module'
    module_name: Optional[str] = None

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.module_name or DEFAULT_MODULE_NAME
        self.runtime: Optional[Runtime] = None
        self.cache: Optional[Cache] = None
        self.log: ContextLogger = get_logger("kubeops.module", module=self.name)

    def bind(self, runtime: Runtime, cache: Optional[Cache] = None) -> None:
        self.runtime = runtime
        self.cache = cache if cache is not None else Cache()

    def init(self) -> None:
        """Prepare the module once it is bound; subclasses build their tasks here."""

    def is_skip(self) -> bool:
        return False

    @abstractmethod
    def run(self) -> None:
        """Run the module, raising on failure."""


class TaskModule(Module):
    """Runs its tasks strictly in order and stops at the first failure.

    There is no rollback: the failing task's error is raised with the module
    name attached and the remaining tasks never start.
    """

    kind = TASK_MODULE

    def __init__(self, name: Optional[str] = None, tasks: Optional[Sequence[Task]] = None):
        super().__init__(name)
        self.tasks: List[Task] = list(tasks or [])
        self.executed: List[Task] = []

    def run(self) -> None:
        if self.runtime is None:
            raise TaskError("Module is not bound to a runtime", module=self.name)

        self.log.info("Begin Run")
        self.executed = []
        for task in self.tasks:
            instance = task.fresh()
            self.executed.append(instance)
            instance.init(self.runtime, self.cache, self.log)
            try:
                instance.execute()
            except KubeopsError as e:
                raise e.with_context(module=self.name)
        self.log.info("Run complete")
