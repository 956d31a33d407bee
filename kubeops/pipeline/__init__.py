"""
Task pipeline execution engine.

A Pipeline runs Modules in order; a Module runs its Tasks in order. Every
level is fail-fast. Per-host parallelism lives inside a single task.
"""
from .cache import Cache
from .module import DEFAULT_MODULE_NAME, TASK_MODULE, Module, TaskModule
from .pipeline import Pipeline
from .runtime import Runtime
from .task import RemoteTask, Task, TaskState

__all__ = [
    'Cache',
    'DEFAULT_MODULE_NAME',
    'TASK_MODULE',
    'Module',
    'TaskModule',
    'Pipeline',
    'Runtime',
    'RemoteTask',
    'Task',
    'TaskState',
]
