"""Pipelines: ordered groups of modules."""
from typing import List, Optional, Sequence

from ..errors import KubeopsError, TaskError
from ..logging import get_logger
from .cache import Cache
from .module import Module
from .runtime import Runtime


class Pipeline:
    """Runs modules in order, stopping at the first failure.

    Each module gets a fresh Cache unless ``share_cache`` is set, in which case
    one Cache carries values across every module of the run.
    """

    def __init__(self, name: str, modules: Sequence[Module], runtime: Runtime,
                 share_cache: bool = False):
        self.name = name
        self.modules: List[Module] = list(modules)
        self.runtime = runtime
        self.share_cache = share_cache
        self.cache: Optional[Cache] = Cache() if share_cache else None
        self.log = get_logger("kubeops.pipeline", module=name)

    def run(self) -> None:
        self.log.info(f"Start pipeline with {len(self.modules)} module(s)")
        for module in self.modules:
            module.bind(self.runtime, self.cache if self.share_cache else Cache())
            if module.is_skip():
                self.log.info(f"Skip module {module.name}")
                continue

            try:
                module.init()
                module.run()
            except KubeopsError as e:
                self.log.error(f"Module {module.name} failed: {e}")
                raise e.with_context(module=module.name)
            except Exception as e:
                self.log.error(f"Module {module.name} failed: {e}")
                raise TaskError(f"{type(e).__name__}: {e}", module=module.name) from e
        self.log.info("Pipeline complete")
