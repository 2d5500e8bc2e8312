from __future__ import annotations

import fnmatch
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from steadyhost.core.apply.models import ItemResult
from steadyhost.core.plan.models import PlannedAction

Executor = Callable[[PlannedAction], ItemResult]


def is_parallel_safe(action: PlannedAction, unsafe_patterns: Iterable[str]) -> bool:
    names = [action.app_id.lower(), action.ref.lower(), f"{action.driver}:{action.ref}".lower()]
    for pat in unsafe_patterns:
        p = str(pat).lower()
        if any(fnmatch.fnmatchcase(n, p) for n in names):
            return False
    return True


def partition(actions: Iterable[PlannedAction], unsafe_patterns: Iterable[str]) -> Tuple[List[PlannedAction], List[PlannedAction]]:
    patterns = list(unsafe_patterns)
    parallel: List[PlannedAction] = []
    serial: List[PlannedAction] = []
    for a in actions:
        (parallel if is_parallel_safe(a, patterns) else serial).append(a)
    return parallel, serial


class InstallScheduler:
    """
    Parallel-safe actions run on a bounded pool; after the pool drains (join
    barrier) the unsafe ones run one at a time on the calling thread.

    Results are collected in `completed` as they finish so an interrupted
    run still has everything that did complete. `run()` returns them in the
    order the actions were given.
    """

    def __init__(self, *, max_parallel: int = 4, unsafe_patterns: Iterable[str] = (), logger=None):
        self.max_parallel = max(1, int(max_parallel))
        self.unsafe_patterns = list(unsafe_patterns)
        self.logger = logger
        self.completed: Dict[str, ItemResult] = {}
        self._lock = threading.Lock()

    def _record(self, res: ItemResult, on_result: Optional[Callable[[ItemResult], None]]) -> None:
        with self._lock:
            self.completed[res.app_id] = res
        if on_result is not None:
            on_result(res)

    def run(self, actions: List[PlannedAction], execute: Executor, *, on_result: Optional[Callable[[ItemResult], None]] = None) -> List[ItemResult]:
        parallel, serial = partition(actions, self.unsafe_patterns)
        if self.logger:
            self.logger.info("Scheduling %d parallel-safe, %d serial actions (max_parallel=%d)", len(parallel), len(serial), self.max_parallel)

        if parallel:
            pool = ThreadPoolExecutor(max_workers=min(self.max_parallel, len(parallel)), thread_name_prefix="apply-worker")
            pending: Dict[Future, PlannedAction] = {}
            try:
                pending = {pool.submit(execute, a): a for a in parallel}
                while pending:
                    done, _ = wait(list(pending), return_when=FIRST_COMPLETED)
                    for fut in done:
                        pending.pop(fut)
                        self._record(fut.result(), on_result)
            except KeyboardInterrupt:
                for fut in pending:
                    fut.cancel()
                pool.shutdown(wait=True)
                for fut in pending:
                    if fut.done() and not fut.cancelled() and fut.exception() is None:
                        self._record(fut.result(), on_result)
                raise
            pool.shutdown(wait=True)

        for a in serial:
            self._record(execute(a), on_result)

        return [self.completed[a.app_id] for a in actions if a.app_id in self.completed]
