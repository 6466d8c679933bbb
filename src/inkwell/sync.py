"""Background reconciliation queue.

Store mutations return immediately; the remote mirror and snapshot writes run
here as asyncio tasks. Tasks sharing a key (one entity, or one snapshot) run
strictly one after another in submission order. Tasks with different keys run
concurrently. Failures are logged and recorded as observability events, never
raised to the caller, and never retried.

Work submitted while no event loop is running is held back and started by the
next loop that submits or drains; synchronous callers use ``flush()``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from .observability import log as obs_log

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]
SuccessCallback = Callable[[Any], None]


class BackgroundSync:
    """Per-key sequential async task queue."""

    def __init__(self, name: str = "sync"):
        self.name = name
        self.failures = 0
        self.last_error: Optional[str] = None
        self._tails: dict[str, asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self._deferred: list[tuple[str, str, TaskFactory, Optional[SuccessCallback]]] = []

    @property
    def pending(self) -> int:
        """Number of tasks submitted but not yet settled."""
        return len(self._pending) + len(self._deferred)

    def is_pending(self, key: str) -> bool:
        return key in self._tails or any(entry[0] == key for entry in self._deferred)

    def submit(
        self,
        key: str,
        label: str,
        factory: TaskFactory,
        on_success: Optional[SuccessCallback] = None,
    ) -> Optional[asyncio.Task]:
        """Queue ``factory()`` behind earlier work for ``key``.

        ``factory`` is only called when the task starts, so anything it reads
        (ids, field values) is resolved at execution time.

        With no running event loop nothing is run: the work is deferred until
        the next ``drain()``, ``flush()`` or loop-bound submit, and None is
        returned instead of a task.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred.append((key, label, factory, on_success))
            logger.debug(f"{self.name}: deferred {label} for {key} until a loop runs")
            return None

        # Deferred work goes first so each key keeps its submission order
        self._start_deferred(loop)
        return self._schedule(loop, key, label, factory, on_success)

    def _start_deferred(self, loop: asyncio.AbstractEventLoop) -> None:
        deferred, self._deferred = self._deferred, []
        for key, label, factory, on_success in deferred:
            self._schedule(loop, key, label, factory, on_success)

    def _schedule(
        self,
        loop: asyncio.AbstractEventLoop,
        key: str,
        label: str,
        factory: TaskFactory,
        on_success: Optional[SuccessCallback],
    ) -> asyncio.Task:
        previous = self._tails.get(key)
        if previous is not None and (previous.done() or previous.get_loop() is not loop):
            previous = None

        task = loop.create_task(self._run(key, label, factory, on_success, previous))
        self._tails[key] = task
        self._pending.add(task)
        task.add_done_callback(lambda done: self._settle(key, done))
        return task

    def _settle(self, key: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _run(
        self,
        key: str,
        label: str,
        factory: TaskFactory,
        on_success: Optional[SuccessCallback],
        previous: Optional[asyncio.Task],
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})

        try:
            result = await factory()
        except Exception as e:
            self.failures += 1
            self.last_error = f"{label}: {e}"
            logger.warning(f"{self.name}: {label} failed for {key}: {e}")
            obs_log("sync.failed", queue=self.name, label=label, key=key, error=str(e))
            return

        logger.debug(f"{self.name}: {label} settled for {key}")
        if on_success is None:
            return

        try:
            on_success(result)
        except Exception as e:
            self.failures += 1
            self.last_error = f"{label}: {e}"
            logger.error(f"{self.name}: reconciling {label} for {key} failed: {e}", exc_info=True)
            obs_log("sync.reconcile_failed", queue=self.name, label=label, key=key, error=str(e))

    async def drain(self) -> None:
        """Wait until every submitted task, including ones queued meanwhile, settles."""
        self._start_deferred(asyncio.get_running_loop())
        while self._pending:
            await asyncio.wait(set(self._pending))

    def flush(self) -> None:
        """Run deferred work to completion from synchronous code.

        Raises:
            RuntimeError: When called while an event loop is running; await
                ``drain()`` there instead
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.drain())
            return
        raise RuntimeError("flush() cannot run inside an event loop; await drain() instead")
