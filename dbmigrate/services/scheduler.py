"""Dispatch of transfer items under a concurrency bound."""

import asyncio
import functools
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from .aggregator import build_snapshot
from .connections import TargetConnectionProvider
from .state_store import TransferStateStore
from .worker import ObjectTransferWorker
from ..errors import InvalidState
from ..copiers.base import RowCopier
from ..models.catalog import DatabaseObject, ObjectKind
from ..models.config import RetryPolicy
from ..models.transfer import (
    ErrorKind,
    SessionStatus,
    TransferItem,
    TransferSession,
    TransferSnapshot,
    TransferStatus,
)

logger = logging.getLogger(__name__)

FinishedCallback = Callable[[TransferSnapshot], None]


class TransferScheduler:
    """
    Runs a session's items, at most ``concurrency`` at a time.

    Items are dispatched in selection order from a ready queue. Whenever a
    worker finishes, the next pending item takes its slot. A failed item
    with a retryable error is re-queued automatically while the retry
    policy allows it. The scheduler is idle once nothing is pending, in
    progress or waiting for an automatic retry; at that point the session
    gets its completion time and final status.

    All methods must be called from the event loop thread.
    """

    def __init__(
        self,
        session: TransferSession,
        store: TransferStateStore,
        objects: List[DatabaseObject],
        copiers: Dict[ObjectKind, RowCopier],
        provider: TargetConnectionProvider,
        concurrency: int = 1,
        batch_size: int = 500,
        batch_timeout: Optional[float] = 30.0,
        retry_policy: Optional[RetryPolicy] = None
    ):
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")

        self.session = session
        self.store = store
        self.copiers = copiers
        self.provider = provider
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout
        self.retry_policy = retry_policy or RetryPolicy()

        self._objects: Dict[str, DatabaseObject] = {}
        for obj in objects:
            if obj.name in self._objects:
                raise ValueError(f"Object selected twice: {obj.name}")
            self._objects[obj.name] = obj

        self._ready: Deque[str] = deque()
        self._active: Dict[str, asyncio.Task] = {}
        self._retry_handles: Dict[str, asyncio.TimerHandle] = {}
        self._batch_sizes: Dict[str, int] = {}
        self._idle = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._finished_callbacks: List[FinishedCallback] = []

    @property
    def active_count(self) -> int:
        """Number of workers currently running."""
        return len(self._active)

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()

    def on_finished(self, callback: FinishedCallback) -> None:
        """Register a callback receiving the final snapshot each time the session goes idle."""
        self._finished_callbacks.append(callback)

    def batch_size_for(self, name: str) -> int:
        return self._batch_sizes.get(name, self.batch_size)

    def start(self, restored: Optional[Dict[str, TransferItem]] = None) -> None:
        """
        Create the items and begin dispatching.

        Args:
            restored: Item states from an earlier run. Completed items stay
                completed and are not dispatched; all others start fresh.

        Raises:
            InvalidState: If the session was already started
        """
        if self.session.started_at is not None:
            raise InvalidState(f"Session {self.session.id} was already started")

        self._loop = asyncio.get_running_loop()
        self.session.started_at = datetime.utcnow()
        self.session.status = SessionStatus.RUNNING

        restored = restored or {}
        for name, obj in self._objects.items():
            prior = restored.get(name)
            if prior is not None and prior.status == TransferStatus.COMPLETED and prior.kind == obj.kind:
                self.store.add(obj, prior.copy())
                logger.info(f"Keeping {name} completed from previous run")
            else:
                self.store.add(obj)
                self._ready.append(name)

        logger.info(
            f"Session {self.session.id} started: {len(self._objects)} objects, "
            f"{len(self._ready)} to transfer, concurrency {self.concurrency}"
        )
        self._pump()

    def cancel(self) -> bool:
        """
        Cancel the session.

        Pending items are cancelled at once and scheduled retries dropped.
        Running workers stop before their next batch. Calling it again has
        no further effect.

        Returns:
            True if this call requested the cancellation
        """
        if self.session.cancel_requested:
            return False

        self.session.cancel_requested = True
        for handle in self._retry_handles.values():
            handle.cancel()
        dropped_retries = len(self._retry_handles)
        self._retry_handles.clear()

        cancelled = self.store.cancel_pending()
        self._ready.clear()
        logger.info(
            f"Session {self.session.id} cancelled: {len(cancelled)} pending items cancelled, "
            f"{dropped_retries} scheduled retries dropped, {len(self._active)} workers stopping"
        )
        self._check_idle()
        return True

    def retry(self, name: str) -> None:
        """
        Re-run a failed item.

        Raises:
            InvalidState: If the item is unknown or not failed, or the
                session was cancelled
        """
        if name not in self._objects:
            raise InvalidState(f"No item named {name} in session {self.session.id}")
        if self.session.cancel_requested:
            raise InvalidState(f"Session {self.session.id} was cancelled")

        status = self.store.status_of(name)
        if status != TransferStatus.FAILED:
            raise InvalidState(f"Only failed items can be retried, {name} is {status.value}")

        handle = self._retry_handles.pop(name, None)
        if handle is not None:
            handle.cancel()

        if not self.store.reset_for_retry(name):
            raise InvalidState(f"Item {name} changed state before it could be retried")

        logger.info(f"Retrying {name} on operator request")
        self._requeue(name)

    async def wait(self, timeout: Optional[float] = None) -> TransferSnapshot:
        """Wait until the session is idle and return its snapshot."""
        if timeout is None:
            await self._idle.wait()
        else:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        return self.snapshot()

    def snapshot(self) -> TransferSnapshot:
        """Current snapshot of the session."""
        snapshot = build_snapshot(self.session, self.store.items())
        if self.session.started_at is not None and not self.is_idle:
            # An item waiting for an automatic retry is failed but not final
            snapshot.status = SessionStatus.RUNNING
        return snapshot

    async def shutdown(self) -> None:
        """Cancel the session and stop running workers immediately."""
        self.cancel()
        tasks = list(self._active.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Dispatch

    def _pump(self) -> None:
        while len(self._active) < self.concurrency:
            name = self._next_ready()
            if name is None:
                break
            self._dispatch(name)
        self._check_idle()

    def _next_ready(self) -> Optional[str]:
        while self._ready:
            name = self._ready.popleft()
            if name in self._active:
                continue
            if self.store.status_of(name) == TransferStatus.PENDING:
                return name
        return None

    def _dispatch(self, name: str) -> None:
        obj = self._objects[name]
        worker = ObjectTransferWorker(
            session=self.session,
            store=self.store,
            obj=obj,
            copier=self.copiers[obj.kind],
            provider=self.provider,
            batch_size=self.batch_size_for(name),
            batch_timeout=self.batch_timeout,
        )
        task = self._loop.create_task(worker.run(), name=f"transfer:{name}")
        self._active[name] = task
        task.add_done_callback(functools.partial(self._on_worker_done, name))

    def _on_worker_done(self, name: str, task: asyncio.Task) -> None:
        self._active.pop(name, None)

        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Worker for {name} crashed: {task.exception()}")

        item = self.store.get(name)
        if item is not None and item.status == TransferStatus.FAILED:
            self._schedule_automatic_retry(item)

        self._pump()

    def _requeue(self, name: str) -> None:
        if self._idle.is_set():
            self._idle.clear()
            self.session.completed_at = None
            self.session.status = SessionStatus.RUNNING
        self._ready.append(name)
        self._pump()

    # Automatic retries

    def _schedule_automatic_retry(self, item: TransferItem) -> None:
        if self.session.cancel_requested or item.error is None or not item.error.retryable:
            return
        if item.attempt >= self.retry_policy.max_attempts:
            return

        if item.error.kind == ErrorKind.TIMEOUT:
            reduced = self.retry_policy.reduced_batch_size(self.batch_size_for(item.name))
            self._batch_sizes[item.name] = reduced
            delay = 0.0
            logger.warning(f"{item.name} timed out, retrying with batch size {reduced}")
        else:
            delay = self.retry_policy.backoff_for(item.attempt)
            logger.warning(
                f"{item.name} failed with {item.error.kind.value}, "
                f"retrying in {delay:.1f}s (attempt {item.attempt + 1} of {self.retry_policy.max_attempts})"
            )

        self._retry_handles[item.name] = self._loop.call_later(delay, self._run_automatic_retry, item.name)

    def _run_automatic_retry(self, name: str) -> None:
        self._retry_handles.pop(name, None)
        if not self.session.cancel_requested and self.store.reset_for_retry(name):
            self._requeue(name)
        else:
            self._check_idle()

    # Completion

    def _check_idle(self) -> None:
        if self._active or self._retry_handles or self._idle.is_set():
            return
        if self.session.started_at is None:
            return
        self._finalize()

    def _finalize(self) -> None:
        self.session.completed_at = datetime.utcnow()
        snapshot = build_snapshot(self.session, self.store.items())
        self.session.status = snapshot.status
        self._idle.set()

        logger.info(
            f"Session {self.session.id} finished: {snapshot.status.value}, "
            f"{snapshot.counts.get(TransferStatus.COMPLETED.value, 0)} completed, "
            f"{snapshot.counts.get(TransferStatus.FAILED.value, 0)} failed, "
            f"{snapshot.counts.get(TransferStatus.CANCELLED.value, 0)} cancelled"
        )

        for callback in list(self._finished_callbacks):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Session finished callback failed: {e}")
