"""Transfer of a single object from source to target."""

import asyncio
import logging
from typing import Any, Callable, Optional

from .connections import ConnectionLease, TargetConnectionProvider
from .state_store import TransferStateStore
from ..copiers.base import BatchResult, CopyCursor, RowCopier
from ..errors import BatchTimeout, classify_error
from ..models.catalog import DatabaseObject
from ..models.transfer import TransferSession, TransferStatus

logger = logging.getLogger(__name__)


class ObjectTransferWorker:
    """
    Runs one object's copy end to end.

    The worker owns the item while it is in progress: it begins it, fixes
    its record total, reports progress after every committed batch and
    leaves it completed, failed or cancelled. Errors are recorded on the
    item and never propagate to the scheduler.

    A copier call that outlives the batch timeout fails the item at once,
    but the worker only returns once that call has, so the item keeps its
    scheduler slot and target connection until then.
    """

    def __init__(
        self,
        session: TransferSession,
        store: TransferStateStore,
        obj: DatabaseObject,
        copier: RowCopier,
        provider: TargetConnectionProvider,
        batch_size: int = 500,
        batch_timeout: Optional[float] = 30.0
    ):
        """
        Initialize the worker.

        Args:
            session: Session the item belongs to (its cancel flag is polled)
            store: State store holding the item
            obj: Object to transfer
            copier: Copier for the object's kind
            provider: Target connection provider
            batch_size: Rows per batch
            batch_timeout: Seconds allowed per batch (None for no limit)
        """
        self.session = session
        self.store = store
        self.obj = obj
        self.copier = copier
        self.provider = provider
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout
        self._cursor: Optional[CopyCursor] = None
        self._stray: Optional[asyncio.Future] = None

    @property
    def name(self) -> str:
        return self.obj.name

    async def run(self) -> Optional[TransferStatus]:
        """
        Transfer the object.

        Returns:
            Final status of the item, or None if the item could not be started
        """
        if self.session.cancel_requested:
            self.store.cancel(self.name)
            return self.store.status_of(self.name)

        item = self.store.get(self.name)
        if item is None or not self.store.begin(self.name, item.total_records):
            logger.debug(f"Skipping {self.name}: item is not pending")
            return None

        logger.info(f"Starting transfer of {self.obj.kind.value} {self.name} (attempt {item.attempt})")
        self._cursor = None
        self._stray = None

        try:
            async with self.provider.lease() as lease:
                await self._transfer(lease)

        except asyncio.CancelledError:
            self.store.cancel(self.name)
            await self._settle(timeout=self.batch_timeout)
            raise

        except Exception as e:
            error = classify_error(e)
            self.store.fail(self.name, error)
            logger.error(f"Transfer of {self.name} failed ({error.kind.value}): {error.message}")

        await self._settle()
        return self.store.status_of(self.name)

    async def _transfer(self, lease: ConnectionLease) -> None:
        total = await self._resolve_total(lease)
        self.store.set_total(self.name, total)

        if total == 0:
            await self._call(lease, "Schema creation", self.copier.create_schema, self.obj, lease.connection)
            self.store.complete(self.name)
            logger.info(f"{self.name} has no records, marked complete")
            return

        transferred = 0
        while True:
            if self.session.cancel_requested:
                self.store.cancel(self.name)
                logger.info(f"Cancelled {self.name} after {transferred} records")
                return

            result = await self._call(
                lease,
                "Batch",
                self.copier.copy_batch,
                self.obj,
                self._cursor,
                self.batch_size,
                lease.connection,
            )

            self._cursor = result.next_cursor
            transferred += result.rows_copied
            self.store.record_progress(self.name, transferred)

            if result.is_final:
                break

        self.store.complete(self.name)
        logger.info(f"Completed {self.name}: {transferred} records")

    async def _resolve_total(self, lease: ConnectionLease) -> int:
        if not self.obj.kind.is_row_bearing:
            return 1
        if self.obj.estimated_record_count is not None:
            return self.obj.estimated_record_count

        counted = await self._call(lease, "Record count", self.copier.count_records, self.obj)
        if counted is None:
            logger.warning(f"No record count available for {self.name}, treating it as empty")
            return 0
        return counted

    async def _call(self, lease: ConnectionLease, step: str, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run a blocking copier call in a thread, bounded by the batch timeout.

        A thread cannot be interrupted. When the wait ends early the call
        keeps running, so the lease stays checked out until it returns.
        """
        call = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.wait_for(asyncio.shield(call), timeout=self.batch_timeout)
        except asyncio.TimeoutError:
            self._hold(lease, call)
            raise BatchTimeout(f"{step} of {self.name} exceeded {self.batch_timeout}s") from None
        except asyncio.CancelledError:
            if not call.done():
                self._hold(lease, call)
            raise

    def _hold(self, lease: ConnectionLease, call: asyncio.Future) -> None:
        self._stray = call
        lease.hold_until(call)

    async def _settle(self, timeout: Optional[float] = None) -> None:
        """Close the copy cursor once no copier call is still using it."""
        stray = self._stray
        if stray is not None and not stray.done():
            logger.warning(f"Waiting for an unfinished call on {self.name} to return")
            await asyncio.wait({stray}, timeout=timeout)
            if not stray.done():
                stray.add_done_callback(lambda _: self._close_cursors())
                return
        self._close_cursors()

    def _close_cursors(self) -> None:
        cursors = [self._cursor]
        stray = self._stray
        if stray is not None and not stray.cancelled() and stray.exception() is None:
            result = stray.result()
            # A first batch that outlived its wait opened a cursor nobody saw
            if isinstance(result, BatchResult) and result.next_cursor is not self._cursor:
                cursors.append(result.next_cursor)

        for cursor in cursors:
            if cursor is not None:
                self.copier.close(cursor)
