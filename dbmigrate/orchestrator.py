"""Transfer orchestrator - entry point for running transfer sessions."""

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional

from .catalog.base import BaseCatalogClient
from .catalog.odbc_catalog import ODBCCatalogClient, open_source_connection
from .catalog.static_catalog import StaticCatalogClient
from .copiers import build_copiers
from .copiers.base import RowCopier
from .copiers.translator import MySQLTranslator
from .errors import ConfigurationError, ConnectionLost, MigrationError, SessionNotFound
from .models.catalog import DatabaseObject, ObjectKind
from .models.config import RetryPolicy, TransferConfig
from .models.transfer import StateChangeEvent, TransferSession, TransferSnapshot
from .services.connections import (
    NullConnectionProvider,
    PooledConnectionProvider,
    TargetConnectionProvider,
    mysql_connection_factory,
)
from .services.reporter import (
    LoggingReporter,
    WebhookReporter,
    load_snapshot,
    save_report,
    save_snapshot,
)
from .services.scheduler import TransferScheduler
from .services.state_store import TransferStateStore

logger = logging.getLogger(__name__)

Listener = Callable[[StateChangeEvent], None]


class TransferOrchestrator:
    """
    Runs transfer sessions from a source catalog to the target.

    Handles:
    - Listing the source catalog
    - Starting sessions for a selection of objects (optionally resuming)
    - Cancelling sessions and retrying failed items
    - Snapshots, run reports and change notifications

    Sessions live as long as the orchestrator. Each has its own state
    store and scheduler; nothing is shared between sessions except the
    catalog, the copiers and the target connection pool.
    """

    def __init__(
        self,
        catalog: BaseCatalogClient,
        copiers: Dict[ObjectKind, RowCopier],
        provider: TargetConnectionProvider,
        concurrency: int = 1,
        batch_size: int = 500,
        batch_timeout: Optional[float] = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        output_dir: Optional[str] = None,
        webhook: Optional[WebhookReporter] = None,
        config: Optional[TransferConfig] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            catalog: Catalog client for the source database
            copiers: Copier per object kind
            provider: Target connection provider
            concurrency: Maximum objects transferred at once per session
            batch_size: Rows per batch
            batch_timeout: Seconds allowed per batch
            retry_policy: Automatic retry policy (default: no automatic retries)
            output_dir: Where run reports are written (None disables reports)
            webhook: Optional webhook notified of item and session outcomes
            config: Configuration the orchestrator was built from, for reports
        """
        missing = [kind.value for kind in ObjectKind if kind not in copiers]
        if missing:
            raise ConfigurationError([f"No copier registered for {', '.join(missing)}"])

        self.catalog = catalog
        self.copiers = copiers
        self.provider = provider
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.output_dir = output_dir
        self.webhook = webhook
        self.config = config

        self._sessions: Dict[str, TransferScheduler] = {}
        self._listeners: List[Listener] = [LoggingReporter()]
        if webhook:
            self._listeners.append(webhook)

    @classmethod
    def from_config(cls, config: TransferConfig) -> "TransferOrchestrator":
        """
        Build an orchestrator with the ODBC source and MySQL target of a config.

        Raises:
            ConfigurationError: If the configuration is invalid
            MissingDependencyError: If a required driver is not installed
        """
        errors = config.validate()
        if errors:
            raise ConfigurationError(errors)

        if config.catalog_file:
            catalog: BaseCatalogClient = StaticCatalogClient.from_json_file(config.catalog_file)
        else:
            catalog = ODBCCatalogClient(config.source, definitions=config.routine_definitions)

        copiers = build_copiers(
            source_connect=functools.partial(open_source_connection, config.source),
            translator=MySQLTranslator(),
            definitions=config.routine_definitions,
            dry_run=config.dry_run,
            drop_existing=config.drop_existing,
        )

        if config.dry_run:
            provider: TargetConnectionProvider = NullConnectionProvider()
        else:
            provider = PooledConnectionProvider(
                mysql_connection_factory(config.target),
                max_size=config.concurrency,
            )

        return cls(
            catalog=catalog,
            copiers=copiers,
            provider=provider,
            concurrency=config.concurrency,
            batch_size=config.batch_size,
            batch_timeout=config.batch_timeout,
            retry_policy=config.retry,
            output_dir=config.output_dir if config.save_report else None,
            webhook=WebhookReporter(config.webhook_url) if config.webhook_url else None,
            config=config,
        )

    def list_objects(self) -> List[DatabaseObject]:
        """List the transferable objects of the source."""
        return self.catalog.list_objects()

    def subscribe(self, listener: Listener) -> None:
        """Receive state changes of every session, current and future."""
        self._listeners.append(listener)
        for scheduler in self._sessions.values():
            scheduler.store.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        for scheduler in self._sessions.values():
            scheduler.store.unsubscribe(listener)

    async def test_target(self) -> bool:
        """
        Check that the target accepts connections before any transfer.

        Returns:
            True if a target connection was opened and answered, False when
            there is no target to test (dry runs)

        Raises:
            ConnectionLost: If no connection could be made or it did not respond
        """
        try:
            async with self.provider.lease() as lease:
                if lease.connection is None:
                    logger.info("Dry run: no target connection to test")
                    return False
                call = asyncio.ensure_future(asyncio.to_thread(_ping, lease.connection))
                try:
                    await asyncio.wait_for(asyncio.shield(call), timeout=self.batch_timeout)
                except asyncio.TimeoutError:
                    lease.hold_until(call)
                    raise ConnectionLost(f"Target did not answer within {self.batch_timeout}s") from None
        except MigrationError:
            raise
        except Exception as e:
            raise ConnectionLost(f"Target connection failed: {e}") from e

        logger.info("Target connection OK")
        return True

    async def start_session(
        self,
        selection: List[str],
        resume_from: Optional[str] = None,
        name: Optional[str] = None
    ) -> str:
        """
        Start transferring the selected objects.

        Args:
            selection: Object names, in the order they should be dispatched
            resume_from: Snapshot file from an earlier run; its completed
                items are kept and everything else is transferred again
            name: Optional session name

        Returns:
            The new session's id

        Raises:
            InvalidSelection: If the selection is empty, has duplicates or
                names unknown objects
        """
        objects = await asyncio.to_thread(self.catalog.resolve, selection)
        restored = load_snapshot(resume_from) if resume_from else None

        session = TransferSession(
            selection=[obj.name for obj in objects],
            name=name or (self.config.name if self.config else ""),
            dry_run=bool(self.config and self.config.dry_run),
        )
        if resume_from:
            session.metadata["resumed_from"] = resume_from

        store = TransferStateStore(session.id)
        for listener in self._listeners:
            store.subscribe(listener)

        scheduler = TransferScheduler(
            session=session,
            store=store,
            objects=objects,
            copiers=self.copiers,
            provider=self.provider,
            concurrency=self.concurrency,
            batch_size=self.batch_size,
            batch_timeout=self.batch_timeout,
            retry_policy=self.retry_policy,
        )
        scheduler.on_finished(functools.partial(self._session_finished, session))
        self._sessions[session.id] = scheduler

        scheduler.start(restored)
        return session.id

    def cancel_session(self, session_id: str) -> bool:
        """Cancel a session. Returns False if it was already cancelled."""
        return self._get_scheduler(session_id).cancel()

    def retry_item(self, session_id: str, name: str) -> None:
        """
        Re-run a failed item of a session.

        Raises:
            InvalidState: If the item is not failed or the session was cancelled
        """
        self._get_scheduler(session_id).retry(name)

    def get_snapshot(self, session_id: str) -> TransferSnapshot:
        """Current snapshot of a session."""
        return self._get_scheduler(session_id).snapshot()

    def get_session(self, session_id: str) -> TransferSession:
        return self._get_scheduler(session_id).session

    def list_sessions(self) -> List[TransferSession]:
        return [scheduler.session for scheduler in self._sessions.values()]

    async def wait(self, session_id: str, timeout: Optional[float] = None) -> TransferSnapshot:
        """Wait for a session to go idle and return its final snapshot."""
        return await self._get_scheduler(session_id).wait(timeout)

    def save_snapshot(self, session_id: str, path: str) -> Any:
        """Write a session's item states to a file a later session can resume from."""
        return save_snapshot(self.get_snapshot(session_id), path)

    async def shutdown(self) -> None:
        """Stop every session and release target connections."""
        for scheduler in self._sessions.values():
            await scheduler.shutdown()
        self.provider.close_all()
        if self.webhook:
            self.webhook.close()

    def _get_scheduler(self, session_id: str) -> TransferScheduler:
        scheduler = self._sessions.get(session_id)
        if scheduler is None:
            raise SessionNotFound(f"Session not found: {session_id}")
        return scheduler

    def _session_finished(self, session: TransferSession, snapshot: TransferSnapshot) -> None:
        if self.output_dir:
            save_report(
                snapshot,
                self.output_dir,
                session=session,
                config=self.config.to_dict() if self.config else None,
            )
        if self.webhook:
            self.webhook.session_finished(snapshot)


def _ping(connection: Any) -> None:
    """Make a round trip to the target."""
    ping = getattr(connection, "ping", None)
    if ping is not None:
        ping(reconnect=False)
        return

    cursor = connection.cursor()
    try:
        cursor.execute("SELECT 1")
        cursor.fetchall()
    finally:
        cursor.close()
