import asyncio
import contextlib
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from pymongo import DESCENDING
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import BulkWriteError, PyMongoError

from keywarden.core.core import Service
from keywarden.core.modules.audit.feed import LiveFeed
from keywarden.core.modules.audit.models import Log, LogResult
from keywarden.core.pagination import PaginationResult
from keywarden.errors import StorageError

logger = structlog.get_logger(__name__)

DUPLICATE_KEY_CODE = 11000


class AuditService(Service):
    """Append-only audit trail.

    `record()` never blocks and never raises: entries go onto a bounded queue and a
    single writer task stores them in order, then hands them to the live feed.
    Entries that cannot be queued or stored are counted in `dropped` / `failed` and
    logged at error level.
    """

    retry_delays: tuple[float, ...] = (0.1, 0.5, 2.0)
    stop_timeout = 5.0

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("logs")
        self._queue: asyncio.Queue[Log] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._batch_size = 100
        self.feed = LiveFeed()
        self.dropped = 0  # Never queued
        self.failed = 0  # Queued but not stored

    async def on_start(self) -> None:
        config = self.core.config
        await self._collection.create_index([("timestamp", -1)])
        await self._collection.create_index([("key_id", 1), ("timestamp", -1)])

        self.feed = LiveFeed(config.live_feed_queue_size)
        self._batch_size = config.audit_batch_size
        self._queue = asyncio.Queue(maxsize=config.audit_queue_size)
        self._worker = asyncio.create_task(self._run(), name="audit-writer")

        if config.log_retention_days:
            await self.purge_logs(self.core.clock.now() - timedelta(days=config.log_retention_days))

    async def on_stop(self) -> None:
        if self._queue is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self.stop_timeout)
            except TimeoutError:
                lost = self._queue.qsize()
                if lost:
                    self.failed += lost
                    logger.error("audit_entries_lost_on_shutdown", count=lost)
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        self._queue = None

    def record(
        self,
        action: str,
        result: LogResult,
        *,
        key_id: UUID | None = None,
        npub: str | None = None,
        reason: str | None = None,
        ip_address: str | None = None,
    ) -> Log:
        """Queue an entry for storage and return it."""
        entry = Log(
            key_id=key_id,
            npub=npub,
            action=action,
            result=result,
            reason=reason,
            ip_address=ip_address,
            timestamp=self.core.clock.now(),
        )
        if self._queue is None:
            self._lose(entry, "writer_not_running")
            return entry
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self._lose(entry, "queue_full")
        return entry

    async def flush(self) -> None:
        """Wait until every queued entry has been handled."""
        if self._queue is not None:
            await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def list_logs(self, limit: int = 50, offset: int = 0, key_id: UUID | None = None) -> PaginationResult[Log]:
        """Stored entries, newest first."""
        query: dict[str, Any] = {} if key_id is None else {"key_id": key_id}
        try:
            total = await self._collection.count_documents(query)
            cursor = self._collection.find(query).sort("timestamp", DESCENDING).skip(offset).limit(limit)
            items = await Log.list_cursor(cursor)
        except PyMongoError as e:
            raise StorageError("Failed to read audit logs") from e
        return PaginationResult[Log].page(items, total, limit, offset)

    async def purge_logs(self, before: datetime) -> int:
        """Retention purge: delete every entry older than `before`."""
        try:
            res = await self._collection.delete_many({"timestamp": {"$lt": before}})
        except PyMongoError as e:
            raise StorageError("Failed to purge audit logs") from e
        logger.info("audit_logs_purged", before=before.isoformat(), count=res.deleted_count)
        return res.deleted_count

    async def _run(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            batch = [await queue.get()]
            while len(batch) < self._batch_size:
                try:
                    batch.append(queue.get_nowait())
                except asyncio.QueueEmpty:
                    break
            try:
                await self._store(batch)
                for entry in batch:
                    self.feed.publish(entry)
            except Exception:
                self.failed += len(batch)
                logger.exception("audit_writer_error", count=len(batch))
            finally:
                for _ in batch:
                    queue.task_done()

    async def _store(self, batch: list[Log]) -> None:
        pending = batch
        try:
            for delay in (*self.retry_delays, None):
                try:
                    await self._collection.insert_many([entry.to_mongo() for entry in pending], ordered=True)
                    return
                except BulkWriteError as e:
                    # Ordered insert stops at the first failure; keep what was written
                    inserted = e.details.get("nInserted", 0)
                    errors = e.details.get("writeErrors", [])
                    already_stored = 1 if errors and errors[0].get("code") == DUPLICATE_KEY_CODE else 0
                    pending = pending[inserted + already_stored :]
                    if not pending:
                        return
                    logger.warning("audit_write_partial", inserted=inserted, remaining=len(pending))
                except PyMongoError as e:
                    logger.warning("audit_write_retry", count=len(pending), error=str(e))
                if delay is not None:
                    await asyncio.sleep(delay)
        except asyncio.CancelledError:
            # Writer stopped mid-batch
            self.failed += len(pending)
            logger.error("audit_entries_lost_on_shutdown", count=len(pending), log_ids=[str(entry.id) for entry in pending])
            raise

        self.failed += len(pending)
        logger.error(
            "audit_write_failed",
            count=len(pending),
            log_ids=[str(entry.id) for entry in pending],
            actions=sorted({entry.action for entry in pending}),
        )

    def _lose(self, entry: Log, cause: str) -> None:
        self.dropped += 1
        logger.error(
            "audit_entry_dropped",
            cause=cause,
            action=entry.action,
            result=entry.result,
            key_id=str(entry.key_id) if entry.key_id else None,
            reason=entry.reason,
        )
