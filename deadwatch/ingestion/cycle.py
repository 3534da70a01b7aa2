"""
Deadwatch - Ingestion Cycle
One incremental read of a server's log or deathlog stream:
resolve the next file, fetch new lines, parse, apply, notify, persist the cursor
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from deadwatch.errors import EmptyOrUnreadableFile, TransportErrorKind, TransportFailure
from deadwatch.models.records import KillRecord, ServerConnection, StreamCursor, StreamKind
from deadwatch.parsers.cursor import resolve_next_read
from deadwatch.parsers.events import Death, Kill, ParsedEvent
from deadwatch.parsers.killfeed_parser import parse_kill_record
from deadwatch.parsers.log_parser import parse_log_line
from deadwatch.stats.aggregator import StatAggregator, kill_record_from_event

logger = logging.getLogger(__name__)

TRANSPORT_WARNING_INTERVAL = timedelta(hours=1)


class Transport(Protocol):
    async def list_files(self, server: ServerConnection, path: str) -> List[str]: ...

    async def find_by_extension(self, server: ServerConnection, root: str, extension: str) -> List[str]: ...

    async def read_lines_after(self, server: ServerConnection, path: str, last_line: int) -> List[str]: ...


class CursorStore(Protocol):
    async def load_cursor(self, server: ServerConnection, stream: StreamKind) -> StreamCursor: ...

    async def save_cursor(self, server: ServerConnection, stream: StreamKind, cursor: StreamCursor) -> None: ...


class KillRecordStore(Protocol):
    async def add_kill_record(self, record: KillRecord) -> None: ...


class NotificationSink(Protocol):
    async def publish(self, event: ParsedEvent, server: ServerConnection) -> bool: ...


@dataclass
class CycleReport:
    """Outcome of the most recent cycle for one (server, stream)"""
    stream: StreamKind
    finished_at: datetime
    file: Optional[str] = None
    events: int = 0
    malformed: int = 0
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionCycle:
    """
    INGESTION CYCLE
    - Single-flight per (server, stream); an overlapping run is skipped
    - Events are applied before the cursor is saved, so a failure in between
      re-delivers the same lines next time (at-least-once)
    - Transport failures leave the cursor untouched and never raise
    """

    def __init__(self, transport: Transport, cursor_store: CursorStore, aggregator: StatAggregator,
                 kill_records: KillRecordStore, notifier: NotificationSink,
                 clock: Callable[[], datetime] = _utcnow):
        self.transport = transport
        self.cursor_store = cursor_store
        self.aggregator = aggregator
        self.kill_records = kill_records
        self.notifier = notifier
        self.clock = clock

        self._locks: Dict[Tuple[str, StreamKind], asyncio.Lock] = {}
        self._last_warned: Dict[Tuple[str, TransportErrorKind], datetime] = {}
        self.reports: Dict[Tuple[str, StreamKind], CycleReport] = {}

    def is_running(self, server: ServerConnection, stream: StreamKind) -> bool:
        lock = self._locks.get((server.key, stream))
        return lock is not None and lock.locked()

    async def run_cycle(self, server: ServerConnection, stream: StreamKind) -> int:
        """Run one cycle and return the number of events processed"""
        lock = self._locks.setdefault((server.key, stream), asyncio.Lock())
        if lock.locked():
            logger.info(f"Skipping {stream.value} for {server.name}: previous cycle still running")
            return 0

        async with lock:
            try:
                return await self._run(server, stream)
            except TransportFailure as e:
                self._log_transport_failure(server, stream, e)
                self._report(server, stream, error=str(e))
                return 0
            except EmptyOrUnreadableFile as e:
                logger.debug(f"{stream.value} for {server.name}: nothing to read ({e})")
                self._report(server, stream, file=e.path)
                return 0

    async def _run(self, server: ServerConnection, stream: StreamKind) -> int:
        cursor = await self.cursor_store.load_cursor(server, stream)
        candidates = await self._list_candidates(server, stream)

        target = resolve_next_read(candidates, cursor)
        if target is None:
            logger.debug(f"No {stream.value} files found for {server.name}")
            self._report(server, stream)
            return 0

        file_name, offset = target
        path = f"{server.directory_for(stream)}/{file_name}"
        lines = await self.transport.read_lines_after(server, path, offset)

        processed = 0
        malformed = 0
        for raw_line in lines:
            if not raw_line.strip():
                continue

            event = self._parse(stream, raw_line)
            if event is None:
                malformed += 1
                continue

            await self._apply(server, stream, event, raw_line)
            await self._notify(event, server)
            processed += 1

        if file_name != cursor.last_file or lines:
            new_cursor = StreamCursor(last_file=file_name, last_line=offset + len(lines), last_touched=self.clock())
            await self.cursor_store.save_cursor(server, stream, new_cursor)

        if malformed:
            logger.debug(f"{malformed} unrecognised lines in {path} on {server.name}")
        if processed:
            logger.info(f"Processed {processed} {stream.value} events for {server.name} from {file_name}")

        self._report(server, stream, file=file_name, events=processed, malformed=malformed)
        return processed

    async def _list_candidates(self, server: ServerConnection, stream: StreamKind) -> List[str]:
        if stream is StreamKind.LOG:
            files = await self.transport.list_files(server, server.log_directory)
            return [name for name in files if name.lower().endswith('.log')]
        return await self.transport.find_by_extension(server, server.deathlogs_directory, '.csv')

    @staticmethod
    def _parse(stream: StreamKind, raw_line: str) -> Optional[ParsedEvent]:
        if stream is StreamKind.KILLS:
            return parse_kill_record(raw_line)
        return parse_log_line(raw_line)

    async def _apply(self, server: ServerConnection, stream: StreamKind, event: ParsedEvent, raw_line: str):
        timestamp = event.timestamp or self.clock()

        if stream is StreamKind.KILLS:
            if isinstance(event, Kill):
                await self.kill_records.add_kill_record(
                    kill_record_from_event(event, server, raw_line, timestamp)
                )
                await self.aggregator.apply(server.guild_id, event, timestamp)
            return

        # Log stream kills duplicate the deathlog rows and only notify
        if isinstance(event, Death):
            await self.aggregator.apply(server.guild_id, event, timestamp)

    async def _notify(self, event: ParsedEvent, server: ServerConnection):
        try:
            await self.notifier.publish(event, server)
        except Exception as e:
            logger.error(f"Notification sink failed for {server.name}: {e}")

    def _log_transport_failure(self, server: ServerConnection, stream: StreamKind, error: TransportFailure):
        key = (server.key, error.kind)
        now = self.clock()
        last = self._last_warned.get(key)

        if last is None or now - last >= TRANSPORT_WARNING_INTERVAL:
            self._last_warned[key] = now
            logger.warning(f"{stream.value} for {server.name} failed: {error}")
        else:
            logger.debug(f"{stream.value} for {server.name} failed again: {error}")

    def _report(self, server: ServerConnection, stream: StreamKind, **fields):
        self.reports[(server.key, stream)] = CycleReport(stream=stream, finished_at=self.clock(), **fields)

    def last_report(self, server: ServerConnection, stream: StreamKind) -> Optional[CycleReport]:
        return self.reports.get((server.key, stream))
