"""
Deadwatch - Ingestion Scheduler
Interval jobs that run the ingestion cycle for every configured server
"""

import logging
from datetime import timezone
from typing import Dict, List, Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from deadwatch.errors import StoreFailure
from deadwatch.ingestion.cycle import IngestionCycle
from deadwatch.models.records import ServerConnection, StreamKind

logger = logging.getLogger(__name__)


class ServerRegistry(Protocol):
    async def list_servers(self) -> List[ServerConnection]: ...

    async def get_server(self, guild_id: int, server_id: int) -> Optional[ServerConnection]: ...


class IngestionScheduler:
    """
    Two independent interval jobs, one per stream kind.
    Servers run one after another inside a tick; a failing server is logged
    and the tick moves on.
    """

    def __init__(self, registry: ServerRegistry, cycle: IngestionCycle,
                 log_interval: int = 60, killfeed_interval: int = 300,
                 scheduler: Optional[AsyncIOScheduler] = None):
        self.registry = registry
        self.cycle = cycle
        self.intervals: Dict[StreamKind, int] = {
            StreamKind.LOG: log_interval,
            StreamKind.KILLS: killfeed_interval,
        }
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

    def start(self):
        """Register both jobs and start the scheduler"""
        for stream, seconds in self.intervals.items():
            self.scheduler.add_job(
                self.run_tick,
                'interval',
                seconds=seconds,
                args=[stream],
                id=stream.value,
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
            logger.info(f"{stream.value} scheduled (every {seconds} seconds)")

        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Ingestion scheduler stopped")

    async def run_tick(self, stream: StreamKind) -> int:
        """Run one stream's cycle for every configured server"""
        try:
            servers = await self.registry.list_servers()
        except StoreFailure as e:
            logger.error(f"Failed to list servers for {stream.value}: {e}")
            return 0

        logger.debug(f"Running {stream.value} for {len(servers)} servers")

        total = 0
        for server in servers:
            try:
                total += await self.cycle.run_cycle(server, stream)
            except Exception as e:
                logger.error(f"{stream.value} failed for {server.name} in guild {server.guild_id}: {e}")

        if total:
            logger.info(f"{stream.value} completed: {total} events across {len(servers)} servers")
        return total

    async def force_refresh(self, guild_id: int, server_id: int) -> Optional[Dict[StreamKind, int]]:
        """Run both streams for one server now; None when the server is unknown"""
        server = await self.registry.get_server(guild_id, server_id)
        if server is None:
            return None

        results = {}
        for stream in (StreamKind.KILLS, StreamKind.LOG):
            results[stream] = await self.cycle.run_cycle(server, stream)

        logger.info(f"Manual refresh for {server.name}: {results[StreamKind.KILLS]} kills, "
                    f"{results[StreamKind.LOG]} log events")
        return results
