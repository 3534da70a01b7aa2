"""
Deadwatch - Main Bot Entry Point
Wires storage, transport, notifications and the ingestion scheduler into a py-cord bot
"""

import asyncio
import logging
import sys
import time

import discord
from motor.motor_asyncio import AsyncIOMotorClient

from deadwatch.config import Settings
from deadwatch.ingestion.cycle import IngestionCycle
from deadwatch.ingestion.scheduler import IngestionScheduler
from deadwatch.models.database import DatabaseManager
from deadwatch.sftp.connector import SftpConnector
from deadwatch.sftp.local import LocalTransport
from deadwatch.stats.aggregator import StatAggregator
from deadwatch.utils.batch_sender import BatchSender, DiscordNotifier

logger = logging.getLogger(__name__)

NOISY_LOGGERS = ('asyncssh', 'discord', 'apscheduler')


def setup_logging(level: str = "INFO"):
    """Console logging with UTC timestamps"""
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s', '%Y-%m-%d %H:%M:%S')
    formatter.converter = time.gmtime

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level, logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class DeadwatchBot(discord.Bot):
    """Discord bot that owns the ingestion pipeline"""

    def __init__(self, settings: Settings, mongo_client: AsyncIOMotorClient):
        super().__init__(intents=discord.Intents.default())
        self.settings = settings
        self.mongo_client = mongo_client
        self.db_manager = DatabaseManager(mongo_client, settings.mongodb_database)
        self.batch_sender = BatchSender(self)

        if settings.dev_mode:
            logger.info(f"Dev mode: reading server files from {settings.dev_data_dir}")
            transport = LocalTransport(settings.dev_data_dir)
        else:
            transport = SftpConnector(connect_timeout=settings.sftp_connect_timeout)

        cycle = IngestionCycle(
            transport=transport,
            cursor_store=self.db_manager,
            aggregator=StatAggregator(self.db_manager),
            kill_records=self.db_manager,
            notifier=DiscordNotifier(self.batch_sender),
        )
        self.ingestion = IngestionScheduler(
            registry=self.db_manager,
            cycle=cycle,
            log_interval=settings.log_interval,
            killfeed_interval=settings.killfeed_interval,
        )

        self.load_extension('deadwatch.cogs.parsers')

    async def on_ready(self):
        logger.info(f"Bot logged in as {self.user} ({len(self.guilds)} guilds)")
        if not self.ingestion.scheduler.running:
            self.ingestion.start()
            logger.info("Ingestion scheduler started")

    async def close(self):
        logger.info("Shutting down")
        self.ingestion.shutdown()
        await self.batch_sender.flush_all_queues()
        self.mongo_client.close()
        await super().close()


async def run(settings: Settings):
    mongo_client = AsyncIOMotorClient(settings.mongodb_uri)
    bot = DeadwatchBot(settings, mongo_client)
    await bot.db_manager.initialize_indexes()

    try:
        await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            await bot.close()


def main():
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    if not settings.discord_token:
        logger.error("DISCORD_TOKEN is not set")
        sys.exit(1)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
