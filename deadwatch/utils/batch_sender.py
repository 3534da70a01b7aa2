"""
Deadwatch - Batch Sender
Queues notification embeds per channel and sends them in rate-limit friendly batches
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import discord

from deadwatch.models.records import ServerConnection
from deadwatch.parsers.events import Kill, ParsedEvent
from deadwatch.utils.embed_factory import EmbedFactory, should_notify

logger = logging.getLogger(__name__)


class BatchSender:
    """
    Batches Discord embeds and sends them in controlled intervals to avoid rate limits
    """

    def __init__(self, bot, batch_size: int = 10, batch_interval: float = 2.0, max_queue_size: int = 100):
        self.bot = bot
        self.message_queues: Dict[int, List[Dict[str, Any]]] = defaultdict(list)  # channel_id -> messages
        self.batch_size = batch_size
        self.batch_interval = batch_interval
        self.max_queue_size = max_queue_size
        self.message_spacing = 0.1
        self.processing_channels: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()

    async def queue_embed(self, channel_id: int, embed: discord.Embed, content: Optional[str] = None):
        """Queue an embed to be sent in batch"""
        if len(self.message_queues[channel_id]) >= self.max_queue_size:
            logger.warning(f"Message queue for channel {channel_id} is full, dropping message")
            return

        self.message_queues[channel_id].append({
            'embed': embed,
            'content': content,
            'timestamp': datetime.now(timezone.utc)
        })

        # Start processing this channel if not already processing
        if channel_id not in self.processing_channels:
            task = asyncio.create_task(self._process_channel_queue(channel_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _process_channel_queue(self, channel_id: int):
        """Process the message queue for a specific channel"""
        if channel_id in self.processing_channels:
            return

        self.processing_channels.add(channel_id)

        try:
            channel = self.bot.get_channel(channel_id)
            if not channel:
                logger.warning(f"Channel {channel_id} not found, clearing queue")
                self.message_queues[channel_id].clear()
                return

            queue = self.message_queues[channel_id]
            while queue:
                batch = queue[:self.batch_size]
                del queue[:self.batch_size]

                await self._send_batch(channel, batch)

                # Wait between batches
                if queue:
                    await asyncio.sleep(self.batch_interval)

        except Exception as e:
            logger.error(f"Error processing queue for channel {channel_id}: {e}")
        finally:
            self.processing_channels.discard(channel_id)

    async def _send_batch(self, channel, batch: List[Dict[str, Any]]):
        """Send a batch of messages with rate limit handling"""
        for message_data in batch:
            kwargs = {}
            if message_data['embed']:
                kwargs['embed'] = message_data['embed']
            if message_data['content']:
                kwargs['content'] = message_data['content']

            try:
                await channel.send(**kwargs)
                await asyncio.sleep(self.message_spacing)

            except discord.HTTPException as e:
                if e.status == 429:
                    retry_after = getattr(e, 'retry_after', 5.0)
                    logger.warning(f"Rate limited, waiting {retry_after} seconds")
                    await asyncio.sleep(retry_after)
                    try:
                        await channel.send(**kwargs)
                    except discord.HTTPException as retry_error:
                        logger.error(f"Failed to send message after rate limit retry: {retry_error}")
                else:
                    logger.error(f"Failed to send message: {e}")

    async def flush_all_queues(self):
        """Drain every queue (used on shutdown)"""
        tasks = list(self._tasks)
        for channel_id in list(self.message_queues.keys()):
            if self.message_queues[channel_id] and channel_id not in self.processing_channels:
                tasks.append(asyncio.create_task(self._process_channel_queue(channel_id)))

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_queue_stats(self) -> Dict[str, Any]:
        """Get current queue statistics"""
        total_queued = sum(len(queue) for queue in self.message_queues.values())
        active_channels = len([q for q in self.message_queues.values() if q])

        return {
            'total_queued_messages': total_queued,
            'active_channels': active_channels,
            'processing_channels': len(self.processing_channels),
        }


class DiscordNotifier:
    """
    Notification sink for parsed events
    - Kills go to the server's killfeed channel, everything else to its log channel
    - Fire-and-forget: publish never raises into the ingestion cycle
    """

    def __init__(self, batch_sender: BatchSender):
        self.batch_sender = batch_sender

    @staticmethod
    def channel_for(event: ParsedEvent, server: ServerConnection) -> Optional[int]:
        if isinstance(event, Kill):
            return server.killfeed_channel_id
        return server.log_channel_id

    async def publish(self, event: ParsedEvent, server: ServerConnection) -> bool:
        """Queue a notification; returns whether anything was queued"""
        try:
            if not should_notify(event):
                return False

            channel_id = self.channel_for(event, server)
            if not channel_id:
                logger.debug(f"No channel configured on {server.name} for {type(event).__name__}, dropping")
                return False

            embed = EmbedFactory.build(event, server)
            await self.batch_sender.queue_embed(channel_id, embed)
            return True

        except Exception as e:
            logger.error(f"Failed to publish {type(event).__name__} for {server.name}: {e}")
            return False
