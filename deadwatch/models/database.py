"""
Deadwatch - Database Models and Architecture
MongoDB persistence for the ingestion pipeline
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from deadwatch.errors import StoreFailure
from deadwatch.models.records import KillRecord, PlayerStat, ServerConnection, StreamCursor, StreamKind
from deadwatch.utils.feature_gate import Feature

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database manager backing every store the pipeline consumes:
    - Server registry: servers embedded in guild documents
    - Cursor store: one parser state per (guild, server, stream)
    - Player store: guild-scoped PvP stats
    - Kill-record store: append-only kill history
    - Subscription gate: premium documents per guild
    """

    def __init__(self, mongo_client: AsyncIOMotorClient, database_name: str = "deadwatch"):
        self.client = mongo_client
        self.db: AsyncIOMotorDatabase = mongo_client[database_name]

        # Collections
        self.guilds = self.db.guilds
        self.pvp_data = self.db.pvp_data
        self.kill_events = self.db.kill_events
        self.premium = self.db.premium_servers
        self.parser_states = self.db.parser_states

    async def initialize_indexes(self):
        """Create database indexes"""
        try:
            await self.guilds.create_index("guild_id", unique=True)

            # PvP data indexes (guild-scoped)
            await self.pvp_data.create_index([("guild_id", 1), ("player_name", 1)], unique=True)
            await self.pvp_data.create_index([("guild_id", 1), ("kills", -1)])

            # Kill events indexes (server-scoped)
            await self.kill_events.create_index([("guild_id", 1), ("server_id", 1), ("timestamp", -1)])
            await self.kill_events.create_index([("guild_id", 1), ("killer", 1)])
            await self.kill_events.create_index([("guild_id", 1), ("victim", 1)])

            await self.premium.create_index([("guild_id", 1), ("server_id", 1)])
            await self.premium.create_index("expires_at")

            await self.parser_states.create_index(
                [("guild_id", 1), ("server_id", 1), ("parser_type", 1)], unique=True
            )

            logger.info("Database indexes created successfully")

        except PyMongoError as e:
            logger.error(f"Failed to create database indexes: {e}")

    # SERVER REGISTRY
    async def list_servers(self) -> List[ServerConnection]:
        """All configured servers across every guild"""
        try:
            guild_docs = await self.guilds.find({}).to_list(length=None)
        except PyMongoError as e:
            raise StoreFailure(f"Failed to list guilds: {e}") from e

        servers = []
        for guild_doc in guild_docs:
            guild_id = guild_doc.get("guild_id")
            for server_doc in guild_doc.get("servers", []):
                server = self._server_from_document(guild_id, server_doc, guild_doc.get("channels"))
                if server:
                    servers.append(server)

        return servers

    async def get_server(self, guild_id: int, server_id: int) -> Optional[ServerConnection]:
        """Look up one server in a guild by its game server id"""
        try:
            guild_doc = await self.guilds.find_one({"guild_id": guild_id})
        except PyMongoError as e:
            raise StoreFailure(f"Failed to get guild {guild_id}: {e}") from e

        if not guild_doc:
            return None

        for server_doc in guild_doc.get("servers", []):
            # Check both _id and server_id for older documents
            if (str(server_doc.get("_id")) == str(server_id) or
                    str(server_doc.get("server_id")) == str(server_id)):
                return self._server_from_document(guild_id, server_doc, guild_doc.get("channels"))

        return None

    @staticmethod
    def _server_from_document(guild_id: int, server_doc: Dict[str, Any],
                              channels: Optional[Dict[str, Any]]) -> Optional[ServerConnection]:
        try:
            return ServerConnection.from_document(guild_id, server_doc, channels)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed server entry in guild {guild_id}: {e}")
            return None

    # PARSER STATE MANAGEMENT
    async def load_cursor(self, server: ServerConnection, stream: StreamKind) -> StreamCursor:
        """Get parser state for a server stream; a missing state is the zero cursor"""
        try:
            state = await self.parser_states.find_one({
                "guild_id": server.guild_id,
                "server_id": server.server_id,
                "parser_type": stream.value
            })
        except PyMongoError as e:
            raise StoreFailure(f"Failed to load parser state for {server.name}: {e}") from e

        return StreamCursor.from_document(state)

    async def save_cursor(self, server: ServerConnection, stream: StreamKind, cursor: StreamCursor):
        """Save parser state for a server stream in a single upsert"""
        try:
            await self.parser_states.update_one(
                {
                    "guild_id": server.guild_id,
                    "server_id": server.server_id,
                    "parser_type": stream.value
                },
                {
                    "$set": {
                        "guild_id": server.guild_id,
                        "server_id": server.server_id,
                        "parser_type": stream.value,
                        "last_updated": datetime.now(timezone.utc),
                        **cursor.to_document()
                    }
                },
                upsert=True
            )
            logger.debug(f"Saved {stream.value} state for {server.name}: {cursor.last_file}:{cursor.last_line}")
        except PyMongoError as e:
            raise StoreFailure(f"Failed to save parser state for {server.name}: {e}") from e

    # PVP DATA (Guild-scoped)
    async def find_by_name(self, guild_id: int, name: str) -> Optional[PlayerStat]:
        try:
            doc = await self.pvp_data.find_one({"guild_id": guild_id, "player_name": name})
        except PyMongoError as e:
            raise StoreFailure(f"Failed to load PvP stats for {name}: {e}") from e

        return PlayerStat.from_document(doc) if doc else None

    async def save(self, stat: PlayerStat):
        """Upsert the full stat document for one player"""
        try:
            await self.pvp_data.update_one(
                {"guild_id": stat.guild_id, "player_name": stat.name},
                {"$set": stat.to_document()},
                upsert=True
            )
        except PyMongoError as e:
            raise StoreFailure(f"Failed to save PvP stats for {stat.name}: {e}") from e

    async def add_kill_record(self, record: KillRecord):
        """Append one kill to the history"""
        try:
            await self.kill_events.insert_one(record.to_document())
            logger.debug(f"Added kill event: {record.killer} -> {record.victim} (distance: {record.distance}m)")
        except PyMongoError as e:
            raise StoreFailure(f"Failed to add kill event: {e}") from e

    async def get_recent_kills(self, guild_id: int, server_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent kill events for server"""
        try:
            cursor = self.kill_events.find(
                {"guild_id": guild_id, "server_id": server_id}
            ).sort("timestamp", -1).limit(limit)
            return await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StoreFailure(f"Failed to get recent kills: {e}") from e

    # PREMIUM
    async def is_entitled(self, guild_id: int, feature: Feature) -> bool:
        """Free features always pass; premium ones need an unexpired premium document"""
        if not feature.premium_required:
            return True

        try:
            premium_doc = await self.premium.find_one({
                "guild_id": guild_id,
                "active": {"$ne": False},
                "$or": [
                    {"expires_at": None},
                    {"expires_at": {"$gt": datetime.now(timezone.utc)}}
                ]
            })
        except PyMongoError as e:
            raise StoreFailure(f"Failed to check premium for guild {guild_id}: {e}") from e

        return premium_doc is not None
