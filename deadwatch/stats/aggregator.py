"""
Deadwatch - Stat Aggregator
Applies parsed events to guild-scoped player stats

The favourite weapon, rival (most killed) and nemesis (most killed by) fields
use a sticky heuristic carried over from the original bot: the first value
seen is kept and only exact repeats increase its count. A player who gets one
kill with an AK74 and then fifty with an M4 still shows AK74 x1. A true top-k
would need a per-player counted map instead.
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from deadwatch.models.records import KillRecord, PlayerStat, ServerConnection
from deadwatch.parsers.events import Death, Kill, ParsedEvent

logger = logging.getLogger(__name__)


class PlayerStore(Protocol):
    async def find_by_name(self, guild_id: int, name: str) -> Optional[PlayerStat]: ...

    async def save(self, stat: PlayerStat) -> None: ...


def sticky_increment(current: str, count: int, value: str) -> Tuple[str, int]:
    """Count a repeat of the locked value, or lock onto value while the count is zero"""
    if current == value:
        return current, count + 1
    if count == 0:
        return value, 1
    return current, count


def apply_kill(killer: PlayerStat, victim: PlayerStat, event: Kill,
               timestamp: datetime) -> Tuple[PlayerStat, PlayerStat]:
    """Return updated copies of killer and victim for a PvP kill"""
    killer = killer.copy()
    victim = victim.copy()

    killer.kills += 1
    victim.deaths += 1

    killer.most_used_weapon, killer.most_used_weapon_kills = sticky_increment(
        killer.most_used_weapon, killer.most_used_weapon_kills, event.weapon
    )
    killer.most_killed_player, killer.most_killed_player_count = sticky_increment(
        killer.most_killed_player, killer.most_killed_player_count, event.victim
    )
    victim.killed_by_most, victim.killed_by_most_count = sticky_increment(
        victim.killed_by_most, victim.killed_by_most_count, event.killer
    )

    killer.last_updated = timestamp
    victim.last_updated = timestamp
    return killer, victim


def apply_suicide(player: PlayerStat, timestamp: datetime) -> PlayerStat:
    """Self-inflicted or environmental death; no PvP counters change"""
    player = player.copy()
    player.suicides += 1
    player.last_updated = timestamp
    return player


def kill_record_from_event(event: Kill, server: ServerConnection, raw_line: str,
                           timestamp: datetime) -> KillRecord:
    """Project a kill event into its immutable history record"""
    return KillRecord(
        guild_id=server.guild_id,
        server_id=server.server_id,
        killer=event.killer,
        victim=event.victim,
        weapon=event.weapon,
        distance=event.distance,
        timestamp=timestamp,
        raw_line=raw_line,
        is_suicide=event.is_suicide,
    )


class StatAggregator:
    """Loads, updates and saves the players touched by an event"""

    def __init__(self, player_store: PlayerStore):
        self.player_store = player_store

    async def get_or_create(self, guild_id: int, name: str) -> PlayerStat:
        stat = await self.player_store.find_by_name(guild_id, name)
        if stat is None:
            logger.debug(f"First sighting of player {name} in guild {guild_id}")
            stat = PlayerStat(guild_id=guild_id, name=name)
        return stat

    async def apply(self, guild_id: int, event: ParsedEvent, timestamp: datetime) -> List[PlayerStat]:
        """Apply one event and return the saved player stats"""
        if isinstance(event, Kill):
            if event.is_suicide:
                player = apply_suicide(await self.get_or_create(guild_id, event.victim), timestamp)
                await self.player_store.save(player)
                return [player]

            killer = await self.get_or_create(guild_id, event.killer)
            victim = await self.get_or_create(guild_id, event.victim)
            killer, victim = apply_kill(killer, victim, event, timestamp)
            await self.player_store.save(killer)
            await self.player_store.save(victim)
            return [killer, victim]

        if isinstance(event, Death):
            player = apply_suicide(await self.get_or_create(guild_id, event.player), timestamp)
            await self.player_store.save(player)
            return [player]

        return []
