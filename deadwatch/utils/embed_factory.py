"""
Deadwatch - Embed Factory
Embed creation for parsed server events with consistent theming
"""

import random
from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import discord

from deadwatch.models.records import ServerConnection
from deadwatch.parsers.events import Death, Join, Kill, Leave, ParsedEvent, WorldStatus

# Statuses worth announcing; helicrash and trader announce every transition
NOTIFY_STATUSES: Dict[str, Optional[set]] = {
    'airdrop': {'flying', 'waiting', 'dropped', 'active'},
    'mission': {'ready', 'active'},
    'helicrash': None,
    'trader': None,
}


def should_notify(event: ParsedEvent) -> bool:
    """World-status events are filtered by status; player events always notify"""
    if not isinstance(event, WorldStatus):
        return True
    if event.kind not in NOTIFY_STATUSES:
        return False
    allowed = NOTIFY_STATUSES[event.kind]
    return allowed is None or event.status.lower() in allowed


class EmbedFactory:
    """
    Centralized embed factory for consistent Discord embed styling
    """

    COLORS = {
        'killfeed': 0x00d38a,
        'suicide': 0xff5e5e,
        'death': 0xc084fc,
        'player_join': 0x2980B9,
        'player_leave': 0x8E44AD,
        'mission': 0x2ECC71,
        'airdrop': 0xF39C12,
        'helicrash': 0xC0392B,
        'trader': 0xFFD700,
        'success': 0x00FF00,
        'error': 0xFF0000,
        'info': 0x1E90FF,
        'default': 0x7289DA,
    }

    TITLE_POOLS: Dict[str, List[str]] = {
        'killfeed': [
            "Silhouette Erased",
            "Hostile Removed",
            "Contact Dismantled",
            "Kill Confirmed",
            "Eyes Off Target"
        ],
        'suicide': [
            "Self-Termination Logged",
            "Manual Override",
            "Exit Chosen"
        ],
        'death': [
            "Casualty Logged",
            "Wasteland Claims Another"
        ],
        'player_join': [
            "Connection Established",
            "New Arrival Detected"
        ],
        'player_leave': [
            "Connection Lost",
            "Departure Recorded"
        ],
        'mission': [
            "Contract Activated",
            "Target Zone Marked",
            "Mission Greenlit"
        ],
        'airdrop': [
            "Supplies Incoming",
            "Package Deployed"
        ],
        'helicrash': [
            "Crash Detected",
            "Wreckage Located"
        ],
        'trader': [
            "Trading Post Open",
            "Merchant Sighted"
        ]
    }

    COMBAT_LOGS = {
        'kill': [
            "Another shadow fades from the wasteland.",
            "The survivor count drops by one.",
            "Blood marks another chapter in survival.",
            "Death arrives on schedule in Deadside."
        ],
        'suicide': [
            "The wasteland claims another volunteer.",
            "Exit strategy: permanent.",
            "Final decision executed successfully."
        ]
    }

    FOOTER = "Powered by Deadwatch"

    @classmethod
    def build(cls, event: ParsedEvent, server: ServerConnection) -> discord.Embed:
        """Build the notification embed for one event"""
        if isinstance(event, Kill):
            if event.is_suicide:
                return cls._build_suicide(event, server)
            return cls._build_killfeed(event, server)
        elif isinstance(event, Death):
            return cls._build_death(event, server)
        elif isinstance(event, Join):
            return cls._build_connection('player_join', event.player, "joined", event.timestamp, server)
        elif isinstance(event, Leave):
            return cls._build_connection('player_leave', event.player, "left", event.timestamp, server)
        elif isinstance(event, WorldStatus):
            return cls._build_world_status(event, server)
        else:
            raise ValueError(f"Unknown event type: {type(event).__name__}")

    @classmethod
    def _base(cls, embed_type: str, timestamp: Optional[datetime], server: ServerConnection,
              description: Optional[str] = None) -> discord.Embed:
        embed = discord.Embed(
            title=random.choice(cls.TITLE_POOLS.get(embed_type, ["Server Event"])),
            description=description,
            color=cls.COLORS.get(embed_type, cls.COLORS['default']),
            timestamp=timestamp or datetime.now(ZoneInfo('UTC'))
        )
        embed.set_footer(text=f"Server: {server.name} | {cls.FOOTER}")
        return embed

    @classmethod
    def _build_killfeed(cls, event: Kill, server: ServerConnection) -> discord.Embed:
        embed = cls._base(
            'killfeed', event.timestamp, server,
            description=f"**{event.killer}**\neliminated\n**{event.victim}**"
        )
        embed.title = embed.title.upper()
        embed.add_field(name="", value=f"**Weapon:** {event.weapon}\n**From** {event.distance} Meters", inline=False)
        embed.add_field(name="", value=f"*{random.choice(cls.COMBAT_LOGS['kill'])}*", inline=False)
        return embed

    @classmethod
    def _build_suicide(cls, event: Kill, server: ServerConnection) -> discord.Embed:
        embed = cls._base('suicide', event.timestamp, server)
        embed.add_field(name="Subject", value=event.victim, inline=True)
        embed.add_field(name="Cause", value=event.weapon, inline=True)
        embed.add_field(name="Combat Log", value=random.choice(cls.COMBAT_LOGS['suicide']), inline=False)
        return embed

    @classmethod
    def _build_death(cls, event: Death, server: ServerConnection) -> discord.Embed:
        embed = cls._base('death', event.timestamp, server)
        embed.add_field(name="Subject", value=event.player, inline=True)
        embed.add_field(name="Cause", value=event.cause, inline=True)
        return embed

    @classmethod
    def _build_connection(cls, embed_type: str, player: str, verb: str,
                          timestamp: Optional[datetime], server: ServerConnection) -> discord.Embed:
        return cls._base(embed_type, timestamp, server, description=f"**{player}** {verb} the server")

    @classmethod
    def _build_world_status(cls, event: WorldStatus, server: ServerConnection) -> discord.Embed:
        embed = cls._base(event.kind, event.timestamp, server)
        if event.name:
            label = "Mission Zone" if event.kind == 'mission' else "Location"
            embed.add_field(name=label, value=event.name, inline=True)
        embed.add_field(name="Status", value=event.status.title(), inline=True)
        return embed

    @classmethod
    def create_embed(cls, embed_type: str, title: str, description: Optional[str] = None,
                     fields: Optional[List[Dict[str, object]]] = None) -> discord.Embed:
        """Create a plain styled embed for command responses"""
        embed = discord.Embed(
            title=title,
            description=description,
            color=cls.COLORS.get(embed_type, cls.COLORS['default']),
            timestamp=datetime.now(ZoneInfo('UTC'))
        )
        for field in fields or []:
            embed.add_field(
                name=field.get('name', 'Field'),
                value=field.get('value', 'Value'),
                inline=field.get('inline', False)
            )
        embed.set_footer(text=cls.FOOTER)
        return embed
