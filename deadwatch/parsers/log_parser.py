"""
Deadwatch - Log Parser
Parses Deadside.log lines into player and world events
"""

import re
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from deadwatch.parsers.events import Death, Join, Kill, Leave, ParsedEvent, WorldStatus

# [2025.04.10-00.00.00:123][ 42]LogSFPS: ...
TIMESTAMP_PATTERN = re.compile(r'^\[(\d{4}\.\d{2}\.\d{2}-\d{2}\.\d{2}\.\d{2}):(\d{3})\]')

# Priority order matters: first match wins
LOG_PATTERNS: Dict[str, re.Pattern] = {
    # PLAYER EVENTS
    'player_join': re.compile(r'LogSFPS: \[Login\] Player (.+?) connected', re.IGNORECASE),
    'player_leave': re.compile(r'LogSFPS: \[Logout\] Player (.+?) disconnected', re.IGNORECASE),
    'player_kill': re.compile(r'LogSFPS: \[Kill\] (.+?) killed (.+?) with (.+?) at distance (\d+)', re.IGNORECASE),
    'player_death': re.compile(r'LogSFPS: \[Death\] (.+?) died from (.+)', re.IGNORECASE),

    # WORLD EVENTS
    'airdrop': re.compile(r'LogSFPS: AirDrop switched to (\w+)', re.IGNORECASE),
    'helicrash_state': re.compile(r'LogSFPS: GameplayEvent (HelicrashManager.+?)HelicrashEvent.+? switched to (\w+)', re.IGNORECASE),
    'helicrash_spawn': re.compile(r'LogSFPS: Helicopter crash spawned at position (.+)', re.IGNORECASE),
    'trader_state': re.compile(r'LogSFPS: GameplayEvent (RoamingTraderManager.+?)RoamingTraderEvent.+? switched to (\w+)', re.IGNORECASE),
    'trader_spawn': re.compile(r'LogSFPS: Trader event started at (.+)', re.IGNORECASE),
    'mission': re.compile(r'LogSFPS: Mission (.+?) switched to (\w+)', re.IGNORECASE),
}


def extract_timestamp(line: str) -> Optional[datetime]:
    """Read the bracketed line prefix, if any"""
    match = TIMESTAMP_PATTERN.match(line)
    if not match:
        return None
    try:
        timestamp = datetime.strptime(match.group(1), '%Y.%m.%d-%H.%M.%S')
    except ValueError:
        return None
    return timestamp.replace(microsecond=int(match.group(2)) * 1000, tzinfo=timezone.utc)


def _manager_name(raw: str) -> str:
    return raw.strip().rstrip('._:')


def _build_join(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return Join(player=m.group(1).strip(), timestamp=ts)


def _build_leave(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return Leave(player=m.group(1).strip(), timestamp=ts)


def _build_kill(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return Kill(
        killer=m.group(1).strip(),
        victim=m.group(2).strip(),
        weapon=m.group(3).strip(),
        distance=int(m.group(4)),
        timestamp=ts,
    )


def _build_death(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return Death(player=m.group(1).strip(), cause=m.group(2).strip(), timestamp=ts)


def _build_airdrop(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return WorldStatus(kind='airdrop', status=m.group(1), timestamp=ts)


def _build_helicrash_state(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return WorldStatus(kind='helicrash', name=_manager_name(m.group(1)), status=m.group(2), timestamp=ts)


def _build_helicrash_spawn(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return WorldStatus(kind='helicrash', name=m.group(1).strip(), status='spawned', timestamp=ts)


def _build_trader_state(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return WorldStatus(kind='trader', name=_manager_name(m.group(1)), status=m.group(2), timestamp=ts)


def _build_trader_spawn(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return WorldStatus(kind='trader', name=m.group(1).strip(), status='started', timestamp=ts)


def _build_mission(m: re.Match, ts: Optional[datetime]) -> ParsedEvent:
    return WorldStatus(kind='mission', name=m.group(1).strip(), status=m.group(2), timestamp=ts)


_BUILDERS: Dict[str, Callable[[re.Match, Optional[datetime]], ParsedEvent]] = {
    'player_join': _build_join,
    'player_leave': _build_leave,
    'player_kill': _build_kill,
    'player_death': _build_death,
    'airdrop': _build_airdrop,
    'helicrash_state': _build_helicrash_state,
    'helicrash_spawn': _build_helicrash_spawn,
    'trader_state': _build_trader_state,
    'trader_spawn': _build_trader_spawn,
    'mission': _build_mission,
}

_ORDERED: List[Tuple[re.Pattern, Callable[[re.Match, Optional[datetime]], ParsedEvent]]] = [
    (pattern, _BUILDERS[name]) for name, pattern in LOG_PATTERNS.items()
]


def parse_log_line(line: str) -> Optional[ParsedEvent]:
    """Map one Deadside.log line to an event, or None when nothing matches"""
    line = line.rstrip('\r\n')
    if not line.strip():
        return None

    for pattern, build in _ORDERED:
        match = pattern.search(line)
        if match:
            return build(match, extract_timestamp(line))

    return None
