"""
Deadwatch - Killfeed Parser
Parses deathlog CSV rows into kill events
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional, Tuple

from deadwatch.parsers.events import Kill

logger = logging.getLogger(__name__)

# "2025/04/10-00:00:00","Killer","killed","Victim","with","Weapon","from","100m"
CSV_PATTERN = re.compile(
    r'^"([^"]+)","([^"]+)","([^"]+)","([^"]+)","([^"]+)","([^"]+)","([^"]+)","(\d+)m"$'
)

TIMESTAMP_FORMAT = '%Y/%m/%d-%H:%M:%S'

# Weapon values that mean the victim died by their own hand or the environment
SUICIDE_CAUSES = {
    'suicide_by_relocation': 'Menu Suicide',
    'suicide': 'Suicide',
    'falling': 'Falling',
    'bleeding': 'Bleeding',
    'drowning': 'Drowning',
    'starvation': 'Starvation',
}


def normalize_weapon(killer: str, victim: str, weapon: str) -> Tuple[str, bool]:
    """Return the display weapon and whether the row is a suicide"""
    cause = SUICIDE_CAUSES.get(weapon.lower())
    if cause:
        return cause, True
    if killer == victim:
        return 'Suicide', True
    return weapon, False


def parse_timestamp(raw: str) -> Optional[datetime]:
    """Parse a record timestamp as UTC"""
    try:
        return datetime.strptime(raw, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_kill_record(line: str) -> Optional[Kill]:
    """Map one deathlog row to a Kill event, or None when the row is malformed"""
    row = line.strip()
    if not row:
        return None

    match = CSV_PATTERN.match(row)
    if not match:
        logger.debug(f"Killfeed line does not match expected format: {row}")
        return None

    timestamp_str, killer, action, victim, _, weapon, _, distance_str = match.groups()
    if action != 'killed':
        logger.debug(f"Unknown killfeed action '{action}' in line: {row}")
        return None

    timestamp = parse_timestamp(timestamp_str)
    if timestamp is None:
        logger.debug(f"Unparseable killfeed timestamp '{timestamp_str}' in line: {row}")
        return None

    weapon, suicide = normalize_weapon(killer, victim, weapon)

    return Kill(
        killer=killer,
        victim=victim,
        weapon=weapon,
        distance=int(distance_str),
        timestamp=timestamp,
        self_inflicted=suicide,
    )
