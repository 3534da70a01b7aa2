"""
Deadwatch - Feature Gate
Guild features and which of them need an active premium subscription
"""

from enum import Enum


class Feature(Enum):
    """Gated guild features"""
    KILLFEED = ("killfeed", False)
    BASIC_STATS = ("basic_stats", True)
    SERVER_MONITORING = ("server_monitoring", True)
    EVENT_NOTIFICATIONS = ("event_notifications", True)

    def __init__(self, key: str, premium_required: bool):
        self.key = key
        self.premium_required = premium_required

    @property
    def display_name(self) -> str:
        return self.key.replace('_', ' ').title()
