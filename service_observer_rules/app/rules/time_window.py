"""
Time-of-day window rule.
"""

import re
from datetime import datetime, time as dt_time, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.logging import get_logger

from ..models import GeoObject
from .base import ALWAYS_FALSE, BaseObserverRule
from .models import RuleConfig


TIME_PATTERN = "^([0-1][0-9]|2[0-3]):[0-5][0-9]$"

ALLOWED_TIMEZONES = [
    "UTC",
    "Europe/London",
    "Europe/Paris",
    "Europe/Berlin",
    "Europe/Moscow",
    "America/New_York",
    "America/Los_Angeles",
    "Asia/Tokyo",
    "Asia/Shanghai",
]

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")


class TimeRangeRule(BaseObserverRule):
    """Allow access only between ``start_time`` and ``end_time`` each day.

    A window whose end is not after its start spans midnight
    (``22:00``-``06:00``). Anything that cannot be parsed leaves access open.
    """

    def __init__(self, clock=None):
        super().__init__(clock)
        self.logger = get_logger("observer_rules.rules.time_range")

    @property
    def name(self) -> str:
        return "time_range"

    @property
    def priority(self) -> int:
        # Cheapest hard gate, evaluated before everything else
        return 10

    @classmethod
    def config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "start_time": {
                    "type": "string",
                    "pattern": TIME_PATTERN,
                    "description": "Start time in HH:MM format (24-hour)"
                },
                "end_time": {
                    "type": "string",
                    "pattern": TIME_PATTERN,
                    "description": "End time in HH:MM format (24-hour)"
                },
                "timezone": {
                    "type": "string",
                    "enum": ALLOWED_TIMEZONES,
                    "description": "Timezone for the window (defaults to UTC)"
                }
            },
            "required": ["start_time", "end_time"],
            "additionalProperties": False
        }

    def apply_to_query(self, query, config: RuleConfig):
        if not self.is_within_time_range(config):
            query.and_where(ALWAYS_FALSE)
        return query

    def apply_to_objects(self, geo_objects: List[GeoObject], config: RuleConfig) -> List[GeoObject]:
        if not self.is_within_time_range(config):
            return []
        return geo_objects

    def is_within_time_range(self, config: RuleConfig) -> bool:
        start_raw = config.get("start_time")
        end_raw = config.get("end_time")
        if start_raw is None or end_raw is None:
            return True

        try:
            zone = ZoneInfo(config.get("timezone") or "UTC")
            start = _parse_time(start_raw)
            end = _parse_time(end_raw)
        except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
            self.logger.debug("Unparseable time window, leaving access open", error=str(e))
            return True

        current = self.local_now(zone).time().replace(microsecond=0, tzinfo=None)

        if end <= start:
            # Window spans midnight
            return current >= start or current <= end
        return start <= current <= end

    def local_now(self, zone: ZoneInfo) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).astimezone(zone)


def _parse_time(value: Optional[str]) -> dt_time:
    match = _TIME_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time format: {value}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time values: {value}")
    return dt_time(hours, minutes)
