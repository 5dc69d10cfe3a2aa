"""
Entities the rule engine reads from the surrounding map application.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional


@dataclass
class GeoObject:
    """A geo-tagged object on a map."""
    id: int
    map_id: int
    name: str = ""
    side_id: Optional[int] = None
    description: Optional[str] = None
    ttl: Optional[int] = None
    geometry_type: str = "Point"
    geometry: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Whether the object's TTL has not run out since its last touch."""
        if not self.ttl:
            return True
        now = now or datetime.now(timezone.utc)
        lifetime = timedelta(seconds=self.ttl)
        touched = [ts for ts in (self.created_at, self.updated_at) if ts is not None]
        return any(ts + lifetime > now for ts in touched)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GeoObject":
        geometry = row.get("geometry") or {}
        if isinstance(geometry, str):
            geometry = json.loads(geometry)
        return cls(
            id=row["id"],
            map_id=row["map_id"],
            name=row.get("name") or "",
            side_id=row.get("side_id"),
            description=row.get("description"),
            ttl=row.get("ttl"),
            geometry_type=row.get("geometry_type") or "Point",
            geometry=geometry,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class Observer:
    """Read-only viewer of one map, carrying a raw rules configuration."""
    id: int
    name: str
    map_id: int
    access_token: Optional[str] = None
    rules: Optional[Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Observer":
        rules = row.get("rules")
        if isinstance(rules, str):
            rules = json.loads(rules) if rules.strip() else {}
        return cls(
            id=row["id"],
            name=row["name"],
            map_id=row["map_id"],
            access_token=row.get("access_token"),
            rules=rules if rules is not None else {},
        )

    def update_from_row(self, row: Mapping[str, Any]) -> None:
        """Overwrite this observer's fields with a freshly read row."""
        fresh = Observer.from_row(row)
        self.name = fresh.name
        self.map_id = fresh.map_id
        self.access_token = fresh.access_token
        self.rules = fresh.rules
