"""Schema definitions for device registry facts.

Devices are created and administered elsewhere; this service only reads
registration facts and maintains the presence columns (status,
last_seen, offline_since).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

DeviceStatus = Literal["online", "offline"]

VALID_DEVICE_STATUSES: frozenset[str] = frozenset({"online", "offline"})


@dataclass(frozen=True)
class DeviceLocation:
    """Physical placement of a device."""

    building: str | None = None
    floor: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.building) and bool(self.floor)

    def label(self) -> str:
        """``"building, floor"``, ``"building"`` or empty."""
        if self.is_complete:
            return f"{self.building}, {self.floor}"
        return self.building or ""


@dataclass(frozen=True)
class DeviceFact:
    """Registry view of a device.

    Attributes:
        device_id: Device identifier.
        display_name: Human-friendly name used in alert content.
        location: Building/floor placement.
        status: Presence status.
        last_seen: Last time a status write happened.
        offline_since: When the device was marked offline, if it is.
    """

    device_id: str
    display_name: str | None = None
    location: DeviceLocation = DeviceLocation()
    status: str = "offline"
    last_seen: datetime | None = None
    offline_since: datetime | None = None

    @property
    def is_registered(self) -> bool:
        """A device is registered once it has both building and floor."""
        return self.location.is_complete

    @property
    def name(self) -> str:
        return self.display_name or self.device_id
