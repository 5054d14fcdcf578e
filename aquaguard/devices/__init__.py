"""Device registry adapter: read registration facts, maintain presence."""

from aquaguard.devices.presence import check_offline_devices
from aquaguard.devices.repository import DeviceRepository
from aquaguard.devices.schemas import DeviceFact, DeviceLocation

__all__ = ["DeviceFact", "DeviceLocation", "DeviceRepository", "check_offline_devices"]
