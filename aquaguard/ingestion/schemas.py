"""Schema definitions for inbound sensor messages and readings."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Parameter = Literal["tds", "ph", "turbidity"]

PARAMETERS: tuple[str, ...] = ("tds", "ph", "turbidity")

VALID_PARAMETERS: frozenset[str] = frozenset(PARAMETERS)


class SensorReading(BaseModel):
    """A validated reading, immutable once built.

    Attributes:
        device_id: Reporting device.
        turbidity: NTU, 0-1000, optional.
        tds: Total dissolved solids in ppm, 0-10000, optional.
        ph: 0-14, optional.
        timestamp: Epoch milliseconds (client supplied, clamped on drift).
        received_at: Epoch milliseconds assigned by the server.
    """

    model_config = ConfigDict(frozen=True)

    device_id: str
    turbidity: float | None = Field(default=None, ge=0, le=1000)
    tds: float | None = Field(default=None, ge=0, le=10000)
    ph: float | None = Field(default=None, ge=0, le=14)
    timestamp: int
    received_at: int

    def value_of(self, parameter: str) -> float | None:
        """Return the measured value for a parameter, if present."""
        return getattr(self, parameter, None) if parameter in VALID_PARAMETERS else None

    def present_parameters(self) -> list[str]:
        return [p for p in PARAMETERS if self.value_of(p) is not None]

    def to_store_dict(self) -> dict[str, Any]:
        return self.model_dump()


@dataclass
class SensorMessage:
    """A message from the sensor stream.

    ``device_id`` comes from the message attributes; ``data`` is the decoded
    JSON body, either a single reading or ``{"readings": [...]}``.
    """

    message_id: str
    device_id: str | None
    data: Any
    retry_count: int = 0
    attributes: dict[str, str] = field(default_factory=dict)

    def raw_readings(self) -> list[Any]:
        """Return the readings carried by the message body."""
        if isinstance(self.data, dict) and isinstance(self.data.get("readings"), list):
            return list(self.data["readings"])
        if self.data is None:
            return []
        return [self.data]
