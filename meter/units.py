"""
Throughput units and the immutable ``SpeedMeasurement`` value.

Everything is canonically bits per second; units only scale for display.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class SpeedUnit(Enum):
    """Display scale for a throughput value."""

    BPS = (1, "bps")
    KBPS = (1_000, "Kbps")
    MBPS = (1_000_000, "Mbps")
    GBPS = (1_000_000_000, "Gbps")

    def __init__(self, multiplier: int, label: str) -> None:
        self.multiplier = multiplier
        self.label = label

    def __str__(self) -> str:
        return self.label

    @classmethod
    def for_bps(cls, bps: float) -> SpeedUnit:
        """Largest unit in which *bps* is at least 1."""
        for unit in (cls.GBPS, cls.MBPS, cls.KBPS):
            if bps >= unit.multiplier:
                return unit
        return cls.BPS


@dataclass(frozen=True)
class SpeedMeasurement:
    """A throughput reading, normalised to a display unit."""

    value: float
    unit: SpeedUnit = SpeedUnit.MBPS

    @classmethod
    def from_bps(cls, bps: float) -> SpeedMeasurement:
        unit = SpeedUnit.for_bps(bps)
        return cls(value=bps / unit.multiplier, unit=unit)

    def to_bps(self) -> float:
        return self.value * self.unit.multiplier

    def to(self, unit: SpeedUnit) -> SpeedMeasurement:
        return SpeedMeasurement(value=self.to_bps() / unit.multiplier, unit=unit)

    @property
    def mbps(self) -> float:
        return self.to_bps() / SpeedUnit.MBPS.multiplier

    def __str__(self) -> str:
        return f"{self.value:.1f} {self.unit.label}"

    def to_dict(self) -> Dict[str, Any]:
        return {"value": round(self.value, 3), "unit": self.unit.label}
