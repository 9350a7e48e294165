"""Unit-tagged energy and power quantities.

Daily logs store energy in kWh (some legacy fields are labelled "kW" but hold
kWh), while combined group limits are stored in watts and compared against
energy as "watt-hours". Every conversion goes through these types so the x1000
factor lives in exactly one place.
"""

from dataclasses import dataclass

WATTS_PER_KILOWATT = 1000.0
WATT_HOURS_PER_KILOWATT_HOUR = 1000.0


@dataclass(frozen=True, order=True)
class Energy:
    """An amount of energy, stored internally in kWh."""

    kwh: float = 0.0

    @classmethod
    def from_kwh(cls, value: float) -> "Energy":
        return cls(float(value))

    @classmethod
    def from_wh(cls, value: float) -> "Energy":
        return cls(float(value) / WATT_HOURS_PER_KILOWATT_HOUR)

    @classmethod
    def from_power(cls, power: "Power", hours: float) -> "Energy":
        """Energy used by a constant `power` draw over `hours`."""
        return cls(power.kilowatts * hours)

    @property
    def wh(self) -> float:
        return self.kwh * WATT_HOURS_PER_KILOWATT_HOUR

    def __add__(self, other: "Energy") -> "Energy":
        if not isinstance(other, Energy):
            return NotImplemented
        return Energy(self.kwh + other.kwh)

    def __radd__(self, other: object) -> "Energy":
        # Allows sum() over an iterable of Energy
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: "Energy") -> "Energy":
        if not isinstance(other, Energy):
            return NotImplemented
        return Energy(self.kwh - other.kwh)


ZERO_ENERGY = Energy(0.0)


@dataclass(frozen=True, order=True)
class Power:
    """An instantaneous power draw, stored internally in watts."""

    watts: float = 0.0

    @classmethod
    def from_watts(cls, value: float) -> "Power":
        return cls(float(value))

    @classmethod
    def from_kilowatts(cls, value: float) -> "Power":
        return cls(float(value) * WATTS_PER_KILOWATT)

    @property
    def kilowatts(self) -> float:
        return self.watts / WATTS_PER_KILOWATT


def group_limit_as_energy(combined_limit_watts: float) -> Energy:
    """Converts a combined group limit (stored in "watts") to its energy budget.

    Group limits are entered in the setup screen as watts and compared against
    the month's energy expressed in watt-hours, i.e. a 2000 W limit is a
    2.0 kWh monthly budget.
    """
    return Energy.from_wh(combined_limit_watts)
