"""
Monetization phases.

The platform moves through three phases, strictly forward and only on an
explicit admin action:

1. launch_free   - publishing is free and unlimited until the launch end date
2. credit_system - each user gets a monthly allotment of free listings
3. paid_system   - allotments stay, add-on pricing is switched on
"""

from enum import Enum


class Phase(Enum):
    """Platform-wide monetization stage."""
    LAUNCH_FREE = "launch_free"
    CREDIT_SYSTEM = "credit_system"
    PAID_SYSTEM = "paid_system"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Phase.LAUNCH_FREE: "Free launch",
    Phase.CREDIT_SYSTEM: "Credit system",
    Phase.PAID_SYSTEM: "Paid system",
}

_ORDER = (Phase.LAUNCH_FREE, Phase.CREDIT_SYSTEM, Phase.PAID_SYSTEM)


def next_phase(phase: Phase) -> Phase:
    """Return the phase that follows `phase`.

    Raises:
        ValueError: If `phase` is already the final phase
    """
    position = _ORDER.index(phase)
    if position == len(_ORDER) - 1:
        raise ValueError(f"{phase.value} is the final phase")
    return _ORDER[position + 1]


def is_final(phase: Phase) -> bool:
    return phase is _ORDER[-1]
