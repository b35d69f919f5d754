"""Calibration arithmetic.

The valve shows ``displayed = measured + calibration``. Given a reference
reading from an independent sensor, the calibration that makes the valve
show the reference temperature is::

    new = reference - (displayed - old)

Valves accept calibration values on a 0.5 degree grid within +/-5 degrees,
so the raw value is snapped to the grid and clamped.

Arithmetic runs on ``Decimal`` built from each float's shortest repr so
that a reading of ``20.33`` lands exactly on the 0.33 threshold instead of
a binary neighbour of it.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

CALIBRATION_LIMIT = 5.0
PUBLISH_THRESHOLD = 0.49
LOWER_FRACTION_THRESHOLD = Decimal("0.33")
UPPER_FRACTION_THRESHOLD = Decimal("0.66")

_LIMIT = Decimal("5")
_HALF = Decimal("0.5")
_ONE = Decimal("1")
_ZERO = Decimal("0")


def _to_decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def _sign(value: Decimal) -> Decimal:
    if value > 0:
        return _ONE
    if value < 0:
        return -_ONE
    return _ZERO


def round_fraction(fraction: Decimal) -> Decimal:
    """Snap a fractional part to ``0``, ``+/-0.5`` or ``+/-1``.

    ``|f| <= 0.33`` gives 0, ``0.33 < |f| <= 0.66`` gives 0.5 and anything
    larger gives 1, each carrying the sign of *fraction*.
    """
    magnitude = abs(fraction)
    if magnitude <= LOWER_FRACTION_THRESHOLD:
        return _ZERO
    if magnitude <= UPPER_FRACTION_THRESHOLD:
        return _HALF * _sign(fraction)
    return _ONE * _sign(fraction)


def compute_calibration(sensor_temp: float, old_calibration: float, valve_displayed_temp: float) -> float:
    """Return the grid-aligned, clamped calibration for one device.

    Parameters
    ----------
    sensor_temp : float
        Reference temperature from the external sensor.
    old_calibration : float
        Calibration currently applied on the valve.
    valve_displayed_temp : float
        Temperature the valve currently reports (calibration included).

    Returns
    -------
    float
        A multiple of 0.5 in ``[-5.0, 5.0]``.
    """
    raw = _to_decimal(sensor_temp) - (_to_decimal(valve_displayed_temp) - _to_decimal(old_calibration))
    whole = raw.to_integral_value(rounding=ROUND_DOWN)
    candidate = whole + round_fraction(raw - whole)
    if abs(candidate) > _LIMIT:
        candidate = _sign(candidate) * _LIMIT
    if candidate == 0:
        return 0.0
    return float(candidate)


def should_publish(new_calibration: float, old_calibration: float) -> bool:
    """True when the new value is at least one grid step away from the old one."""
    return abs(new_calibration - old_calibration) > PUBLISH_THRESHOLD
