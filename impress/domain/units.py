# impress/domain/units.py
from enum import Enum
from typing import Union

from impress.domain.errors import InvalidUnit


class Unit(str, Enum):
    POINT = "point"
    MILLIMETER = "millimeter"
    INCH = "inch"
    PIXEL = "pixel"  # 96 DPI approximation, not authoritative for print


# Conversion factors to points (PDF standard unit)
UNITS_TO_POINTS = {
    Unit.POINT: 1.0,
    Unit.MILLIMETER: 2.834645669,
    Unit.INCH: 72.0,
    Unit.PIXEL: 0.75,
}

_ALIASES = {
    "pt": Unit.POINT,
    "mm": Unit.MILLIMETER,
    "in": Unit.INCH,
    "px": Unit.PIXEL,
}

_SHORT = {v: k for k, v in _ALIASES.items()}


def parse_unit(value: Union[str, Unit]) -> Unit:
    if isinstance(value, Unit):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return Unit(key)
        except ValueError:
            pass
    raise InvalidUnit(value)


def convert(value: float, from_unit: Union[str, Unit], to_unit: Union[str, Unit]) -> float:
    """Convert a length between units, going through points."""
    src = parse_unit(from_unit)
    dst = parse_unit(to_unit)
    if src is dst:
        return value
    points = value * UNITS_TO_POINTS[src]
    return points / UNITS_TO_POINTS[dst]


def short_name(unit: Union[str, Unit]) -> str:
    return _SHORT[parse_unit(unit)]


def format_dimension(value: float, unit: Union[str, Unit] = Unit.POINT, display_unit: Union[str, Unit] = Unit.MILLIMETER) -> str:
    shown = round(convert(value, unit, display_unit), 2)
    return f"{shown} {short_name(display_unit)}"


def format_dimensions(width: float, height: float, unit: Union[str, Unit] = Unit.POINT,
                      display_unit: Union[str, Unit] = Unit.MILLIMETER) -> str:
    w = round(convert(width, unit, display_unit), 2)
    h = round(convert(height, unit, display_unit), 2)
    return f"{w} × {h} {short_name(display_unit)}"
