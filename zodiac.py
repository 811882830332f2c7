"""Sign table and formatting of raw longitudes into chart points, houses and angles."""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ephemeris import HouseSystem, HousesAndAngles, PointPosition
from exceptions import UnsupportedHouseSystemError


@dataclass(frozen=True)
class ZodiacSign:
    index: int
    name: str
    glyph: str
    element: str
    modality: str
    ruler: str


SIGNS: Tuple[ZodiacSign, ...] = (
    ZodiacSign(0, 'Aries', '♈', 'fire', 'cardinal', 'Mars'),
    ZodiacSign(1, 'Taurus', '♉', 'earth', 'fixed', 'Venus'),
    ZodiacSign(2, 'Gemini', '♊', 'air', 'mutable', 'Mercury'),
    ZodiacSign(3, 'Cancer', '♋', 'water', 'cardinal', 'Moon'),
    ZodiacSign(4, 'Leo', '♌', 'fire', 'fixed', 'Sun'),
    ZodiacSign(5, 'Virgo', '♍', 'earth', 'mutable', 'Mercury'),
    ZodiacSign(6, 'Libra', '♎', 'air', 'cardinal', 'Venus'),
    ZodiacSign(7, 'Scorpio', '♏', 'water', 'fixed', 'Mars'),
    ZodiacSign(8, 'Sagittarius', '♐', 'fire', 'mutable', 'Jupiter'),
    ZodiacSign(9, 'Capricorn', '♑', 'earth', 'cardinal', 'Saturn'),
    ZodiacSign(10, 'Aquarius', '♒', 'air', 'fixed', 'Uranus'),
    ZodiacSign(11, 'Pisces', '♓', 'water', 'mutable', 'Neptune'),
)

ELEMENTS = ('fire', 'earth', 'air', 'water')
MODALITIES = ('cardinal', 'fixed', 'mutable')

DIGNITIES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    'Sun': {'dignity': ('Leo',), 'detriment': ('Aquarius',), 'exaltation': ('Aries',), 'fall': ('Libra',)},
    'Moon': {'dignity': ('Cancer',), 'detriment': ('Capricorn',), 'exaltation': ('Taurus',), 'fall': ('Scorpio',)},
    'Mercury': {'dignity': ('Gemini', 'Virgo'), 'detriment': ('Sagittarius', 'Pisces'), 'exaltation': ('Virgo',), 'fall': ('Pisces',)},
    'Venus': {'dignity': ('Taurus', 'Libra'), 'detriment': ('Scorpio', 'Aries'), 'exaltation': ('Pisces',), 'fall': ('Virgo',)},
    'Mars': {'dignity': ('Aries', 'Scorpio'), 'detriment': ('Libra', 'Taurus'), 'exaltation': ('Capricorn',), 'fall': ('Cancer',)},
    'Jupiter': {'dignity': ('Sagittarius', 'Pisces'), 'detriment': ('Gemini', 'Virgo'), 'exaltation': ('Cancer',), 'fall': ('Capricorn',)},
    'Saturn': {'dignity': ('Capricorn', 'Aquarius'), 'detriment': ('Cancer', 'Leo'), 'exaltation': ('Libra',), 'fall': ('Aries',)},
    'Uranus': {'dignity': ('Aquarius',), 'detriment': ('Leo',), 'exaltation': ('Scorpio',), 'fall': ('Taurus',)},
    'Neptune': {'dignity': ('Pisces',), 'detriment': ('Virgo',), 'exaltation': ('Cancer',), 'fall': ('Capricorn',)},
    'Pluto': {'dignity': ('Scorpio',), 'detriment': ('Taurus',), 'exaltation': ('Aries',), 'fall': ('Libra',)},
}

# Checked in this order; the first match wins (Mercury in Virgo is 'dignity').
DIGNITY_ORDER = ('dignity', 'detriment', 'exaltation', 'fall')


@dataclass(frozen=True)
class FormattedPoint:
    """A chart point placed in its sign (and house, when the chart has houses)."""
    name: str
    sign: str
    sign_glyph: str
    degree: int
    minute: int
    longitude: float
    house: Optional[int] = None
    retrograde: bool = False
    longitude_speed: float = 0.0
    dignity: Optional[str] = None


@dataclass(frozen=True)
class HouseCusp:
    house_number: int
    sign: str
    sign_glyph: str
    start_degree_in_sign: int
    absolute_degree: float


@dataclass(frozen=True)
class ChartAngle:
    sign: str
    sign_glyph: str
    longitude: float


def normalize_degrees(deg: float) -> float:
    """Normalize degrees to 0-360 range."""
    return deg % 360


def rounded_longitude(deg: float) -> float:
    """Longitude as shown on a chart: 0-360, two decimals. 359.998 becomes 0.0."""
    return round(normalize_degrees(deg), 2) % 360


def sign_index(degree: float) -> int:
    return int(normalize_degrees(degree) // 30) % 12


def get_zodiac_sign(degree: float) -> ZodiacSign:
    return SIGNS[sign_index(degree)]


def degree_in_sign(degree: float) -> Tuple[int, int]:
    """Whole degrees (0-29) and minutes (0-59) within the sign."""
    within = normalize_degrees(degree) % 30
    deg_int = int(within)
    # 12.1 - 12 is 0.0999... in floating point; rounding keeps that at 6 minutes, not 5
    minutes = min(int(round((within - deg_int) * 60, 6)), 59)
    return deg_int, minutes


def format_longitude(degree: float) -> str:
    """Short form such as "♈ 15°30'"."""
    sign = get_zodiac_sign(degree)
    deg_int, minutes = degree_in_sign(degree)
    return f"{sign.glyph} {deg_int}°{minutes}'"


def opposite_sign(name: str) -> Optional[str]:
    for sign in SIGNS:
        if sign.name == name:
            return SIGNS[(sign.index + 6) % 12].name
    return None


def planetary_dignity(planet: str, sign: str) -> str:
    """dignity, detriment, exaltation, fall or neutral for a planet in a sign."""
    table = DIGNITIES.get(planet)
    if table is None:
        return 'neutral'
    for status in DIGNITY_ORDER:
        if sign in table[status]:
            return status
    return 'neutral'


def format_point(name: str, position: PointPosition, house: Optional[int] = None) -> FormattedPoint:
    """
    Place a raw position in its sign.

    Sign, degree and minute are all taken from the rounded longitude, so
    sign == floor(longitude / 30) holds for the returned point.
    """
    longitude = rounded_longitude(position.longitude)
    sign = get_zodiac_sign(longitude)
    deg_int, minutes = degree_in_sign(longitude)
    return FormattedPoint(
        name=name,
        sign=sign.name,
        sign_glyph=sign.glyph,
        degree=deg_int,
        minute=minutes,
        longitude=longitude,
        house=house,
        retrograde=position.longitude_speed < 0,
        longitude_speed=position.longitude_speed,
        dignity=planetary_dignity(name, sign.name) if name in DIGNITIES else None,
    )


def format_angle(longitude: float) -> ChartAngle:
    longitude = rounded_longitude(longitude)
    sign = get_zodiac_sign(longitude)
    return ChartAngle(sign=sign.name, sign_glyph=sign.glyph, longitude=longitude)


def calculate_house_position(degree: float, ascendant_degree: float) -> int:
    """Whole Sign house (1-12) of a longitude, counted from the Ascendant's sign."""
    return 1 + ((sign_index(degree) - sign_index(ascendant_degree) + 12) % 12)


def house_for_point(longitude: float, ascendant: float, house_system: HouseSystem) -> int:
    """
    House of a point for the given system.

    Only Whole Sign houses follow from the sign offset alone. Other systems
    need true cusp boundaries and are refused rather than approximated.
    """
    house_system = HouseSystem.parse(house_system)
    if house_system != HouseSystem.WHOLE_SIGN:
        raise UnsupportedHouseSystemError(house_system.name)
    return calculate_house_position(longitude, ascendant)


def _format_cusp(house_number: int, cusp: float, whole_sign: bool) -> HouseCusp:
    sign = get_zodiac_sign(cusp)
    return HouseCusp(
        house_number=house_number,
        sign=sign.name,
        sign_glyph=sign.glyph,
        start_degree_in_sign=0 if whole_sign else degree_in_sign(cusp)[0],
        absolute_degree=normalize_degrees(cusp),
    )


def whole_sign_cusps(ascendant: float) -> List[HouseCusp]:
    """Twelve cusps at 0° of each sign, starting with the Ascendant's sign."""
    first = sign_index(rounded_longitude(ascendant))
    return [_format_cusp(i, ((first + i - 1) % 12) * 30.0, True) for i in range(1, 13)]


def house_cusps(houses: HousesAndAngles, house_system: HouseSystem) -> List[HouseCusp]:
    house_system = HouseSystem.parse(house_system)
    if house_system == HouseSystem.WHOLE_SIGN:
        return whole_sign_cusps(houses.ascendant)
    if len(houses.cusps) != 12 or not all(math.isfinite(c) for c in houses.cusps):
        raise ValueError("Expected 12 finite house cusps")
    return [_format_cusp(i + 1, cusp, False) for i, cusp in enumerate(houses.cusps)]
