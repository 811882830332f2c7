"""
Ephemeris adapters: raw body positions, house cusps and chart angles.

Two implementations share one interface:
- SwissEphemerisAdapter wraps pyswisseph (Swiss Ephemeris files when present,
  otherwise the built-in Moshier ephemeris).
- ApproximateEphemerisAdapter is a reduced-accuracy mode based on mean motions
  from J2000. Charts built on it are flagged as approximate.
"""

import logging
import math
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

import swisseph as swe

from exceptions import EphemerisComputationError

logger = logging.getLogger(__name__)

J2000 = 2451545.0


class HouseSystem(str, Enum):
    """Swiss Ephemeris house system codes."""
    PLACIDUS = "P"
    KOCH = "K"
    PORPHYRY = "O"
    REGIOMONTANUS = "R"
    CAMPANUS = "C"
    EQUAL = "E"
    WHOLE_SIGN = "W"
    MERIDIAN = "X"
    MORINUS = "M"
    ALCABITIUS = "B"
    TOPOCENTRIC = "T"
    KRUSINSKI = "U"
    EQUAL_ASC = "A"
    EQUAL_MC = "D"
    VEHLOW = "V"
    APC = "Y"
    PULLEN_SD = "L"
    PULLEN_SR = "Q"
    SRIPATI = "S"
    SUNSHINE = "I"
    HORIZON = "H"

    @classmethod
    def parse(cls, value) -> "HouseSystem":
        """Accept a HouseSystem, a one-letter code or a member name such as 'whole_sign'."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        try:
            return cls(text.upper())
        except ValueError:
            pass
        try:
            return cls[text.upper().replace(" ", "_").replace("-", "_")]
        except KeyError:
            raise ValueError(f"Unknown house system: {value}")


# Fixed declaration order; chart point lists are emitted in this order.
TRACKED_BODIES: Dict[str, int] = {
    'Sun': swe.SUN,
    'Moon': swe.MOON,
    'Mercury': swe.MERCURY,
    'Venus': swe.VENUS,
    'Mars': swe.MARS,
    'Jupiter': swe.JUPITER,
    'Saturn': swe.SATURN,
    'Uranus': swe.URANUS,
    'Neptune': swe.NEPTUNE,
    'Pluto': swe.PLUTO,
    'Chiron': swe.CHIRON,
    'North Node': swe.TRUE_NODE,
}

# Bodies Moshier cannot compute; they always need an asteroid file.
REQUIRED_FILES: Dict[int, str] = {
    swe.CHIRON: 'seas_18.se1',
}


@dataclass(frozen=True)
class PointPosition:
    """Raw ecliptic position of a body and its rates of change."""
    longitude: float
    latitude: float
    distance: float
    longitude_speed: float
    latitude_speed: float = 0.0
    distance_speed: float = 0.0

    @classmethod
    def fixed(cls, longitude: float) -> "PointPosition":
        """Position of a motionless point such as a chart angle."""
        return cls(longitude=longitude, latitude=0.0, distance=0.0, longitude_speed=0.0)


@dataclass(frozen=True)
class HousesAndAngles:
    """House cusps (houses 1-12) and the chart angles for a time and place."""
    cusps: Tuple[float, ...]
    ascendant: float
    midheaven: float
    armc: float
    vertex: Optional[float] = None


class EphemerisAdapter(ABC):
    """Interface every ephemeris backend implements."""

    name = "abstract"
    is_approximate = False

    @abstractmethod
    def point_position(self, julian_day: float, body_id: int, flags: Optional[int] = None) -> PointPosition:
        """Return the position of one body, or raise EphemerisComputationError."""

    @abstractmethod
    def houses_and_angles(self, julian_day: float, latitude: float, longitude: float,
                          house_system: HouseSystem) -> HousesAndAngles:
        """Return house cusps and angles, or raise EphemerisComputationError."""

    def verify_bodies(self, body_ids: Iterable[int], julian_day: float = J2000) -> None:
        """
        Compute every body once so a missing data file fails at startup
        instead of on the first chart request.
        """
        for body_id in body_ids:
            try:
                self.point_position(julian_day, body_id)
            except EphemerisComputationError as e:
                required = REQUIRED_FILES.get(body_id)
                hint = f" (needs {required} in CHART_EPHEMERIS_PATH)" if required else ""
                raise EphemerisComputationError(
                    f"{self.name} ephemeris cannot compute body {body_id}{hint}: {e}"
                ) from e


def _require_finite(values, what: str) -> None:
    if not all(math.isfinite(v) for v in values):
        raise EphemerisComputationError(f"Non-finite result while computing {what}")


class SwissEphemerisAdapter(EphemerisAdapter):
    """Swiss Ephemeris backend. Falls back to Moshier when no .se1 files are found."""

    name = "swisseph"

    def __init__(self, ephemeris_path: Optional[str] = None):
        self._use_moshier = True
        self._init_ephemeris(ephemeris_path)

    def _init_ephemeris(self, ephemeris_path: Optional[str]) -> None:
        if not ephemeris_path or not os.path.isdir(ephemeris_path):
            if ephemeris_path:
                logger.warning("Ephemeris path %s does not exist, using Moshier", ephemeris_path)
            return
        files = os.listdir(ephemeris_path)
        if any(f.endswith('.se1') for f in files):
            swe.set_ephe_path(ephemeris_path)
            self._use_moshier = False
        else:
            logger.warning("No .se1 files in %s, using Moshier", ephemeris_path)

    @property
    def uses_moshier(self) -> bool:
        return self._use_moshier

    @property
    def flags(self) -> int:
        flags = swe.FLG_MOSEPH if self._use_moshier else swe.FLG_SWIEPH
        return flags | swe.FLG_SPEED

    def point_position(self, julian_day: float, body_id: int, flags: Optional[int] = None) -> PointPosition:
        try:
            result, _ = swe.calc_ut(julian_day, body_id, self.flags if flags is None else flags)
        except swe.Error as e:
            raise EphemerisComputationError(f"Failed to calculate body {body_id}: {e}") from e

        _require_finite(result[:6], f"body {body_id}")
        return PointPosition(
            longitude=result[0] % 360,
            latitude=result[1],
            distance=result[2],
            longitude_speed=result[3],
            latitude_speed=result[4],
            distance_speed=result[5],
        )

    def houses_and_angles(self, julian_day: float, latitude: float, longitude: float,
                          house_system: HouseSystem) -> HousesAndAngles:
        code = HouseSystem.parse(house_system).value.encode()
        try:
            cusps_raw, ascmc = swe.houses_ex(julian_day, latitude, longitude, code)
        except swe.Error as e:
            raise EphemerisComputationError(
                f"Failed to calculate houses ({house_system}) at latitude {latitude}: {e}"
            ) from e

        cusps = tuple(cusps_raw[:12])
        if len(cusps) != 12:
            raise EphemerisComputationError(f"Expected 12 house cusps, got {len(cusps)}")
        _require_finite(cusps + tuple(ascmc[:4]), "houses")

        return HousesAndAngles(
            cusps=tuple(c % 360 for c in cusps),
            ascendant=ascmc[0] % 360,
            midheaven=ascmc[1] % 360,
            armc=ascmc[2] % 360,
            vertex=ascmc[3] % 360,
        )


class ApproximateEphemerisAdapter(EphemerisAdapter):
    """
    Reduced-accuracy backend based on mean motion since J2000.

    Longitudes are off by up to several degrees (far more for the Moon,
    Mercury and Venus). Speeds are constant, so bodies other than the
    lunar node never show as retrograde. Only Whole Sign and Equal houses
    can be produced.
    """

    name = "approximate"
    is_approximate = True

    # body id -> (mean longitude at J2000 in degrees, period in days)
    MEAN_ELEMENTS: Dict[int, Tuple[float, float]] = {
        swe.SUN: (280.46, 365.25636),
        swe.MOON: (218.32, 27.321582),
        swe.MERCURY: (252.25, 87.969),
        swe.VENUS: (181.98, 224.701),
        swe.MARS: (355.45, 686.98),
        swe.JUPITER: (34.40, 4332.59),
        swe.SATURN: (49.94, 10759.22),
        swe.URANUS: (313.23, 30688.5),
        swe.NEPTUNE: (304.88, 60182.0),
        swe.PLUTO: (238.93, 90560.0),
        swe.CHIRON: (251.0, 18409.0),
        swe.TRUE_NODE: (125.04, -6798.38),
        swe.MEAN_NODE: (125.04, -6798.38),
    }

    CUSP_SYSTEMS = {HouseSystem.WHOLE_SIGN, HouseSystem.EQUAL, HouseSystem.EQUAL_ASC}

    def point_position(self, julian_day: float, body_id: int, flags: Optional[int] = None) -> PointPosition:
        if body_id not in self.MEAN_ELEMENTS:
            raise EphemerisComputationError(f"Body {body_id} is not available in approximate mode")
        epoch_longitude, period = self.MEAN_ELEMENTS[body_id]
        speed = 360.0 / period
        longitude = (epoch_longitude + (julian_day - J2000) * speed) % 360
        return PointPosition(longitude=longitude, latitude=0.0, distance=0.0, longitude_speed=speed)

    def houses_and_angles(self, julian_day: float, latitude: float, longitude: float,
                          house_system: HouseSystem) -> HousesAndAngles:
        house_system = HouseSystem.parse(house_system)
        if house_system not in self.CUSP_SYSTEMS:
            raise EphemerisComputationError(
                f"House system {house_system.name} is not available in approximate mode"
            )

        centuries = (julian_day - J2000) / 36525.0
        gmst = 280.46061837 + 360.98564736629 * (julian_day - J2000)
        armc = (gmst + longitude) % 360
        obliquity = 23.4392911 - 0.0130042 * centuries
        ascendant, midheaven = angles_from_armc(armc, latitude, obliquity)

        if house_system == HouseSystem.WHOLE_SIGN:
            start = math.floor(ascendant / 30) * 30
        else:
            start = ascendant
        cusps = tuple((start + 30 * i) % 360 for i in range(12))

        return HousesAndAngles(cusps=cusps, ascendant=ascendant, midheaven=midheaven, armc=armc)


def angles_from_armc(armc: float, latitude: float, obliquity: float) -> Tuple[float, float]:
    """Ascendant and Midheaven longitudes from sidereal time (ARMC), latitude and obliquity."""
    ramc = math.radians(armc)
    eps = math.radians(obliquity)
    phi = math.radians(latitude)

    midheaven = math.degrees(math.atan2(math.sin(ramc), math.cos(ramc) * math.cos(eps))) % 360
    ascendant = math.degrees(math.atan2(
        math.cos(ramc),
        -(math.sin(ramc) * math.cos(eps) + math.tan(phi) * math.sin(eps)),
    )) % 360
    _require_finite((ascendant, midheaven), "angles")
    return ascendant, midheaven


def create_adapter(settings, verify: bool = True) -> EphemerisAdapter:
    """
    Build the adapter selected by settings.ephemeris_mode.

    With `verify`, every tracked body is computed once and a missing data
    file raises EphemerisComputationError here.
    """
    if settings.ephemeris_mode == "approximate":
        logger.warning("Using approximate ephemeris; chart positions are reduced-accuracy")
        adapter = ApproximateEphemerisAdapter()
    else:
        adapter = SwissEphemerisAdapter(settings.ephemeris_path)
    if verify:
        adapter.verify_bodies(TRACKED_BODIES.values())
    return adapter
