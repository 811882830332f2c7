"""
Natal, transit and composite chart calculation.

Each calculator turns raw inputs into one chart variant:

    inputs -> Julian Day -> ephemeris -> formatted points -> (aspects) -> chart

and memoises the finished chart in an injected cache. A chart is either
fully computed or not returned at all: any failure along the way surfaces as
ChartCalculationError with the original error as its cause.
"""

import hashlib
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, ClassVar, Dict, Iterable, List, Optional, Tuple, TypeVar, Union

import pytz

from aspects import Aspect, AspectType, OrbOverrides, cap_aspects, detect_aspects
from ephemeris import TRACKED_BODIES, EphemerisAdapter, HouseSystem, HousesAndAngles, PointPosition
from exceptions import ChartCalculationError, EphemerisComputationError, UnsupportedHouseSystemError
from timeconv import local_to_julian_day, utc_to_julian_day
from zodiac import (
    ChartAngle,
    FormattedPoint,
    HouseCusp,
    format_angle,
    format_point,
    house_cusps,
    house_for_point,
    normalize_degrees,
    whole_sign_cusps,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BIRTH_TIME = '12:00:00'
TRANSIT_PREFIX = 'Transit '

NATAL_ASPECT_CEILING, NATAL_IMPORTANCE_THRESHOLD = 50, 0.3
TRANSIT_ASPECT_CEILING, TRANSIT_IMPORTANCE_THRESHOLD = 30, 0.4

NATAL_CACHE_TTL = 604800
TRANSIT_CACHE_TTL = 3600


@dataclass(frozen=True)
class BirthData:
    """Birth moment and place. `time` is local wall-clock time, HH:MM[:SS]."""
    date: str
    latitude: float
    longitude: float
    timezone: str
    time: Optional[str] = None
    is_time_unknown: bool = False
    location_name: Optional[str] = None

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        if not -180 <= self.longitude <= 180:
            raise ValueError("Longitude must be between -180 and 180")

    @property
    def time_unknown(self) -> bool:
        return self.is_time_unknown or not self.time

    def cache_key(self) -> str:
        birth_time = 'unknown' if self.time_unknown else self.time
        return f"{self.date}:{birth_time}:{self.latitude}:{self.longitude}:{self.timezone}"


@dataclass(frozen=True)
class NatalChart:
    points: Tuple[FormattedPoint, ...]
    houses: Tuple[HouseCusp, ...]
    ascendant: ChartAngle
    midheaven: ChartAngle
    time_unknown_applied: bool
    house_system: HouseSystem
    julian_day: float
    approximate: bool = False
    aspects: Optional[Tuple[Aspect, ...]] = None

    calculation_type: ClassVar[str] = 'natal'

    def point(self, name: str) -> Optional[FormattedPoint]:
        return next((p for p in self.points if p.name == name), None)


@dataclass(frozen=True)
class TransitChart:
    points: Tuple[FormattedPoint, ...]
    instant_utc: datetime
    julian_day: float
    approximate: bool = False
    aspects: Optional[Tuple[Aspect, ...]] = None

    calculation_type: ClassVar[str] = 'transits'

    @property
    def date(self) -> str:
        return self.instant_utc.isoformat()

    def point(self, name: str) -> Optional[FormattedPoint]:
        return next((p for p in self.points if p.name == name), None)


@dataclass(frozen=True)
class CompositeChart:
    points: Tuple[FormattedPoint, ...]
    houses: Tuple[HouseCusp, ...]
    ascendant: ChartAngle
    midheaven: ChartAngle
    house_system: HouseSystem
    approximate: bool = False
    aspects: Optional[Tuple[Aspect, ...]] = None

    calculation_type: ClassVar[str] = 'composite'

    def point(self, name: str) -> Optional[FormattedPoint]:
        return next((p for p in self.points if p.name == name), None)


Chart = Union[NatalChart, TransitChart, CompositeChart]


def circular_midpoint(deg1: float, deg2: float) -> float:
    """Midpoint on the shorter arc between two longitudes."""
    diff = abs(deg1 - deg2)
    if diff > 180:
        diff = 360 - diff
        midpoint = min(deg1, deg2) - diff / 2
        return normalize_degrees(midpoint)
    return normalize_degrees((deg1 + deg2) / 2)


def floor_to_hour(moment: datetime) -> datetime:
    """UTC instant truncated to the top of its hour. Naive input is read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=pytz.UTC)
    else:
        moment = moment.astimezone(pytz.UTC)
    return moment.replace(minute=0, second=0, microsecond=0)


def points_fingerprint(points: Iterable[FormattedPoint]) -> str:
    raw = '|'.join(f"{p.name}={p.longitude:.2f}" for p in points)
    return hashlib.sha1(raw.encode('utf-8')).hexdigest()[:16]


def _options_key(aspect_types: Optional[Iterable[Union[AspectType, str]]],
                 orb_overrides: Optional[OrbOverrides]) -> str:
    """Extra key segment for non-default aspect options; empty for the defaults."""
    parts = []
    if aspect_types is not None:
        parts.append('types=' + ','.join(sorted(AspectType(t).value for t in aspect_types)))
    if orb_overrides:
        parts.append('orbs=' + ','.join(
            f"{AspectType(k).value}={float(v)}" for k, v in sorted(orb_overrides.items(), key=lambda kv: AspectType(kv[0]).value)
        ))
    return (':' + ':'.join(parts)) if parts else ''


def fetch_positions(adapter: EphemerisAdapter, julian_day: float, timeout_seconds: float,
                    max_workers: int,
                    houses: Optional[Callable[[], HousesAndAngles]] = None
                    ) -> Tuple[Dict[str, PointPosition], Optional[HousesAndAngles]]:
    """
    Look up every tracked body (and optionally the houses) on a thread pool.

    Results come back in body declaration order regardless of completion
    order. The first failure in that order is raised; a lookup still running
    after `timeout_seconds` fails the whole request.
    """
    pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='ephemeris')
    try:
        futures = {
            name: pool.submit(adapter.point_position, julian_day, body_id)
            for name, body_id in TRACKED_BODIES.items()
        }
        houses_future = pool.submit(houses) if houses is not None else None
        pending = list(futures.values()) + ([houses_future] if houses_future is not None else [])

        _, not_done = wait(pending, timeout=timeout_seconds)
        if not_done:
            raise EphemerisComputationError(
                f"Ephemeris lookup timed out after {timeout_seconds}s ({len(not_done)} pending)"
            )

        houses_result = houses_future.result() if houses_future is not None else None
        return {name: future.result() for name, future in futures.items()}, houses_result
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def place_in_house(point: FormattedPoint, ascendant: float, house_system: HouseSystem) -> FormattedPoint:
    """Attach the house, counted from the point's displayed (rounded) longitude."""
    return replace(point, house=house_for_point(point.longitude, ascendant, house_system))


@contextmanager
def _chart_errors(chart_type: str):
    try:
        yield
    except ChartCalculationError as e:
        # Already logged where it was first wrapped (a composite's natal lookups).
        raise ChartCalculationError(chart_type, str(e)) from e
    except Exception as e:
        logger.exception("Error calculating %s chart", chart_type)
        raise ChartCalculationError(chart_type, str(e)) from e


class ChartCalculator:
    """Shared cache handling for the chart calculators."""

    chart_type = 'chart'

    def __init__(self, cache=None, cache_ttl: float = NATAL_CACHE_TTL):
        self.cache = cache
        self.cache_ttl = cache_ttl

    def _cached(self, key: str, compute: Callable[[], T]) -> T:
        def timed() -> T:
            start = time.perf_counter()
            with _chart_errors(self.chart_type):
                result = compute()
            logger.debug("%s chart computed in %.1f ms", self.chart_type,
                         (time.perf_counter() - start) * 1000)
            return result

        if self.cache is None:
            return timed()
        return self.cache.get_or_compute(key, timed, self.cache_ttl)


class NatalCalculator(ChartCalculator):
    """Birth chart: bodies placed in signs and houses, angles, optional aspects."""

    chart_type = 'natal'

    def __init__(self, adapter: EphemerisAdapter, cache=None, cache_ttl: float = NATAL_CACHE_TTL,
                 timeout_seconds: float = 5.0, max_workers: int = 4):
        super().__init__(cache, cache_ttl)
        self.adapter = adapter
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers

    def compute_natal(self, birth: BirthData,
                      house_system: Union[HouseSystem, str] = HouseSystem.WHOLE_SIGN,
                      with_aspects: bool = True,
                      aspect_types: Optional[Iterable[Union[AspectType, str]]] = None,
                      orb_overrides: Optional[OrbOverrides] = None) -> NatalChart:
        with _chart_errors(self.chart_type):
            house_system = HouseSystem.parse(house_system)
            if aspect_types is not None:
                aspect_types = list(aspect_types)
            key = (f"natal:{birth.cache_key()}:{house_system.value}:{str(with_aspects).lower()}"
                   f"{_options_key(aspect_types, orb_overrides)}")

        return self._cached(key, lambda: self._compute(birth, house_system, with_aspects,
                                                       aspect_types, orb_overrides))

    def _compute(self, birth: BirthData, house_system: HouseSystem, with_aspects: bool,
                 aspect_types, orb_overrides) -> NatalChart:
        time_unknown_applied = birth.time_unknown
        birth_time = DEFAULT_BIRTH_TIME if time_unknown_applied else birth.time
        julian_day = local_to_julian_day(birth.date, birth_time, birth.timezone)

        positions, houses = fetch_positions(
            self.adapter, julian_day, self.timeout_seconds, self.max_workers,
            houses=lambda: self.adapter.houses_and_angles(
                julian_day, birth.latitude, birth.longitude, house_system),
        )

        ascendant = format_angle(houses.ascendant)
        points = [place_in_house(format_point(name, position), ascendant.longitude, house_system)
                  for name, position in positions.items()]

        aspects = None
        if with_aspects:
            found = detect_aspects(points, aspect_types, orb_overrides)
            aspects = tuple(cap_aspects(found, NATAL_ASPECT_CEILING, NATAL_IMPORTANCE_THRESHOLD))

        return NatalChart(
            points=tuple(points),
            houses=tuple(house_cusps(houses, house_system)),
            ascendant=ascendant,
            midheaven=format_angle(houses.midheaven),
            time_unknown_applied=time_unknown_applied,
            house_system=house_system,
            julian_day=julian_day,
            approximate=self.adapter.is_approximate,
            aspects=aspects,
        )


class TransitCalculator(ChartCalculator):
    """
    Sky positions for a UTC instant, without houses or location.

    The instant is floored to the top of the hour before anything is
    computed, so every request within the same hour shares one chart.
    """

    chart_type = 'transits'

    def __init__(self, adapter: EphemerisAdapter, cache=None, cache_ttl: float = TRANSIT_CACHE_TTL,
                 timeout_seconds: float = 5.0, max_workers: int = 4):
        super().__init__(cache, cache_ttl)
        self.adapter = adapter
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers

    def compute_transits(self, target_instant_utc: Optional[datetime] = None,
                         natal_chart: Optional[NatalChart] = None,
                         with_aspects: bool = True,
                         aspect_types: Optional[Iterable[Union[AspectType, str]]] = None,
                         orb_overrides: Optional[OrbOverrides] = None) -> TransitChart:
        with _chart_errors(self.chart_type):
            instant = floor_to_hour(target_instant_utc or datetime.now(pytz.UTC))
            with_aspects = with_aspects and natal_chart is not None
            if aspect_types is not None:
                aspect_types = list(aspect_types)
            key = f"transits:{instant.isoformat()}:{str(with_aspects).lower()}"
            if with_aspects:
                key += f":{points_fingerprint(natal_chart.points)}{_options_key(aspect_types, orb_overrides)}"

        return self._cached(key, lambda: self._compute(instant, natal_chart if with_aspects else None,
                                                       aspect_types, orb_overrides))

    def _compute(self, instant: datetime, natal_chart: Optional[NatalChart],
                 aspect_types, orb_overrides) -> TransitChart:
        julian_day = utc_to_julian_day(instant)
        positions, _ = fetch_positions(self.adapter, julian_day, self.timeout_seconds, self.max_workers)
        points = [format_point(name, position) for name, position in positions.items()]

        aspects = None
        if natal_chart is not None:
            aspects = tuple(transit_to_natal_aspects(points, natal_chart.points, aspect_types, orb_overrides))

        return TransitChart(
            points=tuple(points),
            instant_utc=instant,
            julian_day=julian_day,
            approximate=self.adapter.is_approximate,
            aspects=aspects,
        )


def _is_transit_name(name: str) -> bool:
    return name.startswith(TRANSIT_PREFIX)


def transit_to_natal_aspects(transit_points: Iterable[FormattedPoint],
                             natal_points: Iterable[FormattedPoint],
                             aspect_types=None, orb_overrides=None) -> List[Aspect]:
    """Aspects between transit and natal points only; same-chart pairs are dropped."""
    labelled = [replace(p, name=f"{TRANSIT_PREFIX}{p.name}") for p in transit_points]
    combined = list(natal_points) + labelled

    aspects = [
        a for a in detect_aspects(combined, aspect_types, orb_overrides)
        if _is_transit_name(a.point1) != _is_transit_name(a.point2)
    ]
    return cap_aspects(aspects, TRANSIT_ASPECT_CEILING, TRANSIT_IMPORTANCE_THRESHOLD)


class CompositeCalculator(ChartCalculator):
    """
    Relationship chart from the midpoints of two natal charts.

    Only Whole Sign houses are supported: the composite Ascendant is itself a
    midpoint, so there are no true cusps to place points against.
    """

    chart_type = 'composite'

    def __init__(self, natal_calculator: NatalCalculator, cache=None, cache_ttl: float = NATAL_CACHE_TTL):
        super().__init__(cache, cache_ttl)
        self.natal = natal_calculator

    def compute_composite(self, birth_a: BirthData, birth_b: BirthData,
                          house_system: Union[HouseSystem, str] = HouseSystem.WHOLE_SIGN,
                          with_aspects: bool = True,
                          aspect_types: Optional[Iterable[Union[AspectType, str]]] = None,
                          orb_overrides: Optional[OrbOverrides] = None) -> CompositeChart:
        with _chart_errors(self.chart_type):
            house_system = HouseSystem.parse(house_system)
            if house_system != HouseSystem.WHOLE_SIGN:
                raise UnsupportedHouseSystemError(
                    house_system.name, f"House system {house_system.name} is not supported for composite charts"
                )
            if aspect_types is not None:
                aspect_types = list(aspect_types)

            # Same key (and same computation) for (A, B) and (B, A).
            if birth_a.cache_key() > birth_b.cache_key():
                birth_a, birth_b = birth_b, birth_a
            key = (f"composite:{birth_a.cache_key()}:{birth_b.cache_key()}:{house_system.value}:"
                   f"{str(with_aspects).lower()}{_options_key(aspect_types, orb_overrides)}")

        return self._cached(key, lambda: self._compute(birth_a, birth_b, house_system, with_aspects,
                                                       aspect_types, orb_overrides))

    def _compute(self, birth_a: BirthData, birth_b: BirthData, house_system: HouseSystem,
                 with_aspects: bool, aspect_types, orb_overrides) -> CompositeChart:
        chart_a = self.natal.compute_natal(birth_a, house_system, with_aspects=False)
        chart_b = self.natal.compute_natal(birth_b, house_system, with_aspects=False)

        ascendant = format_angle(circular_midpoint(chart_a.ascendant.longitude, chart_b.ascendant.longitude))
        midheaven = format_angle(circular_midpoint(chart_a.midheaven.longitude, chart_b.midheaven.longitude))

        points = []
        for point_a in chart_a.points:
            point_b = chart_b.point(point_a.name)
            if point_b is None:
                continue
            longitude = circular_midpoint(point_a.longitude, point_b.longitude)
            # Mean of the two natal speeds; kept as-is, not a physical composite speed.
            speed = (point_a.longitude_speed + point_b.longitude_speed) / 2
            position = PointPosition(longitude=longitude, latitude=0.0, distance=0.0, longitude_speed=speed)
            points.append(place_in_house(format_point(point_a.name, position), ascendant.longitude, house_system))

        aspects = None
        if with_aspects:
            found = detect_aspects(points, aspect_types, orb_overrides)
            aspects = tuple(cap_aspects(found, NATAL_ASPECT_CEILING, NATAL_IMPORTANCE_THRESHOLD))

        return CompositeChart(
            points=tuple(points),
            houses=tuple(whole_sign_cusps(ascendant.longitude)),
            ascendant=ascendant,
            midheaven=midheaven,
            house_system=house_system,
            approximate=chart_a.approximate or chart_b.approximate,
            aspects=aspects,
        )


@dataclass
class ChartCalculators:
    natal: NatalCalculator
    transit: TransitCalculator
    composite: CompositeCalculator


def build_calculators(settings, adapter: EphemerisAdapter, cache=None) -> ChartCalculators:
    """Wire the three calculators around one adapter and one (namespaced) cache."""
    natal = NatalCalculator(
        adapter, cache=cache, cache_ttl=settings.natal_cache_ttl,
        timeout_seconds=settings.ephemeris_timeout_seconds, max_workers=settings.max_workers,
    )
    transit = TransitCalculator(
        adapter, cache=cache, cache_ttl=settings.transit_cache_ttl,
        timeout_seconds=settings.ephemeris_timeout_seconds, max_workers=settings.max_workers,
    )
    composite = CompositeCalculator(natal, cache=cache, cache_ttl=settings.natal_cache_ttl)
    return ChartCalculators(natal=natal, transit=transit, composite=composite)
