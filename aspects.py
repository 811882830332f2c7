"""
Aspect detection between chart points.

Aspects are found from ecliptic longitude only. Parallel and contra-parallel
are declination aspects; they are defined here for completeness but skipped
by detect_aspects.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from zodiac import FormattedPoint


class AspectType(str, Enum):
    CONJUNCTION = "conjunction"
    OPPOSITION = "opposition"
    TRINE = "trine"
    SQUARE = "square"
    SEXTILE = "sextile"
    SEMI_SEXTILE = "semi_sextile"
    SEMI_SQUARE = "semi_square"
    SESQUI_SQUARE = "sesqui_square"
    QUINTILE = "quintile"
    BI_QUINTILE = "bi_quintile"
    QUINCUNX = "quincunx"
    PARALLEL = "parallel"
    CONTRA_PARALLEL = "contra_parallel"


@dataclass(frozen=True)
class AspectDefinition:
    """Definition of an aspect: exact angle, base orb and importance weight (1-10)."""
    type: AspectType
    angle: float
    orb: float
    harmony: str
    power: int
    symbol: str
    major: bool = False


@dataclass(frozen=True)
class Aspect:
    point1: str
    point2: str
    type: AspectType
    angle: float
    orb: float
    max_orb: float
    applying: bool
    exactness: float

    @property
    def description(self) -> str:
        return describe_aspect(self)


ASPECT_DEFINITIONS: Dict[AspectType, AspectDefinition] = {
    d.type: d for d in (
        AspectDefinition(AspectType.CONJUNCTION, 0, 8, 'neutral', 10, '☌', True),
        AspectDefinition(AspectType.OPPOSITION, 180, 8, 'disharmonious', 10, '☍', True),
        AspectDefinition(AspectType.TRINE, 120, 6, 'harmonious', 8, '△', True),
        AspectDefinition(AspectType.SQUARE, 90, 6, 'disharmonious', 8, '□', True),
        AspectDefinition(AspectType.SEXTILE, 60, 4, 'harmonious', 5, '⚹', True),
        AspectDefinition(AspectType.SEMI_SEXTILE, 30, 2, 'neutral', 2, '⚺'),
        AspectDefinition(AspectType.SEMI_SQUARE, 45, 2, 'disharmonious', 3, '∠'),
        AspectDefinition(AspectType.SESQUI_SQUARE, 135, 2, 'disharmonious', 3, '⚼'),
        AspectDefinition(AspectType.QUINTILE, 72, 2, 'harmonious', 3, 'Q'),
        AspectDefinition(AspectType.BI_QUINTILE, 144, 2, 'harmonious', 3, 'bQ'),
        AspectDefinition(AspectType.QUINCUNX, 150, 3, 'disharmonious', 4, '⚻'),
        AspectDefinition(AspectType.PARALLEL, 0, 1, 'neutral', 5, '∥'),
        AspectDefinition(AspectType.CONTRA_PARALLEL, 0, 1, 'neutral', 5, '#'),
    )
}

DECLINATION_ASPECTS = frozenset({AspectType.PARALLEL, AspectType.CONTRA_PARALLEL})

# Orb multipliers for body pairs that tolerate wider (or standard) orbs.
PAIR_ORB_MULTIPLIERS: Dict[FrozenSet[str], float] = {
    frozenset({'sun', 'moon'}): 10 / 8,
    frozenset({'sun', 'mercury'}): 9 / 8,
    frozenset({'sun', 'venus'}): 9 / 8,
    frozenset({'sun', 'mars'}): 8 / 8,
    frozenset({'moon', 'mercury'}): 8 / 8,
    frozenset({'moon', 'venus'}): 8 / 8,
    frozenset({'moon', 'mars'}): 8 / 8,
}

OrbOverrides = Mapping[Union[AspectType, str], float]


def angular_separation(longitude1: float, longitude2: float) -> float:
    """Shortest arc between two longitudes, 0-180."""
    diff = abs(longitude1 - longitude2) % 360
    return min(diff, 360 - diff)


def pair_multiplier(name1: str, name2: str) -> float:
    return PAIR_ORB_MULTIPLIERS.get(frozenset({name1.lower(), name2.lower()}), 1.0)


def max_orb_for(aspect_type: AspectType, name1: str, name2: str,
                orb_overrides: Optional[OrbOverrides] = None) -> float:
    base = ASPECT_DEFINITIONS[aspect_type].orb
    if orb_overrides:
        base = orb_overrides.get(aspect_type, orb_overrides.get(aspect_type.value, base))
    return base * pair_multiplier(name1, name2)


def is_applying(speed1: float, speed2: float, aspect_angle: float) -> bool:
    """
    Whether an aspect is applying, from the two longitude speeds.

    Opposition: applying when the bodies move in opposite directions.
    Conjunction: in the same direction the slower first body is being caught
    up with; in opposite directions the forward-moving first body applies.
    Everything else uses speed1 - speed2 < 0. That rule is a relative-motion
    approximation, not an exact geometric test.
    """
    if abs(aspect_angle - 180) < 1:
        return (speed1 > 0 > speed2) or (speed1 < 0 < speed2)

    if abs(aspect_angle) < 1 or abs(aspect_angle - 360) < 1:
        if (speed1 > 0 and speed2 > 0) or (speed1 < 0 and speed2 < 0):
            return abs(speed1) < abs(speed2)
        return speed1 > 0

    return speed1 - speed2 < 0


def _coerce_types(aspect_types: Optional[Iterable[Union[AspectType, str]]]) -> List[AspectType]:
    if aspect_types is None:
        return list(AspectType)
    return [AspectType(t) for t in aspect_types]


def _coerce_overrides(orb_overrides: Optional[OrbOverrides]) -> Optional[Dict[AspectType, float]]:
    if not orb_overrides:
        return None
    return {AspectType(k): float(v) for k, v in orb_overrides.items()}


def detect_aspects(points: Sequence[FormattedPoint],
                   aspect_types: Optional[Iterable[Union[AspectType, str]]] = None,
                   orb_overrides: Optional[OrbOverrides] = None) -> List[Aspect]:
    """
    Find every aspect between every unordered pair of points.

    The result is sorted by exactness, most exact first. Ties keep discovery
    order (pair order, then the order of aspect_types).
    """
    types = [t for t in _coerce_types(aspect_types) if t not in DECLINATION_ASPECTS]
    overrides = _coerce_overrides(orb_overrides)
    aspects = []

    for i, point1 in enumerate(points):
        for point2 in points[i + 1:]:
            separation = angular_separation(point1.longitude, point2.longitude)

            for aspect_type in types:
                definition = ASPECT_DEFINITIONS[aspect_type]
                max_orb = max_orb_for(aspect_type, point1.name, point2.name, overrides)
                orb = abs(separation - definition.angle)

                if orb <= max_orb:
                    exactness = 1 - orb / max_orb if max_orb > 0 else 1.0
                    aspects.append(Aspect(
                        point1=point1.name,
                        point2=point2.name,
                        type=aspect_type,
                        angle=definition.angle,
                        orb=orb,
                        max_orb=max_orb,
                        applying=is_applying(point1.longitude_speed, point2.longitude_speed,
                                             definition.angle),
                        exactness=exactness,
                    ))

    return sorted(aspects, key=lambda a: a.exactness, reverse=True)


def importance(aspect: Aspect) -> float:
    return ASPECT_DEFINITIONS[aspect.type].power * aspect.exactness / 10


def filter_by_importance(aspects: Iterable[Aspect], threshold: float = 0.5) -> List[Aspect]:
    """Keep aspects whose power x exactness / 10 reaches the threshold."""
    return [a for a in aspects if importance(a) >= threshold]


def cap_aspects(aspects: List[Aspect], ceiling: int, threshold: float) -> List[Aspect]:
    """Apply the importance filter only when there are more than `ceiling` aspects."""
    if len(aspects) > ceiling:
        return filter_by_importance(aspects, threshold)
    return aspects


def describe_aspect(aspect: Aspect) -> str:
    if aspect.exactness >= 0.9:
        closeness = 'exact'
    elif aspect.exactness >= 0.7:
        closeness = 'close'
    else:
        closeness = 'loose'
    status = 'applying' if aspect.applying else 'separating'
    return f"{aspect.point1} {aspect.type.value} {aspect.point2} ({closeness}, {status}, orb: {aspect.orb:.2f}°)"
