import pytest

from aspects import (
    Aspect,
    AspectType,
    angular_separation,
    cap_aspects,
    describe_aspect,
    detect_aspects,
    filter_by_importance,
    is_applying,
    max_orb_for,
)
from ephemeris import PointPosition
from zodiac import format_point


def _point(name, longitude, speed=1.0):
    return format_point(name, PointPosition(longitude=longitude, latitude=0.0, distance=1.0,
                                            longitude_speed=speed))


def test_angular_separation_takes_short_arc():
    assert angular_separation(359.0, 1.0) == 2.0
    assert angular_separation(10.0, 190.0) == 180.0
    assert angular_separation(210.0, 0.0) == 150.0


def test_close_conjunction_is_applying():
    found = detect_aspects([_point('Sun', 120.0, 1.0), _point('Moon', 123.0, 13.0)])

    assert len(found) == 1
    aspect = found[0]
    assert aspect.type == AspectType.CONJUNCTION
    assert aspect.orb == pytest.approx(3.0)
    # Sun-Moon pairs get a 10/8 wider orb
    assert aspect.max_orb == pytest.approx(10.0)
    assert aspect.exactness == pytest.approx(0.7)
    assert aspect.applying is True


def test_exact_trine():
    found = detect_aspects([_point('Mars', 0.0), _point('Jupiter', 120.0)])

    assert [a.type for a in found] == [AspectType.TRINE]
    assert found[0].orb == 0
    assert found[0].exactness == 1.0


def test_conjunction_across_zero_aries():
    found = detect_aspects([_point('Mars', 359.0), _point('Saturn', 1.0)])
    assert found[0].type == AspectType.CONJUNCTION
    assert found[0].orb == pytest.approx(2.0)


def test_orb_override_excludes_aspect():
    points = [_point('Mars', 0.0), _point('Jupiter', 2.0)]

    assert detect_aspects(points)
    assert detect_aspects(points, orb_overrides={'conjunction': 1}) == []
    assert detect_aspects(points, orb_overrides={AspectType.CONJUNCTION: 1}) == []


def test_aspect_types_filter_and_declination_types_skipped():
    points = [_point('Mars', 0.0), _point('Jupiter', 120.0)]

    assert detect_aspects(points, aspect_types=['square']) == []
    assert detect_aspects(points, aspect_types=['parallel', 'contra_parallel']) == []


def test_aspects_sorted_by_exactness():
    points = [_point('Mars', 0.0), _point('Jupiter', 122.0), _point('Saturn', 181.0), _point('Pluto', 89.0)]
    found = detect_aspects(points)

    assert len(found) >= 3
    exactness = [a.exactness for a in found]
    assert exactness == sorted(exactness, reverse=True)


def test_pair_multiplier_is_case_insensitive():
    assert max_orb_for(AspectType.CONJUNCTION, 'SUN', 'moon') == pytest.approx(10.0)
    assert max_orb_for(AspectType.TRINE, 'Sun', 'Mercury') == pytest.approx(6.75)
    assert max_orb_for(AspectType.TRINE, 'Mars', 'Pluto') == 6


@pytest.mark.parametrize("speed1,speed2,angle,expected", [
    (1.0, -1.0, 180, True),
    (1.0, 2.0, 180, False),
    (1.0, 13.0, 0, True),
    (13.0, 1.0, 0, False),
    (1.0, -0.5, 0, True),
    (-1.0, 0.5, 0, False),
    (0.5, 1.0, 120, True),
    (1.0, 0.5, 90, False),
])
def test_is_applying(speed1, speed2, angle, expected):
    assert is_applying(speed1, speed2, angle) is expected


def _aspect(aspect_type, exactness, orb=1.0):
    return Aspect(point1='Sun', point2='Moon', type=aspect_type, angle=0, orb=orb,
                  max_orb=10.0, applying=True, exactness=exactness)


def test_filter_by_importance():
    conjunction = _aspect(AspectType.CONJUNCTION, 0.5)
    sextile = _aspect(AspectType.SEXTILE, 0.5)

    assert filter_by_importance([conjunction, sextile], 0.3) == [conjunction]
    assert filter_by_importance([conjunction, sextile]) == [conjunction]


def test_cap_aspects_filters_only_above_ceiling():
    aspects = [_aspect(AspectType.SEXTILE, 0.1)] * 3

    assert cap_aspects(aspects, 3, 0.4) == aspects
    assert cap_aspects(aspects, 2, 0.4) == []


def test_describe_aspect():
    aspect = _aspect(AspectType.CONJUNCTION, 0.7, orb=3.0)

    assert describe_aspect(aspect) == "Sun conjunction Moon (close, applying, orb: 3.00°)"
    assert aspect.description == describe_aspect(aspect)
    assert "exact" in describe_aspect(_aspect(AspectType.TRINE, 0.95))
    assert "loose" in describe_aspect(_aspect(AspectType.TRINE, 0.2))
