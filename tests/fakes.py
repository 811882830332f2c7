import time

from ephemeris import J2000, TRACKED_BODIES, EphemerisAdapter, HousesAndAngles, PointPosition
from exceptions import EphemerisComputationError

BODY_NAMES = {body_id: name for name, body_id in TRACKED_BODIES.items()}

DEFAULT_LONGITUDES = {
    'Sun': 10.0,
    'Moon': 130.0,
    'Mercury': 20.0,
    'Venus': 45.0,
    'Mars': 190.0,
    'Jupiter': 250.0,
    'Saturn': 280.0,
    'Uranus': 300.0,
    'Neptune': 310.0,
    'Pluto': 260.0,
    'Chiron': 70.0,
    'North Node': 100.0,
}


class FakeAdapter(EphemerisAdapter):
    """In-memory adapter: fixed longitudes that move `drift` degrees per day from J2000."""

    name = "fake"

    def __init__(self, longitudes=None, speeds=None, drift=0.0, ascendant=5.0, midheaven=275.0,
                 fail_on=None, delay=0.0, approximate=False, speeds_by_day=None):
        self.longitudes = dict(DEFAULT_LONGITUDES, **(longitudes or {}))
        self.speeds = speeds or {}
        # {julian_day: {name: speed}}, overriding `speeds` on that day
        self.speeds_by_day = speeds_by_day or {}
        self.drift = drift
        self.ascendant = ascendant
        self.midheaven = midheaven
        self.fail_on = fail_on
        self.delay = delay
        self.is_approximate = approximate
        self.calls = []

    def point_position(self, julian_day, body_id, flags=None):
        name = BODY_NAMES[body_id]
        self.calls.append(name)
        if self.delay:
            time.sleep(self.delay)
        if name == self.fail_on:
            raise EphemerisComputationError(f"Failed to calculate {name}")
        longitude = (self.longitudes[name] + self.drift * (julian_day - J2000)) % 360
        return PointPosition(longitude=longitude, latitude=0.0, distance=1.0,
                             longitude_speed=self._speed(julian_day, name))

    def _speed(self, julian_day, name):
        return self.speeds_by_day.get(round(julian_day, 6), {}).get(name, self.speeds.get(name, 1.0))

    def houses_and_angles(self, julian_day, latitude, longitude, house_system):
        self.calls.append('houses')
        cusps = tuple((self.ascendant + 30 * i) % 360 for i in range(12))
        return HousesAndAngles(cusps=cusps, ascendant=self.ascendant, midheaven=self.midheaven, armc=0.0)
