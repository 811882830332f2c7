"""Civil date/time + IANA timezone to UTC and Julian Day conversion."""

from datetime import datetime

import pytz
import swisseph as swe

from exceptions import TimeConversionError

DATE_FORMAT = '%Y-%m-%d'
TIME_FORMATS = ('%H:%M:%S', '%H:%M')


def parse_timezone(timezone: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(timezone)
    except (pytz.exceptions.UnknownTimeZoneError, AttributeError) as e:
        raise TimeConversionError(f"Unknown timezone: {timezone}") from e


def parse_local_datetime(date: str, time: str) -> datetime:
    """Parse 'YYYY-MM-DD' and 'HH:MM[:SS]' into a naive datetime."""
    try:
        day = datetime.strptime(date, DATE_FORMAT)
    except (TypeError, ValueError) as e:
        raise TimeConversionError(f"Invalid date '{date}', expected YYYY-MM-DD") from e

    for fmt in TIME_FORMATS:
        try:
            clock = datetime.strptime(time, fmt)
        except (TypeError, ValueError):
            continue
        return day.replace(hour=clock.hour, minute=clock.minute, second=clock.second)
    raise TimeConversionError(f"Invalid time '{time}', expected HH:MM or HH:MM:SS")


def localize(local: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """
    Attach the zone's offset in force at that date.
    Ambiguous wall times resolve to standard time, skipped ones to daylight time.
    """
    try:
        return tz.localize(local, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        return tz.localize(local, is_dst=False)
    except pytz.exceptions.NonExistentTimeError:
        return tz.localize(local, is_dst=True)


def local_to_utc(date: str, time: str, timezone: str) -> datetime:
    tz = parse_timezone(timezone)
    local = parse_local_datetime(date, time)
    return localize(local, tz).astimezone(pytz.UTC)


def utc_to_julian_day(moment: datetime) -> float:
    """Julian Day (UT) for a datetime. Naive datetimes are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=pytz.UTC)
    else:
        moment = moment.astimezone(pytz.UTC)
    hour_decimal = (moment.hour + moment.minute / 60.0 + moment.second / 3600.0
                    + moment.microsecond / 3600000000.0)
    return swe.julday(moment.year, moment.month, moment.day, hour_decimal, swe.GREG_CAL)


def local_to_julian_day(date: str, time: str, timezone: str) -> float:
    """
    Convert a local civil date and time in an IANA timezone to a Julian Day.

    The time is required. Callers that lack a birth time substitute their own
    default and record that they did so.
    """
    return utc_to_julian_day(local_to_utc(date, time, timezone))
