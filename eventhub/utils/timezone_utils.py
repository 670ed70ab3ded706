"""
Timezone Utility Functions
Handles the conversions between the organisation's local time (APP_TIMEZONE)
and the UTC timestamps the backend stores.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone

import pytz
from flask import current_app

logger = logging.getLogger(__name__)

DATETIME_LOCAL_FORMAT = '%Y-%m-%dT%H:%M'


def get_app_timezone(tz_name=None):
    """Return the pytz timezone for `tz_name` or the configured APP_TIMEZONE."""
    if tz_name is None:
        tz_name = current_app.config.get('APP_TIMEZONE', 'UTC')
    try:
        return pytz.timezone(tz_name or 'UTC')
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning('Unknown timezone %s, treating as UTC', tz_name)
        return pytz.UTC


def convert_local_to_utc(dt, tz_name=None):
    """
    Convert a datetime in local time to UTC

    Args:
        dt: naive datetime in local time, or an aware datetime
        tz_name: IANA timezone string, defaults to APP_TIMEZONE

    Returns:
        Timezone-aware datetime in UTC
    """
    if dt.tzinfo is None:
        dt = get_app_timezone(tz_name).localize(dt)
    return dt.astimezone(timezone.utc)


def convert_utc_to_local(dt_utc, tz_name=None):
    if dt_utc is None:
        return None
    if dt_utc.tzinfo is None:
        dt_utc = dt_utc.replace(tzinfo=timezone.utc)
    return dt_utc.astimezone(get_app_timezone(tz_name))


def today_local(tz_name=None, now=None):
    now = now or datetime.now(timezone.utc)
    return convert_utc_to_local(now, tz_name).date()


def parse_day(value, tz_name=None):
    """Parse a YYYY-MM-DD query value, falling back to today in local time."""
    if value:
        try:
            return datetime.strptime(value, '%Y-%m-%d').date()
        except ValueError:
            logger.info('Ignoring invalid schedule date %r', value)
    return today_local(tz_name)


def day_bounds_utc(day, tz_name=None):
    """UTC ISO strings for the first and last instant of a local calendar day."""
    tz = get_app_timezone(tz_name)
    start = tz.localize(datetime.combine(day, time.min))
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min)) - timedelta(microseconds=1)
    return iso_utc(start), iso_utc(end)


def parse_datetime_local(value, tz_name=None):
    """Parse an HTML datetime-local value in local time and return the UTC ISO string."""
    if not value:
        return None
    text = value.strip()
    for fmt in (DATETIME_LOCAL_FORMAT, DATETIME_LOCAL_FORMAT + ':%S'):
        try:
            naive = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    else:
        raise ValueError(f'Invalid date/time: {value!r}')
    return iso_utc(convert_local_to_utc(naive, tz_name))


def to_datetime_local(dt, tz_name=None):
    """Format an aware datetime for a datetime-local input in local time."""
    if dt is None:
        return ''
    return convert_utc_to_local(dt, tz_name).strftime(DATETIME_LOCAL_FORMAT)


def iso_utc(dt):
    """Return an ISO8601 UTC string for a datetime."""
    if dt is None:
        return None
    if isinstance(dt, date) and not isinstance(dt, datetime):
        dt = datetime.combine(dt, time.min)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()
