"""
Template filters for the application
"""
from datetime import datetime, timezone

from eventhub.models import parse_date, parse_timestamp
from eventhub.utils.timezone_utils import convert_utc_to_local
from eventhub.utils.uploads import format_file_size


def long_date(value):
    """'Monday, November 11, 2024'"""
    day = parse_date(value)
    if day is None:
        return value or ''
    return f"{day.strftime('%A, %B')} {day.day}, {day.year}"


def time12(value, tz_name=None):
    """'3:30 PM' for a timestamp (shown in local time) or an 'HH:MM' string."""
    if not value:
        return ''
    if isinstance(value, str) and len(value) <= 8 and ':' in value and 'T' not in value:
        try:
            parsed = datetime.strptime(value[:5], '%H:%M')
        except ValueError:
            return value
    else:
        parsed = parse_timestamp(value)
        if parsed is None:
            return str(value)
        parsed = convert_utc_to_local(parsed, tz_name)
    hour = parsed.hour % 12 or 12
    return f"{hour}:{parsed.minute:02d} {'AM' if parsed.hour < 12 else 'PM'}"


def relative_time(value, now=None):
    """'Just now', '5m ago', '3h ago', '2d ago', then 'Mar 4' (year added when it differs)."""
    dt = parse_timestamp(value)
    if dt is None:
        return ''
    now = now or datetime.now(timezone.utc)
    seconds = (now - dt).total_seconds()
    if seconds < 60:
        return 'Just now'
    minutes = int(seconds // 60)
    if minutes < 60:
        return f'{minutes}m ago'
    hours = minutes // 60
    if hours < 24:
        return f'{hours}h ago'
    days = hours // 24
    if days < 7:
        return f'{days}d ago'
    label = f"{dt.strftime('%b')} {dt.day}"
    if dt.year != now.year:
        label += f', {dt.year}'
    return label


def short_date(value):
    dt = parse_timestamp(value)
    if dt is None:
        return ''
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"


def init_app(app):
    """Register template filters with the Flask app"""
    app.add_template_filter(long_date, 'long_date')
    app.add_template_filter(time12, 'time12')
    app.add_template_filter(relative_time, 'relative_time')
    app.add_template_filter(short_date, 'short_date')
    app.add_template_filter(format_file_size, 'file_size')
