"""Conversion between quantities and time-like values.

Elapsed times (durations) map to quantities in ordinary time units. Calendar
values map to quantities in reference-time units: instants count seconds since
the Unix epoch and dates count days since the Unix epoch.
"""

import datetime
import typing

import numpy

from metron.core import quantity
from metron.core import symbolic


class UnsupportedTimeUnit(ValueError):
    """An elapsed-time value has a unit with no quantity counterpart."""

    def __init__(self, units: typing.Any) -> None:
        self.units = units

    def __str__(self) -> str:
        return f"Unsupported elapsed-time unit {self.units!r}"


class UnsupportedConversionTarget(ValueError):
    """A quantity's unit has no elapsed-time counterpart."""

    def __init__(self, unit: typing.Any) -> None:
        self.unit = str(unit)

    def __str__(self) -> str:
        return (
            f"Can't convert unit {self.unit!r} to an elapsed time;"
            f" expected one of {', '.join(repr(k) for k in _ELAPSED)}"
        )


class Elapsed(typing.NamedTuple):
    """Elapsed-time values with a named time unit."""

    values: typing.Any
    units: str


TIME_UNITS = {
    'secs': ('s', 1),
    'mins': ('min', 1),
    'hours': ('h', 1),
    'days': ('d', 1),
    'weeks': ('d', 7),
}
"""Elapsed-time unit names and their equivalent unit and scale."""


_ELAPSED = {'s': 'secs', 'min': 'mins', 'h': 'hours', 'd': 'days'}

_TIMEDELTA_CODES = {'s': 's', 'm': 'min', 'h': 'h', 'D': 'd', 'W': 'd'}


EPOCH = numpy.datetime64('1970-01-01T00:00:00', 'us')
"""The origin of calendar quantities."""


INSTANT = symbolic.Unit('seconds since 1970-01-01T00:00:00Z')
"""The unit of calendar instants."""


DATE = symbolic.Unit('days since 1970-01-01')
"""The unit of calendar dates."""


def is_elapsed(x) -> bool:
    """True if `x` is an elapsed-time value."""
    if isinstance(x, (Elapsed, datetime.timedelta, numpy.timedelta64)):
        return True
    return isinstance(x, numpy.ndarray) and x.dtype.kind == 'm'


def elapsed_quantity(x) -> quantity.Quantity:
    """Convert an elapsed-time value into a quantity.

    Raises
    ------
    `~coercion.UnsupportedTimeUnit`
        The value's time unit has no quantity counterpart.
    """
    if isinstance(x, Elapsed):
        if x.units not in TIME_UNITS:
            raise UnsupportedTimeUnit(x.units)
        unit, factor = TIME_UNITS[x.units]
        values = quantity.validate(x.values)
        if factor != 1:
            values = values * factor
        return quantity.Quantity(values, unit)
    if isinstance(x, datetime.timedelta):
        return quantity.Quantity(x.total_seconds(), 's')
    code, count = numpy.datetime_data(x.dtype)
    if code not in _TIMEDELTA_CODES:
        raise UnsupportedTimeUnit(code)
    factor = count * (7 if code == 'W' else 1)
    values = x.astype('int64') * factor
    if isinstance(x, numpy.timedelta64):
        values = int(values)
    return quantity.Quantity(values, _TIMEDELTA_CODES[code])


def elapsed(q: quantity.Quantity) -> Elapsed:
    """Convert a quantity in a time unit into elapsed-time values.

    Raises
    ------
    `~coercion.UnsupportedConversionTarget`
        The unit of `q` is not exactly one of ``s``, ``min``, ``h``, or ``d``.
    """
    label = str(q.unit)
    if label not in _ELAPSED:
        raise UnsupportedConversionTarget(label)
    return Elapsed(values=q.data, units=_ELAPSED[label])


def _is_date(x) -> bool:
    if isinstance(x, datetime.datetime):
        return False
    if isinstance(x, datetime.date):
        return True
    if isinstance(x, (numpy.datetime64, numpy.ndarray)):
        code, _ = numpy.datetime_data(x.dtype)
        return code in {'D', 'W', 'M', 'Y'}
    return False


def calendar_kind(x) -> typing.Optional[str]:
    """Classify `x` as ``'instant'``, ``'date'``, or neither.

    Sequences are classified by their first element.
    """
    if isinstance(x, numpy.ndarray):
        if x.dtype.kind != 'M':
            return None
        return 'date' if _is_date(x) else 'instant'
    if isinstance(x, (list, tuple)):
        if not x:
            return None
        return calendar_kind(x[0])
    if isinstance(x, (datetime.date, numpy.datetime64)):
        return 'date' if _is_date(x) else 'instant'
    return None


def _utc(x: datetime.datetime) -> datetime.datetime:
    """Express an aware datetime as a naive UTC datetime."""
    if x.tzinfo is None:
        return x
    return x.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def _as_datetime64(x, unit: str):
    """Convert calendar values to `numpy.datetime64` with `unit` resolution."""
    if isinstance(x, (list, tuple)):
        return numpy.array([_as_datetime64(v, unit) for v in x])
    if isinstance(x, datetime.datetime):
        x = _utc(x)
    if isinstance(x, numpy.ndarray):
        return x.astype(f'datetime64[{unit}]')
    return numpy.datetime64(x, unit)


def instant_quantity(x) -> quantity.Quantity:
    """Convert calendar instants into seconds since the epoch."""
    stamps = _as_datetime64(x, 'us')
    seconds = (stamps - EPOCH) / numpy.timedelta64(1, 's')
    if numpy.ndim(seconds) == 0:
        seconds = float(seconds)
    return quantity.Quantity(seconds, INSTANT)


def date_quantity(x) -> quantity.Quantity:
    """Convert calendar dates into days since the epoch."""
    days = _as_datetime64(x, 'D') - numpy.datetime64('1970-01-01', 'D')
    days = days.astype('int64')
    if numpy.ndim(days) == 0:
        days = int(days)
    return quantity.Quantity(days, DATE)


def instants(seconds) -> typing.Union[numpy.datetime64, numpy.ndarray]:
    """Convert seconds since the epoch into instants.

    The result has microsecond resolution.
    """
    micro = numpy.round(numpy.asarray(seconds, dtype=float) * 1e6)
    result = EPOCH + micro.astype('int64').astype('timedelta64[us]')
    return numpy.asarray(result)[()] if numpy.ndim(result) == 0 else result


def dates(days) -> typing.Union[numpy.datetime64, numpy.ndarray]:
    """Convert days since the epoch into dates, rounding down."""
    whole = numpy.floor(numpy.asarray(days, dtype=float)).astype('int64')
    epoch = numpy.datetime64('1970-01-01', 'D')
    result = epoch + whole.astype('timedelta64[D]')
    return numpy.asarray(result)[()] if numpy.ndim(result) == 0 else result


def is_calendar(x) -> bool:
    """True if `x` is a calendar instant or date."""
    return calendar_kind(x) is not None


def calendar_quantity(x) -> quantity.Quantity:
    """Convert calendar values into a quantity in a reference-time unit."""
    kind = calendar_kind(x)
    if kind == 'instant':
        return instant_quantity(x)
    if kind == 'date':
        return date_quantity(x)
    raise TypeError(f"Not a calendar value: {x!r}")