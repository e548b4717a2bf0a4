import datetime

import numpy
import numpy.testing
import pytest

from metron.core import coercion
from metron.core import quantity


@pytest.mark.coercion
def test_elapsed_quantity():
    """Convert elapsed-time values into quantities."""
    cases = [
        (coercion.Elapsed(90, 'secs'), 90, 's'),
        (coercion.Elapsed(1.5, 'mins'), 1.5, 'min'),
        (coercion.Elapsed(2, 'hours'), 2, 'h'),
        (coercion.Elapsed(3, 'days'), 3, 'd'),
        (coercion.Elapsed(2, 'weeks'), 14, 'd'),
        (datetime.timedelta(minutes=2), 120.0, 's'),
        (numpy.timedelta64(5, 'm'), 5, 'min'),
        (numpy.timedelta64(2, 'W'), 14, 'd'),
        (numpy.timedelta64(30, 's'), 30, 's'),
    ]
    for value, data, unit in cases:
        assert coercion.is_elapsed(value)
        result = coercion.elapsed_quantity(value)
        assert result == quantity.Quantity(data, unit), value


@pytest.mark.coercion
def test_elapsed_arrays():
    """Elapsed-time arrays keep their shape."""
    values = numpy.array([1, 2, 3], dtype='timedelta64[h]')
    result = coercion.elapsed_quantity(values)
    assert result.unit == 'h'
    numpy.testing.assert_array_equal(result.data, [1, 2, 3])
    weeks = coercion.elapsed_quantity(coercion.Elapsed([1, 2], 'weeks'))
    numpy.testing.assert_array_equal(weeks.data, [7, 14])


@pytest.mark.coercion
def test_unsupported_time_unit():
    """Elapsed-time units without a counterpart are errors."""
    for value in (
        coercion.Elapsed(1, 'fortnights'),
        numpy.timedelta64(1, 'ms'),
        numpy.timedelta64(1, 'Y'),
    ):
        with pytest.raises(coercion.UnsupportedTimeUnit):
            coercion.elapsed_quantity(value)


@pytest.mark.coercion
def test_elapsed():
    """Convert quantities in time units into elapsed-time values."""
    cases = {'s': 'secs', 'min': 'mins', 'h': 'hours', 'd': 'days'}
    for unit, name in cases.items():
        result = coercion.elapsed(quantity.Quantity(3, unit))
        assert result == coercion.Elapsed(3, name)
    for unit in ('m', 'ms', 'seconds', 'km/h'):
        with pytest.raises(coercion.UnsupportedConversionTarget):
            coercion.elapsed(quantity.Quantity(3, unit))


@pytest.mark.coercion
def test_calendar_kind():
    """Classify calendar values as instants or dates."""
    instants = [
        datetime.datetime(2020, 1, 1, 12),
        numpy.datetime64('2020-01-01T12:00'),
        numpy.array(['2020-01-01T00:00:00'], dtype='datetime64[s]'),
        [datetime.datetime(2020, 1, 1)],
    ]
    for value in instants:
        assert coercion.calendar_kind(value) == 'instant'
    dates = [
        datetime.date(2020, 1, 1),
        numpy.datetime64('2020-01-01'),
        numpy.array(['2020-01-01'], dtype='datetime64[D]'),
    ]
    for value in dates:
        assert coercion.calendar_kind(value) == 'date'
    for value in (1, [], [1.0], 'today', numpy.array([1.0])):
        assert coercion.calendar_kind(value) is None
        assert not coercion.is_calendar(value)


@pytest.mark.coercion
def test_instant_quantity():
    """Instants count seconds since the epoch."""
    result = coercion.instant_quantity(datetime.datetime(1970, 1, 2))
    assert result == quantity.Quantity(86400.0, coercion.INSTANT)
    aware = datetime.datetime(
        1970, 1, 1, 1,
        tzinfo=datetime.timezone(datetime.timedelta(hours=1)),
    )
    assert coercion.instant_quantity(aware).data == 0.0
    values = numpy.array(
        ['1970-01-01T00:00:01', '1970-01-01T00:01:00'],
        dtype='datetime64[s]',
    )
    result = coercion.instant_quantity(values)
    numpy.testing.assert_array_equal(result.data, [1.0, 60.0])


@pytest.mark.coercion
def test_date_quantity():
    """Dates count days since the epoch."""
    result = coercion.date_quantity(datetime.date(1970, 1, 11))
    assert result == quantity.Quantity(10, coercion.DATE)
    result = coercion.calendar_quantity([
        numpy.datetime64('1970-01-02'),
        numpy.datetime64('1969-12-31'),
    ])
    numpy.testing.assert_array_equal(result.data, [1, -1])


@pytest.mark.coercion
def test_instants_and_dates():
    """Recover calendar values from counts since the epoch."""
    assert coercion.instants(1.5) == numpy.datetime64(
        '1970-01-01T00:00:01.500000',
    )
    numpy.testing.assert_array_equal(
        coercion.instants([0.0, 60.0]),
        numpy.array(
            ['1970-01-01T00:00:00', '1970-01-01T00:01:00'],
            dtype='datetime64[us]',
        ),
    )
    assert coercion.dates(1.75) == numpy.datetime64('1970-01-02')
    assert coercion.dates(-0.5) == numpy.datetime64('1969-12-31')
    with pytest.raises(TypeError):
        coercion.calendar_quantity(1.0)
