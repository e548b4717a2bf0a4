import datetime
import pathlib
import warnings

import numpy
import numpy.testing
import pytest

from metron.core import coercion
from metron.core import options
from metron.core import oracle
from metron.core import quantity
from metron.core import resolver
from metron.core import symbolic
from metron.core import units


@pytest.mark.units
def test_rescale():
    """Tag a value, then convert it to a compatible unit."""
    x = units.set_units(1, 'm')
    assert x == quantity.Quantity(1, 'm')
    result = units.as_units(x, 'km')
    assert result.unit == 'km'
    assert result.data == pytest.approx(0.001)


@pytest.mark.units
def test_expressions():
    """Tag and convert with unevaluated expressions."""
    x = units.set_units(1, resolver.expr('m/s'))
    assert x.unit == 'm/s'
    result = units.as_units(x, resolver.expr('km/h'))
    assert result.unit == 'km/h'
    assert result.data == pytest.approx(3.6)


@pytest.mark.units
def test_scaled_units():
    """A quantity as a unit argument carries a numerical scale."""
    tenbar = units.set_units(10, 'bar')
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        result = units.as_units(units.set_units(1, 'bar'), tenbar)
    assert result == quantity.Quantity(10, 'bar')
    result = units.as_units(units.set_units(1, 'm'), units.set_units(2, 'km'))
    assert result.unit == 'km'
    assert result.data == pytest.approx(0.002)
    with pytest.warns(quantity.ScaleDiscardedWarning):
        result = units.set_units(1, tenbar)
    assert result == quantity.Quantity(1, 'bar')
    with options.using(simplify=True):
        assert units.set_units(1, tenbar) == quantity.Quantity(10, 'bar')
    simplify = options.get().replace(simplify=True)
    result = units.set_units(1, tenbar, options=simplify)
    assert result == quantity.Quantity(10, 'bar')
    result = units.set_units(1, resolver.expr('10*bar'), options=simplify)
    assert result == quantity.Quantity(10, 'bar')


@pytest.mark.units
def test_calendar_round_trip():
    """An instant survives conversion through elapsed seconds."""
    instant = datetime.datetime(2021, 3, 4, 5, 6, 7, 890123)
    q = units.as_units(instant)
    assert q.unit == 'seconds since 1970-01-01T00:00:00Z'
    seconds = units.as_units(q, 's')
    assert seconds.unit == 's'
    elapsed = units.as_elapsed_time(seconds)
    assert elapsed.units == 'secs'
    back = units.as_units(elapsed)
    assert back.unit == 's'
    assert units.as_calendar_instant(back) == numpy.datetime64(instant, 'us')


@pytest.mark.units
def test_boolean_values():
    """Boolean data can't carry a unit unless every element is missing."""
    with pytest.raises(quantity.InvalidValueType):
        units.set_units([True, False], 'm')
    with pytest.raises(quantity.InvalidValueType):
        units.as_units(numpy.array([True, None]), 'm')
    result = units.set_units([None, None], 'm')
    assert result.unit == 'm'
    assert numpy.all(numpy.isnan(result.data))


@pytest.mark.units
def test_incompatible():
    """Conversion between incompatible units fails without side effects."""
    assert not oracle.default().are_convertible('m', 'kg')
    x = units.set_units(numpy.array([1.0, 2.0]), 'm')
    with pytest.raises(oracle.IncompatibleUnits):
        units.as_units(x, 'kg')
    assert x.unit == 'm'
    numpy.testing.assert_array_equal(x.data, [1.0, 2.0])


@pytest.mark.units
def test_gate(fake_options: options.Options, fake):
    """The oracle never converts between units it calls incompatible."""
    x = units.set_units(1.0, 'm', options=fake_options)
    with pytest.raises(oracle.IncompatibleUnits):
        units.as_units(x, 'kg', options=fake_options)
    assert fake.calls == []
    units.as_units(x, 'km', options=fake_options)
    assert fake.calls == [('m', 'km')]


@pytest.mark.units
def test_round_trip():
    """Removing a unit recovers the exact original values."""
    for value in (2.5, 7, numpy.array([[1.0, 2.0], [3.0, 4.0]])):
        assert units.drop_units(units.set_units(value, 'm/s')) is value
    assert units.drop_units(3) == 3
    assert units.set_units(units.set_units(4.0, 'm'), None) == 4.0


@pytest.mark.units
def test_idempotent():
    """Converting twice to the same unit returns the same object."""
    x = units.set_units([1.0, 2.0], 'm')
    once = units.as_units(x, 'km')
    assert units.as_units(once, 'km') is once
    assert units.as_units(once) is once
    assert units.set_units(once, symbolic.Unit('km')) is once


@pytest.mark.units
def test_composition():
    """Chained conversions agree with direct conversions."""
    chains = [
        ('m', 'cm', 'km'),
        ('m/s', 'km/h', 'mm/min'),
        ('degC', 'K', 'degF'),
        ('J', 'eV', 'erg'),
    ]
    for u1, u2, u3 in chains:
        x = units.set_units(numpy.array([0.5, 1.0, 42.0]), u1)
        chained = units.as_units(units.as_units(x, u2), u3)
        direct = units.as_units(x, u3)
        numpy.testing.assert_allclose(chained.data, direct.data)


@pytest.mark.units
def test_ambiguity():
    """A local variable named like a unit is used for its value."""
    m = 'km'
    with pytest.warns(resolver.AmbiguousUnitWarning):
        result = units.set_units(1, resolver.expr('m'))
    assert result.unit == m
    degC = 'K'
    with pytest.warns(resolver.AmbiguousUnitWarning):
        result = units.set_units(20, resolver.expr('degC'))
    assert result.unit == degC


@pytest.mark.units
def test_warning_location():
    """Warnings point at the calling code, not at metron."""
    here = pathlib.Path(__file__).resolve()
    m = 'km'
    with pytest.warns(resolver.AmbiguousUnitWarning) as record:
        units.set_units(1, resolver.expr('m'))
    assert pathlib.Path(record[0].filename).resolve() == here
    with pytest.warns(resolver.AmbiguousUnitWarning) as record:
        units.as_units(1, resolver.expr('m'))
    assert pathlib.Path(record[0].filename).resolve() == here
    tenbar = units.set_units(10, 'bar')
    with pytest.warns(quantity.ScaleDiscardedWarning) as record:
        units.as_units(1, tenbar)
    assert pathlib.Path(record[0].filename).resolve() == here
    with pytest.warns(UserWarning, match='ignored') as record:
        units.as_units(symbolic.Unit(m), 'm')
    assert pathlib.Path(record[0].filename).resolve() == here


@pytest.mark.units
def test_reference_time():
    """Values in reference-time units convert across origins."""
    x = units.set_units(12.0, 'hours since 2000-01-01')
    result = units.as_units(x, 'days since 1999-12-31')
    assert result.data == pytest.approx(1.5)
    date = units.as_calendar_date(x)
    assert date == numpy.datetime64('2000-01-01')
    instant = units.as_calendar_instant(x)
    assert instant == numpy.datetime64('2000-01-01T12:00:00')


@pytest.mark.units
def test_units_of():
    """Get the unit of quantities and units."""
    unit = symbolic.Unit('m/s')
    assert units.units_of(unit) is unit
    assert units.units_of(units.set_units(1, unit)) is unit
    assert units.units_of(1.0) is None


@pytest.mark.units
def test_as_units():
    """Coerce various kinds of values to quantities."""
    assert units.as_units(None) is None
    assert units.as_units(None, 'm') is None
    assert units.as_units(5) == quantity.Quantity(5, '1')
    assert units.as_units(5, 'm') == quantity.Quantity(5, 'm')
    unit = symbolic.Unit('km')
    assert units.as_units(unit) == quantity.Quantity(1, 'km')
    with pytest.warns(UserWarning, match='ignored'):
        assert units.as_units(unit, 'm') == quantity.Quantity(1, 'km')
    hour = units.as_units(datetime.timedelta(hours=1), 'min')
    assert hour.unit == 'min'
    assert hour.data == pytest.approx(60.0)
    day = units.as_units(datetime.date(1970, 1, 3))
    assert day == quantity.Quantity(2, coercion.DATE)


@pytest.mark.units
def test_time_errors():
    """Time-like coercions report unsupported units."""
    with pytest.raises(coercion.UnsupportedTimeUnit):
        units.as_units(coercion.Elapsed(1, 'fortnights'))
    with pytest.raises(coercion.UnsupportedConversionTarget):
        units.as_elapsed_time(units.set_units(1, 'm'))
    with pytest.raises(coercion.UnsupportedConversionTarget):
        units.as_elapsed_time(units.set_units(1, 'ms'))
    for function in (
        units.as_elapsed_time,
        units.as_calendar_instant,
        units.as_calendar_date,
    ):
        with pytest.raises(TypeError):
            function(1.0)
    with pytest.raises(oracle.IncompatibleUnits):
        units.as_calendar_instant(units.set_units(1, 'm'))


@pytest.mark.units
def test_unresolved():
    """Unknown units fail when the oracle is consulted."""
    x = units.set_units(1, 'notaunit')
    assert x.unit == 'notaunit'
    with pytest.raises(symbolic.UnitResolutionFailed):
        units.as_units(x, 'm')
    with pytest.raises(symbolic.UnitResolutionFailed):
        units.set_units(1, resolver.expr('notaunit'))
