"""Public operations for attaching, converting, and removing units."""

import typing
import warnings

from metron.core import coercion
from metron.core import iterables
from metron.core import options as runtime
from metron.core import quantity
from metron.core import resolver
from metron.core import symbolic


def units_of(x) -> typing.Optional[symbolic.Unit]:
    """Get the unit of `x`.

    Returns
    -------
    `~symbolic.Unit` or `None`
        The unit attached to a quantity, `x` itself if it is a unit, or
        ``None`` if `x` has no unit.
    """
    if isinstance(x, symbolic.Unit):
        return x
    if isinstance(x, quantity.Quantity):
        return x.unit
    return None


def drop_units(x):
    """Remove the unit from `x` without conversion."""
    if isinstance(x, quantity.Quantity):
        return x.data
    return x


def set_units(x, value, *, options: runtime.Options=None):
    """Set the unit of `x`.

    Parameters
    ----------
    x : number, array-like, or `~quantity.Quantity`
        The values. Bare values receive `value` as their unit without
        numerical change; a quantity converts to `value`.

    value : string, unit, quantity, expression, or `None`
        The unit. ``None`` removes the unit from `x`.

    options : `~options.Options`, optional
        Options to use instead of the process-wide options.

    Raises
    ------
    `~oracle.IncompatibleUnits`
        `x` is a quantity whose unit is not convertible to `value`.
    `~quantity.InvalidValueType`
        `x` is boolean or otherwise non-numeric.
    `~symbolic.UnitResolutionFailed`
        `value` does not resolve to a unit.
    """
    if value is None:
        return drop_units(x)
    current = runtime.resolve(options)
    unit, scale = resolver.resolve(value, current)
    if isinstance(x, quantity.Quantity):
        return x.convert(unit, scale=scale, oracle=current.oracle)
    return quantity.tag(x, unit, scale=scale, simplify=current.simplify)


def as_units(x, value=None, *, options: runtime.Options=None):
    """Coerce `x` to a quantity.

    Parameters
    ----------
    x
        Numerical data, a quantity, a unit, an elapsed time, a calendar value,
        or ``None``, which passes through unchanged.

    value : optional
        The unit of the result, as for `~units.set_units`. The default for
        bare numerical data is the unitless unit; other kinds of `x` keep
        their natural unit.

    options : `~options.Options`, optional
        Options to use instead of the process-wide options.
    """
    if x is None:
        return None
    current = runtime.resolve(options)
    if isinstance(x, quantity.Quantity):
        if value is None:
            return x
        return set_units(x, value, options=current)
    if isinstance(x, symbolic.Unit):
        if value is not None:
            warnings.warn(
                f"supplied value {value!r} ignored when converting unit {x}",
                UserWarning,
                stacklevel=iterables.stacklevel(),
            )
        return quantity.Quantity(1, x)
    if coercion.is_elapsed(x):
        q = coercion.elapsed_quantity(x)
    elif coercion.is_calendar(x):
        q = coercion.calendar_quantity(x)
    else:
        unit = symbolic.UNITLESS if value is None else value
        return set_units(x, unit, options=current)
    return q if value is None else set_units(q, value, options=current)


def as_elapsed_time(x: quantity.Quantity) -> coercion.Elapsed:
    """Convert a quantity in a time unit into elapsed-time values.

    Raises
    ------
    TypeError
        `x` is not a quantity.
    `~coercion.UnsupportedConversionTarget`
        The unit of `x` is not exactly one of ``s``, ``min``, ``h``, or ``d``.
    """
    _require_quantity(x)
    return coercion.elapsed(x)


def as_calendar_instant(
    x: quantity.Quantity,
    *,
    options: runtime.Options=None,
):
    """Convert a time quantity into calendar instants.

    Returns
    -------
    `numpy.datetime64` or `numpy.ndarray`
        Instants with microsecond resolution.
    """
    _require_quantity(x)
    seconds = set_units(x, coercion.INSTANT, options=options)
    return coercion.instants(seconds.data)


def as_calendar_date(
    x: quantity.Quantity,
    *,
    options: runtime.Options=None,
):
    """Convert a time quantity into calendar dates.

    Returns
    -------
    `numpy.datetime64` or `numpy.ndarray`
        Dates with day resolution, rounded down.
    """
    _require_quantity(x)
    days = set_units(x, coercion.DATE, options=options)
    return coercion.dates(days.data)


def _require_quantity(x) -> None:
    if not isinstance(x, quantity.Quantity):
        raise TypeError(
            f"Expected a {quantity.Quantity.__qualname__}, not {type(x)!r}"
        )
