"""The interface between the unit engine and an external unit database.

Every question about the meaning of a unit (whether two units measure the
same kind of quantity, and how to convert between them) is delegated to an
`~oracle.Oracle`. The default implementation, `~oracle.PintOracle`, asks a
`pint.UnitRegistry`.

Reference-time labels such as ``'seconds since 1970-01-01T00:00:00Z'`` or
``'days since 2000-01-01 12:00:00 +01:00'`` are handled here, on top of the
registry: the part before ``since`` is an ordinary time unit and the part
after it is the origin of the time axis.
"""

import abc
import logging
import re
import tokenize
import typing

import numpy
import pint

from metron.core import symbolic


_log = logging.getLogger(__name__)


UnitLike = symbolic.UnitLike


class IncompatibleUnits(ValueError):
    """The oracle reports that two units are not convertible."""

    def __init__(self, u0: typing.Any, u1: typing.Any) -> None:
        self.u0 = str(u0)
        self.u1 = str(u1)

    def __str__(self) -> str:
        return f"Can't convert {self.u0!r} to {self.u1!r}"


class PreconditionViolated(Exception):
    """Conversion was requested between units that are not convertible.

    This indicates a defect in the calling code, which must check
    convertibility before asking for a conversion.
    """

    def __init__(self, u0: str, u1: str) -> None:
        self.u0 = u0
        self.u1 = u1

    def __str__(self) -> str:
        return (
            f"Conversion from {self.u0!r} to {self.u1!r} requested"
            " without a prior convertibility check"
        )


class Oracle(abc.ABC):
    """Base class for adapters to an authoritative unit database."""

    @abc.abstractmethod
    def are_convertible(self, u0: UnitLike, u1: UnitLike) -> bool:
        """True if values in `u0` can be converted to `u1`.

        This query has no side effects.
        """
        raise NotImplementedError

    def convert(self, values, u0: UnitLike, u1: UnitLike):
        """Convert `values` from `u0` to `u1`.

        The result has the same shape as `values`.

        Raises
        ------
        `~oracle.PreconditionViolated`
            The units are not convertible.
        """
        u0, u1 = str(u0), str(u1)
        if not self.are_convertible(u0, u1):
            raise PreconditionViolated(u0, u1)
        return self._convert(values, u0, u1)

    @abc.abstractmethod
    def _convert(self, values, u0: str, u1: str):
        """Convert `values` between two units known to be convertible."""
        raise NotImplementedError

    @abc.abstractmethod
    def knows(self, name: str) -> bool:
        """True if `name` is the name or symbol of a unit."""
        raise NotImplementedError


_REFERENCE = re.compile(
    r'^\s*(?P<unit>\S.*?)\s+since\s+(?P<origin>\S.*?)\s*$',
    re.IGNORECASE,
)

_ORIGIN = re.compile(
    r"""
    ^
    (?P<year>\d{1,4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})
    (?:
        (?:T|\s+)
        (?P<hour>\d{1,2}):(?P<minute>\d{1,2})
        (?::(?P<second>\d{1,2}(?:\.\d*)?))?
    )?
    \s*
    (?P<zone>Z|UTC|GMT|[-+]\d{1,2}(?::?\d{2})?)?
    $
    """,
    re.VERBOSE | re.IGNORECASE,
)


class Reference(typing.NamedTuple):
    """The parts of a reference-time unit label."""

    unit: str
    origin: numpy.datetime64


def _offset(zone: typing.Optional[str]) -> numpy.timedelta64:
    """Compute the UTC offset of a time-zone designator."""
    if zone is None or zone.upper() in {'Z', 'UTC', 'GMT'}:
        return numpy.timedelta64(0, 'm')
    sign = -1 if zone[0] == '-' else 1
    digits = zone[1:].replace(':', '')
    if len(digits) <= 2:
        hours, minutes = int(digits), 0
    else:
        hours, minutes = int(digits[:-2]), int(digits[-2:])
    return numpy.timedelta64(sign * (60*hours + minutes), 'm')


def reference(label: UnitLike) -> typing.Optional[Reference]:
    """Split a reference-time label into its unit and origin.

    Returns
    -------
    `~oracle.Reference` or `None`
        The unit and the UTC origin, or ``None`` if `label` is not a
        reference-time label.

    Raises
    ------
    `~symbolic.UnitResolutionFailed`
        `label` has the form of a reference-time label but its origin is not
        a valid date or time.
    """
    match = _REFERENCE.match(str(label))
    if match is None:
        return None
    parts = _ORIGIN.match(match['origin'])
    if parts is None:
        raise symbolic.UnitResolutionFailed(str(label))
    year, month, day = (int(parts[k]) for k in ('year', 'month', 'day'))
    seconds = (
        3600 * int(parts['hour'] or 0)
        + 60 * int(parts['minute'] or 0)
        + float(parts['second'] or 0)
    )
    try:
        date = numpy.datetime64(f"{year:04d}-{month:02d}-{day:02d}", 'us')
    except ValueError as err:
        raise symbolic.UnitResolutionFailed(str(label)) from err
    elapsed = numpy.timedelta64(round(seconds * 1e6), 'us')
    origin = date + elapsed - _offset(parts['zone'])
    return Reference(unit=match['unit'], origin=origin)


class PintOracle(Oracle):
    """An oracle backed by a `pint` unit registry."""

    def __init__(self, registry: pint.UnitRegistry=None) -> None:
        self._registry = (
            pint.UnitRegistry() if registry is None else registry
        )

    @property
    def registry(self) -> pint.UnitRegistry:
        """The unit registry that answers all queries."""
        return self._registry

    def are_convertible(self, u0: UnitLike, u1: UnitLike) -> bool:
        r0, r1 = reference(u0), reference(u1)
        if r0 is None and r1 is None:
            return self._dimensionality(u0) == self._dimensionality(u1)
        time = self._dimensionality('s')
        b0 = u0 if r0 is None else r0.unit
        b1 = u1 if r1 is None else r1.unit
        return (
            self._dimensionality(b0) == time
            and self._dimensionality(b1) == time
        )

    def _convert(self, values, u0: str, u1: str):
        _log.debug("Converting %r to %r", u0, u1)
        r0, r1 = reference(u0), reference(u1)
        b0 = u0 if r0 is None else r0.unit
        b1 = u1 if r1 is None else r1.unit
        target = self._parse(b1)
        result = self._registry.convert(values, self._parse(b0), target)
        if r0 is None or r1 is None or r0.origin == r1.origin:
            return result
        shift = (r0.origin - r1.origin) / numpy.timedelta64(1, 's')
        seconds = self._parse('s')
        return result + self._registry.convert(shift, seconds, target)

    def knows(self, name: str) -> bool:
        if name == '1':
            return True
        if not isinstance(name, str) or not name or name.startswith('_'):
            return False
        return name in self._registry

    def _dimensionality(self, label: UnitLike):
        """Get the physical dimensionality of `label` from the registry."""
        return self._parse(label).dimensionality

    def _parse(self, label: UnitLike) -> pint.Unit:
        """Convert `label` into a registry unit."""
        string = str(label)
        if string == '1':
            string = 'dimensionless'
        try:
            return self._registry.parse_units(string)
        except (
            pint.PintError,
            ValueError,
            SyntaxError,
            tokenize.TokenError,
        ) as err:
            raise symbolic.UnitResolutionFailed(str(label)) from err

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}()"


_default: typing.Optional[PintOracle] = None


def default() -> PintOracle:
    """The shared default oracle, created on first use."""
    global _default
    if _default is None:
        _log.debug("Creating the default unit registry")
        _default = PintOracle()
    return _default
