"""The table of unit names available to unit expressions."""

import collections.abc
import typing

from metron.core import options
from metron.core import oracle as oracles
from metron.core import symbolic


_SYMBOLS = (
    '1',
    'm', 'km', 'cm', 'mm', 'au',
    'g', 'kg',
    's', 'min', 'h', 'd',
    'A',
    'K', 'degC', 'degF',
    'mol', 'cd',
    'rad', 'deg', 'sr',
    'Hz',
    'J', 'erg', 'eV',
    'N', 'dyn',
    'Pa', 'bar',
    'W', 'C', 'V', 'ohm', 'S', 'F',
    'Wb', 'Mx', 'H', 'T', 'G',
    'lm', 'lx',
    'Bq', 'Ci', 'Gy',
    'L',
)
"""Common unit symbols, grouped by physical quantity."""


class Namespace(collections.abc.Mapping):
    """A read-only mapping from unit names to unit objects.

    Any name that the conversion oracle recognizes is a valid key, so the
    membership test delegates to the oracle. Iteration yields only a curated
    table of common symbols, since a unit database may know thousands of
    names, including every prefixed form.

    Attribute access is equivalent to subscription, which supports
    expressions such as ``ud.m / ud.s``.
    """

    def __init__(self, oracle: oracles.Oracle=None) -> None:
        self._oracle = oracle

    @property
    def oracle(self) -> oracles.Oracle:
        """The oracle that decides which names are units."""
        if self._oracle is None:
            return options.get().oracle
        return self._oracle

    def __getitem__(self, name: str) -> symbolic.Unit:
        """Get the unit called `name`, if the oracle knows it."""
        if isinstance(name, str) and self.oracle.knows(name):
            return symbolic.Unit(name)
        raise KeyError(f"No unit named {name!r}")

    def __iter__(self) -> typing.Iterator[str]:
        oracle = self.oracle
        return iter([
            symbol for symbol in _SYMBOLS if oracle.knows(symbol)
        ])

    def __len__(self) -> int:
        return len(list(iter(self)))

    def __getattr__(self, name: str) -> symbolic.Unit:
        """Get the unit called `name` as an attribute."""
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError as err:
            raise AttributeError(
                f"{self.__class__.__qualname__!r} has no unit {name!r}"
            ) from err

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}({', '.join(self)})"


ud = Namespace()
"""The default unit namespace, bound to the process-wide oracle."""
