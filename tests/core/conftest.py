import typing

import pytest

from metron.core import options
from metron.core import oracle


class FakeOracle(oracle.Oracle):
    """A table-driven oracle that records conversion requests."""

    def __init__(
        self,
        factors: typing.Mapping[typing.Tuple[str, str], float],
        names: typing.Iterable[str]=(),
    ) -> None:
        self.factors = dict(factors)
        self.names = set(names)
        self.calls = []

    def are_convertible(self, u0, u1) -> bool:
        u0, u1 = str(u0), str(u1)
        return u0 == u1 or (u0, u1) in self.factors

    def _convert(self, values, u0: str, u1: str):
        self.calls.append((u0, u1))
        if u0 == u1:
            return values
        return values * self.factors[(u0, u1)]

    def knows(self, name: str) -> bool:
        return name == '1' or name in self.names


@pytest.fixture
def fake():
    """An oracle that knows a few lengths, times, and pressures."""
    return FakeOracle(
        factors={
            ('m', 'km'): 1e-3,
            ('km', 'm'): 1e3,
            ('m/s', 'km/h'): 3.6,
            ('s', 'min'): 1 / 60,
            ('bar', 'Pa'): 1e5,
        },
        names={'m', 'km', 's', 'h', 'min', 'bar', 'Pa', 'kg', 'u'},
    )


@pytest.fixture(autouse=True)
def fresh_options():
    """Discard any process-wide options that a test changed."""
    options.reset()
    yield
    options.reset()


@pytest.fixture
def fake_options(fake: FakeOracle):
    """Options that use the fake oracle."""
    return options.Options(oracle=fake)
