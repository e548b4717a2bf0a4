import abc
import numbers
import re
import typing
import weakref

from metron.core import iterables


class UnitResolutionFailed(Exception):
    """A unit expression or identifier could not be resolved."""

    def __init__(self, token: typing.Any) -> None:
        self.token = token

    def __str__(self) -> str:
        return f"Could not resolve {self.token!r} to a unit"


class UnitParsingError(UnitResolutionFailed):
    """Error when attempting to parse a string into a unit."""

    def __str__(self) -> str:
        return f"Could not parse {self.token!r} as a unit"


class _OpaqueLabel(Exception):
    """Internal signal that a string is not a simple product of symbols."""


_SYMBOL = r"(?:[^\W\d][\w]*|%|°[CF]?)"


_TOKENS = re.compile(
    rf"""
    \s*
    (?:
        (?P<opening>\()
      | (?P<closing>\))
      | (?P<raising>\^|\*\*)
      | (?P<multiply>\*|·|⋅)
      | (?P<divide>/)
      | (?P<integer>[-+]?\d+)(?![\d.eE])
      | (?P<symbol>{_SYMBOL})
    )
    """,
    re.VERBOSE,
)


_PLAIN = re.compile(rf"^{_SYMBOL}$")


class Term(typing.NamedTuple):
    """A single base symbol raised to an integer exponent."""

    base: str
    exponent: int = 1

    @property
    def opaque(self) -> bool:
        """True if this term's base is not a plain unit symbol."""
        return _PLAIN.match(self.base) is None

    def format(self, grouped: bool=False) -> str:
        """Create a string representation of this term.

        Parameters
        ----------
        grouped : bool, default=False
            If true, enclose an opaque base in parentheses so that it remains
            distinguishable inside a compound label.
        """
        base = f"({self.base})" if grouped and self.opaque else self.base
        if self.exponent == 1:
            return base
        return f"{base}^{self.exponent}"

    def __pow__(self, n: int) -> 'Term':
        return Term(self.base, self.exponent * n)


def _tokenize(string: str) -> typing.List[typing.Tuple[str, str]]:
    """Split `string` into (kind, text) pairs or signal an opaque label."""
    tokens = []
    position = 0
    string = string.rstrip()
    while position < len(string):
        match = _TOKENS.match(string, position)
        if match is None or match.end() == position:
            raise _OpaqueLabel(string)
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


class _Parser:
    """A recursive-descent parser for products and ratios of symbols.

    The accepted grammar is::

        expression := factor (['*' | '/'] factor)*
        factor     := atom [exponent]
        atom       := symbol | '1' | '(' expression ')'
        exponent   := ('^' | '**') integer | signed integer

    Juxtaposition (whitespace) means multiplication, and a division applies
    only to the factor that immediately follows it. A signed integer directly
    after an atom is an exponent, which supports labels like ``'km h-1'``.
    """

    def __init__(self, string: str) -> None:
        self.string = string
        self.tokens = _tokenize(string)
        self.index = 0

    def parse(self) -> typing.List[Term]:
        terms = self._expression()
        if self.index != len(self.tokens):
            raise _OpaqueLabel(self.string)
        return terms

    def _peek(self) -> typing.Optional[str]:
        if self.index < len(self.tokens):
            return self.tokens[self.index][0]
        return None

    def _take(self) -> typing.Tuple[str, str]:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _expression(self) -> typing.List[Term]:
        terms = self._factor()
        while True:
            kind = self._peek()
            if kind == 'multiply':
                self._take()
                terms.extend(self._factor())
            elif kind == 'divide':
                self._take()
                terms.extend(term ** -1 for term in self._factor())
            elif kind in {'symbol', 'opening', 'integer'}:
                terms.extend(self._factor())
            else:
                return terms

    def _factor(self) -> typing.List[Term]:
        terms = self._atom()
        kind = self._peek()
        if kind == 'raising':
            self._take()
            if self._peek() != 'integer':
                raise _OpaqueLabel(self.string)
            exponent = int(self._take()[1])
        elif kind == 'integer' and self.tokens[self.index][1][0] in '+-':
            exponent = int(self._take()[1])
        else:
            return terms
        return [term ** exponent for term in terms]

    def _atom(self) -> typing.List[Term]:
        if self._peek() is None:
            raise _OpaqueLabel(self.string)
        kind, text = self._take()
        if kind == 'symbol':
            return [Term(text)]
        if kind == 'integer' and text == '1':
            return []
        if kind == 'opening':
            terms = self._expression()
            if self._peek() != 'closing':
                raise _OpaqueLabel(self.string)
            self._take()
            return terms
        raise _OpaqueLabel(self.string)


def reduce(terms: typing.Iterable[Term]) -> typing.Tuple[Term, ...]:
    """Algebraically combine terms with equal bases.

    Terms keep the order in which their bases first appear. Terms with a
    vanishing exponent and unitless terms are removed.
    """
    exponents = {}
    for term in terms:
        if term.base == '1':
            continue
        exponents[term.base] = exponents.get(term.base, 0) + term.exponent
    return tuple(
        Term(base, exponent)
        for base, exponent in exponents.items()
        if exponent != 0
    )


def decompose(string: str) -> typing.Tuple[Term, ...]:
    """Split `string` into reduced unit terms.

    A string that is not a simple product or ratio of symbols becomes a single
    opaque term, so that any free-form label is acceptable.
    """
    text = string.strip()
    try:
        terms = _Parser(text).parse()
    except _OpaqueLabel:
        return (Term(text),)
    return reduce(terms)


def standard(terms: typing.Sequence[Term]) -> str:
    """Create the canonical label for a sequence of reduced terms."""
    if not terms:
        return '1'
    if len(terms) == 1 and terms[0].exponent == 1:
        return terms[0].base
    above = [term for term in terms if term.exponent > 0]
    below = [term ** -1 for term in terms if term.exponent < 0]
    numerator = '*'.join(term.format(grouped=True) for term in above) or '1'
    if not below:
        return numerator
    if len(below) == 1:
        return f"{numerator}/{below[0].format(grouped=True)}"
    denominator = '*'.join(term.format(grouped=True) for term in below)
    return f"{numerator}/({denominator})"


class _UnitMeta(abc.ABCMeta):
    """Internal metaclass for `~symbolic.Unit`.

    This class exists to create singleton instances of `~symbolic.Unit`, so
    that every representation of a unit label maps to the same immutable
    object for as long as that object is in use. The cache holds weak
    references, so labels that nothing refers to any longer do not accumulate.
    """

    _instances: typing.MutableMapping[str, 'Unit'] = (
        weakref.WeakValueDictionary()
    )

    def __call__(cls, arg=None):
        if isinstance(arg, cls):
            return arg
        if isinstance(arg, str):
            if not arg.strip():
                raise UnitParsingError(arg)
            cached = cls._instances.get(arg)
            if cached is not None:
                return cached
            terms = decompose(arg)
        elif arg is None:
            terms = ()
        else:
            try:
                terms = reduce(Term(*term) for term in arg)
            except TypeError as err:
                raise TypeError(
                    f"Can't create a unit from {arg!r}"
                ) from err
        label = standard(terms)
        unit = cls._instances.get(label)
        if unit is None:
            unit = super().__call__(terms, label)
            cls._instances[label] = unit
        if isinstance(arg, str):
            cls._instances[arg] = unit
        return unit


class Unit(iterables.ReprStrMixin, metaclass=_UnitMeta):
    """An immutable symbolic representation of a physical unit.

    Two instances are equal if and only if their canonical labels are equal.
    This class performs no numerical normalization: ``Unit('km')`` and
    ``Unit('1000 m')`` are different units even though a unit database would
    consider them equivalent.
    """

    _str = "{label}"
    _repr = "'{label}'"

    def __init__(self, terms: typing.Tuple[Term, ...], label: str) -> None:
        self._terms = terms
        self._label = label

    @property
    def label(self) -> str:
        """The canonical string form of this unit."""
        return self._label

    @property
    def terms(self) -> typing.Tuple[Term, ...]:
        """The reduced terms that make up this unit."""
        return self._terms

    @property
    def unitless(self) -> bool:
        """True if this unit has no terms."""
        return not self._terms

    def __eq__(self, other) -> bool:
        """True if two units have the same canonical label."""
        if isinstance(other, Unit):
            return other.label == self.label
        if isinstance(other, str):
            if not other.strip():
                return False
            return standard(decompose(other)) == self.label
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.label)

    def __mul__(self, other):
        """Called for self * other."""
        if isinstance(other, (Unit, str)):
            return Unit(self.terms + Unit(other).terms)
        return NotImplemented

    def __rmul__(self, other):
        """Called for other * self."""
        if isinstance(other, str):
            return Unit(Unit(other).terms + self.terms)
        if isinstance(other, numbers.Real):
            from metron.core import quantity
            return quantity.Quantity(other, self)
        return NotImplemented

    def __truediv__(self, other):
        """Called for self / other."""
        if isinstance(other, (Unit, str)):
            inverse = tuple(term ** -1 for term in Unit(other).terms)
            return Unit(self.terms + inverse)
        return NotImplemented

    def __rtruediv__(self, other):
        """Called for other / self."""
        if isinstance(other, str):
            return Unit(other) / self
        if isinstance(other, numbers.Real) and other == 1:
            return self ** -1
        if isinstance(other, numbers.Real):
            from metron.core import quantity
            return quantity.Quantity(other, self ** -1)
        return NotImplemented

    def __pow__(self, n: numbers.Real):
        """Called for self ** n, with integral `n`."""
        if not isinstance(n, numbers.Real) or int(n) != n:
            raise ValueError(
                f"Can't raise unit {self.label!r} to non-integer power {n!r}"
            ) from None
        return Unit(term ** int(n) for term in self.terms)

    def root(self, n: int):
        """Compute the `n`-th root of this unit, if it is exact."""
        if any(term.exponent % n for term in self.terms):
            raise ValueError(
                f"Can't take root {n} of unit {self.label!r}"
            ) from None
        return Unit(
            Term(term.base, term.exponent // n) for term in self.terms
        )


UNITLESS = Unit('1')
"""The distinguished unit of quantities without units."""


UnitLike = typing.Union[str, Unit]


def parse(text: str) -> Unit:
    """Create a unit from a string.

    Parsing always succeeds for non-empty text: the oracle, not the parser, is
    authoritative on whether a label means anything.

    Raises
    ------
    TypeError
        `text` is not a string.
    UnitParsingError
        `text` is empty or blank.
    """
    if not isinstance(text, str):
        raise TypeError(f"Expected a string, not {type(text)!r}")
    return Unit(text)
