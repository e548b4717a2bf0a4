"""Turn caller-supplied unit arguments into concrete units.

A unit argument may be a string, a `~symbolic.Unit`, a `~quantity.Quantity`
(whose data acts as a numerical scale), or an unevaluated
`~resolver.Expression` created by `~resolver.expr`. An expression records the
scope in which it was written, so that a name like ``m`` may refer either to
the unit called ``m`` or to a variable called ``m``.
"""

import ast
import collections
import inspect
import logging
import numbers
import typing
import warnings

from metron.core import iterables
from metron.core import namespace
from metron.core import options as runtime
from metron.core import quantity
from metron.core import symbolic


_log = logging.getLogger(__name__)


class AmbiguousUnitWarning(UserWarning):
    """A name refers to both a unit and a variable with another meaning."""


class Resolved(typing.NamedTuple):
    """A concrete unit and an optional numerical scale."""

    unit: symbolic.Unit
    scale: typing.Any = None


class Expression(iterables.ReprStrMixin):
    """An unevaluated unit expression and the scope in which it appeared."""

    _str = "{source}"
    _repr = "'{source}'"

    def __init__(
        self,
        source: str,
        scope: typing.Mapping[str, typing.Any]=None,
    ) -> None:
        if not isinstance(source, str):
            raise TypeError(
                f"Expected the source of an expression, not {source!r}"
            )
        self.source = source.strip()
        """The text of the expression."""
        self.scope = {} if scope is None else scope
        """The bindings visible to the expression."""


def expr(
    source: str,
    scope: typing.Mapping[str, typing.Any]=None,
) -> Expression:
    """Create an unevaluated unit expression.

    Parameters
    ----------
    source : string
        The expression as written, for example ``'m/s'`` or ``'10*bar'``.

    scope : mapping, optional
        The bindings that names in `source` may refer to. By default, the
        local and global variables of the calling frame.

    Examples
    --------
    The unit ``m`` and a local variable ``m`` with another meaning::

        >>> m = 'km'
        >>> metron.set_units(1, metron.expr('m'))
        AmbiguousUnitWarning: ambiguous argument: 'm' is interpreted by its
        value, not by its name
        1 [km]
    """
    if scope is None:
        frame = inspect.currentframe().f_back
        try:
            scope = collections.ChainMap(dict(frame.f_locals), frame.f_globals)
        finally:
            del frame
    return Expression(source, scope)


def resolve(value, options: runtime.Options=None) -> Resolved:
    """Resolve a unit argument into a concrete unit.

    Parameters
    ----------
    value : string, unit, quantity, or `~resolver.Expression`
        The unit argument.

    options : `~options.Options`, optional
        The options whose oracle decides which names are units. The default is
        the process-wide options.

    Raises
    ------
    `~symbolic.UnitResolutionFailed`
        An expression contains an unknown name or unsupported syntax.
    TypeError
        `value` is not a supported kind of unit argument.
    """
    table = namespace.Namespace(runtime.resolve(options).oracle)
    if isinstance(value, Expression):
        return _resolve_expression(value, table)
    if isinstance(value, (str, symbolic.Unit, quantity.Quantity)):
        return _concrete(value)
    raise TypeError(f"Can't interpret {value!r} as a unit")


def _concrete(value) -> Resolved:
    """Resolve a value that fully determines its unit."""
    if isinstance(value, symbolic.Unit):
        return Resolved(value)
    if isinstance(value, quantity.Quantity):
        return Resolved(value.unit, value.data)
    return Resolved(symbolic.parse(value))


def _resolve_expression(
    expression: Expression,
    table: namespace.Namespace,
) -> Resolved:
    """Evaluate `expression` in its recorded scope."""
    source = expression.source
    try:
        tree = ast.parse(source, mode='eval')
    except SyntaxError as err:
        raise symbolic.UnitResolutionFailed(source) from err
    if isinstance(tree.body, ast.Name):
        return _resolve_name(tree.body.id, expression.scope, table)
    result = _Evaluator(source, table, expression.scope).visit(tree)
    return Resolved(result.unit, result.data)


def _resolve_name(
    name: str,
    scope: typing.Mapping[str, typing.Any],
    table: namespace.Namespace,
) -> Resolved:
    """Resolve a bare identifier as a unit name or as a variable."""
    by_name = table[name] if name in table else None
    by_value = None
    if name in scope:
        bound = scope[name]
        if isinstance(bound, (str, symbolic.Unit, quantity.Quantity)):
            by_value = _concrete(bound)
    if by_name is None and by_value is None:
        raise symbolic.UnitResolutionFailed(name)
    if by_value is None:
        _log.debug("Resolved %r by name", name)
        return Resolved(by_name)
    if by_name is not None and _differs(by_value, by_name):
        warnings.warn(
            f"ambiguous argument: {name!r} is interpreted"
            " by its value, not by its name",
            AmbiguousUnitWarning,
            stacklevel=iterables.stacklevel(),
        )
    _log.debug("Resolved %r by value as %s", name, by_value.unit)
    return by_value


def _differs(resolved: Resolved, unit: symbolic.Unit) -> bool:
    """True if `resolved` means something other than `unit`."""
    return resolved.unit != unit or not quantity.trivial(resolved.scale)


class _Evaluator(ast.NodeVisitor):
    """A restricted evaluator for compound unit expressions.

    Names resolve first in the unit table and then in the scope. Only numbers,
    strings, multiplication, division, integral powers, unary signs and
    parentheses are allowed.
    """

    def __init__(
        self,
        source: str,
        table: namespace.Namespace,
        scope: typing.Mapping[str, typing.Any],
    ) -> None:
        self.source = source
        self.table = table
        self.scope = scope

    def visit_Expression(self, node: ast.Expression) -> quantity.Quantity:
        return self.visit(node.body)

    def visit_Name(self, node: ast.Name) -> quantity.Quantity:
        name = node.id
        if name in self.table:
            return quantity.Quantity(1, self.table[name])
        if name in self.scope:
            bound = self.scope[name]
            if isinstance(bound, (str, symbolic.Unit, quantity.Quantity)):
                resolved = _concrete(bound)
                scale = 1 if resolved.scale is None else resolved.scale
                return quantity.Quantity(scale, resolved.unit)
            if _numeric(bound):
                return quantity.Quantity(bound)
        raise symbolic.UnitResolutionFailed(name)

    def visit_Constant(self, node: ast.Constant) -> quantity.Quantity:
        value = node.value
        if isinstance(value, str):
            return quantity.Quantity(1, symbolic.parse(value))
        if _numeric(value):
            return quantity.Quantity(value)
        raise symbolic.UnitResolutionFailed(self.source)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> quantity.Quantity:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand
        raise symbolic.UnitResolutionFailed(self.source)

    def visit_BinOp(self, node: ast.BinOp) -> quantity.Quantity:
        left = self.visit(node.left)
        right = self.visit(node.right)
        try:
            if isinstance(node.op, ast.Mult):
                return left * right
            if isinstance(node.op, ast.Div):
                return left / right
            if isinstance(node.op, ast.Pow):
                return left ** right
        except ValueError as err:
            raise symbolic.UnitResolutionFailed(self.source) from err
        raise symbolic.UnitResolutionFailed(self.source)

    def generic_visit(self, node: ast.AST):
        raise symbolic.UnitResolutionFailed(self.source)


def _numeric(value) -> bool:
    """True if `value` is a real number other than a boolean."""
    return isinstance(value, numbers.Real) and not isinstance(value, bool)
