import numbers
import typing
import warnings

import numpy
import numpy.lib.mixins

from metron.core import iterables
from metron.core import options
from metron.core import oracle as oracles
from metron.core import symbolic


class InvalidValueType(TypeError):
    """The given data cannot carry a physical unit."""

    def __init__(self, value: typing.Any) -> None:
        self.value = value

    def __str__(self) -> str:
        kind = type(self.value).__qualname__
        return f"Can't attach units to non-numeric {kind} {self.value!r}"


class ScaleDiscardedWarning(UserWarning):
    """The numerical scale of a unit argument was ignored."""


def validate(data):
    """Ensure that `data` is numeric.

    Parameters
    ----------
    data : number or array-like
        The values to check. Array-like input becomes a `numpy.ndarray` with
        the same shape.

    Returns
    -------
    number or `numpy.ndarray`
        The numeric form of `data`. A container in which every element is
        missing becomes an array of NaN.

    Raises
    ------
    `~quantity.InvalidValueType`
        `data` is boolean or otherwise non-numeric.
    """
    if isinstance(data, (bool, numpy.bool_)):
        raise InvalidValueType(data)
    if isinstance(data, numbers.Number):
        return data
    array = numpy.asarray(data)
    if array.dtype.kind == 'b':
        if array.size == 0:
            return array.astype(float)
        raise InvalidValueType(data)
    if array.dtype.kind == 'O':
        items = array.ravel().tolist()
        if all(iterables.missing(item) for item in items):
            return numpy.full(array.shape, numpy.nan)
        if any(isinstance(item, (bool, numpy.bool_)) for item in items):
            raise InvalidValueType(data)
        try:
            values = [
                numpy.nan if iterables.missing(item) else item
                for item in items
            ]
            return numpy.array(values, dtype=float).reshape(array.shape)
        except (TypeError, ValueError) as err:
            raise InvalidValueType(data) from err
    if array.dtype.kind not in 'iufc':
        raise InvalidValueType(data)
    return array


def trivial(scale) -> bool:
    """True if `scale` does not change the values it would multiply."""
    if scale is None:
        return True
    return numpy.ndim(scale) == 0 and scale == 1


_SAME_UNIT = {
    'add',
    'subtract',
    'maximum',
    'minimum',
    'fmax',
    'fmin',
    'remainder',
    'fmod',
    'hypot',
}

_COMPARISONS = {
    'equal',
    'not_equal',
    'less',
    'less_equal',
    'greater',
    'greater_equal',
}

_UNCHANGED = {
    'negative',
    'positive',
    'absolute',
    'fabs',
    'rint',
    'floor',
    'ceil',
    'trunc',
    'conjugate',
}

_PREDICATES = {'isnan', 'isinf', 'isfinite', 'signbit'}

_TRANSCENDENTAL = {
    'exp', 'exp2', 'expm1', 'log', 'log2', 'log10', 'log1p',
    'sin', 'cos', 'tan', 'arcsin', 'arccos', 'arctan',
    'sinh', 'cosh', 'tanh', 'arcsinh', 'arccosh', 'arctanh',
}


class Quantity(numpy.lib.mixins.NDArrayOperatorsMixin, iterables.ReprStrMixin):
    """Numerical data with exactly one physical unit.

    Arithmetic follows the `numpy` operator protocol. Each supported universal
    function combines the units of its operands algebraically: addition and
    subtraction require equal units, multiplication and division form the
    product or ratio, and so on. None of these operations consults the
    conversion oracle; use `~quantity.Quantity.convert` to change units.
    """

    _str = "{data} [{unit}]"
    _repr = "{data}, unit='{unit}'"

    def __init__(self, data, unit: symbolic.UnitLike=None) -> None:
        if isinstance(data, Quantity):
            if unit is None:
                unit = data.unit
            data = data.data
        self._data = validate(data)
        self._unit = symbolic.UNITLESS if unit is None else symbolic.Unit(unit)

    @property
    def data(self):
        """The numerical magnitude of this quantity."""
        return self._data

    @property
    def unit(self) -> symbolic.Unit:
        """The physical unit of this quantity."""
        return self._unit

    @property
    def shape(self) -> typing.Tuple[int, ...]:
        """The shape of the underlying data."""
        return numpy.shape(self._data)

    @property
    def ndim(self) -> int:
        """The number of dimensions of the underlying data."""
        return numpy.ndim(self._data)

    def convert(
        self,
        unit: symbolic.UnitLike,
        scale=None,
        oracle: oracles.Oracle=None,
    ) -> 'Quantity':
        """Convert this quantity to `unit`.

        Parameters
        ----------
        unit : string or `~symbolic.Unit`
            The target unit.

        scale : number, optional
            A numerical factor carried by the target. It multiplies the data
            before conversion.

        oracle : `~oracle.Oracle`, optional
            The oracle to consult. The default is the oracle of the current
            process-wide options.

        Returns
        -------
        `~quantity.Quantity`
            This instance if `unit` is equal to the current unit and `scale`
            is trivial; otherwise a new instance with converted data.

        Raises
        ------
        `~oracle.IncompatibleUnits`
            The oracle reports that the units are not convertible.
        """
        target = symbolic.Unit(unit)
        if trivial(scale):
            if target == self._unit:
                return self
            data = self._data
        else:
            data = self._data * scale
            if target == self._unit:
                return Quantity(data, target)
        oracle = options.get().oracle if oracle is None else oracle
        if not oracle.are_convertible(self._unit, target):
            raise oracles.IncompatibleUnits(self._unit, target)
        return Quantity(oracle.convert(data, self._unit, target), target)

    def __len__(self) -> int:
        """The length of the leading axis of the data."""
        if self.ndim == 0:
            raise TypeError(f"{self.__class__.__qualname__} has no length")
        return len(self._data)

    def __iter__(self) -> typing.Iterator['Quantity']:
        """Iterate over elements along the leading axis."""
        if self.ndim == 0:
            raise TypeError(
                f"Iteration over a single {self.__class__.__qualname__}"
            )
        for value in self._data:
            yield Quantity(value, self._unit)

    def __getitem__(self, index) -> 'Quantity':
        """Subscript the data and keep the unit."""
        if isinstance(index, Quantity):
            index = index.data
        return Quantity(self._data[index], self._unit)

    def __setitem__(self, index, value) -> None:
        """Assign values that have the same unit."""
        other = _as_quantity(value)
        if other.unit != self._unit:
            raise oracles.IncompatibleUnits(other.unit, self._unit)
        self._data[index] = other.data

    def __array__(self, dtype=None, copy=None) -> numpy.ndarray:
        """Support casting to `numpy` array types."""
        array = numpy.asarray(self._data, dtype=dtype)
        return array.copy() if copy else array

    def __float__(self) -> float:
        return float(self._data)

    def __int__(self) -> int:
        return int(self._data)

    def __round__(self, ndigits: int=None) -> 'Quantity':
        return Quantity(round(self._data, ndigits), self._unit)

    def __eq__(self, other) -> bool:
        """True if both quantities have the same unit and the same values."""
        if not isinstance(other, Quantity):
            return NotImplemented
        return (
            other.unit == self._unit
            and bool(numpy.array_equal(other.data, self._data))
        )

    def __ne__(self, other) -> bool:
        """The negation of `__eq__`."""
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    _HANDLED_TYPES = (numpy.ndarray, numbers.Number, list)

    def __array_ufunc__(self, ufunc, method, *args, **kwargs):
        """Provide support for `numpy` universal functions.

        See https://numpy.org/doc/stable/reference/arrays.classes.html for more
        information on use of this special method.

        Notes
        -----
        This method only supports direct calls, without `out`. It converts all
        operands into quantities, computes the result from their data, and
        derives the unit of the result from their units in a `ufunc`-specific
        way. Predicates and comparisons return bare results.
        """
        if method != '__call__' or 'out' in kwargs:
            return NotImplemented
        accepted = self._HANDLED_TYPES + (Quantity, symbolic.Unit)
        for x in args:
            if not isinstance(x, accepted):
                return NotImplemented
        operands = [_as_quantity(x) for x in args]
        data = [x.data for x in operands]
        units = [x.unit for x in operands]
        name = ufunc.__name__
        if name in _SAME_UNIT or name in _COMPARISONS:
            for unit in units[1:]:
                if unit != units[0]:
                    raise oracles.IncompatibleUnits(unit, units[0])
            result = ufunc(*data, **kwargs)
            if name in _COMPARISONS:
                return result
            return Quantity(result, units[0])
        if name in _PREDICATES:
            return ufunc(*data, **kwargs)
        if name == 'multiply':
            unit = units[0] * units[1]
        elif name in {'divide', 'true_divide', 'floor_divide'}:
            unit = units[0] / units[1]
        elif name in {'power', 'float_power'}:
            exponent = _exponent(operands[1])
            data[1] = float(exponent)
            unit = units[0] ** exponent
        elif name in _UNCHANGED:
            unit = units[0]
        elif name == 'square':
            unit = units[0] ** 2
        elif name == 'reciprocal':
            unit = units[0] ** -1
            data[0] = numpy.asarray(data[0], dtype=float)
        elif name == 'sqrt':
            unit = units[0].root(2)
        elif name == 'cbrt':
            unit = units[0].root(3)
        elif name in _TRANSCENDENTAL:
            for operand in operands:
                if not operand.unit.unitless:
                    raise ValueError(
                        f"Can't apply {name} to a quantity"
                        f" with unit {str(operand.unit)!r}"
                    )
            unit = symbolic.UNITLESS
        else:
            return NotImplemented
        return Quantity(ufunc(*data, **kwargs), unit)

    _HANDLED_FUNCTIONS = {}

    def __array_function__(self, func, types, args, kwargs):
        """Provide support for functions in the `numpy` public API.

        See https://numpy.org/doc/stable/reference/arrays.classes.html for more
        information of use of this special method. Only functions registered
        via `~quantity.Quantity.implements` are supported, since an arbitrary
        function gives no indication of how it transforms units.
        """
        accepted = (Quantity, numpy.ndarray, numpy.ScalarType)
        if not all(issubclass(ti, accepted) for ti in types):
            return NotImplemented
        if func in self._HANDLED_FUNCTIONS:
            return self._HANDLED_FUNCTIONS[func](*args, **kwargs)
        return NotImplemented

    @classmethod
    def implements(cls, numpy_function):
        """Register an `__array_function__` implementation for this class.

        See https://numpy.org/doc/stable/reference/arrays.classes.html for the
        suggestion on which this method is based.
        """
        def decorator(func):
            cls._HANDLED_FUNCTIONS[numpy_function] = func
            return func
        return decorator


def _as_quantity(this) -> Quantity:
    """Treat `this` as a quantity, with bare values being unitless."""
    if isinstance(this, Quantity):
        return this
    if isinstance(this, symbolic.Unit):
        return Quantity(1, this)
    return Quantity(this)


def _exponent(this: Quantity) -> int:
    """Extract an integral exponent from a unitless scalar quantity."""
    value = this.data
    valid = (
        this.unit.unitless
        and numpy.ndim(value) == 0
        and numpy.isreal(value)
        and int(numpy.real(value)) == value
    )
    if not valid:
        raise ValueError(f"Can't raise a quantity to the power {this}")
    return int(numpy.real(value))


def _common_unit(items) -> symbolic.Unit:
    """Get the unit shared by all `items` or raise an exception."""
    units = [_as_quantity(item).unit for item in items]
    for unit in units[1:]:
        if unit != units[0]:
            raise oracles.IncompatibleUnits(unit, units[0])
    return units[0]


def _register_preserving(name: str) -> None:
    """Register a `numpy` function that does not change the unit."""
    function = getattr(numpy, name, None)
    if function is None:
        return

    @Quantity.implements(function)
    def preserving(a, *args, **kwargs):
        q = _as_quantity(a)
        return Quantity(function(q.data, *args, **kwargs), q.unit)


for _name in (
    'sum',
    'mean',
    'median',
    'std',
    'min',
    'max',
    'amin',
    'amax',
    'ptp',
    'cumsum',
    'sort',
    'round',
    'around',
    'squeeze',
    'ravel',
    'reshape',
    'transpose',
    'copy',
):
    _register_preserving(_name)


@Quantity.implements(numpy.var)
def var(a, *args, **kwargs):
    q = _as_quantity(a)
    return Quantity(numpy.var(q.data, *args, **kwargs), q.unit ** 2)


@Quantity.implements(numpy.concatenate)
def concatenate(arrays, *args, **kwargs):
    unit = _common_unit(arrays)
    data = [_as_quantity(x).data for x in arrays]
    return Quantity(numpy.concatenate(data, *args, **kwargs), unit)


@Quantity.implements(numpy.stack)
def stack(arrays, *args, **kwargs):
    unit = _common_unit(arrays)
    data = [_as_quantity(x).data for x in arrays]
    return Quantity(numpy.stack(data, *args, **kwargs), unit)


@Quantity.implements(numpy.shape)
def shape(a):
    return numpy.shape(_as_quantity(a).data)


@Quantity.implements(numpy.ndim)
def ndim(a):
    return numpy.ndim(_as_quantity(a).data)


def tag(
    data,
    unit: symbolic.UnitLike,
    scale=None,
    simplify: bool=False,
) -> Quantity:
    """Attach `unit` to bare numerical data without conversion.

    Parameters
    ----------
    data : number or array-like
        The values to tag.

    unit : string or `~symbolic.Unit`
        The unit to attach.

    scale : number, optional
        A numerical factor carried by the unit argument, as in ``10 bar``.

    simplify : bool, default=False
        If true, multiply a non-trivial `scale` into `data`. Otherwise, ignore
        it and issue a `~quantity.ScaleDiscardedWarning`.
    """
    values = validate(data)
    if not trivial(scale):
        if simplify:
            values = values * scale
        else:
            label = symbolic.Unit(unit).label
            warnings.warn(
                f"Ignoring scale {scale!r} of unit {label!r}",
                ScaleDiscardedWarning,
                stacklevel=iterables.stacklevel(),
            )
    return Quantity(values, unit)
