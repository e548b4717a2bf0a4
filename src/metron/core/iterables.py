import inspect
import numbers
import pathlib
import typing


def missing(this: typing.Any) -> bool:
    """True if `this` represents a missing value.

    This function treats ``None`` and floating-point NaN as missing. Unlike
    ``bool(this)``, it does not treat numbers equivalent to 0 or ``False`` as
    missing.
    """
    if this is None:
        return True
    if isinstance(this, bool):
        return False
    if isinstance(this, numbers.Real):
        return this != this
    return False


class _Fields:
    """Look up format fields as attributes of an object."""

    def __init__(self, instance) -> None:
        self._instance = instance

    def __getitem__(self, name: str):
        return getattr(self._instance, name)


class ReprStrMixin:
    """A mixin class that builds `__str__` and `__repr__` from templates.

    Subclasses set `_str` and, optionally, `_repr` to format strings whose
    fields name attributes of the instance. An empty `_repr` reuses the result
    of `__str__`.
    """

    _str = ''
    _repr = ''

    def __str__(self) -> str:
        """A simplified representation of this object."""
        return self._str.format_map(_Fields(self))

    def __repr__(self) -> str:
        """An unambiguous representation of this object."""
        module = self.__module__.rsplit('.', 1)[-1]
        name = self.__class__.__qualname__
        string = self._repr.format_map(_Fields(self)) or str(self)
        return f"{module}.{name}({string})"


_PACKAGE = pathlib.Path(__file__).resolve().parent.parent


def stacklevel() -> int:
    """The `warnings.warn` stack level of the first caller outside metron.

    The result applies to a function in this package that calls this function
    and then `warnings.warn`.
    """
    level = 0
    frame = inspect.currentframe()
    try:
        while frame is not None:
            path = pathlib.Path(frame.f_code.co_filename).resolve()
            if not path.is_relative_to(_PACKAGE):
                break
            frame = frame.f_back
            level += 1
    finally:
        del frame
    return level
