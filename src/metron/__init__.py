import logging

from metron.core import options
from metron.core.coercion import (
    Elapsed,
    UnsupportedConversionTarget,
    UnsupportedTimeUnit,
)
from metron.core.namespace import Namespace, ud
from metron.core.oracle import (
    IncompatibleUnits,
    Oracle,
    PintOracle,
    PreconditionViolated,
)
from metron.core.quantity import (
    InvalidValueType,
    Quantity,
    ScaleDiscardedWarning,
)
from metron.core.resolver import AmbiguousUnitWarning, expr
from metron.core.symbolic import (
    UNITLESS,
    Unit,
    UnitParsingError,
    UnitResolutionFailed,
    parse,
)
from metron.core.units import (
    as_calendar_date,
    as_calendar_instant,
    as_elapsed_time,
    as_units,
    drop_units,
    set_units,
    units_of,
)


# read version from installed package
from importlib.metadata import PackageNotFoundError, version
try:
    __version__ = version("metron")
except PackageNotFoundError:
    __version__ = "0.0.0"


logging.getLogger(__name__).addHandler(logging.NullHandler())
