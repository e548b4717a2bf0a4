"""Process-wide configuration of the unit engine.

The engine reads one `~options.Options` object at the start of each operation
and never modifies it. The object has an explicit lifecycle:

- `~options.get` loads it on first use, from the first ``metron.ini`` file
  found by `~options.search` (or from built-in defaults);
- `~options.set` replaces selected fields;
- `~options.reset` discards all changes and reloads it on next use;
- `~options.using` changes fields for the duration of a ``with`` block.

Every public operation also accepts an explicit ``options`` argument, which
bypasses the process-wide object entirely.

Example ``metron.ini``::

    [units]
    simplify = true
"""

import configparser
import contextlib
import logging
import os
import pathlib
import typing

from metron.core import iterables
from metron.core import oracle as oracles


_log = logging.getLogger(__name__)


FILENAME = 'metron.ini'
"""The name of the configuration file."""


SECTION = 'units'
"""The section of the configuration file that this module reads."""


PathLike = typing.Union[str, os.PathLike]


def search(
    paths: typing.Iterable[typing.Optional[PathLike]],
    file: PathLike,
) -> typing.Optional[pathlib.Path]:
    """Search `paths` for `file`.

    Parameters
    ----------
    paths : iterable of path-like
        The paths to search, in the order given. Members that are ``None`` or
        that do not exist are skipped. A member that names `file` itself
        matches directly.

    file : path-like
        The file to locate.

    Returns
    -------
    path or `None`
        The full path to the file, if found.
    """
    for p in paths:
        if p is None:
            continue
        path = pathlib.Path(p).expanduser().resolve()
        if path.is_file() and path.name == str(file):
            return path
        if path.is_dir():
            test = path / str(file)
            if test.exists():
                return test
    return None


def default_paths() -> typing.List[typing.Optional[PathLike]]:
    """The locations to search for a configuration file, in order."""
    home = pathlib.Path('~').expanduser()
    return [
        pathlib.Path.cwd(), # The current working directory
        home, # The user's home directory
        home / '.config', # Linux standard (local)
        '/etc/metron', # Linux standard (global)
        os.environ.get('METRON_INI'), # A known environment variable
        pathlib.Path(__file__).parent.parent, # The package top
    ]


class Options(iterables.ReprStrMixin):
    """Configuration values read by each engine operation."""

    _str = "simplify={simplify}, oracle={oracle}"

    def __init__(
        self,
        simplify: bool=False,
        oracle: oracles.Oracle=None,
    ) -> None:
        self.simplify = bool(simplify)
        """If true, multiply a unit argument's scale into a newly tagged value
        instead of discarding it."""
        self._oracle = oracle

    @property
    def oracle(self) -> oracles.Oracle:
        """The conversion oracle that answers unit-database questions."""
        if self._oracle is None:
            return oracles.default()
        return self._oracle

    def replace(self, **updates) -> 'Options':
        """Create a copy of these options with some fields replaced."""
        unknown = updates.keys() - {'simplify', 'oracle'}
        if unknown:
            raise TypeError(f"Unknown option(s): {', '.join(sorted(unknown))}")
        current = {'simplify': self.simplify, 'oracle': self._oracle}
        return type(self)(**{**current, **updates})

    @classmethod
    def fromfile(cls, path: typing.Optional[PathLike]) -> 'Options':
        """Create options from a configuration file.

        A missing `path` produces the built-in defaults. A file without the
        expected section produces the built-in defaults as well.
        """
        if path is None:
            return cls()
        config = configparser.ConfigParser()
        config.read(path)
        if not config.has_section(SECTION):
            _log.debug("No [%s] section in %s", SECTION, path)
            return cls()
        simplify = config.getboolean(SECTION, 'simplify', fallback=False)
        _log.debug("Read options from %s: simplify=%s", path, simplify)
        return cls(simplify=simplify)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Options):
            return NotImplemented
        return (
            other.simplify == self.simplify
            and other._oracle is self._oracle
        )

    __hash__ = None


_current: typing.Optional[Options] = None


def get() -> Options:
    """The current process-wide options, loaded on first use."""
    global _current
    if _current is None:
        _current = Options.fromfile(search(default_paths(), FILENAME))
    return _current


def set(**updates) -> Options:
    """Replace fields of the process-wide options.

    Returns
    -------
    `~options.Options`
        The options that were in effect before this call, suitable for
        passing to `~options.restore`.
    """
    global _current
    previous = get()
    _current = previous.replace(**updates)
    return previous


def restore(previous: Options) -> None:
    """Make `previous` the process-wide options again."""
    global _current
    _current = previous


def reset() -> None:
    """Discard all changes; the options reload on next use."""
    global _current
    _current = None


@contextlib.contextmanager
def using(**updates):
    """Temporarily replace fields of the process-wide options."""
    previous = set(**updates)
    try:
        yield get()
    finally:
        restore(previous)


def resolve(options: typing.Optional[Options]=None) -> Options:
    """Use `options` if given, otherwise the process-wide options."""
    return get() if options is None else options
