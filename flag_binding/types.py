'''
defined the data classes to bind the record fields to the argument parser.
'''
from abc import ABC, abstractmethod
from dataclasses import MISSING, dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, List, NewType, Optional

Int64 = NewType('Int64', int)
UInt = NewType('UInt', int)
UInt64 = NewType('UInt64', int)


class FlagValue(ABC):
    '''
        The capability a field value implements to be bound without built-in support.

        `parse` receives every token given to the flag, in command-line order, and
        mutates the value in place. `render` returns the text shown as the default
        in the help output; an empty string hides it.

        Example:
        ```python
        class Level(FlagValue):
            def __init__(self, level='info'):
                self.level = level

            def parse(self, token):
                if token not in ('debug', 'info'):
                    raise ValueError('unknown level')
                self.level = token

            def render(self):
                return self.level
        ```
    '''

    @abstractmethod
    def parse(self, token: str) -> None:
        ...

    @abstractmethod
    def render(self) -> str:
        ...


class FlagKind(Enum):
    '''
        Enum representing the semantic kind of a flag field.

        The kind decides how the binder registers the field:
        - Scalars (Bool ... Duration) use the parser's own type conversion and store the
          converted value into the field.
        - StringList / IntList append one element per occurrence of the flag.
        - StringMap / IntMap insert one `key=value` entry per occurrence of the flag.
        - Custom registers a `FlagValue` as it is.
        - Unsupported cannot be bound.
    '''
    Bool = 'bool'
    Int = 'int'
    Int64 = 'int64'
    UInt = 'uint'
    UInt64 = 'uint64'
    Float64 = 'float64'
    String = 'string'
    Duration = 'duration'
    StringList = 'string-list'
    IntList = 'int-list'
    StringMap = 'string-map'
    IntMap = 'int-map'
    Custom = 'custom'
    Unsupported = 'unsupported'

    @staticmethod
    def is_scalar(kind: 'FlagKind') -> bool:
        return kind in _ZERO_VALUES

    @staticmethod
    def is_repeatable(kind: 'FlagKind') -> bool:
        if kind is FlagKind.StringList or \
            kind is FlagKind.IntList or \
            kind is FlagKind.StringMap or \
            kind is FlagKind.IntMap:
            return True
        return False


_ZERO_VALUES = {
    FlagKind.Bool: False,
    FlagKind.Int: 0,
    FlagKind.Int64: 0,
    FlagKind.UInt: 0,
    FlagKind.UInt64: 0,
    FlagKind.Float64: 0.0,
    FlagKind.String: '',
    FlagKind.Duration: timedelta(0),
}

_METAVARS = {
    FlagKind.Int: 'int',
    FlagKind.Int64: 'int',
    FlagKind.UInt: 'uint',
    FlagKind.UInt64: 'uint',
    FlagKind.Float64: 'float',
    FlagKind.String: 'string',
    FlagKind.Duration: 'duration',
}


def _format_fraction(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    digits = str(frac).rjust(len(str(unit)) - 1, '0').rstrip('0')
    return f'{whole}.{digits}'


def format_duration(duration: timedelta) -> str:
    '''
        Render a `timedelta` the way `parse_duration` reads it, e.g. "24h0m0s", "1.5s" or "300ms".
    '''
    micros = duration // timedelta(microseconds=1)
    if micros == 0:
        return '0s'
    sign = '-' if micros < 0 else ''
    micros = abs(micros)
    if micros < 1000:
        return f'{sign}{micros}µs'
    if micros < 1000000:
        return f'{sign}{_format_fraction(micros, 1000)}ms'
    hours, rest = divmod(micros, 3600 * 1000000)
    minutes, rest = divmod(rest, 60 * 1000000)
    seconds = _format_fraction(rest, 1000000)
    if hours:
        return f'{sign}{hours}h{minutes}m{seconds}s'
    if minutes:
        return f'{sign}{minutes}m{seconds}s'
    return f'{sign}{seconds}s'


class ErrorPolicy(Enum):
    '''
        What the parser does when a token cannot be parsed.

        - Raise: raise `FlagParseError` to the caller.
        - Exit: print the usage and the error to stderr, then exit with status 2.
    '''
    Raise = 'raise'
    Exit = 'exit'


class FieldRef:
    '''
        A handle to one attribute of one record, read and written through `getattr`/`setattr`.
    '''

    def __init__(self, record: Any, attr: str) -> None:
        self.record = record
        self.attr = attr

    def get(self) -> Any:
        return getattr(self.record, self.attr)

    def set(self, value: Any) -> None:
        setattr(self.record, self.attr, value)

    def __repr__(self) -> str:
        return f'FieldRef({type(self.record).__name__}.{self.attr})'


@dataclass
class FlagSpec:
    '''
        One entry of the registration table: which field is bound to which flag and how.

        Attributes:
        - attr (str):
            The attribute name of the field on the record.
        - name (str):
            The flag name used on the command-line, without any prefix.
        - kind (FlagKind):
            The semantic kind deciding the registration.
        - help (str, optional):
            Help text for the flag.
        - default (Any, optional):
            The value of the field at binding time.
        - factory (Optional[Callable], optional):
            Creates the `FlagValue` of a custom field that holds `None` at binding time.
    '''
    attr: str
    name: str
    kind: FlagKind
    help: str = ''
    default: Any = None
    factory: Optional[Callable] = None

    @property
    def is_switch(self) -> bool:
        return self.kind is FlagKind.Bool

    @property
    def is_repeatable(self) -> bool:
        return FlagKind.is_repeatable(self.kind)

    @property
    def metavar(self) -> Optional[str]:
        if self.is_switch:
            return None
        return _METAVARS.get(self.kind, 'value')

    @property
    def help_suffix(self) -> str:
        if self.is_repeatable or self.default is None:
            return ''
        if self.kind is FlagKind.Custom:
            rendered = self.default.render()
            return f'(default {rendered})' if rendered else ''
        if self.default == _ZERO_VALUES.get(self.kind):
            return ''
        if self.kind is FlagKind.Bool:
            return '(default true)'
        if self.kind is FlagKind.String:
            return f'(default "{self.default}")'
        if self.kind is FlagKind.Duration:
            return f'(default {format_duration(self.default)})'
        return f'(default {self.default})'

    def options(self, prefix: str = '-') -> List[str]:
        return [prefix + self.name, prefix * 2 + self.name]


def FlagField(
    default: Optional[Any] = MISSING,
    default_factory: Optional[Callable] = MISSING,
    name: Optional[str] = None,
    help: Optional[str] = None,
    kind: Optional[FlagKind] = None
):
    '''
        Create a dataclass field bound to a command-line flag.

        Note: The kind in the metadata has a higher priority than the kind inferred from the type hint.

        Parameters:
        - default (`Optional[Any]`, optional):
            Default value for the field.
        - default_factory (`Optional[Callable]`, optional):
            Default factory for the field, e.g. `list` or `dict` for the repeatable flags.
        - name (`Optional[str]`, optional):
            The flag name. Without a name the field is not a flag.
        - help (`Optional[str]`, optional):
            Help text for the flag.
        - kind (`Optional[FlagKind]`, optional):
            Explicit kind, e.g. `FlagKind.Int64` for a field annotated as a plain `int`.

        Returns:
        - `dataclasses.Field`:
            A dataclass field with the flag metadata.
    '''
    meta_info = {}
    if name is not None:
        meta_info['flag'] = name
    if help is not None:
        meta_info['help'] = help
    if kind is not None:
        meta_info['kind'] = kind

    if default is not MISSING:
        return field(default=default, metadata=meta_info)
    elif default_factory is not MISSING:
        return field(default_factory=default_factory, metadata=meta_info)
    else:
        return field(metadata=meta_info)
