'''
methods to convert tokens and to analysis the record fields for binding.
'''
import re
import types
import warnings
from dataclasses import Field, fields, is_dataclass
from datetime import timedelta
from fractions import Fraction
from inspect import isclass
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

from .exceptions import (
    FlagValueError,
    InvalidArgumentShapeError,
    NumericConversionError,
    UnsupportedFieldTypeError,
)
from .types import FlagKind, FlagSpec, FlagValue, Int64, UInt, UInt64

_UnionType = getattr(types, 'UnionType', None)

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1

_LEGACY_OCTAL = re.compile(r'[+-]?0[0-7_]+')

TRUE_LITERALS = ('1', 't', 'T', 'TRUE', 'true', 'True')
FALSE_LITERALS = ('0', 'f', 'F', 'FALSE', 'false', 'False')

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

_DURATION_UNITS = {
    'ns': _NANOSECOND,
    'us': _MICROSECOND,
    'µs': _MICROSECOND,
    'μs': _MICROSECOND,
    'ms': _MILLISECOND,
    's': _SECOND,
    'm': _MINUTE,
    'h': _HOUR,
}
_DURATION_PART = re.compile(r'(\d*)(?:\.(\d*))?([^\d.]*)')

_SCALAR_TYPES = (
    (bool, FlagKind.Bool),
    (int, FlagKind.Int),
    (Int64, FlagKind.Int64),
    (UInt, FlagKind.UInt),
    (UInt64, FlagKind.UInt64),
    (float, FlagKind.Float64),
    (str, FlagKind.String),
    (timedelta, FlagKind.Duration),
)

_KIND_HOLDERS = {
    FlagKind.Bool: bool,
    FlagKind.Int: int,
    FlagKind.Int64: int,
    FlagKind.UInt: int,
    FlagKind.UInt64: int,
    FlagKind.Float64: (int, float),
    FlagKind.String: str,
    FlagKind.Duration: timedelta,
    FlagKind.StringList: list,
    FlagKind.IntList: list,
    FlagKind.StringMap: dict,
    FlagKind.IntMap: dict,
    FlagKind.Custom: FlagValue,
}


def parse_int(token: str) -> int:
    '''
        Convert an integer literal to an `int`.

        The literal may carry a sign and a base prefix (`0x`, `0o`, `0b`); a literal
        starting with a plain `0` is read as octal. Surrounding whitespace is rejected.

        Parameters:
        - token (`str`): the literal from the command-line.

        Returns:
        - `int`

        Raises:
        - `NumericConversionError`: if the token is not an integer literal.
    '''
    if not token or token != token.strip():
        raise NumericConversionError(f'parsing {token!r}: invalid syntax')
    try:
        return int(token, 0)
    except ValueError:
        pass
    if _LEGACY_OCTAL.fullmatch(token):
        try:
            return int(token, 8)
        except ValueError:
            pass
    raise NumericConversionError(f'parsing {token!r}: invalid syntax')


def parse_int64(token: str) -> int:
    value = parse_int(token)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise NumericConversionError(f'parsing {token!r}: value out of range')
    return value


def parse_uint(token: str) -> int:
    if token[:1] in ('+', '-'):
        raise NumericConversionError(f'parsing {token!r}: invalid syntax')
    value = parse_int(token)
    if value > _UINT64_MAX:
        raise NumericConversionError(f'parsing {token!r}: value out of range')
    return value


def parse_float(token: str) -> float:
    if not token or token != token.strip():
        raise NumericConversionError(f'parsing {token!r}: invalid syntax')
    try:
        return float(token)
    except ValueError:
        raise NumericConversionError(f'parsing {token!r}: invalid syntax') from None


def parse_bool(token: str) -> bool:
    if token in TRUE_LITERALS:
        return True
    if token in FALSE_LITERALS:
        return False
    raise FlagValueError(f'parsing {token!r}: invalid syntax')


def parse_duration(token: str) -> timedelta:
    '''
        Convert a duration string such as "300ms", "-1.5h" or "2h45m" to a `timedelta`.

        Valid units are "ns", "us" (or "µs"), "ms", "s", "m" and "h". A bare "0" is
        accepted without a unit. The result is rounded to whole microseconds.

        Raises:
        - `FlagValueError`: if the token is not a duration.
    '''
    text = token
    negative = False
    if text and text[0] in '+-':
        negative = text[0] == '-'
        text = text[1:]
    if text == '0':
        return timedelta(0)
    if not text:
        raise FlagValueError(f'invalid duration {token!r}')

    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        whole, frac, unit = match.groups()
        if not whole and not frac:
            raise FlagValueError(f'invalid duration {token!r}')
        if not unit:
            raise FlagValueError(f'missing unit in duration {token!r}')
        if unit not in _DURATION_UNITS:
            raise FlagValueError(f'unknown unit {unit!r} in duration {token!r}')
        value = Fraction(int(whole or '0'))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += value * _DURATION_UNITS[unit]
        pos = match.end()

    if negative:
        total = -total
    try:
        return timedelta(microseconds=round(total / _MICROSECOND))
    except OverflowError:
        raise FlagValueError(f'invalid duration {token!r}') from None


def unwrap_optional(dtype):
    '''
        Return `X` for `Optional[X]` or `X | None`, any other hint unchanged.
    '''
    origin_type = get_origin(dtype)
    if origin_type is Union or (
        _UnionType is not None and origin_type is _UnionType
    ):
        dtype_generics = [t for t in get_args(dtype) if t is not type(None)]
        if len(dtype_generics) == 1:
            return dtype_generics[0]
    return dtype


def classify_type(dtype) -> FlagKind:
    '''
        Map a type hint to the kind of flag it is bound as.

        Built-in kinds are checked before the `FlagValue` fallback, and `bool` before `int`.
        `Optional[X]` and `X | None` are classified as `X`, other unions are unsupported.
    '''
    dtype = unwrap_optional(dtype)
    for known, kind in _SCALAR_TYPES:
        if dtype is known:
            return kind

    origin_type = get_origin(dtype)
    if origin_type is Union or (
        _UnionType is not None and origin_type is _UnionType
    ):
        return FlagKind.Unsupported

    if isclass(origin_type) and issubclass(origin_type, list):
        dtype_generics = get_args(dtype)
        if dtype_generics == (str, ):
            return FlagKind.StringList
        if dtype_generics == (int, ):
            return FlagKind.IntList
        return FlagKind.Unsupported

    if isclass(origin_type) and issubclass(origin_type, dict):
        dtype_generics = get_args(dtype)
        if dtype_generics == (str, str):
            return FlagKind.StringMap
        if dtype_generics == (str, int):
            return FlagKind.IntMap
        return FlagKind.Unsupported

    if isclass(dtype) and issubclass(dtype, FlagValue):
        return FlagKind.Custom

    return FlagKind.Unsupported


def infer_kind(value: Any) -> FlagKind:
    '''
        Classify a value by its runtime type, for registrations without a type hint.

        Lists and dicts cannot be told apart by element type this way and are unsupported.
    '''
    if isinstance(value, FlagValue):
        return FlagKind.Custom
    return classify_type(type(value))


def kind_holds(kind: FlagKind, value: Any) -> bool:
    '''
        Whether a field holding `value` can be bound as `kind`. `None` fits every kind.
    '''
    if value is None:
        return True
    holder = _KIND_HOLDERS.get(kind)
    return holder is not None and isinstance(value, holder)


def analysis_field(field: Field, record: Any,
                   hints: Dict[str, Any]) -> Optional[FlagSpec]:
    name = field.metadata.get('flag', '')
    help = field.metadata.get('help', '')
    if not name:
        if help:
            warnings.warn(
                f'The field "{field.name}" has help text but no flag name, it is not bound.',
                UserWarning
            )
        return None

    default = getattr(record, field.name)
    dtype = hints.get(field.name, field.type)
    kind = classify_type(dtype)
    if kind is FlagKind.Unsupported and isinstance(default, FlagValue):
        kind = FlagKind.Custom

    meta_kind = field.metadata.get('kind', None)
    if meta_kind is not None:
        meta_kind = FlagKind(meta_kind)
        if kind is not FlagKind.Unsupported and kind is not meta_kind:
            warnings.warn(
                f'The kind for "{field.name}" will be overridden by the metadata.',
                UserWarning
            )
        if not kind_holds(meta_kind, default):
            raise UnsupportedFieldTypeError(field.name, dtype)
        kind = meta_kind

    if kind is FlagKind.Unsupported:
        raise UnsupportedFieldTypeError(field.name, dtype)

    factory = None
    if kind is FlagKind.Custom and not isinstance(default, FlagValue):
        value_type = unwrap_optional(dtype)
        if default is not None or not (
            isclass(value_type) and issubclass(value_type, FlagValue)
        ):
            raise UnsupportedFieldTypeError(field.name, dtype)
        factory = value_type

    return FlagSpec(
        attr=field.name,
        name=name,
        kind=kind,
        help=help,
        default=default,
        factory=factory
    )


def analysis_record(record: Any) -> List[FlagSpec]:
    '''
        Build the registration table for a dataclass instance.

        Fields are visited in declaration order; fields without a flag name are skipped.

        Raises:
        - `InvalidArgumentShapeError`: if `record` is not a dataclass instance.
        - `UnsupportedFieldTypeError`: if a flag field cannot be bound.
    '''
    if not is_dataclass(record) or isinstance(record, type):
        raise InvalidArgumentShapeError(
            f'Parameter "record" must be a dataclass instance, got {record!r}'
        )
    hints = get_type_hints(type(record))
    specs: List[FlagSpec] = []
    for field in fields(record):
        res = analysis_field(field, record, hints)
        if res:
            specs.append(res)

    return specs
