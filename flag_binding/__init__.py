'''
Bind the flag fields of a dataclass instance to the command-line and parse into it.
'''
from .exceptions import (
    DuplicateFlagError,
    FlagBindingError,
    FlagParseError,
    FlagValueError,
    InvalidArgumentShapeError,
    MalformedMapEntryError,
    NumericConversionError,
    UnsupportedFieldTypeError,
)
from .parser import BindingParser, build_parser, parse, parse_args
from .types import ErrorPolicy, FieldRef, FlagField, FlagKind, FlagSpec, FlagValue, Int64, UInt, UInt64
from .values import ListValue, MapValue

Field = FlagField
