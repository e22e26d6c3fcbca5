'''
errors raised while binding a record to the parser and while parsing tokens.
'''
from argparse import ArgumentTypeError
from typing import Any


class FlagBindingError(Exception):
    '''
        Base class of every error raised by `flag_binding`.
    '''


class InvalidArgumentShapeError(FlagBindingError, TypeError):
    '''
        The object handed to the binder is not a dataclass instance.
    '''


class UnsupportedFieldTypeError(FlagBindingError, TypeError):
    '''
        A flag field has a type that matches no built-in kind and does not implement `FlagValue`.

        Attributes:
        - field_name (`str`): the name of the offending field.
        - field_type (`Any`): the declared (or observed) type of the field.
    '''

    def __init__(self, field_name: str, field_type: Any) -> None:
        type_name = getattr(field_type, '__name__', None) or repr(field_type)
        super(UnsupportedFieldTypeError, self).__init__(
            f'Field "{field_name}" has unsupported type "{type_name}"'
        )
        self.field_name = field_name
        self.field_type = field_type


class DuplicateFlagError(FlagBindingError, ValueError):
    '''
        Two fields (or a field and the parser itself) claim the same option string.
    '''


class FlagValueError(FlagBindingError, ArgumentTypeError, ValueError):
    '''
        A single command-line token could not be converted for its flag.

        Being an `ArgumentTypeError`, the message is reported verbatim by argparse.
    '''


class MalformedMapEntryError(FlagValueError):
    pass


class NumericConversionError(FlagValueError):
    pass


class FlagParseError(FlagBindingError):
    '''
        Parsing failed and the parser was configured with `ErrorPolicy.RAISE`.
    '''
